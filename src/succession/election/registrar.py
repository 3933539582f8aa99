"""Candidate registration.

Creates the persistent election namespace on first use and one
ephemeral-sequential candidate node per session.
"""

from __future__ import annotations

import logging

from succession.coordination.client import CoordinationClient, CreateMode, join_path
from succession.coordination.errors import (
    CoordinationError,
    NodeExistsError,
    NoNodeError,
    SessionExpiredError,
    TransientCoordinationError,
)
from succession.election.errors import NamespaceUnavailableError
from succession.election.models import CandidateNode, order_candidates

logger = logging.getLogger(__name__)


class CandidateRegistrar:
    """Registers this process as a candidate under the election namespace.

    Args:
        client: Coordination client
        namespace: Persistent parent path of the candidate nodes
        prefix: Candidate node name prefix; the service appends the sequence
    """

    def __init__(self, client: CoordinationClient, namespace: str, prefix: str = "candidate_"):
        self.client = client
        self.namespace = namespace
        self.prefix = prefix

    async def ensure_namespace(self) -> None:
        """Create the namespace (and missing parents) if absent.

        Raises:
            TransientCoordinationError: Retryable failure
            SessionExpiredError: Session lost
            NamespaceUnavailableError: Service rejected the creation
        """
        if await self.client.exists(self.namespace) is not None:
            return

        try:
            await self.client.create(self.namespace, mode=CreateMode.PERSISTENT, makepath=True)
            logger.info(f"Created election namespace {self.namespace}")
        except NodeExistsError:
            # Another candidate created it first
            pass
        except (TransientCoordinationError, SessionExpiredError):
            raise
        except CoordinationError as e:
            raise NamespaceUnavailableError(self.namespace, str(e)) from e

    async def register_candidate(self, identity: str) -> CandidateNode:
        """Create a fresh ephemeral-sequential candidate node.

        Each call yields a new node with a larger sequence number.
        """
        path = await self.client.create(
            join_path(self.namespace, self.prefix),
            data=identity.encode("utf-8"),
            mode=CreateMode.EPHEMERAL_SEQUENTIAL,
        )
        candidate = CandidateNode.from_path(path, self.prefix, identity)
        logger.info(f"Registered candidate {candidate.path} (sequence {candidate.sequence})")
        return candidate

    async def recover_candidate(self, identity: str) -> CandidateNode | None:
        """Find a candidate node created for identity whose create reply was lost.

        A create that fails with a connection loss may still have been
        applied. The node would hold a place in the queue that nobody
        watches for, so it is adopted instead of registering another one.
        """
        children = await self.client.get_children(self.namespace)
        expected = identity.encode("utf-8")

        for candidate in order_candidates(self.namespace, children, self.prefix):
            try:
                data, _ = await self.client.get_data(candidate.path)
            except NoNodeError:
                continue
            if data == expected:
                logger.info(f"Recovered candidate {candidate.path} after lost create reply")
                return CandidateNode(candidate.path, candidate.sequence, identity)

        return None
