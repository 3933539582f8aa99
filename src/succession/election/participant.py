"""Election participant.

Owns one coordination session and everything tied to it: the candidate
registrar, the election engine, the leader heartbeat and the session
supervisor. Construct one per process (or per namespace), start it, and
stop it to leave the election.

Example:
    client = KazooCoordinationClient("zk1:2181,zk2:2181")
    async with ElectionParticipant(client, ElectionConfig(identity="worker-1")) as election:
        await election.wait_for_leadership()
        await do_leader_work()

    # Or run until SIGINT/SIGTERM
    await ElectionParticipant(client).run()
"""

from __future__ import annotations

import asyncio
import logging
import signal
from types import TracebackType

from succession.coordination.client import CoordinationClient
from succession.coordination.errors import CoordinationError
from succession.election.config import ElectionConfig, create_election_config_from_settings
from succession.election.duty import LeaderDutyRunner
from succession.election.engine import ElectionEngine, RoleListener
from succession.election.models import CandidateNode, Role
from succession.election.registrar import CandidateRegistrar
from succession.election.supervisor import SessionSupervisor

logger = logging.getLogger(__name__)


class ElectionParticipant:
    """One process taking part in a sequence-node election.

    Args:
        client: Coordination client (not yet connected)
        config: Election configuration (from settings if None)
    """

    def __init__(self, client: CoordinationClient, config: ElectionConfig | None = None) -> None:
        self.client = client
        self.config = config or create_election_config_from_settings()

        self.registrar = CandidateRegistrar(
            client, self.config.election_path, self.config.candidate_prefix
        )
        self.duty = LeaderDutyRunner(
            client,
            path=self.config.heartbeat_path,
            interval=self.config.heartbeat_interval,
            is_leader=self._is_leader,
        )
        self.engine = ElectionEngine(client, self.config, registrar=self.registrar, duty=self.duty)
        self.supervisor = SessionSupervisor(self.engine)
        client.add_session_listener(self.supervisor.handle)

        self._running = False
        self._shutdown_event = asyncio.Event()

    @property
    def identity(self) -> str:
        return self.config.identity

    @property
    def role(self) -> Role:
        return self.engine.role

    @property
    def is_leader(self) -> bool:
        return self.engine.is_leader

    @property
    def candidate(self) -> CandidateNode | None:
        return self.engine.candidate

    def _is_leader(self) -> bool:
        return self._running and self.engine.is_leader

    def add_role_listener(self, listener: RoleListener) -> None:
        self.engine.add_role_listener(listener)

    async def start(self) -> None:
        """Connect (retrying until it succeeds) and join the election."""
        if self._running:
            return

        self._shutdown_event.clear()
        await self._connect()
        self._running = True
        self.engine.start()
        logger.info(
            f"Joined election {self.config.election_path} as {self.config.identity}"
        )

    async def stop(self) -> None:
        """Leave the election.

        The heartbeat stops before the session closes; closing the session
        removes the candidate node, which is what wakes the successor.
        """
        if not self._running:
            return

        logger.info(f"Leaving election {self.config.election_path}")
        self._running = False
        self._shutdown_event.set()
        await self.engine.stop()
        try:
            await self.client.close()
        except CoordinationError as e:
            logger.warning(f"Error closing coordination session: {e}")

    async def run(self) -> None:
        """Participate until SIGINT/SIGTERM."""
        await self.start()

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, self._signal_handler)

        try:
            await self._shutdown_event.wait()
        finally:
            for sig in (signal.SIGTERM, signal.SIGINT):
                loop.remove_signal_handler(sig)
            await self.stop()

    def _signal_handler(self) -> None:
        logger.info("Received shutdown signal")
        self._shutdown_event.set()

    async def wait_for_leadership(self, timeout: float | None = None) -> bool:
        """Wait until this participant is the leader (False on timeout)."""
        return await self.engine.wait_for_leadership(timeout)

    async def _connect(self) -> None:
        backoff = self.config.backoff()
        while True:
            try:
                await self.client.connect()
                return
            except CoordinationError as e:
                delay = backoff.next_delay()
                logger.warning(
                    f"Connect attempt {backoff.attempts} failed ({e}), retrying in {delay:.1f}s"
                )
                await asyncio.sleep(delay)

    async def __aenter__(self) -> ElectionParticipant:
        await self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.stop()
