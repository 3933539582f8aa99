"""Leader heartbeat.

While this process is the leader, a background task overwrites the
heartbeat node every interval with the current timestamp. The role is
checked before every write, and the task exits as soon as the role is lost.
A failed write is logged and retried on the next tick; it never demotes the
leader, only loss of the candidate node does.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

from succession.coordination.client import CoordinationClient, CreateMode
from succession.coordination.errors import (
    BadVersionError,
    CoordinationError,
    NodeExistsError,
    NoNodeError,
)
from succession.election.models import CandidateNode, HeartbeatRecord
from succession.observability.metrics import get_metrics

logger = logging.getLogger(__name__)


class LeaderDutyRunner:
    """Publishes the leader heartbeat record on a fixed period.

    Args:
        client: Coordination client
        path: Heartbeat node path
        interval: Seconds between writes
        is_leader: Role check evaluated immediately before every write
    """

    def __init__(
        self,
        client: CoordinationClient,
        path: str,
        interval: float,
        is_leader: Callable[[], bool],
    ) -> None:
        self.client = client
        self.path = path
        self.interval = interval
        self._is_leader = is_leader
        self._candidate: CandidateNode | None = None
        self._version: int | None = None
        self._task: asyncio.Task[None] | None = None
        self.last_record: HeartbeatRecord | None = None
        self.writes = 0
        self.metrics = get_metrics()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self, candidate: CandidateNode) -> None:
        """Start publishing heartbeats on behalf of candidate."""
        if self.running:
            return
        self._candidate = candidate
        self._version = None
        self._task = asyncio.create_task(self._run())
        logger.info(f"Started leader heartbeat on {self.path} every {self.interval}s")

    def halt(self) -> None:
        """Stop writing at once, from synchronous code such as session listeners.

        The task is cancelled without waiting; stop() still reaps it.
        """
        self._candidate = None
        if self._task is not None:
            self._task.cancel()

    async def stop(self) -> None:
        """Stop publishing; no write is issued after this returns."""
        if self._task is None:
            return

        task, self._task = self._task, None
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("Stopped leader heartbeat")

    async def _run(self) -> None:
        while self._may_write():
            await self.beat()
            await asyncio.sleep(self.interval)

    async def beat(self) -> HeartbeatRecord | None:
        """Write one heartbeat; returns the record or None if nothing was written."""
        candidate = self._candidate
        if candidate is None or not self._is_leader():
            return None

        record = HeartbeatRecord.now(self.path, candidate.identity, candidate.path)
        try:
            version = await self._write(record.to_bytes())
        except BadVersionError:
            # Someone else touched the record; re-read the version next tick
            self._version = None
            self._record_outcome("conflict")
            logger.warning(f"Heartbeat {self.path} changed underneath us, will resync")
            return None
        except CoordinationError as e:
            self._version = None
            self._record_outcome("error")
            logger.warning(f"Heartbeat write to {self.path} failed: {e}")
            return None

        if version is None:
            return None

        self._version = version
        self.writes += 1
        self.last_record = HeartbeatRecord(
            path=self.path,
            timestamp=record.timestamp,
            identity=record.identity,
            candidate=record.candidate,
            version=version,
        )
        logger.debug(f"Leader heartbeat {record.timestamp.isoformat()} (version {version})")
        return self.last_record

    async def _write(self, data: bytes) -> int | None:
        """Create-if-absent, else conditional update. Returns the new version."""
        if self._version is None:
            stat = await self.client.exists(self.path)
            if not self._may_write():
                return None
            if stat is None:
                try:
                    await self.client.create(self.path, data, mode=CreateMode.PERSISTENT, makepath=True)
                    self._record_outcome("created")
                    return 0
                except NodeExistsError:
                    stat = await self.client.exists(self.path)
                    if stat is None or not self._may_write():
                        return None
            self._version = stat.version

        try:
            new_stat = await self.client.set_data(self.path, data, version=self._version)
        except NoNodeError:
            self._version = None
            raise
        self._record_outcome("updated")
        return new_stat.version

    def _may_write(self) -> bool:
        return self._candidate is not None and self._is_leader()

    def _record_outcome(self, outcome: str) -> None:
        self.metrics.heartbeat_writes_total.labels(outcome=outcome).inc()
