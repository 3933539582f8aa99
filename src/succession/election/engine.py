"""Sequence-node leader election state machine.

Every process registers an ephemeral-sequential candidate node under the
election namespace. The candidate with the numerically smallest sequence is
the leader. Every other candidate watches only its immediate predecessor, so
a departure wakes exactly one process instead of the whole group:

    candidate_0000000001  leader
    candidate_0000000002  watches ...01
    candidate_0000000003  watches ...02

States:
    INIT -> ELECTING -> LEADER | FOLLOWER
    FOLLOWER -> ELECTING on a predecessor notification
    any -> REJOINING -> INIT on candidate/session loss

All work happens in one task that takes messages off a queue: the initial
join, scheduled retries, watch notifications, and rejoin/stop requests from
the session supervisor. An election pass runs to completion before the next
message is taken, so membership snapshots and watch installation never
interleave.

Example:
    engine = ElectionEngine(client, ElectionConfig(identity="worker-1"))
    engine.start()
    if await engine.wait_for_leadership(timeout=10):
        ...
    await engine.stop()
"""

from __future__ import annotations

import asyncio
import itertools
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass

from succession.coordination.client import CoordinationClient, WatchEvent
from succession.coordination.errors import (
    CoordinationError,
    NoNodeError,
    SessionExpiredError,
    TransientCoordinationError,
)
from succession.election.config import ElectionConfig
from succession.election.duty import LeaderDutyRunner
from succession.election.errors import CandidateMissingError, ElectionError
from succession.election.models import (
    CandidateNode,
    ElectionState,
    Role,
    WatchKind,
    WatchRegistration,
    find_predecessor,
    order_candidates,
)
from succession.election.registrar import CandidateRegistrar
from succession.observability.logging import LogContext, candidate_var
from succession.observability.metrics import get_metrics

logger = logging.getLogger(__name__)

RoleListener = Callable[[Role, Role], None]


# -----------------------------------------------------------------------------
# Messages
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class Join:
    """Register a candidate (INIT only)."""

    generation: int


@dataclass(frozen=True)
class Elect:
    """Run an election pass."""

    generation: int
    reason: str = ""


@dataclass(frozen=True)
class WatchFired:
    """A predecessor watch notification."""

    generation: int
    token: int
    event: WatchEvent


@dataclass(frozen=True)
class Rejoin:
    """Discard the candidate and start over."""

    reason: str


@dataclass(frozen=True)
class Sweep:
    """Remove candidate nodes this session created but never adopted."""


@dataclass(frozen=True)
class Stop:
    pass


Message = Join | Elect | WatchFired | Rejoin | Sweep | Stop


# -----------------------------------------------------------------------------
# Engine
# -----------------------------------------------------------------------------


class ElectionEngine:
    """Determines and maintains this process's role in the election.

    Args:
        client: Coordination client
        config: Election configuration
        registrar: Candidate registrar (built from config if None)
        duty: Leader duty runner started on election, stopped on role loss
    """

    def __init__(
        self,
        client: CoordinationClient,
        config: ElectionConfig,
        registrar: CandidateRegistrar | None = None,
        duty: LeaderDutyRunner | None = None,
    ) -> None:
        self.client = client
        self.config = config
        self.registrar = registrar or CandidateRegistrar(
            client, config.election_path, config.candidate_prefix
        )
        self.duty = duty
        self.metrics = get_metrics()

        self._state = ElectionState.INIT
        self._candidate: CandidateNode | None = None
        self._leader: CandidateNode | None = None
        self._watch: WatchRegistration | None = None
        self._queue: asyncio.Queue[Message] = asyncio.Queue()
        self._task: asyncio.Task[None] | None = None

        # Bumped on every rejoin; messages from older generations are dropped
        self._generation = 0
        self._watch_tokens = itertools.count(1)

        self._backoff = config.backoff()
        self._retry_handle: asyncio.TimerHandle | None = None
        self._missing_passes = 0
        self._registration_uncertain = False

        # Session in which a create may still land after its reply was lost
        self._stray_session: int | None = None
        self._sweep_handle: asyncio.TimerHandle | None = None

        self._on_elected: list[asyncio.Future[None]] = []
        self._role_listeners: list[RoleListener] = []

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    @property
    def state(self) -> ElectionState:
        return self._state

    @property
    def role(self) -> Role:
        return self._state.role

    @property
    def is_leader(self) -> bool:
        return self._state == ElectionState.LEADER

    @property
    def candidate(self) -> CandidateNode | None:
        """Own candidate node, None until registered."""
        return self._candidate

    @property
    def leader(self) -> CandidateNode | None:
        """Leader seen in the last election pass."""
        return self._leader

    @property
    def watch(self) -> WatchRegistration | None:
        """The single active watch, None while leader or electing."""
        return self._watch

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def add_role_listener(self, listener: RoleListener) -> None:
        """Register a callback invoked with (old_role, new_role) on role changes."""
        self._role_listeners.append(listener)

    def start(self) -> None:
        """Start the engine task and begin joining the election."""
        if self.running:
            return
        self._task = asyncio.create_task(self.run())
        self.post(Join(self._generation))

    async def stop(self) -> None:
        """Stop the engine: heartbeat stops, the active watch is abandoned."""
        if not self.running:
            await self._shutdown()
            return
        self.post(Stop())
        assert self._task is not None
        await self._task

    def post(self, message: Message) -> None:
        """Queue a message for the engine task."""
        self._queue.put_nowait(message)

    def request_rejoin(self, reason: str) -> None:
        """Force a rejoin regardless of current state (session loss).

        The heartbeat is halted right away rather than when the queued
        rejoin is processed, so no write lands on a replacement session.
        """
        if self.duty is not None:
            self.duty.halt()
        self.post(Rejoin(reason))

    def wake(self) -> None:
        """Retry a pending registration now instead of waiting out the backoff."""
        if self._state == ElectionState.INIT and self._retry_handle is not None:
            self._cancel_retry()
            self.post(Join(self._generation))

    async def wait_for_leadership(self, timeout: float | None = None) -> bool:
        """Wait until this process becomes the leader.

        Args:
            timeout: Maximum time to wait in seconds (None = wait forever)

        Returns:
            True if leadership was acquired, False if timeout
        """
        if self.is_leader:
            return True

        future: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        self._on_elected.append(future)

        try:
            await asyncio.wait_for(future, timeout=timeout)
            return True
        except asyncio.TimeoutError:
            self._on_elected.remove(future)
            return False

    # -------------------------------------------------------------------------
    # Message loop
    # -------------------------------------------------------------------------

    async def run(self) -> None:
        """Process messages one at a time until stopped."""
        with LogContext(namespace=self.config.election_path, identity=self.config.identity):
            while True:
                message = await self._queue.get()
                if isinstance(message, Stop):
                    await self._shutdown()
                    return

                try:
                    await self._dispatch(message)
                except asyncio.CancelledError:
                    raise
                except Exception:
                    logger.exception(f"Unexpected error handling {type(message).__name__}")
                    self.metrics.election_errors_total.labels(
                        namespace=self.config.election_path, kind="unexpected"
                    ).inc()
                    self._retry_current()

    async def _dispatch(self, message: Message) -> None:
        if isinstance(message, Rejoin):
            await self._rejoin(message.reason)
        elif isinstance(message, Sweep):
            await self._sweep()
        elif message.generation != self._generation:
            logger.debug(f"Dropping stale {type(message).__name__}")
        elif isinstance(message, Join):
            if self._state == ElectionState.INIT:
                await self._join()
        elif isinstance(message, Elect):
            if self._state in (ElectionState.ELECTING, ElectionState.FOLLOWER):
                await self._elect()
        elif isinstance(message, WatchFired):
            await self._on_watch(message)

    # -------------------------------------------------------------------------
    # INIT
    # -------------------------------------------------------------------------

    async def _join(self) -> None:
        try:
            await self.registrar.ensure_namespace()
            candidate = await self._register()
        except (CoordinationError, ElectionError) as e:
            logger.warning(f"Candidate registration failed: {e}")
            self._count_error(e)
            self._schedule_retry(Join(self._generation))
            return

        self._candidate = candidate
        self._registration_uncertain = False
        self._backoff.reset()
        candidate_var.set(candidate.path)
        await self._elect()

    async def _register(self) -> CandidateNode:
        identity = self.config.identity

        if self._registration_uncertain:
            recovered = await self.registrar.recover_candidate(identity)
            if recovered is not None:
                return recovered

        try:
            return await self.registrar.register_candidate(identity)
        except TransientCoordinationError:
            # The create may have been applied, or may still be; look for it
            # before creating another and sweep up late arrivals afterwards
            self._registration_uncertain = True
            self._expect_strays()
            raise

    # -------------------------------------------------------------------------
    # ELECTING
    # -------------------------------------------------------------------------

    async def _elect(self) -> None:
        assert self._candidate is not None
        own = self._candidate
        namespace = self.config.election_path

        self._watch = None
        self._set_state(ElectionState.ELECTING)
        self.metrics.elections_total.labels(namespace=namespace).inc()
        started = time.perf_counter()

        try:
            children = await self.client.get_children(namespace)
            candidates = order_candidates(namespace, children, self.config.candidate_prefix)
            if self._strays_possible():
                candidates = await self._discard_strays(candidates, own)
        except SessionExpiredError:
            await self._rejoin("session expired during election")
            return
        except NoNodeError:
            await self._rejoin("election namespace disappeared")
            return
        except TransientCoordinationError as e:
            logger.warning(f"Listing candidates failed: {e}")
            self._count_error(e)
            self._schedule_retry(Elect(self._generation, "retry after transient error"))
            return
        except (CoordinationError, ElectionError) as e:
            logger.error(f"Cannot determine leadership from {namespace}: {e}")
            self._count_error(e)
            self._schedule_retry(Elect(self._generation, "retry after structural error"))
            return
        finally:
            self.metrics.election_duration_seconds.labels(namespace=namespace).observe(
                time.perf_counter() - started
            )

        if own.path not in {c.path for c in candidates}:
            self._missing_passes += 1
            if self._missing_passes > self.config.missing_candidate_retries:
                await self._rejoin("candidate node lost")
                return
            error = CandidateMissingError(own.path)
            logger.warning(f"{error}, retrying")
            self._count_error(error)
            self._schedule_retry(Elect(self._generation, "candidate missing"))
            return

        self._missing_passes = 0
        # Only the own node carries a known identity
        self._leader = own if candidates[0].path == own.path else candidates[0]
        predecessor = find_predecessor(candidates, own.path)

        if predecessor is None:
            self._become_leader()
            return

        await self._watch_predecessor(predecessor)

    async def _watch_predecessor(self, predecessor: CandidateNode) -> None:
        generation = self._generation
        token = next(self._watch_tokens)

        def on_event(event: WatchEvent) -> None:
            self.post(WatchFired(generation, token, event))

        try:
            stat = await self.client.exists(predecessor.path, watch=on_event)
        except SessionExpiredError:
            await self._rejoin("session expired while installing watch")
            return
        except CoordinationError as e:
            logger.warning(f"Installing watch on {predecessor.path} failed: {e}")
            self._count_error(e)
            self._schedule_retry(Elect(self._generation, "retry watch installation"))
            return

        if stat is None:
            # Deleted before the watch attached; no notification will come
            logger.info(f"Predecessor {predecessor.path} already gone, re-electing")
            self.post(Elect(generation, "predecessor gone before watch"))
            return

        self._watch = WatchRegistration(predecessor.path, WatchKind.EXISTS, token)
        self._backoff.reset()
        self.metrics.watches_installed_total.labels(namespace=self.config.election_path).inc()
        self._set_state(ElectionState.FOLLOWER)
        logger.info(f"Became follower, watching {predecessor.path}")

    def _become_leader(self) -> None:
        assert self._candidate is not None
        self._watch = None
        self._backoff.reset()
        self._set_state(ElectionState.LEADER)
        logger.info(f"Became leader ({self._candidate.path})")

        if self.duty is not None:
            self.duty.start(self._candidate)

        for future in self._on_elected:
            if not future.done():
                future.set_result(None)
        self._on_elected.clear()

    # -------------------------------------------------------------------------
    # FOLLOWER
    # -------------------------------------------------------------------------

    async def _on_watch(self, message: WatchFired) -> None:
        if self._watch is None or message.token != self._watch.token:
            logger.debug(f"Ignoring notification from abandoned watch: {message.event.path}")
            return

        event = message.event
        self.metrics.watch_events_total.labels(
            namespace=self.config.election_path, event_type=event.type.value
        ).inc()

        # One-shot: whatever fired, the watch is consumed and the pass re-arms it
        logger.info(f"Predecessor {event.path} {event.type.value}, re-electing")
        self._watch = None
        await self._elect()

    # -------------------------------------------------------------------------
    # Lost create replies
    # -------------------------------------------------------------------------

    def _expect_strays(self) -> None:
        self._stray_session = self.client.session_id
        self._schedule_sweep(self.config.stray_sweep_delay)

    def _strays_possible(self) -> bool:
        if self._stray_session is None:
            return False
        if self._stray_session != self.client.session_id:
            # Ephemeral strays ended with their session
            self._stray_session = None
            self._cancel_sweep()
            return False
        return True

    async def _discard_strays(
        self, candidates: list[CandidateNode], own: CandidateNode
    ) -> list[CandidateNode]:
        """Delete other candidates owned by this session and drop them from the listing.

        A stray ahead of the own node would otherwise be watched forever, and
        one behind it would hold a place in the queue nobody answers for.
        """
        kept = []
        for candidate in candidates:
            if candidate.path != own.path:
                stat = await self.client.exists(candidate.path)
                if stat is not None and stat.ephemeral_owner == self._stray_session:
                    logger.warning(f"Deleting stray candidate {candidate.path} from a lost create")
                    try:
                        await self.client.delete(candidate.path)
                    except NoNodeError:
                        pass
                    continue
            kept.append(candidate)
        return kept

    async def _sweep(self) -> None:
        self._sweep_handle = None
        if not self._strays_possible():
            return
        if self._state not in (ElectionState.LEADER, ElectionState.FOLLOWER):
            # The next settled state sweeps
            self._schedule_sweep(self.config.retry_delay_initial)
            return

        assert self._candidate is not None
        namespace = self.config.election_path
        try:
            children = await self.client.get_children(namespace)
            candidates = order_candidates(namespace, children, self.config.candidate_prefix)
            await self._discard_strays(candidates, self._candidate)
        except (CoordinationError, ElectionError) as e:
            logger.warning(f"Sweeping stray candidates failed: {e}")
            self._count_error(e)
            self._schedule_sweep(self.config.retry_delay_max)
            return

        self._stray_session = None

    def _schedule_sweep(self, delay: float) -> None:
        self._cancel_sweep()
        self._sweep_handle = asyncio.get_running_loop().call_later(delay, self.post, Sweep())

    def _cancel_sweep(self) -> None:
        if self._sweep_handle is not None:
            self._sweep_handle.cancel()
            self._sweep_handle = None

    # -------------------------------------------------------------------------
    # REJOINING / STOPPED
    # -------------------------------------------------------------------------

    async def _rejoin(self, reason: str) -> None:
        if self._state == ElectionState.STOPPED:
            return

        logger.warning(f"Rejoining election: {reason}")
        self.metrics.rejoins_total.labels(
            namespace=self.config.election_path, reason=reason
        ).inc()

        self._set_state(ElectionState.REJOINING)
        if self.duty is not None:
            await self.duty.stop()

        self._generation += 1
        self._cancel_retry()
        self._candidate = None
        self._leader = None
        self._watch = None
        self._missing_passes = 0
        self._registration_uncertain = False
        candidate_var.set("")

        self._set_state(ElectionState.INIT)
        self.post(Join(self._generation))

    async def _shutdown(self) -> None:
        self._cancel_retry()
        self._cancel_sweep()
        if self.duty is not None:
            await self.duty.stop()
        self._watch = None
        self._set_state(ElectionState.STOPPED)
        logger.info("Election engine stopped")

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _set_state(self, state: ElectionState) -> None:
        old_role = self._state.role
        self._state = state
        new_role = state.role
        if new_role == old_role:
            return

        namespace = self.config.election_path
        self.metrics.set_role(namespace, new_role.value)
        self.metrics.role_transitions_total.labels(namespace=namespace, role=new_role.value).inc()
        for listener in self._role_listeners:
            try:
                listener(old_role, new_role)
            except Exception:
                logger.exception("Error in role listener")

    def _schedule_retry(self, message: Join | Elect) -> None:
        delay = self._backoff.next_delay()
        self._cancel_retry()
        logger.debug(f"Retrying {type(message).__name__} in {delay:.2f}s")
        self._retry_handle = asyncio.get_running_loop().call_later(
            delay, self._fire_retry, message
        )

    def _fire_retry(self, message: Join | Elect) -> None:
        self._retry_handle = None
        self.post(message)

    def _cancel_retry(self) -> None:
        if self._retry_handle is not None:
            self._retry_handle.cancel()
            self._retry_handle = None

    def _retry_current(self) -> None:
        if self._state == ElectionState.INIT:
            self._schedule_retry(Join(self._generation))
        elif self._state in (ElectionState.ELECTING, ElectionState.FOLLOWER):
            self._schedule_retry(Elect(self._generation, "retry after unexpected error"))

    def _count_error(self, error: Exception) -> None:
        self.metrics.election_errors_total.labels(
            namespace=self.config.election_path, kind=type(error).__name__
        ).inc()
