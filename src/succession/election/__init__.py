"""Sequence-node leader election.

Provides:
- ElectionParticipant: one process in an election (session, engine, heartbeat)
- ElectionEngine: the state machine deciding leader/follower
- CandidateRegistrar, LeaderDutyRunner, SessionSupervisor: its collaborators

Example:
    from succession.election import ElectionConfig, ElectionParticipant

    participant = ElectionParticipant(client, ElectionConfig(identity="worker-1"))
    await participant.start()

    if await participant.wait_for_leadership(timeout=30):
        await do_leader_work()

    await participant.stop()
"""

from succession.election.config import ElectionConfig, create_election_config_from_settings
from succession.election.duty import LeaderDutyRunner
from succession.election.engine import ElectionEngine
from succession.election.errors import (
    CandidateMissingError,
    DuplicateSequenceError,
    ElectionError,
    MalformedSequenceError,
    NamespaceUnavailableError,
)
from succession.election.models import (
    CandidateNode,
    ElectionState,
    HeartbeatRecord,
    Role,
    WatchKind,
    WatchRegistration,
    order_candidates,
    parse_sequence,
)
from succession.election.participant import ElectionParticipant
from succession.election.registrar import CandidateRegistrar
from succession.election.supervisor import SessionSupervisor

__all__ = [
    "ElectionParticipant",
    "ElectionEngine",
    "ElectionConfig",
    "create_election_config_from_settings",
    "CandidateRegistrar",
    "LeaderDutyRunner",
    "SessionSupervisor",
    # Models
    "CandidateNode",
    "ElectionState",
    "HeartbeatRecord",
    "Role",
    "WatchKind",
    "WatchRegistration",
    "order_candidates",
    "parse_sequence",
    # Errors
    "ElectionError",
    "MalformedSequenceError",
    "DuplicateSequenceError",
    "NamespaceUnavailableError",
    "CandidateMissingError",
]
