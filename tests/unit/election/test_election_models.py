"""Tests for election models, candidate ordering and backoff."""

from datetime import UTC, datetime

import orjson
import pytest

from succession.election.errors import DuplicateSequenceError, MalformedSequenceError
from succession.election.models import (
    CandidateNode,
    ElectionState,
    HeartbeatRecord,
    Role,
    find_predecessor,
    order_candidates,
    parse_sequence,
)
from succession.election.retry import Backoff


class TestParseSequence:
    """Tests for sequence suffix parsing."""

    @pytest.mark.parametrize(
        ("name", "expected"),
        [
            ("candidate_0000000000", 0),
            ("candidate_0000000042", 42),
            ("candidate_9", 9),
            ("candidate_10", 10),
        ],
    )
    def test_valid(self, name: str, expected: int) -> None:
        """Suffix digits parse as an integer, padded or not."""
        assert parse_sequence(name, "candidate_") == expected

    @pytest.mark.parametrize(
        "name",
        ["candidate_", "candidate_abc", "candidate_12x", "candidate_-1", "candidate_١"],
    )
    def test_malformed(self, name: str) -> None:
        """Empty or non-digit suffixes are rejected."""
        with pytest.raises(MalformedSequenceError) as exc_info:
            parse_sequence(name, "candidate_")
        assert exc_info.value.name == name

    def test_candidate_from_path(self) -> None:
        """CandidateNode.from_path derives the sequence from the name."""
        node = CandidateNode.from_path("/election/candidate_0000000007", "candidate_", "w1")

        assert node.sequence == 7
        assert node.name == "candidate_0000000007"
        assert node.identity == "w1"


class TestOrderCandidates:
    """Tests for numeric candidate ordering."""

    def test_numeric_not_lexical(self) -> None:
        """9 < 10 < 100 even though "10" < "9" as strings."""
        children = ["candidate_100", "candidate_9", "candidate_10"]

        ordered = order_candidates("/election", children, "candidate_")

        assert [c.sequence for c in ordered] == [9, 10, 100]
        assert ordered[0].path == "/election/candidate_9"

    def test_mixed_padding(self) -> None:
        """Padded and unpadded suffixes compare by value."""
        children = ["candidate_0000000011", "candidate_2"]

        ordered = order_candidates("/election", children, "candidate_")

        assert [c.name for c in ordered] == ["candidate_2", "candidate_0000000011"]

    def test_foreign_children_ignored(self) -> None:
        """Children without the candidate prefix are skipped."""
        children = ["lock", "candidate_0000000003", "config"]

        ordered = order_candidates("/election", children, "candidate_")

        assert [c.name for c in ordered] == ["candidate_0000000003"]

    def test_empty(self) -> None:
        """An empty namespace yields no candidates."""
        assert order_candidates("/election", [], "candidate_") == []

    def test_malformed_prefixed_child(self) -> None:
        """A prefixed child with a bad suffix is a structural error."""
        with pytest.raises(MalformedSequenceError):
            order_candidates("/election", ["candidate_1", "candidate_oops"], "candidate_")

    def test_duplicate_sequence(self) -> None:
        """Equal sequence values are rejected."""
        with pytest.raises(DuplicateSequenceError) as exc_info:
            order_candidates("/election", ["candidate_7", "candidate_0000000007"], "candidate_")

        assert exc_info.value.sequence == 7
        assert len(exc_info.value.names) == 2

    def test_root_namespace(self) -> None:
        """Candidates directly under / get single-slash paths."""
        ordered = order_candidates("/", ["candidate_1"], "candidate_")

        assert ordered[0].path == "/candidate_1"


class TestFindPredecessor:
    """Tests for predecessor lookup."""

    @pytest.fixture
    def candidates(self) -> list[CandidateNode]:
        """Three ordered candidates."""
        return order_candidates(
            "/election", ["candidate_3", "candidate_1", "candidate_2"], "candidate_"
        )

    def test_first_has_no_predecessor(self, candidates: list[CandidateNode]) -> None:
        """The smallest candidate has no predecessor."""
        assert find_predecessor(candidates, "/election/candidate_1") is None

    def test_immediate_predecessor(self, candidates: list[CandidateNode]) -> None:
        """Each other candidate maps to the next-smaller one."""
        predecessor = find_predecessor(candidates, "/election/candidate_3")

        assert predecessor is not None
        assert predecessor.path == "/election/candidate_2"

    def test_missing_own_path(self, candidates: list[CandidateNode]) -> None:
        """An absent own path raises ValueError."""
        with pytest.raises(ValueError):
            find_predecessor(candidates, "/election/candidate_9")


class TestElectionState:
    """Tests for state-to-role mapping."""

    @pytest.mark.parametrize(
        ("state", "role"),
        [
            (ElectionState.INIT, Role.UNINITIALIZED),
            (ElectionState.ELECTING, Role.CANDIDATE),
            (ElectionState.LEADER, Role.LEADER),
            (ElectionState.FOLLOWER, Role.FOLLOWER),
            (ElectionState.REJOINING, Role.UNINITIALIZED),
            (ElectionState.STOPPED, Role.UNINITIALIZED),
        ],
    )
    def test_role(self, state: ElectionState, role: Role) -> None:
        """Only ELECTING, LEADER and FOLLOWER expose a role."""
        assert state.role == role


class TestHeartbeatRecord:
    """Tests for heartbeat serialization."""

    def test_json_payload(self) -> None:
        """Records are stored as JSON with an ISO timestamp."""
        timestamp = datetime(2026, 1, 2, 3, 4, 5, tzinfo=UTC)
        record = HeartbeatRecord("/heartbeat", timestamp, "worker-1", "/election/candidate_1")

        payload = orjson.loads(record.to_bytes())

        assert payload == {
            "timestamp": "2026-01-02T03:04:05+00:00",
            "identity": "worker-1",
            "candidate": "/election/candidate_1",
        }

    def test_decode(self) -> None:
        """from_bytes restores the stored fields and attaches the version."""
        original = HeartbeatRecord.now("/heartbeat", "worker-1", "/election/candidate_1")

        decoded = HeartbeatRecord.from_bytes("/heartbeat", original.to_bytes(), version=4)

        assert decoded.timestamp == original.timestamp
        assert decoded.identity == "worker-1"
        assert decoded.version == 4

    def test_decode_plain_timestamp(self) -> None:
        """A bare ISO timestamp is accepted."""
        record = HeartbeatRecord.from_bytes("/heartbeat", b"2026-01-02T03:04:05+00:00")

        assert record.timestamp == datetime(2026, 1, 2, 3, 4, 5, tzinfo=UTC)
        assert record.identity == ""

    def test_decode_garbage(self) -> None:
        """Undecodable payloads raise ValueError."""
        with pytest.raises(ValueError):
            HeartbeatRecord.from_bytes("/heartbeat", b"not a timestamp")


class TestBackoff:
    """Tests for exponential backoff."""

    def test_growth_and_cap(self) -> None:
        """Delays double and stop at the maximum."""
        backoff = Backoff(initial=0.5, maximum=3.0, multiplier=2.0)

        delays = [backoff.next_delay() for _ in range(5)]

        assert delays == [0.5, 1.0, 2.0, 3.0, 3.0]
        assert backoff.attempts == 5

    def test_reset(self) -> None:
        """reset() returns to the initial delay."""
        backoff = Backoff(initial=0.1, maximum=1.0)
        backoff.next_delay()
        backoff.next_delay()

        backoff.reset()

        assert backoff.attempts == 0
        assert backoff.next_delay() == 0.1
