"""Per-participant election configuration."""

from __future__ import annotations

from dataclasses import dataclass, field

from succession.config import default_instance_id, settings
from succession.election.retry import Backoff


@dataclass
class ElectionConfig:
    """Election configuration."""

    # Candidate identity stored as the candidate node payload
    identity: str = field(default_factory=default_instance_id)

    # Namespace layout
    election_path: str = "/election"
    candidate_prefix: str = "candidate_"

    # Leader heartbeat
    heartbeat_path: str = "/heartbeat"
    heartbeat_interval: float = 5.0

    # Retry behavior
    retry_delay_initial: float = 0.5
    retry_delay_max: float = 30.0
    retry_delay_multiplier: float = 2.0
    missing_candidate_retries: int = 5

    # Delay before the final sweep for candidate nodes whose create reply was
    # lost; a request still in flight lands within the session timeout or not at all
    stray_sweep_delay: float = 10.0

    def backoff(self) -> Backoff:
        return Backoff(
            initial=self.retry_delay_initial,
            maximum=self.retry_delay_max,
            multiplier=self.retry_delay_multiplier,
        )


def create_election_config_from_settings(**overrides: object) -> ElectionConfig:
    """Create election config from application settings.

    Keyword arguments override individual settings (None values are ignored).
    """
    values: dict[str, object] = {
        "identity": settings.instance_id,
        "election_path": settings.election_path,
        "candidate_prefix": settings.candidate_prefix,
        "heartbeat_path": settings.heartbeat_path,
        "heartbeat_interval": settings.heartbeat_interval,
        "retry_delay_initial": settings.retry_delay_initial,
        "retry_delay_max": settings.retry_delay_max,
        "retry_delay_multiplier": settings.retry_delay_multiplier,
        "missing_candidate_retries": settings.missing_candidate_retries,
        "stray_sweep_delay": settings.session_timeout,
    }
    values.update({k: v for k, v in overrides.items() if v is not None})
    return ElectionConfig(**values)  # type: ignore[arg-type]
