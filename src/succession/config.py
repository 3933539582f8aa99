from __future__ import annotations

import os
from uuid import uuid4

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def default_instance_id() -> str:
    hostname = os.environ.get("HOSTNAME", os.environ.get("POD_NAME", "unknown"))
    return f"{hostname}-{os.getpid()}-{uuid4().hex[:8]}"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="SUCCESSION_", env_file=".env", extra="ignore")

    app_name: str = "succession"
    env: str = "dev"

    # Identity written into the candidate node; must be unique per process
    instance_id: str = Field(default_factory=default_instance_id)

    # ZooKeeper connection
    zk_hosts: str = Field(default="127.0.0.1:2181", validation_alias="ZK_HOSTS")
    session_timeout: float = Field(default=10.0, validation_alias="ZK_SESSION_TIMEOUT")
    operation_timeout: float = Field(default=5.0, validation_alias="ZK_OPERATION_TIMEOUT")

    # Election layout
    election_path: str = "/election"
    candidate_prefix: str = "candidate_"
    missing_candidate_retries: int = 5

    # Leader heartbeat
    heartbeat_path: str = "/heartbeat"
    heartbeat_interval: float = 5.0

    # Retry backoff for transient coordination errors
    retry_delay_initial: float = 0.5
    retry_delay_max: float = 30.0
    retry_delay_multiplier: float = 2.0

    # Observability
    log_level: str = "INFO"
    log_json: bool = False
    enable_metrics: bool = True
    metrics_port: int | None = None


settings = Settings()
