"""CLI command for joining an election.

Usage:
    succession run
    succession run --hosts zk1:2181,zk2:2181 --path /election/scheduler
    succession run --identity worker-1 --heartbeat-interval 2 --metrics-port 9100
"""

from __future__ import annotations

import asyncio

import typer

app = typer.Typer(help="Join the election and run until interrupted")


@app.callback(invoke_without_command=True)
def run(
    hosts: str | None = typer.Option(
        None,
        "--hosts",
        "-H",
        help="ZooKeeper hosts (default: ZK_HOSTS or 127.0.0.1:2181)",
    ),
    path: str | None = typer.Option(
        None,
        "--path",
        "-p",
        help="Election namespace path",
    ),
    identity: str | None = typer.Option(
        None,
        "--identity",
        "-i",
        help="Candidate identity (default: hostname-pid-random)",
    ),
    heartbeat_interval: float | None = typer.Option(
        None,
        "--heartbeat-interval",
        help="Seconds between leader heartbeat writes",
    ),
    log_level: str | None = typer.Option(
        None,
        "--log-level",
        "-l",
        help="Log level: debug, info, warning, error",
    ),
    json_logs: bool | None = typer.Option(
        None,
        "--json-logs/--console-logs",
        help="Emit JSON log lines",
    ),
    metrics_port: int | None = typer.Option(
        None,
        "--metrics-port",
        help="Expose Prometheus metrics on this port",
    ),
) -> None:
    """Register as a candidate and keep participating.

    Logs role transitions and leader heartbeats. Exits cleanly on
    SIGINT/SIGTERM, removing the candidate node.
    """
    from succession.config import settings
    from succession.coordination.kazoo_client import KazooCoordinationClient
    from succession.election import ElectionParticipant, create_election_config_from_settings
    from succession.observability import configure_logging, start_metrics_server

    configure_logging(
        json_format=settings.log_json if json_logs is None else json_logs,
        level=log_level or settings.log_level,
    )

    port = metrics_port if metrics_port is not None else settings.metrics_port
    if port is not None:
        start_metrics_server(port)

    config = create_election_config_from_settings(
        identity=identity,
        election_path=path,
        heartbeat_interval=heartbeat_interval,
    )
    client = KazooCoordinationClient(
        hosts or settings.zk_hosts,
        session_timeout=settings.session_timeout,
        operation_timeout=settings.operation_timeout,
    )

    asyncio.run(ElectionParticipant(client, config).run())
