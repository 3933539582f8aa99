"""CLI command for inspecting an election.

Usage:
    succession status
    succession status --path /election/scheduler --format json
"""

from __future__ import annotations

import asyncio
from typing import TypedDict

import typer

from succession.coordination.client import CoordinationClient
from succession.coordination.errors import CoordinationError, NoNodeError
from succession.election.errors import ElectionError
from succession.election.models import HeartbeatRecord, order_candidates


class CandidateStatus(TypedDict):
    path: str
    sequence: int
    identity: str
    role: str
    watching: str | None


class ElectionStatus(TypedDict):
    namespace: str
    leader: str | None
    candidates: list[CandidateStatus]
    heartbeat: dict[str, str | int] | None


app = typer.Typer(help="Show candidates, leader and heartbeat of an election")


async def collect_status(
    client: CoordinationClient,
    namespace: str,
    prefix: str,
    heartbeat_path: str,
) -> ElectionStatus:
    """Read the election as a follower would see it.

    Candidates are listed in numeric sequence order; each follower is shown
    with the predecessor it watches.
    """
    status: ElectionStatus = {
        "namespace": namespace,
        "leader": None,
        "candidates": [],
        "heartbeat": None,
    }

    try:
        children = await client.get_children(namespace)
    except NoNodeError:
        return status

    previous: str | None = None
    for candidate in order_candidates(namespace, children, prefix):
        try:
            data, _ = await client.get_data(candidate.path)
        except NoNodeError:
            # Left between listing and read
            continue

        status["candidates"].append(
            {
                "path": candidate.path,
                "sequence": candidate.sequence,
                "identity": data.decode("utf-8", errors="replace"),
                "role": "leader" if previous is None else "follower",
                "watching": previous,
            }
        )
        previous = candidate.path

    if status["candidates"]:
        status["leader"] = status["candidates"][0]["path"]

    try:
        data, stat = await client.get_data(heartbeat_path)
        record = HeartbeatRecord.from_bytes(heartbeat_path, data, stat.version)
        status["heartbeat"] = {
            "path": record.path,
            "timestamp": record.timestamp.isoformat(),
            "identity": record.identity,
            "candidate": record.candidate,
            "version": record.version,
        }
    except NoNodeError:
        pass
    except (KeyError, ValueError):
        status["heartbeat"] = {"path": heartbeat_path, "timestamp": data.decode(errors="replace")}

    return status


async def _read_status(hosts: str, namespace: str, prefix: str, heartbeat_path: str) -> ElectionStatus:
    from succession.config import settings
    from succession.coordination.kazoo_client import KazooCoordinationClient

    client = KazooCoordinationClient(
        hosts,
        session_timeout=settings.session_timeout,
        operation_timeout=settings.operation_timeout,
    )
    await client.connect()
    try:
        return await collect_status(client, namespace, prefix, heartbeat_path)
    finally:
        await client.close()


@app.callback(invoke_without_command=True)
def status(
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
    output_format: str = typer.Option(
        "text",
        "--format",
        "-f",
        help="Output format: text, json",
    ),
) -> None:
    """Print the candidates in election order, the leader and the last heartbeat."""
    import json

    from rich.console import Console
    from rich.table import Table

    from succession.config import settings

    console = Console()
    namespace = path or settings.election_path

    try:
        result = asyncio.run(
            _read_status(
                hosts or settings.zk_hosts,
                namespace,
                settings.candidate_prefix,
                settings.heartbeat_path,
            )
        )
    except (CoordinationError, ElectionError) as e:
        console.print(f"[red]Cannot read election {namespace}:[/red] {e}")
        raise typer.Exit(code=1)

    if output_format == "json":
        console.print(json.dumps(result, indent=2))
        return

    if not result["candidates"]:
        console.print(f"[yellow]No candidates under {namespace}[/yellow]")
        return

    table = Table(title=f"Election {namespace}")
    table.add_column("Sequence", justify="right")
    table.add_column("Node")
    table.add_column("Identity")
    table.add_column("Role")
    table.add_column("Watching")

    for candidate in result["candidates"]:
        role = "[green]leader[/green]" if candidate["role"] == "leader" else "follower"
        table.add_row(
            str(candidate["sequence"]),
            candidate["path"],
            candidate["identity"],
            role,
            candidate["watching"] or "-",
        )
    console.print(table)

    heartbeat = result["heartbeat"]
    if heartbeat is None:
        console.print("[yellow]No leader heartbeat recorded[/yellow]")
    else:
        console.print(f"[bold]Last heartbeat:[/bold] {heartbeat['timestamp']} ({heartbeat.get('identity', '')})")
