"""CLI command for simulating an election in-process.

Runs several participants against the in-memory coordination service and
repeatedly expires the leader's session to show the succession.

Usage:
    succession simulate
    succession simulate --candidates 5 --rounds 4
    succession simulate --sequence-width 1   # unpadded suffixes: 9, 10, 11...
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable

import typer

from succession.coordination.memory import InMemoryCoordinationService
from succession.election import ElectionConfig, ElectionParticipant, Role

app = typer.Typer(help="Simulate leader succession with in-memory candidates")

TransitionCallback = Callable[[str, Role, Role], None]


async def wait_for_settled(
    participants: list[ElectionParticipant], timeout: float = 5.0
) -> ElectionParticipant:
    """Wait until exactly one participant leads and every other one follows."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout

    while loop.time() < deadline:
        leaders = [p for p in participants if p.role == Role.LEADER]
        followers = [p for p in participants if p.role == Role.FOLLOWER]
        if len(leaders) == 1 and len(leaders) + len(followers) == len(participants):
            return leaders[0]
        await asyncio.sleep(0.01)

    roles = ", ".join(f"{p.identity}={p.role.value}" for p in participants)
    raise RuntimeError(f"Election did not settle within {timeout}s ({roles})")


async def simulate_succession(
    candidates: int,
    rounds: int,
    sequence_width: int = 10,
    first_sequence: int = 0,
    on_transition: TransitionCallback | None = None,
) -> list[str]:
    """Run the simulation and return the identities of successive leaders."""
    service = InMemoryCoordinationService(sequence_width=sequence_width)
    participants: list[ElectionParticipant] = []
    leaders: list[str] = []

    namespace = ElectionConfig().election_path
    setup = service.client()
    await setup.connect()
    await setup.create(namespace, makepath=True)
    service.set_sequence(namespace, first_sequence)
    await setup.close()

    try:
        for index in range(candidates):
            config = ElectionConfig(
                identity=f"candidate-{index + 1}",
                heartbeat_interval=0.05,
                retry_delay_initial=0.01,
                retry_delay_max=0.2,
            )
            participant = ElectionParticipant(service.client(), config)
            if on_transition is not None:
                participant.add_role_listener(
                    lambda old, new, name=config.identity: on_transition(name, old, new)
                )
            participants.append(participant)

            await participant.start()
            # Register one at a time so sequence order follows creation order
            await wait_for_settled(participants)

        for round_number in range(rounds + 1):
            leader = await wait_for_settled(participants)
            leaders.append(leader.identity)
            if round_number == rounds:
                break

            session_id = leader.client.session_id
            assert session_id is not None
            service.expire_session(session_id)
            while leader.role == Role.LEADER:
                await asyncio.sleep(0.01)
    finally:
        for participant in participants:
            await participant.stop()

    return leaders


@app.callback(invoke_without_command=True)
def simulate(
    candidates: int = typer.Option(
        3,
        "--candidates",
        "-n",
        min=1,
        help="Number of participants",
    ),
    rounds: int = typer.Option(
        3,
        "--rounds",
        "-r",
        min=0,
        help="How many times to expire the leader's session",
    ),
    sequence_width: int = typer.Option(
        10,
        "--sequence-width",
        min=1,
        help="Zero padding of sequence suffixes",
    ),
    first_sequence: int = typer.Option(
        0,
        "--first-sequence",
        min=0,
        help="Sequence number handed to the first candidate",
    ),
) -> None:
    """Start N candidates, then expire the leader's session round after round."""
    from rich.console import Console

    console = Console()

    def show(name: str, old: Role, new: Role) -> None:
        if new in (Role.LEADER, Role.FOLLOWER) and old != new:
            color = "green" if new == Role.LEADER else "blue"
            console.print(f"  {name}: {old.value} -> [{color}]{new.value}[/{color}]")

    console.print(f"[bold]Simulating {candidates} candidate(s), {rounds} failover(s)[/bold]")
    try:
        leaders = asyncio.run(
            simulate_succession(
                candidates,
                rounds,
                sequence_width=sequence_width,
                first_sequence=first_sequence,
                on_transition=show,
            )
        )
    except RuntimeError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(code=1)

    console.print()
    console.print("[bold]Succession:[/bold] " + " -> ".join(leaders))
