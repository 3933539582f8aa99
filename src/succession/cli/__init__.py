"""CLI commands for succession.

Provides command-line interface using Typer:
- succession run: Join an election and run until interrupted
- succession status: Show candidates, leader and last heartbeat
- succession simulate: Simulate leader succession in-process

Usage:
    succession --help
    succession run --hosts zk1:2181 --path /election
    succession status --format json
    succession simulate --candidates 5
"""

import typer

from succession.cli.run_cmd import app as run_app
from succession.cli.simulate_cmd import app as simulate_app
from succession.cli.status_cmd import app as status_app

# Main CLI application
app = typer.Typer(
    name="succession",
    help="succession: sequence-node leader election over ZooKeeper",
    no_args_is_help=True,
)

# Add subcommands
app.add_typer(run_app, name="run")
app.add_typer(status_app, name="status")
app.add_typer(simulate_app, name="simulate")


@app.callback()
def callback() -> None:
    """succession: sequence-node leader election over ZooKeeper."""
    pass


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
