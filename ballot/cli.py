"""
Ballot - CLI Interface.

Command-line driver for a ballot stored in an audit ledger. Every
command rebuilds the ballot from the ledger, runs one operation and
lets the ledger record the resulting events.
"""

from __future__ import annotations

import json
import logging
import os
import sys
from contextlib import contextmanager
from typing import Iterator

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from ballot import __version__, config
from ballot.exceptions import BallotError
from ballot.ledger import BallotLedger
from ballot.workflow import BallotProcess, WorkflowStatus

console = Console()
DEFAULT_DB = str(config.DEFAULT_DB_PATH)


def setup_logging(verbose: bool = False) -> None:
    level = logging.DEBUG if verbose else getattr(logging, config.LOG_LEVEL, logging.WARNING)
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(name)s] %(levelname)s - %(message)s",
        datefmt="%H:%M:%S",
    )


@contextmanager
def open_ballot(db: str) -> Iterator[BallotProcess]:
    """Rebuild the ballot from ``db``; ballot errors exit with code 1."""
    ledger = BallotLedger.open(db)
    try:
        if not ledger.is_initialized():
            console.print("[red]✗ No ballot found.[/]")
            console.print("[dim]Run 'ballot init --organizer <identity>' first.[/]")
            sys.exit(1)
        yield ledger.replay()
    except BallotError as e:
        console.print(f"[red]✗ {type(e).__name__}:[/] {e}")
        sys.exit(1)
    finally:
        ledger.close()


def _transition_done(change) -> None:
    previous = WorkflowStatus(change.previous_status).label
    new = WorkflowStatus(change.new_status).label
    console.print(f"[green]✓[/] {previous} → [bold cyan]{new}[/]")


db_option = click.option("--db", default=DEFAULT_DB, envvar="BALLOT_DB", help="Ledger database path")
caller_option = click.option(
    "--as", "caller", required=True, envvar="BALLOT_IDENTITY", help="Caller identity"
)


# ─── Main Group ──────────────────────────────────────────────────


@click.group()
@click.version_option(__version__, prog_name="ballot")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
def cli(verbose) -> None:
    """Ballot - single-organizer voting workflow."""
    setup_logging(verbose)


# ─── Init ────────────────────────────────────────────────────────


@cli.command()
@click.option("--organizer", required=True, help="Organizer identity")
@click.option(
    "--allow-empty/--require-proposals",
    default=False,
    help="Allow closing proposal registration with no proposals",
)
@db_option
def init(organizer, allow_empty, db) -> None:
    """Create a new ballot ledger."""
    ledger = BallotLedger.open(db)
    try:
        ledger.initialize(organizer, require_proposals=not allow_empty)
    except BallotError as e:
        console.print(f"[red]✗ {e}[/]")
        sys.exit(1)
    finally:
        ledger.close()

    console.print(Panel(
        f"[bold green]✓ Ballot initialized[/]\n"
        f"Organizer: {organizer}\n"
        f"Database: {db}",
        title="🗳  Ballot",
        border_style="green",
    ))


# ─── Registration ────────────────────────────────────────────────


@cli.command("register-voter")
@click.argument("identity")
@caller_option
@db_option
def register_voter(identity, caller, db) -> None:
    """Register IDENTITY as a voter (organizer only)."""
    with open_ballot(db) as process:
        process.register_voter(caller, identity)
    console.print(f"[green]✓[/] Registered voter [bold]{identity}[/]")


@cli.command("start-proposals")
@caller_option
@db_option
def start_proposals(caller, db) -> None:
    """Open proposal registration."""
    with open_ballot(db) as process:
        change = process.start_proposal_registration(caller)
    _transition_done(change)


@cli.command()
@click.argument("description")
@caller_option
@db_option
def propose(description, caller, db) -> None:
    """Register a proposal (registered voters only)."""
    with open_ballot(db) as process:
        proposal = process.register_proposal(caller, description)
    console.print(f"[green]✓[/] Proposal [bold]#{proposal.id}[/] registered: {proposal.description}")


@cli.command("stop-proposals")
@caller_option
@db_option
def stop_proposals(caller, db) -> None:
    """Close proposal registration."""
    with open_ballot(db) as process:
        change = process.stop_proposal_registration(caller)
    _transition_done(change)


# ─── Voting ──────────────────────────────────────────────────────


@cli.command("start-voting")
@caller_option
@db_option
def start_voting(caller, db) -> None:
    """Open the voting session."""
    with open_ballot(db) as process:
        change = process.start_voting_session(caller)
    _transition_done(change)


@cli.command()
@click.argument("proposal_id", type=int)
@caller_option
@db_option
def vote(proposal_id, caller, db) -> None:
    """Vote for PROPOSAL_ID."""
    with open_ballot(db) as process:
        process.vote(caller, proposal_id)
    console.print(f"[green]✓[/] [bold]{caller}[/] voted for proposal [bold]#{proposal_id}[/]")


@cli.command("stop-voting")
@caller_option
@db_option
def stop_voting(caller, db) -> None:
    """Close the voting session."""
    with open_ballot(db) as process:
        change = process.stop_voting_session(caller)
    _transition_done(change)


@cli.command()
@caller_option
@db_option
def tally(caller, db) -> None:
    """Count the votes and record the winner."""
    with open_ballot(db) as process:
        change = process.count_votes(caller)
    _transition_done(change)


# ─── Queries ─────────────────────────────────────────────────────


@cli.command()
@db_option
@click.option("--json-output", is_flag=True, help="Output as JSON")
def status(db, json_output) -> None:
    """Show the current phase and counts."""
    with open_ballot(db) as process:
        snapshot = process.snapshot()

    if json_output:
        click.echo(json.dumps(snapshot, indent=2))
        return

    table = Table(title="🗳  Ballot Status")
    table.add_column("Metric", style="bold")
    table.add_column("Value", style="cyan")

    table.add_row("Status", f"{snapshot['status']} ({snapshot['status_index']})")
    table.add_row("Organizer", snapshot["organizer"])
    table.add_row("Voters", str(len(snapshot["voters"])))
    table.add_row("Ballots cast", str(sum(1 for v in snapshot["voters"] if v["has_voted"])))
    table.add_row("Proposals", str(len(snapshot["proposals"])))
    console.print(table)


@cli.command()
@db_option
def proposals(db) -> None:
    """List proposals with their vote counts."""
    with open_ballot(db) as process:
        items = process.get_proposals()

    if not items:
        console.print("[yellow]No proposals registered.[/]")
        return

    table = Table(title="📋 Proposals")
    table.add_column("#", style="dim", width=4)
    table.add_column("Description", width=50)
    table.add_column("Author", style="cyan")
    table.add_column("Votes", style="green")
    for p in items:
        table.add_row(str(p.id), p.description, p.author, str(p.vote_count))
    console.print(table)


@cli.command()
@db_option
def winner(db) -> None:
    """Show the winning proposal."""
    with open_ballot(db) as process:
        proposal = process.get_winner()

    console.print(Panel(
        f"[bold]#{proposal.id}[/] {proposal.description}\n"
        f"Votes: [green]{proposal.vote_count}[/]",
        title="🏆 Winner",
        border_style="green",
    ))


@cli.command()
@db_option
def history(db) -> None:
    """Show every phase transition in order."""
    with open_ballot(db) as process:
        changes = process.get_history()

    if not changes:
        console.print("[yellow]No transitions yet.[/]")
        return

    for c in changes:
        console.print(
            f"  [dim]{c.timestamp[:19]}[/] {c.previous_status} → {c.new_status} "
            f"({WorkflowStatus(c.new_status).label}) by {c.caller}"
        )


@cli.command()
@db_option
def verify(db) -> None:
    """Verify the hash chain of the ballot ledger."""
    ledger = BallotLedger.open(db)
    try:
        with console.status("[bold blue]Verifying ledger integrity...[/]"):
            report = ledger.verify_integrity()
    finally:
        ledger.close()

    if report["valid"]:
        console.print(Panel(
            f"[bold green]✅ Ledger Integrity: OK[/]\n"
            f"Events checked: {report['events_checked']}",
            title="🔐 Ballot Ledger",
            border_style="green",
        ))
    else:
        console.print(Panel(
            f"[bold red]❌ Ledger Integrity: VIOLATION DETECTED[/]\n"
            f"Violations found: {len(report['violations'])}",
            title="🔐 Ballot Ledger",
            border_style="red",
        ))
        for v in report["violations"]:
            console.print(f"  [red]✗[/] {v['type']} (event #{v['event_id']})")
        sys.exit(1)


# ─── Serve ───────────────────────────────────────────────────────


@cli.command()
@db_option
@click.option("--host", default="127.0.0.1", help="Bind address")
@click.option("--port", default=8000, type=int, help="Bind port")
def serve(db, host, port) -> None:
    """Run the REST API over the ballot ledger."""
    import uvicorn

    os.environ["BALLOT_DB"] = db
    config.reload()
    uvicorn.run("ballot.api:app", host=host, port=port)


if __name__ == "__main__":
    cli()
