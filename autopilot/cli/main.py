"""
Typer CLI for the prep-autopilot session engine.

Commands:
    autopilot discover              - Propose a domain -> collection mapping
    autopilot discover --confirm    - Propose, confirm interactively, save the mapping
    autopilot session               - Build today's session from a saved mapping

Usage:
    autopilot --help
    autopilot discover --previous autopilot_mapping.json --confirm
    autopilot session --mapping autopilot_mapping.json --minutes 90 --focus dsa-heavy
"""

import json
from pathlib import Path
from typing import Optional

import typer
from loguru import logger
from rich import print as rprint
from rich.console import Console
from rich.panel import Panel
from rich.prompt import Confirm, Prompt
from rich.table import Table

from autopilot.core.errors import AutopilotError
from autopilot.core.session import ComposedSession
from autopilot.log_config import configure_logging
from autopilot.study.attempts import AggregatorConfig, AttemptAggregator
from autopilot.study.orchestrator import OrchestrationRequest, SessionOrchestrator
from autopilot.sync.discovery import ConfirmedMapping, DiscoveryProposal, confirm, prepare_mapping
from autopilot.sync.notion_client import NotionClient
from config import get_settings

app = typer.Typer(
    name="autopilot",
    help="prep-autopilot: daily interview-prep sessions from your Notion sheets",
    no_args_is_help=True,
)

console = Console()

DEFAULT_MAPPING_FILE = Path("autopilot_mapping.json")


@app.callback()
def main_callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging"),
) -> None:
    settings = get_settings()
    configure_logging(settings, level="DEBUG" if verbose else None)


def _load_mapping(path: Path) -> ConfirmedMapping:
    if not path.exists():
        rprint(f"[red]Mapping file not found:[/red] {path}")
        rprint("  Run [cyan]autopilot discover --confirm[/cyan] first")
        raise typer.Exit(1)
    return ConfirmedMapping.from_dict(json.loads(path.read_text(encoding="utf-8")))


# =============================================================================
# DISCOVER
# =============================================================================


def _print_proposal(proposal: DiscoveryProposal) -> None:
    table = Table(title="Discovery Proposal", show_header=True)
    table.add_column("Domain", style="cyan")
    table.add_column("Collection")
    table.add_column("Confidence", justify="right")
    table.add_column("Status")

    for domain, cand in sorted(proposal.auto_accepted.items()):
        table.add_row(domain, cand.collection.title, f"{cand.confidence:.2f}", "[green]auto-accepted[/green]")
    for domain, cands in sorted(proposal.requires_confirmation.items()):
        for cand in cands:
            table.add_row(
                domain, cand.collection.title, f"{cand.confidence:.2f}", f"[yellow]{cand.reason}[/yellow]"
            )
    for cand in proposal.blocked:
        table.add_row(cand.domain, cand.collection.title, f"{cand.confidence:.2f}", f"[dim]{cand.reason}[/dim]")

    console.print(table)
    rprint(
        f"\n  Attempts store: [bold]{proposal.attempts_collection.title}[/bold] "
        f"({proposal.attempts_collection.id})"
    )

    if proposal.fingerprint_changed:
        rprint("\n[yellow]Schema changes since the last confirmed mapping:[/yellow]")
        for change in proposal.fingerprint_changes:
            state = "no longer reachable" if change.current is None else "schema changed"
            rprint(f"  - {change.title or change.collection_id}: {state}")


def _prompt_selections(proposal: DiscoveryProposal) -> dict[str, list[str]]:
    selections: dict[str, list[str]] = {}
    for domain, cands in sorted(proposal.requires_confirmation.items()):
        rprint(f"\n[bold cyan]{domain}[/bold cyan]")
        for idx, cand in enumerate(cands, 1):
            rprint(f"  {idx}. {cand.collection.title} ({cand.confidence:.2f})")
        answer = Prompt.ask("  Use which? (comma-separated numbers, blank for none)", default="")
        chosen = []
        for part in answer.split(","):
            part = part.strip()
            if part.isdigit() and 1 <= int(part) <= len(cands):
                chosen.append(cands[int(part) - 1].id)
        selections[domain] = chosen
    return selections


@app.command("discover")
def discover(
    previous: Optional[Path] = typer.Option(
        None, "--previous", "-p", help="Previously confirmed mapping, for schema drift detection"
    ),
    do_confirm: bool = typer.Option(False, "--confirm", help="Confirm the proposal and save the mapping"),
    output: Path = typer.Option(DEFAULT_MAPPING_FILE, "--output", "-o", help="Where to save the mapping"),
) -> None:
    """
    Inspect every reachable Notion database and propose a domain mapping.

    Examples:
        autopilot discover
        autopilot discover --previous autopilot_mapping.json --confirm
    """
    settings = get_settings()
    previous_fingerprints = _load_mapping(previous).fingerprints if previous else None

    try:
        proposal = prepare_mapping(NotionClient(settings=settings), previous_fingerprints, settings=settings)
    except AutopilotError as e:
        rprint(f"[red]Discovery failed:[/red] {e}")
        raise typer.Exit(1)

    _print_proposal(proposal)

    if not do_confirm:
        rprint("\n[dim]Run with --confirm to save this mapping.[/dim]")
        return

    acknowledge = False
    if proposal.fingerprint_changed:
        acknowledge = Confirm.ask("Schemas changed. Accept the new schemas?", default=False)

    try:
        mapping = confirm(proposal, _prompt_selections(proposal), acknowledge_schema_changes=acknowledge)
    except AutopilotError as e:
        rprint(f"[red]Confirmation failed:[/red] {e}")
        raise typer.Exit(1)

    output.write_text(json.dumps(mapping.to_dict(), indent=2), encoding="utf-8")
    rprint(f"\n[bold green]✓ Mapping saved to {output}[/bold green] ({len(mapping.domains)} domains)")


# =============================================================================
# SESSION
# =============================================================================


def _print_session(session: ComposedSession) -> None:
    table = Table(title=f"{session.total_minutes}-minute {session.focus_mode.value} session", show_header=True)
    table.add_column("Slot", style="cyan")
    table.add_column("Min", justify="right")
    table.add_column("Item")
    table.add_column("Domain")
    table.add_column("Unit")
    table.add_column("Why", style="dim")

    for unit in session.units:
        table.add_row(
            unit.type.value.title(),
            str(unit.time_minutes),
            unit.item.name or unit.item.id if unit.item else "[dim]-[/dim]",
            unit.item.domain if unit.item else "",
            unit.unit_type,
            unit.rationale,
        )
    console.print(table)


@app.command("session")
def session(
    mapping_file: Path = typer.Option(DEFAULT_MAPPING_FILE, "--mapping", "-m", help="Confirmed mapping file"),
    minutes: Optional[int] = typer.Option(None, "--minutes", "-t", help="Session length (30, 45 or 90)"),
    focus: Optional[str] = typer.Option(None, "--focus", "-f", help="balanced, dsa-heavy or interview-heavy"),
    verify: bool = typer.Option(True, "--verify/--no-verify", help="Check mapped schemas are unchanged"),
    as_json: bool = typer.Option(False, "--json", help="Print the session as JSON"),
) -> None:
    """
    Build today's Review / Core / Breadth session.

    Examples:
        autopilot session
        autopilot session --minutes 90 --focus dsa-heavy
    """
    settings = get_settings()
    mapping = _load_mapping(mapping_file)
    client = NotionClient(settings=settings)

    try:
        current = client.current_fingerprints() if verify else None
        attempts = client.fetch_attempts(mapping.attempts_collection_id)
        aggregator = AttemptAggregator(AggregatorConfig.from_settings(settings))
        orchestrator = SessionOrchestrator.from_settings(
            settings, client.fetch_items, aggregator.provider(attempts)
        )
        composed = orchestrator.build_session(
            OrchestrationRequest(
                domains=mapping,
                total_minutes=minutes or settings.session_default_minutes,
                focus_mode=focus or settings.session_default_focus,
                current_fingerprints=current,
            )
        )
    except AutopilotError as e:
        rprint(f"[red]Could not build a session:[/red] {e}")
        raise typer.Exit(1)

    logger.debug(f"Domain debts: {composed.domain_debts}")
    if as_json:
        typer.echo(json.dumps(composed.to_dict(), indent=2))
    else:
        _print_session(composed)
        rprint(Panel(f"Total: {composed.total_minutes} min", expand=False))


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()
