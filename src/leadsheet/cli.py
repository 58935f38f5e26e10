"""leadsheet CLI - Main entry point."""

import asyncio
import json
import logging
import time
from typing import Any, Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .config import SyncSettings
from .models import DataSource, SystemData
from .storage import NoSessionError, SessionData
from .sync.context import SyncContext
from .sync.resolver import TieredResolver
from .sync.schema import SchemaReport, diagnose
from .sync.writer import LeadWriter

app = typer.Typer(
    name="leadsheet",
    help="leadsheet - spreadsheet-backed lead pipeline",
    no_args_is_help=True,
)
console = Console()

auth_app = typer.Typer(help="Session management")
app.add_typer(auth_app, name="auth")

SOURCE_STYLES = {
    DataSource.CLOUD: "[green]cloud[/green]",
    DataSource.CACHE: "[cyan]cache[/cyan]",
    DataSource.LOCAL: "[yellow]local[/yellow]",
}


def _context() -> SyncContext:
    return SyncContext.from_settings(SyncSettings())


def _output_result(result: Any) -> None:
    console.print_json(json.dumps(result, default=str))


def _print_source(data: SystemData) -> None:
    mode = "read-only" if data.read_only else "read/write"
    console.print(f"[dim]Source:[/dim] {SOURCE_STYLES[data.data_source]} [dim]({mode})[/dim]")
    if data.error:
        console.print(f"[dim]Last remote error: {data.error}[/dim]")


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log sync activity to stderr"),
):
    if verbose:
        logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")


# ============================================================================
# Sync Commands
# ============================================================================


@app.command()
def sync(
    force: bool = typer.Option(False, "--force", "-f", help="Bypass the cache"),
):
    """Resolve the current data set and refresh the cache."""
    ctx = _context()
    data = asyncio.run(TieredResolver(ctx).resolve(force_refresh=force))

    lines = [
        f"Source: {SOURCE_STYLES[data.data_source]}",
        f"Mode: {'read-only' if data.read_only else 'read/write'}",
        f"Leads: {len(data.leads)}",
        f"Stage rules: {len(data.stage_rules)}  SLA rules: {len(data.sla_rules)}  "
        f"Auto actions: {len(data.auto_actions)}",
    ]
    if data.error:
        lines.append(f"[red]Last error: {data.error}[/red]")
    console.print(Panel("\n".join(lines), title="Sync", expand=False))


@app.command()
def leads(
    stage: Optional[str] = typer.Option(None, "--stage", "-s", help="Only leads in this stage"),
    json_output: bool = typer.Option(False, "--json", "-j", help="Output as JSON"),
):
    """List leads."""
    data = asyncio.run(TieredResolver(_context()).resolve())
    rows = [lead for lead in data.leads if stage is None or lead.status.lower() == stage.lower()]

    if json_output:
        _output_result([lead.to_dict() for lead in rows])
        return

    table = Table(title=f"Leads ({len(rows)})")
    table.add_column("ID", style="cyan")
    table.add_column("Company")
    table.add_column("Owner", style="magenta")
    table.add_column("Stage", style="yellow")
    table.add_column("Priority")
    table.add_column("Next Action")
    table.add_column("Due")
    table.add_column("SLA")

    for lead in rows:
        table.add_row(
            lead.lead_id,
            lead.company_name or lead.contact_person,
            lead.yds_poc,
            lead.status,
            lead.priority,
            lead.next_action,
            lead.next_action_date,
            lead.sla_health,
        )

    console.print(table)
    _print_source(data)


@app.command()
def health():
    """Show leads that are overdue, due today or stagnant."""
    from .workflow.health import determine_lead_health

    data = asyncio.run(TieredResolver(_context()).resolve())

    table = Table(title="Lead Health")
    table.add_column("ID", style="cyan")
    table.add_column("Stage", style="yellow")
    table.add_column("Status")
    table.add_column("Label")
    table.add_column("Next Action Date")

    flagged = 0
    for lead in data.leads:
        result = determine_lead_health(lead, data.sla_rules)
        if result.status == "Healthy":
            continue
        flagged += 1
        color = "red" if result.urgency == "critical" else "yellow"
        table.add_row(
            lead.lead_id,
            lead.status,
            f"[{color}]{result.status}[/{color}]",
            result.label,
            lead.next_action_date or "-",
        )

    if flagged:
        console.print(table)
    else:
        console.print("[green]All leads healthy[/green]")
    _print_source(data)


@app.command()
def move(
    lead_id: str = typer.Argument(..., help="Lead ID, e.g. LD-2025-001"),
    stage: str = typer.Argument(..., help="Target stage"),
):
    """Move a lead to another stage, enforcing the stage rules."""
    from .workflow.stage import move_lead

    ctx = _context()

    async def _move() -> int:
        data = await TieredResolver(ctx).resolve()
        lead = data.find(lead_id)
        if lead is None:
            console.print(f"[red]Lead not found:[/red] {lead_id}")
            return 1

        result = move_lead(lead, stage, data.stage_rules, data.auto_actions, data.sla_rules)
        if not result.ok:
            console.print(f"[red]Move rejected:[/red] {result.check.reason}")
            return 1

        writer = LeadWriter(ctx)
        if not await writer.update_lead(result.lead):
            console.print(f"[red]Could not save {lead_id}[/red]")
            return 1
        if writer.authenticated:
            writer.invalidate_cache()

        console.print(f"[green]{lead_id}:[/green] {lead.status} -> {result.lead.status}")
        if result.lead.next_action:
            console.print(f"  Next: {result.lead.next_action} ({result.lead.next_action_date})")
        return 0

    code = asyncio.run(_move())
    if code:
        raise typer.Exit(code)


@app.command()
def schema():
    """Report header drift between the live sheet and the expected columns."""
    ctx = _context()
    resolver = TieredResolver(ctx)
    data = asyncio.run(resolver.resolve(force_refresh=True))

    report: SchemaReport | None = resolver.schema_report()
    if report is None:
        persisted = ctx.schema_maps.load(ctx.spreadsheet_id)
        if persisted is None:
            console.print("[yellow]No schema map available (no cloud fetch has succeeded yet)[/yellow]")
            _print_source(data)
            return
        report = diagnose(persisted)
        console.print("[dim]Using the schema map from the last successful fetch[/dim]")

    if report.ok and not report.unexpected_headers:
        console.print("[green]Schema matches the expected headers[/green]")
        return

    table = Table(title="Schema Report")
    table.add_column("Table", style="cyan")
    table.add_column("Issue", style="yellow")
    table.add_column("Headers")
    for name in report.missing_tables:
        table.add_row(name, "missing table", "-")
    for name, headers in report.missing_headers.items():
        table.add_row(name, "missing", ", ".join(headers))
    for name, headers in report.unexpected_headers.items():
        table.add_row(name, "unexpected", ", ".join(headers))
    if report.unknown_stages:
        table.add_row("leads", "unknown stages", ", ".join(report.unknown_stages))
    console.print(table)


# ============================================================================
# Auth Commands
# ============================================================================


@auth_app.command("status")
def auth_status():
    """Show the stored session."""
    status = _context().sessions.get_status()

    console.print(Panel("[bold]leadsheet Session[/bold]", expand=False))
    console.print(f"  Data dir: {status['data_dir']}")

    session_info = status.get("session")
    if not session_info:
        console.print("  Status: [dim]Not logged in[/dim]")
        console.print("  [dim]Run 'leadsheet auth login --token <access-token>'[/dim]")
        return

    if session_info["valid"]:
        expires_in = session_info["expires_in_seconds"]
        console.print("  Status: [green]Valid[/green]")
        console.print(f"  Expires in: {expires_in // 60}m")
    else:
        console.print("  Status: [red]Expired[/red]")
    console.print(f"  Email: {session_info.get('email') or 'N/A'}")


@auth_app.command("login")
def auth_login(
    token: str = typer.Option(..., "--token", "-t", help="OAuth access token"),
    expires_in: int = typer.Option(3600, "--expires-in", help="Token lifetime in seconds"),
    email: Optional[str] = typer.Option(None, "--email", help="Account email, for display"),
):
    """Store an access token obtained from the OAuth flow."""
    sessions = _context().sessions
    sessions.save(
        SessionData(
            access_token=token.strip(),
            expires_at=int(time.time()) + expires_in,
            email=email,
        )
    )
    console.print("[green]Session saved[/green]")


@auth_app.command("logout")
def auth_logout():
    """Forget the stored session."""
    sessions = _context().sessions
    try:
        sessions.require()
    except NoSessionError:
        console.print("[dim]No active session[/dim]")
    sessions.clear()
    console.print("[green]Logged out[/green]")


@app.command()
def version():
    """Show version information."""
    from . import __version__

    console.print(f"leadsheet v{__version__}")


if __name__ == "__main__":
    app()
