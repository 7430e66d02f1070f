"""Command-line interface for MyMetas.

This module provides a Typer-based CLI for running the API server and for
working with metas from the terminal.

Commands:
- init: Create the database
- serve: Run the HTTP API
- status: Show configuration and database statistics
- countdown: Compute a countdown label offline
- theme: Show or set the colour theme
- login, list, show, add, favorite, complete, remove, step-add, step-toggle:
  talk to a running server through the HTTP client

Example:
    $ mymetas init
    $ mymetas serve
    $ mymetas login --email ana@example.com
    $ export MYMETAS_API_TOKEN=...
    $ mymetas add "Run a marathon" --target 2024-10-01
    $ mymetas list
"""

import asyncio
from datetime import date
from pathlib import Path
from typing import Any, Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from mymetas.client import APIError, AsyncMyMetasClient
from mymetas.config import settings
from mymetas.database import DatabaseManager
from mymetas.lifecycle import countdown, format_status
from mymetas.models import MetaRead, MetaStatus
from mymetas.preferences import THEME_STYLES, Theme, load_theme, save_theme
from mymetas.utils import parse_date, parse_datetime

# Initialize CLI app
app = typer.Typer(
    name="mymetas",
    help="Track goals (metas) and their steps",
    add_completion=False,
)
console = Console()

state: dict[str, Any] = {"theme": Theme.LIGHT}


# =============================================================================
# Helper Functions
# =============================================================================


def run_async(coro):
    """Run async coroutine in event loop."""
    return asyncio.run(coro)


def make_client() -> AsyncMyMetasClient:
    return AsyncMyMetasClient()


def style(name: str) -> str:
    return THEME_STYLES[state["theme"]][name]


def fail(message: str) -> None:
    """Print a red alert and exit with status 1."""
    console.print(f"❌ [bold red]{message}[/bold red]")
    raise typer.Exit(code=1)


def call_api(action):
    """Run ``action(client)`` against the API, turning APIError into an alert."""

    async def _run():
        async with make_client() as client:
            return await action(client)

    try:
        return run_async(_run())
    except APIError as e:
        if e.errors:
            details = "; ".join(f"{err['field']}: {err['message']}" for err in e.errors)
            fail(f"{e.message}: {details}")
        fail(e.message)


def parse_date_option(value: Optional[str], name: str) -> Optional[date]:
    if value is None:
        return None
    try:
        return parse_date(value)
    except ValueError:
        fail(f"--{name} must be a date in YYYY-MM-DD format")


def badge_for(meta: MetaRead, today: Optional[date] = None) -> str:
    result = countdown(meta.status, meta.date_target, meta.completed_at, today)
    return result.badge if result else ""


@app.callback()
def main_callback() -> None:
    """Load client preferences before any command runs."""
    state["theme"] = load_theme()


# =============================================================================
# Server Commands
# =============================================================================


@app.command()
def init(
    force: bool = typer.Option(
        False,
        "--force",
        "-f",
        help="Force re-initialization (drop and recreate all tables)",
    ),
) -> None:
    """Initialize the database.

    Examples:
        $ mymetas init
        $ mymetas init --force
    """
    console.print("🏗️  [bold cyan]MyMetas Initialization[/bold cyan]\n")

    db_path = Path(str(settings.database_path))
    if db_path.exists() and not force:
        console.print(
            f"⚠️  Database already exists at {settings.database_path}\n"
            "Use --force to recreate it."
        )
        return

    db = DatabaseManager()
    try:
        db.initialize()
        if force:
            db.drop_all()
            db.close()
            db.initialize()
    except Exception as e:
        fail(f"Initialization failed: {e}")
    finally:
        db.close()

    console.print(f"✅ Database created at [yellow]{settings.database_path}[/yellow]")
    console.print("\nNext steps:")
    console.print("  1. Run: mymetas serve")
    console.print("  2. Run: mymetas login --email you@example.com")


@app.command()
def serve(
    host: Optional[str] = typer.Option(None, "--host", help="Bind address"),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Bind port"),
    reload: bool = typer.Option(False, "--reload", help="Reload on code changes"),
) -> None:
    """Run the HTTP API with uvicorn."""
    import uvicorn

    uvicorn.run(
        "mymetas.api:create_app",
        factory=True,
        host=host or settings.host,
        port=port or settings.port,
        reload=reload,
        log_level=settings.log_level.lower(),
    )


@app.command()
def status() -> None:
    """Show configuration and database statistics."""
    console.print("📊 [bold cyan]MyMetas Status[/bold cyan]\n")

    config_table = Table(title="Configuration", show_header=False)
    config_table.add_column("Key", style="cyan")
    config_table.add_column("Value", style="yellow")
    config_table.add_row("Environment", str(settings.environment))
    config_table.add_row("Database Path", str(settings.database_path))
    config_table.add_row("API URL", settings.api_url)
    config_table.add_row("API Token", settings.redact_token())
    config_table.add_row("Avatar Directory", str(settings.avatar_dir))
    config_table.add_row("Theme", str(state["theme"]))
    console.print(config_table)
    console.print()

    db = DatabaseManager()
    try:
        db.initialize()
        stats = db.get_statistics()
    except Exception as e:
        fail(f"Status failed: {e}")
    finally:
        db.close()

    stats_table = Table(title="Database Statistics")
    stats_table.add_column("Entity", style="cyan")
    stats_table.add_column("Count", justify="right", style="green")
    stats_table.add_row("Users", f"{stats['users']:,}")
    stats_table.add_row("Metas", f"{stats['metas']:,}")
    for meta_status in MetaStatus:
        stats_table.add_row(f"  {format_status(meta_status)}", f"{stats[meta_status.value]:,}")
    stats_table.add_row("Favorites", f"{stats['favorites']:,}")
    stats_table.add_row("Steps", f"{stats['steps']:,}")
    stats_table.add_row("Steps done", f"{stats['steps_done']:,}")
    console.print(stats_table)


@app.command("countdown")
def countdown_command(
    meta_status: MetaStatus = typer.Argument(..., metavar="STATUS", help="to_do, in_progress or completed"),
    target: Optional[str] = typer.Option(None, "--target", "-t", help="Target date (YYYY-MM-DD)"),
    completed: Optional[str] = typer.Option(None, "--completed", help="Completion timestamp"),
    today: Optional[str] = typer.Option(None, "--today", help="Reference date (YYYY-MM-DD)"),
) -> None:
    """Compute the countdown label for a status and target date.

    Examples:
        $ mymetas countdown in_progress --target 2024-06-01 --today 2024-06-10
        Overdue by 8 days
    """
    completed_at = None
    if completed is not None:
        try:
            completed_at = parse_datetime(completed)
        except ValueError:
            fail("--completed must be an ISO8601 date or timestamp")
    result = countdown(
        meta_status,
        parse_date_option(target, "target"),
        completed_at,
        parse_date_option(today, "today"),
    )
    console.print(result.label if result else "No deadline")


@app.command()
def theme(
    value: Optional[Theme] = typer.Argument(None, help="light or dark"),
) -> None:
    """Show the colour theme, or set it when a value is given."""
    if value is None:
        console.print(f"Theme: [{style('accent')}]{state['theme']}[/]")
        return
    state["theme"] = save_theme(value)
    console.print(f"✅ Theme set to [{style('accent')}]{value}[/]")


# =============================================================================
# Client Commands
# =============================================================================


@app.command()
def login(
    email: str = typer.Option(..., "--email", "-e", prompt=True, help="Account email"),
    password: str = typer.Option(..., "--password", prompt=True, hide_input=True, help="Account password"),
) -> None:
    """Open a session and print the bearer token."""
    session = call_api(lambda client: client.login(email, password))
    console.print(f"✅ Logged in as [bold]{session.user.name}[/bold] (expires {session.expires_at})")
    console.print(f"\nexport MYMETAS_API_TOKEN={session.token}")


@app.command("list")
def list_metas(
    search: Optional[str] = typer.Option(None, "--search", "-s", help="Filter titles"),
) -> None:
    """List your metas, favorites first."""
    metas = call_api(lambda client: client.list_metas(search=search))
    if not metas:
        console.print(f"[{style('muted')}]No metas yet. Add one with: mymetas add TITLE[/]")
        return

    table = Table(title="Metas")
    table.add_column("ID", justify="right", style=style("muted"))
    table.add_column("★", justify="center")
    table.add_column("Title", style=style("title"))
    table.add_column("Status", style=style("accent"))
    table.add_column("Countdown")
    for meta in metas:
        table.add_row(
            str(meta.id),
            "★" if meta.favorite else "",
            meta.title,
            format_status(meta.status),
            badge_for(meta),
        )
    console.print(table)


@app.command()
def show(meta_id: int = typer.Argument(..., help="Meta id")) -> None:
    """Show one meta with its steps."""
    meta = call_api(lambda client: client.get_meta(meta_id))
    result = countdown(meta.status, meta.date_target, meta.completed_at)

    lines = [
        f"Status: {format_status(meta.status)}",
        f"Target: {meta.date_target.isoformat() if meta.date_target else '-'}",
    ]
    if result:
        lines.append(f"Countdown: {result.label}")
    if meta.description:
        lines.append("")
        lines.append(meta.description)
    title = f"{'★ ' if meta.favorite else ''}{meta.title}"
    console.print(Panel("\n".join(lines), title=title, border_style=style("accent")))

    if meta.steps:
        done = sum(1 for step in meta.steps if step.done)
        console.print(f"Steps ({done}/{len(meta.steps)})")
        for step in meta.steps:
            mark = "[green]✔[/green]" if step.done else "☐"
            console.print(f"  {mark} [{style('muted')}]#{step.id}[/] {step.description}")


@app.command()
def add(
    title: str = typer.Argument(..., help="Meta title"),
    description: Optional[str] = typer.Option(None, "--description", "-d", help="Description"),
    target: Optional[str] = typer.Option(None, "--target", "-t", help="Target date (YYYY-MM-DD)"),
    meta_status: Optional[MetaStatus] = typer.Option(None, "--status", help="Initial status"),
) -> None:
    """Create a meta."""
    date_target = parse_date_option(target, "target")
    meta = call_api(
        lambda client: client.create_meta(title, description, date_target, meta_status)
    )
    console.print(f"✅ Created meta [bold]#{meta.id}[/bold] {meta.title}")


@app.command()
def favorite(meta_id: int = typer.Argument(..., help="Meta id")) -> None:
    """Toggle the favorite flag of a meta."""
    meta = call_api(lambda client: client.toggle_favorite(meta_id))
    state_text = "added to" if meta.favorite else "removed from"
    console.print(f"✅ #{meta.id} {state_text} favorites")


@app.command()
def complete(meta_id: int = typer.Argument(..., help="Meta id")) -> None:
    """Mark a meta as completed."""
    meta = call_api(lambda client: client.complete_meta(meta_id))
    result = countdown(meta.status, meta.date_target, meta.completed_at)
    console.print(f"✅ #{meta.id} {result.label if result else 'Completed'}")


@app.command()
def remove(
    meta_id: int = typer.Argument(..., help="Meta id"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
) -> None:
    """Delete a meta and all of its steps."""
    if not yes:
        typer.confirm(f"Delete meta #{meta_id} and its steps?", abort=True)
    call_api(lambda client: client.delete_meta(meta_id))
    console.print(f"🗑️  Deleted meta #{meta_id}")


@app.command("step-add")
def step_add(
    meta_id: int = typer.Argument(..., help="Meta id"),
    text: str = typer.Argument(..., help="Step description"),
) -> None:
    """Add a step to a meta."""
    step = call_api(lambda client: client.add_step(meta_id, text))
    console.print(f"✅ Added step #{step.id} to meta #{meta_id}")


@app.command("step-toggle")
def step_toggle(
    meta_id: int = typer.Argument(..., help="Meta id"),
    step_id: int = typer.Argument(..., help="Step id"),
) -> None:
    """Flip the done flag of a step."""

    async def _toggle(client: AsyncMyMetasClient):
        meta = await client.get_meta(meta_id)
        current = next((step for step in meta.steps if step.id == step_id), None)
        if current is None:
            raise APIError(404, "Step not found")
        return await client.update_step(meta_id, step_id, done=not current.done)

    step = call_api(_toggle)
    mark = "done" if step.done else "not done"
    console.print(f"✅ Step #{step.id} marked {mark}")


def main() -> None:
    """Main entry point for CLI."""
    app()


if __name__ == "__main__":
    main()
