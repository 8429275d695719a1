"""Sessions command - inspect or clear the persisted session."""

import asyncio
from typing import Optional

import typer
from rich.console import Console

from theia.api.cli.commands._common import load_settings
from theia.infrastructure.persistence.session_store import FileSessionStore

app = typer.Typer(help="Session management")
console = Console()


@app.command("show")
def show_session(
    ctx: typer.Context,
    profile: Optional[str] = typer.Option(None, "--profile", "-p", help="Configuration profile"),
):
    """Show the persisted session state."""
    settings = load_settings(ctx, profile)
    store = FileSessionStore(settings.session_path)

    state = asyncio.run(store.load())
    if state is None:
        console.print(f"[yellow]No session stored at {settings.session_path}[/yellow]")
        raise typer.Exit(1)

    console.print(f"\n[bold]Messages:[/bold] {len(state.messages)}")
    if state.plan:
        console.print(f"[bold]Plan:[/bold] {state.plan.goal} ({state.plan.status.value})")
    if state.last_error:
        console.print(f"[bold]Last error:[/bold] {state.last_error[:200]}")
    console.print_json(data=state.to_dict())


@app.command("clear")
def clear_session(
    ctx: typer.Context,
    profile: Optional[str] = typer.Option(None, "--profile", "-p", help="Configuration profile"),
):
    """Delete the persisted session state."""
    settings = load_settings(ctx, profile)
    asyncio.run(FileSessionStore(settings.session_path).clear())
    console.print("[green]Session cleared[/green]")
