"""Helpers shared by CLI commands."""

import typer
from rich.console import Console

from theia.application.factory import OrchestratorFactory
from theia.application.settings import TheiaSettings

console = Console()


def load_settings(ctx: typer.Context, profile: str | None = None) -> TheiaSettings:
    """Load the profile named on the command line (local option wins over global)."""
    global_opts = ctx.obj or {}
    profile = profile or global_opts.get("profile", "dev")
    factory = OrchestratorFactory(config_dir=global_opts.get("config_dir", "configs"))
    try:
        return factory.load_settings(profile)
    except FileNotFoundError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)
