"""Theia CLI entry point."""

import logging

import structlog
import typer
from rich.console import Console

from theia.api.cli.commands import chat, sessions, trace

app = typer.Typer(
    name="theia",
    help="Theia - agent orchestration core for interactive code review",
    add_completion=True,
    no_args_is_help=True,
    rich_markup_mode="rich",
)

console = Console()

# Register command groups
app.add_typer(chat.app, name="chat", help="Interactive chat mode")
app.add_typer(sessions.app, name="sessions", help="Session management")
app.add_typer(trace.app, name="trace", help="Flight recorder inspection")


def configure_logging(debug: bool) -> None:
    level = logging.DEBUG if debug else logging.WARNING
    logging.basicConfig(level=level, format="%(message)s")
    structlog.configure(wrapper_class=structlog.make_filtering_bound_logger(level))


@app.callback()
def main(
    ctx: typer.Context,
    profile: str = typer.Option("dev", "--profile", "-p", help="Configuration profile"),
    config_dir: str = typer.Option("configs", "--config-dir", help="Directory with profile YAML files"),
    debug: bool = typer.Option(False, "--debug", help="Enable debug output"),
):
    """Theia orchestration CLI."""
    configure_logging(debug)
    # Store global options in context for subcommands
    ctx.obj = {"profile": profile, "config_dir": config_dir, "debug": debug}


@app.command()
def version():
    """Show Theia version."""
    from theia import __version__

    console.print(f"[bold blue]Theia[/bold blue] version [cyan]{__version__}[/cyan]")


if __name__ == "__main__":
    app()
