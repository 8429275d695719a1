"""Trace command - inspect and export the flight recorder."""

import asyncio
import json
import time
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from theia.api.cli.commands._common import load_settings
from theia.infrastructure.persistence.flight_recorder import FlightRecorder

app = typer.Typer(help="Flight recorder inspection")
console = Console()


def _load(ctx: typer.Context, profile: str | None) -> FlightRecorder:
    settings = load_settings(ctx, profile)
    return asyncio.run(
        FlightRecorder.load_from_disk(settings.trace_path, max_entries=settings.trace_capacity)
    )


@app.command("show")
def show_trace(
    ctx: typer.Context,
    last: int = typer.Option(20, "--last", "-n", help="Number of entries to show"),
    profile: Optional[str] = typer.Option(None, "--profile", "-p", help="Configuration profile"),
):
    """Show the most recent trace entries."""
    recorder = _load(ctx, profile)
    entries = recorder.entries()[-last:] if last > 0 else []

    table = Table(title=f"Flight recorder ({len(recorder)} entries)")
    table.add_column("Time", style="white")
    table.add_column("Source", style="white")
    table.add_column("Event", style="cyan")
    table.add_column("Plan", style="white")

    for entry in entries:
        envelope = entry.envelope
        plan = entry.state_snapshot.plan if entry.state_snapshot else None
        table.add_row(
            time.strftime("%H:%M:%S", time.localtime(envelope.timestamp)),
            envelope.source.value,
            envelope.event.type.value,
            f"{plan.status.value} {plan.active_step_index}/{len(plan.steps)}" if plan else "-",
        )

    console.print(table)


@app.command("export")
def export_trace(
    ctx: typer.Context,
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write to file instead of stdout"),
    profile: Optional[str] = typer.Option(None, "--profile", "-p", help="Configuration profile"),
):
    """Export the trace as JSON ({exported_at, entries})."""
    data = _load(ctx, profile).export()

    if output is None:
        console.print_json(data=data)
        return

    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")
    console.print(f"[green]Exported {len(data['entries'])} entries to {output}[/green]")
