"""Chat command - interactive review session with the orchestrator."""

import asyncio
import time
from typing import Optional

import typer
from rich.console import Console
from rich.prompt import Confirm
from rich.table import Table

from theia.api.cli.commands._common import load_settings
from theia.api.cli.renderer import ActionRenderer
from theia.application.factory import OrchestratorFactory
from theia.core.domain.event_bus import EventBus
from theia.core.domain.events import (
    ActivityPing,
    ApprovalDecision,
    ApprovalRequested,
    CodeSelectionChanged,
    EventSource,
    SessionReset,
    UIInteraction,
)
from theia.core.domain.orchestrator import Orchestrator
from theia.infrastructure.runtime.local_runtime import LocalCommandRuntime

app = typer.Typer(help="Interactive chat mode")
console = Console()

HELP_TEXT = """[bold]Commands[/bold]
  /open <file>[:line]   tell Theia which file you are looking at
  /tab <name>           record the active tab (files, annotations, issue, diagrams)
  /events [n]           show the last n bus events
  /reset                forget the session
  /help                 this help
  exit | quit           leave"""


def _handle_slash_command(text: str, bus: EventBus) -> None:
    command, _, arg = text[1:].partition(" ")
    arg = arg.strip()

    if command == "open" and arg:
        file, _, line = arg.partition(":")
        bus.emit(ActivityPing(timestamp=time.time()), source=EventSource.UI)
        bus.emit(
            CodeSelectionChanged(file=file, line=int(line) if line.isdigit() else 1),
            source=EventSource.UI,
        )
        console.print(f"[dim]context: {file}[/dim]")
    elif command == "tab" and arg:
        bus.emit(UIInteraction(action="tab_change", target=arg), source=EventSource.UI)
    elif command == "events":
        table = Table(title="Recent events")
        for column in ("time", "source", "type", "payload"):
            table.add_column(column.title(), style="cyan" if column == "type" else "white")
        for row in bus.dump(int(arg) if arg.isdigit() else 20):
            table.add_row(row["time"], row["source"], row["type"], row["payload"])
        console.print(table)
    elif command == "reset":
        bus.emit(SessionReset(), source=EventSource.SYSTEM)
        console.print("[dim]session cleared[/dim]")
    else:
        console.print(HELP_TEXT)


async def _run_turn(orchestrator: Orchestrator, approvals: asyncio.Queue) -> None:
    """Wait for the orchestrator to go idle, answering approval requests meanwhile."""
    idle = asyncio.create_task(orchestrator.wait_idle())
    try:
        while not idle.done():
            request = asyncio.create_task(approvals.get())
            done, _ = await asyncio.wait({idle, request}, return_when=asyncio.FIRST_COMPLETED)
            if request not in done:
                request.cancel()
                break
            event: ApprovalRequested = request.result()
            approved = await asyncio.to_thread(Confirm.ask, f"Allow [bold]{event.tool}[/bold]?", default=False)
            orchestrator.bus.emit(ApprovalDecision(approved=approved), source=EventSource.UI)
    finally:
        if not idle.done():
            idle.cancel()


@app.callback(invoke_without_command=True)
def chat(
    ctx: typer.Context,
    profile: Optional[str] = typer.Option(
        None, "--profile", "-p", help="Configuration profile (overrides global --profile)"
    ),
):
    """Start an interactive review session.

    Examples:
        theia chat
        theia --debug --profile dev chat
    """
    settings = load_settings(ctx, profile)
    debug = (ctx.obj or {}).get("debug", False)

    async def run_chat_loop() -> None:
        bus = EventBus(history_size=settings.history_size)
        approvals: asyncio.Queue = asyncio.Queue()
        bus.subscribe(ApprovalRequested, lambda envelope: approvals.put_nowait(envelope.event))

        orchestrator = await OrchestratorFactory().create_orchestrator(settings=settings, bus=bus)
        runtime = LocalCommandRuntime(bus, work_dir=settings.work_dir)
        renderer = ActionRenderer(console, quiet_window=orchestrator.in_quiet_window, debug=debug)

        renderer.attach(bus)
        runtime.start()
        await orchestrator.start()

        console.print("[bold blue]Theia[/bold blue] ready. Type /help for commands, 'exit' to leave.")
        try:
            while True:
                try:
                    text = await asyncio.to_thread(console.input, "[bold green]you>[/bold green] ")
                except (KeyboardInterrupt, EOFError):
                    break

                text = text.strip()
                if not text:
                    continue
                if text.lower() in ("exit", "quit", "bye"):
                    break
                if text.startswith("/"):
                    _handle_slash_command(text, bus)
                    await orchestrator.wait_idle()
                    continue

                orchestrator.submit(text)
                await _run_turn(orchestrator, approvals)
        finally:
            await orchestrator.stop()
            await runtime.stop()
            renderer.detach()
            console.print("[dim]Goodbye![/dim]")

    asyncio.run(run_chat_loop())
