"""
Action Renderer - prints agent actions to the terminal.

Subscribes to every Agent Action variant on the bus and renders it with rich.
Rendering dispatches through a table keyed by event class that covers the
whole AgentAction family.
"""

from collections.abc import Callable

from rich.console import Console
from rich.markdown import Markdown
from rich.markup import escape
from rich.panel import Panel

from theia.core.domain.event_bus import EventBus, Unsubscribe
from theia.core.domain.events import (
    AGENT_ACTIONS,
    ApprovalRequested,
    CancelCommand,
    CommandOutputChunk,
    Event,
    EventEnvelope,
    ExecuteCommand,
    Navigate,
    PlanCreated,
    RepairEntered,
    SessionRestored,
    Speak,
    SwitchTab,
    Thinking,
    ToggleMode,
    Yield,
)


class ActionRenderer:
    """
    Renders agent actions for the interactive chat.

    Args:
        console: Rich console to print to
        quiet_window: Callable reporting whether forced navigation is suppressed
        debug: Also print thinking stages and raw command output
    """

    def __init__(
        self,
        console: Console,
        quiet_window: Callable[[], bool] = lambda: False,
        debug: bool = False,
    ):
        self.console = console
        self.quiet_window = quiet_window
        self.debug = debug
        self._unsubscribers: list[Unsubscribe] = []
        self.handlers: dict[type[Event], Callable[[Event], None]] = {
            Speak: self._speak,
            Navigate: self._navigate,
            SwitchTab: self._switch_tab,
            ToggleMode: self._toggle_mode,
            ExecuteCommand: self._execute_command,
            CancelCommand: self._cancel_command,
            PlanCreated: self._plan_created,
            ApprovalRequested: self._approval_requested,
            SessionRestored: self._session_restored,
            Yield: self._yield,
            RepairEntered: self._repair_entered,
            Thinking: self._thinking,
        }

    def attach(self, bus: EventBus) -> None:
        self._unsubscribers.append(bus.subscribe(AGENT_ACTIONS, self.render))
        if self.debug:
            self._unsubscribers.append(bus.subscribe(CommandOutputChunk, self._output_chunk))

    def detach(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []

    def render(self, envelope: EventEnvelope) -> None:
        self.handlers[type(envelope.event)](envelope.event)

    def _speak(self, event: Speak) -> None:
        self.console.print(
            Panel(Markdown(event.text or ""), title="[bold cyan]Theia[/bold cyan]", border_style="cyan")
        )

    def _navigate(self, event: Navigate) -> None:
        if self.quiet_window():
            self.console.print(f"[dim]↪ {event.file}:{event.line} (not followed, you are browsing)[/dim]")
            return
        self.console.print(f"[magenta]↪ Navigate[/magenta] {event.file}:{event.line}")

    def _switch_tab(self, event: SwitchTab) -> None:
        self.console.print(f"[magenta]▤ Tab[/magenta] {event.tab}")

    def _toggle_mode(self, event: ToggleMode) -> None:
        self.console.print(f"[magenta]± Diff mode[/magenta] {'on' if event.enabled else 'off'}")

    def _execute_command(self, event: ExecuteCommand) -> None:
        args = " ".join(event.args)
        if len(args) > 80:
            args = args[:80] + "..."
        self.console.print(f"[yellow]$ {event.command} {args}[/yellow]")

    def _cancel_command(self, event: CancelCommand) -> None:
        self.console.print(f"[red]■ Cancelled[/red] [dim]{event.command_id}[/dim]")

    def _plan_created(self, event: PlanCreated) -> None:
        self.console.print(Panel(Markdown(event.plan.to_markdown()), border_style="blue"))

    def _approval_requested(self, event: ApprovalRequested) -> None:
        body = escape(event.preview or f"{event.tool}\n{event.args}")
        self.console.print(
            Panel(
                body,
                title="[bold yellow]Approval required[/bold yellow]",
                border_style="yellow",
            )
        )

    def _session_restored(self, event: SessionRestored) -> None:
        plan = event.state.plan
        status = f", plan '{plan.goal}' ({plan.status.value})" if plan else ""
        self.console.print(
            f"[green]Session restored[/green]: {len(event.state.messages)} messages{status}"
        )

    def _yield(self, event: Yield) -> None:
        if self.debug:
            self.console.print(f"[dim]⏸ yield ({event.reason})[/dim]")

    def _repair_entered(self, event: RepairEntered) -> None:
        self.console.print(f"[red]✗ {event.failed_step}[/red] [dim]repairing...[/dim]")

    def _thinking(self, event: Thinking) -> None:
        if self.debug:
            self.console.print(f"[dim]… {event.stage} {event.message or ''}[/dim]")

    def _output_chunk(self, envelope: EventEnvelope) -> None:
        self.console.print(envelope.event.data, style="dim", end="", markup=False, highlight=False)
