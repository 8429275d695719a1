"""
Local Command Runtime

Stand-in for the sandboxed runtime that runs commands as local subprocesses.
It listens for ExecuteCommand, streams stdout/stderr back as
CommandOutputChunk events and finishes every command with exactly one
CommandExited (127 when the executable cannot be found). Every reported
event echoes the ``command_id`` of the ExecuteCommand it answers, and a
CancelCommand kills the process started for that id.
"""

import asyncio
import codecs
from pathlib import Path

import structlog

from theia.core.domain.event_bus import EventBus, Unsubscribe
from theia.core.domain.events import (
    CancelCommand,
    CommandExited,
    CommandOutputChunk,
    CommandReady,
    EventEnvelope,
    EventSource,
    ExecuteCommand,
)

READ_CHUNK_SIZE = 4096


class LocalCommandRuntime:
    """
    Executes ExecuteCommand events with ``asyncio.create_subprocess_exec``.

    Args:
        bus: Event bus to listen and report on
        work_dir: Working directory of spawned commands
    """

    def __init__(self, bus: EventBus, work_dir: str | Path = "."):
        self.bus = bus
        self.work_dir = Path(work_dir)
        self._unsubscribers: list[Unsubscribe] = []
        self._tasks: set[asyncio.Task] = set()
        self._processes: set[asyncio.subprocess.Process] = set()
        self._by_id: dict[str, asyncio.subprocess.Process] = {}
        self._cancelled: set[str] = set()
        self.logger = structlog.get_logger().bind(component="local_runtime")

    def start(self) -> None:
        if not self._unsubscribers:
            self._unsubscribers = [
                self.bus.subscribe(ExecuteCommand, self._on_execute),
                self.bus.subscribe(CancelCommand, self._on_cancel),
            ]

    async def stop(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []
        for process in list(self._processes):
            if process.returncode is None:
                process.kill()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    def _on_execute(self, envelope: EventEnvelope) -> None:
        task = asyncio.get_running_loop().create_task(self.run(envelope.event))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _on_cancel(self, envelope: EventEnvelope) -> None:
        command_id = envelope.event.command_id
        process = self._by_id.get(command_id)
        if process is None:
            # Not spawned yet; killed as soon as it is
            self._cancelled.add(command_id)
            return
        self.logger.warning("command_cancelled", command_id=command_id)
        if process.returncode is None:
            process.kill()

    def _emit(self, event) -> None:
        self.bus.emit(event, source=EventSource.SYSTEM)

    async def run(self, command: ExecuteCommand) -> int:
        """Run one command to completion and report it on the bus."""
        command_id = command.command_id
        self.logger.info(
            "command_started", command=command.command, args=list(command.args), command_id=command_id
        )
        try:
            process = await asyncio.create_subprocess_exec(
                command.command,
                *command.args,
                cwd=str(self.work_dir),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError:
            self._emit(
                CommandOutputChunk(
                    stream="stderr", data=f"{command.command}: command not found\n", command_id=command_id
                )
            )
            self._emit(CommandExited(exit_code=127, command_id=command_id))
            return 127
        except OSError as e:
            self._emit(
                CommandOutputChunk(stream="stderr", data=f"{command.command}: {e}\n", command_id=command_id)
            )
            self._emit(CommandExited(exit_code=126, command_id=command_id))
            return 126

        self._processes.add(process)
        if command_id:
            self._by_id[command_id] = process
        if command_id in self._cancelled:
            self._cancelled.discard(command_id)
            process.kill()
        self._emit(CommandReady())
        try:
            await asyncio.gather(
                self._pump(process.stdout, "stdout", command_id),
                self._pump(process.stderr, "stderr", command_id),
            )
            exit_code = await process.wait()
        finally:
            self._processes.discard(process)
            self._by_id.pop(command_id, None)

        self.logger.info(
            "command_exited", command=command.command, command_id=command_id, exit_code=exit_code
        )
        self._emit(CommandExited(exit_code=exit_code, command_id=command_id))
        return exit_code

    async def _pump(self, stream: asyncio.StreamReader | None, name: str, command_id: str) -> None:
        if stream is None:
            return
        # Multi-byte characters may span two reads
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        while True:
            data = await stream.read(READ_CHUNK_SIZE)
            text = decoder.decode(data, final=not data)
            if text:
                self._emit(CommandOutputChunk(stream=name, data=text, command_id=command_id))
            if not data:
                break
