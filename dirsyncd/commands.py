"""Handling of the commands the console sends to the manager."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

from dirsyncd.state import Operation, Task, TaskQueue, WatchRegistry, timestamp

REJECTED = -1
IGNORED = 0
ADDED = 1
STATUS = 2
CANCELLED = 3
SYNCING = 4
SHUTDOWN = 5

FAILED_WATCH_MESSAGE = "Failed to watch source directory\n"
_MAX_COMMAND = 63
_MAX_PATH = 255
_FULL_SYNC_FILE = "ALL"


@dataclass
class CommandResult:
    """Outcome of one command and the text it sends to each destination.

    ``stdout`` goes to the manager's screen, ``console`` back to the console
    and ``log`` to the manager log file.
    """

    code: int
    stdout: str = ""
    console: str = ""
    log: str = ""

    @property
    def shutdown(self) -> bool:
        return self.code == SHUTDOWN


def _everywhere(code: int, text: str) -> CommandResult:
    return CommandResult(code, stdout=text, console=text, log=text)


def _screen_and_console(code: int, text: str) -> CommandResult:
    return CommandResult(code, stdout=text, console=text)


class CommandHandler:
    """Applies console commands to the watch registry and task queue."""

    def __init__(self, registry: WatchRegistry, queue: TaskQueue, watcher,
                 clock: Callable[[], str] = timestamp) -> None:
        self.registry = registry
        self.queue = queue
        self.watcher = watcher
        self._clock = clock
        self._handlers = {
            "add": self._add,
            "status": self._status,
            "cancel": self._cancel,
            "sync": self._sync,
            "shutdown": self._shutdown,
        }

    def handle(self, text: str) -> CommandResult:
        """Run the command at the start of ``text``."""
        words = text.split()
        if not words:
            return CommandResult(REJECTED)
        name = words[0][:_MAX_COMMAND]
        args = [word[:_MAX_PATH] for word in words[1:]]
        action = self._handlers.get(name)
        if action is None:
            return CommandResult(IGNORED)
        return action(args, self._clock())

    def _add(self, args: list[str], stamp: str) -> CommandResult:
        if len(args) < 2:
            return CommandResult(REJECTED)
        source, target = args[0], args[1]
        if self.registry.find_by_source(source) is not None:
            return CommandResult(IGNORED, stdout=f"{stamp} Already in queue: {source}\n")
        try:
            handle = self.watcher.add(source)
        except OSError:
            return CommandResult(REJECTED, stdout=FAILED_WATCH_MESSAGE)
        self.registry.add(handle, source, target, stamp)
        self.queue.push(Task(source, target, _FULL_SYNC_FILE, Operation.FULL))
        return _everywhere(
            ADDED,
            f"{stamp} Added directory: {source} -> {target}\n"
            f"{stamp} Monitoring started for {source}\n\n",
        )

    def _status(self, args: list[str], stamp: str) -> CommandResult:
        if not args:
            return CommandResult(REJECTED)
        source = args[0]
        entry = self.registry.find_by_source(source)
        if entry is None:
            return _screen_and_console(IGNORED, f"{stamp} Directory not monitored: {source}\n")
        state = "ACTIVE" if entry.in_use else "NOT ACTIVE"
        return _screen_and_console(
            STATUS,
            f"{stamp} Status requested for {source}\n"
            f"Directory: {entry.source_path}\n"
            f"Target: {entry.target_path}\n"
            f"Last Sync: {entry.last_sync}\n"
            f"Errors: {entry.errors}\n"
            f"Status: {state}\n\n",
        )

    def _cancel(self, args: list[str], stamp: str) -> CommandResult:
        if not args:
            return CommandResult(REJECTED)
        source = args[0]
        entry = self.registry.find_by_source(source)
        if entry is None or not entry.in_use:
            return _screen_and_console(IGNORED, f"{stamp} Directory not monitored {source}\n\n")
        try:
            self.watcher.remove(entry.handle)
        except OSError:
            return CommandResult(REJECTED)
        entry.handle = None
        entry.in_use = False
        return _everywhere(CANCELLED, f"{stamp} Monitoring stopped for {source}\n\n")

    def _sync(self, args: list[str], stamp: str) -> CommandResult:
        if not args:
            return CommandResult(REJECTED)
        source = args[0]
        entry = self.registry.find_by_source(source)
        if entry is None:
            return _screen_and_console(IGNORED, f"{stamp} Directory not monitored: {source}\n")
        if entry.in_use:
            return _screen_and_console(IGNORED, f"{stamp} Sync already in progress {source}\n\n")
        self.queue.push(Task(source, entry.target_path, _FULL_SYNC_FILE, Operation.FULL))
        return _everywhere(SYNCING, f"{stamp} Syncing directory {source} -> {entry.target_path}\n")

    def _shutdown(self, args: list[str], stamp: str) -> CommandResult:
        return _screen_and_console(SHUTDOWN, f"{stamp} Shutting down manager...\n")