"""Manager bookkeeping: the task queue, the watch registry and the worker pool."""

from __future__ import annotations

import enum
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Iterator

DEFAULT_WORKER_LIMIT = 5
_STAMP_FORMAT = "[%Y-%m-%d %H:%M:%S]"


class Operation(enum.Enum):
    """Kind of work a worker performs."""

    FULL = "FULL"
    MODIFIED = "MODIFIED"
    ADDED = "ADDED"
    DELETED = "DELETED"


@dataclass(frozen=True)
class Task:
    """One unit of work waiting for a worker."""

    source_dir: str
    target_dir: str
    filename: str
    operation: Operation

    def worker_args(self) -> list[str]:
        """Arguments handed to the worker for this task."""
        return [self.source_dir, self.target_dir, self.filename, self.operation.value]


class TaskQueue:
    """First-in first-out queue of pending tasks."""

    def __init__(self) -> None:
        self._tasks: deque[Task] = deque()

    def push(self, task: Task) -> None:
        self._tasks.append(task)

    def pop(self) -> Task:
        """Remove and return the oldest task; raises IndexError when empty."""
        if not self._tasks:
            raise IndexError("pop from an empty task queue")
        return self._tasks.popleft()

    def __len__(self) -> int:
        return len(self._tasks)

    def __bool__(self) -> bool:
        return bool(self._tasks)


@dataclass
class WatchEntry:
    """A monitored source directory and its sync state."""

    handle: Any
    source_path: str
    target_path: str
    last_sync: str
    in_use: bool = True
    errors: int = 0


class WatchRegistry:
    """All directories the manager monitors, newest first."""

    def __init__(self) -> None:
        self._entries: list[WatchEntry] = []

    def add(self, handle, source_path: str, target_path: str, stamp: str) -> WatchEntry:
        entry = WatchEntry(handle, source_path, target_path, stamp)
        self._entries.insert(0, entry)
        return entry

    def find_by_source(self, source_path: str) -> WatchEntry | None:
        return next((e for e in self._entries if e.source_path == source_path), None)

    def find_by_handle(self, handle) -> WatchEntry | None:
        return next((e for e in self._entries if e.handle == handle), None)

    def __iter__(self) -> Iterator[WatchEntry]:
        return iter(self._entries)


@dataclass
class WorkerSlot:
    """A place for one running worker process."""

    process: Any = None
    task: Task | None = None

    @property
    def in_use(self) -> bool:
        return self.process is not None

    @property
    def pid(self) -> int:
        return self.process.pid if self.process is not None else 0

    def clear(self) -> None:
        stream = getattr(self.process, "stdout", None)
        if stream is not None and not stream.closed:
            stream.close()
        self.process = None
        self.task = None


@dataclass
class WorkerPool:
    """Fixed number of worker slots; at most ``limit`` workers run at once."""

    limit: int = DEFAULT_WORKER_LIMIT
    slots: list[WorkerSlot] = field(init=False)

    def __post_init__(self) -> None:
        if self.limit <= 0:
            self.limit = DEFAULT_WORKER_LIMIT
        self.slots = [WorkerSlot() for _ in range(self.limit)]

    def free_slot(self) -> int | None:
        """Index of the first unused slot, or None when all are busy."""
        return next((i for i, slot in enumerate(self.slots) if not slot.in_use), None)

    def occupy(self, index: int, process, task: Task) -> WorkerSlot:
        slot = self.slots[index]
        slot.process = process
        slot.task = task
        return slot

    def release(self, pid: int) -> WorkerSlot | None:
        """Free the slot running ``pid``; returns a detached copy of it, or None."""
        for slot in self.slots:
            if slot.in_use and slot.pid == pid:
                released = WorkerSlot(slot.process, slot.task)
                slot.clear()
                return released
        return None

    def find(self, pid: int) -> WorkerSlot | None:
        return next((s for s in self.slots if s.in_use and s.pid == pid), None)

    def __len__(self) -> int:
        return sum(1 for slot in self.slots if slot.in_use)


def timestamp(now: float | None = None) -> str:
    """Local time formatted as ``[YYYY-MM-DD HH:MM:SS]``."""
    return time.strftime(_STAMP_FORMAT, time.localtime(now))