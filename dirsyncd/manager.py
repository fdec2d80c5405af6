"""The sync manager: watches directories, takes console commands and runs workers."""

from __future__ import annotations

import errno
import os
import queue as _queue
import re
import select
import stat
import subprocess
import sys
from contextlib import ExitStack, suppress
from dataclasses import dataclass

from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from dirsyncd.commands import FAILED_WATCH_MESSAGE, CommandHandler, CommandResult
from dirsyncd.console import FSS_IN, FSS_OUT
from dirsyncd.report import process_worker_output
from dirsyncd.state import (
    DEFAULT_WORKER_LIMIT,
    Operation,
    Task,
    TaskQueue,
    WatchRegistry,
    WorkerPool,
    WorkerSlot,
    timestamp,
)

USAGE = ("Correct syntax is: manager -l <manager_logfile> -c <config_file> "
         "-n <worker_limit>")
_MAX_LINE = 128
_MAX_CONFIG_PATH = 49
_MAX_COMMAND_BYTES = 4095
_POLL_INTERVAL = 0.05
_WHOLE_DIRECTORY = "__DIR__"
_FULL_SYNC_FILE = "ALL"
_EVENT_OPERATIONS = {
    "modified": Operation.MODIFIED,
    "created": Operation.ADDED,
    "deleted": Operation.DELETED,
}


class _Forwarder(FileSystemEventHandler):
    """Turns filesystem events in one watched directory into task descriptions."""

    def __init__(self, handle: int, path: str, sink: _queue.SimpleQueue) -> None:
        super().__init__()
        self._handle = handle
        self._path = path
        self._sink = sink

    def on_any_event(self, event) -> None:
        path = os.path.abspath(os.fsdecode(event.src_path))
        kind = event.event_type
        if path == self._path:
            if kind == "deleted":
                self._sink.put((self._handle, _WHOLE_DIRECTORY, Operation.DELETED))
            return
        if os.path.dirname(path) != self._path:
            return
        operation = _EVENT_OPERATIONS.get(kind)
        if operation is None or (operation is Operation.MODIFIED and event.is_directory):
            return
        self._sink.put((self._handle, os.path.basename(path), operation))


class DirectoryWatcher:
    """Watches directories (not recursively) for created, modified and deleted entries."""

    def __init__(self) -> None:
        self._observer = Observer()
        self._observer.daemon = True
        self._observer.start()
        self._events: _queue.SimpleQueue = _queue.SimpleQueue()
        self._watches: dict[int, object] = {}
        self._by_path: dict[str, int] = {}
        self._next_handle = 1

    def add(self, path) -> int:
        """Start watching ``path``; returns its handle. Raises OSError if it is no directory."""
        path = os.path.abspath(os.fspath(path))
        if path in self._by_path:
            return self._by_path[path]
        if not os.path.exists(path):
            raise FileNotFoundError(errno.ENOENT, os.strerror(errno.ENOENT), path)
        if not os.path.isdir(path):
            raise NotADirectoryError(errno.ENOTDIR, os.strerror(errno.ENOTDIR), path)
        handle = self._next_handle
        self._next_handle += 1
        watch = self._observer.schedule(_Forwarder(handle, path, self._events), path,
                                        recursive=False)
        self._watches[handle] = watch
        self._by_path[path] = handle
        return handle

    def remove(self, handle) -> None:
        """Stop a watch; raises OSError for an unknown handle."""
        watch = self._watches.pop(handle, None)
        if watch is None:
            raise OSError(errno.EINVAL, os.strerror(errno.EINVAL))
        self._by_path = {p: h for p, h in self._by_path.items() if h != handle}
        self._observer.unschedule(watch)

    def drain(self) -> list[tuple[int, str, Operation]]:
        """Events seen since the last call, as ``(handle, filename, operation)``."""
        events = []
        while True:
            try:
                handle, name, operation = self._events.get_nowait()
            except _queue.Empty:
                return events
            if handle in self._watches:
                events.append((handle, name, operation))

    def close(self) -> None:
        self._observer.stop()
        self._observer.join()

    def __enter__(self) -> DirectoryWatcher:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


@dataclass(frozen=True)
class ManagerConfig:
    """Command-line settings of the manager."""

    logfile: str
    config_file: str
    worker_limit: int = DEFAULT_WORKER_LIMIT


def _atoi(text: str) -> int:
    match = re.match(r"\s*([+-]?\d+)", text)
    return int(match.group(1)) if match else 0


def parse_args(argv) -> ManagerConfig:
    """Parse ``-l <logfile> -c <config> -n <limit>``; raises ValueError otherwise."""
    args = list(argv)
    if len(args) != 6:
        raise ValueError(USAGE)
    limit = _atoi(args[5])
    if limit <= 0:
        limit = DEFAULT_WORKER_LIMIT
    return ManagerConfig(args[1], args[3], limit)


def _chunks(line: str):
    while line:
        yield line[:_MAX_LINE - 1]
        line = line[_MAX_LINE - 1:]


def read_config(path) -> list[tuple[str, str]]:
    """Read ``source target`` pairs, one per line; incomplete lines are skipped."""
    pairs = []
    with open(path, encoding="utf-8") as config:
        for raw in config:
            for chunk in _chunks(raw):
                words = chunk.split()
                if len(words) >= 2:
                    pairs.append((words[0][:_MAX_CONFIG_PATH], words[1][:_MAX_CONFIG_PATH]))
    return pairs


def _unlink_quietly(path: str) -> None:
    with suppress(FileNotFoundError):
        os.unlink(path)


class Manager:
    """Runs the manager until a shutdown command has been carried out."""

    def __init__(self, config: ManagerConfig, *, watcher=None, worker_command=None,
                 fifo_dir=".", stdout=None) -> None:
        self.config = config
        self._watcher = watcher
        self._worker_command = (list(worker_command) if worker_command
                                else [sys.executable, "-m", "dirsyncd.worker"])
        self._fifo_dir = os.fspath(fifo_dir)
        self._stdout = stdout if stdout is not None else sys.stdout
        self.queue = TaskQueue()
        self.registry = WatchRegistry()
        self.pool = WorkerPool(config.worker_limit)
        self._log = None
        self._out_fd: int | None = None

    def run(self) -> int:
        """Serve until shutdown; returns the exit status."""
        in_path = os.path.join(self._fifo_dir, FSS_IN)
        out_path = os.path.join(self._fifo_dir, FSS_OUT)
        with ExitStack() as stack:
            self._log = stack.enter_context(open(self.config.logfile, "w", encoding="utf-8"))
            pairs = read_config(self.config.config_file)
            _unlink_quietly(in_path)
            _unlink_quietly(out_path)
            os.mkfifo(in_path, 0o666)
            os.mkfifo(out_path, 0o666)
            stack.callback(_unlink_quietly, in_path)
            in_fd = os.open(in_path, os.O_RDONLY | os.O_NONBLOCK)
            stack.callback(os.close, in_fd)
            # A writer of our own keeps the command pipe from reporting end of file.
            keep_fd = os.open(in_path, os.O_WRONLY | os.O_NONBLOCK)
            stack.callback(os.close, keep_fd)
            self._out_fd = os.open(out_path, os.O_RDWR | os.O_NONBLOCK)
            stack.callback(os.close, self._out_fd)
            watcher = self._watcher
            if watcher is None:
                watcher = DirectoryWatcher()
                stack.callback(watcher.close)

            for source, target in pairs:
                self._announce(f"{timestamp()} Added directory: {source} -> {target} \n")
                self.queue.push(Task(source, target, _FULL_SYNC_FILE, Operation.FULL))
            if not self._start_initial(watcher):
                return 1
            self._serve(in_fd, watcher, CommandHandler(self.registry, self.queue, watcher))
        return 0

    def _write_out(self, text: str) -> None:
        with suppress(OSError):
            os.write(self._out_fd, text.encode())

    def _write_stdout(self, text: str) -> None:
        self._stdout.write(text)
        self._stdout.flush()

    def _write_log(self, text: str) -> None:
        self._log.write(text)
        self._log.flush()

    def _announce(self, text: str) -> None:
        self._write_out(text)
        self._write_stdout(text)

    def _start_initial(self, watcher) -> bool:
        while self.queue:
            task = self.queue.pop()
            try:
                handle = watcher.add(task.source_dir)
            except OSError:
                self._write_stdout(FAILED_WATCH_MESSAGE)
                return False
            stamp = timestamp()
            self._announce(f"{stamp} Monitoring started for {task.source_dir}\n")
            self.registry.add(handle, task.source_dir, task.target_dir, stamp)
            if len(self.pool) >= self.pool.limit:
                break
            self._reap()
            index = self.pool.free_slot()
            if index is None:
                print("No available worker slot", file=sys.stderr)
                break
            if not self._launch(index, task):
                break
        return True

    def _launch(self, index: int, task: Task) -> bool:
        try:
            process = subprocess.Popen(self._worker_command + task.worker_args(),
                                       stdout=subprocess.PIPE)
        except OSError as exc:
            print(f"failed to start worker: {exc}", file=sys.stderr)
            return False
        self.pool.occupy(index, process, task)
        return True

    def _collect(self, slot: WorkerSlot) -> None:
        pid = slot.pid
        output = slot.process.stdout.read().decode(errors="replace")
        slot.process.wait()
        announcement, entry = process_worker_output(output, slot, pid, self.registry,
                                                    timestamp())
        if announcement is not None:
            self._write_log(announcement)
            self._announce(announcement)
        self._write_log(entry)
        self.pool.release(pid)

    def _reap(self) -> None:
        for slot in self.pool.slots:
            if slot.in_use and slot.process.poll() is not None:
                self._collect(slot)

    def _read_commands(self, fd: int) -> str:
        data = b""
        while len(data) < _MAX_COMMAND_BYTES:
            try:
                chunk = os.read(fd, _MAX_COMMAND_BYTES - len(data))
            except BlockingIOError:
                break
            if not chunk:
                break
            data += chunk
        return data.decode(errors="replace")

    def _emit(self, result: CommandResult) -> None:
        if result.log:
            self._write_log(result.log)
        if result.stdout:
            self._write_stdout(result.stdout)
        if result.console:
            self._write_out(result.console)

    def _stop_watching(self, watcher) -> None:
        for entry in self.registry:
            if entry.in_use and entry.handle is not None:
                try:
                    watcher.remove(entry.handle)
                except OSError as exc:
                    print(f"failed to remove watch during shutdown: {exc}", file=sys.stderr)
                entry.handle = None
                entry.in_use = False
        self._announce(f"{timestamp()} Processing remaining queued tasks.\n")

    def _finish(self) -> None:
        stamp = timestamp()
        for slot in self.pool.slots:
            if slot.in_use:
                self._collect(slot)
        waiting = f"{stamp} Waiting for all active workers to finish.\n"
        final = f"{stamp} Manager shutdown complete.\n"
        self._write_out(waiting)
        self._write_out(final)
        self._write_stdout(waiting)
        self._write_stdout(final)

    def _dispatch(self) -> None:
        while self.queue and len(self.pool) < self.pool.limit:
            task = self.queue.pop()
            index = self.pool.free_slot()
            if index is None:
                self.queue.push(task)
                break
            self._launch(index, task)

    def _serve(self, in_fd: int, watcher, handler: CommandHandler) -> None:
        shutting_down = False
        while True:
            readable, _, _ = select.select([in_fd], [], [], _POLL_INTERVAL)
            self._reap()
            if not shutting_down:
                for handle, name, operation in watcher.drain():
                    entry = self.registry.find_by_handle(handle)
                    if entry is not None:
                        self.queue.push(Task(entry.source_path, entry.target_path,
                                             name, operation))
                if readable:
                    text = self._read_commands(in_fd)
                    if text:
                        result = handler.handle(text)
                        self._emit(result)
                        if result.shutdown:
                            shutting_down = True
                            self._stop_watching(watcher)
            if shutting_down and not self.queue:
                self._finish()
                return
            self._dispatch()


def _is_fifo(path: str) -> bool:
    try:
        return stat.S_ISFIFO(os.stat(path).st_mode)
    except OSError:
        return False


def main(argv=None) -> int:
    """Start the manager from ``-l <logfile> -c <config> -n <limit>``."""
    args = sys.argv[1:] if argv is None else list(argv)
    try:
        config = parse_args(args)
    except ValueError as exc:
        print(exc, file=sys.stderr)
        return 1
    try:
        return Manager(config).run()
    except OSError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())