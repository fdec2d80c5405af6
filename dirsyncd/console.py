"""Interactive console that sends commands to the manager and shows its replies."""

from __future__ import annotations

import enum
import os
import select
import sys
import time
from dataclasses import dataclass

FSS_IN = "fss_in"
FSS_OUT = "fss_out"
_MAX_COMMAND = 63
_MAX_PATH = 255
_READ_SIZE = 599


class CommandKind(enum.Enum):
    """Commands understood by the manager."""

    ADD = "add"
    STATUS = "status"
    CANCEL = "cancel"
    SYNC = "sync"
    SHUTDOWN = "shutdown"


_USAGE = {
    CommandKind.ADD: "Invalid 'add' command format. Usage: add <source> <target>",
    CommandKind.STATUS: "Invalid status command format. Usage: status <directory>",
    CommandKind.CANCEL: "Invalid cancel command format. Usage: cancel <source>",
    CommandKind.SYNC: "Invalid sync command format. Usage: sync <directory>",
}


class CommandError(ValueError):
    """Raised for input that is not a valid command."""


@dataclass(frozen=True)
class Command:
    """A parsed console command."""

    kind: CommandKind
    source: str | None = None
    target: str | None = None


def parse_command(line: str) -> Command:
    """Parse one line of console input into a Command."""
    words = [word[:_MAX_PATH] for word in line.split()]
    if not words:
        raise CommandError("")
    try:
        kind = CommandKind(words[0][:_MAX_COMMAND])
    except ValueError:
        raise CommandError("Invalid input command") from None
    if kind is CommandKind.SHUTDOWN:
        return Command(kind)
    if kind is CommandKind.ADD:
        if len(words) < 3:
            raise CommandError(_USAGE[kind])
        return Command(kind, words[1], words[2])
    if len(words) < 2:
        raise CommandError(_USAGE[kind])
    return Command(kind, words[1])


def format_log_line(command: Command, stamp: str) -> str:
    """Return the console log line recorded for ``command``."""
    if command.kind is CommandKind.ADD:
        return f"{stamp} Command add {command.source} -> {command.target}\n"
    if command.kind is CommandKind.SHUTDOWN:
        return f"{stamp} Command shutdown\n"
    return f"{stamp} Command {command.kind.value} {command.source}\n"


def _timestamp() -> str:
    return time.strftime("[%Y-%m-%d %H:%M:%S]", time.localtime())


def _open_pipe(path: str, flags: int) -> int:
    try:
        return os.open(path, flags | os.O_NONBLOCK)
    except OSError as exc:
        raise OSError(exc.errno, f"Failed to open {path}: {exc.strerror}") from exc


def _forward_reply(fd: int, log) -> bool:
    """Copy waiting manager output to the screen and log; False once the pipe closes."""
    try:
        data = os.read(fd, _READ_SIZE)
    except BlockingIOError:
        return True
    if not data:
        return False
    sys.stdout.write(data.decode(errors="replace"))
    sys.stdout.flush()
    log.write(data)
    log.flush()
    return True


def _session(fss_in: int, fss_out: int, log) -> None:
    while True:
        readable, _, _ = select.select([sys.stdin, fss_out], [], [])
        if fss_out in readable and not _forward_reply(fss_out, log):
            return
        if sys.stdin not in readable:
            continue
        line = sys.stdin.readline()
        if not line:
            print("EOF or input error. Exiting...")
            return
        try:
            command = parse_command(line)
        except CommandError as exc:
            if str(exc):
                print(exc, file=sys.stderr)
            continue
        log.write(format_log_line(command, _timestamp()).encode())
        log.flush()
        text = line[:-1] if line.endswith("\n") else line
        if not text:
            continue
        try:
            os.write(fss_in, text.encode())
        except OSError as exc:
            print(f"write to fss_in failed: {exc.strerror}", file=sys.stderr)
            return


def main(argv=None) -> int:
    """Run the console: ``-l <console-logfile>``."""
    args = sys.argv[1:] if argv is None else list(argv)
    if len(args) != 2:
        print("usage: console -l <console-logfile>", file=sys.stderr)
        return 1
    log_fd = os.open(args[1], os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o644)
    with open(log_fd, "wb") as log:
        try:
            fss_in = _open_pipe(FSS_IN, os.O_WRONLY)
        except OSError as exc:
            print(exc.strerror, file=sys.stderr)
            return 1
        try:
            fss_out = _open_pipe(FSS_OUT, os.O_RDONLY)
        except OSError as exc:
            os.close(fss_in)
            print(exc.strerror, file=sys.stderr)
            return 1
        try:
            _session(fss_in, fss_out, log)
        finally:
            os.close(fss_in)
            os.close(fss_out)
            try:
                os.unlink(FSS_OUT)
            except FileNotFoundError:
                pass
    return 0


if __name__ == "__main__":
    raise SystemExit(main())