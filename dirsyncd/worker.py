"""Sync worker: performs one synchronisation task and prints an execution report."""

from __future__ import annotations

import enum
import os
import sys
from dataclasses import dataclass, field

_BUF_SIZE = 4096
_FILE_MODE = 0o644
_DIR_MODE = 0o755
_CREATE_FLAGS = os.O_WRONLY | os.O_CREAT | os.O_TRUNC
_WHOLE_DIRECTORY = "__DIR__"


class Status(enum.Enum):
    """Outcome of a worker task as written in the report."""

    SUCCESS = "SUCCESS"
    PARTIAL = "PARTIAL"
    ERROR = "ERROR"


@dataclass(frozen=True)
class ErrorEntry:
    """One failure recorded while running a task."""

    message: str
    filename: str
    is_dir: bool = False

    def render(self) -> str:
        prefix = "- DIR  " if self.is_dir else "- FILE "
        return f"{prefix}{self.filename}: {self.message}\n"


@dataclass
class ExecReport:
    """Counters, status and errors collected by a task."""

    status: Status = Status.SUCCESS
    files_copied: int = 0
    files_skipped: int = 0
    errors: list[ErrorEntry] = field(default_factory=list)
    exit_code: int = 0

    def add_error(self, message: str, filename: str, is_dir: bool = False) -> None:
        self.errors.append(ErrorEntry(message, os.fspath(filename), is_dir))

    def fail(self, exit_code: int = 1) -> None:
        self.status = Status.ERROR
        self.exit_code = exit_code

    def render(self) -> str:
        parts = [
            "EXEC_REPORT_START\n",
            f"STATUS: {self.status.value}\n",
            f"DETAILS: {self.files_copied} files copied, {self.files_skipped} skipped\n",
        ]
        if self.errors:
            parts.append("ERRORS:\n")
            parts.extend(entry.render() for entry in self.errors)
        else:
            parts.append("ERRORS: None\n")
        parts.append("EXEC_REPORT_END\n\n")
        return "".join(parts)


def _describe(exc: OSError) -> str:
    return exc.strerror or str(exc)


def _mkdir(path: str) -> None:
    try:
        os.mkdir(path, _DIR_MODE)
    except FileExistsError:
        pass


def make_dirs(path, report: ExecReport) -> None:
    """Create ``path`` and its parents; a failing parent is recorded in ``report``.

    Raises OSError when any directory cannot be created.
    """
    path = os.fspath(path)
    parents = [path[:index] for index, char in enumerate(path) if char == "/" and index > 0]
    for parent in parents:
        try:
            _mkdir(parent)
        except OSError as exc:
            report.add_error(_describe(exc), parent, True)
            raise
    _mkdir(path)


def copy_file(src_path, dst_path, report: ExecReport) -> None:
    """Copy the contents of one file to another, recording failures in ``report``.

    Raises OSError when the copy fails.
    """
    try:
        source = open(src_path, "rb")
    except OSError as exc:
        report.add_error(_describe(exc), src_path)
        raise
    with source:
        try:
            fd = os.open(dst_path, _CREATE_FLAGS, _FILE_MODE)
        except OSError as exc:
            report.add_error(_describe(exc), dst_path)
            raise
        with open(fd, "wb") as destination:
            try:
                while chunk := source.read(_BUF_SIZE):
                    destination.write(chunk)
            except OSError as exc:
                report.add_error(_describe(exc), dst_path)
                raise


def _regular_files(source_dir: str) -> list[str]:
    with os.scandir(source_dir) as entries:
        return [entry.name for entry in entries if entry.is_file(follow_symlinks=False)]


def _full_sync(source_dir: str, target_dir: str, names: list[str], report: ExecReport) -> None:
    try:
        make_dirs(target_dir, report)
    except OSError as exc:
        report.add_error(_describe(exc), target_dir, True)
        report.fail()
        return
    for name in names:
        try:
            copy_file(f"{source_dir}/{name}", f"{target_dir}/{name}", report)
        except OSError:
            report.files_skipped += 1
        else:
            report.files_copied += 1
    if report.files_skipped and report.files_copied:
        report.status = Status.PARTIAL
    elif report.files_skipped:
        report.status = Status.ERROR
    else:
        report.status = Status.SUCCESS


def _create_empty(dst_path: str, target_dir: str, report: ExecReport) -> bool:
    try:
        os.close(os.open(dst_path, _CREATE_FLAGS, _FILE_MODE))
    except OSError as exc:
        report.add_error(_describe(exc), target_dir)
        report.files_skipped += 1
        report.fail()
        return False
    return True


def run(source_dir, target_dir, filename, operation) -> ExecReport | None:
    """Carry out one task; returns None when the task produces no report."""
    source_dir = os.fspath(source_dir)
    target_dir = os.fspath(target_dir)
    if filename == _WHOLE_DIRECTORY:
        filename = ""
    report = ExecReport()

    if operation == "DELETED":
        try:
            os.rmdir(target_dir)
        except OSError as exc:
            report.add_error(_describe(exc), target_dir, True)
            report.fail()
        return report

    try:
        names = _regular_files(source_dir)
    except OSError as exc:
        report.add_error(_describe(exc), source_dir, True)
        report.fail()
        return report

    if operation == "FULL" and filename == "ALL":
        _full_sync(source_dir, target_dir, names, report)
        return report

    if operation in ("ADDED", "MODIFIED") and filename:
        src_path = f"{source_dir}/{filename}"
        dst_path = f"{target_dir}/{filename}"
        if not _create_empty(dst_path, target_dir, report):
            return report
        if operation == "MODIFIED":
            try:
                copy_file(src_path, dst_path, report)
            except OSError:
                report.files_skipped += 1
                report.fail()
                return report
        report.files_copied += 1
        report.status = Status.SUCCESS
        return report

    return None


def main(argv=None) -> int:
    """Run a task given as ``source target filename operation`` and print its report."""
    args = sys.argv[1:] if argv is None else list(argv)
    if len(args) != 4:
        report = ExecReport()
        report.add_error("Not enough arguments", args[0] if args else "", True)
        report.fail()
    else:
        report = run(*args)
    if report is None:
        return 0
    sys.stdout.write(report.render())
    sys.stdout.flush()
    return report.exit_code


if __name__ == "__main__":
    raise SystemExit(main())