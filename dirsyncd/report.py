"""Parsing worker execution reports and writing them to the manager log."""

from __future__ import annotations

from dataclasses import dataclass, field

from dirsyncd.state import Operation, WatchRegistry, WorkerSlot

_UNKNOWN = "UNKNOWN"


@dataclass
class WorkerReport:
    """The parts of a worker report the manager records."""

    status: str | None = None
    details: str | None = None
    errors: list[str] = field(default_factory=list)


def parse_report(text: str, operation: Operation | None) -> WorkerReport:
    """Extract status, details (full syncs only) and error lines from worker output."""
    report = WorkerReport()
    lines = iter([line for line in text.split("\n") if line])
    for line in lines:
        if line.startswith("STATUS: "):
            report.status = line[8:]
        if line.startswith("DETAILS: ") and operation is Operation.FULL:
            report.details = line[9:]
        if line.startswith("ERRORS:") and report.status == "ERROR":
            following = next(lines, None)
            if following is None or not following.startswith("- "):
                break
            while following is not None and following.startswith("-"):
                report.errors.append(following)
                following = next(lines, None)
            break
    return report


def _operation_name(operation: Operation | None) -> str:
    return operation.value if operation is not None else _UNKNOWN


def render_log_entry(report: WorkerReport, source_dir: str, target_dir: str, pid: int,
                     operation: Operation | None, stamp: str) -> str:
    """The manager log entry for one finished worker."""
    status = report.status or ""
    parts = [
        f"{stamp} [{source_dir}] [{target_dir}] [{pid}] [{_operation_name(operation)}]\n[{status}] "
    ]
    if operation is Operation.FULL and status != "ERROR" and report.details is not None:
        parts.append(f"[{report.details}]")
    if not report.errors:
        parts.append("\n")
    parts.extend(f"[{error}]\n" for error in report.errors)
    parts.append("\n")
    return "".join(parts)


def sync_completed_message(source_dir: str, target_dir: str, stamp: str) -> str:
    return f"{stamp} Sync completed {source_dir} -> {target_dir}\n\n"


def process_worker_output(text: str, slot: WorkerSlot, pid: int,
                          registry: WatchRegistry, stamp: str) -> tuple[str | None, str]:
    """Record a finished worker's report.

    Updates the watch entry of the worker's source directory and returns
    ``(announcement, log_entry)``; the announcement is the completion notice
    of a requested sync, or None.
    """
    task = slot.task
    operation = task.operation if task is not None else None
    source_dir = task.source_dir if task is not None else ""
    target_dir = task.target_dir if task is not None else ""
    report = parse_report(text, operation)

    announcement = None
    entry = registry.find_by_source(source_dir)
    if entry is not None:
        entry.errors = len(report.errors)
        if not entry.in_use:
            entry.in_use = True
            announcement = sync_completed_message(source_dir, target_dir, stamp)

    return announcement, render_log_entry(report, source_dir, target_dir, pid, operation, stamp)