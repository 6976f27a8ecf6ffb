"""Report formatting for push, pull and status.

Provides human-readable and machine-readable output:

- ``format_tally`` -- the one-line apply summary.
- ``format_push_report`` / ``format_pull_report`` / ``format_status``
  -- multi-line CLI output.
- ``report_to_json`` -- structured dict for ``--json`` and MCP output.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models import (
        ApplyReport,
        PullReport,
        PushReport,
        StatusReport,
        SyncCounters,
    )


def _plural(count: int, word: str, suffix: str = "s") -> str:
    return f"{count} {word}{'' if count == 1 else suffix}"


def format_tally(counters: SyncCounters) -> str:
    """Format counters as e.g. ``"0 new, 1 edit, 1 flag, 0 errors"``."""
    parts = [
        f"{counters.new} new",
        _plural(counters.edits, "edit"),
        _plural(counters.flags, "flag"),
    ]
    if counters.other:
        parts.append(_plural(counters.other, "other action"))
    parts.append(_plural(counters.errors, "error"))
    return ", ".join(parts)


# ------------------------------------------------------------------
# Human-readable reports
# ------------------------------------------------------------------


def format_apply_report(report: ApplyReport) -> str:
    lines = [format_tally(report.counters)]
    if report.errors:
        lines.append("")
        lines.append("Retained with errors:")
        for outcome in report.errors:
            lines.append(f"  {outcome.link}: {outcome.error}")
    if report.flagged_files:
        lines.append("")
        lines.append("Files with flagged entries:")
        for path in report.flagged_files:
            lines.append(f"  {path}")
    return "\n".join(lines)


def format_push_report(report: PushReport) -> str:
    lines = [f"Pushed {_plural(len(report.staged), 'file')}"]
    if report.created_ids:
        lines[0] += f", created {_plural(report.created_ids, 'ID')}"
    for entry in report.staged:
        lines.append(f"  {entry.digest}  {entry.name}")
    if report.sections:
        lines.append("Agenda sections: " + ", ".join(report.sections))
    return "\n".join(lines)


def format_pull_report(report: PullReport) -> str:
    if not report.captured_bytes:
        return "Nothing to pull: capture file is empty"
    lines = [format_apply_report(report.apply)]
    if report.review:
        lines.append("")
        lines.append("Flagged for review:")
        for entry in report.review:
            line = f"  {entry.file}: {entry.heading}"
            if entry.note:
                line += f" -- {entry.note.splitlines()[0]}"
            lines.append(line)
    return "\n".join(lines)


def format_status(report: StatusReport) -> str:
    lines = [
        f"Org directory:    {report.org_directory}",
        f"Mobile directory: {report.mobile_directory}",
        f"Inbox:            {report.inbox}",
        f"Capture file:     {report.capture_bytes} bytes waiting",
        f"Inbox content:    {_plural(report.pending_requests, 'request')}, "
        f"{_plural(report.pending_captures, 'capture')}",
        f"Manifest:         {_plural(len(report.manifest), 'record')}",
    ]
    for entry in report.manifest:
        lines.append(f"  {entry.digest}  {entry.name}")
    return "\n".join(lines)


# ------------------------------------------------------------------
# JSON output
# ------------------------------------------------------------------


def report_to_json(report: ApplyReport | PushReport | PullReport | StatusReport) -> dict:
    """Convert any phase report to a JSON-serialisable dict.

    Apply and pull reports gain a ``tally`` line next to the counters.
    """
    data = report.model_dump(mode="json")
    counters = getattr(report, "counters", None)
    if counters is None and hasattr(report, "apply"):
        counters = report.apply.counters  # type: ignore[union-attr]
    if counters is not None:
        data["tally"] = format_tally(counters)
    return data
