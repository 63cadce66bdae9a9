"""Report formatting for sync and merge runs.

Provides human-readable and machine-readable output:

- ``format_progress`` -- one line per progress event.
- ``format_sync_report`` -- full post-sync summary.
- ``format_merge_report`` -- full post-merge summary.
- ``report_to_json`` / ``merge_report_to_json`` -- structured dicts for
  ``--json`` output.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ..merge.models import MergeReport
    from .models import ProgressEvent, SyncReport

SUCCESS_MARK = "✓"
FAILURE_MARK = "✗"

# ------------------------------------------------------------------
# Progress
# ------------------------------------------------------------------


def format_progress(event: ProgressEvent) -> str:
    """Render an event as ``[n/total] <mark> name``.

    Failed events carry their error after the name when known.
    """
    mark = SUCCESS_MARK if event.success else FAILURE_MARK
    line = f"[{event.index}/{event.total}] {mark} {event.name}"
    if not event.success and event.error:
        line += f" ({event.error})"
    return line


# ------------------------------------------------------------------
# Human-readable reports
# ------------------------------------------------------------------


def format_sync_report(report: SyncReport) -> str:
    """Format a complete sync report as human-readable text.

    Sections are only included when they contain at least one result.

    Args:
        report: The completed sync report.

    Returns:
        Multi-line formatted string.
    """
    lines: list[str] = []

    header = f"Sync report ({report.policy})"
    if report.timed_out:
        header += " (TIMED OUT)"
    lines.append(header)
    lines.append(f"Started: {report.started_at}")
    if report.completed_at:
        lines.append(f"Completed: {report.completed_at}")
    if report.elapsed is not None:
        lines.append(f"Elapsed: {report.elapsed:.1f}s")
    lines.append("")

    lines.append(
        f"Synced {len(report.results)} repositories: "
        f"{len(report.cloned)} cloned, {len(report.updated)} updated, "
        f"{len(report.errors)} errors"
    )
    lines.append("")

    if report.cloned:
        lines.append("Cloned:")
        for r in report.cloned:
            lines.append(f"  {r.name} -> {r.path}")
        lines.append("")

    if report.updated:
        lines.append("Updated:")
        for r in report.updated:
            lines.append(f"  {r.name} ({len(r.branches)} branches)")
        lines.append("")

    if report.errors:
        lines.append("Errors:")
        for r in report.errors:
            lines.append(f"  {r.name}: {r.error}")
            for b in r.failed_branches:
                suffix = " (stash kept)" if b.stashed else ""
                lines.append(f"    {b.branch}: {b.error}{suffix}")
        lines.append("")

    return "\n".join(lines).rstrip()


def format_merge_report(report: MergeReport) -> str:
    """Format a merge automation report as human-readable text."""
    lines: list[str] = []
    lines.append(
        f"Merge report for '{report.branch}' -> '{report.target_branch}'"
    )
    lines.append(f"Started: {report.started_at}")
    if report.completed_at:
        lines.append(f"Completed: {report.completed_at}")
    lines.append("")

    lines.append(
        f"Processed {len(report.results)} repositories: "
        f"{len(report.created)} merge requests, {len(report.errors)} errors"
    )
    lines.append("")

    if report.created:
        lines.append("Merge requests:")
        for r in report.created:
            url = r.merge_request.web_url if r.merge_request else ""
            lines.append(f"  {r.path}: {url}".rstrip())
        lines.append("")

    if report.errors:
        lines.append("Errors:")
        for r in report.errors:
            step = r.failed_step.value if r.failed_step else "unknown"
            lines.append(f"  {r.path} [{step}]: {r.error}")
        lines.append("")

    with_failures = [r for r in report.results if r.command_failures]
    if with_failures:
        lines.append("Command failures:")
        for r in with_failures:
            for cmd in r.command_failures:
                lines.append(f"  {r.path}: {cmd}")
        lines.append("")

    return "\n".join(lines).rstrip()


# ------------------------------------------------------------------
# JSON output
# ------------------------------------------------------------------


def report_to_json(report: SyncReport) -> dict:
    """Convert a sync report to a structured dict for JSON serialisation.

    Args:
        report: The sync report.

    Returns:
        Dict with run info, counts, and per-result details.
    """
    results_list = []
    for r in report.results:
        entry: dict = {
            "name": r.name,
            "path": r.path,
            "action": r.action.value,
            "success": r.success,
        }
        if r.error:
            entry["error"] = r.error
        if r.branches:
            entry["branches"] = [
                b.model_dump(exclude_none=True) for b in r.branches
            ]
        results_list.append(entry)

    return {
        "policy": report.policy,
        "started_at": report.started_at,
        "completed_at": report.completed_at,
        "elapsed": report.elapsed,
        "timed_out": report.timed_out,
        "counts": {
            "total": len(report.results),
            "cloned": len(report.cloned),
            "updated": len(report.updated),
            "errors": len(report.errors),
        },
        "results": results_list,
    }


def merge_report_to_json(report: MergeReport) -> dict:
    results_list = []
    for r in report.results:
        entry: dict = {"path": r.path, "success": r.success}
        if r.failed_step:
            entry["failed_step"] = r.failed_step.value
        if r.error:
            entry["error"] = r.error
        if r.command_failures:
            entry["command_failures"] = list(r.command_failures)
        if r.merge_request:
            entry["merge_request"] = {
                "iid": r.merge_request.iid,
                "web_url": r.merge_request.web_url,
            }
        results_list.append(entry)

    return {
        "branch": report.branch,
        "target_branch": report.target_branch,
        "started_at": report.started_at,
        "completed_at": report.completed_at,
        "elapsed": report.elapsed,
        "counts": {
            "total": len(report.results),
            "created": len(report.created),
            "errors": len(report.errors),
        },
        "results": results_list,
    }
