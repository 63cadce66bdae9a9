"""Branch comparison across local repositories.

For each selected repository, lists the commits on ``origin/<to>`` that are
not on ``origin/<from>`` and renders them as a numbered summary.  Repository
queries run concurrently in worker threads.
"""

from __future__ import annotations

import asyncio
import glob
import logging
import os
from collections.abc import Sequence
from pathlib import Path

from pydantic import BaseModel

from .core.async_utils import gather_limited, run_sync_limited
from .core.errors import HermesError, RepositoryNotFoundError
from .core.inspector import CommitInfo, RepositoryInspector
from .sync.filters import is_glob

logger = logging.getLogger(__name__)


class DiffSummary(BaseModel):
    """Commits that differ between two remote branches of one repository.

    Attributes:
        repository: Display name of the repository.
        branch_from: Branch whose commits are excluded.
        branch_to: Branch whose extra commits are listed.
        commits: ``(hash, message, date, relative_date)`` tuples, newest first.
        error: Set when the log could not be read.
    """

    repository: str
    branch_from: str
    branch_to: str
    commits: list[tuple[str, str, str, str]] = []
    error: str | None = None

    model_config = {"frozen": True}

    @property
    def has_changes(self) -> bool:
        return bool(self.commits)


def _has_git_dir(path: str) -> bool:
    return os.path.isdir(path) and os.path.isdir(os.path.join(path, ".git"))


def select_repositories(base_dir: str, path_pattern: str | None = None) -> list[Path]:
    """Pick the repositories to compare.

    - *base_dir* containing glob characters is expanded directly.
    - Otherwise *path_pattern*, if given, is joined onto *base_dir* and
      expanded.
    - Otherwise *base_dir* itself is the only repository.

    Raises:
        RepositoryNotFoundError: If a pattern matches no git repository.
    """
    if is_glob(base_dir):
        pattern = base_dir
    elif path_pattern:
        pattern = os.path.join(base_dir, path_pattern)
    else:
        return [Path(base_dir)]

    repos = [Path(m) for m in sorted(glob.glob(pattern)) if _has_git_dir(m)]
    if not repos:
        raise RepositoryNotFoundError(
            f"No git repositories found matching pattern: {pattern}"
        )
    return repos


def fetch_diff(
    inspector: RepositoryInspector,
    path: Path,
    branch_from: str,
    branch_to: str,
    name: str | None = None,
) -> DiffSummary:
    """Read ``origin/<from>..origin/<to>`` for one repository."""
    name = name or str(path)
    try:
        commits: list[CommitInfo] = inspector.commit_log(
            path, f"origin/{branch_from}", f"origin/{branch_to}"
        )
    except HermesError as exc:
        logger.error(
            "Error fetching diff for %s: it seems branch %s or %s does not exist",
            name,
            branch_from,
            branch_to,
        )
        return DiffSummary(
            repository=name,
            branch_from=branch_from,
            branch_to=branch_to,
            error=str(exc),
        )
    return DiffSummary(
        repository=name,
        branch_from=branch_from,
        branch_to=branch_to,
        commits=[
            (c.hash, c.message, c.date, c.relative_date) for c in commits
        ],
    )


async def collect_diffs(
    inspector: RepositoryInspector,
    repositories: Sequence[Path],
    branch_from: str,
    branch_to: str,
    base_dir: Path | None = None,
    max_parallel: int = 10,
) -> list[DiffSummary]:
    """Fetch diffs for all *repositories*, in input order."""
    semaphore = asyncio.Semaphore(max_parallel)

    def _name(path: Path) -> str:
        if base_dir is not None:
            try:
                return path.relative_to(base_dir).as_posix()
            except ValueError:
                pass
        return str(path)

    return await gather_limited(
        [
            run_sync_limited(
                semaphore,
                fetch_diff,
                inspector,
                path,
                branch_from,
                branch_to,
                _name(path),
            )
            for path in repositories
        ]
    )


def format_diff_summary(summary: DiffSummary) -> str:
    """Render a summary as ``Number of different commits: N`` plus lines.

    Each commit line reads ``<i>. <message> , <hash> , <date>``.
    """
    if summary.error:
        return (
            f"Error: it seems branch {summary.branch_from} or "
            f"{summary.branch_to} does not exist"
        )
    if not summary.commits:
        return (
            f"No differences between {summary.branch_from} and "
            f"{summary.branch_to}"
        )
    lines = [f"Number of different commits: {len(summary.commits)}"]
    for i, (commit_hash, message, date, _) in enumerate(summary.commits, start=1):
        lines.append(f"{i}. {message} , {commit_hash} , {date}")
    return "\n".join(lines)
