"""Read-only git queries against a working copy.

Each method issues exactly one git command and parses its output.  Nothing
is cached: the sync and merge state machines call the inspector right before
every state-changing decision so they never act on stale information.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import urlparse

from .errors import RemoteURLError, RepositoryStateError
from .process import ProcessRunner

logger = logging.getLogger(__name__)

# Porcelain XY codes for unmerged paths.
UNMERGED_STATUS_CODES = frozenset(
    {"UU", "AA", "DD", "AU", "UA", "DU", "UD"}
)

COMMIT_LOG_FORMAT = "%H - %s - %ai - %ar"


@dataclass(frozen=True)
class CommitInfo:
    """One line of ``git log`` output."""

    hash: str
    message: str
    date: str
    relative_date: str


def project_path_from_url(url: str) -> str:
    """Extract ``group/project`` from a git remote URL.

    Handles ``ssh://git@host:2222/group/project.git``,
    ``git@host:group/project.git`` and ``https://host/group/project.git``.

    Raises:
        RemoteURLError: If the URL has no usable path.
    """
    raw = url.strip()
    if "://" in raw:
        path = urlparse(raw).path
    else:
        _, sep, path = raw.partition(":")
        if not sep:
            raise RemoteURLError(f"Cannot parse remote URL: {url!r}")

    path = path.strip("/").removesuffix(".git").rstrip("/")
    if not path:
        raise RemoteURLError(f"Remote URL has no project path: {url!r}")
    return path


def local_branch_name(remote_branch: str) -> str:
    """Map a remote-tracking ref to its local name (``origin/x`` -> ``x``)."""
    _, sep, rest = remote_branch.partition("/")
    return rest if sep and rest else remote_branch


class RepositoryInspector:
    """Query a repository's branch, status, commits and remotes.

    Args:
        runner: ``ProcessRunner`` used to invoke git.
    """

    def __init__(self, runner: ProcessRunner) -> None:
        self.runner = runner

    def _git(self, path: Path, *args: str, check: bool = True):
        return self.runner.run(path, "git", *args, check=check, echo=False)

    def current_branch(self, path: Path) -> str:
        """Return the checked-out branch name.

        Raises:
            RepositoryStateError: If HEAD is detached or the repository
                has no commits.
        """
        branch = self._git(path, "rev-parse", "--abbrev-ref", "HEAD").text.strip()
        if not branch:
            raise RepositoryStateError(f"Empty branch name in {path}")
        if branch == "HEAD":
            raise RepositoryStateError(f"Detached HEAD in {path}")
        return branch

    def status(self, path: Path) -> str:
        """Return ``git status --porcelain`` output."""
        return self._git(path, "status", "--porcelain").text

    def is_dirty(self, path: Path) -> bool:
        return self.status(path).strip() != ""

    def has_conflicts(self, path: Path) -> bool:
        """Return ``True`` if any path is in an unmerged state."""
        return any(
            line[:2] in UNMERGED_STATUS_CODES
            for line in self.status(path).splitlines()
        )

    def branch_exists(self, path: Path, name: str) -> bool:
        result = self._git(path, "branch", "--list", name, check=False)
        return result.ok and result.text.strip() != ""

    def current_commit(self, path: Path) -> str:
        return self._git(path, "rev-parse", "HEAD").text.strip()

    def remote_branches(self, path: Path) -> list[str]:
        """List remote-tracking branches, skipping ``HEAD -> ...`` aliases."""
        branches = []
        for line in self._git(path, "branch", "-r").stdout:
            name = line.strip()
            if not name or "->" in name:
                continue
            branches.append(name)
        return branches

    def remote_url(self, path: Path) -> str:
        url = self._git(
            path, "config", "--get", "remote.origin.url"
        ).text.strip()
        if not url:
            raise RepositoryStateError(f"No origin remote configured in {path}")
        return url

    def commit_log(
        self, path: Path, from_ref: str, to_ref: str
    ) -> list[CommitInfo]:
        """Commits reachable from *to_ref* but not from *from_ref*."""
        result = self._git(
            path,
            "log",
            f"--pretty=format:{COMMIT_LOG_FORMAT}",
            f"{from_ref}..{to_ref}",
        )
        commits = []
        for line in result.stdout:
            # Messages may contain " - " themselves; peel fields off both ends.
            commit_hash, _, rest = line.partition(" - ")
            parts = rest.rsplit(" - ", 2)
            if len(parts) < 3:
                continue
            message, date, relative = (part.strip() for part in parts)
            commits.append(
                CommitInfo(commit_hash.strip(), message, date, relative)
            )
        return commits
