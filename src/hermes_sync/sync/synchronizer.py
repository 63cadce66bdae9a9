"""Clone-or-update state machine for a single repository.

``Absent -> Cloned`` when the working copy does not exist yet, otherwise
``Present -> Fetched -> Reconciled``.  Reconciling a branch protects local
work with a stash:

1. Check out the branch and record its HEAD as the safe commit.
2. Stash local changes if the working tree is dirty.
3. Pull.
4. Re-apply the stash.  A clean apply drops the stash.  An apply that
   leaves unmerged paths aborts, hard-resets to the safe commit, re-applies
   the stash best-effort and reports the branch as failed.  The stash is
   kept whenever the apply did not succeed.

Error handling is per-repository (and per-branch under ``AllBranches``):
``sync`` never raises.
"""

from __future__ import annotations

import logging
from pathlib import Path

from ..core.errors import CommandCancelledError, CommandError, HermesError
from ..core.inspector import (
    RepositoryInspector,
    local_branch_name,
    project_path_from_url,
)
from ..core.process import ProcessRunner
from .models import (
    AllBranches,
    BranchResult,
    RemoteProject,
    SingleBranch,
    SyncAction,
    SyncResult,
)

logger = logging.getLogger(__name__)

_NO_CHANGES_TO_STASH = "No local changes to save"


class RepositorySynchronizer:
    """Bring local clones of remote projects up to date.

    Args:
        runner: Runs git commands.
        inspector: Read-only repository queries.
        base_dir: Directory clones live under.
        policy: ``AllBranches()`` or ``SingleBranch(name)``.
    """

    def __init__(
        self,
        runner: ProcessRunner,
        inspector: RepositoryInspector,
        base_dir: Path,
        policy: AllBranches | SingleBranch,
    ) -> None:
        self.runner = runner
        self.inspector = inspector
        self.base_dir = Path(base_dir)
        self.policy = policy

    def _git(self, path: Path, *args: str, check: bool = True):
        return self.runner.run(path, "git", *args, check=check)

    def local_path(self, project: RemoteProject) -> Path:
        """Working copy location for *project* under ``base_dir``."""
        return self.base_dir / project_path_from_url(project.ssh_url)

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    def sync(self, project: RemoteProject) -> SyncResult:
        """Clone or update *project*.

        Returns:
            A ``SyncResult``; failures are reported, never raised.
        """
        action = SyncAction.CLONE
        path_text = ""
        try:
            path = self.local_path(project)
            path_text = str(path)
            self.base_dir.mkdir(parents=True, exist_ok=True)
            if not path.exists():
                return self._clone(project, path)
            action = SyncAction.UPDATE
            return self._update(project, path)
        except Exception as exc:
            logger.error(
                "Failed to %s %s (%s): %s",
                action.value,
                project.name,
                path_text or project.ssh_url,
                exc,
            )
            return SyncResult(
                name=project.name,
                path=path_text,
                action=action,
                success=False,
                error=str(exc),
            )

    # ------------------------------------------------------------------
    # States
    # ------------------------------------------------------------------

    def _clone(self, project: RemoteProject, path: Path) -> SyncResult:
        logger.info("Cloning %s into %s", project.name, path)
        self._git(self.base_dir, "clone", project.ssh_url, str(path))
        return SyncResult(
            name=project.name,
            path=str(path),
            action=SyncAction.CLONE,
            success=True,
        )

    def _update(self, project: RemoteProject, path: Path) -> SyncResult:
        logger.info("Updating %s (%s)", project.name, self.policy.describe())
        self._git(path, "fetch", "--all")

        if isinstance(self.policy, SingleBranch):
            branches = [self._reconcile(path, self.policy.name)]
            restore_error = None
        else:
            original = self.inspector.current_branch(path)
            branches = [
                self._reconcile(path, local_branch_name(remote), remote)
                for remote in self.inspector.remote_branches(path)
            ]
            restore_error = self._restore_branch(path, original)

        failed = [b for b in branches if not b.success]
        errors = [f"{b.branch}: {b.error}" for b in failed]
        if restore_error:
            errors.append(restore_error)

        return SyncResult(
            name=project.name,
            path=str(path),
            action=SyncAction.UPDATE,
            success=not errors,
            error="; ".join(errors) or None,
            branches=branches,
        )

    def _restore_branch(self, path: Path, original: str) -> str | None:
        try:
            self._git(path, "checkout", original)
        except CommandCancelledError:
            raise
        except CommandError as exc:
            logger.error(
                "Could not return %s to branch %s: %s", path, original, exc
            )
            return f"failed to restore branch {original}"
        return None

    # ------------------------------------------------------------------
    # Branch reconciliation
    # ------------------------------------------------------------------

    def _reconcile(
        self, path: Path, branch: str, remote: str | None = None
    ) -> BranchResult:
        """Update one branch, keeping local changes.

        With *remote* the local branch is (re)created from it with
        ``checkout -B``; local changes are stashed before the switch.
        """
        stashed = False
        try:
            if remote is None:
                self._git(path, "checkout", branch)
                safe_commit = self.inspector.current_commit(path)
                stashed = self._stash_if_dirty(path)
            else:
                stashed = self._stash_if_dirty(path)
                self._git(path, "checkout", "-B", branch, remote)
                safe_commit = self.inspector.current_commit(path)

            self._git(path, "pull")

            if stashed:
                return self._apply_stash(path, branch, safe_commit)
        except CommandCancelledError:
            raise
        except HermesError as exc:
            logger.error(
                "Failed to reconcile branch %s in %s: %s", branch, path, exc
            )
            return BranchResult(
                branch=branch, success=False, stashed=stashed, error=str(exc)
            )

        return BranchResult(branch=branch, success=True, stashed=stashed)

    def _stash_if_dirty(self, path: Path) -> bool:
        if not self.inspector.is_dirty(path):
            return False
        result = self._git(path, "stash")
        # Untracked-only changes leave nothing to stash.
        return _NO_CHANGES_TO_STASH not in result.output

    def _apply_stash(
        self, path: Path, branch: str, safe_commit: str
    ) -> BranchResult:
        result = self._git(path, "stash", "apply", check=False)

        if self.inspector.has_conflicts(path):
            logger.warning(
                "Stash apply conflicted on %s in %s, rolling back to %s",
                branch,
                path,
                safe_commit,
            )
            self._rollback(path, safe_commit)
            return BranchResult(
                branch=branch,
                success=False,
                stashed=True,
                conflict=True,
                error="conflicts encountered",
            )

        if not result.ok:
            logger.error(
                "Stash apply failed on %s in %s; stash kept", branch, path
            )
            return BranchResult(
                branch=branch,
                success=False,
                stashed=True,
                error="stash apply failed",
            )

        drop = self._git(path, "stash", "drop", check=False)
        if not drop.ok:
            logger.warning("Could not drop stash in %s", path)
        return BranchResult(branch=branch, success=True, stashed=True)

    def _rollback(self, path: Path, safe_commit: str) -> None:
        """Return to *safe_commit* and restore the stashed work if possible."""
        abort = self._git(path, "merge", "--abort", check=False)
        if not abort.ok:
            logger.debug("merge --abort failed in %s (no merge in progress)", path)
        self._git(path, "reset", "--hard", safe_commit)
        reapply = self._git(path, "stash", "apply", check=False)
        if not reapply.ok:
            logger.warning(
                "Could not re-apply stash in %s; changes remain in the stash",
                path,
            )
