"""Tests for sync/synchronizer.py -- clone/update state machine.

Git is replaced with a ``ScriptedRunner`` so each test pins the exact
command sequence a state transition produces.
"""

from pathlib import Path

import pytest

from hermes_sync.core.errors import CommandCancelledError
from hermes_sync.sync.models import (
    AllBranches,
    RemoteProject,
    SingleBranch,
    SyncAction,
)
from hermes_sync.sync.synchronizer import RepositorySynchronizer

PROJECT = RemoteProject(
    id=1,
    name="project",
    path_with_namespace="group/project",
    ssh_url="git@gitlab.example.com:group/project.git",
)


@pytest.fixture
def base_dir(tmp_path):
    return tmp_path / "repos"


@pytest.fixture
def existing(base_dir):
    """An already-cloned working copy directory."""
    path = base_dir / "group" / "project"
    path.mkdir(parents=True)
    return path


def _synchronizer(runner, inspector, base_dir, policy=None):
    return RepositorySynchronizer(
        runner, inspector, base_dir, policy or SingleBranch(name="develop")
    )


# ---------------------------------------------------------------------------
# Absent -> Cloned
# ---------------------------------------------------------------------------


class TestClone:
    def test_clones_missing_repository(self, runner, inspector, base_dir):
        sync = _synchronizer(runner, inspector, base_dir)

        result = sync.sync(PROJECT)

        expected = base_dir / "group" / "project"
        assert result.success
        assert result.action == SyncAction.CLONE
        assert result.path == str(expected)
        assert runner.calls == [
            (
                base_dir,
                ["git", "clone", PROJECT.ssh_url, str(expected)],
            )
        ]
        assert base_dir.is_dir()

    def test_clone_failure_reported(self, runner, inspector, base_dir):
        runner.on("git", "clone", returncode=128, stderr="fatal: no access")
        sync = _synchronizer(runner, inspector, base_dir)

        result = sync.sync(PROJECT)

        assert not result.success
        assert result.action == SyncAction.CLONE
        assert "exited with status 128" in result.error

    def test_unparseable_url_reported(self, runner, inspector, base_dir):
        project = PROJECT.model_copy(update={"ssh_url": "not-a-url"})
        result = _synchronizer(runner, inspector, base_dir).sync(project)

        assert not result.success
        assert result.path == ""
        assert runner.calls == []


# ---------------------------------------------------------------------------
# Present -> Fetched -> Reconciled (single branch)
# ---------------------------------------------------------------------------


class TestSingleBranchUpdate:
    def test_clean_tree(self, runner, inspector, base_dir, existing):
        runner.on("git", "rev-parse", "HEAD", stdout="abc123")

        result = _synchronizer(runner, inspector, base_dir).sync(PROJECT)

        assert result.success
        assert result.action == SyncAction.UPDATE
        assert runner.git_commands() == [
            "fetch --all",
            "checkout develop",
            "rev-parse HEAD",
            "status --porcelain",
            "pull",
        ]
        assert [b.branch for b in result.branches] == ["develop"]
        assert not result.branches[0].stashed
        assert all(cwd == existing for cwd, _ in runner.calls)

    def test_dirty_tree_stashed_and_restored(
        self, runner, inspector, base_dir, existing
    ):
        runner.on("git", "rev-parse", "HEAD", stdout="abc123")
        runner.on("git", "status", "--porcelain", stdout=" M a.txt")
        runner.on("git", "stash", stdout="Saved working directory and index state")

        result = _synchronizer(runner, inspector, base_dir).sync(PROJECT)

        assert result.success
        assert result.branches[0].stashed
        assert runner.git_commands() == [
            "fetch --all",
            "checkout develop",
            "rev-parse HEAD",
            "status --porcelain",
            "stash",
            "pull",
            "stash apply",
            "status --porcelain",
            "stash drop",
        ]

    def test_untracked_only_changes_not_stashed(
        self, runner, inspector, base_dir, existing
    ):
        runner.on("git", "status", "--porcelain", stdout="?? new.txt")
        runner.on("git", "stash", stdout="No local changes to save")

        result = _synchronizer(runner, inspector, base_dir).sync(PROJECT)

        assert result.success
        assert not result.branches[0].stashed
        assert "stash apply" not in runner.git_commands()

    def test_conflict_rolls_back_to_safe_commit(
        self, runner, inspector, base_dir, existing
    ):
        runner.on("git", "rev-parse", "HEAD", stdout="safe123")
        runner.on("git", "status", "--porcelain", stdout=" M a.txt")
        runner.on("git", "status", "--porcelain", stdout="UU a.txt")
        runner.on("git", "stash", stdout="Saved working directory")
        runner.on("git", "stash", "apply", returncode=1, stdout="CONFLICT")
        runner.on("git", "merge", "--abort", returncode=128)

        result = _synchronizer(runner, inspector, base_dir).sync(PROJECT)

        assert not result.success
        assert result.error == "develop: conflicts encountered"
        branch = result.branches[0]
        assert branch.conflict and branch.stashed
        assert runner.git_commands()[-5:] == [
            "stash apply",
            "status --porcelain",
            "merge --abort",
            "reset --hard safe123",
            "stash apply",
        ]
        assert "stash drop" not in runner.git_commands()

    def test_failed_apply_without_conflict_keeps_stash(
        self, runner, inspector, base_dir, existing
    ):
        runner.on("git", "status", "--porcelain", stdout=" M a.txt")
        runner.on("git", "stash", stdout="Saved working directory")
        runner.on("git", "stash", "apply", returncode=1, stderr="error: x")

        result = _synchronizer(runner, inspector, base_dir).sync(PROJECT)

        assert not result.success
        assert result.branches[0].error == "stash apply failed"
        assert not result.branches[0].conflict
        assert "stash drop" not in runner.git_commands()

    def test_stash_drop_failure_is_not_fatal(
        self, runner, inspector, base_dir, existing
    ):
        runner.on("git", "status", "--porcelain", stdout=" M a.txt")
        runner.on("git", "stash", stdout="Saved working directory")
        runner.on("git", "stash", "drop", returncode=1)

        result = _synchronizer(runner, inspector, base_dir).sync(PROJECT)

        assert result.success

    def test_fetch_failure_fails_repository(
        self, runner, inspector, base_dir, existing
    ):
        runner.on("git", "fetch", returncode=1, stderr="fatal: unreachable")

        result = _synchronizer(runner, inspector, base_dir).sync(PROJECT)

        assert not result.success
        assert result.action == SyncAction.UPDATE
        assert "fetch --all" in result.error
        assert runner.git_commands() == ["fetch --all"]

    def test_missing_branch_fails(self, runner, inspector, base_dir, existing):
        runner.on("git", "checkout", returncode=1, stderr="error: pathspec")

        result = _synchronizer(runner, inspector, base_dir).sync(PROJECT)

        assert not result.success
        assert result.error.startswith("develop: ")

    def test_cancellation_fails_repository(
        self, runner, inspector, base_dir, existing
    ):
        runner.on(
            "git",
            "pull",
            error=CommandCancelledError(
                ["git", "pull"], existing, None, reason="run was cancelled"
            ),
        )

        result = _synchronizer(runner, inspector, base_dir).sync(PROJECT)

        assert not result.success
        assert "cancelled" in result.error
        assert result.branches == []


# ---------------------------------------------------------------------------
# All branches
# ---------------------------------------------------------------------------


class TestAllBranchesUpdate:
    REMOTES = "  origin/HEAD -> origin/main\n  origin/develop\n  origin/main\n"

    def _sync(self, runner, inspector, base_dir):
        return _synchronizer(runner, inspector, base_dir, AllBranches())

    def test_every_remote_branch_then_restore(
        self, runner, inspector, base_dir, existing
    ):
        runner.on("git", "rev-parse", "--abbrev-ref", "HEAD", stdout="main")
        runner.on("git", "branch", "-r", stdout=self.REMOTES)

        result = self._sync(runner, inspector, base_dir).sync(PROJECT)

        assert result.success
        assert [b.branch for b in result.branches] == ["develop", "main"]
        commands = runner.git_commands()
        assert "checkout -B develop origin/develop" in commands
        assert "checkout -B main origin/main" in commands
        assert commands[-1] == "checkout main"

    def test_stash_taken_before_switching(
        self, runner, inspector, base_dir, existing
    ):
        runner.on("git", "rev-parse", "--abbrev-ref", "HEAD", stdout="main")
        runner.on("git", "branch", "-r", stdout="  origin/develop\n")
        runner.on("git", "status", "--porcelain", stdout=" M a.txt")
        runner.on("git", "stash", stdout="Saved working directory")

        self._sync(runner, inspector, base_dir).sync(PROJECT)

        commands = runner.git_commands()
        assert commands.index("stash") < commands.index(
            "checkout -B develop origin/develop"
        )

    def test_one_failed_branch_fails_repository(
        self, runner, inspector, base_dir, existing
    ):
        runner.on("git", "rev-parse", "--abbrev-ref", "HEAD", stdout="main")
        runner.on("git", "branch", "-r", stdout=self.REMOTES)
        runner.on("git", "pull", returncode=1, stderr="fatal: diverged")
        runner.on("git", "pull", returncode=0)

        result = self._sync(runner, inspector, base_dir).sync(PROJECT)

        assert not result.success
        assert [b.success for b in result.branches] == [False, True]
        assert [b.branch for b in result.failed_branches] == ["develop"]
        assert result.error.startswith("develop: ")
        assert runner.git_commands()[-1] == "checkout main"

    def test_restore_failure_reported(
        self, runner, inspector, base_dir, existing
    ):
        runner.on("git", "rev-parse", "--abbrev-ref", "HEAD", stdout="main")
        runner.on("git", "branch", "-r", stdout="  origin/develop\n")
        runner.on("git", "checkout", "main", returncode=1)

        result = self._sync(runner, inspector, base_dir).sync(PROJECT)

        assert not result.success
        assert result.error == "failed to restore branch main"
        assert all(b.success for b in result.branches)

    def test_detached_head_fails_repository(
        self, runner, inspector, base_dir, existing
    ):
        runner.on("git", "rev-parse", "--abbrev-ref", "HEAD", stdout="HEAD")

        result = self._sync(runner, inspector, base_dir).sync(PROJECT)

        assert not result.success
        assert "Detached HEAD" in result.error


def test_local_path_uses_url_path(runner, inspector):
    sync = _synchronizer(runner, inspector, Path("/srv/repos"))
    assert sync.local_path(PROJECT) == Path("/srv/repos/group/project")
