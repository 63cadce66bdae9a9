"""Tests for core/inspector.py -- RepositoryInspector and URL helpers."""

from pathlib import Path

import pytest

from hermes_sync.core.errors import RemoteURLError, RepositoryStateError
from hermes_sync.core.inspector import (
    CommitInfo,
    local_branch_name,
    project_path_from_url,
)

REPO = Path("/work/repo")


# ---------------------------------------------------------------------------
# project_path_from_url
# ---------------------------------------------------------------------------


class TestProjectPathFromUrl:
    @pytest.mark.parametrize(
        "url,expected",
        [
            ("ssh://git@gitlab.example.com:2222/group/project.git", "group/project"),
            ("git@gitlab.example.com:group/project.git", "group/project"),
            ("git@gitlab.example.com:group/sub/project.git", "group/sub/project"),
            ("https://gitlab.example.com/group/project.git", "group/project"),
            ("https://gitlab.example.com/group/project", "group/project"),
            ("git@gitlab.example.com:/group/project.git/", "group/project"),
            ("file:///srv/git/group/project.git", "srv/git/group/project"),
        ],
    )
    def test_shapes(self, url, expected):
        assert project_path_from_url(url) == expected

    @pytest.mark.parametrize(
        "url", ["", "not-a-url", "https://gitlab.example.com/", "git@host:.git"]
    )
    def test_rejects_urls_without_path(self, url):
        with pytest.raises(RemoteURLError):
            project_path_from_url(url)


class TestLocalBranchName:
    def test_strips_remote(self):
        assert local_branch_name("origin/develop") == "develop"

    def test_keeps_nested_branch_path(self):
        assert local_branch_name("origin/feature/login") == "feature/login"

    def test_name_without_remote_unchanged(self):
        assert local_branch_name("main") == "main"


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


class TestCurrentBranch:
    def test_returns_branch(self, runner, inspector):
        runner.on("git", "rev-parse", "--abbrev-ref", "HEAD", stdout="develop\n")
        assert inspector.current_branch(REPO) == "develop"
        assert runner.calls == [(REPO, ["git", "rev-parse", "--abbrev-ref", "HEAD"])]

    def test_detached_head_fails(self, runner, inspector):
        runner.on("git", "rev-parse", "--abbrev-ref", "HEAD", stdout="HEAD\n")
        with pytest.raises(RepositoryStateError):
            inspector.current_branch(REPO)

    def test_empty_fails(self, runner, inspector):
        runner.on("git", "rev-parse", "--abbrev-ref", "HEAD", stdout="")
        with pytest.raises(RepositoryStateError):
            inspector.current_branch(REPO)

    def test_never_cached(self, runner, inspector):
        runner.on("git", "rev-parse", "--abbrev-ref", "HEAD", stdout="main")
        runner.on("git", "rev-parse", "--abbrev-ref", "HEAD", stdout="develop")
        assert inspector.current_branch(REPO) == "main"
        assert inspector.current_branch(REPO) == "develop"
        assert len(runner.calls) == 2


class TestStatus:
    def test_clean(self, runner, inspector):
        runner.on("git", "status", "--porcelain", stdout="")
        assert not inspector.is_dirty(REPO)
        assert not inspector.has_conflicts(REPO)

    def test_dirty(self, runner, inspector):
        runner.on("git", "status", "--porcelain", stdout=" M a.txt\n?? new.txt\n")
        assert inspector.is_dirty(REPO)
        assert not inspector.has_conflicts(REPO)

    @pytest.mark.parametrize("code", ["UU", "AA", "DD", "AU", "UA", "DU", "UD"])
    def test_unmerged_codes(self, runner, inspector, code):
        runner.on("git", "status", "--porcelain", stdout=f"{code} a.txt\n")
        assert inspector.has_conflicts(REPO)


class TestBranches:
    def test_branch_exists(self, runner, inspector):
        runner.on("git", "branch", "--list", "main", stdout="  main\n")
        runner.on("git", "branch", "--list", "develop", stdout="")
        assert inspector.branch_exists(REPO, "main")
        assert not inspector.branch_exists(REPO, "develop")

    def test_remote_branches_skip_symbolic_head(self, runner, inspector):
        runner.on(
            "git",
            "branch",
            "-r",
            stdout="  origin/HEAD -> origin/main\n  origin/develop\n  origin/main\n",
        )
        assert inspector.remote_branches(REPO) == ["origin/develop", "origin/main"]

    def test_current_commit(self, runner, inspector):
        runner.on("git", "rev-parse", "HEAD", stdout="abc123\n")
        assert inspector.current_commit(REPO) == "abc123"


class TestRemoteUrl:
    def test_returns_url(self, runner, inspector):
        runner.on(
            "git", "config", "--get", "remote.origin.url",
            stdout="git@gitlab.example.com:group/project.git\n",
        )
        assert inspector.remote_url(REPO) == "git@gitlab.example.com:group/project.git"

    def test_missing_origin(self, runner, inspector):
        runner.on("git", "config", "--get", "remote.origin.url", stdout="")
        with pytest.raises(RepositoryStateError):
            inspector.remote_url(REPO)


class TestCommitLog:
    def test_parses_lines(self, runner, inspector):
        runner.on(
            "git",
            "log",
            stdout=(
                "h1 - Fix login - 2024-01-02 10:00:00 +0000 - 2 days ago\n"
                "h2 - Bump - deps - 2024-01-01 09:00:00 +0000 - 3 days ago\n"
            ),
        )
        commits = inspector.commit_log(REPO, "origin/production", "origin/develop")
        assert commits == [
            CommitInfo("h1", "Fix login", "2024-01-02 10:00:00 +0000", "2 days ago"),
            CommitInfo("h2", "Bump - deps", "2024-01-01 09:00:00 +0000", "3 days ago"),
        ]
        assert runner.calls[0][1][-1] == "origin/production..origin/develop"

    def test_empty_log(self, runner, inspector):
        runner.on("git", "log", stdout="")
        assert inspector.commit_log(REPO, "a", "b") == []
