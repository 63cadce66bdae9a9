"""Shared pytest fixtures for hermes-sync tests."""

import shutil
import subprocess
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from hermes_sync.config import Config
from hermes_sync.core.errors import CommandError
from hermes_sync.core.inspector import RepositoryInspector
from hermes_sync.core.process import CommandResult

GIT_AVAILABLE = shutil.which("git") is not None

requires_git = pytest.mark.skipif(
    not GIT_AVAILABLE, reason="git executable not available"
)


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "git: mark test as requiring a git executable"
    )


class ScriptedRunner:
    """Stand-in for ``ProcessRunner`` that records and replays commands.

    Responses are registered per argv prefix with ``on``; the longest
    matching prefix wins.  Several responses for the same prefix are
    consumed in order and the last one repeats.  Unscripted commands
    succeed with no output.
    """

    def __init__(self):
        self.calls: list[tuple[Path | None, list[str]]] = []
        self.cancel_event = None
        self._responses: dict[tuple[str, ...], list] = {}

    def on(
        self,
        *prefix: str,
        stdout: str = "",
        stderr: str = "",
        returncode: int = 0,
        error: Exception | None = None,
    ) -> "ScriptedRunner":
        self._responses.setdefault(tuple(prefix), []).append(
            (stdout, stderr, returncode, error)
        )
        return self

    def _lookup(self, argv: list[str]):
        best = None
        for prefix in self._responses:
            if tuple(argv[: len(prefix)]) == prefix:
                if best is None or len(prefix) > len(best):
                    best = prefix
        if best is None:
            return "", "", 0, None
        queue = self._responses[best]
        return queue.pop(0) if len(queue) > 1 else queue[0]

    def run(self, cwd, command, *args, check=True, echo=True):
        argv = [command, *(str(a) for a in args)]
        cwd_path = Path(cwd) if cwd is not None else None
        self.calls.append((cwd_path, argv))
        stdout, stderr, returncode, error = self._lookup(argv)
        if error is not None:
            raise error
        out_lines = stdout.splitlines()
        err_lines = stderr.splitlines()
        if returncode != 0 and check:
            raise CommandError(argv, cwd_path, returncode, out_lines, err_lines)
        return CommandResult(argv, cwd_path, returncode, out_lines, err_lines)

    @property
    def commands(self) -> list[str]:
        """Every recorded command line, in call order."""
        return [" ".join(argv) for _, argv in self.calls]

    def git_commands(self) -> list[str]:
        """Recorded git subcommands without the ``git`` prefix."""
        return [
            " ".join(argv[1:]) for _, argv in self.calls if argv[0] == "git"
        ]


@pytest.fixture
def runner():
    """A fresh ``ScriptedRunner``."""
    return ScriptedRunner()


@pytest.fixture
def inspector(runner):
    return RepositoryInspector(runner)


@pytest.fixture
def mock_config():
    """Create a Config instance for testing."""
    return Config(
        gitlab_url="https://gitlab.example.com",
        token="test-token",
        insecure=False,
    )


@pytest.fixture
def mock_gitlab_client(mock_config):
    """Create a mock GitLabClient instance for testing."""
    from hermes_sync.core.client import GitLabClient

    client = MagicMock(spec=GitLabClient)
    client.config = mock_config
    return client


# ---------------------------------------------------------------------------
# Real git helpers
# ---------------------------------------------------------------------------


@pytest.fixture
def git_env(tmp_path, monkeypatch):
    """Isolate git from the user's global configuration."""
    home = tmp_path / "home"
    home.mkdir()
    (home / ".gitconfig").write_text(
        "[user]\n"
        "\tname = Test User\n"
        "\temail = test@example.com\n"
        "[pull]\n"
        "\trebase = false\n"
        "[advice]\n"
        "\tdetachedHead = false\n",
        encoding="utf-8",
    )
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")
    monkeypatch.delenv("GIT_DIR", raising=False)
    monkeypatch.delenv("GIT_WORK_TREE", raising=False)
    return home


def git(cwd, *args) -> str:
    """Run git in *cwd* and return stripped stdout."""
    completed = subprocess.run(
        ["git", *args],
        cwd=str(cwd),
        check=True,
        capture_output=True,
        text=True,
    )
    return completed.stdout.strip()


def commit_file(repo: Path, name: str, content: str, message: str) -> str:
    """Write *name*, commit it and return the new HEAD."""
    (repo / name).write_text(content, encoding="utf-8")
    git(repo, "add", name)
    git(repo, "commit", "-q", "-m", message)
    return git(repo, "rev-parse", "HEAD")


@pytest.fixture
def origin(tmp_path, git_env):
    """A bare origin with one commit on ``main``, plus a seeding clone.

    Returns ``(bare_path, seed_clone_path)``.  Push from the seed clone to
    simulate upstream changes.
    """
    bare = tmp_path / "remote" / "group" / "project.git"
    bare.mkdir(parents=True)
    git(bare, "init", "-q", "--bare")
    git(bare, "symbolic-ref", "HEAD", "refs/heads/main")

    seed = tmp_path / "seed"
    seed.mkdir()
    git(seed, "init", "-q")
    git(seed, "checkout", "-q", "-b", "main")
    commit_file(seed, "a.txt", "base\n", "initial")
    git(seed, "remote", "add", "origin", str(bare))
    git(seed, "push", "-q", "-u", "origin", "main")
    return bare, seed
