"""Exception hierarchy shared by the sync and merge workflows.

Configuration problems are reported with ``ValueError`` (see ``config.py``);
everything raised by git, the GitLab API, or the orchestration layer derives
from ``HermesError`` so callers can isolate per-repository failures with a
single ``except`` clause.
"""

from __future__ import annotations

from pathlib import Path


class HermesError(Exception):
    """Base class for all hermes-sync errors."""


class CommandError(HermesError):
    """An external command could not be started or exited non-zero.

    Attributes:
        args_list: Full command line (command followed by its arguments).
        cwd: Working directory the command ran in, or ``None``.
        returncode: Exit status, or ``None`` if the process never started.
        stdout: Captured standard-output lines.
        stderr: Captured standard-error lines.
    """

    def __init__(
        self,
        args_list: list[str],
        cwd: Path | None,
        returncode: int | None,
        stdout: list[str] | None = None,
        stderr: list[str] | None = None,
        reason: str | None = None,
    ) -> None:
        self.args_list = list(args_list)
        self.cwd = cwd
        self.returncode = returncode
        self.stdout = list(stdout or [])
        self.stderr = list(stderr or [])
        command = " ".join(self.args_list)
        if reason:
            message = f"'{command}' failed: {reason}"
        elif returncode is None:
            message = f"'{command}' could not be started"
        else:
            message = f"'{command}' exited with status {returncode}"
        if cwd is not None:
            message += f" (in {cwd})"
        super().__init__(message)

    @property
    def output(self) -> str:
        """Combined stdout and stderr text."""
        return "\n".join(self.stdout + self.stderr)


class CommandCancelledError(CommandError):
    """The command was terminated because the run was cancelled."""


class RepositoryStateError(HermesError):
    """The working copy is not in a state the workflow can act on."""


class RepositoryNotFoundError(HermesError):
    """No local git repository matched the requested path or pattern."""


class RemoteURLError(HermesError):
    """A remote URL could not be turned into a project path."""


class GitLabAPIError(HermesError):
    """A GitLab REST call failed.

    Attributes:
        status_code: HTTP status, or ``None`` for transport errors.
    """

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


class DiscoveryError(HermesError):
    """Remote projects could not be listed; aborts a sync run."""


class ChannelClosedError(HermesError):
    """A progress event was published after the channel was closed."""
