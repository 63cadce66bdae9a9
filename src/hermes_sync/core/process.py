"""External command execution with streamed, stream-tagged output.

Every git invocation made by the sync and merge workflows goes through
``ProcessRunner.run``.  Output lines are forwarded to the
``hermes_sync.process`` logger as they arrive (tagged ``stdout`` or
``stderr``) and are also captured on the returned ``CommandResult`` so
read-only queries can parse them.

A shared ``threading.Event`` can be handed to the runner; once it is set,
commands that are still running are terminated and new ones are refused.
"""

from __future__ import annotations

import logging
import os
import subprocess
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import IO

from .errors import CommandCancelledError, CommandError

logger = logging.getLogger(__name__)
output_logger = logging.getLogger("hermes_sync.process")


@dataclass
class CommandResult:
    """Outcome of a finished command."""

    args: list[str]
    cwd: Path | None
    returncode: int
    stdout: list[str] = field(default_factory=list)
    stderr: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    @property
    def text(self) -> str:
        """Standard output joined back into a single string."""
        return "\n".join(self.stdout)

    @property
    def output(self) -> str:
        """Standard output and standard error, in that order."""
        return "\n".join(self.stdout + self.stderr)


def _pump(
    stream: IO[str], name: str, sink: list[str], level: int
) -> None:
    """Read *stream* line by line into *sink*, logging each line."""
    with stream:
        for raw in stream:
            line = raw.rstrip("\r\n")
            sink.append(line)
            output_logger.log(
                level, "[%s] %s", name, line, extra={"stream": name}
            )


class ProcessRunner:
    """Run commands to completion, streaming their output to the log.

    Args:
        cancel_event: Optional shared event; when set, in-flight commands
            are terminated and new commands raise ``CommandCancelledError``.
        poll_interval: Seconds between cancellation checks while waiting.
        terminate_timeout: Grace period after ``terminate()`` before the
            child is killed.
        drain_timeout: How long to keep reading output once the child has
            exited.  A background process it started may hold the pipes
            open; its later output is not captured.
        env: Extra environment variables for every child process.
    """

    def __init__(
        self,
        cancel_event: threading.Event | None = None,
        poll_interval: float = 0.1,
        terminate_timeout: float = 5.0,
        drain_timeout: float = 1.0,
        env: dict[str, str] | None = None,
    ) -> None:
        self.cancel_event = cancel_event
        self.poll_interval = poll_interval
        self.terminate_timeout = terminate_timeout
        self.drain_timeout = drain_timeout
        # Never block on an interactive credential prompt.
        self._env = {**os.environ, "GIT_TERMINAL_PROMPT": "0"}
        if env:
            self._env.update(env)

    @property
    def cancelled(self) -> bool:
        return self.cancel_event is not None and self.cancel_event.is_set()

    def run(
        self,
        cwd: Path | str | None,
        command: str,
        *args: str,
        check: bool = True,
        echo: bool = True,
    ) -> CommandResult:
        """Run ``command args...`` in *cwd* and wait for it to finish.

        Args:
            cwd: Working directory, or ``None`` for the current directory.
            command: Executable name (resolved on ``PATH``).
            *args: Command arguments.
            check: Raise ``CommandError`` on a non-zero exit status.
            echo: Log output at INFO; ``False`` logs it at DEBUG.

        Returns:
            The ``CommandResult`` with captured output.

        Raises:
            CommandError: If the command cannot be started, or exits
                non-zero while *check* is set.
            CommandCancelledError: If the cancel event fired.
        """
        argv = [command, *(str(a) for a in args)]
        cwd_path = Path(cwd) if cwd is not None else None
        level = logging.INFO if echo else logging.DEBUG

        if self.cancelled:
            raise CommandCancelledError(
                argv, cwd_path, None, reason="run was cancelled"
            )

        logger.log(
            level,
            "Running command: %s (cwd=%s)",
            " ".join(argv),
            cwd_path if cwd_path is not None else ".",
        )

        try:
            proc = subprocess.Popen(
                argv,
                cwd=str(cwd_path) if cwd_path is not None else None,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                encoding="utf-8",
                errors="replace",
                env=self._env,
            )
        except OSError as exc:
            logger.error(
                "Error starting command %s: %s", " ".join(argv), exc
            )
            raise CommandError(
                argv, cwd_path, None, reason=str(exc)
            ) from exc

        stdout: list[str] = []
        stderr: list[str] = []
        readers = [
            threading.Thread(
                target=_pump,
                args=(proc.stdout, "stdout", stdout, level),
                daemon=True,
            ),
            threading.Thread(
                target=_pump,
                args=(proc.stderr, "stderr", stderr, level),
                daemon=True,
            ),
        ]
        for reader in readers:
            reader.start()

        was_cancelled = self._wait(proc)

        for reader in readers:
            reader.join(timeout=self.drain_timeout)
        if any(reader.is_alive() for reader in readers):
            logger.debug(
                "Output of %s still open after exit (pid %d), not waiting",
                " ".join(argv),
                proc.pid,
            )
        stdout = list(stdout)
        stderr = list(stderr)

        if was_cancelled:
            raise CommandCancelledError(
                argv,
                cwd_path,
                proc.returncode,
                stdout,
                stderr,
                reason="terminated by cancellation",
            )

        result = CommandResult(
            args=argv,
            cwd=cwd_path,
            returncode=proc.returncode,
            stdout=stdout,
            stderr=stderr,
        )

        if not result.ok:
            if check:
                logger.error(
                    "Command execution failed: %s (cwd=%s, status=%d)",
                    " ".join(argv),
                    cwd_path,
                    result.returncode,
                )
                raise CommandError(
                    argv, cwd_path, result.returncode, stdout, stderr
                )
            logger.debug(
                "Command exited with status %d: %s",
                result.returncode,
                " ".join(argv),
            )

        return result

    def _wait(self, proc: subprocess.Popen) -> bool:
        """Wait for *proc*; return ``True`` if it was cancelled."""
        if self.cancel_event is None:
            proc.wait()
            return False

        while True:
            try:
                proc.wait(timeout=self.poll_interval)
                return False
            except subprocess.TimeoutExpired:
                if not self.cancel_event.is_set():
                    continue
            logger.warning("Cancelling command (pid %d)", proc.pid)
            proc.terminate()
            try:
                proc.wait(timeout=self.terminate_timeout)
            except subprocess.TimeoutExpired:
                proc.kill()
                proc.wait()
            return True
