"""Apply one scripted change to many repositories and open merge requests.

Repositories are processed one at a time.  For each, the steps of
``MergeStep`` run strictly in order; the first failing step ends that
repository only and the batch moves on.  Every matched repository gets
exactly one progress event, whether it succeeded or not.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Sequence
from datetime import datetime, timezone
from pathlib import Path

from ..core.errors import CommandCancelledError, CommandError, RepositoryStateError
from ..core.inspector import RepositoryInspector
from ..core.process import ProcessRunner
from ..sync.filters import FilterRule
from ..sync.models import ProgressEvent
from ..sync.scheduler import ProgressChannel
from .models import ChangeSpec, MergeReport, MergeResult, MergeStep
from .publisher import MergeRequestPublisher, resolve_project
from .walker import count_matching_repositories, iter_repositories

logger = logging.getLogger(__name__)

# git commit exits 1 with one of these when there is nothing to record.
NOTHING_TO_COMMIT_MARKERS = (
    "nothing to commit",
    "nothing added to commit",
    "no changes added to commit",
)


class ChangePropagator:
    """Run the merge automation state machine.

    Args:
        runner: Runs git and the change script.
        inspector: Read-only repository queries.
        publisher: Opens merge requests.
        change: The change to apply.
        base_branches: Branches a repository may start from, in order of
            preference.
    """

    def __init__(
        self,
        runner: ProcessRunner,
        inspector: RepositoryInspector,
        publisher: MergeRequestPublisher,
        change: ChangeSpec,
        base_branches: Sequence[str] = ("develop", "main"),
    ) -> None:
        self.runner = runner
        self.inspector = inspector
        self.publisher = publisher
        self.change = change
        self.base_branches = tuple(base_branches)

    def _git(self, path: Path, *args: str, check: bool = True):
        return self.runner.run(path, "git", *args, check=check)

    # ------------------------------------------------------------------
    # Batch
    # ------------------------------------------------------------------

    def run(
        self,
        base_dir: Path,
        rule: FilterRule | None = None,
        channel: ProgressChannel | None = None,
    ) -> MergeReport:
        """Process every matching repository under *base_dir*.

        The channel, when given, receives one event per repository and is
        closed once the walk is over.
        """
        started_at = datetime.now(timezone.utc).isoformat()
        start = time.monotonic()
        base_dir = Path(base_dir)
        results: list[MergeResult] = []

        try:
            total = count_matching_repositories(base_dir, rule)
            logger.info(
                "Applying change to %d repositories under %s", total, base_dir
            )
            for index, path in enumerate(iter_repositories(base_dir, rule), start=1):
                result = self.process(path, index, total, base_dir=base_dir)
                results.append(result)
                if channel is not None:
                    channel.publish(
                        ProgressEvent(
                            name=result.path,
                            success=result.success,
                            index=index,
                            total=max(total, index),
                            error=result.error,
                        )
                    )
        finally:
            if channel is not None:
                channel.close()

        return MergeReport(
            branch=self.change.branch,
            target_branch=self.change.target_branch,
            results=results,
            started_at=started_at,
            completed_at=datetime.now(timezone.utc).isoformat(),
            elapsed=round(time.monotonic() - start, 3),
        )

    # ------------------------------------------------------------------
    # Single repository
    # ------------------------------------------------------------------

    def process(
        self,
        path: Path,
        index: int = 1,
        total: int = 1,
        base_dir: Path | None = None,
    ) -> MergeResult:
        """Apply the change to the repository at *path*.

        Returns:
            A ``MergeResult``; failures are reported, never raised.
        """
        name = _display_name(path, base_dir)
        logger.info("[%d/%d] Processing %s", index, total, name)

        step = MergeStep.NORMALIZE_BRANCH
        command_failures: list[str] = []
        try:
            self.checkout_base_branch(path)

            step = MergeStep.RESET
            if self.inspector.is_dirty(path):
                self._git(path, "reset", "--hard")

            step = MergeStep.CREATE_BRANCH
            self._git(path, "checkout", "-b", self.change.branch)

            step = MergeStep.RUN_COMMANDS
            command_failures = self.run_commands(path)

            step = MergeStep.COMMIT
            self.commit(path)

            step = MergeStep.PUSH
            self._git(path, "push", "-u", "origin", "HEAD")

            step = MergeStep.RESOLVE_PROJECT
            project_id = resolve_project(
                self.publisher.client, self.inspector, path
            )

            step = MergeStep.PUBLISH
            merge_request = self.publisher.publish(
                project_id,
                source_branch=self.change.branch,
                target_branch=self.change.target_branch,
                title=self.change.title,
                description=self.change.description,
            )
        except Exception as exc:
            logger.error(
                "Step %s failed for %s: %s", step.value, name, exc
            )
            return MergeResult(
                path=name,
                success=False,
                failed_step=step,
                error=str(exc),
                command_failures=command_failures,
            )

        return MergeResult(
            path=name,
            success=True,
            command_failures=command_failures,
            merge_request=merge_request,
        )

    def checkout_base_branch(self, path: Path) -> str:
        """Make sure *path* is on one of the base branches.

        Returns:
            The branch the repository is on afterwards.

        Raises:
            RepositoryStateError: If none of the base branches exist.
        """
        current = self.inspector.current_branch(path)
        if current in self.base_branches:
            return current

        for candidate in self.base_branches:
            if self.inspector.branch_exists(path, candidate):
                logger.info(
                    "Switching %s from %s to %s", path, current, candidate
                )
                self._git(path, "checkout", candidate)
                return candidate

        raise RepositoryStateError(
            f"None of the base branches exist: {', '.join(self.base_branches)}"
        )

    def run_commands(self, path: Path) -> list[str]:
        """Run each script command; failures are logged and collected."""
        failures: list[str] = []
        for argv in self.change.command_list():
            command_line = " ".join(argv)
            try:
                result = self.runner.run(path, argv[0], *argv[1:], check=False)
            except CommandCancelledError:
                raise
            except CommandError as exc:
                logger.error("Command failed in %s: %s", path, exc)
                failures.append(command_line)
                continue
            if not result.ok:
                logger.error(
                    "Command '%s' exited with status %d in %s",
                    command_line,
                    result.returncode,
                    path,
                )
                failures.append(command_line)
        return failures

    def commit(self, path: Path) -> bool:
        """Stage everything and commit.

        Returns:
            ``True`` if a commit was made, ``False`` if there was nothing
            to commit.

        Raises:
            CommandError: For any other commit failure.
        """
        self._git(path, "add", ".")
        result = self._git(
            path, "commit", "-m", self.change.commit_message, check=False
        )
        if result.ok:
            return True

        output = result.output.lower()
        if result.returncode == 1 and any(
            marker in output for marker in NOTHING_TO_COMMIT_MARKERS
        ):
            logger.info("Nothing to commit in %s", path)
            return False

        raise CommandError(
            result.args, path, result.returncode, result.stdout, result.stderr
        )


def _display_name(path: Path, base_dir: Path | None) -> str:
    if base_dir is None:
        return str(path)
    rel = Path(path).relative_to(base_dir).as_posix()
    return Path(path).name if rel == "." else rel
