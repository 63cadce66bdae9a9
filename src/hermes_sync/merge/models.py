"""Pydantic models for merge-request automation.

- ``ChangeSpec``: The change applied to every matched repository.
- ``MergeStep``: Ordered steps of the per-repository state machine.
- ``ProjectId``: Resolved GitLab project identity.
- ``MergeRequest``: A merge request created by the publisher.
- ``MergeResult``: Outcome for one repository.
- ``MergeReport``: Aggregate results for a full run.

All models are frozen (immutable) for safety.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator

from ..validators import (
    split_command_script,
    validate_branch_name,
    validate_command_script,
    validate_commit_message,
)


class ChangeSpec(BaseModel):
    """What to change and how to propose it.

    Attributes:
        branch: Feature branch created in each repository.
        commands: ``;``-separated command script run in each repository.
        commit_message: Message for the commit holding the changes.
        target_branch: Merge request target.
        title: Merge request title; generated when omitted.
        description: Merge request description; generated when omitted.
    """

    branch: str
    commands: str
    commit_message: str
    target_branch: str
    title: str | None = None
    description: str | None = None

    model_config = {"frozen": True}

    @field_validator("branch", "target_branch")
    @classmethod
    def _check_branch(cls, value: str) -> str:
        is_valid, error_msg = validate_branch_name(value)
        if not is_valid:
            raise ValueError(error_msg)
        return value

    @field_validator("commands")
    @classmethod
    def _check_commands(cls, value: str) -> str:
        is_valid, error_msg = validate_command_script(value)
        if not is_valid:
            raise ValueError(error_msg)
        return value

    @field_validator("commit_message")
    @classmethod
    def _check_message(cls, value: str) -> str:
        is_valid, error_msg = validate_commit_message(value)
        if not is_valid:
            raise ValueError(error_msg)
        return value

    def command_list(self) -> list[list[str]]:
        """Tokenized commands, in script order."""
        return split_command_script(self.commands)


class MergeStep(str, Enum):
    """Per-repository steps, in execution order."""

    NORMALIZE_BRANCH = "normalize_branch"
    RESET = "reset"
    CREATE_BRANCH = "create_branch"
    RUN_COMMANDS = "run_commands"
    COMMIT = "commit"
    PUSH = "push"
    RESOLVE_PROJECT = "resolve_project"
    PUBLISH = "publish"


class ProjectId(BaseModel):
    """GitLab project identity resolved from a remote URL.

    Attributes:
        value: Numeric project id.
        path: ``group/project`` path it was resolved from.
    """

    value: int
    path: str

    model_config = {"frozen": True}

    def __str__(self) -> str:
        return f"{self.path} (#{self.value})"


class MergeRequest(BaseModel):
    """A merge request as returned by GitLab."""

    id: int
    iid: int
    project_id: int
    title: str
    source_branch: str
    target_branch: str
    web_url: str = ""

    model_config = {"frozen": True}

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> MergeRequest:
        return cls(
            id=data["id"],
            iid=data["iid"],
            project_id=data["project_id"],
            title=data.get("title", ""),
            source_branch=data.get("source_branch", ""),
            target_branch=data.get("target_branch", ""),
            web_url=data.get("web_url") or "",
        )


class MergeResult(BaseModel):
    """Result of propagating the change to one repository.

    Attributes:
        path: Repository path relative to the base directory.
        success: Whether every step succeeded.
        failed_step: Step that stopped the repository, if any.
        error: Error message if the repository failed.
        command_failures: Script commands that exited non-zero.
        merge_request: The created merge request on success.
    """

    path: str
    success: bool
    failed_step: MergeStep | None = None
    error: str | None = None
    command_failures: list[str] = []
    merge_request: MergeRequest | None = None

    model_config = {"frozen": True}


class MergeReport(BaseModel):
    """Aggregate report for a merge automation run."""

    branch: str
    target_branch: str
    results: list[MergeResult] = []
    started_at: str
    completed_at: str | None = None
    elapsed: float | None = None

    model_config = {"frozen": True}

    @property
    def created(self) -> list[MergeResult]:
        """Results with a merge request."""
        return [r for r in self.results if r.success]

    @property
    def errors(self) -> list[MergeResult]:
        """Results where success is False."""
        return [r for r in self.results if not r.success]

    @property
    def all_succeeded(self) -> bool:
        return not self.errors

    def summary(self) -> str:
        lines = [
            f"Merge report for '{self.branch}' -> '{self.target_branch}'",
            f"  Merge requests: {len(self.created)}",
            f"  Errors:         {len(self.errors)}",
            f"  Total:          {len(self.results)}",
        ]
        return "\n".join(lines)
