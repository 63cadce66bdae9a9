"""Pydantic models for fleet synchronization.

Defines the data contracts shared by discovery, the synchronizer, the
scheduler and the reporter:

- ``RemoteProject``: A project listed by GitLab.
- ``AllBranches`` / ``SingleBranch``: The ``SyncPolicy`` of a run.
- ``ProgressEvent``: One per repository, streamed while a batch runs.
- ``SyncAction``: Whether a repository was cloned or updated.
- ``BranchResult``: Outcome of reconciling one branch.
- ``SyncResult``: Outcome of syncing one repository.
- ``SyncReport``: Aggregate results for a full run.

All models are frozen (immutable) for safety.
"""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field


class RemoteProject(BaseModel):
    """A project as returned by ``GET /projects``.

    Attributes:
        id: Numeric GitLab project id.
        name: Short project name.
        path_with_namespace: ``group/subgroup/project`` path.
        ssh_url: SSH clone URL.
    """

    id: int
    name: str
    path_with_namespace: str = ""
    ssh_url: str

    model_config = {"frozen": True}

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> RemoteProject:
        """Build from a GitLab project payload."""
        return cls(
            id=data["id"],
            name=data.get("name") or data.get("path", ""),
            path_with_namespace=data.get("path_with_namespace", ""),
            ssh_url=data["ssh_url_to_repo"],
        )


class AllBranches(BaseModel):
    """Reconcile every remote branch of each repository."""

    mode: Literal["all"] = "all"

    model_config = {"frozen": True}

    def describe(self) -> str:
        return "all branches"


class SingleBranch(BaseModel):
    """Reconcile only the named branch."""

    mode: Literal["single"] = "single"
    name: str = Field(min_length=1)

    model_config = {"frozen": True}

    def describe(self) -> str:
        return f"branch '{self.name}'"


SyncPolicy = Annotated[
    Union[AllBranches, SingleBranch], Field(discriminator="mode")
]


class ProgressEvent(BaseModel):
    """Completion notice for one repository.

    Attributes:
        name: Project name or repository path.
        success: Whether every step succeeded.
        index: Dispatch ordinal, 1-based.
        total: Number of repositories in the batch.
        error: Failure description, if any.
    """

    name: str
    success: bool
    index: int = Field(ge=1)
    total: int = Field(ge=1)
    error: str | None = None

    model_config = {"frozen": True}


class SyncAction(str, Enum):
    """What the synchronizer did with a repository."""

    CLONE = "clone"
    UPDATE = "update"


class BranchResult(BaseModel):
    """Outcome of reconciling a single branch.

    Attributes:
        branch: Local branch name.
        success: Whether the branch ended up updated.
        stashed: Whether local changes were stashed first.
        conflict: Whether re-applying the stash conflicted.
        error: Error message if reconciliation failed.
    """

    branch: str
    success: bool
    stashed: bool = False
    conflict: bool = False
    error: str | None = None

    model_config = {"frozen": True}


class SyncResult(BaseModel):
    """Result of syncing one repository.

    Attributes:
        name: Project name.
        path: Local working copy path.
        action: Clone or update.
        success: True only if every step and branch succeeded.
        error: Error message if the repository failed.
        branches: Per-branch outcomes (empty for clones).
    """

    name: str
    path: str
    action: SyncAction
    success: bool
    error: str | None = None
    branches: list[BranchResult] = []

    model_config = {"frozen": True}

    @property
    def failed_branches(self) -> list[BranchResult]:
        return [b for b in self.branches if not b.success]


class SyncReport(BaseModel):
    """Aggregate report for a full sync run.

    Attributes:
        policy: Human-readable description of the sync policy.
        results: Individual sync results, in dispatch order.
        started_at: ISO 8601 timestamp when the run started.
        completed_at: ISO 8601 timestamp when the run completed.
        elapsed: Wall-clock duration in seconds.
        timed_out: Whether the run hit its deadline.
    """

    policy: str
    results: list[SyncResult] = []
    started_at: str
    completed_at: str | None = None
    elapsed: float | None = None
    timed_out: bool = False

    model_config = {"frozen": True}

    @property
    def cloned(self) -> list[SyncResult]:
        """Successful results where action is CLONE."""
        return [
            r
            for r in self.results
            if r.success and r.action == SyncAction.CLONE
        ]

    @property
    def updated(self) -> list[SyncResult]:
        """Successful results where action is UPDATE."""
        return [
            r
            for r in self.results
            if r.success and r.action == SyncAction.UPDATE
        ]

    @property
    def errors(self) -> list[SyncResult]:
        """Results where success is False."""
        return [r for r in self.results if not r.success]

    @property
    def all_succeeded(self) -> bool:
        return not self.errors

    def summary(self) -> str:
        """Format a short human-readable summary of the run.

        Returns:
            Multi-line summary string with counts by outcome.
        """
        lines = [
            f"Sync report ({self.policy})"
            + (" (timed out)" if self.timed_out else ""),
            f"  Cloned:  {len(self.cloned)}",
            f"  Updated: {len(self.updated)}",
            f"  Errors:  {len(self.errors)}",
            f"  Total:   {len(self.results)}",
        ]
        return "\n".join(lines)
