"""Bulk merge-request automation over local repositories.

Walks a directory tree, applies a scripted change to every matching
repository on a fresh feature branch, pushes it and opens a merge request.

Modules:

- ``walker``      -- ``iter_repositories`` / ``count_matching_repositories``.
- ``propagation`` -- ``ChangePropagator``: per-repository state machine.
- ``publisher``   -- ``resolve_project`` and ``MergeRequestPublisher``.
- ``models``      -- ``ChangeSpec``, ``MergeStep``, ``ProjectId``,
  ``MergeRequest``, ``MergeResult``, ``MergeReport``.
"""

from .models import (
    ChangeSpec,
    MergeReport,
    MergeRequest,
    MergeResult,
    MergeStep,
    ProjectId,
)
from .propagation import ChangePropagator
from .publisher import MergeRequestPublisher, resolve_project
from .walker import count_matching_repositories, iter_repositories

__all__ = [
    "ChangePropagator",
    "ChangeSpec",
    "MergeReport",
    "MergeRequest",
    "MergeRequestPublisher",
    "MergeResult",
    "MergeStep",
    "ProjectId",
    "count_matching_repositories",
    "iter_repositories",
    "resolve_project",
]
