"""Fleet synchronization of GitLab projects.

Public API for bringing local clones of every selected GitLab project up
to date.

Architecture
------------
Discovery lists remote projects and filters them.  The scheduler then runs
one ``RepositorySynchronizer.sync`` call per project with bounded
parallelism, streaming a ``ProgressEvent`` per project through a
``ProgressChannel`` that is closed exactly once after all workers finish.

Modules:

- ``discovery``    -- ``discover_projects``: paginated listing plus filter.
- ``filters``      -- ``FilterRule`` and ``ProjectFilter`` matching.
- ``synchronizer`` -- ``RepositorySynchronizer``: clone-or-update state
  machine with stash-protected reconciliation.
- ``scheduler``    -- ``SyncScheduler`` and ``ProgressChannel``.
- ``models``       -- ``RemoteProject``, ``AllBranches``, ``SingleBranch``,
  ``ProgressEvent``, ``BranchResult``, ``SyncResult``, ``SyncReport``.
- ``reporter``     -- Human-readable and JSON report formatting.

Usage example
-------------
::

    import asyncio
    import threading
    from pathlib import Path

    from hermes_sync.core import GitLabClient, ProcessRunner, RepositoryInspector
    from hermes_sync.sync import (
        AllBranches,
        ProjectFilter,
        RepositorySynchronizer,
        SyncScheduler,
        discover_projects,
        format_sync_report,
    )

    cancel = threading.Event()
    runner = ProcessRunner(cancel_event=cancel)
    synchronizer = RepositorySynchronizer(
        runner, RepositoryInspector(runner), Path("/srv/repos"), AllBranches()
    )
    projects = discover_projects(
        GitLabClient(config), ProjectFilter.from_strings(include="team-*")
    )
    report = asyncio.run(
        SyncScheduler(synchronizer, max_parallel=10, cancel_event=cancel).run(projects)
    )
    print(format_sync_report(report))
"""

from .discovery import discover_projects
from .filters import FilterRule, ProjectFilter
from .models import (
    AllBranches,
    BranchResult,
    ProgressEvent,
    RemoteProject,
    SingleBranch,
    SyncAction,
    SyncPolicy,
    SyncReport,
    SyncResult,
)
from .reporter import (
    format_progress,
    format_sync_report,
    report_to_json,
)
from .scheduler import ProgressChannel, SyncScheduler
from .synchronizer import RepositorySynchronizer

__all__ = [
    "AllBranches",
    "BranchResult",
    "FilterRule",
    "ProgressChannel",
    "ProgressEvent",
    "ProjectFilter",
    "RemoteProject",
    "RepositorySynchronizer",
    "SingleBranch",
    "SyncAction",
    "SyncPolicy",
    "SyncReport",
    "SyncResult",
    "SyncScheduler",
    "discover_projects",
    "format_progress",
    "format_sync_report",
    "report_to_json",
]
