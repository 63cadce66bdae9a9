"""Core git, process and GitLab functionality shared by the sync and merge workflows."""

from .async_utils import run_sync
from .client import GitLabClient
from .inspector import RepositoryInspector
from .process import ProcessRunner

__all__ = ["GitLabClient", "ProcessRunner", "RepositoryInspector", "run_sync"]
