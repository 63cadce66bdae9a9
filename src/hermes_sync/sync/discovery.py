"""Remote project discovery.

Lists every project visible to the configured token and applies a
``ProjectFilter``.  Any API failure is fatal for the run and is raised as
``DiscoveryError``.
"""

from __future__ import annotations

import logging

from ..core.client import GitLabClient
from ..core.errors import DiscoveryError, GitLabAPIError
from .filters import ProjectFilter
from .models import RemoteProject

logger = logging.getLogger(__name__)


def discover_projects(
    client: GitLabClient, project_filter: ProjectFilter | None = None
) -> list[RemoteProject]:
    """Return the filtered list of remote projects.

    Args:
        client: GitLab API client.
        project_filter: Selection rules; ``None`` keeps every project.

    Raises:
        DiscoveryError: If listing projects fails or returns malformed data.
    """
    project_filter = project_filter or ProjectFilter()
    try:
        projects = [
            RemoteProject.from_api(item) for item in client.iter_projects()
        ]
    except GitLabAPIError as exc:
        raise DiscoveryError(f"Failed to list projects: {exc}") from exc
    except (KeyError, TypeError, ValueError) as exc:
        raise DiscoveryError(
            f"Unexpected project listing payload: {exc}"
        ) from exc

    selected = project_filter.apply(projects)
    logger.info(
        "Discovered %d projects, %d selected", len(projects), len(selected)
    )
    return selected
