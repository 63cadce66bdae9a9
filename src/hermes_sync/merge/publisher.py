"""Resolve GitLab project identity and open merge requests."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from ..core.client import GitLabClient
from ..core.errors import GitLabAPIError
from ..core.inspector import RepositoryInspector, project_path_from_url
from .models import MergeRequest, ProjectId

logger = logging.getLogger(__name__)

DEFAULT_DESCRIPTION = "Automatically created merge request by hermes."


def default_title(source_branch: str, target_branch: str) -> str:
    return f"Merge branch '{source_branch}' into {target_branch}"


def resolve_project(
    client: GitLabClient, inspector: RepositoryInspector, path: Path
) -> ProjectId:
    """Look up the GitLab project behind the repository at *path*.

    Raises:
        RemoteURLError: If the origin URL has no project path.
        GitLabAPIError: If the project cannot be fetched.
    """
    project_path = project_path_from_url(inspector.remote_url(path))
    data = client.get_project(project_path)
    try:
        return ProjectId(value=data["id"], path=project_path)
    except (KeyError, TypeError) as exc:
        raise GitLabAPIError(
            f"Unexpected project payload for {project_path}: {exc}"
        ) from exc


class MergeRequestPublisher:
    """Create merge requests assigned to the authenticated user.

    The current user is fetched once per publisher and reused.
    """

    def __init__(self, client: GitLabClient) -> None:
        self.client = client
        self._user: dict[str, Any] | None = None

    def current_user(self) -> dict[str, Any]:
        if self._user is None:
            self._user = self.client.current_user()
            logger.debug("Merge requests will be assigned to %s", self._user.get("username"))
        return self._user

    def publish(
        self,
        project_id: ProjectId,
        source_branch: str,
        target_branch: str,
        title: str | None = None,
        description: str | None = None,
    ) -> MergeRequest:
        """Open a merge request that deletes *source_branch* once merged.

        Raises:
            GitLabAPIError: If GitLab rejects either call.
        """
        user = self.current_user()
        data = self.client.create_merge_request(
            project_id.value,
            source_branch=source_branch,
            target_branch=target_branch,
            title=title or default_title(source_branch, target_branch),
            description=description or DEFAULT_DESCRIPTION,
            assignee_id=user.get("id"),
            remove_source_branch=True,
        )
        try:
            merge_request = MergeRequest.from_api(data)
        except (KeyError, TypeError, ValueError) as exc:
            raise GitLabAPIError(
                f"Unexpected merge request payload for {project_id}: {exc}"
            ) from exc
        logger.info(
            "Created merge request !%d for %s: %s",
            merge_request.iid,
            project_id.path,
            merge_request.web_url,
        )
        return merge_request
