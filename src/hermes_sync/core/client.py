import logging
import threading
from typing import Any, Iterator
from urllib.parse import quote

import requests

from ..config import Config
from ..validators import validate_branch_name
from .errors import GitLabAPIError

logger = logging.getLogger(__name__)

PAGE_SIZE = 100


class GitLabClient:
    def __init__(self, config: Config):
        self.config = config
        self._thread_local = threading.local()
        self.api_url = self._get_api_url()

    @property
    def session(self) -> requests.Session:
        """Accessor for the current thread's session."""
        return self._get_session()

    def _get_api_url(self) -> str:
        return f"{self.config.gitlab_url.rstrip('/')}/api/v4"

    def _get_session(self) -> requests.Session:
        """Get or create a thread-local requests.Session."""
        if not hasattr(self._thread_local, "session"):
            self._thread_local.session = self._create_session()
        return self._thread_local.session

    def _create_session(self) -> requests.Session:
        session = requests.Session()
        session.headers["PRIVATE-TOKEN"] = self.config.token
        session.verify = not self.config.insecure
        return session

    def _request(
        self, method: str, path: str, **kwargs: Any
    ) -> requests.Response:
        """
        Make a request against the GitLab REST API.

        Transport failures and non-2xx responses are raised as
        ``GitLabAPIError`` carrying the HTTP status when one exists.
        """
        url = f"{self.api_url}/{path.lstrip('/')}"
        session = self._get_session()
        try:
            response = session.request(
                method, url, timeout=(10, 60), **kwargs
            )
        except requests.RequestException as exc:
            raise GitLabAPIError(
                f"{method} {path} failed: {exc}"
            ) from exc

        if not response.ok:
            raise GitLabAPIError(
                f"{method} {path} returned {response.status_code}: "
                f"{response.text[:200]}",
                status_code=response.status_code,
            )
        return response

    def iter_projects(self) -> Iterator[dict[str, Any]]:
        """
        Yield every project visible to the token, one page at a time.

        Follows ``X-Next-Page`` until the server reports no further page.
        """
        page = 1
        while True:
            response = self._request(
                "GET",
                "projects",
                params={"per_page": PAGE_SIZE, "page": page},
            )
            projects = response.json()
            logger.debug("Fetched page %d: %d projects", page, len(projects))
            yield from projects

            next_page = response.headers.get("X-Next-Page", "").strip()
            if not next_page:
                return
            page = int(next_page)

    def get_project(self, path_with_namespace: str) -> dict[str, Any]:
        """
        Get a project by its ``group/project`` path.
        """
        encoded = quote(path_with_namespace, safe="")
        return self._request("GET", f"projects/{encoded}").json()

    def current_user(self) -> dict[str, Any]:
        """
        Get the user the token authenticates as.
        """
        return self._request("GET", "user").json()

    def create_merge_request(
        self,
        project_id: int,
        source_branch: str,
        target_branch: str,
        title: str,
        description: str = "",
        assignee_id: int | None = None,
        remove_source_branch: bool = True,
    ) -> dict[str, Any]:
        """
        Open a merge request from *source_branch* into *target_branch*.

        Raises:
            ValueError: If either branch name is invalid.
            GitLabAPIError: If GitLab rejects the request.
        """
        for branch in (source_branch, target_branch):
            is_valid, error_msg = validate_branch_name(branch)
            if not is_valid:
                raise ValueError(f"Invalid branch name: {error_msg}")

        payload: dict[str, Any] = {
            "source_branch": source_branch,
            "target_branch": target_branch,
            "title": title,
            "description": description,
            "remove_source_branch": remove_source_branch,
        }
        if assignee_id is not None:
            payload["assignee_id"] = assignee_id

        return self._request(
            "POST", f"projects/{project_id}/merge_requests", json=payload
        ).json()

    def validate_connection(self) -> str:
        """
        Check credentials by fetching the current user.

        Returns:
            The authenticated username.
        """
        user = self.current_user()
        return str(user.get("username", ""))
