"""Include/exclude matching for local repositories and remote projects.

Two matchers share the same include/exclude semantics:

1. **FilterRule** -- shell-style globs against a repository's path relative
   to the base directory.  An empty include list disables filtering.
2. **ProjectFilter** -- remote projects.  Glob patterns are matched against
   the project's namespace path and name; plain strings are substring
   tests against the SSH URL, since remote URLs are opaque strings.
"""

from __future__ import annotations

import fnmatch
from collections.abc import Iterable
from dataclasses import dataclass, field

from ..config import split_list
from .models import RemoteProject

_GLOB_CHARS = frozenset("*?[")


def is_glob(pattern: str) -> bool:
    return any(ch in _GLOB_CHARS for ch in pattern)


@dataclass(frozen=True)
class FilterRule:
    """Ordered include and exclude glob patterns.

    Attributes:
        include: A path must match at least one of these; an empty list
            matches everything.
        exclude: A path matching any of these is rejected.
    """

    include: tuple[str, ...] = ()
    exclude: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "include", tuple(self.include))
        object.__setattr__(self, "exclude", tuple(self.exclude))

    @classmethod
    def from_strings(
        cls, include: str | None = None, exclude: str | None = None
    ) -> FilterRule:
        """Build from comma-separated pattern lists."""
        return cls(
            include=tuple(split_list(include)),
            exclude=tuple(split_list(exclude)),
        )

    @property
    def enabled(self) -> bool:
        return bool(self.include)

    def matches(self, rel_path: str) -> bool:
        """Return ``True`` if *rel_path* passes the rule.

        Args:
            rel_path: Path relative to the base directory, with forward
                slashes.
        """
        if not self.include:
            return True
        rel_path = rel_path.replace("\\", "/")
        if not any(fnmatch.fnmatch(rel_path, p) for p in self.include):
            return False
        return not any(fnmatch.fnmatch(rel_path, p) for p in self.exclude)


@dataclass(frozen=True)
class ProjectFilter:
    """Select remote projects for a sync run.

    Attributes:
        include: Patterns a project must match (any); empty keeps all.
        exclude: Patterns that drop a project.
        ssh_url_contains: Substring the SSH URL must contain, if set.
    """

    include: tuple[str, ...] = ()
    exclude: tuple[str, ...] = ()
    ssh_url_contains: str = ""

    def __post_init__(self) -> None:
        object.__setattr__(self, "include", tuple(self.include))
        object.__setattr__(self, "exclude", tuple(self.exclude))

    @classmethod
    def from_strings(
        cls,
        include: str | None = None,
        exclude: str | None = None,
        ssh_url_contains: str | None = None,
    ) -> ProjectFilter:
        return cls(
            include=tuple(split_list(include)),
            exclude=tuple(split_list(exclude)),
            ssh_url_contains=(ssh_url_contains or "").strip(),
        )

    @staticmethod
    def _pattern_matches(pattern: str, project: RemoteProject) -> bool:
        if is_glob(pattern):
            return any(
                fnmatch.fnmatch(candidate, pattern)
                for candidate in (project.path_with_namespace, project.name)
                if candidate
            )
        return pattern in project.ssh_url

    def matches(self, project: RemoteProject) -> bool:
        if self.ssh_url_contains and self.ssh_url_contains not in project.ssh_url:
            return False
        if self.include and not any(
            self._pattern_matches(p, project) for p in self.include
        ):
            return False
        return not any(
            self._pattern_matches(p, project) for p in self.exclude
        )

    def apply(self, projects: Iterable[RemoteProject]) -> list[RemoteProject]:
        """Return the projects that pass the filter, preserving order."""
        return [p for p in projects if self.matches(p)]
