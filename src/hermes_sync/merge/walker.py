"""Find local repositories under a base directory.

A directory that directly contains ``.git`` is a repository root.  The walk
never descends into a repository, so nested repositories are neither
visited nor counted.  The counting pass uses the same iterator as the
processing pass, so both always agree on which repositories match.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Iterator
from pathlib import Path

from ..sync.filters import FilterRule

logger = logging.getLogger(__name__)

GIT_DIR = ".git"


def _log_walk_error(error: OSError) -> None:
    logger.warning("Skipping unreadable directory %s: %s", error.filename, error)


def iter_repositories(
    base_dir: Path, rule: FilterRule | None = None
) -> Iterator[Path]:
    """Yield matching repository roots under *base_dir* in sorted order.

    Args:
        base_dir: Directory to walk.
        rule: Include/exclude rule applied to the POSIX path relative to
            *base_dir*; ``None`` matches every repository.

    Yields:
        Absolute repository paths.
    """
    rule = rule or FilterRule()
    base_dir = Path(base_dir)

    for dirpath, dirnames, _ in os.walk(base_dir, onerror=_log_walk_error):
        current = Path(dirpath)
        if GIT_DIR in dirnames or (current / GIT_DIR).is_file():
            # Repository root: prune the whole subtree.
            dirnames[:] = []
            rel = current.relative_to(base_dir).as_posix()
            if rel == ".":
                rel = current.name
            if rule.matches(rel):
                yield current
            else:
                logger.debug("Repository %s does not match filter", rel)
            continue
        dirnames.sort()


def count_matching_repositories(
    base_dir: Path, rule: FilterRule | None = None
) -> int:
    """Number of repositories ``iter_repositories`` would yield."""
    return sum(1 for _ in iter_repositories(base_dir, rule))
