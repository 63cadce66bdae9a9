"""Unified configuration schema for hermes-sync.

Defines Pydantic models for the YAML config structure with dedicated
sections for the GitLab connection, working directories, sync behaviour,
and logging.  ``to_fallbacks`` flattens a validated config into the dict
``config.load_config`` consumes as its lowest-precedence source.

Usage:
    from hermes_sync.config_schema import build_config, to_fallbacks

    raw = load_hierarchical_config()
    unified = build_config(raw)
    config = load_config(yaml_fallbacks=to_fallbacks(unified))
"""

from __future__ import annotations

import logging
from typing import Any

from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Section models
# ---------------------------------------------------------------------------


class GitLabConfig(BaseModel):
    """GitLab server connection settings.

    All fields are optional to support zero-config: env vars and CLI args
    can supply them at runtime instead.
    """

    url: str | None = Field(default=None, description="GitLab base URL")
    token: str | None = Field(
        default=None, description="Personal access token"
    )
    insecure: bool = Field(
        default=False,
        description="Disable SSL verification (development only)",
    )
    debug: bool = Field(default=False, description="Enable debug mode")

    model_config = {"frozen": True}


class PathsConfig(BaseModel):
    """Working directories.

    Attributes:
        sync_dir: Where remote projects are cloned.
        files_dir: Directory tree walked by merge automation and diff.
    """

    sync_dir: str | None = Field(default=None)
    files_dir: str | None = Field(default=None)

    model_config = {"frozen": True}


class SyncConfig(BaseModel):
    """Synchronization and merge automation defaults."""

    max_parallel: int = Field(
        default=10,
        ge=1,
        le=100,
        description="Concurrent repository syncs (1-100)",
    )
    timeout: int = Field(
        default=0,
        ge=0,
        description="Deadline for a whole sync run in seconds (0 = none)",
    )
    base_branches: list[str] = Field(
        default_factory=lambda: ["develop", "main"],
        description="Base branch preference for merge automation",
    )
    diff_branch_from: str | None = Field(default=None)
    diff_branch_to: str | None = Field(default=None)

    model_config = {"frozen": True}

    @field_validator("base_branches", mode="before")
    @classmethod
    def _split_branches(cls, value: Any) -> Any:
        if isinstance(value, str):
            return [b.strip() for b in value.split(",") if b.strip()]
        return value


class LoggingConfig(BaseModel):
    """Logging configuration.

    Attributes:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        file: Optional log file path.
    """

    level: str = Field(default="INFO", description="Log level")
    file: str | None = Field(default=None, description="Log file path")

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Top-level unified config
# ---------------------------------------------------------------------------


class UnifiedConfig(BaseModel):
    """Top-level unified configuration.

    Every section has sensible defaults, so ``UnifiedConfig()``
    (zero-config) is always valid.
    """

    gitlab: GitLabConfig = Field(default_factory=GitLabConfig)
    paths: PathsConfig = Field(default_factory=PathsConfig)
    sync: SyncConfig = Field(default_factory=SyncConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = {"frozen": True}


def build_config(raw_data: dict) -> UnifiedConfig:
    """Construct a ``UnifiedConfig`` from the raw dict returned by
    ``load_hierarchical_config()``.

    Missing sections get defaults.
    """
    if not raw_data:
        return UnifiedConfig()

    return UnifiedConfig(**raw_data)


def to_fallbacks(unified: UnifiedConfig) -> dict[str, Any]:
    """Flatten *unified* into the ``yaml_fallbacks`` dict of ``load_config``.

    ``None`` values are dropped so they never shadow built-in defaults.
    """
    flat: dict[str, Any] = {
        **unified.gitlab.model_dump(),
        **unified.paths.model_dump(),
        **unified.sync.model_dump(),
    }
    return {k: v for k, v in flat.items() if v is not None}
