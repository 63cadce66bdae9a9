"""Startup configuration for CLI commands."""

import logging
import sys
from typing import Any

from dotenv import load_dotenv

from .config import Config, load_config
from .config_loader import (
    discover_config_files,
    load_hierarchical_config,
)
from .config_schema import UnifiedConfig, build_config, to_fallbacks
from .core.async_utils import run_sync
from .core.client import GitLabClient
from .core.errors import GitLabAPIError

logger = logging.getLogger(__name__)


def _stderr_print(msg: str) -> None:
    """Print message to stderr for user feedback."""
    print(msg, file=sys.stderr, flush=True)


def load_settings() -> UnifiedConfig:
    """Load ``.env`` and any YAML config files.

    ``.env`` is loaded first so ``${VAR}`` interpolation in YAML can use
    its values.
    """
    load_dotenv()
    config_files = discover_config_files()
    if not config_files:
        return UnifiedConfig()
    logger.info("Using config file: %s", config_files[0])
    return build_config(load_hierarchical_config())


def load_runtime_config(
    settings: UnifiedConfig,
    config_overrides: dict[str, Any] | None = None,
) -> Config:
    """
    Merge all configuration sources into a validated ``Config``.

    Precedence: CLI > env vars (.env loaded first) > YAML config > defaults.

    Args:
        settings: Validated YAML settings from ``load_settings``.
        config_overrides: Optional dict with values from CLI arguments
            (url, token, sync_dir, files_dir, max_parallel, sync_timeout,
            insecure, debug).

    Returns:
        The runtime ``Config``.

    Raises:
        RuntimeError: If configuration is invalid or incomplete.
    """
    overrides = config_overrides or {}
    try:
        config = load_config(
            url=overrides.get("url"),
            token=overrides.get("token"),
            sync_dir=overrides.get("sync_dir"),
            files_dir=overrides.get("files_dir"),
            max_parallel=overrides.get("max_parallel"),
            sync_timeout=overrides.get("sync_timeout"),
            insecure=overrides.get("insecure", False),
            debug=overrides.get("debug", False),
            yaml_fallbacks=to_fallbacks(settings),
        )
    except ValueError as e:
        logger.error("Configuration error: %s", e)
        _stderr_print(f"ERROR: Configuration error: {e}")
        _stderr_print("  Ensure GITLAB_BASE_URL and GITLAB_TOKEN are set.")
        raise RuntimeError(f"Configuration error: {e}") from e

    logger.info("GitLab URL: %s", config.gitlab_url)
    if overrides:
        override_keys = sorted(k for k in overrides if k != "token")
        logger.debug("Config overrides from CLI: %s", ", ".join(override_keys))
    return config


async def connect_gitlab(config: Config) -> GitLabClient:
    """Create a ``GitLabClient`` and check its token before any work starts.

    Raises:
        RuntimeError: If GitLab is unreachable or rejects the token.
    """
    logger.info("Validating GitLab connection...")
    client = GitLabClient(config)
    try:
        username = await run_sync(client.validate_connection)
    except GitLabAPIError as e:
        logger.error("Failed to connect to GitLab: %s", e)
        _stderr_print("ERROR: GitLab connection failed.")
        _stderr_print(f"  {e}")
        _stderr_print("  Check GITLAB_BASE_URL and GITLAB_TOKEN.")
        raise RuntimeError(f"GitLab connection failed: {e}") from e

    logger.info("Connected to GitLab as %s", username)
    return client
