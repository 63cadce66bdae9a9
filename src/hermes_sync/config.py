"""Runtime configuration for hermes-sync.

Reads GitLab connection settings and working directories from CLI args,
environment variables, .env files, and YAML config file fallbacks.

Precedence (highest to lowest):
    CLI args > Environment variables > .env file > YAML config > Built-in defaults

Environment variables:
    GITLAB_BASE_URL: GitLab instance URL (required)
    GITLAB_TOKEN: Personal access token (required)
    SYNC_DIR: Directory remote projects are cloned into (optional)
    FILES_DIR: Directory walked by merge automation and diff (optional)
    DIFF_BRANCH_FROM / DIFF_BRANCH_TO: Branch pair compared by ``diff``
    HERMES_BASE_BRANCHES: Comma-separated base branch preference
        (optional, default: develop,main)
    HERMES_MAX_PARALLEL: Concurrent repository syncs (optional, default: 10)
    HERMES_SYNC_TIMEOUT: Deadline for a sync run in seconds, 0 disables
        (optional, default: 0)
    HERMES_INSECURE: Skip SSL verification (optional, default: false)
    HERMES_DEBUG: Enable debug logging (optional, default: false)
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from urllib.parse import urlparse

logger = logging.getLogger(__name__)

DEFAULT_BASE_BRANCHES = ("develop", "main")


@dataclass
class Config:
    gitlab_url: str
    token: str
    sync_dir: str = ""
    files_dir: str = ""
    diff_branch_from: str = ""
    diff_branch_to: str = ""
    base_branches: tuple[str, ...] = field(
        default_factory=lambda: DEFAULT_BASE_BRANCHES
    )
    max_parallel: int = 10
    sync_timeout: float | None = None
    insecure: bool = False
    debug: bool = False


def split_list(raw: str | list | tuple | None) -> list[str]:
    """Split a comma-separated value, trimming whitespace and empties."""
    if raw is None:
        return []
    if isinstance(raw, (list, tuple)):
        items = [str(item) for item in raw]
    else:
        items = str(raw).split(",")
    return [item.strip() for item in items if item.strip()]


def validate_config(config: Config) -> None:
    """Validate configuration values and raise ValueError if invalid.

    Args:
        config: Config instance to validate.

    Raises:
        ValueError: If the URL format is invalid or the token is empty.
    """
    config.gitlab_url = config.gitlab_url.strip()

    if not config.gitlab_url.startswith(("http://", "https://")):
        raise ValueError(
            f"Invalid GitLab URL '{config.gitlab_url}': must start with http:// or https://"
        )

    parsed = urlparse(config.gitlab_url)
    if not parsed.hostname:
        raise ValueError(
            f"Invalid GitLab URL '{config.gitlab_url}': URL must include a hostname"
        )

    config.gitlab_url = config.gitlab_url.removesuffix("/")

    if not config.token.strip():
        raise ValueError(
            "GitLab token cannot be empty. Set GITLAB_TOKEN environment variable."
        )

    if not config.base_branches:
        raise ValueError("At least one base branch must be configured")

    if not (1 <= config.max_parallel <= 100):
        raise ValueError(
            f"Invalid max_parallel {config.max_parallel}: must be between 1 and 100"
        )

    if config.insecure:
        logger.warning(
            "WARNING: SSL verification disabled (insecure=True). Use only for development."
        )


def resolve_base_dir(
    value: str | None, default_name: str = "git-repos"
) -> Path:
    """Resolve a working directory setting to an absolute path.

    An empty value falls back to ``<cwd>/<default_name>``.

    Raises:
        ValueError: If *value* is a relative path.
    """
    if not value:
        return Path.cwd() / default_name
    path = Path(value).expanduser()
    if not path.is_absolute():
        raise ValueError(f"dir should be full path: {value}")
    return path


def _get_bool_env(key: str) -> bool | None:
    """Return True/False from env var, or None if unset."""
    val = os.getenv(key)
    if val is None:
        return None
    return val.lower() in ("true", "1", "yes", "on")


def _resolve_bool(flag: bool, env_key: str, fallback: object) -> bool:
    if flag:
        return True
    env_value = _get_bool_env(env_key)
    if env_value is not None:
        return env_value
    return bool(fallback)


def _resolve_int(
    env_key: str, fallback: object, default: int, low: int, high: int
) -> int:
    raw = os.getenv(env_key)
    if raw is None:
        return int(fallback) if fallback is not None else default
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(
            f"Invalid {env_key} '{raw}': must be a number between {low} and {high}"
        ) from None
    if not (low <= value <= high):
        raise ValueError(
            f"Invalid {env_key} '{raw}': must be a number between {low} and {high}"
        )
    return value


def load_config(
    url: str | None = None,
    token: str | None = None,
    sync_dir: str | None = None,
    files_dir: str | None = None,
    max_parallel: int | None = None,
    sync_timeout: float | None = None,
    insecure: bool = False,
    debug: bool = False,
    yaml_fallbacks: dict | None = None,
) -> Config:
    """Load configuration with unified precedence.

    Resolution order for each field (highest to lowest):
        CLI arg > env var / .env > yaml_fallbacks > built-in default

    The caller is responsible for calling ``load_dotenv()`` before this
    function so that .env values are available via ``os.getenv()``.

    Args:
        url: Override GitLab URL.
        token: Override access token.
        sync_dir: Override the clone directory.
        files_dir: Override the merge/diff directory.
        max_parallel: Override concurrent sync slots.
        sync_timeout: Override the sync deadline in seconds.
        insecure: Skip SSL verification (CLI flag).
        debug: Enable debug logging (CLI flag).
        yaml_fallbacks: Flat dict of values from the YAML config file.
            Used as fallback when CLI arg and env var are both unset.

    Returns:
        Validated Config instance.

    Raises:
        ValueError: If the URL or token is missing after checking all
            sources, or a numeric setting is out of range.
    """
    fb = yaml_fallbacks or {}

    # --- Required strings: CLI > env > YAML > error ---

    gitlab_url = url or os.getenv("GITLAB_BASE_URL") or fb.get("url")
    if not gitlab_url:
        raise ValueError(
            "GitLab URL not found. Set GITLAB_BASE_URL environment variable, "
            "pass --url CLI argument, or add 'url' to config.yml."
        )

    gitlab_token = token or os.getenv("GITLAB_TOKEN") or fb.get("token")
    if not gitlab_token:
        raise ValueError(
            "GitLab token not found. Set GITLAB_TOKEN environment variable, "
            "pass --token CLI argument, or add 'token' to config.yml."
        )

    # --- Optional strings: CLI > env > YAML > "" ---

    final_sync_dir = sync_dir or os.getenv("SYNC_DIR") or fb.get("sync_dir") or ""
    final_files_dir = (
        files_dir or os.getenv("FILES_DIR") or fb.get("files_dir") or ""
    )
    diff_from = os.getenv("DIFF_BRANCH_FROM") or fb.get("diff_branch_from") or ""
    diff_to = os.getenv("DIFF_BRANCH_TO") or fb.get("diff_branch_to") or ""

    base_branches = split_list(
        os.getenv("HERMES_BASE_BRANCHES") or fb.get("base_branches")
    ) or list(DEFAULT_BASE_BRANCHES)

    # --- Booleans: CLI > env > YAML > default ---

    final_insecure = _resolve_bool(
        insecure, "HERMES_INSECURE", fb.get("insecure", False)
    )
    final_debug = _resolve_bool(debug, "HERMES_DEBUG", fb.get("debug", False))

    # --- Numerics: CLI > env > YAML > default ---

    if max_parallel is not None:
        final_max_parallel = max_parallel
    else:
        final_max_parallel = _resolve_int(
            "HERMES_MAX_PARALLEL", fb.get("max_parallel"), 10, 1, 100
        )

    if sync_timeout is not None:
        timeout_seconds = float(sync_timeout)
    else:
        timeout_seconds = float(
            _resolve_int(
                "HERMES_SYNC_TIMEOUT", fb.get("timeout"), 0, 0, 86400
            )
        )

    config = Config(
        gitlab_url=gitlab_url.strip(),
        token=gitlab_token.strip(),
        sync_dir=final_sync_dir.strip(),
        files_dir=final_files_dir.strip(),
        diff_branch_from=diff_from.strip(),
        diff_branch_to=diff_to.strip(),
        base_branches=tuple(base_branches),
        max_parallel=final_max_parallel,
        sync_timeout=timeout_seconds or None,
        insecure=final_insecure,
        debug=final_debug,
    )

    validate_config(config)

    return config
