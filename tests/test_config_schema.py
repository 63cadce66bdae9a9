"""Tests for hermes_sync.config_schema -- Pydantic config models."""

import pytest
from pydantic import ValidationError

from hermes_sync.config_schema import (
    GitLabConfig,
    LoggingConfig,
    SyncConfig,
    UnifiedConfig,
    build_config,
    to_fallbacks,
)


class TestSectionDefaults:
    def test_zero_config_is_valid(self):
        config = UnifiedConfig()
        assert config.gitlab.url is None
        assert config.sync.max_parallel == 10
        assert config.sync.base_branches == ["develop", "main"]
        assert config.logging.level == "INFO"

    def test_models_are_frozen(self):
        config = GitLabConfig(url="https://gitlab.example.com")
        with pytest.raises(ValidationError):
            config.url = "https://other.example.com"


class TestSyncConfig:
    def test_base_branches_from_comma_string(self):
        config = SyncConfig(base_branches="main, master ,")
        assert config.base_branches == ["main", "master"]

    @pytest.mark.parametrize("value", [0, 101])
    def test_max_parallel_bounds(self, value):
        with pytest.raises(ValidationError):
            SyncConfig(max_parallel=value)

    def test_negative_timeout_rejected(self):
        with pytest.raises(ValidationError):
            SyncConfig(timeout=-1)


class TestBuildConfig:
    def test_empty_dict(self):
        assert build_config({}) == UnifiedConfig()

    def test_sections_parsed(self):
        config = build_config(
            {
                "gitlab": {"url": "https://gitlab.example.com", "token": "t"},
                "paths": {"sync_dir": "/srv/repos"},
                "sync": {"max_parallel": 5, "diff_branch_from": "production"},
                "logging": {"level": "DEBUG", "file": "/tmp/h.log"},
            }
        )
        assert config.gitlab.token == "t"
        assert config.paths.sync_dir == "/srv/repos"
        assert config.sync.max_parallel == 5
        assert config.logging == LoggingConfig(level="DEBUG", file="/tmp/h.log")

    def test_invalid_section_raises(self):
        with pytest.raises(ValidationError):
            build_config({"sync": {"max_parallel": "many"}})


class TestToFallbacks:
    def test_flattens_and_drops_none(self):
        config = build_config(
            {
                "gitlab": {"url": "https://gitlab.example.com"},
                "paths": {"files_dir": "/srv/work"},
            }
        )
        fallbacks = to_fallbacks(config)
        assert fallbacks["url"] == "https://gitlab.example.com"
        assert fallbacks["files_dir"] == "/srv/work"
        assert fallbacks["max_parallel"] == 10
        assert "token" not in fallbacks
        assert "sync_dir" not in fallbacks
        assert "level" not in fallbacks
