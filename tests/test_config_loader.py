"""Tests for hermes_sync.config_loader -- hierarchical config loading."""

import pytest
import yaml

from hermes_sync.config_loader import (
    CONFIG_ENV_VAR,
    _interpolate_recursive,
    _load_yaml_with_includes,
    discover_config_files,
    ensure_config,
    interpolate_env_vars,
    load_hierarchical_config,
)

# -------------------------------------------------------------------------
# Env var interpolation
# -------------------------------------------------------------------------


class TestInterpolateEnvVars:
    """Tests for ${VAR} and ${VAR:-default} substitution."""

    def test_replaces_set_var(self, monkeypatch):
        monkeypatch.setenv("MY_HOST", "localhost")
        assert interpolate_env_vars("${MY_HOST}") == "localhost"

    def test_unset_var_replaced_with_empty(self, monkeypatch):
        monkeypatch.delenv("UNSET_VAR_XYZ", raising=False)
        assert interpolate_env_vars("${UNSET_VAR_XYZ}") == ""

    def test_default_used_when_unset(self, monkeypatch):
        monkeypatch.delenv("UNSET_VAR_XYZ", raising=False)
        assert interpolate_env_vars("${UNSET_VAR_XYZ:-fallback}") == "fallback"

    def test_empty_env_var_uses_default(self, monkeypatch):
        monkeypatch.setenv("EMPTY_VAR", "")
        assert interpolate_env_vars("${EMPTY_VAR:-dflt}") == "dflt"

    def test_literal_dollar_brace_no_closing(self):
        assert interpolate_env_vars("cost ${5") == "cost ${5"

    def test_nested_structures(self, monkeypatch):
        monkeypatch.setenv("TOKEN", "abc")
        data = {"gitlab": {"token": "${TOKEN}"}, "list": ["${TOKEN}", 3]}
        assert _interpolate_recursive(data) == {
            "gitlab": {"token": "abc"},
            "list": ["abc", 3],
        }


# -------------------------------------------------------------------------
# YAML !include support
# -------------------------------------------------------------------------


class TestIncludeDirective:
    """Tests for !include YAML loading via ConfigLoader subclass."""

    def test_include_relative_file(self, tmp_path):
        (tmp_path / "secrets.yml").write_text("token: secret123\n")
        main = tmp_path / "config.yml"
        main.write_text("gitlab: !include secrets.yml\n")

        assert _load_yaml_with_includes(main) == {"gitlab": {"token": "secret123"}}

    def test_include_nonexistent_raises(self, tmp_path):
        main = tmp_path / "config.yml"
        main.write_text("data: !include missing.yml\n")

        with pytest.raises(FileNotFoundError, match="missing.yml"):
            _load_yaml_with_includes(main)

    def test_circular_include_raises(self, tmp_path):
        (tmp_path / "a.yml").write_text("x: !include b.yml\n")
        (tmp_path / "b.yml").write_text("y: !include a.yml\n")

        with pytest.raises(ValueError, match="Circular include"):
            _load_yaml_with_includes(tmp_path / "a.yml")

    def test_global_safe_loader_not_polluted(self, tmp_path):
        """!include is NOT registered on yaml.SafeLoader."""
        cfg = tmp_path / "test.yml"
        cfg.write_text("x: !include other.yml\n")

        with pytest.raises(yaml.constructor.ConstructorError):
            with open(cfg) as fh:
                yaml.safe_load(fh)


# -------------------------------------------------------------------------
# Discovery, merge and starter file
# -------------------------------------------------------------------------


@pytest.fixture
def isolated(tmp_path, monkeypatch):
    """Run from an empty directory with an empty home."""
    monkeypatch.delenv(CONFIG_ENV_VAR, raising=False)
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    work = tmp_path / "work"
    work.mkdir()
    monkeypatch.chdir(work)
    return work, home


class TestDiscoverConfigFiles:
    def test_nothing_found(self, isolated):
        assert discover_config_files() == []

    def test_env_var_takes_highest_precedence(self, isolated, monkeypatch, tmp_path):
        work, _ = isolated
        custom = tmp_path / "custom.yml"
        custom.write_text("custom: true\n")
        project = work / ".hermes" / "config.yml"
        project.parent.mkdir()
        project.write_text("project: true\n")
        monkeypatch.setenv(CONFIG_ENV_VAR, str(custom))

        result = discover_config_files()
        assert result[0] == custom.resolve()
        assert len(result) == 2

    def test_project_before_global(self, isolated):
        work, home = isolated
        project = work / ".hermes" / "config.yml"
        project.parent.mkdir()
        project.write_text("project: true\n")
        global_cfg = home / ".config" / "hermes" / "config.yml"
        global_cfg.parent.mkdir(parents=True)
        global_cfg.write_text("global: true\n")

        result = discover_config_files()
        assert [p.resolve() for p in result] == [
            project.resolve(),
            global_cfg.resolve(),
        ]


class TestLoadHierarchicalConfig:
    def test_zero_config(self, isolated):
        assert load_hierarchical_config() == {}

    def test_project_sections_win(self, isolated, monkeypatch):
        work, home = isolated
        global_cfg = home / ".config" / "hermes" / "config.yml"
        global_cfg.parent.mkdir(parents=True)
        global_cfg.write_text(
            "gitlab:\n  url: https://global.example.com\n"
            "sync:\n  max_parallel: 3\n"
        )
        project = work / ".hermes" / "config.yml"
        project.parent.mkdir()
        project.write_text("gitlab:\n  url: https://project.example.com\n  token: ${TOK}\n")
        monkeypatch.setenv("TOK", "from-env")

        merged = load_hierarchical_config()
        assert merged["gitlab"] == {
            "url": "https://project.example.com",
            "token": "from-env",
        }
        assert merged["sync"] == {"max_parallel": 3}


class TestEnsureConfig:
    def test_creates_starter_file(self, isolated):
        work, _ = isolated
        path = ensure_config()
        assert path == work / ".hermes" / "config.yml"
        assert "hermes-sync configuration" in path.read_text()
        # Starter file is all comments, so it loads as empty.
        assert load_hierarchical_config() == {}

    def test_existing_file_returned(self, isolated):
        work, _ = isolated
        existing = work / ".hermes" / "config.yml"
        existing.parent.mkdir()
        existing.write_text("gitlab: {}\n")
        assert ensure_config() == existing
