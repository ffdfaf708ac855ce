"""Tests for configuration loading and layered .env files."""

import json
import logging
import os
from pathlib import Path

import pytest
import yaml

from zen.core.config import ZenConfig, load_config, load_layered_env
from zen.core.config.loader import (
    apply_env_overrides,
    deep_merge,
    env_var_name,
    get_user_config_path,
    load_config_file,
)
from zen.core.errors import ErrorCode, ZenError


def write_yaml(path: Path, data: dict) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(yaml.safe_dump(data))
    return path


class TestDefaults:
    """Tests for the built-in defaults."""

    def test_defaults(self, project_dir: Path) -> None:
        """Test loading with no files yields the defaults."""
        config = load_config(use_cache=False)
        assert config.log_level == "info"
        assert config.cli.output_format == "text"
        assert config.integrations.sync_enabled is False
        assert config.cache.size_limit_mb == 100
        assert config.workspace.zen_path == ".zen"

    def test_cached(self, project_dir: Path) -> None:
        """Test the loaded config is reused until the cache is cleared."""
        assert load_config() is load_config()


class TestPrecedence:
    """Tests for the defaults < user < project < env < flags chain."""

    def test_user_then_project(self, project_dir: Path) -> None:
        """Test project values override user values and both merge deeply."""
        write_yaml(get_user_config_path(), {"log_level": "debug", "cache": {"size_limit_mb": 50}})
        write_yaml(project_dir / ".zen" / "config.yaml", {"log_level": "warn"})
        config = load_config(use_cache=False)
        assert config.log_level == "warn"
        assert config.cache.size_limit_mb == 50

    def test_env_over_files(self, project_dir: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test ZEN_* variables override file values."""
        write_yaml(project_dir / ".zen" / "config.yaml", {"log_level": "warn"})
        monkeypatch.setenv("ZEN_LOG_LEVEL", "error")
        monkeypatch.setenv("ZEN_INTEGRATIONS_SYNC_ENABLED", "true")
        config = load_config(use_cache=False)
        assert config.log_level == "error"
        assert config.integrations.sync_enabled is True

    def test_env_for_configured_provider(
        self, project_dir: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Test provider settings can be overridden per provider name."""
        write_yaml(
            project_dir / ".zen" / "config.yaml",
            {"integrations": {"providers": {"jira": {"url": "https://old"}}}},
        )
        monkeypatch.setenv("ZEN_INTEGRATIONS_PROVIDERS_JIRA_URL", "https://new")
        config = load_config(use_cache=False)
        assert config.provider("jira").url == "https://new"

    def test_flags_win(self, project_dir: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test CLI overrides beat the environment."""
        monkeypatch.setenv("ZEN_CLI_OUTPUT_FORMAT", "yaml")
        config = load_config(overrides={"cli": {"output_format": "json"}}, use_cache=False)
        assert config.cli.output_format == "json"

    def test_no_color(self, project_dir: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test NO_COLOR forces cli.no_color."""
        monkeypatch.setenv("NO_COLOR", "")
        assert load_config(use_cache=False).cli.no_color is True

    def test_explicit_json_file(self, tmp_path: Path, project_dir: Path) -> None:
        """Test --config accepts JSON files in place of the project config."""
        path = tmp_path / "alt.json"
        path.write_text(json.dumps({"integrations": {"task_system": "JIRA"}}))
        config = load_config(config_path=path, use_cache=False)
        assert config.integrations.task_system == "jira"


class TestErrors:
    """Tests for invalid configuration."""

    def test_missing_explicit_file(self, tmp_path: Path) -> None:
        """Test a missing --config file is a configuration error."""
        with pytest.raises(ZenError) as exc_info:
            load_config(config_path=tmp_path / "nope.yaml", use_cache=False)
        assert exc_info.value.code == ErrorCode.CONFIG_ERROR

    def test_invalid_values(self, project_dir: Path) -> None:
        """Test values failing validation raise config_error."""
        write_yaml(project_dir / ".zen" / "config.yaml", {"log_level": "loud"})
        with pytest.raises(ZenError) as exc_info:
            load_config(use_cache=False)
        assert exc_info.value.code == ErrorCode.CONFIG_ERROR
        assert "1 error" in exc_info.value.message

    def test_unparsable_file_ignored(
        self, project_dir: Path, caplog: pytest.LogCaptureFixture
    ) -> None:
        """Test a broken YAML file is skipped with a warning."""
        (project_dir / ".zen" / "config.yaml").write_text("log_level: [unclosed")
        with caplog.at_level(logging.WARNING, logger="zen"):
            config = load_config(use_cache=False)
        assert config.log_level == "info"
        assert "Failed to parse config" in caplog.text

    def test_non_mapping_ignored(self, tmp_path: Path) -> None:
        """Test a file whose top level is a list is ignored."""
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n")
        assert load_config_file(path) is None


class TestHelpers:
    """Tests for merge and override helpers."""

    def test_deep_merge(self) -> None:
        """Test nested dicts merge and scalars are replaced."""
        merged = deep_merge({"a": 1, "b": {"x": 1, "y": 2}}, {"b": {"y": 3}, "c": 4})
        assert merged == {"a": 1, "b": {"x": 1, "y": 3}, "c": 4}

    def test_env_var_name(self) -> None:
        """Test dotted paths map to ZEN_ variables."""
        assert env_var_name("cache.size_limit_mb") == "ZEN_CACHE_SIZE_LIMIT_MB"

    def test_env_overrides_do_not_mutate(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test the input mapping is left unchanged."""
        monkeypatch.setenv("ZEN_LOG_FORMAT", "json")
        original = {"log_format": "text"}
        assert apply_env_overrides(original)["log_format"] == "json"
        assert original == {"log_format": "text"}

    def test_redacted(self) -> None:
        """Test the display copy masks provider secrets."""
        config = ZenConfig(
            integrations={"providers": {"jira": {"api_key": "secret123456", "url": "https://x"}}}
        )
        shown = config.redacted()["integrations"]["providers"]["jira"]
        assert shown["api_key"] == "se********56"
        assert shown["url"] == "https://x"


class TestLayeredEnv:
    """Tests for .env loading."""

    def test_project_overrides_user(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test project files override user files but not the process environment."""
        user = tmp_path / "user.env"
        user.write_text("ZEN_A=user\nZEN_B=user\n")
        project = tmp_path / "project.env"
        project.write_text("ZEN_B=project\nZEN_C=project\n")
        monkeypatch.setenv("ZEN_C", "exported")
        for key in ("ZEN_A", "ZEN_B"):
            # Registered so teardown removes what load_layered_env sets.
            monkeypatch.setenv(key, "")
            monkeypatch.delenv(key)

        loaded = load_layered_env(user_env_paths=[user], project_env_paths=[project])

        assert os.environ["ZEN_A"] == "user"
        assert os.environ["ZEN_B"] == "project"
        assert os.environ["ZEN_C"] == "exported"
        assert loaded == {"ZEN_A", "ZEN_B"}

    def test_local_file_overrides_project(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Test .env.local wins over .env for the same variable."""
        (tmp_path / ".env").write_text("ZEN_D=shared\n")
        (tmp_path / ".env.local").write_text("ZEN_D=local\n")
        monkeypatch.setenv("ZEN_D", "")
        monkeypatch.delenv("ZEN_D")
        monkeypatch.delenv("ZEN_ENV_FILE", raising=False)

        load_layered_env(project_dir=tmp_path, user_env_paths=[])

        assert os.environ["ZEN_D"] == "local"

    def test_env_file_variable(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test ZEN_ENV_FILE is read last and resolved against the project directory."""
        (tmp_path / ".env").write_text("ZEN_E=project\n")
        (tmp_path / "ci.env").write_text("ZEN_E=ci\nZEN_F=ci\n")
        monkeypatch.setenv("ZEN_ENV_FILE", "ci.env")
        for key in ("ZEN_E", "ZEN_F"):
            monkeypatch.setenv(key, "")
            monkeypatch.delenv(key)

        loaded = load_layered_env(project_dir=tmp_path, user_env_paths=[])

        assert os.environ["ZEN_E"] == "ci"
        assert loaded == {"ZEN_E", "ZEN_F"}

    def test_missing_env_file_is_skipped(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch, caplog: pytest.LogCaptureFixture
    ) -> None:
        """Test a ZEN_ENV_FILE that does not exist only logs a warning."""
        monkeypatch.setenv("ZEN_ENV_FILE", str(tmp_path / "absent.env"))
        assert load_layered_env(project_dir=tmp_path, user_env_paths=[]) == set()
        assert "absent.env" in caplog.text
