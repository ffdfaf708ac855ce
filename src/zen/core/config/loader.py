"""
Configuration loading with multi-layer merging.

Implements the configuration precedence chain:
    defaults < user config < project config < ZEN_* env vars < CLI flags

Files may be YAML (``.yaml``/``.yml``) or JSON (``.json``).
"""

import json
import logging
import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ValidationError

from zen.core.errors import ErrorCode, ZenError

from .models import ProviderConfig, ZenConfig

logger = logging.getLogger(__name__)

ENV_PREFIX = "ZEN_"
CONFIG_FILENAMES = ("config.yaml", "config.yml", "config.json")

# Global cache to avoid reloading config multiple times per session
_config_cache: ZenConfig | None = None


def get_xdg_config_home() -> Path:
    """
    Get XDG config home directory.

    Returns:
        Path to config directory (defaults to ~/.config)
    """
    if xdg_home := os.environ.get("XDG_CONFIG_HOME"):
        return Path(xdg_home)
    return Path.home() / ".config"


def _first_existing(directory: Path) -> Path:
    for name in CONFIG_FILENAMES:
        candidate = directory / name
        if candidate.exists():
            return candidate
    return directory / CONFIG_FILENAMES[0]


def get_user_config_path() -> Path:
    """
    Get path to user configuration file.

    Returns:
        Path to ~/.config/zen/config.yaml (or XDG equivalent)
    """
    return _first_existing(get_xdg_config_home() / "zen")


def get_project_config_path(cwd: Path | None = None) -> Path:
    """
    Get path to project configuration file.

    Args:
        cwd: Working directory to search from (defaults to current directory)

    Returns:
        Path to .zen/config.yaml in the project root
    """
    if cwd is None:
        cwd = Path.cwd()
    return _first_existing(cwd / ".zen")


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """
    Deep merge two dictionaries.

    Values in `override` take precedence over values in `base`.
    Nested dicts are merged, not replaced.

    Example:
        >>> deep_merge({"a": 1, "b": {"x": 10}}, {"b": {"y": 2}})
        {'a': 1, 'b': {'x': 10, 'y': 2}}
    """
    result = base.copy()

    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = value

    return result


def load_config_file(path: Path) -> dict[str, Any] | None:
    """
    Load a YAML or JSON file, returning None if it doesn't exist or is invalid.

    Args:
        path: Path to the config file

    Returns:
        Parsed mapping, or None if the file is missing or can't be parsed
    """
    if not path.exists():
        return None

    try:
        with path.open(encoding="utf-8") as f:
            if path.suffix == ".json":
                data = json.load(f)
            else:
                data = yaml.safe_load(f)
    except (json.JSONDecodeError, yaml.YAMLError, OSError) as e:
        # Config system should be resilient to a bad file
        logger.warning("Failed to parse config at %s: %s", path, e)
        return None

    if data is None:
        return {}
    if not isinstance(data, dict):
        logger.warning("Ignoring config at %s: top level is not a mapping", path)
        return None
    return data


def env_var_name(path: str) -> str:
    """``integrations.sync_enabled`` -> ``ZEN_INTEGRATIONS_SYNC_ENABLED``."""
    return ENV_PREFIX + path.upper().replace(".", "_").replace("-", "_")


def _leaf_paths(model: type[BaseModel], prefix: str = "") -> list[str]:
    paths: list[str] = []
    for name, field in model.model_fields.items():
        path = f"{prefix}{name}"
        annotation = field.annotation
        if isinstance(annotation, type) and issubclass(annotation, BaseModel):
            paths.extend(_leaf_paths(annotation, f"{path}."))
        elif annotation is not None and getattr(annotation, "__origin__", None) is dict:
            continue
        else:
            paths.append(path)
    return paths


def _set_path(data: dict[str, Any], path: str, value: Any) -> None:
    segments = path.split(".")
    current = data
    for segment in segments[:-1]:
        nxt = current.get(segment)
        if not isinstance(nxt, dict):
            nxt = {}
            current[segment] = nxt
        current = nxt
    current[segments[-1]] = value


def apply_env_overrides(config_dict: dict[str, Any]) -> dict[str, Any]:
    """
    Apply ZEN_* environment variable overrides.

    Every scalar setting has a variable named after its key path, e.g.
    ``ZEN_LOG_LEVEL``, ``ZEN_CACHE_SIZE_LIMIT_MB`` or, for providers already
    present in the merged configuration, ``ZEN_INTEGRATIONS_PROVIDERS_JIRA_URL``.
    Values are passed through as strings and coerced by validation.
    ``NO_COLOR`` (any value) forces ``cli.no_color``.

    Args:
        config_dict: Configuration dictionary to override

    Returns:
        Configuration dictionary with env var overrides applied
    """
    result = deep_merge({}, config_dict)

    paths = _leaf_paths(ZenConfig)
    providers = (result.get("integrations") or {}).get("providers") or {}
    for provider_name in providers:
        prefix = f"integrations.providers.{provider_name}."
        paths.extend(_leaf_paths(ProviderConfig, prefix))

    for path in paths:
        value = os.environ.get(env_var_name(path))
        if value is not None:
            _set_path(result, path, value)

    if "NO_COLOR" in os.environ:
        _set_path(result, "cli.no_color", True)

    return result


def get_default_config() -> dict[str, Any]:
    """
    Get hardcoded default configuration.

    Returns:
        Dictionary with default configuration values
    """
    return {
        "log_level": "info",
        "log_format": "text",
        "cli": {"no_color": False, "verbose": False, "output_format": "text"},
        "workspace": {"root": "", "zen_path": ".zen"},
        "integrations": {"sync_enabled": False, "sync_frequency": "manual"},
    }


def load_config(
    project_dir: Path | None = None,
    config_path: Path | None = None,
    overrides: dict[str, Any] | None = None,
    use_cache: bool = True,
) -> ZenConfig:
    """
    Load configuration with multi-layer merging.

    Configuration precedence (highest to lowest):
        1. CLI flag overrides
        2. Environment variables (ZEN_*)
        3. Project config (.zen/config.yaml, or config_path)
        4. User config (~/.config/zen/config.yaml)
        5. Hardcoded defaults

    Args:
        project_dir: Project directory to load .zen/config.yaml from (defaults to cwd)
        config_path: Explicit project config file (``--config``)
        overrides: Values from CLI flags
        use_cache: If True, return cached config from previous load

    Returns:
        Validated ZenConfig instance

    Raises:
        ZenError: config_error if the merged config fails validation or an
            explicit config_path does not exist

    Example:
        >>> config = load_config()
        >>> config.cli.output_format
        'text'
    """
    global _config_cache

    if use_cache and _config_cache is not None:
        return _config_cache

    merged = get_default_config()

    if user_config := load_config_file(get_user_config_path()):
        merged = deep_merge(merged, user_config)

    if config_path is not None:
        if not config_path.exists():
            raise ZenError(
                ErrorCode.CONFIG_ERROR,
                f"config file not found: {config_path}",
                hint="Check the --config path",
            )
        project_file = config_path
    else:
        project_file = get_project_config_path(project_dir)
    if project_config := load_config_file(project_file):
        merged = deep_merge(merged, project_config)

    merged = apply_env_overrides(merged)

    if overrides:
        merged = deep_merge(merged, overrides)

    try:
        config = ZenConfig(**merged)
    except ValidationError as e:
        raise ZenError(
            ErrorCode.CONFIG_ERROR,
            f"invalid configuration ({e.error_count()} error(s))",
            cause=e,
            hint=f"Check {project_file} and ZEN_* environment variables",
        )

    _config_cache = config

    return config


def clear_cache() -> None:
    """
    Clear the cached configuration.

    Useful for testing or when config files change during execution.
    """
    global _config_cache
    _config_cache = None


__all__ = [
    "apply_env_overrides",
    "clear_cache",
    "deep_merge",
    "env_var_name",
    "get_default_config",
    "get_project_config_path",
    "get_user_config_path",
    "get_xdg_config_home",
    "load_config",
    "load_config_file",
]
