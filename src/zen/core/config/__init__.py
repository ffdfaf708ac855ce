"""
Configuration models and loading.

Pydantic models for zen configuration with multi-layer merging:
defaults < user < project < ZEN_* env vars < CLI flags.
"""

from .env import load_layered_env
from .loader import (
    clear_cache,
    deep_merge,
    get_project_config_path,
    get_user_config_path,
    get_xdg_config_home,
    load_config,
)
from .models import (
    CircuitBreakerConfig,
    CLIConfig,
    IntegrationsConfig,
    ProviderConfig,
    RateLimitConfig,
    WorkspaceConfig,
    ZenConfig,
)

__all__ = [
    # Models
    "CLIConfig",
    "CircuitBreakerConfig",
    "IntegrationsConfig",
    "ProviderConfig",
    "RateLimitConfig",
    "WorkspaceConfig",
    "ZenConfig",
    # Loader functions
    "clear_cache",
    "deep_merge",
    "get_project_config_path",
    "get_user_config_path",
    "get_xdg_config_home",
    "load_config",
    "load_layered_env",
]
