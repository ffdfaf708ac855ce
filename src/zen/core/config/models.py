"""
Configuration data models for zen.

These models define the structure of ``.zen/config.yaml`` and
``~/.config/zen/config.yaml`` files, with validation via Pydantic.
"""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from zen.core.cache.models import CacheConfig
from zen.core.mapper import MappingRules
from zen.core.sync.models import SyncDirection
from zen.utils.logging import redact_mapping

LogLevel = Literal["trace", "debug", "info", "warn", "error", "fatal", "panic"]
OutputFormat = Literal["text", "json", "yaml"]


class CLIConfig(BaseModel):
    """Console behavior."""

    no_color: bool = Field(default=False, description="Disable colored output")
    verbose: bool = Field(default=False, description="Verbose output")
    output_format: OutputFormat = Field(default="text", description="text, json or yaml")


class WorkspaceConfig(BaseModel):
    """Location of the workspace and its state directory."""

    root: str = Field(default="", description="Workspace root (empty = current directory)")
    zen_path: str = Field(default=".zen", description="State directory, relative to root")


class RateLimitConfig(BaseModel):
    rate: float = Field(default=10.0, gt=0, description="Sustained requests per second")
    burst: int = Field(default=20, ge=1, description="Bucket capacity")


class CircuitBreakerConfig(BaseModel):
    threshold: int = Field(default=5, ge=1, description="Consecutive failures before opening")
    reset_timeout: float = Field(
        default=30.0, gt=0, description="Seconds before an open circuit admits a probe"
    )


class ProviderConfig(BaseModel):
    """
    Settings for one external task system.

    Example:
        >>> ProviderConfig(url="https://acme.atlassian.net", project_key="PROJ")
        ... .sync_direction
        <SyncDirection.BIDIRECTIONAL: 'bidirectional'>
    """

    url: str = Field(default="", description="Base URL for API providers")
    project_key: str = Field(default="", description="Project key or owner/repo")
    type: Literal["basic", "oauth2", "token", ""] = Field(
        default="", description="Authentication type"
    )
    credentials: str = Field(default="", description="Name of the credential source")
    email: str = Field(default="", description="Account email for basic auth")
    api_key: str = Field(default="", description="Token fallback when ZEN_<NAME>_TOKEN is unset")
    field_mapping: dict[str, str] = Field(
        default_factory=dict, description="Internal field to external path overrides"
    )
    mapping_rules: MappingRules = Field(
        default_factory=MappingRules, description="Field transforms, validation and directions"
    )
    sync_direction: SyncDirection = Field(default=SyncDirection.BIDIRECTIONAL)
    rate_limit: RateLimitConfig = Field(default_factory=RateLimitConfig)
    circuit_breaker: CircuitBreakerConfig = Field(default_factory=CircuitBreakerConfig)
    settings: dict[str, Any] = Field(default_factory=dict, description="Provider-specific")


class IntegrationsConfig(BaseModel):
    """External task system integration."""

    task_system: str = Field(default="", description="Provider name acting as system of record")
    sync_enabled: bool = Field(default=False)
    sync_frequency: Literal["hourly", "daily", "manual", ""] = Field(default="manual")
    sync_timeout: float = Field(default=30.0, ge=0, description="Default per-sync timeout")
    health_interval: float = Field(
        default=60.0, ge=0, description="Seconds between provider health checks (0 = off)"
    )
    providers: dict[str, ProviderConfig] = Field(default_factory=dict)

    @field_validator("task_system")
    @classmethod
    def _lower(cls, v: str) -> str:
        return v.strip().lower()


class ZenConfig(BaseModel):
    """
    Top-level zen configuration.

    Loaded from defaults, user config, project config, ZEN_* env vars and
    finally CLI flags.

    Example:
        >>> config = ZenConfig(log_level="debug")
        >>> config.cache.size_limit_mb
        100
    """

    log_level: LogLevel = Field(default="info")
    log_format: Literal["text", "json"] = Field(default="text")
    cli: CLIConfig = Field(default_factory=CLIConfig)
    workspace: WorkspaceConfig = Field(default_factory=WorkspaceConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    integrations: IntegrationsConfig = Field(default_factory=IntegrationsConfig)

    model_config = ConfigDict(
        extra="allow",  # Unknown sections are kept for forward compatibility
        validate_assignment=True,
    )

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalize_level(cls, v: Any) -> Any:
        if isinstance(v, str):
            v = v.strip().lower()
            return "warn" if v == "warning" else v
        return v

    def provider(self, name: str) -> ProviderConfig | None:
        return self.integrations.providers.get(name)

    def redacted(self) -> dict[str, Any]:
        """Display copy with sensitive values masked."""
        return redact_mapping(self.model_dump(mode="json"))


__all__ = [
    "CLIConfig",
    "CircuitBreakerConfig",
    "IntegrationsConfig",
    "LogLevel",
    "OutputFormat",
    "ProviderConfig",
    "RateLimitConfig",
    "WorkspaceConfig",
    "ZenConfig",
]
