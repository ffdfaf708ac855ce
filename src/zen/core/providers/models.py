"""
Provider metadata models.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field


class ProviderKind(str, Enum):
    """Transport a provider speaks."""

    CLI = "cli"
    API = "api"


class ProviderInfo(BaseModel):
    """Describes a provider and whether it can be used right now."""

    name: str = Field(..., description="Unique provider name")
    kind: ProviderKind = Field(..., description="cli or api")
    version: str = Field(default="", description="Detected tool or API version")
    available: bool = Field(default=False, description="Whether the provider is usable")
    reason: str = Field(default="", description="Why the provider is unavailable")
    capabilities: dict[str, bool] = Field(
        default_factory=dict, description="Operation name to supported flag"
    )
    binary_path: str = Field(default="", description="Absolute binary path (cli only)")
    base_url: str = Field(default="", description="Endpoint base URL (api only)")


class DiscoveryResult(BaseModel):
    """Outcome of discovering a binary on the search path."""

    name: str
    available: bool
    path: str = ""
    version: str = ""
    reason: str = ""


__all__ = ["DiscoveryResult", "ProviderInfo", "ProviderKind"]
