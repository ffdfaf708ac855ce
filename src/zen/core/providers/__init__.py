"""
Provider runtime: binary discovery, sandboxed execution and provider interfaces.
"""

from zen.core.providers.base import BaseCLIProvider
from zen.core.providers.discovery import BinaryDiscovery, parse_version, validate_version
from zen.core.providers.executor import Executor, StreamReader, sanitize_args
from zen.core.providers.models import DiscoveryResult, ProviderInfo, ProviderKind
from zen.core.providers.protocols import CLIProvider, Provider, TaskProvider

__all__ = [
    "BaseCLIProvider",
    "BinaryDiscovery",
    "CLIProvider",
    "DiscoveryResult",
    "Executor",
    "Provider",
    "ProviderInfo",
    "ProviderKind",
    "StreamReader",
    "TaskProvider",
    "parse_version",
    "sanitize_args",
    "validate_version",
]
