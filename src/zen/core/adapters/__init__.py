"""
Task provider adapters.

``build_providers`` turns the ``integrations.providers`` configuration into
adapter instances. The adapter is chosen by ``settings.adapter`` when set,
otherwise by the provider name (``jira``, ``github``).
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from zen.core.adapters.credentials import (
    CredentialAccessor,
    EnvCredentialAccessor,
    StaticCredentialAccessor,
    env_var_for,
)
from zen.core.adapters.github import GitHubCLIProvider
from zen.core.adapters.jira import JiraProvider
from zen.core.config.models import ProviderConfig, ZenConfig
from zen.core.errors import ErrorCode, ZenError
from zen.core.providers.discovery import BinaryDiscovery
from zen.core.providers.executor import Executor
from zen.core.providers.protocols import TaskProvider

logger = logging.getLogger(__name__)

ADAPTERS = ("jira", "github")


def adapter_name(name: str, provider: ProviderConfig) -> str:
    return str(provider.settings.get("adapter") or name).lower()


def credentials_from_config(config: ZenConfig) -> EnvCredentialAccessor:
    """Environment credentials with configured ``api_key`` values as fallback."""
    fallback = {name: p.api_key for name, p in config.integrations.providers.items()}
    return EnvCredentialAccessor(fallback=fallback)


def build_provider(
    name: str,
    provider: ProviderConfig,
    credentials: CredentialAccessor,
    *,
    discovery: BinaryDiscovery | None = None,
    executor: Executor | None = None,
    transport: httpx.BaseTransport | None = None,
) -> TaskProvider:
    """
    Construct one adapter.

    Raises:
        ZenError: config_error for an unknown adapter or incomplete settings
    """
    kind = adapter_name(name, provider)
    if kind == "jira":
        return JiraProvider(
            base_url=provider.url,
            project_key=provider.project_key,
            credentials=credentials,
            email=provider.email,
            field_mapping=provider.field_mapping,
            mapping_rules=provider.mapping_rules,
            name=name,
            timeout=float(provider.settings.get("timeout", 30.0)),
            transport=transport,
        )
    if kind == "github":
        kwargs: dict[str, Any] = {}
        if provider.settings.get("work_dir"):
            kwargs["work_dir"] = str(provider.settings["work_dir"])
        return GitHubCLIProvider(
            repo=provider.project_key,
            credentials=credentials,
            name=name,
            field_mapping=provider.field_mapping,
            mapping_rules=provider.mapping_rules,
            discovery=discovery,
            executor=executor,
            **kwargs,
        )
    raise ZenError(
        ErrorCode.CONFIG_ERROR,
        f"unknown provider adapter {kind!r}",
        provider=name,
        hint=f"Supported adapters: {', '.join(ADAPTERS)}",
    )


def build_providers(
    config: ZenConfig,
    credentials: CredentialAccessor | None = None,
    *,
    discovery: BinaryDiscovery | None = None,
    executor: Executor | None = None,
    transport: httpx.BaseTransport | None = None,
) -> dict[str, TaskProvider]:
    """
    Build every configured provider.

    A provider that fails to build is logged and left out, unless it is the
    configured task system, in which case the error propagates.
    """
    credentials = credentials or credentials_from_config(config)
    task_system = config.integrations.task_system
    providers: dict[str, TaskProvider] = {}
    for name, provider in config.integrations.providers.items():
        try:
            providers[name] = build_provider(
                name,
                provider,
                credentials,
                discovery=discovery,
                executor=executor,
                transport=transport,
            )
        except ZenError as e:
            if name == task_system:
                raise
            logger.warning("Skipping provider %s: %s", name, e)
    return providers


__all__ = [
    "ADAPTERS",
    "CredentialAccessor",
    "EnvCredentialAccessor",
    "GitHubCLIProvider",
    "JiraProvider",
    "StaticCredentialAccessor",
    "adapter_name",
    "build_provider",
    "build_providers",
    "credentials_from_config",
    "env_var_for",
]
