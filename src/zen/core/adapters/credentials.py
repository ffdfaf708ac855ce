"""
Credential access for provider adapters.

Adapters never read secrets themselves; they ask a CredentialAccessor.
EnvCredentialAccessor looks in the environment first (``ZEN_<PROVIDER>_TOKEN``)
and falls back to values from configuration.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from typing import Protocol, runtime_checkable

from zen.core.errors import ErrorCode, ZenError


@runtime_checkable
class CredentialAccessor(Protocol):
    def get(self, provider_name: str) -> str: ...

    def is_authenticated(self, provider_name: str) -> bool: ...

    def validate(self, provider_name: str) -> None: ...


def env_var_for(provider_name: str) -> str:
    return f"ZEN_{provider_name.upper().replace('-', '_')}_TOKEN"


class EnvCredentialAccessor:
    """
    Credentials from environment variables and configured fallbacks.

    Args:
        fallback: provider name to secret, typically the ``api_key`` values
            from configuration
        environ: environment mapping (defaults to os.environ)
    """

    def __init__(
        self,
        fallback: Mapping[str, str] | None = None,
        environ: Mapping[str, str] | None = None,
    ) -> None:
        self._fallback = {k: v for k, v in (fallback or {}).items() if v}
        self._environ = environ if environ is not None else os.environ

    def get(self, provider_name: str) -> str:
        """
        Secret for provider_name.

        Raises:
            ZenError: auth_failed when nothing is configured
        """
        value = self._environ.get(env_var_for(provider_name)) or self._fallback.get(provider_name)
        if not value:
            raise ZenError(
                ErrorCode.AUTH_FAILED,
                "no credentials configured",
                provider=provider_name,
                hint=f"export {env_var_for(provider_name)}=...",
            )
        return value

    def is_authenticated(self, provider_name: str) -> bool:
        try:
            self.get(provider_name)
        except ZenError:
            return False
        return True

    def validate(self, provider_name: str) -> None:
        self.get(provider_name)


class StaticCredentialAccessor(EnvCredentialAccessor):
    """Credentials from a fixed mapping only."""

    def __init__(self, secrets: Mapping[str, str]) -> None:
        super().__init__(fallback=secrets, environ={})


__all__ = [
    "CredentialAccessor",
    "EnvCredentialAccessor",
    "StaticCredentialAccessor",
    "env_var_for",
]
