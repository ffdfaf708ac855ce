"""
Git CLI provider.

Example:
    >>> git = GitProvider(work_dir="/path/to/repo")
    >>> git.exec_args_for("git.status")
    ['status', '--porcelain=v1', '--branch']
    >>> git.execute("git.rev_parse", {"ref": "HEAD"}).stdout.strip()
    '3f2a...'
"""

from __future__ import annotations

from typing import Any

from zen.core.errors import ErrorCode, ZenError
from zen.core.providers.base import BaseCLIProvider

GIT_OPERATIONS = ("version", "status", "clone", "fetch", "rev_parse", "current_branch")
MIN_GIT_VERSION = "2.20"


class GitProvider(BaseCLIProvider):
    """Wraps the ``git`` binary."""

    def __init__(self, *, work_dir: str | None = None, **kwargs: Any) -> None:
        kwargs.setdefault("min_version", MIN_GIT_VERSION)
        super().__init__("git", "git", GIT_OPERATIONS, work_dir=work_dir, **kwargs)

    def _args_for(self, action: str, params: dict[str, Any]) -> list[str]:
        if action == "version":
            return ["--version"]
        if action == "status":
            return ["status", "--porcelain=v1", "--branch"]
        if action == "current_branch":
            return ["rev-parse", "--abbrev-ref", "HEAD"]
        if action == "rev_parse":
            return ["rev-parse", "--verify", str(params.get("ref", "HEAD"))]
        if action == "fetch":
            args = ["fetch", str(params.get("remote", "origin"))]
            if params.get("branch"):
                args.append(str(params["branch"]))
            return args
        if action == "clone":
            url = params.get("url")
            if not url:
                raise ZenError(
                    ErrorCode.INVALID_DATA, "git.clone requires 'url'", provider=self.name
                )
            args = ["clone", "--quiet"]
            if params.get("branch"):
                args += ["--branch", str(params["branch"])]
            if params.get("depth"):
                args += ["--depth", str(int(params["depth"]))]
            # "--" stops option parsing so a url cannot inject flags.
            args += ["--", str(url)]
            if params.get("dest"):
                args.append(str(params["dest"]))
            return args
        raise ZenError(ErrorCode.INVALID_OPERATION, f"unhandled git action {action!r}")


__all__ = ["GitProvider"]
