"""
GitHub Issues provider backed by the ``gh`` CLI.

Issues are addressed by number inside the repository named by
``project_key`` (``owner/repo``). Priority travels as a ``priority:Px``
label; workflow states other than open/closed travel as ``status:<token>``
labels.

Example:
    >>> gh = GitHubCLIProvider(repo="acme/widgets")
    >>> gh.exec_args_for("github.issue_view", {"number": 7})[:3]
    ['issue', 'view', '7']
"""

from __future__ import annotations

import json
import os
import re
import time
from collections.abc import Mapping
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from zen.core.adapters.credentials import CredentialAccessor
from zen.core.adapters.normalize import (
    external_priority,
    normalize_priority,
    normalize_status,
    normalize_token,
    parse_timestamp,
)
from zen.core.context import Context
from zen.core.errors import ErrorCode, Result, ZenError
from zen.core.mapper import (
    SOURCE_FORGE_MAPPING,
    MappingError,
    MappingRules,
    apply_mapping,
    transform_fields,
    validate_mapping,
    validate_rules,
)
from zen.core.providers.base import BaseCLIProvider
from zen.core.sync.models import (
    ExternalTaskData,
    InternalTaskData,
    ProviderHealth,
    RateLimitInfo,
    SyncDirection,
    TaskStatus,
)

GH_OPERATIONS = (
    "issue_view",
    "issue_create",
    "issue_edit",
    "issue_close",
    "issue_reopen",
    "issue_list",
    "auth_status",
    "rate_limit",
)
ISSUE_FIELDS = "number,title,body,state,labels,assignees,createdAt,updatedAt,url"
MIN_GH_VERSION = "2.0"

PRIORITY_LABEL = "priority:"
STATUS_LABEL = "status:"
CANCELED_LABELS = ("canceled", "cancelled", "wontfix", "not_planned")
CLOSED_STATUSES = {TaskStatus.COMPLETED.value, TaskStatus.CANCELED.value}

_ISSUE_URL = re.compile(r"/issues/(\d+)\s*$")


def classify_gh_error(stderr: str) -> tuple[ErrorCode, bool]:
    """Map gh's stderr to an error code and retryability."""
    text = stderr.lower()
    if "gh auth login" in text or "authentication" in text or "http 401" in text:
        return ErrorCode.AUTH_FAILED, False
    if "rate limit" in text or "http 429" in text:
        return ErrorCode.RATE_LIMITED, True
    if "could not resolve to" in text or "not found" in text or "http 404" in text:
        return ErrorCode.NOT_FOUND, False
    if "timeout" in text or "could not connect" in text or "connection refused" in text:
        return ErrorCode.NETWORK_ERROR, True
    if re.search(r"http 5\d\d", text):
        return ErrorCode.PROVIDER_ERROR, True
    return ErrorCode.PROVIDER_ERROR, False


def _gh_env(credentials: CredentialAccessor | None, name: str) -> dict[str, str]:
    env = {"GH_PROMPT_DISABLED": "1", "NO_COLOR": "1"}
    if credentials is not None and credentials.is_authenticated(name):
        env["GH_TOKEN"] = credentials.get(name)
    else:
        # Fall back to the user's stored gh login.
        config_dir = os.environ.get("GH_CONFIG_DIR") or str(Path.home() / ".config" / "gh")
        env["GH_CONFIG_DIR"] = config_dir
    return env


class GitHubCLIProvider(BaseCLIProvider):
    """
    Task provider over ``gh issue``.

    Args:
        repo: Repository as ``owner/repo``
        credentials: Optional accessor; when it yields a token it is passed as
            GH_TOKEN, otherwise gh's own stored login is used
        name: Registered provider name
        field_mapping: Overrides for the source-forge mapping
        mapping_rules: Transforms and validation applied to mapped fields
        **kwargs: Passed to BaseCLIProvider (discovery, executor, work_dir)
    """

    def __init__(
        self,
        *,
        repo: str,
        credentials: CredentialAccessor | None = None,
        name: str = "github",
        field_mapping: Mapping[str, str] | None = None,
        mapping_rules: MappingRules | None = None,
        **kwargs: Any,
    ) -> None:
        if not repo or "/" not in repo:
            raise ZenError(
                ErrorCode.CONFIG_ERROR,
                f"github project_key must be owner/repo, got {repo!r}",
                provider=name,
            )
        kwargs.setdefault("min_version", MIN_GH_VERSION)
        env = dict(kwargs.pop("env", None) or {})
        env.update(_gh_env(credentials, name))
        super().__init__(name, "gh", GH_OPERATIONS, env=env, **kwargs)
        self.repo = repo
        mapping = dict(SOURCE_FORGE_MAPPING)
        mapping.update(field_mapping or {})
        validate_mapping(mapping)
        self.field_mapping = mapping
        if mapping_rules is not None:
            validate_rules(mapping_rules)
        self.mapping_rules = mapping_rules
        self._rate_limit = RateLimitInfo()

    # ------------------------------------------------------------------
    # argv construction
    # ------------------------------------------------------------------

    def _number(self, params: Mapping[str, Any]) -> str:
        number = str(params.get("number", "")).lstrip("#")
        if not number.isdigit():
            raise ZenError(
                ErrorCode.INVALID_DATA,
                f"issue number must be numeric, got {number!r}",
                provider=self.name,
            )
        return number

    def _args_for(self, action: str, params: dict[str, Any]) -> list[str]:
        repo = ["--repo", self.repo]
        if action == "issue_view":
            return ["issue", "view", self._number(params), *repo, "--json", ISSUE_FIELDS]
        if action == "issue_create":
            args = ["issue", "create", *repo, "--title", str(params.get("title", ""))]
            args += ["--body", str(params.get("body", ""))]
            for label in params.get("labels", []):
                args += ["--label", str(label)]
            return args
        if action == "issue_edit":
            args = ["issue", "edit", self._number(params), *repo]
            if "title" in params:
                args += ["--title", str(params["title"])]
            if "body" in params:
                args += ["--body", str(params["body"])]
            for label in params.get("add_labels", []):
                args += ["--add-label", str(label)]
            for label in params.get("remove_labels", []):
                args += ["--remove-label", str(label)]
            return args
        if action in ("issue_close", "issue_reopen"):
            verb = action.split("_", 1)[1]
            return ["issue", verb, self._number(params), *repo]
        if action == "issue_list":
            args = ["issue", "list", *repo, "--state", str(params.get("state", "all"))]
            args += ["--limit", str(int(params.get("limit", 50)))]
            if params.get("search"):
                args += ["--search", str(params["search"])]
            return [*args, "--json", ISSUE_FIELDS]
        if action == "auth_status":
            return ["auth", "status", "--hostname", "github.com"]
        if action == "rate_limit":
            return ["api", "rate_limit"]
        raise ZenError(ErrorCode.INVALID_OPERATION, f"unhandled gh action {action!r}")

    def _run(
        self, op: str, params: Mapping[str, Any], *, ctx: Context | None, task_id: str | None = None
    ) -> Result:
        result = self.execute(op, params, ctx=ctx)
        if result.exit_code != 0:
            code, retryable = classify_gh_error(result.stderr)
            message = result.stderr.strip().splitlines()[0] if result.stderr.strip() else (
                f"gh exited with status {result.exit_code}"
            )
            raise ZenError(
                code,
                message,
                provider=self.name,
                operation=op,
                task_id=task_id,
                retryable=retryable,
            )
        return result

    def _json(self, result: Result, op: str) -> Any:
        try:
            return json.loads(result.stdout or "null")
        except ValueError as e:
            raise ZenError(
                ErrorCode.PARSE_FAILED, "invalid JSON from gh", provider=self.name,
                operation=op, cause=e,
            )

    # ------------------------------------------------------------------
    # Task provider
    # ------------------------------------------------------------------

    def _to_external(self, issue: Mapping[str, Any]) -> ExternalTaskData:
        labels = [str(lbl.get("name", "")) for lbl in issue.get("labels") or []]
        label_fields = {}
        for label in labels:
            key, sep, value = label.partition(":")
            if sep:
                label_fields[key.strip().lower()] = value.strip()
        assignees = issue.get("assignees") or []
        source = {
            "number": str(issue.get("number", "")),
            "title": issue.get("title", ""),
            "body": issue.get("body", ""),
            "state": str(issue.get("state", "")).lower(),
            "labels": label_fields,
            "assignee": assignees[0] if assignees else {},
            "created_at": issue.get("createdAt"),
            "updated_at": issue.get("updatedAt"),
        }
        try:
            mapped = apply_mapping(
                source, self.field_mapping, self.mapping_rules, direction=SyncDirection.PULL
            )
        except MappingError as e:
            e.provider = self.name
            e.task_id = source["number"] or None
            raise
        return ExternalTaskData(
            id=str(mapped.get("task_id", "")),
            title=str(mapped.get("title") or ""),
            description=str(mapped.get("description") or ""),
            status=str(mapped.get("status") or ""),
            priority=str(mapped.get("priority") or ""),
            assignee=str(mapped.get("assignee") or ""),
            created=parse_timestamp(mapped.get("created")),
            updated=parse_timestamp(mapped.get("updated")),
            fields={**dict(issue), "label_fields": label_fields},
        )

    def get_task(self, external_id: str, *, ctx: Context | None = None) -> ExternalTaskData:
        result = self._run("issue_view", {"number": external_id}, ctx=ctx, task_id=external_id)
        return self._to_external(self._json(result, "issue_view"))

    def create_task(
        self, task: Mapping[str, Any], *, ctx: Context | None = None
    ) -> ExternalTaskData:
        labels = []
        if task.get("priority"):
            labels.append(f"{PRIORITY_LABEL}{normalize_priority(task['priority'])}")
        params = {
            "title": task.get("title", ""),
            "body": task.get("description", ""),
            "labels": labels,
        }
        result = self._run("issue_create", params, ctx=ctx)
        match = _ISSUE_URL.search(result.stdout.strip())
        if match is None:
            raise ZenError(
                ErrorCode.PARSE_FAILED,
                f"unexpected gh issue create output: {result.stdout.strip()[:100]!r}",
                provider=self.name,
            )
        number = match.group(1)
        if task.get("status"):
            self._apply_status(number, str(task["status"]), current=None, ctx=ctx)
        return self.get_task(number, ctx=ctx)

    def update_task(
        self, external_id: str, task: Mapping[str, Any], *, ctx: Context | None = None
    ) -> ExternalTaskData:
        current = self.get_task(external_id, ctx=ctx)
        params: dict[str, Any] = {"number": external_id}
        if "title" in task:
            params["title"] = task["title"]
        if "description" in task:
            params["body"] = task["description"]
        if task.get("priority"):
            wanted = normalize_priority(task["priority"])
            existing = current.fields.get("label_fields", {}).get("priority")
            if existing != wanted:
                params["add_labels"] = [f"{PRIORITY_LABEL}{wanted}"]
                if existing:
                    params["remove_labels"] = [f"{PRIORITY_LABEL}{existing}"]
        if len(params) > 1:
            self._run("issue_edit", params, ctx=ctx, task_id=external_id)
        if task.get("status"):
            self._apply_status(external_id, str(task["status"]), current=current, ctx=ctx)
        return self.get_task(external_id, ctx=ctx)

    def _apply_status(
        self,
        number: str,
        status: str,
        *,
        current: ExternalTaskData | None,
        ctx: Context | None,
    ) -> None:
        status = normalize_status(status)
        closed = current is not None and current.status == "closed"
        if status in CLOSED_STATUSES and not closed:
            self._run("issue_close", {"number": number}, ctx=ctx, task_id=number)
        elif status not in CLOSED_STATUSES and closed:
            self._run("issue_reopen", {"number": number}, ctx=ctx, task_id=number)

        existing = current.fields.get("label_fields", {}).get("status") if current else None
        labelled = (
            TaskStatus.IN_PROGRESS.value,
            TaskStatus.BLOCKED.value,
            TaskStatus.CANCELED.value,
        )
        wanted = status if status in labelled else None
        if existing == wanted:
            return
        params: dict[str, Any] = {"number": number}
        if wanted:
            params["add_labels"] = [f"{STATUS_LABEL}{wanted}"]
        if existing:
            params["remove_labels"] = [f"{STATUS_LABEL}{existing}"]
        self._run("issue_edit", params, ctx=ctx, task_id=number)

    def search_tasks(
        self, query: Mapping[str, Any], *, ctx: Context | None = None
    ) -> list[ExternalTaskData]:
        params: dict[str, Any] = {
            "state": query.get("state", "all"),
            "limit": query.get("limit", 50),
        }
        terms = [str(query[k]) for k in ("search", "title") if query.get(k)]
        if terms:
            params["search"] = " ".join(terms)
        result = self._run("issue_list", params, ctx=ctx)
        return [self._to_external(issue) for issue in self._json(result, "issue_list") or []]

    def validate_connection(self, *, ctx: Context | None = None) -> None:
        self._run("auth_status", {}, ctx=ctx)

    def get_field_mapping(self) -> dict[str, str]:
        return dict(self.field_mapping)

    def map_to_internal(self, external: ExternalTaskData) -> InternalTaskData:
        label_status = normalize_token(external.fields.get("label_fields", {}).get("status") or "")
        if label_status in CANCELED_LABELS:
            label_status = TaskStatus.CANCELED.value
        if external.status == "closed":
            # Closed issues are done unless labelled as dropped.
            if label_status == TaskStatus.CANCELED.value:
                status = label_status
            else:
                status = TaskStatus.COMPLETED.value
        else:
            status = label_status or TaskStatus.NOT_STARTED.value
        return InternalTaskData(
            id=external.id,
            title=external.title,
            description=external.description,
            status=status,
            priority=external_priority(external.priority),
            owner=external.assignee,
            created=external.created,
            updated=external.updated,
            metadata={"external_system": self.name, "external_id": external.id},
        )

    def map_to_external(self, task: InternalTaskData) -> dict[str, Any]:
        payload = {
            "title": task.title,
            "description": task.description,
            "status": normalize_status(task.status),
            "priority": normalize_priority(task.priority),
        }
        try:
            return transform_fields(payload, self.mapping_rules, direction=SyncDirection.PUSH)
        except MappingError as e:
            e.provider = self.name
            e.task_id = task.id or None
            raise

    def health_check(self, *, ctx: Context | None = None) -> ProviderHealth:
        started = time.monotonic()
        try:
            self.validate_connection(ctx=ctx)
            self.get_rate_limit_info(ctx=ctx)
        except ZenError as e:
            return ProviderHealth(
                provider=self.name,
                healthy=False,
                response_time=time.monotonic() - started,
                error_count=1,
                last_error=str(e),
            )
        return ProviderHealth(
            provider=self.name,
            healthy=True,
            response_time=time.monotonic() - started,
            rate_limit_info=self._rate_limit,
        )

    def get_rate_limit_info(self, *, ctx: Context | None = None) -> RateLimitInfo:
        data = self._json(self._run("rate_limit", {}, ctx=ctx), "rate_limit") or {}
        core = (data.get("resources") or {}).get("core") or data.get("rate") or {}
        reset = core.get("reset")
        self._rate_limit = RateLimitInfo(
            limit=int(core.get("limit", 0)),
            remaining=int(core.get("remaining", 0)),
            reset_time=datetime.fromtimestamp(int(reset), timezone.utc) if reset else None,
        )
        return self._rate_limit.model_copy()


__all__ = ["GitHubCLIProvider", "classify_gh_error"]
