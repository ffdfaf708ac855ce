"""
Jira REST (v3) provider adapter.

Speaks to ``/rest/api/3`` with Basic auth (``email:token``) and maps issues
onto zen's normalized task vocabulary.

Error classification for non-2xx responses: every failure surfaces as
``provider_error``; 5xx and 429 are retryable, other 4xx are not. Transport
timeouts become ``timeout`` and connection failures ``network_error``.

Example:
    >>> jira = JiraProvider(
    ...     base_url="https://acme.atlassian.net",
    ...     project_key="PROJ",
    ...     credentials=EnvCredentialAccessor(),
    ...     email="dev@acme.io",
    ... )
    >>> jira.get_task("PROJ-42").title
    'Fix login redirect'
"""

from __future__ import annotations

import base64
import json
import logging
import time
from collections.abc import Iterator, Mapping
from datetime import datetime, timezone
from typing import Any

import httpx

from zen.core.adapters.credentials import CredentialAccessor
from zen.core.adapters.normalize import (
    external_priority,
    normalize_priority,
    normalize_status,
    normalize_token,
    parse_timestamp,
)
from zen.core.context import Context, ensure_context
from zen.core.errors import ErrorCode, Result, ZenError
from zen.core.mapper import (
    ISSUE_TRACKER_MAPPING,
    MappingError,
    MappingRules,
    apply_mapping,
    transform_fields,
    validate_mapping,
    validate_rules,
)
from zen.core.providers.models import ProviderInfo, ProviderKind
from zen.core.sync.models import (
    ExternalTaskData,
    InternalTaskData,
    ProviderHealth,
    RateLimitInfo,
    SyncDirection,
    TaskStatus,
)

logger = logging.getLogger(__name__)

API_PREFIX = "/rest/api/3"
DEFAULT_TIMEOUT = 30.0

STATUS_TO_INTERNAL = {
    "to do": TaskStatus.NOT_STARTED.value,
    "in progress": TaskStatus.IN_PROGRESS.value,
    "done": TaskStatus.COMPLETED.value,
    "closed": TaskStatus.COMPLETED.value,
    "blocked": TaskStatus.BLOCKED.value,
}

STATUS_TO_EXTERNAL = {
    TaskStatus.NOT_STARTED.value: "To Do",
    TaskStatus.IN_PROGRESS.value: "In Progress",
    TaskStatus.COMPLETED.value: "Done",
    TaskStatus.BLOCKED.value: "Blocked",
    TaskStatus.CANCELED.value: "Closed",
}

PRIORITY_TO_INTERNAL = {
    "highest": "P0",
    "high": "P1",
    "medium": "P2",
    "low": "P3",
    "lowest": "P3",
}

PRIORITY_TO_EXTERNAL = {"P0": "Highest", "P1": "High", "P2": "Medium", "P3": "Low"}

OPERATIONS = (
    "get_issue",
    "create_issue",
    "update_issue",
    "search",
    "myself",
    "transitions",
    "transition",
)


def adf_to_text(value: Any) -> str:
    """Flatten an Atlassian Document Format node (or plain string) to text."""
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, dict):
        if value.get("type") == "text":
            return str(value.get("text", ""))
        parts = [adf_to_text(child) for child in value.get("content", [])]
        joiner = "\n" if value.get("type") == "doc" else ""
        return joiner.join(parts)
    if isinstance(value, list):
        return "".join(adf_to_text(v) for v in value)
    return str(value)


def text_to_adf(text: str) -> dict[str, Any]:
    paragraphs = [p for p in text.split("\n")] if text else []
    return {
        "type": "doc",
        "version": 1,
        "content": [
            {"type": "paragraph", "content": [{"type": "text", "text": p}] if p else []}
            for p in paragraphs
        ],
    }


def _reset_time(value: str | None) -> datetime | None:
    """Reset header as epoch seconds or ISO-8601."""
    if not value:
        return None
    if value.isdigit():
        return datetime.fromtimestamp(int(value), timezone.utc)
    return parse_timestamp(value)


def _jql_quote(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"')


class JiraProvider:
    """
    Jira Cloud task provider.

    Args:
        base_url: Site URL, e.g. https://acme.atlassian.net
        project_key: Project used for creates and searches
        credentials: Accessor returning the API token (or ``email:token``)
        email: Account email for Basic auth
        field_mapping: Internal field to Jira field path overrides
        mapping_rules: Transforms and validation applied to mapped fields
        name: Registered provider name
        timeout: Default request timeout in seconds
        transport: Optional httpx transport (tests use httpx.MockTransport)
    """

    def __init__(
        self,
        base_url: str,
        project_key: str,
        credentials: CredentialAccessor,
        *,
        email: str = "",
        field_mapping: Mapping[str, str] | None = None,
        mapping_rules: MappingRules | None = None,
        name: str = "jira",
        timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        if not base_url:
            raise ZenError(ErrorCode.CONFIG_ERROR, "jira url is not configured", provider=name)
        self._name = name
        self.base_url = base_url.rstrip("/")
        self.project_key = project_key
        self.credentials = credentials
        self.email = email
        mapping = dict(ISSUE_TRACKER_MAPPING)
        mapping.update(field_mapping or {})
        validate_mapping(mapping)
        self.field_mapping = mapping
        if mapping_rules is not None:
            validate_rules(mapping_rules)
        self.mapping_rules = mapping_rules
        self.timeout = timeout
        self._client = httpx.Client(
            base_url=self.base_url,
            timeout=timeout,
            transport=transport,
            headers={"Accept": "application/json", "Content-Type": "application/json"},
        )
        self._rate_limit = RateLimitInfo()

    @property
    def name(self) -> str:
        return self._name

    def close(self) -> None:
        self._client.close()

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def _auth_header(self) -> str:
        secret = self.credentials.get(self._name)
        user_pass = secret if ":" in secret and not self.email else f"{self.email}:{secret}"
        return "Basic " + base64.b64encode(user_pass.encode("utf-8")).decode("ascii")

    def _endpoint(self, op: str, params: Mapping[str, Any]) -> tuple[str, str, dict[str, Any]]:
        action = op.removeprefix(f"{self._name}.")
        key = params.get("key", "")
        if action == "get_issue":
            return "GET", f"{API_PREFIX}/issue/{key}", {}
        if action == "create_issue":
            return "POST", f"{API_PREFIX}/issue", {"json": params.get("body", {})}
        if action == "update_issue":
            return "PUT", f"{API_PREFIX}/issue/{key}", {"json": params.get("body", {})}
        if action == "search":
            query = {"jql": params.get("jql", ""), "maxResults": params.get("max_results", 50)}
            return "GET", f"{API_PREFIX}/search", {"params": query}
        if action == "myself":
            return "GET", f"{API_PREFIX}/myself", {}
        if action == "transitions":
            return "GET", f"{API_PREFIX}/issue/{key}/transitions", {}
        if action == "transition":
            body = {"transition": {"id": str(params.get("transition_id", ""))}}
            return "POST", f"{API_PREFIX}/issue/{key}/transitions", {"json": body}
        raise ZenError(
            ErrorCode.INVALID_OPERATION,
            f"unsupported operation {op!r}",
            provider=self._name,
            operation=op,
        )

    def _update_rate_limit(self, headers: httpx.Headers) -> None:
        limit = headers.get("X-RateLimit-Limit")
        remaining = headers.get("X-RateLimit-Remaining")
        reset = headers.get("X-RateLimit-Reset")
        if limit is None and remaining is None:
            return
        info = RateLimitInfo(
            limit=int(limit or 0),
            remaining=int(remaining or 0),
            reset_time=_reset_time(reset),
        )
        self._rate_limit = info

    def execute(
        self, op: str, params: Mapping[str, Any] | None = None, *, ctx: Context | None = None
    ) -> Result:
        """
        Perform one REST call. Non-2xx statuses are returned, not raised.

        Raises:
            ZenError: timeout, network_error, canceled, auth_failed (no credentials)
        """
        ctx = ensure_context(ctx)
        ctx.check()
        params = dict(params or {})
        method, path, kwargs = self._endpoint(op, params)
        remaining = ctx.remaining()
        timeout = self.timeout if remaining is None else min(self.timeout, remaining)
        headers = {"Authorization": self._auth_header()}

        started = time.monotonic()
        logger.debug("jira %s %s", method, path)
        try:
            response = self._client.request(
                method, path, headers=headers, timeout=timeout, **kwargs
            )
        except httpx.TimeoutException as e:
            raise ZenError(
                ErrorCode.TIMEOUT, f"{method} {path} timed out", provider=self._name,
                operation=op, cause=e,
            )
        except httpx.RequestError as e:
            raise ZenError(
                ErrorCode.NETWORK_ERROR, f"{method} {path} failed", provider=self._name,
                operation=op, cause=e,
            )
        self._update_rate_limit(response.headers)
        return Result(
            exit_code=response.status_code,
            body=response.content,
            headers=dict(response.headers),
            duration=time.monotonic() - started,
            meta={"method": method, "path": path},
        )

    def stream(
        self, op: str, params: Mapping[str, Any] | None = None, *, ctx: Context | None = None
    ) -> Iterator[str]:
        """Yield the response body of op line by line."""
        result = self._check(self.execute(op, params, ctx=ctx), op)
        yield from result.output().splitlines(keepends=True)

    def _check(self, result: Result, op: str, task_id: str | None = None) -> Result:
        if result.success():
            return result
        status = result.exit_code
        detail = result.output()[:200].strip()
        message = f"HTTP {status}" + (f": {detail}" if detail else "")
        raise ZenError(
            ErrorCode.PROVIDER_ERROR,
            message,
            provider=self._name,
            operation=op,
            task_id=task_id,
            retryable=status == 429 or 500 <= status < 600,
        )

    def _json(self, result: Result) -> Any:
        try:
            return json.loads(result.body or b"{}")
        except ValueError as e:
            raise ZenError(
                ErrorCode.PARSE_FAILED, "invalid JSON from jira", provider=self._name, cause=e
            )

    # ------------------------------------------------------------------
    # Task provider
    # ------------------------------------------------------------------

    def _to_external(self, issue: Mapping[str, Any]) -> ExternalTaskData:
        source = {"key": issue.get("key", ""), **dict(issue.get("fields") or {})}
        try:
            mapped = apply_mapping(
                source, self.field_mapping, self.mapping_rules, direction=SyncDirection.PULL
            )
        except MappingError as e:
            e.provider = self._name
            e.task_id = str(issue.get("key") or "") or None
            raise
        return ExternalTaskData(
            id=str(mapped.get("task_id", "")),
            title=str(mapped.get("title") or ""),
            description=adf_to_text(mapped.get("description")),
            status=str(mapped.get("status") or ""),
            priority=str(mapped.get("priority") or ""),
            assignee=str(mapped.get("assignee") or ""),
            created=parse_timestamp(mapped.get("created")),
            updated=parse_timestamp(mapped.get("updated")),
            fields=dict(issue),
        )

    def get_task(self, external_id: str, *, ctx: Context | None = None) -> ExternalTaskData:
        result = self._check(self.execute("get_issue", {"key": external_id}, ctx=ctx), "get_task")
        return self._to_external(self._json(result))

    def _fields_payload(self, task: Mapping[str, Any]) -> dict[str, Any]:
        fields: dict[str, Any] = {}
        if "title" in task:
            fields["summary"] = task["title"]
        if "description" in task:
            fields["description"] = text_to_adf(str(task["description"] or ""))
        if "priority" in task:
            fields["priority"] = {"name": str(task["priority"])}
        return fields

    def create_task(
        self, task: Mapping[str, Any], *, ctx: Context | None = None
    ) -> ExternalTaskData:
        fields = self._fields_payload(task)
        fields["project"] = {"key": self.project_key}
        fields["issuetype"] = {"name": str(task.get("issue_type", "Task"))}
        result = self.execute("create_issue", {"body": {"fields": fields}}, ctx=ctx)
        self._check(result, "create_task")
        key = self._json(result).get("key", "")
        if not key:
            raise ZenError(
                ErrorCode.PARSE_FAILED, "create response has no issue key", provider=self._name
            )
        if task.get("status"):
            self._transition(key, str(task["status"]), ctx=ctx)
        return self.get_task(key, ctx=ctx)

    def update_task(
        self, external_id: str, task: Mapping[str, Any], *, ctx: Context | None = None
    ) -> ExternalTaskData:
        fields = self._fields_payload(task)
        if fields:
            result = self.execute(
                "update_issue", {"key": external_id, "body": {"fields": fields}}, ctx=ctx
            )
            self._check(result, "update_task", external_id)
        if task.get("status"):
            self._transition(external_id, str(task["status"]), ctx=ctx)
        return self.get_task(external_id, ctx=ctx)

    def _transition(self, key: str, status_name: str, *, ctx: Context | None) -> None:
        """Move an issue to the workflow state named status_name, if reachable."""
        result = self._check(self.execute("transitions", {"key": key}, ctx=ctx), "transition")
        for transition in self._json(result).get("transitions", []):
            target = (transition.get("to") or {}).get("name", "")
            if target.lower() == status_name.lower():
                if (self._current_status(key, ctx=ctx) or "").lower() == target.lower():
                    return
                self._check(
                    self.execute(
                        "transition", {"key": key, "transition_id": transition.get("id")}, ctx=ctx
                    ),
                    "transition",
                )
                return
        logger.info("No transition to %r available for %s", status_name, key)

    def _current_status(self, key: str, *, ctx: Context | None) -> str | None:
        result = self.execute("get_issue", {"key": key}, ctx=ctx)
        if not result.success():
            return None
        return ((self._json(result).get("fields") or {}).get("status") or {}).get("name")

    def search_tasks(
        self, query: Mapping[str, Any], *, ctx: Context | None = None
    ) -> list[ExternalTaskData]:
        clauses = [f"project = {self.project_key}"]
        if query.get("title"):
            clauses.append(f'summary ~ "{_jql_quote(str(query["title"]))}"')
        if query.get("status"):
            clauses.append(f'status = "{_jql_quote(str(query["status"]))}"')
        jql = str(query.get("jql") or " AND ".join(clauses))
        params = {"jql": jql, "max_results": int(query.get("limit", 50))}
        result = self._check(self.execute("search", params, ctx=ctx), "search_tasks")
        return [self._to_external(issue) for issue in self._json(result).get("issues", [])]

    def validate_connection(self, *, ctx: Context | None = None) -> None:
        result = self.execute("myself", ctx=ctx)
        if result.exit_code in (401, 403):
            raise ZenError(
                ErrorCode.AUTH_FAILED,
                f"jira rejected credentials (HTTP {result.exit_code})",
                provider=self._name,
                retryable=False,
            )
        self._check(result, "validate_connection")

    def get_field_mapping(self) -> dict[str, str]:
        return dict(self.field_mapping)

    def map_to_internal(self, external: ExternalTaskData) -> InternalTaskData:
        status_key = external.status.strip().lower()
        status = STATUS_TO_INTERNAL.get(status_key, normalize_token(external.status))
        priority = PRIORITY_TO_INTERNAL.get(external.priority.strip().lower())
        if priority is None:
            priority = external_priority(external.priority)
        return InternalTaskData(
            id=external.id,
            title=external.title,
            description=external.description,
            status=status or TaskStatus.NOT_STARTED.value,
            priority=priority,
            owner=external.assignee,
            created=external.created,
            updated=external.updated,
            metadata={"external_system": self._name, "external_id": external.id},
        )

    def map_to_external(self, task: InternalTaskData) -> dict[str, Any]:
        payload = {
            "title": task.title,
            "description": task.description,
            "status": STATUS_TO_EXTERNAL[normalize_status(task.status)],
            "priority": PRIORITY_TO_EXTERNAL[normalize_priority(task.priority)],
        }
        try:
            return transform_fields(payload, self.mapping_rules, direction=SyncDirection.PUSH)
        except MappingError as e:
            e.provider = self._name
            e.task_id = task.id or None
            raise

    def health_check(self, *, ctx: Context | None = None) -> ProviderHealth:
        started = time.monotonic()
        try:
            self.validate_connection(ctx=ctx)
        except ZenError as e:
            return ProviderHealth(
                provider=self._name,
                healthy=False,
                response_time=time.monotonic() - started,
                error_count=1,
                last_error=str(e),
                rate_limit_info=self._rate_limit,
            )
        return ProviderHealth(
            provider=self._name,
            healthy=True,
            response_time=time.monotonic() - started,
            rate_limit_info=self._rate_limit,
        )

    def get_rate_limit_info(self, *, ctx: Context | None = None) -> RateLimitInfo:
        return self._rate_limit.model_copy()

    def info(self, ctx: Context | None = None) -> ProviderInfo:
        available = self.credentials.is_authenticated(self._name)
        return ProviderInfo(
            name=self._name,
            kind=ProviderKind.API,
            version="3",
            available=available,
            reason="" if available else "no credentials configured",
            capabilities={f"{self._name}.{op}": True for op in OPERATIONS},
            base_url=self.base_url,
        )


__all__ = [
    "JiraProvider",
    "PRIORITY_TO_EXTERNAL",
    "PRIORITY_TO_INTERNAL",
    "STATUS_TO_EXTERNAL",
    "STATUS_TO_INTERNAL",
    "adf_to_text",
    "text_to_adf",
]
