"""
Sync engine: keeps local tasks and their external counterparts in step.

One ``sync_task`` call runs:

    guard -> load SyncRecord -> provider lookup -> circuit breaker
          -> rate limiter -> retry(pull | push | bidirectional) -> persist

Locking: a single engine ReadWriteLock guards the provider, breaker, limiter
and health maps. It is only held to snapshot references; provider calls,
cache I/O and backoff sleeps happen with no lock held. Breakers and buckets
carry their own locks. Record writes take a per-task stripe lock so the
version check and the write in _persist happen as one step.

The health monitor starts with the first registered provider when
``health_interval`` is positive and stops on close().

Example:
    >>> engine = SyncEngine(config.integrations, records, tasks)
    >>> engine.register_provider(jira)
    >>> engine.sync_task("T1", SyncOptions(direction="pull")).changed_fields
    ['title']
"""

from __future__ import annotations

import logging
import threading
import time
import uuid
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, TypeVar

from zen.core.config.models import IntegrationsConfig
from zen.core.context import Context, ensure_context
from zen.core.errors import ErrorCode, ZenError
from zen.core.providers.protocols import TaskProvider
from zen.core.sync.circuit_breaker import BreakerState, CircuitBreaker
from zen.core.sync.conflicts import ConflictStore, apply_strategy, detect_conflicts
from zen.core.sync.health import HealthMonitor
from zen.core.sync.metrics import MetricsSnapshot, SyncMetrics
from zen.core.sync.models import (
    ConflictStrategy,
    ExternalTaskData,
    FieldConflict,
    InternalTaskData,
    ProviderHealth,
    SyncDirection,
    SyncOptions,
    SyncRecord,
    SyncRecordStatus,
    SyncResult,
    content_hash,
    utcnow,
)
from zen.core.sync.rate_limiter import TokenBucket
from zen.core.sync.records import SyncRecordStore
from zen.core.sync.retry import DEFAULT_RETRY_COUNT, RetryPolicy, retry_with_backoff
from zen.core.sync.task_store import TaskStore
from zen.utils.logging import EventType, SyncEventLogger
from zen.utils.rwlock import ReadWriteLock

logger = logging.getLogger(__name__)

MAX_RETRY_AFTER = 300
# Fields written by map_to_external and compared before a push.
PUSH_FIELDS = ("title", "description", "status", "priority")
# Provider-call failures that say nothing about the provider's health.
BREAKER_NEUTRAL_CODES = frozenset(
    {
        ErrorCode.CANCELED,
        ErrorCode.SYNC_CONFLICT,
        ErrorCode.INVALID_DATA,
        ErrorCode.INVALID_OPERATION,
        ErrorCode.NOT_FOUND,
    }
)
_RECORD_LOCK_STRIPES = 64

T = TypeVar("T")


def retry_after_seconds(error_count: int) -> int:
    """Delay before a failed record is due again: ``min(2**n, 300)``."""
    return min(2 ** max(0, error_count), MAX_RETRY_AFTER)


def _error_text(err: ZenError) -> str:
    if err.cause is not None:
        return f"{err.message}: {err.cause}"
    return err.message


@dataclass
class _Outcome:
    """What one dispatch attempt produced."""

    changed_fields: list[str] = field(default_factory=list)
    conflicts: list[FieldConflict] = field(default_factory=list)
    external_id: str = ""
    local: InternalTaskData | None = None
    pending_review: bool = False
    metadata: dict[str, object] = field(default_factory=dict)


class _ProviderCalls:
    """
    Runs the provider calls of one sync attempt.

    ``failed`` tells whether the attempt's error came from the provider, so
    local failures (task store, unlinked records) never reach the breaker.
    Non-ZenError exceptions from adapters are wrapped as provider_error.
    """

    def __init__(self, provider_name: str) -> None:
        self.provider_name = provider_name
        self.failed = False

    def __call__(self, fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        try:
            return fn(*args, **kwargs)
        except ZenError:
            self.failed = True
            raise
        except Exception as e:
            self.failed = True
            raise ZenError(
                ErrorCode.PROVIDER_ERROR,
                f"unexpected {type(e).__name__} from provider",
                provider=self.provider_name,
                operation=getattr(fn, "__name__", None),
                cause=e,
                retryable=False,
            ) from e


class SyncEngine:
    """
    Orchestrates synchronization between the task store and providers.

    Args:
        config: Integration settings (task system, per-provider overrides)
        records: SyncRecord persistence
        tasks: Local task store
        event_log: Optional JSONL journal of sync events
        retry_policy: Backoff settings; ``max_retries`` is overridden per call
        clock: Monotonic clock handed to breakers and buckets
    """

    def __init__(
        self,
        config: IntegrationsConfig,
        records: SyncRecordStore,
        tasks: TaskStore,
        *,
        event_log: SyncEventLogger | None = None,
        retry_policy: RetryPolicy | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.config = config
        self.records = records
        self.tasks = tasks
        self.event_log = event_log
        self.retry_policy = retry_policy or RetryPolicy()
        self._clock = clock

        self._lock = ReadWriteLock()
        self._providers: dict[str, TaskProvider] = {}
        self._breakers: dict[str, CircuitBreaker] = {}
        self._limiters: dict[str, TokenBucket] = {}
        self._health: dict[str, ProviderHealth] = {}

        self.conflicts = ConflictStore()
        self.metrics = SyncMetrics()
        self._monitor = HealthMonitor(self.check_all_health, config.health_interval)
        self._closed = False
        self._record_locks = [threading.Lock() for _ in range(_RECORD_LOCK_STRIPES)]

    # ------------------------------------------------------------------
    # Providers
    # ------------------------------------------------------------------

    def register_provider(self, provider: TaskProvider | None) -> None:
        """
        Register a provider with its own circuit breaker and token bucket.

        Raises:
            ZenError: invalid_data if provider is None or unnamed
        """
        if provider is None:
            raise ZenError(ErrorCode.INVALID_DATA, "provider cannot be nil", retryable=False)
        name = getattr(provider, "name", "")
        if not name:
            raise ZenError(ErrorCode.INVALID_DATA, "provider name cannot be empty", retryable=False)

        overrides = self.config.providers.get(name)
        if overrides is not None:
            breaker = CircuitBreaker(
                overrides.circuit_breaker.threshold,
                overrides.circuit_breaker.reset_timeout,
                clock=self._clock,
            )
            limiter = TokenBucket(
                overrides.rate_limit.rate, overrides.rate_limit.burst, clock=self._clock
            )
        else:
            breaker = CircuitBreaker(clock=self._clock)
            limiter = TokenBucket(clock=self._clock)

        with self._lock.write():
            self._providers[name] = provider
            self._breakers[name] = breaker
            self._limiters[name] = limiter
        logger.debug("Registered provider %s", name)
        if not self._closed:
            self._monitor.start()

    def get_provider(self, name: str) -> TaskProvider:
        """
        Raises:
            ZenError: provider_error when no provider has that name
        """
        with self._lock.read():
            provider = self._providers.get(name)
        if provider is None:
            raise ZenError(
                ErrorCode.PROVIDER_ERROR,
                f"provider {name!r} not registered",
                provider=name or None,
                retryable=False,
            )
        return provider

    def list_providers(self) -> list[str]:
        with self._lock.read():
            return sorted(self._providers)

    def get_breaker(self, name: str) -> CircuitBreaker | None:
        with self._lock.read():
            return self._breakers.get(name)

    def get_limiter(self, name: str) -> TokenBucket | None:
        with self._lock.read():
            return self._limiters.get(name)

    def get_task_system(self) -> str:
        return self.config.task_system

    def is_sync_enabled(self) -> bool:
        return self.config.sync_enabled

    def is_configured(self) -> bool:
        """True when a task system is named and its provider is registered."""
        system = self.config.task_system
        if not system or system == "none":
            return False
        with self._lock.read():
            return system in self._providers

    # ------------------------------------------------------------------
    # Sync records
    # ------------------------------------------------------------------

    def get_sync_record(self, task_id: str) -> SyncRecord:
        return self.records.get(task_id)

    def create_sync_record(self, record: SyncRecord) -> SyncRecord:
        return self.records.create(record)

    def update_sync_record(self, record: SyncRecord) -> SyncRecord:
        with self._record_lock(record.task_id):
            return self.records.update(record)

    def delete_sync_record(self, task_id: str) -> None:
        with self._record_lock(task_id):
            self.records.delete(task_id)
        self.conflicts.remove(task_id)

    def list_sync_records(self) -> list[SyncRecord]:
        return self.records.list()

    @contextmanager
    def _record_lock(self, task_id: str) -> Iterator[None]:
        """Serialize writers of one task's record; tasks share a fixed set of stripes."""
        with self._record_locks[hash(task_id) % _RECORD_LOCK_STRIPES]:
            yield

    # ------------------------------------------------------------------
    # Sync
    # ------------------------------------------------------------------

    def _event(self, event: EventType, data: dict[str, object]) -> None:
        if self.event_log is not None:
            self.event_log.log_event(event, data)

    def _failure(
        self,
        result: SyncResult,
        err: ZenError,
        started: float,
    ) -> SyncResult:
        result.success = False
        result.error = _error_text(err)
        result.error_code = err.code.value
        result.retryable = err.retryable
        result.duration = time.monotonic() - started
        return result

    def sync_task(
        self,
        task_id: str,
        options: SyncOptions | None = None,
        *,
        ctx: Context | None = None,
    ) -> SyncResult:
        """
        Synchronize one task.

        Failures are reported in the returned SyncResult (``success=False``,
        ``error_code``, ``retryable``) rather than raised.
        """
        options = options or SyncOptions()
        started = time.monotonic()
        correlation_id = options.correlation_id or uuid.uuid4().hex
        result = SyncResult(success=False, task_id=task_id, correlation_id=correlation_id)
        ctx = ensure_context(ctx).with_timeout(options.timeout)

        logger.debug(
            "Starting task sync",
            extra={"data": {"task_id": task_id, "correlation_id": correlation_id}},
        )

        # 1. Guard
        if not self.is_configured():
            return self._failure(
                result,
                ZenError(
                    ErrorCode.CONFIG_ERROR,
                    "integration not configured",
                    task_id=task_id,
                    hint="Set integrations.task_system and configure the provider",
                ),
                started,
            )

        # 2. Sync record
        try:
            record = self.records.get(task_id)
        except ZenError as e:
            return self._failure(result, e, started)
        result.external_id = record.external_id

        if record.status in (SyncRecordStatus.PAUSED, SyncRecordStatus.DISABLED) and not (
            options.force_sync
        ):
            return self._failure(
                result,
                ZenError(
                    ErrorCode.INVALID_OPERATION,
                    f"sync is {record.status.value} for this task",
                    task_id=task_id,
                    hint="Use --force to sync anyway",
                ),
                started,
            )

        direction = SyncDirection(options.direction or record.sync_direction)
        strategy = ConflictStrategy(options.conflict_strategy or record.conflict_strategy)
        result.direction = direction

        # 3. Provider
        provider_name = record.external_system or self.config.task_system
        with self._lock.read():
            provider = self._providers.get(provider_name)
            breaker = self._breakers.get(provider_name)
            limiter = self._limiters.get(provider_name)
        if provider is None or breaker is None or limiter is None:
            return self._failure(
                result,
                ZenError(
                    ErrorCode.PROVIDER_ERROR,
                    f"provider {provider_name!r} not registered",
                    provider=provider_name,
                    task_id=task_id,
                    retryable=False,
                ),
                started,
            )

        # 4. Circuit breaker
        if not breaker.allow():
            self._event(EventType.CIRCUIT_OPEN, {"provider": provider_name, "task_id": task_id})
            return self._failure(
                result,
                ZenError(
                    ErrorCode.PROVIDER_ERROR,
                    "circuit breaker open",
                    provider=provider_name,
                    task_id=task_id,
                    retryable=True,
                ),
                started,
            )

        # Every admitted call settles the breaker; anything escaping below
        # must not leave a half-open probe marked in flight.
        try:
            return self._run_admitted(
                result, record, provider, provider_name, breaker, limiter,
                direction, strategy, options, ctx, started,
            )
        except BaseException:
            breaker.release_probe()
            raise

    def _run_admitted(
        self,
        result: SyncResult,
        record: SyncRecord,
        provider: TaskProvider,
        provider_name: str,
        breaker: CircuitBreaker,
        limiter: TokenBucket,
        direction: SyncDirection,
        strategy: ConflictStrategy,
        options: SyncOptions,
        ctx: Context,
        started: float,
    ) -> SyncResult:
        task_id = record.task_id
        correlation_id = result.correlation_id

        # 5. Rate limiter
        if not limiter.allow():
            breaker.release_probe()
            return self._failure(
                result,
                ZenError(
                    ErrorCode.RATE_LIMITED,
                    "rate limit exceeded",
                    provider=provider_name,
                    task_id=task_id,
                ),
                started,
            )

        self._event(
            EventType.SYNC_START,
            {
                "task_id": task_id,
                "provider": provider_name,
                "direction": direction.value,
                "correlation_id": correlation_id,
                "dry_run": options.dry_run,
            },
        )

        # 6-7. Dispatch with retries
        retries = DEFAULT_RETRY_COUNT if options.retry_count is None else options.retry_count
        policy = RetryPolicy(
            max_retries=retries,
            base_delay=self.retry_policy.base_delay,
            multiplier=self.retry_policy.multiplier,
            max_delay=self.retry_policy.max_delay,
            jitter=self.retry_policy.jitter,
            jitter_ratio=self.retry_policy.jitter_ratio,
        )
        call = _ProviderCalls(provider_name)

        def attempt() -> _Outcome:
            call.failed = False
            return self._dispatch(provider, call, record, direction, strategy, options, ctx)

        try:
            outcome = retry_with_backoff(attempt, policy, ctx=ctx)
        except ZenError as e:
            e.task_id = e.task_id or task_id
            if call.failed:
                e.provider = e.provider or provider_name
            return self._on_failure(
                result, record, breaker, e, started, provider_name, remote=call.failed
            )
        except Exception as e:
            # Adapter exceptions are wrapped by _ProviderCalls; this is local.
            err = ZenError(
                ErrorCode.EXECUTION_FAILED,
                f"unexpected {type(e).__name__} during sync",
                task_id=task_id,
                cause=e,
                retryable=False,
            )
            return self._on_failure(result, record, breaker, err, started, provider_name)

        breaker.record_success()
        result.changed_fields = outcome.changed_fields
        result.conflicts = outcome.conflicts
        result.external_id = outcome.external_id or record.external_id
        result.metadata.update(outcome.metadata)

        if outcome.pending_review:
            return self._on_pending_review(result, record, outcome, options, started)

        result.success = True
        result.duration = time.monotonic() - started

        # 8. Dry run: nothing persisted
        if options.dry_run:
            result.metadata["dry_run"] = True
            self.metrics.record(True, result.duration, conflicts=len(outcome.conflicts))
            return result

        # 9. Success
        self.metrics.record(True, result.duration, conflicts=len(outcome.conflicts))
        record = record.model_copy(
            update={
                "external_id": result.external_id,
                "last_sync_time": utcnow(),
                "version": record.version + 1,
                "error_count": 0,
                "last_error": None,
                "retry_after": None,
                "status": SyncRecordStatus.ACTIVE,
                "data_hash": content_hash(outcome.local) if outcome.local else record.data_hash,
            }
        )
        try:
            self._persist(record, expected_version=record.version - 1)
        except ZenError as e:
            result.success = False
            return self._failure(result, e, started)

        self._event(
            EventType.SYNC_END,
            {
                "task_id": task_id,
                "success": True,
                "changed_fields": result.changed_fields,
                "duration": result.duration,
                "correlation_id": correlation_id,
            },
        )
        logger.info(
            "Task %s synced with %s (%d field(s) changed)",
            task_id,
            provider_name,
            len(result.changed_fields),
        )
        return result

    def _on_pending_review(
        self,
        result: SyncResult,
        record: SyncRecord,
        outcome: _Outcome,
        options: SyncOptions,
        started: float,
    ) -> SyncResult:
        err = ZenError(
            ErrorCode.SYNC_CONFLICT,
            f"{len(outcome.conflicts)} conflicting field(s) need manual review",
            task_id=record.task_id,
            retryable=False,
            hint="Inspect with 'zen sync conflicts'",
        )
        self._failure(result, err, started)
        self.metrics.record(False, result.duration, conflicts=len(outcome.conflicts))
        if options.dry_run:
            result.metadata["dry_run"] = True
            return result

        self.conflicts.add(record.task_id, outcome.conflicts)
        self._event(
            EventType.CONFLICT,
            {"task_id": record.task_id, "fields": [c.field for c in outcome.conflicts]},
        )
        updated = record.model_copy(
            update={
                "status": SyncRecordStatus.CONFLICT,
                "version": record.version + 1,
                "last_error": err.message,
            }
        )
        try:
            self._persist(updated, expected_version=record.version)
        except ZenError as e:
            logger.warning("Failed to persist conflict state for %s: %s", record.task_id, e)
        return result

    def _on_failure(
        self,
        result: SyncResult,
        record: SyncRecord,
        breaker: CircuitBreaker,
        err: ZenError,
        started: float,
        provider_name: str,
        *,
        remote: bool = False,
    ) -> SyncResult:
        # 10. Terminal failure. Only provider calls count against the breaker.
        if not remote or err.code in BREAKER_NEUTRAL_CODES:
            breaker.release_probe()
        else:
            was_open = breaker.state == BreakerState.OPEN
            breaker.record_failure()
            if not was_open and breaker.state == BreakerState.OPEN:
                logger.warning("Circuit breaker opened for %s", provider_name)
                self._event(EventType.CIRCUIT_OPEN, {"provider": provider_name})

        self._failure(result, err, started)
        self.metrics.record(False, result.duration)
        self._event(
            EventType.ERROR,
            {
                "task_id": record.task_id,
                "provider": provider_name,
                "code": err.code.value,
                "error": result.error,
                "correlation_id": result.correlation_id,
            },
        )
        logger.error("Task %s sync failed: %s", record.task_id, err)

        error_count = record.error_count + 1
        failed = record.model_copy(
            update={
                "status": SyncRecordStatus.ERROR,
                "error_count": error_count,
                "last_error": result.error or err.code.value,
                "retry_after": utcnow() + timedelta(seconds=retry_after_seconds(error_count)),
                "version": record.version + 1,
            }
        )
        try:
            self._persist(failed, expected_version=record.version)
        except ZenError as e:
            logger.warning("Failed to persist sync failure for %s: %s", record.task_id, e)
        return result

    def _persist(self, record: SyncRecord, *, expected_version: int) -> None:
        """
        Write record if the stored version is still the one it was read at.

        Raises:
            ZenError: sync_conflict when another writer got there first
        """
        with self._record_lock(record.task_id):
            current = self.records.get(record.task_id)
            if current.version != expected_version:
                raise ZenError(
                    ErrorCode.SYNC_CONFLICT,
                    f"sync record modified concurrently (version {current.version}, "
                    f"expected {expected_version})",
                    task_id=record.task_id,
                    retryable=False,
                )
            self.records.update(record)

    # ------------------------------------------------------------------
    # Directions
    # ------------------------------------------------------------------

    def _dispatch(
        self,
        provider: TaskProvider,
        call: _ProviderCalls,
        record: SyncRecord,
        direction: SyncDirection,
        strategy: ConflictStrategy,
        options: SyncOptions,
        ctx: Context,
    ) -> _Outcome:
        ctx.check()
        if direction == SyncDirection.PULL:
            return self._pull(provider, call, record, strategy, options, ctx)[0]
        if direction == SyncDirection.PUSH or not record.external_id:
            # Nothing to pull from until the external task exists.
            return self._push(provider, call, record, options, ctx)

        pulled, external = self._pull(provider, call, record, strategy, options, ctx)
        if pulled.pending_review:
            return pulled
        pushed = self._push(
            provider, call, record, options, ctx, local=pulled.local, external=external
        )
        changed = list(dict.fromkeys(pulled.changed_fields + pushed.changed_fields))
        return _Outcome(
            changed_fields=changed,
            conflicts=pulled.conflicts,
            external_id=pushed.external_id or pulled.external_id,
            local=pushed.local,
            metadata={"pulled": pulled.changed_fields, "pushed": pushed.changed_fields},
        )

    def _load_local(self, task_id: str) -> InternalTaskData | None:
        try:
            return self.tasks.get(task_id)
        except ZenError as e:
            if e.code == ErrorCode.NOT_FOUND:
                return None
            raise

    def _pull(
        self,
        provider: TaskProvider,
        call: _ProviderCalls,
        record: SyncRecord,
        strategy: ConflictStrategy,
        options: SyncOptions,
        ctx: Context,
    ) -> tuple[_Outcome, InternalTaskData | None]:
        if not record.external_id:
            raise ZenError(
                ErrorCode.INVALID_DATA,
                "task is not linked to an external id",
                task_id=record.task_id,
                retryable=False,
                hint="Link it with 'zen sync link'",
            )
        external: ExternalTaskData = call(provider.get_task, record.external_id, ctx=ctx)
        remote = call(provider.map_to_internal, external)
        remote_updated = remote.updated or external.updated

        local = self._load_local(record.task_id)
        if local is None:
            # No local copy yet: adopt the external task as is.
            adopted = remote.model_copy(update={"id": record.task_id, "updated": utcnow()})
            if not options.dry_run:
                self.tasks.put(record.task_id, adopted)
            outcome = _Outcome(
                changed_fields=[
                    n for n in PUSH_FIELDS + ("owner",) if getattr(adopted, n) not in ("", None)
                ],
                external_id=record.external_id,
                local=adopted,
                metadata={"created_locally": True},
            )
            return outcome, remote

        conflicts = detect_conflicts(
            local,
            remote,
            local_updated=self.tasks.updated_at(record.task_id),
            external_updated=remote_updated,
        )
        if conflicts and strategy == ConflictStrategy.MANUAL_REVIEW:
            apply_strategy(strategy, local, conflicts)
            return (
                _Outcome(
                    conflicts=conflicts,
                    external_id=record.external_id,
                    local=local,
                    pending_review=True,
                ),
                remote,
            )

        resolved, changed = apply_strategy(strategy, local, conflicts)
        if changed:
            resolved = resolved.model_copy(update={"updated": utcnow()})
            if not options.dry_run:
                self.tasks.put(record.task_id, resolved)
        return (
            _Outcome(
                changed_fields=changed,
                conflicts=conflicts,
                external_id=record.external_id,
                local=resolved,
            ),
            remote,
        )

    def _push(
        self,
        provider: TaskProvider,
        call: _ProviderCalls,
        record: SyncRecord,
        options: SyncOptions,
        ctx: Context,
        *,
        local: InternalTaskData | None = None,
        external: InternalTaskData | None = None,
    ) -> _Outcome:
        if local is None:
            local = self.tasks.get(record.task_id)
        payload = call(provider.map_to_external, local)

        if not record.external_id:
            changed = [n for n in PUSH_FIELDS if payload.get(n) not in ("", None)]
            if options.dry_run:
                return _Outcome(changed_fields=changed, local=local, metadata={"would_create": True})
            created = call(provider.create_task, payload, ctx=ctx)
            logger.info("Created external task %s for %s", created.id, record.task_id)
            return _Outcome(
                changed_fields=changed,
                external_id=created.id,
                local=local,
                metadata={"created_externally": True},
            )

        if external is None:
            external = call(
                provider.map_to_internal, call(provider.get_task, record.external_id, ctx=ctx)
            )
        changed = [n for n in PUSH_FIELDS if getattr(local, n) != getattr(external, n)]
        if options.force_sync:
            changed = list(PUSH_FIELDS)
        if changed and not options.dry_run:
            call(
                provider.update_task,
                record.external_id,
                {n: payload[n] for n in changed if n in payload},
                ctx=ctx,
            )
        return _Outcome(changed_fields=changed, external_id=record.external_id, local=local)

    def sync_all_tasks(
        self, options: SyncOptions | None = None, *, ctx: Context | None = None
    ) -> list[SyncResult]:
        """
        Sync every linked task; per-task failures do not stop the run.

        Records that are paused, disabled, or still inside their
        ``retry_after`` window are skipped unless ``force_sync`` is set.
        """
        options = options or SyncOptions()
        ctx = ensure_context(ctx)
        now = utcnow()
        results: list[SyncResult] = []
        for record in self.records.list():
            if ctx.done():
                break
            if not options.force_sync:
                if record.status in (SyncRecordStatus.PAUSED, SyncRecordStatus.DISABLED):
                    logger.debug("Skipping %s: %s", record.task_id, record.status.value)
                    continue
                if record.retry_after is not None and record.retry_after > now:
                    logger.debug("Skipping %s: retry after %s", record.task_id, record.retry_after)
                    continue
            results.append(self.sync_task(record.task_id, options, ctx=ctx))
        return results

    # ------------------------------------------------------------------
    # Health and metrics
    # ------------------------------------------------------------------

    def check_provider_health(self, name: str, *, ctx: Context | None = None) -> ProviderHealth:
        """
        Probe one provider now.

        Bypasses the circuit breaker; skipped (returning the last known
        state) when the provider's bucket has no spare capacity.
        """
        provider = self.get_provider(name)
        with self._lock.read():
            limiter = self._limiters.get(name)
            previous = self._health.get(name)
        if limiter is not None and not (limiter.has_spare() and limiter.allow()):
            logger.debug("Skipping health probe for %s: no spare rate capacity", name)
            if previous is not None:
                return previous.model_copy()
            return ProviderHealth(provider=name, healthy=True, last_error="probe deferred")

        try:
            health = provider.health_check(ctx=ctx)
        except ZenError as e:
            health = ProviderHealth(provider=name, healthy=False, last_error=str(e))
        errors = 0 if health.healthy else (previous.error_count if previous else 0) + 1
        health = health.model_copy(update={"provider": name, "error_count": errors})
        with self._lock.write():
            self._health[name] = health
        return health.model_copy()

    def check_all_health(self) -> dict[str, ProviderHealth]:
        return {name: self.check_provider_health(name) for name in self.list_providers()}

    def get_provider_health(self, name: str) -> ProviderHealth | None:
        with self._lock.read():
            health = self._health.get(name)
        return health.model_copy() if health else None

    def get_all_provider_health(self) -> dict[str, ProviderHealth]:
        with self._lock.read():
            return {k: v.model_copy() for k, v in self._health.items()}

    def get_metrics(self) -> MetricsSnapshot:
        return self.metrics.snapshot()

    @property
    def health_monitor(self) -> HealthMonitor:
        return self._monitor

    def start_health_monitor(self) -> None:
        """Start background health checks; registering a provider already does this."""
        if not self._closed:
            self._monitor.start()

    def close(self) -> None:
        """Stop the health monitor. Idempotent."""
        if self._closed:
            return
        self._closed = True
        self._monitor.stop()

    def __enter__(self) -> SyncEngine:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()


__all__ = [
    "BREAKER_NEUTRAL_CODES",
    "MAX_RETRY_AFTER",
    "PUSH_FIELDS",
    "SyncEngine",
    "retry_after_seconds",
]
