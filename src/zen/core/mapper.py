"""
Declarative field mapping between external payloads and zen's task schema.

A mapping pairs an internal field name with a dot-separated path into a
nested external payload:

    {"task_id": "key", "title": "summary", "status": "status.name"}

MappingRules layer value transforms, validation and per-field directions on
top of a plain mapping; apply_mapping runs all three and reports every
field problem at once in a MappingError.

Example:
    >>> payload = {"key": "PROJ-1", "fields": {"summary": "Fix"}}
    >>> map_fields(payload, {"task_id": "key", "title": "fields.summary"})
    {'task_id': 'PROJ-1', 'title': 'Fix'}
"""

from __future__ import annotations

import dataclasses
import logging
import re
import threading
from collections.abc import Callable, Mapping
from string import Template
from typing import Any, Protocol

from pydantic import BaseModel, Field

from zen.core.errors import ErrorCode, ZenError
from zen.core.sync.models import SyncDirection

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("task_id", "title")

ISSUE_TRACKER_MAPPING = {
    "task_id": "key",
    "title": "summary",
    "description": "description",
    "status": "status.name",
    "priority": "priority.name",
    "assignee": "assignee.displayName",
    "created": "created",
    "updated": "updated",
}

SOURCE_FORGE_MAPPING = {
    "task_id": "number",
    "title": "title",
    "description": "body",
    "status": "state",
    "priority": "labels.priority",
    "assignee": "assignee.login",
    "created": "created_at",
    "updated": "updated_at",
}

GENERIC_MAPPING = {
    "task_id": "id",
    "title": "title",
    "description": "description",
    "status": "status",
    "priority": "priority",
    "assignee": "assignee",
    "created": "created",
    "updated": "updated",
}

LINEAR_MAPPING = {
    "task_id": "identifier",
    "title": "title",
    "description": "description",
    "status": "state.name",
    "priority": "priority",
    "assignee": "assignee.displayName",
    "created": "createdAt",
    "updated": "updatedAt",
}

_defaults: dict[str, dict[str, str]] = {
    "jira": ISSUE_TRACKER_MAPPING,
    "issue_tracker": ISSUE_TRACKER_MAPPING,
    "github": SOURCE_FORGE_MAPPING,
    "source_forge": SOURCE_FORGE_MAPPING,
    "linear": LINEAR_MAPPING,
}
_defaults_lock = threading.Lock()

_MISSING = object()


def register_default_mapping(provider: str, mapping: Mapping[str, str]) -> None:
    """Register the canonical mapping for a provider name (case-insensitive)."""
    validate_mapping(mapping)
    with _defaults_lock:
        _defaults[provider.lower()] = dict(mapping)


def get_default_mapping(provider: str) -> dict[str, str]:
    """Canonical mapping for provider, or the generic identity mapping."""
    with _defaults_lock:
        mapping = _defaults.get(provider.lower(), GENERIC_MAPPING)
    return dict(mapping)


def validate_mapping(mapping: Mapping[str, str] | None) -> None:
    """
    Check a mapping.

    Raises:
        ZenError: invalid_data if a required field is missing or any key or
            path is empty
    """
    if mapping is None:
        raise ZenError(ErrorCode.INVALID_DATA, "mapping cannot be empty")
    for name in REQUIRED_FIELDS:
        if name not in mapping:
            raise ZenError(ErrorCode.INVALID_DATA, f"required field {name!r} not found in mapping")
    for internal, path in mapping.items():
        if not internal:
            raise ZenError(ErrorCode.INVALID_DATA, "internal field name cannot be empty")
        if not path:
            raise ZenError(ErrorCode.INVALID_DATA, f"external path cannot be empty for {internal!r}")


def to_mapping(value: Any) -> dict[str, Any] | None:
    """
    Best-effort conversion of a structured record to a dict.

    Pydantic models are dumped by alias, dataclasses by field name, and
    plain objects through ``__dict__``. Returns None for scalars.
    """
    if isinstance(value, Mapping):
        return dict(value)
    if isinstance(value, BaseModel):
        return value.model_dump(by_alias=True)
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return dataclasses.asdict(value)
    if hasattr(value, "__dict__") and not isinstance(value, type):
        return {k: v for k, v in vars(value).items() if not k.startswith("_")}
    return None


def get_nested_value(data: Any, path: str) -> Any:
    """
    Resolve a dot path.

    Raises:
        KeyError: when a segment is missing or a scalar is met mid-path
    """
    current = data
    for segment in path.split("."):
        container = to_mapping(current)
        if container is None:
            raise KeyError(path)
        value = container.get(segment, _MISSING)
        if value is _MISSING:
            raise KeyError(path)
        current = value
    return current


def map_fields(
    source: Mapping[str, Any] | None, mapping: Mapping[str, str] | None
) -> dict[str, Any]:
    """
    Project source through mapping.

    Fields whose path cannot be resolved are omitted. Without a mapping the
    source is returned unchanged.

    Raises:
        ZenError: invalid_data when source is None
    """
    if source is None:
        raise ZenError(ErrorCode.INVALID_DATA, "source data cannot be empty")
    if mapping is None:
        return dict(source)

    result: dict[str, Any] = {}
    for internal, path in mapping.items():
        try:
            result[internal] = get_nested_value(source, path)
        except KeyError:
            continue
    return result


def reverse_mapping(mapping: Mapping[str, str]) -> dict[str, str]:
    """Swap keys and values."""
    return {path: internal for internal, path in mapping.items()}


def merge_fields(
    base: Mapping[str, Any] | None, override: Mapping[str, Any] | None
) -> dict[str, Any]:
    """Shallow merge where override wins."""
    result = dict(base or {})
    result.update(override or {})
    return result


def set_nested_value(data: dict[str, Any], path: str, value: Any) -> None:
    """Assign value at a dot path, creating intermediate dicts."""
    segments = path.split(".")
    current = data
    for segment in segments[:-1]:
        nxt = current.get(segment)
        if not isinstance(nxt, dict):
            nxt = {}
            current[segment] = nxt
        current = nxt
    current[segments[-1]] = value


def unmap_fields(internal: Mapping[str, Any], mapping: Mapping[str, str]) -> dict[str, Any]:
    """Inverse of map_fields: build a nested payload from internal fields."""
    payload: dict[str, Any] = {}
    for name, path in mapping.items():
        if name in internal:
            set_nested_value(payload, path, internal[name])
    return payload


# ----------------------------------------------------------------------
# Transforms and validation
# ----------------------------------------------------------------------


class FieldTransform(BaseModel):
    """A value transformation applied to one internal field after extraction."""

    field: str = Field(min_length=1, description="Internal field to transform")
    type: str = Field(min_length=1, description="Registered transformer name")
    direction: SyncDirection = Field(default=SyncDirection.BIDIRECTIONAL)
    config: dict[str, Any] = Field(default_factory=dict)


class FieldValidation(BaseModel):
    """
    Checks run against one internal field once mapping is done.

    ``min``/``max`` bound numbers by value and strings or lists by length.
    ``pattern`` is searched with ``re.search``.
    """

    field: str = Field(min_length=1)
    required: bool = False
    type: str | None = Field(
        default=None, description="string, integer, number, boolean, list or object"
    )
    min: float | None = None
    max: float | None = None
    pattern: str | None = None
    validator: str | None = Field(default=None, description="Registered custom validator")
    config: dict[str, Any] = Field(default_factory=dict)


class MappingRules(BaseModel):
    """
    Transforms, validation, defaults and per-field directions for a mapping.

    A field listed in ``directions`` is only mapped when the sync direction
    matches (``bidirectional`` always matches).

    Example:
        >>> rules = MappingRules(
        ...     transforms=[FieldTransform(field="status", type="map",
        ...                                config={"mappings": {"Done": "completed"}})],
        ...     validation=[FieldValidation(field="title", required=True)],
        ... )
    """

    transforms: list[FieldTransform] = Field(default_factory=list)
    validation: list[FieldValidation] = Field(default_factory=list)
    directions: dict[str, SyncDirection] = Field(default_factory=dict)
    defaults: dict[str, Any] = Field(default_factory=dict)


class FieldError(BaseModel):
    field: str
    code: str
    message: str
    value: Any = None


class MappingError(ZenError):
    """
    Mapping finished with field errors.

    Attributes:
        errors: One FieldError per failed field check
        data: The fields that did map
    """

    def __init__(self, errors: list[FieldError], data: dict[str, Any]) -> None:
        self.errors = errors
        self.data = data
        summary = "; ".join(f"{e.field}: {e.message}" for e in errors)
        super().__init__(
            ErrorCode.INVALID_DATA,
            f"field mapping failed ({summary})",
            retryable=False,
        )


class FieldTransformer(Protocol):
    """Turns one field value into another."""

    def validate_config(self, config: Mapping[str, Any]) -> None:
        """Raise ValueError if config is unusable."""
        ...

    def transform(self, value: Any, config: Mapping[str, Any], record: Mapping[str, Any]) -> Any:
        """Return the new value; record holds the other mapped fields."""
        ...


class MapTransformer:
    """Lookup table: ``{"mappings": {"Done": "completed"}}``. Misses pass through."""

    def validate_config(self, config: Mapping[str, Any]) -> None:
        if not isinstance(config.get("mappings"), Mapping):
            raise ValueError("map transform needs a 'mappings' table")

    def transform(self, value: Any, config: Mapping[str, Any], record: Mapping[str, Any]) -> Any:
        self.validate_config(config)
        return config["mappings"].get(str(value), value)


class FormatTransformer:
    """``str.format`` with the value bound to ``{value}``: ``{"format": "P{value}"}``."""

    def validate_config(self, config: Mapping[str, Any]) -> None:
        if not isinstance(config.get("format"), str):
            raise ValueError("format transform needs a 'format' string")

    def transform(self, value: Any, config: Mapping[str, Any], record: Mapping[str, Any]) -> Any:
        self.validate_config(config)
        try:
            return config["format"].format(value=value)
        except (KeyError, IndexError, ValueError) as e:
            raise ValueError(f"cannot format {value!r}: {e}") from e


class TemplateTransformer:
    """
    ``string.Template`` over the mapped record plus ``$value``.

    Example config: ``{"template": "$task_id: $value"}``
    """

    def validate_config(self, config: Mapping[str, Any]) -> None:
        if not isinstance(config.get("template"), str):
            raise ValueError("template transform needs a 'template' string")

    def transform(self, value: Any, config: Mapping[str, Any], record: Mapping[str, Any]) -> Any:
        self.validate_config(config)
        try:
            return Template(config["template"]).substitute({**record, "value": value})
        except (KeyError, ValueError) as e:
            raise ValueError(f"template placeholder {e} has no value") from e


FieldValidator = Callable[[Any, Mapping[str, Any]], None]
"""Custom check: raise ValueError when value is unacceptable."""

_transformers: dict[str, FieldTransformer] = {
    "map": MapTransformer(),
    "format": FormatTransformer(),
    "template": TemplateTransformer(),
}
_validators: dict[str, FieldValidator] = {}
_registry_lock = threading.Lock()

_TYPE_CHECKS: dict[str, Callable[[Any], bool]] = {
    "string": lambda v: isinstance(v, str),
    "integer": lambda v: isinstance(v, int) and not isinstance(v, bool),
    "number": lambda v: isinstance(v, (int, float)) and not isinstance(v, bool),
    "boolean": lambda v: isinstance(v, bool),
    "list": lambda v: isinstance(v, (list, tuple)),
    "object": lambda v: isinstance(v, Mapping),
}
_TYPE_CHECKS.update(
    {
        "str": _TYPE_CHECKS["string"],
        "int": _TYPE_CHECKS["integer"],
        "float": _TYPE_CHECKS["number"],
        "bool": _TYPE_CHECKS["boolean"],
        "dict": _TYPE_CHECKS["object"],
    }
)


def register_transformer(name: str, transformer: FieldTransformer) -> None:
    with _registry_lock:
        _transformers[name] = transformer
    logger.debug("Registered field transformer %s", name)


def register_validator(name: str, validator: FieldValidator) -> None:
    with _registry_lock:
        _validators[name] = validator
    logger.debug("Registered field validator %s", name)


def _transformer(name: str) -> FieldTransformer:
    with _registry_lock:
        transformer = _transformers.get(name)
    if transformer is None:
        raise ValueError(f"unknown transformer {name!r}")
    return transformer


def _validator(name: str) -> FieldValidator:
    with _registry_lock:
        validator = _validators.get(name)
    if validator is None:
        raise ValueError(f"unknown validator {name!r}")
    return validator


def validate_rules(rules: MappingRules) -> None:
    """
    Check that every transformer and validator named by rules exists and
    that their settings are usable.

    Raises:
        ZenError: invalid_data describing the first problem
    """
    try:
        for transform in rules.transforms:
            _transformer(transform.type).validate_config(transform.config)
        for check in rules.validation:
            if check.type is not None and check.type not in _TYPE_CHECKS:
                raise ValueError(f"unknown type {check.type!r} for {check.field!r}")
            if check.pattern is not None:
                re.compile(check.pattern)
            if check.validator is not None:
                _validator(check.validator)
    except (ValueError, re.error) as e:
        raise ZenError(
            ErrorCode.INVALID_DATA, f"invalid mapping rules: {e}", cause=e, retryable=False
        )


def _applies(rule_direction: SyncDirection, direction: SyncDirection) -> bool:
    return rule_direction == SyncDirection.BIDIRECTIONAL or rule_direction == direction


def _size(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, (str, list, tuple)):
        return len(value)
    return None


def _check_field(data: Mapping[str, Any], check: FieldValidation) -> FieldError | None:
    if check.field not in data or data[check.field] is None:
        if check.required:
            return FieldError(field=check.field, code="required", message="required field missing")
        return None

    value = data[check.field]
    if check.type is not None:
        type_check = _TYPE_CHECKS.get(check.type)
        if type_check is None or not type_check(value):
            return FieldError(
                field=check.field,
                code="type",
                message=f"expected {check.type}, got {type(value).__name__}",
                value=value,
            )
    size = _size(value)
    if check.min is not None and size is not None and size < check.min:
        return FieldError(
            field=check.field, code="range", message=f"below minimum {check.min:g}", value=value
        )
    if check.max is not None and size is not None and size > check.max:
        return FieldError(
            field=check.field, code="range", message=f"above maximum {check.max:g}", value=value
        )
    if check.pattern is not None:
        if not isinstance(value, str) or re.search(check.pattern, value) is None:
            return FieldError(
                field=check.field,
                code="pattern",
                message=f"does not match {check.pattern!r}",
                value=value,
            )
    if check.validator is not None:
        try:
            _validator(check.validator)(value, check.config)
        except ValueError as e:
            return FieldError(field=check.field, code=check.validator, message=str(e), value=value)
    return None


def validate_fields(
    data: Mapping[str, Any], validation: list[FieldValidation]
) -> list[FieldError]:
    """Run every check; returns the failures (empty when data is valid)."""
    errors = []
    for check in validation:
        error = _check_field(data, check)
        if error is not None:
            errors.append(error)
    return errors


def transform_fields(
    data: Mapping[str, Any],
    rules: MappingRules | None,
    *,
    direction: SyncDirection = SyncDirection.PULL,
) -> dict[str, Any]:
    """
    Apply the transforms and validation of rules to already-mapped fields.

    Used directly for outbound payloads, which are built from internal
    fields rather than extracted from a nested document.

    Raises:
        MappingError: when a transform or a validation check fails
    """
    result = dict(data)
    if rules is None:
        return result

    errors: list[FieldError] = []
    for transform in rules.transforms:
        if transform.field not in result or not _applies(transform.direction, direction):
            continue
        original = result[transform.field]
        try:
            result[transform.field] = _transformer(transform.type).transform(
                original, transform.config, result
            )
        except ValueError as e:
            errors.append(
                FieldError(
                    field=transform.field,
                    code="transform_failed",
                    message=str(e),
                    value=original,
                )
            )
    errors.extend(validate_fields(result, rules.validation))
    if errors:
        raise MappingError(errors, result)
    return result


def apply_mapping(
    source: Mapping[str, Any] | None,
    mapping: Mapping[str, str],
    rules: MappingRules | None = None,
    *,
    direction: SyncDirection = SyncDirection.PULL,
) -> dict[str, Any]:
    """
    Map source with per-field directions, defaults, transforms and validation.

    Without rules this is ``map_fields``.

    Raises:
        ZenError: invalid_data when source is None
        MappingError: when any transform or validation check fails
    """
    if rules is None:
        return map_fields(source, mapping)
    if source is None:
        raise ZenError(ErrorCode.INVALID_DATA, "source data cannot be empty")

    extracted: dict[str, Any] = {}
    for internal, path in mapping.items():
        if not _applies(rules.directions.get(internal, SyncDirection.BIDIRECTIONAL), direction):
            continue
        try:
            extracted[internal] = get_nested_value(source, path)
        except KeyError:
            if internal in rules.defaults:
                extracted[internal] = rules.defaults[internal]
    return transform_fields(extracted, rules, direction=direction)


__all__ = [
    "FieldError",
    "FieldTransform",
    "FieldTransformer",
    "FieldValidation",
    "FieldValidator",
    "FormatTransformer",
    "GENERIC_MAPPING",
    "ISSUE_TRACKER_MAPPING",
    "LINEAR_MAPPING",
    "MapTransformer",
    "MappingError",
    "MappingRules",
    "REQUIRED_FIELDS",
    "SOURCE_FORGE_MAPPING",
    "TemplateTransformer",
    "apply_mapping",
    "get_default_mapping",
    "get_nested_value",
    "map_fields",
    "merge_fields",
    "register_default_mapping",
    "register_transformer",
    "register_validator",
    "reverse_mapping",
    "set_nested_value",
    "to_mapping",
    "transform_fields",
    "unmap_fields",
    "validate_fields",
    "validate_mapping",
    "validate_rules",
]
