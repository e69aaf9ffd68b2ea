"""Schema-driven configuration validation.

Walks a configuration schema depth-first and produces either a normalized
configuration (defaults applied, unknown keys and non-selected variant
branches dropped) or a set of field-path-scoped errors.

Rules:
  - Errors never stop the walk; every problem is reported in one pass, at most
    one message per field path.
  - ``None`` is treated as absent.
  - Integers are inclusive-bounded; the lower and upper bound produce distinct
    error codes.
  - Variants resolve their tag first. A missing or unknown tag yields exactly
    one error on the tag path and the branch is not visited.

Paths are dot-joined keys with list indexes, e.g.
``sinks.0.authentication.token``.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping
from urllib.parse import urlparse

from provisioner.catalog.fields import (
    MISSING,
    BooleanField,
    EnumField,
    FieldSpec,
    IntegerField,
    ListField,
    MappingField,
    ObjectField,
    StringField,
    VariantField,
)
from provisioner.catalog.schemas import DEFAULT_SCHEMAS, SchemaRegistry
from provisioner.errors import ErrorCode

logger = logging.getLogger(__name__)


class FieldErrorCode(str, Enum):
    """Reason a single field was rejected."""

    REQUIRED = 'required'
    TYPE_MISMATCH = 'type_mismatch'
    BELOW_MINIMUM = 'below_minimum'
    ABOVE_MAXIMUM = 'above_maximum'
    TOO_SHORT = 'too_short'
    TOO_LONG = 'too_long'
    PATTERN_MISMATCH = 'pattern_mismatch'
    INVALID_FORMAT = 'invalid_format'
    INVALID_CHOICE = 'invalid_choice'
    TOO_FEW_ITEMS = 'too_few_items'
    TOO_MANY_ITEMS = 'too_many_items'
    UNKNOWN_VARIANT_TAG = 'unknown_variant_tag'
    INVALID_IDENTIFIER = 'invalid_identifier'


@dataclass(frozen=True, slots=True)
class FieldError:
    path: str
    code: FieldErrorCode
    message: str

    @property
    def kind(self) -> ErrorCode:
        if self.code is FieldErrorCode.UNKNOWN_VARIANT_TAG:
            return ErrorCode.UNKNOWN_VARIANT_TAG
        if self.code is FieldErrorCode.INVALID_IDENTIFIER:
            return ErrorCode.INVALID_IDENTIFIER
        return ErrorCode.FIELD_CONSTRAINT_VIOLATION

    def to_dict(self) -> dict[str, str]:
        return {
            'path': self.path,
            'code': self.code.value,
            'kind': self.kind.value,
            'message': self.message,
        }


@dataclass(frozen=True, slots=True)
class ValidationResult:
    """Outcome of validating one candidate configuration.

    ``value`` is the normalized configuration when ``ok`` and ``None``
    otherwise.
    """

    value: dict[str, Any] | None
    errors: tuple[FieldError, ...] = ()

    @property
    def ok(self) -> bool:
        return not self.errors

    @property
    def field_errors(self) -> dict[str, str]:
        return {error.path: error.message for error in self.errors}

    def to_dict(self) -> dict[str, Any]:
        if self.ok:
            return {'ok': True, 'value': self.value}
        return {
            'ok': False,
            'field_errors': self.field_errors,
            'errors': [error.to_dict() for error in self.errors],
        }


# ── Public API ──────────────────────────────────────────────────────


def validate(
    resource_type_id: str,
    candidate: Mapping[str, Any] | None,
    *,
    registry: SchemaRegistry = DEFAULT_SCHEMAS,
) -> ValidationResult:
    """Validate ``candidate`` against the schema of ``resource_type_id``.

    Raises:
        UnknownResourceType: If no schema is registered for the type.
    """
    schema = registry.schema_for(resource_type_id)
    result = validate_value(schema, {} if candidate is None else candidate)
    if not result.ok:
        logger.debug(
            'Configuration for %s rejected with %d field error(s): %s',
            resource_type_id,
            len(result.errors),
            ', '.join(error.path for error in result.errors),
        )
    return result


def validate_value(
    spec: FieldSpec,
    value: Any,
    *,
    path: str = '',
) -> ValidationResult:
    """Validate ``value`` against an arbitrary field spec."""
    walker = _Walker()
    if value is None:
        normalized = walker.absent(spec, path)
    else:
        normalized = walker.walk(spec, value, path)
    if walker.errors:
        return ValidationResult(value=None, errors=tuple(walker.errors.values()))
    return ValidationResult(value=None if normalized is _OMIT else normalized)


# ── Walker ──────────────────────────────────────────────────────────

_OMIT: Any = object()


def _join(path: str, key: str | int) -> str:
    return f'{path}.{key}' if path else str(key)


class _Walker:
    """Single-pass, error-collecting schema walk."""

    def __init__(self) -> None:
        self.errors: dict[str, FieldError] = {}

    def fail(self, path: str, code: FieldErrorCode, message: str) -> Any:
        self.errors.setdefault(path, FieldError(path, code, message))
        return _OMIT

    def absent(self, spec: FieldSpec, path: str) -> Any:
        """Resolve a field that is missing (or ``None``) in the candidate."""
        default = getattr(spec, 'default', MISSING)
        if default is not MISSING:
            return self.walk(spec, default, path)
        if isinstance(spec, ObjectField) and spec.default_empty:
            return self.walk(spec, {}, path)
        if spec.required:
            return self.fail(path, FieldErrorCode.REQUIRED, 'This field is required')
        return _OMIT

    def walk(self, spec: FieldSpec, value: Any, path: str) -> Any:
        if isinstance(spec, StringField):
            return self._string(spec, value, path)
        if isinstance(spec, IntegerField):
            return self._integer(spec, value, path)
        if isinstance(spec, BooleanField):
            if not isinstance(value, bool):
                return self.fail(
                    path, FieldErrorCode.TYPE_MISMATCH, 'Expected a boolean'
                )
            return value
        if isinstance(spec, EnumField):
            if not isinstance(value, str) or value not in spec.choices:
                return self.fail(
                    path,
                    FieldErrorCode.INVALID_CHOICE,
                    f'Must be one of: {", ".join(spec.choices)}',
                )
            return value
        if isinstance(spec, ObjectField):
            return self._object(spec, value, path)
        if isinstance(spec, ListField):
            return self._list(spec, value, path)
        if isinstance(spec, MappingField):
            return self._mapping(spec, value, path)
        if isinstance(spec, VariantField):
            return self._variant(spec, value, path)
        raise TypeError(f'unsupported field spec: {type(spec).__name__}')

    def _string(self, spec: StringField, value: Any, path: str) -> Any:
        if not isinstance(value, str):
            return self.fail(path, FieldErrorCode.TYPE_MISMATCH, 'Expected a string')
        if len(value) < spec.min_length:
            return self.fail(
                path,
                FieldErrorCode.TOO_SHORT,
                f'Must be at least {spec.min_length} character(s)',
            )
        if spec.max_length is not None and len(value) > spec.max_length:
            return self.fail(
                path,
                FieldErrorCode.TOO_LONG,
                f'Must be at most {spec.max_length} character(s)',
            )
        if spec.pattern is not None and not re.fullmatch(spec.pattern, value):
            return self.fail(
                path,
                FieldErrorCode.PATTERN_MISMATCH,
                spec.pattern_message or f'Must match pattern {spec.pattern}',
            )
        if spec.format == 'url' and not _is_url(value):
            return self.fail(
                path, FieldErrorCode.INVALID_FORMAT, 'Must be a valid http(s) URL'
            )
        return value

    def _integer(self, spec: IntegerField, value: Any, path: str) -> Any:
        if isinstance(value, bool) or not isinstance(value, int):
            return self.fail(path, FieldErrorCode.TYPE_MISMATCH, 'Expected an integer')
        if spec.minimum is not None and value < spec.minimum:
            return self.fail(
                path, FieldErrorCode.BELOW_MINIMUM, f'Must be at least {spec.minimum}'
            )
        if spec.maximum is not None and value > spec.maximum:
            return self.fail(
                path, FieldErrorCode.ABOVE_MAXIMUM, f'Must be at most {spec.maximum}'
            )
        return value

    def _object(self, spec: ObjectField, value: Any, path: str) -> Any:
        if not isinstance(value, Mapping):
            return self.fail(path, FieldErrorCode.TYPE_MISMATCH, 'Expected an object')
        out: dict[str, Any] = {}
        for name, child in spec.fields.items():
            child_path = _join(path, name)
            raw = value.get(name)
            if raw is None:
                normalized = self.absent(child, child_path)
            else:
                normalized = self.walk(child, raw, child_path)
            if normalized is not _OMIT:
                out[name] = normalized
        return out

    def _list(self, spec: ListField, value: Any, path: str) -> Any:
        if not isinstance(value, (list, tuple)):
            return self.fail(path, FieldErrorCode.TYPE_MISMATCH, 'Expected a list')
        items: list[Any] = []
        for index, raw in enumerate(value):
            item_path = _join(path, index)
            if raw is None:
                normalized = self.absent(spec.item, item_path)
            else:
                normalized = self.walk(spec.item, raw, item_path)
            if normalized is not _OMIT:
                items.append(normalized)
        if len(value) < spec.min_items:
            return self.fail(
                path,
                FieldErrorCode.TOO_FEW_ITEMS,
                f'Must contain at least {spec.min_items} item(s)',
            )
        if spec.max_items is not None and len(value) > spec.max_items:
            return self.fail(
                path,
                FieldErrorCode.TOO_MANY_ITEMS,
                f'Must contain at most {spec.max_items} item(s)',
            )
        return items

    def _mapping(self, spec: MappingField, value: Any, path: str) -> Any:
        if not isinstance(value, Mapping):
            return self.fail(path, FieldErrorCode.TYPE_MISMATCH, 'Expected an object')
        out: dict[str, Any] = {}
        for key, raw in value.items():
            if not isinstance(key, str) or not key:
                self.fail(
                    path, FieldErrorCode.TYPE_MISMATCH, 'Keys must be non-empty strings'
                )
                continue
            normalized = self.walk(spec.value, raw, _join(path, key))
            if normalized is not _OMIT:
                out[key] = normalized
        return out

    def _variant(self, spec: VariantField, value: Any, path: str) -> Any:
        if not isinstance(value, Mapping):
            return self.fail(path, FieldErrorCode.TYPE_MISMATCH, 'Expected an object')
        tag_path = _join(path, spec.tag)
        tag_value = value.get(spec.tag)
        expected = ', '.join(spec.tags)
        if tag_value is None:
            return self.fail(
                tag_path,
                FieldErrorCode.REQUIRED,
                f'{spec.tag} is required (one of: {expected})',
            )
        if not isinstance(tag_value, str) or tag_value not in spec.branches:
            return self.fail(
                tag_path,
                FieldErrorCode.UNKNOWN_VARIANT_TAG,
                f'Unknown {spec.tag} {tag_value!r} (one of: {expected})',
            )
        branch = self._object(spec.branches[tag_value], value, path)
        if branch is _OMIT:
            return _OMIT
        return {spec.tag: tag_value, **branch}


def _is_url(value: str) -> bool:
    parsed = urlparse(value)
    return parsed.scheme in ('http', 'https') and bool(parsed.netloc)
