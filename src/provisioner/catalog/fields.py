"""Structural field specifications for resource configuration schemas.

A schema is a tree of field specs rooted at an ``ObjectField``. Leaves are
primitive fields (string, integer, boolean, enumeration); inner nodes are
objects, lists, string mappings and discriminated variants.

A ``VariantField`` is an explicit tagged union: a tag field name plus a
mapping from tag value to the branch ``ObjectField`` holding the companion
fields for that tag. Branches never declare the tag themselves, so selecting
a tag fully determines which companion fields apply.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping, Union


class FieldKind(str, Enum):
    STRING = 'string'
    INTEGER = 'integer'
    BOOLEAN = 'boolean'
    ENUM = 'enum'
    OBJECT = 'object'
    LIST = 'list'
    MAPPING = 'mapping'
    VARIANT = 'variant'


class _Missing:
    """Sentinel for "no default declared"."""

    _instance: _Missing | None = None

    def __new__(cls) -> _Missing:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return 'MISSING'

    def __bool__(self) -> bool:
        return False


MISSING: Any = _Missing()


@dataclass(frozen=True, slots=True)
class StringField:
    required: bool = True
    default: Any = MISSING
    min_length: int = 0
    max_length: int | None = None
    pattern: str | None = None
    pattern_message: str | None = None
    format: str | None = None
    """Optional named format; only ``'url'`` is understood."""
    description: str = ''

    kind = FieldKind.STRING

    def __post_init__(self) -> None:
        if self.pattern is not None:
            re.compile(self.pattern)
        if self.format not in (None, 'url'):
            raise ValueError(f'unsupported string format: {self.format!r}')


@dataclass(frozen=True, slots=True)
class IntegerField:
    required: bool = True
    default: Any = MISSING
    minimum: int | None = None
    maximum: int | None = None
    description: str = ''

    kind = FieldKind.INTEGER

    def __post_init__(self) -> None:
        if (
            self.minimum is not None
            and self.maximum is not None
            and self.minimum > self.maximum
        ):
            raise ValueError('minimum must be <= maximum')


@dataclass(frozen=True, slots=True)
class BooleanField:
    required: bool = True
    default: Any = MISSING
    description: str = ''

    kind = FieldKind.BOOLEAN


@dataclass(frozen=True, slots=True)
class EnumField:
    choices: tuple[str, ...] = ()
    required: bool = True
    default: Any = MISSING
    description: str = ''

    kind = FieldKind.ENUM

    def __post_init__(self) -> None:
        if not self.choices:
            raise ValueError('enum field requires at least one choice')
        if self.default is not MISSING and self.default not in self.choices:
            raise ValueError(f'default {self.default!r} is not a valid choice')


@dataclass(frozen=True, slots=True)
class ObjectField:
    """Nested object. ``fields`` maps key to spec; unknown keys are dropped.

    When absent and ``default_empty`` is set, the object is built from ``{}``
    so that nested defaults are still applied.
    """

    fields: Mapping[str, FieldSpec] = field(
        default_factory=lambda: MappingProxyType({})
    )
    required: bool = True
    default_empty: bool = False
    description: str = ''

    kind = FieldKind.OBJECT

    def __post_init__(self) -> None:
        object.__setattr__(self, 'fields', MappingProxyType(dict(self.fields)))


@dataclass(frozen=True, slots=True)
class ListField:
    item: FieldSpec
    required: bool = False
    default: Any = ()
    min_items: int = 0
    max_items: int | None = None
    description: str = ''

    kind = FieldKind.LIST


@dataclass(frozen=True, slots=True)
class MappingField:
    """Free-form mapping of string keys to values of one spec."""

    value: FieldSpec
    required: bool = False
    default: Any = MISSING
    description: str = ''

    kind = FieldKind.MAPPING


@dataclass(frozen=True, slots=True)
class VariantField:
    """Discriminated union selected by the value of ``tag``."""

    branches: Mapping[str, ObjectField]
    tag: str = 'type'
    required: bool = True
    default: Any = MISSING
    description: str = ''

    kind = FieldKind.VARIANT

    def __post_init__(self) -> None:
        if not self.branches:
            raise ValueError('variant field requires at least one branch')
        for tag_value, branch in self.branches.items():
            if self.tag in branch.fields:
                raise ValueError(
                    f'branch {tag_value!r} must not declare the tag field '
                    f'{self.tag!r}'
                )
        if self.default is not MISSING:
            if not isinstance(self.default, Mapping):
                raise ValueError('variant default must be a mapping')
            if self.default.get(self.tag) not in self.branches:
                raise ValueError(
                    f'variant default must select a known {self.tag!r}'
                )
        object.__setattr__(
            self, 'branches', MappingProxyType(dict(self.branches))
        )

    @property
    def tags(self) -> tuple[str, ...]:
        return tuple(self.branches)


FieldSpec = Union[
    StringField,
    IntegerField,
    BooleanField,
    EnumField,
    ObjectField,
    ListField,
    MappingField,
    VariantField,
]


def describe_field(spec: FieldSpec) -> dict[str, Any]:
    """Render a field spec as a JSON-compatible description for hosts."""
    out: dict[str, Any] = {'kind': spec.kind.value, 'required': spec.required}
    if spec.description:
        out['description'] = spec.description
    default = getattr(spec, 'default', MISSING)
    if default is not MISSING:
        out['default'] = list(default) if isinstance(default, tuple) else default

    if isinstance(spec, StringField):
        if spec.min_length:
            out['min_length'] = spec.min_length
        if spec.max_length is not None:
            out['max_length'] = spec.max_length
        if spec.pattern is not None:
            out['pattern'] = spec.pattern
        if spec.format is not None:
            out['format'] = spec.format
    elif isinstance(spec, IntegerField):
        if spec.minimum is not None:
            out['minimum'] = spec.minimum
        if spec.maximum is not None:
            out['maximum'] = spec.maximum
    elif isinstance(spec, EnumField):
        out['choices'] = list(spec.choices)
    elif isinstance(spec, ObjectField):
        out['fields'] = {
            name: describe_field(child) for name, child in spec.fields.items()
        }
    elif isinstance(spec, ListField):
        out['item'] = describe_field(spec.item)
    elif isinstance(spec, MappingField):
        out['value'] = describe_field(spec.value)
    elif isinstance(spec, VariantField):
        out['tag'] = spec.tag
        out['branches'] = {
            tag: describe_field(branch) for tag, branch in spec.branches.items()
        }
    return out
