"""Resource type catalog and configuration schema registry."""

from .fields import (
    MISSING,
    BooleanField,
    EnumField,
    FieldKind,
    FieldSpec,
    IntegerField,
    ListField,
    MappingField,
    ObjectField,
    StringField,
    VariantField,
    describe_field,
)
from .resource_types import (
    DEFAULT_CATALOG,
    FREE_SKU,
    ResourceTypeCatalog,
    ResourceTypeDescriptor,
    Tier,
    describe,
    is_paid_sku,
)
from .schemas import DEFAULT_SCHEMAS, SchemaRegistry, schema_for

__all__ = [
    'BooleanField',
    'DEFAULT_CATALOG',
    'DEFAULT_SCHEMAS',
    'EnumField',
    'FREE_SKU',
    'FieldKind',
    'FieldSpec',
    'IntegerField',
    'ListField',
    'MISSING',
    'MappingField',
    'ObjectField',
    'ResourceTypeCatalog',
    'ResourceTypeDescriptor',
    'SchemaRegistry',
    'StringField',
    'Tier',
    'VariantField',
    'describe',
    'describe_field',
    'is_paid_sku',
    'schema_for',
]
