"""Configuration schema registry.

Maps each resource type id to the root ``ObjectField`` describing its valid
configuration. The registry shares its id space with the resource type
catalog; every catalog id must have a schema.

Graph event sinks are the main polymorphic structure::

    sink.type                   kafka | webhook | database
    webhook.authentication.type none | bearer | basic | api_key
"""

from __future__ import annotations

from types import MappingProxyType
from typing import Iterable, Iterator, Mapping

from provisioner.errors import UnknownResourceType

from .fields import (
    BooleanField,
    EnumField,
    IntegerField,
    ListField,
    MappingField,
    ObjectField,
    StringField,
    VariantField,
)
from .resource_types import ASSEMBLER, COMPASS, FLOW, GRAPH, SECRET


class SchemaRegistry:
    """Read-only mapping of resource type id to configuration schema."""

    def __init__(self, schemas: Mapping[str, ObjectField]) -> None:
        self._schemas = MappingProxyType(dict(schemas))

    def schema_for(self, resource_type_id: str) -> ObjectField:
        """Return the root schema for ``resource_type_id``.

        Raises:
            UnknownResourceType: If no schema is registered for the id.
        """
        schema = self._schemas.get(resource_type_id)
        if schema is None:
            raise UnknownResourceType(resource_type_id)
        return schema

    def ids(self) -> tuple[str, ...]:
        return tuple(self._schemas)

    def missing(self, resource_type_ids: Iterable[str]) -> list[str]:
        """Return the ids from ``resource_type_ids`` that lack a schema."""
        return [rid for rid in resource_type_ids if rid not in self._schemas]

    def __contains__(self, resource_type_id: object) -> bool:
        return resource_type_id in self._schemas

    def __iter__(self) -> Iterator[str]:
        return iter(self._schemas)

    def __len__(self) -> int:
        return len(self._schemas)


# ── Graph event sinks ───────────────────────────────────────────────

_NON_EMPTY = StringField(min_length=1)

KAFKA_AUTH = ObjectField(
    {
        'securityProtocol': EnumField(
            ('PLAINTEXT', 'SSL', 'SASL_PLAINTEXT', 'SASL_SSL'),
        ),
        'saslMechanism': EnumField(
            ('PLAIN', 'SCRAM-SHA-256', 'SCRAM-SHA-512'),
            required=False,
        ),
        'username': StringField(required=False),
        'password': StringField(required=False),
    },
    required=False,
)

WEBHOOK_AUTH = VariantField(
    {
        'none': ObjectField(),
        'basic': ObjectField({'username': _NON_EMPTY, 'password': _NON_EMPTY}),
        'bearer': ObjectField({'token': _NON_EMPTY}),
        'api_key': ObjectField({'header': _NON_EMPTY, 'value': _NON_EMPTY}),
    },
    default={'type': 'none'},
    description='Authentication presented to the webhook endpoint.',
)

DATABASE_AUTH = ObjectField(
    {
        'username': _NON_EMPTY,
        'password': _NON_EMPTY,
        'sslMode': EnumField(
            ('disable', 'require', 'verify-ca', 'verify-full'),
            default='require',
        ),
    },
)

SINK = VariantField(
    {
        'kafka': ObjectField(
            {
                'name': _NON_EMPTY,
                'bootstrapServers': _NON_EMPTY,
                'topic': _NON_EMPTY,
                'authentication': KAFKA_AUTH,
            },
        ),
        'webhook': ObjectField(
            {
                'name': _NON_EMPTY,
                'url': StringField(format='url'),
                'method': EnumField(('POST', 'PUT', 'PATCH'), default='POST'),
                'headers': MappingField(StringField()),
                'authentication': WEBHOOK_AUTH,
            },
        ),
        'database': ObjectField(
            {
                'name': _NON_EMPTY,
                'host': _NON_EMPTY,
                'port': IntegerField(minimum=1, maximum=65535, default=5432),
                'database': _NON_EMPTY,
                'table': _NON_EMPTY,
                'authentication': DATABASE_AUTH,
            },
        ),
    },
    description='Output destination for graph events.',
)

EVENT_ROUTE = ObjectField(
    {
        'name': StringField(min_length=1),
        'sinkName': StringField(min_length=1),
        'eventFormat': EnumField(
            ('EventNotification', 'DataHistory', 'Telemetry'),
            default='EventNotification',
        ),
        'filters': ListField(
            ObjectField(
                {
                    'field': _NON_EMPTY,
                    'operator': EnumField(
                        ('equals', 'contains', 'starts_with', 'ends_with', 'regex'),
                    ),
                    'value': _NON_EMPTY,
                },
            ),
        ),
    },
)

GRAPH_SCHEMA = ObjectField(
    {
        'instances': IntegerField(minimum=1, maximum=6, default=1),
        'sinks': ListField(SINK),
        'eventRoutes': ListField(EVENT_ROUTE),
        'persistence': ObjectField(
            {
                'enabled': BooleanField(default=True),
                'storageSize': StringField(
                    default='10Gi',
                    pattern=r'^\d+Gi$',
                    pattern_message='Storage size must be in format like "10Gi"',
                ),
            },
            default_empty=True,
        ),
    },
)

# ── Other resource types ────────────────────────────────────────────

FLOW_SCHEMA = ObjectField(
    {
        'replicas': IntegerField(minimum=1, maximum=10, default=1),
        'environment': ListField(
            ObjectField(
                {
                    'name': StringField(
                        min_length=1,
                        pattern=r'^[A-Za-z_][A-Za-z0-9_]*$',
                        pattern_message=(
                            'Environment variable names may only contain '
                            'letters, digits and underscores'
                        ),
                    ),
                    'value': StringField(default=''),
                },
            ),
        ),
        'autoscaling': ObjectField(
            {
                'enabled': BooleanField(default=False),
                'minReplicas': IntegerField(minimum=1, default=1),
                'maxReplicas': IntegerField(minimum=1, maximum=20, default=5),
                'targetCPU': IntegerField(minimum=1, maximum=100, default=70),
            },
            default_empty=True,
        ),
    },
)

ASSEMBLER_SCHEMA = ObjectField(
    {
        'modelName': StringField(min_length=1),
        'dataSource': StringField(min_length=1),
        'aiConfig': ObjectField(
            {
                'enabled': BooleanField(default=True),
                'provider': StringField(min_length=1, default='OpenAI'),
                'maxSuggestions': IntegerField(minimum=1, maximum=20, default=5),
            },
            default_empty=True,
        ),
    },
)

COMPASS_SCHEMA = ObjectField(
    {
        'dashboardName': StringField(min_length=1),
        'simulationEnabled': BooleanField(default=False),
        'analyticsLevel': EnumField(('basic', 'advanced'), default='basic'),
    },
)

SECRET_SCHEMA = ObjectField()

DEFAULT_SCHEMAS = SchemaRegistry(
    {
        GRAPH: GRAPH_SCHEMA,
        FLOW: FLOW_SCHEMA,
        ASSEMBLER: ASSEMBLER_SCHEMA,
        COMPASS: COMPASS_SCHEMA,
        SECRET: SECRET_SCHEMA,
    }
)


def schema_for(resource_type_id: str) -> ObjectField:
    """Look up a schema in the default registry."""
    return DEFAULT_SCHEMAS.schema_for(resource_type_id)
