"""Resource type and tier catalog.

Static registry of provisionable resource types loaded at import time. The
catalog is read-only after construction; there is no mutation API.

A tier is free iff its sku is the literal ``"free"``; every other sku is paid
and requires valid billing before a resource can be created, unless the
resource type is billing-exempt.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Iterable, Iterator, Mapping

from provisioner.errors import UnknownResourceType, UnknownSku

FREE_SKU = 'free'


def is_paid_sku(sku: str) -> bool:
    """Only the ``free`` sku is free; all others are paid."""
    return sku != FREE_SKU


@dataclass(frozen=True, slots=True)
class Tier:
    """A priced variant of a resource type."""

    sku: str
    display_name: str
    features: tuple[str, ...] = ()
    limits: Mapping[str, str] = field(
        default_factory=lambda: MappingProxyType({})
    )

    def __post_init__(self) -> None:
        object.__setattr__(self, 'limits', MappingProxyType(dict(self.limits)))

    @property
    def is_free(self) -> bool:
        return not is_paid_sku(self.sku)

    def to_dict(self) -> dict[str, Any]:
        return {
            'sku': self.sku,
            'display_name': self.display_name,
            'is_free': self.is_free,
            'features': list(self.features),
            'limits': dict(self.limits),
        }


@dataclass(frozen=True, slots=True)
class ResourceTypeDescriptor:
    """Immutable description of one provisionable resource type.

    Attributes:
        id: Unique type id, e.g. ``Konnektr.Graph``.
        tiers: Offered tiers, in display order. The first tier is the
            fallback when a requested sku is not offered.
        disabled: Hidden from default listings (not yet generally available).
        billing_exempt: Never requires billing setup, even on a paid sku.
    """

    id: str
    display_name: str
    tiers: tuple[Tier, ...]
    description: str = ''
    category: str = ''
    features: tuple[str, ...] = ()
    documentation_url: str = ''
    is_popular: bool = False
    is_new: bool = False
    disabled: bool = False
    billing_exempt: bool = False

    def __post_init__(self) -> None:
        if not self.id:
            raise ValueError('resource type id must be non-empty')
        if not self.tiers:
            raise ValueError(f'resource type {self.id!r} must offer at least one tier')
        skus = [tier.sku for tier in self.tiers]
        duplicates = sorted({sku for sku in skus if skus.count(sku) > 1})
        if duplicates:
            raise ValueError(
                f'resource type {self.id!r} declares duplicate skus: '
                f'{", ".join(duplicates)}'
            )

    @property
    def skus(self) -> tuple[str, ...]:
        return tuple(tier.sku for tier in self.tiers)

    @property
    def default_sku(self) -> str:
        return self.tiers[0].sku

    def has_sku(self, sku: str) -> bool:
        return sku in self.skus

    def tier(self, sku: str) -> Tier:
        """Return the tier for ``sku``.

        Raises:
            UnknownSku: If the sku is not offered for this type.
        """
        for tier in self.tiers:
            if tier.sku == sku:
                return tier
        raise UnknownSku(self.id, sku)

    def resolve_sku(self, requested: str | None) -> str:
        """Return ``requested`` when offered, else the first tier's sku."""
        if requested and self.has_sku(requested):
            return requested
        return self.default_sku

    def requires_billing(self, sku: str) -> bool:
        return is_paid_sku(sku) and not self.billing_exempt

    def to_dict(self) -> dict[str, Any]:
        return {
            'id': self.id,
            'display_name': self.display_name,
            'description': self.description,
            'category': self.category,
            'features': list(self.features),
            'tiers': [tier.to_dict() for tier in self.tiers],
            'documentation_url': self.documentation_url,
            'is_popular': self.is_popular,
            'is_new': self.is_new,
            'disabled': self.disabled,
            'billing_exempt': self.billing_exempt,
        }


class ResourceTypeCatalog:
    """Read-only registry of resource type descriptors keyed by id."""

    def __init__(self, descriptors: Iterable[ResourceTypeDescriptor]) -> None:
        by_id: dict[str, ResourceTypeDescriptor] = {}
        for descriptor in descriptors:
            if descriptor.id in by_id:
                raise ValueError(f'duplicate resource type id: {descriptor.id!r}')
            by_id[descriptor.id] = descriptor
        self._by_id = MappingProxyType(by_id)

    def describe(self, resource_type_id: str) -> ResourceTypeDescriptor:
        """Return the descriptor for ``resource_type_id``.

        Raises:
            UnknownResourceType: If the id is not registered.
        """
        descriptor = self._by_id.get(resource_type_id)
        if descriptor is None:
            raise UnknownResourceType(resource_type_id)
        return descriptor

    def get(self, resource_type_id: str) -> ResourceTypeDescriptor | None:
        return self._by_id.get(resource_type_id)

    def ids(self) -> tuple[str, ...]:
        return tuple(self._by_id)

    def list_types(
        self, *, include_disabled: bool = False,
    ) -> list[ResourceTypeDescriptor]:
        return [
            descriptor
            for descriptor in self._by_id.values()
            if include_disabled or not descriptor.disabled
        ]

    def __contains__(self, resource_type_id: object) -> bool:
        return resource_type_id in self._by_id

    def __iter__(self) -> Iterator[ResourceTypeDescriptor]:
        return iter(self._by_id.values())

    def __len__(self) -> int:
        return len(self._by_id)


# ── Default catalog ─────────────────────────────────────────────────

GRAPH = 'Konnektr.Graph'
FLOW = 'Konnektr.Flow'
ASSEMBLER = 'Konnektr.Assembler'
COMPASS = 'Konnektr.Compass'
SECRET = 'Konnektr.Secret'

DEFAULT_CATALOG = ResourceTypeCatalog(
    (
        ResourceTypeDescriptor(
            id=GRAPH,
            display_name='Graph',
            description=(
                'High-performance graph database and API layer for digital '
                'twin data and event processing.'
            ),
            category='Database',
            features=('Graph storage', 'Event processing', 'Scalable', 'API access'),
            tiers=(
                Tier(
                    sku='standard',
                    display_name='Standard',
                    features=('Events', 'M2M Authentication', 'Email support'),
                    limits={'Twins': '1M'},
                ),
                Tier(
                    sku=FREE_SKU,
                    display_name='Free',
                    features=(
                        'Development Only',
                        'User Authentication',
                        'Up to 500 twins',
                        'Rate Limits',
                    ),
                    limits={'Twins': '500', 'Rate Limit': '1,000 QU/min'},
                ),
            ),
            documentation_url='https://docs.konnektr.io/graph',
            is_popular=True,
        ),
        ResourceTypeDescriptor(
            id=FLOW,
            display_name='Flow',
            description=(
                'Real-time data and event processing engine for digital twins '
                'and automation.'
            ),
            category='Workflow',
            features=('Workflow orchestration', 'Scaling', 'Environment variables'),
            tiers=(
                Tier(
                    sku='standard',
                    display_name='Standard',
                    features=('Up to 50 flows', 'Email support'),
                    limits={'Flows': '50', 'Executions': '10,000/mo'},
                ),
                Tier(
                    sku=FREE_SKU,
                    display_name='Free',
                    features=('Up to 5 flows', 'Community support'),
                    limits={'Flows': '5', 'Executions': '1,000/mo'},
                ),
            ),
            documentation_url='https://docs.konnektr.io/flow',
            is_new=True,
            disabled=True,
        ),
        ResourceTypeDescriptor(
            id=ASSEMBLER,
            display_name='Assembler',
            description=(
                'AI-powered digital twin builder for automated model generation.'
            ),
            category='AI Builder',
            features=('AI model generation', 'Low-code interface', 'DTDL support'),
            tiers=(
                Tier(
                    sku='standard',
                    display_name='Standard',
                    features=('Up to 20 models', 'Email support'),
                    limits={'Models': '20', 'DataSources': '5'},
                ),
                Tier(
                    sku=FREE_SKU,
                    display_name='Free',
                    features=('Up to 3 models', 'Community support'),
                    limits={'Models': '3', 'DataSources': '1'},
                ),
            ),
            documentation_url='https://docs.konnektr.io/assembler',
            is_new=True,
            disabled=True,
        ),
        ResourceTypeDescriptor(
            id=COMPASS,
            display_name='Compass',
            description=(
                'Navigation and discovery tool for digital twin analytics and '
                'simulation.'
            ),
            category='Analytics',
            features=('Dashboarding', 'Simulation', 'Cross-twin analytics'),
            tiers=(
                Tier(
                    sku=FREE_SKU,
                    display_name='Free',
                    features=('Basic analytics', 'Community support'),
                    limits={'Dashboards': '1', 'Simulations': '1'},
                ),
                Tier(
                    sku='standard',
                    display_name='Standard',
                    features=('Advanced analytics', 'Simulation engine', 'Email support'),
                    limits={'Dashboards': '10', 'Simulations': '10'},
                ),
            ),
            documentation_url='https://docs.konnektr.io/compass',
            is_new=True,
            disabled=True,
        ),
        ResourceTypeDescriptor(
            id=SECRET,
            display_name='Secret',
            description=(
                'Securely store sensitive information like passwords, tokens, '
                'and keys.'
            ),
            category='Security',
            features=('Secure storage', 'RBAC controlled', 'Kubernetes Native'),
            tiers=(
                Tier(
                    sku='standard',
                    display_name='Standard',
                    features=('Secure Encryption',),
                ),
            ),
            documentation_url='https://docs.konnektr.io/secrets',
            is_new=True,
            billing_exempt=True,
        ),
    )
)


def describe(resource_type_id: str) -> ResourceTypeDescriptor:
    """Look up a descriptor in the default catalog."""
    return DEFAULT_CATALOG.describe(resource_type_id)
