"""Provisioning step sequencer.

The sequencer is a pure function of the current provisioning context; it keeps
no history. Every context change is re-evaluated from the first rule:

  1. not authenticated              -> blocked (requires_authentication)
  2. no project selected            -> select_or_create_project
  3. paid sku without valid billing -> setup_billing
  4. configuration not accepted     -> configure
  5. access setup undecided         -> grant_access (skippable)
  6. review not confirmed           -> review
  otherwise                         -> complete

Malformed contexts never raise: a selected project id that is not among the
available projects is treated as "no project selected".
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from types import MappingProxyType
from typing import Any, Iterable, Mapping

from provisioner.catalog.resource_types import (
    DEFAULT_CATALOG,
    ResourceTypeCatalog,
    is_paid_sku,
)


class StepKind(str, Enum):
    SELECT_OR_CREATE_PROJECT = 'select_or_create_project'
    SETUP_BILLING = 'setup_billing'
    CONFIGURE = 'configure'
    GRANT_ACCESS = 'grant_access'
    REVIEW = 'review'


class FlowStatus(str, Enum):
    ACTIVE = 'active'
    REQUIRES_AUTHENTICATION = 'requires_authentication'
    COMPLETE = 'complete'


@dataclass(frozen=True, slots=True)
class StepDescriptor:
    kind: StepKind
    is_required: bool
    is_skippable: bool
    label: str = ''

    def to_dict(self) -> dict[str, Any]:
        return {
            'kind': self.kind.value,
            'is_required': self.is_required,
            'is_skippable': self.is_skippable,
            'label': self.label,
        }


STEP_DESCRIPTORS: Mapping[StepKind, StepDescriptor] = MappingProxyType(
    {
        StepKind.SELECT_OR_CREATE_PROJECT: StepDescriptor(
            StepKind.SELECT_OR_CREATE_PROJECT, True, False, 'Select Project'
        ),
        StepKind.SETUP_BILLING: StepDescriptor(
            StepKind.SETUP_BILLING, True, False, 'Setup Billing'
        ),
        StepKind.CONFIGURE: StepDescriptor(
            StepKind.CONFIGURE, True, False, 'Configure Resource'
        ),
        StepKind.GRANT_ACCESS: StepDescriptor(
            StepKind.GRANT_ACCESS, False, True, 'Grant Access'
        ),
        StepKind.REVIEW: StepDescriptor(
            StepKind.REVIEW, True, False, 'Review & Create'
        ),
    }
)


@dataclass(frozen=True, slots=True)
class Project:
    id: str
    name: str = ''
    organization_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            'id': self.id,
            'name': self.name,
            'organization_id': self.organization_id,
        }

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> Project:
        return cls(
            id=str(data.get('id') or data.get('project_id') or ''),
            name=str(data.get('name') or ''),
            organization_id=data.get('organization_id'),
        )


@dataclass(frozen=True, slots=True)
class ProvisioningContext:
    """Host-supplied snapshot of the facts the sequencer depends on."""

    is_authenticated: bool = False
    available_projects: tuple[Project, ...] = ()
    selected_project_id: str | None = None
    resource_type_id: str = ''
    selected_sku: str = ''
    has_valid_billing: bool = False
    wants_access_setup: bool | None = None

    def __post_init__(self) -> None:
        object.__setattr__(
            self, 'available_projects', _coerce_projects(self.available_projects)
        )

    @property
    def selected_project(self) -> Project | None:
        for project in self.available_projects:
            if project.id == self.selected_project_id:
                return project
        return None

    def normalized(self) -> ProvisioningContext:
        """Drop a selected project id that is not among available projects."""
        if self.selected_project_id is None or self.selected_project is not None:
            return self
        return replace(self, selected_project_id=None)

    def to_dict(self) -> dict[str, Any]:
        return {
            'is_authenticated': self.is_authenticated,
            'available_projects': [p.to_dict() for p in self.available_projects],
            'selected_project_id': self.selected_project_id,
            'resource_type_id': self.resource_type_id,
            'selected_sku': self.selected_sku,
            'has_valid_billing': self.has_valid_billing,
            'wants_access_setup': self.wants_access_setup,
        }

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> ProvisioningContext:
        wants = data.get('wants_access_setup')
        return cls(
            is_authenticated=bool(data.get('is_authenticated', False)),
            available_projects=data.get('available_projects') or (),
            selected_project_id=data.get('selected_project_id') or None,
            resource_type_id=str(data.get('resource_type_id') or ''),
            selected_sku=str(data.get('selected_sku') or ''),
            has_valid_billing=bool(data.get('has_valid_billing', False)),
            wants_access_setup=None if wants is None else bool(wants),
        )


@dataclass(frozen=True, slots=True)
class StepEvaluation:
    """Sequencer output: flow status, current step and the ordered plan."""

    status: FlowStatus
    current: StepDescriptor | None
    steps: tuple[StepDescriptor, ...]
    resource_type_id: str
    completed: frozenset[StepKind] = field(default_factory=frozenset)

    @property
    def is_blocked(self) -> bool:
        return self.status is FlowStatus.REQUIRES_AUTHENTICATION

    @property
    def is_complete(self) -> bool:
        return self.status is FlowStatus.COMPLETE

    @property
    def current_index(self) -> int:
        """Index of the current step in ``steps``.

        ``len(steps)`` once complete, ``0`` while blocked on authentication.
        """
        if self.current is None:
            return len(self.steps) if self.is_complete else 0
        return self.steps.index(self.current)

    def to_dict(self) -> dict[str, Any]:
        return {
            'status': self.status.value,
            'current': self.current.to_dict() if self.current else None,
            'current_index': self.current_index,
            'steps': [step.to_dict() for step in self.steps],
            'completed': sorted(kind.value for kind in self.completed),
            'resource_type_id': self.resource_type_id,
        }


def requires_billing(
    context: ProvisioningContext,
    *,
    catalog: ResourceTypeCatalog = DEFAULT_CATALOG,
) -> bool:
    """Whether the selected tier needs valid billing before creation."""
    descriptor = catalog.get(context.resource_type_id)
    if descriptor is None:
        return is_paid_sku(context.selected_sku)
    return descriptor.requires_billing(context.selected_sku)


def plan_steps(
    context: ProvisioningContext,
    *,
    catalog: ResourceTypeCatalog = DEFAULT_CATALOG,
) -> tuple[StepDescriptor, ...]:
    """Ordered steps that apply to this context.

    Billing appears only when the tier requires it; access setup disappears
    once the operator declined it.
    """
    kinds = [StepKind.SELECT_OR_CREATE_PROJECT]
    if requires_billing(context, catalog=catalog):
        kinds.append(StepKind.SETUP_BILLING)
    kinds.append(StepKind.CONFIGURE)
    if context.wants_access_setup is not False:
        kinds.append(StepKind.GRANT_ACCESS)
    kinds.append(StepKind.REVIEW)
    return tuple(STEP_DESCRIPTORS[kind] for kind in kinds)


def evaluate(
    context: ProvisioningContext,
    *,
    configuration_accepted: bool = False,
    review_confirmed: bool = False,
    catalog: ResourceTypeCatalog = DEFAULT_CATALOG,
) -> StepEvaluation:
    """Apply the ordered transition policy to ``context``."""
    ctx = context.normalized()
    steps = plan_steps(ctx, catalog=catalog)
    needs_billing = requires_billing(ctx, catalog=catalog)

    completed: set[StepKind] = set()
    if ctx.selected_project_id is not None:
        completed.add(StepKind.SELECT_OR_CREATE_PROJECT)
    if needs_billing and ctx.has_valid_billing:
        completed.add(StepKind.SETUP_BILLING)
    if configuration_accepted:
        completed.add(StepKind.CONFIGURE)
    if ctx.wants_access_setup is True:
        completed.add(StepKind.GRANT_ACCESS)
    if review_confirmed:
        completed.add(StepKind.REVIEW)

    def _at(kind: StepKind) -> StepEvaluation:
        return StepEvaluation(
            status=FlowStatus.ACTIVE,
            current=STEP_DESCRIPTORS[kind],
            steps=steps,
            resource_type_id=ctx.resource_type_id,
            completed=frozenset(completed),
        )

    if not ctx.is_authenticated:
        return StepEvaluation(
            status=FlowStatus.REQUIRES_AUTHENTICATION,
            current=None,
            steps=steps,
            resource_type_id=ctx.resource_type_id,
            completed=frozenset(completed),
        )
    if not ctx.available_projects or ctx.selected_project_id is None:
        return _at(StepKind.SELECT_OR_CREATE_PROJECT)
    if needs_billing and not ctx.has_valid_billing:
        return _at(StepKind.SETUP_BILLING)
    if not configuration_accepted:
        return _at(StepKind.CONFIGURE)
    if ctx.wants_access_setup is None:
        return _at(StepKind.GRANT_ACCESS)
    if not review_confirmed:
        return _at(StepKind.REVIEW)
    return StepEvaluation(
        status=FlowStatus.COMPLETE,
        current=None,
        steps=steps,
        resource_type_id=ctx.resource_type_id,
        completed=frozenset(completed),
    )


def _coerce_projects(raw: Iterable[Any] | None) -> tuple[Project, ...]:
    if not isinstance(raw, (list, tuple)):
        return ()
    projects: list[Project] = []
    for item in raw:
        if isinstance(item, Project):
            projects.append(item)
        elif isinstance(item, Mapping):
            project = Project.from_mapping(item)
            if project.id:
                projects.append(project)
    return tuple(projects)
