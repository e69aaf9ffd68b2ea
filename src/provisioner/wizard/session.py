"""Provisioning session: the explicit, serializable record of one flow.

A session is an immutable value. ``advance`` applies the output of the current
step and returns a new session (or a ``ValidationFailure`` describing why the
output was not accepted); ``update_context`` folds in a fresh host snapshot.
Both re-run the sequencer, so the current step is always derived from the
session's data rather than tracked separately.

Nothing external happens before the flow is complete: discarding a session at
any point has no side effect.
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass, replace
from typing import Any, Callable, Mapping, Union

from provisioner.catalog.resource_types import DEFAULT_CATALOG, ResourceTypeCatalog
from provisioner.catalog.schemas import DEFAULT_SCHEMAS, SchemaRegistry
from provisioner.errors import ErrorCode, IncompleteSession
from provisioner.identifiers import (
    DEFAULT_SUFFIX_LENGTH,
    check_identifier,
    generate_identifier,
)
from provisioner.validation.engine import FieldError, FieldErrorCode, validate

from .state_machine import (
    FlowStatus,
    Project,
    ProvisioningContext,
    StepEvaluation,
    StepKind,
    evaluate,
)

logger = logging.getLogger(__name__)

ACCESS_ROLES = ('Owner', 'Editor', 'Viewer')


@dataclass(frozen=True, slots=True)
class AccessGrant:
    principal: str
    role: str

    def to_dict(self) -> dict[str, str]:
        return {'principal': self.principal, 'role': self.role}

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> AccessGrant:
        return cls(
            principal=str(data.get('principal') or ''),
            role=str(data.get('role') or ''),
        )


# ── Step outputs ────────────────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class ProjectSelected:
    """Operator picked an existing project, or created ``project``."""

    project_id: str
    project: Project | None = None


@dataclass(frozen=True, slots=True)
class BillingConfirmed:
    has_valid_billing: bool = True


@dataclass(frozen=True, slots=True)
class ConfigurationSubmitted:
    """Configuration plus naming; the identifier is generated when omitted."""

    configuration: Mapping[str, Any] | None = None
    name: str = ''
    identifier: str | None = None


@dataclass(frozen=True, slots=True)
class AccessGranted:
    grants: tuple[AccessGrant, ...]


@dataclass(frozen=True, slots=True)
class AccessSkipped:
    pass


@dataclass(frozen=True, slots=True)
class ReviewConfirmed:
    pass


StepOutput = Union[
    ProjectSelected,
    BillingConfirmed,
    ConfigurationSubmitted,
    AccessGranted,
    AccessSkipped,
    ReviewConfirmed,
]

_EXPECTED_OUTPUTS: dict[StepKind, tuple[type, ...]] = {
    StepKind.SELECT_OR_CREATE_PROJECT: (ProjectSelected,),
    StepKind.SETUP_BILLING: (BillingConfirmed,),
    StepKind.CONFIGURE: (ConfigurationSubmitted,),
    StepKind.GRANT_ACCESS: (AccessGranted, AccessSkipped),
    StepKind.REVIEW: (ReviewConfirmed,),
}


# ── Results ─────────────────────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class ValidationFailure:
    """Step output rejected; the session is unchanged."""

    code: ErrorCode
    step: StepKind | None
    detail: str
    errors: tuple[FieldError, ...] = ()

    @property
    def field_errors(self) -> dict[str, str]:
        return {error.path: error.message for error in self.errors}

    def to_dict(self) -> dict[str, Any]:
        return {
            'error': self.code.value,
            'code': self.code.value,
            'step': self.step.value if self.step else None,
            'detail': self.detail,
            'field_errors': self.field_errors,
            'errors': [error.to_dict() for error in self.errors],
        }


@dataclass(frozen=True, slots=True)
class CreationRequest:
    """Everything the external creation service needs for one resource."""

    resource_type_id: str
    sku: str
    project_id: str
    identifier: str
    name: str
    configuration: Mapping[str, Any]
    access_grants: tuple[AccessGrant, ...] = ()

    def to_payload(self) -> dict[str, Any]:
        return {
            'id': self.identifier,
            'name': self.name,
            'type': self.resource_type_id,
            'sku': self.sku,
            'project_id': self.project_id,
            'settings_json': dict(self.configuration),
            'access_grants': [grant.to_dict() for grant in self.access_grants],
        }


@dataclass(frozen=True, slots=True)
class ProvisioningSession:
    resource_type_id: str
    context: ProvisioningContext
    name: str = ''
    identifier: str = ''
    configuration: Mapping[str, Any] | None = None
    access_grants: tuple[AccessGrant, ...] = ()
    review_confirmed: bool = False
    current_step_index: int = 0

    @property
    def configuration_accepted(self) -> bool:
        return self.configuration is not None

    def evaluation(
        self, *, catalog: ResourceTypeCatalog = DEFAULT_CATALOG,
    ) -> StepEvaluation:
        return evaluate(
            self.context,
            configuration_accepted=self.configuration_accepted,
            review_confirmed=self.review_confirmed,
            catalog=catalog,
        )


# ── Operations ──────────────────────────────────────────────────────


def begin(
    resource_type_id: str,
    initial_context: ProvisioningContext | None = None,
    *,
    catalog: ResourceTypeCatalog = DEFAULT_CATALOG,
) -> ProvisioningSession:
    """Start a provisioning flow for ``resource_type_id``.

    The selected sku is normalized to one the type offers (falling back to its
    first tier).

    Raises:
        UnknownResourceType: If the type is not in the catalog.
    """
    descriptor = catalog.describe(resource_type_id)
    context = initial_context or ProvisioningContext()
    context = replace(
        context,
        resource_type_id=resource_type_id,
        selected_sku=descriptor.resolve_sku(context.selected_sku),
    ).normalized()
    session = _reevaluate(
        ProvisioningSession(resource_type_id=resource_type_id, context=context),
        catalog,
    )
    logger.info(
        'Provisioning session started (resource_type=%s, sku=%s, step_index=%d)',
        resource_type_id,
        context.selected_sku,
        session.current_step_index,
    )
    return session


def advance(
    session: ProvisioningSession,
    output: StepOutput,
    *,
    catalog: ResourceTypeCatalog = DEFAULT_CATALOG,
    schemas: SchemaRegistry = DEFAULT_SCHEMAS,
    suffix_length: int = DEFAULT_SUFFIX_LENGTH,
    rng: random.Random | None = None,
) -> ProvisioningSession | ValidationFailure:
    """Apply ``output`` to the current step and re-run the sequencer."""
    evaluation = session.evaluation(catalog=catalog)
    if evaluation.is_blocked:
        return ValidationFailure(
            code=ErrorCode.REQUIRES_AUTHENTICATION,
            step=None,
            detail=(
                f'authentication required to continue provisioning '
                f'{session.resource_type_id!r}'
            ),
        )
    if evaluation.current is None:
        return ValidationFailure(
            code=ErrorCode.STEP_PRECONDITION_NOT_MET,
            step=None,
            detail='provisioning session is already complete',
        )

    step = evaluation.current.kind
    if not isinstance(output, _EXPECTED_OUTPUTS[step]):
        return ValidationFailure(
            code=ErrorCode.STEP_PRECONDITION_NOT_MET,
            step=step,
            detail=f'{type(output).__name__} cannot complete step {step.value!r}',
        )

    if step is StepKind.CONFIGURE:
        result = _apply_configuration(
            session, output, schemas=schemas, suffix_length=suffix_length, rng=rng,
        )
    else:
        result = _APPLY[step](session, output)

    if isinstance(result, ValidationFailure):
        logger.debug(
            'Step %s rejected for %s: %s (%d field error(s))',
            step.value,
            session.resource_type_id,
            result.code.value,
            len(result.errors),
        )
        return result

    advanced = _reevaluate(result, catalog)
    logger.debug(
        'Step %s completed for %s; step index %d -> %d',
        step.value,
        session.resource_type_id,
        session.current_step_index,
        advanced.current_step_index,
    )
    if advanced.evaluation(catalog=catalog).status is FlowStatus.COMPLETE:
        logger.info(
            'Provisioning session complete (resource_type=%s, identifier=%s)',
            advanced.resource_type_id,
            advanced.identifier,
        )
    return advanced


def update_context(
    session: ProvisioningSession,
    snapshot: ProvisioningContext,
    *,
    catalog: ResourceTypeCatalog = DEFAULT_CATALOG,
) -> ProvisioningSession:
    """Fold a fresh host snapshot into the session.

    Host facts (authentication, projects, billing) come from the snapshot.
    Operator decisions (selected project, sku, access decision) are kept
    unless the snapshot sets them; a decided access step is never re-opened.
    Review confirmation is cleared when the flow is no longer complete.
    """
    previous = session.context
    descriptor = catalog.get(session.resource_type_id)
    sku = snapshot.selected_sku or previous.selected_sku
    if descriptor is not None:
        sku = descriptor.resolve_sku(sku)

    wants_access = previous.wants_access_setup
    if wants_access is None:
        wants_access = snapshot.wants_access_setup

    merged = replace(
        snapshot,
        resource_type_id=session.resource_type_id,
        selected_sku=sku,
        selected_project_id=snapshot.selected_project_id or previous.selected_project_id,
        wants_access_setup=wants_access,
    ).normalized()

    updated = replace(session, context=merged)
    if updated.review_confirmed and not updated.evaluation(catalog=catalog).is_complete:
        updated = replace(updated, review_confirmed=False)
    return _reevaluate(updated, catalog)


def to_request(
    session: ProvisioningSession,
    *,
    catalog: ResourceTypeCatalog = DEFAULT_CATALOG,
) -> CreationRequest:
    """Assemble the creation request for a completed session.

    Raises:
        IncompleteSession: If the flow has not reached ``complete``.
        UnknownSku: If the selected sku is not offered for the type.
    """
    evaluation = session.evaluation(catalog=catalog)
    if not evaluation.is_complete:
        state = (
            evaluation.current.kind.value
            if evaluation.current is not None
            else evaluation.status.value
        )
        raise IncompleteSession(session.resource_type_id, state)

    tier = catalog.describe(session.resource_type_id).tier(session.context.selected_sku)
    return CreationRequest(
        resource_type_id=session.resource_type_id,
        sku=tier.sku,
        project_id=session.context.selected_project_id or '',
        identifier=session.identifier,
        name=session.name,
        configuration=dict(session.configuration or {}),
        access_grants=session.access_grants,
    )


# ── Serialization ───────────────────────────────────────────────────


def session_to_dict(session: ProvisioningSession) -> dict[str, Any]:
    """Plain-JSON representation, for hosts that persist sessions."""
    return {
        'resource_type_id': session.resource_type_id,
        'context': session.context.to_dict(),
        'name': session.name,
        'identifier': session.identifier,
        'configuration': (
            dict(session.configuration) if session.configuration is not None else None
        ),
        'access_grants': [grant.to_dict() for grant in session.access_grants],
        'review_confirmed': session.review_confirmed,
        'current_step_index': session.current_step_index,
    }


def session_from_dict(
    data: Mapping[str, Any],
    *,
    catalog: ResourceTypeCatalog = DEFAULT_CATALOG,
    schemas: SchemaRegistry = DEFAULT_SCHEMAS,
) -> ProvisioningSession:
    """Rebuild a session; the step index is recomputed, not trusted.

    The stored identifier and configuration are checked again as if they had
    just been submitted. When either no longer passes, both are dropped along
    with the review confirmation, and the flow returns to ``configure``.

    Raises:
        UnknownResourceType: If the stored type is no longer in the catalog.
    """
    resource_type_id = str(data.get('resource_type_id') or '')
    catalog.describe(resource_type_id)
    context = ProvisioningContext.from_mapping(data.get('context') or {})
    identifier = str(data.get('identifier') or '')
    configuration = _restore_configuration(
        resource_type_id, identifier, data.get('configuration'), schemas,
    )
    review_confirmed = bool(data.get('review_confirmed', False))
    if configuration is None:
        identifier = ''
        review_confirmed = False

    session = ProvisioningSession(
        resource_type_id=resource_type_id,
        context=replace(context, resource_type_id=resource_type_id),
        name=str(data.get('name') or ''),
        identifier=identifier,
        configuration=configuration,
        access_grants=tuple(
            AccessGrant.from_mapping(grant)
            for grant in data.get('access_grants') or ()
        ),
        review_confirmed=review_confirmed,
    )
    return _reevaluate(session, catalog)


def _restore_configuration(
    resource_type_id: str,
    identifier: str,
    configuration: Any,
    schemas: SchemaRegistry,
) -> dict[str, Any] | None:
    if configuration is None:
        return None
    issue = check_identifier(identifier)
    if issue is not None:
        logger.warning(
            'Stored session for %s has an invalid identifier (%s); '
            'returning to configure',
            resource_type_id,
            issue.reason,
        )
        return None
    result = validate(resource_type_id, configuration, registry=schemas)
    if not result.ok:
        logger.warning(
            'Stored configuration for %s no longer validates (%s); '
            'returning to configure',
            resource_type_id,
            ', '.join(sorted(result.field_errors)),
        )
        return None
    return result.value


# ── Step handlers ───────────────────────────────────────────────────


def _apply_project(
    session: ProvisioningSession, output: ProjectSelected,
) -> ProvisioningSession | ValidationFailure:
    project_id = (output.project_id or '').strip()
    projects = session.context.available_projects

    if output.project is not None:
        if output.project.id != project_id:
            return _project_failure('created project id does not match project_id')
        if all(project.id != project_id for project in projects):
            projects = (*projects, output.project)

    if not project_id:
        return _project_failure('project_id is required', FieldErrorCode.REQUIRED)
    if all(project.id != project_id for project in projects):
        return _project_failure(f'project {project_id!r} is not available')

    context = replace(
        session.context,
        available_projects=projects,
        selected_project_id=project_id,
    )
    return replace(session, context=context)


def _apply_billing(
    session: ProvisioningSession, output: BillingConfirmed,
) -> ProvisioningSession | ValidationFailure:
    if not output.has_valid_billing:
        return ValidationFailure(
            code=ErrorCode.STEP_PRECONDITION_NOT_MET,
            step=StepKind.SETUP_BILLING,
            detail='billing is not set up for the selected tier',
        )
    context = replace(session.context, has_valid_billing=True)
    return replace(session, context=context)


def _apply_configuration(
    session: ProvisioningSession,
    output: ConfigurationSubmitted,
    *,
    schemas: SchemaRegistry,
    suffix_length: int,
    rng: random.Random | None,
) -> ProvisioningSession | ValidationFailure:
    name = output.name.strip()
    identifier = output.identifier or ''
    if not identifier:
        identifier = generate_identifier(name, suffix_length=suffix_length, rng=rng)

    errors: list[FieldError] = []
    issue = check_identifier(identifier)
    if issue is not None:
        errors.append(
            FieldError('identifier', FieldErrorCode.INVALID_IDENTIFIER, issue.message)
        )

    result = validate(
        session.resource_type_id, output.configuration, registry=schemas,
    )
    errors.extend(result.errors)

    if errors:
        code = (
            ErrorCode.INVALID_IDENTIFIER
            if len(errors) == 1 and issue is not None
            else ErrorCode.FIELD_CONSTRAINT_VIOLATION
        )
        return ValidationFailure(
            code=code,
            step=StepKind.CONFIGURE,
            detail=(
                f'identifier rejected: {issue.reason}'
                if code is ErrorCode.INVALID_IDENTIFIER
                else 'configuration rejected'
            ),
            errors=tuple(errors),
        )

    return replace(
        session,
        name=name or identifier,
        identifier=identifier,
        configuration=result.value,
    )


def _apply_access(
    session: ProvisioningSession, output: AccessGranted | AccessSkipped,
) -> ProvisioningSession | ValidationFailure:
    if isinstance(output, AccessSkipped):
        context = replace(session.context, wants_access_setup=False)
        return replace(session, context=context, access_grants=())

    errors: list[FieldError] = []
    if not output.grants:
        errors.append(
            FieldError(
                'access_grants',
                FieldErrorCode.TOO_FEW_ITEMS,
                'Add at least one grant or skip this step',
            )
        )
    grants: list[AccessGrant] = []
    for index, grant in enumerate(output.grants):
        principal = grant.principal.strip()
        if not principal:
            errors.append(
                FieldError(
                    f'access_grants.{index}.principal',
                    FieldErrorCode.REQUIRED,
                    'This field is required',
                )
            )
        if grant.role not in ACCESS_ROLES:
            errors.append(
                FieldError(
                    f'access_grants.{index}.role',
                    FieldErrorCode.INVALID_CHOICE,
                    f'Must be one of: {", ".join(ACCESS_ROLES)}',
                )
            )
        normalized = AccessGrant(principal=principal, role=grant.role)
        if normalized not in grants:
            grants.append(normalized)

    if errors:
        return ValidationFailure(
            code=ErrorCode.FIELD_CONSTRAINT_VIOLATION,
            step=StepKind.GRANT_ACCESS,
            detail='access grants rejected',
            errors=tuple(errors),
        )
    context = replace(session.context, wants_access_setup=True)
    return replace(session, context=context, access_grants=tuple(grants))


def _apply_review(
    session: ProvisioningSession, output: ReviewConfirmed,
) -> ProvisioningSession | ValidationFailure:
    return replace(session, review_confirmed=True)


_APPLY: dict[StepKind, Callable[[ProvisioningSession, Any], Any]] = {
    StepKind.SELECT_OR_CREATE_PROJECT: _apply_project,
    StepKind.SETUP_BILLING: _apply_billing,
    StepKind.GRANT_ACCESS: _apply_access,
    StepKind.REVIEW: _apply_review,
}


def _project_failure(
    detail: str, code: FieldErrorCode = FieldErrorCode.INVALID_CHOICE,
) -> ValidationFailure:
    return ValidationFailure(
        code=ErrorCode.STEP_PRECONDITION_NOT_MET,
        step=StepKind.SELECT_OR_CREATE_PROJECT,
        detail=detail,
        errors=(FieldError('project_id', code, detail),),
    )


def _reevaluate(
    session: ProvisioningSession, catalog: ResourceTypeCatalog,
) -> ProvisioningSession:
    evaluation = session.evaluation(catalog=catalog)
    return replace(session, current_step_index=evaluation.current_index)
