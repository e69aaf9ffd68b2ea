"""Provisioning catalog, validation and session API.

Exposes the orchestrator to a host frontend:
  GET  /api/v1/resource-types                      → catalog listing
  GET  /api/v1/resource-types/{resource_type_id}   → descriptor + schema
  POST /api/v1/resource-types/{id}/validate        → normalized config or field errors
  POST /api/v1/identifiers/generate                → identifier from a display name
  POST /api/v1/identifiers/validate                → identifier error message or null
  POST /api/v1/provisioning/sessions               → begin a session
  POST /api/v1/provisioning/sessions/advance       → apply a step output
  POST /api/v1/provisioning/sessions/context       → merge a context snapshot
  POST /api/v1/provisioning/sessions/submit        → hand a complete session to the creator

The API is stateless: sessions travel by value in request and response
bodies, so persistence across page reloads stays with the host.

Response contracts:
  - Operator-input problems return 422 with ``field_errors`` keyed by path.
  - Unknown resource types return 404, out-of-order steps and incomplete
    sessions return 409, all as ``{error, code, detail}``. Submit errors
    also carry the ``request_id`` used in the log lines for that request.
"""

from __future__ import annotations

import logging
from typing import Any, Literal

from fastapi import APIRouter, Body, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from provisioner.catalog.fields import describe_field
from provisioner.catalog.resource_types import DEFAULT_CATALOG, ResourceTypeCatalog
from provisioner.catalog.schemas import DEFAULT_SCHEMAS, SchemaRegistry
from provisioner.errors import ErrorCode, ProvisionerError, UnknownResourceType
from provisioner.identifiers import generate_identifier, validate_identifier
from provisioner.logging_middleware import get_request_id
from provisioner.settings import ProvisionerSettings
from provisioner.validation.engine import validate
from provisioner.wizard.creation import ResourceCreator, submit_session
from provisioner.wizard.session import (
    AccessGrant,
    AccessGranted,
    AccessSkipped,
    BillingConfirmed,
    ConfigurationSubmitted,
    ProjectSelected,
    ProvisioningSession,
    ReviewConfirmed,
    StepOutput,
    ValidationFailure,
    advance,
    begin,
    session_from_dict,
    session_to_dict,
    to_request,
    update_context,
)
from provisioner.wizard.state_machine import Project, ProvisioningContext

logger = logging.getLogger(__name__)

_ERROR_STATUS: dict[ErrorCode, int] = {
    ErrorCode.UNKNOWN_RESOURCE_TYPE: 404,
    ErrorCode.UNKNOWN_SKU: 404,
    ErrorCode.INCOMPLETE_SESSION: 409,
    ErrorCode.STEP_PRECONDITION_NOT_MET: 409,
    ErrorCode.REQUIRES_AUTHENTICATION: 409,
    ErrorCode.FIELD_CONSTRAINT_VIOLATION: 422,
    ErrorCode.INVALID_IDENTIFIER: 422,
    ErrorCode.UNKNOWN_VARIANT_TAG: 422,
}


# ── Request schemas ───────────────────────────────────────────────────


class ProjectModel(BaseModel):
    id: str
    name: str = ''
    organization_id: str | None = None


class ContextModel(BaseModel):
    is_authenticated: bool = False
    available_projects: list[ProjectModel] = Field(default_factory=list)
    selected_project_id: str | None = None
    selected_sku: str = ''
    has_valid_billing: bool = False
    wants_access_setup: bool | None = None

    def to_context(self, resource_type_id: str = '') -> ProvisioningContext:
        return ProvisioningContext(
            is_authenticated=self.is_authenticated,
            available_projects=tuple(
                Project(p.id, p.name, p.organization_id)
                for p in self.available_projects
            ),
            selected_project_id=self.selected_project_id,
            resource_type_id=resource_type_id,
            selected_sku=self.selected_sku,
            has_valid_billing=self.has_valid_billing,
            wants_access_setup=self.wants_access_setup,
        )


class GrantModel(BaseModel):
    principal: str
    role: str


class StepOutputModel(BaseModel):
    kind: Literal[
        'project_selected',
        'billing_confirmed',
        'configuration_submitted',
        'access_granted',
        'access_skipped',
        'review_confirmed',
    ]
    project_id: str = ''
    project: ProjectModel | None = None
    has_valid_billing: bool = True
    configuration: dict[str, Any] | None = None
    name: str = ''
    identifier: str | None = None
    grants: list[GrantModel] = Field(default_factory=list)

    def to_output(self) -> StepOutput:
        if self.kind == 'project_selected':
            project = (
                Project(self.project.id, self.project.name, self.project.organization_id)
                if self.project is not None
                else None
            )
            return ProjectSelected(project_id=self.project_id, project=project)
        if self.kind == 'billing_confirmed':
            return BillingConfirmed(has_valid_billing=self.has_valid_billing)
        if self.kind == 'configuration_submitted':
            return ConfigurationSubmitted(
                configuration=self.configuration,
                name=self.name,
                identifier=self.identifier,
            )
        if self.kind == 'access_granted':
            return AccessGranted(
                grants=tuple(AccessGrant(g.principal, g.role) for g in self.grants)
            )
        if self.kind == 'access_skipped':
            return AccessSkipped()
        return ReviewConfirmed()


class GenerateIdentifierRequest(BaseModel):
    name: str


class ValidateIdentifierRequest(BaseModel):
    identifier: str


class BeginSessionRequest(BaseModel):
    resource_type_id: str
    context: ContextModel = Field(default_factory=ContextModel)


class AdvanceRequest(BaseModel):
    session: dict[str, Any]
    output: StepOutputModel


class ContextUpdateRequest(BaseModel):
    session: dict[str, Any]
    context: ContextModel


class SubmitRequest(BaseModel):
    session: dict[str, Any]


# ── Response helpers ──────────────────────────────────────────────────


def _error_response(
    error: ProvisionerError, *, request_id: str | None = None,
) -> JSONResponse:
    content = error.payload()
    if request_id is not None:
        content['request_id'] = request_id
    return JSONResponse(
        status_code=_ERROR_STATUS.get(error.code, 400),
        content=content,
    )


def _failure_response(failure: ValidationFailure) -> JSONResponse:
    return JSONResponse(
        status_code=_ERROR_STATUS.get(failure.code, 422),
        content=failure.to_dict(),
    )


# ── Route factory ─────────────────────────────────────────────────────


def create_provisioning_router(
    *,
    settings: ProvisionerSettings | None = None,
    catalog: ResourceTypeCatalog = DEFAULT_CATALOG,
    schemas: SchemaRegistry = DEFAULT_SCHEMAS,
    creator: ResourceCreator | None = None,
) -> APIRouter:
    """Create the provisioning router.

    Args:
        settings: Host settings; defaults to ``ProvisionerSettings()``.
        catalog: Resource type catalog.
        schemas: Configuration schema registry sharing the catalog's ids.
        creator: Resource-creation collaborator. If None, the submit
            endpoint returns 503.

    Returns:
        FastAPI router with catalog, validation and session endpoints.
    """
    settings = settings or ProvisionerSettings()
    router = APIRouter(prefix='/api/v1', tags=['provisioning'])

    def _session_response(
        session: ProvisioningSession, status_code: int = 200,
    ) -> JSONResponse:
        return JSONResponse(
            status_code=status_code,
            content={
                'session': session_to_dict(session),
                'evaluation': session.evaluation(catalog=catalog).to_dict(),
            },
        )

    @router.get('/resource-types')
    async def list_resource_types(include_disabled: bool | None = None):
        """List provisionable resource types."""
        if include_disabled is None:
            include_disabled = settings.include_disabled_types
        return {
            'resource_types': [
                descriptor.to_dict()
                for descriptor in catalog.list_types(include_disabled=include_disabled)
            ],
        }

    @router.get('/resource-types/{resource_type_id}')
    async def get_resource_type(resource_type_id: str):
        """Return a resource type descriptor and its configuration schema."""
        try:
            descriptor = catalog.describe(resource_type_id)
            schema = schemas.schema_for(resource_type_id)
        except UnknownResourceType as exc:
            return _error_response(exc)
        return {
            'resource_type': descriptor.to_dict(),
            'schema': describe_field(schema),
        }

    @router.post('/resource-types/{resource_type_id}/validate')
    async def validate_configuration(
        resource_type_id: str,
        configuration: dict[str, Any] | None = Body(default=None),
    ):
        """Validate a candidate configuration without starting a session."""
        try:
            result = validate(resource_type_id, configuration, registry=schemas)
        except UnknownResourceType as exc:
            return _error_response(exc)
        return JSONResponse(
            status_code=200 if result.ok else 422,
            content=result.to_dict(),
        )

    @router.post('/identifiers/generate')
    async def generate(body: GenerateIdentifierRequest):
        """Suggest a DNS-safe identifier for a display name."""
        return {
            'identifier': generate_identifier(
                body.name, suffix_length=settings.identifier_suffix_length,
            ),
        }

    @router.post('/identifiers/validate')
    async def check(body: ValidateIdentifierRequest):
        """Validate an operator-entered identifier."""
        message = validate_identifier(body.identifier)
        return {'valid': message is None, 'message': message}

    @router.post('/provisioning/sessions')
    async def begin_session(body: BeginSessionRequest):
        """Begin a provisioning session for a resource type."""
        try:
            session = begin(
                body.resource_type_id,
                body.context.to_context(body.resource_type_id),
                catalog=catalog,
            )
        except UnknownResourceType as exc:
            return _error_response(exc)
        return _session_response(session, status_code=201)

    @router.post('/provisioning/sessions/advance')
    async def advance_session(body: AdvanceRequest):
        """Apply the output of the current step."""
        try:
            session = session_from_dict(
                body.session, catalog=catalog, schemas=schemas,
            )
        except UnknownResourceType as exc:
            return _error_response(exc)
        result = advance(
            session,
            body.output.to_output(),
            catalog=catalog,
            schemas=schemas,
            suffix_length=settings.identifier_suffix_length,
        )
        if isinstance(result, ValidationFailure):
            return _failure_response(result)
        return _session_response(result)

    @router.post('/provisioning/sessions/context')
    async def refresh_context(body: ContextUpdateRequest):
        """Merge a fresh host context snapshot into a session."""
        try:
            session = session_from_dict(
                body.session, catalog=catalog, schemas=schemas,
            )
        except UnknownResourceType as exc:
            return _error_response(exc)
        snapshot = body.context.to_context(session.resource_type_id)
        return _session_response(update_context(session, snapshot, catalog=catalog))

    @router.post('/provisioning/sessions/submit')
    async def submit(body: SubmitRequest, request: Request):
        """Submit a complete session to the resource-creation service."""
        request_id = get_request_id(request)
        try:
            session = session_from_dict(
                body.session, catalog=catalog, schemas=schemas,
            )
            creation = to_request(session, catalog=catalog)
        except ProvisionerError as exc:
            logger.warning(
                'Submit rejected (%s): %s',
                exc.code.value,
                exc,
                extra={'request_id': request_id},
            )
            return _error_response(exc, request_id=request_id)
        if creator is None:
            return JSONResponse(
                status_code=503,
                content={
                    'error': 'creator_unavailable',
                    'code': 'creator_unavailable',
                    'detail': 'no resource creation service is configured',
                    'request_id': request_id,
                },
            )
        resource = await submit_session(session, creator, catalog=catalog)
        logger.info(
            'Submitted %s %s',
            creation.resource_type_id,
            creation.identifier,
            extra={'request_id': request_id},
        )
        return JSONResponse(
            status_code=201,
            content={'resource': resource, 'request': creation.to_payload()},
        )

    return router
