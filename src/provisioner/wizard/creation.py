"""Resource-creation collaborator contract.

The orchestrator performs no I/O. Once a session is complete its creation
request is handed to a ``ResourceCreator``; timeouts, retries and duplicate
submission handling belong to the collaborator, not to the core.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Protocol, runtime_checkable

from provisioner.catalog.resource_types import DEFAULT_CATALOG, ResourceTypeCatalog

from .session import CreationRequest, ProvisioningSession, to_request

logger = logging.getLogger(__name__)


@runtime_checkable
class ResourceCreator(Protocol):
    """External service that creates the resource."""

    async def create_resource(self, request: CreationRequest) -> dict[str, Any]: ...


class InMemoryResourceCreator:
    """In-memory creator for local development and tests.

    Records every request it receives; no deduplication is applied.
    """

    def __init__(self) -> None:
        self.requests: list[CreationRequest] = []

    async def create_resource(self, request: CreationRequest) -> dict[str, Any]:
        self.requests.append(request)
        now = datetime.now(timezone.utc).isoformat()
        return {
            'resource_id': request.identifier,
            'project_id': request.project_id,
            'name': request.name,
            'type': request.resource_type_id,
            'sku': request.sku,
            'status': 'provisioning',
            'settings_json': dict(request.configuration),
            'created_at': now,
            'updated_at': now,
        }


async def submit_session(
    session: ProvisioningSession,
    creator: ResourceCreator,
    *,
    catalog: ResourceTypeCatalog = DEFAULT_CATALOG,
) -> dict[str, Any]:
    """Build the creation request for ``session`` and hand it to ``creator``.

    Raises:
        IncompleteSession: If the session has not reached ``complete``; the
            collaborator is not called.
    """
    request = to_request(session, catalog=catalog)
    logger.info(
        'Submitting creation request (resource_type=%s, sku=%s, project=%s, id=%s)',
        request.resource_type_id,
        request.sku,
        request.project_id,
        request.identifier,
    )
    return await creator.create_resource(request)
