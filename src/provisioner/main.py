"""Provisioning orchestrator FastAPI application factory.

The create_app() factory is the single entry point for building the host
ASGI application. It wires logging, middleware (request-ID, structured request
logging, CORS) and the provisioning routes, and injects the catalog, schema
registry and resource-creation collaborator.

Usage:
    # Local development
    from provisioner import create_app, ProvisionerSettings
    app = create_app(ProvisionerSettings())

    # Deployed
    app = create_app(ProvisionerSettings.from_env(), creator=my_creator)

    # Testing (full DI control)
    app = create_app(settings, catalog=catalog, schemas=schemas, creator=fake)
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .catalog.resource_types import DEFAULT_CATALOG, ResourceTypeCatalog
from .catalog.schemas import DEFAULT_SCHEMAS, SchemaRegistry
from .logging_middleware import add_logging_middleware, configure_logging
from .routes.provisioning import create_provisioning_router
from .settings import ProvisionerSettings
from .wizard.creation import InMemoryResourceCreator, ResourceCreator

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AppDependencies:
    """Injected collaborators, stored on ``app.state.deps``."""

    catalog: ResourceTypeCatalog
    schemas: SchemaRegistry
    creator: ResourceCreator | None


def create_app(
    settings: ProvisionerSettings | None = None,
    *,
    catalog: ResourceTypeCatalog = DEFAULT_CATALOG,
    schemas: SchemaRegistry = DEFAULT_SCHEMAS,
    creator: ResourceCreator | None = None,
) -> FastAPI:
    """Create a configured provisioning FastAPI application.

    Args:
        settings: Application settings. Defaults to local-dev settings.
        catalog: Resource type catalog.
        schemas: Schema registry; must cover every catalog id.
        creator: Resource-creation collaborator. When None, local mode uses
            ``InMemoryResourceCreator`` and other environments leave submit
            unavailable (503).

    Raises:
        ValueError: If settings validation fails.
        ValueError: If a catalog resource type has no registered schema.
    """
    if settings is None:
        settings = ProvisionerSettings()

    errors = settings.validate()
    if errors:
        raise ValueError(
            "Provisioner settings validation failed:\n"
            + "\n".join(f"  - {e}" for e in errors)
        )

    missing = schemas.missing(catalog.ids())
    if missing:
        raise ValueError(
            f"No configuration schema registered for: {', '.join(missing)}"
        )

    if creator is None and settings.is_local:
        creator = InMemoryResourceCreator()

    configure_logging(settings.log_level, structured=settings.structured_logging)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(
            "Provisioner startup (environment=%s, resource_types=%d)",
            settings.environment,
            len(catalog),
        )
        yield
        logger.info("Provisioner shutdown")

    app = FastAPI(
        title="Resource Provisioning Orchestrator",
        description="Catalog, configuration validation and provisioning sessions",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.state.deps = AppDependencies(catalog=catalog, schemas=schemas, creator=creator)
    app.state.settings = settings

    # ── Middleware stack (applied in reverse order) ──────────────
    # Order of execution: RequestID -> StructuredLogging -> CORS -> route

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    add_logging_middleware(app)

    # ── Routes ──────────────────────────────────────────────────

    @app.get("/health")
    async def health():
        return {
            "status": "ok",
            "environment": settings.environment,
        }

    app.include_router(
        create_provisioning_router(
            settings=settings,
            catalog=catalog,
            schemas=schemas,
            creator=creator,
        )
    )

    return app


# For uvicorn, use --factory flag:
#   uvicorn provisioner.main:create_app --factory
