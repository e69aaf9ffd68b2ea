"""Resource provisioning orchestrator.

Catalog of provisionable resource types, schema-driven configuration
validation, DNS-safe identifier generation and the provisioning step
sequencer, with a FastAPI host surface.
"""

from .errors import (
    ErrorCode,
    IncompleteSession,
    ProvisionerError,
    UnknownResourceType,
    UnknownSku,
)
from .main import create_app
from .settings import ProvisionerSettings

__all__ = [
    'ErrorCode',
    'IncompleteSession',
    'ProvisionerError',
    'ProvisionerSettings',
    'UnknownResourceType',
    'UnknownSku',
    'create_app',
]
