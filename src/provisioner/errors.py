"""Error taxonomy for the provisioning orchestrator.

Operator-input problems (field constraints, unknown variant tags, invalid
identifiers, blocked or out-of-order steps) are returned as values by the
validation engine and the session. The exceptions below are reserved for host
misuse of the API and are safe to surface as hard failures.
"""

from __future__ import annotations

from enum import Enum


class ErrorCode(str, Enum):
    """Stable, machine-readable error codes."""

    UNKNOWN_RESOURCE_TYPE = 'unknown_resource_type'
    UNKNOWN_SKU = 'unknown_sku'
    UNKNOWN_VARIANT_TAG = 'unknown_variant_tag'
    FIELD_CONSTRAINT_VIOLATION = 'field_constraint_violation'
    INVALID_IDENTIFIER = 'invalid_identifier'
    REQUIRES_AUTHENTICATION = 'requires_authentication'
    INCOMPLETE_SESSION = 'incomplete_session'
    STEP_PRECONDITION_NOT_MET = 'step_precondition_not_met'


class ProvisionerError(Exception):
    """Base class for errors raised on API misuse."""

    code: ErrorCode

    def payload(self) -> dict[str, str]:
        """Build the canonical API error payload."""
        return {
            'error': self.code.value,
            'code': self.code.value,
            'detail': str(self),
        }


class UnknownResourceType(ProvisionerError, LookupError):
    """Raised when a resource type id is not registered."""

    code = ErrorCode.UNKNOWN_RESOURCE_TYPE

    def __init__(self, resource_type_id: str) -> None:
        self.resource_type_id = resource_type_id
        super().__init__(f'unknown resource type: {resource_type_id!r}')


class UnknownSku(ProvisionerError, LookupError):
    """Raised when a sku does not belong to a resource type."""

    code = ErrorCode.UNKNOWN_SKU

    def __init__(self, resource_type_id: str, sku: str) -> None:
        self.resource_type_id = resource_type_id
        self.sku = sku
        super().__init__(
            f'sku {sku!r} is not offered for resource type {resource_type_id!r}'
        )


class IncompleteSession(ProvisionerError):
    """Raised when a creation request is built before the flow completed."""

    code = ErrorCode.INCOMPLETE_SESSION

    def __init__(self, resource_type_id: str, state: str) -> None:
        self.resource_type_id = resource_type_id
        self.state = state
        super().__init__(
            f'provisioning session for {resource_type_id!r} is not complete '
            f'(current state: {state})'
        )
