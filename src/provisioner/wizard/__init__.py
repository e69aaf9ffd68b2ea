"""Step sequencing and provisioning session orchestration."""

from .creation import InMemoryResourceCreator, ResourceCreator, submit_session
from .session import (
    ACCESS_ROLES,
    AccessGrant,
    AccessGranted,
    AccessSkipped,
    BillingConfirmed,
    ConfigurationSubmitted,
    CreationRequest,
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
from .state_machine import (
    STEP_DESCRIPTORS,
    FlowStatus,
    Project,
    ProvisioningContext,
    StepDescriptor,
    StepEvaluation,
    StepKind,
    evaluate,
    plan_steps,
    requires_billing,
)

__all__ = [
    'ACCESS_ROLES',
    'AccessGrant',
    'AccessGranted',
    'AccessSkipped',
    'BillingConfirmed',
    'ConfigurationSubmitted',
    'CreationRequest',
    'FlowStatus',
    'InMemoryResourceCreator',
    'Project',
    'ProjectSelected',
    'ProvisioningContext',
    'ProvisioningSession',
    'ResourceCreator',
    'ReviewConfirmed',
    'STEP_DESCRIPTORS',
    'StepDescriptor',
    'StepEvaluation',
    'StepKind',
    'StepOutput',
    'ValidationFailure',
    'advance',
    'begin',
    'evaluate',
    'plan_steps',
    'requires_billing',
    'session_from_dict',
    'session_to_dict',
    'submit_session',
    'to_request',
    'update_context',
]
