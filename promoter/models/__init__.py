"""Data models for Promoter."""

from promoter.models.artifact import ArtifactReference, TriggerEvent
from promoter.models.deployment import (
    ALLOWED_TRANSITIONS,
    TERMINAL_STATES,
    AlertEvent,
    Approval,
    DeploymentFailure,
    DeploymentRecord,
    DeploymentState,
    DesiredState,
    EnvironmentStatus,
    FailureKind,
    InfrastructureState,
    ProvisionErrorKind,
    ProvisionResult,
    StateTransition,
    UnhealthyReason,
    VerificationResult,
)
from promoter.models.environment import (
    EnvironmentDescriptor,
    EnvironmentName,
    EnvironmentsConfig,
    NetworkPolicy,
    TriggerRule,
)

__all__ = [
    # Artifact models
    "ArtifactReference",
    "TriggerEvent",
    # Environment models
    "EnvironmentDescriptor",
    "EnvironmentName",
    "EnvironmentsConfig",
    "NetworkPolicy",
    "TriggerRule",
    # Deployment models
    "ALLOWED_TRANSITIONS",
    "TERMINAL_STATES",
    "AlertEvent",
    "Approval",
    "DeploymentFailure",
    "DeploymentRecord",
    "DeploymentState",
    "FailureKind",
    "StateTransition",
    # Provisioning models
    "DesiredState",
    "EnvironmentStatus",
    "InfrastructureState",
    "ProvisionErrorKind",
    "ProvisionResult",
    # Verification models
    "UnhealthyReason",
    "VerificationResult",
]
