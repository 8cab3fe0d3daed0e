"""Core functionality for Promoter."""

from promoter.core.approvals import ApprovalGate
from promoter.core.environments import EnvironmentRegistry
from promoter.core.events import Event, EventBus, get_event_bus
from promoter.core.exceptions import (
    ApprovalNotPendingError,
    ApprovalTimeoutError,
    ArtifactNotFoundError,
    ConfigurationError,
    DeploymentInProgressError,
    DeploymentNotFoundError,
    InvalidTransitionError,
    PromoterError,
    PromotionNotAllowedError,
    ProvisionError,
    ProvisionTimeoutError,
    SecretNotFoundError,
    TransportError,
    UnknownEnvironmentError,
    UnmappedTriggerError,
    VerificationError,
)
from promoter.core.history import DeploymentHistory

__all__ = [
    "ApprovalGate",
    "EnvironmentRegistry",
    "Event",
    "EventBus",
    "get_event_bus",
    "DeploymentHistory",
    "ApprovalNotPendingError",
    "ApprovalTimeoutError",
    "ArtifactNotFoundError",
    "ConfigurationError",
    "DeploymentInProgressError",
    "DeploymentNotFoundError",
    "InvalidTransitionError",
    "PromoterError",
    "PromotionNotAllowedError",
    "ProvisionError",
    "ProvisionTimeoutError",
    "SecretNotFoundError",
    "TransportError",
    "UnknownEnvironmentError",
    "UnmappedTriggerError",
    "VerificationError",
]
