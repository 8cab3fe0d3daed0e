"""Custom exceptions for Promoter."""

from typing import Any

from promoter.models.deployment import (
    DeploymentState,
    FailureKind,
    ProvisionErrorKind,
    UnhealthyReason,
)


class PromoterError(Exception):
    """Base exception for Promoter."""

    status_code: int = 500

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class ConfigurationError(PromoterError):
    """Invalid environment descriptor or trigger mapping. Never retried."""

    status_code = 422


class UnknownEnvironmentError(ConfigurationError):
    """No descriptor is configured for an environment."""

    def __init__(self, environment: str):
        super().__init__(
            f"Unknown environment: {environment}",
            {"environment": environment},
        )


class UnmappedTriggerError(ConfigurationError):
    """A branch or tag matches no trigger rule."""

    def __init__(self, branch_or_tag: str):
        super().__init__(
            f"No environment is mapped to '{branch_or_tag}'",
            {"branch_or_tag": branch_or_tag},
        )


class ProvisionError(PromoterError):
    """Infrastructure provisioning failed."""

    def __init__(
        self,
        kind: ProvisionErrorKind,
        message: str,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(f"{kind.value}: {message}", {**(details or {}), "kind": kind.value})
        self.kind = kind

    @property
    def retryable(self) -> bool:
        return self.kind.retryable

    @property
    def failure_kind(self) -> FailureKind:
        return FailureKind(self.kind.value)


class ProvisionTimeoutError(PromoterError):
    """Provisioning exceeded its hard timeout."""

    def __init__(self, environment: str, timeout: float):
        super().__init__(
            f"Provisioning of '{environment}' did not finish within {timeout:g}s",
            {"environment": environment, "timeout_seconds": timeout},
        )


class VerificationError(PromoterError):
    """Health verification failed. Drives rollback, never retried directly."""

    def __init__(self, environment: str, reason: UnhealthyReason):
        super().__init__(
            f"Environment '{environment}' failed verification: {reason.value}",
            {"environment": environment, "reason": reason.value},
        )
        self.reason = reason


class ApprovalTimeoutError(PromoterError):
    """No approval arrived within the configured window."""

    def __init__(self, deployment_id: str, timeout: float):
        super().__init__(
            f"Deployment {deployment_id} was not approved within {timeout:g}s",
            {"deployment_id": deployment_id, "timeout_seconds": timeout},
        )


class TransportError(PromoterError):
    """An alert sink could not deliver an event."""

    def __init__(self, sink: str, message: str):
        super().__init__(f"Alert sink '{sink}' failed: {message}", {"sink": sink})
        self.sink = sink


class ArtifactNotFoundError(PromoterError):
    """The container registry has no such tag."""

    status_code = 404

    def __init__(self, reference: str):
        super().__init__(
            f"Artifact not found in registry: {reference}",
            {"reference": reference},
        )


class SecretNotFoundError(ConfigurationError):
    """A descriptor references a secret the store does not hold."""

    def __init__(self, reference: str):
        # the reference is a name, never the value
        super().__init__(f"Secret not found: {reference}", {"reference": reference})


class DeploymentNotFoundError(PromoterError):
    """Deployment record not found."""

    status_code = 404

    def __init__(self, deployment_id: str):
        super().__init__(
            f"Deployment not found: {deployment_id}",
            {"deployment_id": deployment_id},
        )


class DeploymentInProgressError(PromoterError):
    """An environment already has an in-flight deployment."""

    status_code = 409

    def __init__(self, environment: str, deployment_id: str):
        super().__init__(
            f"Environment '{environment}' already has deployment {deployment_id} in flight",
            {"environment": environment, "deployment_id": deployment_id},
        )


class PromotionNotAllowedError(PromoterError):
    """Promotion precondition violated."""

    status_code = 409


class ApprovalNotPendingError(PromoterError):
    """Approval was sent for a deployment that is not waiting on one."""

    status_code = 409

    def __init__(self, deployment_id: str):
        super().__init__(
            f"Deployment {deployment_id} is not awaiting approval",
            {"deployment_id": deployment_id},
        )


class InvalidTransitionError(PromoterError):
    """A state change not allowed by the deployment state machine."""

    status_code = 409

    def __init__(self, from_state: DeploymentState, to_state: DeploymentState):
        super().__init__(
            f"Illegal transition {from_state.value} -> {to_state.value}",
            {"from_state": from_state.value, "to_state": to_state.value},
        )
