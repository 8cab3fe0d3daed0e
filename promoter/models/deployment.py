"""Deployment record and provisioning data models."""

from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field, SecretStr

from promoter.models.artifact import ArtifactReference, TriggerEvent
from promoter.models.environment import EnvironmentName, NetworkPolicy


class DeploymentState(str, Enum):
    """Deployment record lifecycle state."""

    PENDING = "pending"
    PROVISIONING = "provisioning"
    VERIFYING = "verifying"
    HEALTHY = "healthy"
    ROLLED_BACK = "rolled_back"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATES


TERMINAL_STATES = frozenset(
    {DeploymentState.HEALTHY, DeploymentState.ROLLED_BACK, DeploymentState.FAILED}
)

ALLOWED_TRANSITIONS: dict[DeploymentState, frozenset[DeploymentState]] = {
    DeploymentState.PENDING: frozenset(
        {DeploymentState.PROVISIONING, DeploymentState.FAILED}
    ),
    DeploymentState.PROVISIONING: frozenset(
        {DeploymentState.VERIFYING, DeploymentState.FAILED}
    ),
    DeploymentState.VERIFYING: frozenset(
        {DeploymentState.HEALTHY, DeploymentState.ROLLED_BACK, DeploymentState.FAILED}
    ),
    DeploymentState.HEALTHY: frozenset(),
    DeploymentState.ROLLED_BACK: frozenset(),
    DeploymentState.FAILED: frozenset(),
}


class ProvisionErrorKind(str, Enum):
    """Failure classes reported by an infrastructure provisioner."""

    QUOTA_EXCEEDED = "QuotaExceeded"
    PERMISSION_DENIED = "PermissionDenied"
    INVALID_CONFIGURATION = "InvalidConfiguration"
    TRANSIENT_UNAVAILABLE = "TransientUnavailable"

    @property
    def retryable(self) -> bool:
        return self is ProvisionErrorKind.TRANSIENT_UNAVAILABLE


class UnhealthyReason(str, Enum):
    """Why health verification did not pass."""

    NO_INSTANCES_RUNNING = "NoInstancesRunning"
    REPEATED_HEALTH_CHECK_FAILURE = "RepeatedHealthCheckFailure"
    TIMEOUT = "Timeout"


class FailureKind(str, Enum):
    """Failure kinds recorded on a deployment record."""

    CONFIGURATION_ERROR = "ConfigurationError"
    QUOTA_EXCEEDED = "QuotaExceeded"
    PERMISSION_DENIED = "PermissionDenied"
    INVALID_CONFIGURATION = "InvalidConfiguration"
    TRANSIENT_UNAVAILABLE = "TransientUnavailable"
    PROVISION_TIMEOUT = "ProvisionTimeout"
    VERIFICATION_FAILED = "VerificationFailed"
    ROLLBACK_FAILED = "RollbackFailed"
    APPROVAL_TIMEOUT = "ApprovalTimeout"
    CANCELLED = "Cancelled"
    INTERNAL_ERROR = "InternalError"


class DeploymentFailure(BaseModel):
    """Error attached to a record that left the happy path."""

    kind: FailureKind
    message: str
    attempt: int = 0
    reason: UnhealthyReason | None = None
    manual_intervention_required: bool = False


class StateTransition(BaseModel):
    """One audited state change."""

    from_state: DeploymentState | None
    to_state: DeploymentState
    at: datetime = Field(default_factory=datetime.utcnow)
    note: str | None = None


class Approval(BaseModel):
    """An external approval signal for a gated deployment."""

    approver: str
    approved_at: datetime = Field(default_factory=datetime.utcnow)
    comment: str | None = None


class InfrastructureState(BaseModel):
    """What the infrastructure provider reports as applied."""

    environment: EnvironmentName
    image: str
    fingerprint: str
    revision: int
    desired_count: int
    resources: dict[str, str] = Field(default_factory=dict)


class EnvironmentStatus(BaseModel):
    """A single health observation of a running environment."""

    running_count: int = 0
    healthy_count: int = 0
    desired_count: int = 0
    detail: str | None = None

    @property
    def is_healthy(self) -> bool:
        return self.running_count > 0 and self.healthy_count >= max(
            self.running_count, self.desired_count
        )


class DesiredState(BaseModel):
    """Converged target for one environment, rendered from descriptor + artifact."""

    model_config = ConfigDict(frozen=True)

    environment: EnvironmentName
    image: str
    desired_count: int
    cpu: int
    memory: int
    network_policy: NetworkPolicy
    variables: dict[str, str] = Field(default_factory=dict)
    secrets: dict[str, SecretStr] = Field(default_factory=dict, repr=False)


class ProvisionResult(BaseModel):
    """Outcome of a successful reconcile call."""

    environment: EnvironmentName
    image: str
    revision: int
    changed: bool
    resources: dict[str, str] = Field(default_factory=dict)


class VerificationResult(BaseModel):
    """Outcome of health verification."""

    healthy: bool
    reason: UnhealthyReason | None = None
    observations: int = 0
    elapsed_seconds: float = 0.0


class DeploymentRecord(BaseModel):
    """Live and historical state of one deployment to one environment."""

    id: UUID = Field(default_factory=uuid4)
    environment: EnvironmentName
    artifact: ArtifactReference
    state: DeploymentState = DeploymentState.PENDING

    # Timestamps
    started_at: datetime = Field(default_factory=datetime.utcnow)
    last_transition_at: datetime = Field(default_factory=datetime.utcnow)

    attempt: int = 0
    error: DeploymentFailure | None = None

    # Provenance
    trigger: TriggerEvent | None = None
    promoted_from: UUID | None = None
    approval: Approval | None = None

    # Results
    provision_result: ProvisionResult | None = None
    rolled_back_to: ArtifactReference | None = None

    transitions: list[StateTransition] = Field(default_factory=list)

    @property
    def is_terminal(self) -> bool:
        return self.state.is_terminal

    @property
    def key(self) -> tuple[EnvironmentName, datetime]:
        return (self.environment, self.started_at)

    def transition_to(
        self,
        state: DeploymentState,
        error: DeploymentFailure | None = None,
        note: str | None = None,
    ) -> StateTransition:
        """Move to ``state``; callers check the transition table first."""
        now = datetime.utcnow()
        transition = StateTransition(
            from_state=self.state,
            to_state=state,
            at=now,
            note=note,
        )
        self.state = state
        self.last_transition_at = now
        if error is not None:
            self.error = error
        self.transitions.append(transition)
        return transition


class AlertEvent(BaseModel):
    """Structured notification emitted on every state transition."""

    deployment_id: UUID
    environment: EnvironmentName
    from_state: DeploymentState | None
    to_state: DeploymentState
    artifact_digest: str | None = None
    error: DeploymentFailure | None = None
    timestamp: datetime = Field(default_factory=datetime.utcnow)

    def summary(self) -> dict[str, Any]:
        """Flat dictionary for log lines and chat payloads."""
        data: dict[str, Any] = {
            "deployment_id": str(self.deployment_id),
            "environment": self.environment.value,
            "from_state": self.from_state.value if self.from_state else None,
            "to_state": self.to_state.value,
            "artifact_digest": self.artifact_digest,
        }
        if self.error:
            data["error_kind"] = self.error.kind.value
            data["error"] = self.error.message
            data["attempt"] = self.error.attempt
            data["manual_intervention_required"] = (
                self.error.manual_intervention_required
            )
        return data
