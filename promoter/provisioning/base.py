"""Infrastructure provider and provisioner interfaces."""

from abc import ABC, abstractmethod

from promoter.models.artifact import ArtifactReference
from promoter.models.deployment import (
    DesiredState,
    EnvironmentStatus,
    InfrastructureState,
    ProvisionResult,
)
from promoter.models.environment import EnvironmentDescriptor, EnvironmentName


class InfrastructureProvider(ABC):
    """Cloud APIs for compute, network and logging, seen as one opaque unit.

    Implementations must make ``apply`` atomic: when it raises or is
    cancelled the environment is left either fully applied or fully
    reverted.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider identifier."""

    @abstractmethod
    async def describe(self, environment: EnvironmentName) -> InfrastructureState | None:
        """Return the currently applied state, or None if nothing is deployed."""

    @abstractmethod
    async def apply(
        self, environment: EnvironmentName, desired: DesiredState, fingerprint: str
    ) -> InfrastructureState:
        """Converge ``environment`` to ``desired``.

        Raises:
            ProvisionError: With the provider's failure kind.
        """

    @abstractmethod
    async def status(self, environment: EnvironmentName) -> EnvironmentStatus:
        """Report running and healthy instance counts."""


class InfrastructureProvisioner(ABC):
    """Reconciles an environment descriptor and artifact into running infrastructure."""

    @abstractmethod
    async def reconcile(
        self, descriptor: EnvironmentDescriptor, artifact: ArtifactReference
    ) -> ProvisionResult:
        """Converge infrastructure idempotently.

        Calling this twice with identical inputs must not produce any
        additional observable change.

        Raises:
            ProvisionError: ``TransientUnavailable`` is retryable, every other
                kind is fatal.
            ConfigurationError: If the descriptor cannot be rendered.
        """
