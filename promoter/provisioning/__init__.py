"""Infrastructure provisioning."""

from promoter.provisioning.base import InfrastructureProvider, InfrastructureProvisioner
from promoter.provisioning.reconciler import ReconcilingProvisioner, fingerprint
from promoter.provisioning.simulated import SimulatedProvider

__all__ = [
    "InfrastructureProvider",
    "InfrastructureProvisioner",
    "ReconcilingProvisioner",
    "SimulatedProvider",
    "fingerprint",
]
