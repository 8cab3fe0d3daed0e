"""Desired-state reconciliation on top of an infrastructure provider."""

import hashlib
import json

from promoter.core.exceptions import ConfigurationError
from promoter.models.artifact import ArtifactReference
from promoter.models.deployment import DesiredState, ProvisionResult
from promoter.models.environment import EnvironmentDescriptor
from promoter.provisioning.base import InfrastructureProvider, InfrastructureProvisioner
from promoter.secret_store import SecretStore
from promoter.utils.logging import get_logger


def fingerprint(desired: DesiredState) -> str:
    """Stable hash of a desired state.

    Secret values are excluded; only the variable names bound to secrets
    take part.
    """
    payload = desired.model_dump(mode="json", exclude={"secrets"})
    payload["secret_names"] = sorted(desired.secrets)
    encoded = json.dumps(payload, sort_keys=True, separators=(",", ":"))
    return "sha256:" + hashlib.sha256(encoded.encode()).hexdigest()


class ReconcilingProvisioner(InfrastructureProvisioner):
    """Compares the desired state with what the provider reports and applies
    only when they differ.
    """

    def __init__(self, provider: InfrastructureProvider, secrets: SecretStore):
        self.provider = provider
        self.secrets = secrets
        self.logger = get_logger("provisioner")

    async def render(
        self, descriptor: EnvironmentDescriptor, artifact: ArtifactReference
    ) -> DesiredState:
        """Build the desired state, resolving secret references."""
        if not artifact.is_resolved:
            raise ConfigurationError(
                f"Artifact {artifact.display_name} must be pinned to a digest",
                {"environment": descriptor.name.value},
            )

        overlap = set(descriptor.variables) & set(descriptor.secrets)
        if overlap:
            raise ConfigurationError(
                "Variables and secrets share names",
                {"environment": descriptor.name.value, "names": sorted(overlap)},
            )

        secrets = {
            name: await self.secrets.get(reference)
            for name, reference in descriptor.secrets.items()
        }

        return DesiredState(
            environment=descriptor.name,
            image=artifact.image,
            desired_count=descriptor.desired_count,
            cpu=descriptor.cpu,
            memory=descriptor.memory,
            network_policy=descriptor.network_policy,
            variables=dict(descriptor.variables),
            secrets=secrets,
        )

    async def reconcile(
        self, descriptor: EnvironmentDescriptor, artifact: ArtifactReference
    ) -> ProvisionResult:
        desired = await self.render(descriptor, artifact)
        target = fingerprint(desired)

        current = await self.provider.describe(descriptor.name)
        if current is not None and current.fingerprint == target:
            self.logger.info(
                "provisioner.in_sync",
                environment=descriptor.name.value,
                image=desired.image,
                revision=current.revision,
            )
            return ProvisionResult(
                environment=descriptor.name,
                image=current.image,
                revision=current.revision,
                changed=False,
                resources=current.resources,
            )

        self.logger.info(
            "provisioner.applying",
            environment=descriptor.name.value,
            image=desired.image,
            provider=self.provider.name,
            previous_image=current.image if current else None,
        )
        applied = await self.provider.apply(descriptor.name, desired, target)

        return ProvisionResult(
            environment=descriptor.name,
            image=applied.image,
            revision=applied.revision,
            changed=True,
            resources=applied.resources,
        )
