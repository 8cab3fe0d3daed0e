"""In-memory infrastructure provider for local runs and tests."""

import asyncio
import uuid
from collections import defaultdict, deque

from promoter.core.exceptions import ProvisionError
from promoter.models.deployment import (
    DesiredState,
    EnvironmentStatus,
    InfrastructureState,
    ProvisionErrorKind,
)
from promoter.models.environment import EnvironmentName
from promoter.provisioning.base import InfrastructureProvider
from promoter.utils.logging import get_logger


class SimulatedProvider(InfrastructureProvider):
    """Keeps applied state in memory.

    ``apply`` only commits after its simulated latency, so a cancelled call
    leaves the previous state untouched. Failures and health observations
    can be scripted per environment.
    """

    def __init__(self, latency: float = 0.0):
        self.latency = latency
        self.logger = get_logger("provider.simulated")
        self._states: dict[EnvironmentName, InfrastructureState] = {}
        self._failures: dict[EnvironmentName, deque[ProvisionErrorKind]] = defaultdict(deque)
        self._health: dict[EnvironmentName, deque[EnvironmentStatus]] = defaultdict(deque)
        self.apply_calls: dict[EnvironmentName, int] = defaultdict(int)
        self.applied_images: dict[EnvironmentName, list[str]] = defaultdict(list)
        self.unhealthy_images: set[str] = set()

    @property
    def name(self) -> str:
        return "simulated"

    def fail_next(
        self,
        environment: EnvironmentName,
        kind: ProvisionErrorKind,
        times: int = 1,
    ) -> None:
        """Make the next ``times`` apply calls for ``environment`` fail."""
        self._failures[environment].extend([kind] * times)

    def script_health(
        self, environment: EnvironmentName, observations: list[EnvironmentStatus]
    ) -> None:
        """Queue health observations; the last one repeats once the queue drains."""
        self._health[environment].extend(observations)

    async def describe(self, environment: EnvironmentName) -> InfrastructureState | None:
        return self._states.get(environment)

    async def apply(
        self, environment: EnvironmentName, desired: DesiredState, fingerprint: str
    ) -> InfrastructureState:
        self.apply_calls[environment] += 1

        if self.latency:
            await asyncio.sleep(self.latency)

        failures = self._failures[environment]
        if failures:
            kind = failures.popleft()
            raise ProvisionError(kind, f"simulated failure applying {environment.value}")

        previous = self._states.get(environment)
        service_id = (
            previous.resources["service_id"]
            if previous
            else f"svc-{environment.value}-{uuid.uuid4().hex[:8]}"
        )
        state = InfrastructureState(
            environment=environment,
            image=desired.image,
            fingerprint=fingerprint,
            revision=(previous.revision + 1) if previous else 1,
            desired_count=desired.desired_count,
            resources={
                "service_id": service_id,
                "task_definition": f"{service_id}:{(previous.revision + 1) if previous else 1}",
                "port": str(desired.network_policy.port),
            },
        )
        self._states[environment] = state
        self.applied_images[environment].append(desired.image)

        self.logger.info(
            "provider.simulated.applied",
            environment=environment.value,
            image=desired.image,
            revision=state.revision,
        )
        return state

    async def status(self, environment: EnvironmentName) -> EnvironmentStatus:
        queue = self._health[environment]
        if queue:
            observation = queue.popleft() if len(queue) > 1 else queue[0]
            return observation

        state = self._states.get(environment)
        if state is None:
            return EnvironmentStatus(detail="nothing deployed")

        healthy = 0 if state.image in self.unhealthy_images else state.desired_count
        return EnvironmentStatus(
            running_count=state.desired_count,
            healthy_count=healthy,
            desired_count=state.desired_count,
        )
