"""Health verification with debounce."""

import asyncio

from promoter.models.deployment import (
    EnvironmentStatus,
    UnhealthyReason,
    VerificationResult,
)
from promoter.models.environment import EnvironmentName
from promoter.provisioning.base import InfrastructureProvider
from promoter.utils.logging import get_logger


class HealthVerifier:
    """Polls an environment until it is healthy or a timeout elapses.

    An environment passes once ``required_consecutive`` healthy observations
    are seen in a row, so a single flapping sample cannot pass it. A failed
    probe counts as an unhealthy observation.
    """

    def __init__(
        self,
        provider: InfrastructureProvider,
        required_consecutive: int = 2,
        failure_threshold: int = 3,
    ):
        self.provider = provider
        self.required_consecutive = required_consecutive
        self.failure_threshold = failure_threshold
        self.logger = get_logger("verifier")

    async def verify(
        self,
        environment: EnvironmentName,
        timeout: float,
        poll_interval: float,
    ) -> VerificationResult:
        loop = asyncio.get_running_loop()
        started = loop.time()
        deadline = started + timeout

        observations = 0
        healthy_streak = 0
        unhealthy_streak = 0
        last: EnvironmentStatus | None = None

        while True:
            observation = await self._observe(environment)
            observations += 1

            if observation is not None and observation.is_healthy:
                healthy_streak += 1
                unhealthy_streak = 0
            else:
                healthy_streak = 0
                if observation is not None and observation.running_count > 0:
                    unhealthy_streak += 1
                else:
                    unhealthy_streak = 0

            if observation is not None:
                last = observation
                self.logger.debug(
                    "verifier.observation",
                    environment=environment.value,
                    running=observation.running_count,
                    healthy=observation.healthy_count,
                    streak=healthy_streak,
                )

            if healthy_streak >= self.required_consecutive:
                elapsed = loop.time() - started
                self.logger.info(
                    "verifier.healthy",
                    environment=environment.value,
                    observations=observations,
                    elapsed_seconds=round(elapsed, 3),
                )
                return VerificationResult(
                    healthy=True,
                    observations=observations,
                    elapsed_seconds=elapsed,
                )

            remaining = deadline - loop.time()
            if remaining <= 0:
                break
            await asyncio.sleep(min(poll_interval, remaining))

        reason = self._classify(last, unhealthy_streak)
        elapsed = loop.time() - started
        self.logger.warning(
            "verifier.unhealthy",
            environment=environment.value,
            reason=reason.value,
            observations=observations,
            elapsed_seconds=round(elapsed, 3),
        )
        return VerificationResult(
            healthy=False,
            reason=reason,
            observations=observations,
            elapsed_seconds=elapsed,
        )

    async def _observe(
        self, environment: EnvironmentName
    ) -> EnvironmentStatus | None:
        try:
            return await self.provider.status(environment)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.logger.warning(
                "verifier.probe_failed",
                environment=environment.value,
                error=str(e),
            )
            return None

    def _classify(
        self, last: EnvironmentStatus | None, unhealthy_streak: int
    ) -> UnhealthyReason:
        if last is None:
            return UnhealthyReason.TIMEOUT
        if last.running_count == 0:
            return UnhealthyReason.NO_INSTANCES_RUNNING
        if unhealthy_streak >= self.failure_threshold:
            return UnhealthyReason.REPEATED_HEALTH_CHECK_FAILURE
        return UnhealthyReason.TIMEOUT
