"""Deployment Orchestrator.

Sequences approval, provisioning, health verification, rollback and
promotion across environments. Every deployment is a DeploymentRecord
driven through an explicit state machine:

    pending -> provisioning -> verifying -> healthy | rolled_back | failed

Each environment has one lock, held from the moment a record is created
until it reaches a terminal state, so an environment never has two
deployments in flight.
"""

import asyncio
from uuid import UUID

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_random_exponential,
)

from promoter.alerts.dispatcher import AlertDispatcher
from promoter.alerts.sinks import (
    AlertSink,
    EventBusAlertSink,
    LoggingAlertSink,
    WebhookAlertSink,
)
from promoter.config import Settings, get_settings
from promoter.core.approvals import ApprovalGate
from promoter.core.environments import EnvironmentRegistry
from promoter.core.events import get_event_bus
from promoter.core.exceptions import (
    ApprovalNotPendingError,
    ApprovalTimeoutError,
    ConfigurationError,
    DeploymentInProgressError,
    DeploymentNotFoundError,
    InvalidTransitionError,
    PromotionNotAllowedError,
    ProvisionError,
    ProvisionTimeoutError,
    VerificationError,
)
from promoter.core.history import DeploymentHistory
from promoter.models.artifact import ArtifactReference, TriggerEvent
from promoter.models.deployment import (
    ALLOWED_TRANSITIONS,
    AlertEvent,
    DeploymentFailure,
    DeploymentRecord,
    DeploymentState,
    FailureKind,
    ProvisionResult,
    StateTransition,
    UnhealthyReason,
    VerificationResult,
)
from promoter.models.environment import EnvironmentDescriptor, EnvironmentName
from promoter.provisioning.base import InfrastructureProvisioner
from promoter.provisioning.reconciler import ReconcilingProvisioner
from promoter.provisioning.simulated import SimulatedProvider
from promoter.registry import ContainerRegistry, InMemoryRegistry, OciRegistry
from promoter.secret_store import EnvironmentSecretStore
from promoter.utils.logging import get_logger
from promoter.verification.health import HealthVerifier

MANUAL_INTERVENTION = "manual intervention required"


def _is_transient(exc: BaseException) -> bool:
    return isinstance(exc, ProvisionError) and exc.retryable


class DeploymentOrchestrator:
    """Owns every deployment state transition.

    Deployments run as asyncio tasks; ``submit`` returns as soon as the
    Pending record exists and ``wait`` awaits its terminal state.
    """

    def __init__(
        self,
        environments: EnvironmentRegistry,
        provisioner: InfrastructureProvisioner,
        verifier: HealthVerifier,
        registry: ContainerRegistry,
        history: DeploymentHistory | None = None,
        alerts: AlertDispatcher | None = None,
        approvals: ApprovalGate | None = None,
        settings: Settings | None = None,
    ):
        self.environments = environments
        self.provisioner = provisioner
        self.verifier = verifier
        self.registry = registry
        self.history = history or DeploymentHistory()
        self.alerts = alerts or AlertDispatcher([LoggingAlertSink()])
        self.approvals = approvals or ApprovalGate()
        self.settings = settings or get_settings()
        self.logger = get_logger("orchestrator")

        self._locks: dict[EnvironmentName, asyncio.Lock] = {}
        self._runs: dict[EnvironmentName, UUID] = {}
        self._tasks: dict[UUID, asyncio.Task[DeploymentRecord]] = {}
        self._abort_reasons: dict[UUID, str] = {}

    # Entry points

    async def handle_trigger(self, event: TriggerEvent) -> DeploymentRecord:
        """Start a deployment for a completed build delivered by the event source.

        Raises:
            UnmappedTriggerError: If no trigger rule matches the branch or tag.
        """
        descriptor = self.environments.match(event.branch_or_tag)
        self.logger.info(
            "orchestrator.trigger_received",
            branch_or_tag=event.branch_or_tag,
            commit_sha=event.commit_sha,
            build_request_id=event.artifact_build_request_id,
            environment=descriptor.name.value,
        )
        artifact = ArtifactReference(
            registry_address=self.registry.address,
            tag=event.image_tag,
            commit_sha=event.commit_sha,
        )
        return await self.submit(descriptor.name, artifact, trigger=event)

    async def submit(
        self,
        environment: EnvironmentName | str,
        artifact: ArtifactReference,
        trigger: TriggerEvent | None = None,
        promoted_from: UUID | None = None,
    ) -> DeploymentRecord:
        """Create a Pending record and start running it in the background.

        The artifact's tag is resolved to a digest first; the record pins that
        digest for the rest of its life.

        Raises:
            UnknownEnvironmentError: If ``environment`` has no descriptor.
            DeploymentInProgressError: If the environment is busy and
                superseding is disabled.
            ArtifactNotFoundError: If the registry does not know the tag.
        """
        descriptor = self.environments.get(environment)
        name = descriptor.name
        lock = self._locks.setdefault(name, asyncio.Lock())

        pinned = await self._pin(artifact)

        while lock.locked():
            in_flight = self._runs.get(name)
            if not self.settings.supersede_in_flight or in_flight is None:
                raise DeploymentInProgressError(
                    name.value, str(in_flight) if in_flight else "unknown"
                )
            await self.abort(in_flight, reason="superseded by a newer deployment")

        record = DeploymentRecord(
            environment=name,
            artifact=pinned,
            trigger=trigger,
            promoted_from=promoted_from,
        )
        record.transitions.append(
            StateTransition(
                from_state=None,
                to_state=DeploymentState.PENDING,
                at=record.started_at,
            )
        )
        # the lock is free here, so acquire does not yield and the slot is
        # claimed before another submit can see the environment locked
        await lock.acquire()
        self._runs[name] = record.id
        try:
            await self.history.append(record)
        except BaseException:
            self._release(record, lock)
            raise

        if descriptor.approval_required:
            self.approvals.open(record.id)

        self.logger.info(
            "orchestrator.deployment_created",
            deployment_id=str(record.id),
            environment=name.value,
            image=pinned.image,
            tag=pinned.tag,
            promoted_from=str(promoted_from) if promoted_from else None,
            approval_required=descriptor.approval_required,
        )
        self._notify(record, None, DeploymentState.PENDING)

        self._tasks[record.id] = asyncio.create_task(
            self._run(record, descriptor, lock),
            name=f"deploy-{name.value}-{record.id}",
        )
        return record

    async def deploy(
        self,
        environment: EnvironmentName | str,
        artifact: ArtifactReference,
        trigger: TriggerEvent | None = None,
    ) -> DeploymentRecord:
        """Submit a deployment and wait for its terminal state."""
        record = await self.submit(environment, artifact, trigger=trigger)
        return await self.wait(record.id)

    async def wait(self, deployment_id: UUID) -> DeploymentRecord:
        """Wait until a deployment is terminal and return its record."""
        task = self._tasks.get(deployment_id)
        if task is not None:
            await asyncio.wait([task])
        return await self.get(deployment_id)

    def in_flight(self) -> dict[EnvironmentName, UUID]:
        """Environments with a deployment currently running."""
        return dict(self._runs)

    async def get(self, deployment_id: UUID) -> DeploymentRecord:
        record = await self.history.get(deployment_id)
        if record is None:
            raise DeploymentNotFoundError(str(deployment_id))
        return record

    async def approve(
        self, deployment_id: UUID, approver: str, comment: str | None = None
    ) -> DeploymentRecord:
        """Record the external approval a gated deployment is waiting for.

        Raises:
            ApprovalNotPendingError: If the deployment is not held for approval.
        """
        record = await self.get(deployment_id)
        if record.state != DeploymentState.PENDING or not self.approvals.is_waiting(
            record.id
        ):
            raise ApprovalNotPendingError(str(deployment_id))

        approval = self.approvals.grant(record.id, approver, comment)
        record.approval = approval
        await self.history.update(record)
        self.logger.info(
            "orchestrator.approved",
            deployment_id=str(record.id),
            environment=record.environment.value,
            approver=approval.approver,
        )
        return record

    async def promote(
        self,
        deployment_id: UUID,
        target: EnvironmentName | str | None = None,
    ) -> DeploymentRecord:
        """Deploy a verified artifact to the next stage.

        Raises:
            PromotionNotAllowedError: If the source record is not Healthy, is
                in the last stage, or ``target`` is not the next stage.
        """
        source = await self.get(deployment_id)
        if source.state != DeploymentState.HEALTHY:
            raise PromotionNotAllowedError(
                f"Deployment {source.id} is {source.state.value}; "
                "only healthy deployments can be promoted",
                {"deployment_id": str(source.id), "state": source.state.value},
            )

        next_stage = self.environments.next_stage(source.environment)
        if next_stage is None:
            raise PromotionNotAllowedError(
                f"'{source.environment.value}' is the last stage",
                {"environment": source.environment.value},
            )
        if target is not None:
            requested = self.environments.get(target).name
            if requested != next_stage:
                raise PromotionNotAllowedError(
                    f"'{source.environment.value}' promotes to '{next_stage.value}', "
                    f"not '{requested.value}'",
                    {"environment": source.environment.value, "target": requested.value},
                )

        self.logger.info(
            "orchestrator.promoting",
            deployment_id=str(source.id),
            source=source.environment.value,
            target=next_stage.value,
            digest=source.artifact.digest,
        )
        return await self.submit(
            next_stage,
            source.artifact,
            trigger=source.trigger,
            promoted_from=source.id,
        )

    async def abort(
        self,
        target: UUID | EnvironmentName | str,
        reason: str = "aborted by operator",
    ) -> DeploymentRecord | None:
        """Cancel an in-flight deployment, by record id or environment.

        Returns the (now terminal) record, or None if nothing was in flight
        for the given environment.
        """
        if isinstance(target, UUID):
            deployment_id: UUID | None = target
        else:
            deployment_id = self._runs.get(self.environments.get(target).name)
            if deployment_id is None:
                return None

        task = self._tasks.get(deployment_id)
        if task is not None and not task.done():
            self._abort_reasons[deployment_id] = reason
            task.cancel()
            await asyncio.wait([task])

        record = await self.get(deployment_id)
        if task is not None and not record.is_terminal:
            # cancelled before its first step, so _run never saw it
            await self._cancel_unstarted(record)
        return record

    async def shutdown(self) -> None:
        """Cancel in-flight deployments, then close the alert and registry clients."""
        running = [i for i, task in self._tasks.items() if not task.done()]
        for deployment_id in running:
            await self.abort(deployment_id, reason="orchestrator shutting down")
        await self.alerts.close()
        await self.registry.close()

    async def recover_interrupted(self) -> int:
        """Fail records left non-terminal by a previous process."""
        recovered = 0
        for name in EnvironmentName:
            for record in await self.history.in_flight(name):
                if record.id in self._tasks:
                    continue
                await self._fail(
                    record,
                    FailureKind.CANCELLED,
                    f"interrupted by orchestrator restart in {record.state.value}",
                    manual=record.state != DeploymentState.PENDING,
                )
                recovered += 1
        return recovered

    # Run sequence

    async def _run(
        self,
        record: DeploymentRecord,
        descriptor: EnvironmentDescriptor,
        lock: asyncio.Lock,
    ) -> DeploymentRecord:
        try:
            if descriptor.approval_required:
                await self._await_approval(record)

            await self._transition(record, DeploymentState.PROVISIONING)
            record.provision_result = await self._provision(
                record, descriptor, record.artifact
            )

            await self._transition(record, DeploymentState.VERIFYING)
            result = await self._verify(record)

            if result.healthy:
                await self._transition(
                    record,
                    DeploymentState.HEALTHY,
                    note=f"healthy after {result.observations} observations",
                )
            else:
                error = VerificationError(record.environment.value, result.reason)
                await self._roll_back(record, descriptor, error)

        except ApprovalTimeoutError as e:
            await self._fail(record, FailureKind.APPROVAL_TIMEOUT, e.message)
        except ProvisionError as e:
            await self._fail(record, e.failure_kind, e.message, manual=True)
        except ProvisionTimeoutError as e:
            await self._fail(record, FailureKind.PROVISION_TIMEOUT, e.message, manual=True)
        except ConfigurationError as e:
            await self._fail(record, FailureKind.CONFIGURATION_ERROR, e.message)
        except asyncio.CancelledError:
            reason = self._abort_reasons.pop(record.id, "cancelled")
            if record.is_terminal:
                raise
            self.logger.warning(
                "orchestrator.cancelled",
                deployment_id=str(record.id),
                environment=record.environment.value,
                state=record.state.value,
                reason=reason,
            )
            await self._fail(
                record,
                FailureKind.CANCELLED,
                reason,
                manual=record.state != DeploymentState.PENDING,
            )
            raise
        except Exception as e:
            self.logger.error(
                "orchestrator.unexpected_error",
                deployment_id=str(record.id),
                environment=record.environment.value,
                error=str(e),
                exc_info=True,
            )
            await self._fail(record, FailureKind.INTERNAL_ERROR, str(e), manual=True)
        finally:
            self._release(record, lock)

        if record.state == DeploymentState.HEALTHY and descriptor.auto_promote:
            await self._auto_promote(record)

        return record

    async def _await_approval(self, record: DeploymentRecord) -> None:
        timeout = self.settings.approval_timeout_seconds
        self.logger.info(
            "orchestrator.awaiting_approval",
            deployment_id=str(record.id),
            environment=record.environment.value,
            timeout_seconds=timeout,
        )
        record.approval = await self.approvals.wait(record.id, timeout)
        await self.history.update(record)

    async def _provision(
        self,
        record: DeploymentRecord,
        descriptor: EnvironmentDescriptor,
        artifact: ArtifactReference,
        count_attempts: bool = True,
    ) -> ProvisionResult:
        timeout = self.settings.provision_timeout_seconds
        try:
            return await asyncio.wait_for(
                self._reconcile_with_retry(record, descriptor, artifact, count_attempts),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            raise ProvisionTimeoutError(record.environment.value, timeout) from None

    async def _reconcile_with_retry(
        self,
        record: DeploymentRecord,
        descriptor: EnvironmentDescriptor,
        artifact: ArtifactReference,
        count_attempts: bool,
    ) -> ProvisionResult:
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.settings.provision_max_attempts),
            wait=wait_random_exponential(
                multiplier=self.settings.retry_backoff_multiplier_seconds,
                max=self.settings.retry_backoff_max_seconds,
            ),
            retry=retry_if_exception(_is_transient),
            before_sleep=self._log_retry(record),
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                if count_attempts:
                    record.attempt = attempt.retry_state.attempt_number
                    await self.history.update(record)
                result = await self.provisioner.reconcile(descriptor, artifact)
        return result

    def _log_retry(self, record: DeploymentRecord):
        def before_sleep(retry_state: RetryCallState) -> None:
            error = retry_state.outcome.exception() if retry_state.outcome else None
            self.logger.warning(
                "orchestrator.provision_retry",
                deployment_id=str(record.id),
                environment=record.environment.value,
                attempt=retry_state.attempt_number,
                max_attempts=self.settings.provision_max_attempts,
                sleep_seconds=round(retry_state.next_action.sleep, 3)
                if retry_state.next_action
                else None,
                error=str(error) if error else None,
            )

        return before_sleep

    async def _verify(self, record: DeploymentRecord) -> VerificationResult:
        timeout = self.settings.verification_timeout_seconds
        poll_interval = self.settings.verification_poll_interval_seconds
        try:
            return await asyncio.wait_for(
                self.verifier.verify(record.environment, timeout, poll_interval),
                timeout=timeout + poll_interval,
            )
        except asyncio.TimeoutError:
            self.logger.warning(
                "orchestrator.verification_hard_timeout",
                deployment_id=str(record.id),
                environment=record.environment.value,
            )
            return VerificationResult(healthy=False, reason=UnhealthyReason.TIMEOUT)

    async def _roll_back(
        self,
        record: DeploymentRecord,
        descriptor: EnvironmentDescriptor,
        error: VerificationError,
    ) -> None:
        previous = await self.history.last_healthy(record.environment, exclude=record.id)
        if previous is None:
            await self._fail(
                record,
                FailureKind.VERIFICATION_FAILED,
                f"{error.message}; no healthy deployment to roll back to",
                reason=error.reason,
                manual=True,
            )
            return

        target = previous.artifact
        self.logger.warning(
            "orchestrator.rolling_back",
            deployment_id=str(record.id),
            environment=record.environment.value,
            failed_digest=record.artifact.digest,
            rollback_digest=target.digest,
            reason=error.reason.value,
        )
        try:
            await self._provision(record, descriptor, target, count_attempts=False)
        except (ProvisionError, ProvisionTimeoutError, ConfigurationError) as e:
            await self._fail(
                record,
                FailureKind.ROLLBACK_FAILED,
                f"{error.message}; rollback to {target.digest} failed: {e.message}",
                reason=error.reason,
                manual=True,
            )
            return

        record.rolled_back_to = target
        await self._transition(
            record,
            DeploymentState.ROLLED_BACK,
            error=DeploymentFailure(
                kind=FailureKind.VERIFICATION_FAILED,
                message=error.message,
                attempt=record.attempt,
                reason=error.reason,
            ),
            note=f"restored {target.digest}",
        )

    async def _auto_promote(self, record: DeploymentRecord) -> None:
        if self.environments.next_stage(record.environment) is None:
            return
        try:
            await self.promote(record.id)
        except (PromotionNotAllowedError, DeploymentInProgressError) as e:
            self.logger.warning(
                "orchestrator.auto_promotion_skipped",
                deployment_id=str(record.id),
                environment=record.environment.value,
                error=e.message,
            )

    # State machine plumbing

    async def _pin(self, artifact: ArtifactReference) -> ArtifactReference:
        if artifact.is_resolved:
            return artifact
        digest = await self.registry.resolve(artifact.tag)
        self.logger.info(
            "orchestrator.artifact_resolved",
            artifact=artifact.display_name,
            digest=digest,
        )
        return artifact.with_digest(digest)

    async def _transition(
        self,
        record: DeploymentRecord,
        state: DeploymentState,
        error: DeploymentFailure | None = None,
        note: str | None = None,
    ) -> None:
        if state not in ALLOWED_TRANSITIONS[record.state]:
            raise InvalidTransitionError(record.state, state)

        change = record.transition_to(state, error=error, note=note)
        await self.history.update(record)

        self.logger.info(
            "orchestrator.transition",
            deployment_id=str(record.id),
            environment=record.environment.value,
            from_state=change.from_state.value if change.from_state else None,
            to_state=state.value,
            attempt=record.attempt,
            error_kind=error.kind.value if error else None,
        )
        self._notify(record, change.from_state, state, error)

    async def _fail(
        self,
        record: DeploymentRecord,
        kind: FailureKind,
        message: str,
        reason: UnhealthyReason | None = None,
        manual: bool = False,
    ) -> None:
        if manual:
            message = f"{message}; {MANUAL_INTERVENTION}"
        failure = DeploymentFailure(
            kind=kind,
            message=message,
            attempt=record.attempt,
            reason=reason,
            manual_intervention_required=manual,
        )
        self.logger.error(
            "orchestrator.deployment_failed",
            deployment_id=str(record.id),
            environment=record.environment.value,
            digest=record.artifact.digest,
            error_kind=kind.value,
            attempt=record.attempt,
            error=message,
        )
        await self._transition(record, DeploymentState.FAILED, error=failure)

    def _notify(
        self,
        record: DeploymentRecord,
        from_state: DeploymentState | None,
        to_state: DeploymentState,
        error: DeploymentFailure | None = None,
    ) -> None:
        event = AlertEvent(
            deployment_id=record.id,
            environment=record.environment,
            from_state=from_state,
            to_state=to_state,
            artifact_digest=record.artifact.digest,
            error=error,
        )
        try:
            self.alerts.notify(event)
        except Exception as e:
            self.logger.error(
                "orchestrator.alert_dispatch_failed",
                deployment_id=str(record.id),
                error=str(e),
            )

    async def _cancel_unstarted(self, record: DeploymentRecord) -> None:
        if record.is_terminal:
            return
        reason = self._abort_reasons.pop(record.id, "cancelled")
        self.approvals.close(record.id)
        try:
            await self._fail(record, FailureKind.CANCELLED, reason)
        finally:
            self._release(record, self._locks[record.environment])

    def _release(self, record: DeploymentRecord, lock: asyncio.Lock) -> None:
        if self._runs.get(record.environment) == record.id:
            del self._runs[record.environment]
        self._tasks.pop(record.id, None)
        self._abort_reasons.pop(record.id, None)
        if lock.locked():
            lock.release()


def build_orchestrator(settings: Settings | None = None) -> DeploymentOrchestrator:
    """Wire an orchestrator from settings."""
    settings = settings or get_settings()

    if settings.environments_file:
        environments = EnvironmentRegistry.from_file(settings.environments_file)
    else:
        environments = EnvironmentRegistry.default()

    if settings.registry_url:
        registry: ContainerRegistry = OciRegistry(
            settings.registry_address,
            settings.registry_url,
            token=settings.registry_token,
        )
    else:
        registry = InMemoryRegistry(settings.registry_address, derive_missing=True)

    provider = SimulatedProvider()
    provisioner = ReconcilingProvisioner(
        provider, EnvironmentSecretStore(settings.secrets_env_prefix)
    )
    verifier = HealthVerifier(
        provider,
        required_consecutive=settings.verification_required_consecutive,
        failure_threshold=settings.verification_failure_threshold,
    )

    sinks: list[AlertSink] = [LoggingAlertSink(), EventBusAlertSink(get_event_bus())]
    if settings.alert_webhook_url:
        sinks.append(
            WebhookAlertSink(
                settings.alert_webhook_url, timeout=settings.alert_timeout_seconds
            )
        )

    history = DeploymentHistory(settings.history_path)
    history.load()

    return DeploymentOrchestrator(
        environments=environments,
        provisioner=provisioner,
        verifier=verifier,
        registry=registry,
        history=history,
        alerts=AlertDispatcher(sinks),
        settings=settings,
    )


# Singleton instance
_orchestrator: DeploymentOrchestrator | None = None


def get_orchestrator() -> DeploymentOrchestrator:
    """Get the deployment orchestrator singleton."""
    global _orchestrator
    if _orchestrator is None:
        _orchestrator = build_orchestrator()
    return _orchestrator


def reset_orchestrator() -> None:
    """Drop the singleton so the next call rebuilds it."""
    global _orchestrator
    _orchestrator = None
