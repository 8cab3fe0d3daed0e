"""Deployment endpoints."""

import asyncio
import json
from datetime import datetime
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, HTTPException, Query, status
from pydantic import BaseModel, Field
from sse_starlette.sse import EventSourceResponse

from promoter.api.deps import DeploymentDep, EventsDep, OrchestratorDep
from promoter.core.events import Event
from promoter.models.artifact import ArtifactReference
from promoter.models.deployment import (
    Approval,
    DeploymentFailure,
    DeploymentRecord,
    DeploymentState,
    StateTransition,
)
from promoter.models.environment import EnvironmentName

router = APIRouter()


class DeploymentCreate(BaseModel):
    """Request model for deploying an artifact to an environment."""

    environment: EnvironmentName
    artifact: ArtifactReference


class DeploymentResponse(BaseModel):
    """API response model for a deployment record."""

    deployment_id: UUID
    environment: EnvironmentName
    state: DeploymentState
    image: str
    tag: str
    digest: str | None
    commit_sha: str

    started_at: datetime
    last_transition_at: datetime
    attempt: int

    error: DeploymentFailure | None = None
    manual_intervention_required: bool = False
    rolled_back_to: str | None = None
    promoted_from: UUID | None = None
    approval: Approval | None = None
    transitions: list[StateTransition] = Field(default_factory=list)

    @classmethod
    def from_record(cls, record: DeploymentRecord) -> "DeploymentResponse":
        """Create response from a deployment record."""
        artifact = record.artifact
        return cls(
            deployment_id=record.id,
            environment=record.environment,
            state=record.state,
            image=artifact.image if artifact.is_resolved else artifact.display_name,
            tag=artifact.tag,
            digest=artifact.digest,
            commit_sha=artifact.commit_sha,
            started_at=record.started_at,
            last_transition_at=record.last_transition_at,
            attempt=record.attempt,
            error=record.error,
            manual_intervention_required=bool(
                record.error and record.error.manual_intervention_required
            ),
            rolled_back_to=record.rolled_back_to.digest if record.rolled_back_to else None,
            promoted_from=record.promoted_from,
            approval=record.approval,
            transitions=record.transitions,
        )


class DeploymentListResponse(BaseModel):
    """Response for listing deployments."""

    deployments: list[DeploymentResponse]
    total: int
    limit: int
    offset: int


class ApprovalRequest(BaseModel):
    """Approval of a gated deployment."""

    approver: str = Field(..., min_length=1, max_length=100)
    comment: str | None = Field(default=None, max_length=500)


class PromotionRequest(BaseModel):
    """Promotion of a healthy deployment; target defaults to the next stage."""

    target: EnvironmentName | None = None


@router.post(
    "",
    response_model=DeploymentResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Deploy an artifact",
    description="Start deploying an artifact to one environment. Returns immediately while the deployment continues in background.",
)
async def create_deployment(
    data: DeploymentCreate,
    orchestrator: OrchestratorDep,
) -> DeploymentResponse:
    """Submit a deployment."""
    record = await orchestrator.submit(data.environment, data.artifact)
    return DeploymentResponse.from_record(record)


@router.get(
    "",
    response_model=DeploymentListResponse,
    summary="List deployments",
)
async def list_deployments(
    orchestrator: OrchestratorDep,
    environment: Annotated[EnvironmentName | None, Query()] = None,
    state_filter: Annotated[DeploymentState | None, Query(alias="state")] = None,
    limit: Annotated[int, Query(ge=1, le=100)] = 20,
    offset: Annotated[int, Query(ge=0)] = 0,
) -> DeploymentListResponse:
    """List deployment history, newest first."""
    records, total = await orchestrator.history.list_deployments(
        environment=environment,
        state=state_filter,
        limit=limit,
        offset=offset,
    )

    return DeploymentListResponse(
        deployments=[DeploymentResponse.from_record(r) for r in records],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.get(
    "/{deployment_id}",
    response_model=DeploymentResponse,
    summary="Get deployment details",
)
async def get_deployment(deployment: DeploymentDep) -> DeploymentResponse:
    """Get detailed information about a deployment."""
    return DeploymentResponse.from_record(deployment)


@router.delete(
    "/{deployment_id}",
    response_model=DeploymentResponse,
    summary="Abort an in-flight deployment",
)
async def abort_deployment(
    deployment: DeploymentDep,
    orchestrator: OrchestratorDep,
) -> DeploymentResponse:
    """Cancel a deployment that has not reached a terminal state."""
    if deployment.is_terminal:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Deployment is already {deployment.state.value}",
        )

    record = await orchestrator.abort(deployment.id)
    return DeploymentResponse.from_record(record)


@router.post(
    "/{deployment_id}/approve",
    response_model=DeploymentResponse,
    summary="Approve a gated deployment",
)
async def approve_deployment(
    deployment: DeploymentDep,
    data: ApprovalRequest,
    orchestrator: OrchestratorDep,
) -> DeploymentResponse:
    """Release a deployment held for approval."""
    record = await orchestrator.approve(deployment.id, data.approver, data.comment)
    return DeploymentResponse.from_record(record)


@router.post(
    "/{deployment_id}/promote",
    response_model=DeploymentResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Promote a healthy deployment to the next stage",
)
async def promote_deployment(
    deployment: DeploymentDep,
    orchestrator: OrchestratorDep,
    data: PromotionRequest | None = None,
) -> DeploymentResponse:
    """Deploy the verified artifact of a healthy deployment to the next stage."""
    record = await orchestrator.promote(
        deployment.id, target=data.target if data else None
    )
    return DeploymentResponse.from_record(record)


@router.get(
    "/{deployment_id}/stream",
    summary="Stream deployment events (SSE)",
)
async def stream_deployment_events(
    deployment: DeploymentDep,
    events: EventsDep,
) -> EventSourceResponse:
    """Stream state transitions of a deployment using Server-Sent Events."""

    async def event_generator():
        queue = events.subscribe(deployment.id)

        try:
            # Send initial status
            yield {
                "event": "connected",
                "data": json.dumps(
                    {
                        "deployment_id": str(deployment.id),
                        "state": deployment.state.value,
                    }
                ),
            }
            if deployment.is_terminal:
                return

            # Stream events until the deployment finishes or client disconnects
            while True:
                try:
                    event: Event = await asyncio.wait_for(queue.get(), timeout=30.0)
                    yield {"event": event.event_type, "data": json.dumps(event.payload())}

                    if event.is_terminal:
                        break

                except asyncio.TimeoutError:
                    # Send keepalive
                    yield {"event": "keepalive", "data": "{}"}

        finally:
            events.unsubscribe(deployment.id, queue)

    return EventSourceResponse(event_generator())
