"""Build-completion trigger endpoint."""

from fastapi import APIRouter, status

from promoter.api.deps import OrchestratorDep
from promoter.api.v1.deployments import DeploymentResponse
from promoter.models.artifact import TriggerEvent

router = APIRouter()


@router.post(
    "",
    response_model=DeploymentResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Handle a completed build",
    description="Map the build's branch or tag to an environment and start deploying its artifact there.",
)
async def handle_trigger(
    event: TriggerEvent,
    orchestrator: OrchestratorDep,
) -> DeploymentResponse:
    """Start a deployment from a build-completion event."""
    record = await orchestrator.handle_trigger(event)
    return DeploymentResponse.from_record(record)
