"""Environment endpoints."""

from fastapi import APIRouter
from pydantic import BaseModel, Field

from promoter.api.deps import OrchestratorDep
from promoter.models.environment import EnvironmentName, NetworkPolicy, TriggerRule

router = APIRouter()


class EnvironmentResponse(BaseModel):
    """Descriptor plus current deployment status of one environment."""

    name: EnvironmentName
    desired_count: int
    cpu: int
    memory: int
    network_policy: NetworkPolicy
    variables: dict[str, str]
    secret_names: list[str] = Field(default_factory=list)
    approval_required: bool
    auto_promote: bool
    next_stage: EnvironmentName | None = None

    in_flight_deployment_id: str | None = None
    healthy_digest: str | None = None


class EnvironmentListResponse(BaseModel):
    """All configured environments and trigger rules."""

    environments: list[EnvironmentResponse]
    triggers: list[TriggerRule]


@router.get(
    "",
    response_model=EnvironmentListResponse,
    summary="List configured environments",
)
async def list_environments(orchestrator: OrchestratorDep) -> EnvironmentListResponse:
    """List environments in promotion order with their current status."""
    in_flight = orchestrator.in_flight()
    environments = []

    for descriptor in orchestrator.environments.all():
        healthy = await orchestrator.history.last_healthy(descriptor.name)
        running = in_flight.get(descriptor.name)
        environments.append(
            EnvironmentResponse(
                name=descriptor.name,
                desired_count=descriptor.desired_count,
                cpu=descriptor.cpu,
                memory=descriptor.memory,
                network_policy=descriptor.network_policy,
                variables=descriptor.variables,
                secret_names=sorted(descriptor.secrets),
                approval_required=descriptor.approval_required,
                auto_promote=descriptor.auto_promote,
                next_stage=orchestrator.environments.next_stage(descriptor.name),
                in_flight_deployment_id=str(running) if running else None,
                healthy_digest=healthy.artifact.digest if healthy else None,
            )
        )

    return EnvironmentListResponse(
        environments=environments,
        triggers=orchestrator.environments.triggers,
    )
