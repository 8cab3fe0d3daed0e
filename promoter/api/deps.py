"""Dependency injection for API endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import Depends, HTTPException, status

from promoter.core.events import EventBus, get_event_bus
from promoter.core.orchestrator import DeploymentOrchestrator, get_orchestrator
from promoter.models.deployment import DeploymentRecord


async def get_deployment_orchestrator() -> DeploymentOrchestrator:
    """Get the deployment orchestrator."""
    return get_orchestrator()


async def get_events() -> EventBus:
    """Get the event bus."""
    return get_event_bus()


async def get_deployment_by_id(
    deployment_id: UUID,
    orchestrator: Annotated[DeploymentOrchestrator, Depends(get_deployment_orchestrator)],
) -> DeploymentRecord:
    """Get a deployment record by ID or raise 404."""
    record = await orchestrator.history.get(deployment_id)
    if not record:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Deployment not found: {deployment_id}",
        )
    return record


# Type aliases for cleaner signatures
OrchestratorDep = Annotated[DeploymentOrchestrator, Depends(get_deployment_orchestrator)]
EventsDep = Annotated[EventBus, Depends(get_events)]
DeploymentDep = Annotated[DeploymentRecord, Depends(get_deployment_by_id)]
