"""Main router for API v1."""

from fastapi import APIRouter

from promoter.api.v1 import deployments, environments, health, triggers

router = APIRouter(prefix="/v1")

# Include sub-routers
router.include_router(health.router, tags=["health"])
router.include_router(environments.router, prefix="/environments", tags=["environments"])
router.include_router(triggers.router, prefix="/triggers", tags=["triggers"])
router.include_router(deployments.router, prefix="/deployments", tags=["deployments"])
