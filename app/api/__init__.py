"""API router for v1 endpoints."""

from fastapi import APIRouter

from app.api import (
    adaptive_ui,
    content,
    experiments,
    funnels,
    guardians,
    integrations,
    personalization,
    recommendations,
    tracking,
)

router = APIRouter()

# Personalization layer
router.include_router(content.router, tags=["content"])
router.include_router(personalization.router, tags=["personalization"])
router.include_router(recommendations.router, tags=["recommendations"])
router.include_router(adaptive_ui.router, tags=["adaptive_ui"])

# Measurement
router.include_router(experiments.router, tags=["experiments"])
router.include_router(funnels.router, tags=["funnels"])
router.include_router(tracking.router, tags=["tracking"])

# Guardians and outbound notifications
router.include_router(guardians.router, tags=["guardians"])
router.include_router(integrations.router, tags=["integrations"])
