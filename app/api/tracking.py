"""Interaction tracking API: browser event ingestion plus session, heatmap and navigation views."""

from fastapi import APIRouter, Depends, HTTPException

from app.core.auth_middleware import (
    AuthContext,
    get_admin_user,
    get_current_user,
    get_optional_user,
    require_same_user,
)
from app.core.schemas_tracking import (
    HeatmapElement,
    InteractionBatch,
    InteractionBatchResponse,
    NavigationTransition,
    SessionSummary,
)
from app.services.behavior_tracker import get_behavior_tracker

router = APIRouter(prefix="/tracking")


@router.post("/interactions", response_model=InteractionBatchResponse, status_code=202)
async def record_interactions(
    batch: InteractionBatch, auth: AuthContext | None = Depends(get_optional_user)
):
    """Buffer a batch of browser interactions. Anonymous sessions are accepted."""
    tracker = get_behavior_tracker()
    for interaction in batch.interactions:
        if auth is None:
            interaction.user_id = None
        elif not auth.is_admin:
            interaction.user_id = auth.user_id
        tracker.record_interaction(interaction)
    return InteractionBatchResponse(accepted=len(batch.interactions), buffered=len(tracker.buffer))


@router.get("/sessions/{session_id}", response_model=SessionSummary)
async def get_session_data(session_id: str, auth: AuthContext = Depends(get_current_user)):
    try:
        summary = get_behavior_tracker().get_session_data(session_id)
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    if not auth.is_admin and summary.user_id != auth.user_id:
        raise HTTPException(status_code=403, detail="Forbidden")
    return summary


@router.get("/users/{user_id}/journey")
async def get_user_journey(
    user_id: str, session_id: str | None = None, auth: AuthContext = Depends(get_current_user)
):
    require_same_user(auth, user_id)
    return get_behavior_tracker().get_user_journey(user_id, session_id)


@router.get("/heatmap", response_model=list[HeatmapElement])
async def generate_heatmap_data(
    page_path: str, days: int = 7, auth: AuthContext = Depends(get_admin_user)
):
    return get_behavior_tracker().generate_heatmap_data(page_path, days)


@router.get("/navigation", response_model=list[NavigationTransition])
async def analyze_navigation_patterns(
    days: int = 7, limit: int = 10, auth: AuthContext = Depends(get_admin_user)
):
    return get_behavior_tracker().analyze_navigation_patterns(days, limit)
