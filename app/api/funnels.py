"""Conversion funnel API: definitions, per-session progress, and analytics."""

from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException

from app.api.api_helpers import resolve_window
from app.core.auth_middleware import (
    AuthContext,
    get_admin_user,
    get_current_user,
    require_same_user,
)
from app.core.funnel_tracker import get_funnel_tracker
from app.core.schemas_funnels import (
    FunnelAnalytics,
    FunnelCreate,
    FunnelDefinition,
    FunnelProgress,
    FunnelSummary,
    PageViewRequest,
    StartTrackingRequest,
    StepDropOffRequest,
    StepProgressRequest,
)

router = APIRouter(prefix="/funnels")


@router.post("", response_model=FunnelDefinition, status_code=201)
async def create_funnel(request: FunnelCreate, auth: AuthContext = Depends(get_admin_user)):
    try:
        return get_funnel_tracker().create_funnel(request)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e


@router.get("/top", response_model=list[FunnelSummary])
async def get_top_performing_funnels(
    start: datetime | None = None,
    end: datetime | None = None,
    limit: int = 10,
    auth: AuthContext = Depends(get_admin_user),
):
    start, end = resolve_window(start, end)
    return get_funnel_tracker().get_top_performing_funnels(start, end, limit)


@router.post("/page-views", response_model=list[FunnelProgress])
async def check_funnel_progression(
    request: PageViewRequest, auth: AuthContext = Depends(get_current_user)
):
    """Advance every funnel the session is in whose next step matches the page."""
    require_same_user(auth, request.user_id)
    return get_funnel_tracker().check_funnel_progression(
        request.session_id, request.user_id, request.page_path
    )


@router.get("/{funnel_id}", response_model=FunnelDefinition)
async def get_funnel(funnel_id: str, auth: AuthContext = Depends(get_current_user)):
    funnel = get_funnel_tracker().get_funnel(funnel_id)
    if funnel is None:
        raise HTTPException(status_code=404, detail=f"Funnel {funnel_id} not found")
    return funnel


@router.post("/{funnel_id}/start", response_model=FunnelProgress, status_code=201)
async def start_funnel_tracking(
    funnel_id: str, request: StartTrackingRequest, auth: AuthContext = Depends(get_current_user)
):
    require_same_user(auth, request.user_id)
    try:
        return get_funnel_tracker().start_funnel_tracking(
            request.session_id, request.user_id, funnel_id
        )
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e


@router.post("/{funnel_id}/progress", response_model=FunnelProgress)
async def track_step_progress(
    funnel_id: str, request: StepProgressRequest, auth: AuthContext = Depends(get_current_user)
):
    progress = get_funnel_tracker().track_step_progress(
        request.session_id, funnel_id, request.step_id, request.metadata
    )
    if progress is None:
        raise HTTPException(status_code=404, detail="No funnel progress for this session")
    require_same_user(auth, progress.user_id)
    return progress


@router.post("/{funnel_id}/drop-off", response_model=FunnelProgress)
async def track_step_drop_off(
    funnel_id: str, request: StepDropOffRequest, auth: AuthContext = Depends(get_current_user)
):
    progress = get_funnel_tracker().track_step_drop_off(
        request.session_id, funnel_id, request.step_id, request.reason
    )
    if progress is None:
        raise HTTPException(status_code=404, detail="No funnel progress for this session")
    require_same_user(auth, progress.user_id)
    return progress


@router.get("/{funnel_id}/analytics", response_model=FunnelAnalytics)
async def get_funnel_analytics(
    funnel_id: str,
    start: datetime | None = None,
    end: datetime | None = None,
    auth: AuthContext = Depends(get_admin_user),
):
    start, end = resolve_window(start, end)
    try:
        return get_funnel_tracker().get_funnel_analytics(funnel_id, start, end)
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
