"""Content API: variant experiments, optimal content selection, and performance analytics."""

from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException

from app.api.api_helpers import resolve_window
from app.core.auth_middleware import (
    AuthContext,
    get_admin_user,
    get_current_user,
    get_optional_user,
    require_same_user,
)
from app.core.content_analytics import get_content_analytics
from app.core.content_optimizer import get_content_optimizer
from app.core.schemas_content import (
    ContentComparison,
    ContentExperiment,
    ContentExperimentCreate,
    ContentIdsRequest,
    ContentInteractionRequest,
    ContentMetrics,
    ContentPerformanceAnalysis,
    ContentPerformanceEvent,
    ContentRecommendation,
    ContentROI,
    ContentVariant,
    ContentVariantCreate,
    MetricTrend,
    OptimizationSuggestion,
    PortfolioAnalysis,
    RealTimeInsights,
)

router = APIRouter(prefix="/content")


# =========================
# Optimization
# =========================


@router.post("/experiments", response_model=ContentExperiment, status_code=201)
async def create_content_experiment(
    request: ContentExperimentCreate, auth: AuthContext = Depends(get_admin_user)
):
    try:
        return get_content_optimizer().create_content_experiment(request)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e


@router.post("/variants", response_model=ContentVariant, status_code=201)
async def create_content_variant(
    request: ContentVariantCreate, auth: AuthContext = Depends(get_admin_user)
):
    try:
        return get_content_optimizer().create_content_variant(request)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e


@router.get("/{content_id}/optimal", response_model=ContentRecommendation | None)
async def get_optimal_content(
    content_id: str,
    user_id: str,
    page: str | None = None,
    device: str | None = None,
    auth: AuthContext = Depends(get_current_user),
):
    """Pick the best variant of a content item for the user (null when none is active)."""
    require_same_user(auth, user_id)
    context = {k: v for k, v in {"page": page, "device": device}.items() if v}
    return get_content_optimizer().get_optimal_content(content_id, user_id, context)


@router.post("/{content_id}/interactions", status_code=204)
async def track_content_interaction(
    content_id: str,
    request: ContentInteractionRequest,
    auth: AuthContext = Depends(get_current_user),
):
    require_same_user(auth, request.user_id)
    get_content_optimizer().track_content_interaction(
        content_id,
        request.variant_id,
        request.user_id,
        request.interaction_type,
        request.value,
    )


@router.get("/{content_id}/performance", response_model=ContentPerformanceAnalysis)
async def get_content_performance(
    content_id: str,
    start: datetime | None = None,
    end: datetime | None = None,
    auth: AuthContext = Depends(get_admin_user),
):
    start, end = resolve_window(start, end)
    return get_content_optimizer().get_content_performance_analysis(content_id, start, end)


@router.post("/{content_id}/optimize")
async def optimize_content_allocation(
    content_id: str, auth: AuthContext = Depends(get_admin_user)
):
    weights = get_content_optimizer().optimize_content_allocation(content_id)
    if weights is None:
        raise HTTPException(
            status_code=404, detail=f"No performance-based experiment for content {content_id}"
        )
    return {"content_id": content_id, "weights": weights}


# =========================
# Analytics
# =========================


@router.post("/{content_id}/events", status_code=204)
async def track_content_performance(
    content_id: str,
    event: ContentPerformanceEvent,
    auth: AuthContext | None = Depends(get_optional_user),
):
    metadata = {**event.metadata, "user_id": event.user_id, "session_id": event.session_id}
    get_content_analytics().track_content_performance(content_id, event.interaction_type, metadata)


@router.get("/{content_id}/metrics", response_model=ContentMetrics)
async def get_content_metrics(
    content_id: str,
    start: datetime | None = None,
    end: datetime | None = None,
    auth: AuthContext = Depends(get_admin_user),
):
    start, end = resolve_window(start, end)
    return get_content_analytics().get_content_metrics(content_id, start, end)


@router.get("/{content_id}/realtime", response_model=RealTimeInsights)
async def get_real_time_insights(content_id: str, auth: AuthContext = Depends(get_admin_user)):
    return get_content_analytics().get_real_time_insights(content_id)


@router.get("/{content_id}/suggestions", response_model=list[OptimizationSuggestion])
async def get_optimization_suggestions(
    content_id: str, auth: AuthContext = Depends(get_admin_user)
):
    return get_content_analytics().generate_optimization_suggestions(content_id)


@router.get("/{content_id}/roi", response_model=ContentROI)
async def get_content_roi(
    content_id: str,
    start: datetime | None = None,
    end: datetime | None = None,
    auth: AuthContext = Depends(get_admin_user),
):
    start, end = resolve_window(start, end)
    return get_content_analytics().analyze_content_roi(content_id, start, end)


@router.post("/compare", response_model=ContentComparison)
async def compare_content(request: ContentIdsRequest, auth: AuthContext = Depends(get_admin_user)):
    if not request.content_ids:
        raise HTTPException(status_code=400, detail="content_ids must not be empty")
    start, end = resolve_window(request.start, request.end)
    return get_content_analytics().compare_content(request.content_ids, start, end)


@router.post("/trends", response_model=list[MetricTrend])
async def calculate_content_trends(
    request: ContentIdsRequest, auth: AuthContext = Depends(get_admin_user)
):
    start, end = resolve_window(request.start, request.end)
    return get_content_analytics().calculate_content_trends(request.content_ids, start, end)


@router.post("/portfolio", response_model=PortfolioAnalysis)
async def get_portfolio_analysis(
    request: ContentIdsRequest, auth: AuthContext = Depends(get_admin_user)
):
    return get_content_analytics().get_portfolio_analysis(request.content_ids)
