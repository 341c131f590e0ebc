"""Recommendations API: AI content recommendations, feedback, curation, and engine reporting."""

from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException

from app.api.api_helpers import resolve_window
from app.core.auth_middleware import (
    AuthContext,
    get_admin_user,
    get_current_user,
    require_same_user,
)
from app.core.recommendation_engine import get_recommendation_engine
from app.core.schemas_recommendations import (
    AIContentRecommendation,
    AIInsights,
    CurationStrategy,
    CurationStrategyCreate,
    EngineOptimization,
    RecommendationContext,
    RecommendationFeedback,
    RecommendationFeedbackCreate,
    RecommendationPerformance,
)

router = APIRouter(prefix="/recommendations")


@router.post("/users/{user_id}", response_model=list[AIContentRecommendation])
async def generate_recommendations(
    user_id: str,
    context: RecommendationContext | None = None,
    auth: AuthContext = Depends(get_current_user),
):
    """Up to five ranked recommendations for the user in the given page context."""
    require_same_user(auth, user_id)
    return get_recommendation_engine().generate_recommendations(user_id, context)


@router.post("/feedback", response_model=RecommendationFeedback, status_code=201)
async def track_recommendation_feedback(
    request: RecommendationFeedbackCreate, auth: AuthContext = Depends(get_current_user)
):
    require_same_user(auth, request.user_id)
    try:
        return get_recommendation_engine().track_recommendation_feedback(request)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e


@router.get("/users/{user_id}/insights", response_model=AIInsights)
async def get_user_insights(user_id: str, auth: AuthContext = Depends(get_current_user)):
    require_same_user(auth, user_id)
    return get_recommendation_engine().generate_user_insights(user_id)


@router.post("/strategies", response_model=CurationStrategy, status_code=201)
async def create_curation_strategy(
    request: CurationStrategyCreate, auth: AuthContext = Depends(get_admin_user)
):
    return get_recommendation_engine().create_curation_strategy(request)


@router.get("/strategies/{strategy_id}/performance", response_model=RecommendationPerformance)
async def get_recommendation_performance(
    strategy_id: str,
    start: datetime | None = None,
    end: datetime | None = None,
    auth: AuthContext = Depends(get_admin_user),
):
    start, end = resolve_window(start, end)
    try:
        return get_recommendation_engine().get_recommendation_performance(strategy_id, start, end)
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e


@router.post("/optimize", response_model=EngineOptimization)
async def optimize_recommendation_engine(auth: AuthContext = Depends(get_admin_user)):
    return get_recommendation_engine().optimize_recommendation_engine()
