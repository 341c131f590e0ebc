"""Personalization API: behavior profiles, real-time adaptations, strategy effectiveness."""

from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException

from app.api.api_helpers import resolve_window
from app.core.auth_middleware import (
    AuthContext,
    get_admin_user,
    get_current_user,
    require_same_user,
)
from app.core.personalization_engine import get_personalization_engine
from app.core.schemas_personalization import (
    BehaviorPattern,
    BehaviorPatternCreate,
    InteractionEvent,
    OutcomeEvent,
    PersonalizationRequest,
    PersonalizationStrategy,
    PersonalizationStrategyCreate,
    RealTimeAdaptation,
    StrategyEffectiveness,
    UserBehaviorProfile,
)

router = APIRouter(prefix="/personalization")


@router.post("/patterns", response_model=BehaviorPattern, status_code=201)
async def create_behavior_pattern(
    request: BehaviorPatternCreate, auth: AuthContext = Depends(get_admin_user)
):
    return get_personalization_engine().create_behavior_pattern(request)


@router.post("/strategies", response_model=PersonalizationStrategy, status_code=201)
async def create_personalization_strategy(
    request: PersonalizationStrategyCreate, auth: AuthContext = Depends(get_admin_user)
):
    return get_personalization_engine().create_personalization_strategy(request)


@router.get("/users/{user_id}/profile", response_model=UserBehaviorProfile)
async def analyze_behavior(
    user_id: str, session_id: str | None = None, auth: AuthContext = Depends(get_current_user)
):
    """Re-score the user's behavior and match it against the known patterns."""
    require_same_user(auth, user_id)
    return get_personalization_engine().analyze_behavior_patterns(user_id, session_id)


@router.post("/users/{user_id}/interactions", response_model=UserBehaviorProfile)
async def record_interaction(
    user_id: str, event: InteractionEvent, auth: AuthContext = Depends(get_current_user)
):
    require_same_user(auth, user_id)
    return get_personalization_engine().record_interaction(
        user_id, event.action_type, event.context, event.timestamp
    )


@router.post("/apply", response_model=RealTimeAdaptation)
async def apply_personalization(
    request: PersonalizationRequest, auth: AuthContext = Depends(get_current_user)
):
    require_same_user(auth, request.user_id)
    context = dict(request.context)
    if request.session_id:
        context.setdefault("session_id", request.session_id)
    return get_personalization_engine().apply_personalization(request.user_id, context)


@router.post("/users/{user_id}/outcomes", status_code=204)
async def track_interaction_outcome(
    user_id: str, event: OutcomeEvent, auth: AuthContext = Depends(get_current_user)
):
    require_same_user(auth, user_id)
    get_personalization_engine().track_interaction_outcome(
        user_id, event.interaction_type, event.outcome, event.context
    )


@router.get("/strategies/{strategy_id}/effectiveness", response_model=StrategyEffectiveness)
async def get_personalization_effectiveness(
    strategy_id: str,
    start: datetime | None = None,
    end: datetime | None = None,
    auth: AuthContext = Depends(get_admin_user),
):
    start, end = resolve_window(start, end)
    try:
        return get_personalization_engine().get_personalization_effectiveness(
            strategy_id, start, end
        )
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
