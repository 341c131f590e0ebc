"""Adaptive UI API: component registration, variant selection, applied adaptations."""

from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException

from app.api.api_helpers import resolve_window
from app.core.adaptive_ui import get_adaptive_ui_engine
from app.core.auth_middleware import (
    AuthContext,
    get_admin_user,
    get_current_user,
    require_same_user,
)
from app.core.schemas_adaptive_ui import (
    AdaptationDecision,
    AdaptationPerformance,
    AdaptationStrategy,
    AdaptationStrategyCreate,
    AdaptiveComponentConfig,
    ApplyAdaptationRequest,
    ComponentInteractionRequest,
    ComponentVariant,
    ComponentVariantCreate,
    TriggeredRule,
    UIPersonalizationState,
    VariantRequest,
)

router = APIRouter(prefix="/adaptive-ui")


@router.post("/components", response_model=AdaptiveComponentConfig, status_code=201)
async def register_component(
    config: AdaptiveComponentConfig, auth: AuthContext = Depends(get_admin_user)
):
    return get_adaptive_ui_engine().register_component(config)


@router.post("/variants", response_model=ComponentVariant, status_code=201)
async def create_component_variant(
    request: ComponentVariantCreate, auth: AuthContext = Depends(get_admin_user)
):
    engine = get_adaptive_ui_engine()
    if request.component_id not in engine.components:
        raise HTTPException(status_code=404, detail=f"Component {request.component_id} not found")
    return engine.create_component_variant(request)


@router.post("/strategies", response_model=AdaptationStrategy, status_code=201)
async def create_adaptation_strategy(
    request: AdaptationStrategyCreate, auth: AuthContext = Depends(get_admin_user)
):
    return get_adaptive_ui_engine().create_adaptation_strategy(request)


@router.get("/evaluation", response_model=list[TriggeredRule])
async def evaluate_components(auth: AuthContext = Depends(get_admin_user)):
    return get_adaptive_ui_engine().evaluate_components()


@router.post("/components/{component_id}/variant", response_model=AdaptationDecision | None)
async def get_optimal_variant(
    component_id: str, request: VariantRequest, auth: AuthContext = Depends(get_current_user)
):
    """Best variant for the user, or null when the component has none."""
    require_same_user(auth, request.user_id)
    return get_adaptive_ui_engine().get_optimal_variant(
        component_id, request.user_id, request.context
    )


@router.post("/components/{component_id}/apply", response_model=UIPersonalizationState)
async def apply_adaptation(
    component_id: str, request: ApplyAdaptationRequest, auth: AuthContext = Depends(get_current_user)
):
    require_same_user(auth, request.user_id)
    return get_adaptive_ui_engine().apply_adaptation(
        request.user_id, component_id, request.variant_id, request.context
    )


@router.post("/components/{component_id}/interactions", status_code=204)
async def track_component_interaction(
    component_id: str,
    request: ComponentInteractionRequest,
    auth: AuthContext = Depends(get_current_user),
):
    require_same_user(auth, request.user_id)
    get_adaptive_ui_engine().track_component_interaction(
        component_id, request.variant_id, request.user_id, request.interaction_type, request.outcome
    )


@router.get("/components/{component_id}/performance", response_model=AdaptationPerformance)
async def get_adaptation_performance(
    component_id: str,
    start: datetime | None = None,
    end: datetime | None = None,
    auth: AuthContext = Depends(get_admin_user),
):
    start, end = resolve_window(start, end)
    return get_adaptive_ui_engine().get_adaptation_performance(component_id, start, end)


@router.get("/users/{user_id}/state", response_model=UIPersonalizationState)
async def get_ui_state(user_id: str, auth: AuthContext = Depends(get_current_user)):
    require_same_user(auth, user_id)
    return get_adaptive_ui_engine().get_state(user_id)
