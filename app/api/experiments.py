"""A/B experiments API: authoring, variant assignment, conversions, and results."""

from fastapi import APIRouter, Depends, HTTPException

from app.core import ab_testing
from app.core.auth_middleware import (
    AuthContext,
    get_admin_user,
    get_current_user,
    require_same_user,
)
from app.core.logging import get_logger
from app.core.schemas_experiments import (
    ABExperiment,
    ABExperimentCreate,
    ConversionRequest,
    ExperimentResults,
    OnboardingCompletion,
    OnboardingStep,
    VariantAssignment,
    WillGenerationOutcome,
)

logger = get_logger(__name__)

router = APIRouter(prefix="/experiments")


@router.post("", response_model=ABExperiment, status_code=201)
async def create_experiment(
    request: ABExperimentCreate, auth: AuthContext = Depends(get_admin_user)
):
    try:
        return ab_testing.create_experiment(request)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e


@router.get("/running", response_model=list[ABExperiment])
async def list_running_experiments(auth: AuthContext = Depends(get_admin_user)):
    return ab_testing.get_running_experiments()


@router.post("/{experiment_id}/start")
async def start_experiment(experiment_id: str, auth: AuthContext = Depends(get_admin_user)):
    if not ab_testing.start_experiment(experiment_id):
        raise HTTPException(status_code=404, detail=f"Experiment not found: {experiment_id}")
    logger.info(f"Experiment {experiment_id} started")
    return {"ok": True}


@router.post("/{experiment_id}/stop")
async def stop_experiment(experiment_id: str, auth: AuthContext = Depends(get_admin_user)):
    if not ab_testing.stop_experiment(experiment_id):
        raise HTTPException(status_code=404, detail=f"Experiment not found: {experiment_id}")
    logger.info(f"Experiment {experiment_id} stopped")
    return {"ok": True}


@router.get("/{experiment_id}/results", response_model=ExperimentResults)
async def get_experiment_results(experiment_id: str, auth: AuthContext = Depends(get_admin_user)):
    try:
        return ab_testing.get_experiment_results(experiment_id)
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e


@router.get("/by-name/{experiment_name}/variant", response_model=VariantAssignment)
async def get_variant(
    experiment_name: str, user_id: str, auth: AuthContext = Depends(get_current_user)
):
    """Variant for the user; control when the experiment is missing or not running."""
    require_same_user(auth, user_id)
    return VariantAssignment(
        experiment_name=experiment_name,
        user_id=user_id,
        variant=ab_testing.get_variant(experiment_name, user_id),
    )


@router.post("/by-name/{experiment_name}/conversions")
async def track_conversion(
    experiment_name: str,
    request: ConversionRequest,
    auth: AuthContext = Depends(get_current_user),
):
    require_same_user(auth, request.user_id)
    recorded = ab_testing.track_conversion(
        experiment_name,
        request.user_id,
        request.event_type,
        request.event_value,
        request.metadata,
        request.session_id,
    )
    return {"recorded": recorded}


@router.post("/will-generation/outcome")
async def track_will_generation(
    request: WillGenerationOutcome, auth: AuthContext = Depends(get_current_user)
):
    require_same_user(auth, request.user_id)
    recorded = ab_testing.track_will_generation(request.user_id, request.variant, request.completed)
    return {"recorded": recorded}


@router.post("/onboarding/steps")
async def track_onboarding_step(
    request: OnboardingStep, auth: AuthContext = Depends(get_current_user)
):
    require_same_user(auth, request.user_id)
    recorded = ab_testing.track_onboarding_step(request.user_id, request.step, request.completed)
    return {"recorded": recorded}


@router.post("/onboarding/completion")
async def track_onboarding_completion(
    request: OnboardingCompletion, auth: AuthContext = Depends(get_current_user)
):
    require_same_user(auth, request.user_id)
    recorded = ab_testing.track_onboarding_completion(request.user_id, request.time_to_complete)
    return {"recorded": recorded}


@router.get("/will-generation/variant", response_model=VariantAssignment)
async def get_will_generation_variant(user_id: str, auth: AuthContext = Depends(get_current_user)):
    require_same_user(auth, user_id)
    return VariantAssignment(
        experiment_name=ab_testing.WILL_GENERATION_EXPERIMENT,
        user_id=user_id,
        variant=ab_testing.get_will_generation_variant(user_id),
    )


@router.get("/onboarding/variant", response_model=VariantAssignment)
async def get_onboarding_variant(user_id: str, auth: AuthContext = Depends(get_current_user)):
    require_same_user(auth, user_id)
    return VariantAssignment(
        experiment_name=ab_testing.ONBOARDING_EXPERIMENT,
        user_id=user_id,
        variant=ab_testing.get_onboarding_variant(user_id),
    )
