"""
A/B experiments with deterministic user bucketing.

Users are hashed into a 0-99 bucket per experiment and walked against the
experiment's cumulative traffic split, so the same user always lands in
the same variant. Assignments are stored once and reused. Results compare
each variant's conversion rate to control with a two-proportion z-test.
"""

from datetime import datetime
from typing import Any, Literal

from app.core.analytics import track_server_event
from app.core.experiment_stats import confidence_interval, string_hash, two_proportion_p_value
from app.core.logging import get_logger
from app.core.schemas_experiments import (
    ABExperiment,
    ABExperimentCreate,
    ExperimentResults,
    ExperimentStats,
)
from app.db import experiments as experiments_db
from app.db.supabase_client import now_iso, parse_ts, utc_now

logger = get_logger(__name__)

CONTROL = "control"
TRAFFIC_TOLERANCE = 0.01

WILL_GENERATION_EXPERIMENT = "will_generation_ui"
ONBOARDING_EXPERIMENT = "onboarding_flow"


def _load(row: dict | None) -> ABExperiment | None:
    if not row:
        return None
    variants = experiments_db.list_variants(row["id"])
    return ABExperiment.model_validate({**row, "variants": variants})


def get_experiment(name: str) -> ABExperiment | None:
    return _load(experiments_db.get_experiment_by_name(name))


def get_experiment_by_id(experiment_id: str) -> ABExperiment | None:
    return _load(experiments_db.get_experiment(experiment_id))


def create_experiment(data: ABExperimentCreate) -> ABExperiment:
    """Store an experiment and its variants; the traffic split must total 100%."""
    total = sum(data.traffic_split.values())
    if abs(total - 100) > TRAFFIC_TOLERANCE:
        raise ValueError(f"Traffic split must add up to 100%, got {total}")

    names = {v.name for v in data.variants}
    unknown = set(data.traffic_split) - names
    if unknown:
        raise ValueError(f"Traffic split names unknown variants: {sorted(unknown)}")

    row = experiments_db.create_experiment(data.model_dump(mode="json", exclude={"variants"}))
    variants = experiments_db.create_variants(
        row["id"], [v.model_dump(mode="json") for v in data.variants]
    )
    logger.info(f"Created experiment {data.name} with {len(variants)} variants")
    return ABExperiment.model_validate({**row, "variants": variants})


def start_experiment(experiment_id: str) -> bool:
    row = experiments_db.update_experiment(
        experiment_id, {"status": "running", "start_date": now_iso()}
    )
    return row is not None


def stop_experiment(experiment_id: str) -> bool:
    row = experiments_db.update_experiment(
        experiment_id, {"status": "completed", "end_date": now_iso()}
    )
    return row is not None


def get_running_experiments() -> list[ABExperiment]:
    return [_load(row) for row in experiments_db.list_running_experiments()]


def assign_variant(user_id: str, experiment: ABExperiment) -> str:
    """Deterministic bucket walk over the cumulative traffic split."""
    bucket = string_hash(user_id + experiment.name) % 100

    cumulative = 0.0
    for variant_name, percentage in experiment.traffic_split.items():
        cumulative += percentage
        if bucket < cumulative:
            return variant_name

    return experiment.control_name()


def get_variant(experiment_name: str, user_id: str, now: datetime | None = None) -> str:
    """
    Variant for a user, assigning and persisting it on first sight.

    Missing, non-running, or ended experiments serve control without
    recording an assignment.
    """
    now = now or utc_now()
    try:
        existing = experiments_db.get_assignment(experiment_name, user_id)
        if existing:
            return existing["variant_name"]

        experiment = get_experiment(experiment_name)
        if experiment is None or experiment.status != "running":
            return CONTROL
        if experiment_has_ended(experiment, now):
            return CONTROL

        variant = assign_variant(user_id, experiment)
        experiments_db.create_assignment(experiment.id, experiment.name, user_id, variant)
        track_server_event(
            user_id,
            "experiment_assigned",
            {"experiment": experiment.name, "variant": variant},
        )
        return variant
    except Exception:
        logger.exception(f"Failed to resolve variant for experiment {experiment_name}")
        return CONTROL


def is_user_in_experiment(experiment_name: str, user_id: str) -> bool:
    return experiments_db.get_assignment(experiment_name, user_id) is not None


def track_conversion(
    experiment_name: str,
    user_id: str,
    event_type: str,
    event_value: float | None = None,
    metadata: dict[str, Any] | None = None,
    session_id: str | None = None,
) -> bool:
    """Record an experiment event for the user's variant; False when nothing was recorded."""
    variant_name = get_variant(experiment_name, user_id)
    experiment = get_experiment(experiment_name)
    if experiment is None:
        logger.debug(f"Conversion for unknown experiment {experiment_name} ignored")
        return False

    variant = next((v for v in experiment.variants if v.name == variant_name), None)
    if variant is None:
        logger.debug(f"User {user_id} has no stored variant in {experiment_name}")
        return False

    experiments_db.insert_result(
        {
            "experiment_id": experiment.id,
            "variant_id": variant.id,
            "user_id": user_id,
            "event_type": event_type,
            "event_value": event_value,
            "session_id": session_id,
            "metadata": metadata or {},
        }
    )
    return True


# =========================
# Results
# =========================


def calculate_variant_stats(
    experiment: ABExperiment, results: list[dict], assignments: list[dict]
) -> list[ExperimentStats]:
    """
    Per-variant participants, conversions, and significance against control.

    Participants are the users assigned to the variant or seen in its
    results; conversions are the distinct users who hit the target metric.
    """
    by_id = {v.id: v for v in experiment.variants}
    participants: dict[str, set[str]] = {v.id: set() for v in experiment.variants}
    converters: dict[str, set[str]] = {v.id: set() for v in experiment.variants}
    values: dict[str, list[float]] = {v.id: [] for v in experiment.variants}

    name_to_id = {v.name: v.id for v in experiment.variants}
    for row in assignments:
        variant_id = name_to_id.get(row.get("variant_name"))
        if variant_id:
            participants[variant_id].add(row["user_id"])

    for row in results:
        variant_id = row.get("variant_id")
        if variant_id not in by_id:
            continue
        participants[variant_id].add(row["user_id"])
        if row.get("event_type") == experiment.target_metric:
            converters[variant_id].add(row["user_id"])
            if row.get("event_value"):
                values[variant_id].append(row["event_value"])

    control_id = name_to_id.get(experiment.control_name())
    control_n = len(participants.get(control_id, ()))
    control_c = len(converters.get(control_id, ()))
    alpha = 1 - experiment.confidence_level / 100

    stats = []
    for variant in experiment.variants:
        n = len(participants[variant.id])
        c = len(converters[variant.id])
        rate = c / n if n else 0.0
        p_value = two_proportion_p_value(c, n, control_c, control_n)
        stats.append(
            ExperimentStats(
                variant_id=variant.id,
                variant_name=variant.name,
                participants=n,
                conversions=c,
                conversion_rate=rate,
                average_value=(
                    sum(values[variant.id]) / len(values[variant.id]) if values[variant.id] else 0.0
                ),
                confidence_interval=confidence_interval(rate, n, experiment.confidence_level),
                statistical_significance=p_value < alpha,
                p_value=p_value,
            )
        )
    return stats


def analyze_results(stats: list[ExperimentStats], control_name: str) -> tuple[str | None, str]:
    control = next((s for s in stats if s.variant_name == control_name), None)
    if control is None:
        return None, "No control variant found"

    significant = [
        s
        for s in stats
        if s.variant_name != control_name
        and s.statistical_significance
        and s.conversion_rate > control.conversion_rate
    ]
    if not significant:
        return None, "No variants show statistically significant improvement over control"

    winner = max(significant, key=lambda s: s.conversion_rate)
    rate_pct = winner.conversion_rate * 100
    if control.conversion_rate == 0:
        return winner.variant_name, (
            f"{winner.variant_name} converts at {rate_pct:.2f}% against 0% for control "
            f"(p={winner.p_value:.3f})"
        )

    improvement = (winner.conversion_rate - control.conversion_rate) / control.conversion_rate * 100
    return winner.variant_name, (
        f"{winner.variant_name} shows {improvement:.1f}% improvement with "
        f"{rate_pct:.2f}% conversion rate (p={winner.p_value:.3f})"
    )


def get_experiment_results(experiment_id: str) -> ExperimentResults:
    experiment = get_experiment_by_id(experiment_id)
    if experiment is None:
        raise LookupError(f"Experiment not found: {experiment_id}")

    stats = calculate_variant_stats(
        experiment,
        experiments_db.list_results(experiment_id),
        experiments_db.list_assignments(experiment_id),
    )
    winner, recommendation = analyze_results(stats, experiment.control_name())
    return ExperimentResults(stats=stats, winner=winner, recommendation=recommendation)


def experiment_has_ended(experiment: ABExperiment, now: datetime | None = None) -> bool:
    end = parse_ts(experiment.end_date)
    return end is not None and end < (now or utc_now())


# =========================
# Product experiments
# =========================


def get_will_generation_variant(user_id: str) -> Literal["wizard", "form"]:
    return "form" if get_variant(WILL_GENERATION_EXPERIMENT, user_id) == "form" else "wizard"


def track_will_generation(user_id: str, variant: str, completed: bool) -> bool:
    return track_conversion(
        WILL_GENERATION_EXPERIMENT,
        user_id,
        "will_completed" if completed else "will_abandoned",
        1 if completed else 0,
        {"variant": variant, "completed": completed},
    )


def get_onboarding_variant(user_id: str) -> Literal["short", "detailed"]:
    return "detailed" if get_variant(ONBOARDING_EXPERIMENT, user_id) == "detailed" else "short"


def track_onboarding_step(user_id: str, step: int, completed: bool) -> bool:
    status = "completed" if completed else "abandoned"
    return track_conversion(
        ONBOARDING_EXPERIMENT,
        user_id,
        f"onboarding_step_{step}_{status}",
        step,
        {"step": step, "completed": completed},
    )


def track_onboarding_completion(user_id: str, time_to_complete: float) -> bool:
    return track_conversion(
        ONBOARDING_EXPERIMENT,
        user_id,
        "onboarding_completed",
        time_to_complete,
        {"completion_time": time_to_complete},
    )
