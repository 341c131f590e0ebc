"""Variant scoring for dynamic content optimization.

Each active variant is scored against a visitor's profile and request
context. The score starts at a neutral base and picks up fixed weights for
every targeting rule the visitor matches, plus a bonus for variants that
have already proven themselves. The result is clamped to [0, 1].
"""

from datetime import datetime
from typing import Any

from app.core.schemas_content import (
    ContentVariant,
    EngagementLevel,
    ExpectedPerformance,
    TimeOfDay,
    UserProfile,
    VariantScore,
    VisitFrequency,
)

# =========================
# Weights
# =========================

BASE_SCORE = 0.5
WEIGHT_AGE = 0.15
WEIGHT_LOCATION = 0.10
WEIGHT_VISIT_FREQUENCY = 0.20
WEIGHT_ENGAGEMENT = 0.15
WEIGHT_DEVICE = 0.10
WEIGHT_TIME_OF_DAY = 0.05

MAX_CTR_BONUS = 0.10
MAX_CONVERSION_BONUS = 0.15
CTR_BONUS_FACTOR = 10
CONVERSION_BONUS_FACTOR = 50

# Engagement thresholds on average session duration (ms)
LOW_ENGAGEMENT_MS = 60_000
MEDIUM_ENGAGEMENT_MS = 300_000


def categorize_visit_frequency(visits: int) -> VisitFrequency:
    if visits == 1:
        return "first_time"
    if visits <= 5:
        return "returning"
    return "frequent"


def categorize_engagement_level(avg_session_duration_ms: float) -> EngagementLevel:
    if avg_session_duration_ms < LOW_ENGAGEMENT_MS:
        return "low"
    if avg_session_duration_ms < MEDIUM_ENGAGEMENT_MS:
        return "medium"
    return "high"


def categorize_time_of_day(moment: datetime) -> TimeOfDay:
    hour = moment.hour
    if hour < 6:
        return "night"
    if hour < 12:
        return "morning"
    if hour < 18:
        return "afternoon"
    if hour < 22:
        return "evening"
    return "night"


def calculate_performance_bonus(variant: ContentVariant) -> float:
    """Bonus for historically strong variants; zero until impressions exist."""
    metrics = variant.performance_metrics
    if metrics.impressions == 0:
        return 0.0

    ctr = metrics.clicks / metrics.impressions
    conversion_rate = metrics.conversions / metrics.impressions
    return min(MAX_CTR_BONUS, ctr * CTR_BONUS_FACTOR) + min(
        MAX_CONVERSION_BONUS, conversion_rate * CONVERSION_BONUS_FACTOR
    )


def score_variant_for_user(
    variant: ContentVariant,
    profile: UserProfile,
    context: dict[str, Any],
    now: datetime,
) -> VariantScore:
    """
    Score one content variant for one visitor.

    Args:
        variant: Candidate variant with its targeting rules
        profile: Visitor profile (demographics + behavior)
        context: Request context; `device_type` is read from here
        now: Clock used for time-of-day targeting

    Returns:
        VariantScore with clamped confidence, reasons, and factors
    """
    score = BASE_SCORE
    reasoning: list[str] = []
    factors: list[str] = []
    audience = variant.target_audience

    demographics = audience.demographics
    if demographics:
        age = profile.demographics.age
        if demographics.age_range and age is not None:
            min_age, max_age = demographics.age_range
            if min_age <= age <= max_age:
                score += WEIGHT_AGE
                reasoning.append("Age demographic match")
                factors.append("age")

        location = profile.demographics.location
        if demographics.location and location:
            if location in demographics.location:
                score += WEIGHT_LOCATION
                reasoning.append("Location targeting match")
                factors.append("location")

    behavior = audience.behavior
    if behavior:
        if behavior.visit_frequency:
            frequency = categorize_visit_frequency(profile.behavior_profile.visit_frequency)
            if frequency == behavior.visit_frequency:
                score += WEIGHT_VISIT_FREQUENCY
                reasoning.append("Visit frequency match")
                factors.append("visit_frequency")

        if behavior.engagement_level:
            level = categorize_engagement_level(profile.behavior_profile.avg_session_duration)
            if level == behavior.engagement_level:
                score += WEIGHT_ENGAGEMENT
                reasoning.append("Engagement level match")
                factors.append("engagement")

    targeting = audience.context
    if targeting:
        device_type = context.get("device_type")
        if targeting.device_type and device_type:
            if targeting.device_type == device_type:
                score += WEIGHT_DEVICE
                reasoning.append("Device type match")
                factors.append("device")

        if targeting.time_of_day:
            if targeting.time_of_day == categorize_time_of_day(now):
                score += WEIGHT_TIME_OF_DAY
                reasoning.append("Time of day optimization")
                factors.append("timing")

    bonus = calculate_performance_bonus(variant)
    score += bonus
    if bonus > 0:
        reasoning.append("High historical performance")
        factors.append("performance_history")

    score = max(0.0, min(1.0, score))

    return VariantScore(
        confidence_score=score,
        reasoning=reasoning,
        expected_performance=ExpectedPerformance(
            click_probability=score * 0.8,
            conversion_probability=score * 0.3,
            engagement_score=score * 100,
        ),
        personalization_factors=factors,
    )
