"""Heuristics that turn raw interaction history into a behavior profile.

All functions are pure: they take the profile (or pieces of it) plus a
clock and return new values, so the personalization engine can be tested
without a database.
"""

from datetime import datetime, timedelta
from typing import Any

from app.core.schemas_personalization import (
    AdaptationRule,
    BehaviorPattern,
    BehaviorScore,
    InferredPreferences,
    InteractionRecord,
    NextAction,
    PersonalizationStrategy,
    PredictiveInsights,
    UserBehaviorProfile,
)

PATTERN_WINDOW = timedelta(minutes=5)
SCORING_WINDOW = timedelta(minutes=10)
OUTCOME_WINDOW = timedelta(minutes=30)

INTENT_ACTIONS = {"click", "form_submit", "download"}
POSITIVE_OUTCOMES = {"conversion", "engagement", "progression"}

ENGAGEMENT_SATURATION = 10  # interactions in the scoring window for full engagement
URGENT_GAP_MS = 30_000
DEFAULT_GAP_MS = 60_000
HIGH_URGENCY = 0.8
LOW_URGENCY = 0.3


def interactions_since(history: list[InteractionRecord], since: datetime) -> list[InteractionRecord]:
    return [h for h in history if h.timestamp >= since]


def average_gap_ms(interactions: list[InteractionRecord]) -> float:
    """Mean time between consecutive interactions; DEFAULT_GAP_MS with fewer than two."""
    if len(interactions) < 2:
        return DEFAULT_GAP_MS

    times = sorted(i.timestamp for i in interactions)
    gaps = [(b - a).total_seconds() * 1000 for a, b in zip(times, times[1:])]
    return sum(gaps) / len(gaps)


def matches_pattern(profile: UserBehaviorProfile, pattern: BehaviorPattern, now: datetime) -> bool:
    """Every trigger condition the pattern sets must hold."""
    conditions = pattern.trigger_conditions

    if conditions.session_duration:
        elapsed = now - profile.personalization_state.last_adaptation
        if elapsed < timedelta(seconds=conditions.session_duration):
            return False

    if conditions.interaction_frequency:
        recent = interactions_since(profile.interaction_history, now - PATTERN_WINDOW)
        if len(recent) < conditions.interaction_frequency:
            return False

    return True


def calculate_behavior_scores(history: list[InteractionRecord], now: datetime) -> BehaviorScore:
    recent = interactions_since(history, now - SCORING_WINDOW)

    engagement = min(1.0, len(recent) / ENGAGEMENT_SATURATION)
    intent_count = sum(1 for h in recent if h.action_type in INTENT_ACTIONS)
    intent = min(1.0, intent_count / max(1, len(recent)))
    urgency = HIGH_URGENCY if average_gap_ms(recent) < URGENT_GAP_MS else LOW_URGENCY

    return BehaviorScore(
        engagement=engagement,
        intent=intent,
        urgency=urgency,
        knowledge_level=0.5,
    )


def infer_preferences(history: list[InteractionRecord], scores: BehaviorScore) -> InferredPreferences:
    clicks = sum(1 for h in history if h.action_type == "click")
    scrolls = sum(1 for h in history if h.action_type == "scroll")

    if clicks > scrolls:
        style = "action_oriented"
    elif scrolls > clicks * 2:
        style = "reader"
    else:
        style = "browser"

    if scores.urgency > 0.7:
        speed = "quick"
    elif scores.urgency < 0.4:
        speed = "research_heavy"
    else:
        speed = "deliberate"

    return InferredPreferences(content_complexity="moderate", interaction_style=style, decision_speed=speed)


def generate_predictive_insights(scores: BehaviorScore) -> PredictiveInsights:
    conversion = scores.intent * scores.engagement
    return PredictiveInsights(
        likely_next_actions=[
            NextAction(action="continue_browsing", probability=0.6, timing_estimate=60_000),
            NextAction(action="start_conversion_flow", probability=conversion, timing_estimate=120_000),
            NextAction(action="exit_session", probability=0.3, timing_estimate=180_000),
        ],
        conversion_probability=conversion,
        churn_risk=1 - scores.engagement,
        value_potential=conversion * 0.8,
    )


def effectiveness_score(history: list[InteractionRecord], now: datetime, previous: float) -> float:
    """Share of positive outcomes in the last 30 minutes; keeps `previous` when there are none."""
    outcomes = [h for h in interactions_since(history, now - OUTCOME_WINDOW) if h.outcome]
    if not outcomes:
        return previous
    positive = sum(1 for h in outcomes if h.outcome in POSITIVE_OUTCOMES)
    return positive / len(outcomes)


def strategy_applies(strategy: PersonalizationStrategy, profile: UserBehaviorProfile) -> bool:
    return any(b in profile.current_patterns for b in strategy.target_behaviors)


def rule_applies(rule: AdaptationRule, profile: UserBehaviorProfile, context: dict[str, Any]) -> bool:
    """A rule fires when its trigger is empty/'always', a current pattern, or a truthy context key."""
    trigger = (rule.trigger or "").strip()
    if not trigger or trigger == "always":
        return True
    if trigger in profile.current_patterns:
        return True
    return bool(context.get(trigger))
