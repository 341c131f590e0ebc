"""
Adaptive UI engine.

Registered components carry a set of variants, each aimed at user segments
and behavior patterns. Variants are scored against a user's behavior
profile to pick the one to render, and per-user UI state records which
variants are active and how well they have worked.
"""

from datetime import datetime, timedelta
from functools import lru_cache
from typing import Any

from app.core.logging import get_logger
from app.core.personalization_engine import get_personalization_engine
from app.core.schemas_adaptive_ui import (
    ActiveAdaptation,
    AdaptationDecision,
    AdaptationHistoryEntry,
    AdaptationPerformance,
    AdaptationStrategy,
    AdaptationStrategyCreate,
    AdaptiveComponentConfig,
    ComponentVariant,
    ComponentVariantCreate,
    ExpectedUIPerformance,
    TriggeredRule,
    UIOptimizationOpportunity,
    UIPersonalizationState,
    UIVariantPerformance,
    Urgency,
)
from app.core.schemas_personalization import UserBehaviorProfile
from app.db import adaptive_ui as adaptive_ui_db
from app.db.supabase_client import new_id, utc_now

logger = get_logger(__name__)

BASE_SCORE = 0.5
SEGMENT_BONUS = 0.2
BEHAVIOR_BONUS = 0.3
PERFORMANCE_BONUS = 0.2
INITIAL_EFFECTIVENESS = 0.7
POSITIVE_STEP = 0.1
NEGATIVE_STEP = 0.2
OUTCOME_WINDOW = timedelta(minutes=5)


def score_component_variant(
    variant: ComponentVariant, profile: UserBehaviorProfile, user_segment: str
) -> tuple[float, list[str]]:
    score = BASE_SCORE
    reasoning = []

    if user_segment in variant.target_audience.segments:
        score += SEGMENT_BONUS
        reasoning.append("Target audience segment match")

    if set(variant.target_audience.behaviors) & set(profile.current_patterns):
        score += BEHAVIOR_BONUS
        reasoning.append("Behavior pattern alignment")

    if variant.performance_data.engagement_score > 0.5:
        score += PERFORMANCE_BONUS
        reasoning.append("Strong historical performance")

    return max(0.0, min(1.0, score)), reasoning


def implementation_urgency(confidence: float) -> Urgency:
    if confidence > 0.8:
        return "immediate"
    if confidence > 0.6:
        return "next_interaction"
    return "next_session"


def optimization_opportunities(
    performance: list[UIVariantPerformance],
) -> list[UIOptimizationOpportunity]:
    opportunities = []
    if any(vp.user_satisfaction < 0.5 for vp in performance):
        opportunities.append(
            UIOptimizationOpportunity(
                opportunity_type="variant_optimization",
                description="Optimize underperforming variants",
                potential_impact=0.3,
                implementation_effort="medium",
            )
        )
    if any(vp.user_satisfaction > 0.8 for vp in performance):
        opportunities.append(
            UIOptimizationOpportunity(
                opportunity_type="expand_successful_patterns",
                description="Apply successful patterns to more components",
                potential_impact=0.25,
                implementation_effort="low",
            )
        )
    return opportunities


class AdaptiveUIEngine:
    def __init__(self) -> None:
        self.components: dict[str, AdaptiveComponentConfig] = {}
        self.variants: dict[str, list[ComponentVariant]] = {}
        self.strategies: dict[str, AdaptationStrategy] = {}
        self.states: dict[str, UIPersonalizationState] = {}
        self.decisions: dict[str, list[AdaptationDecision]] = {}

    # =========================
    # Loading and authoring
    # =========================

    def load(self) -> None:
        try:
            configs = adaptive_ui_db.list_component_configs()
            variants = adaptive_ui_db.list_component_variants()
            strategies = adaptive_ui_db.list_adaptation_strategies()
        except Exception:
            logger.exception("Failed to load adaptive UI configuration")
            return

        self.components = {
            row["component_id"]: AdaptiveComponentConfig.model_validate(row) for row in configs
        }
        self.variants = {}
        for row in variants:
            variant = ComponentVariant.model_validate(row)
            self.variants.setdefault(variant.component_id, []).append(variant)
        self.strategies = {
            row["strategy_id"]: AdaptationStrategy.model_validate(row) for row in strategies
        }
        logger.info(
            f"Loaded {len(self.components)} adaptive components, "
            f"{len(variants)} variants, {len(self.strategies)} strategies"
        )

    def register_component(self, config: AdaptiveComponentConfig) -> AdaptiveComponentConfig:
        self.components[config.component_id] = config
        adaptive_ui_db.upsert_component_config(config.model_dump(mode="json"))
        return config

    def create_component_variant(self, data: ComponentVariantCreate) -> ComponentVariant:
        variant = ComponentVariant(variant_id=new_id(), **data.model_dump())
        adaptive_ui_db.create_component_variant(variant.model_dump(mode="json"))
        self.variants.setdefault(variant.component_id, []).append(variant)
        return variant

    def create_adaptation_strategy(self, data: AdaptationStrategyCreate) -> AdaptationStrategy:
        strategy = AdaptationStrategy(strategy_id=new_id(), **data.model_dump())
        adaptive_ui_db.create_adaptation_strategy(strategy.model_dump(mode="json"))
        self.strategies[strategy.strategy_id] = strategy
        return strategy

    def _find_variant(self, component_id: str, variant_id: str) -> ComponentVariant | None:
        for variant in self.variants.get(component_id, []):
            if variant.variant_id == variant_id:
                return variant
        return None

    def _persist_performance(self, variant: ComponentVariant) -> None:
        try:
            adaptive_ui_db.update_variant_performance(
                variant.variant_id, variant.performance_data.model_dump()
            )
        except Exception:
            logger.exception(f"Failed to persist performance for variant {variant.variant_id}")

    # =========================
    # Decisions
    # =========================

    def get_optimal_variant(
        self, component_id: str, user_id: str, context: dict[str, Any] | None = None
    ) -> AdaptationDecision | None:
        """Best-scoring variant for the user, or None for unknown/variant-less components."""
        context = context or {}
        variants = self.variants.get(component_id) or []
        if component_id not in self.components or not variants:
            return None

        profile = get_personalization_engine().analyze_behavior_patterns(
            user_id, context.get("session_id")
        )
        segment = context.get("user_segment") or profile.preferences_inferred.interaction_style

        scored = [(v, *score_component_variant(v, profile, segment)) for v in variants]
        scored.sort(key=lambda item: item[1], reverse=True)
        best, confidence, reasoning = scored[0]

        decision = AdaptationDecision(
            component_id=component_id,
            recommended_variant=best.variant_id,
            confidence_score=confidence,
            reasoning=reasoning,
            expected_performance=ExpectedUIPerformance(
                engagement_lift=confidence * 0.3,
                conversion_impact=confidence * 0.2,
                user_satisfaction=confidence * 0.8,
            ),
            implementation_urgency=implementation_urgency(confidence),
            fallback_options=[v.variant_id for v, _, _ in scored[1:3]],
        )
        self.decisions.setdefault(user_id, []).append(decision)

        best.performance_data.impressions += 1
        try:
            adaptive_ui_db.insert_component_impression(component_id, best.variant_id, user_id)
        except Exception:
            logger.exception(f"Failed to track impression for component {component_id}")
        self._persist_performance(best)

        return decision

    # =========================
    # Per-user state
    # =========================

    def get_state(self, user_id: str, session_id: str | None = None) -> UIPersonalizationState:
        state = self.states.get(user_id)
        if state is None:
            row = None
            try:
                row = adaptive_ui_db.get_ui_state(user_id)
            except Exception:
                logger.exception(f"Failed to load UI state for {user_id}")
            state = (
                UIPersonalizationState.model_validate(row)
                if row
                else UIPersonalizationState(user_id=user_id, session_id=session_id)
            )
            self.states[user_id] = state
        return state

    def apply_adaptation(
        self,
        user_id: str,
        component_id: str,
        variant_id: str,
        context: dict[str, Any] | None = None,
        now: datetime | None = None,
    ) -> UIPersonalizationState:
        context = context or {}
        now = now or utc_now()
        state = self.get_state(user_id, context.get("session_id"))

        previous = next(
            (a for a in state.active_adaptations if a.component_id == component_id), None
        )
        if previous and previous.variant_id != variant_id:
            state.adaptation_history.append(
                AdaptationHistoryEntry(
                    component_id=component_id,
                    from_variant=previous.variant_id,
                    to_variant=variant_id,
                    timestamp=now,
                    trigger_reason="performance_optimization",
                )
            )
        state.active_adaptations = [
            a for a in state.active_adaptations if a.component_id != component_id
        ] + [
            ActiveAdaptation(
                component_id=component_id,
                variant_id=variant_id,
                adaptation_reason="behavioral_match",
                applied_at=now,
                effectiveness_score=INITIAL_EFFECTIVENESS,
            )
        ]

        awareness = state.context_awareness
        if context.get("device_info"):
            awareness.device_capabilities = {**awareness.device_capabilities, **context["device_info"]}
        if context.get("network_info"):
            awareness.network_conditions = {**awareness.network_conditions, **context["network_info"]}

        try:
            adaptive_ui_db.upsert_ui_state(state.model_dump(mode="json"))
        except Exception:
            logger.exception(f"Failed to persist UI state for {user_id}")
        return state

    def track_component_interaction(
        self,
        component_id: str,
        variant_id: str,
        user_id: str,
        interaction_type: str,
        outcome: str | None = None,
        now: datetime | None = None,
    ) -> None:
        now = now or utc_now()

        variant = self._find_variant(component_id, variant_id)
        if variant:
            perf = variant.performance_data
            perf.interactions += 1
            if interaction_type == "conversion":
                perf.conversions += 1
            if outcome == "positive":
                perf.engagement_score += 0.1
                perf.satisfaction_rating += 0.05
            self._persist_performance(variant)

        state = self.states.get(user_id)
        if state:
            for active in state.active_adaptations:
                if active.component_id == component_id and active.variant_id == variant_id:
                    if outcome == "positive":
                        active.effectiveness_score = min(1.0, active.effectiveness_score + POSITIVE_STEP)
                    elif outcome == "negative":
                        active.effectiveness_score = max(0.0, active.effectiveness_score - NEGATIVE_STEP)
            if outcome:
                for entry in state.adaptation_history:
                    if entry.component_id == component_id and now - entry.timestamp < OUTCOME_WINDOW:
                        entry.outcome = outcome

        try:
            adaptive_ui_db.insert_component_interaction(
                {
                    "component_id": component_id,
                    "variant_id": variant_id,
                    "user_id": user_id,
                    "interaction_type": interaction_type,
                    "outcome": outcome,
                }
            )
        except Exception:
            logger.exception(f"Failed to track interaction for component {component_id}")

    # =========================
    # Reporting
    # =========================

    def get_adaptation_performance(
        self, component_id: str, start: datetime, end: datetime
    ) -> AdaptationPerformance:
        rows = adaptive_ui_db.list_component_interactions(component_id, start, end)

        performance = []
        for variant in self.variants.get(component_id, []):
            mine = [r for r in rows if r.get("variant_id") == variant.variant_id]
            conversions = sum(1 for r in mine if r.get("interaction_type") == "conversion")
            positive = sum(1 for r in mine if r.get("outcome") == "positive")
            performance.append(
                UIVariantPerformance(
                    variant_id=variant.variant_id,
                    impressions=variant.performance_data.impressions,
                    interactions=len(mine),
                    conversion_rate=conversions / len(mine) if mine else 0.0,
                    user_satisfaction=positive / len(mine) if mine else 0.0,
                )
            )

        successes = sum(1 for r in rows if r.get("outcome") == "positive")
        return AdaptationPerformance(
            component_id=component_id,
            total_adaptations=len(rows),
            success_rate=successes / len(rows) if rows else 0.0,
            average_effectiveness=(
                sum(vp.user_satisfaction for vp in performance) / max(1, len(performance))
            ),
            variant_performance=performance,
            optimization_opportunities=optimization_opportunities(performance),
        )

    def evaluate_components(self) -> list[TriggeredRule]:
        """Rules whose performance threshold sits above the component's best conversion rate."""
        triggered = []
        for component_id, config in self.components.items():
            rates = [
                v.performance_data.conversions / v.performance_data.interactions
                for v in self.variants.get(component_id, [])
                if v.performance_data.interactions
            ]
            best = max(rates, default=0.0)
            for index, rule in enumerate(config.adaptation_rules):
                threshold = rule.trigger_condition.performance_threshold
                if threshold is not None and threshold > best:
                    triggered.append(
                        TriggeredRule(
                            component_id=component_id,
                            rule_index=index,
                            performance_threshold=threshold,
                            best_conversion_rate=best,
                        )
                    )
                    logger.info(
                        f"Adaptation rule {index} triggered for component {component_id}: "
                        f"best conversion {best:.3f} below threshold {threshold:.3f}"
                    )
        return triggered


@lru_cache(maxsize=1)
def get_adaptive_ui_engine() -> AdaptiveUIEngine:
    return AdaptiveUIEngine()
