"""Behavior-driven personalization engine.

Keeps a behavior profile per user built from their recent interactions,
matches the profile against configured behavior patterns, and turns
matching strategies and patterns into concrete UI/content adaptations.
Outcomes reported after an adaptation feed back into the profile and into
the adaptation's effectiveness tracking.
"""

import logging
from collections import Counter
from datetime import datetime
from functools import lru_cache
from typing import Any

from app.core.behavior_scoring import (
    calculate_behavior_scores,
    effectiveness_score,
    generate_predictive_insights,
    infer_preferences,
    matches_pattern,
    rule_applies,
    strategy_applies,
)
from app.core.experiment_stats import mean_shift_significance
from app.core.logging import get_logger, log_with_context
from app.core.schemas_personalization import (
    Adaptation,
    BehaviorPattern,
    BehaviorPatternCreate,
    EffectivenessTracking,
    InteractionRecord,
    PersonalizationState,
    PersonalizationStrategy,
    PersonalizationStrategyCreate,
    RealTimeAdaptation,
    StrategyEffectiveness,
    TopAdaptation,
    UserBehaviorProfile,
)
from app.db import behavior as behavior_db
from app.db.supabase_client import new_id, utc_now

logger = get_logger(__name__)

MAX_HISTORY = 500
STRATEGY_CONFIDENCE = 0.8
CONTENT_PATTERN_CONFIDENCE = 0.75
UI_PATTERN_CONFIDENCE = 0.7
CONVERSION_INTENT_BOOST = 0.1
ENGAGEMENT_BOOST = 0.05
CONFIDENCE_BOOST = 0.1

DEFAULT_PATTERNS = [
    {
        "pattern_name": "Quick Decision Maker",
        "description": "Users who make decisions quickly with minimal browsing",
        "trigger_conditions": {"session_duration": 300, "interaction_frequency": 5},
        "user_characteristics": {
            "engagement_level": "high",
            "intent_signals": ["quick_clicks", "minimal_scrolling"],
            "preferred_content_types": ["summaries", "key_points"],
            "typical_user_journey": ["landing", "action"],
        },
        "personalization_rules": {
            "content_adjustments": {"show_summaries": True, "highlight_key_benefits": True},
            "ui_modifications": {"prominent_cta": True, "minimal_options": True},
            "messaging_tone": "direct",
            "call_to_action_style": "direct",
        },
        "success_metrics": {
            "engagement_improvement": 0.2,
            "conversion_lift": 0.15,
            "retention_impact": 0.1,
        },
    }
]


class BehaviorPersonalizationEngine:
    def __init__(self) -> None:
        self.patterns: dict[str, BehaviorPattern] = {}
        self.strategies: dict[str, PersonalizationStrategy] = {}
        self.profiles: dict[str, UserBehaviorProfile] = {}
        # user_id -> latest adaptation and the persisted per-strategy row ids
        self.latest_adaptations: dict[str, tuple[RealTimeAdaptation, list[str]]] = {}

    # =========================
    # Loading
    # =========================

    def refresh(self) -> None:
        self.load_behavior_patterns()
        self.load_personalization_strategies()

    def load_behavior_patterns(self) -> None:
        """Load patterns; seed the defaults when none exist yet."""
        try:
            rows = behavior_db.list_behavior_patterns()
        except Exception:
            logger.exception("Failed to load behavior patterns")
            return

        self.patterns = {row["id"]: BehaviorPattern.model_validate(row) for row in rows}
        if not self.patterns:
            for pattern in DEFAULT_PATTERNS:
                try:
                    self.create_behavior_pattern(BehaviorPatternCreate.model_validate(pattern))
                except Exception:
                    logger.exception(f"Failed to seed behavior pattern {pattern['pattern_name']}")

    def load_personalization_strategies(self) -> None:
        try:
            rows = behavior_db.list_active_strategies()
        except Exception:
            logger.exception("Failed to load personalization strategies")
            return

        self.strategies = {row["id"]: PersonalizationStrategy.model_validate(row) for row in rows}

    # =========================
    # Authoring
    # =========================

    def create_behavior_pattern(self, data: BehaviorPatternCreate) -> BehaviorPattern:
        row = behavior_db.create_behavior_pattern({"id": new_id(), **data.model_dump(mode="json")})
        pattern = BehaviorPattern.model_validate(row)
        self.patterns[pattern.id] = pattern
        return pattern

    def create_personalization_strategy(
        self, data: PersonalizationStrategyCreate
    ) -> PersonalizationStrategy:
        row = behavior_db.create_strategy({"id": new_id(), **data.model_dump(mode="json")})
        strategy = PersonalizationStrategy.model_validate(row)
        if strategy.is_active:
            self.strategies[strategy.id] = strategy
        return strategy

    # =========================
    # Profiles
    # =========================

    def get_profile(self, user_id: str, session_id: str | None = None) -> UserBehaviorProfile:
        """Cached profile, then stored profile, then a fresh default."""
        profile = self.profiles.get(user_id)
        if profile is None:
            row = None
            try:
                row = behavior_db.get_behavior_profile(user_id)
            except Exception:
                logger.exception(f"Failed to load behavior profile for {user_id}")
            if row:
                profile = UserBehaviorProfile.model_validate(row)
            else:
                profile = UserBehaviorProfile(
                    user_id=user_id,
                    session_id=session_id,
                    personalization_state=PersonalizationState(last_adaptation=utc_now()),
                )
            self.profiles[user_id] = profile

        if session_id:
            profile.session_id = session_id
        return profile

    def record_interaction(
        self,
        user_id: str,
        action_type: str,
        context: dict[str, Any] | None = None,
        timestamp: datetime | None = None,
        outcome: str | None = None,
    ) -> UserBehaviorProfile:
        profile = self.get_profile(user_id)
        profile.interaction_history.append(
            InteractionRecord(
                timestamp=timestamp or utc_now(),
                action_type=action_type,
                context=context or {},
                outcome=outcome,
            )
        )
        if len(profile.interaction_history) > MAX_HISTORY:
            profile.interaction_history = profile.interaction_history[-MAX_HISTORY:]
        return profile

    def _persist_profile(self, profile: UserBehaviorProfile) -> None:
        try:
            behavior_db.upsert_behavior_profile(profile.model_dump(mode="json"))
        except Exception:
            logger.exception(f"Failed to persist behavior profile for {profile.user_id}")

    # =========================
    # Analysis
    # =========================

    def analyze_behavior_patterns(
        self, user_id: str, session_id: str | None = None, now: datetime | None = None
    ) -> UserBehaviorProfile:
        """Re-derive patterns, scores, preferences, and predictions for a user."""
        now = now or utc_now()
        profile = self.get_profile(user_id, session_id)

        profile.current_patterns = [
            pattern_id
            for pattern_id, pattern in self.patterns.items()
            if matches_pattern(profile, pattern, now)
        ]
        profile.behavior_score = calculate_behavior_scores(profile.interaction_history, now)
        profile.preferences_inferred = infer_preferences(
            profile.interaction_history, profile.behavior_score
        )
        profile.predictive_insights = generate_predictive_insights(profile.behavior_score)
        profile.personalization_state.effectiveness_score = effectiveness_score(
            profile.interaction_history, now, profile.personalization_state.effectiveness_score
        )

        self._persist_profile(profile)
        return profile

    def apply_personalization(
        self, user_id: str, context: dict[str, Any] | None = None, now: datetime | None = None
    ) -> RealTimeAdaptation:
        """
        Compute the adaptations to apply for a user right now.

        Strategy rules are evaluated in descending priority; matched
        patterns contribute their content and UI adjustments after them.
        One row per contributing strategy is stored so effectiveness can be
        reported per strategy.
        """
        context = context or {}
        now = now or utc_now()
        profile = self.analyze_behavior_patterns(user_id, context.get("session_id"), now)

        adaptations: list[Adaptation] = []
        applied_strategies: list[PersonalizationStrategy] = []
        for strategy in self.strategies.values():
            if not strategy_applies(strategy, profile):
                continue
            rules = sorted(strategy.adaptation_rules, key=lambda r: r.priority, reverse=True)
            strategy_adaptations = [
                Adaptation(
                    component=rule.modification_type,
                    original_config=context.get("original_config") or {},
                    adapted_config=rule.changes,
                    reasoning=f"Applied {strategy.name} strategy based on {rule.trigger}",
                    confidence=STRATEGY_CONFIDENCE,
                    strategy_id=strategy.id,
                )
                for rule in rules
                if rule_applies(rule, profile, context)
            ]
            if strategy_adaptations:
                adaptations.extend(strategy_adaptations)
                applied_strategies.append(strategy)

        for pattern_id in profile.current_patterns:
            pattern = self.patterns.get(pattern_id)
            if pattern:
                adaptations.extend(_pattern_adaptations(pattern))

        adaptation = RealTimeAdaptation(
            id=new_id(),
            user_id=user_id,
            adaptations=adaptations,
            applied_at=now,
            effectiveness_tracking=EffectivenessTracking(
                engagement_before=profile.behavior_score.engagement,
            ),
        )

        row_ids = []
        for strategy in applied_strategies:
            row_id = new_id()
            try:
                behavior_db.insert_adaptation(
                    {
                        "id": row_id,
                        "user_id": user_id,
                        "strategy_id": strategy.id,
                        "adaptations": [
                            a.model_dump(mode="json")
                            for a in adaptations
                            if a.strategy_id == strategy.id
                        ],
                        "applied_at": now.isoformat(),
                        "effectiveness_tracking": adaptation.effectiveness_tracking.model_dump(),
                    }
                )
                row_ids.append(row_id)
            except Exception:
                logger.exception(f"Failed to store adaptation for strategy {strategy.id}")

        if adaptations:
            state = profile.personalization_state
            state.last_adaptation = now
            if applied_strategies:
                state.current_strategy = applied_strategies[0].id
            state.adaptations_applied = (
                state.adaptations_applied + [a.component for a in adaptations]
            )[-50:]
            self._persist_profile(profile)
            log_with_context(
                logger,
                logging.INFO,
                f"Applied {len(adaptations)} adaptations",
                user_id=user_id,
                strategies=[s.id for s in applied_strategies],
            )

        self.latest_adaptations[user_id] = (adaptation, row_ids)
        return adaptation

    def track_interaction_outcome(
        self,
        user_id: str,
        interaction_type: str,
        outcome: str,
        context: dict[str, Any] | None = None,
        now: datetime | None = None,
    ) -> None:
        """Fold an interaction outcome back into the profile and the latest adaptation."""
        now = now or utc_now()
        if user_id not in self.profiles:
            logger.debug(f"Outcome for unknown profile {user_id} ignored")
            return

        profile = self.record_interaction(user_id, interaction_type, context, now, outcome)

        latest = self.latest_adaptations.get(user_id)
        if latest:
            adaptation, row_ids = latest
            tracking = adaptation.effectiveness_tracking
            tracking.engagement_after = calculate_behavior_scores(
                profile.interaction_history, now
            ).engagement
            if outcome == "conversion":
                tracking.conversion_impact = True
                for item in adaptation.adaptations:
                    item.confidence = min(1.0, item.confidence + CONFIDENCE_BOOST)
            for row_id in row_ids:
                try:
                    behavior_db.update_adaptation(
                        row_id, {"effectiveness_tracking": tracking.model_dump()}
                    )
                except Exception:
                    logger.exception(f"Failed to update adaptation {row_id}")

        scores = profile.behavior_score
        if outcome == "conversion":
            scores.intent = min(1.0, scores.intent + CONVERSION_INTENT_BOOST)
        elif outcome == "engagement":
            scores.engagement = min(1.0, scores.engagement + ENGAGEMENT_BOOST)

        self._persist_profile(profile)

    # =========================
    # Reporting
    # =========================

    def get_personalization_effectiveness(
        self, strategy_id: str, start: datetime, end: datetime
    ) -> StrategyEffectiveness:
        strategy = self.strategies.get(strategy_id)
        if strategy is None:
            row = behavior_db.get_strategy(strategy_id)
            if not row:
                raise LookupError(f"Strategy not found: {strategy_id}")
            strategy = PersonalizationStrategy.model_validate(row)

        rows = behavior_db.list_adaptations(strategy_id, start, end)
        participants = len({r["user_id"] for r in rows})
        improvements = [
            (r.get("effectiveness_tracking") or {}).get("engagement_after", 0)
            - (r.get("effectiveness_tracking") or {}).get("engagement_before", 0)
            for r in rows
        ]
        avg_improvement = sum(improvements) / len(improvements) if improvements else 0.0
        conversions = sum(
            1 for r in rows if (r.get("effectiveness_tracking") or {}).get("conversion_impact")
        )

        return StrategyEffectiveness(
            strategy_name=strategy.name,
            participants=participants,
            engagement_improvement=avg_improvement,
            conversion_lift=conversions / participants if participants else 0.0,
            statistical_significance=mean_shift_significance(improvements),
            top_adaptations=top_adaptations(rows),
            insights=strategy_insights(strategy, rows),
        )


def _pattern_adaptations(pattern: BehaviorPattern) -> list[Adaptation]:
    rules = pattern.personalization_rules
    adaptations = []
    if rules.content_adjustments:
        adaptations.append(
            Adaptation(
                component="content",
                adapted_config=rules.content_adjustments,
                reasoning=f"Applied {pattern.pattern_name} content adaptations",
                confidence=CONTENT_PATTERN_CONFIDENCE,
            )
        )
    if rules.ui_modifications:
        adaptations.append(
            Adaptation(
                component="ui",
                adapted_config=rules.ui_modifications,
                reasoning=f"Applied {pattern.pattern_name} UI modifications",
                confidence=UI_PATTERN_CONFIDENCE,
            )
        )
    return adaptations


def top_adaptations(rows: list[dict]) -> list[TopAdaptation]:
    usage: Counter = Counter()
    impact: Counter = Counter()
    for row in rows:
        converted = bool((row.get("effectiveness_tracking") or {}).get("conversion_impact"))
        for item in row.get("adaptations") or []:
            component = item.get("component")
            usage[component] += 1
            if converted:
                impact[component] += 1

    return [
        TopAdaptation(
            adaptation=component,
            impact_score=impact[component] / count,
            usage_frequency=count,
        )
        for component, count in usage.most_common()
    ]


def strategy_insights(strategy: PersonalizationStrategy, rows: list[dict]) -> list[str]:
    if not rows:
        return []

    insights = []
    conversions = sum(
        1 for r in rows if (r.get("effectiveness_tracking") or {}).get("conversion_impact")
    )
    if conversions / len(rows) > 0.1:
        insights.append(f'Strategy "{strategy.name}" shows strong conversion performance')
    if len(rows) > 100:
        insights.append("Strategy has significant user reach and engagement")
    return insights


@lru_cache(maxsize=1)
def get_personalization_engine() -> BehaviorPersonalizationEngine:
    return BehaviorPersonalizationEngine()
