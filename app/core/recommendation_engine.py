"""
Content recommendation engine.

Recommendations come from three rule-based sources: the user's current
behavior patterns, the best-performing tracked content, and the page the
user is on. Active curation strategies filter and boost them before the
top results are cached and persisted. Feedback on issued recommendations
drives the feature-importance weights.
"""

from collections import defaultdict
from datetime import datetime, timedelta
from functools import lru_cache

from app.core.config import get_settings
from app.core.content_analytics import get_content_analytics
from app.core.logging import get_logger
from app.core.personalization_engine import get_personalization_engine
from app.core.schemas_personalization import UserBehaviorProfile
from app.core.schemas_recommendations import (
    AIContentRecommendation,
    AIInsights,
    BehavioralInsight,
    ContentGapInsight,
    CurationStrategy,
    CurationStrategyCreate,
    EngineOptimization,
    JourneyStep,
    OpportunityArea,
    OptimizationOpportunity,
    PersonalizationData,
    PredictedOutcomes,
    PresentationStrategy,
    RecommendationContext,
    RecommendationFeedback,
    RecommendationFeedbackCreate,
    RecommendationPerformance,
    RecommendationReason,
    RecommendedContent,
    TimingOptimization,
    TopRecommendedContent,
)
from app.db import recommendations as recommendations_db
from app.db.supabase_client import new_id, utc_now

logger = get_logger(__name__)

MAX_RECOMMENDATIONS = 5
RETRAINING_THRESHOLD = 1000
TOP_CONTENT_WINDOW = timedelta(days=30)
FEEDBACK_HISTORY_WINDOW = timedelta(days=90)
OPTIMIZATION_WINDOW = timedelta(days=30)

DEFAULT_FEATURE_IMPORTANCE = {
    "user_behavior_patterns": 0.35,
    "content_performance_history": 0.25,
    "contextual_signals": 0.20,
    "explicit_preferences": 0.15,
    "temporal_patterns": 0.05,
}

# primary_factor -> feature it exercises
FACTOR_FEATURES = {
    "behavioral_match": "user_behavior_patterns",
    "content_performance": "content_performance_history",
    "contextual_relevance": "contextual_signals",
    "user_progression": "explicit_preferences",
}

POSITIVE_FEEDBACK = {"click", "complete", "share"}

ACTION_CONTENT_TYPES = {
    "start_will_generator": "tool",
    "view_pricing": "article",
    "continue_browsing": "guide",
}


def format_timing_estimate(milliseconds: float) -> str:
    minutes = int(milliseconds / 60000 + 0.5)
    if minutes < 1:
        return "immediately"
    if minutes < 60:
        return f"{minutes} minutes"
    return f"{int(minutes / 60 + 0.5)} hours"


def is_positive(feedback: dict) -> bool:
    """Engagement feedback or an explicit rating of 4 and up."""
    if feedback.get("feedback_type") in POSITIVE_FEEDBACK:
        return True
    rating = (feedback.get("explicit_feedback") or {}).get("rating")
    return rating is not None and rating >= 4


def _still_fresh(recs: list[AIContentRecommendation], now: datetime) -> bool:
    """A cached list is only served while every item in it is unexpired."""
    return bool(recs) and min(rec.expires_at for rec in recs) > now


class RecommendationEngine:
    def __init__(self) -> None:
        self.strategies: dict[str, CurationStrategy] = {}
        self.cache: dict[str, list[AIContentRecommendation]] = {}
        self.insights_cache: dict[str, AIInsights] = {}
        self.feedback_history: dict[str, list[RecommendationFeedback]] = defaultdict(list)
        # recommendation_id -> issued recommendation, for attributing feedback
        self.issued: dict[str, AIContentRecommendation] = {}
        self.feature_importance = dict(DEFAULT_FEATURE_IMPORTANCE)

    # =========================
    # Loading
    # =========================

    def load(self) -> None:
        self.load_curation_strategies()
        self.load_historical_feedback()

    def load_curation_strategies(self) -> None:
        try:
            rows = recommendations_db.list_active_curation_strategies()
        except Exception:
            logger.exception("Failed to load curation strategies")
            return
        self.strategies = {
            row["strategy_id"]: CurationStrategy.model_validate(row) for row in rows
        }

    def load_historical_feedback(self, now: datetime | None = None) -> None:
        now = now or utc_now()
        try:
            rows = recommendations_db.list_feedback(now - FEEDBACK_HISTORY_WINDOW)
        except Exception:
            logger.exception("Failed to load recommendation feedback")
            return

        history: dict[str, list[RecommendationFeedback]] = defaultdict(list)
        for row in rows:
            history[row["user_id"]].append(RecommendationFeedback.model_validate(row))
        self.feedback_history = history
        logger.info(f"Loaded {len(rows)} recommendation feedback items")

    def refresh(self, now: datetime | None = None) -> int:
        """Drop expired cache entries; returns how many were removed."""
        now = now or utc_now()
        expired = [
            key for key, recs in self.cache.items() if not _still_fresh(recs, now)
        ]
        for key in expired:
            del self.cache[key]
        self.issued = {rid: rec for rid, rec in self.issued.items() if rec.expires_at > now}
        return len(expired)

    # =========================
    # Generation
    # =========================

    def generate_recommendations(
        self,
        user_id: str,
        context: RecommendationContext | None = None,
        now: datetime | None = None,
    ) -> list[AIContentRecommendation]:
        context = context or RecommendationContext()
        now = now or utc_now()
        cache_key = f"{user_id}_{context.current_page}_{context.time_context}"

        cached = self.cache.get(cache_key)
        if cached and _still_fresh(cached, now):
            return cached

        try:
            profile = get_personalization_engine().analyze_behavior_patterns(
                user_id, context.session_id, now
            )
            self.generate_user_insights(user_id, profile=profile)

            candidates = (
                self._behavior_recommendations(user_id, profile, now)
                + self._performance_recommendations(user_id, now)
                + self._contextual_recommendations(user_id, context, now)
            )
            curated = self.apply_curation_strategies(candidates)
            curated.sort(key=lambda r: r.recommendation_reason.confidence_score, reverse=True)
            top = curated[:MAX_RECOMMENDATIONS]
        except Exception:
            logger.exception(f"Failed to generate recommendations for {user_id}")
            return []

        self.cache[cache_key] = top
        for rec in top:
            self.issued[rec.recommendation_id] = rec

        try:
            recommendations_db.insert_recommendations([r.model_dump(mode="json") for r in top])
        except Exception:
            logger.exception(f"Failed to store recommendations for {user_id}")

        return top

    def _behavior_recommendations(
        self, user_id: str, profile: UserBehaviorProfile, now: datetime
    ) -> list[AIContentRecommendation]:
        patterns = get_personalization_engine().patterns
        urgent = profile.behavior_score.urgency > 0.7
        recs = []
        for pattern_id in profile.current_patterns:
            pattern = patterns.get(pattern_id)
            label = pattern.pattern_name if pattern else pattern_id.replace("_", " ")
            recs.append(
                AIContentRecommendation(
                    recommendation_id=new_id(),
                    user_id=user_id,
                    content_type="guide",
                    recommended_content=RecommendedContent(
                        title=f"Personalized Guide for {label}",
                        description="Guide matched to your browsing behavior",
                        content_url=f"/guides/{pattern_id}",
                        content_preview="This guide is tailored to your specific needs...",
                        difficulty_level="intermediate",
                        topics=[pattern_id],
                        format="interactive",
                    ),
                    recommendation_reason=RecommendationReason(
                        primary_factor="behavioral_match",
                        confidence_score=0.8,
                        explanation=f"Recommended based on your {label} behavior pattern",
                        supporting_factors=["High engagement score", "Pattern consistency"],
                    ),
                    personalization_data=PersonalizationData(
                        user_segment=profile.preferences_inferred.interaction_style,
                        behavior_patterns=list(profile.current_patterns),
                        content_preferences={"guides": 0.8, "interactive": 0.7},
                        timing_optimization=TimingOptimization(
                            best_time="immediate",
                            urgency_level="high" if urgent else "medium",
                        ),
                    ),
                    predicted_outcomes=PredictedOutcomes(
                        engagement_probability=0.75,
                        completion_probability=0.65,
                        conversion_probability=profile.predictive_insights.conversion_probability,
                        satisfaction_score=0.8,
                        learning_value=0.7,
                    ),
                    presentation_strategy=PresentationStrategy(
                        messaging_tone="urgent" if urgent else "supportive",
                        visual_emphasis="moderate",
                        call_to_action="Start your personalized guide",
                        placement_priority=1,
                    ),
                    created_at=now,
                    expires_at=now + timedelta(hours=24),
                )
            )
        return recs

    def _performance_recommendations(
        self, user_id: str, now: datetime
    ) -> list[AIContentRecommendation]:
        content_ids = get_settings().RECOMMENDATION_TOP_CONTENT_IDS
        if not content_ids:
            return []

        comparison = get_content_analytics().compare_content(
            content_ids, now - TOP_CONTENT_WINDOW, now
        )
        recs = []
        for item in comparison.content_items[:2]:
            rate = item.metrics.conversion_metrics.conversion_rate
            recs.append(
                AIContentRecommendation(
                    recommendation_id=new_id(),
                    user_id=user_id,
                    content_type="tool",
                    recommended_content=RecommendedContent(
                        title=f"Top Performing: {item.content_id}",
                        description="Highly rated content by users like you",
                        content_url=f"/{item.content_id}",
                        content_preview="This content has excellent user ratings...",
                        estimated_read_time=8,
                        topics=[item.content_id],
                        format="interactive",
                    ),
                    recommendation_reason=RecommendationReason(
                        primary_factor="content_performance",
                        confidence_score=0.85,
                        explanation=f"High performance content with a {rate:.1%} conversion rate",
                        supporting_factors=["Top user ratings", "High engagement"],
                    ),
                    personalization_data=PersonalizationData(
                        user_segment="general",
                        content_preferences={"tools": 0.9},
                        timing_optimization=TimingOptimization(
                            best_time="next_interaction", urgency_level="medium"
                        ),
                    ),
                    predicted_outcomes=PredictedOutcomes(
                        engagement_probability=0.85,
                        completion_probability=0.75,
                        conversion_probability=0.4,
                        satisfaction_score=0.9,
                        learning_value=0.8,
                    ),
                    presentation_strategy=PresentationStrategy(
                        messaging_tone="promotional",
                        visual_emphasis="high",
                        call_to_action="Try our top-rated tool",
                        placement_priority=2,
                    ),
                    created_at=now,
                    expires_at=now + timedelta(hours=12),
                )
            )
        return recs

    def _contextual_recommendations(
        self, user_id: str, context: RecommendationContext, now: datetime
    ) -> list[AIContentRecommendation]:
        if context.current_page != "pricing":
            return []

        return [
            AIContentRecommendation(
                recommendation_id=new_id(),
                user_id=user_id,
                content_type="article",
                recommended_content=RecommendedContent(
                    title="Understanding Our Pricing Structure",
                    description="Detailed breakdown of pricing tiers and benefits",
                    content_url="/guides/pricing-explained",
                    content_preview="Learn about our transparent pricing...",
                    estimated_read_time=3,
                    topics=["pricing", "plans"],
                    format="article",
                ),
                recommendation_reason=RecommendationReason(
                    primary_factor="contextual_relevance",
                    confidence_score=0.9,
                    explanation="Contextually relevant to your current page visit",
                    supporting_factors=["Page context match", "High conversion potential"],
                ),
                personalization_data=PersonalizationData(
                    user_segment="prospect",
                    behavior_patterns=["price_conscious"],
                    content_preferences={"explanatory": 0.8},
                    timing_optimization=TimingOptimization(
                        best_time="immediate", urgency_level="high"
                    ),
                ),
                predicted_outcomes=PredictedOutcomes(
                    engagement_probability=0.9,
                    completion_probability=0.8,
                    conversion_probability=0.6,
                    satisfaction_score=0.85,
                    learning_value=0.9,
                ),
                presentation_strategy=PresentationStrategy(
                    messaging_tone="educational",
                    visual_emphasis="high",
                    call_to_action="Learn about pricing",
                    placement_priority=1,
                ),
                created_at=now,
                expires_at=now + timedelta(hours=6),
            )
        ]

    def apply_curation_strategies(
        self, recommendations: list[AIContentRecommendation]
    ) -> list[AIContentRecommendation]:
        """Filter by each active strategy's quality threshold and add its relevance boost."""
        curated = list(recommendations)
        for strategy in self.strategies.values():
            if not strategy.is_active:
                continue
            criteria = strategy.content_selection_criteria
            next_round = []
            for rec in curated:
                if rec.recommendation_reason.confidence_score < criteria.quality_threshold:
                    continue
                boost = criteria.relevance_scoring.get(rec.content_type, 0.0)
                if boost:
                    reason = rec.recommendation_reason.model_copy(
                        update={
                            "confidence_score": min(
                                1.0, rec.recommendation_reason.confidence_score + boost
                            )
                        }
                    )
                    rec = rec.model_copy(update={"recommendation_reason": reason})
                next_round.append(rec)
            curated = next_round
        return curated

    # =========================
    # Feedback
    # =========================

    def track_recommendation_feedback(
        self, data: RecommendationFeedbackCreate, now: datetime | None = None
    ) -> RecommendationFeedback:
        issued = self.issued.get(data.recommendation_id)
        feedback = RecommendationFeedback(
            **data.model_dump(),
            timestamp=now or utc_now(),
            primary_factor=issued.recommendation_reason.primary_factor if issued else None,
            content_id=issued.recommended_content.content_url if issued else None,
        )
        self.feedback_history[data.user_id].append(feedback)

        recommendations_db.insert_feedback(feedback.model_dump(mode="json"))

        total = sum(len(items) for items in self.feedback_history.values())
        if total > RETRAINING_THRESHOLD:
            logger.info(f"Recommendation feedback at {total} items, model retraining needed")
        return feedback

    # =========================
    # Insights
    # =========================

    def generate_user_insights(
        self, user_id: str, profile: UserBehaviorProfile | None = None
    ) -> AIInsights:
        """Gaps, opportunities, and predicted journey for a user; cached per user."""
        if profile is None:
            cached = self.insights_cache.get(user_id)
            if cached:
                return cached
            profile = get_personalization_engine().analyze_behavior_patterns(user_id)

        scores = profile.behavior_score
        gaps = []
        if scores.knowledge_level < 0.5:
            gaps.append(
                ContentGapInsight(
                    gap_type="knowledge",
                    description="Basic knowledge gap identified",
                    severity="medium",
                    recommended_content_types=["article", "guide"],
                    learning_path_position=1,
                )
            )

        insights = AIInsights(
            user_id=user_id,
            content_gap_analysis=gaps,
            content_opportunity_map=[
                OpportunityArea(
                    content_area="will_generator",
                    user_readiness=scores.intent,
                    market_demand=0.8,
                    content_availability=0.9,
                    recommendation_priority=scores.intent * 0.8 * 0.9,
                )
            ],
            behavioral_insights=[
                BehavioralInsight(
                    pattern_identified=pattern_id,
                    pattern_strength=0.8,
                    content_implications=["Prefer direct content", "Action-oriented"],
                    optimization_suggestions=["Use clear CTAs", "Minimize scrolling"],
                )
                for pattern_id in profile.current_patterns
            ],
            predictive_journey=[
                JourneyStep(
                    step_order=i + 1,
                    content_type=ACTION_CONTENT_TYPES.get(action.action, "article"),
                    estimated_timing=format_timing_estimate(action.timing_estimate),
                    success_probability=action.probability,
                )
                for i, action in enumerate(profile.predictive_insights.likely_next_actions)
            ],
        )
        self.insights_cache[user_id] = insights
        return insights

    # =========================
    # Reporting and tuning
    # =========================

    def create_curation_strategy(self, data: CurationStrategyCreate) -> CurationStrategy:
        row = recommendations_db.create_curation_strategy(
            {"strategy_id": new_id(), **data.model_dump(mode="json")}
        )
        strategy = CurationStrategy.model_validate(row)
        if strategy.is_active:
            self.strategies[strategy.strategy_id] = strategy
        return strategy

    def get_recommendation_performance(
        self, strategy_id: str, start: datetime, end: datetime
    ) -> RecommendationPerformance:
        strategy = self.strategies.get(strategy_id)
        if strategy is None:
            row = recommendations_db.get_curation_strategy(strategy_id)
            if not row:
                raise LookupError(f"Curation strategy not found: {strategy_id}")
            strategy = CurationStrategy.model_validate(row)

        feedback = recommendations_db.list_feedback(start, end)
        issued = recommendations_db.list_recommendations(start, end)

        clicks = sum(1 for f in feedback if f.get("feedback_type") == "click")
        completes = sum(1 for f in feedback if f.get("feedback_type") == "complete")
        ratings = [
            (f.get("explicit_feedback") or {}).get("rating")
            for f in feedback
            if (f.get("explicit_feedback") or {}).get("rating") is not None
        ]
        conversions = sum(1 for f in feedback if (f.get("outcome_data") or {}).get("converted"))

        ctr = clicks / len(feedback) if feedback else 0.0
        completion = completes / clicks if clicks else 0.0
        satisfaction = sum(ratings) / len(ratings) if ratings else 0.0

        return RecommendationPerformance(
            strategy_name=strategy.name,
            recommendations_generated=len(issued),
            click_through_rate=ctr,
            completion_rate=completion,
            satisfaction_score=satisfaction,
            conversion_impact=conversions / len(feedback) if feedback else 0.0,
            top_performing_content=top_recommended_content(feedback),
            optimization_opportunities=optimization_opportunities(
                ctr, completion, satisfaction, bool(ratings)
            ),
        )

    def optimize_recommendation_engine(self, now: datetime | None = None) -> EngineOptimization:
        """Re-weight feature importance by how positively each factor's recommendations landed."""
        now = now or utc_now()
        since = now - OPTIMIZATION_WINDOW
        feedback = [
            f
            for items in self.feedback_history.values()
            for f in items
            if f.timestamp >= since
        ]

        totals: dict[str, int] = defaultdict(int)
        positives: dict[str, int] = defaultdict(int)
        for item in feedback:
            factor = item.primary_factor
            if factor is None and item.recommendation_id in self.issued:
                factor = self.issued[item.recommendation_id].recommendation_reason.primary_factor
            feature = FACTOR_FEATURES.get(factor or "")
            if not feature:
                continue
            totals[feature] += 1
            if is_positive(item.model_dump(mode="json")):
                positives[feature] += 1

        previous = dict(self.feature_importance)
        performance = {
            feature: (positives[feature] / totals[feature]) if totals[feature] else weight
            for feature, weight in previous.items()
        }
        total = sum(performance.values())
        if total > 0:
            self.feature_importance = {f: v / total for f, v in performance.items()}

        logger.info(
            f"Recommendation engine re-weighted from {len(feedback)} feedback items",
            extra={"extra_data": {"weights": self.feature_importance}},
        )
        return EngineOptimization(
            optimization_summary=(
                f"Re-weighted {len(totals)} of {len(previous)} features "
                f"from {len(feedback)} feedback items"
            ),
            feedback_analyzed=len(feedback),
            previous_feature_weights=previous,
            new_feature_weights=dict(self.feature_importance),
        )


def top_recommended_content(feedback: list[dict], limit: int = 5) -> list[TopRecommendedContent]:
    grouped: dict[str, list[dict]] = defaultdict(list)
    for item in feedback:
        if item.get("content_id"):
            grouped[item["content_id"]].append(item)

    items = []
    for content_id, rows in grouped.items():
        ratings = [
            (r.get("explicit_feedback") or {}).get("rating")
            for r in rows
            if (r.get("explicit_feedback") or {}).get("rating") is not None
        ]
        items.append(
            TopRecommendedContent(
                content_id=content_id,
                recommendation_count=len(rows),
                engagement_rate=sum(1 for r in rows if is_positive(r)) / len(rows),
                user_rating=sum(ratings) / len(ratings) if ratings else 0.0,
            )
        )
    items.sort(key=lambda c: (c.engagement_rate, c.recommendation_count), reverse=True)
    return items[:limit]


def optimization_opportunities(
    ctr: float, completion: float, satisfaction: float, has_ratings: bool
) -> list[OptimizationOpportunity]:
    opportunities = []
    if ctr < 0.1:
        opportunities.append(
            OptimizationOpportunity(
                area="Content Relevance",
                current_performance=ctr,
                potential_improvement=0.1 - ctr,
                recommended_action="Improve behavioral pattern matching",
            )
        )
    if completion < 0.5:
        opportunities.append(
            OptimizationOpportunity(
                area="Content Quality",
                current_performance=completion,
                potential_improvement=0.5 - completion,
                recommended_action="Shorten or restructure recommended content",
            )
        )
    if has_ratings and satisfaction < 3.5:
        opportunities.append(
            OptimizationOpportunity(
                area="User Satisfaction",
                current_performance=satisfaction,
                potential_improvement=3.5 - satisfaction,
                recommended_action="Raise curation quality thresholds",
            )
        )
    return opportunities


@lru_cache(maxsize=1)
def get_recommendation_engine() -> RecommendationEngine:
    return RecommendationEngine()
