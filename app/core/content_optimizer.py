"""Dynamic content optimizer.

Serves the best-scoring content variant per visitor, keeps running
performance counters on variants, and periodically shifts traffic
allocation of performance-based experiments toward the variants that
convert.
"""

from collections import Counter, defaultdict
from datetime import datetime, timedelta
from functools import lru_cache
from typing import Any

from app.core.content_scoring import categorize_visit_frequency, score_variant_for_user
from app.core.logging import get_logger
from app.core.schemas_content import (
    ContentExperiment,
    ContentExperimentCreate,
    ContentPerformanceAnalysis,
    ContentRecommendation,
    ContentVariant,
    ContentVariantCreate,
    OptimizationRecommendation,
    TrendPoint,
    UserProfile,
    VariantMetrics,
    VariantPerformance,
)
from app.db import content as content_db
from app.db import user_profiles as profiles_db
from app.db.supabase_client import utc_now

logger = get_logger(__name__)

ANALYSIS_WINDOW_DAYS = 30
BEST_TO_WORST_RATIO = 1.5
HIGH_CONVERSION_RATE = 0.05
LOW_CONVERSION_RATE = 0.01


class DynamicContentOptimizer:
    """In-memory view of running content experiments backed by Supabase."""

    def __init__(self) -> None:
        self.experiments: dict[str, ContentExperiment] = {}
        self.variants: dict[str, list[ContentVariant]] = {}
        self.profiles: dict[str, UserProfile] = {}

    # =========================
    # Loading
    # =========================

    def refresh(self) -> None:
        """Reload running experiments and active variants."""
        self.load_active_experiments()
        self.load_content_variants()

    def load_active_experiments(self) -> None:
        try:
            rows = content_db.list_running_content_experiments()
        except Exception:
            logger.exception("Failed to load active content experiments")
            return

        self.experiments = {row["id"]: ContentExperiment.model_validate(row) for row in rows}
        logger.debug(f"Loaded {len(self.experiments)} running content experiments")

    def load_content_variants(self) -> None:
        try:
            rows = content_db.list_active_content_variants()
        except Exception:
            logger.exception("Failed to load content variants")
            return

        grouped: dict[str, list[ContentVariant]] = defaultdict(list)
        for row in rows:
            variant = ContentVariant.model_validate(row)
            grouped[variant.content_id].append(variant)
        self.variants = dict(grouped)

    def get_variants(self, content_id: str) -> list[ContentVariant]:
        """Variants for a content id, loading them on first use."""
        if content_id not in self.variants:
            rows = content_db.list_active_content_variants(content_id)
            self.variants[content_id] = [ContentVariant.model_validate(r) for r in rows]
        return self.variants[content_id]

    def _find_variant(self, content_id: str, variant_id: str) -> ContentVariant | None:
        return next((v for v in self.get_variants(content_id) if v.id == variant_id), None)

    # =========================
    # Authoring
    # =========================

    def create_content_experiment(self, data: ContentExperimentCreate) -> ContentExperiment:
        row = content_db.create_content_experiment(data.model_dump(mode="json"))
        experiment = ContentExperiment.model_validate(row)
        if experiment.status == "running":
            self.experiments[experiment.id] = experiment
        logger.info(f"Created content experiment {experiment.id} for content {experiment.content_id}")
        return experiment

    def create_content_variant(self, data: ContentVariantCreate) -> ContentVariant:
        row = content_db.create_content_variant(data.model_dump(mode="json"))
        variant = ContentVariant.model_validate(row)
        self.variants.setdefault(variant.content_id, []).append(variant)
        return variant

    # =========================
    # Serving
    # =========================

    def get_optimal_content(
        self,
        content_id: str,
        user_id: str,
        context: dict[str, Any] | None = None,
        now: datetime | None = None,
    ) -> ContentRecommendation | None:
        """
        Pick the highest-scoring active variant for a visitor and record an impression.

        Ties keep load order. Returns None when the content has no active variants.
        """
        context = context or {}
        variants = self.get_variants(content_id)
        if not variants:
            return None

        profile = self.get_user_profile(user_id)
        moment = now or utc_now()
        scored = [(v, score_variant_for_user(v, profile, context, moment)) for v in variants]
        # sorted() is stable, so equal scores keep load order
        best_variant, best_score = sorted(scored, key=lambda pair: -pair[1].confidence_score)[0]

        self._track_impression(content_id, best_variant, user_id, profile, context)

        return ContentRecommendation(
            content_id=content_id,
            variant_id=best_variant.id,
            confidence_score=best_score.confidence_score,
            reasoning=best_score.reasoning,
            expected_performance=best_score.expected_performance,
            personalization_factors=best_score.personalization_factors,
        )

    def _track_impression(
        self,
        content_id: str,
        variant: ContentVariant,
        user_id: str,
        profile: UserProfile,
        context: dict[str, Any],
    ) -> None:
        variant.performance_metrics.impressions += 1
        try:
            content_db.update_variant_metrics(variant.id, variant.performance_metrics.model_dump())
            content_db.insert_content_interaction(
                {
                    "content_id": content_id,
                    "variant_id": variant.id,
                    "user_id": user_id,
                    "interaction_type": "impression",
                    "metadata": {
                        "device_type": context.get("device_type") or profile.context.current_device,
                        "visit_category": categorize_visit_frequency(
                            profile.behavior_profile.visit_frequency
                        ),
                    },
                }
            )
        except Exception:
            logger.exception(f"Failed to track impression for variant {variant.id}")

    def track_content_interaction(
        self,
        content_id: str,
        variant_id: str,
        user_id: str,
        interaction_type: str,
        value: float | None = None,
    ) -> None:
        """Update variant counters, log the interaction, and fold it into the user profile."""
        variant = self._find_variant(content_id, variant_id)
        if variant:
            metrics = variant.performance_metrics
            if interaction_type == "impression":
                metrics.impressions += 1
            elif interaction_type == "click":
                metrics.clicks += 1
            elif interaction_type == "conversion":
                metrics.conversions += 1
            elif interaction_type == "engagement":
                metrics.engagement_time += value or 0
            try:
                content_db.update_variant_metrics(variant_id, metrics.model_dump())
            except Exception:
                logger.exception(f"Failed to update variant metrics for {variant_id}")

        try:
            content_db.insert_content_interaction(
                {
                    "content_id": content_id,
                    "variant_id": variant_id,
                    "user_id": user_id,
                    "interaction_type": interaction_type,
                    "value": value,
                }
            )
        except Exception:
            logger.exception(f"Failed to track content interaction for {content_id}")

        self._update_profile_from_interaction(user_id, content_id, interaction_type)

    def _update_profile_from_interaction(
        self, user_id: str, content_id: str, interaction_type: str
    ) -> None:
        profile = self.get_user_profile(user_id)
        behavior = profile.behavior_profile
        if interaction_type == "conversion":
            behavior.conversion_events.append(content_id)
        behavior.engagement_patterns[content_id] = behavior.engagement_patterns.get(content_id, 0) + 1
        profile.last_updated = utc_now()

        try:
            profiles_db.update_user_profile(
                user_id, {"behavior_profile": behavior.model_dump(mode="json")}
            )
        except Exception:
            logger.exception(f"Failed to update user profile {user_id}")

    # =========================
    # Profiles
    # =========================

    def get_user_profile(self, user_id: str) -> UserProfile:
        """Cached profile, falling back to the database, then to a new default profile."""
        if user_id in self.profiles:
            return self.profiles[user_id]

        row = None
        try:
            row = profiles_db.get_user_profile(user_id)
        except Exception:
            logger.exception(f"Failed to load user profile {user_id}")

        if row:
            profile = UserProfile.model_validate(row)
        else:
            profile = UserProfile(user_id=user_id, last_updated=utc_now())
            profile.context.session_start = utc_now()
            try:
                profiles_db.create_user_profile(profile.model_dump(mode="json"))
            except Exception:
                logger.exception(f"Failed to create user profile {user_id}")

        self.profiles[user_id] = profile
        return profile

    # =========================
    # Analysis
    # =========================

    def get_content_performance_analysis(
        self, content_id: str, start: datetime, end: datetime
    ) -> ContentPerformanceAnalysis:
        variants = self.get_variants(content_id)
        interactions = content_db.list_content_interactions(content_id=content_id, start=start, end=end)

        by_variant: dict[str, list[dict]] = defaultdict(list)
        for row in interactions:
            by_variant[row.get("variant_id")].append(row)

        performance = [
            VariantPerformance(
                variant_id=variant.id,
                metrics=calculate_variant_metrics(by_variant.get(variant.id, [])),
                audience_breakdown=audience_breakdown(by_variant.get(variant.id, [])),
                performance_trend=performance_trend(by_variant.get(variant.id, [])),
            )
            for variant in variants
        ]

        return ContentPerformanceAnalysis(
            content_id=content_id,
            variant_performance=performance,
            optimization_recommendations=generate_optimization_recommendations(performance),
            insights=generate_content_insights(performance),
        )

    def optimize_content_allocation(self, content_id: str) -> dict[str, float] | None:
        """
        Shift traffic weights of a performance-based experiment toward converting variants.

        Weights are Laplace-smoothed conversion rates normalized to sum to 1,
        so variants without data keep a share. Returns the persisted weights,
        or None when the content has no performance-based experiment.
        """
        experiment = next(
            (e for e in self.experiments.values() if e.content_id == content_id), None
        )
        if not experiment or experiment.allocation_strategy != "performance_based":
            return None

        variants = self.get_variants(content_id)
        if not variants:
            return None

        end = utc_now()
        interactions = content_db.list_content_interactions(
            content_id=content_id, start=end - timedelta(days=ANALYSIS_WINDOW_DAYS), end=end
        )
        counts: dict[str, Counter] = defaultdict(Counter)
        for row in interactions:
            counts[row.get("variant_id")][row.get("interaction_type")] += 1

        raw = {}
        for variant in variants:
            c = counts.get(variant.id, Counter())
            raw[variant.id] = (c["conversion"] + 1) / (c["impression"] + 2)
        total = sum(raw.values())
        weights = {variant_id: round(r / total, 4) for variant_id, r in raw.items()}

        experiment.allocation_weights = weights
        content_db.update_content_experiment(experiment.id, {"allocation_weights": weights})
        logger.info(f"Updated allocation weights for experiment {experiment.id}: {weights}")
        return weights

    def optimize_all(self) -> int:
        """Re-optimize every content id with loaded variants. Returns how many were updated."""
        updated = 0
        for content_id in list(self.variants):
            try:
                if self.optimize_content_allocation(content_id) is not None:
                    updated += 1
            except Exception:
                logger.exception(f"Failed to optimize allocation for content {content_id}")
        return updated


def calculate_variant_metrics(interactions: list[dict]) -> VariantMetrics:
    counts = Counter(row.get("interaction_type") for row in interactions)
    impressions = counts["impression"]
    if impressions == 0:
        return VariantMetrics()

    engagement_rate = (counts["click"] + counts["conversion"]) / impressions
    return VariantMetrics(
        ctr=counts["click"] / impressions,
        conversion_rate=counts["conversion"] / impressions,
        engagement_rate=engagement_rate,
        bounce_rate=max(0.0, 1 - engagement_rate),
        revenue_per_impression=0,
    )


def audience_breakdown(interactions: list[dict]) -> dict[str, float]:
    """Share of impressions per device type and per new/returning visitors."""
    impressions = [r for r in interactions if r.get("interaction_type") == "impression"]
    if not impressions:
        return {}

    total = len(impressions)
    devices = Counter((r.get("metadata") or {}).get("device_type") or "unknown" for r in impressions)
    new_users = sum(
        1 for r in impressions if (r.get("metadata") or {}).get("visit_category") == "first_time"
    )

    breakdown = {device: count / total for device, count in devices.items()}
    breakdown["new_users"] = new_users / total
    breakdown["returning_users"] = (total - new_users) / total
    return breakdown


def performance_trend(interactions: list[dict]) -> list[TrendPoint]:
    """Daily impressions and conversions, ordered by date."""
    days: dict[str, TrendPoint] = {}
    for row in interactions:
        day = str(row.get("timestamp", ""))[:10]
        if not day:
            continue
        point = days.setdefault(day, TrendPoint(date=day))
        if row.get("interaction_type") == "impression":
            point.impressions += 1
        elif row.get("interaction_type") == "conversion":
            point.conversions += 1
    return [days[d] for d in sorted(days)]


def generate_optimization_recommendations(
    performance: list[VariantPerformance],
) -> list[OptimizationRecommendation]:
    if len(performance) < 2:
        return []

    best = max(performance, key=lambda p: p.metrics.conversion_rate)
    worst = min(performance, key=lambda p: p.metrics.conversion_rate)
    if best.metrics.conversion_rate > worst.metrics.conversion_rate * BEST_TO_WORST_RATIO:
        return [
            OptimizationRecommendation(
                type="content_variation",
                recommendation="Allocate more traffic to high-performing variant",
                expected_impact="Could improve overall conversion rate by 20-40%",
                confidence=0.8,
            )
        ]
    return []


def generate_content_insights(performance: list[VariantPerformance]) -> list[str]:
    if not performance:
        return []

    avg_rate = sum(p.metrics.conversion_rate for p in performance) / len(performance)
    if avg_rate > HIGH_CONVERSION_RATE:
        return ["Content is performing above average with strong conversion rates"]
    if avg_rate < LOW_CONVERSION_RATE:
        return ["Content may benefit from messaging or targeting optimization"]
    return []


@lru_cache(maxsize=1)
def get_content_optimizer() -> DynamicContentOptimizer:
    """Process-wide optimizer instance."""
    return DynamicContentOptimizer()
