"""Tests for variant scoring in app.core.content_scoring."""

from datetime import datetime, timezone

import pytest

from app.core.content_scoring import (
    BASE_SCORE,
    calculate_performance_bonus,
    categorize_engagement_level,
    categorize_time_of_day,
    categorize_visit_frequency,
    score_variant_for_user,
)
from app.core.schemas_content import (
    AudienceBehavior,
    AudienceContext,
    AudienceDemographics,
    BehaviorProfile,
    ContentVariant,
    ProfileDemographics,
    TargetAudience,
    UserProfile,
    VariantPerformanceMetrics,
)

NOON = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)


def _variant(audience: TargetAudience | None = None, **metrics) -> ContentVariant:
    return ContentVariant(
        id="v1",
        content_id="hero",
        variant_name="A",
        target_audience=audience or TargetAudience(),
        performance_metrics=VariantPerformanceMetrics(**metrics),
    )


# ── Categorisation ──


class TestCategories:
    @pytest.mark.parametrize(
        "visits,expected",
        [(1, "first_time"), (0, "returning"), (2, "returning"), (5, "returning"), (6, "frequent")],
    )
    def test_visit_frequency(self, visits, expected):
        assert categorize_visit_frequency(visits) == expected

    @pytest.mark.parametrize(
        "duration,expected",
        [(0, "low"), (59_999, "low"), (60_000, "medium"), (299_999, "medium"), (300_000, "high")],
    )
    def test_engagement_level(self, duration, expected):
        assert categorize_engagement_level(duration) == expected

    @pytest.mark.parametrize(
        "hour,expected",
        [(0, "night"), (5, "night"), (6, "morning"), (12, "afternoon"), (18, "evening"), (22, "night")],
    )
    def test_time_of_day(self, hour, expected):
        assert categorize_time_of_day(datetime(2026, 1, 1, hour)) == expected


# ── Performance bonus ──


class TestPerformanceBonus:
    def test_zero_without_impressions(self):
        assert calculate_performance_bonus(_variant(clicks=5, conversions=2)) == 0.0

    def test_bonus_is_capped(self):
        """CTR 50% and CR 50% saturate both caps."""
        variant = _variant(impressions=100, clicks=50, conversions=50)
        assert calculate_performance_bonus(variant) == pytest.approx(0.25)

    def test_small_rates_scale_linearly(self):
        variant = _variant(impressions=1000, clicks=5, conversions=1)
        # 0.005 * 10 + 0.001 * 50
        assert calculate_performance_bonus(variant) == pytest.approx(0.1)


# ── Scoring ──


class TestScoreVariantForUser:
    def test_untargeted_variant_scores_base(self):
        result = score_variant_for_user(_variant(), UserProfile(user_id="u1"), {}, NOON)

        assert result.confidence_score == BASE_SCORE
        assert result.reasoning == []
        assert result.personalization_factors == []
        assert result.expected_performance.click_probability == pytest.approx(0.4)
        assert result.expected_performance.conversion_probability == pytest.approx(0.15)
        assert result.expected_performance.engagement_score == pytest.approx(50)

    def test_demographic_matches(self):
        audience = TargetAudience(
            demographics=AudienceDemographics(age_range=(25, 40), location=["US", "CA"])
        )
        profile = UserProfile(
            user_id="u1", demographics=ProfileDemographics(age=30, location="CA")
        )

        result = score_variant_for_user(_variant(audience), profile, {}, NOON)

        assert result.confidence_score == pytest.approx(0.75)
        assert result.personalization_factors == ["age", "location"]
        assert "Age demographic match" in result.reasoning

    def test_age_outside_range_does_not_score(self):
        audience = TargetAudience(demographics=AudienceDemographics(age_range=(25, 40)))
        profile = UserProfile(user_id="u1", demographics=ProfileDemographics(age=41))

        result = score_variant_for_user(_variant(audience), profile, {}, NOON)

        assert result.confidence_score == BASE_SCORE

    def test_behavior_and_context_matches(self):
        audience = TargetAudience(
            behavior=AudienceBehavior(visit_frequency="frequent", engagement_level="high"),
            context=AudienceContext(device_type="mobile", time_of_day="afternoon"),
        )
        profile = UserProfile(
            user_id="u1",
            behavior_profile=BehaviorProfile(visit_frequency=12, avg_session_duration=400_000),
        )

        result = score_variant_for_user(
            _variant(audience), profile, {"device_type": "mobile"}, NOON
        )

        assert result.personalization_factors == ["visit_frequency", "engagement", "device", "timing"]
        assert result.confidence_score == pytest.approx(1.0)

    def test_device_requires_request_context(self):
        audience = TargetAudience(context=AudienceContext(device_type="desktop"))

        result = score_variant_for_user(_variant(audience), UserProfile(user_id="u1"), {}, NOON)

        assert "device" not in result.personalization_factors

    def test_score_is_clamped_to_one(self):
        audience = TargetAudience(
            demographics=AudienceDemographics(age_range=(18, 99)),
            behavior=AudienceBehavior(visit_frequency="first_time", engagement_level="low"),
            context=AudienceContext(time_of_day="afternoon"),
        )
        profile = UserProfile(user_id="u1", demographics=ProfileDemographics(age=50))
        variant = _variant(audience, impressions=10, clicks=5, conversions=5)

        result = score_variant_for_user(variant, profile, {}, NOON)

        assert result.confidence_score == 1.0
        assert result.personalization_factors[-1] == "performance_history"
        assert "High historical performance" in result.reasoning
