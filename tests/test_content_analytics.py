"""Tests for content performance analytics."""

from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest

from app.core.content_analytics import (
    ContentPerformanceAnalytics,
    _next_quarters,
    analyze_cannibalization,
    build_roadmap,
    calculate_content_metrics,
    freshness_score,
    identify_content_gaps,
    identify_underperformers,
)
from app.core.schemas_content import Underperformer

END = datetime(2026, 4, 30, tzinfo=timezone.utc)
START = END - timedelta(days=30)


def _row(content_id: str, kind: str, user: str | None = "u1", session: str | None = "s1", ts: datetime | None = None, **metadata):
    return {
        "content_id": content_id,
        "interaction_type": kind,
        "user_id": user,
        "session_id": session,
        "timestamp": (ts or END - timedelta(days=1)).isoformat(),
        "metadata": metadata,
    }


class TestCalculateContentMetrics:
    def test_empty(self):
        metrics = calculate_content_metrics("c1", [], START, END)
        assert metrics.performance_data.views == 0
        assert metrics.performance_data.bounce_rate == 0.0
        assert metrics.conversion_metrics.conversion_rate == 0.0
        assert metrics.audience_insights.behavior_segments == {}

    def test_aggregates_interactions(self):
        rows = [
            _row("c1", "page_view", "u1", "s1", device_type="mobile"),
            _row("c1", "page_view", "u1", "s2", device_type="mobile"),
            _row("c1", "page_view", "u2", "s3", device_type="desktop"),
            _row("c1", "page_view", "u3", "s4"),
            _row("c1", "click", "u1", "s1"),
            _row("c1", "conversion", "u2", "s3"),
            _row("c1", "time_on_page", "u1", "s1", duration=30_000),
            _row("c1", "time_on_page", "u2", "s3", duration=10_000),
            _row("c1", "scroll", "u1", "s1", scroll_depth=0.9),
            _row("c1", "micro_conversion", "u3", "s4"),
        ]

        metrics = calculate_content_metrics("c1", rows, START, END)

        data = metrics.performance_data
        assert (data.views, data.unique_views, data.interactions, data.conversions) == (4, 3, 1, 1)
        assert data.time_on_content == pytest.approx(20_000)
        assert data.bounce_rate == pytest.approx(0.25)
        assert metrics.engagement_metrics.average_read_time == pytest.approx(20)
        assert metrics.engagement_metrics.completion_rate == 1.0
        assert metrics.engagement_metrics.return_visitor_rate == pytest.approx(1 / 3)
        assert metrics.conversion_metrics.conversion_rate == pytest.approx(0.25)
        assert metrics.conversion_metrics.conversion_value == 50
        assert metrics.conversion_metrics.micro_conversions == 1
        assert metrics.audience_insights.device_breakdown == {
            "mobile": 0.5,
            "desktop": 0.25,
            "unknown": 0.25,
        }


class TestFreshness:
    def test_default_without_timestamps(self):
        assert freshness_score([], END) == 0.8

    def test_linear_decay_and_floor(self):
        assert freshness_score([{"timestamp": END.isoformat()}], END) == 1.0
        ninety = (END - timedelta(days=90)).isoformat()
        assert freshness_score([{"timestamp": ninety}], END) == pytest.approx(0.5)
        ancient = (END - timedelta(days=400)).isoformat()
        assert freshness_score([{"timestamp": ancient}], END) == 0.2

    def test_offset_less_timestamp_is_read_as_utc(self):
        naive = (END - timedelta(days=90)).replace(tzinfo=None).isoformat()
        assert freshness_score([{"timestamp": naive}], END) == pytest.approx(0.5)


class TestAnalyticsEngine:
    def test_metrics_are_cached_and_persisted(self, fake_db):
        fake_db.tables["content_interactions"] = [_row("c1", "page_view")]
        analytics = ContentPerformanceAnalytics()

        first = analytics.get_content_metrics("c1", START, END)
        fake_db.tables["content_interactions"].append(_row("c1", "page_view", "u2"))
        second = analytics.get_content_metrics("c1", START, END)

        assert first is second
        assert second.performance_data.views == 1
        assert len(fake_db.rows("content_metrics_cache")) == 1

    def test_rolling_window_reuses_cached_metrics(self, fake_db):
        fake_db.tables["content_interactions"] = [_row("c1", "page_view")]
        analytics = ContentPerformanceAnalytics()
        clock = [END + timedelta(minutes=5), END + timedelta(minutes=5, seconds=42)]

        with patch("app.core.content_analytics.utc_now", side_effect=clock):
            analytics.generate_optimization_suggestions("c1")
            fake_db.tables["content_interactions"].append(_row("c1", "page_view", "u2"))
            analytics.generate_optimization_suggestions("c1")

        assert len(analytics.metrics_cache) == 1
        assert len(fake_db.rows("content_metrics_cache")) == 1
        cached = next(iter(analytics.metrics_cache.values()))
        assert cached.performance_data.views == 1

    def test_tracking_invalidates_cache_and_updates_realtime(self, fake_db):
        analytics = ContentPerformanceAnalytics()
        analytics.get_content_metrics("c1", START, END)

        analytics.track_content_performance("c1", "page_view", {"user_id": "u9"})
        analytics.track_content_performance("c1", "click")
        analytics.track_content_performance("c1", "conversion")

        assert analytics.metrics_cache == {}
        current = analytics.get_real_time_insights("c1").current_performance
        assert current.active_users == 1
        assert current.engagement_velocity == pytest.approx(0.1)
        assert current.conversion_momentum == pytest.approx(0.2)
        assert current.trending_score == pytest.approx(0.3 + 0.04 + 0.06)
        users = [r["user_id"] for r in fake_db.rows("content_interactions")]
        assert users == ["u9", "anonymous", "anonymous"]

    def test_load_existing_metrics(self, fake_db):
        metrics = calculate_content_metrics("c1", [], START, END)
        fake_db.tables["content_metrics_cache"] = [
            {
                "cache_key": "c1_key",
                "metrics": metrics.model_dump(mode="json"),
                "updated_at": datetime.now(timezone.utc).isoformat(),
            },
            {
                "cache_key": "bad",
                "metrics": {"nope": True},
                "updated_at": datetime.now(timezone.utc).isoformat(),
            },
        ]
        analytics = ContentPerformanceAnalytics()
        assert analytics.load_existing_metrics() == 1
        assert "c1_key" in analytics.metrics_cache

    def test_roi_without_activity(self, fake_db):
        roi = ContentPerformanceAnalytics().analyze_content_roi("c1", START, END)

        assert roi.investment_data.total() == 850
        assert roi.return_data.total() == 0
        assert roi.efficiency_metrics.roi_percentage == pytest.approx(-100)
        assert roi.efficiency_metrics.cost_per_conversion == 0.0
        assert roi.efficiency_metrics.payback_period_days is None

    def test_roi_with_conversions(self, fake_db):
        fake_db.tables["content_interactions"] = [_row("c1", "page_view")] * 10 + [
            _row("c1", "conversion")
        ] * 2
        roi = ContentPerformanceAnalytics().analyze_content_roi("c1", START, END)

        assert roi.return_data.direct_revenue == 100
        assert roi.return_data.attributed_revenue == pytest.approx(130)
        assert roi.return_data.cost_savings == pytest.approx(0.1)
        assert roi.efficiency_metrics.cost_per_conversion == pytest.approx(425)

    def test_suggestions_are_ordered_by_priority(self, fake_db):
        suggestions = ContentPerformanceAnalytics().generate_optimization_suggestions("c1")
        assert [s.suggestion_type for s in suggestions] == ["cta", "headline", "structure"]

    def test_compare_content_ranks_by_conversion(self, fake_db):
        fake_db.tables["content_interactions"] = (
            [_row("a", "page_view")] * 10
            + [_row("a", "conversion")]
            + [_row("b", "page_view")] * 10
            + [_row("b", "conversion")] * 3
        )
        comparison = ContentPerformanceAnalytics().compare_content(["a", "b"], START, END)

        assert [i.content_id for i in comparison.content_items] == ["b", "a"]
        assert comparison.content_items[1].improvement_potential == pytest.approx(0.2)
        assert comparison.best_performers[0].content_id == "b"
        assert [t.metric for t in comparison.trends] == ["conversion_rate", "engagement_rate"]

    def test_trends_between_halves(self, fake_db):
        early = START + timedelta(days=2)
        late = END - timedelta(days=2)
        fake_db.tables["content_interactions"] = (
            [_row("a", "page_view", ts=early)] * 10
            + [_row("a", "conversion", ts=early)]
            + [_row("a", "page_view", ts=late)] * 10
            + [_row("a", "conversion", ts=late)] * 2
        )
        trends = ContentPerformanceAnalytics().calculate_content_trends(["a"], START, END)

        conversion, engagement = trends
        assert conversion.direction == "increasing"
        assert conversion.change_percentage == pytest.approx(100)
        assert engagement.direction == "stable"
        assert 0 <= conversion.significance <= 1

    def test_portfolio(self, fake_db):
        ids = [f"c{i}" for i in range(5)]
        rows = []
        for cid in ids:
            rows += [_row(cid, "page_view", ts=datetime.now(timezone.utc) - timedelta(days=1))] * 10
        fake_db.tables["content_interactions"] = rows

        analysis = ContentPerformanceAnalytics().get_portfolio_analysis(ids)

        assert analysis.total_content_pieces == 5
        dist = analysis.performance_distribution
        assert (dist.top_performers, dist.average_performers, dist.underperformers) == (1, 3, 1)
        assert analysis.content_gaps == []
        # every piece reached the same single user
        assert len(analysis.cannibalization_analysis) == 10
        assert [item.focus_areas for item in analysis.optimization_roadmap] == [
            ["Conversion Optimization"],
            ["Engagement Improvement"],
        ]


class TestPortfolioHelpers:
    def test_underperformer_priority(self):
        metrics = calculate_content_metrics("c1", [], START, END)
        [under] = identify_underperformers([metrics])
        assert under.issues == ["Low conversion rate", "Poor content engagement"]
        assert under.priority_level == "medium"

    def test_content_gaps(self):
        popular = calculate_content_metrics("a", [_row("a", "page_view")] * 10, START, END)
        middle = calculate_content_metrics("b", [_row("b", "page_view")] * 8, START, END)
        rare = calculate_content_metrics("c", [_row("c", "page_view")], START, END)

        gaps = identify_content_gaps([popular, middle, rare])

        assert [g.content_id for g in gaps] == ["c"]
        assert gaps[0].median_views == 8

    def test_cannibalization_ignores_anonymous(self):
        rows = [
            {"content_id": "a", "user_id": "u1"},
            {"content_id": "a", "user_id": "u2"},
            {"content_id": "b", "user_id": "u1"},
            {"content_id": "b", "user_id": "u2"},
            {"content_id": "b", "user_id": "anonymous"},
            {"content_id": "c", "user_id": "u3"},
        ]
        [pair] = analyze_cannibalization(rows)
        assert pair.competing_content == ["a", "b"]
        assert pair.overlap_percentage == 1.0

    def test_quarter_labels_roll_over(self):
        assert _next_quarters(datetime(2026, 11, 5), 2) == ["Q1 2027", "Q2 2027"]

    def test_roadmap_skips_empty_focus_areas(self):
        under = [Underperformer(content_id="x", issues=["Low conversion rate"], recommended_actions=[], priority_level="low")]
        roadmap = build_roadmap(under, datetime(2026, 2, 1))
        assert len(roadmap) == 1
        assert roadmap[0].quarter == "Q2 2026"
        assert roadmap[0].content_ids == ["x"]
