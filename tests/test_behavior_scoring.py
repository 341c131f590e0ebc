"""Tests for behavior profile heuristics."""

from datetime import datetime, timedelta, timezone

import pytest

from app.core.behavior_scoring import (
    DEFAULT_GAP_MS,
    HIGH_URGENCY,
    LOW_URGENCY,
    average_gap_ms,
    calculate_behavior_scores,
    effectiveness_score,
    generate_predictive_insights,
    infer_preferences,
    matches_pattern,
    rule_applies,
    strategy_applies,
)
from app.core.schemas_personalization import (
    AdaptationRule,
    BehaviorPattern,
    BehaviorScore,
    InteractionRecord,
    PersonalizationState,
    PersonalizationStrategy,
    TriggerConditions,
    UserBehaviorProfile,
)

NOW = datetime(2026, 5, 1, 15, 0, tzinfo=timezone.utc)


def _record(seconds_ago: float, action: str = "click", outcome: str | None = None) -> InteractionRecord:
    return InteractionRecord(
        timestamp=NOW - timedelta(seconds=seconds_ago), action_type=action, outcome=outcome
    )


def _profile(history=None, patterns=None, last_adaptation=NOW) -> UserBehaviorProfile:
    return UserBehaviorProfile(
        user_id="u1",
        current_patterns=patterns or [],
        interaction_history=history or [],
        personalization_state=PersonalizationState(last_adaptation=last_adaptation),
    )


class TestAverageGap:
    def test_default_with_fewer_than_two(self):
        assert average_gap_ms([]) == DEFAULT_GAP_MS
        assert average_gap_ms([_record(5)]) == DEFAULT_GAP_MS

    def test_unordered_input(self):
        records = [_record(0), _record(20), _record(10)]
        assert average_gap_ms(records) == pytest.approx(10_000)


class TestCalculateBehaviorScores:
    def test_empty_history(self):
        scores = calculate_behavior_scores([], NOW)
        assert scores.engagement == 0
        assert scores.intent == 0
        assert scores.urgency == LOW_URGENCY
        assert scores.knowledge_level == 0.5

    def test_rapid_intent_heavy_session(self):
        history = [_record(i * 5, "click") for i in range(5)] + [
            _record(i * 5 + 2, "scroll") for i in range(5)
        ]
        scores = calculate_behavior_scores(history, NOW)

        assert scores.engagement == 1.0
        assert scores.intent == pytest.approx(0.5)
        assert scores.urgency == HIGH_URGENCY

    def test_old_interactions_are_ignored(self):
        history = [_record(60 * 20, "click"), _record(60 * 30, "download")]
        scores = calculate_behavior_scores(history, NOW)
        assert scores.engagement == 0


class TestInferPreferences:
    def test_action_oriented_and_quick(self):
        history = [_record(1, "click"), _record(2, "click"), _record(3, "scroll")]
        prefs = infer_preferences(history, BehaviorScore(urgency=0.8))
        assert prefs.interaction_style == "action_oriented"
        assert prefs.decision_speed == "quick"

    def test_reader_and_research_heavy(self):
        history = [_record(1, "click")] + [_record(i, "scroll") for i in range(2, 6)]
        prefs = infer_preferences(history, BehaviorScore(urgency=0.3))
        assert prefs.interaction_style == "reader"
        assert prefs.decision_speed == "research_heavy"

    def test_browser_and_deliberate(self):
        history = [_record(1, "click"), _record(2, "scroll")]
        prefs = infer_preferences(history, BehaviorScore(urgency=0.5))
        assert prefs.interaction_style == "browser"
        assert prefs.decision_speed == "deliberate"


class TestPredictiveInsights:
    def test_conversion_from_intent_and_engagement(self):
        insights = generate_predictive_insights(BehaviorScore(intent=0.5, engagement=0.8))

        assert insights.conversion_probability == pytest.approx(0.4)
        assert insights.churn_risk == pytest.approx(0.2)
        assert insights.value_potential == pytest.approx(0.32)
        assert [a.action for a in insights.likely_next_actions] == [
            "continue_browsing",
            "start_conversion_flow",
            "exit_session",
        ]


class TestMatchesPattern:
    def _pattern(self, **conditions) -> BehaviorPattern:
        return BehaviorPattern(
            id="p1", pattern_name="engaged", trigger_conditions=TriggerConditions(**conditions)
        )

    def test_no_conditions_always_matches(self):
        assert matches_pattern(_profile(), self._pattern(), NOW)

    def test_interaction_frequency(self):
        busy = _profile([_record(i * 10) for i in range(6)])
        assert matches_pattern(busy, self._pattern(interaction_frequency=5), NOW)
        assert not matches_pattern(_profile([_record(1)]), self._pattern(interaction_frequency=5), NOW)

    def test_session_duration(self):
        pattern = self._pattern(session_duration=120)
        assert not matches_pattern(_profile(last_adaptation=NOW - timedelta(seconds=60)), pattern, NOW)
        assert matches_pattern(_profile(last_adaptation=NOW - timedelta(seconds=300)), pattern, NOW)


class TestEffectiveness:
    def test_keeps_previous_without_outcomes(self):
        assert effectiveness_score([_record(5)], NOW, 0.42) == 0.42

    def test_share_of_positive_outcomes(self):
        history = [
            _record(10, outcome="conversion"),
            _record(20, outcome="bounce"),
            _record(30, outcome="engagement"),
            _record(60 * 45, outcome="bounce"),
        ]
        assert effectiveness_score(history, NOW, 0.5) == pytest.approx(2 / 3)


class TestRules:
    def test_strategy_applies_on_pattern_overlap(self):
        strategy = PersonalizationStrategy(id="s1", name="s", target_behaviors=["engaged", "hesitant"])
        assert strategy_applies(strategy, _profile(patterns=["hesitant"]))
        assert not strategy_applies(strategy, _profile(patterns=["bored"]))

    @pytest.mark.parametrize("trigger", ["", "always", "  always "])
    def test_unconditional_rules(self, trigger):
        rule = AdaptationRule(trigger=trigger, modification_type="content")
        assert rule_applies(rule, _profile(), {})

    def test_pattern_and_context_triggers(self):
        rule = AdaptationRule(trigger="returning", modification_type="messaging")
        assert rule_applies(rule, _profile(patterns=["returning"]), {})
        assert rule_applies(rule, _profile(), {"returning": True})
        assert not rule_applies(rule, _profile(), {"returning": False})
