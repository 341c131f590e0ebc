"""Tests for experiment statistics helpers."""

import pytest

from app.core.experiment_stats import (
    MIN_P_VALUE,
    confidence_interval,
    mean_shift_significance,
    normal_cdf,
    string_hash,
    two_proportion_p_value,
    z_for_confidence,
)


class TestNormalCdf:
    def test_symmetry(self):
        assert normal_cdf(0) == pytest.approx(0.5)
        assert normal_cdf(1.96) == pytest.approx(0.975, abs=1e-3)
        assert normal_cdf(-1.96) == pytest.approx(0.025, abs=1e-3)


class TestConfidenceInterval:
    def test_empty_sample(self):
        assert confidence_interval(0.3, 0) == (0.0, 0.0)

    def test_unknown_level_falls_back_to_95(self):
        assert z_for_confidence(90) == 1.96
        assert z_for_confidence(99) == 2.58

    def test_interval_brackets_rate(self):
        low, high = confidence_interval(0.5, 100)
        assert low == pytest.approx(0.5 - 1.96 * 0.05)
        assert high == pytest.approx(0.5 + 1.96 * 0.05)

    def test_interval_is_clipped(self):
        low, high = confidence_interval(0.01, 10)
        assert low == 0.0
        assert high <= 1.0

    def test_wider_at_99(self):
        low95, high95 = confidence_interval(0.4, 200, 95)
        low99, high99 = confidence_interval(0.4, 200, 99)
        assert low99 < low95 and high99 > high95


class TestTwoProportionPValue:
    def test_empty_arm_is_not_significant(self):
        assert two_proportion_p_value(5, 0, 5, 100) == 1.0
        assert two_proportion_p_value(5, 100, 0, 0) == 1.0

    def test_zero_standard_error(self):
        """No conversions anywhere → pooled SE is zero."""
        assert two_proportion_p_value(0, 100, 0, 100) == 1.0

    def test_identical_rates(self):
        assert two_proportion_p_value(10, 100, 10, 100) == pytest.approx(1.0)

    def test_large_difference_floors_at_minimum(self):
        assert two_proportion_p_value(500, 1000, 100, 1000) == MIN_P_VALUE

    def test_moderate_difference(self):
        p = two_proportion_p_value(30, 200, 20, 200)
        assert 0.05 < p < 0.2


class TestMeanShiftSignificance:
    def test_needs_two_samples(self):
        assert mean_shift_significance([]) == 0.0
        assert mean_shift_significance([0.4]) == 0.0

    def test_constant_samples(self):
        assert mean_shift_significance([0.2, 0.2, 0.2]) == 1.0
        assert mean_shift_significance([0.0, 0.0]) == 0.0

    def test_noisy_samples_around_zero(self):
        assert mean_shift_significance([0.1, -0.1, 0.1, -0.1]) == pytest.approx(0.0)

    def test_consistent_shift(self):
        assert mean_shift_significance([0.3, 0.32, 0.28, 0.31, 0.29]) > 0.99


class TestStringHash:
    def test_known_values(self):
        assert string_hash("") == 0
        assert string_hash("a") == 97
        assert string_hash("ab") == 3105

    def test_stable_and_non_negative(self):
        value = "user-123exp-456"
        assert string_hash(value) == string_hash(value)
        assert string_hash(value) >= 0

    def test_wraps_to_32_bits(self):
        """Long inputs overflow int32; the result still fits."""
        assert 0 <= string_hash("x" * 200) <= 2**31

    def test_non_bmp_characters_hash_as_surrogate_pairs(self):
        # U+1F600 → 0xD83D 0xDE00
        expected = abs(((0xD83D * 31 + 0xDE00) + 2**31) % 2**32 - 2**31)
        assert string_hash("\U0001F600") == expected
