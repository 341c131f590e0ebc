"""Statistics helpers for experiment analysis.

Normal-approximation confidence intervals and a two-proportion z-test,
plus the stable string hash used to bucket users into variants.
"""

import math

MIN_P_VALUE = 0.001
Z_SCORES = {95: 1.96, 99: 2.58}


def normal_cdf(x: float) -> float:
    """Standard normal CDF."""
    return 0.5 * (1 + math.erf(x / math.sqrt(2)))


def z_for_confidence(confidence_level: float) -> float:
    """z multiplier for a confidence level; unknown levels use 95%."""
    return Z_SCORES.get(int(confidence_level), Z_SCORES[95])


def confidence_interval(rate: float, sample_size: int, confidence_level: float = 95) -> tuple[float, float]:
    """Wald interval for a proportion, clipped to [0, 1]."""
    if sample_size == 0:
        return (0.0, 0.0)

    standard_error = math.sqrt(rate * (1 - rate) / sample_size)
    margin = z_for_confidence(confidence_level) * standard_error
    return (max(0.0, rate - margin), min(1.0, rate + margin))


def two_proportion_p_value(
    variant_conversions: int,
    variant_participants: int,
    control_conversions: int,
    control_participants: int,
) -> float:
    """
    Two-sided p-value of a pooled two-proportion z-test.

    Returns 1 when either arm is empty or the pooled standard error is zero,
    and never less than MIN_P_VALUE.
    """
    if variant_participants == 0 or control_participants == 0:
        return 1.0

    variant_rate = variant_conversions / variant_participants
    control_rate = control_conversions / control_participants
    pooled = (variant_conversions + control_conversions) / (
        variant_participants + control_participants
    )
    standard_error = math.sqrt(
        pooled * (1 - pooled) * (1 / variant_participants + 1 / control_participants)
    )
    if standard_error == 0:
        return 1.0

    z = abs(variant_rate - control_rate) / standard_error
    return max(MIN_P_VALUE, 2 * (1 - normal_cdf(z)))


def mean_shift_significance(samples: list[float]) -> float:
    """
    Confidence (0-1) that the mean of `samples` differs from zero.

    Uses a normal approximation of the one-sample test; fewer than two
    samples carry no evidence.
    """
    n = len(samples)
    if n < 2:
        return 0.0

    mean = sum(samples) / n
    variance = sum((s - mean) ** 2 for s in samples) / (n - 1)
    if variance == 0:
        return 1.0 if mean != 0 else 0.0

    z = abs(mean) / math.sqrt(variance / n)
    return 2 * normal_cdf(z) - 1


def string_hash(value: str) -> int:
    """
    Stable 32-bit string hash: h = h * 31 + code_unit with int32 wraparound, then abs.

    Iterates UTF-16 code units so assignments match clients that hash the
    same way in the browser.
    """
    h = 0
    encoded = value.encode("utf-16-le")
    for i in range(0, len(encoded), 2):
        code_unit = encoded[i] | (encoded[i + 1] << 8)
        h = ((h << 5) - h + code_unit) & 0xFFFFFFFF
    if h >= 0x80000000:
        h -= 0x100000000
    return abs(h)
