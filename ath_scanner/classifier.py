"""Gain percentage and signal quality tier."""

from ath_scanner.config import GAIN_THRESHOLDS
from ath_scanner.errors import InvalidBaselineError
from ath_scanner.models import GainAssessment, GainTier

# Highest tier first, paired with GAIN_THRESHOLDS
TIER_ORDER = (GainTier.EXCELLENT, GainTier.GREAT, GainTier.GOOD, GainTier.FAIR)


def calculate_gain_percentage(peak: float, baseline: float) -> float:
    """Calculate percentage gain from baseline to peak.

    Args:
        peak: The peak (highest) price.
        baseline: The entry price.

    Returns:
        Percentage change rounded to 2 decimals (negative means below entry).

    Raises:
        InvalidBaselineError: If baseline is zero or negative.
    """
    if baseline <= 0:
        raise InvalidBaselineError(baseline)
    return round(((peak - baseline) / baseline) * 100, 2)


def tier_for(gain_percent: float, thresholds: tuple[float, ...] = GAIN_THRESHOLDS) -> GainTier:
    """Map a gain to the first tier whose threshold it strictly exceeds."""
    for tier, threshold in zip(TIER_ORDER, thresholds):
        if gain_percent > threshold:
            return tier
    return GainTier.POOR


def classify_gain(
    peak: float,
    baseline: float,
    thresholds: tuple[float, ...] = GAIN_THRESHOLDS,
) -> GainAssessment:
    gain = calculate_gain_percentage(peak, baseline)
    return GainAssessment(gain_percent=gain, tier=tier_for(gain, thresholds))
