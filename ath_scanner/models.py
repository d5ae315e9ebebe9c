"""Value types shared by the scanner stages."""

import math
from dataclasses import dataclass
from enum import Enum
from typing import Any


class Resolution(Enum):
    """Bar resolution, carrying the source tag and seconds per bar."""

    COARSE = ("1D", 86_400)
    FINE = ("1", 60)

    def __init__(self, tag: str, seconds: int) -> None:
        self.tag = tag
        self.seconds = seconds

    def expected_points(self, span: int) -> int:
        return math.ceil(span / self.seconds)


@dataclass(frozen=True)
class Bar:
    timestamp: int
    high: float


@dataclass(frozen=True)
class RangeWindow:
    """Half-open interval [start, end) queried at one resolution."""

    start: int
    end: int
    resolution: Resolution

    def __post_init__(self) -> None:
        if self.start >= self.end:
            raise ValueError(
                f"Window start must be before end: {self.start} >= {self.end}"
            )

    @property
    def span(self) -> int:
        return self.end - self.start

    @property
    def expected_points(self) -> int:
        return self.resolution.expected_points(self.span)


@dataclass(frozen=True)
class PeakCandidate:
    value: float
    timestamp: int
    resolution: Resolution


@dataclass(frozen=True)
class AthResult:
    """Final peak value; precise only when the minute pass supplied it."""

    value: float
    precise: bool


class GainTier(str, Enum):
    POOR = "poor"
    FAIR = "fair"
    GOOD = "good"
    GREAT = "great"
    EXCELLENT = "excellent"


@dataclass(frozen=True)
class GainAssessment:
    gain_percent: float
    tier: GainTier


@dataclass(frozen=True)
class DiscoveryResult:
    series_id: str
    peak: AthResult
    gain: GainAssessment
    coarse: PeakCandidate

    def to_dict(self) -> dict[str, Any]:
        """Flatten for JSON export."""
        return {
            "series_id": self.series_id,
            "ath": self.peak.value,
            "precise": self.peak.precise,
            "coarse_ath": self.coarse.value,
            "coarse_timestamp": self.coarse.timestamp,
            "max_gain_percent": self.gain.gain_percent,
            "signal_quality": self.gain.tier.value,
        }
