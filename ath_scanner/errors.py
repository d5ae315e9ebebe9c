"""Exceptions raised by the ATH scanner."""

from enum import Enum


class AthScannerError(Exception):
    """Base class for all scanner errors."""


class ConfigError(AthScannerError):
    """Configuration is invalid; raised at startup."""


class DiscoveryError(AthScannerError):
    """An ATH discovery could not produce a result."""


class QueryErrorKind(str, Enum):
    TIMEOUT = "timeout"
    REJECTED = "rejected"
    MALFORMED = "malformed"


class QueryError(DiscoveryError):
    """A single bar query failed at the transport level."""

    def __init__(self, kind: QueryErrorKind, message: str) -> None:
        super().__init__(f"{kind.value}: {message}")
        self.kind = kind


class NoDataError(DiscoveryError):
    """The coarse query succeeded but returned no bars."""

    def __init__(self, series_id: str) -> None:
        super().__init__(f"No price data available for {series_id}")
        self.series_id = series_id


class InvalidBaselineError(AthScannerError, ValueError):
    """Gain baseline is zero or negative."""

    def __init__(self, baseline: float) -> None:
        super().__init__(f"Baseline must be positive, got {baseline}")
        self.baseline = baseline
