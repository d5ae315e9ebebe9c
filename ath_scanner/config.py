"""Configuration and constants for the ATH scanner."""

import math
import os
from dataclasses import dataclass, replace
from pathlib import Path

from dotenv import load_dotenv

from ath_scanner.errors import ConfigError

load_dotenv()

# Paths
PROJECT_ROOT = Path(__file__).parent.parent
SCAN_RESULTS_DIR = Path(os.getenv("SCAN_RESULTS_DIR", PROJECT_ROOT / "scan_results"))
LOG_DIR = Path(os.getenv("LOG_DIR", PROJECT_ROOT / "logs"))
LOG_FILE = "ath_scanner.log"
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")  # console level; the log file always gets DEBUG
EXPORT_PREFIX = "ath_analysis_"

# Codex GraphQL
CODEX_API_URL = os.getenv("CODEX_API_URL", "https://graph.codex.io/graphql")
CODEX_API_KEY = os.getenv("CODEX_API_KEY")
NETWORK_ID = int(os.getenv("NETWORK_ID", "1399811149"))  # Solana mainnet
CURRENCY_CODE = "USD"

# CCXT fallback source
EXCHANGE_ID = os.getenv("EXCHANGE_ID", "binance")
QUOTE_CURRENCY = "USDT"
EXCHANGE_POINT_CEILING = int(os.getenv("EXCHANGE_POINT_CEILING", "1000"))  # if CCXT lists no OHLCV limit

# Bar service limits
POINT_CEILING = int(os.getenv("POINT_CEILING", "1500"))  # points per getBars call
REQUEST_TIMEOUT = float(os.getenv("REQUEST_TIMEOUT", "30"))  # seconds

# Two-pass search
COARSE_LOOKBACK_DAYS = int(os.getenv("COARSE_LOOKBACK_DAYS", "1095"))  # ~3 years of daily bars
FINE_BUFFER_HOURS = int(os.getenv("FINE_BUFFER_HOURS", "12"))  # each side of the coarse peak

# Gain tiers, percent above baseline: Excellent, Great, Good, Fair. Poor is the floor.
GAIN_THRESHOLDS = (1000.0, 500.0, 100.0, 50.0)
FIXED_ENTRY_PRICE = float(os.getenv("FIXED_ENTRY_PRICE", "0.0001"))

# Batch runs
MAX_WORKERS = int(os.getenv("MAX_WORKERS", "4"))
TOP_N_REPORT = 15

DAY_SECONDS = 86_400
MINUTE_SECONDS = 60


@dataclass(frozen=True)
class DiscoveryConfig:
    """Settings for one ATH discovery, validated on construction.

    Attributes:
        coarse_lookback: Seconds of history covered by the daily pass.
        fine_buffer: Seconds on each side of the coarse peak for the minute pass.
        point_ceiling: Maximum points the bar service returns per call.
        timeout: Per-request timeout in seconds.
        gain_thresholds: Descending percent cutoffs for Excellent/Great/Good/Fair.
    """

    coarse_lookback: int = COARSE_LOOKBACK_DAYS * DAY_SECONDS
    fine_buffer: int = FINE_BUFFER_HOURS * 3600
    point_ceiling: int = POINT_CEILING
    timeout: float = REQUEST_TIMEOUT
    gain_thresholds: tuple[float, ...] = GAIN_THRESHOLDS

    def __post_init__(self) -> None:
        if self.coarse_lookback <= 0 or self.fine_buffer <= 0:
            raise ConfigError("Lookback and buffer durations must be positive")
        if self.point_ceiling <= 0:
            raise ConfigError(f"Point ceiling must be positive, got {self.point_ceiling}")
        if self.timeout <= 0:
            raise ConfigError(f"Timeout must be positive, got {self.timeout}")

        coarse_points = math.ceil(self.coarse_lookback / DAY_SECONDS)
        if coarse_points > self.point_ceiling:
            raise ConfigError(
                f"Coarse lookback needs {coarse_points} daily points, "
                f"ceiling is {self.point_ceiling}"
            )
        fine_points = math.ceil(2 * self.fine_buffer / MINUTE_SECONDS)
        if fine_points > self.point_ceiling:
            raise ConfigError(
                f"Fine window needs {fine_points} minute points, "
                f"ceiling is {self.point_ceiling}"
            )

        thresholds = tuple(self.gain_thresholds)
        if len(thresholds) != 4:
            raise ConfigError(
                f"Expected 4 gain thresholds (Excellent, Great, Good, Fair), got {len(thresholds)}"
            )
        if any(t <= 0 for t in thresholds) or any(
            a <= b for a, b in zip(thresholds, thresholds[1:])
        ):
            raise ConfigError(f"Gain thresholds must be positive and descending: {thresholds}")

    def with_ceiling(self, ceiling: int) -> "DiscoveryConfig":
        """Return this config under a tighter point ceiling.

        Raises:
            ConfigError: If either window no longer fits.
        """
        if ceiling >= self.point_ceiling:
            return self
        return replace(self, point_ceiling=ceiling)
