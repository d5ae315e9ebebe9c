"""Coarse and fine peak searches.

The coarse pass covers the whole lookback at daily resolution in one call;
the fine pass re-reads a short minute-resolution window around the daily
peak. Both passes size their windows from ``DiscoveryConfig``, which already
guarantees the ceiling is respected.
"""

import logging
import time
from typing import Iterable

from ath_scanner.bar_client import BarClient
from ath_scanner.config import DiscoveryConfig
from ath_scanner.errors import NoDataError, QueryError
from ath_scanner.models import Bar, PeakCandidate, RangeWindow, Resolution

logger = logging.getLogger(__name__)


def find_peak(bars: Iterable[Bar], resolution: Resolution) -> PeakCandidate | None:
    """Return the highest bar, or None when there are no bars.

    Bars are ordered by timestamp first. Ties keep the earliest bar: the
    comparison is a strict ``>``, so a later equal high never replaces it.
    """
    best: Bar | None = None
    for bar in sorted(bars, key=lambda b: b.timestamp):
        if best is None or bar.high > best.high:
            best = bar

    if best is None:
        return None
    return PeakCandidate(value=best.high, timestamp=best.timestamp, resolution=resolution)


def scan_coarse(
    client: BarClient,
    series_id: str,
    config: DiscoveryConfig,
    now: int | None = None,
) -> PeakCandidate:
    """Find the daily peak over the full lookback.

    Args:
        client: Bar client to query.
        series_id: Series to scan.
        config: Lookback and ceiling settings.
        now: End of the window in epoch seconds (defaults to the current time).

    Returns:
        The coarse peak candidate.

    Raises:
        QueryError: If the query fails; passed through unchanged.
        NoDataError: If the query returns no bars.
    """
    end = int(time.time()) if now is None else now
    window = RangeWindow(end - config.coarse_lookback, end, Resolution.COARSE)

    bars = client.fetch(series_id, window)
    peak = find_peak(bars, Resolution.COARSE)
    if peak is None:
        raise NoDataError(series_id)

    logger.info(
        "Daily overview for %s: ATH ~%.8f (%d days analyzed)",
        series_id, peak.value, len(bars),
    )
    return peak


def refine_peak(
    client: BarClient,
    series_id: str,
    anchor: int,
    config: DiscoveryConfig,
) -> PeakCandidate | None:
    """Find the minute-resolution peak around a coarse peak.

    Any failure here only means no refinement is available.

    Args:
        client: Bar client to query.
        series_id: Series to refine.
        anchor: Timestamp of the coarse peak.
        config: Buffer settings.

    Returns:
        The fine peak candidate, or None if the query failed or held no
        positive highs.
    """
    window = RangeWindow(anchor - config.fine_buffer, anchor + config.fine_buffer, Resolution.FINE)

    try:
        bars = client.fetch(series_id, window)
    except QueryError as e:
        logger.warning("Precision lookup failed for %s, using daily ATH: %s", series_id, e)
        return None

    # Zero or negative highs are bad ticks, not prices
    peak = find_peak((b for b in bars if b.high > 0), Resolution.FINE)
    if peak is None:
        logger.warning("No usable 1-minute data for %s, using daily ATH", series_id)
        return None

    logger.info(
        "Precise ATH for %s: %.8f (from %d 1-minute bars)",
        series_id, peak.value, len(bars),
    )
    return peak
