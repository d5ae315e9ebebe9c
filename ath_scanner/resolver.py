"""Two-pass ATH discovery: daily overview, then minute-level refinement.

A discovery runs the coarse scan once and the refinement once. Coarse
failures end the discovery; refinement failures fall back to the coarse
value with ``precise=False``. Nothing is kept between calls, so the same
client and config can serve many series at once.
"""

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from enum import Enum
from typing import Iterable

from tqdm import tqdm

from ath_scanner.bar_client import BarClient
from ath_scanner.classifier import classify_gain
from ath_scanner.config import MAX_WORKERS, DiscoveryConfig
from ath_scanner.errors import DiscoveryError, InvalidBaselineError
from ath_scanner.models import AthResult, DiscoveryResult, PeakCandidate
from ath_scanner.scanner import refine_peak, scan_coarse

logger = logging.getLogger(__name__)


class ResolverState(str, Enum):
    START = "start"
    COARSE_DONE = "coarse_done"
    REFINED = "refined"
    COARSE_ONLY = "coarse_only"
    DONE = "done"
    FAILED = "failed"


def _transition(series_id: str, state: ResolverState) -> ResolverState:
    logger.debug("%s -> %s", series_id, state.value)
    return state


def resolve_peak(
    client: BarClient,
    series_id: str,
    config: DiscoveryConfig,
    now: int | None = None,
) -> tuple[AthResult, PeakCandidate]:
    """Locate the ATH of a series.

    Args:
        client: Bar client to query.
        series_id: Series to resolve.
        config: Discovery settings.
        now: End of the coarse window in epoch seconds (defaults to now).

    Returns:
        The final result and the coarse candidate it was derived from.

    Raises:
        QueryError: If the coarse query fails.
        NoDataError: If the coarse query returns nothing.
    """
    _transition(series_id, ResolverState.START)
    try:
        coarse = scan_coarse(client, series_id, config, now=now)
    except DiscoveryError:
        _transition(series_id, ResolverState.FAILED)
        raise
    _transition(series_id, ResolverState.COARSE_DONE)

    refined = refine_peak(client, series_id, coarse.timestamp, config)
    if refined is not None:
        _transition(series_id, ResolverState.REFINED)
        result = AthResult(value=refined.value, precise=True)
    else:
        _transition(series_id, ResolverState.COARSE_ONLY)
        result = AthResult(value=coarse.value, precise=False)

    _transition(series_id, ResolverState.DONE)
    return result, coarse


def discover_ath(
    client: BarClient,
    series_id: str,
    baseline: float,
    config: DiscoveryConfig | None = None,
    now: int | None = None,
) -> DiscoveryResult:
    """Find a series' ATH and grade its gain over ``baseline``.

    Raises:
        InvalidBaselineError: If baseline is zero or negative. Checked before
            any request is made.
        QueryError: If the coarse query fails.
        NoDataError: If the coarse query returns nothing.
    """
    if baseline <= 0:
        raise InvalidBaselineError(baseline)
    config = config or DiscoveryConfig()

    peak, coarse = resolve_peak(client, series_id, config, now=now)
    gain = classify_gain(peak.value, baseline, config.gain_thresholds)
    return DiscoveryResult(series_id=series_id, peak=peak, gain=gain, coarse=coarse)


def discover_many(
    client: BarClient,
    series_ids: Iterable[str],
    baseline: float,
    config: DiscoveryConfig | None = None,
    max_workers: int = MAX_WORKERS,
    now: int | None = None,
) -> tuple[dict[str, DiscoveryResult], dict[str, DiscoveryError]]:
    """Run independent discoveries for many series in a thread pool.

    Rate limits of the bar service are the caller's concern; ``max_workers``
    is the only throttle applied here.

    Returns:
        ``(results, failures)`` keyed by series id.
    """
    config = config or DiscoveryConfig()
    unique_ids = list(dict.fromkeys(series_ids))
    results: dict[str, DiscoveryResult] = {}
    failures: dict[str, DiscoveryError] = {}

    with ThreadPoolExecutor(max_workers=max(1, max_workers)) as pool:
        futures = {
            pool.submit(discover_ath, client, sid, baseline, config, now): sid
            for sid in unique_ids
        }
        for future in tqdm(as_completed(futures), total=len(futures), desc="Resolving ATHs"):
            sid = futures[future]
            try:
                results[sid] = future.result()
            except DiscoveryError as e:
                logger.error("Failed to get ATH for %s: %s", sid, e)
                failures[sid] = e

    logger.info("Resolved %d/%d series", len(results), len(unique_ids))
    return results, failures
