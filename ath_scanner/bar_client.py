"""Bounded bar queries against a price history service.

Each client issues exactly one request per fetch and normalizes the response
into an ordered list of ``Bar``. Clients do not retry and do not check window
sizes; they only report transport problems as ``QueryError``:
- ``CodexClient`` talks to the Codex GraphQL ``getBars`` endpoint
- ``ExchangeClient`` reads OHLCV candles from any CCXT exchange
"""

import logging
import math
from typing import Any, Iterable, Protocol

import ccxt
import requests

from ath_scanner.config import (
    CODEX_API_KEY,
    CODEX_API_URL,
    CURRENCY_CODE,
    EXCHANGE_POINT_CEILING,
    NETWORK_ID,
    QUOTE_CURRENCY,
    REQUEST_TIMEOUT,
)
from ath_scanner.errors import ConfigError, QueryError, QueryErrorKind
from ath_scanner.models import Bar, RangeWindow, Resolution

logger = logging.getLogger(__name__)

GET_BARS_QUERY = """
query GetBars($symbol: String!, $from: Int!, $to: Int!, $resolution: String!) {
    getBars(
        symbol: $symbol
        from: $from
        to: $to
        resolution: $resolution
        removeLeadingNullValues: true
        currencyCode: "%s"
    ) {
        t
        h
    }
}
""" % CURRENCY_CODE

CCXT_TIMEFRAMES = {
    Resolution.COARSE: "1d",
    Resolution.FINE: "1m",
}


class BarClient(Protocol):
    def fetch(self, series_id: str, window: RangeWindow) -> list[Bar]: ...


def codex_series_id(address: str, network_id: int = NETWORK_ID) -> str:
    """Build a Codex symbol (``<address>:<network id>``) for a token."""
    return f"{address}:{network_id}"


def exchange_series_id(base: str, quote: str = QUOTE_CURRENCY) -> str:
    """Build a CCXT market symbol such as ``SOL/USDT``."""
    return f"{base.upper()}/{quote}"


def normalize_bars(timestamps: Iterable[Any], highs: Iterable[Any]) -> list[Bar]:
    """Zip parallel timestamp/high arrays into bars.

    Null and NaN highs are gaps in the series and are skipped.

    Raises:
        QueryError: If the arrays differ in length, hold non-numeric values,
            or carry an infinite timestamp or high.
    """
    timestamps = list(timestamps)
    highs = list(highs)
    if len(timestamps) != len(highs):
        raise QueryError(
            QueryErrorKind.MALFORMED,
            f"{len(timestamps)} timestamps but {len(highs)} highs",
        )

    bars = []
    for ts, high in zip(timestamps, highs):
        if high is None:
            continue
        if isinstance(ts, bool) or isinstance(high, bool):
            raise QueryError(QueryErrorKind.MALFORMED, f"Non-numeric bar ({ts!r}, {high!r})")
        try:
            bar = Bar(timestamp=int(ts), high=float(high))
        except (TypeError, ValueError, OverflowError) as e:
            raise QueryError(
                QueryErrorKind.MALFORMED, f"Non-numeric bar ({ts!r}, {high!r})"
            ) from e
        if math.isnan(bar.high):
            continue
        if math.isinf(bar.high):
            raise QueryError(QueryErrorKind.MALFORMED, f"Infinite high at {bar.timestamp}")
        bars.append(bar)
    return bars


class CodexClient:
    """Bar client for the Codex GraphQL API."""

    def __init__(
        self,
        api_key: str | None = CODEX_API_KEY,
        api_url: str = CODEX_API_URL,
        timeout: float = REQUEST_TIMEOUT,
        session: requests.Session | None = None,
    ) -> None:
        if not api_key:
            raise ConfigError("CODEX_API_KEY not found in environment variables")
        self.api_url = api_url
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({
            "Content-Type": "application/json",
            "Authorization": api_key,
        })

    def fetch(self, series_id: str, window: RangeWindow) -> list[Bar]:
        """Fetch bars for one window.

        Args:
            series_id: Codex symbol, e.g. ``<address>:1399811149``.
            window: Time range and resolution to query.

        Returns:
            Bars in the order the service returned them; empty if it has none.

        Raises:
            QueryError: On timeout, rejection, or an unreadable payload.
        """
        payload = {
            "query": GET_BARS_QUERY,
            "variables": {
                "symbol": series_id,
                "from": window.start,
                "to": window.end,
                "resolution": window.resolution.tag,
            },
        }
        logger.debug(
            "getBars %s %s [%d, %d)", series_id, window.resolution.tag,
            window.start, window.end,
        )

        try:
            response = self.session.post(self.api_url, json=payload, timeout=self.timeout)
        except requests.Timeout as e:
            raise QueryError(QueryErrorKind.TIMEOUT, f"Codex request timed out: {e}") from e
        except requests.RequestException as e:
            raise QueryError(QueryErrorKind.REJECTED, f"Codex request failed: {e}") from e

        if not response.ok:
            raise QueryError(
                QueryErrorKind.REJECTED,
                f"Codex API error: {response.status_code} - {response.text[:200]}",
            )

        try:
            body = response.json()
        except ValueError as e:
            raise QueryError(QueryErrorKind.MALFORMED, "Codex response is not JSON") from e

        if not isinstance(body, dict):
            raise QueryError(QueryErrorKind.MALFORMED, "Codex response is not an object")
        if body.get("errors"):
            raise QueryError(QueryErrorKind.REJECTED, f"GraphQL errors: {body['errors']}")

        data = body.get("data")
        if not isinstance(data, dict):
            raise QueryError(QueryErrorKind.MALFORMED, "Codex response has no data")

        bars = data.get("getBars")
        if not bars:
            return []
        if not isinstance(bars, dict):
            raise QueryError(QueryErrorKind.MALFORMED, "getBars is not an object")
        timestamps = bars.get("t") or []
        highs = bars.get("h") or []
        if not isinstance(timestamps, list) or not isinstance(highs, list):
            raise QueryError(QueryErrorKind.MALFORMED, "getBars t/h are not arrays")
        return normalize_bars(timestamps, highs)


def ohlcv_limit(exchange: ccxt.Exchange) -> int | None:
    """Read the per-call OHLCV candle limit from CCXT's spot feature table."""
    features = getattr(exchange, "features", None)
    if not isinstance(features, dict):
        return None
    spot = features.get("spot")
    ohlcv = spot.get("fetchOHLCV") if isinstance(spot, dict) else None
    limit = ohlcv.get("limit") if isinstance(ohlcv, dict) else None
    if isinstance(limit, int) and not isinstance(limit, bool) and limit > 0:
        return limit
    return None


class ExchangeClient:
    """Bar client over a CCXT exchange's OHLCV endpoint."""

    def __init__(self, exchange: ccxt.Exchange, timeout: float = REQUEST_TIMEOUT) -> None:
        self.exchange = exchange
        self.exchange.timeout = int(timeout * 1000)  # CCXT uses milliseconds
        self.point_ceiling = ohlcv_limit(exchange) or EXCHANGE_POINT_CEILING

    def fetch(self, series_id: str, window: RangeWindow) -> list[Bar]:
        """Fetch candles for one window and keep their highs.

        Args:
            series_id: Market symbol, e.g. ``SOL/USDT``.
            window: Time range and resolution to query.

        Returns:
            Bars inside ``[window.start, window.end)``.

        Raises:
            QueryError: On timeout, exchange rejection, or malformed candles.
        """
        timeframe = CCXT_TIMEFRAMES[window.resolution]
        try:
            candles = self.exchange.fetch_ohlcv(
                series_id, timeframe,
                since=window.start * 1000, limit=window.expected_points,
            )
        except ccxt.RequestTimeout as e:
            raise QueryError(QueryErrorKind.TIMEOUT, f"{series_id}: {e}") from e
        except (ccxt.NetworkError, ccxt.ExchangeError) as e:
            raise QueryError(QueryErrorKind.REJECTED, f"{series_id}: {e}") from e

        if not candles:
            return []
        if not isinstance(candles, list):
            raise QueryError(QueryErrorKind.MALFORMED, "OHLCV response is not a list")

        timestamps = []
        highs = []
        for candle in candles:
            if not isinstance(candle, (list, tuple)) or len(candle) < 3:
                raise QueryError(QueryErrorKind.MALFORMED, f"Bad candle: {candle!r}")
            ts_ms, _open, high_p = candle[:3]
            if isinstance(ts_ms, (int, float)) and ts_ms // 1000 >= window.end:
                continue
            timestamps.append(ts_ms // 1000 if isinstance(ts_ms, (int, float)) else ts_ms)
            highs.append(high_p)

        return normalize_bars(timestamps, highs)
