"""Test fixtures for ATH scanner tests."""

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable
from unittest.mock import MagicMock

import pytest

from ath_scanner.models import Bar, Resolution

NOW = int(datetime(2025, 6, 1, tzinfo=timezone.utc).timestamp())
DAY = 86_400


@pytest.fixture
def coarse_bars() -> list[Bar]:
    """Daily bars peaking on the second day."""
    return [Bar(1, 0.0001), Bar(2, 0.0005), Bar(3, 0.0002)]


@pytest.fixture
def fine_bars() -> list[Bar]:
    """Minute bars around the daily peak."""
    return [Bar(1, 0.0004), Bar(2, 0.00052), Bar(3, 0.0003)]


@pytest.fixture
def make_client() -> Callable[..., MagicMock]:
    """Build a mock bar client answering per resolution.

    Each response is a list of bars or an exception to raise.
    """
    def _make(coarse, fine=None) -> MagicMock:
        client = MagicMock()

        def fetch(series_id, window):
            response = coarse if window.resolution is Resolution.COARSE else fine
            if isinstance(response, Exception):
                raise response
            return list(response or [])

        client.fetch.side_effect = fetch
        return client

    return _make


@pytest.fixture
def sample_get_bars_response() -> dict:
    """Sample Codex getBars response body with daily bars."""
    base_ts = NOW - 60 * DAY
    timestamps = [base_ts + i * DAY for i in range(60)]
    highs = []
    for i in range(60):
        if i <= 30:
            highs.append(0.0001 + i * 0.00002)  # rises to 0.0007
        else:
            highs.append(0.0007 - (i - 30) * 0.00001)
    return {"data": {"getBars": {"t": timestamps, "h": highs}}}


@pytest.fixture
def sample_ohlcv_response() -> list[list]:
    """Sample CCXT OHLCV response (list of [timestamp, open, high, low, close, volume])."""
    base_ts = (NOW - 60 * DAY) * 1000
    day_ms = 86_400_000

    candles = []
    for i in range(60):
        ts = base_ts + i * day_ms
        if i <= 30:
            close_p = 100 + i * 5  # 100 -> 250
        else:
            close_p = 250 - (i - 30) * 3  # 250 -> 160

        candles.append([ts, close_p - 1, close_p + 2, close_p - 3, close_p, close_p * 500_000])

    return candles


@pytest.fixture
def sample_records() -> list[dict]:
    """Scan records as written by the token monitor."""
    return [
        {
            "address": "HBiqfjGvfVhXozbo2vG2gzsMKLUDZiZSJBYWWEtqx2rm",
            "symbol": "MOON",
            "name": "Moon",
            "timestamp": "2025-05-01T10:00:00Z",
            "eventType": "creation",
            "likes": 120,
            "views": 4000,
            "tweetLink": "https://x.com/moon/status/1",
        },
        {
            "address": "DDiP1d5aAjdKUCq1WrJGshk58TUFAkdmZ3zUXwAopump",
            "symbol": "FLAT",
            "name": "Flat",
            "timestamp": "2025-05-02T10:00:00Z",
            "eventType": "migration",
            "likes": 5,
            "views": 100,
        },
    ]


@pytest.fixture
def scan_results_dir(tmp_path: Path, sample_records: list[dict]) -> Path:
    """Directory with one array file and one single-record file."""
    directory = tmp_path / "scan_results"
    directory.mkdir()
    (directory / "creation_scan.json").write_text(json.dumps([sample_records[0]]))
    (directory / "migration_scan.json").write_text(json.dumps(sample_records[1]))
    return directory
