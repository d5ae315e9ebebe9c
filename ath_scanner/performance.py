"""Measure how scanned tokens performed: ATH and gain over a fixed entry price.

This module ties the ATH engine to the scan result files:
- Loading scan records from JSON files
- Resolving each token's ATH with the two-pass discovery
- Summarizing gains into averages and performance brackets
- Exporting results to JSON
"""

import argparse
import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable

import ccxt
import pandas as pd

from ath_scanner.bar_client import (
    BarClient,
    CodexClient,
    ExchangeClient,
    codex_series_id,
    exchange_series_id,
)
from ath_scanner.config import (
    CODEX_API_KEY,
    EXCHANGE_ID,
    EXPORT_PREFIX,
    FIXED_ENTRY_PRICE,
    GAIN_THRESHOLDS,
    LOG_DIR,
    LOG_FILE,
    LOG_LEVEL,
    MAX_WORKERS,
    SCAN_RESULTS_DIR,
    TOP_N_REPORT,
    DiscoveryConfig,
)
from ath_scanner.errors import AthScannerError, ConfigError
from ath_scanner.resolver import discover_ath, discover_many

logger = logging.getLogger(__name__)

RESULT_COLUMNS = [
    "symbol", "address", "scan_date", "twitter_likes", "twitter_views",
    "entry_price", "ath", "precise", "max_gain_percent", "signal_quality",
]
# One label per gain tier, best first
BRACKET_LABELS = ("10x+", "5x-10x", "2x-5x", "1.5x-2x", "<1.5x")
LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"
# Libraries that log every request at DEBUG
NOISY_LOGGERS = ("urllib3", "ccxt")


def setup_logging(level: str = LOG_LEVEL, log_dir: Path | None = None) -> None:
    """Log DEBUG and up to ``<log_dir>/ath_scanner.log`` and ``level`` to the console.

    Handlers are attached once per process; later calls are no-ops.
    An unknown level name falls back to INFO with a warning.
    """
    root_logger = logging.getLogger()
    if root_logger.handlers:
        return

    log_dir = Path(log_dir) if log_dir else LOG_DIR
    log_dir.mkdir(parents=True, exist_ok=True)

    console_level = logging.getLevelName(level.upper())
    known_level = isinstance(console_level, int)
    formatter = logging.Formatter(LOG_FORMAT)
    for handler, handler_level in (
        (logging.FileHandler(log_dir / LOG_FILE, encoding="utf-8"), logging.DEBUG),
        (logging.StreamHandler(), console_level if known_level else logging.INFO),
    ):
        handler.setFormatter(formatter)
        handler.setLevel(handler_level)
        root_logger.addHandler(handler)
    root_logger.setLevel(logging.DEBUG)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    if not known_level:
        logger.warning("Unknown log level %r, using INFO", level)


def load_scan_records(directory: Path | str | None = None) -> list[dict[str, Any]]:
    """Load scan records from every JSON file in a directory.

    A file may hold one record or a list of records. Previous analysis
    exports and unreadable files are skipped.

    Args:
        directory: Folder to read (defaults to SCAN_RESULTS_DIR).

    Returns:
        Records that carry a token address.

    Raises:
        FileNotFoundError: If the directory does not exist.
    """
    directory = Path(directory) if directory else SCAN_RESULTS_DIR
    if not directory.is_dir():
        raise FileNotFoundError(f"No scan results found. Checked: {directory}")

    files = sorted(p for p in directory.glob("*.json") if not p.name.startswith(EXPORT_PREFIX))
    logger.info("Found %d scan result files in %s", len(files), directory)

    records: list[dict[str, Any]] = []
    for path in files:
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.error("Error processing %s: %s", path.name, e)
            continue

        batch = data if isinstance(data, list) else [data]
        for record in batch:
            if not isinstance(record, dict) or not record.get("address"):
                logger.warning("Skipping record without address in %s", path.name)
                continue
            records.append(record)

    logger.info("Loaded %d records", len(records))
    return records


def analyze_records(
    client: BarClient,
    records: list[dict[str, Any]],
    series_id_for: Callable[[str], str] = codex_series_id,
    baseline: float = FIXED_ENTRY_PRICE,
    config: DiscoveryConfig | None = None,
    max_workers: int = MAX_WORKERS,
) -> tuple[pd.DataFrame, int]:
    """Resolve the ATH of every record's token.

    Args:
        client: Bar client to query.
        records: Scan records with at least an ``address``.
        series_id_for: Maps a record address to the client's series id.
        baseline: Entry price the gain is measured from.
        config: Discovery settings.
        max_workers: Concurrent discoveries.

    Returns:
        DataFrame with one row per successfully analyzed record, sorted by
        gain (best first), and the number of records that failed.
    """
    ids = {r["address"]: series_id_for(r["address"]) for r in records}
    results, failures = discover_many(
        client, ids.values(), baseline, config=config, max_workers=max_workers
    )

    rows = []
    failed = 0
    for record in records:
        sid = ids[record["address"]]
        result = results.get(sid)
        if result is None:
            failed += 1
            continue
        rows.append({
            "symbol": record.get("symbol", ""),
            "address": record["address"],
            "scan_date": record.get("timestamp"),
            "twitter_likes": record.get("likes") or 0,
            "twitter_views": record.get("views") or 0,
            "entry_price": baseline,
            "ath": result.peak.value,
            "precise": result.peak.precise,
            "max_gain_percent": result.gain.gain_percent,
            "signal_quality": result.gain.tier.value,
        })

    if failures:
        logger.warning("%d series could not be resolved", len(failures))

    df = pd.DataFrame(rows, columns=RESULT_COLUMNS)
    if not df.empty:
        df.sort_values("max_gain_percent", ascending=False, inplace=True)
        df.reset_index(drop=True, inplace=True)
    return df, failed


def performance_brackets(
    gains: pd.Series, thresholds: tuple[float, ...] = GAIN_THRESHOLDS
) -> dict[str, int]:
    """Count gains per bracket, using the tier boundaries.

    Returns:
        Bracket label to count, best bracket first.
    """
    # pd.cut bins are right-closed, matching the strict '>' of the tiers
    edges = [float("-inf")] + sorted(thresholds) + [float("inf")]
    names = list(BRACKET_LABELS[::-1])
    counts = pd.cut(gains, bins=edges, labels=names).value_counts()
    return {name: int(counts.get(name, 0)) for name in BRACKET_LABELS}


def generate_summary(
    results_df: pd.DataFrame, failed: int = 0, baseline: float = FIXED_ENTRY_PRICE
) -> dict[str, Any]:
    """Generate summary statistics from analyzed tokens.

    Args:
        results_df: Results from analyze_records().
        failed: Number of records that could not be resolved.
        baseline: Entry price used for the gains.

    Returns:
        Dict with counts, average/median gain and bracket distribution.
    """
    successful = len(results_df)
    summary: dict[str, Any] = {
        "analyzed": successful + failed,
        "successful": successful,
        "failed": failed,
        "fixed_entry_price": baseline,
        "method": "Daily bars with 1-minute refinement",
    }
    if results_df.empty:
        return summary

    gains = results_df["max_gain_percent"]
    brackets = performance_brackets(gains)
    # Upper middle for even counts, so the median is always an observed gain
    ordered = gains.sort_values(ignore_index=True)
    summary.update({
        "avg_gain_pct": round(float(gains.mean()), 2),
        "median_gain_pct": round(float(ordered.iloc[len(ordered) // 2]), 2),
        "precise_count": int(results_df["precise"].sum()),
        "brackets": {
            name: {"count": count, "pct": round(count / successful * 100, 1)}
            for name, count in brackets.items()
        },
    })
    return summary


def export_results(
    results_df: pd.DataFrame,
    summary: dict[str, Any],
    filepath: Path | str | None = None,
) -> Path:
    """Export summary and per-token results to JSON.

    Args:
        results_df: Results DataFrame.
        summary: Output of generate_summary().
        filepath: Output path (auto-generated in SCAN_RESULTS_DIR if None).

    Returns:
        Path to the exported file.
    """
    if filepath is None:
        today = datetime.now(timezone.utc).strftime("%Y-%m-%d")
        filepath = SCAN_RESULTS_DIR / f"{EXPORT_PREFIX}{today}.json"
    filepath = Path(filepath)
    filepath.parent.mkdir(parents=True, exist_ok=True)

    payload = {
        "summary": summary,
        "tokens": json.loads(results_df.to_json(orient="records")),
    }
    filepath.write_text(json.dumps(payload, indent=2), encoding="utf-8")

    logger.info("Exported results to %s", filepath)
    return filepath


def print_report(results_df: pd.DataFrame, summary: dict[str, Any]) -> None:
    print(f"\nTokens analyzed: {summary['analyzed']} "
          f"({summary['successful']} ok, {summary['failed']} failed)")
    if results_df.empty:
        print("No successful analyses to report")
        return

    print(f"\nTop {min(TOP_N_REPORT, len(results_df))} performing tokens:")
    for rank, row in results_df.head(TOP_N_REPORT).iterrows():
        multiplier = row["max_gain_percent"] / 100 + 1
        flag = "" if row["precise"] else " ~"
        print(f"  {rank + 1:>3d}. {str(row['symbol']):>10s}  {row['max_gain_percent']:+10.2f}% "
              f"({multiplier:.1f}x)  ATH ${row['ath']:.8f}{flag}")

    print(f"\nAverage gain: {summary['avg_gain_pct']:.2f}%  "
          f"Median gain: {summary['median_gain_pct']:.2f}%")
    for name, bracket in summary["brackets"].items():
        print(f"  {name:>8s}: {bracket['count']} tokens ({bracket['pct']:.1f}%)")


def build_client(source: str, exchange_id: str = EXCHANGE_ID,
                 config: DiscoveryConfig | None = None) -> tuple[BarClient, Callable[[str], str]]:
    """Create the bar client and its series id mapper for a source name.

    Raises:
        ConfigError: If the source cannot be set up, or an exchange serves
            fewer candles per call than the daily or minute window needs.
    """
    config = config or DiscoveryConfig()
    if source == "exchange":
        exchange_class = getattr(ccxt, exchange_id, None)
        if exchange_class is None:
            raise ConfigError(f"Unknown CCXT exchange: {exchange_id}")
        client = ExchangeClient(exchange_class({"enableRateLimit": True}), timeout=config.timeout)
        # Each window must fit in one fetch_ohlcv call
        config.with_ceiling(client.point_ceiling)
        return client, exchange_series_id
    return CodexClient(api_key=CODEX_API_KEY, timeout=config.timeout), codex_series_id


def main(
    directory: str | None = None,
    token: str | None = None,
    source: str = "codex",
    exchange_id: str = EXCHANGE_ID,
    baseline: float = FIXED_ENTRY_PRICE,
    workers: int = MAX_WORKERS,
    log_level: str = LOG_LEVEL,
) -> pd.DataFrame | None:
    """Main analysis pipeline.

    Args:
        directory: Scan results folder (defaults to SCAN_RESULTS_DIR).
        token: If given, resolve only this token and print the result.
        source: ``codex`` or ``exchange``.
        exchange_id: CCXT exchange id when source is ``exchange``.
        baseline: Entry price for gain calculation.
        workers: Concurrent discoveries.
        log_level: Console log level.

    Returns:
        Results DataFrame for batch runs, None in single-token mode or
        when the source cannot be set up.
    """
    setup_logging(log_level)
    try:
        config = DiscoveryConfig()
        client, series_id_for = build_client(source, exchange_id, config)
    except AthScannerError as e:
        logger.error("Cannot start %s analysis: %s", source, e)
        return None
    logger.info("Starting ATH analysis (%s source)", source)

    if token:
        try:
            result = discover_ath(client, series_id_for(token), baseline, config)
        except AthScannerError as e:
            logger.error("Failed to calculate ATH for %s: %s", token, e)
            return None
        print(json.dumps(result.to_dict(), indent=2))
        return None

    records = load_scan_records(directory)
    results, failed = analyze_records(
        client, records, series_id_for, baseline, config, max_workers=workers
    )
    summary = generate_summary(results, failed, baseline)
    logger.info("Summary: %s", summary)

    export_dir = Path(directory) if directory else SCAN_RESULTS_DIR
    today = datetime.now(timezone.utc).strftime("%Y-%m-%d")
    export_results(results, summary, export_dir / f"{EXPORT_PREFIX}{today}.json")
    print_report(results, summary)
    return results


def cli() -> None:
    parser = argparse.ArgumentParser(description="Analyze ATH performance of scanned tokens")
    parser.add_argument("--dir", help="Scan results directory")
    parser.add_argument("--token", help="Resolve a single token address (or base symbol)")
    parser.add_argument("--source", choices=["codex", "exchange"], default="codex",
                        help="Price history source")
    parser.add_argument("--exchange", default=EXCHANGE_ID,
                        help="CCXT exchange id for --source exchange")
    parser.add_argument("--baseline", type=float, default=FIXED_ENTRY_PRICE,
                        help="Entry price to measure gains from")
    parser.add_argument("--workers", type=int, default=MAX_WORKERS,
                        help="Concurrent discoveries")
    parser.add_argument("--log-level", default=LOG_LEVEL, help="Console log level")
    args = parser.parse_args()
    main(directory=args.dir, token=args.token, source=args.source,
         exchange_id=args.exchange, baseline=args.baseline, workers=args.workers,
         log_level=args.log_level)


if __name__ == "__main__":
    cli()
