"""
Command line entry point.

  swap-metrics metrics       volume, pair and account report
  swap-metrics fee-leaders   per-tier fee leaderboards

Reports are printed as JSON to stdout or written to ``--out``; ``--csv-dir``
additionally exports every ranked table as its own CSV file.
"""

from __future__ import annotations

import argparse
import datetime
import json
import logging
import os
import sys
import time
from typing import Any, Dict, Iterator, List, Optional, Tuple

import pandas as pd
import requests
from tqdm import tqdm

from swap_metrics import __version__
from swap_metrics.core.aggregation.engine import get_swap_metrics
from swap_metrics.core.aggregation.fee_leaders import get_fee_leaders
from swap_metrics.core.cache import ReportCache, cached_report
from swap_metrics.core.config import load_config
from swap_metrics.core.errors import SwapMetricsError
from swap_metrics.core.prices import PriceCache


def ranked_tables(report: Dict[str, Any], prefix: str = "") -> Iterator[Tuple[str, List[Dict[str, Any]]]]:
    """Yield ``(name, rows)`` for every list of row objects nested in ``report``."""
    for key, value in report.items():
        name = f"{prefix}_{key}" if prefix else key
        if isinstance(value, dict):
            yield from ranked_tables(value, name)
        elif isinstance(value, list) and value and all(isinstance(row, dict) for row in value):
            yield name, value


def export_csv(report: Dict[str, Any], csv_dir: str) -> List[str]:
    os.makedirs(csv_dir, exist_ok=True)
    written = []
    for name, rows in ranked_tables(report):
        path = os.path.join(csv_dir, f"{name}.csv")
        pd.DataFrame(rows).to_csv(path, index=False)
        written.append(path)
    return written


def write_report(report: Dict[str, Any], out: Optional[str]) -> None:
    text = json.dumps(report, indent=2, ensure_ascii=False)
    if not out:
        sys.stdout.write(text + "\n")
        return
    d = os.path.dirname(os.path.abspath(out))
    os.makedirs(d, exist_ok=True)
    with open(out, "w", encoding="utf-8") as fh:
        fh.write(text + "\n")


def _settings(args):
    settings = load_config(args.config)
    changes = {}
    if args.max_events is not None:
        changes["max_events"] = args.max_events
    if args.side is not None:
        changes["volume_side"] = args.side
    return settings.replace(**changes) if changes else settings


def cmd_metrics(args, settings, session, progress) -> Dict[str, Any]:
    cache = PriceCache(settings.price_cache_ttl_sec)
    return get_swap_metrics(settings, session=session, price_cache=cache, progress=progress)


def cmd_fee_leaders(args, settings, session, progress) -> Dict[str, Any]:
    cache = PriceCache(settings.price_cache_ttl_sec)

    def compute():
        return get_fee_leaders(settings, session=session, price_cache=cache, progress=progress)

    if args.no_cache:
        return compute()
    report_cache = ReportCache(settings.report_cache_path, settings.report_cache_ttl_sec)
    return cached_report(compute, report_cache)


def _add_common_args(p: argparse.ArgumentParser) -> None:
    p.add_argument("--config", help="YAML config path (default: $SWAP_METRICS_CONFIG_PATH)")
    p.add_argument("--out", help="write the JSON report here instead of stdout")
    p.add_argument("--csv-dir", help="also export ranked tables as CSV into this directory")
    p.add_argument("--max-events", type=int, help="stop after this many events (0 = no limit)")
    p.add_argument("--side", choices=("in", "out"), help="which swap leg to value")
    p.add_argument("--no-progress", action="store_true", help="disable the progress bar")
    p.add_argument("--verbose", "-v", action="store_true", help="debug logging")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="swap-metrics", description=__doc__,
                                     formatter_class=argparse.RawDescriptionHelpFormatter)
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    sub = parser.add_subparsers(dest="command", required=True)

    metrics_parser = sub.add_parser("metrics", help="Aggregate swap volume, pairs and accounts")
    _add_common_args(metrics_parser)
    metrics_parser.set_defaults(func=cmd_metrics, title="swap metrics")

    fees_parser = sub.add_parser("fee-leaders", help="Rank accounts by swap fees paid")
    _add_common_args(fees_parser)
    fees_parser.add_argument("--no-cache", action="store_true", help="skip the report cache file")
    fees_parser.set_defaults(func=cmd_fee_leaders, title="fee leaders")

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        stream=sys.stderr,
    )

    t0 = time.time()
    try:
        settings = _settings(args)
        print(f"Starting {args.title} run", file=sys.stderr)
        print(f"Settings: BATCH_SIZE={settings.batch_size}, MAX_EVENTS={settings.max_events}, "
              f"SIDE={settings.volume_side}", file=sys.stderr)
        with requests.Session() as session, tqdm(
            desc="Swap events", unit="ev", dynamic_ncols=True, leave=False,
            disable=args.no_progress, file=sys.stderr,
        ) as pbar:
            report = args.func(args, settings, session, pbar)
    except (SwapMetricsError, requests.RequestException) as exc:
        print(f"⚠️  {args.title} failed: {exc}", file=sys.stderr)
        return 1

    write_report(report, args.out)
    if args.csv_dir:
        for path in export_csv(report, args.csv_dir):
            print(f"  ✓ {path}", file=sys.stderr)

    elapsed = time.time() - t0
    print(f"\n{'=' * 60}", file=sys.stderr)
    print("✅ COMPLETED!", file=sys.stderr)
    if "eventsProcessed" in report:
        print(f"Events processed: {report['eventsProcessed']:,}", file=sys.stderr)
    if args.out:
        print(f"Report: {args.out}", file=sys.stderr)
    print(f"Total time: {str(datetime.timedelta(seconds=int(elapsed)))}", file=sys.stderr)
    print(f"{'=' * 60}", file=sys.stderr)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
