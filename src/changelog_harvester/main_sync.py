"""Command-line sync.

Usage:
    python -m changelog_harvester.main_sync --days 7
    python -m changelog_harvester.main_sync --start 2025-01-01 --end 2025-01-31
    python -m changelog_harvester.main_sync --reextract-stale

Prints the run summary as JSON. Exits non-zero when the run aborts.
"""
from __future__ import annotations

import argparse
import sys
from datetime import date
from typing import List, Optional

from .config import Settings, load_settings
from .errors import ConfigurationError, TransportError
from .log import setup_logging, get_logger
from .pipeline.run import build_pipeline
from .schemas.messages import TimeWindow
from .store.db import init_db

logger = get_logger("sync")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Harvest releases from the Slack channel")
    parser.add_argument("--days", type=int, help="look back this many days")
    parser.add_argument("--start", type=date.fromisoformat, help="first day to sync (YYYY-MM-DD)")
    parser.add_argument("--end", type=date.fromisoformat, help="last day to sync, inclusive (YYYY-MM-DD)")
    parser.add_argument(
        "--reextract-stale",
        action="store_true",
        help="re-extract messages in the window whose releases came from an older extraction prompt",
    )
    return parser


def window_from_args(args: argparse.Namespace, settings: Settings) -> TimeWindow:
    if args.start:
        return TimeWindow.between(args.start, args.end)
    if args.days:
        return TimeWindow.last_days(args.days)
    return TimeWindow.last_hours(settings.SYNC_LOOKBACK_HOURS)


def main(argv: Optional[List[str]] = None, settings: Optional[Settings] = None) -> int:
    args = build_parser().parse_args(argv)
    if args.end and not args.start:
        print("--end requires --start", file=sys.stderr)
        return 2

    try:
        settings = settings or load_settings()
    except ConfigurationError as e:
        print(str(e), file=sys.stderr)
        return 1
    setup_logging(settings.LOG_LEVEL)

    init_db(settings.DB_PATH)
    pipeline = build_pipeline(settings)
    window = window_from_args(args, settings)

    try:
        if args.reextract_stale:
            summary = pipeline.reextract_stale(window)
        else:
            summary = pipeline.sync(window)
    except (ConfigurationError, TransportError) as e:
        logger.error(f"Sync aborted: {e}")
        return 1

    print(summary.model_dump_json(indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
