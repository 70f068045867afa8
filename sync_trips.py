#!/usr/bin/env python3
"""CLI entry point for the trip sync.

Usage:
    python sync_trips.py --mbox path/to/file.mbox [--user me@example.com] [--format json]

Options:
    --mbox PATH       Path to the mbox file to scan
    --store PATH      Trip store JSON file (default: trips.json)
    --user ID         User whose trips are synced
    --now TIMESTAMP   Treat this instant as "now" (alerts, archive stamps)
    --format FMT      Output format: text, json (default: text)
    --output PATH     Write the output here instead of stdout
    --dry-run         Compute the sync without writing the store
    --verbose         Debug logging
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from trip_sync.config import DEFAULT_USER, MBOX_PATH, STORE_PATH
from trip_sync.extract.email_parser import MboxMailSource
from trip_sync.extract.llm_extractor import LLMSegmentExtractor
from trip_sync.normalize.date_parser import parse_timestamp
from trip_sync.output import format_trips, to_json, trips_to_dicts
from trip_sync.pipeline import sync
from trip_sync.storage import JsonTripStore


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(
        description="Consolidate travel confirmation emails into trips.",
    )
    parser.add_argument("--mbox", default=MBOX_PATH, help="Path to the mbox file")
    parser.add_argument("--store", default=str(STORE_PATH), help="Trip store JSON file")
    parser.add_argument("--user", default=DEFAULT_USER, help=f"User identity (default: {DEFAULT_USER})")
    parser.add_argument("--now", default=None, help="Override the current time (ISO 8601)")
    parser.add_argument(
        "--format",
        choices=["text", "json"],
        default="text",
        help="Output format (text, json)",
    )
    parser.add_argument("--output", default=None, help="Output file (default: stdout)")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Run the sync but don't write the store",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    now = None
    if args.now:
        now = parse_timestamp(args.now)
        if now is None:
            parser.error(f"could not parse --now {args.now!r}")

    result = asyncio.run(sync(
        args.user,
        source=MboxMailSource(args.mbox),
        extractor=LLMSegmentExtractor(),
        store=JsonTripStore(Path(args.store)),
        now=now,
        commit=not args.dry_run,
    ))

    print(result.message, file=sys.stderr)
    if not result.ok:
        return 1

    if args.format == "json":
        if args.output:
            to_json(result.trips, Path(args.output))
            print(f"JSON written to: {args.output}", file=sys.stderr)
        else:
            print(json.dumps({"trips": trips_to_dicts(result.trips)}, indent=2, ensure_ascii=False))
        return 0

    text = format_trips(result.trips)
    if args.output:
        Path(args.output).write_text(text, encoding="utf-8")
        print(f"Trips written to: {args.output}", file=sys.stderr)
    else:
        print(text)
    return 0


if __name__ == "__main__":
    sys.exit(main())
