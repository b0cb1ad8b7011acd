#!/usr/bin/env python3
"""Print the backend's lot statuses, optionally following live updates.

Usage
-----
Set environment variables and run::

    export SPARK_SUPABASE_URL="https://<ref>.supabase.co"
    export SPARK_SUPABASE_ANON_KEY="..."
    python scripts/watch_lots.py

Options::

    --json               Output a single machine-readable JSON snapshot
    --watch SECONDS      Keep the feed open and print every change
    --no-realtime        Poll only, never open the websocket
    --search QUERY       Only show lots whose name or id matches
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from datetime import UTC, datetime

from sparkmap import SparkClient, SparkConfig, SparkError, search_lots
from sparkmap.models.lot import Lot, ServerLotStatus


def _format_row(lot: Lot, status: ServerLotStatus | None) -> str:
    label = status.status.label if status and status.status else "-"
    confidence = f"{status.confidence:.2f}" if status and status.confidence is not None else "-"
    return f"  {lot.id:<10} {label:<8} {confidence:>5}  {lot.name}"


def _print_table(lots: list[Lot], statuses: dict[str, ServerLotStatus]) -> None:
    print(f"\n{datetime.now(UTC).isoformat()}")
    for lot in lots:
        print(_format_row(lot, statuses.get(lot.id)))


async def main() -> int:
    parser = argparse.ArgumentParser(description="Show crowdsourced lot statuses from the backend.")
    parser.add_argument("--json", action="store_true", dest="json_mode", help="Output machine-readable JSON")
    parser.add_argument("--watch", type=float, default=0.0, metavar="SECONDS", help="Follow updates for SECONDS")
    parser.add_argument("--no-realtime", action="store_true", help="Poll only")
    parser.add_argument("--search", help="Filter lots by name or id")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    args = parser.parse_args()

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")
    else:
        logging.basicConfig(level=logging.WARNING)

    try:
        config = SparkConfig.from_env()
        async with SparkClient(config) as client:
            lots, statuses = await client.load_lots()
            if args.search:
                lots = search_lots(lots, args.search, limit=len(lots))

            if args.json_mode:
                payload = {
                    "timestamp": datetime.now(UTC).isoformat(),
                    "lots": [
                        {
                            **lot.model_dump(),
                            "status": statuses[lot.id].status if lot.id in statuses else None,
                            "confidence": statuses[lot.id].confidence if lot.id in statuses else None,
                        }
                        for lot in lots
                    ],
                }
                print(json.dumps(payload, indent=2, default=str, ensure_ascii=False))
                return 0

            _print_table(lots, statuses)
            if args.watch <= 0:
                return 0

            wanted = {lot.id for lot in lots}
            feed = client.create_feed(realtime=not args.no_realtime)

            def _on_update(current: dict[str, ServerLotStatus]) -> None:
                shown = [lot for lot in feed.lots if lot.id in wanted] or lots
                print(f"[{feed.state}]", end="")
                _print_table(shown, current)

            feed.add_listener(_on_update)
            async with feed:
                await asyncio.sleep(args.watch)
    except SparkError as exc:
        print(f"watch_lots failed: {exc}", file=sys.stderr)
        return 2
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
