"""
Tounesbet Odds Scraper - Main Entry Point

Usage:
    python main.py discover             # One catalog discovery pass
    python main.py hourly               # One 1X2 sweep
    python main.py live [--meta]        # Live snapshot (+ Statscore meta)
    python main.py prematch             # Next matches + deep odds
    python main.py markets 12345        # Full markets of one match
    python main.py serve                # Read API
    python main.py loop                 # Scheduler: live + discovery + hourly every minute
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).parent
sys.path.insert(0, str(PROJECT_ROOT))

from tounesbet_odds.config import ConfigLoader
from tounesbet_odds.context import ScrapeContext
from tounesbet_odds.errors import ScraperError

logger = logging.getLogger(__name__)


def print_result(title: str, result: dict):
    print("\n" + "=" * 60)
    print(f"  {title}")
    print("=" * 60)
    print(json.dumps(result, indent=2, default=str))


async def run_command(args, config: ConfigLoader):
    """Run one scrape command inside a ScrapeContext."""
    from tounesbet_odds import services

    async with ScrapeContext(config) as ctx:
        if args.command == "discover":
            print_result("DISCOVERY", await services.run_prematch_discovery(ctx, batch=args.batch))
        elif args.command == "hourly":
            print_result("HOURLY 1X2", await services.run_prematch_hourly(ctx, batch=args.batch))
        elif args.command == "live":
            print_result("LIVE", await services.run_live(ctx))
            if args.meta:
                print_result("LIVE META", await services.refresh_live_meta(ctx))
        elif args.command == "prematch":
            print_result("PREMATCH", await services.run_prematch(ctx))
        elif args.command == "markets":
            result = await services.serve_prematch_full_markets(ctx, args.match_id, fresh=args.fresh)
            print_result(f"MARKETS {args.match_id}", result)
        elif args.command == "loop":
            await services.run_loop(ctx, interval_seconds=args.interval, max_ticks=args.ticks)


def serve(config: ConfigLoader, host: str, port: int):
    """Serve the read API with uvicorn."""
    import uvicorn
    from tounesbet_odds.api import create_app

    app = create_app(ScrapeContext(config))
    uvicorn.run(app, host=host, port=port)


def main():
    parser = argparse.ArgumentParser(
        description="Tounesbet Odds Scraper - catalog crawl, odds refresh and read API",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py discover --batch 4     # Claim up to 4 catalog pages
  python main.py hourly                 # Refresh due 1X2 odds
  python main.py markets 12345 --fresh  # Re-scrape all markets of match 12345
  python main.py serve --port 8000      # Read API on :8000
        """
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    parser.add_argument("--config-dir", type=Path, default=None, help="Directory holding settings.yaml")
    parser.add_argument("--db", default=None, help="Override the database path")

    sub = parser.add_subparsers(dest="command", required=True)

    discover = sub.add_parser("discover", help="One catalog discovery pass")
    discover.add_argument("--batch", type=int, default=None, help="Catalog pages to claim (1-4)")

    hourly = sub.add_parser("hourly", help="One hourly 1X2 sweep")
    hourly.add_argument("--batch", type=int, default=None, help="Matches to claim (1-8)")

    live = sub.add_parser("live", help="Scrape the live page")
    live.add_argument("--meta", action="store_true", help="Also refresh Statscore live meta")

    sub.add_parser("prematch", help="Next matches of the selected sport with deep odds")

    markets = sub.add_parser("markets", help="Full market set of one match")
    markets.add_argument("match_id", help="Site match id")
    markets.add_argument("--fresh", action="store_true", help="Ignore the one-hour cache")

    serve_p = sub.add_parser("serve", help="Serve the read API")
    serve_p.add_argument("--host", default="127.0.0.1")
    serve_p.add_argument("--port", type=int, default=8000)

    loop = sub.add_parser("loop", help="Run the in-process scheduler")
    loop.add_argument("--interval", type=float, default=None, help="Seconds between ticks")
    loop.add_argument("--ticks", type=int, default=None, help="Stop after this many ticks")

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(levelname)s - %(message)s",
    )

    overrides = {"database": {"path": args.db}} if args.db else None
    config = ConfigLoader(args.config_dir, overrides=overrides)

    try:
        if args.command == "serve":
            serve(config, args.host, args.port)
        else:
            asyncio.run(run_command(args, config))
    except ScraperError as e:
        logger.error(f"{args.command} failed: {e}")
        sys.exit(1)
    except KeyboardInterrupt:
        print("\n\nInterrupted by user.")
        sys.exit(1)


if __name__ == "__main__":
    main()
