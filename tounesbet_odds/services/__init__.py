"""
Orchestrators and persistence for scrape runs.
"""

from .discovery import run_prematch_discovery
from .full_markets import serve_prematch_full_markets
from .hourly import run_prematch_hourly
from .live import refresh_live_meta, run_live
from .odds import select_odds, select_stats
from .persist import persist_markets_for_match, persist_markets_for_matches, persist_parsed
from .prematch import run_prematch
from .scheduler import run_loop, run_tick

__all__ = [
    "run_prematch_discovery",
    "serve_prematch_full_markets",
    "run_prematch_hourly",
    "refresh_live_meta",
    "run_live",
    "select_odds",
    "select_stats",
    "persist_markets_for_match",
    "persist_markets_for_matches",
    "persist_parsed",
    "run_prematch",
    "run_loop",
    "run_tick",
]
