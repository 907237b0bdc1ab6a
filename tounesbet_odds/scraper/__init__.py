"""
Tounesbet fetch layer and live-meta provider.
"""

from .fetcher import FetchResult, ResilientFetcher
from .pages import TounesbetScraper, looks_blocked
from .statscore import get_statscore_ssr, parse_statscore_ssr

__all__ = [
    "FetchResult",
    "ResilientFetcher",
    "TounesbetScraper",
    "looks_blocked",
    "get_statscore_ssr",
    "parse_statscore_ssr",
]
