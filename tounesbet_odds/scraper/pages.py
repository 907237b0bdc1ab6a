"""
Tounesbet page fetchers.

Each method knows one endpoint, its query string and headers, and the
https -> http fallback order. Bodies are returned raw; parsing happens in
tounesbet_odds.parser.
"""

import logging
import re
from typing import Optional

from ..errors import FetchError
from ..parser import ParsedMarket, parse_match_odds_grouped
from ..parser.blocks import has_match_rows
from .config import (
    BASE_URLS,
    LIVE_FALLBACK_PATH,
    LIVE_PATH,
    MATCH_LIST_PATH,
    MATCH_ODDS_GROUPED_PATH,
    NEXT_MATCHES_PATH,
    POPULAR_MATCHES_PATH,
    PREMATCH_PATH,
    SPORT_PAGE_PATH,
    SPORT_PATH,
    XHR_HEADERS,
    build_url,
    catalog_params,
)
from .fetcher import FetchResult, ResilientFetcher

logger = logging.getLogger(__name__)

LIVE_TABLE_MARKER = re.compile(r"""<table[^>]*id=["']live_matches_table["']""", re.I)
NO_ACTIVE_MATCHES = re.compile(r"Actuellement,\s+il\s+n'y\s+a\s+pas\s+de\s+correspondances\s+actives\.", re.I)
BLOCK_SIGNATURES = re.compile(r"cloudflare|checking your browser|attention required|cf-ray|cdn-cgi", re.I)
UNRESOLVED_GATE = re.compile(r"""document\.cookie\s*=\s*"[^";=]+=[^;]+\s*;\s*path=/""", re.I)


def looks_blocked(html: str) -> bool:
    """
    True when a body looks like an anti-bot page rather than site content.

    The site's own "no active matches" sentence is never a block.
    """
    text = html or ""
    if not text:
        return True
    if NO_ACTIVE_MATCHES.search(text):
        return False
    if BLOCK_SIGNATURES.search(text):
        return True
    return bool(UNRESOLVED_GATE.search(text))


class TounesbetScraper:
    """
    Fetches Tounesbet pages through a ResilientFetcher.
    """

    def __init__(self, fetcher: ResilientFetcher, base_urls: Optional[list[str]] = None):
        self.fetcher = fetcher
        self.base_urls = list(base_urls or BASE_URLS)

    async def _first_text(self, path: str, params: Optional[dict] = None, headers: Optional[dict] = None) -> str:
        """Body from the first base URL that answers; re-raises the last failure."""
        last_error: Optional[FetchError] = None
        for base_url in self.base_urls:
            url = build_url(base_url, path, params)
            try:
                return await self.fetcher.fetch_text(url, headers=headers)
            except FetchError as e:
                logger.warning(f"Fetch failed for {url}: {e}")
                last_error = e
        raise last_error or FetchError(f"No base URL configured for {path}")

    async def get_prematch_html(self) -> str:
        """Prematch landing page (sport navigation)."""
        return await self._first_text(PREMATCH_PATH)

    async def get_sport_html(self, sport_id: str, bet_range_filter: str = "0") -> str:
        """Sport page; its nav marks the selected sport."""
        return await self._first_text(SPORT_PATH, {
            "SelectedSportId": sport_id,
            "BetRangeFilter": bet_range_filter,
        })

    async def get_next_matches_html(self, sport_id: str) -> str:
        return await self._first_text(NEXT_MATCHES_PATH, {"SportId": sport_id}, XHR_HEADERS)

    async def get_popular_matches_html(self, sport_id: str, date_day: str = "all_days",
                                       bet_range_filter: str = "0") -> str:
        return await self._first_text(POPULAR_MATCHES_PATH, {
            "SportId": sport_id,
            "DateDay": date_day,
            "BetRangeFilter": bet_range_filter,
        })

    async def get_sport_match_list_html(self, sport_id: str, bet_range_filter: str = "0", page: int = 1) -> str:
        """
        One catalog page.

        The `/Sport/{id}` URL is accepted only when it contains match rows;
        otherwise the legacy `/Sport/matchList` endpoint is used.
        """
        path = SPORT_PAGE_PATH.format(sport_id=sport_id)
        params = catalog_params(bet_range_filter, page)
        for base_url in self.base_urls:
            url = build_url(base_url, path, params)
            try:
                html = await self.fetcher.fetch_text(url, headers=XHR_HEADERS)
            except FetchError as e:
                logger.warning(f"Catalog page fetch failed for {url}: {e}")
                continue
            if has_match_rows(html):
                return html
            logger.debug(f"No match rows at {url}, trying next")

        legacy = {"SportId": sport_id, **params}
        return await self._first_text(MATCH_LIST_PATH, legacy, XHR_HEADERS)

    async def get_live_html(self) -> str:
        """Live page; falls back to /Live when no live table is found."""
        for base_url in self.base_urls:
            url = build_url(base_url, LIVE_PATH)
            try:
                html = await self.fetcher.fetch_text(url)
            except FetchError as e:
                logger.warning(f"Live page fetch failed for {url}: {e}")
                continue
            if LIVE_TABLE_MARKER.search(html):
                return html
        return await self._first_text(LIVE_FALLBACK_PATH)

    async def get_match_odds_grouped(self, match_id: str) -> FetchResult:
        """
        Detailed fetch of a match's grouped odds page.

        Returns the first 2xx result, else the last result obtained.

        Raises:
            FetchError: no base URL produced a response
        """
        last: Optional[FetchResult] = None
        last_error: Optional[FetchError] = None
        for base_url in self.base_urls:
            url = build_url(base_url, MATCH_ODDS_GROUPED_PATH, {"matchId": match_id})
            try:
                result = await self.fetcher.fetch_detailed(url, headers=XHR_HEADERS)
            except FetchError as e:
                logger.warning(f"MatchOddsGrouped fetch failed for {url}: {e}")
                last_error = e
                continue
            last = result
            if result.ok:
                return result
        if last is None:
            raise last_error or FetchError("No base URL configured for MatchOddsGrouped")
        return last

    async def fetch_match_markets(self, match_id: str) -> list[ParsedMarket]:
        """
        All markets of one match.

        Raises:
            FetchError: no 2xx response from any base URL
        """
        result = await self.get_match_odds_grouped(match_id)
        if not result.ok:
            raise FetchError(
                f"MatchOddsGrouped failed status={result.status} url={result.final_url}",
                url=result.final_url,
                status=result.status,
            )
        return parse_match_odds_grouped(result.text, match_id)
