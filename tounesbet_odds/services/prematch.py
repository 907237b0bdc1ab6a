"""
One-shot prematch snapshot: next matches, their deep odds and the popular slider.
"""

import logging
from datetime import datetime
from typing import Optional

from ..clock import utc_now
from ..context import ScrapeContext
from ..errors import FetchError
from ..parser import (
    cap_markets,
    get_selected_sport_id_from_nav,
    iter_games,
    parse_popular_matches_fragment,
    parse_prematch_next_matches,
)
from .persist import persist_parsed

logger = logging.getLogger(__name__)

DEEP_FETCH_LIMIT = 12


async def run_prematch(ctx: ScrapeContext, now: Optional[datetime] = None) -> dict:
    """
    Scrape the upcoming-matches view of the selected sport and merge it.

    The first games get their full (capped) market set; the popular slider
    is appended to the selected sport as its own league.

    Returns:
        Persist counts plus 'sport_id' and 'deep_fetched'
    """
    now = now or utc_now()
    default_sport = ctx.config.get_default_sport_id()

    try:
        nav_html = await ctx.site.get_sport_html(default_sport)
    except FetchError as e:
        logger.warning(f"Sport page unavailable, reading nav from next matches: {e}")
        nav_html = await ctx.site.get_next_matches_html(default_sport)
    selected = get_selected_sport_id_from_nav(nav_html) or default_sport

    html = await ctx.site.get_next_matches_html(selected)
    parsed = parse_prematch_next_matches(html, selected, now=now)

    deep_fetched = 0
    for game in list(iter_games(parsed))[:DEEP_FETCH_LIMIT]:
        try:
            game.markets = cap_markets(await ctx.site.fetch_match_markets(game.external_id))
            deep_fetched += 1
        except FetchError as e:
            logger.warning(f"Deep odds fetch failed for match {game.external_id}: {e}")

    try:
        popular = parse_popular_matches_fragment(await ctx.site.get_popular_matches_html(selected), selected, now=now)
        if popular is not None:
            for sport in parsed:
                if sport.external_id == str(selected):
                    sport.leagues.append(popular)
                    break
    except FetchError as e:
        logger.error(f"Popular matches fetch failed: {e}")

    async with ctx.db_lock:
        result = persist_parsed(ctx.db, ctx.source, parsed, now=now)
    result.update({"sport_id": selected, "deep_fetched": deep_fetched})
    return result
