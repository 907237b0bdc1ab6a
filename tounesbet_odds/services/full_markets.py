"""
On-demand full market set of one match, cached behind a queue marker.
"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from ..clock import minutes_from, parse_iso, to_iso, utc_now
from ..context import ScrapeContext
from ..db.models import STATUS_PENDING, TASK_FULL_MARKETS
from ..errors import FetchError, GameNotFoundError, PersistenceError
from .persist import persist_markets_for_match
from .queue import PRIORITY_FULL_MARKETS, MatchTask, queue_row

logger = logging.getLogger(__name__)


async def serve_prematch_full_markets(ctx: ScrapeContext, match_id: str, fresh: bool = False,
                                      now: Optional[datetime] = None) -> dict:
    """
    Return all markets of a match, scraping them when the cache is stale.

    The full-markets queue row for the match acts as a cache marker: its
    last_success_at is the time of the last successful scrape.

    Args:
        ctx: Scrape context
        match_id: Site match id
        fresh: Scrape even when the cache is within its TTL
        now: Clock override for tests

    Returns:
        {"matchId", "cached": True, "last_success_at", "markets"} from the
        database, or {"matchId", "cached": False, "markets"} just scraped

    Raises:
        GameNotFoundError: the match was never discovered
        FetchError: the odds page could not be fetched
    """
    now = now or utc_now()
    match_id = str(match_id)
    ttl = ctx.config.get_schedule_settings()["full_markets_ttl_minutes"]

    async with ctx.db_lock:
        game = ctx.db.get_game(ctx.source, match_id)
        if game is None:
            raise GameNotFoundError(match_id)
        marker = ctx.db.get_scrape_task(ctx.source, TASK_FULL_MARKETS, match_id)

        last_success = parse_iso(marker.last_success_at) if marker else None
        if not fresh and last_success and now - last_success < timedelta(minutes=ttl):
            logger.debug(f"Serving cached markets for match {match_id}")
            return {
                "matchId": match_id,
                "cached": True,
                "last_success_at": marker.last_success_at,
                "markets": ctx.db.select_markets_for_game(game["id"]),
            }

        ctx.db.upsert_scrape_queue(
            [queue_row(ctx.source, MatchTask(match_id, TASK_FULL_MARKETS), PRIORITY_FULL_MARKETS)], now=now,
        )
        marker = ctx.db.get_scrape_task(ctx.source, TASK_FULL_MARKETS, match_id)

    try:
        markets = await ctx.site.fetch_match_markets(match_id)
    except FetchError as e:
        async with ctx.db_lock:
            ctx.db.update_scrape_task(marker.id, now=now, last_error=str(e))
        raise

    async with ctx.db_lock:
        try:
            persist_markets_for_match(ctx.db, ctx.source, match_id, markets)
        except PersistenceError as e:
            ctx.db.update_scrape_task(marker.id, now=now, last_error=str(e))
            raise
        ctx.db.update_scrape_task(
            marker.id,
            now=now,
            status=STATUS_PENDING,
            not_before_at=minutes_from(now, ttl),
            locked_at=None,
            lock_owner=None,
            last_error=None,
            last_success_at=to_iso(now),
        )

    logger.info(f"Scraped {len(markets)} markets for match {match_id}")
    return {"matchId": match_id, "cached": False, "markets": [m.to_dict() for m in markets]}
