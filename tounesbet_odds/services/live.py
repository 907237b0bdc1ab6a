"""
Live odds snapshot and Statscore scoreboard refresh.
"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from ..clock import to_iso, utc_now
from ..context import ScrapeContext
from ..errors import FetchError
from ..parser import iter_games, parse_live
from ..scraper.statscore import get_statscore_ssr, parse_statscore_ssr
from .persist import persist_parsed

logger = logging.getLogger(__name__)


async def run_live(ctx: ScrapeContext, now: Optional[datetime] = None) -> dict:
    """
    Scrape the live page once and merge it.

    Returns:
        Persist counts plus 'live_games'
    """
    now = now or utc_now()
    html = await ctx.site.get_live_html()
    parsed = parse_live(html, now=now)
    async with ctx.db_lock:
        result = persist_parsed(ctx.db, ctx.source, parsed, now=now)
    result["live_games"] = sum(1 for _ in iter_games(parsed))
    logger.info(f"Live snapshot: {result['live_games']} games")
    return result


async def refresh_live_meta(ctx: ScrapeContext, ls_ids: Optional[list[str]] = None,
                            now: Optional[datetime] = None, seen_within_minutes: int = 10) -> dict:
    """
    Fetch Statscore scoreboards and store them as live meta.

    Args:
        ctx: Scrape context
        ls_ids: Live-score ids; defaults to live games seen within
            `seen_within_minutes`
        now: Clock override for tests

    Returns:
        Dict with 'requested', 'stored' and 'failed' counts
    """
    now = now or utc_now()
    settings = ctx.config.get_statscore_settings()
    if ls_ids is None:
        async with ctx.db_lock:
            ls_ids = ctx.db.get_live_game_external_ids(
                ctx.source, seen_after=to_iso(now - timedelta(minutes=seen_within_minutes)),
            )

    rows = []
    failed = 0
    for ls_id in ls_ids:
        try:
            payload = await get_statscore_ssr(
                ctx.fetcher, ls_id, settings["widget_group"], timezone=settings["timezone"],
            )
        except FetchError as e:
            logger.warning(f"Statscore fetch failed for {ls_id}: {e}")
            failed += 1
            continue
        rows.append(parse_statscore_ssr(payload, ls_id))

    if rows:
        async with ctx.db_lock:
            ctx.db.upsert_live_meta(rows, now=now)
    logger.info(f"Live meta: stored {len(rows)}/{len(ls_ids)}, {failed} failed")
    return {"requested": len(ls_ids), "stored": len(rows), "failed": failed}
