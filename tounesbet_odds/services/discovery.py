"""
Prematch discovery: the catalog crawl.

Each run claims a few catalog-page tasks, fetches and persists their games,
enqueues a 1x2 follow-up for games without complete odds, and extends the
frontier with next-page tasks. A branch stops growing after too many
consecutive empty pages or past the page ceiling.
"""

import asyncio
import logging
from datetime import datetime
from typing import Optional

from ..clock import minutes_from, to_iso, utc_now
from ..context import ScrapeContext
from ..db.models import TASK_1X2, TASK_CATALOG_PAGE, ScrapeQueueTask
from ..errors import BlockedError, PersistenceError
from ..parser import has_complete_1x2, iter_games, parse_prematch_sport_match_list
from ..parser.blocks import has_match_rows
from ..scraper.pages import looks_blocked
from .persist import persist_parsed
from .queue import (
    PRIORITY_NEXT_PAGE,
    PRIORITY_SEED_PAGE,
    CatalogPageTask,
    MatchTask,
    TaskOutcome,
    apply_outcomes,
    clamp_batch,
    is_far_future,
    new_lock_owner,
    priority_for_start,
    queue_row,
)

logger = logging.getLogger(__name__)


def _claim_catalog_pages(ctx: ScrapeContext, batch: int, owner: str, now: datetime, queue: dict) -> list[ScrapeQueueTask]:
    """
    Claim catalog pages, healing the frontier first.

    - Pending pages that never succeeded and are gated past the horizon get
      their gate cleared.
    - An empty frontier is seeded with page 1 of the default sport.
    - When every pending page is gated past the horizon, all gated pages are
      expedited.
    """
    db, source = ctx.db, ctx.source
    horizon = queue["stuck_horizon_minutes"]
    lease = queue["lease_minutes"]

    try:
        healed = db.clear_stuck_gates(source, TASK_CATALOG_PAGE, minutes_from(now, horizon))
        if healed:
            logger.info(f"Cleared far-future gates on {healed} never-successful catalog pages")
    except PersistenceError as e:
        logger.warning(f"Could not clear stuck catalog gates: {e}")

    tasks = db.claim_scrape_tasks(source, TASK_CATALOG_PAGE, batch, owner, now=now, lease_minutes=lease)
    if tasks:
        return tasks

    if db.count_scrape_tasks(source, TASK_CATALOG_PAGE) == 0:
        seed = CatalogPageTask(sport_id=ctx.config.get_default_sport_id())
        logger.info(f"Catalog frontier empty, seeding {seed.encode()}")
        db.upsert_scrape_queue([queue_row(source, seed, PRIORITY_SEED_PAGE)], now=now)
        return db.claim_scrape_tasks(source, TASK_CATALOG_PAGE, batch, owner, now=now, lease_minutes=lease)

    soonest = db.get_soonest_gate(source, TASK_CATALOG_PAGE)
    if is_far_future(soonest, now, horizon):
        expedited = db.expedite_scrape_tasks(source, TASK_CATALOG_PAGE, gated_after=to_iso(now))
        logger.info(f"Soonest catalog page gated until {soonest}, expedited {expedited} pages")
        return db.claim_scrape_tasks(source, TASK_CATALOG_PAGE, batch, owner, now=now, lease_minutes=lease)
    return []


async def _process_page(ctx: ScrapeContext, task: ScrapeQueueTask, now: datetime,
                        queue: dict, schedule: dict) -> TaskOutcome:
    """Fetch, parse and persist one catalog page; never raises."""
    try:
        page = CatalogPageTask.decode(task.external_id, ctx.config.get_default_sport_id())
        html = await ctx.site.get_sport_match_list_html(page.sport_id, page.bet_range_filter, page.page)
        if not has_match_rows(html) and looks_blocked(html):
            raise BlockedError("blocked matchlist html")

        parsed = parse_prematch_sport_match_list(html, page.sport_id, now=now)
        async with ctx.db_lock:
            persist_parsed(ctx.db, ctx.source, parsed, now=now)

        games = list(iter_games(parsed))
        next_streak = 0 if games else page.empty_streak + 1
        if not games and next_streak >= queue["empty_streak_limit"]:
            next_pages = []
            logger.info(f"Branch {page.sport_id}:{page.bet_range_filter} exhausted at page {page.page}")
        else:
            fanout = queue["fanout_non_empty"] if games else queue["fanout_empty"]
            next_pages = page.next_pages(fanout, next_streak, queue["page_ceiling"])

        logger.info(f"Catalog page {page.page} ({page.sport_id}): {len(games)} games, streak {next_streak}")
        delay = schedule["catalog_success_minutes"] if games else schedule["catalog_empty_minutes"]
        return TaskOutcome.success(
            task,
            delay,
            page=page.page,
            games=len(games),
            follow_ups=[(g.external_id, g.start_time) for g in games if not has_complete_1x2(g)],
            next_pages=next_pages,
        )
    except Exception as e:
        logger.warning(f"Catalog page task {task.external_id} failed: {e}")
        return TaskOutcome.failure(task, e)


async def run_prematch_discovery(ctx: ScrapeContext, batch: Optional[int] = None,
                                 now: Optional[datetime] = None) -> dict:
    """
    Run one discovery pass.

    Args:
        ctx: Scrape context
        batch: Catalog pages to claim (clamped to 1..discovery_batch_max)
        now: Clock override for tests

    Returns:
        Dict with 'pages', 'games', 'enqueued_1x2', 'next_pages_enqueued',
        'fail' and the 'processed' pages
    """
    now = now or utc_now()
    queue = ctx.config.get_queue_settings()
    schedule = ctx.config.get_schedule_settings()
    batch = clamp_batch(batch, queue["discovery_batch"], queue["discovery_batch_max"])
    owner = new_lock_owner()

    async with ctx.db_lock:
        tasks = _claim_catalog_pages(ctx, batch, owner, now, queue)

    results = {"pages": 0, "games": 0, "enqueued_1x2": 0, "next_pages_enqueued": 0, "fail": 0, "processed": []}
    if not tasks:
        logger.info("No catalog pages due")
        return results

    logger.info(f"Claimed {len(tasks)} catalog pages as {owner}")
    outcomes = await asyncio.gather(*[_process_page(ctx, t, now, queue, schedule) for t in tasks])

    follow_ups: dict[str, Optional[str]] = {}
    next_pages: dict[str, CatalogPageTask] = {}
    for outcome in outcomes:
        if not outcome.ok:
            continue
        results["pages"] += 1
        results["games"] += outcome.details["games"]
        results["processed"].append({
            "id": outcome.task.id,
            "external_id": outcome.task.external_id,
            "page": outcome.details["page"],
        })
        for match_id, start_time in outcome.details["follow_ups"]:
            follow_ups.setdefault(match_id, start_time)
        for payload in outcome.details["next_pages"]:
            next_pages.setdefault(payload.encode(), payload)

    async with ctx.db_lock:
        _, results["fail"] = apply_outcomes(
            ctx.db, outcomes, now, schedule["backoff_step_minutes"], schedule["backoff_cap_minutes"],
        )
        if follow_ups:
            ctx.db.upsert_scrape_queue([
                queue_row(ctx.source, MatchTask(match_id, TASK_1X2), priority_for_start(start, now))
                for match_id, start in follow_ups.items()
            ], now=now)
            results["enqueued_1x2"] = len(follow_ups)
        if next_pages:
            ctx.db.upsert_scrape_queue([
                queue_row(ctx.source, payload, PRIORITY_NEXT_PAGE) for payload in next_pages.values()
            ], now=now)
            results["next_pages_enqueued"] = len(next_pages)

    logger.info(
        f"Discovery: {results['pages']} pages, {results['games']} games, "
        f"{results['enqueued_1x2']} 1x2 tasks, {results['next_pages_enqueued']} next pages, "
        f"{results['fail']} failed"
    )
    return results
