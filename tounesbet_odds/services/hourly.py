"""
Hourly 1X2 sweep: refresh the headline odds of discovered matches.
"""

import asyncio
import logging
from datetime import datetime
from typing import Optional

from ..clock import utc_now
from ..context import ScrapeContext
from ..db.models import TASK_1X2, ScrapeQueueTask
from ..errors import PersistenceError
from ..parser import pick_1x2_only
from .persist import persist_markets_for_matches
from .queue import TaskOutcome, apply_outcomes, clamp_batch, new_lock_owner

logger = logging.getLogger(__name__)


async def _fetch_1x2(ctx: ScrapeContext, task: ScrapeQueueTask, delay: float) -> TaskOutcome:
    try:
        markets = await ctx.site.fetch_match_markets(task.external_id)
        one_x_two = pick_1x2_only(markets)
        if not one_x_two:
            logger.debug(f"No 1X2 market on match {task.external_id}")
        return TaskOutcome.success(task, delay, markets=one_x_two)
    except Exception as e:
        logger.warning(f"1X2 task {task.external_id} failed: {e}")
        return TaskOutcome.failure(task, e)


async def run_prematch_hourly(ctx: ScrapeContext, batch: Optional[int] = None,
                              now: Optional[datetime] = None) -> dict:
    """
    Run one 1X2 sweep.

    Claims due 1x2 tasks, fetches each match's odds page, keeps only its
    1X2 markets and merges them in one write. Successful tasks come back in
    an hour; failures back off.

    Returns:
        Dict with 'claimed', 'ok', 'fail' and 'markets' written
    """
    now = now or utc_now()
    queue = ctx.config.get_queue_settings()
    schedule = ctx.config.get_schedule_settings()
    batch = clamp_batch(batch, queue["hourly_batch"], queue["hourly_batch_max"])
    owner = new_lock_owner()

    async with ctx.db_lock:
        tasks = ctx.db.claim_scrape_tasks(
            ctx.source, TASK_1X2, batch, owner, now=now, lease_minutes=queue["lease_minutes"],
        )

    results = {"claimed": len(tasks), "ok": 0, "fail": 0, "markets": 0}
    if not tasks:
        logger.info("No 1X2 tasks due")
        return results

    delay = schedule["hourly_success_minutes"]
    outcomes = list(await asyncio.gather(*[_fetch_1x2(ctx, t, delay) for t in tasks]))
    markets_by_match = {o.task.external_id: o.details["markets"] for o in outcomes if o.ok}

    async with ctx.db_lock:
        try:
            results["markets"] = persist_markets_for_matches(ctx.db, ctx.source, markets_by_match)
        except PersistenceError as e:
            logger.error(f"Persisting 1X2 markets failed: {e}")
            outcomes = [TaskOutcome.failure(o.task, e) if o.ok else o for o in outcomes]
        results["ok"], results["fail"] = apply_outcomes(
            ctx.db, outcomes, now, schedule["backoff_step_minutes"], schedule["backoff_cap_minutes"],
        )

    logger.info(
        f"Hourly 1X2: {results['ok']}/{results['claimed']} ok, "
        f"{results['markets']} markets, {results['fail']} failed"
    )
    return results
