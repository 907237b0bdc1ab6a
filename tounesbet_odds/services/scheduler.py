"""
In-process scheduler: every tick runs live, discovery and the hourly sweep side by side.
"""

import asyncio
import logging
from typing import Optional

from ..context import ScrapeContext
from .discovery import run_prematch_discovery
from .hourly import run_prematch_hourly
from .live import run_live

logger = logging.getLogger(__name__)

TICK_DISCOVERY_BATCH = 4
TICK_HOURLY_BATCH = 5


async def run_tick(ctx: ScrapeContext) -> dict:
    """
    Run one scheduler tick.

    A failing job is logged and reported as its error string; the other
    jobs still complete.
    """
    names = ("live", "discovery", "hourly")
    results = await asyncio.gather(
        run_live(ctx),
        run_prematch_discovery(ctx, batch=TICK_DISCOVERY_BATCH),
        run_prematch_hourly(ctx, batch=TICK_HOURLY_BATCH),
        return_exceptions=True,
    )
    summary = {}
    for name, result in zip(names, results):
        if isinstance(result, BaseException):
            logger.error(f"Scheduled {name} run failed: {result}")
            summary[name] = {"error": str(result)}
        else:
            summary[name] = result
    return summary


async def run_loop(ctx: ScrapeContext, interval_seconds: Optional[float] = None,
                   max_ticks: Optional[int] = None):
    """Run ticks every `interval_seconds` until cancelled (or `max_ticks` ticks)."""
    interval = interval_seconds or ctx.config.get_schedule_settings()["loop_interval_seconds"]
    ticks = 0
    while max_ticks is None or ticks < max_ticks:
        started = asyncio.get_running_loop().time()
        await run_tick(ctx)
        ticks += 1
        if max_ticks is not None and ticks >= max_ticks:
            break
        elapsed = asyncio.get_running_loop().time() - started
        await asyncio.sleep(max(0.0, interval - elapsed))
