"""
Admin and diagnostic routes: queue introspection, coverage stats, live meta refresh.
"""

import logging
from dataclasses import asdict
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse

from ...context import ScrapeContext
from ...db.models import STATUS_PENDING, TASK_1X2, ScrapeQueueTask
from ...services import refresh_live_meta, select_stats
from ...services.odds import clamp_seen_within
from ...services.queue import PRIORITY_ADMIN
from .odds import get_context

logger = logging.getLogger(__name__)

router = APIRouter()

QUEUE_ACTIONS = ("ping", "peek", "enqueue", "expedite", "release", "claim")


def _bad_request(message: str) -> JSONResponse:
    return JSONResponse(status_code=400, content={"error": message})


def _clamp_limit(value: Optional[str], default: int = 5, maximum: int = 50) -> int:
    try:
        limit = int(value) if value is not None else default
    except ValueError:
        limit = default
    return max(0, min(maximum, limit))


@router.get("/queue")
async def queue_admin(
    action: str = Query("ping"),
    source: Optional[str] = Query(None),
    task: str = Query(TASK_1X2),
    external_id: Optional[str] = Query(None, alias="externalId"),
    limit: Optional[str] = Query(None),
    lock_owner: str = Query("debug", alias="lockOwner"),
    task_id: Optional[int] = Query(None, alias="id"),
    ctx: ScrapeContext = Depends(get_context),
):
    """
    Inspect or poke the scrape queue.

    Actions:
        ping: claim with limit 0 (checks the claim path)
        peek: first `limit` rows in claim order
        enqueue: add `externalId` at admin priority
        expedite: open the gate of every pending task of the kind
        release: return task `id` to pending
        claim: lease up to `limit` due tasks for `lockOwner`
    """
    if action not in QUEUE_ACTIONS:
        return _bad_request(f"unknown action: {action}")
    source = source or ctx.source
    limit_n = _clamp_limit(limit)
    body = {"ok": True, "action": action, "source": source, "task": task}

    async with ctx.db_lock:
        db = ctx.db
        if action == "enqueue":
            if not external_id:
                return _bad_request("missing externalId")
            db.upsert_scrape_queue([ScrapeQueueTask(
                source=source, task=task, external_id=external_id,
                status=STATUS_PENDING, priority=PRIORITY_ADMIN,
            )])
            body["row"] = asdict(db.get_scrape_task(source, task, external_id))
        elif action == "expedite":
            body["expedited"] = db.expedite_scrape_tasks(source, task)
        elif action == "peek":
            body["rows"] = db.peek_scrape_tasks(source, task, limit_n)
        elif action == "release":
            if task_id is None:
                return _bad_request("missing id")
            db.release_scrape_task(task_id)
            body["id"] = task_id
        else:
            claim_limit = 0 if action == "ping" else limit_n
            claimed = db.claim_scrape_tasks(source, task, claim_limit, lock_owner)
            body["claimed"] = [asdict(t) for t in claimed]

    logger.info(f"Queue admin {action} on {source}/{task}")
    return body


@router.get("/stats")
async def stats(
    sport_key: Optional[str] = Query(None, alias="sportKey"),
    include_stale: str = Query("0", alias="includeStale"),
    seen_within: Optional[str] = Query(None, alias="seenWithinMinutes"),
    ctx: ScrapeContext = Depends(get_context),
):
    """Prematch coverage (totals, upcoming, started, 1X2) and queue counts."""
    api = ctx.config.get_api_settings()
    async with ctx.db_lock:
        return select_stats(
            ctx.db,
            ctx.source,
            sport_key=sport_key,
            include_stale=include_stale == "1",
            seen_within_minutes=clamp_seen_within(
                seen_within if seen_within is not None else api["seen_within_minutes"],
                api["seen_within_minutes"],
                api["seen_within_max"],
            ),
        )


@router.get("/statscore/{ls_id}")
async def statscore_refresh(ls_id: str, ctx: ScrapeContext = Depends(get_context)):
    """Fetch and store the Statscore scoreboard of one live-score id."""
    result = await refresh_live_meta(ctx, [ls_id])
    async with ctx.db_lock:
        result["meta"] = ctx.db.select_live_meta("statscore", [ls_id]).get(ls_id)
    return result
