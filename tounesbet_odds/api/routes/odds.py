"""
Odds API routes.

Endpoints for the per-sport odds snapshots and the full market set of one match.
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel

from ...context import ScrapeContext
from ...services import select_odds, serve_prematch_full_markets
from ...services.odds import clamp_seen_within

logger = logging.getLogger(__name__)

router = APIRouter()


def get_context(request: Request) -> ScrapeContext:
    return request.app.state.ctx


# ==========================================
# RESPONSE MODELS
# ==========================================

class OutcomeResponse(BaseModel):
    """Single priced selection."""
    id: Optional[int] = None
    external_id: Optional[str] = None
    label: str
    price: float
    handicap: Optional[float] = None


class MarketResponse(BaseModel):
    """Market with its outcomes."""
    id: Optional[int] = None
    key: str
    name: str
    external_id: Optional[str] = None
    outcomes: List[OutcomeResponse] = []


class LiveMetaResponse(BaseModel):
    """Scoreboard data joined by the game's external id."""
    provider_ls_id: Optional[str] = None
    provider_event_id: Optional[str] = None
    status_name: Optional[str] = None
    clock_time: Optional[int] = None
    start_time: Optional[str] = None
    home_team: Optional[str] = None
    away_team: Optional[str] = None
    home_score: Optional[int] = None
    away_score: Optional[int] = None
    competition_name: Optional[str] = None


class GameResponse(BaseModel):
    id: int
    externalId: str
    homeTeam: str
    awayTeam: str
    startTime: str
    live: bool
    markets: List[MarketResponse] = []
    liveMeta: Optional[LiveMetaResponse] = None


class LeagueResponse(BaseModel):
    id: int
    name: str
    games: List[GameResponse] = []


class SportResponse(BaseModel):
    key: str
    name: str


class OddsResponse(BaseModel):
    """Games of one sport grouped by league, 1X2 only."""
    sport: SportResponse
    leagues: List[LeagueResponse]


class MatchMarketsResponse(BaseModel):
    """Full market set of one match."""
    matchId: str
    cached: bool
    last_success_at: Optional[str] = None
    markets: List[MarketResponse]


# ==========================================
# ENDPOINTS
# ==========================================

def _odds(ctx: ScrapeContext, sport_key: str, live: bool, include_started: str,
          include_stale: str, seen_within: Optional[str]) -> dict:
    api = ctx.config.get_api_settings()
    return select_odds(
        ctx.db,
        ctx.source,
        sport_key,
        live,
        include_started=include_started == "1",
        include_stale=include_stale == "1",
        seen_within_minutes=clamp_seen_within(
            seen_within if seen_within is not None else api["seen_within_minutes"],
            api["seen_within_minutes"],
            api["seen_within_max"],
        ),
    )


@router.get("/odds/prematch/{sport_key}", response_model=OddsResponse)
async def get_prematch_odds(
    sport_key: str,
    include_started: str = Query("0", alias="includeStarted"),
    include_stale: str = Query("0", alias="includeStale"),
    seen_within: Optional[str] = Query(None, alias="seenWithinMinutes"),
    ctx: ScrapeContext = Depends(get_context),
):
    """
    Upcoming games of a sport with their canonical 1X2 market.

    Started games and games not seen within `seenWithinMinutes` (0 disables
    the check) are left out unless `includeStarted=1` / `includeStale=1`.
    """
    async with ctx.db_lock:
        return _odds(ctx, sport_key, False, include_started, include_stale, seen_within)


@router.get("/odds/live/{sport_key}", response_model=OddsResponse)
async def get_live_odds(
    sport_key: str,
    include_started: str = Query("0", alias="includeStarted"),
    include_stale: str = Query("0", alias="includeStale"),
    seen_within: Optional[str] = Query(None, alias="seenWithinMinutes"),
    ctx: ScrapeContext = Depends(get_context),
):
    """Live games of a sport with their canonical 1X2 market and live meta."""
    async with ctx.db_lock:
        return _odds(ctx, sport_key, True, include_started, include_stale, seen_within)


@router.get("/prematch/match/{match_id}/markets", response_model=MatchMarketsResponse)
async def get_match_markets(
    match_id: str,
    fresh: str = Query("0"),
    ctx: ScrapeContext = Depends(get_context),
):
    """All markets of one match; scraped when the cached copy is older than an hour."""
    return await serve_prematch_full_markets(ctx, match_id, fresh=fresh == "1")
