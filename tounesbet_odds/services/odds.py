"""
Read side: odds snapshots for the API.
"""

import logging
from collections import defaultdict
from datetime import datetime, timedelta
from typing import Optional

from ..clock import to_iso, utc_now
from ..db.manager import DatabaseManager
from ..errors import SportNotFoundError
from ..parser import select_canonical_1x2
from ..scraper.statscore import PROVIDER as STATSCORE

logger = logging.getLogger(__name__)


def clamp_seen_within(value, default: int = 180, maximum: int = 7 * 24 * 60) -> int:
    """Freshness window in minutes within 0..maximum; non-numeric values give `default`."""
    try:
        minutes = int(float(value))
    except (TypeError, ValueError, OverflowError):
        return default
    return max(0, min(maximum, minutes))


def seen_cutoff(now: datetime, seen_within_minutes: int) -> Optional[str]:
    """Earliest last_seen_at still counted as fresh; None disables the filter."""
    if seen_within_minutes <= 0:
        return None
    return to_iso(now - timedelta(minutes=seen_within_minutes))


def _market_view(market: dict) -> dict:
    return {
        "id": market["id"],
        "key": market["key"],
        "name": market["name"],
        "external_id": market["external_id"],
        "outcomes": market["outcomes"],
    }


def select_odds(
    db: DatabaseManager,
    source: str,
    sport_key: str,
    live: bool,
    include_started: bool = False,
    include_stale: bool = False,
    seen_within_minutes: int = 180,
    now: Optional[datetime] = None,
) -> dict:
    """
    Games of a sport grouped by league, each with its canonical 1X2 market.

    Prematch games are limited to those not yet started and seen within the
    freshness window, unless the corresponding include flag is set. Live
    games are never filtered and carry their Statscore live meta.

    Raises:
        SportNotFoundError: no sport with this key
    """
    now = now or utc_now()
    sport = db.get_sport_by_key(source, sport_key)
    if sport is None:
        raise SportNotFoundError(sport_key)

    payload = {"sport": {"key": sport["key"], "name": sport["name"]}, "leagues": []}
    leagues = db.get_leagues_for_sport(source, sport["id"])
    if not leagues:
        return payload

    started_after = None
    seen_after = None
    if not live:
        if not include_started:
            started_after = to_iso(now)
        if not include_stale:
            seen_after = seen_cutoff(now, seen_within_minutes)

    games = db.select_games(
        source,
        [lg["id"] for lg in leagues],
        live,
        started_after=started_after,
        seen_after=seen_after,
    )

    markets_by_game = defaultdict(list)
    for market in db.select_markets_by_external_ids(source, [f"{g['external_id']}_1x2" for g in games]):
        markets_by_game[market["game_id"]].append(market)

    live_meta = {}
    if live and games:
        live_meta = db.select_live_meta(STATSCORE, [g["external_id"] for g in games])

    games_by_league = defaultdict(list)
    for g in games:
        games_by_league[g["league_id"]].append({
            "id": g["id"],
            "externalId": g["external_id"],
            "homeTeam": g["home_team"],
            "awayTeam": g["away_team"],
            "startTime": g["start_time"],
            "live": g["live"],
            "markets": [_market_view(m) for m in select_canonical_1x2(markets_by_game.get(g["id"], []))],
            "liveMeta": live_meta.get(g["external_id"]),
        })

    payload["leagues"] = [
        {"id": lg["id"], "name": lg["name"], "games": games_by_league.get(lg["id"], [])}
        for lg in leagues
    ]
    logger.debug(f"Odds for {sport_key} (live={live}): {len(games)} games in {len(leagues)} leagues")
    return payload


def select_stats(
    db: DatabaseManager,
    source: str,
    sport_key: Optional[str] = None,
    include_stale: bool = False,
    seen_within_minutes: int = 180,
    now: Optional[datetime] = None,
) -> dict:
    """
    Prematch coverage counts plus queue counts.

    Raises:
        SportNotFoundError: `sport_key` given but unknown
    """
    now = now or utc_now()
    league_ids = None
    sport = None
    if sport_key:
        sport = db.get_sport_by_key(source, sport_key)
        if sport is None:
            raise SportNotFoundError(sport_key)
        league_ids = [lg["id"] for lg in db.get_leagues_for_sport(source, sport["id"])]

    seen_after = None if include_stale else seen_cutoff(now, seen_within_minutes)
    return {
        "source": source,
        "sport": {"key": sport["key"], "name": sport["name"]} if sport else None,
        "now": to_iso(now),
        "seenAfter": seen_after,
        "counts": db.get_stats(source, to_iso(now), seen_after=seen_after, league_ids=league_ids),
        "queue": db.get_queue_counts(source),
    }
