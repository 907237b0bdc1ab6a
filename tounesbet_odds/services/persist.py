"""
Persist / merge of parse results.

Rows are upserted by their natural keys stage by stage
(sport -> league -> game -> market -> outcome); after each stage the id map
is re-queried so the next stage can link its foreign keys. Each call runs
inside one transaction: a failure leaves nothing half-written.

These functions are synchronous database work. Async callers hold
ScrapeContext.db_lock around them.
"""

import logging
from datetime import datetime
from typing import Optional

from ..clock import parse_iso, to_iso, utc_now
from ..db.manager import DatabaseManager, handicap_key
from ..db.models import Game, League, Market, Outcome, Sport
from ..errors import GameNotFoundError
from ..parser.models import ParsedMarket, ParsedSport

logger = logging.getLogger(__name__)


def _normalize_start(value: str, fallback: str) -> str:
    parsed = parse_iso(value)
    return to_iso(parsed) if parsed else fallback


def _dedupe_outcomes(outcomes: list[Outcome]) -> list[Outcome]:
    """First outcome wins per (market_id, label, handicap)."""
    seen = set()
    result = []
    for o in outcomes:
        key = (o.market_id, o.label, handicap_key(o.handicap))
        if key in seen:
            continue
        seen.add(key)
        result.append(o)
    return result


def _upsert_markets(db: DatabaseManager, source: str, pairs: list[tuple[int, ParsedMarket]]) -> int:
    """Upsert markets (linked to game ids) and their outcomes. Returns markets written."""
    markets: dict[str, Market] = {}
    for game_id, pm in pairs:
        if pm.external_id not in markets:
            markets[pm.external_id] = Market(
                source=source, external_id=pm.external_id, key=pm.key, name=pm.name, game_id=game_id,
            )
    db.upsert_markets(list(markets.values()))
    market_ids = db.get_markets_id_map(source, list(markets))

    outcomes = []
    for _, pm in pairs:
        market_id = market_ids.get(pm.external_id)
        if market_id is None:
            continue
        for po in pm.outcomes:
            outcomes.append(Outcome(
                source=source,
                external_id=po.external_id,
                label=po.label,
                price=po.price,
                handicap=po.handicap,
                market_id=market_id,
            ))
    db.upsert_outcomes(_dedupe_outcomes(outcomes))
    return len(markets)


def persist_parsed(db: DatabaseManager, source: str, parsed: list[ParsedSport],
                   now: Optional[datetime] = None) -> dict:
    """
    Merge a parse result into the database.

    Every game seen gets last_seen_at = now.

    Returns:
        Dict with counts of 'sports', 'leagues', 'games' and 'markets' written
    """
    seen_at = to_iso(now or utc_now())

    sports: dict[str, Sport] = {}
    leagues: dict[str, tuple[str, League]] = {}
    games: dict[str, tuple[str, Game]] = {}
    market_pairs: list[tuple[str, ParsedMarket]] = []

    for ps in parsed:
        sports.setdefault(ps.external_id, Sport(source=source, external_id=ps.external_id, key=ps.key, name=ps.name))
        for pl in ps.leagues:
            leagues.setdefault(pl.external_id, (ps.external_id, League(
                source=source, external_id=pl.external_id, name=pl.name,
            )))
            for pg in pl.games:
                games.setdefault(pg.external_id, (pl.external_id, Game(
                    source=source,
                    external_id=pg.external_id,
                    home_team=pg.home_team,
                    away_team=pg.away_team,
                    start_time=_normalize_start(pg.start_time, seen_at),
                    live=pg.live,
                    last_seen_at=seen_at,
                )))
                for pm in pg.markets:
                    market_pairs.append((pg.external_id, pm))

    with db.transaction():
        db.upsert_sports(list(sports.values()))
        sport_ids = db.get_sports_id_map(source, list(sports))

        for sport_ext, league in leagues.values():
            league.sport_id = sport_ids.get(sport_ext)
        db.upsert_leagues([league for _, league in leagues.values()])
        league_ids = db.get_leagues_id_map(source, list(leagues))

        for league_ext, game in games.values():
            game.league_id = league_ids.get(league_ext)
        db.upsert_games([game for _, game in games.values()])
        game_ids = db.get_games_id_map(source, list(games))

        linked = [(game_ids[g], pm) for g, pm in market_pairs if g in game_ids]
        market_count = _upsert_markets(db, source, linked)

    logger.info(
        f"Persisted {len(sports)} sports, {len(leagues)} leagues, "
        f"{len(games)} games, {market_count} markets"
    )
    return {"sports": len(sports), "leagues": len(leagues), "games": len(games), "markets": market_count}


def persist_markets_for_matches(db: DatabaseManager, source: str,
                                markets_by_match: dict[str, list[ParsedMarket]]) -> int:
    """
    Merge markets for already known games. Unknown match ids are skipped.

    Returns:
        Number of markets written
    """
    if not markets_by_match:
        return 0
    game_ids = db.get_games_id_map(source, list(markets_by_match))
    missing = [m for m in markets_by_match if m not in game_ids]
    if missing:
        logger.warning(f"Skipping markets for {len(missing)} unknown matches: {missing[:5]}")

    pairs = [
        (game_ids[match_id], pm)
        for match_id, markets in markets_by_match.items()
        if match_id in game_ids
        for pm in markets
    ]
    with db.transaction():
        return _upsert_markets(db, source, pairs)


def persist_markets_for_match(db: DatabaseManager, source: str, match_id: str,
                              markets: list[ParsedMarket]) -> int:
    """
    Merge the full market set of one match.

    Raises:
        GameNotFoundError: the match was never discovered
    """
    game_id = db.get_games_id_map(source, [match_id]).get(str(match_id))
    if game_id is None:
        raise GameNotFoundError(match_id)
    with db.transaction():
        return _upsert_markets(db, source, [(game_id, pm) for pm in markets])
