"""
Live scoreboard parser (`/paris-sportif-live`).

The live table groups matches under tournament header rows. Each match row
carries up to four main-market columns: 1X2, Under/Over (with a line),
Double Chance and Both Teams To Score.
"""

import logging
from datetime import datetime
from typing import Optional

from ..clock import to_iso, utc_now
from .blocks import clean_text, extract_attr, find_all, find_text, open_tag, scope, split_sections
from .models import ParsedGame, ParsedLeague, ParsedMarket, ParsedOutcome, ParsedSport
from .normalize import FOOTBALL_SPORT_ID, is_valid_price, parse_decimal, slugify, sport_identity
from .prematch import get_selected_sport_id_from_nav

logger = logging.getLogger(__name__)

LIVE_TABLE = r"""<table[^>]*id=["']live_matches_table["'][^>]*>.*?</table>"""
LIVE_HEADER = (
    r"""<tr[^>]*class=["'][^"']*live_match_list_header[^"']*["'][^>]*>.*?"""
    r"""<div[^>]*class=["']category-tournament-title["'][^>]*>(.*?)</div>.*?</tr>"""
)
LIVE_ROW = (
    r"""<tr[^>]*class=["'][^"']*trMatch[^"']*live_match_data[^"']*["'][^>]*"""
    r"""data-matchid=["'](\d+)["'].*?</tr>"""
)
HOME_TEAM = r"""<div[^>]*class=["']competitor1-name["'][^>]*>(.*?)</div>"""
AWAY_TEAM = r"""<div[^>]*class=["']competitor2-name["'][^>]*>(.*?)</div>"""
MATCH_TIME = r"""<label[^>]*class=["'][^"']*match_time[^"']*["'][^>]*>(.*?)</label>"""
MATCH_SCORE = r"""<div[^>]*class=["'][^"']*match_score[^"']*["'][^>]*>(.*?)</div>"""
BET_COLUMN = r"""<td[^>]*class=["'][^"']*betColumn[^"']*main-market-no_\d+[^"']*["'][^>]*>.*?</td>"""
ODD_SPAN = r"""<span[^>]*class=["'][^"']*match-odd[^"']*["'][^>]*>.*?</span>"""

# (market key, display name, external id suffix, outcome labels, fallback id infix, reads line)
LIVE_COLUMNS = (
    ("1x2", "1X2", "1x2", ("1", "X", "2"), "", False),
    ("totals", "Under/Over", "totals", ("Under", "Over"), "ou_", True),
    ("double_chance", "Double Chance", "double_chance", ("1X", "12", "X2"), "dc_", False),
    ("btts", "Both Teams To Score", "btts", ("Yes", "No"), "btts_", False),
)


def _column_outcomes(
    td_html: str,
    match_id: str,
    labels: tuple,
    fallback_infix: str,
    reads_line: bool,
) -> list[ParsedOutcome]:
    """Outcomes of one odds column; inactive or unpriced spans are dropped."""
    outcomes = []
    spans = [open_tag(m.group(0)) for m in find_all(td_html, ODD_SPAN)]
    for i, (tag, label) in enumerate(zip(spans, labels)):
        if (extract_attr(tag, "data-isactive") or "True").lower() == "false":
            continue
        raw = extract_attr(tag, "data-oddvaluedecimal")
        if not raw:
            continue
        price = parse_decimal(raw)
        if not is_valid_price(price):
            continue
        handicap = None
        if reads_line:
            ratio = extract_attr(tag, "data-matchoddvalueratio")
            if ratio:
                handicap = parse_decimal(ratio)
        odd_type = extract_attr(tag, "data-matchoddvaluetype") or f"{match_id}_{fallback_infix}{i}"
        outcomes.append(ParsedOutcome(
            label=label,
            price=price,
            handicap=handicap,
            external_id=f"live_{match_id}_{odd_type}",
        ))
    return outcomes


def parse_live_row(row_html: str, match_id: str, now: Optional[datetime] = None) -> Optional[ParsedGame]:
    """Parse one live match row, or None when team names are missing."""
    home = find_text(row_html, HOME_TEAM)
    away = find_text(row_html, AWAY_TEAM)
    if not home or not away:
        return None

    markets = []
    columns = [m.group(0) for m in find_all(row_html, BET_COLUMN)]
    for td_html, (key, name, suffix, labels, infix, reads_line) in zip(columns, LIVE_COLUMNS):
        outcomes = _column_outcomes(td_html, match_id, labels, infix, reads_line)
        if outcomes:
            markets.append(ParsedMarket(key=key, name=name, external_id=f"{match_id}_{suffix}", outcomes=outcomes))

    logger.debug(
        f"Live {match_id}: {home} vs {away} "
        f"[{find_text(row_html, MATCH_TIME) or '-'} {find_text(row_html, MATCH_SCORE) or '-'}] "
        f"{len(markets)} markets"
    )
    return ParsedGame(
        external_id=match_id,
        home_team=home,
        away_team=away,
        start_time=to_iso(now or utc_now()),
        live=True,
        markets=markets,
    )


def parse_live(html: str, now: Optional[datetime] = None) -> list[ParsedSport]:
    """Parse the live page into one sport with a league per tournament header."""
    sport_id = get_selected_sport_id_from_nav(html) or FOOTBALL_SPORT_ID
    sport_key, sport_name = sport_identity(sport_id)

    table = scope(html, LIVE_TABLE)
    leagues = []
    for section in split_sections(table, LIVE_HEADER):
        name = clean_text(section.groups[0] or "") or "Live"
        games = []
        for row in find_all(section.body, LIVE_ROW):
            game = parse_live_row(row.group(0), row.group(1), now=now)
            if game:
                games.append(game)
        if games:
            leagues.append(ParsedLeague(
                name=name,
                external_id=f"live_{sport_id}_{slugify(name) or 'live'}",
                games=games,
            ))

    if not leagues:
        return []
    return [ParsedSport(key=sport_key, name=sport_name, external_id=sport_id, leagues=leagues)]
