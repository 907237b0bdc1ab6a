"""
Prematch page parsers.

- Sport navigation (`/Prematch`, `/Sport`): the list of sports and the
  currently selected one.
- Next matches (`/Match/NextMatches`): tournaments with kick-off times, no odds.
- Sport match list (`/Sport/{id}`): the paginated catalog with an inline 1X2.
- Popular matches (`/Match/PopularMatches`): slider items with a 1X2 each.
"""

import logging
import re
from datetime import datetime
from typing import Optional

from ..clock import to_iso, utc_now
from .blocks import (
    clean_text,
    extract_attr,
    find_all,
    find_text,
    match_id,
    scope,
    split_blocks,
    split_sections,
)
from .models import ParsedGame, ParsedLeague, ParsedMarket, ParsedOutcome, ParsedSport
from .normalize import (
    decode_entities,
    is_valid_price,
    parse_decimal,
    slugify,
    sport_identity,
    tunis_local_to_utc,
)

logger = logging.getLogger(__name__)

MAIN_NAV = r"""<nav[^>]*id=["']main_nav["'][^>]*>.*?</nav>"""
NAV_ITEM = (
    r"""<a[^>]*class=["'][^"']*sport_item[^"']*["'][^>]*data-sportid=["'](\d+)["'].*?"""
    r"""<span[^>]*class=["'][^"']*menu-sport-name[^"']*["'][^>]*>(.*?)</span>.*?</a>"""
)
SELECTED_NAV_ITEM = (
    r"""<a[^>]*class=["'][^"']*sport_item[^"']*selected[^"']*["'][^>]*data-sportid=["'](\d+)["'][^>]*>"""
)

TOURNAMENT_HEADER = r"""<tr[^>]*class=["'][^"']*header_tournament_row[^"']*["'][^>]*>.*?</tr>"""
MATCH_ROW = (
    r"""<tr[^>]*class=["'][^"']*trMatch[^"']*live_match_data[^"']*["'][^>]*"""
    r"""data-matchid=["'](\d+)["'].*?</tr>"""
)
ANY_ROW = r"<tr[^>]*>.*?</tr>"
TOURNAMENT_ID = r"""data-tournamentid=["'](\d+)["']"""
TOURNAMENT_NAME_CELL = r"""<td[^>]*class=["']tournament_name_section["'][^>]*>(.*?)</td>"""
TOURNAMENT_TITLE = r"""<div[^>]*class=["']category-tournament-title["'][^>]*>(.*?)</div>"""

DATE = re.compile(r"(\d{2}/\d{2}/\d{4})")
TAGGED_DATE = re.compile(r">(\d{2}/\d{2}/\d{4})<")
TAGGED_TIME_SECONDS = re.compile(r">(\d{2}:\d{2}:\d{2})<")
TAGGED_TIME = re.compile(r">(\d{2}:\d{2})<")
LOOSE_TIME = re.compile(r">\s*(\d{2}:\d{2})(?::\d{2})?\s*<")

HOME_TEAM_STRICT = r"""<div[^>]*class=["'][^"']*competitor1-name[^"']*["'][^>]*>(.*?)</div>"""
AWAY_TEAM_STRICT = r"""<div[^>]*class=["'][^"']*competitor2-name[^"']*["'][^>]*>(.*?)</div>"""
HOME_TEAM_DIV = r"""<div[^>]*class=["'][^"']*(?:competitor1-name|team1|home)[^"']*["'][^>]*>(.*?)</div>"""
AWAY_TEAM_DIV = r"""<div[^>]*class=["'][^"']*(?:competitor2-name|team2|away)[^"']*["'][^>]*>(.*?)</div>"""
HOME_TEAM_ANY = (
    r"""<(?:div|span)[^>]*class=["'][^"']*(?:competitor1-name|team1|home)[^"']*["'][^>]*>(.*?)</(?:div|span)>"""
)
AWAY_TEAM_ANY = (
    r"""<(?:div|span)[^>]*class=["'][^"']*(?:competitor2-name|team2|away)[^"']*["'][^>]*>(.*?)</(?:div|span)>"""
)
TEAMS_TEXT = re.compile(r"(.+?)\s+-\s+(.+?)(?:\s{2,}|$)")

MAIN_MARKET_CELL = r"""<td[^>]*class=["'][^"']*betColumn[^"']*main-market-no_1[^"']*["'][^>]*>(.*?)</td>"""
ODD_TAG = r"""<(div|span)[^>]*data-matchoddid=["'](\d+)["'][^>]*>"""
ODD_CLASS = re.compile(r"""class=["'][^"']*(match-odd|match_odd)[^"']*["']""", re.I)

# Slider items nest divs, so the scope runs from the slider to the end of the fragment
POPULAR_SLIDER = r"""<div[^>]*class=["'][^"']*popular_matches_slider[^"']*["'][^>]*>(.*)"""
POPULAR_ITEM = r"""class=["'][^"']*popular-slider-item[^"']*["'][^>]*>"""
POPULAR_TEAM = (
    r"""<(?:div|span)[^>]*style=["'][^"']*text-transform:\s*uppercase[^"']*["'][^>]*>([^<]+)</(?:div|span)>"""
)
POPULAR_ODD = (
    r"""class=["']match-odd\s+quoteValue["'][^>]*data-matchoddid=["'](\d+)["'][^>]*"""
    r"""data-oddvaluedecimal='([^']+)'.*?<span[^>]*>([12X])</span>"""
)

ONE_X_TWO = ("1", "X", "2")


# ==========================================
# Sport navigation
# ==========================================

def get_selected_sport_id_from_nav(html: str) -> Optional[str]:
    """Sport id of the nav item marked `selected`, if any."""
    nav = scope(html, MAIN_NAV)
    m = re.search(SELECTED_NAV_ITEM, nav, re.I | re.S)
    return m.group(1) if m else None


def parse_prematch(html: str) -> list[ParsedSport]:
    """Sports listed in the main navigation (no leagues)."""
    nav = scope(html, MAIN_NAV)
    sports = []
    for m in find_all(nav, NAV_ITEM):
        name = decode_entities(m.group(2)).strip()
        key = slugify(name)
        if not name or not key:
            continue
        sports.append(ParsedSport(key=key, name=name, external_id=m.group(1)))
    return sports


# ==========================================
# Shared row helpers
# ==========================================

def _teams_from_text(row_html: str) -> Optional[tuple[str, str]]:
    """Fallback "Home - Away" split on the row's visible text."""
    m = TEAMS_TEXT.search(clean_text(row_html))
    if not m:
        return None
    home, away = m.group(1).strip(), m.group(2).strip()
    return (home, away) if home and away else None


def _next_matches_teams(row_html: str) -> Optional[tuple[str, str]]:
    home = find_text(row_html, HOME_TEAM_DIV)
    away = find_text(row_html, AWAY_TEAM_DIV)
    if home and away:
        return home, away
    return _teams_from_text(row_html)


def _match_list_teams(row_html: str) -> Optional[tuple[str, str]]:
    for home_pattern, away_pattern in ((HOME_TEAM_STRICT, AWAY_TEAM_STRICT), (HOME_TEAM_ANY, AWAY_TEAM_ANY)):
        home = find_text(row_html, home_pattern)
        away = find_text(row_html, away_pattern)
        if home and away:
            return home, away
    return _teams_from_text(row_html)


def _section_name(header_html: str, pattern: str) -> str:
    return find_text(header_html, pattern) or "Tournament"


def _tournament_id(header_html: str) -> Optional[str]:
    m = re.search(TOURNAMENT_ID, header_html, re.I)
    return m.group(1) if m else None


# ==========================================
# Next matches
# ==========================================

def _next_matches_start(row_html: str, now: Optional[datetime]) -> str:
    date_m = TAGGED_DATE.search(row_html)
    time_m = TAGGED_TIME_SECONDS.search(row_html) or TAGGED_TIME.search(row_html)
    if date_m and time_m:
        return tunis_local_to_utc(date_m.group(1), time_m.group(1), now=now)
    return to_iso(now or utc_now())


def parse_prematch_next_matches(html: str, sport_id: str, now: Optional[datetime] = None) -> list[ParsedSport]:
    """
    Parse the NextMatches fragment into one sport with a league per tournament.

    Games carry no markets; odds are fetched per match afterwards.
    """
    sport_key, sport_name = sport_identity(sport_id)
    leagues = []
    for section in split_sections(html, TOURNAMENT_HEADER):
        name = _section_name(section.header, TOURNAMENT_NAME_CELL)
        games = []
        for row in find_all(section.body, MATCH_ROW):
            row_html = row.group(0)
            teams = _next_matches_teams(row_html)
            if not teams:
                continue
            games.append(ParsedGame(
                external_id=row.group(1),
                home_team=teams[0],
                away_team=teams[1],
                start_time=_next_matches_start(row_html, now),
                live=False,
            ))
        if games:
            leagues.append(ParsedLeague(
                name=name,
                external_id=f"prematch_{sport_id}_{slugify(name) or 'tournament'}",
                games=games,
            ))

    if not leagues:
        return []
    return [ParsedSport(key=sport_key, name=sport_name, external_id=str(sport_id), leagues=leagues)]


# ==========================================
# Sport match list (catalog)
# ==========================================

def _match_list_rows(body: str) -> list[tuple[str, Optional[str]]]:
    """
    Match rows of one tournament section with the date heading they sit under.

    Rows without a match id but containing a dd/mm/yyyy date are day headings.
    """
    rows = []
    current_date = None
    for m in find_all(body, ANY_ROW):
        tr = m.group(0)
        has_match = match_id(tr) is not None
        date_m = DATE.search(tr)
        if not has_match and date_m:
            current_date = date_m.group(1)
            continue
        if has_match:
            rows.append((tr, current_date))
    return rows


def _match_list_start(row_html: str, section_date: Optional[str], now: Optional[datetime]) -> str:
    date_m = DATE.search(row_html)
    used_date = section_date or (date_m.group(1) if date_m else None)
    time_m = LOOSE_TIME.search(row_html)
    if used_date and time_m:
        return tunis_local_to_utc(used_date, time_m.group(1), now=now)
    return to_iso(now or utc_now())


def parse_inline_1x2(row_html: str, match_id_: str) -> Optional[ParsedMarket]:
    """
    Best-effort 1X2 from the row's main market column.

    Only returned when three positively priced odds are present; otherwise
    the game is left without markets for the follow-up task to fill.
    """
    m = re.search(MAIN_MARKET_CELL, row_html, re.I | re.S)
    if not m:
        return None
    odds = []
    for tag in find_all(m.group(1), ODD_TAG):
        opening = tag.group(0)
        if not ODD_CLASS.search(opening):
            continue
        raw = extract_attr(opening, "data-oddvaluedecimal")
        if not raw:
            continue
        price = parse_decimal(raw)
        if not is_valid_price(price):
            continue
        odds.append((tag.group(2), price))
        if len(odds) >= 3:
            break
    if len(odds) < 3:
        return None

    return ParsedMarket(
        key="1x2",
        name="1X2",
        external_id=f"{match_id_}_1x2",
        outcomes=[
            ParsedOutcome(label=label, price=price, handicap=None, external_id=f"{match_id_}_{odd_id}")
            for label, (odd_id, price) in zip(ONE_X_TWO, odds)
        ],
    )


def parse_prematch_sport_match_list(html: str, sport_id: str, now: Optional[datetime] = None) -> list[ParsedSport]:
    """Parse one catalog page into a sport with a league per tournament section."""
    sport_key, sport_name = sport_identity(sport_id)
    leagues = []
    for section in split_sections(html, TOURNAMENT_HEADER):
        tournament_id = _tournament_id(section.header)
        name = _section_name(section.header, TOURNAMENT_TITLE)
        games = []
        for row_html, section_date in _match_list_rows(section.body):
            mid = match_id(row_html)
            teams = _match_list_teams(row_html)
            if not teams:
                logger.debug(f"Skipping match row {mid}: no team names")
                continue
            one_x_two = parse_inline_1x2(row_html, mid)
            games.append(ParsedGame(
                external_id=mid,
                home_team=teams[0],
                away_team=teams[1],
                start_time=_match_list_start(row_html, section_date, now),
                live=False,
                markets=[one_x_two] if one_x_two else [],
            ))
        if games:
            suffix = tournament_id or slugify(name) or "tournament"
            leagues.append(ParsedLeague(name=name, external_id=f"prematch_{sport_id}_{suffix}", games=games))

    if not leagues:
        return []
    return [ParsedSport(key=sport_key, name=sport_name, external_id=str(sport_id), leagues=leagues)]


# ==========================================
# Popular matches
# ==========================================

def parse_popular_matches_fragment(html: str, sport_id: str, now: Optional[datetime] = None) -> Optional[ParsedLeague]:
    """
    Parse the popular matches slider into a single "Popular Matches" league.

    Slider items carry no match id, so the game id is derived from its sorted
    odd ids.
    """
    slider = scope(html, POPULAR_SLIDER, group=1)
    games = []
    for idx, block in enumerate(split_blocks(slider, POPULAR_ITEM)):
        teams = [decode_entities(m.group(1)).strip() for m in find_all(block, POPULAR_TEAM)]
        teams = [t for t in teams if t][:2]
        if len(teams) < 2:
            continue

        date_m = TAGGED_DATE.search(block)
        time_m = TAGGED_TIME_SECONDS.search(block)
        if date_m and time_m:
            start = tunis_local_to_utc(date_m.group(1), time_m.group(1), now=now)
        else:
            start = to_iso(now or utc_now())

        odds = []
        for m in find_all(block, POPULAR_ODD):
            price = parse_decimal(m.group(2))
            if is_valid_price(price):
                odds.append((m.group(1), m.group(3), price))
        if not odds:
            continue

        game_id = f"pop_{'-'.join(sorted(o[0] for o in odds)) or idx}"
        games.append(ParsedGame(
            external_id=game_id,
            home_team=teams[0],
            away_team=teams[1],
            start_time=start,
            live=False,
            markets=[ParsedMarket(
                key="1x2",
                name="Full Time Result",
                external_id=f"1x2_{game_id}",
                outcomes=[
                    ParsedOutcome(label=label, price=price, handicap=None, external_id=odd_id)
                    for odd_id, label, price in odds
                ],
            )],
        ))

    if not games:
        return None
    return ParsedLeague(name="Popular Matches", external_id=f"popular_{sport_id}", games=games)
