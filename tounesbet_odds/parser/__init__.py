"""
HTML parsers for the Tounesbet site.
"""

from .models import ParsedGame, ParsedLeague, ParsedMarket, ParsedOutcome, ParsedSport, iter_games
from .live import parse_live
from .prematch import (
    get_selected_sport_id_from_nav,
    parse_popular_matches_fragment,
    parse_prematch,
    parse_prematch_next_matches,
    parse_prematch_sport_match_list,
)
from .odds import cap_markets, has_complete_1x2, parse_match_odds_grouped, pick_1x2_only, select_canonical_1x2

__all__ = [
    "ParsedGame",
    "ParsedLeague",
    "ParsedMarket",
    "ParsedOutcome",
    "ParsedSport",
    "iter_games",
    "parse_live",
    "get_selected_sport_id_from_nav",
    "parse_popular_matches_fragment",
    "parse_prematch",
    "parse_prematch_next_matches",
    "parse_prematch_sport_match_list",
    "cap_markets",
    "has_complete_1x2",
    "parse_match_odds_grouped",
    "pick_1x2_only",
    "select_canonical_1x2",
]
