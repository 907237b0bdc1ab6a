"""
Grouped match odds parser and 1X2 selection helpers.

`parse_match_odds_grouped` reads the `/Match/MatchOddsGrouped` detail page
of a single match. The remaining helpers choose the headline 1X2 market out
of whatever the parsers or the database produced.
"""

import logging
import math
import re
from typing import Optional

from .blocks import clean_text, extract_attr, find_all, inner_html, open_tag, split_blocks
from .models import ParsedGame, ParsedMarket, ParsedOutcome
from .normalize import (
    format_line,
    is_valid_price,
    map_market_key,
    normalize_outcome_label,
    parse_decimal,
    parse_handicap,
)

logger = logging.getLogger(__name__)

ODD_ROW = r"""<div[^>]*class=["'][^"']*divOddRow[^"']*["'][^>]*>"""
ODD_NAME = re.compile(r"""<div[^>]*class=["'][^"']*oddName[^"']*["'][^>]*>(.*?)</div>""", re.I | re.S)
ODD_SPECIAL = re.compile(r"""<div[^>]*class=["']divOddSpecial["'][^>]*>.*?<label[^>]*>(.*?)</label>""", re.I | re.S)
OUTCOME_TAG = r"""<(div|span)[^>]*data-matchoddid=["'](\d+)["'][^>]*>.*?</\1>"""
MATCH_ODD_CLASS = re.compile(r"""class=["'][^"']*match-odd[^"']*["']""", re.I)
OUTCOME_LABEL = re.compile(r"<label[^>]*>(.*?)</label>", re.I | re.S)
QUOTE_VALUE = re.compile(r"""<span[^>]*class=["']quoteValue["'][^>]*>(.*?)</span>""", re.I | re.S)
TAG = re.compile(r"<[^>]*>")

ONE_X_TWO = ("1", "X", "2")

MAX_MARKETS = 60
MAX_OUTCOMES = 16


def _row_outcomes(block: str, handicap: Optional[float]) -> list[ParsedOutcome]:
    outcomes = []
    for m in find_all(block, OUTCOME_TAG):
        full = m.group(0)
        tag = open_tag(full)
        if not MATCH_ODD_CLASS.search(tag):
            continue
        inner = inner_html(full, m.group(1))
        label_m = OUTCOME_LABEL.search(inner)
        label = normalize_outcome_label(label_m.group(1) if label_m else "")
        if not label:
            logger.debug(f"Skipping odd {m.group(2)}: no label")
            continue

        price = float("nan")
        raw = extract_attr(tag, "data-oddvaluedecimal")
        if raw:
            price = parse_decimal(raw)
        if math.isnan(price):
            text_m = QUOTE_VALUE.search(inner)
            if text_m:
                price = parse_decimal(TAG.sub("", text_m.group(1)).strip())
        if not is_valid_price(price):
            continue
        outcomes.append(ParsedOutcome(label=label, price=price, handicap=handicap, external_id=m.group(2)))
    return outcomes


def parse_match_odds_grouped(html: str, match_id: str) -> list[ParsedMarket]:
    """
    Parse every market of one match.

    The page is cut into `divOddRow` blocks. A block that declares an
    `oddName` starts a new market name; blocks without one continue the
    previous market. A `divOddSpecial` label gives the line (handicap).
    Blocks of the same market and line are merged into one market whose
    external id is `{match_id}_{key}` or `{match_id}_{key}_{line}`.
    """
    blocks = split_blocks(html, ODD_ROW)
    if not blocks:
        return []

    initial = ODD_NAME.search(html)
    current_name = clean_text(initial.group(1)) if initial else None

    markets: dict[str, ParsedMarket] = {}
    for block in blocks:
        name_m = ODD_NAME.search(block)
        if name_m:
            current_name = clean_text(name_m.group(1))

        special_m = ODD_SPECIAL.search(block)
        handicap = parse_handicap(special_m.group(1)) if special_m else None

        outcomes = _row_outcomes(block, handicap)
        if not outcomes:
            continue

        market_name = current_name or "Market"
        key = map_market_key(market_name)
        suffix = key if handicap is None else f"{key}_{format_line(handicap)}"
        external_id = f"{match_id}_{suffix}"

        market = markets.get(external_id)
        if market is None:
            markets[external_id] = ParsedMarket(key=key, name=market_name, external_id=external_id, outcomes=outcomes)
        else:
            market.outcomes.extend(outcomes)

    return list(markets.values())


def cap_markets(markets: list[ParsedMarket], max_markets: int = MAX_MARKETS,
                max_outcomes: int = MAX_OUTCOMES) -> list[ParsedMarket]:
    """Keep the first `max_markets` markets with at most `max_outcomes` outcomes each."""
    capped = []
    for market in markets[:max_markets]:
        capped.append(ParsedMarket(
            key=market.key,
            name=market.name,
            external_id=market.external_id,
            outcomes=market.outcomes[:max_outcomes],
        ))
    return capped


def pick_1x2_only(markets: list[ParsedMarket]) -> list[ParsedMarket]:
    """The first market keyed 1x2 (or named like it), as a 0/1-element list."""
    for market in markets:
        if market.key.lower() == "1x2":
            return [market]
    for market in markets:
        if "1x2" in market.name.lower():
            return [market]
    return []


def has_complete_1x2(game: ParsedGame) -> bool:
    """True when the game already carries a 1x2 market with 1, X, 2 and three positive prices."""
    market = next((m for m in game.markets if m.key.lower() == "1x2"), None)
    if market is None or len(market.outcomes) < 3:
        return False
    labels = {o.label.strip().upper() for o in market.outcomes}
    if not set(ONE_X_TWO) <= labels:
        return False
    return sum(1 for o in market.outcomes if is_valid_price(o.price)) >= 3


# ==========================================
# Canonical 1X2 (read side, dict rows)
# ==========================================

def _norm(value) -> str:
    return str(value if value is not None else "").strip().upper()


def canonical_1x2_outcomes(market: dict) -> list[dict]:
    """1, X and 2 outcomes without a line, first occurrence of each label."""
    seen = set()
    cleaned = []
    for outcome in market.get("outcomes") or []:
        label = _norm(outcome.get("label"))
        if label not in ONE_X_TWO or outcome.get("handicap") is not None:
            continue
        if label in seen:
            continue
        seen.add(label)
        cleaned.append(outcome)
        if len(seen) >= 3:
            break
    return cleaned


def is_canonical_3way(market: dict) -> bool:
    outcomes = canonical_1x2_outcomes(market)
    prices = [o.get("price") for o in outcomes]
    return (
        len(outcomes) == 3
        and {_norm(o.get("label")) for o in outcomes} == set(ONE_X_TWO)
        and all(p is not None for p in prices)
    )


def _is_1x2_candidate(market: dict) -> bool:
    key = market.get("key")
    if key is None:
        return str(market.get("external_id") or "").endswith("_1x2")
    return str(key).lower() == "1x2"


def select_canonical_1x2(markets: list[dict]) -> list[dict]:
    """
    Choose the single headline 1X2 market of a game.

    Among markets keyed 1x2, prefer in order: an external id ending in
    `_1x2`, the display name "1X2", any well-formed three-way market, and
    finally the first candidate. The chosen market's outcomes are reduced
    to 1/X/2 without a line, deduplicated and capped at three.

    Returns:
        [] or a one-element list holding a copy of the chosen market
    """
    candidates = [m for m in markets or [] if _is_1x2_candidate(m)]
    if not candidates:
        return []

    canonical = (
        next((m for m in candidates
              if str(m.get("external_id") or "").endswith("_1x2") and is_canonical_3way(m)), None)
        or next((m for m in candidates if _norm(m.get("name")) == "1X2" and is_canonical_3way(m)), None)
        or next((m for m in candidates if is_canonical_3way(m)), None)
        or candidates[0]
    )
    return [{**canonical, "outcomes": canonical_1x2_outcomes(canonical)}]
