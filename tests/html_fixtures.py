"""
Synthetic Tounesbet pages and a context builder shared by the tests.
"""

import sys
from pathlib import Path
from typing import Callable

import httpx

PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from tounesbet_odds.config import ConfigLoader
from tounesbet_odds.context import ScrapeContext

BASE_URL = "https://tounesbet.test"

# One tournament, one date heading, one match with an inline 1X2
MATCH_LIST_HTML = """
<table class="matchesTableBody">
<tr class="header_tournament_row" data-tournamentid="77">
  <td><div class="category-tournament-title">Ligue 1</div></td>
</tr>
<tr class="date_row"><td>15/08/2025</td></tr>
<tr class="trMatch live_match_data" data-matchid="12345">
  <td class="match_time"><span>21:00</span></td>
  <td><div class="competitor1-name">PSG</div><div class="competitor2-name">OM</div></td>
  <td class="betColumn main-market-no_1">
    <div class="match-odd" data-matchoddid="1001" data-oddvaluedecimal="1,80">1.80</div>
    <div class="match-odd" data-matchoddid="1002" data-oddvaluedecimal="3,40">3.40</div>
    <div class="match-odd" data-matchoddid="1003" data-oddvaluedecimal="4,20">4.20</div>
  </td>
</tr>
</table>
"""

# Same match without odds: needs a 1x2 follow-up
MATCH_LIST_NO_ODDS_HTML = """
<table class="matchesTableBody">
<tr class="header_tournament_row" data-tournamentid="77">
  <td><div class="category-tournament-title">Ligue 1</div></td>
</tr>
<tr class="date_row"><td>15/08/2025</td></tr>
<tr class="trMatch live_match_data" data-matchid="12345">
  <td class="match_time"><span>21:00</span></td>
  <td><div class="competitor1-name">PSG</div><div class="competitor2-name">OM</div></td>
</tr>
</table>
"""

EMPTY_MATCH_LIST_HTML = """
<table class="matchesTableBody"></table>
<p>Actuellement, il n'y a pas de correspondances actives.</p>
"""

BLOCKED_HTML = "<html><head><title>Just a moment...</title></head><body>Checking your browser</body></html>"

MATCH_ODDS_GROUPED_HTML = """
<div class="divOddRow">
  <div class="oddName">1X2</div>
  <div class="match-odd" data-matchoddid="9001" data-oddvaluedecimal="1,50"><label>1</label><span class="quoteValue">1,50</span></div>
  <div class="match-odd" data-matchoddid="9002" data-oddvaluedecimal="3,90"><label>X</label><span class="quoteValue">3,90</span></div>
  <div class="match-odd" data-matchoddid="9003" data-oddvaluedecimal="6,00"><label>2</label><span class="quoteValue">6,00</span></div>
</div>
<div class="divOddRow">
  <div class="oddName">Total Buts</div>
  <div class="divOddSpecial"><label>2,5</label></div>
  <div class="match-odd" data-matchoddid="9011" data-oddvaluedecimal="1,85"><label>Moins</label></div>
  <div class="match-odd" data-matchoddid="9012" data-oddvaluedecimal="1,95"><label>Plus</label></div>
</div>
"""

LIVE_HTML = """
<nav id="main_nav">
  <a class="sport_item selected" data-sportid="1181"><span class="menu-sport-name">Football</span></a>
</nav>
<table id="live_matches_table">
<tr class="live_match_list_header"><td><div class="category-tournament-title">Tunisie - Ligue 1</div></td></tr>
<tr class="trMatch live_match_data" data-matchid="777">
  <td>
    <label class="match_time">63'</label>
    <div class="match_score">1 - 0</div>
    <div class="competitor1-name">EST</div>
    <div class="competitor2-name">CA</div>
  </td>
  <td class="betColumn main-market-no_1">
    <span class="match-odd" data-isactive="True" data-oddvaluedecimal="1,20" data-matchoddvaluetype="1">1.20</span>
    <span class="match-odd" data-isactive="True" data-oddvaluedecimal="5,50" data-matchoddvaluetype="X">5.50</span>
    <span class="match-odd" data-isactive="False" data-oddvaluedecimal="12,00" data-matchoddvaluetype="2">12.00</span>
  </td>
  <td class="betColumn main-market-no_2">
    <span class="match-odd" data-oddvaluedecimal="1,90" data-matchoddvalueratio="2,5">1.90</span>
    <span class="match-odd" data-oddvaluedecimal="1,80" data-matchoddvalueratio="2,5">1.80</span>
  </td>
</tr>
</table>
"""

POPULAR_HTML = """
<div class="popular_matches_slider">
  <div class="popular-slider-item">
    <div style="text-transform: uppercase">Esperance</div>
    <div style="text-transform: uppercase">Club Africain</div>
    <span>20/09/2025</span><span>18:30:00</span>
    <div class="match-odd quoteValue" data-matchoddid="502" data-oddvaluedecimal='2,10'><span>1</span></div>
    <div class="match-odd quoteValue" data-matchoddid="501" data-oddvaluedecimal='3,00'><span>X</span></div>
    <div class="match-odd quoteValue" data-matchoddid="503" data-oddvaluedecimal='3,50'><span>2</span></div>
  </div>
</div>
"""


def make_config(**sections) -> ConfigLoader:
    """Settings with an in-memory database, one base URL and no retry delay."""
    overrides = {
        "database": {"path": ":memory:"},
        "scraper": {"base_urls": [BASE_URL], "attempts": 1, "backoff_ms": 0},
    }
    for name, values in sections.items():
        overrides.setdefault(name, {}).update(values)
    return ConfigLoader(overrides=overrides)


def make_context(handler: Callable[[httpx.Request], httpx.Response], **sections) -> ScrapeContext:
    """ScrapeContext whose HTTP traffic is answered by `handler`."""
    return ScrapeContext(make_config(**sections), transport=httpx.MockTransport(handler))


def html_response(text: str, status_code: int = 200) -> httpx.Response:
    return httpx.Response(status_code, text=text, headers={"content-type": "text/html; charset=utf-8"})
