"""
Tests for the one-shot prematch snapshot, the live snapshot, Statscore
refresh and the scheduler tick.
"""

import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import httpx
import pytest

sys.path.insert(0, str(Path(__file__).parent))

from html_fixtures import (
    EMPTY_MATCH_LIST_HTML,
    LIVE_HTML,
    MATCH_ODDS_GROUPED_HTML,
    POPULAR_HTML,
    html_response,
    make_context,
)
from tounesbet_odds.db.models import TASK_CATALOG_PAGE
from tounesbet_odds.services import refresh_live_meta, run_live, run_prematch, run_tick

NOW = datetime(2025, 8, 15, 10, 0, tzinfo=timezone.utc)

NAV_HTML = """
<nav id="main_nav">
  <a class="sport_item selected" data-sportid="1181"><span class="menu-sport-name">Football</span></a>
  <a class="sport_item" data-sportid="1183"><span class="menu-sport-name">Tennis</span></a>
</nav>
"""

NEXT_MATCHES_HTML = """
<table>
<tr class="header_tournament_row"><td class="tournament_name_section">Coupe de Tunisie</td></tr>
<tr class="trMatch live_match_data" data-matchid="555">
  <td><span>16/08/2025</span><span>17:00</span></td>
  <td><div class="team1">ESS</div><div class="team2">CSS</div></td>
</tr>
<tr class="trMatch live_match_data" data-matchid="556">
  <td><span>16/08/2025</span><span>19:30</span></td>
  <td><div class="home">USM</div><div class="away">ST</div></td>
</tr>
</table>
"""

STATSCORE_PAYLOAD = {
    "html": '<div class="scoreboard"><div class="score">2:0</div><span>2nd half</span></div>',
    "state": {"event": {"id": 31, "clock_time": 70}},
}


class SiteStub:
    """Routes requests by path; unknown paths answer 404."""

    def __init__(self, pages: dict, statscore_status: int = 200):
        self.pages = pages
        self.statscore_status = statscore_status
        self.calls = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request.url)
        if request.url.host == "widgets.statscore.com":
            if self.statscore_status != 200:
                return httpx.Response(self.statscore_status, text="error")
            return httpx.Response(200, json=STATSCORE_PAYLOAD)
        page = self.pages.get(request.url.path)
        if callable(page):
            return page(request)
        if page is None:
            return html_response("not found", status_code=404)
        return html_response(page)


def odds_for_555_only(request: httpx.Request) -> httpx.Response:
    if request.url.params.get("matchId") == "555":
        return html_response(MATCH_ODDS_GROUPED_HTML)
    return html_response("oops", status_code=500)


class TestPrematchSnapshot:

    @pytest.mark.asyncio
    async def test_next_matches_deep_odds_and_popular(self):
        site = SiteStub({
            "/Sport": NAV_HTML,
            "/Match/NextMatches": NEXT_MATCHES_HTML,
            "/Match/MatchOddsGrouped": odds_for_555_only,
            "/Match/PopularMatches": POPULAR_HTML,
        })
        async with make_context(site) as ctx:
            result = await run_prematch(ctx, now=NOW)

            assert result["sport_id"] == "1181"
            assert result["deep_fetched"] == 1
            assert result["sports"] == 1
            assert result["leagues"] == 2
            assert result["games"] == 3
            assert result["markets"] == 3

            game = ctx.db.get_game(ctx.source, "555")
            keys = sorted(m["key"] for m in ctx.db.select_markets_for_game(game["id"]))
            assert keys == ["1x2", "totals"]
            assert ctx.db.select_markets_for_game(ctx.db.get_game(ctx.source, "556")["id"]) == []

    @pytest.mark.asyncio
    async def test_popular_failure_keeps_snapshot(self):
        site = SiteStub({
            "/Sport": NAV_HTML,
            "/Match/NextMatches": NEXT_MATCHES_HTML,
            "/Match/MatchOddsGrouped": MATCH_ODDS_GROUPED_HTML,
        })
        async with make_context(site) as ctx:
            result = await run_prematch(ctx, now=NOW)

        assert result["leagues"] == 1
        assert result["games"] == 2
        assert result["deep_fetched"] == 2


class TestLiveSnapshot:

    @pytest.mark.asyncio
    async def test_live_page_and_meta(self):
        site = SiteStub({"/paris-sportif-live": LIVE_HTML})
        async with make_context(site) as ctx:
            result = await run_live(ctx, now=NOW)
            assert result["live_games"] == 1
            assert ctx.db.get_game(ctx.source, "777")["live"] == 1

            meta = await refresh_live_meta(ctx, now=NOW + timedelta(minutes=5))
            assert meta == {"requested": 1, "stored": 1, "failed": 0}

            stored = ctx.db.select_live_meta("statscore", ["777"])["777"]
            assert (stored["home_score"], stored["away_score"]) == (2, 0)
            assert stored["status_name"] == "2nd half"
            assert stored["clock_time"] == 70

    @pytest.mark.asyncio
    async def test_stale_live_games_are_skipped(self):
        site = SiteStub({"/paris-sportif-live": LIVE_HTML})
        async with make_context(site) as ctx:
            await run_live(ctx, now=NOW)
            meta = await refresh_live_meta(ctx, now=NOW + timedelta(minutes=30))

        assert meta == {"requested": 0, "stored": 0, "failed": 0}

    @pytest.mark.asyncio
    async def test_statscore_failure_is_counted(self):
        site = SiteStub({}, statscore_status=500)
        async with make_context(site) as ctx:
            meta = await refresh_live_meta(ctx, ["42", "43"], now=NOW)
            assert ctx.db.select_live_meta("statscore", ["42", "43"]) == {}

        assert meta == {"requested": 2, "stored": 0, "failed": 2}

    @pytest.mark.asyncio
    async def test_live_falls_back_to_legacy_page(self):
        site = SiteStub({"/paris-sportif-live": "<html>maintenance</html>", "/Live": LIVE_HTML})
        async with make_context(site) as ctx:
            result = await run_live(ctx, now=NOW)

        assert result["live_games"] == 1
        assert [u.path for u in site.calls] == ["/paris-sportif-live", "/Live"]


class TestSchedulerTick:

    @pytest.mark.asyncio
    async def test_tick_runs_all_jobs(self):
        site = SiteStub({
            "/paris-sportif-live": LIVE_HTML,
            "/Sport/1181": EMPTY_MATCH_LIST_HTML,
        })
        async with make_context(site) as ctx:
            summary = await run_tick(ctx)

            assert summary["live"]["live_games"] == 1
            assert summary["discovery"]["pages"] == 1
            assert summary["hourly"]["claimed"] == 0
            assert ctx.db.count_scrape_tasks(ctx.source, TASK_CATALOG_PAGE) == 2

    @pytest.mark.asyncio
    async def test_failing_job_does_not_stop_others(self):
        site = SiteStub({"/Sport/1181": EMPTY_MATCH_LIST_HTML})
        async with make_context(site) as ctx:
            summary = await run_tick(ctx)

        assert "error" in summary["live"]
        assert summary["discovery"]["pages"] == 1
