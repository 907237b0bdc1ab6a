"""
Tests for the hourly 1X2 sweep and the on-demand full markets cache.
"""

import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import httpx
import pytest

sys.path.insert(0, str(Path(__file__).parent))

from html_fixtures import MATCH_LIST_HTML, MATCH_ODDS_GROUPED_HTML, html_response, make_context
from tounesbet_odds.clock import to_iso
from tounesbet_odds.db.models import TASK_1X2, TASK_FULL_MARKETS
from tounesbet_odds.errors import FetchError, GameNotFoundError, PersistenceError
from tounesbet_odds.parser import parse_prematch_sport_match_list
from tounesbet_odds.services import full_markets, persist_parsed, run_prematch_hourly, serve_prematch_full_markets
from tounesbet_odds.services.queue import MatchTask, queue_row

NOW = datetime(2025, 8, 15, 10, 0, tzinfo=timezone.utc)


class OddsPage:
    """Handler serving the grouped odds page and counting requests."""

    def __init__(self, status_code: int = 200, html: str = MATCH_ODDS_GROUPED_HTML):
        self.status_code = status_code
        self.html = html
        self.calls = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(str(request.url))
        return html_response(self.html, status_code=self.status_code)


def discover_fixture_match(ctx):
    """Store match 12345 with its inline 1X2 (1.80 / 3.40 / 4.20)."""
    parsed = parse_prematch_sport_match_list(MATCH_LIST_HTML, "1181", now=NOW)
    persist_parsed(ctx.db, ctx.source, parsed, now=NOW)


def one_x_two_prices(ctx) -> dict:
    game = ctx.db.get_game(ctx.source, "12345")
    markets = [m for m in ctx.db.select_markets_for_game(game["id"]) if m["key"] == "1x2"]
    assert len(markets) == 1
    return {o["label"]: o["price"] for o in markets[0]["outcomes"]}


class TestHourly1x2:

    @pytest.mark.asyncio
    async def test_success_updates_prices_and_reschedules(self):
        page = OddsPage()
        async with make_context(page) as ctx:
            discover_fixture_match(ctx)
            ctx.db.upsert_scrape_queue([queue_row(ctx.source, MatchTask("12345"), 30)], now=NOW)

            result = await run_prematch_hourly(ctx, now=NOW)

            assert result == {"claimed": 1, "ok": 1, "fail": 0, "markets": 1}
            assert one_x_two_prices(ctx) == pytest.approx({"1": 1.5, "X": 3.9, "2": 6.0})

            # Only the 1X2 market is kept from the full page
            game = ctx.db.get_game(ctx.source, "12345")
            assert [m["key"] for m in ctx.db.select_markets_for_game(game["id"])] == ["1x2"]

            task = ctx.db.get_scrape_task(ctx.source, TASK_1X2, "12345")
            assert task.not_before_at == to_iso(NOW + timedelta(minutes=60))
            assert task.last_success_at == to_iso(NOW)
            assert task.last_error is None

        assert "matchId=12345" in page.calls[0]

    @pytest.mark.asyncio
    async def test_http_error_is_recorded(self):
        async with make_context(OddsPage(status_code=500)) as ctx:
            discover_fixture_match(ctx)
            ctx.db.upsert_scrape_queue([queue_row(ctx.source, MatchTask("12345"), 30)], now=NOW)

            result = await run_prematch_hourly(ctx, now=NOW)

            assert result["ok"] == 0
            assert result["fail"] == 1
            task = ctx.db.get_scrape_task(ctx.source, TASK_1X2, "12345")
            assert "status=500" in task.last_error
            assert task.not_before_at == to_iso(NOW + timedelta(minutes=5))
            assert one_x_two_prices(ctx) == pytest.approx({"1": 1.8, "X": 3.4, "2": 4.2})

    @pytest.mark.asyncio
    async def test_no_tasks(self):
        page = OddsPage()
        async with make_context(page) as ctx:
            result = await run_prematch_hourly(ctx, now=NOW)

        assert result == {"claimed": 0, "ok": 0, "fail": 0, "markets": 0}
        assert page.calls == []


class TestFullMarkets:

    @pytest.mark.asyncio
    async def test_unknown_match(self):
        page = OddsPage()
        async with make_context(page) as ctx:
            with pytest.raises(GameNotFoundError):
                await serve_prematch_full_markets(ctx, "999", now=NOW)
        assert page.calls == []

    @pytest.mark.asyncio
    async def test_scrape_then_cache(self):
        page = OddsPage()
        async with make_context(page) as ctx:
            discover_fixture_match(ctx)

            first = await serve_prematch_full_markets(ctx, "12345", now=NOW)
            assert first["cached"] is False
            assert first["matchId"] == "12345"
            assert [m["key"] for m in first["markets"]] == ["1x2", "totals"]

            marker = ctx.db.get_scrape_task(ctx.source, TASK_FULL_MARKETS, "12345")
            assert marker.priority == 5
            assert marker.last_success_at == to_iso(NOW)

            second = await serve_prematch_full_markets(ctx, "12345", now=NOW + timedelta(minutes=30))
            assert second["cached"] is True
            assert second["last_success_at"] == to_iso(NOW)
            assert sorted(m["key"] for m in second["markets"]) == ["1x2", "totals"]
            assert len(page.calls) == 1

            totals = [m for m in second["markets"] if m["key"] == "totals"][0]
            assert {o["label"]: o["handicap"] for o in totals["outcomes"]} == {"Under": 2.5, "Over": 2.5}

    @pytest.mark.asyncio
    async def test_fresh_and_expired_bypass_cache(self):
        page = OddsPage()
        async with make_context(page) as ctx:
            discover_fixture_match(ctx)

            await serve_prematch_full_markets(ctx, "12345", now=NOW)
            fresh = await serve_prematch_full_markets(ctx, "12345", fresh=True, now=NOW + timedelta(minutes=1))
            expired = await serve_prematch_full_markets(ctx, "12345", now=NOW + timedelta(minutes=90))

            assert fresh["cached"] is False
            assert expired["cached"] is False
            assert len(page.calls) == 3

    @pytest.mark.asyncio
    async def test_fetch_failure_marks_marker(self):
        async with make_context(OddsPage(status_code=502)) as ctx:
            discover_fixture_match(ctx)

            with pytest.raises(FetchError):
                await serve_prematch_full_markets(ctx, "12345", now=NOW)

            marker = ctx.db.get_scrape_task(ctx.source, TASK_FULL_MARKETS, "12345")
            assert "status=502" in marker.last_error
            assert marker.last_success_at is None

    @pytest.mark.asyncio
    async def test_persistence_failure_marks_marker(self, monkeypatch):
        def failing_persist(db, source, match_id, markets):
            raise PersistenceError("upsert_markets", "disk I/O error")

        monkeypatch.setattr(full_markets, "persist_markets_for_match", failing_persist)
        async with make_context(OddsPage()) as ctx:
            discover_fixture_match(ctx)

            with pytest.raises(PersistenceError):
                await serve_prematch_full_markets(ctx, "12345", now=NOW)

            marker = ctx.db.get_scrape_task(ctx.source, TASK_FULL_MARKETS, "12345")
            assert marker.last_error == "upsert_markets failed: disk I/O error"
            assert marker.last_success_at is None
