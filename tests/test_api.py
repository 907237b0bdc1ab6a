"""
End-to-end tests of the read API with FastAPI's TestClient.

Fixture start times lie in the past, so prematch queries pass
includeStarted=1 / includeStale=1 where games are expected.
"""

import sys
from pathlib import Path

import httpx
from fastapi.testclient import TestClient

sys.path.insert(0, str(Path(__file__).parent))

from html_fixtures import LIVE_HTML, MATCH_LIST_HTML, MATCH_ODDS_GROUPED_HTML, html_response, make_context
from tounesbet_odds.api import create_app
from tounesbet_odds.clock import parse_iso
from tounesbet_odds.parser import parse_live, parse_prematch_sport_match_list
from tounesbet_odds.services import persist_parsed
from tounesbet_odds.services.odds import clamp_seen_within

STATSCORE_PAYLOAD = {
    "html": (
        '<div class="scoreboard"><div class="home-team-name">EST</div>'
        '<div class="away-team-name">CA</div><div class="score">1:0</div><span>1st half</span></div>'
    ),
    "state": {"event": {"id": 555, "clock_time": 63}},
}


def handler(request: httpx.Request) -> httpx.Response:
    if request.url.host == "widgets.statscore.com":
        return httpx.Response(200, json=STATSCORE_PAYLOAD)
    return html_response(MATCH_ODDS_GROUPED_HTML)


def make_client():
    ctx = make_context(handler)
    return TestClient(create_app(ctx)), ctx


def seed_prematch(ctx):
    persist_parsed(ctx.db, ctx.source, parse_prematch_sport_match_list(MATCH_LIST_HTML, "1181"))


class TestOddsRoutes:

    def test_health(self):
        client, _ = make_client()
        with client:
            response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_prematch_snapshot(self):
        client, ctx = make_client()
        with client:
            seed_prematch(ctx)
            response = client.get("/api/odds/prematch/football?includeStarted=1&includeStale=1")

        assert response.status_code == 200
        body = response.json()
        assert body["sport"] == {"key": "football", "name": "Football"}
        assert len(body["leagues"]) == 1
        league = body["leagues"][0]
        assert league["name"] == "Ligue 1"

        game = league["games"][0]
        assert game["externalId"] == "12345"
        assert (game["homeTeam"], game["awayTeam"]) == ("PSG", "OM")
        assert game["startTime"] == "2025-08-15T20:00:00.000000Z"
        assert game["live"] is False
        assert game["liveMeta"] is None

        assert len(game["markets"]) == 1
        market = game["markets"][0]
        assert market["key"] == "1x2"
        assert [(o["label"], o["price"]) for o in market["outcomes"]] == [("1", 1.8), ("X", 3.4), ("2", 4.2)]

    def test_started_games_are_hidden_by_default(self):
        client, ctx = make_client()
        with client:
            seed_prematch(ctx)
            response = client.get("/api/odds/prematch/football")

        assert response.status_code == 200
        assert response.json()["leagues"][0]["games"] == []

    def test_non_finite_seen_window_uses_default(self):
        client, ctx = make_client()
        with client:
            seed_prematch(ctx)
            response = client.get("/api/odds/prematch/football?seenWithinMinutes=Infinity&includeStarted=1")
            huge = client.get("/api/odds/prematch/football?seenWithinMinutes=1e400&includeStarted=1")

        assert response.status_code == 200
        assert len(response.json()["leagues"][0]["games"]) == 1
        assert huge.status_code == 200
        assert clamp_seen_within("Infinity") == 180
        assert clamp_seen_within("-inf") == 180
        assert clamp_seen_within("1e400") == 180
        assert clamp_seen_within("nan") == 180

    def test_unknown_sport(self):
        client, _ = make_client()
        with client:
            response = client.get("/api/odds/prematch/curling")
        assert response.status_code == 404
        assert response.json() == {"error": "sport", "sportKey": "curling"}

    def test_live_snapshot_with_meta(self):
        client, ctx = make_client()
        with client:
            persist_parsed(ctx.db, ctx.source, parse_live(LIVE_HTML))
            refreshed = client.get("/api/admin/statscore/777")
            response = client.get("/api/odds/live/football")

        assert refreshed.status_code == 200
        assert refreshed.json()["stored"] == 1
        assert refreshed.json()["meta"]["home_score"] == 1

        game = response.json()["leagues"][0]["games"][0]
        assert game["externalId"] == "777"
        assert game["live"] is True
        assert game["liveMeta"]["status_name"] == "1st half"
        assert game["liveMeta"]["clock_time"] == 63
        assert game["liveMeta"]["provider_event_id"] == "555"


class TestMatchMarketsRoute:

    def test_unknown_match(self):
        client, _ = make_client()
        with client:
            response = client.get("/api/prematch/match/999/markets")
        assert response.status_code == 404
        assert response.json() == {"error": "match not in DB yet", "matchId": "999"}

    def test_scrape_then_cached(self):
        client, ctx = make_client()
        with client:
            seed_prematch(ctx)
            first = client.get("/api/prematch/match/12345/markets")
            second = client.get("/api/prematch/match/12345/markets")

        assert first.status_code == 200
        assert first.json()["cached"] is False
        assert [m["key"] for m in first.json()["markets"]] == ["1x2", "totals"]

        assert second.json()["cached"] is True
        assert second.json()["last_success_at"]

    def test_upstream_failure_is_502(self):
        def failing(request: httpx.Request) -> httpx.Response:
            return html_response("bad gateway", status_code=500)

        ctx = make_context(failing)
        with TestClient(create_app(ctx)) as client:
            seed_prematch(ctx)
            response = client.get("/api/prematch/match/12345/markets?fresh=1")

        assert response.status_code == 502
        assert "status=500" in response.json()["error"]


class TestAdminRoutes:

    def test_queue_round_trip(self):
        client, _ = make_client()
        with client:
            enqueued = client.get("/api/admin/queue?action=enqueue&externalId=555")
            peeked = client.get("/api/admin/queue?action=peek")
            claimed = client.get("/api/admin/queue?action=claim&limit=5")
            task_id = claimed.json()["claimed"][0]["id"]
            released = client.get(f"/api/admin/queue?action=release&id={task_id}")
            after = client.get("/api/admin/queue?action=peek")

        assert enqueued.status_code == 200
        assert enqueued.json()["row"]["priority"] == 1
        assert enqueued.json()["task"] == "prematch_1x2"
        assert [r["external_id"] for r in peeked.json()["rows"]] == ["555"]

        row = claimed.json()["claimed"][0]
        assert row["lock_owner"] == "debug"
        assert row["status"] == "leased"

        assert released.json()["id"] == task_id
        assert after.json()["rows"][0]["status"] == "pending"
        assert after.json()["rows"][0]["lock_owner"] is None

    def test_ping_claims_nothing(self):
        client, _ = make_client()
        with client:
            client.get("/api/admin/queue?action=enqueue&externalId=555")
            response = client.get("/api/admin/queue")
        assert response.json()["claimed"] == []
        assert response.json()["action"] == "ping"

    def test_bad_requests(self):
        client, _ = make_client()
        with client:
            missing_external = client.get("/api/admin/queue?action=enqueue")
            missing_id = client.get("/api/admin/queue?action=release")
            unknown = client.get("/api/admin/queue?action=explode")

        assert missing_external.status_code == 400
        assert missing_external.json() == {"error": "missing externalId"}
        assert missing_id.json() == {"error": "missing id"}
        assert unknown.status_code == 400

    def test_stats(self):
        client, ctx = make_client()
        with client:
            seed_prematch(ctx)
            client.get("/api/admin/queue?action=enqueue&externalId=12345")
            response = client.get("/api/admin/stats?sportKey=football&includeStale=1")

        body = response.json()
        assert body["source"] == "tounesbet"
        assert body["sport"]["key"] == "football"
        assert body["seenAfter"] is None
        assert body["counts"]["games"] == 1
        assert body["counts"]["games_started_or_now"] == 1
        assert body["counts"]["games_with_complete_1x2"] == 1
        assert body["queue"] == [{"task": "prematch_1x2", "status": "pending", "count": 1}]

    def test_stats_unknown_sport(self):
        client, _ = make_client()
        with client:
            response = client.get("/api/admin/stats?sportKey=curling")
        assert response.status_code == 404

    def test_stats_non_finite_seen_window(self):
        client, _ = make_client()
        with client:
            response = client.get("/api/admin/stats?seenWithinMinutes=Infinity")

        assert response.status_code == 200
        body = response.json()
        window = parse_iso(body["now"]) - parse_iso(body["seenAfter"])
        assert window.total_seconds() == 180 * 60
