"""
Unit tests for text normalization and queue policy helpers.
"""

import math
import sys
from datetime import datetime, timezone
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from tounesbet_odds.parser.normalize import (
    decode_entities,
    format_line,
    map_market_key,
    normalize_outcome_label,
    parse_decimal,
    parse_handicap,
    slugify,
    sport_identity,
    tunis_local_to_utc,
)
from tounesbet_odds.services.queue import (
    CatalogPageTask,
    MatchTask,
    backoff_minutes,
    clamp_batch,
    is_far_future,
    priority_for_start,
)

NOW = datetime(2025, 8, 15, 10, 0, tzinfo=timezone.utc)


class TestParseDecimal:
    """Comma/dot disambiguation of odds strings."""

    @pytest.mark.parametrize("text,expected", [
        ("2,50", 2.50),
        ("1,05", 1.05),
        ("12,5", 12.5),
    ])
    def test_comma_is_decimal_separator(self, text, expected):
        assert parse_decimal(text) == pytest.approx(expected)

    @pytest.mark.parametrize("text,expected", [
        ("2.50", 2.50),
        ("1.05", 1.05),
        ("100.25", 100.25),
    ])
    def test_dot_is_literal(self, text, expected):
        assert parse_decimal(text) == pytest.approx(expected)

    def test_comma_with_dot_is_thousands_separator(self):
        assert parse_decimal("1,234.5") == pytest.approx(1234.5)

    def test_surrounding_noise_is_dropped(self):
        assert parse_decimal(" 3,40 ") == pytest.approx(3.4)

    @pytest.mark.parametrize("text", ["", "   ", "abc"])
    def test_non_numeric_is_nan(self, text):
        assert math.isnan(parse_decimal(text))


class TestSlugify:

    @pytest.mark.parametrize("text", [
        "Ligue 1 - Côte d'Ivoire",
        "  Premier League  ",
        "--Serie A--",
        "UEFA Champions League (Groupe A)",
        "Tunisie &amp; Algérie",
    ])
    def test_idempotent_and_clean(self, text):
        slug = slugify(text)
        assert slugify(slug) == slug
        assert slug == slug.lower()
        assert not slug.startswith("-")
        assert not slug.endswith("-")
        assert "--" not in slug

    def test_accents_are_stripped(self):
        assert slugify("Ligue 1 - Côte d'Ivoire") == "ligue-1-cote-d-ivoire"


class TestLabelsAndKeys:

    @pytest.mark.parametrize("label,expected", [
        ("Plus", "Over"),
        ("moins", "Under"),
        ("Oui", "Yes"),
        ("NON", "No"),
        (" 1 ", "1"),
        ("X", "X"),
    ])
    def test_outcome_labels(self, label, expected):
        assert normalize_outcome_label(label) == expected

    @pytest.mark.parametrize("name,expected", [
        ("1X2", "1x2"),
        ("Double Chance", "double_chance"),
        ("Les deux équipes marquent", "btts"),
        ("Total Buts", "totals"),
        ("Under / Over", "totals"),
        ("MT/R.Fin", "ht_ft"),
        ("Score Exact", "correct_score"),
        ("Mi-Temps", "mi-temps"),
        ("", "other"),
    ])
    def test_market_keys(self, name, expected):
        assert map_market_key(name) == expected

    def test_entities(self):
        assert decode_entities("A &amp; B &#233;") == "A & B é"

    def test_handicap_and_line(self):
        assert parse_handicap("2,5") == 2.5
        assert parse_handicap("-1") == -1.0
        assert parse_handicap("n/a") is None
        assert format_line(2.5) == "2.5"
        assert format_line(-1.0) == "-1"

    def test_sport_identity(self):
        assert sport_identity("1181") == ("football", "Football")
        assert sport_identity("42") == ("sport-42", "Sport 42")


class TestTunisTime:

    def test_summer_kickoff(self):
        assert tunis_local_to_utc("15/08/2025", "21:00") == "2025-08-15T20:00:00.000000Z"

    def test_seconds_are_kept(self):
        assert tunis_local_to_utc("20/09/2025", "18:30:15") == "2025-09-20T17:30:15.000000Z"

    def test_invalid_input_falls_back_to_now(self):
        assert tunis_local_to_utc("31/02/2025", "21:00", now=NOW) == "2025-08-15T10:00:00.000000Z"
        assert tunis_local_to_utc("tomorrow", "21:00", now=NOW) == "2025-08-15T10:00:00.000000Z"
        assert tunis_local_to_utc("15/08/2025", "9pm", now=NOW) == "2025-08-15T10:00:00.000000Z"


class TestQueuePayloads:

    def test_catalog_round_trip(self):
        task = CatalogPageTask.decode("1181:0:5:7", "1181")
        assert task == CatalogPageTask("1181", "0", 5, 7)
        assert task.encode() == "1181:0:5:7"

    def test_catalog_defaults(self):
        assert CatalogPageTask.decode("", "1181") == CatalogPageTask("1181", "0", 1, 0)
        assert CatalogPageTask.decode("99", "1181") == CatalogPageTask("99", "0", 1, 0)
        assert CatalogPageTask.decode("99:2:x:y", "1181") == CatalogPageTask("99", "2", 1, 0)

    def test_next_pages_respect_ceiling(self):
        pages = CatalogPageTask("1181", "0", 249, 0).next_pages(3, 0, 250)
        assert [p.page for p in pages] == [250]
        pages = CatalogPageTask("1181", "0", 1, 2).next_pages(3, 3, 250)
        assert [p.encode() for p in pages] == ["1181:0:2:3", "1181:0:3:3", "1181:0:4:3"]

    def test_match_task(self):
        assert MatchTask.decode("12345").encode() == "12345"

    @pytest.mark.parametrize("start,expected", [
        ("2025-08-15T20:00:00.000000Z", 30),
        ("2025-08-17T20:00:00.000000Z", 20),
        ("2025-08-30T20:00:00.000000Z", 10),
        (None, 10),
    ])
    def test_priority_tiers(self, start, expected):
        assert priority_for_start(start, NOW) == expected

    @pytest.mark.parametrize("attempts,expected", [(0, 5), (1, 5), (3, 15), (12, 60), (50, 60)])
    def test_backoff(self, attempts, expected):
        assert backoff_minutes(attempts) == expected

    @pytest.mark.parametrize("value,default,maximum,expected", [
        (None, 3, 4, 3),
        (0, 12, 8, 8),
        (10, 3, 4, 4),
        (-2, 3, 4, 1),
        ("x", 3, 4, 3),
        ("2", 3, 4, 2),
    ])
    def test_clamp_batch(self, value, default, maximum, expected):
        assert clamp_batch(value, default, maximum) == expected

    def test_far_future(self):
        assert is_far_future("2025-08-15T13:00:00.000000Z", NOW, 120)
        assert not is_far_future("2025-08-15T11:00:00.000000Z", NOW, 120)
        assert not is_far_future(None, NOW, 120)
