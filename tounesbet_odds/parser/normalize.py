"""
Text normalization helpers shared by all page parsers.

Covers entity decoding, outcome label canonicalization, market key
classification, locale-aware decimal parsing, slugs and the conversion of
the site's Tunis wall-clock times to UTC.
"""

import math
import re
import unicodedata
from datetime import datetime, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo

from ..clock import to_iso, utc_now

SOURCE_TZ = ZoneInfo("Africa/Tunis")

FOOTBALL_SPORT_ID = "1181"

_NUMERIC_ENTITY = re.compile(r"&#(\d+);")
_NOT_DECIMAL = re.compile(r"[^0-9,.\-]")
_NOT_SLUG = re.compile(r"[^a-z0-9]+")
_TIME = re.compile(r"^(\d{2}):(\d{2})(?::(\d{2}))?$")

_LABEL_SYNONYMS = {
    "plus": "Over",
    "over": "Over",
    "moins": "Under",
    "under": "Under",
    "oui": "Yes",
    "yes": "Yes",
    "non": "No",
    "no": "No",
}


def decode_entities(text: str) -> str:
    """Decode the handful of entities the site emits (&amp; &lt; &gt; &#N;)."""
    return _NUMERIC_ENTITY.sub(
        lambda m: chr(int(m.group(1))),
        text.replace("&amp;", "&").replace("&lt;", "<").replace("&gt;", ">"),
    )


def normalize_outcome_label(label: str) -> str:
    """Map French/English synonyms to Over/Under/Yes/No, else the trimmed text."""
    text = decode_entities(label).strip()
    return _LABEL_SYNONYMS.get(text.lower(), text)


def slugify(text: str) -> str:
    """
    Lowercase ASCII slug with single hyphens.

    Examples:
        >>> slugify("Ligue 1 - Côte d'Ivoire")
        'ligue-1-cote-d-ivoire'
    """
    decomposed = unicodedata.normalize("NFKD", decode_entities(text))
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return _NOT_SLUG.sub("-", stripped.lower()).strip("-")


def map_market_key(name: str) -> str:
    """Classify a market display name into the canonical key vocabulary."""
    n = decode_entities(name).lower()
    if "1x2" in n:
        return "1x2"
    if "double chance" in n:
        return "double_chance"
    if "les deux" in n or "both" in n:
        return "btts"
    if "total" in n or "under / over" in n or "under/over" in n:
        return "totals"
    if "mt/r.fin" in n:
        return "ht_ft"
    if "score exact" in n:
        return "correct_score"
    return slugify(n) or "other"


def parse_decimal(text: str) -> float:
    """
    Parse an odds string that may use a comma as decimal separator.

    With a comma and no dot, dots are dropped and the comma becomes the
    decimal point ("2,50" -> 2.5). Otherwise commas are dropped ("1,234.5"
    -> 1234.5). Returns NaN when nothing numeric remains.
    """
    cleaned = _NOT_DECIMAL.sub("", str(text).strip())
    if "," in cleaned and "." not in cleaned:
        cleaned = cleaned.replace(".", "").replace(",", ".")
    else:
        cleaned = cleaned.replace(",", "")
    if not cleaned:
        # an empty price is never a valid odd
        return math.nan
    try:
        return float(cleaned)
    except ValueError:
        return math.nan


def is_valid_price(value: Optional[float]) -> bool:
    return value is not None and not math.isnan(value) and value > 0


def parse_handicap(text: str) -> Optional[float]:
    """Handicap line from a label such as "2,5" or "-1"."""
    try:
        value = float(decode_entities(text).strip().replace(",", ".", 1))
    except ValueError:
        return None
    return None if math.isnan(value) else value


def format_line(value: float) -> str:
    """Render a handicap line for ids: 2.5 -> "2.5", -1.0 -> "-1"."""
    if float(value).is_integer():
        return str(int(value))
    return repr(float(value))


def sport_identity(sport_id: str) -> tuple[str, str]:
    """(key, name) for a site sport id."""
    if str(sport_id) == FOOTBALL_SPORT_ID:
        return "football", "Football"
    return f"sport-{sport_id}", f"Sport {sport_id}"


def _offset(utc_naive: datetime) -> timedelta:
    """UTC offset of the source zone at a naive-UTC instant."""
    aware = utc_naive.replace(tzinfo=timezone.utc).astimezone(SOURCE_TZ)
    return aware.utcoffset() or timedelta(0)


def tunis_local_to_utc(date_ddmmyyyy: str, time_hhmm: str, now: Optional[datetime] = None) -> str:
    """
    Convert a Tunis wall-clock date ("dd/mm/yyyy") and time ("HH:MM[:SS]")
    into a UTC ISO instant.

    The offset is computed twice: once at the naive instant, then again at
    the corrected instant so a DST boundary between the two is honored.
    Unparseable input falls back to `now`.
    """
    fallback = to_iso(now or utc_now())
    parts = str(date_ddmmyyyy).split("/")
    if len(parts) != 3 or not all(p.strip().isdigit() for p in parts):
        return fallback
    m = _TIME.match(str(time_hhmm).strip())
    if not m:
        return fallback
    day, month, year = (int(p) for p in parts)
    try:
        local = datetime(year, month, day, int(m.group(1)), int(m.group(2)), int(m.group(3) or 0))
    except ValueError:
        return fallback

    utc1 = local - _offset(local)
    utc2 = local - _offset(utc1)
    return to_iso(utc2.replace(tzinfo=timezone.utc))
