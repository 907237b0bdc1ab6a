"""
Statscore live scoreboard provider.

The site embeds Statscore widgets for live matches; the widget group's SSR
endpoint returns rendered HTML plus a small state object, from which the
scoreboard fields are read.
"""

import json
import logging
import re
from typing import Optional
from urllib.parse import urlencode

from ..db.models import LiveMeta
from ..parser.blocks import clean_text
from ..parser.normalize import decode_entities
from .config import STATSCORE_SSR_URL
from .fetcher import ResilientFetcher

logger = logging.getLogger(__name__)

PROVIDER = "statscore"

START_TIME = re.compile(
    r"""<time[^>]*class=["'][^"']*competitionInfoBar__eventStartDate[^"']*["'][^>]*datetime=["']([^"']+)["']""", re.I)
COMPETITION = re.compile(
    r"""<div[^>]*class=["']STATSCOREWidget--competitionInfoBar__competitionInfo["'][^>]*>\s*(.*?)</div>""", re.I | re.S)
HOME_TEAM = re.compile(
    r"""class=["'][^"']*scoreboard[^"']*["'].*?class=["'][^"']*(?:home|left)[^"']*team[^"']*name[^"']*["'][^>]*>\s*([^<]+)\s*<""",
    re.I | re.S)
AWAY_TEAM = re.compile(
    r"""class=["'][^"']*scoreboard[^"']*["'].*?class=["'][^"']*(?:away|right)[^"']*team[^"']*name[^"']*["'][^>]*>\s*([^<]+)\s*<""",
    re.I | re.S)
STATUS = re.compile(r">(1st half|2nd half|Half time|Full time|Kick off|Live)\s*<", re.I)
SCORE = re.compile(
    r"""class=["'][^"']*scoreboard[^"']*["'].*?class=["'][^"']*score[^"']*["'][^>]*>\s*(\d+)\s*:\s*(\d+)\s*<""",
    re.I | re.S)


def provider_key(ls_id: str) -> str:
    return f"{PROVIDER}:ls:{ls_id}"


def build_ssr_url(ls_id: str, widget_group: str, language: str = "en", timezone: str = "0") -> str:
    input_data = json.dumps(
        {"eventId": f"m:{ls_id}", "language": language, "timezone": timezone},
        separators=(",", ":"),
    )
    return f"{STATSCORE_SSR_URL.format(widget_group=widget_group)}?{urlencode({'inputData': input_data})}"


async def get_statscore_ssr(fetcher: ResilientFetcher, ls_id: str, widget_group: str,
                            language: str = "en", timezone: str = "0") -> dict:
    """Fetch the SSR payload for one live-score id."""
    payload = await fetcher.fetch_json(build_ssr_url(ls_id, widget_group, language, timezone))
    return payload if isinstance(payload, dict) else {}


def _int_or_none(value) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def parse_statscore_ssr(payload: dict, ls_id: str) -> LiveMeta:
    """Read scoreboard fields out of an SSR payload. Missing fields stay None."""
    html = str((payload or {}).get("html") or "")
    event = ((payload or {}).get("state") or {}).get("event") or {}

    start_m = START_TIME.search(html)
    comp_m = COMPETITION.search(html)
    home_m = HOME_TEAM.search(html)
    away_m = AWAY_TEAM.search(html)
    status_m = STATUS.search(html)
    score_m = SCORE.search(html)

    return LiveMeta(
        provider_key=provider_key(ls_id),
        provider=PROVIDER,
        provider_ls_id=str(ls_id),
        provider_event_id=str(event["id"]) if event.get("id") else None,
        status_name=status_m.group(1) if status_m else None,
        clock_time=_int_or_none(event.get("clock_time")),
        start_time=start_m.group(1) if start_m else None,
        home_team=decode_entities(home_m.group(1).strip()) if home_m else None,
        away_team=decode_entities(away_m.group(1).strip()) if away_m else None,
        home_score=int(score_m.group(1)) if score_m else None,
        away_score=int(score_m.group(2)) if score_m else None,
        competition_name=(clean_text(comp_m.group(1)) or None) if comp_m else None,
    )
