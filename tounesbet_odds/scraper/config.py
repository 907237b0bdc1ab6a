"""
Tounesbet site constants: endpoints and request headers.
"""

from urllib.parse import urlencode

# Tried in order; plain http is the fallback when TLS is refused
BASE_URLS = ["https://tounesbet.com", "http://tounesbet.com"]

PREMATCH_PATH = "/Prematch"
SPORT_PATH = "/Sport"
SPORT_PAGE_PATH = "/Sport/{sport_id}"
MATCH_LIST_PATH = "/Sport/matchList"
NEXT_MATCHES_PATH = "/Match/NextMatches"
POPULAR_MATCHES_PATH = "/Match/PopularMatches"
MATCH_ODDS_GROUPED_PATH = "/Match/MatchOddsGrouped"
LIVE_PATH = "/paris-sportif-live"
LIVE_FALLBACK_PATH = "/Live"

STATSCORE_SSR_URL = "https://widgets.statscore.com/api/ssr/render-widget-group/{widget_group}"

# Default headers for HTML pages
DEFAULT_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
}

# Fragment endpoints answer like the site's own XHR calls
XHR_HEADERS = {"X-Requested-With": "XMLHttpRequest"}


def build_url(base_url: str, path: str, params: dict = None) -> str:
    """Join a base URL, path and query string."""
    url = f"{base_url.rstrip('/')}{path}"
    if params:
        url = f"{url}?{urlencode(params)}"
    return url


def catalog_params(bet_range_filter: str, page: int) -> dict:
    return {
        "BetRangeFilter": bet_range_filter,
        "Page_number": page,
        "d": 1,
        "DateDay": "all_days",
    }
