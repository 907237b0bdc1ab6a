"""
Exception types raised by the fetch, persistence and service layers.

Orchestrators catch these per task and turn them into queue state
(``last_error`` + backoff) instead of letting them escape a batch.
"""

from typing import Optional


class ScraperError(Exception):
    """Base class for all scraper failures."""


class FetchError(ScraperError):
    """Transport failure or non-2xx response after retries."""

    def __init__(self, message: str, url: Optional[str] = None, status: Optional[int] = None):
        super().__init__(message)
        self.url = url
        self.status = status


class RedirectLoopError(FetchError):
    """The cookie-gate redirect chain did not resolve within the hop limit."""

    def __init__(self, url: str, hops: int):
        super().__init__(f"DDOS redirect loop exceeded after {hops} hops", url=url)
        self.hops = hops


class BlockedError(FetchError):
    """Response body matches a known anti-bot block signature."""


class PersistenceError(ScraperError):
    """A database write was rejected."""

    def __init__(self, operation: str, payload: str):
        super().__init__(f"{operation} failed: {payload}")
        self.operation = operation
        self.payload = payload


class GameNotFoundError(ScraperError):
    """The requested match was never discovered (no Game row)."""

    def __init__(self, match_id: str):
        super().__init__("not_found:game")
        self.match_id = match_id


class SportNotFoundError(ScraperError):
    """No sport row with the requested key."""

    def __init__(self, sport_key: str):
        super().__init__("not_found:sport")
        self.sport_key = sport_key
