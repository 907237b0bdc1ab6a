"""
Resilient HTTP fetch client.

Wraps httpx with a per-attempt timeout and linear retry backoff, and replays
requests through the site's anti-DDOS gate: a page whose inline script sets
`document.cookie` and then navigates with `location.href`. The gate cookie
(and any Set-Cookie headers) are accumulated into a session cookie dict and
sent back on the next hop.
"""

import asyncio
import logging
import re
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional
from urllib.parse import urljoin, urlsplit

import httpx

from ..config import DEFAULT_USER_AGENT
from ..errors import FetchError, RedirectLoopError
from .config import DEFAULT_HEADERS

logger = logging.getLogger(__name__)

GATE_COOKIE = re.compile(r"""document\.cookie\s*=\s*"([^";=]+)=([^;]+)\s*;\s*path=/""", re.I)
GATE_HREF = re.compile(r'location\.href\s*=\s*"([^"]+)"', re.I)
SET_COOKIE_SPLIT = re.compile(r",(?=[^;]+=[^;]+)")
SET_COOKIE_PAIR = re.compile(r"([^=;\s]+)=([^;]+)")

TEXT_HOPS = 5


@dataclass
class FetchResult:
    """Outcome of a detailed fetch. HTTP errors are data here, not exceptions."""
    status: int
    final_url: str
    text: str
    content_type: Optional[str] = None

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


def build_cookie_header(cookies: dict) -> Optional[str]:
    if not cookies:
        return None
    return "; ".join(f"{k}={v}" for k, v in cookies.items())


def merge_set_cookie(cookies: dict, header: Optional[str]):
    """Best-effort parse of a (possibly comma-joined) Set-Cookie header into `cookies`."""
    if not header:
        return
    for part in SET_COOKIE_SPLIT.split(header):
        m = SET_COOKIE_PAIR.search(part)
        if m:
            cookies[m.group(1)] = m.group(2)


def find_cookie_gate(text: str) -> Optional[tuple[str, str, str]]:
    """(cookie name, cookie value, next href) when the body is the JS cookie gate."""
    cookie_m = GATE_COOKIE.search(text)
    href_m = GATE_HREF.search(text)
    if not cookie_m or not href_m:
        return None
    return cookie_m.group(1), cookie_m.group(2).strip(), href_m.group(1)


def origin_referer(url: str) -> str:
    parts = urlsplit(url)
    return f"{parts.scheme}://{parts.netloc}/"


class ResilientFetcher:
    """
    Async HTTP client with retries and the cookie-gate bypass.

    Two conventions:
    - `fetch_text` raises FetchError on transport failure or non-2xx.
    - `fetch_detailed` returns a FetchResult for any HTTP status and raises
      only when no response could be obtained at all.
    """

    def __init__(
        self,
        user_agent: str = DEFAULT_USER_AGENT,
        timeout: float = 10.0,
        attempts: int = 3,
        backoff_ms: int = 300,
        max_hops: int = 7,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """
        Initialize the fetcher.

        Args:
            transport: Optional httpx transport (tests pass httpx.MockTransport)
            sleep: Coroutine used for retry backoff
        """
        self.user_agent = user_agent
        self.timeout = timeout
        self.attempts = max(1, int(attempts))
        self.backoff_ms = backoff_ms
        self.max_hops = max_hops
        self.transport = transport
        self._sleep = sleep
        self.client: Optional[httpx.AsyncClient] = None

    @classmethod
    def from_settings(cls, settings: dict, transport: Optional[httpx.AsyncBaseTransport] = None) -> "ResilientFetcher":
        """Build from ConfigLoader.get_fetch_settings()."""
        return cls(
            user_agent=settings.get("user_agent", DEFAULT_USER_AGENT),
            timeout=settings.get("timeout", 10.0),
            attempts=settings.get("attempts", 3),
            backoff_ms=settings.get("backoff_ms", 300),
            max_hops=settings.get("max_hops", 7),
            transport=transport,
        )

    async def __aenter__(self):
        """Async context manager entry."""
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.close()

    async def start(self):
        """Start the HTTP client."""
        if self.client is not None:
            return
        self.client = httpx.AsyncClient(
            headers={**DEFAULT_HEADERS, "User-Agent": self.user_agent},
            timeout=self.timeout,
            follow_redirects=True,
            transport=self.transport,
        )
        logger.debug("HTTP client ready")

    async def close(self):
        """Close the HTTP client."""
        if self.client:
            await self.client.aclose()
            self.client = None
        logger.debug("HTTP client closed")

    # ==========================================
    # Retry
    # ==========================================

    async def _get_with_retry(self, url: str, headers: dict, require_ok: bool) -> httpx.Response:
        """
        GET with up to `attempts` tries, sleeping backoff_ms * attempt between them.

        With `require_ok`, a non-2xx response counts as a failed attempt.
        Otherwise any response is returned and only transport errors retry.
        """
        if self.client is None:
            await self.start()

        last_error: Optional[FetchError] = None
        for attempt in range(1, self.attempts + 1):
            try:
                response = await self.client.get(url, headers=headers, timeout=self.timeout)
                # Session cookies are tracked explicitly per fetch
                self.client.cookies.clear()
                if not require_ok or response.is_success:
                    return response
                last_error = FetchError(f"HTTP {response.status_code}", url=url, status=response.status_code)
            except httpx.HTTPError as e:
                last_error = FetchError(f"{type(e).__name__}: {e}", url=url)

            if attempt < self.attempts:
                logger.warning(f"Attempt {attempt}/{self.attempts} failed for {url}: {last_error}")
                await self._sleep(self.backoff_ms * attempt / 1000)

        raise last_error

    # ==========================================
    # Cookie gate bypass
    # ==========================================

    async def _walk_gate(
        self,
        url: str,
        headers: Optional[dict],
        cookies: dict,
        max_hops: int,
        require_ok: bool,
    ) -> tuple[httpx.Response, str, str]:
        current = url
        for hop in range(max_hops):
            request_headers = dict(headers or {})
            cookie_header = build_cookie_header(cookies)
            if cookie_header:
                request_headers["Cookie"] = cookie_header
            request_headers["Referer"] = origin_referer(current)

            response = await self._get_with_retry(current, request_headers, require_ok)
            merge_set_cookie(cookies, response.headers.get("set-cookie"))
            text = response.text

            gate = find_cookie_gate(text)
            if gate is None:
                return response, str(response.url), text

            name, value, href = gate
            cookies[name] = value
            current = urljoin(current, href)
            logger.debug(f"Cookie gate hop {hop + 1}: {name} set, continuing to {current}")

        raise RedirectLoopError(url, max_hops)

    async def fetch_text(self, url: str, headers: Optional[dict] = None, max_hops: int = TEXT_HOPS) -> str:
        """
        Fetch a page body through the cookie gate.

        Raises:
            FetchError: transport failure or non-2xx after retries
            RedirectLoopError: the gate did not resolve within `max_hops`
        """
        _, _, text = await self._walk_gate(url, headers, {}, max_hops, require_ok=True)
        return text

    async def fetch_detailed(
        self,
        url: str,
        headers: Optional[dict] = None,
        cookies: Optional[dict] = None,
        max_hops: Optional[int] = None,
    ) -> FetchResult:
        """
        Fetch a page through the cookie gate, returning status and body for any HTTP status.

        Args:
            cookies: Session cookie dict, updated in place across hops and calls

        Raises:
            FetchError: no response after retries (transport failure)
            RedirectLoopError: the gate did not resolve within `max_hops`
        """
        session = cookies if cookies is not None else {}
        response, final_url, text = await self._walk_gate(
            url, headers, session, max_hops or self.max_hops, require_ok=False,
        )
        return FetchResult(
            status=response.status_code,
            final_url=final_url,
            text=text,
            content_type=response.headers.get("content-type"),
        )

    async def fetch_json(self, url: str, headers: Optional[dict] = None):
        """GET a JSON document (no gate handling)."""
        response = await self._get_with_retry(url, {"Accept": "application/json", **(headers or {})}, require_ok=True)
        try:
            return response.json()
        except ValueError as e:
            raise FetchError(f"Invalid JSON: {e}", url=url, status=response.status_code) from e
