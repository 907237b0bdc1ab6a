"""
Scrape context passed into every service call.
"""

import asyncio
import logging
from typing import Optional

import httpx

from .config import ConfigLoader
from .db.manager import DatabaseManager
from .scraper.fetcher import ResilientFetcher
from .scraper.pages import TounesbetScraper

logger = logging.getLogger(__name__)


class ScrapeContext:
    """
    Holds configuration, the database, the HTTP fetcher and the source tag.

    Usage:
        async with ScrapeContext(ConfigLoader()) as ctx:
            await run_prematch_discovery(ctx)
    """

    def __init__(
        self,
        config: ConfigLoader,
        db: Optional[DatabaseManager] = None,
        fetcher: Optional[ResilientFetcher] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the context.

        Args:
            config: Loaded settings
            db: Database manager (default: one at config.get_db_path())
            fetcher: HTTP fetcher (default: built from the fetch settings)
            transport: httpx transport for the default fetcher (tests)
        """
        self.config = config
        self.source = config.get_source()
        self.db = db or DatabaseManager(config.get_db_path())
        fetch_settings = config.get_fetch_settings()
        self.fetcher = fetcher or ResilientFetcher.from_settings(fetch_settings, transport=transport)
        self.site = TounesbetScraper(self.fetcher, fetch_settings["base_urls"])

        # Serializes database writes of concurrently running tasks
        self._db_lock = asyncio.Lock()

    @property
    def db_lock(self) -> asyncio.Lock:
        return self._db_lock

    async def __aenter__(self):
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def open(self):
        if self.db.conn is None:
            self.db.connect()
        await self.fetcher.start()

    async def close(self):
        await self.fetcher.close()
        self.db.close()
