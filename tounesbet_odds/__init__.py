"""
Tounesbet odds scraper: catalog crawl, odds refresh and a read API.
"""

__version__ = "0.1.0"

from .config import ConfigLoader
from .context import ScrapeContext
from .db import DatabaseManager

__all__ = ["ConfigLoader", "ScrapeContext", "DatabaseManager", "__version__"]
