"""
Database module for the Tounesbet odds store.
"""

from .manager import DatabaseManager
from .models import Game, League, LiveMeta, Market, Outcome, ScrapeQueueTask, Sport

__all__ = ["DatabaseManager", "Game", "League", "LiveMeta", "Market", "Outcome", "ScrapeQueueTask", "Sport"]
