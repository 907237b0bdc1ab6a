"""
Database row models for the odds store.
"""

from dataclasses import asdict, dataclass
from typing import Optional

# Queue task kinds
TASK_CATALOG_PAGE = "prematch_catalog_page"
TASK_1X2 = "prematch_1x2"
TASK_FULL_MARKETS = "prematch_full_markets"

STATUS_PENDING = "pending"
STATUS_LEASED = "leased"


@dataclass
class Sport:
    source: str
    external_id: str
    key: str
    name: str
    id: Optional[int] = None


@dataclass
class League:
    source: str
    external_id: str
    name: str
    sport_id: Optional[int] = None
    id: Optional[int] = None


@dataclass
class Game:
    source: str
    external_id: str
    home_team: str
    away_team: str
    start_time: str                        # UTC ISO instant
    live: bool = False
    league_id: Optional[int] = None
    last_seen_at: Optional[str] = None
    id: Optional[int] = None


@dataclass
class Market:
    source: str
    external_id: str
    key: str
    name: str
    game_id: Optional[int] = None
    id: Optional[int] = None


@dataclass
class Outcome:
    source: str
    external_id: str
    label: str
    price: float
    handicap: Optional[float] = None
    market_id: Optional[int] = None
    id: Optional[int] = None


@dataclass
class LiveMeta:
    """Scoreboard data from a secondary provider, joined to games by external id."""
    provider_key: str
    provider: str
    provider_ls_id: Optional[str] = None
    provider_event_id: Optional[str] = None
    status_name: Optional[str] = None
    clock_time: Optional[int] = None
    start_time: Optional[str] = None
    home_team: Optional[str] = None
    away_team: Optional[str] = None
    home_score: Optional[int] = None
    away_score: Optional[int] = None
    competition_name: Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class ScrapeQueueTask:
    """A row of the scrape_queue table."""
    source: str
    task: str
    external_id: str
    status: str = STATUS_PENDING
    priority: int = 0
    not_before_at: Optional[str] = None
    locked_at: Optional[str] = None
    lock_owner: Optional[str] = None
    attempts: int = 0
    last_error: Optional[str] = None
    last_success_at: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    id: Optional[int] = None

    @classmethod
    def from_row(cls, row) -> "ScrapeQueueTask":
        data = dict(row)
        return cls(**{k: data.get(k) for k in cls.__dataclass_fields__ if k in data})
