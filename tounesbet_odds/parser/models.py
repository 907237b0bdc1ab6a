"""
Parse-time models.

These are produced fresh per fetch, merged into the database once and then
discarded. Required fields are checked at construction so persist code can
trust them.
"""

import math
from dataclasses import dataclass, field
from typing import Optional


def _require(value, name: str) -> str:
    text = "" if value is None else str(value).strip()
    if not text:
        raise ValueError(f"{name} is required")
    return text


@dataclass
class ParsedOutcome:
    """Single priced selection of a market."""
    label: str
    price: float
    external_id: str
    handicap: Optional[float] = None

    def __post_init__(self):
        self.label = _require(self.label, "outcome label")
        self.external_id = _require(self.external_id, "outcome external_id")
        self.price = float(self.price)
        if math.isnan(self.price) or self.price <= 0:
            raise ValueError(f"outcome price must be positive, got {self.price}")
        if self.handicap is not None:
            self.handicap = float(self.handicap)
            if math.isnan(self.handicap):
                self.handicap = None

    def to_dict(self) -> dict:
        return {
            "label": self.label,
            "price": self.price,
            "handicap": self.handicap,
            "external_id": self.external_id,
        }


@dataclass
class ParsedMarket:
    """Market with its outcomes, e.g. 1X2 or Under/Over 2.5."""
    key: str
    name: str
    external_id: str
    outcomes: list[ParsedOutcome] = field(default_factory=list)

    def __post_init__(self):
        self.key = _require(self.key, "market key")
        self.name = _require(self.name, "market name")
        self.external_id = _require(self.external_id, "market external_id")

    def to_dict(self) -> dict:
        return {
            "key": self.key,
            "name": self.name,
            "external_id": self.external_id,
            "outcomes": [o.to_dict() for o in self.outcomes],
        }


@dataclass
class ParsedGame:
    """A match as seen on one page. start_time is a UTC ISO instant."""
    external_id: str
    home_team: str
    away_team: str
    start_time: str
    live: bool = False
    markets: list[ParsedMarket] = field(default_factory=list)

    def __post_init__(self):
        self.external_id = _require(self.external_id, "game external_id")
        self.home_team = _require(self.home_team, "home_team")
        self.away_team = _require(self.away_team, "away_team")
        self.start_time = _require(self.start_time, "start_time")
        self.live = bool(self.live)


@dataclass
class ParsedLeague:
    name: str
    external_id: str
    games: list[ParsedGame] = field(default_factory=list)

    def __post_init__(self):
        self.name = _require(self.name, "league name")
        self.external_id = _require(self.external_id, "league external_id")


@dataclass
class ParsedSport:
    key: str
    name: str
    external_id: str
    leagues: list[ParsedLeague] = field(default_factory=list)

    def __post_init__(self):
        self.key = _require(self.key, "sport key")
        self.name = _require(self.name, "sport name")
        self.external_id = _require(self.external_id, "sport external_id")


def iter_games(sports: list[ParsedSport]):
    """Yield every ParsedGame in a parse result."""
    for sport in sports:
        for league in sport.leagues:
            yield from league.games
