"""
Scrape queue policy: typed task payloads, priorities, reschedule delays and
the per-task outcome fold shared by the orchestrators.

Task external ids are only encoded/decoded here, at the storage boundary.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional, Union

from ..clock import minutes_from, parse_iso, to_iso
from ..db.manager import DatabaseManager
from ..db.models import STATUS_PENDING, TASK_1X2, TASK_CATALOG_PAGE, TASK_FULL_MARKETS, ScrapeQueueTask

logger = logging.getLogger(__name__)

PRIORITY_SEED_PAGE = 50
PRIORITY_NEXT_PAGE = 20
PRIORITY_FULL_MARKETS = 5
PRIORITY_ADMIN = 1

# 1x2 follow-ups: higher is claimed sooner
PRIORITY_1X2_WITHIN_DAY = 30
PRIORITY_1X2_WITHIN_3_DAYS = 20
PRIORITY_1X2_LATER = 10


# ==========================================
# Task payloads
# ==========================================

@dataclass(frozen=True)
class CatalogPageTask:
    """One catalog page of a sport/filter branch and the empty streak that led to it."""
    sport_id: str
    bet_range_filter: str = "0"
    page: int = 1
    empty_streak: int = 0

    kind = TASK_CATALOG_PAGE

    def encode(self) -> str:
        return f"{self.sport_id}:{self.bet_range_filter}:{self.page}:{self.empty_streak}"

    @classmethod
    def decode(cls, external_id: str, default_sport_id: str, default_filter: str = "0") -> "CatalogPageTask":
        """Parse "sportId:betRangeFilter:page:emptyStreak"; missing parts take defaults."""
        parts = str(external_id or "").split(":")

        def part(i: int) -> str:
            return parts[i].strip() if len(parts) > i else ""

        return cls(
            sport_id=part(0) or default_sport_id,
            bet_range_filter=part(1) or default_filter,
            page=_to_int(part(2), 1),
            empty_streak=_to_int(part(3), 0),
        )

    def next_pages(self, fanout: int, next_streak: int, ceiling: int) -> list["CatalogPageTask"]:
        """Up to `fanout` following pages, never past `ceiling`."""
        pages = []
        for k in range(1, fanout + 1):
            page = self.page + k
            if page > ceiling:
                break
            pages.append(CatalogPageTask(self.sport_id, self.bet_range_filter, page, next_streak))
        return pages


@dataclass(frozen=True)
class MatchTask:
    """A per-match task (1x2 refresh or full-markets marker)."""
    match_id: str
    kind: str = TASK_1X2

    def encode(self) -> str:
        return str(self.match_id)

    @classmethod
    def decode(cls, external_id: str, kind: str = TASK_1X2) -> "MatchTask":
        return cls(match_id=str(external_id), kind=kind)


TaskPayload = Union[CatalogPageTask, MatchTask]


def _to_int(value: str, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def decode_task(task: ScrapeQueueTask, default_sport_id: str) -> TaskPayload:
    """Typed payload for a claimed queue row."""
    if task.task == TASK_CATALOG_PAGE:
        return CatalogPageTask.decode(task.external_id, default_sport_id)
    if task.task in (TASK_1X2, TASK_FULL_MARKETS):
        return MatchTask.decode(task.external_id, task.task)
    raise ValueError(f"Unknown task kind: {task.task}")


def queue_row(source: str, payload: TaskPayload, priority: int) -> ScrapeQueueTask:
    """Pending queue row for a payload."""
    return ScrapeQueueTask(
        source=source,
        task=payload.kind,
        external_id=payload.encode(),
        status=STATUS_PENDING,
        priority=priority,
    )


def new_lock_owner() -> str:
    return f"worker:{uuid.uuid4().hex[:12]}"


# ==========================================
# Priorities and delays
# ==========================================

def priority_for_start(start_time: Optional[str], now: datetime) -> int:
    """1x2 follow-up priority by how soon the match starts."""
    start = parse_iso(start_time) if start_time else None
    if start is None:
        return PRIORITY_1X2_LATER
    minutes = (start - now).total_seconds() / 60
    if minutes <= 24 * 60:
        return PRIORITY_1X2_WITHIN_DAY
    if minutes <= 3 * 24 * 60:
        return PRIORITY_1X2_WITHIN_3_DAYS
    return PRIORITY_1X2_LATER


def backoff_minutes(attempts: int, step: int = 5, cap: int = 60) -> int:
    """Failure delay: step * attempts (at least one step), capped."""
    return min(cap, step * max(1, int(attempts or 0)))


def clamp_batch(value, default: int, maximum: int) -> int:
    """Batch size within 1..maximum; unusable values fall back to `default`."""
    try:
        batch = int(value) if value is not None else default
    except (TypeError, ValueError):
        batch = default
    if batch == 0:
        batch = default
    return max(1, min(maximum, batch))


# ==========================================
# Outcome fold
# ==========================================

@dataclass
class TaskOutcome:
    """Result of processing one claimed task."""
    task: ScrapeQueueTask
    ok: bool
    error: Optional[str] = None
    delay_minutes: Optional[float] = None
    details: dict = field(default_factory=dict)

    @classmethod
    def success(cls, task: ScrapeQueueTask, delay_minutes: float, **details) -> "TaskOutcome":
        return cls(task=task, ok=True, delay_minutes=delay_minutes, details=details)

    @classmethod
    def failure(cls, task: ScrapeQueueTask, error: Exception) -> "TaskOutcome":
        return cls(task=task, ok=False, error=str(error) or type(error).__name__)


def apply_outcomes(db: DatabaseManager, outcomes: list[TaskOutcome], now: datetime,
                   backoff_step: int = 5, backoff_cap: int = 60) -> tuple[int, int]:
    """
    Fold task outcomes into queue state.

    Success: pending, gate = now + delay, error cleared, last_success_at = now.
    Failure: pending, gate = now + backoff(attempts), last_error set.

    Returns:
        (succeeded, failed)
    """
    now_iso = to_iso(now)
    ok = failed = 0
    for outcome in outcomes:
        if outcome.ok:
            db.update_scrape_task(
                outcome.task.id,
                now=now,
                status=STATUS_PENDING,
                not_before_at=minutes_from(now, outcome.delay_minutes or 0),
                locked_at=None,
                lock_owner=None,
                last_error=None,
                last_success_at=now_iso,
            )
            ok += 1
        else:
            delay = backoff_minutes(outcome.task.attempts, backoff_step, backoff_cap)
            db.update_scrape_task(
                outcome.task.id,
                now=now,
                status=STATUS_PENDING,
                not_before_at=minutes_from(now, delay),
                locked_at=None,
                lock_owner=None,
                last_error=outcome.error,
            )
            logger.warning(
                f"Task {outcome.task.task}:{outcome.task.external_id} failed "
                f"(attempt {outcome.task.attempts}), retry in {delay}m: {outcome.error}"
            )
            failed += 1
    return ok, failed


def is_far_future(gate: Optional[str], now: datetime, horizon_minutes: float) -> bool:
    gate_dt = parse_iso(gate)
    return gate_dt is not None and gate_dt - now > timedelta(minutes=horizon_minutes)
