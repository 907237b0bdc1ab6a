"""
Database manager for the Tounesbet odds scraper.
Handles all SQLite operations for the odds hierarchy and the scrape queue.
"""

import sqlite3
import logging
from contextlib import contextmanager
from datetime import datetime, timedelta
from pathlib import Path
from typing import Iterable, Optional

from ..clock import to_iso, utc_now
from ..errors import PersistenceError
from .models import (
    STATUS_LEASED,
    STATUS_PENDING,
    Game,
    League,
    LiveMeta,
    Market,
    Outcome,
    ScrapeQueueTask,
    Sport,
)

logger = logging.getLogger(__name__)

# SQLite caps bound parameters per statement; id lookups are chunked below it
CHUNK_SIZE = 250

QUEUE_COLUMNS = (
    "id", "source", "task", "external_id", "status", "priority", "not_before_at",
    "locked_at", "lock_owner", "attempts", "last_error", "last_success_at",
    "created_at", "updated_at",
)


def handicap_key(handicap: Optional[float]) -> str:
    """Text form of a handicap used in the outcomes unique key ('' for none)."""
    if handicap is None:
        return ""
    return f"{float(handicap):g}"


def _chunks(values: list, size: int = CHUNK_SIZE) -> Iterable[list]:
    for i in range(0, len(values), size):
        yield values[i:i + size]


def _placeholders(n: int) -> str:
    return ",".join("?" * n)


class DatabaseManager:
    """
    Manages the SQLite database storing sports, leagues, games, markets,
    outcomes, live meta and the scrape queue.
    """

    def __init__(self, db_path: str):
        """
        Initialize database manager.

        Args:
            db_path: Path to SQLite database file (or ':memory:')
        """
        self.db_path = db_path
        if db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self.conn: Optional[sqlite3.Connection] = None
        self._tx_depth = 0

    def connect(self) -> sqlite3.Connection:
        """Connect to database and create tables if needed."""
        self.conn = sqlite3.connect(str(self.db_path), timeout=30.0, check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        self.conn.execute("PRAGMA foreign_keys = ON")
        self._create_tables()
        logger.info(f"Connected to database: {self.db_path}")
        return self.conn

    def close(self):
        """Close database connection."""
        if self.conn:
            self.conn.close()
            self.conn = None
            logger.info("Database connection closed")

    def _create_tables(self):
        """Create database tables if they don't exist."""
        cursor = self.conn.cursor()

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS sports (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                source TEXT NOT NULL,
                external_id TEXT NOT NULL,
                key TEXT NOT NULL,
                name TEXT NOT NULL,
                UNIQUE(source, external_id)
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS leagues (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                source TEXT NOT NULL,
                external_id TEXT NOT NULL,
                sport_id INTEGER,
                name TEXT NOT NULL,
                FOREIGN KEY (sport_id) REFERENCES sports(id),
                UNIQUE(source, external_id)
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS games (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                source TEXT NOT NULL,
                external_id TEXT NOT NULL,
                league_id INTEGER,
                home_team TEXT NOT NULL,
                away_team TEXT NOT NULL,
                start_time TEXT NOT NULL,
                last_seen_at TEXT,
                live INTEGER DEFAULT 0,
                FOREIGN KEY (league_id) REFERENCES leagues(id),
                UNIQUE(source, external_id)
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS markets (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                source TEXT NOT NULL,
                external_id TEXT NOT NULL,
                game_id INTEGER,
                key TEXT NOT NULL,
                name TEXT NOT NULL,
                FOREIGN KEY (game_id) REFERENCES games(id),
                UNIQUE(source, external_id)
            )
        """)

        # handicap_key mirrors handicap as text ('' for NULL): SQLite treats
        # NULLs as distinct inside UNIQUE constraints
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS outcomes (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                source TEXT NOT NULL,
                external_id TEXT NOT NULL,
                market_id INTEGER NOT NULL,
                label TEXT NOT NULL,
                price REAL NOT NULL,
                handicap REAL,
                handicap_key TEXT NOT NULL DEFAULT '',
                FOREIGN KEY (market_id) REFERENCES markets(id),
                UNIQUE(market_id, label, handicap_key)
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS live_meta (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                provider_key TEXT NOT NULL UNIQUE,
                provider TEXT NOT NULL,
                provider_ls_id TEXT,
                provider_event_id TEXT,
                status_name TEXT,
                clock_time INTEGER,
                start_time TEXT,
                home_team TEXT,
                away_team TEXT,
                home_score INTEGER,
                away_score INTEGER,
                competition_name TEXT,
                updated_at TEXT
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS scrape_queue (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                source TEXT NOT NULL,
                task TEXT NOT NULL,
                external_id TEXT NOT NULL,
                status TEXT NOT NULL DEFAULT 'pending',
                priority INTEGER NOT NULL DEFAULT 0,
                not_before_at TEXT,
                locked_at TEXT,
                lock_owner TEXT,
                attempts INTEGER NOT NULL DEFAULT 0,
                last_error TEXT,
                last_success_at TEXT,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL,
                UNIQUE(source, task, external_id)
            )
        """)

        cursor.execute("""
            CREATE INDEX IF NOT EXISTS idx_games_league
            ON games(league_id, live)
        """)
        cursor.execute("""
            CREATE INDEX IF NOT EXISTS idx_games_last_seen
            ON games(last_seen_at)
        """)
        cursor.execute("""
            CREATE INDEX IF NOT EXISTS idx_markets_game
            ON markets(game_id)
        """)
        cursor.execute("""
            CREATE INDEX IF NOT EXISTS idx_outcomes_market
            ON outcomes(market_id)
        """)
        cursor.execute("""
            CREATE INDEX IF NOT EXISTS idx_live_meta_ls
            ON live_meta(provider, provider_ls_id)
        """)
        cursor.execute("""
            CREATE INDEX IF NOT EXISTS idx_queue_claim
            ON scrape_queue(source, task, status, not_before_at)
        """)

        self.conn.commit()
        logger.debug("Database tables created/verified")

    # ==========================================
    # Transactions
    # ==========================================

    @contextmanager
    def transaction(self):
        """
        Group several writes into one commit.

        Nested use joins the outer transaction. Any exception rolls back
        everything written since the outermost entry.
        """
        self._tx_depth += 1
        try:
            yield self
        except Exception:
            self._tx_depth -= 1
            if self._tx_depth == 0:
                self.conn.rollback()
            raise
        else:
            self._tx_depth -= 1
            if self._tx_depth == 0:
                self.conn.commit()

    def _commit(self):
        if self._tx_depth == 0:
            self.conn.commit()

    @contextmanager
    def _operation(self, name: str):
        """Translate sqlite errors into PersistenceError tagged with the operation."""
        try:
            yield
        except sqlite3.Error as e:
            logger.error(f"{name} failed: {e}")
            if self._tx_depth == 0:
                self.conn.rollback()
            raise PersistenceError(name, str(e)) from e

    # ==========================================
    # Odds Hierarchy Upserts
    # ==========================================

    def upsert_sports(self, rows: list[Sport]):
        """Insert or update sports by (source, external_id)."""
        if not rows:
            return
        with self._operation("upsert_sports"):
            self.conn.executemany("""
                INSERT INTO sports (source, external_id, key, name)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(source, external_id) DO UPDATE SET
                    key = excluded.key,
                    name = excluded.name
            """, [(r.source, r.external_id, r.key, r.name) for r in rows])
            self._commit()

    def upsert_leagues(self, rows: list[League]):
        """Insert or update leagues by (source, external_id)."""
        if not rows:
            return
        with self._operation("upsert_leagues"):
            self.conn.executemany("""
                INSERT INTO leagues (source, external_id, sport_id, name)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(source, external_id) DO UPDATE SET
                    sport_id = COALESCE(excluded.sport_id, leagues.sport_id),
                    name = excluded.name
            """, [(r.source, r.external_id, r.sport_id, r.name) for r in rows])
            self._commit()

    def upsert_games(self, rows: list[Game]):
        """Insert or update games by (source, external_id), refreshing last_seen_at."""
        if not rows:
            return
        with self._operation("upsert_games"):
            self.conn.executemany("""
                INSERT INTO games (
                    source, external_id, league_id, home_team, away_team,
                    start_time, last_seen_at, live
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(source, external_id) DO UPDATE SET
                    league_id = COALESCE(excluded.league_id, games.league_id),
                    home_team = excluded.home_team,
                    away_team = excluded.away_team,
                    start_time = excluded.start_time,
                    last_seen_at = COALESCE(excluded.last_seen_at, games.last_seen_at),
                    live = excluded.live
            """, [
                (
                    r.source, r.external_id, r.league_id, r.home_team, r.away_team,
                    r.start_time, r.last_seen_at, 1 if r.live else 0,
                )
                for r in rows
            ])
            self._commit()

    def upsert_markets(self, rows: list[Market]):
        """Insert or update markets by (source, external_id)."""
        if not rows:
            return
        with self._operation("upsert_markets"):
            self.conn.executemany("""
                INSERT INTO markets (source, external_id, game_id, key, name)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(source, external_id) DO UPDATE SET
                    game_id = COALESCE(excluded.game_id, markets.game_id),
                    key = excluded.key,
                    name = excluded.name
            """, [(r.source, r.external_id, r.game_id, r.key, r.name) for r in rows])
            self._commit()

    def upsert_outcomes(self, rows: list[Outcome]):
        """Insert or update outcomes by (market_id, label, handicap); prices overwrite."""
        if not rows:
            return
        with self._operation("upsert_outcomes"):
            self.conn.executemany("""
                INSERT INTO outcomes (
                    source, external_id, market_id, label, price, handicap, handicap_key
                ) VALUES (?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(market_id, label, handicap_key) DO UPDATE SET
                    source = excluded.source,
                    external_id = excluded.external_id,
                    price = excluded.price,
                    handicap = excluded.handicap
            """, [
                (
                    r.source, r.external_id, r.market_id, r.label, r.price,
                    r.handicap, handicap_key(r.handicap),
                )
                for r in rows
            ])
            self._commit()

    def upsert_live_meta(self, rows: list[LiveMeta], now: Optional[datetime] = None):
        """Insert or update live meta rows by provider_key."""
        if not rows:
            return
        stamp = to_iso(now or utc_now())
        with self._operation("upsert_live_meta"):
            self.conn.executemany("""
                INSERT INTO live_meta (
                    provider_key, provider, provider_ls_id, provider_event_id,
                    status_name, clock_time, start_time, home_team, away_team,
                    home_score, away_score, competition_name, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(provider_key) DO UPDATE SET
                    provider = excluded.provider,
                    provider_ls_id = excluded.provider_ls_id,
                    provider_event_id = excluded.provider_event_id,
                    status_name = excluded.status_name,
                    clock_time = excluded.clock_time,
                    start_time = excluded.start_time,
                    home_team = excluded.home_team,
                    away_team = excluded.away_team,
                    home_score = excluded.home_score,
                    away_score = excluded.away_score,
                    competition_name = excluded.competition_name,
                    updated_at = excluded.updated_at
            """, [
                (
                    m.provider_key, m.provider, m.provider_ls_id, m.provider_event_id,
                    m.status_name, m.clock_time, m.start_time, m.home_team, m.away_team,
                    m.home_score, m.away_score, m.competition_name, stamp,
                )
                for m in rows
            ])
            self._commit()

    # ==========================================
    # Id Lookups
    # ==========================================

    def _id_map(self, table: str, source: str, external_ids: list[str]) -> dict[str, int]:
        """Map external_id -> id for rows of one source."""
        ids = list(dict.fromkeys(str(e) for e in external_ids))
        result: dict[str, int] = {}
        if not ids:
            return result
        with self._operation(f"get_{table}_id_map"):
            for chunk in _chunks(ids):
                cursor = self.conn.execute(
                    f"SELECT id, external_id FROM {table} "
                    f"WHERE source = ? AND external_id IN ({_placeholders(len(chunk))})",
                    (source, *chunk),
                )
                for row in cursor.fetchall():
                    result[row["external_id"]] = row["id"]
        return result

    def get_sports_id_map(self, source: str, external_ids: list[str]) -> dict[str, int]:
        return self._id_map("sports", source, external_ids)

    def get_leagues_id_map(self, source: str, external_ids: list[str]) -> dict[str, int]:
        return self._id_map("leagues", source, external_ids)

    def get_games_id_map(self, source: str, external_ids: list[str]) -> dict[str, int]:
        return self._id_map("games", source, external_ids)

    def get_markets_id_map(self, source: str, external_ids: list[str]) -> dict[str, int]:
        return self._id_map("markets", source, external_ids)

    # ==========================================
    # Read Queries
    # ==========================================

    def get_game(self, source: str, external_id: str) -> Optional[dict]:
        """Get a game row by its external id."""
        cursor = self.conn.execute(
            "SELECT * FROM games WHERE source = ? AND external_id = ?",
            (source, str(external_id)),
        )
        row = cursor.fetchone()
        return dict(row) if row else None

    def get_sport_by_key(self, source: str, key: str) -> Optional[dict]:
        cursor = self.conn.execute(
            "SELECT id, key, name, external_id FROM sports WHERE source = ? AND key = ?",
            (source, key),
        )
        row = cursor.fetchone()
        return dict(row) if row else None

    def get_leagues_for_sport(self, source: str, sport_id: int) -> list[dict]:
        cursor = self.conn.execute(
            "SELECT id, name, external_id FROM leagues WHERE source = ? AND sport_id = ? ORDER BY id",
            (source, sport_id),
        )
        return [dict(row) for row in cursor.fetchall()]

    def select_games(
        self,
        source: str,
        league_ids: list[int],
        live: bool,
        started_after: Optional[str] = None,
        seen_after: Optional[str] = None,
        page_size: int = 5000,
    ) -> list[dict]:
        """
        Select games of the given leagues, paging through the result by id.

        Args:
            started_after: Only games whose start_time is strictly later
            seen_after: Only games with last_seen_at at or after this instant
        """
        if not league_ids:
            return []
        games: list[dict] = []
        for chunk in _chunks(list(league_ids)):
            sql = (
                "SELECT id, external_id, league_id, home_team, away_team, start_time, live, last_seen_at "
                f"FROM games WHERE source = ? AND league_id IN ({_placeholders(len(chunk))}) AND live = ?"
            )
            params: list = [source, *chunk, 1 if live else 0]
            if started_after:
                sql += " AND start_time > ?"
                params.append(started_after)
            if seen_after:
                sql += " AND last_seen_at >= ?"
                params.append(seen_after)
            sql += " ORDER BY id LIMIT ? OFFSET ?"

            offset = 0
            while True:
                cursor = self.conn.execute(sql, (*params, page_size, offset))
                rows = [dict(r) for r in cursor.fetchall()]
                for r in rows:
                    r["live"] = bool(r["live"])
                games.extend(rows)
                if len(rows) < page_size:
                    break
                offset += page_size
        return games

    def get_live_game_external_ids(self, source: str, seen_after: Optional[str] = None) -> list[str]:
        """External ids of live games, optionally only those seen since an instant."""
        sql = "SELECT external_id FROM games WHERE source = ? AND live = 1"
        params: list = [source]
        if seen_after:
            sql += " AND last_seen_at >= ?"
            params.append(seen_after)
        cursor = self.conn.execute(sql + " ORDER BY id", params)
        return [row["external_id"] for row in cursor.fetchall()]

    def _attach_outcomes(self, markets: list[dict]) -> list[dict]:
        by_id = {m["id"]: m for m in markets}
        for m in markets:
            m["outcomes"] = []
        for chunk in _chunks(list(by_id)):
            cursor = self.conn.execute(
                "SELECT id, market_id, label, price, handicap FROM outcomes "
                f"WHERE market_id IN ({_placeholders(len(chunk))}) ORDER BY id",
                chunk,
            )
            for row in cursor.fetchall():
                by_id[row["market_id"]]["outcomes"].append({
                    "id": row["id"],
                    "label": row["label"],
                    "price": row["price"],
                    "handicap": row["handicap"],
                })
        return markets

    def select_markets_by_external_ids(self, source: str, external_ids: list[str]) -> list[dict]:
        """Markets (with outcomes) whose external id is in the given list."""
        markets: list[dict] = []
        for chunk in _chunks(list(dict.fromkeys(external_ids))):
            cursor = self.conn.execute(
                "SELECT id, game_id, key, name, external_id FROM markets "
                f"WHERE source = ? AND external_id IN ({_placeholders(len(chunk))}) ORDER BY id",
                (source, *chunk),
            )
            markets.extend(dict(r) for r in cursor.fetchall())
        return self._attach_outcomes(markets)

    def select_markets_for_game(self, game_id: int) -> list[dict]:
        """All markets (with outcomes) of one game."""
        cursor = self.conn.execute(
            "SELECT id, game_id, key, name, external_id FROM markets WHERE game_id = ? ORDER BY id",
            (game_id,),
        )
        return self._attach_outcomes([dict(r) for r in cursor.fetchall()])

    def select_live_meta(self, provider: str, ls_ids: list[str]) -> dict[str, dict]:
        """Live meta keyed by provider_ls_id."""
        result: dict[str, dict] = {}
        for chunk in _chunks(list(dict.fromkeys(ls_ids))):
            cursor = self.conn.execute(
                "SELECT provider_ls_id, provider_event_id, status_name, clock_time, start_time, "
                "home_team, away_team, home_score, away_score, competition_name "
                f"FROM live_meta WHERE provider = ? AND provider_ls_id IN ({_placeholders(len(chunk))})",
                (provider, *chunk),
            )
            for row in cursor.fetchall():
                result[row["provider_ls_id"]] = dict(row)
        return result

    # ==========================================
    # Scrape Queue Operations
    # ==========================================

    def upsert_scrape_queue(self, rows: list[ScrapeQueueTask], now: Optional[datetime] = None):
        """
        Enqueue tasks idempotently by (source, task, external_id).

        An existing row keeps its status, gate and attempts; only its priority
        is raised when the new one is higher.
        """
        if not rows:
            return
        stamp = to_iso(now or utc_now())
        with self._operation("upsert_scrape_queue"):
            self.conn.executemany("""
                INSERT INTO scrape_queue (
                    source, task, external_id, status, priority, not_before_at,
                    attempts, created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, 0, ?, ?)
                ON CONFLICT(source, task, external_id) DO UPDATE SET
                    priority = MAX(scrape_queue.priority, excluded.priority),
                    updated_at = excluded.updated_at
            """, [
                (
                    r.source, r.task, r.external_id, r.status or STATUS_PENDING,
                    r.priority, r.not_before_at, stamp, stamp,
                )
                for r in rows
            ])
            self._commit()

    def claim_scrape_tasks(
        self,
        source: str,
        task: str,
        limit: int,
        lock_owner: str,
        now: Optional[datetime] = None,
        lease_minutes: float = 15,
    ) -> list[ScrapeQueueTask]:
        """
        Atomically lease up to `limit` due tasks for `lock_owner`.

        Eligible rows are pending with an open gate, or leased with a lease
        older than `lease_minutes`. The select and update run under one
        IMMEDIATE transaction so two owners never receive the same row.
        """
        if limit <= 0:
            return []
        now = now or utc_now()
        now_iso = to_iso(now)
        stale_iso = to_iso(now - timedelta(minutes=lease_minutes))

        if self._tx_depth > 0:
            raise RuntimeError("claim_scrape_tasks cannot run inside transaction()")
        if self.conn.in_transaction:
            self.conn.commit()
        with self._operation("claim_scrape_tasks"):
            self.conn.execute("BEGIN IMMEDIATE")
            try:
                cursor = self.conn.execute("""
                    SELECT id FROM scrape_queue
                    WHERE source = ? AND task = ? AND (
                        (status = ? AND (not_before_at IS NULL OR not_before_at <= ?))
                        OR (status = ? AND (locked_at IS NULL OR locked_at <= ?))
                    )
                    ORDER BY priority DESC, created_at ASC, id ASC
                    LIMIT ?
                """, (source, task, STATUS_PENDING, now_iso, STATUS_LEASED, stale_iso, limit))
                ids = [row["id"] for row in cursor.fetchall()]
                if not ids:
                    self.conn.commit()
                    return []

                marks = _placeholders(len(ids))
                self.conn.execute(f"""
                    UPDATE scrape_queue SET
                        status = ?, locked_at = ?, lock_owner = ?,
                        attempts = attempts + 1, updated_at = ?
                    WHERE id IN ({marks})
                """, (STATUS_LEASED, now_iso, lock_owner, now_iso, *ids))
                cursor = self.conn.execute(
                    f"SELECT * FROM scrape_queue WHERE id IN ({marks}) AND lock_owner = ? "
                    "ORDER BY priority DESC, created_at ASC, id ASC",
                    (*ids, lock_owner),
                )
                claimed = [ScrapeQueueTask.from_row(r) for r in cursor.fetchall()]
                self.conn.commit()
            except Exception:
                self.conn.rollback()
                raise

        logger.debug(f"Claimed {len(claimed)} {task} tasks for {lock_owner}")
        return claimed

    def update_scrape_tasks(self, task_ids: list[int], now: Optional[datetime] = None, **fields):
        """Update queue columns for the given task ids."""
        ids = [int(i) for i in task_ids]
        if not ids:
            return
        unknown = set(fields) - set(QUEUE_COLUMNS)
        if unknown:
            raise ValueError(f"Unknown scrape_queue columns: {sorted(unknown)}")
        fields["updated_at"] = to_iso(now or utc_now())
        assignments = ", ".join(f"{col} = ?" for col in fields)
        with self._operation("update_scrape_task"):
            for chunk in _chunks(ids):
                self.conn.execute(
                    f"UPDATE scrape_queue SET {assignments} WHERE id IN ({_placeholders(len(chunk))})",
                    (*fields.values(), *chunk),
                )
            self._commit()

    def update_scrape_task(self, task_id: int, now: Optional[datetime] = None, **fields):
        self.update_scrape_tasks([task_id], now=now, **fields)

    def get_scrape_task(self, source: str, task: str, external_id: str) -> Optional[ScrapeQueueTask]:
        cursor = self.conn.execute(
            "SELECT * FROM scrape_queue WHERE source = ? AND task = ? AND external_id = ?",
            (source, task, str(external_id)),
        )
        row = cursor.fetchone()
        return ScrapeQueueTask.from_row(row) if row else None

    def count_scrape_tasks(self, source: str, task: str) -> int:
        cursor = self.conn.execute(
            "SELECT COUNT(*) AS count FROM scrape_queue WHERE source = ? AND task = ?",
            (source, task),
        )
        return cursor.fetchone()["count"]

    def clear_stuck_gates(self, source: str, task: str, cutoff: str) -> int:
        """
        Clear the gate of pending tasks that never succeeded and are gated past `cutoff`.

        Returns:
            Number of rows updated
        """
        with self._operation("clear_stuck_gates"):
            cursor = self.conn.execute("""
                UPDATE scrape_queue SET not_before_at = NULL
                WHERE source = ? AND task = ? AND status = ?
                  AND last_success_at IS NULL AND not_before_at > ?
            """, (source, task, STATUS_PENDING, cutoff))
            self._commit()
            return cursor.rowcount

    def get_soonest_gate(self, source: str, task: str) -> Optional[str]:
        """Earliest not_before_at among gated pending tasks."""
        cursor = self.conn.execute("""
            SELECT not_before_at FROM scrape_queue
            WHERE source = ? AND task = ? AND status = ? AND not_before_at IS NOT NULL
            ORDER BY not_before_at ASC LIMIT 1
        """, (source, task, STATUS_PENDING))
        row = cursor.fetchone()
        return row["not_before_at"] if row else None

    def expedite_scrape_tasks(self, source: str, task: str, gated_after: Optional[str] = None) -> int:
        """
        Open the gate of pending tasks (optionally only those gated after an instant).

        Returns:
            Number of rows updated
        """
        sql = """
            UPDATE scrape_queue SET
                not_before_at = NULL, locked_at = NULL, lock_owner = NULL, status = ?
            WHERE source = ? AND task = ? AND status = ?
        """
        params: list = [STATUS_PENDING, source, task, STATUS_PENDING]
        if gated_after:
            sql += " AND not_before_at > ?"
            params.append(gated_after)
        with self._operation("expedite_scrape_tasks"):
            cursor = self.conn.execute(sql, params)
            self._commit()
            return cursor.rowcount

    def release_scrape_task(self, task_id: int):
        """Return a leased task to pending without touching its gate."""
        self.update_scrape_task(task_id, status=STATUS_PENDING, locked_at=None, lock_owner=None)

    def peek_scrape_tasks(self, source: str, task: str, limit: int = 5) -> list[dict]:
        cursor = self.conn.execute("""
            SELECT * FROM scrape_queue
            WHERE source = ? AND task = ?
            ORDER BY priority DESC, created_at ASC, id ASC
            LIMIT ?
        """, (source, task, limit))
        return [dict(row) for row in cursor.fetchall()]

    def get_queue_counts(self, source: str) -> list[dict]:
        """Task counts grouped by kind and status."""
        cursor = self.conn.execute("""
            SELECT task, status, COUNT(*) AS count FROM scrape_queue
            WHERE source = ?
            GROUP BY task, status
            ORDER BY task, status
        """, (source,))
        return [dict(row) for row in cursor.fetchall()]

    # ==========================================
    # Statistics
    # ==========================================

    def get_stats(
        self,
        source: str,
        now_iso: str,
        seen_after: Optional[str] = None,
        league_ids: Optional[list[int]] = None,
    ) -> dict:
        """Get prematch game counts and 1X2 coverage."""
        where = "g.source = ? AND g.live = 0"
        params: list = [source]
        if seen_after:
            where += " AND g.last_seen_at >= ?"
            params.append(seen_after)
        if league_ids is not None:
            if not league_ids:
                league_ids = [-1]
            where += f" AND g.league_id IN ({_placeholders(len(league_ids))})"
            params.extend(league_ids)

        def count(extra: str = "", extra_params: tuple = ()) -> int:
            cursor = self.conn.execute(
                f"SELECT COUNT(*) AS count FROM games g WHERE {where}{extra}",
                (*params, *extra_params),
            )
            return cursor.fetchone()["count"]

        cursor = self.conn.execute(
            "SELECT COUNT(DISTINCT game_id) AS count FROM markets WHERE source = ? AND key = '1x2'",
            (source,),
        )
        with_1x2 = cursor.fetchone()["count"]

        cursor = self.conn.execute(f"""
            SELECT COUNT(*) AS count FROM games g
            WHERE {where} AND EXISTS (
                SELECT 1 FROM markets m
                WHERE m.game_id = g.id AND m.key = '1x2' AND (
                    SELECT COUNT(DISTINCT o.label) FROM outcomes o
                    WHERE o.market_id = m.id AND o.label IN ('1', 'X', '2')
                      AND o.handicap IS NULL AND o.price > 0
                ) = 3
            )
        """, params)
        complete_1x2 = cursor.fetchone()["count"]

        return {
            "games": count(),
            "games_upcoming_strict": count(" AND g.start_time > ?", (now_iso,)),
            "games_started_or_now": count(" AND g.start_time <= ?", (now_iso,)),
            "games_with_1x2_market": with_1x2,
            "games_with_complete_1x2": complete_1x2,
        }
