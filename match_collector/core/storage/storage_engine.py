"""
Asynchronous SQLite storage for leagues, videos, sessions and matches.

Key features:
 - Async API using `aiosqlite`, one short-lived connection per operation
 - Schema bootstrapped on `initialize()` (WAL journal, foreign keys on)
 - Exactly the query shapes the clustering engine needs: last match time in a
   session, most recent collector session in a window, match count
 - Video + Match written in a single transaction so a failed write leaves
   nothing behind and the file is retried on the next scan
 - Failures are raised as `StorageError` subclasses, never swallowed
"""

from __future__ import annotations

import asyncio
import json
import sqlite3
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, AsyncIterator, List, Optional, Sequence, Tuple

import aiosqlite

from match_collector.core.domain.models import (
    ConfidenceTier,
    Match,
    ScoreResult,
    Session,
    SessionSource,
    SessionStatus,
    Video,
    VideoFile,
    parse_db_timestamp,
    to_db_timestamp,
)
from match_collector.core.engines.base.logging_utils import get_logger
from match_collector.core.errors import (
    DuplicateVideoError,
    MatchIndexConflict,
    SessionCreationError,
    StorageError,
)

logger = get_logger("storage")

SCHEMA = """
CREATE TABLE IF NOT EXISTS leagues (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL UNIQUE,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS videos (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    league_id INTEGER NOT NULL REFERENCES leagues(id),
    file_path TEXT NOT NULL UNIQUE,
    file_name TEXT NOT NULL,
    file_size_bytes INTEGER NOT NULL,
    recorded_at TEXT NOT NULL,
    source TEXT NOT NULL DEFAULT 'medal',
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS sessions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    league_id INTEGER NOT NULL REFERENCES leagues(id),
    started_at TEXT NOT NULL,
    source TEXT NOT NULL DEFAULT 'collector',
    status TEXT NOT NULL DEFAULT 'new',
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS matches (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    league_id INTEGER NOT NULL REFERENCES leagues(id),
    session_id INTEGER NOT NULL REFERENCES sessions(id),
    video_id INTEGER NOT NULL UNIQUE REFERENCES videos(id),
    match_index INTEGER NOT NULL CHECK (match_index >= 1),
    recorded_at TEXT NOT NULL,
    left_score INTEGER,
    right_score INTEGER,
    score_confidence TEXT NOT NULL DEFAULT 'pending',
    raw_text TEXT,
    frame_used TEXT,
    evidence_json TEXT,
    created_at TEXT NOT NULL,
    UNIQUE(session_id, match_index)
);

CREATE INDEX IF NOT EXISTS idx_sessions_league_started ON sessions(league_id, source, started_at);
CREATE INDEX IF NOT EXISTS idx_matches_session_recorded ON matches(session_id, recorded_at);
"""


def _now() -> str:
    return to_db_timestamp(datetime.now(timezone.utc))


class StorageEngine:
    """
    Durable store of record for the collector.

    Parameters:
        db_path: path to SQLite database file (``:memory:`` is not supported
            because every operation opens its own connection).
    """

    def __init__(self, *, db_path: str | Path = "data/collector.db") -> None:
        self.db_path = str(db_path)
        self._lock = asyncio.Lock()
        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

    # ------------------------------------------------------------------
    # Initialisation
    # ------------------------------------------------------------------
    async def initialize(self) -> None:
        """Ensure database exists and schema is present."""
        try:
            async with aiosqlite.connect(self.db_path) as db:
                await db.execute("PRAGMA journal_mode=WAL;")
                await db.execute("PRAGMA synchronous=NORMAL;")
                await db.executescript(SCHEMA)
                await db.commit()
        except aiosqlite.Error as exc:
            raise StorageError(f"failed to initialise {self.db_path}: {exc}", operation="initialize") from exc
        logger.info("storage ready at %s", self.db_path)

    @asynccontextmanager
    async def _connect(self) -> AsyncIterator[aiosqlite.Connection]:
        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            await db.execute("PRAGMA foreign_keys=ON;")
            yield db

    # ------------------------------------------------------------------
    # Core query helpers
    # ------------------------------------------------------------------
    async def execute(self, query: str, params: Sequence[Any] = (), *, operation: str = "execute") -> int:
        """Execute a write query and return the last inserted row id."""
        async with self._lock:
            try:
                async with self._connect() as db:
                    cursor = await db.execute(query, tuple(params))
                    await db.commit()
                    return cursor.lastrowid or 0
            except aiosqlite.Error as exc:
                raise StorageError(f"{operation} failed: {exc}", operation=operation) from exc

    async def fetch(self, query: str, params: Sequence[Any] = (), *, operation: str = "fetch") -> List[aiosqlite.Row]:
        """Execute a read query and return all rows."""
        async with self._lock:
            try:
                async with self._connect() as db:
                    cursor = await db.execute(query, tuple(params))
                    rows = await cursor.fetchall()
                    await cursor.close()
                    return list(rows)
            except aiosqlite.Error as exc:
                raise StorageError(f"{operation} failed: {exc}", operation=operation) from exc

    async def fetch_one(self, query: str, params: Sequence[Any] = (), *, operation: str = "fetch_one") -> Optional[aiosqlite.Row]:
        rows = await self.fetch(query, params, operation=operation)
        return rows[0] if rows else None

    # ------------------------------------------------------------------
    # Leagues
    # ------------------------------------------------------------------
    async def ensure_league(self, name: str) -> int:
        """Return the id of the league called ``name``, creating it on first use."""
        row = await self.fetch_one("SELECT id FROM leagues WHERE name = ?", (name,), operation="ensure_league")
        if row is not None:
            return int(row["id"])
        await self.execute(
            "INSERT OR IGNORE INTO leagues (name, created_at) VALUES (?, ?)",
            (name, _now()),
            operation="ensure_league",
        )
        row = await self.fetch_one("SELECT id FROM leagues WHERE name = ?", (name,), operation="ensure_league")
        if row is None:
            raise StorageError(f"league {name!r} missing after insert", operation="ensure_league")
        return int(row["id"])

    # ------------------------------------------------------------------
    # Videos
    # ------------------------------------------------------------------
    async def get_video_by_path(self, file_path: str) -> Optional[Video]:
        row = await self.fetch_one("SELECT * FROM videos WHERE file_path = ?", (file_path,), operation="get_video_by_path")
        return Video.from_row(row) if row is not None else None

    async def video_exists(self, file_path: str) -> bool:
        row = await self.fetch_one("SELECT 1 FROM videos WHERE file_path = ?", (file_path,), operation="video_exists")
        return row is not None

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------
    async def get_session(self, session_id: int) -> Optional[Session]:
        row = await self.fetch_one("SELECT * FROM sessions WHERE id = ?", (session_id,), operation="get_session")
        return Session.from_row(row) if row is not None else None

    async def find_recent_session(
        self,
        league_id: int,
        *,
        earliest: datetime,
        latest: Optional[datetime] = None,
        source: SessionSource = SessionSource.COLLECTOR,
    ) -> Optional[Session]:
        """Most recently started ``source`` session with ``started_at >= earliest`` (and ``<= latest`` when given)."""
        query = "SELECT * FROM sessions WHERE league_id = ? AND source = ? AND started_at >= ?"
        params: List[Any] = [league_id, source.value, to_db_timestamp(earliest)]
        if latest is not None:
            query += " AND started_at <= ?"
            params.append(to_db_timestamp(latest))
        query += " ORDER BY started_at DESC, id DESC LIMIT 1"
        row = await self.fetch_one(query, params, operation="find_recent_session")
        return Session.from_row(row) if row is not None else None

    async def insert_session(
        self,
        league_id: int,
        started_at: datetime,
        *,
        source: SessionSource = SessionSource.COLLECTOR,
        status: SessionStatus = SessionStatus.NEW,
    ) -> Session:
        try:
            session_id = await self.execute(
                "INSERT INTO sessions (league_id, started_at, source, status, created_at) VALUES (?, ?, ?, ?, ?)",
                (league_id, to_db_timestamp(started_at), source.value, status.value, _now()),
                operation="insert_session",
            )
            session = await self.get_session(session_id)
        except StorageError as exc:
            raise SessionCreationError(f"failed to create session: {exc}", operation="insert_session") from exc
        if session is None:
            raise SessionCreationError("session row missing after insert", operation="insert_session")
        return session

    # ------------------------------------------------------------------
    # Matches
    # ------------------------------------------------------------------
    async def last_match_time(self, session_id: int) -> Optional[datetime]:
        """Recording time of the most recent match in ``session_id``."""
        row = await self.fetch_one(
            "SELECT MAX(recorded_at) AS last_recorded FROM matches WHERE session_id = ?",
            (session_id,),
            operation="last_match_time",
        )
        if row is None or row["last_recorded"] is None:
            return None
        return parse_db_timestamp(row["last_recorded"])

    async def count_matches(self, session_id: int) -> int:
        row = await self.fetch_one(
            "SELECT COUNT(*) AS total FROM matches WHERE session_id = ?",
            (session_id,),
            operation="count_matches",
        )
        return int(row["total"]) if row is not None else 0

    async def get_match(self, match_id: int) -> Optional[Match]:
        row = await self.fetch_one("SELECT * FROM matches WHERE id = ?", (match_id,), operation="get_match")
        return Match.from_row(row) if row is not None else None

    async def list_matches(self, session_id: int) -> List[Match]:
        rows = await self.fetch(
            "SELECT * FROM matches WHERE session_id = ? ORDER BY match_index ASC",
            (session_id,),
            operation="list_matches",
        )
        return [Match.from_row(row) for row in rows]

    async def insert_video_and_match(
        self,
        league_id: int,
        video: VideoFile,
        *,
        session_id: int,
        match_index: int,
    ) -> Tuple[Video, Match]:
        """Write a Video and its pending Match atomically."""
        now = _now()
        async with self._lock:
            try:
                async with self._connect() as db:
                    cursor = await db.execute(
                        """
                        INSERT INTO videos (league_id, file_path, file_name, file_size_bytes, recorded_at, source, created_at)
                        VALUES (?, ?, ?, ?, ?, ?, ?)
                        """,
                        (
                            league_id,
                            video.file_path,
                            video.file_name,
                            video.file_size_bytes,
                            to_db_timestamp(video.recorded_at),
                            video.source,
                            now,
                        ),
                    )
                    video_id = cursor.lastrowid
                    cursor = await db.execute(
                        """
                        INSERT INTO matches (league_id, session_id, video_id, match_index, recorded_at, score_confidence, created_at)
                        VALUES (?, ?, ?, ?, ?, ?, ?)
                        """,
                        (
                            league_id,
                            session_id,
                            video_id,
                            match_index,
                            to_db_timestamp(video.recorded_at),
                            ConfidenceTier.PENDING.value,
                            now,
                        ),
                    )
                    match_id = cursor.lastrowid
                    await db.commit()

                    video_row = await (await db.execute("SELECT * FROM videos WHERE id = ?", (video_id,))).fetchone()
                    match_row = await (await db.execute("SELECT * FROM matches WHERE id = ?", (match_id,))).fetchone()
            except sqlite3.IntegrityError as exc:
                message = str(exc)
                if "videos.file_path" in message:
                    raise DuplicateVideoError(video.file_path) from exc
                if "matches.session_id" in message:
                    raise MatchIndexConflict(session_id, match_index) from exc
                raise StorageError(f"insert_video_and_match failed: {exc}", operation="insert_video_and_match") from exc
            except aiosqlite.Error as exc:
                raise StorageError(f"insert_video_and_match failed: {exc}", operation="insert_video_and_match") from exc

        if video_row is None or match_row is None:
            raise StorageError("rows missing after insert", operation="insert_video_and_match")
        return Video.from_row(video_row), Match.from_row(match_row)

    async def update_match_score(self, match_id: int, result: ScoreResult) -> None:
        await self.execute(
            """
            UPDATE matches
            SET left_score = ?, right_score = ?, score_confidence = ?, raw_text = ?, frame_used = ?, evidence_json = ?
            WHERE id = ?
            """,
            (
                result.left_score,
                result.right_score,
                result.confidence.value,
                result.raw_text,
                result.frame_used,
                json.dumps(result.evidence_payload(), ensure_ascii=False),
                match_id,
            ),
            operation="update_match_score",
        )
