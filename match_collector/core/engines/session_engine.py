"""
Session clustering for incoming videos.

Videos recorded within ``gap_minutes`` of each other belong to the same
session; each gets the next 1-based match index inside it. Storage is the
source of truth. The active-session reference and the per-session index
counters are only a cache and may be dropped at any time (see
``reset_cache``).

All state changes happen under one ``asyncio.Lock``. The lock is FIFO, so
concurrent arrivals are assigned in the order they asked for it.
"""
from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from match_collector.core.domain.models import Match, Session, SessionSource, VideoFile
from match_collector.core.engines.base.logging_utils import get_logger
from match_collector.core.errors import DuplicateVideoError, MatchIndexConflict, RecordValidationError, StorageError

logger = get_logger("session_engine")


def _as_utc(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


class SessionClusteringEngine:
    """Assigns videos to sessions and match indices for one league."""

    def __init__(
        self,
        storage: Any,
        *,
        league_id: int,
        gap_minutes: float = 30,
        max_index_retries: int = 3,
        error_engine: Optional[Any] = None,
    ) -> None:
        if gap_minutes <= 0:
            raise ValueError("gap_minutes must be positive")
        self.storage = storage
        self.league_id = league_id
        self.gap = timedelta(minutes=gap_minutes)
        self.max_index_retries = max(1, int(max_index_retries))
        self.error_engine = error_engine

        self._lock = asyncio.Lock()
        self._active_session: Optional[Session] = None
        self._next_index: Dict[int, int] = {}

    @property
    def active_session(self) -> Optional[Session]:
        return self._active_session

    # ------------------------------------------------------------------
    # Public, serialized operations
    # ------------------------------------------------------------------
    async def assign_session(self, video_timestamp: datetime) -> Session:
        """Return the session a video recorded at ``video_timestamp`` belongs to."""
        async with self._lock:
            return await self._assign_session(_as_utc(video_timestamp))

    async def next_match_index(self, session_id: int) -> int:
        """Reserve the next match index of ``session_id``."""
        async with self._lock:
            return await self._reserve_index(session_id)

    async def register_video(self, video: VideoFile) -> Optional[Match]:
        """
        Record ``video`` and its match as one atomic step.

        Returns None when the path is already recorded. Raises StorageError
        (SessionCreationError included) when nothing could be written; in that
        case no Video or Match row exists and the file can be retried.
        """
        recorded_at = _as_utc(video.recorded_at)
        async with self._lock:
            if await self.storage.video_exists(video.file_path):
                logger.info("already processed: %s", video.file_path)
                return None

            session = await self._assign_session(recorded_at)
            for attempt in range(1, self.max_index_retries + 1):
                match_index = await self._reserve_index(session.id)
                try:
                    _, match = await self.storage.insert_video_and_match(
                        self.league_id,
                        video,
                        session_id=session.id,
                        match_index=match_index,
                    )
                except DuplicateVideoError:
                    self._next_index.pop(session.id, None)
                    logger.info("already processed (concurrent writer): %s", video.file_path)
                    return None
                except MatchIndexConflict:
                    # another process wrote this index; reseed from storage
                    self._next_index.pop(session.id, None)
                    logger.warning(
                        "match index %d taken in session %d (attempt %d/%d)",
                        match_index,
                        session.id,
                        attempt,
                        self.max_index_retries,
                    )
                    continue
                except StorageError:
                    self._next_index.pop(session.id, None)
                    raise
                logger.info("created match %d in session %d for %s", match.match_index, session.id, video.file_name)
                return match

        raise MatchIndexConflict(session.id, match_index)

    def clear_match_index_cache(self, session_id: Optional[int] = None) -> None:
        """Drop cached counters so the next reservation reseeds from storage."""
        if session_id is None:
            self._next_index.clear()
        else:
            self._next_index.pop(session_id, None)

    def reset_cache(self) -> None:
        """Forget all in-memory state, as after a process restart."""
        self._active_session = None
        self._next_index.clear()

    # ------------------------------------------------------------------
    # Internals; caller holds self._lock
    # ------------------------------------------------------------------
    async def _assign_session(self, video_timestamp: datetime) -> Session:
        session = await self._reuse_active_session(video_timestamp)
        if session is not None:
            return session

        session = await self._find_recent_session(video_timestamp)
        if session is not None:
            logger.info("resumed session %d started %s", session.id, session.started_at.isoformat())
            self._active_session = session
            return session

        session = await self.storage.insert_session(self.league_id, video_timestamp, source=SessionSource.COLLECTOR)
        logger.info("created new session %d at %s", session.id, video_timestamp.isoformat())
        self._active_session = session
        return session

    async def _reuse_active_session(self, video_timestamp: datetime) -> Optional[Session]:
        session = self._active_session
        if session is None:
            return None
        try:
            last_match = await self.storage.last_match_time(session.id)
        except (StorageError, RecordValidationError) as exc:
            logger.warning("last match lookup failed for session %d, treating as cache miss: %s", session.id, exc)
            await self._report(exc, context="session_engine.fast_path", session_id=session.id)
            return None
        if last_match is None:
            return None
        # either side of the last match
        delta = abs(video_timestamp - last_match)
        if delta < self.gap:
            logger.debug("reusing active session %d (%s from its last match)", session.id, delta)
            return session
        return None

    async def _find_recent_session(self, video_timestamp: datetime) -> Optional[Session]:
        return await self.storage.find_recent_session(
            self.league_id,
            earliest=video_timestamp - self.gap,
            source=SessionSource.COLLECTOR,
        )

    async def _reserve_index(self, session_id: int) -> int:
        cached = self._next_index.get(session_id)
        if cached is None:
            cached = await self.storage.count_matches(session_id) + 1
        self._next_index[session_id] = cached + 1
        return cached

    async def _report(self, exc: BaseException, *, context: str, **metadata: Any) -> None:
        if self.error_engine is None:
            return
        await self.error_engine.log_error(exc, context=context, severity="warning", category="clustering", **metadata)
