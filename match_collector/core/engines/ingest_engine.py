"""
Turns a discovered video file into Video + Match records with a score.

Clustering (with its storage writes) and score recognition run concurrently;
the score is written onto the match once both are done. OCR trouble never
prevents the match from being recorded.
"""
from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable, List, Optional

from match_collector.core.domain.models import Match, ScoreResult, VideoFile
from match_collector.core.engines.base.logging_utils import (
    get_logger,
    log_exception,
    reset_correlation_id,
    set_correlation_id,
    timed,
)
from match_collector.core.errors import CollectorError, FrameExtractionError, StorageError
from match_collector.core.event_topics import INGEST_FAILED, MATCH_CREATED, SCORE_RESOLVED

logger = get_logger("ingest")


def stat_video(file_path: str | Path, *, source: str = "medal") -> VideoFile:
    """Read size and recording time (file mtime) of a video on disk."""
    path = Path(file_path)
    stats = path.stat()
    return VideoFile(
        file_path=str(path),
        file_name=path.name,
        file_size_bytes=stats.st_size,
        recorded_at=datetime.fromtimestamp(stats.st_mtime, tz=timezone.utc),
        source=source,
    )


class IngestEngine:
    def __init__(
        self,
        *,
        storage: Any,
        session_engine: Any,
        score_engine: Optional[Any] = None,
        event_bus: Optional[Any] = None,
        error_engine: Optional[Any] = None,
        video_source: str = "medal",
    ) -> None:
        self.storage = storage
        self.session_engine = session_engine
        self.score_engine = score_engine
        self.event_bus = event_bus
        self.error_engine = error_engine
        self.video_source = video_source

    async def handle_new_video(self, file_path: str | Path) -> Optional[Match]:
        """
        Ingest one video. Returns the stored match (with score applied), or
        None when the path was already recorded.

        Raises StorageError when the Video/Match rows could not be written;
        nothing is left behind in that case, so the next scan retries.
        """
        path = str(file_path)
        token = set_correlation_id(Path(path).name)
        try:
            if await self.storage.video_exists(path):
                logger.info("already processed: %s", path)
                return None

            video = await asyncio.to_thread(stat_video, path, source=self.video_source)
            logger.info("processing: %s (recorded %s)", video.file_name, video.recorded_at.isoformat())

            score_task = asyncio.create_task(self._recognize(path)) if self.score_engine else None
            try:
                match = await self.session_engine.register_video(video)
            except Exception as exc:
                await self._discard(score_task)
                await self._report_failure(path, exc)
                raise

            if match is None:
                await self._discard(score_task)
                return None

            await self._emit(
                MATCH_CREATED,
                match_id=match.id,
                session_id=match.session_id,
                match_index=match.match_index,
                video_id=match.video_id,
                file_path=path,
            )

            if score_task is None:
                return match
            result = await score_task
            return await self._apply_score(match, result, path)
        finally:
            reset_correlation_id(token)

    async def process_existing_files(self, paths: Iterable[str | Path]) -> List[Match]:
        """Ingest a startup backlog in recording order; failures are logged and skipped."""
        pending = []
        for raw in paths:
            path = str(raw)
            if await self.storage.video_exists(path):
                continue
            try:
                pending.append((Path(path).stat().st_mtime, path))
            except OSError as exc:
                logger.warning("skipping unreadable file %s: %s", path, exc)

        if not pending:
            logger.info("all files already processed")
            return []

        logger.info("found %d unprocessed files", len(pending))
        created: List[Match] = []
        for _, path in sorted(pending):
            try:
                match = await self.handle_new_video(path)
            except (CollectorError, OSError) as exc:
                logger.error("failed to process %s: %s", path, exc)
                continue
            if match is not None:
                created.append(match)
        logger.info("processed %d missed files", len(created))
        return created

    async def _recognize(self, path: str) -> ScoreResult:
        try:
            with timed(logger, "score recognition"):
                return await self.score_engine.recognize(path)
        except FrameExtractionError as exc:
            logger.warning("no frames for %s: %s", Path(path).name, exc.reason)
            await self._log_error(exc, context="ingest.recognize", severity="warning", category="ocr", path=path)
            return ScoreResult.failed(error=str(exc))
        except Exception as exc:
            log_exception(logger, exc, context="ingest.recognize", extra={"path": path})
            await self._log_error(exc, context="ingest.recognize", category="ocr", path=path)
            return ScoreResult.failed(error=str(exc))

    async def _apply_score(self, match: Match, result: ScoreResult, path: str) -> Match:
        try:
            await self.storage.update_match_score(match.id, result)
            updated = await self.storage.get_match(match.id)
        except StorageError as exc:
            log_exception(logger, exc, context="ingest.apply_score", extra={"match_id": match.id})
            await self._log_error(exc, context="ingest.apply_score", category="storage", match_id=match.id)
            return match

        await self._emit(
            SCORE_RESOLVED,
            match_id=match.id,
            left_score=result.left_score,
            right_score=result.right_score,
            confidence=result.confidence.value,
            file_path=path,
        )
        return updated or match

    async def _discard(self, task: Optional[asyncio.Task]) -> None:
        if task is None:
            return
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)

    async def _report_failure(self, path: str, exc: Exception) -> None:
        log_exception(logger, exc, context="ingest.register_video", extra={"path": path})
        await self._log_error(exc, context="ingest.register_video", category="storage", path=path)
        await self._emit(INGEST_FAILED, path=path, reason=str(exc), exc=exc)

    async def _log_error(self, exc: BaseException, *, context: str, severity: str = "error", category: str, **metadata: Any) -> None:
        if self.error_engine is None:
            return
        await self.error_engine.log_error(exc, context=context, severity=severity, category=category, **metadata)

    async def _emit(self, event: str, **payload: Any) -> None:
        if self.event_bus is None:
            return
        await self.event_bus.emit(event, **payload)
