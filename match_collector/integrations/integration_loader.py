from __future__ import annotations

import asyncio
import signal
from pathlib import Path
from typing import Any, Optional, Set

from match_collector.config import CollectorConfig
from match_collector.core.engines.base.logging_utils import get_logger
from match_collector.core.engines.error_engine import GuardianErrorEngine
from match_collector.core.engines.hud_ocr import (
    ExtractionOptions,
    FrameExtractor,
    ScoreRecognitionEngine,
    TesseractOCRClient,
)
from match_collector.core.engines.ingest_engine import IngestEngine
from match_collector.core.engines.session_engine import SessionClusteringEngine
from match_collector.core.engines.watcher import DirectoryWatcher
from match_collector.core.errors import CollectorError
from match_collector.core.event_bus import EventBus
from match_collector.core.event_topics import SHUTDOWN_INITIATED, STORAGE_READY, VIDEO_DISCOVERED
from match_collector.core.storage import StorageEngine

logger = get_logger("integration_loader")


class Collector:
    """
    Long-running collector: startup backlog, then live watching.

    New videos reported on ``video.discovered`` are ingested as background
    tasks; ``stop()`` (or SIGINT/SIGTERM) stops the watcher and waits for
    in-flight ingestions before returning from ``run()``.
    """

    def __init__(
        self,
        *,
        config: CollectorConfig,
        event_bus: EventBus,
        error_engine: GuardianErrorEngine,
        storage: StorageEngine,
        session_engine: SessionClusteringEngine,
        ingest_engine: IngestEngine,
        watcher: DirectoryWatcher,
        score_engine: Optional[ScoreRecognitionEngine] = None,
    ) -> None:
        self.config = config
        self.event_bus = event_bus
        self.error_engine = error_engine
        self.storage = storage
        self.session_engine = session_engine
        self.ingest_engine = ingest_engine
        self.watcher = watcher
        self.score_engine = score_engine

        self._in_flight: Set[asyncio.Task] = set()
        self._stop_event = asyncio.Event()
        self._shutting_down = False

        self.event_bus.subscribe(VIDEO_DISCOVERED, self._on_video_discovered)

    @property
    def in_flight(self) -> int:
        return len(self._in_flight)

    async def run(self, *, handle_signals: bool = True) -> None:
        if handle_signals:
            self._install_signal_handlers()
        backlog = await self.watcher.initial_scan()
        watcher_task = asyncio.create_task(self.watcher.run(), name="collector-watcher")
        try:
            await self.ingest_engine.process_existing_files(backlog)
            logger.info("collector running, watching %s", self.config.clips_path)
            await self._stop_event.wait()
        finally:
            await self.shutdown(watcher_task)

    def stop(self) -> None:
        if not self._stop_event.is_set():
            logger.info("stop requested")
            self._stop_event.set()

    async def shutdown(self, watcher_task: Optional[asyncio.Task] = None) -> None:
        if self._shutting_down:
            return
        self._shutting_down = True
        logger.info("shutting down collector")
        self.event_bus.unsubscribe(VIDEO_DISCOVERED, self._on_video_discovered)
        await self.event_bus.emit(SHUTDOWN_INITIATED, in_flight=len(self._in_flight))
        self.watcher.stop()
        if watcher_task is not None:
            await asyncio.gather(watcher_task, return_exceptions=True)
        await self.drain()
        self._log_error_summary()

    async def drain(self) -> None:
        """Wait for every in-flight ingestion to finish."""
        while self._in_flight:
            logger.info("waiting for %d in-flight videos", len(self._in_flight))
            await asyncio.gather(*list(self._in_flight), return_exceptions=True)

    async def _on_video_discovered(self, path: str, **_: Any) -> None:
        task = asyncio.create_task(self._ingest(path), name=f"ingest:{Path(path).name}")
        self._in_flight.add(task)
        task.add_done_callback(self._in_flight.discard)

    async def _ingest(self, path: str) -> None:
        try:
            await self.ingest_engine.handle_new_video(path)
        except (CollectorError, OSError) as exc:
            # already reported by the ingest engine; the file is retried on next start
            logger.error("failed to ingest %s: %s", path, exc)

    def _log_error_summary(self) -> None:
        summary = self.error_engine.get_error_summary()
        if not summary["total_errors"]:
            logger.info("collector stopped")
            return
        counts = ", ".join(f"{category}={info['total_count']}" for category, info in summary["by_category"].items())
        logger.warning("collector stopped with %d recorded errors (%s)", summary["total_errors"], counts)

    def _install_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self.stop)
            except (NotImplementedError, RuntimeError):
                logger.debug("signal handler for %s not supported here", sig)


def build_score_engine(config: CollectorConfig) -> ScoreRecognitionEngine:
    return ScoreRecognitionEngine(
        extractor=FrameExtractor(),
        ocr_client=TesseractOCRClient(config=config.tesseract_config),
        default_options=ExtractionOptions(
            seconds_from_end=config.ocr_seconds_from_end,
            fps=config.ocr_fps,
            crop=config.ocr_crop_hud,
        ),
        frame_timeout=config.ocr_frame_timeout,
    )


async def build_collector(config: CollectorConfig) -> Collector:
    """Wire storage, engines and watcher for ``config``; storage is initialised here."""
    event_bus = EventBus()
    error_engine = GuardianErrorEngine(event_bus=event_bus)

    storage = StorageEngine(db_path=config.database_path)
    await storage.initialize()
    league_id = await storage.ensure_league(config.league_name)
    await event_bus.emit(STORAGE_READY, db_path=str(config.database_path), league_id=league_id)

    session_engine = SessionClusteringEngine(
        storage,
        league_id=league_id,
        gap_minutes=config.session_gap_minutes,
        error_engine=error_engine,
    )
    score_engine = build_score_engine(config) if config.ocr_enabled else None
    if score_engine is None:
        logger.info("OCR disabled, matches will be stored without scores")

    ingest_engine = IngestEngine(
        storage=storage,
        session_engine=session_engine,
        score_engine=score_engine,
        event_bus=event_bus,
        error_engine=error_engine,
        video_source=config.video_source,
    )
    watcher = DirectoryWatcher(
        config.clips_path,
        event_bus=event_bus,
        extensions=config.video_extensions,
        poll_interval=config.watch_poll_interval,
        stability_seconds=config.watch_stability_seconds,
        error_engine=error_engine,
    )
    logger.info(
        "collector wired: league=%s (id %s), gap=%s min, db=%s",
        config.league_name,
        league_id,
        config.session_gap_minutes,
        config.database_path,
    )
    return Collector(
        config=config,
        event_bus=event_bus,
        error_engine=error_engine,
        storage=storage,
        session_engine=session_engine,
        ingest_engine=ingest_engine,
        watcher=watcher,
        score_engine=score_engine,
    )
