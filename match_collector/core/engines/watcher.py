"""
Polling watcher for the clips directory.

Existing files are reported once by ``initial_scan()``; afterwards ``run()``
publishes ``video.discovered`` for every new file whose size has stopped
changing for ``stability_seconds`` (the recorder is done writing it).
"""
from __future__ import annotations

import asyncio
import os
import time
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

from match_collector.core.engines.base.logging_utils import get_logger
from match_collector.core.event_topics import VIDEO_DISCOVERED

logger = get_logger("watcher")


class DirectoryWatcher:
    def __init__(
        self,
        root: str | Path,
        *,
        event_bus: Any,
        extensions: Iterable[str] = (".mp4",),
        poll_interval: float = 2.0,
        stability_seconds: float = 2.0,
        max_depth: int = 5,
        error_engine: Optional[Any] = None,
    ) -> None:
        self.root = Path(root)
        self.event_bus = event_bus
        self.extensions = {ext.lower() if ext.startswith(".") else f".{ext.lower()}" for ext in extensions}
        self.poll_interval = poll_interval
        self.stability_seconds = stability_seconds
        self.max_depth = max_depth
        self.error_engine = error_engine

        self._known: Set[str] = set()
        # path -> (last seen size, monotonic time the size was first seen)
        self._pending: Dict[str, Tuple[int, float]] = {}
        self._stopping = asyncio.Event()

    def scan(self) -> Dict[str, Tuple[int, float]]:
        """Return {path: (size, mtime)} for every matching file under root."""
        found: Dict[str, Tuple[int, float]] = {}
        if not self.root.is_dir():
            return found
        base_depth = len(self.root.parts)
        for dirpath, dirnames, filenames in os.walk(self.root):
            if len(Path(dirpath).parts) - base_depth >= self.max_depth:
                dirnames[:] = []
            for name in filenames:
                if Path(name).suffix.lower() not in self.extensions:
                    continue
                full = os.path.join(dirpath, name)
                try:
                    stats = os.stat(full)
                except OSError:
                    continue
                found[full] = (stats.st_size, stats.st_mtime)
        return found

    async def initial_scan(self) -> List[str]:
        """List files already present, oldest recording first, and mark them seen."""
        found = await asyncio.to_thread(self.scan)
        self._known.update(found)
        ordered = sorted(found, key=lambda p: (found[p][1], p))
        logger.info("initial scan found %d files in %s", len(ordered), self.root)
        return ordered

    async def run(self) -> None:
        logger.info("watching %s for new %s files", self.root, ", ".join(sorted(self.extensions)))
        while not self._stopping.is_set():
            try:
                await self.poll_once()
            except OSError as exc:
                logger.error("poll of %s failed: %s", self.root, exc)
                if self.error_engine is not None:
                    await self.error_engine.log_error(exc, context="watcher.poll", category="watcher")
            try:
                await asyncio.wait_for(self._stopping.wait(), timeout=self.poll_interval)
            except asyncio.TimeoutError:
                pass
        logger.info("watcher stopped")

    async def poll_once(self) -> List[str]:
        """Check the directory once; returns the paths published this round."""
        found = await asyncio.to_thread(self.scan)
        now = time.monotonic()
        ready: List[str] = []

        for path in list(self._pending):
            if path not in found:
                del self._pending[path]

        for path, (size, _mtime) in found.items():
            if path in self._known:
                continue
            previous = self._pending.get(path)
            if previous is None or previous[0] != size:
                self._pending[path] = (size, now)
                if self.stability_seconds > 0:
                    continue
            elif now - previous[1] < self.stability_seconds:
                continue
            del self._pending[path]
            self._known.add(path)
            ready.append(path)

        for path in sorted(ready, key=lambda p: (found[p][1], p)):
            logger.info("new video: %s", path)
            await self.event_bus.emit(VIDEO_DISCOVERED, path=path, initial_scan=False)
        return ready

    def stop(self) -> None:
        self._stopping.set()
