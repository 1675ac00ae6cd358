"""
Central catalog of event bus topics and expected payload keys.

Design rules:
- Topics are snake.case with domain prefix, e.g. "video.discovered".
- Payloads are plain keyword arguments; keys documented here for traceability.
- No imports from engines - keep this module dependency-free.
"""
from __future__ import annotations

from typing import Any, Optional, TypedDict


# -----------------------
# Topic name constants
# -----------------------
VIDEO_DISCOVERED = "video.discovered"
MATCH_CREATED = "match.created"
SCORE_RESOLVED = "score.resolved"
INGEST_FAILED = "ingest.failed"

ENGINE_ERROR = "engine.error"
EVENT_BUS_ERROR = "event_bus.error"
STORAGE_READY = "storage.ready"
SHUTDOWN_INITIATED = "shutdown.initiated"


# -----------------------
# Payload contracts
# -----------------------
class VideoDiscovered(TypedDict, total=False):
    path: str
    initial_scan: bool


class MatchCreated(TypedDict, total=False):
    match_id: int
    session_id: int
    match_index: int
    video_id: int
    file_path: str


class ScoreResolved(TypedDict, total=False):
    match_id: int
    left_score: Optional[int]
    right_score: Optional[int]
    confidence: str
    file_path: str


class IngestFailed(TypedDict, total=False):
    path: str
    reason: str
    exc: Optional[BaseException]


class EngineError(TypedDict, total=False):
    context: str
    message: str
    severity: str       # error|warning|critical
    category: str       # clustering|storage|ocr|ingest|watcher
    metadata: dict[str, Any]


__all__ = [
    "VIDEO_DISCOVERED",
    "MATCH_CREATED",
    "SCORE_RESOLVED",
    "INGEST_FAILED",
    "ENGINE_ERROR",
    "EVENT_BUS_ERROR",
    "STORAGE_READY",
    "SHUTDOWN_INITIATED",
    "VideoDiscovered",
    "MatchCreated",
    "ScoreResolved",
    "IngestFailed",
    "EngineError",
]
