"""
Exception hierarchy shared by the collector engines.

Transient read failures are handled inside the engines; everything raised from
here is meant to reach the caller of the failing operation.
"""
from __future__ import annotations

from typing import Optional


class CollectorError(Exception):
    """Base class for all collector failures."""


class ConfigError(CollectorError):
    """Configuration is missing or unusable."""


class StorageError(CollectorError):
    """A durable storage read or write failed."""

    def __init__(self, message: str, *, operation: Optional[str] = None) -> None:
        super().__init__(message)
        self.operation = operation


class SessionCreationError(StorageError):
    """A new session could not be written; no match can be created."""


class MatchIndexConflict(StorageError):
    """Another writer already holds the match index for this session."""

    def __init__(self, session_id: int, match_index: int) -> None:
        super().__init__(
            f"match index {match_index} already taken in session {session_id}",
            operation="insert_video_and_match",
        )
        self.session_id = session_id
        self.match_index = match_index


class DuplicateVideoError(StorageError):
    """A video with this file path is already recorded."""

    def __init__(self, file_path: str) -> None:
        super().__init__(f"video already recorded: {file_path}", operation="insert_video_and_match")
        self.file_path = file_path


class RecordValidationError(CollectorError):
    """A row read from storage does not have the expected shape."""


class FrameExtractionError(CollectorError):
    """No frames could be produced for a video."""

    def __init__(self, video_path: str, reason: str) -> None:
        super().__init__(f"frame extraction failed for {video_path}: {reason}")
        self.video_path = video_path
        self.reason = reason


class OCRError(CollectorError):
    """The OCR backend could not read a frame."""
