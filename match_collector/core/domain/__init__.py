from .models import (
    ConfidenceTier,
    Match,
    OCRCandidate,
    ParsedScore,
    ScoreResult,
    Session,
    SessionSource,
    SessionStatus,
    Video,
    VideoFile,
    parse_db_timestamp,
    to_db_timestamp,
)

__all__ = [
    "ConfidenceTier",
    "Match",
    "OCRCandidate",
    "ParsedScore",
    "ScoreResult",
    "Session",
    "SessionSource",
    "SessionStatus",
    "Video",
    "VideoFile",
    "parse_db_timestamp",
    "to_db_timestamp",
]
