"""
Typed records for videos, sessions, matches and score results.

Rows coming back from storage are validated here (``from_row``) instead of
being passed around as loose tuples or dicts.
"""
from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple

from match_collector.core.errors import RecordValidationError

# Fixed-width UTC format so timestamps sort and compare as text in SQL.
DB_TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"


class SessionSource(Enum):
    COLLECTOR = "collector"  # created by the clustering engine
    MANUAL = "manual"


class SessionStatus(Enum):
    NEW = "new"
    ACTIVE = "active"
    CLOSED = "closed"


class ConfidenceTier(Enum):
    """Coarse trust bucket for a recognized score.

    PENDING only appears on match rows whose recognition has not finished.
    """

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    FAILED = "failed"
    PENDING = "pending"


def to_db_timestamp(value: datetime) -> str:
    """Serialize a datetime as fixed-width UTC text. Naive values are taken as UTC."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime(DB_TIMESTAMP_FORMAT)


def parse_db_timestamp(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if not isinstance(value, str) or not value:
        raise RecordValidationError(f"expected timestamp text, got {value!r}")
    try:
        return datetime.strptime(value, DB_TIMESTAMP_FORMAT).replace(tzinfo=timezone.utc)
    except ValueError:
        pass
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError as exc:
        raise RecordValidationError(f"unparseable timestamp {value!r}") from exc
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def _require(row: Mapping[str, Any], key: str, kind: type, record: str) -> Any:
    try:
        value = row[key]
    except (KeyError, IndexError) as exc:
        raise RecordValidationError(f"{record} row is missing column {key!r}") from exc
    if value is None or not isinstance(value, kind) or isinstance(value, bool):
        raise RecordValidationError(f"{record}.{key} must be {kind.__name__}, got {value!r}")
    return value


def _optional_int(row: Mapping[str, Any], key: str, record: str) -> Optional[int]:
    value = row[key]
    if value is None:
        return None
    if not isinstance(value, int) or isinstance(value, bool):
        raise RecordValidationError(f"{record}.{key} must be int or NULL, got {value!r}")
    return value


def _enum(enum_type: type[Enum], value: Any, record: str, key: str) -> Any:
    try:
        return enum_type(value)
    except ValueError as exc:
        raise RecordValidationError(f"{record}.{key} has unknown value {value!r}") from exc


@dataclass(frozen=True)
class Video:
    id: int
    league_id: int
    file_path: str
    file_name: str
    file_size_bytes: int
    recorded_at: datetime
    source: str = "medal"

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Video":
        return cls(
            id=_require(row, "id", int, "video"),
            league_id=_require(row, "league_id", int, "video"),
            file_path=_require(row, "file_path", str, "video"),
            file_name=_require(row, "file_name", str, "video"),
            file_size_bytes=_require(row, "file_size_bytes", int, "video"),
            recorded_at=parse_db_timestamp(row["recorded_at"]),
            source=row["source"] or "medal",
        )


@dataclass(frozen=True)
class Session:
    id: int
    league_id: int
    started_at: datetime
    source: SessionSource = SessionSource.COLLECTOR
    status: SessionStatus = SessionStatus.NEW

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Session":
        return cls(
            id=_require(row, "id", int, "session"),
            league_id=_require(row, "league_id", int, "session"),
            started_at=parse_db_timestamp(row["started_at"]),
            source=_enum(SessionSource, row["source"], "session", "source"),
            status=_enum(SessionStatus, row["status"], "session", "status"),
        )


@dataclass(frozen=True)
class Match:
    id: int
    league_id: int
    session_id: int
    video_id: int
    match_index: int
    recorded_at: datetime
    left_score: Optional[int] = None
    right_score: Optional[int] = None
    score_confidence: ConfidenceTier = ConfidenceTier.PENDING
    evidence: Tuple[Dict[str, Any], ...] = ()

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Match":
        match_index = _require(row, "match_index", int, "match")
        if match_index < 1:
            raise RecordValidationError(f"match.match_index must be >= 1, got {match_index}")
        raw_evidence = row["evidence_json"]
        try:
            evidence = tuple(json.loads(raw_evidence)) if raw_evidence else ()
        except (TypeError, ValueError) as exc:
            raise RecordValidationError("match.evidence_json is not valid JSON") from exc
        return cls(
            id=_require(row, "id", int, "match"),
            league_id=_require(row, "league_id", int, "match"),
            session_id=_require(row, "session_id", int, "match"),
            video_id=_require(row, "video_id", int, "match"),
            match_index=match_index,
            recorded_at=parse_db_timestamp(row["recorded_at"]),
            left_score=_optional_int(row, "left_score", "match"),
            right_score=_optional_int(row, "right_score", "match"),
            score_confidence=_enum(ConfidenceTier, row["score_confidence"], "match", "score_confidence"),
            evidence=evidence,
        )

    @property
    def has_score(self) -> bool:
        return self.left_score is not None and self.right_score is not None


@dataclass(frozen=True)
class ParsedScore:
    """A (left, right) reading pulled out of one frame's OCR text."""

    left: int
    right: int
    has_timer_anchor: bool
    raw: str = ""
    rule: str = ""

    @property
    def pair(self) -> Tuple[int, int]:
        return (self.left, self.right)


@dataclass(frozen=True)
class OCRCandidate:
    """What one frame contributed: raw text, engine confidence and a parsed score."""

    frame: str
    text: str
    confidence: float
    score: Optional[ParsedScore] = None
    error: Optional[str] = None

    def to_evidence(self) -> Dict[str, Any]:
        return {
            "frame": self.frame,
            "text": self.text[:200],
            "confidence": round(self.confidence, 2),
            "score_match": self.score.raw if self.score else None,
            "has_timer": self.score.has_timer_anchor if self.score else False,
            "error": self.error,
        }


@dataclass(frozen=True)
class ScoreResult:
    left_score: Optional[int]
    right_score: Optional[int]
    confidence: ConfidenceTier
    raw_text: str = ""
    frame_used: str = ""
    evidence: Tuple[OCRCandidate, ...] = ()
    error: Optional[str] = None

    @classmethod
    def failed(cls, evidence: Tuple[OCRCandidate, ...] = (), *, error: Optional[str] = None) -> "ScoreResult":
        first = evidence[0] if evidence else None
        return cls(
            left_score=None,
            right_score=None,
            confidence=ConfidenceTier.FAILED,
            raw_text=first.text if first else "",
            frame_used=first.frame if first else "",
            evidence=evidence,
            error=error,
        )

    @property
    def is_resolved(self) -> bool:
        return self.confidence is not ConfidenceTier.FAILED

    def evidence_payload(self) -> List[Dict[str, Any]]:
        return [candidate.to_evidence() for candidate in self.evidence]


@dataclass
class VideoFile:
    """Metadata of a file on disk, before it has a database id."""

    file_path: str
    file_name: str
    file_size_bytes: int
    recorded_at: datetime
    source: str = "medal"
    extra: Dict[str, Any] = field(default_factory=dict)
