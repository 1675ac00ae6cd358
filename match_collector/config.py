"""Environment-backed configuration for the collector."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Sequence

from match_collector.core.engines.base.logging_utils import get_logger
from match_collector.core.errors import ConfigError

logger = get_logger("config")

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


def _split_extensions(value: str, *, default: Optional[Sequence[str]] = None) -> List[str]:
    if not value or not value.strip():
        return list(default or [])
    extensions = []
    for chunk in value.replace(";", ",").split(","):
        chunk = chunk.strip().lower()
        if not chunk:
            continue
        extensions.append(chunk if chunk.startswith(".") else f".{chunk}")
    return extensions or list(default or [])


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name, "").strip().lower()
    if not raw:
        return default
    if raw in _TRUE:
        return True
    if raw in _FALSE:
        return False
    logger.warning("Ignoring invalid %s=%r, using %s", name, raw, default)
    return default


def _env_float(name: str, default: Optional[float], *, minimum: float = 0.0) -> Optional[float]:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError:
        logger.warning("Ignoring invalid %s=%r, using %s", name, raw, default)
        return default
    if value < minimum:
        logger.warning("Ignoring out-of-range %s=%r, using %s", name, raw, default)
        return default
    return value


@dataclass(slots=True)
class CollectorConfig:
    clips_path: Path
    database_path: Path = Path("data/collector.db")
    league_name: str = "default"
    session_gap_minutes: float = 30.0
    video_source: str = "medal"
    ocr_enabled: bool = True
    ocr_seconds_from_end: float = 30.0
    ocr_fps: float = 2.0
    ocr_crop_hud: bool = True
    ocr_frame_timeout: Optional[float] = None
    tesseract_config: str = "--psm 6"
    watch_poll_interval: float = 2.0
    watch_stability_seconds: float = 2.0
    video_extensions: List[str] = field(default_factory=lambda: [".mp4"])
    log_level: str = "INFO"
    log_file: Optional[str] = None

    @classmethod
    def from_env(cls) -> "CollectorConfig":
        clips = os.getenv("CLIPS_PATH", "").strip()
        if not clips:
            raise ConfigError("CLIPS_PATH is required to run the collector")

        # positive-only values; zero would disable frame sampling or gap detection
        gap = _env_float("SESSION_GAP_MINUTES", 30.0, minimum=0.001)
        fps = _env_float("OCR_FPS", 2.0, minimum=0.001)
        timeout = _env_float("OCR_FRAME_TIMEOUT", None, minimum=0.001)

        return cls(
            clips_path=Path(clips).expanduser(),
            database_path=Path(os.getenv("DATABASE_PATH", "").strip() or "data/collector.db").expanduser(),
            league_name=os.getenv("LEAGUE_NAME", "").strip() or "default",
            session_gap_minutes=gap,
            video_source=os.getenv("VIDEO_SOURCE", "").strip() or "medal",
            ocr_enabled=_env_bool("OCR_ENABLED", True),
            ocr_seconds_from_end=_env_float("OCR_SECONDS_FROM_END", 30.0),
            ocr_fps=fps,
            ocr_crop_hud=_env_bool("OCR_CROP_HUD", True),
            ocr_frame_timeout=timeout,
            tesseract_config=os.getenv("TESSERACT_CONFIG", "--psm 6").strip() or "--psm 6",
            watch_poll_interval=_env_float("WATCH_POLL_INTERVAL", 2.0, minimum=0.05),
            watch_stability_seconds=_env_float("WATCH_STABILITY_SECONDS", 2.0),
            video_extensions=_split_extensions(os.getenv("VIDEO_EXTENSIONS", ""), default=[".mp4"]),
            log_level=os.getenv("LOG_LEVEL", "INFO").strip().upper() or "INFO",
            log_file=os.getenv("LOG_FILE", "").strip() or None,
        )


__all__ = ["CollectorConfig"]
