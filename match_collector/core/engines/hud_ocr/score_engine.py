"""
Score recognition: frames -> OCR -> parse -> consensus.

A frame that cannot be read contributes an empty candidate. Only a failure to
produce any frames at all (``FrameExtractionError``) escapes ``recognize``.
"""
from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any, List, Optional

from match_collector.core.domain.models import OCRCandidate, ScoreResult
from match_collector.core.engines.base.logging_utils import get_logger
from match_collector.core.errors import OCRError

from .consensus import ConsensusResolver
from .frame_extractor import ExtractionOptions, Frame, FrameExtractor
from .ocr_client import TesseractOCRClient
from .score_parser import ScoreParser

logger = get_logger("score_engine")


class ScoreRecognitionEngine:
    def __init__(
        self,
        *,
        extractor: Optional[FrameExtractor] = None,
        ocr_client: Optional[Any] = None,
        parser: Optional[ScoreParser] = None,
        resolver: Optional[ConsensusResolver] = None,
        default_options: Optional[ExtractionOptions] = None,
        frame_timeout: Optional[float] = None,
    ) -> None:
        self.extractor = extractor or FrameExtractor()
        self.ocr_client = ocr_client or TesseractOCRClient()
        self.parser = parser or ScoreParser()
        self.resolver = resolver or ConsensusResolver()
        self.default_options = default_options or ExtractionOptions()
        self.frame_timeout = frame_timeout

    async def recognize(self, video_path: str, options: Optional[ExtractionOptions] = None) -> ScoreResult:
        options = options or self.default_options
        candidates: List[OCRCandidate] = []
        async with self.extractor.extract(video_path, options) as frames:
            logger.debug("reading %d frames from %s", len(frames), Path(video_path).name)
            async for frame in frames:
                candidates.append(await self._read_frame(frame))

        evidence = tuple(candidates)
        winner = self.resolver.resolve(candidates)
        if winner is None or winner.best is None:
            logger.info("no score pattern found in %d frames of %s", len(candidates), Path(video_path).name)
            return ScoreResult.failed(evidence)

        logger.info(
            "found score %d-%d (confidence %.1f%%, votes %d/%d, timer=%s)",
            winner.left,
            winner.right,
            winner.peak_confidence,
            winner.count,
            sum(1 for c in candidates if c.score is not None),
            winner.has_timer_anchor,
        )
        return ScoreResult(
            left_score=winner.left,
            right_score=winner.right,
            confidence=winner.tier,
            raw_text=winner.best.text,
            frame_used=winner.best.frame,
            evidence=evidence,
        )

    async def _read_frame(self, frame: Frame) -> OCRCandidate:
        name = frame.path.name
        if frame.error is not None:
            return OCRCandidate(frame=name, text="", confidence=0.0, error=frame.error)
        try:
            if self.frame_timeout:
                reading = await asyncio.wait_for(self.ocr_client.read(frame.path), timeout=self.frame_timeout)
            else:
                reading = await self.ocr_client.read(frame.path)
        except (OCRError, asyncio.TimeoutError) as exc:
            logger.debug("frame %s unreadable: %s", name, exc)
            return OCRCandidate(frame=name, text="", confidence=0.0, error=str(exc) or type(exc).__name__)

        score = self.parser.parse(reading.text)
        logger.debug("frame %s conf=%.1f text=%r score=%s", name, reading.confidence, reading.text[:80], score)
        return OCRCandidate(frame=name, text=reading.text.strip(), confidence=reading.confidence, score=score)
