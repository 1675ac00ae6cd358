from __future__ import annotations

import asyncio
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Tuple

import pytesseract
from PIL import Image

from match_collector.core.errors import OCRError


@dataclass(frozen=True)
class OCRReading:
    text: str
    confidence: float  # 0-100, mean over recognized words


class TesseractOCRClient:
    """Run Tesseract on a frame and report text plus a 0-100 confidence."""

    def __init__(self, *, config: str = "--psm 6", lang: str = "eng") -> None:
        self.config = config
        self.lang = lang

    async def read(self, image_path: Path) -> OCRReading:
        try:
            return await asyncio.to_thread(self._read_sync, Path(image_path))
        except (pytesseract.TesseractError, pytesseract.TesseractNotFoundError, OSError) as exc:
            raise OCRError(f"tesseract failed on {image_path}: {exc}") from exc

    def _read_sync(self, image_path: Path) -> OCRReading:
        with Image.open(image_path) as image:
            data = pytesseract.image_to_data(
                image,
                lang=self.lang,
                config=self.config,
                output_type=pytesseract.Output.DICT,
            )
        return self._collect(data)

    def _collect(self, data: Dict[str, List]) -> OCRReading:
        """Rebuild line text from word boxes and average the word confidences."""
        lines: Dict[Tuple[int, int, int], List[str]] = {}
        confidences: List[float] = []
        for i, word in enumerate(data.get("text", [])):
            word = (word or "").strip()
            if not word:
                continue
            try:
                conf = float(data["conf"][i])
            except (KeyError, IndexError, TypeError, ValueError):
                conf = -1.0
            if conf >= 0:
                confidences.append(conf)
            key = (data["block_num"][i], data["par_num"][i], data["line_num"][i])
            lines.setdefault(key, []).append(word)
        text = "\n".join(" ".join(words) for words in lines.values())
        confidence = sum(confidences) / len(confidences) if confidences else 0.0
        return OCRReading(text=text, confidence=confidence)
