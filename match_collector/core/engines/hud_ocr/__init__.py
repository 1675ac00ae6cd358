"""HUD score recognition pipeline (frames, OCR, parsing, voting)."""

from .consensus import ConsensusResolver, ScoreBucket, confidence_tier
from .frame_extractor import ExtractionOptions, Frame, FrameExtractor, FrameSequence, HudRegion
from .ocr_client import OCRReading, TesseractOCRClient
from .preprocess import HudPreprocessor
from .score_engine import ScoreRecognitionEngine
from .score_parser import ScoreParser, parse_score

__all__ = [
    "ConsensusResolver",
    "ExtractionOptions",
    "Frame",
    "FrameExtractor",
    "FrameSequence",
    "HudPreprocessor",
    "HudRegion",
    "OCRReading",
    "ScoreBucket",
    "ScoreParser",
    "ScoreRecognitionEngine",
    "TesseractOCRClient",
    "confidence_tier",
    "parse_score",
]
