import asyncio
from contextlib import asynccontextmanager
from pathlib import Path

import pytest
from PIL import Image

from match_collector.core.domain.models import ConfidenceTier
from match_collector.core.engines.hud_ocr import frame_extractor
from match_collector.core.engines.hud_ocr import (
    ExtractionOptions,
    Frame,
    FrameExtractor,
    FrameSequence,
    OCRReading,
    ScoreRecognitionEngine,
)
from match_collector.core.errors import FrameExtractionError, OCRError


class FakeExtractor:
    def __init__(self, count=0, *, error=None):
        self.count = count
        self.error = error
        self.released = False
        self.options = None

    @asynccontextmanager
    async def extract(self, video_path, options=None):
        self.options = options
        if self.error is not None:
            raise self.error
        frames = [Frame(index=i, path=Path(f"/tmp/frame_{i + 1:05d}.png"), offset_seconds=i / 2) for i in range(self.count)]
        try:
            yield FrameSequence(frames)
        finally:
            self.released = True


class ScriptedOCR:
    """Returns canned readings keyed by frame file name."""

    def __init__(self, readings):
        self.readings = readings

    async def read(self, image_path):
        value = self.readings[Path(image_path).name]
        if isinstance(value, Exception):
            raise value
        if value == "hang":
            await asyncio.sleep(5)
        text, confidence = value
        return OCRReading(text=text, confidence=confidence)


@pytest.mark.asyncio
async def test_recognize_picks_consensus_and_keeps_evidence():
    extractor = FakeExtractor(4)
    ocr = ScriptedOCR(
        {
            "frame_00001.png": ("MedalTV", 40.0),
            "frame_00002.png": ("02:45 0 1", 93.0),
            "frame_00003.png": ("02:44 0 1", 81.0),
            "frame_00004.png": ("1 0", 99.0),
        }
    )
    engine = ScoreRecognitionEngine(extractor=extractor, ocr_client=ocr)

    result = await engine.recognize("/clips/a.mp4")

    assert (result.left_score, result.right_score) == (0, 1)
    assert result.confidence is ConfidenceTier.HIGH
    assert result.raw_text == "02:45 0 1"
    assert result.frame_used == "frame_00002.png"
    assert len(result.evidence) == 4
    assert extractor.released
    assert extractor.options == ExtractionOptions()


@pytest.mark.asyncio
async def test_unreadable_frames_do_not_abort_recognition():
    extractor = FakeExtractor(3)
    ocr = ScriptedOCR(
        {
            "frame_00001.png": OCRError("tesseract failed"),
            "frame_00002.png": ("3 2", 72.0),
            "frame_00003.png": ("", 0.0),
        }
    )
    engine = ScoreRecognitionEngine(extractor=extractor, ocr_client=ocr)

    result = await engine.recognize("/clips/a.mp4")

    assert (result.left_score, result.right_score) == (3, 2)
    assert result.confidence is ConfidenceTier.MEDIUM
    first = result.evidence[0]
    assert first.score is None
    assert "tesseract failed" in first.error


@pytest.mark.asyncio
async def test_slow_frame_times_out_as_empty_candidate():
    extractor = FakeExtractor(2)
    ocr = ScriptedOCR({"frame_00001.png": "hang", "frame_00002.png": ("00:16 4 1 2", 88.0)})
    engine = ScoreRecognitionEngine(extractor=extractor, ocr_client=ocr, frame_timeout=0.05)

    result = await engine.recognize("/clips/a.mp4")

    assert (result.left_score, result.right_score) == (1, 2)
    assert result.evidence[0].error == "TimeoutError"


@pytest.mark.asyncio
async def test_no_score_anywhere_is_failed_not_error():
    extractor = FakeExtractor(2)
    ocr = ScriptedOCR({"frame_00001.png": ("MedalTV", 50.0), "frame_00002.png": ("Rematch", 55.0)})
    engine = ScoreRecognitionEngine(extractor=extractor, ocr_client=ocr)

    result = await engine.recognize("/clips/a.mp4")

    assert result.confidence is ConfidenceTier.FAILED
    assert result.left_score is None and result.right_score is None
    assert len(result.evidence) == 2
    assert extractor.released


@pytest.mark.asyncio
async def test_frame_extraction_error_propagates():
    extractor = FakeExtractor(error=FrameExtractionError("/clips/a.mp4", "no frames produced"))
    engine = ScoreRecognitionEngine(extractor=extractor, ocr_client=ScriptedOCR({}))

    with pytest.raises(FrameExtractionError):
        await engine.recognize("/clips/a.mp4")


@pytest.mark.asyncio
async def test_explicit_options_override_defaults():
    extractor = FakeExtractor(1)
    engine = ScoreRecognitionEngine(
        extractor=extractor,
        ocr_client=ScriptedOCR({"frame_00001.png": ("5 5", 90.0)}),
        default_options=ExtractionOptions(fps=4),
    )

    await engine.recognize("/clips/a.mp4")
    assert extractor.options.fps == 4

    await engine.recognize("/clips/a.mp4", ExtractionOptions(seconds_from_end=10, crop=False))
    assert extractor.options.seconds_from_end == 10
    assert extractor.options.crop is False


class PngExtractor(FrameExtractor):
    """Real extractor over hand-written PNGs; frame ``corrupt`` holds junk bytes."""

    def __init__(self, count, corrupt, **kwargs):
        super().__init__(**kwargs)
        self.count = count
        self.corrupt = corrupt

    def build_stream(self, video_path, output_dir, probe, options):
        return output_dir

    async def _render(self, video_path, stream):
        for i in range(1, self.count + 1):
            path = stream / f"frame_{i:05d}.png"
            if i == self.corrupt:
                path.write_bytes(b"not a png")
            else:
                Image.new("RGB", (40, 10), (0, 0, 0)).save(path)


@pytest.mark.asyncio
async def test_corrupt_frame_does_not_abort_recognition(monkeypatch, tmp_path: Path):
    monkeypatch.setattr(
        frame_extractor.ffmpeg,
        "probe",
        lambda path: {"format": {"duration": "40"}, "streams": [{"codec_type": "video", "width": 1280, "height": 720}]},
    )
    ocr = ScriptedOCR({f"frame_{i:05d}.png": ("02:45 3 2", 95.0) for i in range(1, 5)})
    engine = ScoreRecognitionEngine(extractor=PngExtractor(4, corrupt=3, temp_root=tmp_path), ocr_client=ocr)

    result = await engine.recognize("/clips/a.mp4")

    assert (result.left_score, result.right_score) == (3, 2)
    assert result.confidence is ConfidenceTier.HIGH
    broken = result.evidence[2]
    assert broken.frame == "frame_00003.png"
    assert broken.score is None
    assert broken.error
    assert list(tmp_path.iterdir()) == []
