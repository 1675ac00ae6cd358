"""
Frame extraction from the tail of a match video.

``ffmpeg`` renders frames at a fixed rate from ``duration - seconds_from_end``
to the end, optionally cropped to the HUD strip. Frames land in a private
temporary directory that is removed when the ``extract()`` context exits,
whatever the exit path.
"""
from __future__ import annotations

import asyncio
import shutil
import tempfile
from contextlib import asynccontextmanager
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, AsyncIterator, Dict, List, Optional

import ffmpeg

from match_collector.core.engines.base.logging_utils import get_logger
from match_collector.core.errors import FrameExtractionError

from .preprocess import HudPreprocessor

logger = get_logger("frame_extractor")

FRAME_PATTERN = "frame_%05d.png"


@dataclass(frozen=True)
class HudRegion:
    """Fractional rectangle of the frame holding the timer and score."""

    x: float = 0.0
    y: float = 0.02
    width: float = 0.25
    height: float = 0.08

    def to_pixels(self, frame_width: int, frame_height: int) -> Dict[str, int]:
        return {
            "w": max(1, int(frame_width * self.width)),
            "h": max(1, int(frame_height * self.height)),
            "x": int(frame_width * self.x),
            "y": int(frame_height * self.y),
        }


@dataclass(frozen=True)
class ExtractionOptions:
    seconds_from_end: float = 30.0
    fps: float = 2.0
    crop: bool = True
    keep_frames_dir: Optional[Path] = None


@dataclass(frozen=True)
class VideoProbe:
    duration: float
    width: int
    height: int


@dataclass(frozen=True)
class Frame:
    index: int
    path: Path
    offset_seconds: float
    error: Optional[str] = None


class FrameSequence:
    """Chronological, single-pass async iterator over extracted frames.

    HUD preprocessing runs lazily as each frame is reached. A frame the
    preprocessor cannot open is still yielded, with ``error`` set.
    """

    def __init__(self, frames: List[Frame], *, preprocessor: Optional[HudPreprocessor] = None) -> None:
        self._frames = frames
        self._preprocessor = preprocessor
        self._position = 0

    def __len__(self) -> int:
        return len(self._frames)

    def __aiter__(self) -> "FrameSequence":
        return self

    async def __anext__(self) -> Frame:
        if self._position >= len(self._frames):
            raise StopAsyncIteration
        frame = self._frames[self._position]
        self._position += 1
        if self._preprocessor is not None:
            try:
                await asyncio.to_thread(self._preprocessor.enhance_file, frame.path)
            except OSError as exc:
                logger.warning("could not preprocess %s: %s", frame.path.name, exc)
                return replace(frame, error=str(exc) or type(exc).__name__)
        return frame


class FrameExtractor:
    def __init__(
        self,
        *,
        hud_region: HudRegion = HudRegion(),
        preprocessor: Optional[HudPreprocessor] = None,
        temp_root: Optional[Path] = None,
    ) -> None:
        self.hud_region = hud_region
        self.preprocessor = preprocessor or HudPreprocessor()
        self.temp_root = temp_root

    async def probe(self, video_path: str) -> VideoProbe:
        try:
            metadata = await asyncio.to_thread(ffmpeg.probe, video_path)
        except ffmpeg.Error as exc:
            stderr = (exc.stderr or b"").decode("utf-8", "replace").strip()
            raise FrameExtractionError(video_path, f"ffprobe failed: {stderr or exc}") from exc
        except OSError as exc:
            raise FrameExtractionError(video_path, f"ffprobe unavailable: {exc}") from exc
        return self._parse_probe(video_path, metadata)

    def _parse_probe(self, video_path: str, metadata: Dict[str, Any]) -> VideoProbe:
        video = next((s for s in metadata.get("streams", []) if s.get("codec_type") == "video"), None)
        if video is None:
            raise FrameExtractionError(video_path, "no video stream")
        raw_duration = metadata.get("format", {}).get("duration") or video.get("duration")
        try:
            duration = float(raw_duration)
        except (TypeError, ValueError) as exc:
            raise FrameExtractionError(video_path, f"unknown duration {raw_duration!r}") from exc
        return VideoProbe(
            duration=duration,
            width=int(video.get("width") or 1920),
            height=int(video.get("height") or 1080),
        )

    def build_stream(self, video_path: str, output_dir: Path, probe: VideoProbe, options: ExtractionOptions) -> Any:
        start = max(0.0, probe.duration - options.seconds_from_end)
        stream = ffmpeg.input(video_path, ss=start)
        if options.crop:
            box = self.hud_region.to_pixels(probe.width, probe.height)
            stream = stream.filter("crop", box["w"], box["h"], box["x"], box["y"])
        stream = stream.filter("fps", fps=options.fps)
        return stream.output(str(output_dir / FRAME_PATTERN))

    async def _render(self, video_path: str, stream: Any) -> None:
        try:
            await asyncio.to_thread(stream.run, quiet=True, overwrite_output=True)
        except ffmpeg.Error as exc:
            stderr = (exc.stderr or b"").decode("utf-8", "replace").strip().splitlines()
            raise FrameExtractionError(video_path, f"ffmpeg failed: {stderr[-1] if stderr else exc}") from exc
        except OSError as exc:
            raise FrameExtractionError(video_path, f"ffmpeg unavailable: {exc}") from exc

    @asynccontextmanager
    async def extract(self, video_path: str, options: Optional[ExtractionOptions] = None) -> AsyncIterator[FrameSequence]:
        """
        Render the tail frames of ``video_path`` and yield them as a FrameSequence.

        Usage:
            async with extractor.extract(path, ExtractionOptions(fps=2)) as frames:
                async for frame in frames:
                    ...
        """
        options = options or ExtractionOptions()
        if options.fps <= 0:
            raise ValueError("fps must be positive")

        output_dir = Path(tempfile.mkdtemp(prefix="ocr-frames-", dir=self.temp_root))
        try:
            probe = await self.probe(video_path)
            start = max(0.0, probe.duration - options.seconds_from_end)
            logger.debug(
                "duration %.1fs, extracting from %.1fs at %s fps (%dx%d, crop=%s)",
                probe.duration,
                start,
                options.fps,
                probe.width,
                probe.height,
                options.crop,
            )
            await self._render(video_path, self.build_stream(video_path, output_dir, probe, options))

            paths = sorted(output_dir.glob("frame_*.png"))
            if not paths:
                raise FrameExtractionError(video_path, "no frames produced")
            frames = [
                Frame(index=i, path=p, offset_seconds=start + i / options.fps)
                for i, p in enumerate(paths)
            ]
            logger.debug("extracted %d frames", len(frames))
            yield FrameSequence(frames, preprocessor=self.preprocessor if options.crop else None)
        finally:
            try:
                if options.keep_frames_dir is not None:
                    await asyncio.to_thread(_copy_frames, output_dir, Path(options.keep_frames_dir))
            except OSError as exc:
                logger.warning("could not keep frames in %s: %s", options.keep_frames_dir, exc)
            finally:
                await asyncio.to_thread(shutil.rmtree, output_dir, True)


def _copy_frames(source: Path, target: Path) -> None:
    target.mkdir(parents=True, exist_ok=True)
    for path in source.glob("frame_*.png"):
        shutil.copy2(path, target / path.name)
