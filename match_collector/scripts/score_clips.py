"""
Run score recognition over sample clips and compare with known results.

Usage:
    python -m match_collector.scripts.score_clips clip1.mp4 clip2.mp4 \
        [--expected scores.json] [--keep-frames debug-frames/]

``scores.json`` maps a clip file name to its final score, either as
``[left, right]`` or ``{"left": 0, "right": 1}``.
"""
from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from match_collector.core.domain.models import ScoreResult
from match_collector.core.engines.base.logging_utils import configure_logging
from match_collector.core.engines.hud_ocr import (
    ExtractionOptions,
    FrameExtractor,
    ScoreRecognitionEngine,
    TesseractOCRClient,
)
from match_collector.core.errors import FrameExtractionError

RULE = "=" * 60
DIVIDER = "-" * 60


def load_expected(path: Optional[Path]) -> Dict[str, Tuple[int, int]]:
    if path is None:
        return {}
    with path.open("r", encoding="utf-8") as fh:
        data = json.load(fh)
    expected: Dict[str, Tuple[int, int]] = {}
    for name, value in data.items():
        if isinstance(value, dict):
            expected[name] = (int(value["left"]), int(value["right"]))
        else:
            left, right = value
            expected[name] = (int(left), int(right))
    return expected


def format_score(result: ScoreResult) -> str:
    if not result.is_resolved:
        return "no score"
    return f"{result.left_score}-{result.right_score}"


def describe_candidates(result: ScoreResult) -> List[str]:
    """Summarise anchored/plain score readings for a failed comparison."""
    with_scores = [c for c in result.evidence if c.score is not None]
    anchored = [c for c in with_scores if c.score.has_timer_anchor]
    plain = [c for c in with_scores if not c.score.has_timer_anchor]
    lines = [f"  Timer matches ({len(anchored)}):"]
    lines += [f"    - {c.score.raw!r} (conf: {c.confidence:.1f}%)" for c in anchored[:5]]
    lines.append(f"  Plain matches ({len(plain)}):")
    lines += [f"    - {c.score.raw!r} (conf: {c.confidence:.1f}%)" for c in plain[:3]]
    if not with_scores:
        lines.append("  (no score patterns found)")
        lines += [f"    {c.text[:80]!r}" for c in result.evidence[:3]]
    return lines


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Check HUD score recognition against sample clips.")
    parser.add_argument("videos", nargs="+", type=Path, help="Video files to score.")
    parser.add_argument("--expected", type=Path, default=None, help="JSON file of expected scores by file name.")
    parser.add_argument("--keep-frames", type=Path, default=None, help="Copy extracted frames here (one folder per clip).")
    parser.add_argument("--seconds-from-end", type=float, default=30.0)
    parser.add_argument("--fps", type=float, default=2.0)
    parser.add_argument("--no-crop", action="store_true", help="OCR whole frames instead of the HUD strip.")
    parser.add_argument("--tesseract-config", default="--psm 6")
    parser.add_argument("--verbose", action="store_true", help="Log every frame reading.")
    return parser.parse_args(argv)


async def run(args: argparse.Namespace) -> int:
    expected = load_expected(args.expected)
    engine = ScoreRecognitionEngine(
        extractor=FrameExtractor(),
        ocr_client=TesseractOCRClient(config=args.tesseract_config),
    )

    print(RULE)
    print("HUD score check")
    print(RULE)
    passed = failed = 0
    for video in args.videos:
        options = ExtractionOptions(
            seconds_from_end=args.seconds_from_end,
            fps=args.fps,
            crop=not args.no_crop,
            keep_frames_dir=(args.keep_frames / video.stem) if args.keep_frames else None,
        )
        want = expected.get(video.name)
        print(f"Testing: {video.name}")
        if want is not None:
            print(f"Expected: {want[0]}-{want[1]}")

        try:
            result = await engine.recognize(str(video), options)
        except FrameExtractionError as exc:
            print(f"Status: ERROR - {exc}")
            failed += 1
            print(DIVIDER)
            continue

        print(f"Result: {format_score(result)} (confidence: {result.confidence.value})")
        if want is None:
            print("Status: no expectation")
        elif result.is_resolved and (result.left_score, result.right_score) == want:
            print("Status: PASS")
            passed += 1
        else:
            print(f"Status: FAIL (expected {want[0]}-{want[1]})")
            print(f"Raw text: {result.raw_text[:100]!r}")
            for line in describe_candidates(result):
                print(line)
            failed += 1
        if options.keep_frames_dir is not None:
            print(f"Frames saved to: {options.keep_frames_dir}")
        print(DIVIDER)

    print()
    print(RULE)
    print(f"Results: {passed} passed, {failed} failed")
    print(RULE)
    return 1 if failed else 0


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    configure_logging(level="DEBUG" if args.verbose else "WARNING")
    try:
        return asyncio.run(run(args))
    except (OSError, ValueError) as exc:
        print(f"score check failed: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
