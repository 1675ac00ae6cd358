from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from match_collector.core.domain.models import ConfidenceTier, OCRCandidate

AGREEMENT_BONUS = 5.0
HIGH_CONFIDENCE = 90.0
MEDIUM_CONFIDENCE = 70.0


def confidence_tier(peak_confidence: float) -> ConfidenceTier:
    """Map an OCR confidence (0-100) to a tier."""
    if peak_confidence >= HIGH_CONFIDENCE:
        return ConfidenceTier.HIGH
    if peak_confidence >= MEDIUM_CONFIDENCE:
        return ConfidenceTier.MEDIUM
    return ConfidenceTier.LOW


@dataclass
class ScoreBucket:
    """All frames that read the same (left, right) pair."""

    left: int
    right: int
    has_timer_anchor: bool
    count: int = 0
    peak_confidence: float = 0.0
    best: Optional[OCRCandidate] = None

    @property
    def rank(self) -> float:
        return self.peak_confidence + self.count * AGREEMENT_BONUS

    @property
    def tier(self) -> ConfidenceTier:
        return confidence_tier(self.peak_confidence)

    def add(self, candidate: OCRCandidate) -> None:
        self.count += 1
        if self.best is None or candidate.confidence > self.peak_confidence:
            self.peak_confidence = candidate.confidence
            self.best = candidate


class ConsensusResolver:
    """Vote many noisy per-frame readings down to one score.

    Clock-anchored readings are trusted over bare digit pairs: if any frame
    produced an anchored reading, unanchored ones are ignored. Within a group
    the bucket with the highest ``peak_confidence + count * 5`` wins; on equal
    rank the bucket seen first (in frame order) wins.
    """

    def resolve(self, candidates: Sequence[OCRCandidate]) -> Optional[ScoreBucket]:
        anchored, plain = self.partition(candidates)
        if anchored:
            return self._pick(self.bucket(anchored))
        if plain:
            return self._pick(self.bucket(plain))
        return None

    def partition(self, candidates: Iterable[OCRCandidate]) -> Tuple[List[OCRCandidate], List[OCRCandidate]]:
        anchored: List[OCRCandidate] = []
        plain: List[OCRCandidate] = []
        for candidate in candidates:
            if candidate.score is None:
                continue
            (anchored if candidate.score.has_timer_anchor else plain).append(candidate)
        return anchored, plain

    def bucket(self, candidates: Iterable[OCRCandidate]) -> List[ScoreBucket]:
        buckets: Dict[Tuple[int, int], ScoreBucket] = {}
        for candidate in candidates:
            score = candidate.score
            if score is None:
                continue
            entry = buckets.get(score.pair)
            if entry is None:
                entry = ScoreBucket(left=score.left, right=score.right, has_timer_anchor=score.has_timer_anchor)
                buckets[score.pair] = entry
            entry.add(candidate)
        return list(buckets.values())

    def _pick(self, buckets: Sequence[ScoreBucket]) -> Optional[ScoreBucket]:
        best: Optional[ScoreBucket] = None
        for entry in buckets:
            if best is None or entry.rank > best.rank:
                best = entry
        return best
