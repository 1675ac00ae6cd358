from __future__ import annotations

import re
from typing import Optional, Pattern, Tuple

from match_collector.core.domain.models import ParsedScore

_TIMER = r"(?<!\d)\d{1,2}:\d{2}"


class ScoreParser:
    """Pull a (left, right) score out of one frame's OCR text.

    The HUD reads ``MM:SS  X  Y``, sometimes with a period digit between the
    clock and the score. Rules are tried from most to least specific and the
    first hit wins. Only the clock-anchored rules set ``has_timer_anchor``.
    """

    # (name, pattern, left group, right group, timer anchored)
    RULES: Tuple[Tuple[str, Pattern[str], int, int, bool], ...] = (
        ("timer_period_score", re.compile(_TIMER + r"\s+(\d)\s+(\d)\s+(\d)(?!\d)"), 2, 3, True),
        ("timer_score", re.compile(_TIMER + r"\s+(\d)\s+(\d)(?!\d)"), 1, 2, True),
        ("low_digit_pair", re.compile(r"\b([0-6])\s+([0-6])\b"), 1, 2, False),
        ("digit_pair", re.compile(r"(?<!\d)(\d)\s+(\d)(?!\d)"), 1, 2, False),
    )

    def parse(self, raw_text: Optional[str]) -> Optional[ParsedScore]:
        if not raw_text:
            return None
        normalized = self._normalize(raw_text)
        for name, pattern, left_group, right_group, anchored in self.RULES:
            match = pattern.search(normalized)
            if not match:
                continue
            return ParsedScore(
                left=int(match.group(left_group)),
                right=int(match.group(right_group)),
                has_timer_anchor=anchored,
                raw=match.group(0),
                rule=name,
            )
        return None

    def _normalize(self, text: str) -> str:
        """Drop zero-width characters and collapse whitespace."""
        result = text.replace("\u200b", " ").replace("\ufeff", " ")
        return re.sub(r"\s+", " ", result).strip()


_default_parser = ScoreParser()


def parse_score(raw_text: Optional[str]) -> Optional[ParsedScore]:
    """Module-level shortcut for ``ScoreParser().parse``."""
    return _default_parser.parse(raw_text)
