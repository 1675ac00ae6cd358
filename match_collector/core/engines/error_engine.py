from __future__ import annotations

import traceback
from collections import deque, defaultdict
from datetime import datetime, timezone
from typing import Any, Deque, Dict, Optional, List

from match_collector.core.engines.base.logging_utils import get_logger
from match_collector.core.event_topics import ENGINE_ERROR

logger = get_logger("error_engine")

CATEGORIES = ("clustering", "storage", "ocr", "ingest", "watcher")


class ErrorEngine:
    """
    Centralized error log for the collector.
    Stores the most recent errors with their tracebacks.
    """

    def __init__(self, *, max_errors: int = 200) -> None:
        self._errors: Deque[Dict[str, Any]] = deque(maxlen=max_errors)

    async def log_error(self, error: BaseException, *, context: str = "") -> None:
        data = {
            "context": context,
            "message": str(error),
            "trace": "".join(traceback.format_exception(type(error), error, error.__traceback__)),
        }
        self._errors.appendleft(data)


class GuardianErrorEngine(ErrorEngine):
    """
    Error engine with categorization and event bus fan-out.

    Categories follow the collector's failure taxonomy: ``clustering`` (cache
    misses that fell through), ``storage`` (fatal writes), ``ocr`` (frame
    extraction / recognition), ``ingest`` and ``watcher``.
    """

    def __init__(self, *, event_bus: Optional[Any] = None, max_errors: int = 200) -> None:
        super().__init__(max_errors=max_errors)
        self._event_bus = event_bus
        self._categorized_errors: Dict[str, Deque[Dict[str, Any]]] = defaultdict(lambda: deque(maxlen=50))
        self._error_counts: Dict[str, int] = defaultdict(int)

    async def log_error(
        self,
        error: BaseException,
        *,
        context: str = "",
        severity: str = "error",
        category: Optional[str] = None,
        **metadata: Any,
    ) -> None:
        """
        Log an error with optional categorization.

        Args:
            error: The exception that occurred
            context: Human-readable context string
            severity: error|warning|critical
            category: one of CATEGORIES (anything else is accepted but flagged)
            **metadata: Additional context data, e.g. the video path
        """
        await super().log_error(error, context=context)

        if category and category not in CATEGORIES:
            logger.debug("uncatalogued error category %r", category)

        error_record = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "context": context,
            "message": str(error),
            "severity": severity,
            "category": category or "general",
            "trace": "".join(traceback.format_exception(type(error), error, error.__traceback__)),
            "metadata": metadata,
        }

        self._categorized_errors[error_record["category"]].appendleft(error_record)
        self._error_counts[error_record["category"]] += 1

        if self._event_bus is not None:
            await self._event_bus.emit(
                ENGINE_ERROR,
                context=error_record["context"],
                message=error_record["message"],
                severity=error_record["severity"],
                category=error_record["category"],
                metadata=error_record["metadata"],
            )

    def get_errors_by_category(self, category: str, limit: int = 20) -> List[Dict[str, Any]]:
        """Get recent errors for a specific category."""
        errors = self._categorized_errors.get(category, deque())
        return list(errors)[:limit]

    def get_error_summary(self) -> Dict[str, Any]:
        """Get summary of all errors by category."""
        summary: Dict[str, Any] = {
            "total_errors": len(self._errors),
            "by_category": {},
        }

        for category, count in self._error_counts.items():
            recent_errors = self._categorized_errors.get(category, deque())
            summary["by_category"][category] = {
                "total_count": count,
                "recent_count": len(recent_errors),
                "last_error": recent_errors[0] if recent_errors else None,
            }

        return summary
