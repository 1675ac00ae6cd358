"""
Simple asynchronous publish/subscribe event bus connecting the watcher,
ingestion and error reporting.
"""

from __future__ import annotations

from collections import defaultdict
import inspect
from typing import Any, Callable, DefaultDict, List

from match_collector.core.engines.base.logging_utils import get_logger
from match_collector.core.event_topics import EVENT_BUS_ERROR

Handler = Callable[..., Any]

logger = get_logger("event_bus")


class EventBus:
    """Lightweight async event bus with coroutine handlers.

    Handlers run in subscription order. A failing handler does not stop the
    others; its exception is re-published on ``event_bus.error``.
    """

    def __init__(self) -> None:
        self._handlers: DefaultDict[str, List[Handler]] = defaultdict(list)

    def subscribe(self, event: str, handler: Handler) -> None:
        self._handlers[event].append(handler)

    def unsubscribe(self, event: str, handler: Handler) -> None:
        handlers = self._handlers.get(event)
        if handlers and handler in handlers:
            handlers.remove(handler)

    async def emit(self, event: str, **payload: Any) -> None:
        handlers = list(self._handlers.get(event, []))
        for handler in handlers:
            try:
                result = handler(**payload)
                if inspect.isawaitable(result):
                    await result
            except Exception as exc:
                if event == EVENT_BUS_ERROR:
                    logger.exception("error handler for %s raised", event)
                    continue
                logger.debug("handler %r failed on %s: %s", handler, event, exc)
                await self.emit(EVENT_BUS_ERROR, original_event=event, handler=handler, exc=exc)
