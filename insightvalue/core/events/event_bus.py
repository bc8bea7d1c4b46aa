"""In-process publish/subscribe for committed domain events.

Handlers run synchronously in the publishing request, after the write that
produced the event has committed. Subscribers maintain derived state (the
search index) that can be rebuilt, so a failing handler is logged and the
remaining handlers still run; the committed write is not reported as failed.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Callable, DefaultDict, Iterable, List

from insightvalue.core.events.event_models import EventRecord

logger = logging.getLogger(__name__)

EventHandler = Callable[[EventRecord], None]


class EventBus:
    def __init__(self) -> None:
        self._handlers: DefaultDict[str, List[EventHandler]] = defaultdict(list)

    def subscribe(self, event_types: Iterable[str] | str, handler: EventHandler) -> None:
        if isinstance(event_types, str):
            event_types = [event_types]
        for event_type in event_types:
            # app factories run more than once under tests
            if handler not in self._handlers[event_type]:
                self._handlers[event_type].append(handler)

    def unsubscribe(self, event_types: Iterable[str] | str, handler: EventHandler) -> None:
        if isinstance(event_types, str):
            event_types = [event_types]
        for event_type in event_types:
            if handler in self._handlers.get(event_type, ()):
                self._handlers[event_type].remove(handler)

    def handlers_for(self, event_type: str) -> List[EventHandler]:
        return list(self._handlers.get(event_type, ()))

    def publish(self, event: EventRecord) -> int:
        """Dispatch ``event``; returns the number of handlers that failed."""
        handlers = self.handlers_for(event.event_type)
        logger.debug("Dispatching %s to %d handler(s)", event.event_type, len(handlers))
        failures = 0
        for handler in handlers:
            try:
                handler(event)
            except Exception:
                failures += 1
                logger.exception(
                    "Event handler %r failed for %s (event %s)",
                    getattr(handler, "__name__", handler),
                    event.event_type,
                    event.id,
                )
        return failures


event_bus = EventBus()
