"""In-process publish/subscribe event bus.

Dispatch is synchronous and run-to-completion: an event published from inside
a handler is queued and delivered after every subscriber has seen the current
event, so causal order is preserved across components.
"""

from __future__ import annotations

from collections import defaultdict, deque
from typing import Any, Callable, Protocol

import structlog

from trading_engine.events.kinds import EVENT_KINDS

log = structlog.get_logger("event_bus")

Handler = Callable[[Any], None]

WILDCARD = "*"


class EventSink(Protocol):
    def on_event(self, event: Any) -> None:
        """Consume an engine event."""


class EventBus:
    """Fans events out to subscribers by kind. Handler errors are logged, never raised."""

    def __init__(self) -> None:
        self._handlers: dict[str, list[Handler]] = defaultdict(list)
        self._sinks: list[EventSink] = []
        self._queue: deque[Any] = deque()
        self._dispatching = False
        self._closed = False

    def subscribe(self, kind: str, handler: Handler) -> None:
        """Register *handler* for one event kind, or for all kinds with ``"*"``."""
        if kind != WILDCARD and kind not in EVENT_KINDS:
            raise ValueError(f"Unknown event kind: {kind!r}")
        self._handlers[kind].append(handler)

    def unsubscribe(self, kind: str, handler: Handler) -> None:
        """Remove a handler (no-op if it was never registered)."""
        handlers = self._handlers.get(kind)
        if handlers and handler in handlers:
            handlers.remove(handler)

    def register(self, sink: EventSink) -> None:
        """Attach a notification sink that receives every event."""
        self._sinks.append(sink)
        self.subscribe(WILDCARD, sink.on_event)

    def publish(self, event: Any) -> None:
        """Deliver *event* to all current subscribers of its kind."""
        if self._closed:
            log.debug("event_dropped_bus_closed", kind=getattr(event, "kind", None))
            return
        self._queue.append(event)
        if self._dispatching:
            return
        self._dispatching = True
        try:
            while self._queue:
                self._dispatch(self._queue.popleft())
        finally:
            self._dispatching = False

    def _dispatch(self, event: Any) -> None:
        kind = getattr(event, "kind", None)
        handlers = [*self._handlers.get(kind, ()), *self._handlers.get(WILDCARD, ())]
        for handler in handlers:
            try:
                handler(event)
            except Exception:
                log.exception(
                    "event_handler_error",
                    kind=kind,
                    handler=getattr(handler, "__qualname__", repr(handler)),
                )

    def close(self) -> None:
        """Stop delivering events and close sinks that expose close()."""
        if self._closed:
            return
        self._closed = True
        self._queue.clear()
        for sink in self._sinks:
            close_fn = getattr(sink, "close", None)
            if callable(close_fn):
                close_fn()
