"""Notification sinks — consumers of every engine event."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import structlog


class LoggingSink:
    """Logs each event with its kind as the log event name."""

    def __init__(self, logger: Any | None = None) -> None:
        self._logger = logger or structlog.get_logger("events")

    def on_event(self, event: Any) -> None:
        payload = event.model_dump(mode="json", exclude={"kind"})
        self._logger.info(event.kind, **payload)


class JsonLinesSink:
    """Appends each event as one JSON line to a file."""

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._fh = self._path.open("a", encoding="utf-8")
        self._closed = False

    def on_event(self, event: Any) -> None:
        if self._closed:
            return
        self._fh.write(event.model_dump_json() + "\n")
        self._fh.flush()

    def close(self) -> None:
        if self._closed:
            return
        self._fh.flush()
        self._fh.close()
        self._closed = True
