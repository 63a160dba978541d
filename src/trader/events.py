from __future__ import annotations

import itertools
import logging
import threading
from collections import deque
from datetime import datetime

from src.domain.models import TradingEvent

logger = logging.getLogger(__name__)

EVENT_TYPES = ("INFO", "SUCCESS", "WARNING", "ERROR", "TRADE")
MAX_EVENTS = 100

_LOG_LEVELS = {
    "INFO": logging.INFO,
    "SUCCESS": logging.INFO,
    "TRADE": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
}


class EventLog:
    """
    Operator-visible activity log: the most recent events, newest first.

    Every event is mirrored to the `logging` module. Messages must never contain credentials.
    """

    def __init__(self, max_events: int = MAX_EVENTS):
        self._lock = threading.Lock()
        self._events: deque[TradingEvent] = deque(maxlen=int(max_events))
        self._ids = itertools.count(1)

    def log_event(self, type: str, message: str) -> TradingEvent:
        kind = str(type).upper()
        if kind not in EVENT_TYPES:
            raise ValueError(f"Unknown event type: {type}")
        with self._lock:
            event = TradingEvent(
                id=next(self._ids),
                timestamp=datetime.now().strftime("%H:%M:%S"),
                type=kind,
                message=str(message),
            )
            self._events.appendleft(event)
        logger.log(_LOG_LEVELS[kind], "[%s] %s", kind, message)
        return event

    def recent(self, limit: int | None = None) -> list[TradingEvent]:
        with self._lock:
            events = list(self._events)
        return events if limit is None else events[: int(limit)]

    def after(self, last_id: int) -> list[TradingEvent]:
        """Events newer than `last_id`, oldest first (for streaming)."""
        with self._lock:
            events = [e for e in self._events if e.id > last_id]
        return list(reversed(events))

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)
