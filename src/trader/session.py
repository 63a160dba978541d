from __future__ import annotations

import logging
import threading
from typing import Callable

logger = logging.getLogger(__name__)


class SessionGate:
    """
    Explicit authorization capability for account access.

    Whoever owns the login decides when to grant or revoke; drivers that need an
    authorized session subscribe and are started/stopped accordingly.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._authorized = False
        self._listeners: list[Callable[[bool], None]] = []

    @property
    def is_authorized(self) -> bool:
        with self._lock:
            return self._authorized

    def subscribe(self, listener: Callable[[bool], None]) -> None:
        self._listeners.append(listener)

    def authorize(self) -> None:
        self._set(True)

    def revoke(self) -> None:
        self._set(False)

    def _set(self, value: bool) -> None:
        with self._lock:
            changed = self._authorized != value
            self._authorized = value
        if not changed:
            return
        logger.info("Session %s", "authorized" if value else "revoked")
        for listener in list(self._listeners):
            listener(value)
