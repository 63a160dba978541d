from __future__ import annotations

import logging
import threading
from typing import Callable

logger = logging.getLogger(__name__)


class PeriodicTask:
    """
    A periodic driver on its own daemon thread.

    - The next tick is scheduled only after the previous one returned, and ticks of the same
      task are serialised by a lock that survives restarts, so they never overlap.
    - `trigger()` wakes the loop for an out-of-cycle tick.
    - `stop()` cancels the pending wait; no further tick is started after it returns.
    - A failing tick is logged; the loop keeps running.
    """

    def __init__(
        self,
        name: str,
        func: Callable[[], object],
        interval_seconds: float,
        *,
        run_immediately: bool = True,
    ):
        if float(interval_seconds) <= 0:
            raise ValueError("interval_seconds must be > 0")
        self.name = name
        self.func = func
        self.interval_seconds = float(interval_seconds)
        self.run_immediately = run_immediately

        self._thread: threading.Thread | None = None
        self._stop_evt: threading.Event | None = None
        self._wake_evt: threading.Event | None = None
        self._tick_lock = threading.Lock()
        self._in_flight = False
        self.ticks = 0

    @property
    def is_running(self) -> bool:
        return bool(self._thread and self._thread.is_alive() and self._stop_evt and not self._stop_evt.is_set())

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    def start(self) -> None:
        if self.is_running:
            return
        # Fresh events per run: a stopped loop keeps seeing its own stop flag.
        stop_evt = threading.Event()
        wake_evt = threading.Event()
        self._stop_evt = stop_evt
        self._wake_evt = wake_evt
        self._thread = threading.Thread(
            target=self._thread_main,
            args=(stop_evt, wake_evt),
            name=f"task-{self.name}",
            daemon=True,
        )
        self._thread.start()
        logger.info("Task %s started (every %.1fs)", self.name, self.interval_seconds)

    def stop(self, *, wait: bool = False, timeout: float | None = None) -> None:
        if self._stop_evt is not None:
            self._stop_evt.set()
        if self._wake_evt is not None:
            self._wake_evt.set()
        thread = self._thread
        if wait and thread is not None and thread is not threading.current_thread():
            thread.join(timeout=timeout)
            if thread.is_alive():
                logger.warning("Task %s did not finish within %ss", self.name, timeout)
        logger.info("Task %s stopped", self.name)

    def reschedule(self, interval_seconds: float) -> None:
        """Tear down the current loop, then arm a new one with the new interval."""
        if float(interval_seconds) <= 0:
            raise ValueError("interval_seconds must be > 0")
        self.stop()
        self.interval_seconds = float(interval_seconds)
        self.start()

    def trigger(self) -> None:
        if self._wake_evt is not None and self.is_running:
            self._wake_evt.set()

    def run_once(self) -> bool:
        """Run one tick in the calling thread (serialised with the loop's ticks)."""
        return self._tick()

    def _thread_main(self, stop_evt: threading.Event, wake_evt: threading.Event) -> None:
        if not self.run_immediately:
            wake_evt.wait(self.interval_seconds)
            wake_evt.clear()
        while not stop_evt.is_set():
            self._tick()
            if stop_evt.is_set():
                break
            wake_evt.wait(self.interval_seconds)
            wake_evt.clear()

    def _tick(self) -> bool:
        with self._tick_lock:
            self._in_flight = True
            try:
                self.func()
                return True
            except Exception as e:
                logger.error("Task %s tick failed: %s: %s", self.name, type(e).__name__, e)
                return False
            finally:
                self._in_flight = False
                self.ticks += 1
