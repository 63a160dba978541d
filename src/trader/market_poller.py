from __future__ import annotations

import logging
import threading
from datetime import datetime

from src.domain.models import MarketSnapshot
from src.ports.exchange import ExchangePort
from src.trader.events import EventLog
from src.utils.runtime_config import ConfigStore

logger = logging.getLogger(__name__)


class MarketPoller:
    """Keeps the latest MarketSnapshot for the configured symbol (history bounded to 50 points)."""

    def __init__(self, gateway: ExchangePort, store: ConfigStore, events: EventLog | None = None):
        self.gateway = gateway
        self.store = store
        self.events = events
        self._lock = threading.Lock()
        self._snapshot: MarketSnapshot | None = None
        self._failures = 0

    @property
    def snapshot(self) -> MarketSnapshot | None:
        with self._lock:
            return self._snapshot

    def tick(self) -> MarketSnapshot | None:
        config = self.store.current()
        symbol = config.trading_symbol
        try:
            ticker = self.gateway.get_ticker(symbol, config)
        except Exception as e:
            self._failures += 1
            logger.warning("Market poll for %s failed: %s: %s", symbol, type(e).__name__, e)
            # Only the first failure of a streak reaches the operator log.
            if self._failures == 1 and self.events is not None:
                self.events.log_event("WARNING", f"Market data unavailable: {e}")
            return self.snapshot

        self._failures = 0
        label = datetime.now().strftime("%H:%M:%S")
        with self._lock:
            previous = self._snapshot
            if previous is None or previous.symbol != ticker.symbol:
                snapshot = MarketSnapshot.first(ticker, label)
            else:
                snapshot = previous.with_tick(ticker, label)
            self._snapshot = snapshot
        return snapshot
