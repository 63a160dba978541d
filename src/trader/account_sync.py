from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Callable

from src.domain.models import AccountSnapshot, SyncStatus
from src.ports.exchange import ExchangePort
from src.trader.events import EventLog
from src.trader.session import SessionGate
from src.utils.runtime_config import ConfigStore

logger = logging.getLogger(__name__)

# Field name on AccountSnapshot -> gateway method name.
SYNC_CALLS: tuple[tuple[str, str], ...] = (
    ("spot_balances", "get_spot_balance"),
    ("futures_balances", "get_futures_balance"),
    ("positions", "get_open_positions"),
    ("orders", "get_open_orders"),
    ("trades", "get_trade_history"),
    ("transfers", "get_transfer_history"),
)


class AccountSynchronizer:
    """
    Periodically rebuilds the AccountSnapshot from the exchange.

    All sub-calls run concurrently; the snapshot is published only when every one of them
    succeeded. A failed sync flips the status to ERROR and keeps the previous snapshot.
    """

    def __init__(
        self,
        gateway: ExchangePort,
        store: ConfigStore,
        session: SessionGate,
        events: EventLog | None = None,
    ):
        self.gateway = gateway
        self.store = store
        self.session = session
        self.events = events
        self._lock = threading.Lock()
        self._snapshot = AccountSnapshot()
        self._status = SyncStatus.DISCONNECTED
        self._refresh_hook: Callable[[], None] | None = None

    @property
    def snapshot(self) -> AccountSnapshot:
        with self._lock:
            return self._snapshot

    @property
    def status(self) -> SyncStatus:
        with self._lock:
            return self._status

    def set_refresh_hook(self, hook: Callable[[], None] | None) -> None:
        """Wire the out-of-cycle trigger (the engine passes its task's `trigger`)."""
        self._refresh_hook = hook

    def request_refresh(self) -> None:
        if self._refresh_hook is not None:
            self._refresh_hook()
        else:
            self.tick()

    def tick(self) -> SyncStatus:
        config = self.store.current()
        if not self.session.is_authorized or not config.has_exchange_credentials:
            self._set_status(SyncStatus.DISCONNECTED)
            return SyncStatus.DISCONNECTED

        with ThreadPoolExecutor(max_workers=len(SYNC_CALLS), thread_name_prefix="account-sync") as pool:
            futures = {
                field: pool.submit(getattr(self.gateway, method), config)
                for field, method in SYNC_CALLS
            }
            results = {}
            errors = []
            for field, fut in futures.items():
                try:
                    results[field] = tuple(fut.result())
                except Exception as e:
                    errors.append((field, e))

        if errors:
            field, err = errors[0]
            logger.warning("Account sync failed (%s): %s: %s", field, type(err).__name__, err)
            if self.events is not None:
                self.events.log_event("ERROR", f"MEXC sync error: {err}")
            self._set_status(SyncStatus.ERROR)
            return SyncStatus.ERROR

        snapshot = AccountSnapshot(**results, updated_at=time.time())
        with self._lock:
            was = self._status
            self._snapshot = snapshot
            self._status = SyncStatus.CONNECTED
        if was is not SyncStatus.CONNECTED and self.events is not None:
            self.events.log_event("SUCCESS", "MEXC account connected")
        logger.debug(
            "Account synced: %d positions, %d open orders",
            len(snapshot.positions),
            len(snapshot.orders),
        )
        return SyncStatus.CONNECTED

    def _set_status(self, status: SyncStatus) -> None:
        with self._lock:
            self._status = status
