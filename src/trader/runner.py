from __future__ import annotations

import logging
import signal
import threading
import time
from dataclasses import replace
from typing import Any

from src.domain.settings import TradingConfig
from src.exchange.gateway import MexcGateway
from src.ports.exchange import ExchangePort
from src.research.decision_provider import DecisionProvider
from src.trader.account_sync import AccountSynchronizer
from src.trader.events import EventLog
from src.trader.market_poller import MarketPoller
from src.trader.orchestrator import CycleResult, TradingOrchestrator
from src.trader.scheduler import PeriodicTask
from src.trader.session import SessionGate
from src.utils.config_loader import load_trading_config
from src.utils.runtime_config import ConfigStore

logger = logging.getLogger(__name__)

# How long shutdown waits for an in-flight tick per task.
STOP_JOIN_SECONDS = 5.0


class TradingEngine:
    """
    Wires the three periodic drivers (market poll, account sync, trading cycle).

    Configuration changes re-arm the affected driver: the old loop is torn down before a
    new one is started, so no orphaned tick survives a change.
    """

    def __init__(
        self,
        config: TradingConfig,
        *,
        gateway: ExchangePort | None = None,
        provider: DecisionProvider | None = None,
        events: EventLog | None = None,
        session: SessionGate | None = None,
    ):
        self.store = ConfigStore(config)
        self.gateway = gateway if gateway is not None else MexcGateway()
        self.provider = provider if provider is not None else DecisionProvider()
        self.events = events if events is not None else EventLog()
        self.session = session if session is not None else SessionGate()

        self.market = MarketPoller(self.gateway, self.store, self.events)
        self.account = AccountSynchronizer(self.gateway, self.store, self.session, self.events)
        self.orchestrator = TradingOrchestrator(
            self.store, self.gateway, self.provider, self.market, self.account, self.events
        )

        self.market_task = PeriodicTask("market", self.market.tick, config.market_poll_seconds)
        self.account_task = PeriodicTask("account", self.account.tick, config.account_sync_seconds)
        self.trading_task = PeriodicTask("trading", self.orchestrator.run_cycle, config.interval_seconds)
        self.account.set_refresh_hook(self._refresh_account)

        self._lock = threading.Lock()
        self._started = False
        self.store.subscribe(self._on_config_change)
        self.session.subscribe(self._on_session_change)

    @property
    def started(self) -> bool:
        return self._started

    def start(self) -> None:
        with self._lock:
            if self._started:
                return
            self._started = True
        config = self.store.current()
        self.market_task.start()
        if self.session.is_authorized:
            self.account_task.start()
        if config.auto_trading:
            self.trading_task.start()
        mode = "LIVE" if config.live_mode else "SIMULATION"
        self.events.log_event("INFO", f"Engine started for {config.trading_symbol} ({mode} mode)")

    def stop(self) -> None:
        with self._lock:
            if not self._started:
                return
            self._started = False
        for task in (self.trading_task, self.account_task, self.market_task):
            task.stop(wait=True, timeout=STOP_JOIN_SECONDS)
        self.events.log_event("INFO", "Engine stopped")

    def run_cycle_now(self) -> CycleResult:
        """Run one trading cycle in the caller's thread (still single-flight)."""
        return self.orchestrator.run_cycle()

    def update_config(self, patch: dict[str, Any]) -> TradingConfig:
        return self.store.update(patch)

    def status(self) -> dict[str, Any]:
        config = self.store.current()
        market = self.market.snapshot
        return {
            "running": self._started,
            "symbol": config.trading_symbol,
            "live_mode": config.live_mode,
            "auto_trading": config.auto_trading,
            "ai_provider": config.ai_provider,
            "session_authorized": self.session.is_authorized,
            "sync_status": self.account.status.value,
            "orchestrator_state": self.orchestrator.state.value,
            "current_side": self.account.snapshot.current_side().value,
            "price": market.price if market else None,
            "tasks": {
                t.name: {"running": t.is_running, "interval_seconds": t.interval_seconds, "ticks": t.ticks}
                for t in (self.market_task, self.account_task, self.trading_task)
            },
        }

    def _refresh_account(self) -> None:
        if self.account_task.is_running:
            self.account_task.trigger()
        else:
            self.account_task.run_once()

    def _on_session_change(self, authorized: bool) -> None:
        if not self._started:
            return
        if authorized:
            self.account_task.start()
        else:
            self.account_task.stop(wait=True, timeout=STOP_JOIN_SECONDS)
            self.account.tick()

    def _on_config_change(self, old: TradingConfig, new: TradingConfig) -> None:
        if new.live_mode != old.live_mode:
            if new.live_mode:
                self.events.log_event("WARNING", "Live mode ENABLED: decisions will place real orders")
            else:
                self.events.log_event("INFO", "Live mode disabled (simulation)")
        if new.auto_trading != old.auto_trading:
            self.events.log_event("INFO", f"Auto-trading {'enabled' if new.auto_trading else 'disabled'}")

        if not self._started:
            self.market_task.interval_seconds = float(new.market_poll_seconds)
            self.account_task.interval_seconds = float(new.account_sync_seconds)
            self.trading_task.interval_seconds = float(new.interval_seconds)
            return

        if new.market_poll_seconds != old.market_poll_seconds:
            self.market_task.reschedule(new.market_poll_seconds)
        elif new.trading_symbol != old.trading_symbol:
            self.market_task.trigger()

        if new.account_sync_seconds != old.account_sync_seconds:
            if self.account_task.is_running:
                self.account_task.reschedule(new.account_sync_seconds)
            else:
                self.account_task.interval_seconds = float(new.account_sync_seconds)
        elif (
            new.exchange_api_key != old.exchange_api_key
            or new.exchange_secret_key != old.exchange_secret_key
            or new.forwarding_url != old.forwarding_url
        ):
            self.account_task.trigger()

        if new.auto_trading != old.auto_trading or new.interval_minutes != old.interval_minutes:
            self.trading_task.stop()
            self.trading_task.interval_seconds = float(new.interval_seconds)
            if new.auto_trading:
                self.trading_task.start()


def run_single_cycle(engine: TradingEngine) -> CycleResult:
    """Poll once, sync once (when authorized), then run one trading cycle inline."""
    engine.market.tick()
    if engine.session.is_authorized:
        engine.account.tick()
    result = engine.run_cycle_now()
    logger.info("Single cycle finished: %s (%s)", result.status, result.detail or "-")
    return result


def main(*, once: bool = False, force_simulation: bool = False):
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    config = load_trading_config()
    if force_simulation and config.live_mode:
        logger.info("Simulation forced from the command line; live_mode ignored for this run.")
        config = replace(config, live_mode=False)
    if once:
        # One-shot runs trade whatever the auto-trading switch says.
        config = replace(config, auto_trading=True)

    mode = "LIVE" if config.live_mode else "SIMULATION"
    logger.info("Aegis Trader headless: %s mode, %s via %s", mode, config.trading_symbol, config.ai_provider)
    if config.live_mode:
        logger.warning("LIVE mode: decisions will submit real MEXC orders.")

    engine = TradingEngine(config)
    if config.has_exchange_credentials:
        engine.session.authorize()
    else:
        logger.warning("No exchange credentials configured; account sync stays disconnected.")

    if once:
        run_single_cycle(engine)
        return

    stop_event = threading.Event()

    def _handle_signal(signum, _frame):
        logger.info("Received signal %s, stopping Aegis Trader...", signum)
        stop_event.set()

    signal.signal(signal.SIGINT, _handle_signal)
    signal.signal(signal.SIGTERM, _handle_signal)

    engine.start()
    try:
        while not stop_event.is_set():
            time.sleep(0.5)
    except KeyboardInterrupt:
        logger.info("Stopping Aegis Trader...")
    finally:
        engine.stop()


if __name__ == "__main__":
    main()
