from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Any

from src.domain.models import PositionSide, TradeActionType, TradeDecision
from src.ports.exchange import ExchangePort
from src.research.decision_provider import DecisionProvider
from src.trader.account_sync import AccountSynchronizer
from src.trader.events import EventLog
from src.trader.market_poller import MarketPoller
from src.trader.timeout import CycleTimeout, process_with_timeout
from src.utils.runtime_config import ConfigStore

logger = logging.getLogger(__name__)


class CycleState(str, Enum):
    IDLE = "IDLE"
    ANALYZING = "ANALYZING"
    EXECUTING = "EXECUTING"


@dataclass(frozen=True)
class CycleResult:
    # busy | skipped | wait | executed | failed
    status: str
    decision: TradeDecision | None = None
    execution: Any = None
    detail: str = ""

    def to_dict(self) -> dict[str, Any]:
        execution = self.execution.to_dict() if hasattr(self.execution, "to_dict") else self.execution
        return {
            "status": self.status,
            "decision": self.decision.to_dict() if self.decision else None,
            "execution": execution,
            "detail": self.detail,
        }


class TradingOrchestrator:
    """
    One trading cycle: read snapshots -> ask the decision provider -> execute.

    Cycles are single-flight; a cycle requested while another one is still running is
    skipped, so two executions never overlap. Each cycle works on one configuration
    snapshot taken at its start.
    """

    def __init__(
        self,
        store: ConfigStore,
        gateway: ExchangePort,
        provider: DecisionProvider,
        market: MarketPoller,
        account: AccountSynchronizer,
        events: EventLog,
    ):
        self.store = store
        self.gateway = gateway
        self.provider = provider
        self.market = market
        self.account = account
        self.events = events

        self._cycle_lock = threading.Lock()
        self._state = CycleState.IDLE
        self._last_decision: TradeDecision | None = None
        self._last_execution: Any = None

    @property
    def state(self) -> CycleState:
        return self._state

    @property
    def last_decision(self) -> TradeDecision | None:
        return self._last_decision

    @property
    def last_execution(self) -> Any:
        return self._last_execution

    def run_cycle(self) -> CycleResult:
        if not self._cycle_lock.acquire(blocking=False):
            logger.info("Trading cycle already in progress; skipping this tick")
            return CycleResult("busy", detail="A trading cycle is already running")
        try:
            return self._run_cycle()
        finally:
            self._state = CycleState.IDLE
            self._cycle_lock.release()

    def _run_cycle(self) -> CycleResult:
        config = self.store.current()
        if not config.auto_trading:
            return CycleResult("skipped", detail="Auto-trading is disabled")

        snapshot = self.market.snapshot
        if snapshot is None:
            return CycleResult("skipped", detail="No market data yet")
        if snapshot.symbol != config.trading_symbol:
            logger.info("Market data is for %s, waiting for %s", snapshot.symbol, config.trading_symbol)
            return CycleResult("skipped", detail=f"No market data yet for {config.trading_symbol}")

        current_side = self.account.snapshot.current_side()

        self._state = CycleState.ANALYZING
        try:
            decision = process_with_timeout(
                self.provider.analyze,
                float(config.analysis_timeout_seconds),
                config,
                snapshot,
                current_side,
            )
        except CycleTimeout as e:
            self.events.log_event("ERROR", f"AI analysis failed: {e}")
            return CycleResult("failed", detail=str(e))
        except Exception as e:
            logger.exception("Unexpected error during analysis")
            self.events.log_event("ERROR", f"AI analysis failed: {e}")
            return CycleResult("failed", detail=str(e))

        self._last_decision = decision
        if decision.action is TradeActionType.WAIT:
            logger.info("AI decided to WAIT: %s", decision.reason)
            return CycleResult("wait", decision=decision, detail=decision.reason)

        self.events.log_event("TRADE", f"AI decision: {decision.action.value} ({decision.confidence:g}%)")

        if decision.action is TradeActionType.CLOSE and current_side is PositionSide.NONE:
            self.events.log_event("WARNING", "CLOSE requested but no position is open; nothing to do")
            return CycleResult("skipped", decision=decision, detail="No open position to close")

        self._state = CycleState.EXECUTING
        try:
            execution = self.gateway.execute_trade(
                decision.action,
                config,
                snapshot.price,
                position_side=current_side,
            )
        except Exception as e:
            # Order failures must reach the operator.
            self.events.log_event("ERROR", f"Order execution failed: {e}")
            return CycleResult("failed", decision=decision, detail=str(e))

        self._last_execution = execution
        if config.live_mode:
            self.events.log_event("SUCCESS", f"Live {decision.action.value} order submitted for {config.trading_symbol}")
            self.account.request_refresh()
        else:
            self.events.log_event(
                "INFO",
                f"Simulated {decision.action.value} on {config.trading_symbol} at {snapshot.price}",
            )
        return CycleResult("executed", decision=decision, execution=execution)
