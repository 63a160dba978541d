from __future__ import annotations

import json
import threading
import time
from typing import Any

import pytest

from src.domain.models import (
    Balance,
    MarketSnapshot,
    Position,
    PositionSide,
    PricePoint,
    SyntheticId,
    Ticker,
    TradeDecision,
)
from src.domain.settings import TradingConfig


class FakeResponse:
    def __init__(self, status_code: int = 200, body: Any = None, *, text: str | None = None, content_type: str | None = None):
        self.status_code = status_code
        if text is None:
            text = json.dumps(body if body is not None else {})
            content_type = content_type or "application/json"
        self.text = text
        self.headers = {"content-type": content_type or "text/plain"}

    @property
    def ok(self) -> bool:
        return self.status_code < 400

    def json(self) -> Any:
        return json.loads(self.text)


class FakeSession:
    """Stands in for requests.Session; records every call, replays queued responses."""

    def __init__(self, *responses: Any):
        self.responses = list(responses)
        self.calls: list[dict[str, Any]] = []

    def _next(self) -> Any:
        item = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(item, Exception):
            raise item
        return item

    def request(self, method: str, url: str, headers: dict | None = None, timeout: float | None = None):
        self.calls.append({"method": method, "url": url, "headers": headers or {}, "timeout": timeout})
        return self._next()

    def get(self, url: str, timeout: float | None = None):
        self.calls.append({"method": "GET", "url": url, "headers": {}, "timeout": timeout})
        return self._next()


class FakeGateway:
    """In-memory ExchangePort; `fail` maps a method name to the exception it raises."""

    def __init__(self, *, price: float = 50000.0, positions: tuple = (), fail: dict[str, Exception] | None = None):
        self.price = price
        self.positions = positions
        self.fail = dict(fail or {})
        self.calls: list[str] = []
        self.trades: list[dict[str, Any]] = []
        self._lock = threading.Lock()

    def _record(self, name: str) -> None:
        with self._lock:
            self.calls.append(name)
        if name in self.fail:
            raise self.fail[name]

    def get_ticker(self, symbol, config=None):
        self._record("get_ticker")
        return Ticker(symbol=symbol.upper(), price=self.price, change_24h=2.1, volume=1000.0, timestamp=1)

    def get_spot_balance(self, config):
        self._record("get_spot_balance")
        return (Balance(asset="USDT", available=100.0, frozen=0.0, total=100.0),)

    def get_futures_balance(self, config):
        self._record("get_futures_balance")
        return (Balance(asset="USDT", available=50.0, frozen=5.0, total=55.0),)

    def get_open_positions(self, config):
        self._record("get_open_positions")
        return tuple(self.positions)

    def get_open_orders(self, config):
        self._record("get_open_orders")
        return ()

    def get_trade_history(self, config):
        self._record("get_trade_history")
        return ()

    def get_transfer_history(self, config):
        self._record("get_transfer_history")
        return ()

    def execute_trade(self, action, config, market_price, *, position_side=PositionSide.NONE):
        self._record("execute_trade")
        self.trades.append(
            {"action": action, "price": market_price, "position_side": position_side, "leverage": config.default_leverage}
        )
        if not config.live_mode:
            side = PositionSide.LONG if action == "LONG" else PositionSide.SHORT
            return make_position(side, id=SyntheticId.new("sim"), entry_price=market_price)
        return {"success": True, "code": 0, "data": "order-1"}


class FakeProvider:
    """DecisionProvider double returning a fixed decision, optionally after a delay."""

    def __init__(self, decision: TradeDecision, *, delay: float = 0.0):
        self.decision = decision
        self.delay = delay
        self.calls: list[tuple] = []

    def analyze(self, config, snapshot, current_side):
        self.calls.append((config, snapshot, current_side))
        if self.delay:
            time.sleep(self.delay)
        return self.decision


def make_position(side: PositionSide = PositionSide.LONG, **overrides: Any) -> Position:
    values = dict(
        id="12345",
        symbol="BTC_USDT",
        side=side,
        entry_price=49000.0,
        current_price=50000.0,
        leverage=10,
        pnl=10.0,
        pnl_percent=10.0,
        margin=100.0,
    )
    values.update(overrides)
    return Position(**values)


def make_snapshot(price: float = 50000.0, change_24h: float = 2.1, symbol: str = "BTCUSDT") -> MarketSnapshot:
    return MarketSnapshot(
        symbol=symbol,
        price=price,
        change_24h=change_24h,
        volume=1000.0,
        timestamp=1,
        history=(PricePoint(label="12:00:00", price=price),),
    )


@pytest.fixture
def config() -> TradingConfig:
    return TradingConfig(
        ai_provider="openai",
        openai_api_key="sk-test",
        exchange_api_key="mx-key",
        exchange_secret_key="mx-secret",
        auto_trading=True,
    )
