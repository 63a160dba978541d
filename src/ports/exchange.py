from __future__ import annotations

from typing import Any, Protocol

from src.domain.models import Balance, Order, Position, PositionSide, Ticker, Trade, Transfer
from src.domain.settings import TradingConfig


class ExchangePort(Protocol):
    def get_ticker(self, symbol: str, config: TradingConfig | None = None) -> Ticker: ...

    def get_spot_balance(self, config: TradingConfig) -> tuple[Balance, ...]: ...

    def get_futures_balance(self, config: TradingConfig) -> tuple[Balance, ...]: ...

    def get_open_positions(self, config: TradingConfig) -> tuple[Position, ...]: ...

    def get_open_orders(self, config: TradingConfig) -> tuple[Order, ...]: ...

    def get_trade_history(self, config: TradingConfig) -> tuple[Trade, ...]: ...

    def get_transfer_history(self, config: TradingConfig) -> tuple[Transfer, ...]: ...

    def execute_trade(
        self,
        action: Any,
        config: TradingConfig,
        market_price: float,
        *,
        position_side: PositionSide = PositionSide.NONE,
    ) -> Any: ...
