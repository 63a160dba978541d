from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any
from uuid import uuid4

MAX_HISTORY = 50


class PositionSide(str, Enum):
    LONG = "LONG"
    SHORT = "SHORT"
    NONE = "NONE"


class TradeActionType(str, Enum):
    LONG = "LONG"
    SHORT = "SHORT"
    CLOSE = "CLOSE"
    WAIT = "WAIT"


class SyncStatus(str, Enum):
    CONNECTED = "CONNECTED"
    DISCONNECTED = "DISCONNECTED"
    ERROR = "ERROR"


class SyntheticId(str):
    """
    Locally generated identifier for records the exchange returned without one
    (and for simulated fills). Never mistaken for an exchange-issued id.
    """

    PREFIX = "syn-"

    @classmethod
    def new(cls, kind: str = "rec") -> "SyntheticId":
        return cls(f"{cls.PREFIX}{kind}-{uuid4().hex[:12]}")


def is_synthetic(value: Any) -> bool:
    return isinstance(value, SyntheticId) or (isinstance(value, str) and value.startswith(SyntheticId.PREFIX))


def pnl_percent(unrealized_pnl: float, margin: float) -> float:
    # Zero margin means there is nothing to express the P&L against.
    if not margin:
        return 0.0
    return unrealized_pnl / margin * 100


@dataclass(frozen=True)
class PricePoint:
    label: str
    price: float

    def to_dict(self) -> dict[str, Any]:
        return {"time": self.label, "price": float(self.price)}


@dataclass(frozen=True)
class Ticker:
    symbol: str
    price: float
    change_24h: float
    volume: float
    timestamp: int


@dataclass(frozen=True)
class MarketSnapshot:
    symbol: str
    price: float
    change_24h: float
    volume: float
    timestamp: int
    history: tuple[PricePoint, ...] = ()

    def with_tick(self, ticker: Ticker, label: str) -> MarketSnapshot:
        """Return a new snapshot carrying the ticker values and the appended sample."""
        history = (*self.history, PricePoint(label=label, price=ticker.price))[-MAX_HISTORY:]
        return MarketSnapshot(
            symbol=ticker.symbol,
            price=ticker.price,
            change_24h=ticker.change_24h,
            volume=ticker.volume,
            timestamp=ticker.timestamp,
            history=history,
        )

    @classmethod
    def first(cls, ticker: Ticker, label: str) -> MarketSnapshot:
        return cls(
            symbol=ticker.symbol,
            price=ticker.price,
            change_24h=ticker.change_24h,
            volume=ticker.volume,
            timestamp=ticker.timestamp,
            history=(PricePoint(label=label, price=ticker.price),),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "symbol": self.symbol,
            "price": float(self.price),
            "change_24h": float(self.change_24h),
            "volume": float(self.volume),
            "timestamp": int(self.timestamp),
            "history": [p.to_dict() for p in self.history],
        }


@dataclass(frozen=True)
class Position:
    id: str
    symbol: str
    side: PositionSide
    entry_price: float
    current_price: float
    leverage: float
    pnl: float
    pnl_percent: float
    margin: float
    liquidation_price: float | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "synthetic_id": is_synthetic(self.id),
            "symbol": self.symbol,
            "side": self.side.value,
            "entry_price": self.entry_price,
            "current_price": self.current_price,
            "leverage": self.leverage,
            "pnl": self.pnl,
            "pnl_percent": self.pnl_percent,
            "margin": self.margin,
            "liquidation_price": self.liquidation_price,
        }


@dataclass(frozen=True)
class TradeDecision:
    action: TradeActionType
    leverage: float
    reason: str
    confidence: float

    @classmethod
    def wait(cls, reason: str) -> TradeDecision:
        return cls(action=TradeActionType.WAIT, leverage=1, reason=reason, confidence=0)

    def to_dict(self) -> dict[str, Any]:
        return {
            "action": self.action.value,
            "leverage": self.leverage,
            "reason": self.reason,
            "confidence": self.confidence,
        }


@dataclass(frozen=True)
class Balance:
    asset: str
    available: float
    frozen: float
    total: float

    def to_dict(self) -> dict[str, Any]:
        return {"asset": self.asset, "available": self.available, "frozen": self.frozen, "total": self.total}


@dataclass(frozen=True)
class Order:
    order_id: str
    symbol: str
    price: float
    quantity: float
    side: str
    type: str
    status: str
    create_time: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "order_id": str(self.order_id),
            "symbol": self.symbol,
            "price": self.price,
            "quantity": self.quantity,
            "side": self.side,
            "type": self.type,
            "status": self.status,
            "create_time": self.create_time,
        }


@dataclass(frozen=True)
class Trade:
    id: str
    symbol: str
    price: float
    quantity: float
    side: str
    pnl: float
    time: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "symbol": self.symbol,
            "price": self.price,
            "quantity": self.quantity,
            "side": self.side,
            "pnl": self.pnl,
            "time": self.time,
        }


@dataclass(frozen=True)
class Transfer:
    id: str
    asset: str
    amount: float
    type: str
    status: str
    timestamp: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "asset": self.asset,
            "amount": self.amount,
            "type": self.type,
            "status": self.status,
            "timestamp": self.timestamp,
        }


@dataclass(frozen=True)
class AccountSnapshot:
    spot_balances: tuple[Balance, ...] = ()
    futures_balances: tuple[Balance, ...] = ()
    positions: tuple[Position, ...] = ()
    orders: tuple[Order, ...] = ()
    trades: tuple[Trade, ...] = ()
    transfers: tuple[Transfer, ...] = ()
    updated_at: float | None = None

    def current_side(self) -> PositionSide:
        return self.positions[0].side if self.positions else PositionSide.NONE

    def to_dict(self) -> dict[str, Any]:
        return {
            "spot_balances": [b.to_dict() for b in self.spot_balances],
            "futures_balances": [b.to_dict() for b in self.futures_balances],
            "positions": [p.to_dict() for p in self.positions],
            "orders": [o.to_dict() for o in self.orders],
            "trades": [t.to_dict() for t in self.trades],
            "transfers": [t.to_dict() for t in self.transfers],
            "updated_at": self.updated_at,
        }


@dataclass(frozen=True)
class TradingEvent:
    id: int
    timestamp: str
    type: str
    message: str

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "timestamp": self.timestamp, "type": self.type, "message": self.message}
