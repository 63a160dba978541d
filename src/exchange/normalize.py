from __future__ import annotations

import time
from typing import Any

from src.domain.models import (
    Balance,
    Order,
    Position,
    PositionSide,
    SyntheticId,
    Ticker,
    Trade,
    Transfer,
    pnl_percent,
)

# Spot balances at or below this total are dust and not reported.
DUST_THRESHOLD = 0.00001


def _num(v: Any, default: float = 0.0) -> float:
    if v is None or v == "":
        return default
    try:
        return float(v)
    except (TypeError, ValueError):
        return default


def _opt_num(v: Any) -> float | None:
    if v is None or v == "":
        return None
    try:
        return float(v)
    except (TypeError, ValueError):
        return None


def _int(v: Any) -> int:
    try:
        return int(v or 0)
    except (TypeError, ValueError):
        return 0


def _id(v: Any, kind: str) -> str:
    if v is None or v == "":
        return SyntheticId.new(kind)
    return str(v)


def _data_rows(payload: Any) -> list[dict]:
    """Futures endpoints wrap rows as {"success": true, "code": 0, "data": [...]}."""
    if not isinstance(payload, dict):
        return []
    data = payload.get("data")
    if not isinstance(data, list):
        return []
    return [row for row in data if isinstance(row, dict)]


def norm_ticker(symbol: str, raw: dict) -> Ticker:
    return Ticker(
        symbol=symbol.upper(),
        price=_num(raw.get("lastPrice")),
        change_24h=_num(raw.get("priceChangePercent")),
        volume=_num(raw.get("volume")),
        timestamp=int(time.time() * 1000),
    )


def norm_spot_balances(payload: Any) -> tuple[Balance, ...]:
    rows = payload.get("balances") if isinstance(payload, dict) else None
    out: list[Balance] = []
    for b in rows or []:
        free = _num(b.get("free"))
        locked = _num(b.get("locked"))
        total = free + locked
        if total <= DUST_THRESHOLD:
            continue
        out.append(Balance(asset=str(b.get("asset") or ""), available=free, frozen=locked, total=total))
    return tuple(out)


def norm_futures_balances(payload: Any) -> tuple[Balance, ...]:
    return tuple(
        Balance(
            asset=str(b.get("currency") or ""),
            available=_num(b.get("availableBalance")),
            frozen=_num(b.get("frozenBalance")),
            total=_num(b.get("balance")),
        )
        for b in _data_rows(payload)
    )


def norm_position(raw: dict) -> Position:
    unrealized = _num(raw.get("unrealizedPnl"))
    margin = _num(raw.get("margin"))
    # positionType: 1 = long, 2 = short.
    side = PositionSide.LONG if _int(raw.get("positionType")) == 1 else PositionSide.SHORT
    return Position(
        id=_id(raw.get("positionId"), "pos"),
        symbol=str(raw.get("symbol") or ""),
        side=side,
        entry_price=_num(raw.get("holdAvgPrice")),
        current_price=_num(raw.get("fairPrice")),
        leverage=_num(raw.get("leverage")),
        pnl=unrealized,
        pnl_percent=pnl_percent(unrealized, margin),
        margin=margin,
        liquidation_price=_opt_num(raw.get("liquidatePrice")),
    )


def norm_positions(payload: Any) -> tuple[Position, ...]:
    return tuple(norm_position(p) for p in _data_rows(payload))


def norm_open_orders(payload: Any) -> tuple[Order, ...]:
    return tuple(
        Order(
            order_id=_id(o.get("orderId"), "ord"),
            symbol=str(o.get("symbol") or ""),
            price=_num(o.get("price")),
            quantity=_num(o.get("vol")),
            side="BUY" if _int(o.get("side")) == 1 else "SELL",
            type="LIMIT" if _int(o.get("type")) == 1 else "MARKET",
            status="OPEN",
            create_time=_int(o.get("createTime")),
        )
        for o in _data_rows(payload)
    )


def norm_trade_history(payload: Any) -> tuple[Trade, ...]:
    return tuple(
        Trade(
            id=_id(t.get("orderId"), "trd"),
            symbol=str(t.get("symbol") or ""),
            price=_num(t.get("avgPrice")),
            quantity=_num(t.get("vol")),
            side="BUY" if _int(t.get("side")) == 1 else "SELL",
            pnl=_num(t.get("realisedPnl")),
            time=_int(t.get("updateTime")),
        )
        for t in _data_rows(payload)
    )


def norm_deposits(payload: Any) -> tuple[Transfer, ...]:
    # The spot deposit history endpoint returns a bare JSON array.
    if not isinstance(payload, list):
        return ()
    return tuple(
        Transfer(
            id=_id(t.get("id"), "dep"),
            asset=str(t.get("coin") or ""),
            amount=_num(t.get("amount")),
            type="DEPOSIT",
            status="SUCCESS" if _int(t.get("status")) == 1 else "PENDING",
            timestamp=_int(t.get("insertTime")),
        )
        for t in payload
        if isinstance(t, dict)
    )
