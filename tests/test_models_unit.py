import time

import pytest

from src.domain.models import (
    AccountSnapshot,
    MarketSnapshot,
    PositionSide,
    SyntheticId,
    Ticker,
    TradeActionType,
    TradeDecision,
    is_synthetic,
    pnl_percent,
)
from src.trader.timeout import CycleTimeout, process_with_timeout

from conftest import make_position


def _ticker(price: float, symbol: str = "BTCUSDT") -> Ticker:
    return Ticker(symbol=symbol, price=price, change_24h=0.0, volume=0.0, timestamp=0)


def test_with_tick_returns_new_snapshot():
    first = MarketSnapshot.first(_ticker(1.0), "00:00:01")
    second = first.with_tick(_ticker(2.0), "00:00:02")
    assert [p.price for p in first.history] == [1.0]
    assert [p.price for p in second.history] == [1.0, 2.0]
    assert second.price == 2.0


def test_wait_decision_shape():
    d = TradeDecision.wait("Analysis failed: x")
    assert (d.action, d.leverage, d.confidence) == (TradeActionType.WAIT, 1, 0)


def test_pnl_percent_handles_zero_margin():
    assert pnl_percent(5.0, 50.0) == 10.0
    assert pnl_percent(5.0, 0.0) == 0.0


def test_current_side_uses_first_position():
    assert AccountSnapshot().current_side() is PositionSide.NONE
    snap = AccountSnapshot(positions=(make_position(PositionSide.SHORT), make_position(PositionSide.LONG)))
    assert snap.current_side() is PositionSide.SHORT


def test_synthetic_ids_are_recognisable():
    sid = SyntheticId.new("pos")
    assert is_synthetic(sid)
    assert is_synthetic(str(sid))
    assert not is_synthetic("123456")
    assert make_position(id=sid).to_dict()["synthetic_id"] is True


def test_process_with_timeout_raises_on_slow_call():
    with pytest.raises(CycleTimeout):
        process_with_timeout(time.sleep, 0.05, 0.5)
    assert process_with_timeout(lambda a, b: a + b, 1.0, 2, 3) == 5
