from src.domain.models import PositionSide, is_synthetic
from src.exchange import normalize


def test_spot_balances_skip_dust():
    payload = {
        "balances": [
            {"asset": "USDT", "free": "10.5", "locked": "1"},
            {"asset": "DUST", "free": "0.000001", "locked": "0"},
        ]
    }
    out = normalize.norm_spot_balances(payload)
    assert [b.asset for b in out] == ["USDT"]
    assert out[0].total == 11.5
    assert out[0].frozen == 1.0


def test_futures_balances_from_data_rows():
    payload = {"success": True, "code": 0, "data": [{"currency": "USDT", "availableBalance": 5, "frozenBalance": 1, "balance": 6}]}
    (b,) = normalize.norm_futures_balances(payload)
    assert (b.asset, b.available, b.frozen, b.total) == ("USDT", 5.0, 1.0, 6.0)


def test_position_side_and_pnl_percent():
    raw = {
        "positionId": 99,
        "symbol": "BTC_USDT",
        "positionType": 2,
        "holdAvgPrice": "50000",
        "fairPrice": "49000",
        "leverage": 10,
        "unrealizedPnl": 5,
        "margin": 50,
        "liquidatePrice": "55000",
    }
    p = normalize.norm_position(raw)
    assert p.side is PositionSide.SHORT
    assert p.id == "99"
    assert p.pnl_percent == 10.0
    assert p.liquidation_price == 55000.0


def test_position_with_zero_margin_has_zero_percent():
    p = normalize.norm_position({"positionType": 1, "unrealizedPnl": 3, "margin": 0})
    assert p.side is PositionSide.LONG
    assert p.pnl_percent == 0.0


def test_missing_ids_become_synthetic():
    (o,) = normalize.norm_open_orders({"data": [{"symbol": "BTC_USDT", "side": 1, "type": 1, "price": 1, "vol": 2}]})
    assert is_synthetic(o.order_id)
    assert (o.side, o.type, o.status) == ("BUY", "LIMIT", "OPEN")


def test_trade_history_fields():
    (t,) = normalize.norm_trade_history(
        {"data": [{"orderId": "7", "symbol": "BTC_USDT", "avgPrice": 100, "vol": 3, "side": 3, "realisedPnl": -2, "updateTime": 10}]}
    )
    assert (t.id, t.price, t.quantity, t.side, t.pnl, t.time) == ("7", 100.0, 3.0, "SELL", -2.0, 10)


def test_unexpected_shapes_yield_empty():
    assert normalize.norm_positions({"data": None}) == ()
    assert normalize.norm_positions(["not", "a", "dict"]) == ()
    assert normalize.norm_deposits({"data": []}) == ()


def test_deposits_status():
    out = normalize.norm_deposits([{"id": "d1", "coin": "USDT", "amount": "10", "status": 1, "insertTime": 5}, {"coin": "BTC", "status": 0}])
    assert out[0].status == "SUCCESS"
    assert out[1].status == "PENDING"
    assert is_synthetic(out[1].id)
