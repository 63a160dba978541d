import time

import pytest

from src.domain.models import SyncStatus, TradeDecision
from src.domain.settings import TradingConfig
from src.trader.runner import TradingEngine

from conftest import FakeGateway, FakeProvider


def _wait_for(pred, timeout=2.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if pred():
            return True
        time.sleep(0.01)
    return False


def _engine(**overrides):
    cfg = TradingConfig(
        exchange_api_key="k",
        exchange_secret_key="s",
        market_poll_seconds=0.02,
        account_sync_seconds=0.05,
        **overrides,
    )
    return TradingEngine(cfg, gateway=FakeGateway(), provider=FakeProvider(TradeDecision.wait("hold")))


def test_start_polls_market_and_stop_halts_everything():
    eng = _engine()
    eng.start()
    try:
        assert _wait_for(lambda: eng.market.snapshot is not None)
        assert eng.market_task.is_running
        assert not eng.account_task.is_running
        assert not eng.trading_task.is_running
    finally:
        eng.stop()
    assert not eng.market_task.is_running
    assert eng.events.recent(1)[0].message == "Engine stopped"


def test_session_grant_and_revoke_drive_account_sync():
    eng = _engine()
    eng.start()
    try:
        eng.session.authorize()
        assert _wait_for(lambda: eng.account.status is SyncStatus.CONNECTED)
        assert eng.account_task.is_running

        eng.session.revoke()
        assert not eng.account_task.is_running
        assert eng.account.status is SyncStatus.DISCONNECTED
    finally:
        eng.stop()


def test_auto_trading_toggle_arms_and_disarms_trading_task():
    eng = _engine()
    eng.start()
    try:
        eng.update_config({"trading": {"auto_trading": True, "interval_minutes": 0.001}})
        assert eng.trading_task.is_running
        assert eng.trading_task.interval_seconds == pytest.approx(0.06)
        assert _wait_for(lambda: eng.orchestrator.last_decision is not None)

        eng.update_config({"trading": {"auto_trading": False}})
        assert not eng.trading_task.is_running
    finally:
        eng.stop()


def test_poll_interval_change_rearms_market_task():
    eng = _engine()
    eng.start()
    try:
        eng.update_config({"engine": {"market_poll_seconds": 0.5}})
        assert eng.market_task.is_running
        assert eng.market_task.interval_seconds == 0.5
    finally:
        eng.stop()


def test_config_change_before_start_only_updates_intervals():
    eng = _engine()
    eng.update_config({"trading": {"auto_trading": True, "interval_minutes": 2}})
    assert eng.trading_task.interval_seconds == 120.0
    assert not eng.trading_task.is_running


def test_status_is_serialisable_summary():
    eng = _engine(live_mode=True)
    status = eng.status()
    assert status["live_mode"] is True
    assert status["running"] is False
    assert status["price"] is None
    assert status["current_side"] == "NONE"


def test_injected_dependencies_are_kept_even_when_empty():
    from src.trader.events import EventLog
    from src.trader.session import SessionGate

    log = EventLog()
    session = SessionGate()
    eng = TradingEngine(
        TradingConfig(),
        gateway=FakeGateway(),
        provider=FakeProvider(TradeDecision.wait("hold")),
        events=log,
        session=session,
    )
    assert len(log) == 0
    assert eng.events is log
    assert eng.session is session
    assert eng.market.events is log


def test_enabling_auto_trading_runs_a_cycle_right_away():
    eng = _engine()
    eng.start()
    try:
        assert _wait_for(lambda: eng.market.snapshot is not None)
        eng.update_config({"trading": {"auto_trading": True, "interval_minutes": 30}})
        assert _wait_for(lambda: eng.orchestrator.last_decision is not None)
        assert eng.trading_task.ticks >= 1
    finally:
        eng.stop()
