from src.domain.models import MAX_HISTORY
from src.domain.settings import TradingConfig
from src.exchange.errors import TransportError
from src.trader.events import EventLog
from src.trader.market_poller import MarketPoller
from src.utils.runtime_config import ConfigStore

from conftest import FakeGateway


def test_history_is_bounded_and_evicts_oldest():
    gw = FakeGateway()
    poller = MarketPoller(gw, ConfigStore(TradingConfig()))
    for i in range(MAX_HISTORY + 20):
        gw.price = float(i)
        poller.tick()

    snap = poller.snapshot
    assert len(snap.history) == MAX_HISTORY
    assert snap.history[0].price == 20.0
    assert snap.history[-1].price == float(MAX_HISTORY + 19)
    assert snap.price == float(MAX_HISTORY + 19)


def test_failure_keeps_previous_snapshot_and_logs_once():
    gw = FakeGateway(price=10.0)
    events = EventLog()
    poller = MarketPoller(gw, ConfigStore(TradingConfig()), events)
    first = poller.tick()

    gw.fail["get_ticker"] = TransportError("Market API unreachable")
    assert poller.tick() is first
    assert poller.tick() is first
    assert [e.type for e in events.recent()] == ["WARNING"]

    del gw.fail["get_ticker"]
    assert len(poller.tick().history) == 2


def test_symbol_change_resets_history():
    gw = FakeGateway()
    store = ConfigStore(TradingConfig())
    poller = MarketPoller(gw, store)
    poller.tick()
    poller.tick()

    store.update({"trading": {"symbol": "ETHUSDT"}})
    snap = poller.tick()

    assert snap.symbol == "ETHUSDT"
    assert len(snap.history) == 1


def test_published_snapshots_are_never_mutated():
    poller = MarketPoller(FakeGateway(), ConfigStore(TradingConfig()))
    a = poller.tick()
    b = poller.tick()
    assert a is not b
    assert len(a.history) == 1
