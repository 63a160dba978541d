from dataclasses import replace

import main as entrypoint
import src.trader.runner as runner
from src.domain.models import TradeActionType, TradeDecision
from src.domain.settings import TradingConfig

from conftest import FakeGateway, FakeProvider


def test_parse_args_defaults_to_continuous_run():
    args = entrypoint.parse_args([])
    assert (args.once, args.simulate) == (False, False)


def test_main_forwards_flags_to_runner(monkeypatch):
    seen = {}
    monkeypatch.setattr(entrypoint, "_load_local_secrets", lambda: None)
    monkeypatch.setattr(runner, "main", lambda **kwargs: seen.update(kwargs))

    entrypoint.main(["--once", "--simulate"])

    assert seen == {"once": True, "force_simulation": True}


def test_run_single_cycle_polls_then_trades():
    gw = FakeGateway()
    decision = TradeDecision(action=TradeActionType.LONG, leverage=5, reason="momentum", confidence=80)
    engine = runner.TradingEngine(TradingConfig(auto_trading=True), gateway=gw, provider=FakeProvider(decision))

    result = runner.run_single_cycle(engine)

    assert result.status == "executed"
    assert gw.calls == ["get_ticker", "execute_trade"]
    assert not engine.started


def test_once_with_simulate_never_goes_live(monkeypatch):
    live = TradingConfig(live_mode=True, auto_trading=False)
    built = []

    class RecordingEngine(runner.TradingEngine):
        def __init__(self, config):
            super().__init__(config, gateway=FakeGateway(), provider=FakeProvider(TradeDecision.wait("hold")))
            built.append(self)

    monkeypatch.setattr(runner, "load_trading_config", lambda: live)
    monkeypatch.setattr(runner, "TradingEngine", RecordingEngine)

    runner.main(once=True, force_simulation=True)

    config = built[0].store.current()
    assert config.live_mode is False
    assert config.auto_trading is True
    assert built[0].orchestrator.last_decision.action is TradeActionType.WAIT
    assert replace(live, live_mode=False, auto_trading=True) == config
