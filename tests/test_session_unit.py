from src.trader.session import SessionGate


def test_listeners_fire_only_on_change():
    gate = SessionGate()
    seen = []
    gate.subscribe(seen.append)

    gate.authorize()
    gate.authorize()
    gate.revoke()
    gate.revoke()

    assert seen == [True, False]
    assert gate.is_authorized is False
