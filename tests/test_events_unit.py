import logging

import pytest

from src.trader.events import EventLog


def test_events_are_newest_first_and_bounded():
    log = EventLog(max_events=3)
    for i in range(5):
        log.log_event("INFO", f"m{i}")
    assert [e.message for e in log.recent()] == ["m4", "m3", "m2"]
    assert len(log) == 3
    assert [e.message for e in log.recent(1)] == ["m4"]


def test_after_returns_oldest_first_for_streaming():
    log = EventLog()
    a = log.log_event("INFO", "a")
    log.log_event("TRADE", "b")
    log.log_event("error", "c")
    out = log.after(a.id)
    assert [(e.type, e.message) for e in out] == [("TRADE", "b"), ("ERROR", "c")]
    assert out[0].id < out[1].id


def test_unknown_type_is_rejected():
    with pytest.raises(ValueError):
        EventLog().log_event("DEBUG", "x")


def test_events_are_mirrored_to_logging(caplog):
    with caplog.at_level(logging.INFO, logger="src.trader.events"):
        EventLog().log_event("WARNING", "careful")
    assert any("careful" in r.getMessage() and r.levelno == logging.WARNING for r in caplog.records)
