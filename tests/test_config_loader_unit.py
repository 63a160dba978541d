import pytest

from src.utils.config_loader import _ENV_OVERRIDES, load_config, load_trading_config


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in (*_ENV_OVERRIDES, "API_KEY"):
        monkeypatch.delenv(name, raising=False)


def _write(tmp_path, text: str):
    p = tmp_path / "config.yaml"
    p.write_text(text, encoding="utf-8")
    return p


def test_yaml_values_reach_trading_config(tmp_path):
    path = _write(
        tmp_path,
        """
ai:
  provider: DeepSeek
trading:
  symbol: ethusdt
  leverage: 7
  auto_trading: true
engine:
  market_poll_seconds: 2
""",
    )
    cfg = load_trading_config(path, force_reload=True)
    assert cfg.ai_provider == "deepseek"
    assert cfg.trading_symbol == "ETHUSDT"
    assert cfg.default_leverage == 7
    assert cfg.auto_trading is True
    assert cfg.market_poll_seconds == 2.0
    assert cfg.live_mode is False


def test_environment_overrides_secrets_and_switches(tmp_path, monkeypatch):
    path = _write(tmp_path, "trading:\n  live_mode: false\n")
    monkeypatch.setenv("AEGIS_EXCHANGE_API_KEY", "mx-k")
    monkeypatch.setenv("AEGIS_EXCHANGE_SECRET_KEY", "mx-s")
    monkeypatch.setenv("AEGIS_LIVE_MODE", "true")
    monkeypatch.setenv("API_KEY", "gem")

    cfg = load_trading_config(path, force_reload=True)

    assert cfg.has_exchange_credentials
    assert cfg.live_mode is True
    assert cfg.gemini_api_key == "gem"


def test_missing_explicit_path_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "nope.yaml", force_reload=True)


def test_unknown_provider_fails_fast(tmp_path):
    path = _write(tmp_path, "ai:\n  provider: mistral\n")
    with pytest.raises(ValueError):
        load_config(path, force_reload=True)


def test_non_mapping_yaml_is_rejected(tmp_path):
    path = _write(tmp_path, "- a\n- b\n")
    with pytest.raises(ValueError):
        load_config(path, force_reload=True)


def test_loaded_config_is_a_copy(tmp_path):
    path = _write(tmp_path, "trading:\n  symbol: BTCUSDT\n")
    first = load_config(path, force_reload=True)
    first["trading"]["symbol"] = "MUTATED"
    assert load_config(path)["trading"]["symbol"] == "BTCUSDT"
