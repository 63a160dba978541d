from __future__ import annotations

from dataclasses import dataclass, field, fields
from typing import Any

PROVIDERS = ("gemini", "openai", "deepseek")

# Nested config document layout: section -> {key in section: TradingConfig field}.
CONFIG_LAYOUT: dict[str, dict[str, str]] = {
    "ai": {
        "provider": "ai_provider",
        "gemini_api_key": "gemini_api_key",
        "openai_api_key": "openai_api_key",
        "deepseek_api_key": "deepseek_api_key",
        "gemini_model": "gemini_model",
        "openai_model": "openai_model",
        "deepseek_model": "deepseek_model",
    },
    "exchange": {
        "api_key": "exchange_api_key",
        "secret_key": "exchange_secret_key",
        "forwarding_url": "forwarding_url",
    },
    "trading": {
        "symbol": "trading_symbol",
        "leverage": "default_leverage",
        "risk_percent": "risk_percent",
        "auto_trading": "auto_trading",
        "interval_minutes": "interval_minutes",
        "live_mode": "live_mode",
    },
    "engine": {
        "market_poll_seconds": "market_poll_seconds",
        "account_sync_seconds": "account_sync_seconds",
        "request_timeout_seconds": "request_timeout_seconds",
        "analysis_timeout_seconds": "analysis_timeout_seconds",
    },
}

SECRET_FIELDS = frozenset(
    {"gemini_api_key", "openai_api_key", "deepseek_api_key", "exchange_api_key", "exchange_secret_key"}
)


@dataclass(frozen=True)
class TradingConfig:
    """
    Immutable configuration snapshot.

    Edits never touch an existing instance; they produce a new one (see
    `src.utils.runtime_config.apply_config_patch`). A trading cycle reads one instance and
    uses it from start to finish.
    """

    ai_provider: str = "gemini"
    gemini_api_key: str = field(default="", repr=False)
    openai_api_key: str = field(default="", repr=False)
    deepseek_api_key: str = field(default="", repr=False)
    gemini_model: str = "gemini-2.5-pro"
    openai_model: str = "gpt-4o"
    deepseek_model: str = "deepseek-chat"

    exchange_api_key: str = field(default="", repr=False)
    exchange_secret_key: str = field(default="", repr=False)
    forwarding_url: str = ""

    trading_symbol: str = "BTCUSDT"
    default_leverage: int = 10
    risk_percent: float = 2.0
    auto_trading: bool = False
    interval_minutes: float = 1.0
    live_mode: bool = False

    market_poll_seconds: float = 5.0
    account_sync_seconds: float = 20.0
    request_timeout_seconds: float = 10.0
    analysis_timeout_seconds: float = 120.0

    @property
    def has_exchange_credentials(self) -> bool:
        return bool(self.exchange_api_key and self.exchange_secret_key)

    @property
    def interval_seconds(self) -> float:
        return float(self.interval_minutes) * 60.0

    def provider_key(self, provider: str | None = None) -> str:
        name = (provider or self.ai_provider or "").strip().lower()
        return {
            "gemini": self.gemini_api_key,
            "openai": self.openai_api_key,
            "deepseek": self.deepseek_api_key,
        }.get(name, "")

    def provider_model(self, provider: str | None = None) -> str:
        name = (provider or self.ai_provider or "").strip().lower()
        return {
            "gemini": self.gemini_model,
            "openai": self.openai_model,
            "deepseek": self.deepseek_model,
        }.get(name, "")

    def to_dict(self, *, redact: bool = True) -> dict[str, Any]:
        out: dict[str, Any] = {}
        for section, keys in CONFIG_LAYOUT.items():
            sec: dict[str, Any] = {}
            for key, attr in keys.items():
                value = getattr(self, attr)
                if redact and attr in SECRET_FIELDS:
                    value = "***" if value else ""
                sec[key] = value
            out[section] = sec
        return out

    @classmethod
    def from_dict(cls, doc: dict[str, Any]) -> TradingConfig:
        """Build from a nested config document; unknown keys are ignored, missing keys keep defaults."""
        known = {f.name: f for f in fields(cls)}
        kwargs: dict[str, Any] = {}
        for section, keys in CONFIG_LAYOUT.items():
            sec = doc.get(section) or {}
            if not isinstance(sec, dict):
                raise ValueError(f"Config section '{section}' must be a mapping")
            for key, attr in keys.items():
                if key not in sec or sec[key] is None:
                    continue
                kwargs[attr] = _coerce(known[attr].type, sec[key])
        if "ai_provider" in kwargs:
            kwargs["ai_provider"] = kwargs["ai_provider"].lower()
        if "trading_symbol" in kwargs:
            kwargs["trading_symbol"] = kwargs["trading_symbol"].upper()
        return cls(**kwargs)


def _coerce(annotation: Any, value: Any) -> Any:
    # Field annotations are strings under postponed evaluation.
    t = str(annotation)
    if t == "bool":
        if isinstance(value, str):
            return value.strip().lower() in ("1", "true", "yes", "y", "on")
        return bool(value)
    if t == "int":
        return int(value)
    if t == "float":
        return float(value)
    return "" if value is None else str(value).strip()
