from __future__ import annotations

import logging
import threading
from copy import deepcopy
from typing import Any, Callable

from src.domain.settings import PROVIDERS, TradingConfig

logger = logging.getLogger(__name__)

ConfigListener = Callable[[TradingConfig, TradingConfig], None]


def _is_number(v: Any) -> bool:
    return isinstance(v, (int, float)) and not isinstance(v, bool)


def _flatten_patch(patch: dict[str, Any], *, prefix: str = "") -> list[tuple[str, Any]]:
    out: list[tuple[str, Any]] = []
    for k, v in patch.items():
        key = f"{prefix}.{k}" if prefix else str(k)
        if isinstance(v, dict):
            out.extend(_flatten_patch(v, prefix=key))
        else:
            out.append((key, v))
    return out


def _raise(msg: str) -> None:
    raise ValueError(msg)


def _validate_bool(v: Any, *, name: str) -> None:
    if not isinstance(v, bool):
        raise ValueError(f"{name} must be boolean")


def _validate_string(v: Any, *, name: str, max_len: int = 512) -> None:
    if not isinstance(v, str):
        raise ValueError(f"{name} must be a string")
    if len(v) > max_len:
        raise ValueError(f"{name} is too long (max {max_len} characters)")


def _validate_non_empty_string(v: Any, *, name: str) -> None:
    _validate_string(v, name=name)
    if not v.strip():
        raise ValueError(f"{name} must be a non-empty string")


def _validate_positive_number(v: Any, *, name: str) -> None:
    if not _is_number(v):
        raise ValueError(f"{name} must be a number")
    if float(v) <= 0:
        raise ValueError(f"{name} must be > 0")


def _validate_int_range(v: Any, *, name: str, lo: int, hi: int) -> None:
    if not isinstance(v, int) or isinstance(v, bool):
        raise ValueError(f"{name} must be an integer")
    if v < lo or v > hi:
        raise ValueError(f"{name} must be between {lo} and {hi}")


def _validate_percent(v: Any, *, name: str) -> None:
    if not _is_number(v):
        raise ValueError(f"{name} must be a number")
    if float(v) <= 0 or float(v) > 100:
        raise ValueError(f"{name} must be within (0, 100]")


def _validate_provider(v: Any) -> None:
    if not isinstance(v, str) or v.strip().lower() not in PROVIDERS:
        raise ValueError(f"ai.provider must be one of: {', '.join(PROVIDERS)}")


def _validate_forwarding_url(v: Any) -> None:
    _validate_string(v, name="exchange.forwarding_url")
    vv = v.strip()
    if vv and not (vv.startswith("http://") or vv.startswith("https://")):
        raise ValueError("exchange.forwarding_url must be an http(s) URL or empty")


_ALLOWED_PATCH_VALIDATORS: dict[str, Callable[[Any], Any]] = {
    # AI
    "ai.provider": _validate_provider,
    "ai.gemini_api_key": lambda v: _validate_string(v, name="ai.gemini_api_key"),
    "ai.openai_api_key": lambda v: _validate_string(v, name="ai.openai_api_key"),
    "ai.deepseek_api_key": lambda v: _validate_string(v, name="ai.deepseek_api_key"),
    "ai.gemini_model": lambda v: _validate_non_empty_string(v, name="ai.gemini_model"),
    "ai.openai_model": lambda v: _validate_non_empty_string(v, name="ai.openai_model"),
    "ai.deepseek_model": lambda v: _validate_non_empty_string(v, name="ai.deepseek_model"),
    # Exchange
    "exchange.api_key": lambda v: _validate_string(v, name="exchange.api_key"),
    "exchange.secret_key": lambda v: _validate_string(v, name="exchange.secret_key"),
    "exchange.forwarding_url": _validate_forwarding_url,
    # Trading
    "trading.symbol": lambda v: (isinstance(v, str) and v.strip().isalnum()) or _raise("trading.symbol must be alphanumeric"),
    "trading.leverage": lambda v: _validate_int_range(v, name="trading.leverage", lo=1, hi=125),
    "trading.risk_percent": lambda v: _validate_percent(v, name="trading.risk_percent"),
    "trading.auto_trading": lambda v: _validate_bool(v, name="trading.auto_trading"),
    "trading.interval_minutes": lambda v: _validate_positive_number(v, name="trading.interval_minutes"),
    "trading.live_mode": lambda v: _validate_bool(v, name="trading.live_mode"),
    # Engine
    "engine.market_poll_seconds": lambda v: _validate_positive_number(v, name="engine.market_poll_seconds"),
    "engine.account_sync_seconds": lambda v: _validate_positive_number(v, name="engine.account_sync_seconds"),
    "engine.request_timeout_seconds": lambda v: _validate_positive_number(v, name="engine.request_timeout_seconds"),
    "engine.analysis_timeout_seconds": lambda v: _validate_positive_number(v, name="engine.analysis_timeout_seconds"),
}


def validate_config_patch(patch: dict[str, Any]) -> None:
    if not isinstance(patch, dict):
        raise ValueError(f"config patch must be an object; got {type(patch).__name__}")
    # Disallow unknown keys; keeps the system predictable.
    for path, value in _flatten_patch(patch):
        validator = _ALLOWED_PATCH_VALIDATORS.get(path)
        if validator is None:
            raise ValueError(f"Unsupported config key: {path}")
        validator(value)


def deep_merge(base: dict[str, Any], patch: dict[str, Any]) -> dict[str, Any]:
    out: dict[str, Any] = deepcopy(base)
    for k, v in patch.items():
        if isinstance(v, dict) and isinstance(out.get(k), dict):
            out[k] = deep_merge(out[k], v)  # type: ignore[arg-type]
        else:
            out[k] = deepcopy(v)
    return out


def apply_config_patch(config: TradingConfig, patch: dict[str, Any]) -> TradingConfig:
    """Validate a nested patch and return a NEW config; `config` itself is never modified."""
    validate_config_patch(patch)
    merged = deep_merge(config.to_dict(redact=False), patch)
    return TradingConfig.from_dict(merged)


class ConfigStore:
    """
    Holds the current configuration value.

    Readers get whole immutable snapshots; writers replace the reference under a lock and
    listeners are told about (old, new) after the swap.
    """

    def __init__(self, config: TradingConfig):
        self._lock = threading.Lock()
        self._config = config
        self._listeners: list[ConfigListener] = []

    def current(self) -> TradingConfig:
        with self._lock:
            return self._config

    def subscribe(self, listener: ConfigListener) -> None:
        self._listeners.append(listener)

    def update(self, patch: dict[str, Any]) -> TradingConfig:
        with self._lock:
            old = self._config
            new = apply_config_patch(old, patch)
            self._config = new
        self._notify(old, new)
        return new

    def replace(self, config: TradingConfig) -> TradingConfig:
        with self._lock:
            old = self._config
            self._config = config
        self._notify(old, config)
        return config

    def _notify(self, old: TradingConfig, new: TradingConfig) -> None:
        if old == new:
            return
        for listener in list(self._listeners):
            try:
                listener(old, new)
            except Exception as e:
                logger.error("Config listener failed: %s: %s", type(e).__name__, e)
