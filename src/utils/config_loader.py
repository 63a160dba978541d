from __future__ import annotations

import logging
import os
import threading
from copy import deepcopy
from pathlib import Path
from typing import Any

import yaml

from src.domain.settings import PROVIDERS, TradingConfig

logger = logging.getLogger(__name__)

_cache_lock = threading.Lock()
_cached: dict[str, Any] | None = None
_cached_path: str | None = None

# Environment variable -> (section, key). Secrets normally arrive this way (config/secrets.env).
_ENV_OVERRIDES: dict[str, tuple[str, str]] = {
    "AEGIS_AI_PROVIDER": ("ai", "provider"),
    "GEMINI_API_KEY": ("ai", "gemini_api_key"),
    "OPENAI_API_KEY": ("ai", "openai_api_key"),
    "DEEPSEEK_API_KEY": ("ai", "deepseek_api_key"),
    "AEGIS_EXCHANGE_API_KEY": ("exchange", "api_key"),
    "AEGIS_EXCHANGE_SECRET_KEY": ("exchange", "secret_key"),
    "AEGIS_FORWARDING_URL": ("exchange", "forwarding_url"),
    "AEGIS_TRADING_SYMBOL": ("trading", "symbol"),
    "AEGIS_AUTO_TRADING": ("trading", "auto_trading"),
    "AEGIS_LIVE_MODE": ("trading", "live_mode"),
    "AEGIS_INTERVAL_MINUTES": ("trading", "interval_minutes"),
}


def _project_root() -> Path:
    # src/utils/config_loader.py -> src/utils -> src -> project root
    return Path(__file__).resolve().parents[2]


def default_config_path() -> Path:
    return _project_root() / "config" / "config.yaml"


def _apply_env_overrides(cfg: dict[str, Any]) -> None:
    """Override selected YAML settings with environment variables."""
    for env_name, (section, key) in _ENV_OVERRIDES.items():
        value = os.getenv(env_name)
        if value:
            cfg.setdefault(section, {})[key] = value

    # Generic key used by hosted Gemini setups.
    ai = cfg.setdefault("ai", {})
    if not ai.get("gemini_api_key") and os.getenv("API_KEY"):
        ai["gemini_api_key"] = os.environ["API_KEY"]


def validate_config(cfg: dict[str, Any]) -> None:
    """
    Fail fast if the configuration is unusable.
    Keep this minimal and pragmatic; detailed value checks live in runtime_config.
    """
    for section in ("ai", "exchange", "trading"):
        sec = cfg.get(section)
        if sec is not None and not isinstance(sec, dict):
            raise ValueError(f"Config section '{section}' must be a mapping")

    provider = str((cfg.get("ai") or {}).get("provider") or "gemini").strip().lower()
    if provider not in PROVIDERS:
        raise ValueError(f"Unsupported ai.provider: {provider}")

    trading = cfg.get("trading") or {}
    if "interval_minutes" in trading and float(trading["interval_minutes"]) <= 0:
        raise ValueError("trading.interval_minutes must be > 0")
    if "leverage" in trading and int(trading["leverage"]) < 1:
        raise ValueError("trading.leverage must be >= 1")


def load_config(config_path: str | Path | None = None, *, force_reload: bool = False) -> dict[str, Any]:
    """
    Load the YAML config once and reuse it across the process.

    - Reads `config/config.yaml` by default; a missing default file yields built-in defaults.
    - Applies environment overrides (credentials, mode switches).
    - Returns a deep copy so callers can safely mutate local copies.
    """
    global _cached, _cached_path

    path = Path(config_path) if config_path else default_config_path()
    path_str = str(path.resolve())

    with _cache_lock:
        if not force_reload and _cached is not None and _cached_path == path_str:
            return deepcopy(_cached)

        if path.exists():
            with path.open("r", encoding="utf-8") as f:
                cfg = yaml.safe_load(f) or {}
        elif config_path:
            raise FileNotFoundError(f"Config file not found: {path}")
        else:
            logger.warning("No config file at %s; using built-in defaults", path_str)
            cfg = {}

        if not isinstance(cfg, dict):
            raise ValueError(f"Config must be a YAML mapping (dict); got {type(cfg).__name__}")

        _apply_env_overrides(cfg)
        validate_config(cfg)

        _cached = cfg
        _cached_path = path_str
        logger.info("Loaded config from %s", path_str)
        return deepcopy(cfg)


def load_trading_config(config_path: str | Path | None = None, *, force_reload: bool = False) -> TradingConfig:
    return TradingConfig.from_dict(load_config(config_path, force_reload=force_reload))
