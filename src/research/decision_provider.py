import json
import logging
import math
import threading
from dataclasses import dataclass
from typing import Any, Callable

from openai import OpenAI
from openai import APIConnectionError, APIStatusError, APITimeoutError, RateLimitError

from src.domain.models import MarketSnapshot, PositionSide, TradeActionType, TradeDecision
from src.domain.settings import TradingConfig
from src.research.prompts import (
    TRADE_DECISION_SCHEMA,
    build_trade_decision_system_prompt,
    build_trade_decision_user_prompt,
)

logger = logging.getLogger(__name__)

# Constants for API resilience
OPENAI_TIMEOUT_SECONDS = 60
OPENAI_MAX_RETRIES = 2

DECISION_FIELDS = ("action", "leverage", "reason", "confidence")


class ProviderFailure(Exception):
    """Any decision-backend failure; never escapes DecisionProvider.analyze."""


@dataclass(frozen=True)
class ProviderSpec:
    name: str
    label: str
    base_url: str | None
    structured_output: bool = False


# Every backend speaks the OpenAI chat-completions protocol.
PROVIDER_SPECS: dict[str, ProviderSpec] = {
    "openai": ProviderSpec(name="openai", label="OpenAI", base_url=None),
    "deepseek": ProviderSpec(name="deepseek", label="DeepSeek", base_url="https://api.deepseek.com"),
    "gemini": ProviderSpec(
        name="gemini",
        label="Gemini",
        base_url="https://generativelanguage.googleapis.com/v1beta/openai/",
        structured_output=True,
    ),
}


class ProviderClientFactory:
    """
    Builds one API client per distinct (provider, api key) pair.

    A key change produces a new client on the next call; the previous one is left for
    garbage collection.
    """

    def __init__(
        self,
        *,
        timeout_seconds: float = OPENAI_TIMEOUT_SECONDS,
        max_retries: int = OPENAI_MAX_RETRIES,
        builder: Callable[..., Any] | None = None,
    ):
        self.timeout_seconds = float(timeout_seconds)
        self.max_retries = int(max_retries)
        self._builder = builder if builder is not None else OpenAI
        self._clients: dict[tuple[str, str], Any] = {}
        self._lock = threading.Lock()

    def get(self, spec: ProviderSpec, api_key: str) -> Any:
        key = (spec.name, api_key)
        with self._lock:
            client = self._clients.get(key)
            if client is None:
                client = self._builder(
                    api_key=api_key,
                    base_url=spec.base_url,
                    timeout=self.timeout_seconds,
                    max_retries=self.max_retries,
                )
                self._clients[key] = client
            return client

    def __len__(self) -> int:
        return len(self._clients)


def parse_trade_decision(raw: str) -> TradeDecision:
    """Decode and validate a model reply into a TradeDecision (raises ProviderFailure)."""
    try:
        parsed = json.loads(raw)
    except (json.JSONDecodeError, TypeError) as exc:
        raise ProviderFailure(f"AI returned non-JSON for trade decision: {str(raw)[:120]!r}") from exc

    if not isinstance(parsed, dict):
        raise ProviderFailure(f"AI returned unexpected JSON type for trade decision: {type(parsed).__name__}")

    missing = [k for k in DECISION_FIELDS if k not in parsed]
    if missing:
        raise ProviderFailure(f"AI decision is missing field(s): {', '.join(missing)}")

    action = str(parsed.get("action") or "").strip().upper()
    if action not in TradeActionType.__members__:
        raise ProviderFailure(f"AI returned invalid action {action!r}")

    try:
        leverage = float(parsed.get("leverage"))
        confidence = float(parsed.get("confidence"))
    except (TypeError, ValueError) as exc:
        raise ProviderFailure("AI leverage/confidence must be numbers") from exc

    reason = parsed.get("reason")
    if not isinstance(reason, str):
        raise ProviderFailure("AI reason must be a string")

    if not (math.isfinite(leverage) and math.isfinite(confidence)):
        raise ProviderFailure("AI leverage/confidence must be finite numbers")
    if leverage <= 0:
        raise ProviderFailure(f"AI leverage must be positive: {leverage}")
    if not (0.0 <= confidence <= 100.0):
        raise ProviderFailure(f"AI confidence out of range: {confidence}")

    return TradeDecision(
        action=TradeActionType(action),
        leverage=leverage,
        reason=reason.strip(),
        confidence=confidence,
    )


class DecisionProvider:
    def __init__(self, client_factory: ProviderClientFactory | None = None):
        """
        Trade decision wrapper over interchangeable LLM backends.

        Backend selection comes from `config.ai_provider`; the key and model from the same
        config snapshot. `analyze` never raises: failures come back as a WAIT decision.
        """
        self.client_factory = client_factory if client_factory is not None else ProviderClientFactory()

    def analyze(self, config: TradingConfig, snapshot: MarketSnapshot, current_side: PositionSide | str) -> TradeDecision:
        try:
            return self._analyze(config, snapshot, current_side)
        except Exception as error:
            logger.error("AI Analysis Error (%s): %s", config.ai_provider, error)
            return TradeDecision.wait(f"Analysis failed: {error}")

    def _analyze(self, config: TradingConfig, snapshot: MarketSnapshot, current_side: PositionSide | str) -> TradeDecision:
        spec = PROVIDER_SPECS.get((config.ai_provider or "").strip().lower())
        if spec is None:
            raise ProviderFailure("Unsupported AI Provider")

        api_key = config.provider_key(spec.name)
        if not api_key:
            raise ProviderFailure(f"{spec.label} API Key missing. Please provide it in settings.")

        client = self.client_factory.get(spec, api_key)
        raw = self._safe_completion(
            client,
            spec,
            model=config.provider_model(spec.name),
            messages=[
                {"role": "system", "content": build_trade_decision_system_prompt()},
                {"role": "user", "content": build_trade_decision_user_prompt(snapshot, current_side)},
            ],
        )
        decision = parse_trade_decision(raw)
        logger.info(
            "AI decision for %s via %s: %s (%.0f%%)",
            snapshot.symbol,
            spec.name,
            decision.action.value,
            decision.confidence,
        )
        return decision

    def _safe_completion(self, client: Any, spec: ProviderSpec, *, model: str, messages: list) -> str:
        """
        Wrapper for chat completions with timeout and error handling.
        Returns the response content or raises ProviderFailure.
        """
        if spec.structured_output:
            response_format: dict[str, Any] = {
                "type": "json_schema",
                "json_schema": {"name": "trade_decision", "strict": True, "schema": TRADE_DECISION_SCHEMA},
            }
        else:
            response_format = {"type": "json_object"}

        try:
            response = client.chat.completions.create(
                model=model,
                messages=messages,
                response_format=response_format,
            )
        except APITimeoutError as e:
            raise ProviderFailure(f"{spec.label} API timed out after {self.client_factory.timeout_seconds}s") from e
        except APIConnectionError as e:
            raise ProviderFailure(f"Failed to connect to {spec.label} API: {e}") from e
        except RateLimitError as e:
            raise ProviderFailure(f"{spec.label} rate limit exceeded: {e}") from e
        except APIStatusError as e:
            raise ProviderFailure(f"{spec.label} API error {e.status_code}: {e.message}") from e
        except Exception as e:
            raise ProviderFailure(f"{spec.label} API error: {type(e).__name__}: {e}") from e

        try:
            return (response.choices[0].message.content or "").strip()
        except (AttributeError, IndexError, TypeError) as e:
            raise ProviderFailure(f"{spec.label} returned no choices") from e
