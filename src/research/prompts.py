from __future__ import annotations

import json
from typing import Any

from src.domain.models import MarketSnapshot, PositionSide

# Number of recent price samples shown to the model.
PROMPT_HISTORY_POINTS = 10

TRADE_DECISION_BASE_LINES: list[str] = [
    "You are a disciplined crypto futures trader managing a single leveraged position.",
    "",
    "=== YOUR OBJECTIVE ===",
    "Analyze the current market data and decide on a leverage trading action.",
    "If we have an active position, decide if we should CLOSE it based on market shifts.",
    "If we don't have a position, decide whether to go LONG, SHORT, or WAIT.",
    "Maximum recommended leverage is 20x for safety.",
    "",
    "=== DATA PROVIDED ===",
    "You'll receive: symbol, current price, 24h change, 24h volume,",
    "the most recent price samples and the side of the currently open position (NONE if flat).",
    "",
]

TRADE_DECISION_OUTPUT_LINES: list[str] = [
    "=== OUTPUT ===",
    "Respond ONLY in JSON format:",
    "  action: LONG | SHORT | CLOSE | WAIT",
    "  leverage: number",
    "  reason: string",
    "  confidence: number (0-100)",
]

# JSON schema used by providers that support constrained output.
TRADE_DECISION_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "action": {"type": "string", "enum": ["LONG", "SHORT", "CLOSE", "WAIT"]},
        "leverage": {"type": "number"},
        "reason": {"type": "string"},
        "confidence": {"type": "number"},
    },
    "required": ["action", "leverage", "reason", "confidence"],
    "additionalProperties": False,
}


def build_trade_decision_system_prompt() -> str:
    lines = list(TRADE_DECISION_BASE_LINES)
    lines.extend(TRADE_DECISION_OUTPUT_LINES)
    return "\n".join(lines)


def build_trade_decision_user_prompt(snapshot: MarketSnapshot, current_side: PositionSide | str) -> str:
    """Market payload handed to every provider; identical across backends."""
    side = current_side.value if isinstance(current_side, PositionSide) else str(current_side)
    history = [p.to_dict() for p in snapshot.history[-PROMPT_HISTORY_POINTS:]]
    return "\n".join(
        [
            f"Analyze the current market data for {snapshot.symbol}.",
            f"Current Price: ${snapshot.price}",
            f"24h Change: {snapshot.change_24h}%",
            f"24h Volume: {snapshot.volume}",
            f"Recent Price History: {json.dumps(history)}",
            f"Current Active Position: {side}",
        ]
    )


def get_prompt_templates() -> dict[str, str]:
    """Strategy instructions only; the output schema is enforced by the code."""
    return {"trade_decision": "\n".join(TRADE_DECISION_BASE_LINES)}
