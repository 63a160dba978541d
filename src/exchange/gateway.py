from __future__ import annotations

import json
import logging
import time
from typing import Any
from urllib.parse import quote, urlencode

import requests

from src.domain.models import (
    Balance,
    Order,
    Position,
    PositionSide,
    SyntheticId,
    Ticker,
    TradeActionType,
    Trade,
    Transfer,
)
from src.domain.settings import TradingConfig
from src.exchange import normalize
from src.exchange.errors import (
    CredentialMissing,
    ExchangeRejected,
    ForwarderActivationRequired,
    MalformedResponse,
    TransportError,
)
from src.exchange.signing import sign

logger = logging.getLogger(__name__)

FUTURES_URL = "https://fapi.mexc.com"
SPOT_URL = "https://api.mexc.com"
TICKER_URL = "https://api.binance.com/api/v3/ticker/24hr"

API_KEY_HEADER = "X-MEXC-APIKEY"

# Futures order codes.
SIDE_OPEN_LONG = 1
SIDE_CLOSE_SHORT = 2
SIDE_OPEN_SHORT = 3
SIDE_CLOSE_LONG = 4
ORDER_TYPE_MARKET = 5
OPEN_TYPE_ISOLATED = 1
ORDER_VOLUME = 1
MIN_LEVERAGE = 1
MAX_LEVERAGE = 125

# Margin attributed to a simulated fill.
SIMULATED_MARGIN = 100.0

ACTIVATION_HINT = (
    "Proxy Activation Required: Visit https://cors-anywhere.herokuapp.com/corsdemo and click the button."
)


def _ts_ms() -> int:
    return int(time.time() * 1000)


def canonical_query(params: dict[str, Any]) -> str:
    """Single serialisation of the request parameters; insertion order is preserved."""
    return urlencode([(k, str(v)) for k, v in params.items()])


def route_url(target_url: str, forwarding_url: str | None) -> str:
    """
    Apply the optional forwarding relay.

    - query style (`https://relay/?url=`): the target is percent-encoded and appended;
    - path style (`https://relay/fetch`): the raw target is appended after a slash.
    """
    relay = (forwarding_url or "").strip()
    if not relay:
        return target_url
    if "?url=" in relay:
        return f"{relay}{quote(target_url, safe='')}"
    separator = "" if relay.endswith("/") else "/"
    return f"{relay}{separator}{target_url}"


def _is_activation_page(text: str) -> bool:
    # Tied to the cors-anywhere demo relay's HTML; other relays never trigger it.
    return "cors-anywhere" in text and "corsdemo" in text


def clamp_leverage(value: Any) -> int:
    """Whole-number leverage within the exchange's accepted range."""
    return max(MIN_LEVERAGE, min(MAX_LEVERAGE, int(round(float(value)))))


def _is_error_code(code: Any) -> bool:
    return code is not None and code not in (0, 200, "0", "200")


class MexcGateway:
    """
    MEXC REST gateway (signed + public) with response classification.

    Signed calls: the parameters plus a millisecond timestamp are serialised ONCE into a
    query string; that exact string is signed and sent. The session is injectable so tests
    can observe the transmitted URL.
    """

    def __init__(
        self,
        session: requests.Session | None = None,
        *,
        futures_url: str = FUTURES_URL,
        spot_url: str = SPOT_URL,
        ticker_url: str = TICKER_URL,
    ):
        self.sess = session if session is not None else requests.Session()
        self.futures_url = futures_url.rstrip("/")
        self.spot_url = spot_url.rstrip("/")
        self.ticker_url = ticker_url

    # ---------------------------------------------------------------------
    # CORE REQUEST
    # ---------------------------------------------------------------------

    def private_request(
        self,
        base_url: str,
        endpoint: str,
        method: str,
        config: TradingConfig,
        params: dict[str, Any] | None = None,
    ) -> Any:
        if not config.exchange_api_key or not config.exchange_secret_key:
            raise CredentialMissing("MEXC API Keys are missing.")

        query = canonical_query({**(params or {}), "timestamp": _ts_ms()})
        signature = sign(query, config.exchange_secret_key)
        target_url = f"{base_url}{endpoint}?{query}&signature={signature}"
        request_url = route_url(target_url, config.forwarding_url)

        logger.debug("MEXC %s %s (forwarded=%s)", method, endpoint, bool(config.forwarding_url.strip()))
        try:
            r = self.sess.request(
                method=method,
                url=request_url,
                headers={API_KEY_HEADER: config.exchange_api_key, "Content-Type": "application/json"},
                timeout=float(config.request_timeout_seconds),
            )
        except requests.RequestException as e:
            raise TransportError(
                f"Could not reach MEXC ({type(e).__name__}). Check connectivity or set a valid forwarding URL."
            ) from e

        return self._classify(r)

    def _classify(self, r: requests.Response) -> Any:
        content_type = r.headers.get("content-type") or ""
        if "application/json" in content_type:
            try:
                result = r.json()
            except ValueError as e:
                raise MalformedResponse(f"Invalid JSON from MEXC: {r.text[:50]}") from e
            code = result.get("code") if isinstance(result, dict) else None
            if not r.ok or _is_error_code(code):
                msg = None
                if isinstance(result, dict):
                    msg = result.get("msg") or result.get("message")
                raise ExchangeRejected(
                    str(msg or f"MEXC Error {code or r.status_code}"),
                    code=code,
                    status=r.status_code,
                )
            return result

        text = r.text or ""
        if _is_activation_page(text):
            raise ForwarderActivationRequired(ACTIVATION_HINT)
        if not r.ok:
            raise TransportError(f"Proxy/Network Error: {text[:50]}...")
        try:
            return json.loads(text)
        except ValueError as e:
            raise MalformedResponse(f"Invalid JSON from Proxy: {text[:50]}") from e

    # ---------------------------------------------------------------------
    # PUBLIC
    # ---------------------------------------------------------------------

    def get_ticker(self, symbol: str, config: TradingConfig | None = None) -> Ticker:
        sym = symbol.upper()
        forwarding = config.forwarding_url if config else ""
        timeout = float(config.request_timeout_seconds) if config else 10.0
        url = route_url(f"{self.ticker_url}?symbol={sym}", forwarding)
        try:
            r = self.sess.get(url, timeout=timeout)
        except requests.RequestException as e:
            raise TransportError("Market API unreachable") from e
        if not r.ok:
            raise TransportError("Market API unreachable")
        try:
            data = r.json()
        except ValueError as e:
            raise MalformedResponse(f"Invalid ticker payload: {r.text[:50]}") from e
        return normalize.norm_ticker(sym, data)

    # ---------------------------------------------------------------------
    # ACCOUNT
    # ---------------------------------------------------------------------

    def get_spot_balance(self, config: TradingConfig) -> tuple[Balance, ...]:
        data = self.private_request(self.spot_url, "/api/v3/account", "GET", config)
        return normalize.norm_spot_balances(data)

    def get_futures_balance(self, config: TradingConfig) -> tuple[Balance, ...]:
        data = self.private_request(self.futures_url, "/futures/api/v1/private/account/assets", "GET", config)
        return normalize.norm_futures_balances(data)

    def get_open_positions(self, config: TradingConfig) -> tuple[Position, ...]:
        data = self.private_request(self.futures_url, "/futures/api/v1/private/position/open_details", "GET", config)
        return normalize.norm_positions(data)

    def get_open_orders(self, config: TradingConfig) -> tuple[Order, ...]:
        data = self.private_request(self.futures_url, "/futures/api/v1/private/order/list/open_orders", "GET", config)
        return normalize.norm_open_orders(data)

    def get_trade_history(self, config: TradingConfig) -> tuple[Trade, ...]:
        # states 3 = filled, 4 = cancelled
        data = self.private_request(
            self.futures_url,
            "/futures/api/v1/private/order/list/history_orders",
            "GET",
            config,
            {"states": "3,4"},
        )
        return normalize.norm_trade_history(data)

    def get_transfer_history(self, config: TradingConfig) -> tuple[Transfer, ...]:
        """Deposit history. Informational only: any failure yields an empty result."""
        try:
            data = self.private_request(self.spot_url, "/api/v3/capital/deposit/hisrec", "GET", config)
            return normalize.norm_deposits(data)
        except Exception as e:
            logger.debug("Transfer history unavailable: %s: %s", type(e).__name__, e)
            return ()

    # ---------------------------------------------------------------------
    # ORDERS
    # ---------------------------------------------------------------------

    def execute_trade(
        self,
        action: TradeActionType | str,
        config: TradingConfig,
        market_price: float,
        *,
        position_side: PositionSide = PositionSide.NONE,
    ) -> Any:
        """
        Simulation mode returns a locally fabricated fill (synthetic id, no network call).
        Live mode submits a fixed-size isolated market order at the configured leverage
        and returns the exchange payload.
        """
        act = TradeActionType(action)
        if act is TradeActionType.WAIT:
            raise ValueError("WAIT is not an executable action")
        lev = clamp_leverage(config.default_leverage)

        if not config.live_mode:
            side = {
                TradeActionType.LONG: PositionSide.LONG,
                TradeActionType.SHORT: PositionSide.SHORT,
            }.get(act, PositionSide.NONE)
            return Position(
                id=SyntheticId.new("sim"),
                symbol=config.trading_symbol,
                side=side,
                entry_price=float(market_price),
                current_price=float(market_price),
                leverage=lev,
                pnl=0.0,
                pnl_percent=0.0,
                margin=SIMULATED_MARGIN,
            )

        order_params = {
            "symbol": config.trading_symbol,
            "vol": ORDER_VOLUME,
            "side": self._side_code(act, position_side),
            "type": ORDER_TYPE_MARKET,
            "openType": OPEN_TYPE_ISOLATED,
            "leverage": lev,
        }
        logger.info("Submitting MEXC %s market order for %s", act.value, config.trading_symbol)
        return self.private_request(self.futures_url, "/futures/api/v1/private/order/create", "POST", config, order_params)

    @staticmethod
    def _side_code(action: TradeActionType, position_side: PositionSide) -> int:
        if action is TradeActionType.LONG:
            return SIDE_OPEN_LONG
        if action is TradeActionType.SHORT:
            return SIDE_OPEN_SHORT
        if position_side is PositionSide.LONG:
            return SIDE_CLOSE_LONG
        if position_side is PositionSide.SHORT:
            return SIDE_CLOSE_SHORT
        raise ValueError("CLOSE requested but there is no open position to close")
