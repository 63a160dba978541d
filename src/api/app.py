from __future__ import annotations

import asyncio
import json
import logging
import os
import traceback
from concurrent.futures import ThreadPoolExecutor
from typing import Any, TYPE_CHECKING

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import StreamingResponse, JSONResponse

from src.research.prompts import get_prompt_templates
from src.trader.events import MAX_EVENTS
from src.utils.config_loader import load_trading_config

if TYPE_CHECKING:
    from src.trader.runner import TradingEngine

logger = logging.getLogger(__name__)

_engine: TradingEngine | None = None

# Blocking engine calls (config listeners, manual cycles) run here, off the event loop.
_engine_executor = ThreadPoolExecutor(max_workers=4, thread_name_prefix="engine_api")

# Revoking joins the account driver (up to runner.STOP_JOIN_SECONDS), so session calls get more room.
SESSION_CALL_TIMEOUT_SECONDS = 10.0


def set_engine(engine: TradingEngine | None) -> None:
    """Attach an engine built elsewhere (the trader process or tests)."""
    global _engine
    _engine = engine


def _require_engine() -> TradingEngine:
    if _engine is None:
        raise HTTPException(status_code=503, detail="Trading engine not running")
    return _engine


def _env_flag(name: str) -> bool:
    return str(os.environ.get(name, "")).strip() in {"1", "true", "TRUE", "yes", "YES"}


app = FastAPI(
    title="Aegis Trader API",
    version="0.1.0",
)


@app.on_event("startup")
async def startup_event():
    global _engine
    if _env_flag("AEGIS_DISABLE_ENGINE"):
        logger.info("Engine startup skipped (AEGIS_DISABLE_ENGINE set).")
        return
    if _engine is not None:
        return

    # Import lazily so the API module stays importable without building the engine.
    from src.trader.runner import TradingEngine

    config = load_trading_config()
    engine = TradingEngine(config)
    if config.has_exchange_credentials:
        engine.session.authorize()
    engine.start()
    _engine = engine
    logger.info("Trading engine started (symbol=%s, live=%s)", config.trading_symbol, config.live_mode)


@app.on_event("shutdown")
async def shutdown_event():
    global _engine
    if _engine and _engine.started:
        _engine.stop()
        logger.info("Trading engine stopped")
    _engine = None


# Local dev defaults.
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173", "http://127.0.0.1:5173"],
    allow_credentials=False,
    allow_methods=["GET", "PUT", "POST"],
    allow_headers=["*"],
)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """
    Global exception handler to catch unhandled errors and return a clean JSON response.
    """
    logger.error(f"Unhandled exception: {type(exc).__name__}: {exc}")
    logger.debug(traceback.format_exc())
    return JSONResponse(
        status_code=500,
        content={
            "detail": f"Internal server error: {type(exc).__name__}",
            "message": str(exc)[:200],  # Truncate long error messages
        },
    )


async def _run_in_executor(func, *args, timeout_seconds: float = 3.0, **kwargs):
    """
    Run a blocking engine call in the thread pool; fail loudly on timeout.
    """
    loop = asyncio.get_running_loop()
    try:
        return await asyncio.wait_for(
            loop.run_in_executor(_engine_executor, lambda: func(*args, **kwargs)),
            timeout=timeout_seconds,
        )
    except asyncio.TimeoutError as e:
        raise HTTPException(status_code=504, detail=f"Engine call timed out: {func.__name__}") from e


@app.get("/api/health")
async def health() -> dict[str, Any]:
    running = bool(_engine and _engine.started)
    return {
        "status": "ok" if running else "degraded",
        "engine_running": running,
    }


@app.get("/api/status")
async def status() -> dict[str, Any]:
    return jsonable_encoder(_require_engine().status())


@app.get("/api/market")
async def market() -> dict[str, Any]:
    snapshot = _require_engine().market.snapshot
    if snapshot is None:
        raise HTTPException(status_code=404, detail="No market data yet")
    return jsonable_encoder(snapshot.to_dict())


@app.get("/api/account")
async def account() -> dict[str, Any]:
    engine = _require_engine()
    out = engine.account.snapshot.to_dict()
    out["sync_status"] = engine.account.status.value
    return jsonable_encoder(out)


@app.get("/api/decision")
async def decision() -> dict[str, Any]:
    orch = _require_engine().orchestrator
    last = orch.last_decision
    execution = orch.last_execution
    if hasattr(execution, "to_dict"):
        execution = execution.to_dict()
    return jsonable_encoder(
        {
            "state": orch.state.value,
            "decision": last.to_dict() if last else None,
            "execution": execution,
        }
    )


@app.get("/api/events")
async def events(limit: int = Query(default=MAX_EVENTS, ge=1, le=MAX_EVENTS)) -> list[dict[str, Any]]:
    return [e.to_dict() for e in _require_engine().events.recent(limit)]


@app.get("/api/config")
async def config_get() -> dict[str, Any]:
    """Current configuration; secrets are redacted."""
    return jsonable_encoder(_require_engine().store.current().to_dict())


@app.put("/api/config")
async def config_put(payload: dict[str, Any]) -> dict[str, Any]:
    """
    Apply a partial config patch (strict validation; no partial fallbacks).

    The new value takes effect from the next cycle; a running cycle keeps its snapshot.
    """
    engine = _require_engine()
    try:
        new = await _run_in_executor(engine.update_config, payload, timeout_seconds=10.0)
    except ValueError as e:
        raise HTTPException(
            status_code=400,
            detail=f"Invalid config patch: {str(e)[:200]}",
        ) from e
    return jsonable_encoder(new.to_dict())


@app.get("/api/config/prompt-templates")
async def config_prompt_templates() -> dict[str, Any]:
    """
    Built-in prompt templates used by the decision providers.

    These are the *strategy instructions* only (no OUTPUT schema), because the output format
    is enforced by the code.
    """
    return jsonable_encoder(get_prompt_templates())


@app.post("/api/cycle")
async def cycle() -> dict[str, Any]:
    """Run one trading cycle now. Returns `busy` if a cycle is already running."""
    engine = _require_engine()
    timeout = float(engine.store.current().analysis_timeout_seconds) + 30.0
    result = await _run_in_executor(engine.run_cycle_now, timeout_seconds=timeout)
    return jsonable_encoder(result.to_dict())


@app.post("/api/session/authorize")
async def session_authorize() -> dict[str, Any]:
    engine = _require_engine()
    if not engine.store.current().has_exchange_credentials:
        raise HTTPException(status_code=400, detail="MEXC API Keys are missing.")
    await _run_in_executor(engine.session.authorize, timeout_seconds=SESSION_CALL_TIMEOUT_SECONDS)
    return {"authorized": engine.session.is_authorized}


@app.post("/api/session/revoke")
async def session_revoke() -> dict[str, Any]:
    engine = _require_engine()
    await _run_in_executor(engine.session.revoke, timeout_seconds=SESSION_CALL_TIMEOUT_SECONDS)
    return {"authorized": engine.session.is_authorized}


@app.get("/api/events/stream")
async def events_stream(
    request: Request,
    after_id: int = Query(default=0, ge=0),
    poll_seconds: float = Query(default=1.0, ge=0.2, le=10.0),
):
    """
    Server-Sent Events feed of the engine's event log (oldest first after `after_id`).
    """
    engine = _require_engine()

    async def _gen():
        last_id = int(after_id)
        # Hint to clients how long to wait before reconnecting (milliseconds).
        yield "retry: 1000\n\n"
        try:
            while True:
                if await request.is_disconnected():
                    break

                new_events = engine.events.after(last_id)
                if new_events:
                    for ev in new_events:
                        last_id = ev.id
                        yield f"data: {json.dumps(ev.to_dict(), ensure_ascii=False)}\n\n"
                else:
                    yield ": keep-alive\n\n"

                await asyncio.sleep(float(poll_seconds))
        except GeneratorExit:
            return

    return StreamingResponse(
        _gen(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            # Prevent proxy buffering
            "X-Accel-Buffering": "no",
        },
    )
