"""Aegis Trader headless entrypoint.

Runs the trading engine without the HTTP API. The engine wiring lives in
`src/trader/runner.py`; `api_server.py` hosts the same engine behind FastAPI.

    python main.py              # run until SIGINT/SIGTERM
    python main.py --once       # one poll + one trading cycle, then exit
    python main.py --simulate   # ignore live_mode from config for this run
"""

from __future__ import annotations

import argparse
from pathlib import Path

from dotenv import load_dotenv


def _load_local_secrets() -> None:
    """Load exchange / provider keys for local runs (config/secrets.env is ignored by git)."""
    env_path = Path(__file__).resolve().parent / "config" / "secrets.env"
    if env_path.exists():
        load_dotenv(env_path)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run the Aegis Trader engine headless.")
    parser.add_argument("--once", action="store_true", help="Run a single trading cycle and exit.")
    parser.add_argument(
        "--simulate",
        action="store_true",
        help="Force simulation mode for this run, whatever config/config.yaml says.",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)
    _load_local_secrets()

    from src.trader.runner import main as runner_main

    runner_main(once=args.once, force_simulation=args.simulate)


if __name__ == "__main__":
    main()
