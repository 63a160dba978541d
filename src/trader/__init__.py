"""
Trading engine drivers: market polling, account sync and the decision/execution cycle.

`runner.TradingEngine` wires them onto periodic tasks; `main.py` and `api_server.py` host it.
"""
