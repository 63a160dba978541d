from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor, TimeoutError as FuturesTimeoutError
from typing import Any, Callable, TypeVar

T = TypeVar("T")


class CycleTimeout(Exception):
    """Raised when a single step of a trading cycle takes too long."""


def process_with_timeout(func: Callable[..., T], timeout_seconds: float, *args: Any, **kwargs: Any) -> T:
    """
    Execute a function with a timeout. If it takes longer than timeout_seconds, raise CycleTimeout.

    Note: this uses a thread pool; the function should be thread-safe.
    The underlying function continues running in the background if it times out.
    """
    executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="cycle-step")
    future = executor.submit(func, *args, **kwargs)
    try:
        return future.result(timeout=timeout_seconds)
    except FuturesTimeoutError as exc:
        raise CycleTimeout(f"Processing timed out after {timeout_seconds}s") from exc
    finally:
        # Do not wait for a hung call; the worker thread exits when the call returns.
        executor.shutdown(wait=False)
