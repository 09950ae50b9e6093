"""Helpers for driving the async sync engine from synchronous callers."""

import asyncio
from collections.abc import Coroutine
from concurrent.futures import ThreadPoolExecutor
from typing import Any, TypeVar

T = TypeVar("T")


def run_async_safely(coro: Coroutine[Any, Any, T]) -> T:
    """
    Run a coroutine to completion from a sync context and return its result.

    Without a running event loop this is ``asyncio.run``.  Inside a running
    loop (e.g. a UI framework's loop or Jupyter) the coroutine is executed on
    a fresh loop in a worker thread so the caller's loop is never re-entered.
    """
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        loop = None

    if loop and loop.is_running():
        with ThreadPoolExecutor(max_workers=1, thread_name_prefix="healthhook-sync") as executor:
            return executor.submit(asyncio.run, coro).result()
    return asyncio.run(coro)
