from __future__ import annotations

import asyncio
import inspect
from collections.abc import Callable
from typing import Any


async def call_handler(handler: Callable[..., Any], *args: Any) -> Any:
    """Await async handlers; push sync ones to a worker thread so they cannot stall the loop.

    ``asyncio.to_thread`` copies the current context, so ContextVar-scoped values
    set by the caller stay visible inside sync handlers.
    """
    if inspect.iscoroutinefunction(handler):
        value = await handler(*args)
    else:
        value = await asyncio.to_thread(handler, *args)
    if inspect.isawaitable(value):
        value = await value
    return value
