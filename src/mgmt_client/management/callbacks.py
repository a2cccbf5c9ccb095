from __future__ import annotations

import asyncio
import inspect
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

T = TypeVar("T")

Callback = Callable[[BaseException | None, Any], Any]

_PENDING: set[asyncio.Future[Any]] = set()


def settle(operation: Awaitable[T], callback: Callback | None = None) -> Awaitable[T] | None:
    """
    Return ``operation`` as-is, or, when a callable ``callback`` is given,
    run it on the current loop and report ``callback(error, result)`` instead.
    """
    if callback is None or not callable(callback):
        return operation

    try:
        asyncio.get_running_loop()
    except RuntimeError:
        if inspect.iscoroutine(operation):
            operation.close()
        raise RuntimeError("callback style requires a running event loop") from None

    future = asyncio.ensure_future(operation)
    _PENDING.add(future)

    def _done(fut: asyncio.Future[Any]) -> None:
        _PENDING.discard(fut)
        if fut.cancelled():
            callback(asyncio.CancelledError(), None)
            return
        error = fut.exception()
        if error is not None:
            callback(error, None)
            return
        callback(None, fut.result())

    future.add_done_callback(_done)
    return None
