# services/api/core/engine.py
"""
Bounded execution for the rendering/conversion engines.

The engines (fpdf2, pdfium, Pillow) are CPU bound and synchronous, so they run
in a worker thread. A thread cannot be killed, so on timeout we raise a cancel
flag the worker checks between pages, then wait (bounded) for it to unwind and
clean its temp files before the RenderTimeout reaches the caller.
"""
from __future__ import annotations

import asyncio
import functools
import logging
import threading
from typing import Any, Callable, TypeVar

from core.errors import RenderTimeout

logger = logging.getLogger(__name__)

T = TypeVar("T")


class EngineCancelled(Exception):
    """Raised inside a worker when its caller has given up on it."""


class CancelToken:
    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise EngineCancelled()


async def run_bounded(
    fn: Callable[..., T],
    *args: Any,
    timeout: float,
    settle_timeout: float,
    what: str,
) -> T:
    """
    Run fn(*args, cancel=CancelToken) in the default executor with a hard timeout.

    Raises RenderTimeout after `timeout` seconds, once the worker has settled
    (or `settle_timeout` more seconds have passed). Any other exception from
    fn propagates unchanged.
    """
    loop = asyncio.get_running_loop()
    token = CancelToken()
    future = loop.run_in_executor(None, functools.partial(fn, *args, cancel=token))

    try:
        return await asyncio.wait_for(asyncio.shield(future), timeout=timeout)
    except asyncio.TimeoutError:
        token.cancel()
        logger.warning(f"{what} exceeded {timeout:.0f}s, cancelling")

        done, _ = await asyncio.wait({future}, timeout=settle_timeout)
        if not done:
            logger.error(f"{what} did not settle within {settle_timeout:.0f}s after cancel")
            future.add_done_callback(lambda f: f.cancelled() or f.exception())
        else:
            exc = future.exception()
            if exc is not None and not isinstance(exc, EngineCancelled):
                logger.warning(f"{what} ended with {type(exc).__name__} after cancel: {exc}")

        raise RenderTimeout(f"{what} did not finish within {timeout:.0f}s") from None
