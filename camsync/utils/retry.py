"""Retry helpers for flaky I/O."""

from __future__ import annotations

import asyncio
import functools
import logging
import random
from collections.abc import Awaitable, Callable

import httpx

logger = logging.getLogger(__name__)

RETRY_EXCEPTIONS: tuple[type[BaseException], ...] = (OSError, asyncio.TimeoutError, httpx.TransportError)


def retry_async(
    func: Callable[..., Awaitable],
    *,
    attempts: int = 3,
    base_delay: float = 1.0,
    retry_on: tuple[type[BaseException], ...] = RETRY_EXCEPTIONS,
):
    """Call ``func`` up to ``attempts`` times, backing off between tries.

    Only exceptions in ``retry_on`` are retried; the last one is re-raised.
    """

    @functools.wraps(func)
    async def wrapper(*args, **kwargs):
        delay = base_delay
        for attempt in range(1, attempts + 1):
            try:
                return await func(*args, **kwargs)
            except retry_on as exc:
                if attempt == attempts:
                    raise
                logger.warning("Attempt %s/%s failed (%s); retrying", attempt, attempts, exc)
                await asyncio.sleep(delay + random.random() * base_delay)
                delay *= 2

    return wrapper
