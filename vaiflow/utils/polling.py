from __future__ import annotations

import asyncio
import logging
import random
import time
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)


def compute_backoff(attempt: int, base: float = 1.5, jitter: float = 0.5) -> float:
    """Compute exponential backoff with jitter."""
    delay = base ** attempt
    return delay + random.uniform(0, jitter)


async def wait_until(
    check: Callable[[], Awaitable[bool]],
    timeout: float,
    interval: float = 1.0,
    backoff: bool = False,
) -> bool:
    """Poll ``check`` until it returns ``True`` or ``timeout`` seconds pass.

    Returns ``False`` once the deadline has passed; the final sleep is
    clipped so the call never outlives the deadline by more than one check.
    With ``backoff`` the interval grows exponentially between checks.
    """
    deadline = time.monotonic() + timeout
    attempt = 0
    while True:
        if await check():
            return True
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            logger.debug(f"Gave up polling after {attempt + 1} checks")
            return False
        attempt += 1
        delay = interval * compute_backoff(attempt, jitter=0.0) if backoff else interval
        await asyncio.sleep(min(delay, remaining))
