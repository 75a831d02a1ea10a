"""Connection backoff.

`exponential_backoff` is an async generator used when establishing broker
connections. The first attempt is made immediately because a broker that is
already up should not delay startup; delays only separate retries after a
failure. The first retry waits `initial_delay`, and each later one multiplies
the previous delay by `multiplier`, capped at `max_delay`. Each iteration
yields the delay that preceded the attempt (0.0 for the first).

Receive and delete calls on an established connection never go through here.
"""
import asyncio
from typing import AsyncIterator


async def exponential_backoff(
    initial_delay: float,
    max_delay: float,
    multiplier: float,
    max_attempts: int,
) -> AsyncIterator[float]:
    delay = 0.0
    for attempt in range(1, max_attempts + 1):
        yield delay
        if attempt < max_attempts:
            delay = initial_delay if attempt == 1 else min(delay * multiplier, max_delay)
            await asyncio.sleep(delay)
