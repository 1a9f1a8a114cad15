from __future__ import annotations

import asyncio
import random


def compute_backoff(attempt: int, base: float = 1.5, jitter: float = 0.5) -> float:
    """Compute exponential backoff with jitter for the given 1-based attempt."""
    delay = base ** attempt
    return delay + random.uniform(0, jitter)


async def schedule_retry(attempt: int, base: float = 1.5, jitter: float = 0.5) -> float:
    """Sleep for computed backoff delay before retrying; return the delay."""
    delay = compute_backoff(attempt, base, jitter)
    await asyncio.sleep(delay)
    return delay
