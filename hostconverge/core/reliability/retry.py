"""
Bounded retries with exponential backoff + jitter.

Used by actions whose failures are often transient (package index
fetches, pip downloads, URL reachability). The runner itself never
retries; an action that gives up reports failure normally.
"""

from __future__ import annotations

import logging
import random
import time
from collections.abc import Callable
from typing import TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


def backoff_delay(attempt: int, base_delay: float = 1.0, max_delay: float = 30.0) -> float:
    """Delay before retry number ``attempt`` (1-based), with up to 30% jitter."""
    delay = min(base_delay * (2 ** (attempt - 1)), max_delay)
    return delay + random.uniform(0, delay * 0.3)


def retry_call(
    fn: Callable[[], T],
    succeeded: Callable[[T], bool],
    *,
    attempts: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 30.0,
    label: str = "",
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Call ``fn`` until ``succeeded(result)`` or attempts run out.

    Returns:
        The last result (successful or not).
    """
    attempts = max(1, attempts)
    result = fn()
    for attempt in range(1, attempts):
        if succeeded(result):
            return result
        delay = backoff_delay(attempt, base_delay, max_delay)
        logger.info(
            "%s failed (attempt %d/%d), retrying in %.1fs",
            label or "operation", attempt, attempts, delay,
        )
        sleep(delay)
        result = fn()
    return result
