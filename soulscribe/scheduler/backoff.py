"""Retry delay for failed generation attempts."""

import random
from typing import Optional


def compute_backoff(
    attempt: int,
    base_delay: float,
    max_delay: float,
    jitter: float = 0.5,
    rng: Optional[random.Random] = None,
) -> float:
    """
    Exponential backoff with jitter.

    ``attempt`` is the 1-based number of the attempt that just failed, so the
    first retry waits roughly ``base_delay``, the second ``2 * base_delay``
    and so on, capped at ``max_delay`` and spread by +-``jitter``.
    """
    if base_delay <= 0:
        return 0.0

    delay = min(base_delay * (2 ** max(attempt - 1, 0)), max_delay)
    rand = rng.random() if rng else random.random()
    delay += delay * jitter * (rand * 2 - 1)
    return max(0.0, min(delay, max_delay))
