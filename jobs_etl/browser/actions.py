"""Reusable browser actions.

All delays between page loads go through random_sleep() so request timing
is never fixed.
"""

import asyncio
import logging
import random

logger = logging.getLogger(__name__)

# Pause between page loads on the jobs site, in seconds.
RATE_LIMIT_DELAY = 2.0
RATE_LIMIT_JITTER = 1.0


async def random_sleep(min_s: float, max_s: float) -> float:
    """Sleep for a random duration between min_s and max_s seconds.

    If max_s < min_s, max_s is raised to min_s. Negative values are treated
    as zero.

    Returns the actual sleep duration (useful for testing).
    """
    floor = max(min_s, 0.0)
    ceiling = max(max_s, floor)
    duration = random.uniform(floor, ceiling)
    await asyncio.sleep(duration)
    return duration


async def rate_limit_pause() -> float:
    """Wait out the site's rate limit between two page loads."""
    waited = await random_sleep(RATE_LIMIT_DELAY, RATE_LIMIT_DELAY + RATE_LIMIT_JITTER)
    logger.debug("Rate limit pause: %.2fs", waited)
    return waited
