"""
Request pacing for the Japanese Real Estate harvester.

Both crawl modes wait a random, uniformly distributed delay between
consecutive fetches so that the request rate stays low and irregular. The
delay window, the sleep function and the random source are injected, which
lets tests replace them with a recorder and a seeded generator.

Author: Leonardo Pacciani-Mori
License: MIT
"""

import random
import time
from typing import Callable, Optional

from japanese_real_estate.config.settings import SCRAPING_MIN_WAIT, SCRAPING_MAX_WAIT
from japanese_real_estate.config.logging_config import get_logger

logger = get_logger(__name__)


class Throttle:
    """
    Jittered delay policy.

    Attributes:
        min_wait: Lower bound of the delay window, in seconds.
        max_wait: Upper bound of the delay window, in seconds.
        sleep: Function used to wait (time.sleep by default). Also used by
            the controllers for their fixed pauses, so one substitute
            silences every wait in a test.
    """

    def __init__(
        self,
        min_wait: float = SCRAPING_MIN_WAIT,
        max_wait: float = SCRAPING_MAX_WAIT,
        sleep: Callable[[float], None] = time.sleep,
        rng: Optional[random.Random] = None
    ):
        self.min_wait = max(0.0, min_wait)
        self.max_wait = max(self.min_wait, max_wait)
        self.sleep = sleep
        self._rng = rng or random.Random()

    def next_delay(self) -> float:
        """Draw the next delay from the window."""
        return self._rng.uniform(self.min_wait, self.max_wait)

    def wait(self) -> float:
        """
        Sleep for one jittered delay.

        Returns:
            float: The number of seconds slept.
        """
        delay = self.next_delay()
        logger.debug(f"Sleeping for {delay:.2f}s before next request...")
        self.sleep(delay)
        return delay

    def pause(self, seconds: float) -> None:
        """Sleep for a fixed number of seconds."""
        self.sleep(seconds)
