"""Process-wide single-flight gate for draft generation.

The OpenAI quota is account-wide, so one gate is shared by every caller and
every release. A call arriving inside the cooldown window is rejected with
``RateLimitExceeded``; it is never queued or delayed.
"""

from __future__ import annotations

import math
import threading
import time
from collections.abc import Callable

from build_readiness.errors import RateLimitExceeded
from build_readiness.logging_config import get_logger

logger = get_logger(__name__)

DEFAULT_COOLDOWN_SECONDS = 5.0


class RateLimiter:
    """At most one generation call per cooldown window.

    Args:
        cooldown_seconds: Minimum spacing between accepted calls
        clock: Monotonic time source in seconds; tests inject a fake
    """

    def __init__(
        self,
        cooldown_seconds: float = DEFAULT_COOLDOWN_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.cooldown = cooldown_seconds
        self._clock = clock
        self._last_request: float | None = None
        self._lock = threading.Lock()

    def acquire(self) -> None:
        """Claim the window or raise with the remaining wait in whole seconds."""
        with self._lock:
            now = self._clock()
            if self._last_request is not None:
                elapsed = now - self._last_request
                if elapsed < self.cooldown:
                    retry_after = math.ceil(self.cooldown - elapsed)
                    logger.info("rate_limited", retry_after=retry_after)
                    raise RateLimitExceeded(retry_after=retry_after)
            self._last_request = now

    def reset(self) -> None:
        with self._lock:
            self._last_request = None


# Shared by every agent in the process unless one is injected.
rate_limiter = RateLimiter()
