"""Admission limiter for inbound requests."""

import math
from typing import Any, Dict

import structlog
from limits import RateLimitItemPerSecond
from limits.storage import MemoryStorage
from limits.strategies import MovingWindowRateLimiter

from .exceptions import RateLimited

logger = structlog.get_logger()

_IDENTIFIER = "inbound"


class AdmissionLimiter:
    """Process-wide limiter in front of the Docker API.

    Admits at most ``burst`` requests in any window of ``burst / rate``
    seconds (rounded up to whole seconds), which allows a burst of ``burst``
    and sustains roughly ``rate`` requests per second. ``try_acquire`` never
    waits: callers reject the request when it returns False.

    Attributes:
        rate: Sustained requests per second
        burst: Maximum requests admitted back to back
    """

    def __init__(self, rate: float = 5.0, burst: int = 10) -> None:
        """Initialize the limiter.

        Args:
            rate: Sustained requests per second, must be positive
            burst: Requests admitted at once, must be at least 1
        """
        if rate <= 0:
            raise ValueError("rate must be positive")
        if burst < 1:
            raise ValueError("burst must be at least 1")

        self.rate = float(rate)
        self.burst = burst
        self.window_seconds = max(1, math.ceil(burst / rate))
        self.item = RateLimitItemPerSecond(burst, self.window_seconds)
        self.storage = MemoryStorage()
        self.limiter = MovingWindowRateLimiter(self.storage)

        logger.info(
            "admission_limiter_initialized",
            rate=self.rate,
            burst=burst,
            window_seconds=self.window_seconds,
        )

    def try_acquire(self) -> bool:
        """Count one request against the window.

        Returns:
            True if the request is admitted, False if it must be rejected
        """
        return self.limiter.hit(self.item, _IDENTIFIER)

    def admit(self) -> None:
        """Admit one request or raise.

        Raises:
            RateLimited: the window is full
        """
        if not self.try_acquire():
            raise RateLimited(f"more than {self.burst} requests in {self.item}")

    def get_stats(self) -> Dict[str, Any]:
        """Get the current window state."""
        reset_time, remaining = self.limiter.get_window_stats(self.item, _IDENTIFIER)
        return {
            "rate": self.rate,
            "burst": self.burst,
            "remaining": remaining,
            "reset_time": reset_time,
        }
