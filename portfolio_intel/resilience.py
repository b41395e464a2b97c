"""
Resilience patterns for rate-limited provider calls.
Provides the retry/backoff policy, per-provider request spacing and bounded
batch fan-out.
"""

import asyncio
import time
import random
from typing import Awaitable, Callable, Dict, List, Optional, Sequence, TypeVar

from .exceptions import PortfolioIntelError, ThrottledError
from .logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")
R = TypeVar("R")


class RetryConfig:
    """Configuration for retry logic."""

    def __init__(
        self,
        max_attempts: int = 3,
        initial_delay: float = 1.0,
        fixed_delay: float = 1.0,
        max_delay: float = 30.0,
        exponential_base: float = 2.0,
        jitter: bool = False
    ):
        """Initialize retry configuration.

        Args:
            max_attempts: Total attempts including the first one
            initial_delay: Base delay for throttled retries (doubled per attempt)
            fixed_delay: Delay between retries after network errors
            max_delay: Upper bound for any single delay
            exponential_base: Growth factor for throttled retries
            jitter: Randomize delays by +/-50%
        """
        self.max_attempts = max_attempts
        self.initial_delay = initial_delay
        self.fixed_delay = fixed_delay
        self.max_delay = max_delay
        self.exponential_base = exponential_base
        self.jitter = jitter


class RetryPolicy:
    """Decides whether and how long to wait before the next attempt.

    Throttling backs off exponentially (``initial_delay * base ** attempt``),
    network errors wait a fixed delay, anything else is not retried.
    """

    def __init__(self, config: Optional[RetryConfig] = None):
        self.config = config or RetryConfig()

    def is_retryable(self, error: Exception) -> bool:
        return isinstance(error, PortfolioIntelError) and error.retryable

    def get_delay(self, attempt: int, error: Exception) -> float:
        """Delay before retrying after ``attempt`` (zero-based) failed with ``error``."""
        if isinstance(error, ThrottledError):
            delay = self.config.initial_delay * (self.config.exponential_base ** attempt)
        else:
            delay = self.config.fixed_delay

        delay = min(delay, self.config.max_delay)

        if self.config.jitter:
            delay = delay * (0.5 + random.random())

        return delay

    def should_retry(self, attempt: int, error: Exception) -> bool:
        return self.is_retryable(error) and attempt < self.config.max_attempts - 1


class ProviderThrottle:
    """Spaces sequential requests to the same provider by a minimum interval.

    Each provider has its own lock, so different providers never wait on
    each other.
    """

    def __init__(
        self,
        min_interval: float = 1.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.min_interval = min_interval
        self._clock = clock
        self._locks: Dict[str, asyncio.Lock] = {}
        self._last_request: Dict[str, float] = {}

    async def wait(self, provider: str) -> float:
        """Block until ``provider`` may be called again; returns the time waited."""
        lock = self._locks.setdefault(provider, asyncio.Lock())
        waited = 0.0
        async with lock:
            last = self._last_request.get(provider)
            if last is not None:
                elapsed = self._clock() - last
                if elapsed < self.min_interval:
                    waited = self.min_interval - elapsed
                    await asyncio.sleep(waited)
            self._last_request[provider] = self._clock()
        return waited


async def gather_in_batches(
    items: Sequence[T],
    func: Callable[[T], Awaitable[R]],
    batch_size: int = 5,
    pause: float = 0.0,
) -> List[R]:
    """Run ``func`` over ``items`` concurrently, at most ``batch_size`` at a time.

    Results keep the input order. Exceptions propagate; callers that need
    per-item degradation handle errors inside ``func``.
    """
    results: List[R] = []
    for start in range(0, len(items), batch_size):
        batch = items[start:start + batch_size]
        results.extend(await asyncio.gather(*(func(item) for item in batch)))

        if pause and start + batch_size < len(items):
            await asyncio.sleep(pause)

    return results
