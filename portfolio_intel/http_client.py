#!/usr/bin/env python3
"""
Rate-limited HTTP client for third-party data providers.
Provides per-provider request spacing, bounded retries with backoff and
usage accounting for every attempt.
"""

import asyncio
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Optional

import aiohttp

from .config import FetchSettings
from .exceptions import MisconfiguredError, ProviderError, ThrottledError, TransientError
from .logging import get_logger
from .models import UsageWindow
from .provider_metrics import record_attempt
from .resilience import ProviderThrottle, RetryConfig, RetryPolicy

logger = get_logger(__name__)


@dataclass
class ProviderRequest:
    """A single GET request against a provider endpoint."""
    url: str
    endpoint: str
    params: Dict[str, Any] = field(default_factory=dict)
    headers: Dict[str, str] = field(default_factory=dict)


class RateLimitedClient:
    """Shared outbound client. One instance serves every provider."""

    def __init__(
        self,
        settings: Optional[FetchSettings] = None,
        session: Optional[aiohttp.ClientSession] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.settings = settings or FetchSettings()
        self.session = session
        self._owns_session = session is None
        self._clock = clock
        self._sleep = sleep

        self.retry_policy = RetryPolicy(RetryConfig(
            max_attempts=self.settings.max_attempts,
            initial_delay=self.settings.backoff_base_delay,
            fixed_delay=self.settings.network_retry_delay,
        ))
        self.throttle = ProviderThrottle(self.settings.min_request_interval, clock=clock)
        self._windows: Dict[str, UsageWindow] = {}

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def start(self):
        """Create the HTTP session if none was supplied."""
        if self.session is None:
            timeout = aiohttp.ClientTimeout(total=self.settings.timeout)
            self.session = aiohttp.ClientSession(timeout=timeout)
            self._owns_session = True
            logger.info("HTTP client session created", timeout=self.settings.timeout)

    async def close(self):
        """Close the HTTP session if this client created it."""
        if self.session is not None and self._owns_session:
            await self.session.close()
            logger.info("HTTP client session closed")
        self.session = None

    def window(self, provider: str) -> UsageWindow:
        """Usage window for ``provider``, created on first use."""
        window = self._windows.get(provider)
        if window is None:
            window = UsageWindow(
                provider=provider,
                window_start=self._clock(),
                reset_interval=self.settings.usage_reset_interval,
            )
            self._windows[provider] = window
        return window

    def usage(self) -> Dict[str, UsageWindow]:
        """Snapshot of every provider's usage window."""
        return {name: window.model_copy() for name, window in self._windows.items()}

    def reset_stale_windows(self) -> int:
        """Reset windows older than their interval; returns how many were reset."""
        now = self._clock()
        return sum(1 for window in self._windows.values() if window.maybe_reset(now))

    async def call(self, provider: str, request: ProviderRequest) -> Any:
        """Execute ``request`` against ``provider`` and return the parsed JSON body.

        Raises:
            ThrottledError: provider kept answering 429 after all attempts
            TransientError: network failure persisted after all attempts
            ProviderError: any other non-2xx response (never retried)
            MisconfiguredError: request cannot be built (never retried)
        """
        if not request.url:
            raise MisconfiguredError(f"No base URL configured for {provider}", setting=f"{provider}_base_url")

        window = self.window(provider)
        attempt = 0

        while True:
            await self.throttle.wait(provider)
            started = self._clock()
            try:
                body = await self._send(provider, request)
            except ThrottledError as e:
                window.record_attempt(self._clock(), throttled=True)
                record_attempt(provider, request.endpoint, "throttled", self._clock() - started)
                error: Exception = e
            except TransientError as e:
                window.record_attempt(self._clock(), error=True)
                record_attempt(provider, request.endpoint, "network_error", self._clock() - started)
                error = e
            except ProviderError as e:
                window.record_attempt(self._clock(), error=True)
                record_attempt(provider, request.endpoint, "error", self._clock() - started)
                logger.warning(
                    "Provider request failed",
                    provider=provider,
                    endpoint=request.endpoint,
                    status=e.status,
                )
                raise
            else:
                window.record_attempt(self._clock())
                record_attempt(provider, request.endpoint, "success", self._clock() - started)
                return body

            if not self.retry_policy.should_retry(attempt, error):
                logger.warning(
                    "Provider request exhausted retries",
                    provider=provider,
                    endpoint=request.endpoint,
                    attempts=attempt + 1,
                    error=str(error),
                )
                raise error

            delay = self.retry_policy.get_delay(attempt, error)
            logger.info(
                "Retrying provider request",
                provider=provider,
                endpoint=request.endpoint,
                attempt=attempt + 1,
                delay=delay,
                reason=type(error).__name__,
            )
            await self._sleep(delay)
            attempt += 1

    async def _send(self, provider: str, request: ProviderRequest) -> Any:
        if self.session is None:
            await self.start()

        try:
            async with self.session.get(
                request.url, params=request.params, headers=request.headers or None
            ) as response:
                if response.status == 429:
                    raise ThrottledError(provider=provider)
                if not 200 <= response.status < 300:
                    text = await response.text()
                    raise ProviderError(
                        f"{provider} returned HTTP {response.status}: {text[:200]}",
                        status=response.status,
                        provider=provider,
                    )
                try:
                    return await response.json(content_type=None)
                except ValueError as e:
                    raise ProviderError(
                        f"{provider} returned invalid JSON: {e}",
                        status=response.status,
                        provider=provider,
                    ) from e
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise TransientError(f"Network error calling {provider}: {e!r}", provider=provider) from e
