"""Ordered provider fallback for a single capability."""

from typing import Any, Awaitable, Callable, List, Optional, Sequence, Tuple, TypeVar

from .exceptions import FallbackExhaustedError, PortfolioIntelError
from .logging import get_logger
from .provider_metrics import record_fallback

logger = get_logger(__name__)

T = TypeVar("T")

ProviderCall = Tuple[str, Callable[[], Awaitable[T]]]


def error_marker(result: Any) -> Optional[str]:
    """The provider's own failure marker on ``result``, if any.

    Only an explicit ``error`` field counts; zero prices and empty lists are
    valid results.
    """
    if isinstance(result, dict):
        marker = result.get("error")
    else:
        marker = getattr(result, "error", None)
    return str(marker) if marker else None


class FallbackOrchestrator:
    """Tries providers strictly in order until one succeeds."""

    async def resolve(self, capability: str, providers: Sequence[ProviderCall]) -> T:
        """Return the first successful result.

        Raises:
            FallbackExhaustedError: every provider raised or returned an error marker
        """
        failures: List[Tuple[str, str]] = []

        for index, (name, fetch) in enumerate(providers):
            try:
                result = await fetch()
            except PortfolioIntelError as e:
                failures.append((name, e.message))
                logger.warning("Provider failed", capability=capability, provider=name, error=str(e))
                continue

            marker = error_marker(result)
            if marker:
                failures.append((name, marker))
                logger.warning("Provider returned error", capability=capability, provider=name, error=marker)
                continue

            if index > 0:
                record_fallback(capability, name)
                logger.info("Served by fallback provider", capability=capability, provider=name)
            return result

        raise FallbackExhaustedError(capability, failures)
