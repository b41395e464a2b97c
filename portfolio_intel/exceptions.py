"""Custom exceptions for the portfolio intelligence data layer."""

from typing import Optional, Dict, Any, List, Tuple


class PortfolioIntelError(Exception):
    """Base exception for all portfolio intelligence errors."""

    # Read by RetryPolicy; only throttling and network errors opt in
    retryable = False

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.context = context or {}

    def __str__(self) -> str:
        parts = [self.message]
        if self.error_code:
            parts.append(f"[{self.error_code}]")
        return " ".join(parts)


class ThrottledError(PortfolioIntelError):
    """Raised when a provider answers with HTTP 429 or a vendor throttle note."""

    retryable = True

    def __init__(self, message: str = "Rate limit exceeded", provider: Optional[str] = None) -> None:
        context = {}
        if provider:
            context["provider"] = provider

        super().__init__(
            message=message,
            error_code="THROTTLED",
            context=context,
        )
        self.provider = provider


class TransientError(PortfolioIntelError):
    """Raised on network failures (connection reset, timeout, DNS)."""

    retryable = True

    def __init__(self, message: str, provider: Optional[str] = None) -> None:
        context = {}
        if provider:
            context["provider"] = provider

        super().__init__(
            message=message,
            error_code="TRANSIENT",
            context=context,
        )
        self.provider = provider


class ProviderError(PortfolioIntelError):
    """Raised on a non-2xx, non-429 provider response. Never retried."""

    def __init__(
        self,
        message: str,
        status: Optional[int] = None,
        provider: Optional[str] = None,
    ) -> None:
        context: Dict[str, Any] = {}
        if status is not None:
            context["status"] = status
        if provider:
            context["provider"] = provider

        super().__init__(
            message=message,
            error_code="PROVIDER_ERROR",
            context=context,
        )
        self.status = status
        self.provider = provider


class NotFoundError(PortfolioIntelError):
    """Raised when a provider has no data for the requested entity."""

    def __init__(self, message: str, symbol: Optional[str] = None) -> None:
        context = {}
        if symbol:
            context["symbol"] = symbol

        super().__init__(
            message=message,
            error_code="NOT_FOUND",
            context=context,
        )
        self.symbol = symbol


class InvalidSymbolError(NotFoundError):
    """Raised when a symbol does not exist on any recognised market."""

    def __init__(self, symbol: str) -> None:
        super().__init__(f"Invalid symbol: {symbol}", symbol=symbol)
        self.error_code = "INVALID_SYMBOL"


class MisconfiguredError(PortfolioIntelError):
    """Raised when credentials or settings for a provider are missing."""

    def __init__(self, message: str, setting: Optional[str] = None) -> None:
        context = {}
        if setting:
            context["setting"] = setting

        super().__init__(
            message=message,
            error_code="MISCONFIGURED",
            context=context,
        )
        self.setting = setting


class FallbackExhaustedError(PortfolioIntelError):
    """Raised when every provider in a fallback chain failed.

    ``failures`` keeps the ordered (provider, reason) pairs; ``headline`` is
    the primary provider's reason, meant for user display.
    """

    def __init__(self, capability: str, failures: List[Tuple[str, str]]) -> None:
        self.capability = capability
        self.failures = list(failures)
        self.headline = failures[0][1] if failures else "No providers configured"
        detail = "; ".join(f"{provider}: {reason}" for provider, reason in self.failures)

        super().__init__(
            message=f"All providers failed for {capability}: {detail or self.headline}",
            error_code="FALLBACK_EXHAUSTED",
            context={
                "capability": capability,
                "providers": [provider for provider, _ in self.failures],
                "headline": self.headline,
            },
        )

    @property
    def primary_provider(self) -> Optional[str]:
        """Name of the first-listed provider."""
        return self.failures[0][0] if self.failures else None
