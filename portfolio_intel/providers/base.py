"""Provider contracts for financial data vendors.

Defines protocol interfaces for the capabilities the data layer consumes.
Providers should:
  * Be side-effect free (no writes) – only fetch & normalize
  * Avoid embedding resilience (retries / spacing / caching) – those are
    applied by the shared RateLimitedClient and the service layer
  * Return pydantic models from ``portfolio_intel.models``
  * Raise MisconfiguredError when credentials are missing

Failure conventions:
  Quote and profile lookups may return a model carrying ``error`` instead of
  raising; the fallback orchestrator treats that marker as a failure.

NOTE: Using typing.Protocol keeps this lightweight without enforcing inheritance.
"""
from __future__ import annotations

from datetime import date
from typing import List, Protocol

from ..models import CompanyProfile, PortfolioIntent, Quote, RawArticle, SymbolSearchMatch


class QuoteProvider(Protocol):
    """Protocol for quote-capable providers."""
    name: str

    async def get_quote(self, symbol: str) -> Quote:
        ...


class NewsProvider(Protocol):
    """Protocol for news providers."""
    name: str

    async def get_market_news(self, start: date, end: date) -> List[RawArticle]:
        ...

    async def get_company_news(self, symbol: str, start: date, end: date) -> List[RawArticle]:
        ...


class SymbolSearchProvider(Protocol):
    """Protocol for symbol / company-name search."""
    name: str

    async def search(self, query: str) -> List[SymbolSearchMatch]:
        ...


class ProfileProvider(Protocol):
    """Protocol for company profile lookups."""
    name: str

    async def get_profile(self, symbol: str) -> CompanyProfile:
        ...


class IntentOracle(Protocol):
    """External text-to-holdings extractor (e.g. an LLM prompt)."""

    async def extract_intents(self, text: str) -> List[PortfolioIntent]:
        ...


__all__ = [
    "QuoteProvider",
    "NewsProvider",
    "SymbolSearchProvider",
    "ProfileProvider",
    "IntentOracle",
]
