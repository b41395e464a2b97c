"""Financial data provider adapters."""

from .alpha_vantage import AlphaVantageProvider
from .base import IntentOracle, NewsProvider, ProfileProvider, QuoteProvider, SymbolSearchProvider
from .finnhub import FinnhubProvider, normalize_finnhub_article

__all__ = [
    "AlphaVantageProvider",
    "FinnhubProvider",
    "normalize_finnhub_article",
    "QuoteProvider",
    "NewsProvider",
    "SymbolSearchProvider",
    "ProfileProvider",
    "IntentOracle",
]
