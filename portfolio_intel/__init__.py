"""Portfolio intelligence data layer: cached, rate-limited financial data with relevance ranking."""

from .cache import CacheKeys, TTLCache
from .config import Settings, get_settings
from .exceptions import (
    FallbackExhaustedError,
    InvalidSymbolError,
    MisconfiguredError,
    NotFoundError,
    PortfolioIntelError,
    ProviderError,
    ThrottledError,
    TransientError,
)
from .fallback import FallbackOrchestrator
from .http_client import ProviderRequest, RateLimitedClient
from .logging import get_logger, setup_logging
from .models import (
    MarketValidation,
    NewsArticle,
    Quote,
    RankedNewsItem,
    TickerCandidate,
    UsageWindow,
    portfolio_weight,
    portfolio_weights,
)
from .news_engine import NewsRelevanceEngine, NewsStore
from .scoring import FeedFilter, PortfolioRelevanceScorer
from .service import PortfolioIntelligenceService
from .ticker_resolver import MarketValidator, TickerResolver, combine_validation_scores

__version__ = "1.0.0"

__all__ = [
    "CacheKeys",
    "TTLCache",
    "Settings",
    "get_settings",
    "FallbackExhaustedError",
    "InvalidSymbolError",
    "MisconfiguredError",
    "NotFoundError",
    "PortfolioIntelError",
    "ProviderError",
    "ThrottledError",
    "TransientError",
    "FallbackOrchestrator",
    "ProviderRequest",
    "RateLimitedClient",
    "get_logger",
    "setup_logging",
    "MarketValidation",
    "NewsArticle",
    "Quote",
    "RankedNewsItem",
    "TickerCandidate",
    "UsageWindow",
    "portfolio_weight",
    "portfolio_weights",
    "NewsRelevanceEngine",
    "NewsStore",
    "FeedFilter",
    "PortfolioRelevanceScorer",
    "PortfolioIntelligenceService",
    "MarketValidator",
    "TickerResolver",
    "combine_validation_scores",
]
