"""Data models for the portfolio intelligence layer."""

import math
from datetime import datetime, timezone
from typing import Optional, List, Dict
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


def utc_now() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


class CandidateSource(str, Enum):
    """Where a ticker candidate came from."""
    DIRECT_TICKER = "direct-ticker"
    FUZZY_SEARCH = "fuzzy-search"
    CACHE = "cache"


class MentionType(str, Enum):
    """How prominently a symbol is mentioned in an article."""
    PRIMARY = "primary"
    SECONDARY = "secondary"
    MENTIONED = "mentioned"


class Impact(str, Enum):
    """Keyword-derived article impact."""
    POSITIVE = "positive"
    NEGATIVE = "negative"
    NEUTRAL = "neutral"


class NewsCategory(str, Enum):
    """Keyword-derived article category, in classification priority order."""
    EARNINGS = "earnings"
    PRODUCT = "product"
    REGULATORY = "regulatory"
    MARKET = "market"
    GENERAL = "general"


class HealthStatus(str, Enum):
    """Provider health status."""
    HEALTHY = "healthy"
    ERROR = "error"
    UNCONFIGURED = "unconfigured"


class TickerCandidate(BaseModel):
    """Resolved symbol for a free-text company reference. Immutable."""
    model_config = ConfigDict(frozen=True)

    symbol: str = Field(..., description="Stock symbol (e.g., 'AAPL')")
    company_name: str = Field(..., description="Company name as reported by the provider")
    confidence: float = Field(..., ge=0, le=1)
    search_query: str = Field(..., description="Original free-text query")
    is_exact_match: bool = False
    source: CandidateSource


class MarketValidation(BaseModel):
    """Market-existence check for a symbol."""
    symbol: str
    is_valid: bool
    confidence: float = Field(..., ge=0, le=1)
    company_name: Optional[str] = None
    market_cap: Optional[float] = None
    exchange: Optional[str] = None
    logo: Optional[str] = None
    error: Optional[str] = None


class Quote(BaseModel):
    """Latest quote snapshot. ``error`` is the provider's explicit failure marker."""
    symbol: str
    price: float = 0.0
    change: float = 0.0
    change_percent: str = "0.00%"
    data_source: Optional[str] = None
    error: Optional[str] = None
    fetched_at: datetime = Field(default_factory=utc_now)


class CompanyProfile(BaseModel):
    """Company profile as returned by a profile provider."""
    symbol: str
    name: Optional[str] = None
    exchange: Optional[str] = None
    market_cap: Optional[float] = None
    logo: Optional[str] = None
    error: Optional[str] = None

    @property
    def is_well_formed(self) -> bool:
        return self.error is None and bool(self.name and self.name.strip())


class SymbolSearchMatch(BaseModel):
    """One row of a symbol search result."""
    symbol: str
    description: str = ""
    display_symbol: Optional[str] = None
    type: str = ""


class RawArticle(BaseModel):
    """Provider-agnostic article payload, before relevance processing."""
    external_id: Optional[str] = None
    headline: str
    summary: str = ""
    url: str = ""
    source: str = "Unknown"
    image_url: Optional[str] = None
    published_at: datetime
    provider_category: Optional[str] = None
    related: List[str] = Field(default_factory=list)


class RelatedSymbol(BaseModel):
    """Association between an article and a tracked symbol."""
    symbol: str
    relevance_score: float = Field(..., ge=0, le=1)
    mention_type: MentionType


class NewsArticle(BaseModel):
    """Canonical, post-ingestion article. Carries no portfolio-specific score."""
    external_id: str
    headline: str
    summary: str = ""
    url: str = ""
    source: str = "Unknown"
    image_url: Optional[str] = None
    published_at: datetime
    category: NewsCategory = NewsCategory.GENERAL
    impact: Impact = Impact.NEUTRAL
    related_symbols: List[RelatedSymbol] = Field(default_factory=list)
    fetched_at: datetime = Field(default_factory=utc_now)

    @property
    def symbols(self) -> List[str]:
        return [related.symbol for related in self.related_symbols]

    def relevance_for(self, symbol: str) -> float:
        for related in self.related_symbols:
            if related.symbol == symbol:
                return related.relevance_score
        return 0.0


class RankedNewsItem(BaseModel):
    """Canonical article plus a caller-specific ranking score."""
    article: NewsArticle
    relevance_score: float


class PortfolioIntent(BaseModel):
    """Output of the external text-intent oracle."""
    intent: str
    shares: float = 1.0


class ResolvedHolding(BaseModel):
    """A free-text holding resolved to a validated symbol."""
    symbol: str
    company_name: str
    shares: float
    weight: float
    confidence: float = Field(..., ge=0, le=1)
    search_query: str
    validation: Optional[MarketValidation] = None


class ProviderHealth(BaseModel):
    """Result of a provider health probe."""
    provider: str
    status: HealthStatus
    response_time_ms: float = 0.0
    error: Optional[str] = None
    checked_at: datetime = Field(default_factory=utc_now)


class UsageWindow(BaseModel):
    """Per-provider request counters over a resettable window.

    Used for observability and backoff tuning, never for admission control.
    """
    provider: str
    request_count: int = 0
    error_count: int = 0
    throttle_hits: int = 0
    window_start: float
    reset_interval: float = 3600.0

    def maybe_reset(self, now: float) -> bool:
        """Reset the counters once the window is older than the reset interval."""
        if now - self.window_start > self.reset_interval:
            self.request_count = 0
            self.error_count = 0
            self.throttle_hits = 0
            self.window_start = now
            return True
        return False

    def record_attempt(self, now: float, error: bool = False, throttled: bool = False) -> None:
        self.maybe_reset(now)
        self.request_count += 1
        if error or throttled:
            self.error_count += 1
        if throttled:
            self.throttle_hits += 1


def portfolio_weight(shares: float) -> float:
    """Holding weight: ``ln(shares + 1)``, never negative."""
    return math.log(max(shares, 0.0) + 1)


def portfolio_weights(holdings: Dict[str, float]) -> Dict[str, float]:
    """Map of upper-cased symbol -> weight for a symbol -> shares mapping."""
    return {symbol.strip().upper(): portfolio_weight(shares) for symbol, shares in holdings.items()}

