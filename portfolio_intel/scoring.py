"""
Portfolio relevance scoring and feed filtering.

Scores are caller-specific and computed per request from canonical
articles; nothing here writes back to the article store.
"""

from collections import Counter
from datetime import datetime, timedelta
from typing import Callable, Dict, Iterable, List, Literal, Optional, Tuple

from pydantic import BaseModel, Field, field_validator

from .models import Impact, NewsArticle, NewsCategory, RankedNewsItem, utc_now

RECENCY_WINDOW_HOURS = 24.0
RECENCY_WEIGHT = 10.0
HOLDING_WEIGHT = 5.0
IMPACT_BOOST = 3.0
CATEGORY_BOOSTS: Dict[NewsCategory, float] = {
    NewsCategory.EARNINGS: 5.0,
    NewsCategory.REGULATORY: 4.0,
    NewsCategory.PRODUCT: 2.0,
}
DEFAULT_WEIGHT = 1.0


class PortfolioRelevanceScorer:
    """Ranks canonical articles for one caller's holdings."""

    def __init__(self, clock: Callable[[], datetime] = utc_now):
        self._clock = clock

    @staticmethod
    def recency_score(published_at: datetime, now: datetime) -> float:
        """1.0 for brand new articles, falling linearly to 0 at 24 hours."""
        age_hours = (now - published_at).total_seconds() / 3600
        return max(0.0, RECENCY_WINDOW_HOURS - age_hours) / RECENCY_WINDOW_HOURS

    def score(
        self,
        article: NewsArticle,
        caller_symbols: Iterable[str],
        caller_weights: Dict[str, float],
        now: Optional[datetime] = None,
    ) -> float:
        now = now or self._clock()
        held = {symbol.strip().upper() for symbol in caller_symbols}

        score = self.recency_score(article.published_at, now) * RECENCY_WEIGHT

        for related in article.related_symbols:
            if related.symbol in held:
                score += caller_weights.get(related.symbol, DEFAULT_WEIGHT) * HOLDING_WEIGHT

        if article.impact in (Impact.POSITIVE, Impact.NEGATIVE):
            score += IMPACT_BOOST

        score += CATEGORY_BOOSTS.get(article.category, 0.0)
        return score

    def rank(
        self,
        articles: Iterable[NewsArticle],
        caller_symbols: Iterable[str],
        caller_weights: Dict[str, float],
        now: Optional[datetime] = None,
    ) -> List[RankedNewsItem]:
        """Score and sort descending; ties go to the newer article."""
        now = now or self._clock()
        symbols = list(caller_symbols)
        items = [
            RankedNewsItem(article=article, relevance_score=self.score(article, symbols, caller_weights, now))
            for article in articles
        ]
        items.sort(key=lambda item: (item.relevance_score, item.article.published_at), reverse=True)
        return items


class FeedFilter(BaseModel):
    """Optional narrowing of a ranked feed."""
    impact: Optional[Impact] = None
    category: Optional[NewsCategory] = None
    timeframe: Literal["today", "week", "month", "all"] = "all"
    min_relevance_score: Optional[float] = None
    limit: Optional[int] = Field(default=None, ge=1)

    @field_validator('impact', 'category', mode='before')
    @classmethod
    def all_means_any(cls, v):
        if v == "all":
            return None
        return v


def _timeframe_cutoff(timeframe: str, now: datetime) -> Optional[datetime]:
    if timeframe == "today":
        return now.replace(hour=0, minute=0, second=0, microsecond=0)
    if timeframe == "week":
        return now - timedelta(days=7)
    if timeframe == "month":
        return now - timedelta(days=30)
    return None


def apply_filter(
    items: List[RankedNewsItem],
    feed_filter: Optional[FeedFilter],
    now: Optional[datetime] = None,
) -> List[RankedNewsItem]:
    """Filter a ranked feed, keeping its order."""
    if feed_filter is None:
        return items

    cutoff = _timeframe_cutoff(feed_filter.timeframe, now or utc_now())
    filtered = [
        item for item in items
        if (feed_filter.impact is None or item.article.impact == feed_filter.impact)
        and (feed_filter.category is None or item.article.category == feed_filter.category)
        and (feed_filter.min_relevance_score is None or item.relevance_score >= feed_filter.min_relevance_score)
        and (cutoff is None or item.article.published_at >= cutoff)
    ]
    if feed_filter.limit is not None:
        filtered = filtered[:feed_filter.limit]
    return filtered


def _percentage(part: int, total: int) -> int:
    return int(part / total * 100 + 0.5) if total else 0


def news_stats(items: Iterable[RankedNewsItem]) -> Dict[str, int]:
    """Impact counts and rounded percentages."""
    counts = Counter(item.article.impact for item in items)
    total = sum(counts.values())
    return {
        'total': total,
        'positive': counts[Impact.POSITIVE],
        'negative': counts[Impact.NEGATIVE],
        'neutral': counts[Impact.NEUTRAL],
        'positive_percentage': _percentage(counts[Impact.POSITIVE], total),
        'negative_percentage': _percentage(counts[Impact.NEGATIVE], total),
    }


def category_stats(items: Iterable[RankedNewsItem]) -> Dict[str, int]:
    return dict(Counter(item.article.category.value for item in items))


def most_mentioned_symbols(items: Iterable[RankedNewsItem]) -> List[Tuple[str, int]]:
    counts: Counter = Counter()
    for item in items:
        counts.update(item.article.symbols)
    return counts.most_common()


def high_impact_news(items: Iterable[RankedNewsItem], min_score: float = 5.0) -> List[RankedNewsItem]:
    """Non-neutral items scoring at least ``min_score``."""
    return [
        item for item in items
        if item.relevance_score >= min_score
        and item.article.impact in (Impact.POSITIVE, Impact.NEGATIVE)
    ]
