"""
News relevance engine.

Matches raw provider articles to tracked symbols, classifies impact and
category with literal keyword tables, and keeps one canonical copy of each
article in an in-process store.
"""

import hashlib
import re
from collections import Counter
from datetime import datetime, timedelta
from typing import Dict, Iterable, Iterator, List, Optional, Pattern, Sequence, Tuple

from .logging import get_logger
from .models import (
    Impact,
    MentionType,
    NewsArticle,
    NewsCategory,
    RawArticle,
    RelatedSymbol,
    utc_now,
)

logger = get_logger(__name__)

# Keywords for impact analysis (substring match on lower-cased text)
POSITIVE_KEYWORDS = [
    'beats', 'exceeds', 'surges', 'grows', 'increases', 'rises', 'gains', 'up',
    'strong', 'record', 'high', 'best', 'profit', 'revenue', 'partnership',
    'acquisition', 'launch', 'breakthrough', 'success', 'wins', 'approved'
]

NEGATIVE_KEYWORDS = [
    'falls', 'drops', 'declines', 'loses', 'down', 'weak', 'low', 'worst',
    'loss', 'cuts', 'reduces', 'delays', 'cancels', 'lawsuit', 'investigation',
    'fine', 'penalty', 'cyber', 'hack', 'breach', 'recalls', 'bankruptcy'
]

EARNINGS_KEYWORDS = [
    'earnings', 'quarterly', 'q1', 'q2', 'q3', 'q4', 'revenue', 'profit',
    'eps', 'guidance', 'forecast', 'outlook', 'results'
]

PRODUCT_KEYWORDS = [
    'launch', 'announces', 'unveils', 'introduces', 'releases', 'product',
    'service', 'feature', 'update', 'version'
]

MARKET_KEYWORDS = [
    'market', 'stock', 'shares', 'trading', 'price', 'valuation', 'ipo',
    'listing', 'merger', 'acquisition', 'buyback'
]

REGULATORY_KEYWORDS = [
    'regulation', 'regulatory', 'sec', 'ftc', 'fda', 'antitrust', 'compliance',
    'investigation', 'lawsuit', 'court', 'legal', 'fine', 'penalty'
]

# Checked in this order; first match wins
CATEGORY_KEYWORDS: List[Tuple[NewsCategory, List[str]]] = [
    (NewsCategory.EARNINGS, EARNINGS_KEYWORDS),
    (NewsCategory.PRODUCT, PRODUCT_KEYWORDS),
    (NewsCategory.REGULATORY, REGULATORY_KEYWORDS),
    (NewsCategory.MARKET, MARKET_KEYWORDS),
]

# Common issuer names, matched as whole words
COMPANY_ALIASES: Dict[str, Tuple[str, ...]] = {
    'AAPL': ('apple',),
    'MSFT': ('microsoft',),
    'GOOGL': ('google', 'alphabet'),
    'GOOG': ('google', 'alphabet'),
    'AMZN': ('amazon',),
    'META': ('facebook', 'meta platforms'),
    'TSLA': ('tesla',),
    'NVDA': ('nvidia',),
    'NFLX': ('netflix',),
    'AMD': ('advanced micro devices',),
    'INTC': ('intel',),
    'JPM': ('jpmorgan', 'jp morgan'),
    'BRK.B': ('berkshire hathaway', 'berkshire'),
    'DIS': ('disney',),
}

# (headline, repeated, single) relevance per evidence kind
DIRECT_RELEVANCE = (0.9, 0.7, 0.6)
ALIAS_RELEVANCE = (0.85, 0.6, 0.5)


def article_id(published_at: datetime, headline: str) -> str:
    """Deterministic id for articles the provider did not identify."""
    digest = hashlib.sha256(f"{int(published_at.timestamp())}:{headline}".encode("utf-8"))
    return digest.hexdigest()


def _combined_text(headline: str, summary: str) -> str:
    return f"{headline} {summary}".lower()


def analyze_impact(headline: str, summary: str) -> Impact:
    text = _combined_text(headline, summary)

    positive = sum(1 for keyword in POSITIVE_KEYWORDS if keyword in text)
    negative = sum(1 for keyword in NEGATIVE_KEYWORDS if keyword in text)

    if positive > negative:
        return Impact.POSITIVE
    if negative > positive:
        return Impact.NEGATIVE
    return Impact.NEUTRAL


def categorize_news(headline: str, summary: str) -> NewsCategory:
    text = _combined_text(headline, summary)

    for category, keywords in CATEGORY_KEYWORDS:
        if any(keyword in text for keyword in keywords):
            return category
    return NewsCategory.GENERAL


def _symbol_pattern(symbol: str) -> Pattern:
    # Also matches cashtags: "$AAPL" has a word boundary before "A"
    return re.compile(rf"\b{re.escape(symbol)}\b", re.IGNORECASE)


def _alias_pattern(aliases: Sequence[str]) -> Pattern:
    alternatives = "|".join(re.escape(alias) for alias in aliases)
    return re.compile(rf"\b(?:{alternatives})\b", re.IGNORECASE)


def _classify_mention(
    symbol: str,
    pattern: Pattern,
    headline: str,
    text: str,
    relevance: Tuple[float, float, float],
) -> Optional[RelatedSymbol]:
    hits = len(pattern.findall(text))
    if hits == 0:
        return None

    headline_score, repeated_score, single_score = relevance
    if pattern.search(headline):
        return RelatedSymbol(symbol=symbol, relevance_score=headline_score, mention_type=MentionType.PRIMARY)
    if hits > 1:
        return RelatedSymbol(symbol=symbol, relevance_score=repeated_score, mention_type=MentionType.SECONDARY)
    return RelatedSymbol(symbol=symbol, relevance_score=single_score, mention_type=MentionType.MENTIONED)


def detect_mentions(
    headline: str,
    summary: str,
    tracked_symbols: Iterable[str],
    aliases: Optional[Dict[str, Tuple[str, ...]]] = None,
) -> List[RelatedSymbol]:
    """Symbols mentioned in an article, in tracked-symbol order.

    Direct ticker evidence wins over alias evidence for the same symbol.
    """
    aliases = COMPANY_ALIASES if aliases is None else aliases
    text = f"{headline} {summary}"
    mentions: List[RelatedSymbol] = []
    seen = set()

    for raw_symbol in tracked_symbols:
        symbol = raw_symbol.strip().upper()
        if not symbol or symbol in seen:
            continue
        seen.add(symbol)

        mention = _classify_mention(symbol, _symbol_pattern(symbol), headline, text, DIRECT_RELEVANCE)
        if mention is None and aliases.get(symbol):
            mention = _classify_mention(
                symbol, _alias_pattern(aliases[symbol]), headline, text, ALIAS_RELEVANCE
            )
        if mention is not None:
            mentions.append(mention)

    return mentions


class NewsStore:
    """Canonical article store indexed by external id, url and headline."""

    def __init__(self):
        self._articles: Dict[str, NewsArticle] = {}
        self._by_url: Dict[str, str] = {}
        self._by_headline: Dict[str, str] = {}

    def __len__(self) -> int:
        return len(self._articles)

    def __iter__(self) -> Iterator[NewsArticle]:
        return iter(list(self._articles.values()))

    def get(self, external_id: str) -> Optional[NewsArticle]:
        return self._articles.get(external_id)

    def find_duplicate(self, external_id: str, url: str, headline: str) -> Optional[NewsArticle]:
        """Existing article matching by id, then url, then exact headline."""
        if external_id in self._articles:
            return self._articles[external_id]
        if url and url in self._by_url:
            return self._articles[self._by_url[url]]
        if headline in self._by_headline:
            return self._articles[self._by_headline[headline]]
        return None

    def add(self, article: NewsArticle) -> bool:
        """Store ``article`` unless a duplicate exists. Returns True when stored."""
        if self.find_duplicate(article.external_id, article.url, article.headline) is not None:
            return False

        self._articles[article.external_id] = article
        if article.url:
            self._by_url[article.url] = article.external_id
        self._by_headline[article.headline] = article.external_id
        return True

    def remove(self, external_id: str) -> bool:
        article = self._articles.pop(external_id, None)
        if article is None:
            return False
        if article.url and self._by_url.get(article.url) == external_id:
            del self._by_url[article.url]
        if self._by_headline.get(article.headline) == external_id:
            del self._by_headline[article.headline]
        return True

    def articles_for_symbols(
        self,
        symbols: Iterable[str],
        min_relevance: float = 0.3,
        hours_back: float = 24,
        limit: int = 50,
        now: Optional[datetime] = None,
    ) -> List[NewsArticle]:
        """Recent articles related to any of ``symbols``, newest first."""
        wanted = {symbol.strip().upper() for symbol in symbols}
        cutoff = (now or utc_now()) - timedelta(hours=hours_back)

        matches = [
            article for article in self._articles.values()
            if article.published_at >= cutoff
            and any(
                related.symbol in wanted and related.relevance_score >= min_relevance
                for related in article.related_symbols
            )
        ]
        matches.sort(key=lambda article: article.published_at, reverse=True)
        return matches[:limit]

    def cleanup_older_than(self, days: int = 7, now: Optional[datetime] = None) -> int:
        """Drop articles published more than ``days`` ago."""
        cutoff = (now or utc_now()) - timedelta(days=days)
        stale = [key for key, article in self._articles.items() if article.published_at < cutoff]
        for key in stale:
            self.remove(key)
        if stale:
            logger.info("Removed old news articles", count=len(stale), retention_days=days)
        return len(stale)

    def trending_symbols(
        self,
        hours_back: float = 24,
        limit: int = 10,
        now: Optional[datetime] = None,
    ) -> List[Tuple[str, int]]:
        """Symbols by number of recent articles, most covered first."""
        cutoff = (now or utc_now()) - timedelta(hours=hours_back)
        counts: Counter = Counter()
        for article in self._articles.values():
            if article.published_at >= cutoff:
                counts.update(article.symbols)
        return counts.most_common(limit)


class NewsRelevanceEngine:
    """Turns raw articles into canonical, symbol-tagged articles."""

    def __init__(self, store: NewsStore, aliases: Optional[Dict[str, Tuple[str, ...]]] = None):
        self.store = store
        self.aliases = COMPANY_ALIASES if aliases is None else aliases

    def process(self, raw: RawArticle, tracked_symbols: Sequence[str]) -> Optional[NewsArticle]:
        """Classify one article; None when it mentions no tracked symbol."""
        related = detect_mentions(raw.headline, raw.summary, tracked_symbols, self.aliases)
        if not related:
            return None

        return NewsArticle(
            external_id=raw.external_id or article_id(raw.published_at, raw.headline),
            headline=raw.headline,
            summary=raw.summary,
            url=raw.url,
            source=raw.source,
            image_url=raw.image_url,
            published_at=raw.published_at,
            category=categorize_news(raw.headline, raw.summary),
            impact=analyze_impact(raw.headline, raw.summary),
            related_symbols=related,
        )

    def ingest(self, raw_articles: Iterable[RawArticle], tracked_symbols: Sequence[str]) -> List[NewsArticle]:
        """Store new articles and return them.

        A duplicate of a stored article only contributes symbols the stored
        copy does not have yet.
        """
        added: List[NewsArticle] = []
        dropped = duplicates = 0

        for raw in raw_articles:
            article = self.process(raw, tracked_symbols)
            if article is None:
                dropped += 1
                continue

            existing = self.store.find_duplicate(article.external_id, article.url, article.headline)
            if existing is not None:
                duplicates += 1
                known = set(existing.symbols)
                existing.related_symbols.extend(
                    related for related in article.related_symbols if related.symbol not in known
                )
                continue

            self.store.add(article)
            added.append(article)

        logger.debug(
            "Ingested news batch",
            added=len(added),
            duplicates=duplicates,
            dropped=dropped,
            stored=len(self.store),
        )
        return added
