"""
Portfolio intelligence service.

Owns every cache, provider and engine instance and exposes the entry points
used by the HTTP layer and by external schedulers.
"""

import asyncio
import time
from datetime import datetime, timedelta
from functools import partial
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

from .cache import CacheKeys, TTLCache
from .config import Settings, get_settings
from .exceptions import FallbackExhaustedError, PortfolioIntelError
from .fallback import FallbackOrchestrator
from .http_client import RateLimitedClient
from .logging import get_logger
from .models import (
    HealthStatus,
    ProviderHealth,
    Quote,
    RankedNewsItem,
    RawArticle,
    ResolvedHolding,
    TickerCandidate,
    portfolio_weight,
    utc_now,
)
from .news_engine import NewsRelevanceEngine, NewsStore
from .providers import AlphaVantageProvider, FinnhubProvider
from .providers.base import IntentOracle
from .resilience import gather_in_batches
from .scoring import DEFAULT_WEIGHT, FeedFilter, PortfolioRelevanceScorer, apply_filter
from .ticker_resolver import MarketValidator, TickerResolver, combine_validation_scores

logger = get_logger(__name__)

HEALTH_PROBE_SYMBOL = "AAPL"


def _unique_symbols(symbols: Iterable[str]) -> List[str]:
    """Upper-cased symbols, de-duplicated, first occurrence order."""
    seen: Dict[str, None] = {}
    for symbol in symbols:
        cleaned = symbol.strip().upper()
        if cleaned:
            seen.setdefault(cleaned)
    return list(seen)


class PortfolioIntelligenceService:
    """Entry points for symbol resolution, ranked news and quotes."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        client: Optional[RateLimitedClient] = None,
        finnhub: Optional[Any] = None,
        alpha_vantage: Optional[Any] = None,
        clock: Callable[[], float] = time.monotonic,
        now: Callable[[], datetime] = utc_now,
    ):
        self.settings = settings or get_settings()
        self._now = now

        self.client = client or RateLimitedClient(self.settings.fetch, clock=clock)
        self.finnhub = finnhub or FinnhubProvider(self.settings.providers, self.client)
        self.alpha_vantage = alpha_vantage or AlphaVantageProvider(self.settings.providers, self.client)
        self.providers: Dict[str, Any] = {
            "finnhub": self.finnhub,
            "alpha_vantage": self.alpha_vantage,
        }

        cache_settings = self.settings.cache
        self.quote_cache = TTLCache("quotes", cache_settings.quote_ttl, clock=clock)
        self.news_cache = TTLCache("news", cache_settings.news_ttl, clock=clock)
        self.search_cache = TTLCache("symbol_search", cache_settings.symbol_search_ttl, clock=clock)
        self.validation_cache = TTLCache("validation", cache_settings.validation_ttl, clock=clock)

        fetch = self.settings.fetch
        self.fallback = FallbackOrchestrator()
        self.validator = MarketValidator(
            self.finnhub, self.finnhub, self.validation_cache,
            batch_size=fetch.batch_size, batch_pause=fetch.batch_pause,
        )
        self.resolver = TickerResolver(self.finnhub, self.validator, self.search_cache)
        self.store = NewsStore()
        self.engine = NewsRelevanceEngine(self.store)
        self.scorer = PortfolioRelevanceScorer(clock=now)

        self._maintenance_task: Optional[asyncio.Task] = None

    async def __aenter__(self):
        await self.client.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.stop()

    @property
    def caches(self) -> List[TTLCache]:
        return [self.quote_cache, self.news_cache, self.search_cache, self.validation_cache]

    def _chain(self, names: Sequence[str]) -> List[Any]:
        chain = []
        for name in names:
            provider = self.providers.get(name)
            if provider is None:
                logger.warning("Unknown provider in chain", provider=name)
                continue
            chain.append(provider)
        return chain

    # Symbols

    async def resolve_symbols(self, queries: Sequence[str]) -> List[TickerCandidate]:
        """Resolve free-text references; unresolvable queries are dropped."""
        results = await self.resolver.resolve_many(list(queries))

        resolved = [candidate for candidate in results if candidate is not None]
        unresolved = [query for query, candidate in zip(queries, results) if candidate is None]
        if unresolved:
            logger.info("Unresolved symbol queries", queries=unresolved)
        return resolved

    async def onboard_portfolio(self, text: str, oracle: IntentOracle) -> List[ResolvedHolding]:
        """Turn a free-text portfolio description into validated holdings."""
        intents = [intent for intent in await oracle.extract_intents(text) if intent.shares > 0]
        candidates = await self.resolver.resolve_many([intent.intent for intent in intents])

        matched = [(intent, candidate) for intent, candidate in zip(intents, candidates) if candidate]
        validations = await self.validator.validate_many([candidate.symbol for _, candidate in matched])

        holdings: Dict[str, ResolvedHolding] = {}
        for (intent, candidate), validation in zip(matched, validations):
            if not validation.is_valid:
                logger.info("Dropping holding with invalid symbol", intent=intent.intent, symbol=candidate.symbol)
                continue

            existing = holdings.get(candidate.symbol)
            shares = intent.shares + (existing.shares if existing else 0.0)
            holdings[candidate.symbol] = ResolvedHolding(
                symbol=candidate.symbol,
                company_name=validation.company_name or candidate.company_name,
                shares=shares,
                weight=portfolio_weight(shares),
                confidence=combine_validation_scores(candidate.confidence, validation),
                search_query=candidate.search_query,
                validation=validation,
            )

        return list(holdings.values())

    # Quotes

    async def get_quotes(self, symbols: Sequence[str]) -> List[Quote]:
        """Latest quotes; a symbol every provider failed on carries ``error``."""
        fetch = self.settings.fetch
        return await gather_in_batches(
            _unique_symbols(symbols), self._quote, fetch.batch_size, fetch.batch_pause
        )

    async def _quote(self, symbol: str) -> Quote:
        try:
            return await self.quote_cache.get_or_fetch(
                CacheKeys.quote(symbol), partial(self._fetch_quote, symbol)
            )
        except FallbackExhaustedError as e:
            logger.warning(
                "Quote unavailable", symbol=symbol, primary_provider=e.primary_provider, error=str(e)
            )
            return Quote(symbol=symbol, error=e.headline)

    async def _fetch_quote(self, symbol: str) -> Quote:
        chain = self._chain(self.settings.providers.quote_providers)
        return await self.fallback.resolve(
            "quote", [(provider.name, partial(provider.get_quote, symbol)) for provider in chain]
        )

    # News

    async def get_ranked_news(
        self,
        symbols: Sequence[str],
        weights: Dict[str, float],
        feed_filter: Optional[FeedFilter] = None,
    ) -> List[RankedNewsItem]:
        """Fetch, ingest and rank news for the caller's holdings."""
        news_settings = self.settings.news
        fetch = self.settings.fetch

        symbols = _unique_symbols(symbols)
        if not symbols:
            return []
        weights = {symbol.strip().upper(): weight for symbol, weight in weights.items()}

        prioritized = sorted(symbols, key=lambda s: weights.get(s, DEFAULT_WEIGHT), reverse=True)
        prioritized = prioritized[:news_settings.max_symbols]

        now = self._now()
        end = now.date()
        start = end - timedelta(days=news_settings.lookback_days)

        batches = await gather_in_batches(
            prioritized,
            lambda symbol: self._company_news(symbol, start, end),
            fetch.batch_size,
            fetch.batch_pause,
        )
        raw_articles = [article for batch in batches for article in batch]
        if news_settings.include_market_news:
            raw_articles.extend(await self._market_news(start, end))

        added = self.engine.ingest(raw_articles, symbols)

        articles = self.store.articles_for_symbols(
            symbols,
            min_relevance=news_settings.min_relevance,
            hours_back=news_settings.feed_hours_back,
            limit=len(self.store),
            now=now,
        )
        ranked = apply_filter(self.scorer.rank(articles, symbols, weights, now), feed_filter, now)

        logger.info(
            "Ranked news feed",
            symbols=len(symbols),
            fetched=len(raw_articles),
            new_articles=len(added),
            returned=min(len(ranked), news_settings.feed_limit),
        )
        return ranked[:news_settings.feed_limit]

    async def _company_news(self, symbol: str, start, end) -> List[RawArticle]:
        chain = self._chain(self.settings.providers.news_providers)
        try:
            return await self.news_cache.get_or_fetch(
                CacheKeys.company_news(symbol, start, end),
                lambda: self.fallback.resolve(
                    "company_news",
                    [(p.name, partial(p.get_company_news, symbol, start, end)) for p in chain],
                ),
            )
        except FallbackExhaustedError as e:
            logger.warning("Company news unavailable", symbol=symbol, error=str(e))
            return []

    async def _market_news(self, start, end) -> List[RawArticle]:
        chain = self._chain(self.settings.providers.news_providers)
        try:
            return await self.news_cache.get_or_fetch(
                CacheKeys.market_news(start, end),
                lambda: self.fallback.resolve(
                    "market_news",
                    [(p.name, partial(p.get_market_news, start, end)) for p in chain],
                ),
            )
        except FallbackExhaustedError as e:
            logger.warning("Market news unavailable", error=str(e))
            return []

    # Operations

    async def health_check(self) -> List[ProviderHealth]:
        """Probe every provider with a live, uncached quote request."""
        results = []
        for name, provider in self.providers.items():
            if not getattr(provider, "is_configured", True):
                results.append(ProviderHealth(
                    provider=name, status=HealthStatus.UNCONFIGURED, error="API key not configured"
                ))
                continue

            start = time.perf_counter()
            try:
                quote = await provider.get_quote(HEALTH_PROBE_SYMBOL)
                error = quote.error
            except PortfolioIntelError as e:
                error = e.message
            elapsed_ms = (time.perf_counter() - start) * 1000

            results.append(ProviderHealth(
                provider=name,
                status=HealthStatus.ERROR if error else HealthStatus.HEALTHY,
                response_time_ms=round(elapsed_ms, 2),
                error=error,
            ))

        logger.info("Provider health check completed", results={r.provider: r.status.value for r in results})
        return results

    def usage(self) -> Dict[str, Any]:
        """Provider usage windows and cache statistics."""
        return {
            "providers": {name: window.model_dump() for name, window in self.client.usage().items()},
            "caches": [cache.stats() for cache in self.caches],
        }

    def run_maintenance(self) -> Dict[str, int]:
        """Sweep caches, reset stale usage windows and drop old articles."""
        summary = {
            "evicted": sum(cache.sweep() for cache in self.caches),
            "windows_reset": self.client.reset_stale_windows(),
            "articles_removed": self.store.cleanup_older_than(
                self.settings.news.retention_days, now=self._now()
            ),
        }
        logger.debug("Maintenance completed", **summary)
        return summary

    def start_background_tasks(self) -> None:
        """Run maintenance on a fixed interval until ``stop()``."""
        if self._maintenance_task is None or self._maintenance_task.done():
            self._maintenance_task = asyncio.create_task(self._maintenance_loop())
            logger.info("Background maintenance started", interval=self.settings.maintenance_interval)

    async def _maintenance_loop(self) -> None:
        while True:
            await asyncio.sleep(self.settings.maintenance_interval)
            try:
                self.run_maintenance()
            except Exception as e:
                logger.error("Maintenance failed", error=str(e))

    async def stop(self) -> None:
        """Stop background work and release the HTTP session."""
        if self._maintenance_task is not None:
            self._maintenance_task.cancel()
            try:
                await self._maintenance_task
            except asyncio.CancelledError:
                pass
            self._maintenance_task = None
        await self.client.close()
