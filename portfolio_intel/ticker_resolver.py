"""
Ticker identity resolution.

Turns a free-text company reference ("apple", "AAPL", "Berkshire Hathaway")
into a stock symbol with a confidence score, and checks that the symbol
actually trades by combining a profile lookup with a live quote.
"""

import asyncio
import re
from typing import Awaitable, List, Optional, Sequence, Tuple, TypeVar

from .cache import CacheKeys, TTLCache, normalize_query
from .exceptions import MisconfiguredError, NotFoundError, PortfolioIntelError
from .logging import get_logger
from .models import CandidateSource, CompanyProfile, MarketValidation, Quote, TickerCandidate
from .providers.base import ProfileProvider, QuoteProvider, SymbolSearchProvider
from .resilience import gather_in_batches

logger = get_logger(__name__)

TICKER_PATTERN = re.compile(r"^[A-Z]{1,5}(\.[A-Z])?$")

# Search result types treated as equities
STOCK_TYPES = frozenset({"Common Stock", "Stock", ""})

MAJOR_EXCHANGES = ("NYSE", "NASDAQ", "AMEX", "OTC")

# Provider units are millions of USD
MICRO_CAP_THRESHOLD = 10.0

MIN_CONFIDENCE = 0.4
DIRECT_TICKER_CONFIDENCE = 0.95
EXACT_MATCH_THRESHOLD = 0.9

# Longer queries are rejected by the search endpoint
MAX_SEARCH_QUERY_LENGTH = 15

_MISSING = object()

T = TypeVar("T")


def calculate_similarity(first: str, second: str) -> float:
    """Similarity in [0, 1]: exact 1.0, containment 0.8, else character-set Jaccard."""
    s1 = first.lower().strip()
    s2 = second.lower().strip()

    if s1 == s2:
        return 1.0
    if s1 in s2 or s2 in s1:
        return 0.8

    chars1, chars2 = set(s1), set(s2)
    union = chars1 | chars2
    if not union:
        return 0.0
    return len(chars1 & chars2) / len(union)


def score_market_evidence(
    symbol: str,
    profile: Optional[CompanyProfile],
    quote: Optional[Quote],
) -> MarketValidation:
    """Confidence that ``symbol`` trades, from a profile and a quote.

    Both present 0.95, profile only 0.7, quote only 0.6, neither 0. A profile
    on a non-major exchange or with a micro-cap valuation lowers confidence.
    """
    has_profile = profile is not None and profile.is_well_formed
    has_quote = quote is not None and quote.error is None and quote.price > 0

    if has_profile and has_quote:
        confidence = 0.95
    elif has_profile:
        confidence = 0.7
    elif has_quote:
        confidence = 0.6
    else:
        confidence = 0.0

    if has_profile:
        exchange = (profile.exchange or "").upper()
        if profile.exchange and not any(major in exchange for major in MAJOR_EXCHANGES):
            confidence = max(0.5, confidence - 0.2)

        if profile.market_cap and profile.market_cap < MICRO_CAP_THRESHOLD:
            confidence = max(0.6, confidence - 0.1)

    return MarketValidation(
        symbol=symbol,
        is_valid=confidence > 0,
        confidence=confidence,
        company_name=profile.name if has_profile else None,
        market_cap=profile.market_cap if has_profile else None,
        exchange=profile.exchange if has_profile else None,
        logo=profile.logo if has_profile else None,
    )


def combine_validation_scores(text_confidence: float, validation: MarketValidation) -> float:
    """Blend a text-match confidence with market evidence.

    Market evidence dominates only when it is itself strong; an invalid
    symbol caps the result at 0.3. Non-decreasing in market confidence.
    """
    if not validation.is_valid:
        return min(0.3, text_confidence * 0.5)

    market = validation.confidence
    weak_blend = text_confidence * 0.7 + market * 0.3
    if market >= 0.9:
        return max(text_confidence, market)
    if market >= 0.7:
        # Floored at the weak blend so the result never drops across 0.7
        return max(text_confidence * 0.4 + market * 0.6, weak_blend)
    return weak_blend


class MarketValidator:
    """Validates symbols against profile and quote data, cached for a short TTL."""

    def __init__(
        self,
        profiles: ProfileProvider,
        quotes: QuoteProvider,
        cache: TTLCache,
        ttl: Optional[float] = None,
        batch_size: int = 5,
        batch_pause: float = 0.1,
    ):
        self.profiles = profiles
        self.quotes = quotes
        self.cache = cache
        self.ttl = ttl
        self.batch_size = batch_size
        self.batch_pause = batch_pause

    async def validate(self, symbol: str) -> MarketValidation:
        """Validate one symbol. Provider failures yield an uncached invalid result.

        A failed lookup on one side only counts as missing evidence for that
        side, so a profile without a quote still validates at 0.7. The
        failure is reported only when the remaining evidence cannot validate
        the symbol. An unknown symbol (NotFoundError from the profile lookup)
        is missing evidence, never a failure.
        """
        symbol = symbol.strip().upper()
        try:
            return await self.cache.get_or_fetch(
                CacheKeys.validation(symbol),
                lambda: self._fetch(symbol),
                self.ttl,
            )
        except PortfolioIntelError as e:
            logger.warning("Symbol validation failed", symbol=symbol, error=str(e))
            return MarketValidation(symbol=symbol, is_valid=False, confidence=0.0, error=e.message)

    @staticmethod
    async def _evidence(lookup: Awaitable[T]) -> Tuple[Optional[T], Optional[PortfolioIntelError]]:
        try:
            return await lookup, None
        except MisconfiguredError:
            raise
        except NotFoundError:
            return None, None
        except PortfolioIntelError as e:
            return None, e

    async def _fetch(self, symbol: str) -> MarketValidation:
        (profile, profile_error), (quote, quote_error) = await asyncio.gather(
            self._evidence(self.profiles.get_profile(symbol)),
            self._evidence(self.quotes.get_quote(symbol)),
        )
        validation = score_market_evidence(symbol, profile, quote)

        failure = profile_error or quote_error
        if failure is not None:
            if not validation.is_valid:
                raise failure
            logger.info(
                "Validated symbol on partial evidence",
                symbol=symbol,
                confidence=validation.confidence,
                error=str(failure),
            )

        logger.debug(
            "Validated symbol",
            symbol=symbol,
            is_valid=validation.is_valid,
            confidence=validation.confidence,
        )
        return validation

    async def validate_many(self, symbols: Sequence[str]) -> List[MarketValidation]:
        return await gather_in_batches(symbols, self.validate, self.batch_size, self.batch_pause)


class TickerResolver:
    """Resolves free-text company references to ticker candidates."""

    def __init__(
        self,
        search_provider: SymbolSearchProvider,
        validator: MarketValidator,
        cache: TTLCache,
        ttl: Optional[float] = None,
        batch_size: int = 3,
        batch_pause: float = 0.2,
    ):
        self.search_provider = search_provider
        self.validator = validator
        self.cache = cache
        self.ttl = ttl
        self.batch_size = batch_size
        self.batch_pause = batch_pause

    async def resolve(self, query: str) -> Optional[TickerCandidate]:
        """Resolve ``query`` to a candidate, or None when no match is credible.

        Results, including None, are cached by normalized query. Provider
        failures yield None without caching, including a direct-ticker
        validation that failed when search finds nothing either.
        MisconfiguredError propagates.
        """
        query = query.strip()
        if not query:
            return None

        key = CacheKeys.symbol_search(query)
        cached = self.cache.get(key, _MISSING)
        if cached is not _MISSING:
            if cached is None:
                return None
            return cached.model_copy(update={"source": CandidateSource.CACHE})

        try:
            return await self.cache.get_or_fetch(key, lambda: self._resolve(query), self.ttl)
        except MisconfiguredError:
            raise
        except PortfolioIntelError as e:
            logger.warning("Symbol resolution failed", query=query, error=str(e))
            return None

    async def _resolve(self, query: str) -> Optional[TickerCandidate]:
        if TICKER_PATTERN.match(query):
            validation = await self.validator.validate(query)
            if validation.is_valid:
                return TickerCandidate(
                    symbol=validation.symbol,
                    company_name=validation.company_name or validation.symbol,
                    confidence=DIRECT_TICKER_CONFIDENCE,
                    search_query=query,
                    is_exact_match=True,
                    source=CandidateSource.DIRECT_TICKER,
                )
            if validation.error:
                candidate = await self._search(query)
                if candidate is None:
                    # Raising keeps the unresolved query out of the cache
                    raise PortfolioIntelError(
                        validation.error,
                        error_code="VALIDATION_FAILED",
                        context={"symbol": validation.symbol},
                    )
                return candidate

        return await self._search(query)

    async def _search(self, query: str) -> Optional[TickerCandidate]:
        normalized = normalize_query(query)
        search_text = query.split(" ")[0] if len(query) > MAX_SEARCH_QUERY_LENGTH else query

        matches = await self.search_provider.search(search_text)

        best = None
        best_score = 0.0
        for match in matches:
            if match.type not in STOCK_TYPES:
                continue
            score = max(
                calculate_similarity(query, match.description),
                calculate_similarity(query, match.symbol),
            )
            if best is None or score > best_score:
                best, best_score = match, score

        if best is None:
            logger.info("No symbol search results", query=query)
            return None

        confidence = best_score
        if best.symbol.lower() == normalized:
            confidence = 0.95
        elif normalized in best.description.lower():
            confidence = max(confidence, 0.85)

        if confidence < MIN_CONFIDENCE:
            logger.info(
                "Low confidence symbol match",
                query=query,
                candidate=best.symbol,
                confidence=round(confidence, 3),
            )
            return None

        logger.info("Resolved symbol", query=query, symbol=best.symbol, confidence=round(confidence, 3))
        return TickerCandidate(
            symbol=best.symbol,
            company_name=best.description or best.symbol,
            confidence=confidence,
            search_query=query,
            is_exact_match=confidence >= EXACT_MATCH_THRESHOLD,
            source=CandidateSource.FUZZY_SEARCH,
        )

    async def resolve_many(self, queries: Sequence[str]) -> List[Optional[TickerCandidate]]:
        """Resolve queries in small concurrent batches, preserving order."""
        return await gather_in_batches(queries, self.resolve, self.batch_size, self.batch_pause)
