"""Finnhub Provider

Scope:
  * /quote            latest quote snapshot
  * /company-news     per-symbol news over a date range
  * /news             general market news
  * /search           symbol / company-name search
  * /stock/profile2   company profile

Notes:
  * Unknown symbols come back as 200 with zeroed quotes (returned as-is) or an
    empty profile (raised as InvalidSymbolError);
    data-quality judgement belongs to callers.
"""
from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional

from ..config import ProviderSettings
from ..exceptions import InvalidSymbolError, MisconfiguredError, ProviderError
from ..http_client import ProviderRequest, RateLimitedClient
from ..logging import get_logger
from ..models import CompanyProfile, Quote, RawArticle, SymbolSearchMatch
from ..news_engine import article_id

logger = get_logger(__name__)


def _to_float(value: Any, default: float = 0.0) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def normalize_finnhub_article(raw: Dict[str, Any]) -> Optional[RawArticle]:
    """Map a Finnhub news item to a RawArticle; None if it has no headline."""
    headline = (raw.get('headline') or '').strip()
    if not headline:
        return None

    timestamp = int(_to_float(raw.get('datetime')))
    published_at = datetime.fromtimestamp(timestamp, tz=timezone.utc)

    external_id = raw.get('id')
    if external_id in (None, '', 0):
        external_id = article_id(published_at, headline)

    related = [s.strip().upper() for s in (raw.get('related') or '').split(',') if s.strip()]

    return RawArticle(
        external_id=str(external_id),
        headline=headline,
        summary=raw.get('summary') or '',
        url=raw.get('url') or '',
        source=raw.get('source') or 'Unknown',
        image_url=raw.get('image') or None,
        published_at=published_at,
        provider_category=raw.get('category') or None,
        related=related,
    )


class FinnhubProvider:
    name = "finnhub"

    def __init__(self, settings: ProviderSettings, client: RateLimitedClient):
        self.settings = settings
        self.client = client

    @property
    def is_configured(self) -> bool:
        return bool(self.settings.finnhub_api_key)

    async def _get(self, path: str, endpoint: str, params: Dict[str, Any]) -> Any:
        if not self.is_configured:
            raise MisconfiguredError("Finnhub API key not configured", setting="FINNHUB_API_KEY")
        request = ProviderRequest(
            url=f"{self.settings.finnhub_base_url.rstrip('/')}/{path}",
            endpoint=endpoint,
            params={**params, "token": self.settings.finnhub_api_key},
        )
        return await self.client.call(self.name, request)

    async def get_quote(self, symbol: str) -> Quote:
        symbol = symbol.upper()
        payload = await self._get("quote", "quote", {"symbol": symbol})
        if not isinstance(payload, dict):
            raise ProviderError("Unexpected Finnhub quote payload", provider=self.name)
        if payload.get('error'):
            return Quote(symbol=symbol, data_source=self.name, error=str(payload['error']))

        return Quote(
            symbol=symbol,
            price=_to_float(payload.get('c')),
            change=_to_float(payload.get('d')),
            change_percent=f"{_to_float(payload.get('dp')):.2f}%",
            data_source=self.name,
        )

    async def get_company_news(self, symbol: str, start: date, end: date) -> List[RawArticle]:
        payload = await self._get("company-news", "company_news", {
            "symbol": symbol.upper(),
            "from": start.isoformat(),
            "to": end.isoformat(),
        })
        return self._articles(payload)

    async def get_market_news(self, start: date, end: date) -> List[RawArticle]:
        payload = await self._get("news", "market_news", {"category": "general"})
        # /news has no date filter
        return [
            article for article in self._articles(payload)
            if start <= article.published_at.date() <= end
        ]

    def _articles(self, payload: Any) -> List[RawArticle]:
        if isinstance(payload, dict) and payload.get('error'):
            raise ProviderError(f"Finnhub error: {payload['error']}", provider=self.name)
        if not isinstance(payload, list):
            raise ProviderError("Unexpected Finnhub news payload", provider=self.name)

        articles = []
        for raw in payload:
            if not isinstance(raw, dict):
                continue
            article = normalize_finnhub_article(raw)
            if article is not None:
                articles.append(article)
        return articles

    async def search(self, query: str) -> List[SymbolSearchMatch]:
        payload = await self._get("search", "search", {"q": query})
        if not isinstance(payload, dict):
            raise ProviderError("Unexpected Finnhub search payload", provider=self.name)

        matches = []
        for item in payload.get('result') or []:
            if not item.get('symbol'):
                continue
            matches.append(SymbolSearchMatch(
                symbol=item['symbol'],
                description=item.get('description') or '',
                display_symbol=item.get('displaySymbol'),
                type=item.get('type') or '',
            ))
        return matches

    async def get_profile(self, symbol: str) -> CompanyProfile:
        symbol = symbol.upper()
        payload = await self._get("stock/profile2", "profile", {"symbol": symbol})
        if not isinstance(payload, dict):
            raise ProviderError("Unexpected Finnhub profile payload", provider=self.name)
        if payload.get('error'):
            return CompanyProfile(symbol=symbol, error=str(payload['error']))
        if not payload:
            # Finnhub answers unknown symbols with an empty object
            raise InvalidSymbolError(symbol)

        market_cap = payload.get('marketCapitalization')
        return CompanyProfile(
            symbol=symbol,
            name=payload.get('name') or None,
            exchange=payload.get('exchange') or None,
            market_cap=_to_float(market_cap) if market_cap is not None else None,
            logo=payload.get('logo') or None,
        )


__all__ = ["FinnhubProvider", "normalize_finnhub_article"]
