#!/usr/bin/env python3
"""
Shared fixtures: deterministic clocks, settings without network delays and
in-memory provider fakes.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import pytest

from portfolio_intel.config import CacheSettings, FetchSettings, NewsSettings, ProviderSettings, Settings
from portfolio_intel.models import CompanyProfile, PortfolioIntent, Quote, RawArticle, SymbolSearchMatch

FIXED_NOW = datetime(2024, 3, 15, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeProvider:
    """Scripted provider implementing every provider protocol.

    Values in the lookup dicts may be exceptions, which are raised instead.
    """

    def __init__(
        self,
        name: str = "finnhub",
        quotes: Optional[Dict[str, Any]] = None,
        profiles: Optional[Dict[str, Any]] = None,
        search_results: Optional[Dict[str, Any]] = None,
        company_news: Optional[Dict[str, Any]] = None,
        market_news: Optional[List[RawArticle]] = None,
        is_configured: bool = True,
    ):
        self.name = name
        self.quotes = quotes or {}
        self.profiles = profiles or {}
        self.search_results = search_results or {}
        self.company_news = company_news or {}
        self.market_news = market_news or []
        self.is_configured = is_configured
        self.calls: List[tuple] = []

    @staticmethod
    def _result(value: Any, default: Any) -> Any:
        if isinstance(value, Exception):
            raise value
        return default if value is None else value

    async def get_quote(self, symbol: str) -> Quote:
        self.calls.append(("quote", symbol))
        return self._result(self.quotes.get(symbol), Quote(symbol=symbol, data_source=self.name))

    async def get_profile(self, symbol: str) -> CompanyProfile:
        self.calls.append(("profile", symbol))
        return self._result(self.profiles.get(symbol), CompanyProfile(symbol=symbol))

    async def search(self, query: str) -> List[SymbolSearchMatch]:
        self.calls.append(("search", query))
        return self._result(self.search_results.get(query), [])

    async def get_company_news(self, symbol, start, end) -> List[RawArticle]:
        self.calls.append(("company_news", symbol))
        return self._result(self.company_news.get(symbol), [])

    async def get_market_news(self, start, end) -> List[RawArticle]:
        self.calls.append(("market_news", None))
        return list(self.market_news)

    def count(self, kind: str) -> int:
        return sum(1 for call in self.calls if call[0] == kind)


class FakeResponse:
    def __init__(self, status=200, body=None, text=""):
        self.status = status
        self._body = body
        self._text = text

    async def json(self, content_type=None):
        if isinstance(self._body, Exception):
            raise self._body
        return self._body

    async def text(self):
        return self._text

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        return False


class FakeSession:
    """Replays scripted responses; exceptions are raised on request."""

    def __init__(self, responses):
        self.responses = list(responses)
        self.calls = []
        self.closed = False

    def get(self, url, params=None, headers=None):
        self.calls.append((url, dict(params or {})))
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    async def close(self):
        self.closed = True


class FakeOracle:
    def __init__(self, intents: List[PortfolioIntent]):
        self.intents = intents

    async def extract_intents(self, text: str) -> List[PortfolioIntent]:
        return list(self.intents)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def fake_provider():
    """Factory for scripted providers."""
    return FakeProvider


@pytest.fixture
def fake_oracle():
    return FakeOracle


@pytest.fixture
def fetch_settings():
    return FetchSettings(
        min_request_interval=0.0,
        backoff_base_delay=1.0,
        network_retry_delay=0.5,
        batch_pause=0.0,
    )


@pytest.fixture
def settings(fetch_settings):
    return Settings(
        _env_file=None,
        providers=ProviderSettings(
            finnhub_api_key="test-finnhub-key",
            alpha_vantage_api_key="test-av-key",
            quote_chain="alpha_vantage,finnhub",
            news_chain="finnhub",
        ),
        fetch=fetch_settings,
        cache=CacheSettings(),
        news=NewsSettings(),
        maintenance_interval=0.01,
    )


@pytest.fixture
def sample_article():
    """Factory for raw articles published relative to FIXED_NOW."""
    def _make(headline: str, summary: str = "", hours_ago: float = 1.0, **kwargs) -> RawArticle:
        from datetime import timedelta
        return RawArticle(
            headline=headline,
            summary=summary,
            published_at=FIXED_NOW - timedelta(hours=hours_ago),
            **kwargs,
        )
    return _make


@pytest.fixture
def fake_session():
    """Factory for scripted aiohttp-like sessions."""
    return FakeSession


@pytest.fixture
def fake_response():
    return FakeResponse
