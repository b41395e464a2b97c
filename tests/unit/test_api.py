#!/usr/bin/env python3
"""
Tests for the REST layer.
"""

import math
from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient

from portfolio_intel.api import create_app
from portfolio_intel.exceptions import MisconfiguredError
from portfolio_intel.http_client import RateLimitedClient
from portfolio_intel.models import CompanyProfile, Quote, SymbolSearchMatch
from portfolio_intel.service import PortfolioIntelligenceService

NOW = datetime(2024, 3, 15, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def finnhub(fake_provider, sample_article):
    return fake_provider(
        "finnhub",
        quotes={"AAPL": Quote(symbol="AAPL", price=190.25, data_source="finnhub")},
        profiles={"AAPL": CompanyProfile(symbol="AAPL", name="Apple Inc", exchange="NASDAQ")},
        search_results={
            "apple": [SymbolSearchMatch(symbol="AAPL", description="APPLE INC", type="Common Stock")],
            "broken": MisconfiguredError("Finnhub API key not configured", setting="FINNHUB_API_KEY"),
        },
        company_news={"AAPL": [sample_article("AAPL beats quarterly earnings", external_id="a1")]},
    )


@pytest.fixture
def api_client(settings, clock, fake_session, fake_provider, finnhub):
    service = PortfolioIntelligenceService(
        settings,
        client=RateLimitedClient(settings.fetch, session=fake_session([]), clock=clock),
        finnhub=finnhub,
        alpha_vantage=fake_provider(
            "alpha_vantage",
            quotes={"AAPL": MisconfiguredError("Alpha Vantage API key not configured")},
            is_configured=False,
        ),
        clock=clock,
        now=lambda: NOW,
    )
    return TestClient(create_app(service))


class TestSymbolsEndpoint:

    def test_resolve(self, api_client):
        response = api_client.post("/symbols/resolve", json={"queries": ["apple", "nothing"]})

        assert response.status_code == 200
        data = response.json()
        assert len(data) == 1
        assert data[0]["symbol"] == "AAPL"
        assert data[0]["source"] == "fuzzy-search"
        assert data[0]["confidence"] == pytest.approx(0.85)

    def test_empty_query_list_is_rejected(self, api_client):
        response = api_client.post("/symbols/resolve", json={"queries": []})
        assert response.status_code == 422

    def test_misconfiguration_is_service_unavailable(self, api_client):
        response = api_client.post("/symbols/resolve", json={"queries": ["broken"]})

        assert response.status_code == 503
        error = response.json()["error"]
        assert error["message"] == "Finnhub API key not configured"
        assert error["path"] == "/symbols/resolve"


class TestQuotesEndpoint:

    def test_quotes_fall_back_past_unconfigured_provider(self, api_client):
        response = api_client.post("/quotes", json={"symbols": ["AAPL"]})

        assert response.status_code == 200
        [quote] = response.json()
        assert quote["price"] == 190.25
        assert quote["data_source"] == "finnhub"


class TestNewsEndpoint:

    def test_ranked_news_uses_share_counts(self, api_client):
        response = api_client.post("/news/ranked", json={
            "symbols": ["AAPL"],
            "holdings": {"AAPL": 100},
            "filter": {"category": "earnings", "timeframe": "week"},
        })

        assert response.status_code == 200
        [item] = response.json()
        assert item["article"]["external_id"] == "a1"
        expected = (23 / 24) * 10 + math.log(101) * 5 + 3 + 5
        assert item["relevance_score"] == pytest.approx(expected)

    def test_invalid_filter_is_rejected(self, api_client):
        response = api_client.post("/news/ranked", json={"symbols": ["AAPL"], "filter": {"timeframe": "decade"}})
        assert response.status_code == 422


class TestProviderEndpoints:

    def test_usage(self, api_client):
        response = api_client.get("/providers/usage")

        assert response.status_code == 200
        assert "caches" in response.json()

    def test_health(self, api_client):
        response = api_client.get("/providers/health")

        assert response.status_code == 200
        statuses = {item["provider"]: item["status"] for item in response.json()}
        assert statuses == {"finnhub": "healthy", "alpha_vantage": "unconfigured"}
