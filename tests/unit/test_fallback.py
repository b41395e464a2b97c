#!/usr/bin/env python3
"""
Tests for ordered provider fallback.
"""

import pytest

from portfolio_intel.exceptions import FallbackExhaustedError, MisconfiguredError, ThrottledError
from portfolio_intel.fallback import FallbackOrchestrator, error_marker
from portfolio_intel.http_client import ProviderRequest, RateLimitedClient
from portfolio_intel.models import Quote


def returning(value, calls=None, name=None):
    async def _fetch():
        if calls is not None:
            calls.append(name)
        return value
    return _fetch


def raising(error):
    async def _fetch():
        raise error
    return _fetch


class TestErrorMarker:

    def test_model_and_dict_markers(self):
        assert error_marker(Quote(symbol="AAPL", error="API rate limit exceeded")) == "API rate limit exceeded"
        assert error_marker({"error": "bad symbol"}) == "bad symbol"

    def test_partial_data_is_not_an_error(self):
        assert error_marker(Quote(symbol="AAPL", price=0.0)) is None
        assert error_marker([]) is None
        assert error_marker({"c": 0}) is None


class TestFallbackOrchestrator:
    """Test provider ordering and error aggregation."""

    def setup_method(self):
        self.orchestrator = FallbackOrchestrator()

    @pytest.mark.asyncio
    async def test_primary_success_skips_fallback(self):
        calls = []
        result = await self.orchestrator.resolve("quote", [
            ("alpha_vantage", returning(Quote(symbol="AAPL", price=190.0), calls, "alpha_vantage")),
            ("finnhub", returning(Quote(symbol="AAPL", price=191.0), calls, "finnhub")),
        ])

        assert result.price == 190.0
        assert calls == ["alpha_vantage"]

    @pytest.mark.asyncio
    async def test_zero_price_without_marker_is_success(self):
        result = await self.orchestrator.resolve("quote", [
            ("alpha_vantage", returning(Quote(symbol="XYZ", price=0.0))),
            ("finnhub", returning(Quote(symbol="XYZ", price=5.0))),
        ])

        assert result.price == 0.0

    @pytest.mark.asyncio
    async def test_error_marker_triggers_fallback(self):
        result = await self.orchestrator.resolve("quote", [
            ("alpha_vantage", returning(Quote(symbol="AAPL", error="API rate limit exceeded"))),
            ("finnhub", returning(Quote(symbol="AAPL", price=191.0))),
        ])

        assert result.price == 191.0

    @pytest.mark.asyncio
    async def test_misconfigured_primary_falls_through(self):
        result = await self.orchestrator.resolve("quote", [
            ("alpha_vantage", raising(MisconfiguredError("Alpha Vantage API key not configured"))),
            ("finnhub", returning(Quote(symbol="AAPL", price=191.0))),
        ])

        assert result.price == 191.0

    @pytest.mark.asyncio
    async def test_total_failure_names_every_provider(self):
        with pytest.raises(FallbackExhaustedError) as exc_info:
            await self.orchestrator.resolve("quote", [
                ("alpha_vantage", returning(Quote(symbol="AAPL", error="API rate limit exceeded"))),
                ("finnhub", raising(ThrottledError("Rate limit exceeded", provider="finnhub"))),
            ])

        error = exc_info.value
        assert error.headline == "API rate limit exceeded"
        assert error.primary_provider == "alpha_vantage"
        assert error.failures == [
            ("alpha_vantage", "API rate limit exceeded"),
            ("finnhub", "Rate limit exceeded"),
        ]
        assert "alpha_vantage: API rate limit exceeded" in str(error)
        assert "finnhub: Rate limit exceeded" in str(error)

    @pytest.mark.asyncio
    async def test_empty_chain_fails(self):
        with pytest.raises(FallbackExhaustedError) as exc_info:
            await self.orchestrator.resolve("quote", [])
        assert exc_info.value.headline == "No providers configured"

    @pytest.mark.asyncio
    async def test_throttled_primary_then_fallback_success(
        self, fetch_settings, clock, fake_session, fake_response
    ):
        """Primary answers 429 on every attempt; the fallback's body is returned."""
        session = fake_session([
            fake_response(429), fake_response(429), fake_response(429),
            fake_response(200, {"price": 101.5}),
        ])
        sleeps = []

        async def fake_sleep(delay):
            sleeps.append(delay)

        client = RateLimitedClient(fetch_settings, session=session, clock=clock, sleep=fake_sleep)
        primary = ProviderRequest(url="https://primary.example.com/quote", endpoint="quote")
        fallback = ProviderRequest(url="https://fallback.example.com/quote", endpoint="quote")

        result = await self.orchestrator.resolve("quote", [
            ("provider_a", lambda: client.call("provider_a", primary)),
            ("provider_b", lambda: client.call("provider_b", fallback)),
        ])

        assert result == {"price": 101.5}
        usage = client.usage()
        assert usage["provider_a"].request_count == 3
        assert usage["provider_a"].error_count == 3
        assert usage["provider_a"].throttle_hits == 3
        assert usage["provider_b"].request_count == 1
        assert usage["provider_b"].error_count == 0
        assert sleeps == [1.0, 2.0]
