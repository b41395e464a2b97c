"""Alpha Vantage Provider

Scope:
  * GLOBAL_QUOTE endpoint for latest quote snapshot
  * Normalization only; resilience lives in RateLimitedClient

Notes:
  * Alpha Vantage reports throttling and bad symbols in a 200 body
    ("Note" / "Error Message"); both surface as a Quote error marker so the
    fallback chain moves on.
"""
from __future__ import annotations

from typing import Any, Dict

from ..config import ProviderSettings
from ..exceptions import MisconfiguredError, ProviderError
from ..http_client import ProviderRequest, RateLimitedClient
from ..logging import get_logger
from ..models import Quote

logger = get_logger(__name__)


class AlphaVantageProvider:
    name = "alpha_vantage"

    def __init__(self, settings: ProviderSettings, client: RateLimitedClient):
        self.settings = settings
        self.client = client

    @property
    def is_configured(self) -> bool:
        return bool(self.settings.alpha_vantage_api_key)

    def _request(self, endpoint: str, params: Dict[str, Any]) -> ProviderRequest:
        if not self.is_configured:
            raise MisconfiguredError(
                "Alpha Vantage API key not configured", setting="ALPHA_VANTAGE_API_KEY"
            )
        return ProviderRequest(
            url=self.settings.alpha_vantage_base_url,
            endpoint=endpoint,
            params={**params, "apikey": self.settings.alpha_vantage_api_key},
        )

    async def get_quote(self, symbol: str) -> Quote:
        symbol = symbol.upper()
        request = self._request("global_quote", {"function": "GLOBAL_QUOTE", "symbol": symbol})
        payload = await self.client.call(self.name, request)
        if not isinstance(payload, dict):
            raise ProviderError("Unexpected Alpha Vantage payload", provider=self.name)

        if 'Error Message' in payload:
            logger.warning("Alpha Vantage error", symbol=symbol, error=payload['Error Message'])
            return Quote(symbol=symbol, data_source=self.name, error=payload['Error Message'])
        if 'Note' in payload or 'Information' in payload:
            # Rate limit / throttling note
            return Quote(symbol=symbol, data_source=self.name, error="API rate limit exceeded")

        quote = payload.get('Global Quote') or {}
        if not quote:
            return Quote(symbol=symbol, data_source=self.name, error="No quote data available")

        def _f(key: str, default: float = 0.0) -> float:
            try:
                return float(quote.get(key, default))
            except (TypeError, ValueError):
                return default

        return Quote(
            symbol=symbol,
            price=_f('05. price'),
            change=_f('09. change'),
            change_percent=quote.get('10. change percent') or "0.00%",
            data_source=self.name,
        )


__all__ = ["AlphaVantageProvider"]
