"""Configuration management for the portfolio intelligence layer."""

from functools import lru_cache
from typing import Optional, List

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ProviderSettings(BaseSettings):
    """Third-party data provider credentials and endpoints."""

    # Keys are read from the vendor's conventional variable names
    finnhub_api_key: Optional[str] = Field(
        default=None,
        repr=False,
        validation_alias=AliasChoices("FINNHUB_API_KEY", "PROVIDER_FINNHUB_API_KEY", "finnhub_api_key"),
    )
    finnhub_base_url: str = Field(default="https://finnhub.io/api/v1")

    alpha_vantage_api_key: Optional[str] = Field(
        default=None,
        repr=False,
        validation_alias=AliasChoices(
            "ALPHA_VANTAGE_API_KEY", "PROVIDER_ALPHA_VANTAGE_API_KEY", "alpha_vantage_api_key"
        ),
    )
    alpha_vantage_base_url: str = Field(default="https://www.alphavantage.co/query")

    # Comma-separated, ordered primary -> fallback
    quote_chain: str = Field(default="alpha_vantage,finnhub")
    news_chain: str = Field(default="finnhub")

    @property
    def quote_providers(self) -> List[str]:
        return [name.strip() for name in self.quote_chain.split(',') if name.strip()]

    @property
    def news_providers(self) -> List[str]:
        return [name.strip() for name in self.news_chain.split(',') if name.strip()]

    model_config = SettingsConfigDict(env_prefix="PROVIDER_", extra="ignore", populate_by_name=True)


class FetchSettings(BaseSettings):
    """Rate-limited fetch client tuning."""

    timeout: float = Field(default=15.0)
    max_attempts: int = Field(default=3)
    backoff_base_delay: float = Field(default=1.0)  # seconds, doubled per attempt on 429
    network_retry_delay: float = Field(default=1.0)  # fixed delay on network errors
    min_request_interval: float = Field(default=1.0)  # per-provider spacing
    usage_reset_interval: float = Field(default=3600.0)
    batch_size: int = Field(default=5)
    batch_pause: float = Field(default=0.1)

    model_config = SettingsConfigDict(env_prefix="FETCH_", extra="ignore")


class CacheSettings(BaseSettings):
    """TTLs for every cached external call (seconds)."""

    quote_ttl: float = Field(default=60.0)
    news_ttl: float = Field(default=300.0)
    symbol_search_ttl: float = Field(default=24 * 3600.0)
    validation_ttl: float = Field(default=300.0)

    model_config = SettingsConfigDict(env_prefix="CACHE_", extra="ignore")


class NewsSettings(BaseSettings):
    """News ingestion and ranking settings."""

    lookback_days: int = Field(default=7)
    retention_days: int = Field(default=7)
    max_symbols: int = Field(default=10)  # top-K symbols by weight per feed request
    include_market_news: bool = Field(default=False)
    min_relevance: float = Field(default=0.3)
    feed_hours_back: int = Field(default=7 * 24)
    feed_limit: int = Field(default=50)

    model_config = SettingsConfigDict(env_prefix="NEWS_", extra="ignore")


class Settings(BaseSettings):
    """Main application settings."""

    environment: str = Field(default="development")
    log_level: str = Field(default="INFO")

    service_name: str = Field(default="portfolio-intel")

    providers: ProviderSettings = Field(default_factory=ProviderSettings)
    fetch: FetchSettings = Field(default_factory=FetchSettings)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    news: NewsSettings = Field(default_factory=NewsSettings)

    maintenance_interval: float = Field(default=600.0)

    def validate_provider_config(self) -> List[str]:
        """Return a list of configuration issues for the configured providers."""
        issues = []
        configured = {
            "finnhub": bool(self.providers.finnhub_api_key),
            "alpha_vantage": bool(self.providers.alpha_vantage_api_key),
        }

        for name in set(self.providers.quote_providers) | set(self.providers.news_providers):
            if name not in configured:
                issues.append(f"WARNING: Unknown provider '{name}' in provider chain")
            elif not configured[name]:
                issues.append(f"WARNING: No API key configured for '{name}'")

        if not self.providers.finnhub_api_key:
            issues.append("CRITICAL: FINNHUB_API_KEY missing - symbol search and validation disabled")

        return issues

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        validate_assignment=True,
        extra="ignore",
    )


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
