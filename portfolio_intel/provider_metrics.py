#!/usr/bin/env python3
"""Shared provider and cache metrics instrumentation.

Centralizes Prometheus metric objects so they are registered once per process.
"""
from prometheus_client import Counter, Histogram

# Counter: total attempts per provider/endpoint with outcome label
try:
    PROVIDER_REQUESTS_TOTAL = Counter(
        'portfolio_intel_provider_requests_total',
        'Total attempts made to external data providers (includes retries)',
        ['provider', 'endpoint', 'status']  # status=success|throttled|network_error|error
    )
except Exception:  # noqa: BLE001
    PROVIDER_REQUESTS_TOTAL = None  # Already registered

# Counter: explicit rate-limit events (HTTP 429)
try:
    PROVIDER_RATE_LIMIT_TOTAL = Counter(
        'portfolio_intel_provider_rate_limit_total',
        'Total rate-limit events encountered (HTTP 429)',
        ['provider', 'endpoint']
    )
except Exception:  # noqa: BLE001
    PROVIDER_RATE_LIMIT_TOTAL = None

# Latency histogram per provider/endpoint (seconds)
try:
    PROVIDER_REQUEST_LATENCY_SECONDS = Histogram(
        'portfolio_intel_provider_request_latency_seconds',
        'Latency of external provider requests (seconds)',
        ['provider', 'endpoint'],
        buckets=(0.05, 0.1, 0.25, 0.5, 1, 2, 3, 5, 8, 13, 21)
    )
except Exception:  # noqa: BLE001
    PROVIDER_REQUEST_LATENCY_SECONDS = None

# Counter: fallback activations per capability
try:
    PROVIDER_FALLBACK_TOTAL = Counter(
        'portfolio_intel_provider_fallback_total',
        'Times a capability fell through to a non-primary provider',
        ['capability', 'provider']
    )
except Exception:  # noqa: BLE001
    PROVIDER_FALLBACK_TOTAL = None


def record_attempt(provider: str, endpoint: str, status: str, latency: float) -> None:
    """Record one provider attempt."""
    if PROVIDER_REQUESTS_TOTAL is not None:
        PROVIDER_REQUESTS_TOTAL.labels(provider=provider, endpoint=endpoint, status=status).inc()
    if PROVIDER_REQUEST_LATENCY_SECONDS is not None:
        PROVIDER_REQUEST_LATENCY_SECONDS.labels(provider=provider, endpoint=endpoint).observe(latency)
    if status == "throttled" and PROVIDER_RATE_LIMIT_TOTAL is not None:
        PROVIDER_RATE_LIMIT_TOTAL.labels(provider=provider, endpoint=endpoint).inc()


def record_fallback(capability: str, provider: str) -> None:
    """Record that ``provider`` served ``capability`` after the primary failed."""
    if PROVIDER_FALLBACK_TOTAL is not None:
        PROVIDER_FALLBACK_TOTAL.labels(capability=capability, provider=provider).inc()


# Counter: cache lookups through get_or_fetch
try:
    CACHE_LOOKUPS_TOTAL = Counter(
        'portfolio_intel_cache_lookups_total',
        'Cache lookups by outcome',
        ['cache', 'outcome']  # outcome=hit|miss|coalesced
    )
except Exception:  # noqa: BLE001
    CACHE_LOOKUPS_TOTAL = None


def record_cache_lookup(cache: str, outcome: str) -> None:
    if CACHE_LOOKUPS_TOTAL is not None:
        CACHE_LOOKUPS_TOTAL.labels(cache=cache, outcome=outcome).inc()
