#!/usr/bin/env python3
"""
Portfolio Intelligence API - REST endpoints for symbols, news and quotes
"""

import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from .config import get_settings
from .exceptions import MisconfiguredError, PortfolioIntelError
from .logging import clear_request_context, get_logger, set_request_context, setup_logging
from .models import ProviderHealth, Quote, RankedNewsItem, TickerCandidate, portfolio_weights
from .scoring import FeedFilter
from .service import PortfolioIntelligenceService

logger = get_logger(__name__)

router = APIRouter()


class ResolveSymbolsRequest(BaseModel):
    queries: List[str] = Field(..., min_length=1, description="Free-text company references")


class RankedNewsRequest(BaseModel):
    symbols: List[str] = Field(..., min_length=1)
    holdings: Dict[str, float] = Field(default_factory=dict, description="Symbol -> share count")
    filter: Optional[FeedFilter] = None


class QuotesRequest(BaseModel):
    symbols: List[str] = Field(..., min_length=1)


def get_service(request: Request) -> PortfolioIntelligenceService:
    return request.app.state.service


@router.post(
    "/symbols/resolve",
    response_model=List[TickerCandidate],
    summary="Resolve company references to ticker symbols",
)
async def resolve_symbols(
    body: ResolveSymbolsRequest,
    service: PortfolioIntelligenceService = Depends(get_service),
):
    return await service.resolve_symbols(body.queries)


@router.post(
    "/news/ranked",
    response_model=List[RankedNewsItem],
    summary="Portfolio-ranked news feed",
)
async def ranked_news(
    body: RankedNewsRequest,
    service: PortfolioIntelligenceService = Depends(get_service),
):
    return await service.get_ranked_news(body.symbols, portfolio_weights(body.holdings), body.filter)


@router.post(
    "/quotes",
    response_model=List[Quote],
    summary="Latest quotes with provider fallback",
)
async def quotes(
    body: QuotesRequest,
    service: PortfolioIntelligenceService = Depends(get_service),
):
    return await service.get_quotes(body.symbols)


@router.get("/providers/usage", summary="Provider usage windows and cache statistics")
async def provider_usage(service: PortfolioIntelligenceService = Depends(get_service)) -> Dict[str, Any]:
    return service.usage()


@router.get(
    "/providers/health",
    response_model=List[ProviderHealth],
    summary="Live provider health probe",
)
async def provider_health(service: PortfolioIntelligenceService = Depends(get_service)):
    return await service.health_check()


def _error_response(request: Request, status_code: int, exc: PortfolioIntelError) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "error": {
                "message": exc.message,
                "code": exc.error_code,
                "context": exc.context,
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "path": str(request.url.path),
            }
        },
    )


def create_app(service: Optional[PortfolioIntelligenceService] = None) -> FastAPI:
    """Build the API application around ``service`` (created on startup if omitted)."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        settings = get_settings()
        if getattr(app.state, "service", None) is None:
            setup_logging(
                log_level=settings.log_level,
                service_name=settings.service_name,
                environment=settings.environment,
            )
            for issue in settings.validate_provider_config():
                logger.warning("Configuration issue", issue=issue)
            app.state.service = PortfolioIntelligenceService(settings)

        await app.state.service.client.start()
        app.state.service.start_background_tasks()
        try:
            yield
        finally:
            await app.state.service.stop()

    app = FastAPI(title="Portfolio Intelligence API", lifespan=lifespan)
    app.state.service = service
    app.include_router(router)

    @app.exception_handler(MisconfiguredError)
    async def misconfigured_handler(request: Request, exc: MisconfiguredError):
        logger.error("Service misconfigured", error=str(exc))
        return _error_response(request, 503, exc)

    @app.exception_handler(PortfolioIntelError)
    async def portfolio_intel_error_handler(request: Request, exc: PortfolioIntelError):
        logger.warning("Request failed", error=str(exc))
        return _error_response(request, 502, exc)

    @app.middleware("http")
    async def request_context_middleware(request: Request, call_next):
        set_request_context(request.headers.get("X-Request-ID") or str(uuid.uuid4())[:8])
        try:
            return await call_next(request)
        finally:
            clear_request_context()

    return app
