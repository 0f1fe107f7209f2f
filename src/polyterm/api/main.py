"""FastAPI app serving the canonical market-data contract."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any

import structlog
from fastapi import FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from polyterm.api.schemas import (
    CategoriesResponse,
    HealthResponse,
    HistoryResponse,
    LeaderboardResponse,
    MarketResponse,
    MarketsResponse,
    ProfileResponse,
    StatsResponse,
)
from polyterm.config import Settings, get_settings
from polyterm.errors import PolytermError
from polyterm.models import PlatformStats
from polyterm.service import MarketDataService, MarketQuery, SubgraphQuery, build_service

log = structlog.get_logger(__name__)

# Set by run_api() so the lifespan loads the same config profile.
_config_profile: str | None = None

# Payload returned next to {success: false, error, code}, keyed by route path.
_EMPTY_PAYLOADS: dict[str, dict[str, Any]] = {
    "/markets": {"markets": [], "total": 0},
    "/markets-subgraph": {"markets": [], "total": 0},
    "/markets/{market_id}": {},
    "/markets/{market_id}/history": {"history": []},
    "/categories": {"categories": []},
    "/leaderboard": {"leaderboard": []},
    "/user/{address}/profile": {"profile": None},
    "/stats": {"stats": PlatformStats().model_dump(by_alias=True)},
}


def _error_json(request: Request, code: str, message: str, status_code: int) -> JSONResponse:
    """Consistent error JSON: {success: false, error, code, <empty payload>}."""
    route = request.scope.get("route")
    payload = _EMPTY_PAYLOADS.get(getattr(route, "path", ""), {})
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "error": message, "code": code, **payload},
    )


def _service(request: Request) -> MarketDataService:
    return request.app.state.service


def create_app(service: MarketDataService | None = None, settings: Settings | None = None) -> FastAPI:
    """Build the app. A supplied service is used as-is and not closed on shutdown."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = None
        if service is None:
            resolved = settings or get_settings(_config_profile)
            owned = build_service(resolved)
            app.state.service = owned
            app.state.settings = resolved
        yield
        if owned is not None:
            await owned.aclose()

    resolved_settings = settings or get_settings(_config_profile)
    app = FastAPI(title="polyterm API", version="0.1.0", lifespan=lifespan)
    app.add_middleware(CORSMiddleware, allow_origins=["*"], allow_methods=["*"], allow_headers=["*"])
    app.state.service = service
    app.state.settings = resolved_settings
    default_limit = resolved_settings.default_market_limit
    max_limit = resolved_settings.max_market_limit

    @app.exception_handler(PolytermError)
    async def polyterm_error(request: Request, exc: PolytermError) -> JSONResponse:
        log.warning("request_failed", path=request.url.path, code=exc.code, error=exc.message, context=exc.context)
        return _error_json(request, exc.code, exc.message, exc.status_code)

    @app.exception_handler(RequestValidationError)
    async def validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        message = "; ".join(
            f"{'.'.join(str(p) for p in err.get('loc', ()))}: {err.get('msg')}" for err in exc.errors()
        )
        return _error_json(request, "validation_error", message or "invalid request", 400)

    @app.exception_handler(Exception)
    async def unhandled_error(request: Request, exc: Exception) -> JSONResponse:
        log.exception("unhandled_error", path=request.url.path)
        return _error_json(request, "internal_error", str(exc) or "internal error", 500)

    @app.get("/", response_model=HealthResponse)
    @app.get("/health", response_model=HealthResponse)
    def health() -> HealthResponse:
        return HealthResponse()

    @app.get("/markets", response_model=MarketsResponse, response_model_exclude_none=True)
    async def markets_list(
        request: Request,
        limit: int = Query(default_limit, ge=1),
        offset: int = Query(0, ge=0),
        category: str | None = None,
        search: str | None = None,
        market_type: str | None = Query(None, alias="marketType"),
        tag_slug: str | None = Query(None, alias="tagSlug"),
    ) -> MarketsResponse:
        """Open markets by 24h volume. ``limit`` is capped; ``search`` needs three characters."""
        query = MarketQuery(
            limit=min(limit, max_limit),
            offset=offset,
            category=category,
            search=search,
            market_type=market_type,
            tag_slug=tag_slug,
        )
        page = await _service(request).list_markets(query)
        return MarketsResponse(markets=page.markets, total=page.total)

    @app.get("/markets-subgraph", response_model=MarketsResponse, response_model_exclude_none=True)
    async def markets_subgraph(
        request: Request,
        limit: int = Query(default_limit, ge=1),
        offset: int = Query(0, ge=0),
        tag_slug: str | None = Query(None, alias="tagSlug"),
    ) -> MarketsResponse:
        """Multi-choice events priced from the order-book and open-interest subgraphs."""
        query = SubgraphQuery(limit=min(limit, max_limit), offset=offset, tag_slug=tag_slug)
        page = await _service(request).subgraph_markets(query)
        return MarketsResponse(markets=page.markets, total=page.total)

    @app.get("/markets/{market_id}", response_model=MarketResponse, response_model_exclude_none=True)
    async def market_detail(request: Request, market_id: str) -> MarketResponse:
        market = await _service(request).get_market(market_id)
        return MarketResponse(market=market)

    @app.get(
        "/markets/{market_id}/history",
        response_model=HistoryResponse,
        response_model_exclude_none=True,
    )
    async def market_history(
        request: Request,
        market_id: str,
        token_id: str | None = Query(None, alias="tokenId"),
        interval: str = "MAX",
    ) -> HistoryResponse:
        """Price history for one outcome token. Unresolvable tokens give an empty history."""
        history = await _service(request).price_history(market_id, token_id, interval)
        return HistoryResponse(history=history)

    @app.get("/categories", response_model=CategoriesResponse, response_model_exclude_none=True)
    async def categories(request: Request) -> CategoriesResponse:
        return CategoriesResponse(categories=await _service(request).categories())

    @app.get("/leaderboard", response_model=LeaderboardResponse, response_model_exclude_none=True)
    async def leaderboard(
        request: Request,
        timeframe: str = "all",
        limit: int = Query(50, ge=1, le=500),
    ) -> LeaderboardResponse:
        entries = await _service(request).leaderboard(timeframe, limit)
        return LeaderboardResponse(leaderboard=entries, timeframe=timeframe, total=len(entries))

    @app.get("/user/{address}/profile", response_model=ProfileResponse, response_model_exclude_none=True)
    async def user_profile(request: Request, address: str, timeframe: str = "1M") -> ProfileResponse:
        profile = await _service(request).user_profile(address, timeframe)
        return ProfileResponse(profile=profile)

    @app.get("/stats", response_model=StatsResponse, response_model_exclude_none=True)
    async def stats(request: Request) -> StatsResponse:
        return StatsResponse(stats=await _service(request).platform_stats())

    return app


def run_api(host: str = "127.0.0.1", port: int = 8000, profile: str | None = None) -> None:
    global _config_profile
    _config_profile = profile
    import uvicorn

    uvicorn.run("polyterm.api.main:app", host=host, port=port, reload=False)


app = create_app()
