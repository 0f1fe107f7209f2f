"""Market-data service: cache short-circuit, then fetch, normalize and cache.

One instance is shared by every request handler. The two response caches are
injected, so a test or a deployment can swap the backend. Cache calls run in a
worker thread since the DuckDB backend blocks.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any

import httpx
import structlog

from polyterm.config import Settings
from polyterm.errors import PolytermError
from polyterm.ingestion.http import UpstreamClient
from polyterm.ingestion.orchestrator import FetchOrchestrator
from polyterm.ingestion.polymarket.clob import ClobClient
from polyterm.ingestion.polymarket.data_api import DataApiClient
from polyterm.ingestion.polymarket.gamma import GammaClient
from polyterm.ingestion.polymarket.normalize import (
    available_categories,
    filter_category,
    normalize_event,
    normalize_market,
    open_event,
    sort_markets,
)
from polyterm.ingestion.polymarket.profile import ProfileAggregator
from polyterm.ingestion.polymarket.resolvers import CATEGORY_VOCABULARY
from polyterm.ingestion.polymarket.subgraph import SubgraphAggregator, condition_ids
from polyterm.metrics.leaderboard import rank_entries
from polyterm.metrics.platform import platform_stats
from polyterm.models import (
    Event,
    LeaderboardEntry,
    Market,
    MarketsPage,
    PlatformStats,
    PriceHistoryPoint,
    UserProfile,
)
from polyterm.storage.cache import ResponseCache, TTLResponseCache, build_cache

log = structlog.get_logger(__name__)

FALLBACK_CATEGORIES = ["All", *CATEGORY_VOCABULARY]


@dataclass(frozen=True)
class MarketQuery:
    """Every parameter that changes a listing response; two equal queries share one cache entry."""

    limit: int = 200
    offset: int = 0
    category: str | None = None
    search: str | None = None
    market_type: str | None = None
    tag_slug: str | None = None

    @property
    def cache_key(self) -> str:
        search = (self.search or "").strip()
        return (
            f"markets:{self.limit}:{self.category or 'all'}:{search}:"
            f"{self.market_type or 'all'}:{self.tag_slug or 'all'}:{self.offset}"
        )


@dataclass(frozen=True)
class SubgraphQuery:
    limit: int = 200
    offset: int = 0
    tag_slug: str | None = None

    @property
    def cache_key(self) -> str:
        return f"subgraph:{self.limit}:{self.tag_slug or 'all'}:{self.offset}"


class MarketDataService:
    def __init__(
        self,
        *,
        http: UpstreamClient,
        gamma: GammaClient,
        clob: ClobClient,
        data_api: DataApiClient,
        subgraph: SubgraphAggregator,
        markets_cache: ResponseCache[MarketsPage] | None = None,
        subgraph_cache: ResponseCache[MarketsPage] | None = None,
        stats_sample_size: int = 500,
    ):
        self.http = http
        self.gamma = gamma
        self.data_api = data_api
        self.orchestrator = FetchOrchestrator(gamma, clob)
        self.subgraph = subgraph
        self.profiles = ProfileAggregator(data_api)
        self.markets_cache = markets_cache if markets_cache is not None else TTLResponseCache(name="markets")
        self.subgraph_cache = subgraph_cache if subgraph_cache is not None else TTLResponseCache(name="subgraph")
        self.stats_sample_size = stats_sample_size

    async def list_markets(self, query: MarketQuery) -> MarketsPage:
        cached = await asyncio.to_thread(self.markets_cache.get, query.cache_key)
        if cached is not None:
            log.debug("cache_hit", key=query.cache_key)
            return cached
        rows = await self.orchestrator.fetch_market_listing(
            limit=query.limit, offset=query.offset, search=query.search, tag_slug=query.tag_slug
        )
        markets = []
        for row in rows:
            try:
                markets.append(normalize_market(row))
            except ValueError as e:
                log.warning("skip_market", market_id=row.get("id"), error=str(e))
        markets = sort_markets(filter_category(markets, query.category), query.market_type)
        page = MarketsPage(markets=markets, total=len(markets))
        await asyncio.to_thread(self.markets_cache.put, query.cache_key, page)
        log.info("markets_listed", key=query.cache_key, count=page.total)
        return page

    async def get_market(self, market_id: str) -> Market:
        raw, parent = await self.orchestrator.fetch_market(market_id)
        if parent is not None and parent.is_multi_choice:
            return _with_market_fallbacks(normalize_event(parent), raw)
        return normalize_market(raw, event=parent.raw if parent else None)

    async def price_history(
        self, market_id: str, token_id: str | None = None, interval: str | None = "MAX"
    ) -> list[PriceHistoryPoint]:
        return await self.orchestrator.fetch_price_history(market_id, token_id, interval)

    async def categories(self) -> list[str]:
        try:
            return available_categories(await self.gamma.list_tags())
        except PolytermError as e:
            log.warning("categories_fallback", error=e.message)
            return list(FALLBACK_CATEGORIES)

    async def leaderboard(self, timeframe: str = "all", limit: int = 50) -> list[LeaderboardEntry]:
        rows = await self.data_api.leaderboard(timeframe, limit)
        return rank_entries(rows, limit)

    async def subgraph_markets(self, query: SubgraphQuery) -> MarketsPage:
        cached = await asyncio.to_thread(self.subgraph_cache.get, query.cache_key)
        if cached is not None:
            log.debug("cache_hit", key=query.cache_key)
            return cached
        rows = await self.orchestrator.fetch_event_page(
            limit=query.limit, offset=query.offset, tag_slug=query.tag_slug
        )
        events = [e for e in (open_event(r) for r in rows) if e is not None]
        lookups = await self.subgraph.lookup(condition_ids(events)) if events else None
        markets = [normalize_event(Event.from_raw(e), lookups=lookups) for e in events]
        markets = [m for m in markets if m.outcomes]
        page = MarketsPage(markets=markets, total=len(markets))
        await asyncio.to_thread(self.subgraph_cache.put, query.cache_key, page)
        log.info("subgraph_markets_listed", key=query.cache_key, events=len(rows), count=page.total)
        return page

    async def user_profile(self, address: str, timeframe: str | None = "1M") -> UserProfile:
        return await self.profiles.profile(address, timeframe)

    async def platform_stats(self) -> PlatformStats:
        rows = await self.gamma.list_markets(limit=self.stats_sample_size, offset=0)
        return platform_stats(rows)

    async def aclose(self) -> None:
        await self.http.close()
        for cache in (self.markets_cache, self.subgraph_cache):
            close = getattr(cache, "close", None)
            if close is not None:
                close()


def _with_market_fallbacks(market: Market, raw: dict[str, Any]) -> Market:
    """Fill event-level gaps (image, description, slug, dates) from the looked-up sub-market."""
    update: dict[str, Any] = {}
    if not market.image:
        update["image"] = str(raw.get("image") or raw.get("icon") or "")
    if not market.description:
        update["description"] = str(raw.get("description") or "")
    if not market.slug:
        update["slug"] = str(raw.get("slug") or "")
    if not market.end_date:
        update["end_date"] = str(raw.get("endDateIso") or raw.get("endDate") or "")
    if not market.resolver_wallet:
        update["resolver_wallet"] = str(raw.get("resolvedBy") or raw.get("resolver") or "")
    return market.model_copy(update=update) if update else market


def build_service(settings: Settings, http_client: httpx.AsyncClient | None = None) -> MarketDataService:
    """Wire clients, aggregators and caches from settings."""
    http = UpstreamClient(http_client, timeout=settings.http_timeout_sec)
    return MarketDataService(
        http=http,
        gamma=GammaClient(http, settings.gamma_api_base),
        clob=ClobClient(http, settings.clob_api_base),
        data_api=DataApiClient(
            http,
            data_base=settings.data_api_base,
            profile_base=settings.profile_api_base,
            pnl_base=settings.pnl_api_base,
        ),
        subgraph=SubgraphAggregator(
            http,
            orders_url=settings.orders_subgraph_url,
            open_interest_url=settings.open_interest_subgraph_url,
            batch_size=settings.subgraph_batch_size,
        ),
        markets_cache=build_cache(settings, MarketsPage, "markets"),
        subgraph_cache=build_cache(settings, MarketsPage, "subgraph"),
        stats_sample_size=settings.stats_sample_size,
    )
