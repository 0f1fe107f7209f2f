"""Pydantic response envelopes for the HTTP API and OpenAPI docs.

Every body carries ``success``; failures add ``error`` and ``code`` next to
the endpoint's empty payload, so clients always get well-formed JSON.
"""

from __future__ import annotations

from pydantic import BaseModel, Field

from polyterm.models import (
    LeaderboardEntry,
    Market,
    PlatformStats,
    PriceHistoryPoint,
    UserProfile,
)
from polyterm.models.base import CamelModel


class HealthResponse(BaseModel):
    status: str = "ok"
    message: str = "polyterm market data API"


class Envelope(CamelModel):
    success: bool = True
    error: str | None = Field(None, description="Human-readable message")
    code: str | None = Field(None, description="Machine-readable code, e.g. not_found, validation_error")


class MarketsResponse(Envelope):
    markets: list[Market] = Field(default_factory=list)
    total: int = 0


class MarketResponse(Envelope):
    market: Market | None = None


class HistoryResponse(Envelope):
    history: list[PriceHistoryPoint] = Field(default_factory=list)


class CategoriesResponse(Envelope):
    categories: list[str] = Field(default_factory=list)


class LeaderboardResponse(Envelope):
    leaderboard: list[LeaderboardEntry] = Field(default_factory=list)
    timeframe: str = "all"
    total: int = 0


class ProfileResponse(Envelope):
    profile: UserProfile | None = None


class StatsResponse(Envelope):
    stats: PlatformStats = Field(default_factory=PlatformStats)
