"""UserProfile and its parts, LeaderboardEntry, PlatformStats."""

from __future__ import annotations

from typing import Any

from pydantic import Field

from polyterm.models.base import CamelModel


class Position(CamelModel):
    """Open or closed position. For closed ones unrealized_pnl holds the realized figure."""

    market_id: str = ""
    market_title: str = ""
    outcome: str = ""
    shares: float = 0.0
    avg_price: float = 0.0
    current_price: float = 0.0
    unrealized_pnl: float = 0.0
    value: float = 0.0
    percent_pnl: float = 0.0
    image: str = ""


class Activity(CamelModel):
    id: str
    type: str = "buy"
    market_title: str = ""
    market_id: str = ""
    outcome: str = ""
    shares: float = 0.0
    price: float = 0.0
    timestamp: Any = ""
    pnl: float | None = None
    image: str = ""


class PnlPoint(CamelModel):
    timestamp: int  # epoch milliseconds
    cumulative_pnl: float = 0.0
    date: str = ""


class UserProfile(CamelModel):
    """Aggregate of several upstream calls; any section may be empty."""

    address: str
    username: str = ""
    avatar: str | None = None
    total_pnl: float = 0.0
    total_volume: float = 0.0
    total_value: float = 0.0
    accuracy: float = 0.0
    total_trades: int = 0
    win_rate: float = 0.0
    avg_position_size: float = 0.0
    markets_traded: int = 0
    positions: list[Position] = Field(default_factory=list)
    closed_positions: list[Position] = Field(default_factory=list)
    recent_activity: list[Activity] = Field(default_factory=list)
    pnl_history: list[PnlPoint] = Field(default_factory=list)
    join_date: str | None = None
    profile_views: int = 0
    largest_win: float = 0.0


class LeaderboardEntry(CamelModel):
    rank: int
    username: str
    address: str = ""
    total_volume: int = 0
    total_profit: int = 0
    roi_percentage: float = 0.0
    avatar: str | None = None


class PlatformStats(CamelModel):
    volume_24h: str = Field("$0", alias="volume24hr")
    volume_24h_num: float = Field(0.0, alias="volume24hrNum")
    active_markets: int = 0
    total_liquidity: str = "$0"
    total_liquidity_num: float = 0.0
