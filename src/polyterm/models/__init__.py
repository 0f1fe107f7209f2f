"""Canonical schema (Pydantic) - Market, Outcome, history, profiles."""

from polyterm.models.market import (
    RESOLVED_EPSILON,
    Event,
    Market,
    MarketsPage,
    Outcome,
    PriceHistoryPoint,
    is_settled_price,
)
from polyterm.models.profile import (
    Activity,
    LeaderboardEntry,
    PlatformStats,
    PnlPoint,
    Position,
    UserProfile,
)

__all__ = [
    "Market",
    "Event",
    "Outcome",
    "MarketsPage",
    "PriceHistoryPoint",
    "RESOLVED_EPSILON",
    "is_settled_price",
    "Activity",
    "LeaderboardEntry",
    "PlatformStats",
    "PnlPoint",
    "Position",
    "UserProfile",
]
