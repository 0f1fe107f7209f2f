"""Leaderboard rows derived from upstream trader rankings."""

from __future__ import annotations

import math
from typing import Any

from polyterm.ingestion.polymarket.resolvers import parse_number, to_float
from polyterm.models import LeaderboardEntry


def roi_percentage(profit: float, volume: float) -> float:
    """Profit over volume in percent, one decimal; 0 when there is no volume."""
    if volume <= 0:
        return 0.0
    return round(profit / volume * 100, 1)


def rank_entries(rows: list[dict[str, Any]], limit: int) -> list[LeaderboardEntry]:
    entries = []
    for i, row in enumerate(rows[:limit]):
        volume = to_float(row.get("vol"))
        profit = to_float(row.get("pnl"))
        address = str(row.get("proxyWallet") or "")
        rank = parse_number(row.get("rank"))
        entries.append(
            LeaderboardEntry(
                rank=int(rank) if rank else i + 1,
                username=str(row.get("userName") or address[:10] or "Anonymous"),
                address=address,
                total_volume=math.floor(volume),
                total_profit=math.floor(profit),
                roi_percentage=roi_percentage(profit, volume),
                avatar=row.get("profileImage") or None,
            )
        )
    return entries
