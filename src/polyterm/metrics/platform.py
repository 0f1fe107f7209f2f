"""Platform-wide aggregates over a sample of listed markets."""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from polyterm.ingestion.polymarket.normalize import format_usd
from polyterm.ingestion.polymarket.resolvers import VolumeContext, parse_amount, resolve_volumes
from polyterm.models import PlatformStats


def _primary(raw: dict[str, Any]) -> dict[str, Any]:
    """An event row stands in for its first sub-market."""
    markets = raw.get("markets")
    if isinstance(markets, list) and markets and isinstance(markets[0], dict):
        return markets[0]
    return raw


def _liquidity(m: dict[str, Any]) -> float:
    for key in ("liquidity", "totalLiquidity"):
        if m.get(key) is not None:
            return parse_amount(m[key]) or 0.0
    return 0.0


def is_active(m: dict[str, Any]) -> bool:
    return bool(m.get("active")) and not m.get("closed") and not m.get("archived")


def platform_stats(raw_markets: Iterable[dict[str, Any]]) -> PlatformStats:
    """Sum of 24h volume and liquidity plus the count of open markets. Display strings use two decimals."""
    volume_24h = 0.0
    liquidity = 0.0
    active = 0
    for raw in raw_markets:
        m = _primary(raw)
        _, last_24h = resolve_volumes(VolumeContext(market=m, event=raw if m is not raw else None))
        volume_24h += last_24h
        liquidity += _liquidity(m)
        if is_active(m):
            active += 1
    return PlatformStats(
        volume_24h=format_usd(volume_24h, decimals=2),
        volume_24h_num=volume_24h,
        active_markets=active,
        total_liquidity=format_usd(liquidity, decimals=2),
        total_liquidity_num=liquidity,
    )
