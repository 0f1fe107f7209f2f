"""Polymarket analytics clients: data-api, profile API and user PnL API."""

from __future__ import annotations

from typing import Any

from polyterm.ingestion.http import UpstreamClient

DATA_API_BASE = "https://data-api.polymarket.com"
PROFILE_API_BASE = "https://polymarket.com/api"
PNL_API_BASE = "https://user-pnl-api.polymarket.com"

LEADERBOARD_PERIODS = ("day", "week", "month", "all")

# Profile timeframe -> (pnl interval, pnl fidelity)
PNL_TIMEFRAMES: dict[str, tuple[str, str]] = {
    "1D": ("1m", "1h"),
    "1W": ("1m", "1h"),
    "1M": ("1m", "1d"),
    "ALL": ("all", "1d"),
}


def pnl_params(timeframe: str | None) -> tuple[str, str]:
    return PNL_TIMEFRAMES.get((timeframe or "1M").upper(), PNL_TIMEFRAMES["1M"])


def _rows(data: Any, *keys: str) -> list[dict[str, Any]]:
    if isinstance(data, dict):
        for key in keys:
            if isinstance(data.get(key), list):
                data = data[key]
                break
    return [r for r in data if isinstance(r, dict)] if isinstance(data, list) else []


class DataApiClient:
    def __init__(
        self,
        http: UpstreamClient,
        *,
        data_base: str = DATA_API_BASE,
        profile_base: str = PROFILE_API_BASE,
        pnl_base: str = PNL_API_BASE,
    ):
        self.http = http
        self.data_base = data_base.rstrip("/")
        self.profile_base = profile_base.rstrip("/")
        self.pnl_base = pnl_base.rstrip("/")

    async def leaderboard(self, time_period: str, limit: int) -> list[dict[str, Any]]:
        params: dict[str, Any] = {"orderBy": "PNL", "limit": limit, "offset": 0}
        if time_period in LEADERBOARD_PERIODS:
            params["timePeriod"] = time_period
        data = await self.http.get_json(f"{self.data_base}/v1/leaderboard", params)
        return _rows(data, "data", "leaderboard")

    async def user_data(self, address: str) -> dict[str, Any]:
        data = await self.http.get_json(f"{self.profile_base}/profile/userData", {"address": address})
        return data if isinstance(data, dict) else {}

    async def user_stats(self, address: str, username: str | None = None) -> dict[str, Any]:
        data = await self.http.get_json(
            f"{self.profile_base}/profile/stats", {"proxyAddress": address, "username": username}
        )
        return data if isinstance(data, dict) else {}

    async def value(self, address: str) -> dict[str, Any]:
        """Net position value; upstream wraps the record in a one-element array."""
        data = await self.http.get_json(f"{self.data_base}/value", {"user": address})
        if isinstance(data, list):
            data = data[0] if data else {}
        return data if isinstance(data, dict) else {}

    async def positions(self, address: str, limit: int = 50) -> list[dict[str, Any]]:
        data = await self.http.get_json(
            f"{self.data_base}/positions",
            {
                "user": address,
                "sortBy": "CURRENT",
                "sortDirection": "DESC",
                "sizeThreshold": ".1",
                "limit": limit,
                "offset": 0,
            },
        )
        return _rows(data, "positions", "data")

    async def closed_positions(self, address: str, limit: int = 25) -> list[dict[str, Any]]:
        data = await self.http.get_json(
            f"{self.data_base}/closed-positions",
            {"user": address, "sortBy": "realizedpnl", "sortDirection": "DESC", "limit": limit, "offset": 0},
        )
        return _rows(data, "positions", "data")

    async def activity(self, address: str, limit: int = 25) -> list[dict[str, Any]]:
        data = await self.http.get_json(
            f"{self.data_base}/activity", {"user": address, "limit": limit, "offset": 0}
        )
        return _rows(data, "activity", "data")

    async def pnl_series(self, address: str, timeframe: str | None) -> list[dict[str, Any]]:
        interval, fidelity = pnl_params(timeframe)
        data = await self.http.get_json(
            f"{self.pnl_base}/user-pnl",
            {"user_address": address, "interval": interval, "fidelity": fidelity},
        )
        return _rows(data, "data", "history")
