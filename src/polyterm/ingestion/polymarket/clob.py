"""Polymarket CLOB REST client - token lookup and price history."""

from __future__ import annotations

from typing import Any

from polyterm.ingestion.http import UpstreamClient

CLOB_API_BASE = "https://clob.polymarket.com"

# Chart interval -> (upstream interval, fidelity in minutes)
HISTORY_INTERVALS: dict[str, tuple[str, int]] = {
    "1H": ("1h", 1),
    "6H": ("6h", 5),
    "1D": ("1d", 15),
    "1W": ("1w", 60),
    "1M": ("1m", 720),
    "MAX": ("max", 720),
}
DEFAULT_HISTORY_INTERVAL = ("max", 720)


def history_params(interval: str | None) -> tuple[str, int]:
    return HISTORY_INTERVALS.get((interval or "MAX").upper(), DEFAULT_HISTORY_INTERVAL)


class ClobClient:
    def __init__(self, http: UpstreamClient, base_url: str = CLOB_API_BASE):
        self.http = http
        self.base_url = base_url.rstrip("/")

    async def first_token_id(self, question_id: str) -> str | None:
        """Token id of the first outcome of the market with this question id, if any."""
        data = await self.http.get_json(
            f"{self.base_url}/markets", {"question_id": question_id, "limit": 1}
        )
        markets = data.get("data") if isinstance(data, dict) else data
        if not isinstance(markets, list) or not markets or not isinstance(markets[0], dict):
            return None
        tokens = markets[0].get("tokens")
        if not isinstance(tokens, list) or not tokens or not isinstance(tokens[0], dict):
            return None
        token_id = tokens[0].get("token_id")
        return str(token_id) if token_id else None

    async def prices_history(self, token_id: str, interval: str | None) -> list[dict[str, Any]]:
        """Raw ``{t, p}`` points for one token."""
        upstream_interval, fidelity = history_params(interval)
        data = await self.http.get_json(
            f"{self.base_url}/prices-history",
            {"market": token_id, "interval": upstream_interval, "fidelity": fidelity},
        )
        history = data.get("history") if isinstance(data, dict) else None
        return [p for p in history if isinstance(p, dict)] if isinstance(history, list) else []
