"""Polymarket Gamma API client - market discovery, events and tags."""

from __future__ import annotations

from typing import Any

import structlog

from polyterm.errors import NotFound, UpstreamMalformed
from polyterm.ingestion.http import UpstreamClient

log = structlog.get_logger(__name__)

GAMMA_API_BASE = "https://gamma-api.polymarket.com"

# Search terms shorter than this are ignored upstream-side anyway.
MIN_SEARCH_LENGTH = 3


def listing_params(
    *,
    limit: int,
    offset: int = 0,
    order: str = "volume24hr",
    search: str | None = None,
    tag_slug: str | None = None,
) -> dict[str, Any]:
    """Open, non-archived entities ordered by ``order`` descending."""
    params: dict[str, Any] = {
        "limit": limit,
        "offset": offset,
        "active": True,
        "archived": False,
        "closed": False,
        "order": order,
        "ascending": False,
    }
    term = (search or "").strip()
    if len(term) >= MIN_SEARCH_LENGTH:
        params["search"] = term
    if tag_slug:
        params["tag_slug"] = tag_slug
    return params


def unwrap_list(data: Any, *keys: str) -> list[dict[str, Any]]:
    """Gamma returns either a bare array or ``{"data": [...]}``; keep only object rows."""
    if isinstance(data, dict):
        for key in keys or ("data",):
            if isinstance(data.get(key), list):
                data = data[key]
                break
    if not isinstance(data, list):
        raise UpstreamMalformed(f"expected a list, got {type(data).__name__}")
    return [row for row in data if isinstance(row, dict)]


class GammaClient:
    def __init__(self, http: UpstreamClient, base_url: str = GAMMA_API_BASE):
        self.http = http
        self.base_url = base_url.rstrip("/")

    async def list_markets(self, **filters: Any) -> list[dict[str, Any]]:
        data = await self.http.get_json(f"{self.base_url}/markets", listing_params(**filters))
        return unwrap_list(data)

    async def list_events(self, **filters: Any) -> list[dict[str, Any]]:
        data = await self.http.get_json(f"{self.base_url}/events/pagination", listing_params(**filters))
        return unwrap_list(data)

    async def get_market(self, market_id: str) -> dict[str, Any]:
        data = await self.http.get_json(f"{self.base_url}/markets/{market_id}")
        if not isinstance(data, dict) or not (data.get("id") or data.get("question")):
            raise NotFound(f"market {market_id} not found")
        return data

    async def get_event(self, event_id: str) -> dict[str, Any]:
        data = await self.http.get_json(f"{self.base_url}/events/{event_id}")
        if not isinstance(data, dict) or not (data.get("id") or data.get("markets")):
            raise NotFound(f"event {event_id} not found")
        return data

    async def markets_by_question_id(self, question_id: str) -> list[dict[str, Any]]:
        data = await self.http.get_json(f"{self.base_url}/markets", {"question_ids": question_id})
        return unwrap_list(data)

    async def list_tags(self) -> list[Any]:
        data = await self.http.get_json(f"{self.base_url}/tags")
        if isinstance(data, dict):
            data = data.get("data") or []
        return data if isinstance(data, list) else []
