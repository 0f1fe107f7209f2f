"""Fallback chains for listing, single-market, parent-event and price-history queries."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

import structlog

from polyterm.errors import NotFound, PolytermError
from polyterm.ingestion.fallback import first_success
from polyterm.ingestion.polymarket.clob import ClobClient
from polyterm.ingestion.polymarket.gamma import GammaClient
from polyterm.ingestion.polymarket.normalize import sort_dedupe_series
from polyterm.ingestion.polymarket.resolvers import parse_number
from polyterm.models import Event, PriceHistoryPoint

log = structlog.get_logger(__name__)


def _sub_markets(raw: dict[str, Any]) -> list[dict[str, Any]]:
    markets = raw.get("markets")
    return [m for m in markets if isinstance(m, dict)] if isinstance(markets, list) else []


def _contains(event: dict[str, Any], market: dict[str, Any]) -> bool:
    ids = {str(market.get(k)) for k in ("id", "conditionId") if market.get(k)}
    return any(
        str(m.get("id")) in ids or str(m.get("conditionId")) in ids for m in _sub_markets(event)
    )


class FetchOrchestrator:
    def __init__(self, gamma: GammaClient, clob: ClobClient):
        self.gamma = gamma
        self.clob = clob

    async def fetch_market_listing(
        self,
        *,
        limit: int,
        offset: int = 0,
        search: str | None = None,
        tag_slug: str | None = None,
    ) -> list[dict[str, Any]]:
        """Paginated markets, falling back to paginated events with the same filters."""
        filters: dict[str, Any] = {"limit": limit, "offset": offset, "search": search, "tag_slug": tag_slug}
        return await first_success(
            "market listing",
            [
                ("markets", lambda: self.gamma.list_markets(**filters)),
                ("events", lambda: self.gamma.list_events(**filters)),
            ],
        )

    async def fetch_event_page(
        self, *, limit: int, offset: int = 0, tag_slug: str | None = None
    ) -> list[dict[str, Any]]:
        return await self.gamma.list_events(limit=limit, offset=offset, order="volume", tag_slug=tag_slug)

    async def fetch_market(self, market_id: str) -> tuple[dict[str, Any], Event | None]:
        """The raw market plus its parent event when one can be resolved.

        The id is tried as a market id, then as an event id. Failing to find the
        parent event never fails the lookup.
        """
        source_event: dict[str, Any] | None = None

        async def by_event_id() -> dict[str, Any]:
            nonlocal source_event
            event = await self.gamma.get_event(market_id)
            markets = _sub_markets(event)
            if not markets:
                raise NotFound(f"event {market_id} has no markets")
            source_event = event
            return markets[0]

        market = await first_success(
            f"market {market_id}",
            [
                ("market_by_id", lambda: self.gamma.get_market(market_id)),
                ("event_by_id", by_event_id),
            ],
        )
        if source_event is not None:
            return market, Event.from_raw(source_event)
        return market, await self.resolve_parent_event(market)

    async def resolve_parent_event(self, market: dict[str, Any]) -> Event | None:
        market_id = str(market.get("id") or "")
        question_id = str(market.get("questionID") or "")

        async def event_by_market_id() -> Event:
            event = await self.gamma.get_event(market_id)
            if not _contains(event, market):
                raise NotFound(f"event {market_id} does not contain that market")
            return Event.from_raw(event)

        async def event_by_question_id() -> Event:
            siblings = await self.gamma.markets_by_question_id(question_id)
            if not siblings:
                raise NotFound(f"no markets for question {question_id}")
            embedded = siblings[0].get("events")
            if isinstance(embedded, list) and embedded and isinstance(embedded[0], dict) and embedded[0].get("id"):
                return Event.from_raw(await self.gamma.get_event(str(embedded[0]["id"])))
            return Event.from_raw(
                {
                    "id": market_id or question_id,
                    "title": market.get("question") or market.get("title") or "",
                    "markets": siblings,
                }
            )

        async def embedded_event() -> Event:
            events = market.get("events")
            if isinstance(events, list) and events and isinstance(events[0], dict):
                return Event.from_raw(events[0])
            raise NotFound(f"market {market_id} has no embedded event")

        strategies = []
        if market_id:
            strategies.append(("event_by_market_id", event_by_market_id))
        if question_id and question_id != market_id:
            strategies.append(("event_by_question_id", event_by_question_id))
        strategies.append(("embedded_event", embedded_event))
        try:
            return await first_success(f"parent event of {market_id}", strategies)
        except PolytermError as e:
            log.info("parent_event_unresolved", market_id=market_id, error=e.message)
            return None

    async def fetch_price_history(
        self, market_id: str, token_id: str | None = None, interval: str | None = "MAX"
    ) -> list[PriceHistoryPoint]:
        """Ascending, timestamp-deduplicated history. Anything unresolvable gives ``[]``."""
        if not token_id:
            try:
                token_id = await self.clob.first_token_id(market_id)
            except PolytermError as e:
                log.info("history_token_lookup_failed", market_id=market_id, error=e.message)
                return []
        if not token_id:
            log.info("history_no_token", market_id=market_id)
            return []
        try:
            rows = await self.clob.prices_history(token_id, interval)
        except PolytermError as e:
            log.warning("history_fetch_failed", market_id=market_id, token_id=token_id, error=e.message)
            return []
        points: list[tuple[int, float]] = []
        for row in rows:
            t, p = parse_number(row.get("t")), parse_number(row.get("p"))
            if t is not None and p is not None:
                points.append((int(t), p))
        return [
            PriceHistoryPoint(
                timestamp=t,
                price=p,
                date=datetime.fromtimestamp(t, tz=timezone.utc).isoformat().replace("+00:00", "Z"),
            )
            for t, p in sort_dedupe_series(points)
        ]
