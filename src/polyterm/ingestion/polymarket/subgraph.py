"""Batched GraphQL lookups against the order-book and open-interest subgraphs.

Condition ids are split into fixed-size batches; every batch is sent to both
subgraphs in one concurrent group. A batch that fails contributes nothing and
never fails its siblings. Successful rows are merged into two tables keyed by
condition id, consulted by the normalizer before REST-sourced figures.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

import structlog

from polyterm.errors import UpstreamMalformed
from polyterm.ingestion.http import UpstreamClient
from polyterm.ingestion.tasks import Ok, settle_all

log = structlog.get_logger(__name__)

CONDITION_PREFIX = "0x"
DEFAULT_BATCH_SIZE = 200

ORDERS_QUERY = """
query GetMarketPrices($conditionIds: [String!]!) {
  markets(where: { conditionId_in: $conditionIds }, first: 1000) {
    conditionId
    questionId
    outcomeTokenAmounts
    outcomeTokenPrices
    bestBid
    bestAsk
    totalBidLiquidity
    totalAskLiquidity
  }
}
"""

OPEN_INTEREST_QUERY = """
query GetMarketVolume($conditionIds: [String!]!) {
  markets(where: { conditionId_in: $conditionIds }, first: 1000) {
    conditionId
    questionId
    volume24h
    volume7d
    volume30d
    totalVolume
    openInterest
  }
}
"""


@dataclass
class SubgraphLookups:
    """Per-condition rows from the order-book (``orders``) and open-interest (``volumes``) subgraphs."""

    orders: dict[str, dict[str, Any]] = field(default_factory=dict)
    volumes: dict[str, dict[str, Any]] = field(default_factory=dict)


def condition_ids(events: Iterable[dict[str, Any]]) -> list[str]:
    """Distinct ``0x`` condition ids of every sub-market, in first-seen order."""
    seen: dict[str, None] = {}
    for event in events:
        for m in event.get("markets") or []:
            if not isinstance(m, dict):
                continue
            cid = str(m.get("conditionId") or m.get("id") or "")
            if cid.startswith(CONDITION_PREFIX):
                seen.setdefault(cid, None)
    return list(seen)


def batched(ids: list[str], size: int) -> list[list[str]]:
    if size <= 0:
        raise ValueError("batch size must be positive")
    return [ids[i : i + size] for i in range(0, len(ids), size)]


def _markets_from(payload: Any) -> list[dict[str, Any]]:
    """``data.markets`` of a GraphQL response; a response with only ``errors`` is malformed."""
    if not isinstance(payload, dict):
        raise UpstreamMalformed("GraphQL response is not an object")
    data = payload.get("data")
    markets = data.get("markets") if isinstance(data, dict) else None
    if not isinstance(markets, list):
        raise UpstreamMalformed("GraphQL response has no data.markets", context={"errors": payload.get("errors")})
    return [m for m in markets if isinstance(m, dict)]


class SubgraphAggregator:
    def __init__(
        self,
        http: UpstreamClient,
        *,
        orders_url: str,
        open_interest_url: str,
        batch_size: int = DEFAULT_BATCH_SIZE,
    ):
        self.http = http
        self.orders_url = orders_url
        self.open_interest_url = open_interest_url
        self.batch_size = batch_size

    async def _query(self, url: str, query: str, batch: list[str]) -> list[dict[str, Any]]:
        payload = await self.http.post_json(url, {"query": query, "variables": {"conditionIds": batch}})
        return _markets_from(payload)

    async def lookup(self, ids: list[str]) -> SubgraphLookups:
        lookups = SubgraphLookups()
        batches = batched(ids, self.batch_size)
        if not batches:
            return lookups
        calls = []
        for batch in batches:
            calls.append(self._query(self.orders_url, ORDERS_QUERY, batch))
            calls.append(self._query(self.open_interest_url, OPEN_INTEREST_QUERY, batch))
        results = await settle_all(calls)
        failed = 0
        for i, result in enumerate(results):
            table = lookups.orders if i % 2 == 0 else lookups.volumes
            if isinstance(result, Ok):
                for row in result.value:
                    cid = row.get("conditionId")
                    if cid:
                        table[str(cid)] = row
                continue
            failed += 1
            log.warning(
                "subgraph_batch_failed",
                subgraph="orders" if i % 2 == 0 else "open_interest",
                batch=i // 2,
                error=str(result.error),
            )
        log.info(
            "subgraph_lookup",
            conditions=len(ids),
            batches=len(batches),
            failed_requests=failed,
            orders=len(lookups.orders),
            volumes=len(lookups.volumes),
        )
        return lookups
