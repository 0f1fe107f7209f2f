"""Batched subgraph lookups and the subgraph-enriched listing."""

import json

import httpx
import pytest
from conftest import GAMMA, OI_SUBGRAPH, ORDERS_SUBGRAPH, sub_market

from polyterm.ingestion.http import UpstreamClient
from polyterm.ingestion.polymarket.subgraph import SubgraphAggregator, batched, condition_ids
from polyterm.service import SubgraphQuery


def _graphql(rows_for):
    def handler(request: httpx.Request) -> httpx.Response:
        ids = json.loads(request.content)["variables"]["conditionIds"]
        return httpx.Response(200, json={"data": {"markets": [rows_for(cid) for cid in ids]}})

    return handler


def test_condition_ids_distinct_and_prefixed():
    events = [
        {"markets": [{"conditionId": "0x1"}, {"conditionId": "0x2"}, {"conditionId": "bogus"}]},
        {"markets": [{"conditionId": "0x2"}, {"id": "0x3"}, "not-a-dict"]},
    ]
    assert condition_ids(events) == ["0x1", "0x2", "0x3"]


def test_batched():
    assert batched(["a", "b", "c"], 2) == [["a", "b"], ["c"]]
    assert batched([], 200) == []
    with pytest.raises(ValueError):
        batched(["a"], 0)


async def test_lookup_merges_both_subgraphs(upstream, http_client):
    upstream.add(
        ORDERS_SUBGRAPH,
        method="POST",
        handler=_graphql(lambda cid: {"conditionId": cid, "outcomeTokenPrices": ["0.6", "0.4"]}),
    )
    upstream.add(
        OI_SUBGRAPH,
        method="POST",
        handler=_graphql(lambda cid: {"conditionId": cid, "totalVolume": "10", "volume24h": "1"}),
    )
    agg = SubgraphAggregator(
        UpstreamClient(http_client), orders_url=ORDERS_SUBGRAPH, open_interest_url=OI_SUBGRAPH, batch_size=2
    )
    lookups = await agg.lookup(["0x1", "0x2", "0x3"])
    assert set(lookups.orders) == {"0x1", "0x2", "0x3"}
    assert set(lookups.volumes) == {"0x1", "0x2", "0x3"}
    # Two batches, each sent to both subgraphs.
    assert upstream.count(ORDERS_SUBGRAPH) == 2
    assert upstream.count(OI_SUBGRAPH) == 2
    assert [b["variables"]["conditionIds"] for b in upstream.posted(ORDERS_SUBGRAPH)] in (
        [["0x1", "0x2"], ["0x3"]],
        [["0x3"], ["0x1", "0x2"]],
    )


async def test_failed_batch_does_not_fail_siblings(upstream, http_client):
    def orders(request: httpx.Request) -> httpx.Response:
        ids = json.loads(request.content)["variables"]["conditionIds"]
        if "0x3" in ids:
            return httpx.Response(502, json={"error": "bad gateway"})
        return httpx.Response(200, json={"data": {"markets": [{"conditionId": c} for c in ids]}})

    upstream.add(ORDERS_SUBGRAPH, method="POST", handler=orders)
    upstream.add(OI_SUBGRAPH, {"errors": [{"message": "timeout"}]}, method="POST")
    agg = SubgraphAggregator(
        UpstreamClient(http_client), orders_url=ORDERS_SUBGRAPH, open_interest_url=OI_SUBGRAPH, batch_size=2
    )
    lookups = await agg.lookup(["0x1", "0x2", "0x3"])
    assert set(lookups.orders) == {"0x1", "0x2"}
    assert lookups.volumes == {}


async def test_lookup_with_no_ids_makes_no_calls(upstream, http_client):
    agg = SubgraphAggregator(UpstreamClient(http_client), orders_url=ORDERS_SUBGRAPH, open_interest_url=OI_SUBGRAPH)
    lookups = await agg.lookup([])
    assert lookups.orders == {} and lookups.volumes == {}
    assert upstream.calls == []


async def test_subgraph_markets_prices_from_subgraph_and_caches(upstream, service):
    events = [
        {
            "id": "ev1",
            "title": "Who wins the league?",
            "volume": 50000,
            "markets": [
                sub_market("Arsenal", "0xa", "0.30", "0.70"),
                sub_market("Team B", "0xb", "0", "0", volumeNum=0, volume24hr=0),
                sub_market("Liverpool", "0xc", "1", "0"),
            ],
        },
        {"id": "ev2", "title": "Closed", "closed": True, "markets": [sub_market("X", "0xd", "0.5", "0.5")]},
    ]
    upstream.add(f"{GAMMA}/events/pagination", {"data": events})
    upstream.add(
        ORDERS_SUBGRAPH,
        method="POST",
        handler=_graphql(lambda cid: {"conditionId": cid, "outcomeTokenPrices": ["0.45", "0.55"]}),
    )
    upstream.add(
        OI_SUBGRAPH,
        method="POST",
        handler=_graphql(lambda cid: {"conditionId": cid, "totalVolume": "2000", "volume24h": "200"}),
    )

    page = await service.subgraph_markets(SubgraphQuery(limit=10))
    assert page.total == 1
    market = page.markets[0]
    assert market.id == "ev1"
    assert [o.name for o in market.outcomes] == ["Arsenal"]
    assert market.yes_price == pytest.approx(0.45)
    assert market.outcomes[0].volume_num == 2000
    assert market.price_fallback is False

    again = await service.subgraph_markets(SubgraphQuery(limit=10))
    assert again is page
    assert upstream.count(f"{GAMMA}/events/pagination") == 1
