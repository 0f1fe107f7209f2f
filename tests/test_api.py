"""HTTP contract: envelopes, error mapping, cache behaviour."""

import pytest
from conftest import DATA, GAMMA, gamma_market
from fastapi.testclient import TestClient

from polyterm.api.main import create_app


@pytest.fixture
def client(service, settings):
    return TestClient(create_app(service=service, settings=settings), raise_server_exceptions=False)


def test_health(client):
    assert client.get("/health").json()["status"] == "ok"
    assert client.get("/").status_code == 200


def test_markets_listing_shape(upstream, client):
    upstream.add(f"{GAMMA}/markets", [gamma_market()])
    body = client.get("/markets", params={"limit": 5}).json()
    assert body["success"] is True
    assert body["total"] == 1
    market = body["markets"][0]
    assert market["yesPrice"] == pytest.approx(0.73)
    assert market["volume24hr"] == "$4.2K"
    assert market["outcomes"][0]["isResolved"] is False
    assert market["outcomes"][0]["yesTokenId"] == "tok-yes"
    assert "error" not in body


def test_identical_requests_hit_cache_with_identical_bytes(upstream, client):
    upstream.add(f"{GAMMA}/markets", [gamma_market()])
    first = client.get("/markets", params={"limit": 5, "category": "Weather"})
    second = client.get("/markets", params={"limit": 5, "category": "Weather"})
    assert first.content == second.content
    assert upstream.count(f"{GAMMA}/markets") == 1
    client.get("/markets", params={"limit": 6, "category": "Weather"})
    assert upstream.count(f"{GAMMA}/markets") == 2


def test_cache_expiry_triggers_refetch(upstream, service, client):
    upstream.add(f"{GAMMA}/markets", [gamma_market()])
    client.get("/markets")
    service.markets_cache.ttl_sec = -1
    client.get("/markets")
    assert upstream.count(f"{GAMMA}/markets") == 2


def test_limit_is_capped(upstream, client):
    upstream.add(f"{GAMMA}/markets", [])
    client.get("/markets", params={"limit": 10_000})
    assert upstream.calls[0].url.params["limit"] == "500"


def test_category_filter_applied_after_normalization(upstream, client):
    upstream.add(
        f"{GAMMA}/markets",
        [gamma_market(), gamma_market(id="502", tags=[{"label": "Politics"}])],
    )
    body = client.get("/markets", params={"category": "Politics"}).json()
    assert [m["id"] for m in body["markets"]] == ["502"]


def test_market_not_found(client):
    resp = client.get("/markets/missing")
    assert resp.status_code == 404
    body = resp.json()
    assert body["success"] is False
    assert body["code"] == "not_found"
    assert body["error"]


def test_upstream_failure_is_500_with_empty_payload(upstream, client):
    upstream.fail(f"{GAMMA}/markets", status=503)
    upstream.fail(f"{GAMMA}/events/pagination", status=503)
    resp = client.get("/markets")
    assert resp.status_code == 500
    body = resp.json()
    assert body["success"] is False
    assert body["markets"] == [] and body["total"] == 0
    assert body["code"] == "upstream_unavailable"


def test_history_endpoint(upstream, client):
    upstream.add(
        "https://clob.polymarket.com/prices-history",
        {"history": [{"t": 200, "p": 0.7}, {"t": 100, "p": 0.5}]},
    )
    body = client.get("/markets/501/history", params={"tokenId": "tok-yes", "interval": "1D"}).json()
    assert [p["timestamp"] for p in body["history"]] == [100, 200]


def test_categories_from_tags(upstream, client):
    upstream.add(f"{GAMMA}/tags", [{"label": "Politics"}, {"label": "Sports"}, {"label": "Weather"}])
    body = client.get("/categories").json()
    assert body == {"success": True, "categories": ["All", "Politics", "Sports"]}


def test_categories_fallback_still_succeeds(upstream, client):
    upstream.fail(f"{GAMMA}/tags")
    body = client.get("/categories").json()
    assert body["success"] is True
    assert body["categories"][0] == "All"
    assert "Politics" in body["categories"]


def test_leaderboard(upstream, client):
    upstream.add(
        f"{DATA}/v1/leaderboard",
        [
            {"rank": "1", "proxyWallet": "0x" + "1" * 40, "userName": "top", "vol": 1000.9, "pnl": 250.5},
            {"proxyWallet": "0x" + "2" * 40, "vol": 0, "pnl": -3},
        ],
    )
    body = client.get("/leaderboard", params={"timeframe": "week", "limit": 2}).json()
    first, second = body["leaderboard"]
    assert first["totalVolume"] == 1000 and first["totalProfit"] == 250
    assert first["roiPercentage"] == 25.0
    assert second["rank"] == 2 and second["roiPercentage"] == 0
    assert body["timeframe"] == "week" and body["total"] == 2
    assert upstream.calls[0].url.params["timePeriod"] == "week"


def test_profile_bad_address_is_400(client):
    resp = client.get("/user/0x123/profile")
    assert resp.status_code == 400
    body = resp.json()
    assert body["success"] is False
    assert body["code"] == "validation_error"
    assert body["profile"] is None


def test_request_validation_is_400(client):
    resp = client.get("/markets", params={"limit": "lots"})
    assert resp.status_code == 400
    assert resp.json()["markets"] == []


def test_stats(upstream, client):
    upstream.add(
        f"{GAMMA}/markets",
        [
            gamma_market(volume24hr=1_000_000, liquidityNum=None, liquidity="2500"),
            gamma_market(id="9", volume24hr=234_567, liquidity=0, active=False),
        ],
    )
    stats = client.get("/stats").json()["stats"]
    assert stats["volume24hr"] == "$1.23M"
    assert stats["activeMarkets"] == 1
    assert stats["totalLiquidityNum"] == 2500
