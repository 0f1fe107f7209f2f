"""Shared fixtures: a routed fake of every upstream, served through httpx.MockTransport."""

from __future__ import annotations

import json
from typing import Any, Callable

import httpx
import pytest

from polyterm.config import Settings
from polyterm.service import build_service

GAMMA = "https://gamma-api.polymarket.com"
CLOB = "https://clob.polymarket.com"
DATA = "https://data-api.polymarket.com"
PROFILE = "https://polymarket.com/api"
PNL = "https://user-pnl-api.polymarket.com"
ORDERS_SUBGRAPH = "https://subgraph.test/orders"
OI_SUBGRAPH = "https://subgraph.test/oi"

Handler = Callable[[httpx.Request], httpx.Response]


class FakeUpstream:
    """Routes by method + URL without query string. Unrouted requests get a 404."""

    def __init__(self) -> None:
        self.routes: dict[tuple[str, str], Handler] = {}
        self.calls: list[httpx.Request] = []

    def add(
        self,
        url: str,
        body: Any = None,
        *,
        method: str = "GET",
        status: int = 200,
        handler: Handler | None = None,
    ) -> None:
        if handler is None:

            def handler(request: httpx.Request) -> httpx.Response:
                return httpx.Response(status, json=body)

        self.routes[(method, url)] = handler

    def fail(self, url: str, status: int = 500, method: str = "GET") -> None:
        self.add(url, {"error": "boom"}, method=method, status=status)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        key = (request.method, f"{request.url.scheme}://{request.url.host}{request.url.path}")
        handler = self.routes.get(key)
        if handler is None:
            return httpx.Response(404, json={"error": "not routed"})
        return handler(request)

    def count(self, url: str) -> int:
        return sum(1 for r in self.calls if f"{r.url.scheme}://{r.url.host}{r.url.path}" == url)

    def posted(self, url: str) -> list[dict[str, Any]]:
        return [json.loads(r.content) for r in self.calls if str(r.url) == url and r.method == "POST"]


@pytest.fixture
def upstream() -> FakeUpstream:
    return FakeUpstream()


@pytest.fixture
def http_client(upstream: FakeUpstream) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(upstream))


@pytest.fixture
def settings() -> Settings:
    return Settings.from_dict(
        {
            "subgraph": {"orders_url": ORDERS_SUBGRAPH, "open_interest_url": OI_SUBGRAPH, "batch_size": 2},
        }
    )


@pytest.fixture
def service(settings: Settings, http_client: httpx.AsyncClient):
    return build_service(settings, http_client)


def gamma_market(**overrides: Any) -> dict[str, Any]:
    """A plausible open binary Gamma market."""
    market = {
        "id": "501",
        "question": "Will it rain in London tomorrow?",
        "conditionId": "0xabc",
        "questionID": "0xq501",
        "slug": "rain-london",
        "outcomes": '["Yes", "No"]',
        "outcomePrices": '["0.73", "0.27"]',
        "clobTokenIds": '["tok-yes", "tok-no"]',
        "volumeNum": 125000,
        "volume24hr": 4200,
        "liquidityNum": 9000,
        "active": True,
        "closed": False,
        "endDate": "2030-01-01T00:00:00Z",
        "tags": [{"label": "Weather"}],
    }
    market.update(overrides)
    return market


def sub_market(name: str, cid: str, yes: str, no: str, **overrides: Any) -> dict[str, Any]:
    market = {
        "id": f"m-{cid}",
        "question": f"Will {name} win?",
        "groupItemTitle": name,
        "conditionId": cid,
        "outcomes": '["Yes", "No"]',
        "outcomePrices": json.dumps([yes, no]),
        "clobTokenIds": json.dumps([f"{cid}-yes", f"{cid}-no"]),
        "volumeNum": 1000,
        "volume24hr": 100,
    }
    market.update(overrides)
    return market
