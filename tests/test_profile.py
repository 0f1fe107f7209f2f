"""User profile fan-out and row parsers."""

import pytest
from conftest import DATA, PNL, PROFILE

from polyterm.errors import ValidationError
from polyterm.ingestion.http import UpstreamClient
from polyterm.ingestion.polymarket.data_api import DataApiClient
from polyterm.ingestion.polymarket.profile import (
    parse_activity,
    parse_closed_position,
    parse_pnl_series,
    parse_position,
    validate_address,
)

ADDRESS = "0x" + "ab" * 20


def _route_profile(upstream, **overrides):
    routes = {
        f"{PROFILE}/profile/userData": {"username": "whale", "avatar": "https://img/a.png"},
        f"{PROFILE}/profile/stats": {"trades": 42, "largestWin": 900, "views": 7, "joinDate": "2024-03-01"},
        f"{DATA}/value": [{"user": ADDRESS, "value": 1234.5}],
        f"{DATA}/positions": [
            {
                "conditionId": "0xc1",
                "title": "Will BTC hit 100k?",
                "outcome": "Yes",
                "size": 100,
                "avgPrice": 0.4,
                "curPrice": 0.55,
                "cashPnl": 15,
                "currentValue": 55,
                "percentPnl": 37.5,
            }
        ],
        f"{DATA}/closed-positions": [
            {"conditionId": "0xc2", "title": "Old market", "size": 10, "avgPrice": 0.5, "realizedPnl": 5}
        ],
        f"{DATA}/activity": [
            {"transactionHash": "0xt1", "side": "BUY", "title": "Will BTC hit 100k?", "conditionId": "0xc1", "usdcSize": 40},
        ],
        f"{PNL}/user-pnl": [{"t": 100, "p": 1.0}, {"t": 100, "p": 9.0}, {"t": 50, "p": 0.5}],
    }
    routes.update(overrides)
    for url, body in routes.items():
        if body is None:
            upstream.fail(url)
        else:
            upstream.add(url, body)


def test_validate_address():
    assert validate_address(ADDRESS) == ADDRESS
    for bad in ("0x123", "ab" * 21, "0x" + "zz" * 20, ""):
        with pytest.raises(ValidationError):
            validate_address(bad)


async def test_profile_merges_all_sections(upstream, service):
    _route_profile(upstream)
    profile = await service.user_profile(ADDRESS, "1M")
    assert profile.username == "whale"
    assert profile.total_value == 1234.5
    assert profile.total_trades == 42
    assert profile.join_date == "2024-03-01"
    assert profile.positions[0].market_title == "Will BTC hit 100k?"
    assert profile.positions[0].unrealized_pnl == 15
    assert profile.closed_positions[0].unrealized_pnl == 5
    assert profile.recent_activity[0].type == "buy"
    assert [p.timestamp for p in profile.pnl_history] == [50_000, 100_000]
    assert profile.pnl_history[1].cumulative_pnl == 1.0


async def test_failed_section_leaves_it_empty(upstream, service):
    _route_profile(upstream, **{f"{DATA}/closed-positions": None, f"{PROFILE}/profile/userData": None})
    profile = await service.user_profile(ADDRESS)
    assert profile.closed_positions == []
    assert len(profile.positions) == 1
    assert profile.username == f"{ADDRESS[:8]}..."


async def test_bad_address_makes_no_calls(upstream, service):
    with pytest.raises(ValidationError):
        await service.user_profile("not-an-address")
    assert upstream.calls == []


def test_parse_position_defaults():
    p = parse_position({})
    assert p.shares == 0 and p.market_title == "" and p.value == 0


def test_closed_position_realized_from_cost_basis():
    p = parse_closed_position({"size": 10, "avgPrice": 0.4, "exitPrice": 1.0})
    assert p.value == pytest.approx(10.0)
    assert p.unrealized_pnl == pytest.approx(6.0)


def test_parse_activity_fallback_id():
    a = parse_activity({"type": "SELL", "pnl": "3.5"}, 4)
    assert a.id == "act-4"
    assert a.type == "sell"
    assert a.pnl == 3.5


def test_pnl_series_millis_and_dedupe():
    points = parse_pnl_series([{"t": 200, "p": 2}, {"t": 100, "p": 1}, {"t": 100, "p": 5}, {"p": 3}])
    assert [(p.timestamp, p.cumulative_pnl) for p in points] == [(100_000, 1), (200_000, 2)]
    assert points[0].date == "1970-01-01T00:01:40Z"


@pytest.mark.parametrize(
    "timeframe, interval, fidelity",
    [
        ("1D", "1m", "1h"),
        ("1W", "1m", "1h"),
        ("1m", "1m", "1d"),
        ("ALL", "all", "1d"),
        ("5Y", "1m", "1d"),
        (None, "1m", "1d"),
    ],
)
async def test_pnl_timeframe_params(upstream, http_client, timeframe, interval, fidelity):
    upstream.add(f"{PNL}/user-pnl", [])
    client = DataApiClient(UpstreamClient(http_client), pnl_base=PNL)
    await client.pnl_series(ADDRESS, timeframe)
    params = upstream.calls[-1].url.params
    assert params["interval"] == interval
    assert params["fidelity"] == fidelity
    assert params["user_address"] == ADDRESS
