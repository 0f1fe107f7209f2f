"""User profile fan-out: six analytics calls merged into one UserProfile.

Any member that fails leaves its section empty; only a malformed address is
rejected, before any call is made.
"""

from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Any

import structlog

from polyterm.errors import PolytermError, ValidationError
from polyterm.ingestion.polymarket.data_api import DataApiClient
from polyterm.ingestion.polymarket.normalize import sort_dedupe_series
from polyterm.ingestion.polymarket.resolvers import first_present, parse_number, to_float
from polyterm.ingestion.tasks import Err, settle_all, value_or
from polyterm.models import Activity, PnlPoint, Position, UserProfile

log = structlog.get_logger(__name__)

ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")

POSITIONS_LIMIT = 50
CLOSED_POSITIONS_LIMIT = 25
ACTIVITY_LIMIT = 25

_TITLE_KEYS = (
    "marketTitle",
    "market.title",
    "market.question",
    "event.title",
    "event.question",
    "question",
    "name",
    "title",
    "market.name",
)
_IMAGE_KEYS = ("market.image", "image", "market.icon", "icon", "event.image", "event.icon")


def validate_address(address: str) -> str:
    if not ADDRESS_RE.match(address or ""):
        raise ValidationError("Invalid user address", context={"address": address})
    return address


def _num(row: dict[str, Any], *keys: str) -> float:
    return to_float(first_present(row, *keys))


def _iso_from_ms(ms: int) -> str:
    return datetime.fromtimestamp(ms / 1000, tz=timezone.utc).isoformat().replace("+00:00", "Z")


def parse_position(row: dict[str, Any]) -> Position:
    return Position(
        market_id=str(first_present(row, "marketId", "conditionId", "id") or ""),
        market_title=str(first_present(row, *_TITLE_KEYS) or ""),
        outcome=str(first_present(row, "outcome", "outcomeToken") or ""),
        shares=_num(row, "shares", "size", "amount"),
        avg_price=_num(row, "avgPrice", "averagePrice", "avg"),
        current_price=_num(row, "curPrice", "currentPrice", "current", "price"),
        unrealized_pnl=_num(row, "cashPnl", "unrealizedPnl", "unrealizedPnL", "pnl"),
        value=_num(row, "currentValue", "value", "positionValue", "totalValue"),
        percent_pnl=_num(row, "percentPnl", "pnlPercent"),
        image=str(first_present(row, *_IMAGE_KEYS) or ""),
    )


def parse_closed_position(row: dict[str, Any]) -> Position:
    """Closed position; ``unrealized_pnl`` carries the realized figure."""
    shares = _num(row, "shares", "size", "amount")
    avg_price = _num(row, "avgPrice", "averagePrice", "avg")
    exit_price = _num(
        row,
        "exitPrice",
        "currentPrice",
        "current",
        "price",
        "market.currentPrice",
        "outcomeToken.price",
        "token.price",
    )
    value = to_float(first_present(row, "value", "positionValue", "totalValue"), shares * exit_price)
    realized = parse_number(
        first_present(
            row,
            "realizedPnl",
            "realizedPnL",
            "realizedPnlNum",
            "unrealizedPnl",
            "unrealizedPnL",
            "unrealizedPnlNum",
            "pnl",
            "pnlNum",
            "profitLoss",
            "profitLossNum",
        )
    )
    if realized is None:
        cost_basis = shares * avg_price
        realized = value - cost_basis if value and cost_basis else 0.0
    return Position(
        market_id=str(first_present(row, "marketId", "conditionId", "id") or ""),
        market_title=str(first_present(row, *_TITLE_KEYS) or ""),
        outcome=str(first_present(row, "outcome", "outcomeToken") or ""),
        shares=shares,
        avg_price=avg_price,
        current_price=exit_price,
        unrealized_pnl=realized,
        value=value,
        image=str(first_present(row, *_IMAGE_KEYS) or ""),
    )


def parse_activity(row: dict[str, Any], index: int) -> Activity:
    pnl = parse_number(row.get("pnl")) if row.get("pnl") else None
    return Activity(
        id=str(first_present(row, "id", "txHash", "transactionHash") or f"act-{index}"),
        type=str(first_present(row, "side", "type", "action") or "buy").lower(),
        market_title=str(first_present(row, "title", "marketTitle", "market.title", "question") or ""),
        market_id=str(first_present(row, "marketId", "market.id", "conditionId", "id") or ""),
        outcome=str(first_present(row, "outcome", "outcomeToken") or ""),
        shares=_num(row, "usdcSize", "shares", "size", "amount"),
        price=_num(row, "price"),
        timestamp=first_present(row, "timestamp", "time", "createdAt") or "",
        pnl=pnl,
        image=str(
            first_present(row, "icon", "image", "market.icon", "market.image", "event.icon", "event.image") or ""
        ),
    )


def _point_ms(row: dict[str, Any]) -> int | None:
    """Epoch milliseconds of one PnL row: ``t`` is seconds, ``timestamp``/``time`` are already ms."""
    t = parse_number(row.get("t"))
    if t is not None:
        return int(t * 1000)
    ms = parse_number(row.get("timestamp") or row.get("time"))
    return int(ms) if ms is not None else None


def parse_pnl_series(rows: list[dict[str, Any]]) -> list[PnlPoint]:
    """``{t, p}`` rows -> ascending PnlPoints, first occurrence of a timestamp kept."""
    raw: list[tuple[int, float]] = []
    for row in rows:
        ms = _point_ms(row)
        if ms is None:
            continue
        raw.append((ms, _num(row, "p", "cumulativePnl", "pnl", "value")))
    return [
        PnlPoint(timestamp=ms, cumulative_pnl=pnl, date=_iso_from_ms(ms))
        for ms, pnl in sort_dedupe_series(raw)
    ]


class ProfileAggregator:
    def __init__(self, client: DataApiClient):
        self.client = client

    async def profile(self, address: str, timeframe: str | None = "1M") -> UserProfile:
        validate_address(address)
        try:
            user_data = await self.client.user_data(address)
        except PolytermError as e:
            log.info("user_data_unavailable", address=address, error=e.message)
            user_data = {}
        username = str(first_present(user_data, "username", "name") or "")

        results = await settle_all(
            [
                self.client.value(address),
                self.client.user_stats(address, username or None),
                self.client.positions(address, POSITIONS_LIMIT),
                self.client.closed_positions(address, CLOSED_POSITIONS_LIMIT),
                self.client.activity(address, ACTIVITY_LIMIT),
                self.client.pnl_series(address, timeframe),
            ]
        )
        sections = ("value", "stats", "positions", "closed_positions", "activity", "pnl")
        for name, result in zip(sections, results):
            if isinstance(result, Err):
                log.warning("profile_section_failed", address=address, section=name, error=str(result.error))

        value = value_or(results[0], {})
        stats = value_or(results[1], {})
        positions = value_or(results[2], [])
        closed = value_or(results[3], [])
        activities = value_or(results[4], [])[:ACTIVITY_LIMIT]
        pnl_rows = value_or(results[5], [])

        market_ids = {first_present(a, "marketId", "market.id") for a in activities} - {None}
        avg_size = (
            sum(to_float(p.get("value")) for p in positions) / len(positions)
            if positions
            else to_float(stats.get("avgPositionSize"))
        )
        avatar = first_present(user_data, "avatar", "profileImage") or stats.get("avatar")

        return UserProfile(
            address=address,
            username=str(
                first_present(user_data, "username")
                or stats.get("username")
                or user_data.get("name")
                or f"{address[:8]}..."
            ),
            avatar=str(avatar) if avatar else None,
            total_pnl=to_float(value.get("totalPnl") or stats.get("totalPnl") or user_data.get("totalPnl")),
            total_volume=to_float(
                stats.get("totalVolume") or user_data.get("totalVolume") or value.get("totalVolume")
            ),
            total_value=to_float(value.get("value")),
            accuracy=to_float(stats.get("accuracy") or user_data.get("accuracy")),
            total_trades=int(to_float(stats.get("trades") or stats.get("totalTrades"))),
            win_rate=to_float(stats.get("winRate") or user_data.get("winRate")),
            avg_position_size=avg_size,
            markets_traded=len(market_ids) or int(to_float(stats.get("marketsTraded"))),
            positions=[parse_position(p) for p in positions],
            closed_positions=[parse_closed_position(p) for p in closed],
            recent_activity=[parse_activity(a, i) for i, a in enumerate(activities)],
            pnl_history=parse_pnl_series(pnl_rows),
            join_date=str(stats["joinDate"]) if stats.get("joinDate") else None,
            profile_views=int(to_float(stats.get("views") or stats.get("profileViews"))),
            largest_win=to_float(stats.get("largestWin")),
        )
