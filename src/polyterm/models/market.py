"""Market, Event, Outcome, PriceHistoryPoint - canonical entities."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field, computed_field, field_validator

from polyterm.models.base import CamelModel

# Distance from 0 or 1 at which a price counts as settled.
RESOLVED_EPSILON = 0.001


def is_settled_price(price: float) -> bool:
    return abs(price) < RESOLVED_EPSILON or abs(price - 1) < RESOLVED_EPSILON


class Outcome(CamelModel):
    """One selectable choice in a market, with its own yes/no price pair."""

    name: str = Field(..., min_length=1)
    price: float = Field(..., ge=0, le=1, description="Yes price / probability in [0, 1]")
    no_price: float = Field(..., ge=0, le=1)
    price_source: str = "none"
    volume: str = "$0"
    volume_num: float = 0.0
    volume_24h: str = Field("$0", alias="volume24hr")
    volume_24h_num: float = Field(0.0, alias="volume24hrNum")
    image: str = ""
    yes_token_id: str = ""
    no_token_id: str = ""
    condition_id: str = ""
    one_week_price_change: float | None = None
    liquidity: float | None = None

    @field_validator("name", mode="before")
    @classmethod
    def _strip_name(cls, v: Any) -> Any:
        return v.strip() if isinstance(v, str) else v

    @computed_field(alias="isResolved")
    @property
    def is_resolved(self) -> bool:
        return is_settled_price(self.price) or is_settled_price(self.no_price)


class Event(BaseModel):
    """Upstream bundle grouping one or more sub-markets (Polymarket event)."""

    event_id: str
    title: str = ""
    slug: str | None = None
    description: str = ""
    image: str = ""
    tags: list[Any] = Field(default_factory=list)
    markets: list[dict[str, Any]] = Field(default_factory=list)
    raw: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_raw(cls, raw: dict[str, Any]) -> Event:
        markets = raw.get("markets")
        return cls(
            event_id=str(raw.get("id") or raw.get("slug") or ""),
            title=str(raw.get("title") or raw.get("question") or raw.get("ticker") or ""),
            slug=raw.get("slug"),
            description=str(raw.get("description") or ""),
            image=str(raw.get("image") or raw.get("icon") or ""),
            tags=list(raw.get("tags") or []),
            markets=[m for m in markets if isinstance(m, dict)] if isinstance(markets, list) else [],
            raw=raw,
        )

    @property
    def is_multi_choice(self) -> bool:
        return len(self.markets) > 1


class Market(CamelModel):
    """Canonical market - one binary question or one synthesized multi-choice event."""

    id: str
    title: str = ""
    category: str = "Other"
    slug: str = ""
    image: str = ""
    description: str = ""
    condition_id: str = ""
    question_id: str = ""
    yes_price: float = Field(0.0, ge=0, le=1)
    no_price: float = Field(0.0, ge=0, le=1)
    price_fallback: bool = False
    volume: str = "$0"
    volume_num: float = 0.0
    volume_24h: str = Field("$0", alias="volume24hr")
    volume_24h_num: float = Field(0.0, alias="volume24hrNum")
    liquidity: str = "$0"
    liquidity_num: float = 0.0
    best_bid: float = 0.0
    best_ask: float = 0.0
    last_trade_price: float = 0.0
    change: str = "0%"
    hourly_change: str = "0%"
    weekly_change: str = "0%"
    monthly_change: str = "0%"
    end_date: str = ""
    start_date: str = ""
    created_at: str = ""
    active: bool = True
    closed: bool = False
    trending: bool = False
    new: bool = False
    featured: bool = False
    is_yes_no: bool = False
    outcomes: list[Outcome] = Field(default_factory=list)
    resolver_wallet: str = ""


class PriceHistoryPoint(CamelModel):
    timestamp: int  # epoch seconds
    price: float
    date: str = ""


class MarketsPage(CamelModel):
    """One listing response body; the unit stored in the response cache."""

    markets: list[Market] = Field(default_factory=list)
    total: int = 0
