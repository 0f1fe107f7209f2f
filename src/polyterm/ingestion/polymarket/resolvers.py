"""Ordered resolver cascades for prices, token ids, volumes and categories.

Each cascade is a tuple of small functions tried in order; the first one that
returns a value other than ``None`` wins. Keeping them as data makes the
precedence order testable one resolver at a time.
"""

from __future__ import annotations

import json
import math
import re
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

CATEGORY_VOCABULARY: tuple[str, ...] = (
    "Politics",
    "Sports",
    "Finance",
    "Crypto",
    "Geopolitics",
    "Earnings",
    "Tech",
    "Culture",
    "World",
    "Economy",
    "Elections",
)
DEFAULT_CATEGORY = "Other"

_NON_NUMERIC = re.compile(r"[^0-9.]")


# --- lenient parsing -------------------------------------------------------


def parse_number(value: Any) -> float | None:
    """Number or numeric string -> float; anything else -> None."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(value) else None
    if isinstance(value, str):
        try:
            f = float(value.strip())
        except ValueError:
            return None
        return f if math.isfinite(f) else None
    return None


def parse_amount(value: Any) -> float | None:
    """Like parse_number but also accepts display strings such as ``$1,234.5``."""
    n = parse_number(value)
    if n is not None or not isinstance(value, str):
        return n
    return parse_number(_NON_NUMERIC.sub("", value))


def to_float(value: Any, default: float = 0.0) -> float:
    n = parse_number(value)
    return default if n is None else n


def clamp_unit(value: float) -> float:
    return max(0.0, min(1.0, value))


def parse_json_field(value: Any) -> Any:
    """Gamma encodes list fields as JSON strings. Return the decoded value, or the value itself."""
    if isinstance(value, str):
        try:
            return json.loads(value)
        except json.JSONDecodeError:
            return None
    return value


def first_present(source: dict[str, Any] | None, *keys: str) -> Any:
    """First value under ``keys`` that is truthy (dotted keys walk nested dicts)."""
    if not source:
        return None
    for key in keys:
        value: Any = source
        for part in key.split("."):
            value = value.get(part) if isinstance(value, dict) else None
        if value:
            return value
    return None


# --- outcome discovery -----------------------------------------------------


@dataclass(frozen=True)
class RawOutcome:
    """One outcome entry as listed upstream, with its position in the upstream list."""

    name: str
    index: int
    fields: dict[str, Any] = field(default_factory=dict)

    @property
    def is_yes(self) -> bool:
        return "yes" in self.name.lower()

    @property
    def is_no(self) -> bool:
        return "no" in self.name.lower()


def parse_outcome_names(value: Any) -> list[RawOutcome]:
    """``outcomes`` as a JSON string, a native list, or a comma-separated string.

    Items may be strings or ``{name|outcome|label}`` objects. Entries whose name
    is empty after trimming are dropped; ``index`` keeps the upstream position.
    """
    if value is None:
        return []
    items: Any = value
    if isinstance(value, str):
        try:
            items = json.loads(value)
        except json.JSONDecodeError:
            items = value.split(",")
        if isinstance(items, str):
            items = items.split(",")
    if not isinstance(items, list):
        return []
    out: list[RawOutcome] = []
    for i, item in enumerate(items):
        if isinstance(item, dict):
            name = item.get("name") or item.get("outcome") or item.get("label") or str(i)
            out.append(RawOutcome(name=str(name).strip(), index=i, fields=item))
        elif item is not None:
            out.append(RawOutcome(name=str(item).strip(), index=i))
    return [o for o in out if o.name]


def parse_outcome_prices(value: Any) -> list[Any] | dict[str, Any] | None:
    decoded = parse_json_field(value)
    if isinstance(decoded, (list, dict)):
        return decoded
    return None


def yes_index(outcomes: list[RawOutcome]) -> int:
    """Upstream index of the "yes" side: the first outcome named yes, else the first listed."""
    for o in outcomes:
        if o.is_yes:
            return o.index
    return outcomes[0].index if outcomes else 0


# --- per-outcome price cascade ---------------------------------------------


@dataclass(frozen=True)
class PriceContext:
    market: dict[str, Any]
    outcomes: list[RawOutcome]
    prices: list[Any] | dict[str, Any] | None = None
    orders: dict[str, Any] | None = None


PriceResolver = Callable[[PriceContext, RawOutcome], "float | None"]


def _price_from_subgraph(ctx: PriceContext, o: RawOutcome) -> float | None:
    token_prices = (ctx.orders or {}).get("outcomeTokenPrices")
    if isinstance(token_prices, list) and o.index < len(token_prices):
        return parse_number(token_prices[o.index])
    return None


def _price_from_outcome_prices(ctx: PriceContext, o: RawOutcome) -> float | None:
    prices = ctx.prices
    if isinstance(prices, dict):
        for key in (o.name, str(o.index), f"outcome{o.index}"):
            if prices.get(key) is not None:
                return parse_number(prices[key])
        return None
    if isinstance(prices, list) and o.index < len(prices):
        return parse_number(prices[o.index])
    return None


def _price_from_outcome_fields(ctx: PriceContext, o: RawOutcome) -> float | None:
    for key in ("price", "priceNum", "lastPrice", "currentPrice", "prob", "probability"):
        if o.fields.get(key) is not None:
            return parse_number(o.fields[key])
    return None


def _price_from_last_trade(ctx: PriceContext, o: RawOutcome) -> float | None:
    if len(ctx.outcomes) != 2:
        return None
    last = to_float(ctx.market.get("lastTradePrice"))
    if last <= 0:
        return None
    return last if o.index == yes_index(ctx.outcomes) else 1 - last


def _price_from_midpoint(ctx: PriceContext, o: RawOutcome) -> float | None:
    bid = to_float(ctx.market.get("bestBid"))
    ask = to_float(ctx.market.get("bestAsk"))
    if bid <= 0 or ask <= 0:
        return None
    mid = (bid + ask) / 2
    return mid if o.index == yes_index(ctx.outcomes) else 1 - mid


def _price_equal_split(ctx: PriceContext, o: RawOutcome) -> float | None:
    n = len(ctx.outcomes)
    return 1 / n if n > 2 else None


PRICE_RESOLVERS: tuple[tuple[str, PriceResolver], ...] = (
    ("subgraph", _price_from_subgraph),
    ("outcomePrices", _price_from_outcome_prices),
    ("outcome", _price_from_outcome_fields),
    ("lastTradePrice", _price_from_last_trade),
    ("midpoint", _price_from_midpoint),
    ("equal", _price_equal_split),
)


def resolve_price(ctx: PriceContext, outcome: RawOutcome) -> tuple[float, str]:
    """Clamped price for one outcome and the name of the resolver that produced it."""
    for source, resolver in PRICE_RESOLVERS:
        price = resolver(ctx, outcome)
        if price is not None:
            return clamp_unit(price), source
    return 0.0, "none"


# --- sub-market (yes, no) pair cascade -------------------------------------

PairResolver = Callable[[dict[str, Any], "dict[str, Any] | None"], "tuple[float, float] | None"]


def _nonzero_pair(yes: float, no: float) -> tuple[float, float] | None:
    return (yes, no) if yes or no else None


def _pair_from_subgraph(m: dict[str, Any], orders: dict[str, Any] | None) -> tuple[float, float] | None:
    token_prices = (orders or {}).get("outcomeTokenPrices")
    if not isinstance(token_prices, list) or not token_prices:
        return None
    yes = to_float(token_prices[0])
    no = to_float(token_prices[1]) if len(token_prices) > 1 else 0.0
    return _nonzero_pair(yes, no or 1 - yes)


def _pair_from_outcome_prices(m: dict[str, Any], orders: dict[str, Any] | None) -> tuple[float, float] | None:
    prices = parse_outcome_prices(m.get("outcomePrices"))
    if isinstance(prices, list) and len(prices) >= 2:
        return _nonzero_pair(to_float(prices[0]), to_float(prices[1]))
    return None


def _pair_from_tokens(m: dict[str, Any], orders: dict[str, Any] | None) -> tuple[float, float] | None:
    tokens = [t for t in (m.get("tokens") or []) if isinstance(t, dict)]
    if len(tokens) >= 2:
        return _nonzero_pair(to_float(tokens[0].get("price")), to_float(tokens[1].get("price")))
    if len(tokens) == 1:
        yes = to_float(tokens[0].get("price"))
        return (yes, 1 - yes) if yes > 0 else None
    return None


def _pair_from_last_trade(m: dict[str, Any], orders: dict[str, Any] | None) -> tuple[float, float] | None:
    last = to_float(m.get("lastTradePrice"))
    return (last, 1 - last) if last > 0 else None


def _pair_from_midpoint(m: dict[str, Any], orders: dict[str, Any] | None) -> tuple[float, float] | None:
    bid = to_float((orders or {}).get("bestBid") or m.get("bestBid"))
    ask = to_float((orders or {}).get("bestAsk") or m.get("bestAsk"))
    if bid <= 0 or ask <= 0:
        return None
    mid = (bid + ask) / 2
    return mid, 1 - mid


PAIR_RESOLVERS: tuple[tuple[str, PairResolver], ...] = (
    ("subgraph", _pair_from_subgraph),
    ("outcomePrices", _pair_from_outcome_prices),
    ("tokens", _pair_from_tokens),
    ("lastTradePrice", _pair_from_last_trade),
    ("midpoint", _pair_from_midpoint),
)

# Pair sources that report both sides directly rather than deriving one from the other.
DIRECT_PAIR_SOURCES = frozenset({"subgraph", "outcomePrices", "tokens"})


def resolve_pair(m: dict[str, Any], orders: dict[str, Any] | None = None) -> tuple[float, float, str]:
    """(yes, no, source) for one binary sub-market, both clamped to [0, 1]."""
    for source, resolver in PAIR_RESOLVERS:
        pair = resolver(m, orders)
        if pair is not None:
            return clamp_unit(pair[0]), clamp_unit(pair[1]), source
    return 0.0, 0.0, "none"


# --- token ids --------------------------------------------------------------


def _tokens_from_clob_ids(m: dict[str, Any]) -> list[str] | None:
    ids = parse_json_field(m.get("clobTokenIds"))
    if isinstance(ids, list):
        return [str(i) if i is not None else "" for i in ids]
    return None


def _tokens_from_tokens_array(m: dict[str, Any]) -> list[str] | None:
    tokens = m.get("tokens")
    if not isinstance(tokens, list):
        return None
    return [
        str(t.get("token_id") or t.get("id") or "") if isinstance(t, dict) else ""
        for t in tokens
    ]


TOKEN_ID_RESOLVERS: tuple[Callable[[dict[str, Any]], list[str] | None], ...] = (
    _tokens_from_clob_ids,
    _tokens_from_tokens_array,
)


def resolve_token_ids(m: dict[str, Any]) -> list[str]:
    """Token ids by position (0 = yes, 1 = no). Later resolvers only fill gaps."""
    merged: list[str] = []
    for resolver in TOKEN_ID_RESOLVERS:
        for i, token_id in enumerate(resolver(m) or []):
            if i >= len(merged):
                merged.append(token_id)
            elif not merged[i]:
                merged[i] = token_id
    return merged


def token_pair(m: dict[str, Any]) -> tuple[str, str]:
    ids = resolve_token_ids(m)
    return (ids[0] if ids else "", ids[1] if len(ids) > 1 else "")


# --- volume -----------------------------------------------------------------


@dataclass(frozen=True)
class VolumeContext:
    market: dict[str, Any]
    event: dict[str, Any] | None = None
    volumes: dict[str, Any] | None = None


VolumeResolver = Callable[[VolumeContext, float], "float | None"]


def _market_field(key: str) -> VolumeResolver:
    def resolve(ctx: VolumeContext, volume_24h: float) -> float | None:
        value = ctx.market.get(key)
        return None if value is None else (parse_amount(value) or 0.0)

    resolve.__name__ = f"market_{key}"
    return resolve


def _event_field(key: str) -> VolumeResolver:
    def resolve(ctx: VolumeContext, volume_24h: float) -> float | None:
        value = (ctx.event or {}).get(key)
        return None if value is None else (parse_amount(value) or 0.0)

    resolve.__name__ = f"event_{key}"
    return resolve


def _subgraph_field(key: str) -> VolumeResolver:
    def resolve(ctx: VolumeContext, volume_24h: float) -> float | None:
        value = (ctx.volumes or {}).get(key)
        return None if value is None else parse_number(value)

    resolve.__name__ = f"subgraph_{key}"
    return resolve


def _ambiguous_volume(ctx: VolumeContext, volume_24h: float) -> float | None:
    value = ctx.market.get("volume")
    if value is None:
        return None
    parsed = parse_amount(value) or 0.0
    if volume_24h > 0 and parsed == volume_24h:
        return 0.0
    return parsed


VOLUME_24H_RESOLVERS: tuple[VolumeResolver, ...] = (
    _subgraph_field("volume24h"),
    _market_field("volume24hr"),
    _market_field("volume24hrClob"),
    _market_field("volume24Hr"),
    _event_field("volume24hr"),
)

VOLUME_ALL_TIME_RESOLVERS: tuple[VolumeResolver, ...] = (
    _subgraph_field("totalVolume"),
    _market_field("volumeNum"),
    _ambiguous_volume,
    _market_field("volumeClob"),
    _event_field("volume"),
)


def resolve_volumes(ctx: VolumeContext) -> tuple[float, float]:
    """(all_time, last_24h).

    A lone ``volume`` field equal to a non-zero 24h figure is taken to be the
    24h number reported twice, so all-time stays 0. This is approximate.
    """
    volume_24h = 0.0
    for resolver in VOLUME_24H_RESOLVERS:
        value = resolver(ctx, 0.0)
        if value is not None:
            volume_24h = value
            break
    all_time = 0.0
    for resolver in VOLUME_ALL_TIME_RESOLVERS:
        value = resolver(ctx, volume_24h)
        if value is not None:
            all_time = value
            break
    return all_time, volume_24h


# --- category ---------------------------------------------------------------


def _tag_labels(tag: Any) -> list[str]:
    if isinstance(tag, str):
        return [tag]
    if isinstance(tag, dict):
        return [str(tag[k]) for k in ("name", "label") if tag.get(k)]
    return []


def _category_from_vocabulary(tags: list[Any]) -> str | None:
    for tag in tags:
        for label in _tag_labels(tag):
            if label in CATEGORY_VOCABULARY:
                return label
    return None


def _category_from_first_tag(tags: list[Any]) -> str | None:
    if not tags:
        return None
    first = tags[0]
    if isinstance(first, dict):
        value = first.get("name") or first.get("label") or first.get("slug")
        return str(value) if value else None
    return str(first) if first else None


CATEGORY_RESOLVERS: tuple[Callable[[list[Any]], str | None], ...] = (
    _category_from_vocabulary,
    _category_from_first_tag,
)


def resolve_category(tags: Any) -> str:
    """First vocabulary tag, else the first tag verbatim, else ``Other``."""
    if not isinstance(tags, list):
        return DEFAULT_CATEGORY
    for resolver in CATEGORY_RESOLVERS:
        category = resolver(tags)
        if category:
            return category
    return DEFAULT_CATEGORY


# --- resolver wallet ---------------------------------------------------------

_WALLET_KEYS = ("resolvedBy", "resolver", "resolverAddress", "resolverWallet")


def resolve_wallet(market: dict[str, Any] | None, event: dict[str, Any] | None = None) -> str:
    for source in (market, event):
        value = first_present(source, *_WALLET_KEYS)
        if value and isinstance(value, str):
            return value
    value = first_present(market, "condition.resolver")
    return value if isinstance(value, str) else ""
