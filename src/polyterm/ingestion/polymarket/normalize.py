"""Raw Gamma / CLOB / subgraph payloads -> canonical Market and Outcome."""

from __future__ import annotations

import re
from collections.abc import Iterable
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Any

import structlog

from polyterm.ingestion.polymarket.resolvers import (
    CATEGORY_VOCABULARY,
    DIRECT_PAIR_SOURCES,
    PriceContext,
    VolumeContext,
    clamp_unit,
    parse_amount,
    parse_number,
    parse_outcome_names,
    parse_outcome_prices,
    resolve_category,
    resolve_pair,
    resolve_price,
    resolve_token_ids,
    resolve_volumes,
    resolve_wallet,
    to_float,
    token_pair,
)
from polyterm.models import Event, Market, Outcome

if TYPE_CHECKING:
    from polyterm.ingestion.polymarket.subgraph import SubgraphLookups

log = structlog.get_logger(__name__)

PLACEHOLDER_RE = re.compile(r"^Team\s+[A-Z]\d*$", re.IGNORECASE)
CHOICE_RE = re.compile(r"Will (?:the )?(.+?)(?: win | is | be )", re.IGNORECASE)

# Events above this all-time volume are flagged trending.
EVENT_TRENDING_VOLUME = 10_000
NEW_WINDOW = timedelta(days=7)

# Price sources that carry no real market signal.
_WEAK_SOURCES = frozenset({"equal", "none"})


# --- display helpers ---------------------------------------------------------


def format_usd(amount: float, decimals: int = 1) -> str:
    """``$X.XM`` / ``$X.XK`` / ``$X``."""
    if amount >= 1_000_000:
        return f"${amount / 1_000_000:.{decimals}f}M"
    if amount >= 1_000:
        return f"${amount / 1_000:.{decimals}f}K"
    if amount > 0:
        return f"${amount:.0f}"
    return "$0"


def format_change(value: Any) -> str:
    n = parse_number(value)
    if not n:
        return "0%"
    return f"{'+' if n >= 0 else ''}{n:.2f}%"


def _parse_datetime(value: Any) -> datetime | None:
    if not value or not isinstance(value, str):
        return None
    try:
        dt = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        return None
    return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)


def _is_new(raw: dict[str, Any], now: datetime | None = None) -> bool:
    if raw.get("new") is True:
        return True
    created = _parse_datetime(raw.get("creationDate") or raw.get("createdAt"))
    if created is None:
        return False
    return created > (now or datetime.now(timezone.utc)) - NEW_WINDOW


def _sort_timestamp(value: str) -> float:
    dt = _parse_datetime(value)
    return dt.timestamp() if dt else 0.0


# --- outcomes -----------------------------------------------------------------


def outcomes_from_market(
    raw: dict[str, Any],
    *,
    event: dict[str, Any] | None = None,
    lookups: SubgraphLookups | None = None,
) -> list[Outcome]:
    """Outcomes of one plain market, in upstream order.

    With exactly two outcomes each side's no-price is the other side's price and
    its complement token is the other side's token.
    """
    names = parse_outcome_names(raw.get("outcomes"))
    if not names:
        return []
    condition_id = str(raw.get("conditionId") or "")
    orders = lookups.orders.get(condition_id) if lookups and condition_id else None
    volumes = lookups.volumes.get(condition_id) if lookups and condition_id else None
    ctx = PriceContext(
        market=raw,
        outcomes=names,
        prices=parse_outcome_prices(raw.get("outcomePrices")),
        orders=orders,
    )
    priced = [(o, *resolve_price(ctx, o)) for o in names]
    token_ids = resolve_token_ids(raw)
    all_time, last_24h = resolve_volumes(VolumeContext(market=raw, event=event, volumes=volumes))
    image = str(raw.get("image") or raw.get("icon") or "")

    outcomes = []
    binary = len(priced) == 2
    for pos, (o, price, source) in enumerate(priced):
        if binary:
            other = priced[1 - pos]
            no_price = other[1]
            no_token = token_ids[other[0].index] if other[0].index < len(token_ids) else ""
        else:
            no_price = clamp_unit(1 - price)
            no_token = ""
        outcomes.append(
            Outcome(
                name=o.name,
                price=price,
                no_price=no_price,
                price_source=source,
                volume=format_usd(all_time),
                volume_num=all_time,
                volume_24h=format_usd(last_24h),
                volume_24h_num=last_24h,
                image=image,
                yes_token_id=token_ids[o.index] if o.index < len(token_ids) else "",
                no_token_id=no_token,
                condition_id=condition_id,
                one_week_price_change=parse_number(raw.get("oneWeekPriceChange")),
                liquidity=parse_number(raw.get("liquidityClob")),
            )
        )
    return outcomes


def submarket_name(m: dict[str, Any]) -> str:
    """``groupItemTitle``, else the choice in a "Will (the) X win/is/be ..." question, else the question."""
    group_title = str(m.get("groupItemTitle") or "").strip()
    if group_title:
        return group_title
    question = str(m.get("question") or m.get("title") or "").strip()
    match = CHOICE_RE.search(question)
    if match and match.group(1).strip():
        return match.group(1).strip()
    return question


def is_placeholder(name: str) -> bool:
    return bool(PLACEHOLDER_RE.match(name.strip()))


def outcome_from_submarket(m: dict[str, Any], lookups: SubgraphLookups | None = None) -> Outcome | None:
    """One Outcome for one binary sub-market of an event; None if the name is empty."""
    name = submarket_name(m)
    if not name:
        return None
    condition_id = str(m.get("conditionId") or "")
    orders = lookups.orders.get(condition_id) if lookups and condition_id else None
    volumes = lookups.volumes.get(condition_id) if lookups and condition_id else None
    yes, no, source = resolve_pair(m, orders)
    all_time, last_24h = resolve_volumes(VolumeContext(market=m, volumes=volumes))
    yes_token, no_token = token_pair(m)
    return Outcome(
        name=name,
        price=yes,
        no_price=no,
        price_source=source,
        volume=format_usd(all_time),
        volume_num=all_time,
        volume_24h=format_usd(last_24h),
        volume_24h_num=last_24h,
        image=str(m.get("image") or m.get("icon") or ""),
        yes_token_id=yes_token,
        no_token_id=no_token,
        condition_id=condition_id,
        one_week_price_change=parse_number(m.get("oneWeekPriceChange")),
        liquidity=parse_number(m.get("liquidityClob")),
    )


def outcomes_from_submarkets(
    markets: Iterable[dict[str, Any]],
    lookups: SubgraphLookups | None = None,
) -> list[Outcome]:
    """One Outcome per usable sub-market, highest price first.

    Placeholder names ("Team A", "Team B2") and sub-markets with neither volume
    nor price are scaffolding and are dropped.
    """
    outcomes: list[Outcome] = []
    for m in markets:
        outcome = outcome_from_submarket(m, lookups)
        if outcome is None:
            continue
        if is_placeholder(outcome.name):
            log.debug("skip_placeholder_outcome", name=outcome.name)
            continue
        if outcome.volume_num == 0 and outcome.price == 0:
            log.debug("skip_inactive_outcome", name=outcome.name)
            continue
        outcomes.append(outcome)
    outcomes.sort(key=lambda o: o.price, reverse=True)
    return outcomes


# --- headline prices ----------------------------------------------------------


def is_yes_no(outcomes: list[Outcome]) -> bool:
    if len(outcomes) != 2:
        return False
    names = [o.name.lower() for o in outcomes]
    return any("yes" in n for n in names) and any("no" in n for n in names)


def _is_yes_no_like(outcomes: list[Outcome]) -> bool:
    return len(outcomes) == 2 and any("yes" in o.name.lower() or "no" in o.name.lower() for o in outcomes)


def derive_headline_prices(
    outcomes: list[Outcome],
    last_trade_price: float = 0.0,
) -> tuple[float, float, bool, list[Outcome]]:
    """(yes_price, no_price, price_fallback, outcomes).

    For a two-outcome Yes/No-like market the complementary side is back-filled
    with ``1 - known`` only when it is exactly zero. That rule can hide a side
    that genuinely resolved to zero; it is kept as a known approximation. The
    back-fill is applied to the returned outcomes as well.
    """
    if not outcomes:
        if last_trade_price > 0:
            yes = clamp_unit(last_trade_price)
            return yes, clamp_unit(1 - yes), True, []
        return 0.0, 0.0, True, []

    if _is_yes_no_like(outcomes):
        yes_pos = next((i for i, o in enumerate(outcomes) if "yes" in o.name.lower()), 0)
        no_pos = next(
            (i for i, o in enumerate(outcomes) if i != yes_pos and "no" in o.name.lower()),
            1 - yes_pos,
        )
        yes_outcome, no_outcome = outcomes[yes_pos], outcomes[no_pos]
        yes, no = yes_outcome.price, no_outcome.price
        backfilled = False
        if yes > 0 and no == 0:
            no, backfilled = clamp_unit(1 - yes), True
            no_outcome = no_outcome.model_copy(update={"price": no, "price_source": "complement"})
        elif no > 0 and yes == 0:
            yes, backfilled = clamp_unit(1 - no), True
            yes_outcome = yes_outcome.model_copy(update={"price": yes, "price_source": "complement"})
        if backfilled:
            yes_outcome = yes_outcome.model_copy(update={"no_price": no})
            no_outcome = no_outcome.model_copy(update={"no_price": yes})
            outcomes = list(outcomes)
            outcomes[yes_pos], outcomes[no_pos] = yes_outcome, no_outcome
        fallback = (
            backfilled
            or yes_outcome.price_source != no_outcome.price_source
            or yes_outcome.price_source in _WEAK_SOURCES
        )
        return yes, no, fallback, outcomes

    leading = max(outcomes, key=lambda o: o.price)
    fallback = leading.price_source in _WEAK_SOURCES
    return leading.price, leading.no_price, fallback, outcomes


# --- markets -------------------------------------------------------------------


def _embedded_event(raw: dict[str, Any]) -> dict[str, Any] | None:
    events = raw.get("events")
    if isinstance(events, list) and events and isinstance(events[0], dict):
        return events[0]
    return None


def normalize_market(
    raw: dict[str, Any],
    *,
    event: dict[str, Any] | None = None,
    lookups: SubgraphLookups | None = None,
    now: datetime | None = None,
) -> Market:
    """One raw Gamma object -> Market.

    An event payload with several sub-markets becomes one multi-choice Market;
    an event with a single sub-market is normalized as that market.
    """
    sub_markets = raw.get("markets")
    if isinstance(sub_markets, list):
        sub_markets = [m for m in sub_markets if isinstance(m, dict)]
        if len(sub_markets) > 1 or not sub_markets:
            return normalize_event(Event.from_raw(raw), lookups=lookups, now=now)
        return normalize_market(sub_markets[0], event=raw, lookups=lookups, now=now)

    event = event or _embedded_event(raw)
    ev = event or {}
    outcomes = outcomes_from_market(raw, event=event, lookups=lookups)
    last_trade = to_float(raw.get("lastTradePrice"))
    yes, no, fallback, outcomes = derive_headline_prices(outcomes, last_trade)
    condition_id = str(raw.get("conditionId") or "")
    orders = lookups.orders.get(condition_id) if lookups and condition_id else None
    volumes = lookups.volumes.get(condition_id) if lookups and condition_id else None
    all_time, last_24h = resolve_volumes(VolumeContext(market=raw, event=event, volumes=volumes))
    liquidity = parse_amount(raw.get("liquidityNum") or raw.get("liquidity")) or 0.0
    tags = raw.get("tags") or ev.get("tags") or []

    return Market(
        id=str(
            raw.get("id")
            or ev.get("id")
            or raw.get("questionID")
            or raw.get("conditionId")
            or ""
        ),
        title=str(raw.get("question") or raw.get("title") or ev.get("title") or ""),
        category=resolve_category(tags),
        slug=str(raw.get("slug") or ""),
        image=str(raw.get("image") or raw.get("icon") or ev.get("image") or ev.get("icon") or ""),
        description=str(raw.get("description") or ev.get("description") or ""),
        condition_id=condition_id,
        question_id=str(raw.get("questionID") or ""),
        yes_price=yes,
        no_price=no,
        price_fallback=fallback,
        volume=format_usd(all_time),
        volume_num=all_time,
        volume_24h=format_usd(last_24h),
        volume_24h_num=last_24h,
        liquidity=format_usd(liquidity),
        liquidity_num=liquidity,
        best_bid=to_float((orders or {}).get("bestBid") or raw.get("bestBid")),
        best_ask=to_float((orders or {}).get("bestAsk") or raw.get("bestAsk")),
        last_trade_price=last_trade,
        change=format_change(raw.get("oneDayPriceChange")),
        hourly_change=format_change(raw.get("oneHourPriceChange")),
        weekly_change=format_change(raw.get("oneWeekPriceChange")),
        monthly_change=format_change(raw.get("oneMonthPriceChange")),
        end_date=str(raw.get("endDateIso") or raw.get("endDate") or ev.get("endDate") or ""),
        start_date=str(raw.get("startDateIso") or raw.get("startDate") or ""),
        created_at=str(raw.get("createdAt") or ""),
        active=raw.get("active") is not False,
        closed=raw.get("closed") is True,
        trending=(last_24h or all_time) > 0,
        new=_is_new(raw, now),
        featured=raw.get("featured") is True,
        is_yes_no=is_yes_no(outcomes),
        outcomes=outcomes,
        resolver_wallet=resolve_wallet(raw, event),
    )


def normalize_event(
    event: Event,
    *,
    lookups: SubgraphLookups | None = None,
    now: datetime | None = None,
) -> Market:
    """Synthesize one multi-choice Market, one Outcome per sub-market."""
    raw = event.raw
    outcomes = outcomes_from_submarkets(event.markets, lookups)
    leading = outcomes[0] if outcomes else None

    all_time = parse_amount(raw.get("volume"))
    if all_time is None:
        all_time = sum(o.volume_num for o in outcomes)
    last_24h = parse_number(raw.get("volume24h"))
    if last_24h is None:
        last_24h = parse_number(raw.get("volume24hr"))
    if last_24h is None:
        last_24h = sum(o.volume_24h_num for o in outcomes)
    liquidity = parse_amount(raw.get("liquidity")) or 0.0

    return Market(
        id=event.event_id,
        title=event.title,
        category=resolve_category(event.tags),
        slug=event.slug or "",
        image=event.image,
        description=event.description,
        yes_price=leading.price if leading else 0.0,
        no_price=leading.no_price if leading else 0.0,
        price_fallback=leading is None or leading.price_source not in DIRECT_PAIR_SOURCES,
        volume=format_usd(all_time),
        volume_num=all_time,
        volume_24h=format_usd(last_24h),
        volume_24h_num=last_24h,
        liquidity=format_usd(liquidity),
        liquidity_num=liquidity,
        end_date=str(raw.get("endDate") or raw.get("endDateIso") or ""),
        start_date=str(raw.get("startDate") or ""),
        created_at=str(raw.get("creationDate") or raw.get("createdAt") or ""),
        active=raw.get("active") is not False,
        closed=raw.get("closed") is True,
        trending=all_time > EVENT_TRENDING_VOLUME,
        new=_is_new(raw, now),
        featured=raw.get("featured") is True,
        is_yes_no=False,
        outcomes=outcomes,
        resolver_wallet=resolve_wallet(raw),
    )


def is_resolved_submarket(m: dict[str, Any]) -> bool:
    """True when the listed prices show settlement: one side near 1 and one near 0."""
    prices = parse_outcome_prices(m.get("outcomePrices"))
    if not isinstance(prices, list):
        return False
    values = [v for v in (parse_number(p) for p in prices) if v is not None]
    has_one = any(abs(v - 1) < 0.001 for v in values)
    has_zero = any(abs(v) < 0.001 for v in values)
    return has_one and has_zero


def open_event(raw: dict[str, Any]) -> dict[str, Any] | None:
    """Copy of an event with closed, archived and resolved sub-markets removed; None if nothing is left."""
    if raw.get("closed") is True or raw.get("archived") is True:
        return None
    markets = raw.get("markets")
    if not isinstance(markets, list):
        return None
    live = [
        m
        for m in markets
        if isinstance(m, dict)
        and m.get("closed") is not True
        and m.get("archived") is not True
        and not is_resolved_submarket(m)
    ]
    if not live:
        return None
    return {**raw, "markets": live}


# --- listings --------------------------------------------------------------------


def sort_markets(markets: list[Market], market_type: str | None) -> list[Market]:
    """``new``: latest end date first. ``breaking``: most active first, then end date. Otherwise upstream order."""
    if market_type == "new":
        return sorted(markets, key=lambda m: _sort_timestamp(m.end_date), reverse=True)
    if market_type == "breaking":
        return sorted(
            markets,
            key=lambda m: (m.volume_24h_num or m.volume_num, _sort_timestamp(m.end_date)),
            reverse=True,
        )
    return list(markets)


def filter_category(markets: list[Market], category: str | None) -> list[Market]:
    if not category or category.lower() == "all":
        return markets
    wanted = category.lower()
    return [m for m in markets if m.category.lower() == wanted]


def available_categories(tags: Any) -> list[str]:
    """``All`` followed by vocabulary entries that occur in the upstream tag list."""
    if isinstance(tags, dict):
        tags = tags.get("data") or []
    labels: set[str] = set()
    for tag in tags if isinstance(tags, list) else []:
        if isinstance(tag, str):
            labels.add(tag)
        elif isinstance(tag, dict):
            labels.update(str(tag[k]) for k in ("name", "label") if tag.get(k))
    return ["All", *(c for c in CATEGORY_VOCABULARY if c in labels)]


def sort_dedupe_series(points: Iterable[tuple[int, float]]) -> list[tuple[int, float]]:
    """Ascending by timestamp; for repeated timestamps the first occurrence wins."""
    seen: set[int] = set()
    out: list[tuple[int, float]] = []
    for ts, value in sorted(points, key=lambda p: p[0]):
        if ts in seen:
            continue
        seen.add(ts)
        out.append((ts, value))
    return out