"""Ordered fallback strategies: the first strategy that yields a value wins."""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Sequence
from typing import TypeVar

import structlog

from polyterm.errors import NotFound, UpstreamError

log = structlog.get_logger(__name__)

T = TypeVar("T")

Strategy = tuple[str, Callable[[], Awaitable[T]]]


async def first_success(query: str, strategies: Sequence[Strategy[T]]) -> T:
    """Try each ``(name, factory)`` in order and return the first result.

    A strategy fails by raising ``UpstreamError`` or ``NotFound``; the failure is
    logged and the next one is tried. When all fail, raise ``NotFound`` if every
    failure was a 404 or a semantic miss, else re-raise the last upstream error.
    """
    last_error: UpstreamError | None = None
    for name, factory in strategies:
        try:
            return await factory()
        except NotFound as e:
            log.info("strategy_miss", query=query, strategy=name, reason=e.message)
        except UpstreamError as e:
            log.warning("strategy_failed", query=query, strategy=name, status=e.status, error=e.message)
            if e.status != 404:
                last_error = e
    if last_error is not None:
        raise last_error
    raise NotFound(f"{query} not found", context={"strategies": [name for name, _ in strategies]})
