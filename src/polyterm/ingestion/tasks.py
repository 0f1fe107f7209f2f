"""Structured fan-out where members never cancel one another."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Sequence
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T


@dataclass(frozen=True)
class Err:
    error: Exception


Settled = Ok[Any] | Err


async def _settle(aw: Awaitable[Any]) -> Settled:
    try:
        return Ok(await aw)
    except Exception as e:  # noqa: BLE001
        return Err(e)


async def settle_all(awaitables: Sequence[Awaitable[Any]]) -> list[Settled]:
    """Run all awaitables in one task group; one Ok/Err per member, in input order."""
    async with asyncio.TaskGroup() as tg:
        tasks = [tg.create_task(_settle(aw)) for aw in awaitables]
    return [t.result() for t in tasks]


def value_or(result: Settled, default: T) -> T:
    return result.value if isinstance(result, Ok) else default
