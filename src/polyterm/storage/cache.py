"""Response cache: bounded, TTL-expiring key/value store for computed responses.

Two backends share one contract. ``TTLResponseCache`` lives in process memory;
``DuckDBResponseCache`` persists entries in the ``response_cache`` table; worker
processes pointed at one file share it best-effort, one operation at a time.
A hit returns the stored value as-is (the in-memory backend hands back the
same object, the DuckDB backend an equal model rebuilt from JSON). Two
concurrent misses for one key may both fetch; the last ``put`` wins.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, Generic, Protocol, TypeVar

import duckdb
import structlog
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from polyterm.storage.db import get_connection, init_schema

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection

    from polyterm.config import Settings

log = structlog.get_logger(__name__)

DEFAULT_TTL_SEC = 300.0
DEFAULT_MAX_ENTRIES = 50

V = TypeVar("V")
M = TypeVar("M", bound=BaseModel)


class ResponseCache(Protocol[V]):
    def get(self, key: str) -> V | None: ...

    def put(self, key: str, value: V) -> None: ...

    def evict(self, key: str) -> None: ...


@dataclass(frozen=True)
class CacheEntry(Generic[V]):
    key: str
    value: V
    written_at: float


class TTLResponseCache(Generic[V]):
    """In-process cache. Expired entries are dropped on read; the oldest write is evicted past the bound."""

    def __init__(
        self,
        ttl_sec: float = DEFAULT_TTL_SEC,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        clock: Callable[[], float] = time.monotonic,
        name: str = "cache",
    ):
        self.ttl_sec = ttl_sec
        self.max_entries = max_entries
        self.name = name
        self._clock = clock
        self._entries: dict[str, CacheEntry[V]] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._entries

    def get(self, key: str) -> V | None:
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if now - entry.written_at > self.ttl_sec:
                del self._entries[key]
                log.debug("cache_expired", cache=self.name, key=key)
                return None
            return entry.value

    def put(self, key: str, value: V) -> None:
        now = self._clock()
        with self._lock:
            self._entries[key] = CacheEntry(key=key, value=value, written_at=now)
            if len(self._entries) > self.max_entries:
                oldest = min(self._entries.values(), key=lambda e: e.written_at)
                del self._entries[oldest.key]
                log.debug("cache_evicted", cache=self.name, key=oldest.key)

    def evict(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)


class DuckDBResponseCache(Generic[M]):
    """Cache persisted in DuckDB. Values must be pydantic models; they are stored as JSON.

    A file-backed cache opens one connection per operation, so worker processes
    take turns on the file. An operation that meets another process's lock is
    treated as a miss (``get``) or skipped (``put``, ``evict``). ``:memory:``
    keeps one connection for the life of the cache.
    """

    def __init__(
        self,
        db_path: str,
        model: type[M],
        *,
        namespace: str = "default",
        ttl_sec: float = DEFAULT_TTL_SEC,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        clock: Callable[[], float] = time.time,
    ):
        self.db_path = db_path
        self.model = model
        self.namespace = namespace
        self.ttl_sec = ttl_sec
        self.max_entries = max_entries
        self._clock = clock
        self._lock = threading.Lock()
        self._memory_conn = get_connection(db_path) if str(db_path) == ":memory:" else None
        if self._memory_conn is not None:
            init_schema(self._memory_conn)

    @contextmanager
    def _connect(self) -> Iterator[DuckDBPyConnection]:
        if self._memory_conn is not None:
            yield self._memory_conn
            return
        conn = get_connection(self.db_path)
        try:
            init_schema(conn)
            yield conn
        finally:
            conn.close()

    def get(self, key: str) -> M | None:
        now = self._clock()
        try:
            with self._lock, self._connect() as conn:
                row = conn.execute(
                    "SELECT payload, written_at FROM response_cache WHERE namespace = ? AND cache_key = ?",
                    [self.namespace, key],
                ).fetchone()
                if row is None:
                    return None
                payload, written_at = row
                if now - written_at > self.ttl_sec:
                    self._delete(conn, key)
                    return None
        except duckdb.IOException as e:
            log.info("cache_locked", cache=self.namespace, op="get", error=str(e))
            return None
        try:
            return self.model.model_validate_json(payload)
        except PydanticValidationError as e:
            log.warning("cache_entry_invalid", cache=self.namespace, key=key, error=str(e))
            self.evict(key)
            return None

    def put(self, key: str, value: M) -> None:
        payload = value.model_dump_json(by_alias=True)
        now = self._clock()
        try:
            with self._lock, self._connect() as conn:
                conn.execute(
                    """
                    INSERT INTO response_cache (namespace, cache_key, payload, written_at)
                    VALUES (?, ?, ?, ?)
                    ON CONFLICT (namespace, cache_key) DO UPDATE SET
                        payload = excluded.payload,
                        written_at = excluded.written_at
                    """,
                    [self.namespace, key, payload, now],
                )
                (count,) = conn.execute(
                    "SELECT COUNT(*) FROM response_cache WHERE namespace = ?", [self.namespace]
                ).fetchone()
                if count > self.max_entries:
                    oldest = conn.execute(
                        """
                        SELECT cache_key FROM response_cache WHERE namespace = ?
                        ORDER BY written_at ASC LIMIT 1
                        """,
                        [self.namespace],
                    ).fetchone()
                    if oldest:
                        self._delete(conn, oldest[0])
                        log.debug("cache_evicted", cache=self.namespace, key=oldest[0])
        except duckdb.IOException as e:
            log.info("cache_locked", cache=self.namespace, op="put", error=str(e))

    def evict(self, key: str) -> None:
        try:
            with self._lock, self._connect() as conn:
                self._delete(conn, key)
        except duckdb.IOException as e:
            log.info("cache_locked", cache=self.namespace, op="evict", error=str(e))

    def close(self) -> None:
        if self._memory_conn is not None:
            self._memory_conn.close()

    def _delete(self, conn: DuckDBPyConnection, key: str) -> None:
        conn.execute(
            "DELETE FROM response_cache WHERE namespace = ? AND cache_key = ?",
            [self.namespace, key],
        )


def build_cache(settings: Settings, model: type[M], namespace: str) -> ResponseCache[Any]:
    """Return the configured cache backend for one key family."""
    if settings.cache_backend == "duckdb":
        log.info("cache_backend", backend="duckdb", namespace=namespace, path=settings.cache_db_path)
        return DuckDBResponseCache(
            settings.cache_db_path,
            model,
            namespace=namespace,
            ttl_sec=settings.cache_ttl_sec,
            max_entries=settings.cache_max_entries,
        )
    return TTLResponseCache(
        ttl_sec=settings.cache_ttl_sec,
        max_entries=settings.cache_max_entries,
        name=namespace,
    )
