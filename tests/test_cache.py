"""Response cache: TTL expiry, bounded size, DuckDB backend."""

import duckdb

from polyterm.config import Settings
from polyterm.models import Market, MarketsPage
from polyterm.storage import cache as cache_module
from polyterm.storage.cache import DuckDBResponseCache, TTLResponseCache, build_cache


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


def test_hit_returns_stored_object():
    cache = TTLResponseCache()
    page = MarketsPage(total=0)
    cache.put("k", page)
    assert cache.get("k") is page
    assert cache.get("missing") is None


def test_entry_readable_until_ttl_passes():
    clock = FakeClock(1000.0)
    cache = TTLResponseCache(ttl_sec=300, clock=clock)
    cache.put("k", "v")
    clock.now = 1300.0
    assert cache.get("k") == "v"
    clock.now = 1300.5
    assert cache.get("k") is None
    assert "k" not in cache


def test_fifty_first_key_evicts_oldest_write():
    clock = FakeClock()
    cache = TTLResponseCache(max_entries=50, clock=clock)
    for i in range(51):
        clock.now += 1
        cache.put(f"k{i}", i)
    assert len(cache) == 50
    assert cache.get("k0") is None
    assert cache.get("k1") == 1
    assert cache.get("k50") == 50


def test_rewrite_refreshes_write_time():
    clock = FakeClock()
    cache = TTLResponseCache(max_entries=2, clock=clock)
    cache.put("a", 1)
    clock.now += 1
    cache.put("b", 2)
    clock.now += 1
    cache.put("a", 3)
    clock.now += 1
    cache.put("c", 4)
    assert cache.get("b") is None
    assert cache.get("a") == 3


def test_evict():
    cache = TTLResponseCache()
    cache.put("k", 1)
    cache.evict("k")
    cache.evict("never-written")
    assert cache.get("k") is None


def test_duckdb_cache_roundtrip_and_expiry():
    clock = FakeClock()
    cache = DuckDBResponseCache(":memory:", MarketsPage, namespace="markets", ttl_sec=300, clock=clock)
    page = MarketsPage(markets=[Market(id="1", title="Q", yes_price=0.7, no_price=0.3)], total=1)
    cache.put("markets:200:all::all:all:0", page)
    hit = cache.get("markets:200:all::all:all:0")
    assert hit == page
    assert hit.model_dump_json(by_alias=True) == page.model_dump_json(by_alias=True)
    clock.now += 300
    assert cache.get("markets:200:all::all:all:0") == page
    clock.now += 1
    assert cache.get("markets:200:all::all:all:0") is None
    cache.close()


def test_duckdb_cache_bounded_per_namespace():
    clock = FakeClock()
    cache = DuckDBResponseCache(":memory:", MarketsPage, namespace="subgraph", max_entries=3, clock=clock)
    for i in range(4):
        clock.now += 1
        cache.put(f"k{i}", MarketsPage(total=i))
    assert cache.get("k0") is None
    assert cache.get("k3").total == 3
    cache.close()


def test_build_cache_picks_backend():
    memory = build_cache(Settings.from_dict({}), MarketsPage, "markets")
    assert isinstance(memory, TTLResponseCache)
    assert memory.ttl_sec == 300 and memory.max_entries == 50

    duck = build_cache(
        Settings.from_dict({"cache": {"backend": "duckdb", "db_path": ":memory:", "ttl_sec": 60}}),
        MarketsPage,
        "markets",
    )
    assert isinstance(duck, DuckDBResponseCache)
    assert duck.ttl_sec == 60
    duck.close()


def test_duckdb_file_shared_between_instances(tmp_path):
    path = str(tmp_path / "cache.duckdb")
    writer = DuckDBResponseCache(path, MarketsPage, namespace="markets")
    reader = DuckDBResponseCache(path, MarketsPage, namespace="markets")
    writer.put("k", MarketsPage(total=7))
    assert reader.get("k").total == 7
    reader.evict("k")
    assert writer.get("k") is None


def test_duckdb_lock_conflict_is_a_miss(tmp_path, monkeypatch):
    cache = DuckDBResponseCache(str(tmp_path / "cache.duckdb"), MarketsPage)

    def locked(*args, **kwargs):
        raise duckdb.IOException('Could not set lock on file "cache.duckdb"')

    monkeypatch.setattr(cache_module, "get_connection", locked)
    cache.put("k", MarketsPage(total=1))
    assert cache.get("k") is None
    cache.evict("k")
