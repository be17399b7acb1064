"""Tests for the workspace-scoped TTL cache."""

import threading
import time

import pytest

from cpc.services.cache_service import CacheEntry, CacheService, TTLClass


class FakeClock:
    def __init__(self, now: float = 1_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def active():
    return {"name": "ubuntu"}


@pytest.fixture
def cache(tmp_path, clock, active) -> CacheService:
    return CacheService(
        tmp_path / "cache",
        context_provider=lambda: active["name"],
        short_ttl=30,
        long_ttl=300,
        ttl_overrides={"ssh_reachable_10.0.0.1": 5},
        clock=clock,
    )


def test_entry_is_fresh_until_ttl(cache, clock):
    cache.write("cluster_summary", {"a": 1}, TTLClass.SHORT)

    clock.advance(29.9)
    assert cache.read("cluster_summary", TTLClass.SHORT).payload == {"a": 1}

    clock.advance(0.1)
    assert cache.read("cluster_summary", TTLClass.SHORT) is None


def test_long_tier(cache, clock):
    cache.write("cluster_summary", [1, 2])

    clock.advance(299)
    assert cache.read("cluster_summary", TTLClass.LONG) is not None
    clock.advance(1)
    assert cache.read("cluster_summary", TTLClass.LONG) is None


def test_per_operation_override_wins(cache, clock):
    assert cache.ttl_for("ssh_reachable_10.0.0.1", TTLClass.SHORT) == 5
    assert cache.ttl_for("other", TTLClass.SHORT) == 30

    cache.write("ssh_reachable_10.0.0.1", True, TTLClass.SHORT)
    clock.advance(6)
    assert cache.read("ssh_reachable_10.0.0.1", TTLClass.SHORT) is None


def test_corrupt_entry_is_a_miss(cache):
    path = cache.path_for("ubuntu", "cluster_summary")
    path.parent.mkdir(parents=True)
    path.write_text('{"context": "ubuntu", "payl')

    assert cache.read("cluster_summary") is None
    assert cache.cached_call("cluster_summary", TTLClass.LONG, lambda: {"fresh": True}) == {"fresh": True}
    assert CacheEntry.from_json(path.read_text()).payload == {"fresh": True}


def test_entry_from_future_is_a_miss(cache, clock):
    cache.write("cluster_summary", 1)
    clock.advance(-60)
    assert cache.read("cluster_summary") is None


def test_cached_call_runs_producer_once_while_fresh(cache, clock):
    calls = []

    def producer():
        calls.append(1)
        return {"nodes": len(calls)}

    assert cache.cached_call("cluster_summary", TTLClass.LONG, producer) == {"nodes": 1}
    clock.advance(10)
    assert cache.cached_call("cluster_summary", TTLClass.LONG, producer) == {"nodes": 1}
    assert len(calls) == 1

    clock.advance(300)
    assert cache.cached_call("cluster_summary", TTLClass.LONG, producer) == {"nodes": 2}


def test_producer_error_caches_nothing(cache):
    def producer():
        raise RuntimeError("tofu exploded")

    with pytest.raises(RuntimeError):
        cache.cached_call("cluster_summary", TTLClass.LONG, producer)
    assert cache.entries() == []


def test_entries_are_scoped_to_context(cache, active):
    cache.write("cluster_summary", "ubuntu-data")
    active["name"] = "debian"

    assert cache.read("cluster_summary") is None
    assert cache.read("cluster_summary", context="ubuntu").payload == "ubuntu-data"


def test_invalidate_only_touches_its_context(cache):
    cache.write("cluster_summary", 1, context="ubuntu")
    cache.write("ssh_reachable_10.0.0.2", True, TTLClass.SHORT, context="ubuntu")
    cache.write("cluster_summary", 2, context="debian")

    assert cache.invalidate("ubuntu") == 2

    assert cache.read("cluster_summary", context="ubuntu") is None
    assert cache.read("cluster_summary", context="debian").payload == 2


def test_invalidate_spares_workspaces_sharing_the_prefix(cache):
    cache.write("cluster_summary", 1, context="a")
    cache.write("cluster_summary", 2, context="a__b")

    assert cache.invalidate("a") == 1

    assert cache.read("cluster_summary", context="a") is None
    assert cache.read("cluster_summary", context="a__b").payload == 2


def test_result_produced_across_invalidate_is_not_stored(cache):
    def producer():
        cache.invalidate("ubuntu")
        return {"stale": True}

    assert cache.cached_call("cluster_summary", TTLClass.LONG, producer) == {"stale": True}
    assert cache.read("cluster_summary") is None


def test_single_flight_under_concurrency(tmp_path):
    cache = CacheService(tmp_path / "cache", context_provider=lambda: "ubuntu")
    calls = []
    results = []

    def producer():
        calls.append(1)
        time.sleep(0.2)
        return {"value": 42}

    def worker():
        results.append(cache.cached_call("cluster_summary", TTLClass.LONG, producer))

    threads = [threading.Thread(target=worker) for _ in range(5)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(calls) == 1
    assert results == [{"value": 42}] * 5


def test_clear_all_removes_entries_and_locks(cache):
    cache.cached_call("cluster_summary", TTLClass.LONG, lambda: 1)
    cache.write("cluster_summary", 2, context="debian")

    assert cache.clear_all() == 2
    assert list(cache.cache_dir.iterdir()) == []


def test_unsafe_characters_in_keys_are_replaced(cache):
    path = cache.path_for("ubuntu", "ssh/../x y")
    assert path.parent == cache.cache_dir
    assert path.name == "ubuntu__ssh_.._x_y.json"


def test_entries_skips_corrupt_files(cache):
    cache.write("cluster_summary", 1)
    (cache.cache_dir / "ubuntu__broken.json").write_text("{")

    assert [entry.operation for entry in cache.entries()] == ["cluster_summary"]
