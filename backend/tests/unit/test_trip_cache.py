"""
Unit tests for services/trip_cache.py.

A fake clock drives the TTL so expiry is tested without sleeping.
"""

from __future__ import annotations

import threading
from datetime import date

import pytest

from backend.app.services.access_policy import Principal, evaluate_access
from backend.app.services.trip_cache import (
    InMemoryCacheBackend,
    MemberSnapshot,
    TripSnapshot,
    TripSnapshotCache,
    dump_snapshot,
    load_snapshot,
)


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def _snapshot(*emails: str) -> TripSnapshot:
    members = tuple(
        MemberSnapshot(id=index + 1, email=email, name=email.split("@")[0])
        for index, email in enumerate(emails)
    )
    return TripSnapshot(
        id=7,
        owner_id=1,
        start_date=date(2026, 5, 1),
        end_date=date(2026, 5, 4),
        members=members,
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cache(clock) -> TripSnapshotCache:
    return TripSnapshotCache(backend=InMemoryCacheBackend(clock=clock), ttl_seconds=300)


# ── Serialization ──────────────────────────────────────────────────────────

def test_snapshot_survives_json_round_trip():
    original = TripSnapshot(
        id=3,
        owner_id=9,
        start_date=date(2026, 1, 2),
        end_date=date(2026, 1, 5),
        members=(
            MemberSnapshot(id=1, email="a@example.com", name="A", user_id=9),
            MemberSnapshot(id=2, email="b@example.com", name="B"),
        ),
    )

    restored = load_snapshot(dump_snapshot(original))

    assert restored == original
    assert isinstance(restored.members, tuple)


# ── Backend ────────────────────────────────────────────────────────────────

def test_backend_expires_entries_after_ttl(clock):
    backend = InMemoryCacheBackend(clock=clock)
    backend.set("k", "v", ttl_seconds=10)

    clock.advance(9.9)
    assert backend.get("k") == "v"

    clock.advance(0.1)
    assert backend.get("k") is None
    assert len(backend) == 0


def test_backend_set_overwrites_and_resets_ttl(clock):
    backend = InMemoryCacheBackend(clock=clock)
    backend.set("k", "old", ttl_seconds=10)
    clock.advance(8)
    backend.set("k", "new", ttl_seconds=10)
    clock.advance(8)

    assert backend.get("k") == "new"


def test_backend_delete_missing_key_is_noop(clock):
    InMemoryCacheBackend(clock=clock).delete("never-set")


# ── TripSnapshotCache ──────────────────────────────────────────────────────

def test_key_format():
    assert TripSnapshotCache.key_for(42) == "trip:42"


def test_miss_then_hit_updates_stats(cache):
    assert cache.get(7) is None

    cache.put(7, _snapshot("a@example.com"))
    assert cache.get(7) == _snapshot("a@example.com")

    assert cache.stats.misses == 1
    assert cache.stats.hits == 1
    assert cache.stats.hit_rate() == 0.5


def test_entry_expires_after_configured_ttl(cache, clock):
    cache.put(7, _snapshot("a@example.com"))

    clock.advance(299)
    assert cache.get(7) is not None

    clock.advance(1)
    assert cache.get(7) is None


def test_put_accepts_explicit_ttl(cache, clock):
    cache.put(7, _snapshot("a@example.com"), ttl=5)
    clock.advance(5)
    assert cache.get(7) is None


def test_invalidate_drops_entry(cache):
    cache.put(7, _snapshot("a@example.com"))
    cache.invalidate(7)

    assert cache.get(7) is None
    assert cache.stats.invalidations == 1


def test_stats_counters_are_exact_under_concurrent_access(cache):
    cache.put(7, _snapshot("alice@example.com"))
    rounds = 2000

    def reader():
        for _ in range(rounds):
            cache.get(7)
            cache.get(8)

    def invalidator():
        for _ in range(rounds):
            cache.stats.record_invalidation()

    workers = [threading.Thread(target=reader) for _ in range(4)]
    workers += [threading.Thread(target=invalidator) for _ in range(2)]
    for worker in workers:
        worker.start()
    for worker in workers:
        worker.join()

    assert cache.stats.hits == 4 * rounds
    assert cache.stats.misses == 4 * rounds
    assert cache.stats.invalidations == 2 * rounds
    assert cache.stats.hit_rate() == 0.5


def test_stale_snapshot_denies_new_member_until_invalidated(cache):
    """
    A member added after the snapshot was cached is invisible to access
    checks until the entry is invalidated.
    """
    newcomer = Principal(user_id=5, email="new@example.com")
    cache.put(7, _snapshot("a@example.com"))

    # Membership changed in the database, invalidation skipped.
    stale = cache.get(7)
    assert evaluate_access(newcomer, stale).can_access is False

    cache.invalidate(7)
    assert cache.get(7) is None  # the caller now reloads from the database

    cache.put(7, _snapshot("a@example.com", "new@example.com"))
    assert evaluate_access(newcomer, cache.get(7)).can_access is True


def test_stale_snapshot_corrects_itself_after_ttl(cache, clock):
    newcomer = Principal(user_id=5, email="new@example.com")
    cache.put(7, _snapshot("a@example.com"))
    assert evaluate_access(newcomer, cache.get(7)).can_access is False

    clock.advance(300)
    assert cache.get(7) is None
