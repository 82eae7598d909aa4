"""
services/trip_cache.py — Read-through cache of trip + member snapshots.

Every mutating request on a trip-scoped resource asks the access policy,
and the access policy needs the trip's owner and member list. This cache
keeps that lookup off the database.

Contract:
  get(trip_id)                 → TripSnapshot, or None on miss/expiry
  put(trip_id, snapshot, ttl)  → overwrite; ttl defaults to the configured TTL
  invalidate(trip_id)          → drop the entry

Staleness:
  Entries live for at most the TTL (300 s by default). The cache does not
  watch the database, so every writer that changes trip fields or the
  member set MUST call invalidate(); otherwise a new member stays invisible
  to access checks until the entry expires. trip_service and
  invitation_service do this after their flush, and the routes do it again
  after the commit, since a request that read the rows before the commit
  may have put the old snapshot back in between.

Storage:
  Backends store opaque strings. Snapshots are serialized to JSON with
  TripSnapshotSchema before they reach the backend, so a shared backend
  (e.g. Redis) can replace InMemoryCacheBackend without touching callers.
  Each key holds one atomically replaced value; last writer wins.

Layer rules:
  - No Flask imports. The app factory builds one TripSnapshotCache per app
    and routes pass it to services explicitly.
"""

from __future__ import annotations

import json
import logging
import threading
import time
from dataclasses import dataclass, field
from datetime import date
from typing import Callable, Protocol

from marshmallow import EXCLUDE, Schema, fields, post_load

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 300


# ── Snapshot value types ───────────────────────────────────────────────────

@dataclass(frozen=True)
class MemberSnapshot:
    id: int
    email: str
    name: str
    user_id: int | None = None


@dataclass(frozen=True)
class TripSnapshot:
    id: int
    owner_id: int
    start_date: date
    end_date: date
    members: tuple[MemberSnapshot, ...] = ()

    @classmethod
    def from_trip(cls, trip) -> "TripSnapshot":
        """Builds a snapshot from an ORM Trip with its members loaded."""
        return cls(
            id=trip.id,
            owner_id=trip.owner_id,
            start_date=trip.start_date,
            end_date=trip.end_date,
            members=tuple(
                MemberSnapshot(id=m.id, email=m.email, name=m.name, user_id=m.user_id)
                for m in trip.members
            ),
        )


# ── Wire format ────────────────────────────────────────────────────────────

class MemberSnapshotSchema(Schema):
    class Meta:
        unknown = EXCLUDE

    id = fields.Int(required=True)
    email = fields.Str(required=True)
    name = fields.Str(required=True)
    user_id = fields.Int(allow_none=True, load_default=None)

    @post_load
    def make_member(self, data: dict, **kwargs) -> MemberSnapshot:
        return MemberSnapshot(**data)


class TripSnapshotSchema(Schema):
    class Meta:
        unknown = EXCLUDE

    id = fields.Int(required=True)
    owner_id = fields.Int(required=True)
    start_date = fields.Date(required=True)
    end_date = fields.Date(required=True)
    members = fields.List(fields.Nested(MemberSnapshotSchema), load_default=list)

    @post_load
    def make_trip(self, data: dict, **kwargs) -> TripSnapshot:
        data["members"] = tuple(data.get("members") or ())
        return TripSnapshot(**data)


_snapshot_schema = TripSnapshotSchema()


def dump_snapshot(snapshot: TripSnapshot) -> str:
    return json.dumps(_snapshot_schema.dump(snapshot), separators=(",", ":"))


def load_snapshot(payload: str) -> TripSnapshot:
    return _snapshot_schema.load(json.loads(payload))


# ── Backends ───────────────────────────────────────────────────────────────

class CacheBackend(Protocol):
    def get(self, key: str) -> str | None: ...
    def set(self, key: str, value: str, ttl_seconds: int) -> None: ...
    def delete(self, key: str) -> None: ...


@dataclass
class _CacheEntry:
    value: str
    expires_at: float

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at


class InMemoryCacheBackend:
    """
    Process-local TTL store. Expired entries are dropped lazily on read.

    `clock` returns seconds as a float; tests inject a fake clock to step
    past the TTL without sleeping.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._entries: dict[str, _CacheEntry] = {}
        self._lock = threading.RLock()

    def get(self, key: str) -> str | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if entry.is_expired(self._clock()):
                del self._entries[key]
                return None
            return entry.value

    def set(self, key: str, value: str, ttl_seconds: int) -> None:
        with self._lock:
            self._entries[key] = _CacheEntry(
                value=value,
                expires_at=self._clock() + ttl_seconds,
            )

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


# ── Cache service ──────────────────────────────────────────────────────────

@dataclass
class CacheStats:
    """Counters shared by every request thread; updated only under the lock."""
    hits: int = 0
    misses: int = 0
    invalidations: int = 0
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def record_hit(self) -> None:
        with self._lock:
            self.hits += 1

    def record_miss(self) -> None:
        with self._lock:
            self.misses += 1

    def record_invalidation(self) -> None:
        with self._lock:
            self.invalidations += 1

    def hit_rate(self) -> float:
        with self._lock:
            total = self.hits + self.misses
            return self.hits / total if total > 0 else 0.0


@dataclass
class TripSnapshotCache:
    backend: CacheBackend = field(default_factory=InMemoryCacheBackend)
    ttl_seconds: int = DEFAULT_TTL_SECONDS
    stats: CacheStats = field(default_factory=CacheStats)

    @staticmethod
    def key_for(trip_id: int) -> str:
        return f"trip:{trip_id}"

    def get(self, trip_id: int) -> TripSnapshot | None:
        payload = self.backend.get(self.key_for(trip_id))
        if payload is None:
            self.stats.record_miss()
            logger.debug("Trip %s snapshot cache miss", trip_id)
            return None
        self.stats.record_hit()
        logger.debug("Trip %s snapshot served from cache", trip_id)
        return load_snapshot(payload)

    def put(self, trip_id: int, snapshot: TripSnapshot, ttl: int | None = None) -> None:
        self.backend.set(
            self.key_for(trip_id),
            dump_snapshot(snapshot),
            ttl if ttl is not None else self.ttl_seconds,
        )

    def invalidate(self, trip_id: int) -> None:
        self.backend.delete(self.key_for(trip_id))
        self.stats.record_invalidation()
        logger.debug("Trip %s snapshot invalidated", trip_id)
