# Overview: In-process memo of resolved access sets with TTL and cascading invalidation.

"""
Access Cache

WHY: Resolving Product access for a brand manager means resolving Brand
access first, then scanning products; list endpoints do this on every
request. Results are memoized per (user_id, entity kind).

INVALIDATION:
- invalidate(user_id, kind) drops the entry AND every kind that inherits
  from it (brand -> product -> product_item -> order_item, ...). TTL
  expiry alone would leave a stale window after every grant change.
- invalidate(user_id) drops every kind for the user.
- invalidate() / invalidate_all() flushes everything.

CONCURRENCY:
- All reads and writes of the entry map happen under one RLock, so a
  reader never sees a half-applied invalidation.
- Each user has a generation counter bumped by invalidation. A result is
  only stored if the generation did not change while it was computed, so a
  slow computation that started before a grant change cannot repopulate the
  cache with pre-change data.
"""

from __future__ import annotations

import threading
import time
from typing import Callable, Iterable, Optional

from ..entities import EntityKind
from .access_registry import PARENT_RELATIONS, RelationTable, descendants_of, validate_relations


DEFAULT_TTL_SECONDS = 600


class AccessCache:
    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        disabled_kinds: Iterable[EntityKind | str] = (),
        relations: RelationTable = PARENT_RELATIONS,
        clock: Callable[[], float] = time.monotonic,
    ):
        validate_relations(relations)
        self._lock = threading.RLock()
        self._entries: dict[tuple[int, EntityKind], tuple[float, frozenset[int]]] = {}
        self._user_generations: dict[int, int] = {}
        self._global_generation = 0
        self._clock = clock
        self.ttl_seconds = ttl_seconds
        self.disabled_kinds = {EntityKind.parse(k) for k in disabled_kinds}
        self._cascade = {kind: {kind} | descendants_of(kind, relations) for kind in relations}

    def init_app(self, app) -> None:
        self.configure(
            ttl_seconds=app.config.get("ACCESS_CACHE_TTL_SECONDS", DEFAULT_TTL_SECONDS),
            disabled_kinds=app.config.get("ACCESS_CACHE_DISABLED_KINDS", ()),
        )
        app.extensions["access_cache"] = self

    def configure(self, *, ttl_seconds: float, disabled_kinds: Iterable[EntityKind | str] = ()) -> None:
        with self._lock:
            self.ttl_seconds = ttl_seconds
            self.disabled_kinds = {EntityKind.parse(k) for k in disabled_kinds}
            self._entries.clear()
            self._global_generation += 1

    def is_enabled_for(self, kind: EntityKind) -> bool:
        return self.ttl_seconds > 0 and kind not in self.disabled_kinds

    def _token(self, user_id: int) -> tuple[int, int]:
        return (self._global_generation, self._user_generations.get(user_id, 0))

    def get(self, user_id: int, kind: EntityKind) -> Optional[frozenset[int]]:
        """Cached set, or None when absent, expired, or caching is off for kind."""
        if not self.is_enabled_for(kind):
            return None
        key = (user_id, kind)
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            expires_at, ids = entry
            if expires_at <= self._clock():
                del self._entries[key]
                return None
            return ids

    def get_or_compute(self, user_id: int, kind: EntityKind, compute: Callable[[], Iterable[int]]) -> frozenset[int]:
        cached = self.get(user_id, kind)
        if cached is not None:
            return cached

        with self._lock:
            token = self._token(user_id)

        ids = frozenset(compute())

        if self.is_enabled_for(kind):
            with self._lock:
                if self._token(user_id) == token:
                    self._entries[(user_id, kind)] = (self._clock() + self.ttl_seconds, ids)
        return ids

    def invalidate(self, user_id: Optional[int] = None, kind: Optional[EntityKind | str] = None) -> None:
        if user_id is None and kind is None:
            self.invalidate_all()
            return

        kinds = None
        if kind is not None:
            kinds = self._cascade[EntityKind.parse(kind)]

        with self._lock:
            if user_id is None:
                self._global_generation += 1
                for key in [k for k in self._entries if k[1] in kinds]:
                    del self._entries[key]
                return

            self._user_generations[user_id] = self._user_generations.get(user_id, 0) + 1
            for key in list(self._entries):
                if key[0] == user_id and (kinds is None or key[1] in kinds):
                    del self._entries[key]

    def invalidate_all(self) -> None:
        with self._lock:
            self._entries.clear()
            self._global_generation += 1

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
