"""
Append-only, process-wide caches with get-or-insert semantics.

Two caches back the library: compiled materializers keyed by
(shape type, column names, column types), and the text collation of each
target database. Both hold values that never change once computed, so
entries are never evicted, never replaced, and never expire.

Manifesto:
    - **Append-only:** The first published value for a key wins forever
    - **Race-tolerant:** Builders run outside the lock; concurrent duplicate
      builds are allowed and all but one result are discarded
    - **Never partial:** Readers only ever see fully-built values

Architecture:
    ::

        AppendOnlyCache
        ├── get(key)                 → value | None
        ├── get_or_add(key, factory) → published value
        ├── add(key, value)          → published value (first writer wins)
        ├── exists(key) / size()
        └── clear()                  (tests only)

Examples:
    >>> cache = AppendOnlyCache(name="collations")
    >>> cache.get_or_add(("db", 5432, "shop"), lambda key: "en_US.utf8")
    'en_US.utf8'
    >>> cache.add(("db", 5432, "shop"), "C")
    'en_US.utf8'

Guardrails:
    ❌ DON'T: Put values with unbounded key cardinality in here
    ✅ DO: Key by things that recur (shapes against a stable schema, databases)

    ❌ DON'T: Let factories mutate shared state
    ✅ DO: Keep factories side-effect-free; duplicates are thrown away

Tags:
    cache, get-or-add, thread-safe, append-only
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Hashable
from typing import Generic, TypeVar

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


class AppendOnlyCache(Generic[K, V]):
    """Thread-safe key -> value store where the first published value wins.

    Attributes:
        name: Label used in log events.
    """

    def __init__(self, *, name: str):
        self.name = name
        self._store: dict[K, V] = {}
        self._lock = threading.Lock()

    def get(self, key: K) -> V | None:
        """Retrieve a published value by key."""
        return self._store.get(key)

    def add(self, key: K, value: V) -> V:
        """Publish ``value`` unless another value won the race; return the winner."""
        with self._lock:
            return self._store.setdefault(key, value)

    def get_or_add(self, key: K, factory: Callable[[K], V]) -> V:
        """Return the value for ``key``, building it with ``factory`` on a miss.

        ``factory`` runs without the lock held, so two threads missing the
        same key may both build; only the first result is published.
        """
        value = self._store.get(key)
        if value is not None:
            return value
        return self.add(key, factory(key))

    def exists(self, key: K) -> bool:
        """Check if a value has been published for ``key``."""
        return key in self._store

    def clear(self) -> None:
        """Remove all entries. Only meant for test isolation."""
        with self._lock:
            self._store.clear()

    def size(self) -> int:
        """Return current number of published entries."""
        return len(self._store)


__all__ = ["AppendOnlyCache"]
