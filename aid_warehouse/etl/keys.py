"""Surrogate key allocation shared by every dimension builder."""

import threading
from collections import defaultdict
from typing import Hashable, Iterable

NaturalKey = tuple[Hashable, ...]


class KeyResolver:
    """Maps each dimension's natural keys to integer surrogate keys.

    Keys are allocated per dimension, starting at 1 and increasing by one for
    every natural key not seen before. Mappings are never removed. All access
    for a dimension is serialized through that dimension's lock, so builders
    fed from different threads never allocate two keys for one natural key.
    """

    def __init__(self):
        self._keys: dict[str, dict[NaturalKey, int]] = defaultdict(dict)
        self._next: dict[str, int] = defaultdict(lambda: 1)
        self._seeded_max: dict[str, int] = {}
        self._locks: dict[str, threading.RLock] = {}
        self._locks_guard = threading.Lock()

    def lock(self, dimension: str) -> threading.RLock:
        with self._locks_guard:
            if dimension not in self._locks:
                self._locks[dimension] = threading.RLock()
            return self._locks[dimension]

    def resolve(self, dimension: str, natural_key: NaturalKey) -> int:
        with self.lock(dimension):
            keys = self._keys[dimension]
            key = keys.get(natural_key)
            if key is None:
                key = self._next[dimension]
                keys[natural_key] = key
                self._next[dimension] = key + 1
            return key

    def lookup(self, dimension: str, natural_key: NaturalKey) -> int | None:
        with self.lock(dimension):
            return self._keys[dimension].get(natural_key)

    def all_keys(self, dimension: str) -> list[tuple[NaturalKey, int]]:
        """Return (natural_key, surrogate_key) pairs ordered by surrogate key."""
        with self.lock(dimension):
            return sorted(self._keys[dimension].items(), key=lambda item: item[1])

    def seed(self, dimension: str, pairs: Iterable[tuple[NaturalKey, int]]) -> int:
        """Load a persisted mapping before a build pass.

        New keys continue after the highest seeded key. Seeding a natural key
        that is already mapped to a different key, or reusing a key for two
        natural keys, raises ValueError.

        Returns:
            Number of mappings loaded
        """
        loaded = 0
        with self.lock(dimension):
            keys = self._keys[dimension]
            used = {v: k for k, v in keys.items()}
            for natural_key, key in pairs:
                natural_key = tuple(natural_key)
                key = int(key)
                if key < 1:
                    raise ValueError(f"{dimension}: surrogate key must be >= 1, got {key}")
                existing = keys.get(natural_key)
                if existing is not None and existing != key:
                    raise ValueError(
                        f"{dimension}: {natural_key!r} already mapped to {existing}, not {key}"
                    )
                owner = used.get(key)
                if owner is not None and owner != natural_key:
                    raise ValueError(
                        f"{dimension}: key {key} already assigned to {owner!r}"
                    )
                keys[natural_key] = key
                used[key] = natural_key
                loaded += 1
            if keys:
                highest = max(keys.values())
                self._next[dimension] = max(self._next[dimension], highest + 1)
                self._seeded_max[dimension] = max(self._seeded_max.get(dimension, 0), highest)
        return loaded

    def dimensions(self) -> list[str]:
        return sorted(self._keys)

    def snapshot(self) -> dict[str, list[tuple[NaturalKey, int]]]:
        return {dimension: self.all_keys(dimension) for dimension in self.dimensions()}

    def reorder_appended(self, dimension: str) -> dict[int, int]:
        """Renumber keys allocated after seeding in natural-key sort order.

        Seeded keys never move; appended keys take the values after the
        highest seeded key. Call once every record of the pass is committed.

        Returns:
            old key -> new key for every appended key that moved
        """
        with self.lock(dimension):
            floor = self._seeded_max.get(dimension, 0)
            keys = self._keys.get(dimension)
            if not keys:
                return {}
            appended = sorted(k for k, v in keys.items() if v > floor)
            remap = {}
            for offset, natural_key in enumerate(appended, start=1):
                new_key = floor + offset
                if keys[natural_key] != new_key:
                    remap[keys[natural_key]] = new_key
                keys[natural_key] = new_key
            self._next[dimension] = floor + len(appended) + 1
            return remap
