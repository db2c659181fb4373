"""
Process-local TTL cache shared by the embedding, search and query caches.

Entries expire logically when `now - created_at > ttl` and are removed either
at the next lookup or by `sweep()`. The clock is injectable so tests can move
time forward deterministically. Every method is synchronous, so a lookup or
update never interleaves with another coroutine on the event loop.
"""

from dataclasses import dataclass
from typing import Callable, Generic, Iterator, TypeVar

from regsearch.exceptions import CacheError
from regsearch.utils import now_ms

V = TypeVar("V")


@dataclass
class CacheEntry(Generic[V]):
    key: str
    value: V
    created_at: float
    ttl_ms: float

    def is_expired(self, now: float) -> bool:
        return now - self.created_at > self.ttl_ms


class TTLCache(Generic[V]):
    """Dictionary-backed cache with per-entry TTL."""

    def __init__(self, name: str, ttl_ms: float, clock: Callable[[], float] = now_ms):
        """
        Args:
            name: Name used in stats and log lines
            ttl_ms: Default time-to-live in milliseconds
            clock: Returns the current time in milliseconds
        """
        self.name = name
        self.ttl_ms = ttl_ms
        self.clock = clock
        self._entries: dict[str, CacheEntry[V]] = {}

    # -------------------------------------------------------------- #
    # Lookup
    # -------------------------------------------------------------- #

    def get(self, key: str) -> V | None:
        """
        Return the cached value, or None on miss.

        Expired and malformed entries are evicted and reported as a miss.
        """
        entry = self._entries.get(key)
        if entry is None:
            return None

        try:
            self._validate(key, entry)
        except CacheError:
            self._entries.pop(key, None)
            return None

        if entry.is_expired(self.clock()):
            self._entries.pop(key, None)
            return None

        return entry.value

    def set(self, key: str, value: V, ttl_ms: float | None = None) -> None:
        """Store a value; an existing entry for the key is replaced."""
        self._entries[key] = CacheEntry(
            key=key,
            value=value,
            created_at=self.clock(),
            ttl_ms=self.ttl_ms if ttl_ms is None else ttl_ms,
        )

    def delete(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    # -------------------------------------------------------------- #
    # Maintenance
    # -------------------------------------------------------------- #

    def purge_containing(self, fragment: str) -> int:
        """
        Remove every entry whose key contains `fragment` (case-insensitive).

        Returns:
            Number of entries removed
        """
        needle = fragment.lower()
        doomed = [key for key in self._entries if needle in key.lower()]
        for key in doomed:
            del self._entries[key]
        return len(doomed)

    def sweep(self) -> int:
        """
        Remove all expired entries.

        Returns:
            Number of entries removed
        """
        now = self.clock()
        doomed = [key for key, entry in self._entries.items() if entry.is_expired(now)]
        for key in doomed:
            del self._entries[key]
        return len(doomed)

    def clear(self) -> None:
        self._entries.clear()

    def keys(self) -> Iterator[str]:
        return iter(list(self._entries))

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None

    # -------------------------------------------------------------- #
    # Utils
    # -------------------------------------------------------------- #

    def _validate(self, key: str, entry: object) -> None:
        if not isinstance(entry, CacheEntry) or entry.key != key or entry.value is None:
            raise CacheError(f"Malformed entry in cache '{self.name}'", {"key": key})
