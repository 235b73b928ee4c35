import copy
import json
import threading
from collections import OrderedDict
from decimal import Decimal
from typing import Any, Dict, Hashable, Optional

from storefront.core.config import settings
from storefront.core.logging import get_logger

logger = get_logger(__name__)

# Partitions
LISTINGS = "listings"
LOOKUP = "lookup"
SEARCH = "search"
CATEGORIES = "categories"

PARTITIONS = (LISTINGS, LOOKUP, SEARCH, CATEGORIES)


class _Miss:
    def __repr__(self) -> str:
        return "MISS"


MISS = _Miss()


def _encode(value: Any) -> Any:
    if isinstance(value, Decimal):
        # normalize so 10, 10.0 and 10.00 share one entry
        return str(value.normalize())
    if hasattr(value, "model_dump"):
        return value.model_dump(mode="json")
    return str(value)


def make_key(*parts: Any) -> str:
    """Serialize a full argument tuple, None markers included."""
    return json.dumps(parts, default=_encode, sort_keys=True, separators=(",", ":"))


class _Partition:
    def __init__(self, max_entries: int):
        self.max_entries = max_entries
        self.entries: "OrderedDict[Hashable, Any]" = OrderedDict()
        self.generation = 0
        self.hits = 0
        self.misses = 0


class CatalogCache:
    """
    Process-wide cache for catalog reads.

    Entries live in named partitions, each a bounded LRU. There is no expiry:
    writers call invalidate() for every partition their change can affect.
    Values are deep-copied in and out so a cached snapshot is never shared.
    """

    def __init__(self, max_entries: Optional[int] = None, enabled: Optional[bool] = None):
        self.max_entries = max_entries or settings.CATALOG_CACHE_MAX_ENTRIES
        self.enabled = settings.CATALOG_CACHE_ENABLED if enabled is None else enabled
        self._lock = threading.RLock()
        self._partitions: Dict[str, _Partition] = {
            name: _Partition(self.max_entries) for name in PARTITIONS
        }

    def _partition(self, name: str) -> _Partition:
        try:
            return self._partitions[name]
        except KeyError:
            raise KeyError(f"Unknown cache partition: {name}") from None

    def get(self, partition: str, key: Hashable) -> Any:
        if not self.enabled:
            return MISS
        with self._lock:
            part = self._partition(partition)
            if key not in part.entries:
                part.misses += 1
                return MISS
            part.entries.move_to_end(key)
            part.hits += 1
            return copy.deepcopy(part.entries[key])

    def generation(self, partition: str) -> int:
        """Current invalidation count of a partition; pass it back to put()."""
        with self._lock:
            return self._partition(partition).generation

    def put(self, partition: str, key: Hashable, value: Any, generation: Optional[int] = None) -> None:
        """
        Store a value. When `generation` is given and the partition has been
        invalidated since it was read, the value may predate the write that
        caused the invalidation and is dropped.
        """
        if not self.enabled:
            return
        snapshot = copy.deepcopy(value)
        with self._lock:
            part = self._partition(partition)
            if generation is not None and generation != part.generation:
                return
            part.entries[key] = snapshot
            part.entries.move_to_end(key)
            while len(part.entries) > part.max_entries:
                part.entries.popitem(last=False)

    def invalidate(self, *partitions: str) -> None:
        with self._lock:
            for name in partitions:
                part = self._partition(name)
                part.entries.clear()
                part.generation += 1
        logger.debug(f"Invalidated cache partitions {partitions}")

    def clear(self) -> None:
        self.invalidate(*PARTITIONS)

    def stats(self) -> Dict[str, Dict[str, int]]:
        with self._lock:
            return {
                name: {"size": len(p.entries), "hits": p.hits, "misses": p.misses}
                for name, p in self._partitions.items()
            }


catalog_cache = CatalogCache()
