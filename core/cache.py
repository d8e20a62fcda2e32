import time
from typing import Any, Callable, Dict, Hashable, Optional, Tuple
from colored_logger import get_colored_logger

logger = get_colored_logger(__name__)

ObjectKey = Tuple[str, str]


class Cache:
    """
    TTL cache for loaded repository objects and profiles.

    Entries are keyed by (identity, object_id) so that what one identity was
    allowed to read is never served to another. The oldest entry is evicted
    when the cache is full.
    """

    def __init__(self, ttl_seconds: int = 300, max_entries: int = 1000):
        self.ttl_seconds = ttl_seconds if isinstance(ttl_seconds, int) else 300
        self.max_entries = max_entries if isinstance(max_entries, int) else 1000
        self._cache: Dict[Hashable, Any] = {}
        self._timestamps: Dict[Hashable, float] = {}

    def get(self, key: Hashable) -> Optional[Any]:
        if key not in self._cache:
            return None

        if time.time() - self._timestamps[key] > self.ttl_seconds:
            del self._cache[key]
            del self._timestamps[key]
            return None

        return self._cache[key]

    def set(self, key: Hashable, value: Any) -> None:
        if key not in self._cache and len(self._cache) >= self.max_entries:
            oldest_key = min(self._timestamps, key=self._timestamps.get)
            logger.trace("Cache full, evicting %s", oldest_key)
            del self._cache[oldest_key]
            del self._timestamps[oldest_key]

        self._cache[key] = value
        self._timestamps[key] = time.time()

    def get_or_load(
        self, identity: str, object_id: str, loader: Callable[[], Any]
    ) -> Any:
        """
        Return the cached value for (identity, object_id), calling `loader`
        on a miss. Exceptions from `loader` propagate and nothing is cached.
        """
        key: ObjectKey = (identity, object_id)
        value = self.get(key)
        if value is None:
            value = loader()
            self.set(key, value)
        else:
            logger.trace("Cache hit for %s as %s", object_id, identity)
        return value

    def clear(self) -> None:
        self._cache.clear()
        self._timestamps.clear()

    def size(self) -> int:
        return len(self._cache)
