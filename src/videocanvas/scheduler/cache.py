"""
Download Cache
==============

Least-recently-used cache of downloaded media bodies, shared by the
download tasks of one VideoPreprocessor.

Bounded two ways:
    - max_entries: number of cached URLs
    - max_bytes: total size of cached bodies

Bodies larger than max_bytes are never cached.
"""

import logging
from collections import OrderedDict
from typing import Optional


logger = logging.getLogger(__name__)


class DownloadCache:
    """
    URL -> body LRU cache.

    Example:
        cache = DownloadCache(max_entries=32, max_bytes=256 * 1024 * 1024)
        cache.put(url, body)
        body = cache.get(url)
    """

    def __init__(self, max_entries: int = 32, max_bytes: int = 512 * 1024 * 1024) -> None:
        """
        Initialize cache.

        Args:
            max_entries: Maximum number of cached bodies (>= 1)
            max_bytes: Maximum total size of cached bodies (>= 1)
        """
        if max_entries < 1 or max_bytes < 1:
            raise ValueError("max_entries and max_bytes must be >= 1")

        self.max_entries = max_entries
        self.max_bytes = max_bytes
        self._entries: "OrderedDict[str, bytes]" = OrderedDict()
        self._total_bytes: int = 0

        self._hits: int = 0
        self._misses: int = 0
        self._evictions: int = 0

    @property
    def total_bytes(self) -> int:
        return self._total_bytes

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, url: str) -> bool:
        return url in self._entries

    def get(self, url: str) -> Optional[bytes]:
        """Return the cached body for `url` and mark it most recently used."""
        body = self._entries.get(url)
        if body is None:
            self._misses += 1
            return None
        self._entries.move_to_end(url)
        self._hits += 1
        return body

    def put(self, url: str, body: bytes) -> None:
        """Cache `body`, evicting least recently used entries to fit."""
        if len(body) > self.max_bytes:
            logger.debug(f"Not caching {url}: {len(body)} bytes exceeds cache size")
            return

        previous = self._entries.pop(url, None)
        if previous is not None:
            self._total_bytes -= len(previous)

        self._entries[url] = body
        self._total_bytes += len(body)

        while len(self._entries) > self.max_entries or self._total_bytes > self.max_bytes:
            evicted_url, evicted = self._entries.popitem(last=False)
            self._total_bytes -= len(evicted)
            self._evictions += 1
            logger.debug(f"Evicted {evicted_url} ({len(evicted)} bytes) from download cache")

    def clear(self) -> None:
        self._entries.clear()
        self._total_bytes = 0

    def metrics(self) -> dict:
        """
        Get cache metrics for observability.

        Returns:
            Dict with size, limits and lifetime counters
        """
        return {
            "entries": len(self._entries),
            "bytes": self._total_bytes,
            "max_entries": self.max_entries,
            "max_bytes": self.max_bytes,
            "hits": self._hits,
            "misses": self._misses,
            "evictions": self._evictions,
        }
