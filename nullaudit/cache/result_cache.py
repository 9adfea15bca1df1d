"""TTL result cache with tag and pattern invalidation."""

import hashlib
import json
import logging
import re
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Generic, Iterable, List, Optional, Pattern, TypeVar, Union

from nullaudit.schema import AuditRequest

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class CacheEntry(Generic[T]):
    data: T
    timestamp: float  # ms
    ttl: float  # ms
    access_count: int = 0
    last_accessed: float = 0.0
    tags: List[str] = field(default_factory=list)

    def is_expired(self, now: float) -> bool:
        return now - self.timestamp > self.ttl


def generate_cache_key(request: AuditRequest, code_chars: int = 1000) -> str:
    """
    Derive a deterministic key from a normalized projection of the request.

    Only project id, the first ``code_chars`` characters of the codebase,
    language, depth and the sorted target list take part.
    """
    projection = {
        "project_id": request.project_id,
        "code": request.codebase[:code_chars],
        "language": request.language,
        "depth": request.options.depth,
        "targets": sorted(request.targets),
    }
    digest = hashlib.sha256(
        json.dumps(projection, sort_keys=True, separators=(",", ":")).encode("utf-8")
    ).hexdigest()
    return f"audit:{request.project_id}:{digest}"


class ResultCache(Generic[T]):
    """In-memory cache. Expiry is absolute from insertion; reads never extend it."""

    def __init__(self, default_ttl_ms: float = 3600000, clock: Callable[[], float] = time.time):
        self.default_ttl_ms = default_ttl_ms
        self._clock = clock
        self._entries: Dict[str, CacheEntry[T]] = {}
        self.lock = threading.Lock()
        self.hits = 0
        self.misses = 0
        self.evictions = 0

    def _now_ms(self) -> float:
        return self._clock() * 1000.0

    def get(self, key: str) -> Optional[T]:
        with self.lock:
            entry = self._entries.get(key)
            if entry is None:
                self.misses += 1
                return None

            now = self._now_ms()
            if entry.is_expired(now):
                del self._entries[key]
                self.evictions += 1
                self.misses += 1
                logger.debug(f"Cache entry expired: {key}")
                return None

            entry.access_count += 1
            entry.last_accessed = now
            self.hits += 1
            return entry.data

    def peek(self, key: str) -> Optional[CacheEntry[T]]:
        """Entry with its bookkeeping, without touching counters."""
        with self.lock:
            return self._entries.get(key)

    def set(
        self,
        key: str,
        value: T,
        ttl: Optional[float] = None,
        tags: Optional[Iterable[str]] = None,
    ) -> None:
        now = self._now_ms()
        with self.lock:
            self._entries[key] = CacheEntry(
                data=value,
                timestamp=now,
                ttl=self.default_ttl_ms if ttl is None else ttl,
                last_accessed=now,
                tags=list(tags or []),
            )
        logger.debug(f"Cached {key} (tags={list(tags or [])})")

    def delete(self, key: str) -> bool:
        with self.lock:
            return self._entries.pop(key, None) is not None

    def invalidate_by_tags(self, tags: Iterable[str]) -> int:
        wanted = set(tags)
        with self.lock:
            keys = [k for k, e in self._entries.items() if wanted.intersection(e.tags)]
            for key in keys:
                del self._entries[key]
        if keys:
            logger.info(f"Invalidated {len(keys)} cache entries by tags {sorted(wanted)}")
        return len(keys)

    def invalidate_by_pattern(self, pattern: Union[str, Pattern[str]]) -> int:
        regex = re.compile(pattern) if isinstance(pattern, str) else pattern
        with self.lock:
            keys = [k for k in self._entries if regex.search(k)]
            for key in keys:
                del self._entries[key]
        if keys:
            logger.info(f"Invalidated {len(keys)} cache entries matching {regex.pattern!r}")
        return len(keys)

    def sweep(self) -> int:
        """Remove every logically expired entry."""
        now = self._now_ms()
        with self.lock:
            expired = [k for k, e in self._entries.items() if e.is_expired(now)]
            for key in expired:
                del self._entries[key]
            self.evictions += len(expired)
        if expired:
            logger.debug(f"Cache sweep evicted {len(expired)} entries")
        return len(expired)

    def clear(self) -> None:
        with self.lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def stats(self) -> Dict[str, Any]:
        with self.lock:
            total = self.hits + self.misses
            return {
                "size": len(self._entries),
                "hits": self.hits,
                "misses": self.misses,
                "evictions": self.evictions,
                "hit_rate": self.hits / total if total else 0.0,
            }
