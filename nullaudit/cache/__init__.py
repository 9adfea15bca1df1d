"""Result caching for audit requests."""

from nullaudit.cache.result_cache import CacheEntry, ResultCache, generate_cache_key

__all__ = ["CacheEntry", "ResultCache", "generate_cache_key"]
