"""缓存模块"""

from ..utils.versions import sort_versions_desc
from .store import CacheEntry, CacheStore

__all__ = ["CacheEntry", "CacheStore", "sort_versions_desc"]
