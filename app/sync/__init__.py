"""
Sales Data Sync Module

Loads sales datasets from the remote API into the cache and keeps them fresh.
"""

from .working_set import WorkingSet, LoadProgress, summary_rep_names
from .dataset_cache import DatasetCache
from .bulk_loader import BulkLoader, LoadResult
from .freshness import (
    CacheStatus,
    FreshnessReport,
    build_cache_status,
    check_for_updates,
    read_cached_working_set,
)

__all__ = [
    "WorkingSet",
    "LoadProgress",
    "summary_rep_names",
    "DatasetCache",
    "BulkLoader",
    "LoadResult",
    "CacheStatus",
    "FreshnessReport",
    "build_cache_status",
    "check_for_updates",
    "read_cached_working_set",
]
