"""
Cache Freshness

Startup path (serve the cached dataset immediately) and the advisory
staleness check against the sheet's last-modified time. Staleness is only
reported; data already in use is never touched.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from app.models.enums import DataMode
from app.models.schemas import ReferenceData
from app.services.cache_store import parse_timestamp
from app.services.sales_api_client import SalesApiClient, SalesApiError
from app.sync.dataset_cache import DatasetCache
from app.sync.working_set import WorkingSet

logger = logging.getLogger(__name__)

NO_CACHE_MESSAGE = "キャッシュなし - 「一括読み込み」を実行してください"
STALE_MESSAGE = "新しいデータがあります - 「一括読み込み」を実行してください"


@dataclass
class FreshnessReport:
    """Cached write time vs. the server's last-modified marker"""
    mode: DataMode
    cached_at: Optional[datetime]
    server_modified: Optional[datetime]
    checked: bool = True

    @property
    def is_stale(self) -> bool:
        if not self.checked or self.server_modified is None:
            return False
        if self.cached_at is None:
            return True
        return self.server_modified > self.cached_at

    @property
    def notice(self) -> Optional[str]:
        return STALE_MESSAGE if self.is_stale else None


@dataclass
class CacheStatus:
    mode: DataMode
    has_cache: bool
    cached_at: Optional[datetime]
    record_count: int
    in_memory_only: bool = False
    is_stale: bool = False

    @property
    def message(self) -> str:
        if self.is_stale:
            return STALE_MESSAGE
        if self.in_memory_only:
            return f"メモリ上で動作中（{self.record_count}件）- キャッシュ保存に失敗"
        if not self.has_cache or self.cached_at is None:
            return NO_CACHE_MESSAGE
        return f"キャッシュあり: {self.cached_at.strftime('%Y/%m/%d %H:%M:%S')} ({self.record_count}件)"

    def to_dict(self) -> dict:
        return {
            "mode": self.mode.value,
            "has_cache": self.has_cache,
            "cached_at": self.cached_at.isoformat() if self.cached_at else None,
            "record_count": self.record_count,
            "in_memory_only": self.in_memory_only,
            "is_stale": self.is_stale,
            "message": self.message,
        }


def build_cache_status(working_set: WorkingSet, report: Optional[FreshnessReport] = None) -> CacheStatus:
    has_cache = working_set.is_loaded and working_set.cache_persisted
    return CacheStatus(
        mode=working_set.mode,
        has_cache=has_cache,
        cached_at=working_set.loaded_at if has_cache else None,
        record_count=len(working_set),
        in_memory_only=working_set.is_loaded and not working_set.cache_persisted,
        is_stale=bool(report and report.is_stale),
    )


async def read_cached_working_set(
    cache: DatasetCache,
    mode: DataMode,
    reference: Optional[ReferenceData] = None
) -> Optional[WorkingSet]:
    """WorkingSet from cache, or None when the mode has never been cached"""
    cached_reference = await cache.load_reference()
    loaded = await cache.load_dataset(mode)
    if loaded is None:
        return None

    records, cached_at = loaded
    return WorkingSet(
        mode=mode,
        records=tuple(records),
        reference=cached_reference or reference or ReferenceData(),
        loaded_at=cached_at,
        source="cache",
        cache_persisted=True
    )


async def check_for_updates(
    client: SalesApiClient,
    cache: DatasetCache,
    mode: DataMode,
    working_set: Optional[WorkingSet] = None
) -> FreshnessReport:
    """
    Compare the data's load time with getSheetLastModified. Never raises.

    Data running from memory (its cache write failed) is compared by its own
    load time; the cache would still carry an older load's timestamp.
    """
    if working_set is not None and working_set.is_loaded and not working_set.cache_persisted:
        cached_at = working_set.loaded_at
    else:
        cached_at = await cache.cached_at(mode)

    try:
        data = await client.fetch_data("getSheetLastModified")
    except SalesApiError as e:
        logger.info(f"[Freshness] Update check failed: {e}")
        return FreshnessReport(mode=mode, cached_at=cached_at, server_modified=None, checked=False)

    server_modified = parse_timestamp(data.get("lastModified")) if isinstance(data, dict) else None
    report = FreshnessReport(
        mode=mode,
        cached_at=cached_at,
        server_modified=server_modified,
        checked=server_modified is not None
    )
    if report.is_stale:
        logger.info(f"[Freshness] {mode.value} cache is stale (server {server_modified}, cache {cached_at})")
    return report
