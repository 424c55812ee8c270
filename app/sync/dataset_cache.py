"""
Dataset Cache

Logical key space for cached sales datasets:
- per-mode dataset key + companion write-timestamp key
- one key for branch reference data (phones / branch order)
"""

import asyncio
import logging
from datetime import datetime
from typing import List, Optional, Sequence, Tuple

from pydantic import ValidationError

from app.models.enums import DataMode
from app.models.schemas import ReferenceData, TransactionRecord, parse_records
from app.services.cache_store import CacheStore, parse_timestamp, utc_now

logger = logging.getLogger(__name__)

REFERENCE_CACHE_KEY = "customer_phones"


def dataset_key(mode: DataMode) -> str:
    return f"sales_analysis_data:{mode.value}"


def timestamp_key(mode: DataMode) -> str:
    return f"sales_analysis_cache_time:{mode.value}"


class DatasetCache:
    """Reads and writes datasets through a CacheStore; failures degrade to misses"""

    def __init__(self, store: CacheStore):
        self.store = store
        # Dataset and timestamp keys change together
        self._write_lock = asyncio.Lock()

    async def save_dataset(
        self,
        mode: DataMode,
        records: Sequence[TransactionRecord],
        written_at: Optional[datetime] = None
    ) -> bool:
        """Persist records then their timestamp. False if either write failed."""
        async with self._write_lock:
            saved = await self.store.set(dataset_key(mode), [r.to_wire() for r in records])
            if not saved:
                logger.warning(f"[Cache] Dataset for {mode.value} not persisted; running from memory")
                return False
            written_at = written_at or utc_now()
            return await self.store.set(timestamp_key(mode), written_at.isoformat())

    async def save_backfill(
        self,
        mode: DataMode,
        records: Sequence[TransactionRecord],
        loaded_at: Optional[datetime]
    ) -> bool:
        """
        Rewrite the data of the load stamped `loaded_at`, leaving its timestamp alone.

        Skipped (False) when the cache now holds a different load, so a
        backfill never overwrites newer rows.
        """
        async with self._write_lock:
            cached_at = parse_timestamp(await self.store.get(timestamp_key(mode)))
            if loaded_at is None or cached_at != loaded_at:
                logger.info(f"[Cache] {mode.value} cache replaced since this load; backfill kept in memory only")
                return False
            saved = await self.store.set(dataset_key(mode), [r.to_wire() for r in records])
            if not saved:
                logger.warning(f"[Cache] Backfill for {mode.value} not persisted; running from memory")
            return saved

    async def load_dataset(self, mode: DataMode) -> Optional[Tuple[List[TransactionRecord], datetime]]:
        """Cached (records, written_at), or None unless both entries exist"""
        rows = await self.store.get(dataset_key(mode))
        cached_at = parse_timestamp(await self.store.get(timestamp_key(mode)))
        if not rows or cached_at is None:
            return None
        return parse_records(rows), cached_at

    async def cached_at(self, mode: DataMode) -> Optional[datetime]:
        return parse_timestamp(await self.store.get(timestamp_key(mode)))

    async def invalidate(self, mode: DataMode) -> bool:
        data_deleted = await self.store.delete(dataset_key(mode))
        time_deleted = await self.store.delete(timestamp_key(mode))
        return data_deleted and time_deleted

    async def save_reference(self, reference: ReferenceData) -> bool:
        return await self.store.set(REFERENCE_CACHE_KEY, reference.to_wire())

    async def load_reference(self) -> Optional[ReferenceData]:
        raw = await self.store.get(REFERENCE_CACHE_KEY)
        if not isinstance(raw, dict):
            return None
        try:
            return ReferenceData.model_validate(raw)
        except ValidationError as e:
            logger.warning(f"[Cache] Cached reference data unreadable: {e}")
            return None
