"""
Cache Store

Key/value persistence for loaded datasets and master data.

Backends:
- LocalCacheStore: JSON files on disk with a byte quota (small store)
- SupabaseCacheStore: Supabase table for large datasets
- MemoryCacheStore: process-local fallback

Every operation is async and never raises: failures are logged and read as
a cache miss (None) or a failed write (False). The cache is an optimization,
never the source of truth.

Supabase table (create in Supabase Dashboard):

CREATE TABLE sales_cache (
    key TEXT PRIMARY KEY,
    value JSONB NOT NULL,
    updated_at TIMESTAMP WITH TIME ZONE DEFAULT NOW()
);
"""

import hashlib
import json
import logging
import os
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Union

from supabase import create_client, Client

from app.config import settings

logger = logging.getLogger(__name__)


class CacheQuotaExceeded(Exception):
    """Write would push the store over its byte quota"""


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: Union[str, int, float, None]) -> Optional[datetime]:
    """Parse an ISO-8601 string or epoch milliseconds into an aware datetime."""
    if value is None or value == "":
        return None
    try:
        if isinstance(value, (int, float)):
            return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except (ValueError, TypeError, OverflowError, OSError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class CacheStore:
    """Never-raising wrapper around a backend's _get/_set/_delete hooks"""

    name = "cache"

    async def get(self, key: str) -> Optional[Any]:
        try:
            return await self._get(key)
        except Exception as e:
            logger.warning(f"[Cache:{self.name}] Read failed for {key}: {e}")
            return None

    async def set(self, key: str, value: Any) -> bool:
        try:
            await self._set(key, value)
            return True
        except Exception as e:
            logger.warning(f"[Cache:{self.name}] Write failed for {key}: {e}")
            return False

    async def delete(self, key: str) -> bool:
        try:
            await self._delete(key)
            return True
        except Exception as e:
            logger.warning(f"[Cache:{self.name}] Delete failed for {key}: {e}")
            return False

    async def _get(self, key: str) -> Optional[Any]:
        raise NotImplementedError

    async def _set(self, key: str, value: Any) -> None:
        raise NotImplementedError

    async def _delete(self, key: str) -> None:
        raise NotImplementedError


class MemoryCacheStore(CacheStore):
    """Process-local store; values are JSON round-tripped like the persistent backends"""

    name = "memory"

    def __init__(self):
        self._data: Dict[str, str] = {}

    async def _get(self, key: str) -> Optional[Any]:
        raw = self._data.get(key)
        return json.loads(raw) if raw is not None else None

    async def _set(self, key: str, value: Any) -> None:
        self._data[key] = json.dumps(value, ensure_ascii=False)

    async def _delete(self, key: str) -> None:
        self._data.pop(key, None)


class LocalCacheStore(CacheStore):
    """One JSON file per key under `directory`, bounded by `quota_bytes` in total"""

    name = "local"

    def __init__(self, directory: Union[str, Path], quota_bytes: int):
        self.directory = Path(directory)
        self.quota_bytes = quota_bytes

    def _path(self, key: str) -> Path:
        digest = hashlib.sha1(key.encode("utf-8")).hexdigest()
        return self.directory / f"{digest}.json"

    def _used_bytes(self) -> int:
        if not self.directory.exists():
            return 0
        return sum(p.stat().st_size for p in self.directory.glob("*.json"))

    async def _get(self, key: str) -> Optional[Any]:
        path = self._path(key)
        if not path.exists():
            return None
        with path.open("r", encoding="utf-8") as f:
            entry = json.load(f)
        return entry.get("value")

    async def _set(self, key: str, value: Any) -> None:
        payload = json.dumps({"key": key, "value": value}, ensure_ascii=False).encode("utf-8")
        path = self._path(key)
        existing = path.stat().st_size if path.exists() else 0

        if self._used_bytes() - existing + len(payload) > self.quota_bytes:
            raise CacheQuotaExceeded(
                f"{len(payload)} bytes exceeds quota of {self.quota_bytes} bytes"
            )

        self.directory.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_suffix(".tmp")
        tmp_path.write_bytes(payload)
        os.replace(tmp_path, path)

    async def _delete(self, key: str) -> None:
        path = self._path(key)
        if path.exists():
            path.unlink()


class SupabaseCacheStore(CacheStore):
    """Large-dataset store backed by a Supabase table"""

    name = "supabase"

    def __init__(self, client: Optional[Client] = None, table_name: Optional[str] = None):
        if client is None:
            if not settings.supabase_url or not settings.supabase_key:
                raise ValueError("SUPABASE_URL and SUPABASE_SERVICE_KEY must be set")
            client = create_client(settings.supabase_url, settings.supabase_key)

        self.supabase: Client = client
        self.table_name = table_name or settings.supabase_cache_table

    async def _get(self, key: str) -> Optional[Any]:
        result = self.supabase.table(self.table_name) \
            .select("value") \
            .eq("key", key) \
            .limit(1) \
            .execute()

        if result.data and len(result.data) > 0:
            return result.data[0].get("value")
        return None

    async def _set(self, key: str, value: Any) -> None:
        self.supabase.table(self.table_name) \
            .upsert({
                "key": key,
                "value": value,
                "updated_at": utc_now().isoformat()
            }, on_conflict="key") \
            .execute()

    async def _delete(self, key: str) -> None:
        self.supabase.table(self.table_name) \
            .delete() \
            .eq("key", key) \
            .execute()


# ============== Expiring entries (master data) ==============

@dataclass
class CacheInfo:
    cached_at: datetime
    age_minutes: int

    @property
    def age_text(self) -> str:
        if self.age_minutes < 60:
            return f"{self.age_minutes}分前"
        return f"{self.age_minutes // 60}時間前"


class ExpiringCache:
    """
    Single key with a fixed time-to-live.

    Entries are stored as {data, timestamp}; reads past the TTL delete the
    entry and report a miss.
    """

    def __init__(
        self,
        store: CacheStore,
        key: str,
        ttl: timedelta,
        clock: Callable[[], datetime] = utc_now
    ):
        self.store = store
        self.key = key
        self.ttl = ttl
        self.clock = clock

    async def _entry(self) -> Optional[Dict[str, Any]]:
        entry = await self.store.get(self.key)
        if not isinstance(entry, dict) or "data" not in entry:
            return None
        return entry

    async def get(self) -> Optional[Any]:
        entry = await self._entry()
        if entry is None:
            return None

        cached_at = parse_timestamp(entry.get("timestamp"))
        if cached_at is None or self.clock() - cached_at > self.ttl:
            logger.info(f"[Cache] {self.key} expired")
            await self.clear()
            return None

        return entry["data"]

    async def set(self, data: Any) -> bool:
        return await self.store.set(self.key, {
            "data": data,
            "timestamp": self.clock().isoformat()
        })

    async def clear(self) -> bool:
        return await self.store.delete(self.key)

    async def info(self) -> Optional[CacheInfo]:
        entry = await self._entry()
        if entry is None:
            return None
        cached_at = parse_timestamp(entry.get("timestamp"))
        if cached_at is None:
            return None
        age = self.clock() - cached_at
        return CacheInfo(cached_at=cached_at, age_minutes=int(age.total_seconds() // 60))


# Singleton instances
_dataset_store: Optional[CacheStore] = None
_local_store: Optional[CacheStore] = None


def get_cache_store() -> CacheStore:
    """Large-dataset store: Supabase when configured, local files otherwise"""
    global _dataset_store
    if _dataset_store is None:
        if settings.supabase_url and settings.supabase_key:
            _dataset_store = SupabaseCacheStore()
        else:
            _dataset_store = LocalCacheStore(
                Path(settings.cache_dir) / "datasets",
                settings.dataset_cache_quota_bytes
            )
        logger.info(f"[Cache] Dataset store: {_dataset_store.name}")
    return _dataset_store


def get_local_store() -> CacheStore:
    """Quota-limited small store for master data"""
    global _local_store
    if _local_store is None:
        _local_store = LocalCacheStore(
            Path(settings.cache_dir) / "local",
            settings.local_cache_quota_bytes
        )
    return _local_store
