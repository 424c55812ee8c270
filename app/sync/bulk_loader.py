"""
Bulk Loader

Fetches a sales dataset from the remote API and commits it to the cache.

- estimate: one request
- order: offset/limit pages (9万+ rows), progress reported per page
- branch reference data fetched concurrently, best-effort
- per-rep detail fetch for backfilling summary rows

A failure at any page discards everything fetched so far; the caller's
previous WorkingSet is never touched.
"""

import asyncio
import inspect
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, List, Optional, Union

from pydantic import ValidationError

from app.config import settings
from app.models.enums import DataMode
from app.models.schemas import ReferenceData, TransactionRecord, parse_records
from app.services.cache_store import utc_now
from app.services.sales_api_client import (
    SalesApiClient,
    SalesApiError,
    SalesApiLogicalError,
    get_sales_api_client,
)
from app.sync.dataset_cache import DatasetCache
from app.sync.working_set import LoadProgress, WorkingSet

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[LoadProgress], Union[None, Awaitable[None]]]

LOAD_ERROR_MESSAGE = "データ取得に失敗しました"
DETAIL_ERROR_MESSAGE = "詳細データの取得に失敗しました"


@dataclass
class LoadResult:
    """Outcome of a completed bulk load"""
    working_set: WorkingSet
    progress: List[LoadProgress] = field(default_factory=list)
    reference_loaded: bool = False

    @property
    def cache_persisted(self) -> bool:
        return self.working_set.cache_persisted

    @property
    def record_count(self) -> int:
        return len(self.working_set)


def _total_count(value: Any) -> int:
    try:
        return int(value or 0)
    except (ValueError, TypeError):
        return 0


class BulkLoader:
    """Loads datasets and backfills summary rows"""

    def __init__(
        self,
        cache: DatasetCache,
        client: Optional[SalesApiClient] = None,
        chunk_size: Optional[int] = None
    ):
        self.cache = cache
        self.client = client or get_sales_api_client()
        self.chunk_size = chunk_size or settings.order_chunk_size

    async def _notify(self, callback: Optional[ProgressCallback], progress: LoadProgress) -> None:
        if callback is None:
            return
        result = callback(progress)
        if inspect.isawaitable(result):
            await result

    async def _fetch_reference(self) -> Optional[ReferenceData]:
        """Phones / branch order. Failure never blocks the primary load."""
        try:
            data = await self.client.fetch_data("getCustomerPhones")
        except SalesApiError as e:
            logger.warning(f"[Loader] Reference data unavailable: {e}")
            return None

        if not isinstance(data, dict):
            return None
        try:
            return ReferenceData.model_validate(data)
        except ValidationError as e:
            logger.warning(f"[Loader] Reference data malformed: {e}")
            return None

    async def _fetch_single(
        self,
        progress_events: List[LoadProgress],
        on_progress: Optional[ProgressCallback]
    ) -> List[TransactionRecord]:
        data = await self.client.fetch_data(
            "getSalesAnalysisData",
            default_error=LOAD_ERROR_MESSAGE
        )
        records = parse_records(data)

        progress = LoadProgress(loaded=len(records), total=len(records))
        progress_events.append(progress)
        await self._notify(on_progress, progress)
        return records

    async def _fetch_chunked(
        self,
        progress_events: List[LoadProgress],
        on_progress: Optional[ProgressCallback]
    ) -> List[TransactionRecord]:
        rows: List[Any] = []
        offset = 0

        while True:
            envelope = await self.client.fetch(
                "getOrderAnalysisData",
                {"offset": offset, "limit": self.chunk_size}
            )
            if not envelope.get("success"):
                raise SalesApiLogicalError(envelope.get("error") or LOAD_ERROR_MESSAGE)

            chunk = envelope.get("data") or []
            rows.extend(chunk)
            total = _total_count(envelope.get("total"))

            progress = LoadProgress(loaded=len(rows), total=total)
            progress_events.append(progress)
            await self._notify(on_progress, progress)

            if len(chunk) < self.chunk_size:
                break
            if total > 0 and len(rows) >= total:
                break
            offset += self.chunk_size

        logger.info(f"[Loader] Fetched {len(rows)} order rows in {len(progress_events)} pages")
        return parse_records(rows)

    async def load_dataset(
        self,
        mode: DataMode,
        on_progress: Optional[ProgressCallback] = None,
        fallback_reference: Optional[ReferenceData] = None
    ) -> LoadResult:
        """
        Fetch the full dataset for `mode` and persist it with a fresh timestamp.

        Raises SalesApiError on transport or logical failure; nothing is
        committed in that case.
        """
        progress_events: List[LoadProgress] = []
        reference_task = asyncio.create_task(self._fetch_reference())

        try:
            if mode.is_chunked:
                records = await self._fetch_chunked(progress_events, on_progress)
            else:
                records = await self._fetch_single(progress_events, on_progress)
        except BaseException:
            reference_task.cancel()
            raise

        reference = await reference_task
        loaded_at = utc_now()

        persisted = await self.cache.save_dataset(mode, records, written_at=loaded_at)
        if reference is not None:
            await self.cache.save_reference(reference)

        working_set = WorkingSet(
            mode=mode,
            records=tuple(records),
            reference=reference or fallback_reference or ReferenceData(),
            loaded_at=loaded_at,
            source="remote",
            cache_persisted=persisted
        )

        logger.info(
            f"[Loader] Loaded {len(records)} {mode.value} rows "
            f"(cache={'ok' if persisted else 'failed'}, reference={'ok' if reference else 'skipped'})"
        )
        return LoadResult(
            working_set=working_set,
            progress=progress_events,
            reference_loaded=reference is not None
        )

    async def fetch_rep_details(self, rep_name: str) -> List[TransactionRecord]:
        """Detail rows standing in for `rep_name`'s summary rows"""
        data = await self.client.fetch_data(
            "getOrderDetailsByRep",
            {"repName": rep_name},
            default_error=DETAIL_ERROR_MESSAGE
        )
        details = parse_records(data)
        logger.info(f"[Loader] Fetched {len(details)} detail rows for {rep_name}")
        return details

    async def persist_backfill(self, working_set: WorkingSet) -> bool:
        """
        Rewrite the cached rows of a backfilled WorkingSet.

        The timestamp is left alone, and nothing is written when the cache
        already holds a newer load.
        """
        return await self.cache.save_backfill(
            working_set.mode,
            working_set.records,
            working_set.loaded_at
        )
