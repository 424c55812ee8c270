"""
Analysis Service

Owns the session state of the sales analysis page: the active data mode,
its WorkingSet, the drill-down session and the committed suggestion
filters. Bulk loads and backfills are serialized with asyncio locks.
"""

import asyncio
import logging
from dataclasses import replace
from typing import Any, Dict, List, Optional

from app.analysis.drilldown import BackfillRequired, DrillDownSession
from app.analysis.filter_engine import FilterCriteria, FilterOptions, build_filter_options, filter_records
from app.analysis.suggestions import SuggestionSelection, suggest_clients, suggest_reps
from app.models.enums import DataMode, SearchOutcome
from app.models.schemas import SearchRequest
from app.services.cache_store import get_cache_store
from app.services.sales_api_client import SalesApiClient, get_sales_api_client
from app.sync.bulk_loader import BulkLoader, LoadResult, ProgressCallback
from app.sync.dataset_cache import DatasetCache
from app.sync.freshness import (
    CacheStatus,
    FreshnessReport,
    build_cache_status,
    check_for_updates,
    read_cached_working_set,
)
from app.sync.working_set import WorkingSet, summary_rep_names

logger = logging.getLogger(__name__)


class NoDataLoadedError(Exception):
    """Nothing is loaded for the active mode yet"""


class LoadInProgressError(Exception):
    """A bulk load is already running"""


class DatasetReplacedError(Exception):
    """The WorkingSet was replaced while a backfill was in flight"""


class RepNotFoundError(Exception):
    """The drilled rep is gone once the backfilled rows are filtered again"""


class AnalysisService:
    """Session state for one analysis page"""

    def __init__(
        self,
        cache: Optional[DatasetCache] = None,
        client: Optional[SalesApiClient] = None,
        loader: Optional[BulkLoader] = None,
        mode: DataMode = DataMode.ESTIMATE
    ):
        self.client = client or get_sales_api_client()
        self.cache = cache or DatasetCache(get_cache_store())
        self.loader = loader or BulkLoader(self.cache, self.client)

        self.mode = mode
        self.working_set = WorkingSet.empty(mode)
        self.session = DrillDownSession()
        self.selection = SuggestionSelection()
        self.last_criteria: Optional[FilterCriteria] = None
        self.freshness: Optional[FreshnessReport] = None

        self._initialized = False
        # Bumped whenever the WorkingSet is replaced wholesale
        self._generation = 0
        self._load_lock = asyncio.Lock()
        self._backfill_lock = asyncio.Lock()

    # ============== Mode / loading ==============

    async def initialize(self) -> None:
        """Serve the cached dataset for the starting mode, once"""
        if not self._initialized:
            await self.switch_mode(self.mode)

    async def switch_mode(self, mode: DataMode) -> CacheStatus:
        """Swap in the cached dataset for `mode`; filters and views start over"""
        cached = await read_cached_working_set(self.cache, mode, self.working_set.reference)
        if cached is None:
            reference = await self.cache.load_reference() or self.working_set.reference
            cached = WorkingSet.empty(mode, reference)

        self.mode = mode
        self._commit(cached)

        logger.info(f"[Analysis] Mode {mode.value}: {len(cached)} rows from {cached.source}")
        return self.cache_status()

    def _commit(self, working_set: WorkingSet) -> None:
        self.working_set = working_set
        self._generation += 1
        self._initialized = True
        self.freshness = None
        self._reset_views()

    def _reset_views(self) -> None:
        self.session = DrillDownSession()
        self.selection.clear()
        self.last_criteria = None

    @property
    def is_loading(self) -> bool:
        return self._load_lock.locked()

    async def load(self, on_progress: Optional[ProgressCallback] = None) -> LoadResult:
        """
        Bulk-load the active mode.

        Raises LoadInProgressError when a load is already running, and
        SalesApiError on failure (the previous WorkingSet stays in place).
        """
        if self._load_lock.locked():
            raise LoadInProgressError("一括読み込み中です")

        async with self._load_lock:
            mode = self.mode
            result = await self.loader.load_dataset(
                mode,
                on_progress=on_progress,
                fallback_reference=self.working_set.reference
            )

            if self.mode is mode:
                self._commit(result.working_set)
            else:
                logger.info(f"[Analysis] Mode changed during load; {mode.value} kept in cache only")

        return result

    async def check_freshness(self) -> FreshnessReport:
        self.freshness = await check_for_updates(self.client, self.cache, self.mode, self.working_set)
        return self.freshness

    async def invalidate_cache(self) -> bool:
        """Drop the active mode's cache entries; the in-memory data stays usable"""
        deleted = await self.cache.invalidate(self.mode)
        if deleted:
            self.working_set = replace(self.working_set, cache_persisted=False)
        return deleted

    def cache_status(self) -> CacheStatus:
        return build_cache_status(self.working_set, self.freshness)

    def status(self) -> Dict[str, Any]:
        return {
            "mode": self.mode.value,
            "mode_label": DataMode.to_label(self.mode),
            "loaded": self.working_set.is_loaded,
            "loading": self.is_loading,
            "record_count": len(self.working_set),
            "source": self.working_set.source,
            "level": self.session.level.value,
            "cache": self.cache_status().to_dict(),
            "notice": self.freshness.notice if self.freshness else None,
            "selection": self.selection.to_dict(),
        }

    # ============== Filtering / drill-down ==============

    def _require_data(self) -> None:
        if not self.working_set.is_loaded:
            raise NoDataLoadedError("データが読み込まれていません")

    def filter_options(self, abbr: Optional[str] = None) -> FilterOptions:
        return build_filter_options(
            self.working_set.records,
            self.working_set.reference.branch_order,
            abbr=abbr
        )

    def _criteria(self, request: SearchRequest) -> FilterCriteria:
        return FilterCriteria(
            start_year_month=request.start_year_month or None,
            end_year_month=request.end_year_month or None,
            abbr=request.abbr or None,
            branch=request.branch or None,
            hq_flag=True if request.hq_only else None,
            client_key=self.selection.client_key,
            rep_family_name=self.selection.rep_family_name,
        )

    def _apply(self, criteria: FilterCriteria) -> SearchOutcome:
        records = filter_records(self.working_set.records, criteria)
        self.last_criteria = criteria
        if not records:
            self.session = DrillDownSession()
            return SearchOutcome.NO_MATCH
        self.session.reset(records)
        return SearchOutcome.OK

    def search(self, request: SearchRequest) -> SearchOutcome:
        """Run the filters and rebuild Tier 1"""
        self._require_data()
        outcome = self._apply(self._criteria(request))
        logger.info(f"[Analysis] Search -> {outcome.value} ({len(self.session.rep_rows)} reps)")
        return outcome

    async def _backfill(self, rep_names: List[str]) -> None:
        """
        Swap summary rows for detail rows, one rep at a time.

        Details fetched for a WorkingSet that a load or mode switch has
        since replaced are dropped, in memory and in the cache.
        """
        async with self._backfill_lock:
            for rep_name in rep_names:
                # A concurrent drill may have finished this rep while we waited
                if rep_name not in summary_rep_names(self.working_set.records):
                    continue

                generation = self._generation
                details = await self.loader.fetch_rep_details(rep_name)
                if generation != self._generation:
                    logger.info(f"[Analysis] Data replaced while fetching {rep_name}; details discarded")
                    raise DatasetReplacedError("データが再読み込みされました。もう一度検索してください")

                updated = self.working_set.replace_summary_rows(rep_name, details)
                self.working_set = updated
                persisted = await self.loader.persist_backfill(updated)
                if self.working_set is updated:
                    self.working_set = replace(updated, cache_persisted=persisted)

    async def select_rep(self, rep_key: str) -> List[Any]:
        """Drill into a rep, backfilling summary rows first when needed"""
        self._require_data()
        try:
            return self.session.select_rep(rep_key)
        except BackfillRequired as e:
            logger.info(f"[Analysis] Backfilling {', '.join(e.rep_names)}")
            await self._backfill(e.rep_names)

        outcome = self._apply(self.last_criteria or FilterCriteria())
        if outcome is SearchOutcome.NO_MATCH or all(row.key != rep_key for row in self.session.rep_rows):
            logger.warning(f"[Analysis] {rep_key} not in the refreshed results")
            raise RepNotFoundError("データの更新後に担当者が見つかりませんでした")
        return self.session.select_rep(rep_key)

    def select_client(self, client_key: str) -> List[Any]:
        self._require_data()
        return self.session.select_client(client_key)

    def back(self):
        return self.session.back()

    def sort(self, field_name: str) -> List[Any]:
        return self.session.sort(field_name)

    def view(self) -> Dict[str, Any]:
        return self.session.to_dict(self.working_set.reference)

    # ============== Suggestions ==============

    def suggest_clients(self, query: str) -> List[Dict[str, Any]]:
        self.selection.on_client_input(query)
        return [s.to_dict() for s in suggest_clients(query, self.working_set.records)]

    def suggest_reps(self, query: str, abbr: Optional[str] = None) -> List[Dict[str, Any]]:
        self.selection.on_rep_input(query)
        return [s.to_dict() for s in suggest_reps(query, self.working_set.records, abbr=abbr)]

    def select_client_suggestion(self, key: str, display_name: Optional[str] = None) -> Dict[str, Optional[str]]:
        self.selection.select_client(key, display_name)
        return self.selection.to_dict()

    def select_rep_suggestion(self, family_name: str) -> Dict[str, Optional[str]]:
        self.selection.select_rep(family_name)
        return self.selection.to_dict()

    def clear_selection(self) -> Dict[str, Optional[str]]:
        self.selection.clear()
        return self.selection.to_dict()

    def phone_for(self, branch: str) -> Optional[str]:
        return self.working_set.reference.phone_for(branch)


# Singleton instance
_analysis_service: Optional[AnalysisService] = None


def get_analysis_service() -> AnalysisService:
    """Get or create the analysis session"""
    global _analysis_service
    if _analysis_service is None:
        _analysis_service = AnalysisService()
    return _analysis_service
