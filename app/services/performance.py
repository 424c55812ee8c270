"""
Past Performance Service

Monthly order totals (getPerformanceData) with a customer -> rep filter
cascade, plus per-rep product breakdowns from the order lines
(getPerformanceRawData). Both datasets are cached in the local store for
PERFORMANCE_CACHE_TTL_HOURS.
"""

import logging
from dataclasses import dataclass, field
from datetime import timedelta
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Type, TypeVar

from pydantic import BaseModel, ValidationError

from app.config import settings
from app.models.enums import PerformanceSortKey, SortDirection
from app.models.schemas import PerformanceRawRow, PerformanceRow, to_amount
from app.services.cache_store import CacheStore, ExpiringCache, get_local_store
from app.services.sales_api_client import SalesApiClient, SalesApiError, get_sales_api_client

logger = logging.getLogger(__name__)

PERFORMANCE_CACHE_KEY = "sfa_performance_cache"
PERFORMANCE_RAW_CACHE_KEY = "sfa_performance_raw_cache"

# Navigation units from this maker are counted elsewhere
EXCLUDED_NAVI_MAKER = "9080"

RowT = TypeVar("RowT", bound=BaseModel)


def _parse(model: Type[RowT], data: Any) -> List[RowT]:
    rows: List[RowT] = []
    for row in data or []:
        if not isinstance(row, dict):
            continue
        try:
            rows.append(model.model_validate(row))
        except ValidationError as e:
            logger.warning(f"[Performance] Skipping unreadable row: {e}")
    return rows


def _wire(rows: Sequence[BaseModel]) -> List[Dict[str, Any]]:
    return [r.model_dump(by_alias=True) for r in rows]


@dataclass
class PerformanceData:
    rows: List[PerformanceRow]
    raw: List[PerformanceRawRow]
    source: str


# ============== Table ==============

def customer_options(rows: Sequence[PerformanceRow]) -> List[str]:
    return sorted({r.customer_name for r in rows if r.customer_name})


def rep_options(rows: Sequence[PerformanceRow], customer: Optional[str] = None) -> List[str]:
    """Reps that appear under `customer` (all reps when no customer is chosen)"""
    return sorted({
        r.customer_rep for r in rows
        if r.customer_rep and (not customer or r.customer_name == customer)
    })


def filter_performance(
    rows: Sequence[PerformanceRow],
    customer: Optional[str] = None,
    rep: Optional[str] = None
) -> List[PerformanceRow]:
    return [
        r for r in rows
        if (not customer or r.customer_name == customer)
        and (not rep or r.customer_rep == rep)
    ]


_SORT_ATTRS = {
    PerformanceSortKey.ORDER_YEAR_MONTH: "order_year_month",
    PerformanceSortKey.CUSTOMER_NAME: "customer_name",
    PerformanceSortKey.CUSTOMER_REP: "customer_rep",
    PerformanceSortKey.CLIENT_NAME: "client_name",
    PerformanceSortKey.ORDER_COUNT: "order_count",
    PerformanceSortKey.SALES_AMOUNT: "sales_amount",
}


def sort_performance(
    rows: Sequence[PerformanceRow],
    sort_key: PerformanceSortKey = PerformanceSortKey.ORDER_YEAR_MONTH,
    direction: SortDirection = SortDirection.DESC
) -> List[PerformanceRow]:
    """Stable sort; count and amount compare as numbers, the rest as text"""
    attr = _SORT_ATTRS[sort_key]
    key: Callable[[PerformanceRow], Any]
    if sort_key.is_numeric:
        key = lambda r: to_amount(getattr(r, attr))
    else:
        key = lambda r: getattr(r, attr) or ""
    return sorted(rows, key=key, reverse=direction is SortDirection.DESC)


def performance_totals(rows: Sequence[PerformanceRow]) -> Tuple[int, Decimal]:
    """(order count, sales amount)"""
    count = sum(r.order_count for r in rows)
    amount = sum((r.sales_amount for r in rows), Decimal(0))
    return count, amount


# ============== Rep detail ==============

def is_navi(row: PerformanceRawRow) -> bool:
    return (
        to_amount(row.product_major, None) == 2
        and row.product_middle == "S"
        and row.product_minor == "C"
        and row.maker_code != EXCLUDED_NAVI_MAKER
    )


def is_dash_cam(row: PerformanceRawRow) -> bool:
    return (
        to_amount(row.product_major, None) == 2
        and row.product_middle == "S"
        and row.product_minor == "Y"
    )


@dataclass
class OrderCount:
    """Distinct orders for one client / vehicle (/ product) under a rep"""
    customer_rep: str
    client_name: str
    vehicle_name: str
    product_code: Optional[str] = None
    order_numbers: set = field(default_factory=set)

    @property
    def order_count(self) -> int:
        return len(self.order_numbers)

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "customer_rep": self.customer_rep,
            "client_name": self.client_name,
            "vehicle_name": self.vehicle_name,
            "order_count": self.order_count,
        }
        if self.product_code is not None:
            data["product_code"] = self.product_code
        return data


def _count_orders(rows: Sequence[PerformanceRawRow], rep: str, by_product: bool) -> List[OrderCount]:
    groups: Dict[Tuple[str, ...], OrderCount] = {}
    for row in rows:
        key: Tuple[str, ...] = (row.client_name, row.vehicle_name)
        if by_product:
            key += (row.product_code,)
        group = groups.get(key)
        if group is None:
            group = groups[key] = OrderCount(
                customer_rep=rep,
                client_name=row.client_name,
                vehicle_name=row.vehicle_name,
                product_code=row.product_code if by_product else None,
            )
        if row.order_no:
            group.order_numbers.add(row.order_no)

    return sorted(groups.values(), key=lambda g: g.order_count, reverse=True)


def aggregate_by_product(rows: Sequence[PerformanceRawRow], rep: str) -> List[OrderCount]:
    return _count_orders(rows, rep, by_product=True)


def aggregate_by_vehicle(rows: Sequence[PerformanceRawRow], rep: str) -> List[OrderCount]:
    return _count_orders(rows, rep, by_product=False)


def rep_detail(raw: Sequence[PerformanceRawRow], rep: str) -> Dict[str, Any]:
    """Navigation units, dash cams and vehicles ordered through `rep`"""
    rep_rows = [r for r in raw if r.customer_rep == rep]
    return {
        "rep": rep,
        "raw_available": bool(raw),
        "navi": [c.to_dict() for c in aggregate_by_product([r for r in rep_rows if is_navi(r)], rep)],
        "dash_cam": [c.to_dict() for c in aggregate_by_product([r for r in rep_rows if is_dash_cam(r)], rep)],
        "vehicles": [c.to_dict() for c in aggregate_by_vehicle(rep_rows, rep)],
    }


# ============== Service ==============

class PerformanceService:
    """Cache-first access to the performance table and its order lines"""

    def __init__(
        self,
        client: Optional[SalesApiClient] = None,
        store: Optional[CacheStore] = None,
        ttl: Optional[timedelta] = None
    ):
        self.client = client or get_sales_api_client()
        store = store or get_local_store()
        ttl = ttl or timedelta(hours=settings.performance_cache_ttl_hours)
        self.cache = ExpiringCache(store, PERFORMANCE_CACHE_KEY, ttl)
        self.raw_cache = ExpiringCache(store, PERFORMANCE_RAW_CACHE_KEY, ttl)

    async def _fetch_raw(self) -> List[PerformanceRawRow]:
        try:
            raw = _parse(PerformanceRawRow, await self.client.fetch_data("getPerformanceRawData"))
        except SalesApiError as e:
            # The table works without order lines; only the rep detail goes empty
            logger.warning(f"[Performance] getPerformanceRawData failed: {e}")
            return []
        await self.raw_cache.set(_wire(raw))
        return raw

    async def load(self, force: bool = False) -> PerformanceData:
        """Cached data unless expired or `force`; raises SalesApiError when the table fetch fails"""
        if not force:
            cached = await self.cache.get()
            if cached is not None:
                raw = await self.raw_cache.get()
                return PerformanceData(
                    rows=_parse(PerformanceRow, cached),
                    raw=_parse(PerformanceRawRow, raw),
                    source="cache"
                )

        rows = _parse(PerformanceRow, await self.client.fetch_data("getPerformanceData"))
        if not await self.cache.set(_wire(rows)):
            logger.warning("[Performance] Table not cached; next request fetches again")
        raw = await self._fetch_raw()

        logger.info(f"[Performance] Loaded {len(rows)} rows, {len(raw)} order lines")
        return PerformanceData(rows=rows, raw=raw, source="api")

    async def clear(self) -> bool:
        table_cleared = await self.cache.clear()
        raw_cleared = await self.raw_cache.clear()
        return table_cleared and raw_cleared


# Singleton instance
_performance_service: Optional[PerformanceService] = None


def get_performance_service() -> PerformanceService:
    global _performance_service
    if _performance_service is None:
        _performance_service = PerformanceService()
    return _performance_service
