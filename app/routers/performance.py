"""
Past Performance Router

Monthly order totals with customer / rep filters, and the per-rep
navigation, dash cam and vehicle breakdowns.
"""

import logging
import traceback
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from app.models.enums import PerformanceSortKey, SortDirection
from app.services.performance import (
    PerformanceService,
    customer_options,
    filter_performance,
    get_performance_service,
    performance_totals,
    rep_detail,
    rep_options,
    sort_performance,
)
from app.services.sales_api_client import SalesApiError

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

router = APIRouter()


def _http_error(e: Exception, operation: str) -> HTTPException:
    if isinstance(e, SalesApiError):
        return HTTPException(status_code=502, detail=f"データ取得に失敗しました: {e}")

    error_trace = traceback.format_exc()
    logger.error(f"{operation} error: {e}\n{error_trace}")
    return HTTPException(status_code=500, detail=f"{operation} error: {str(e)}")


@router.get("/")
async def get_performance(
    customer: Optional[str] = Query(default=None),
    rep: Optional[str] = Query(default=None),
    sort_by: PerformanceSortKey = Query(default=PerformanceSortKey.ORDER_YEAR_MONTH),
    direction: SortDirection = Query(default=SortDirection.DESC),
    refresh: bool = Query(default=False, description="Ignore the 24h cache"),
    service: PerformanceService = Depends(get_performance_service)
):
    """
    Past performance table.

    Filters are exact matches; the rep list follows the chosen customer.
    """
    try:
        data = await service.load(force=refresh)
    except Exception as e:
        raise _http_error(e, "Performance")

    rows = sort_performance(filter_performance(data.rows, customer=customer, rep=rep), sort_by, direction)
    order_count, sales_amount = performance_totals(rows)
    return {
        "source": data.source,
        "customers": customer_options(data.rows),
        "reps": rep_options(data.rows, customer),
        "rows": [r.model_dump(by_alias=True) for r in rows],
        "total": {"order_count": order_count, "sales_amount": sales_amount},
    }


@router.get("/reps")
async def get_rep_options(
    customer: Optional[str] = Query(default=None),
    service: PerformanceService = Depends(get_performance_service)
):
    try:
        data = await service.load()
    except Exception as e:
        raise _http_error(e, "Performance reps")
    return {"customer": customer, "reps": rep_options(data.rows, customer)}


@router.get("/reps/{rep}/detail")
async def get_rep_detail(rep: str, service: PerformanceService = Depends(get_performance_service)):
    """Distinct orders per client / vehicle / product for one rep"""
    try:
        data = await service.load()
    except Exception as e:
        raise _http_error(e, "Performance detail")
    return rep_detail(data.raw, rep)


@router.delete("/cache")
async def clear_performance_cache(service: PerformanceService = Depends(get_performance_service)):
    cleared = await service.clear()
    return {"cleared": cleared, "message": "キャッシュをクリアしました" if cleared else "キャッシュの削除に失敗しました"}
