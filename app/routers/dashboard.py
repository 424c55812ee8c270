"""
Monthly Dashboard Router

Goal progress and visit results per company for one month.
"""

import logging
import traceback
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from app.models.enums import VisitResult
from app.services.dashboard import DashboardService, get_dashboard_service
from app.services.sales_api_client import SalesApiError

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/")
async def get_dashboard(
    year: Optional[int] = Query(default=None, ge=2000, le=2100),
    month: Optional[int] = Query(default=None, ge=1, le=12),
    sales_rep: Optional[str] = Query(default=None),
    result: Optional[VisitResult] = Query(default=None, description="Only visits with this result"),
    service: DashboardService = Depends(get_dashboard_service)
):
    """Dashboard for one month (defaults to the current month)"""
    today = date.today()
    year = year or today.year
    month = month or today.month

    try:
        return await service.build(
            year,
            month,
            sales_rep=sales_rep or None,
            result=result.value if result else None
        )
    except SalesApiError as e:
        raise HTTPException(status_code=502, detail=f"読み込みエラー: {e}")
    except Exception as e:
        error_trace = traceback.format_exc()
        logger.error(f"Dashboard error: {e}\n{error_trace}")
        raise HTTPException(status_code=500, detail=f"Dashboard error: {str(e)}")
