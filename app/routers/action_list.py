"""
Action List Router

Monthly follow-up list with filters, sorting and status updates.
"""

import logging
import traceback
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from app.models.enums import ActionSortKey, ActionStatus
from app.models.schemas import ActionStatusUpdate, MutationResult
from app.services.action_list import ActionListService, filter_and_sort_actions, get_action_list_service
from app.services.sales_api_client import SalesApiError

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/")
async def get_action_list(
    year: Optional[int] = Query(default=None, ge=2000, le=2100),
    month: Optional[int] = Query(default=None, ge=1, le=12),
    sales_rep: Optional[str] = Query(default=None),
    status: Optional[ActionStatus] = Query(default=None),
    sort_by: ActionSortKey = Query(default=ActionSortKey.NONE),
    service: ActionListService = Depends(get_action_list_service)
):
    """
    Action list for one month (defaults to the current month).

    Filters are exact matches; progress counts cover the whole month.
    """
    today = date.today()
    year = year or today.year
    month = month or today.month

    try:
        items = await service.load(year, month)
    except SalesApiError as e:
        raise HTTPException(status_code=502, detail=str(e))
    except Exception as e:
        error_trace = traceback.format_exc()
        logger.error(f"Action list error: {e}\n{error_trace}")
        raise HTTPException(status_code=500, detail=f"Action list error: {str(e)}")

    filtered = filter_and_sort_actions(
        items,
        sales_rep=sales_rep or None,
        status=status.value if status else None,
        sort_by=sort_by.value
    )

    summary = service.summary(year, month, items)
    summary["items"] = [
        dict(a.model_dump(by_alias=True), statusLabel=ActionStatus.to_label(a.status))
        for a in filtered
    ]
    return summary


@router.put("/status", response_model=MutationResult)
async def update_status(
    update: ActionStatusUpdate,
    service: ActionListService = Depends(get_action_list_service)
):
    try:
        return await service.update_status(update.year_month, update.contact_id, update.status)
    except SalesApiError as e:
        raise HTTPException(status_code=502, detail=str(e))
    except Exception as e:
        error_trace = traceback.format_exc()
        logger.error(f"Status update error: {e}\n{error_trace}")
        raise HTTPException(status_code=500, detail=f"Status update error: {str(e)}")
