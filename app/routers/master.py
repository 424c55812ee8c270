"""
Master Data Router

Company / department / contact lookups and the activity log.
"""

import logging
import traceback
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from app.models.schemas import ActivityCreate, ContactCreate, MutationResult
from app.services.activity_log import ActivityLog, ActivityValidationError, get_activity_log
from app.services.master_data import MasterDataService, get_master_data_service
from app.services.sales_api_client import SalesApiError

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

router = APIRouter()


def _http_error(e: Exception, operation: str) -> HTTPException:
    if isinstance(e, ActivityValidationError):
        return HTTPException(status_code=422, detail=str(e))
    if isinstance(e, SalesApiError):
        return HTTPException(status_code=502, detail=str(e))

    error_trace = traceback.format_exc()
    logger.error(f"{operation} error: {e}\n{error_trace}")
    return HTTPException(status_code=500, detail=f"{operation} error: {str(e)}")


@router.get("/")
async def get_master_data(service: MasterDataService = Depends(get_master_data_service)):
    """Customers, departments and contacts (cached for 24h)"""
    try:
        master = await service.load()
    except Exception as e:
        raise _http_error(e, "Master data")

    info = await service.cache_info()
    return {
        "data": master.model_dump(),
        "cache": {
            "cached_at": info.cached_at.isoformat(),
            "age_minutes": info.age_minutes,
            "age_text": info.age_text,
        } if info else None
    }


@router.post("/refresh")
async def refresh_master_data(service: MasterDataService = Depends(get_master_data_service)):
    """Drop the cached master data and fetch it again"""
    try:
        master = await service.refresh()
    except Exception as e:
        raise _http_error(e, "Master refresh")
    return {"data": master.model_dump()}


@router.get("/departments")
async def get_departments(
    company: str = Query(..., description="Company name"),
    service: MasterDataService = Depends(get_master_data_service)
):
    try:
        departments = await service.departments_for(company)
    except Exception as e:
        raise _http_error(e, "Departments")
    return {"company": company, "departments": departments}


@router.get("/contacts")
async def get_contacts(
    company: str = Query(...),
    department: str = Query(...),
    service: MasterDataService = Depends(get_master_data_service)
):
    try:
        contacts = await service.contacts_for(company, department)
    except Exception as e:
        raise _http_error(e, "Contacts")
    return {"company": company, "department": department, "contacts": contacts}


@router.post("/contacts", response_model=MutationResult)
async def add_contact(
    contact: ContactCreate,
    service: MasterDataService = Depends(get_master_data_service)
):
    try:
        return await service.add_contact(contact)
    except Exception as e:
        raise _http_error(e, "Add contact")


@router.get("/activities")
async def list_activities(
    sales_rep: Optional[str] = Query(default=None, description="Only this rep's activities"),
    activity_log: ActivityLog = Depends(get_activity_log)
):
    try:
        activities = await activity_log.list(sales_rep=sales_rep or None)
    except Exception as e:
        raise _http_error(e, "Activities")
    return {
        "count": len(activities),
        "activities": [a.model_dump(by_alias=True) for a in activities]
    }


@router.post("/activities", response_model=MutationResult)
async def record_activity(
    activity: ActivityCreate,
    activity_log: ActivityLog = Depends(get_activity_log)
):
    """
    Record a visit / call.

    The sheet gives no response to writes; `verified` reports whether the
    activity showed up in a follow-up fetch.
    """
    try:
        return await activity_log.record(activity)
    except Exception as e:
        raise _http_error(e, "Record activity")


@router.put("/activities/{activity_id}", response_model=MutationResult)
async def update_activity(
    activity_id: str,
    activity: ActivityCreate,
    activity_log: ActivityLog = Depends(get_activity_log)
):
    try:
        return await activity_log.update(activity_id, activity)
    except Exception as e:
        raise _http_error(e, "Update activity")


@router.delete("/activities/{activity_id}", response_model=MutationResult)
async def delete_activity(
    activity_id: str,
    activity_log: ActivityLog = Depends(get_activity_log)
):
    try:
        return await activity_log.delete(activity_id)
    except Exception as e:
        raise _http_error(e, "Delete activity")
