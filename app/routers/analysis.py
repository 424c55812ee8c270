"""
Analysis Router

FastAPI endpoints for the sales analysis page: loading and cache status,
filters, rep -> client -> product drill-down and name suggestions.
"""

import logging
import traceback
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from app.analysis.drilldown import BackfillRequired, InvalidTransition
from app.config import settings
from app.models.enums import DataMode
from app.models.schemas import LoadResponse, SearchRequest, SelectionRequest
from app.services.analysis_service import (
    AnalysisService,
    DatasetReplacedError,
    LoadInProgressError,
    NoDataLoadedError,
    RepNotFoundError,
    get_analysis_service,
)
from app.services.sales_api_client import SalesApiLogicalError, SalesApiTransportError
from app.services.websocket_manager import get_ws_manager
from app.sync.working_set import LoadProgress

# Set up logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

router = APIRouter()


def _http_error(e: Exception, operation: str) -> HTTPException:
    """Map service errors onto HTTP status codes"""
    if isinstance(e, (NoDataLoadedError, LoadInProgressError, DatasetReplacedError)):
        return HTTPException(status_code=409, detail=str(e))
    if isinstance(e, RepNotFoundError):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, SalesApiLogicalError):
        return HTTPException(status_code=502, detail=str(e))
    if isinstance(e, SalesApiTransportError):
        return HTTPException(status_code=502, detail=f"通信エラー: {e}")
    if isinstance(e, BackfillRequired):
        return HTTPException(status_code=502, detail="詳細データの取得に失敗しました")
    if isinstance(e, InvalidTransition):
        return HTTPException(status_code=400, detail=str(e))
    if isinstance(e, KeyError):
        return HTTPException(status_code=404, detail=f"Not found: {e.args[0] if e.args else ''}")
    if isinstance(e, ValueError):
        return HTTPException(status_code=400, detail=str(e))

    error_trace = traceback.format_exc()
    logger.error(f"{operation} error: {e}\n{error_trace}")
    return HTTPException(status_code=500, detail=f"{operation} error: {str(e)}")


@router.get("/status")
async def analysis_status(service: AnalysisService = Depends(get_analysis_service)):
    """
    Current mode, load state and cache status.

    The first call serves the cached dataset for the starting mode.
    """
    await service.initialize()
    status = service.status()
    status["scheduler"] = {
        "freshness_check_enabled": settings.freshness_check_enabled,
        "freshness_check_interval_minutes": settings.freshness_check_interval_minutes,
    }
    return status


@router.post("/mode/{mode}")
async def switch_mode(mode: DataMode, service: AnalysisService = Depends(get_analysis_service)):
    """
    Switch between estimate and order data.

    Each mode has its own cache entry, so switching never reloads from the API.
    """
    cache_status = await service.switch_mode(mode)
    return {"mode": mode.value, "cache": cache_status.to_dict()}


@router.post("/load", response_model=LoadResponse)
async def bulk_load(service: AnalysisService = Depends(get_analysis_service)):
    """
    Bulk-load the active mode from the API and cache it.

    Order data is paged; progress streams over /api/realtime/ws.
    """
    ws_manager = get_ws_manager()
    await service.initialize()
    mode = service.mode

    async def on_progress(progress: LoadProgress):
        await ws_manager.send_load_progress(mode.value, progress.loaded, progress.total, progress.percent)

    try:
        logger.info(f"Starting bulk load for {mode.value}")
        result = await service.load(on_progress=on_progress)
    except Exception as e:
        raise _http_error(e, "Bulk load")

    cache_status = service.cache_status()
    await ws_manager.send_cache_status(cache_status.to_dict())

    message = f"{result.record_count}件のデータを読み込みました"
    if not result.cache_persisted:
        message += "（キャッシュ保存に失敗）"

    return LoadResponse(
        mode=mode,
        record_count=result.record_count,
        cache_persisted=result.cache_persisted,
        progress=[p.fraction for p in result.progress],
        message=message
    )


@router.get("/freshness")
async def check_freshness(service: AnalysisService = Depends(get_analysis_service)):
    """Compare the cache timestamp with the sheet's last-modified time"""
    await service.initialize()
    report = await service.check_freshness()
    return {
        "mode": report.mode.value,
        "checked": report.checked,
        "is_stale": report.is_stale,
        "notice": report.notice,
        "cached_at": report.cached_at.isoformat() if report.cached_at else None,
        "server_modified": report.server_modified.isoformat() if report.server_modified else None,
    }


@router.delete("/cache")
async def clear_cache(service: AnalysisService = Depends(get_analysis_service)):
    """Delete the active mode's cached dataset (loaded data stays in memory)"""
    deleted = await service.invalidate_cache()
    return {"deleted": deleted, "cache": service.cache_status().to_dict()}


@router.get("/filters")
async def filter_options(
    abbr: Optional[str] = Query(default=None, description="Scope branches to this abbreviation"),
    service: AnalysisService = Depends(get_analysis_service)
):
    """Year-months, abbreviations and branches present in the loaded data"""
    await service.initialize()
    return service.filter_options(abbr=abbr or None).to_dict()


@router.post("/search")
async def search(request: SearchRequest, service: AnalysisService = Depends(get_analysis_service)):
    """
    Apply filters and return the rep summary.

    outcome is "no_match" when filters leave nothing; 409 when no data is loaded.
    """
    await service.initialize()
    try:
        outcome = service.search(request)
    except Exception as e:
        raise _http_error(e, "Search")
    return {"outcome": outcome.value, "view": service.view()}


@router.get("/view")
async def current_view(service: AnalysisService = Depends(get_analysis_service)):
    return service.view()


@router.post("/select/rep/{rep_key}")
async def select_rep(rep_key: str, service: AnalysisService = Depends(get_analysis_service)):
    """Drill into a rep's clients (fetches detail rows first when needed)"""
    try:
        await service.select_rep(rep_key)
    except Exception as e:
        raise _http_error(e, "Select rep")
    return service.view()


@router.post("/select/client/{client_key}")
async def select_client(client_key: str, service: AnalysisService = Depends(get_analysis_service)):
    """Drill into a client's products"""
    try:
        service.select_client(client_key)
    except Exception as e:
        raise _http_error(e, "Select client")
    return service.view()


@router.post("/back")
async def go_back(service: AnalysisService = Depends(get_analysis_service)):
    try:
        service.back()
    except Exception as e:
        raise _http_error(e, "Back")
    return service.view()


@router.post("/sort/{field_name}")
async def sort_view(field_name: str, service: AnalysisService = Depends(get_analysis_service)):
    """Toggle sorting of the current view on one column"""
    try:
        service.sort(field_name)
    except Exception as e:
        raise _http_error(e, "Sort")
    return service.view()


@router.get("/suggest/clients")
async def suggest_clients(
    q: str = Query(default="", description="Partial client name"),
    service: AnalysisService = Depends(get_analysis_service)
):
    await service.initialize()
    return {"query": q, "suggestions": service.suggest_clients(q)}


@router.get("/suggest/reps")
async def suggest_reps(
    q: str = Query(default="", description="Partial rep name"),
    abbr: Optional[str] = Query(default=None),
    service: AnalysisService = Depends(get_analysis_service)
):
    await service.initialize()
    return {"query": q, "suggestions": service.suggest_reps(q, abbr=abbr or None)}


@router.post("/selection/client")
async def select_client_suggestion(
    request: SelectionRequest,
    service: AnalysisService = Depends(get_analysis_service)
):
    """Commit a client suggestion as a filter for the next search"""
    return service.select_client_suggestion(request.key, request.display_name)


@router.post("/selection/rep")
async def select_rep_suggestion(
    request: SelectionRequest,
    service: AnalysisService = Depends(get_analysis_service)
):
    return service.select_rep_suggestion(request.key)


@router.delete("/selection")
async def clear_selection(service: AnalysisService = Depends(get_analysis_service)):
    return service.clear_selection()


@router.get("/phones/{branch}")
async def branch_phone(branch: str, service: AnalysisService = Depends(get_analysis_service)):
    await service.initialize()
    phone = service.phone_for(branch)
    if phone is None:
        raise HTTPException(status_code=404, detail=f"No phone number for {branch}")
    return {"branch": branch, "phone": phone}
