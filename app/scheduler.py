"""
Scheduler Module

Background jobs for the analysis backend:
- periodic freshness check of the active mode's cache against the sheet
- daily master data refresh
"""

import logging
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from app.config import settings
from app.services.analysis_service import get_analysis_service
from app.services.master_data import get_master_data_service
from app.services.sales_api_client import SalesApiError
from app.services.websocket_manager import get_ws_manager

# Set up logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

# Create scheduler
scheduler = AsyncIOScheduler()


async def scheduled_freshness_check():
    """Check whether the sheet changed since the last bulk load (every N minutes)"""
    service = get_analysis_service()
    await service.initialize()

    report = await service.check_freshness()
    if report.is_stale:
        logger.info(f"[Scheduler] {report.mode.value} data is stale: {report.notice}")
        await get_ws_manager().send_cache_status(service.cache_status().to_dict())
    else:
        logger.info(f"[Scheduler] {report.mode.value} cache is current (checked={report.checked})")


async def scheduled_master_refresh():
    """Refresh master data (daily)"""
    logger.info("[Scheduler] Starting daily master data refresh")
    try:
        master = await get_master_data_service().refresh()
        logger.info(f"[Scheduler] Master refresh complete: customers={len(master.customers)}")
    except SalesApiError as e:
        logger.error(f"[Scheduler] Master refresh failed: {e}")


def start_scheduler():
    """Start the background scheduler"""
    if not settings.freshness_check_enabled:
        logger.info("[Scheduler] Disabled via FRESHNESS_CHECK_ENABLED env var")
        return

    logger.info(f"[Scheduler] Starting scheduler with:")
    logger.info(f"  - Freshness check: every {settings.freshness_check_interval_minutes} minutes")
    logger.info(f"  - Master refresh: daily at {settings.master_refresh_hour}:00 UTC")

    scheduler.add_job(
        scheduled_freshness_check,
        IntervalTrigger(minutes=settings.freshness_check_interval_minutes),
        id="freshness_check",
        name="Cache Freshness Check",
        replace_existing=True
    )

    scheduler.add_job(
        scheduled_master_refresh,
        CronTrigger(hour=settings.master_refresh_hour, minute=0),
        id="master_refresh",
        name="Daily Master Data Refresh",
        replace_existing=True
    )

    scheduler.start()
    logger.info("[Scheduler] Scheduler started successfully")


def stop_scheduler():
    """Stop the scheduler"""
    if scheduler.running:
        scheduler.shutdown()
        logger.info("[Scheduler] Scheduler stopped")
