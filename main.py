"""
SFA Sales Analysis Backend - Main Application

Sales analysis API over the spreadsheet-backed sales data.
Provides bulk loading with caching, drill-down summaries, name suggestions,
activity logging, the monthly action list, past performance and the
monthly dashboard.
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import os
import logging

from app.config import settings
from app.routers import action_list, analysis, dashboard, master, performance, realtime
from app.scheduler import start_scheduler, stop_scheduler

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events"""
    # Startup
    logger.info("Starting SFA Sales Analysis Backend...")
    start_scheduler()
    yield
    # Shutdown
    logger.info("Shutting down SFA Sales Analysis Backend...")
    stop_scheduler()


# Initialize FastAPI app
app = FastAPI(
    title="SFA Sales Analysis API",
    description="Sales analysis, activity log and action list backend",
    version="1.0.0",
    lifespan=lifespan
)

# CORS middleware (configure for your domains)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(analysis.router, prefix="/api/analysis", tags=["Sales Analysis"])
app.include_router(master.router, prefix="/api/master", tags=["Master Data & Activities"])
app.include_router(action_list.router, prefix="/api/actions", tags=["Action List"])
app.include_router(performance.router, prefix="/api/performance", tags=["Past Performance"])
app.include_router(dashboard.router, prefix="/api/dashboard", tags=["Dashboard"])
app.include_router(realtime.router, prefix="/api/realtime", tags=["Real-time"])


@app.get("/")
def read_root():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "service": "SFA Sales Analysis Backend",
        "version": "1.0.0",
        "docs": "/docs"
    }


@app.get("/health")
def health_check():
    """Detailed health check"""
    return {
        "status": "healthy",
        "sales_api_configured": bool(settings.sales_api_url),
        "dataset_store": "supabase" if settings.supabase_url and settings.supabase_key else "local",
        "cache_dir": settings.cache_dir,
        "freshness_check_enabled": settings.freshness_check_enabled
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("main:app", host="0.0.0.0", port=int(os.getenv("PORT", 8000)), reload=True)
