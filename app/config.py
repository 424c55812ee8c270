"""
Application Settings

Environment-driven configuration for the remote sales API, cache stores and scheduler.
"""

import os


class Settings:
    # Remote spreadsheet API
    sales_api_url: str = os.getenv("SALES_API_URL", "")
    sales_api_timeout: float = float(os.getenv("SALES_API_TIMEOUT", "60"))
    order_chunk_size: int = int(os.getenv("ORDER_CHUNK_SIZE", "3000"))

    # Cache stores
    cache_dir: str = os.getenv("CACHE_DIR", ".cache")
    local_cache_quota_bytes: int = int(os.getenv("LOCAL_CACHE_QUOTA_BYTES", str(5 * 1024 * 1024)))
    dataset_cache_quota_bytes: int = int(os.getenv("DATASET_CACHE_QUOTA_BYTES", str(500 * 1024 * 1024)))
    master_cache_ttl_hours: int = int(os.getenv("MASTER_CACHE_TTL_HOURS", "24"))
    performance_cache_ttl_hours: int = int(os.getenv("PERFORMANCE_CACHE_TTL_HOURS", "24"))

    supabase_url: str = os.getenv("SUPABASE_URL", "")
    # Service role key bypasses RLS on the cache table
    supabase_key: str = os.getenv("SUPABASE_SERVICE_KEY") or os.getenv("SUPABASE_KEY", "")
    supabase_cache_table: str = os.getenv("SUPABASE_CACHE_TABLE", "sales_cache")

    # Scheduler
    freshness_check_enabled: bool = os.getenv("FRESHNESS_CHECK_ENABLED", "true").lower() == "true"
    freshness_check_interval_minutes: int = int(os.getenv("FRESHNESS_CHECK_INTERVAL_MINUTES", "30"))
    master_refresh_hour: int = int(os.getenv("MASTER_REFRESH_HOUR", "6"))


settings = Settings()
