#!/usr/bin/env python3
"""
Local Load Script
Bulk-loads sales data into the cache locally, bypassing HTTP timeouts.

Usage:
    python run_local_load.py            # both modes
    python run_local_load.py order      # one mode
"""

import asyncio
import os
import sys
from dotenv import load_dotenv

# Load .env file
load_dotenv()

# Add app to path
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from app.models.enums import DataMode
from app.services.cache_store import get_cache_store
from app.services.sales_api_client import SalesApiError
from app.sync.bulk_loader import BulkLoader
from app.sync.dataset_cache import DatasetCache
from app.sync.working_set import LoadProgress


def print_progress(progress: LoadProgress):
    print(f"  {progress.loaded}/{progress.total} ({progress.percent}%)")


async def load_modes(modes):
    loader = BulkLoader(DatasetCache(get_cache_store()))

    for mode in modes:
        print("\n" + "-" * 40)
        print(f"Loading {DataMode.to_label(mode)} ({mode.value})...")
        print("-" * 40)

        try:
            result = await loader.load_dataset(mode, on_progress=print_progress)
        except SalesApiError as e:
            print(f"ERROR: {e}")
            continue

        print(f"Records: {result.record_count}")
        print(f"Cache persisted: {result.cache_persisted}")
        print(f"Reference data: {'loaded' if result.reference_loaded else 'skipped'}")


def main():
    print("=" * 60)
    print("LOCAL LOAD SCRIPT")
    print("=" * 60)

    if len(sys.argv) > 1:
        modes = [DataMode(arg) for arg in sys.argv[1:]]
    else:
        modes = list(DataMode)

    asyncio.run(load_modes(modes))

    print("\n" + "=" * 60)
    print("LOAD COMPLETE!")
    print("=" * 60)


if __name__ == "__main__":
    main()
