"""
Sales Analysis Module

Filtering, drill-down aggregation and name suggestions over a loaded dataset.
"""

from .filter_engine import FilterCriteria, FilterOptions, build_filter_options, filter_records
from .aggregator import (
    OTHER_PRODUCT_KEY,
    ClientSummary,
    ProductSummary,
    RepSummary,
    SortState,
    aggregate_by_client,
    aggregate_by_product,
    aggregate_by_rep,
    sort_rows,
)
from .drilldown import BackfillRequired, DrillDownSession, InvalidTransition
from .suggestions import SuggestionSelection, suggest_clients, suggest_reps

__all__ = [
    "FilterCriteria",
    "FilterOptions",
    "build_filter_options",
    "filter_records",
    "OTHER_PRODUCT_KEY",
    "ClientSummary",
    "ProductSummary",
    "RepSummary",
    "SortState",
    "aggregate_by_client",
    "aggregate_by_product",
    "aggregate_by_rep",
    "sort_rows",
    "BackfillRequired",
    "DrillDownSession",
    "InvalidTransition",
    "SuggestionSelection",
    "suggest_clients",
    "suggest_reps",
]
