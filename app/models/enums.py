"""
Sales Analysis Enums

Standardized constants for data modes, drill-down levels and action-list values.
"""

from enum import Enum


class DataMode(str, Enum):
    """Dataset loaded into the analysis page"""
    ESTIMATE = "estimate"
    ORDER = "order"

    @property
    def is_chunked(self) -> bool:
        # Order data runs to 9万+ rows and is fetched in pages
        return self is DataMode.ORDER

    @classmethod
    def to_label(cls, mode: "DataMode") -> str:
        labels = {
            cls.ESTIMATE: "見積",
            cls.ORDER: "受注",
        }
        return labels.get(mode, str(mode))


class DrillLevel(str, Enum):
    """Drill-down state of the analysis view"""
    NONE = "none"
    REP = "rep"
    CLIENT = "client"
    PRODUCT = "product"


class SortDirection(str, Enum):
    ASC = "asc"
    DESC = "desc"

    def flipped(self) -> "SortDirection":
        return SortDirection.ASC if self is SortDirection.DESC else SortDirection.DESC


class SearchOutcome(str, Enum):
    """Result of running the filters over the working set"""
    OK = "ok"
    NO_MATCH = "no_match"


class ActionStatus(str, Enum):
    """Monthly action list status"""
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    SKIP = "skip"

    @classmethod
    def to_label(cls, status: str) -> str:
        labels = {
            "pending": "未着手",
            "in_progress": "進行中",
            "completed": "完了",
            "skip": "スキップ",
        }
        return labels.get(status, "未着手")

    @classmethod
    def sort_rank(cls, status: str) -> int:
        ranks = {
            "pending": 0,
            "in_progress": 1,
            "completed": 2,
            "skip": 3,
        }
        return ranks.get(status, 0)


class ActionSortKey(str, Enum):
    """Sort options for the action list"""
    NONE = ""
    DAYS_SINCE = "daysSince"
    DAYS_SINCE_ASC = "daysSinceAsc"
    COMPANY = "company"
    STATUS = "status"


class ActivityType(str, Enum):
    VISIT = "訪問"
    CALL = "電話"
    EMAIL = "メール"


class PerformanceSortKey(str, Enum):
    """Sortable columns of the past performance table"""
    ORDER_YEAR_MONTH = "orderYearMonth"
    CUSTOMER_NAME = "customerName"
    CUSTOMER_REP = "customerRep"
    CLIENT_NAME = "clientName"
    ORDER_COUNT = "orderCount"
    SALES_AMOUNT = "salesAmount"

    @property
    def is_numeric(self) -> bool:
        return self in (PerformanceSortKey.ORDER_COUNT, PerformanceSortKey.SALES_AMOUNT)


class VisitResult(str, Enum):
    """Whether the contact was met on an activity"""
    MET = "○"
    PARTIAL = "△"
    MISSED = "×"
