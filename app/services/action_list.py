"""
Action List Service

Monthly follow-up list: per-month items from getActionList, filtering and
sorting for the table, progress counts and optimistic status updates.
"""

import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

from pydantic import ValidationError

from app.models.enums import ActionSortKey, ActionStatus
from app.models.schemas import ActionItem, MutationResult
from app.services.sales_api_client import SalesApiClient, SalesApiError, get_sales_api_client

logger = logging.getLogger(__name__)


def year_month_label(year: int, month: int) -> str:
    """Key used by the sheet, e.g. 2025年1月 (no zero padding)"""
    return f"{year}年{month}月"


def shift_month(year: int, month: int, delta: int) -> Tuple[int, int]:
    index = year * 12 + (month - 1) + delta
    return index // 12, index % 12 + 1


def parse_action_items(data: Any) -> List[ActionItem]:
    items: List[ActionItem] = []
    for row in data or []:
        if not isinstance(row, dict):
            continue
        try:
            items.append(ActionItem.model_validate(row))
        except ValidationError as e:
            logger.warning(f"[Actions] Skipping unreadable item: {e}")
    return items


def _sort_actions(items: List[ActionItem], sort_by: str) -> List[ActionItem]:
    if sort_by == ActionSortKey.DAYS_SINCE.value:
        # Never-visited (unknown) first, then longest gap first
        return sorted(items, key=lambda a: (a.days_since is not None, -(a.days_since or 0)))
    if sort_by == ActionSortKey.DAYS_SINCE_ASC.value:
        return sorted(items, key=lambda a: (a.days_since is None, a.days_since or 0))
    if sort_by == ActionSortKey.COMPANY.value:
        return sorted(items, key=lambda a: a.company)
    if sort_by == ActionSortKey.STATUS.value:
        return sorted(items, key=lambda a: ActionStatus.sort_rank(a.status))
    return list(items)


def filter_and_sort_actions(
    items: Sequence[ActionItem],
    sales_rep: Optional[str] = None,
    status: Optional[str] = None,
    sort_by: str = ""
) -> List[ActionItem]:
    filtered = [
        a for a in items
        if (not sales_rep or a.sales_rep == sales_rep)
        and (not status or a.status == status)
    ]
    return _sort_actions(filtered, sort_by or "")


def progress_count(items: Sequence[ActionItem]) -> Tuple[int, int]:
    """(completed, total)"""
    completed = sum(1 for a in items if a.status == ActionStatus.COMPLETED.value)
    return completed, len(items)


def sales_reps(items: Sequence[ActionItem]) -> List[str]:
    return sorted({a.sales_rep for a in items if a.sales_rep})


class ActionListService:
    """Keeps the most recently loaded month for optimistic updates"""

    def __init__(self, client: Optional[SalesApiClient] = None):
        self.client = client or get_sales_api_client()
        self.items: Dict[str, List[ActionItem]] = {}

    async def load(self, year: int, month: int) -> List[ActionItem]:
        year_month = year_month_label(year, month)
        data = await self.client.fetch_data(
            "getActionList",
            {"yearMonth": year_month},
            default_error="読み込みに失敗しました"
        )
        items = parse_action_items(data)
        self.items[year_month] = items
        logger.info(f"[Actions] {year_month}: {len(items)} items")
        return items

    def summary(self, year: int, month: int, items: Sequence[ActionItem]) -> Dict[str, Any]:
        completed, total = progress_count(items)
        prev_year, prev_month = shift_month(year, month, -1)
        next_year, next_month = shift_month(year, month, 1)
        return {
            "year_month": year_month_label(year, month),
            "completed": completed,
            "total": total,
            "sales_reps": sales_reps(items),
            "prev": {"year": prev_year, "month": prev_month},
            "next": {"year": next_year, "month": next_month},
        }

    async def update_status(self, year_month: str, contact_id: str, status: ActionStatus) -> MutationResult:
        """Apply locally first, send updateActionStatus, then re-fetch to verify"""
        for item in self.items.get(year_month, []):
            if item.id == str(contact_id):
                item.status = status.value

        result = await self.client.post_mutation({
            "action": "updateActionStatus",
            "yearMonth": year_month,
            "contactId": contact_id,
            "status": status.value,
        })

        try:
            data = await self.client.fetch_data("getActionList", {"yearMonth": year_month})
        except SalesApiError as e:
            logger.warning(f"[Actions] Verification fetch failed: {e}")
            result.detail = "送信済み（確認できませんでした）"
            return result

        fresh = parse_action_items(data)
        self.items[year_month] = fresh
        result.verified = any(a.id == str(contact_id) and a.status == status.value for a in fresh)
        if not result.verified:
            logger.warning(f"[Actions] Status for {contact_id} not visible after re-fetch")
        return result


# Singleton instance
_action_list_service: Optional[ActionListService] = None


def get_action_list_service() -> ActionListService:
    global _action_list_service
    if _action_list_service is None:
        _action_list_service = ActionListService()
    return _action_list_service
