"""
Activity Log Service

Visit / call / email records. Mutations go out as fire-and-forget POSTs,
so each one is followed by a getActivities re-fetch to check it landed.
"""

import logging
from typing import Any, Callable, List, Optional

from pydantic import ValidationError

from app.models.schemas import Activity, ActivityCreate, MutationResult
from app.services.sales_api_client import SalesApiClient, SalesApiError, get_sales_api_client

logger = logging.getLogger(__name__)


class ActivityValidationError(Exception):
    """Activity form is incomplete; message is user-facing"""


def validate_activity(activity: ActivityCreate) -> None:
    if not activity.sales_rep:
        raise ActivityValidationError("営業担当者を選択してください")
    if not [c for c in activity.contacts if c]:
        raise ActivityValidationError("担当者を選択してください")
    if not activity.reaction:
        raise ActivityValidationError("反応を選択してください")


def _parse_activities(data: Any) -> List[Activity]:
    activities: List[Activity] = []
    for row in data or []:
        if not isinstance(row, dict):
            continue
        try:
            activities.append(Activity.model_validate(row))
        except ValidationError as e:
            logger.warning(f"[Activity] Skipping unreadable activity: {e}")
    return activities


class ActivityLog:
    """Record, update, delete and list activities"""

    def __init__(self, client: Optional[SalesApiClient] = None):
        self.client = client or get_sales_api_client()

    async def list(self, sales_rep: Optional[str] = None) -> List[Activity]:
        activities = _parse_activities(await self.client.fetch_data("getActivities"))
        if sales_rep:
            activities = [a for a in activities if a.sales_rep == sales_rep]
        return activities

    async def _verify(self, result: MutationResult, check: Callable[[List[Activity]], bool]) -> MutationResult:
        try:
            activities = await self.list()
        except SalesApiError as e:
            logger.warning(f"[Activity] Verification fetch failed for {result.action}: {e}")
            result.detail = "送信済み（確認できませんでした）"
            return result

        result.verified = check(activities)
        if not result.verified:
            logger.warning(f"[Activity] {result.action} not visible after re-fetch")
        return result

    async def record(self, activity: ActivityCreate) -> MutationResult:
        validate_activity(activity)
        result = await self.client.post_mutation(activity.to_payload())

        def landed(activities: List[Activity]) -> bool:
            return any(
                a.company == activity.company
                and a.department == activity.department
                and a.sales_rep == activity.sales_rep
                and a.contact in activity.contacts
                for a in activities
            )

        return await self._verify(result, landed)

    async def update(self, activity_id: str, activity: ActivityCreate) -> MutationResult:
        if not activity.reaction:
            raise ActivityValidationError("反応を選択してください")

        payload = activity.to_payload()
        payload.pop("contacts")
        payload.update({
            "action": "updateActivity",
            "id": activity_id,
            "contact": activity.contacts[0] if activity.contacts else "",
        })
        result = await self.client.post_mutation(payload)

        def landed(activities: List[Activity]) -> bool:
            return any(
                a.id == activity_id and a.reaction == activity.reaction and a.note == activity.note
                for a in activities
            )

        return await self._verify(result, landed)

    async def delete(self, activity_id: str) -> MutationResult:
        result = await self.client.post_mutation({"action": "deleteActivity", "id": activity_id})
        return await self._verify(result, lambda activities: all(a.id != activity_id for a in activities))


# Singleton instance
_activity_log: Optional[ActivityLog] = None


def get_activity_log() -> ActivityLog:
    global _activity_log
    if _activity_log is None:
        _activity_log = ActivityLog()
    return _activity_log
