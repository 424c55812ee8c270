import asyncio

import httpx
import pytest

from app.models.schemas import ActivityCreate
from app.services.activity_log import ActivityLog, ActivityValidationError

ACTIVITIES = [
    {"id": 1, "datetime": "2025-01-10T10:00", "type": "訪問", "salesRep": "山田", "company": "テスト商事",
     "department": "営業部", "contact": "佐藤", "reaction": "好反応", "met": "○", "note": ""},
    {"id": 2, "datetime": "2025-01-11T15:00", "type": "電話", "salesRep": "鈴木", "company": "大阪商会",
     "department": "購買部", "contact": "田中", "reaction": "普通", "met": "×", "note": "再訪"},
]


def _activity(**overrides):
    fields = dict(
        datetime="2025-01-12T09:30",
        sales_rep="山田",
        company="テスト商事",
        department="営業部",
        contacts=["佐藤"],
        reaction="好反応",
    )
    fields.update(overrides)
    return ActivityCreate(**fields)


@pytest.fixture()
def activity_log(sales_client):
    return ActivityLog(client=sales_client)


def test_list_filters_by_sales_rep(activity_log, fake_api):
    fake_api.on("getActivities", {"success": True, "data": ACTIVITIES})

    everyone = asyncio.run(activity_log.list())
    suzuki = asyncio.run(activity_log.list(sales_rep="鈴木"))

    assert [a.id for a in everyone] == ["1", "2"]
    assert [a.company for a in suzuki] == ["大阪商会"]


@pytest.mark.parametrize("overrides, message", [
    ({"sales_rep": ""}, "営業担当者を選択してください"),
    ({"contacts": []}, "担当者を選択してください"),
    ({"reaction": ""}, "反応を選択してください"),
])
def test_incomplete_activity_rejected_before_sending(activity_log, fake_api, overrides, message):
    with pytest.raises(ActivityValidationError, match=message):
        asyncio.run(activity_log.record(_activity(**overrides)))
    assert fake_api.mutations == []


def test_record_sends_activity_and_verifies(activity_log, fake_api):
    stored = list(ACTIVITIES)

    def on_mutation(payload):
        for contact in payload["contacts"]:
            stored.append({"id": 3, "salesRep": payload["salesRep"], "company": payload["company"],
                           "department": payload["department"], "contact": contact,
                           "reaction": payload["reaction"]})

    fake_api.on_mutation = on_mutation
    fake_api.on("getActivities", lambda params: {"success": True, "data": stored})

    result = asyncio.run(activity_log.record(_activity(department="総務部")))

    assert fake_api.mutations[0]["action"] == "addActivity"
    assert fake_api.mutations[0]["salesRep"] == "山田"
    assert fake_api.mutations[0]["type"] == "訪問"
    assert result.accepted is True
    assert result.verified is True


def test_unverified_when_activity_missing_after_refetch(activity_log, fake_api):
    fake_api.on("getActivities", {"success": True, "data": ACTIVITIES})

    result = asyncio.run(activity_log.record(_activity(company="新規商事")))

    assert result.accepted is True
    assert result.verified is False


def test_verification_fetch_failure_leaves_result_unknown(activity_log, fake_api):
    fake_api.on("getActivities", httpx.Response(500))

    result = asyncio.run(activity_log.delete("1"))

    assert result.accepted is True
    assert result.verified is None
    assert result.detail


def test_delete_verified_when_gone(activity_log, fake_api):
    fake_api.on("getActivities", {"success": True, "data": ACTIVITIES[1:]})

    result = asyncio.run(activity_log.delete("1"))

    assert fake_api.mutations == [{"action": "deleteActivity", "id": "1"}]
    assert result.verified is True


def test_update_sends_single_contact(activity_log, fake_api):
    fake_api.on("getActivities", {"success": True, "data": ACTIVITIES})

    result = asyncio.run(activity_log.update("2", _activity(contacts=["田中"], reaction="普通", note="再訪")))

    payload = fake_api.mutations[0]
    assert payload["action"] == "updateActivity"
    assert payload["id"] == "2"
    assert payload["contact"] == "田中"
    assert "contacts" not in payload
    assert result.verified is True
