import pytest
from fastapi.testclient import TestClient

import main
from app.routers import realtime
from app.services.action_list import ActionListService, get_action_list_service
from app.services.activity_log import ActivityLog, get_activity_log
from app.services.analysis_service import AnalysisService, get_analysis_service
from app.services.dashboard import DashboardService, get_dashboard_service
from app.services.master_data import MasterDataService, get_master_data_service
from app.services.performance import PerformanceService, get_performance_service


@pytest.fixture()
def analysis(fake_api, sales_client, dataset_cache):
    fake_api.on("getCustomerPhones", {"success": True, "data": {"phones": {"東京": "03-1111-2222"}, "branchOrder": ["東京"]}})
    return AnalysisService(cache=dataset_cache, client=sales_client)


@pytest.fixture()
def client(analysis, sales_client, memory_store, monkeypatch):
    app = main.app
    app.dependency_overrides[get_analysis_service] = lambda: analysis
    app.dependency_overrides[get_master_data_service] = lambda: MasterDataService(client=sales_client, store=memory_store)
    app.dependency_overrides[get_activity_log] = lambda: ActivityLog(client=sales_client)
    action_service = ActionListService(client=sales_client)
    app.dependency_overrides[get_action_list_service] = lambda: action_service
    app.dependency_overrides[get_performance_service] = lambda: PerformanceService(client=sales_client, store=memory_store)
    app.dependency_overrides[get_dashboard_service] = lambda: DashboardService(client=sales_client)
    monkeypatch.setattr(realtime, "get_analysis_service", lambda: analysis)

    yield TestClient(app)

    app.dependency_overrides.clear()


@pytest.fixture()
def sales_rows(make_row):
    return [
        make_row(repName="山田 太郎", clientName="テスト商事", productCode="P-1", unitPrice=3000),
        make_row(repName="山田 太郎", clientName="テスト商事", productCode="P-2", unitPrice=1000),
        make_row(repName="鈴木 一郎", branch="大阪", clientName="大阪商会", unitPrice=2500),
    ]


def test_root_and_health(client):
    assert client.get("/").json()["status"] == "healthy"
    assert client.get("/health").json()["status"] == "healthy"


def test_search_before_load_is_conflict(client):
    response = client.post("/api/analysis/search", json={})
    assert response.status_code == 409


def test_load_and_drill_down(client, fake_api, sales_rows):
    fake_api.on("getSalesAnalysisData", {"success": True, "data": sales_rows})

    load = client.post("/api/analysis/load")
    assert load.status_code == 200
    assert load.json()["record_count"] == 3
    assert load.json()["cache_persisted"] is True

    search = client.post("/api/analysis/search", json={"abbr": "TK"})
    body = search.json()
    assert body["outcome"] == "ok"
    assert [r["key"] for r in body["view"]["rows"]] == ["山田", "鈴木"]
    assert body["view"]["rows"][0]["phone"] == "03-1111-2222"

    clients = client.post("/api/analysis/select/rep/山田").json()
    assert clients["level"] == "client"
    assert clients["rows"][0]["total_amount"] == 4000

    products = client.post("/api/analysis/select/client/テスト商事").json()
    assert products["level"] == "product"
    assert [r["key"] for r in products["rows"]] == ["P-1", "P-2"]

    sorted_view = client.post("/api/analysis/sort/total_amount").json()
    assert [r["key"] for r in sorted_view["rows"]] == ["P-2", "P-1"]

    assert client.post("/api/analysis/back").json()["level"] == "client"
    assert client.get("/api/analysis/view").json()["title"] == "山田"


def test_no_match_outcome(client, fake_api, sales_rows):
    fake_api.on("getSalesAnalysisData", {"success": True, "data": sales_rows})
    client.post("/api/analysis/load")

    body = client.post("/api/analysis/search", json={"start_year_month": "2030/01"}).json()

    assert body["outcome"] == "no_match"
    assert body["view"]["rows"] == []


def test_drill_errors_map_to_status_codes(client, fake_api, sales_rows):
    fake_api.on("getSalesAnalysisData", {"success": True, "data": sales_rows})
    client.post("/api/analysis/load")

    assert client.post("/api/analysis/select/client/テスト商事").status_code == 400
    client.post("/api/analysis/search", json={})
    assert client.post("/api/analysis/select/rep/佐藤").status_code == 404
    assert client.post("/api/analysis/sort/bogus").status_code == 400


def test_load_failure_returns_server_message(client, fake_api):
    fake_api.on("getSalesAnalysisData", {"success": False, "error": "シートが見つかりません"})

    response = client.post("/api/analysis/load")

    assert response.status_code == 502
    assert response.json()["detail"] == "シートが見つかりません"


def test_suggestions_and_selection(client, fake_api, sales_rows):
    fake_api.on("getSalesAnalysisData", {"success": True, "data": sales_rows})
    client.post("/api/analysis/load")

    suggestions = client.get("/api/analysis/suggest/clients", params={"q": "テスト"}).json()["suggestions"]
    assert suggestions[0]["normalized_name"] == "テスト商事"
    assert suggestions[0]["count"] == 2

    selection = client.post("/api/analysis/selection/rep", json={"key": "鈴木"}).json()
    assert selection["rep_family_name"] == "鈴木"

    view = client.post("/api/analysis/search", json={}).json()["view"]
    assert [r["key"] for r in view["rows"]] == ["鈴木"]

    assert client.delete("/api/analysis/selection").json()["rep_family_name"] is None


def test_filters_and_phone_lookup(client, fake_api, sales_rows):
    fake_api.on("getSalesAnalysisData", {"success": True, "data": sales_rows})
    client.post("/api/analysis/load")

    filters = client.get("/api/analysis/filters").json()
    assert filters["branches"] == ["東京", "大阪"]
    assert filters["default_end_year_month"] == "2025/01"

    assert client.get("/api/analysis/phones/東京").json()["phone"] == "03-1111-2222"
    assert client.get("/api/analysis/phones/大阪").status_code == 404


def test_mode_switch_and_status(client):
    response = client.post("/api/analysis/mode/order")
    assert response.json()["mode"] == "order"

    status = client.get("/api/analysis/status").json()
    assert status["mode"] == "order"
    assert status["loaded"] is False

    assert client.post("/api/analysis/mode/unknown").status_code == 422


def test_freshness_endpoint(client, fake_api, sales_rows):
    fake_api.on("getSalesAnalysisData", {"success": True, "data": sales_rows})
    fake_api.on("getSheetLastModified", {"success": True, "data": {"lastModified": "2999-01-01T00:00:00Z"}})
    client.post("/api/analysis/load")

    body = client.get("/api/analysis/freshness").json()

    assert body["is_stale"] is True
    assert body["notice"]
    assert client.get("/api/analysis/status").json()["cache"]["is_stale"] is True


def test_activity_validation_is_422(client):
    response = client.post("/api/master/activities", json={
        "datetime": "2025-01-12T09:30",
        "sales_rep": "山田",
        "contacts": ["佐藤"],
        "reaction": "",
    })

    assert response.status_code == 422
    assert response.json()["detail"] == "反応を選択してください"


def test_master_data_endpoint(client, fake_api):
    fake_api.on("getAllMasterData", {"success": True, "data": {"customers": ["テスト商事"]}})

    body = client.get("/api/master/").json()

    assert body["data"]["customers"] == ["テスト商事"]
    assert body["cache"]["age_text"] == "0分前"


def test_action_list_endpoint(client, fake_api):
    fake_api.on("getActionList", {"success": True, "data": [
        {"id": 1, "yearMonth": "2025年2月", "salesRep": "山田", "status": "completed", "daysSince": 3},
        {"id": 2, "yearMonth": "2025年2月", "salesRep": "鈴木", "status": "pending", "daysSince": None},
    ]})

    body = client.get("/api/actions/", params={"year": 2025, "month": 2, "sort_by": "daysSince"}).json()

    assert body["year_month"] == "2025年2月"
    assert (body["completed"], body["total"]) == (1, 2)
    assert [item["id"] for item in body["items"]] == ["2", "1"]
    assert body["items"][0]["statusLabel"] == "未着手"
    assert body["prev"] == {"year": 2025, "month": 1}

    update = client.put("/api/actions/status", json={"year_month": "2025年2月", "contact_id": "2", "status": "skip"})
    assert update.status_code == 200
    assert update.json()["accepted"] is True


def test_websocket_sends_cache_status_on_connect(client):
    with client.websocket_connect("/api/realtime/ws") as websocket:
        message = websocket.receive_json()

    assert message["type"] == "cache_status"
    assert message["data"]["has_cache"] is False


def test_rep_missing_after_backfill_is_404(client, fake_api, make_row):
    fake_api.on("getSalesAnalysisData", {"success": True, "data": [
        make_row(repName="山田 太郎", isSummary=True, productCode=""),
        make_row(repName="鈴木 一郎"),
    ]})
    fake_api.on("getOrderDetailsByRep", {"success": True, "data": []})
    client.post("/api/analysis/load")
    client.post("/api/analysis/search", json={})

    response = client.post("/api/analysis/select/rep/山田")

    assert response.status_code == 404
    assert response.json()["detail"] == "データの更新後に担当者が見つかりませんでした"


def test_fractional_amounts_are_json_numbers(client, fake_api, make_row):
    fake_api.on("getSalesAnalysisData", {"success": True, "data": [
        make_row(unitPrice=1000.5),
        make_row(unitPrice=1000.5),
    ]})
    client.post("/api/analysis/load")

    view = client.post("/api/analysis/search", json={}).json()["view"]

    assert view["rows"][0]["total_amount"] == 2001
    assert view["total_amount"] == 2001


def test_performance_table_and_rep_detail(client, fake_api):
    fake_api.on("getPerformanceData", {"success": True, "data": [
        {"orderYearMonth": "2025/01", "customerName": "テスト販売", "customerRep": "山田",
         "clientName": "テスト商事", "orderCount": 2, "salesAmount": 1500.5},
        {"orderYearMonth": "2025/02", "customerName": "大阪販売", "customerRep": "佐藤",
         "clientName": "大阪商会", "orderCount": 1, "salesAmount": 800},
    ]})
    fake_api.on("getPerformanceRawData", {"success": True, "data": [
        {"customerRep": "山田", "clientName": "テスト商事", "vehicleName": "プリウス", "productCode": "NV-1",
         "productMajor": 2, "productMiddle": "S", "productMinor": "C", "makerCode": 1001, "orderNo": "A-1"},
    ]})

    table = client.get("/api/performance/", params={"customer": "テスト販売"}).json()
    assert table["source"] == "api"
    assert table["customers"] == ["テスト販売", "大阪販売"]
    assert table["reps"] == ["山田"]
    assert [r["customerRep"] for r in table["rows"]] == ["山田"]
    assert table["total"] == {"order_count": 2, "sales_amount": 1500.5}

    everyone = client.get("/api/performance/", params={"sort_by": "salesAmount", "direction": "asc"}).json()
    assert everyone["source"] == "cache"
    assert [r["salesAmount"] for r in everyone["rows"]] == [800, 1500.5]

    assert client.get("/api/performance/reps", params={"customer": "大阪販売"}).json()["reps"] == ["佐藤"]

    detail = client.get("/api/performance/reps/山田/detail").json()
    assert detail["navi"][0]["order_count"] == 1
    assert detail["vehicles"][0]["vehicle_name"] == "プリウス"

    assert client.delete("/api/performance/cache").json()["cleared"] is True
    assert client.get("/api/performance/").json()["source"] == "api"


def test_performance_fetch_failure_is_502(client, fake_api):
    fake_api.on("getPerformanceData", {"success": False, "error": "シートが見つかりません"})

    response = client.get("/api/performance/")

    assert response.status_code == 502
    assert "シートが見つかりません" in response.json()["detail"]


def test_performance_rejects_unknown_sort_column(client):
    assert client.get("/api/performance/", params={"sort_by": "vehicleName"}).status_code == 422


def test_dashboard_month(client, fake_api):
    fake_api.on("getGoals", {"success": True, "data": {"テスト商事": 2}})
    fake_api.on("getActivities", {"success": True, "data": [
        {"id": 1, "datetime": "2025-03-04T10:00", "salesRep": "山田", "company": "テスト商事 本社", "met": "○"},
        {"id": 2, "datetime": "2025-03-05T10:00", "salesRep": "山田", "company": "大阪商会", "met": "×"},
    ]})

    view = client.get("/api/dashboard/", params={"year": 2025, "month": 3, "result": "○"}).json()

    assert view["year_month"] == "2025年3月"
    assert [c["company"] for c in view["companies"]] == ["テスト商事", "大阪商会"]
    assert view["companies"][0]["progress"] == 50
    assert view["total"]["total_attack"] == 2
    assert [v["date_label"] for v in view["visits"]] == ["3月4日"]


def test_dashboard_activity_failure_is_502(client, fake_api):
    fake_api.on("getGoals", {"success": True, "data": {}})
    fake_api.on("getActivities", {"success": False, "error": "読み込みに失敗"})

    response = client.get("/api/dashboard/", params={"year": 2025, "month": 3})

    assert response.status_code == 502
    assert client.get("/api/dashboard/", params={"result": "?"}).status_code == 422
