import asyncio
from datetime import timedelta
from decimal import Decimal

import httpx
import pytest

from app.models.enums import PerformanceSortKey, SortDirection
from app.models.schemas import PerformanceRawRow, PerformanceRow
from app.services.performance import (
    PERFORMANCE_CACHE_KEY,
    PERFORMANCE_RAW_CACHE_KEY,
    PerformanceService,
    aggregate_by_vehicle,
    customer_options,
    filter_performance,
    is_dash_cam,
    is_navi,
    performance_totals,
    rep_detail,
    rep_options,
    sort_performance,
)
from app.services.sales_api_client import SalesApiLogicalError


def _row(**fields):
    data = {
        "orderYearMonth": "2025/01",
        "customerName": "テスト販売",
        "customerRep": "山田",
        "clientName": "テスト商事",
        "orderCount": 1,
        "salesAmount": 1000,
    }
    data.update(fields)
    return data


def _raw(**fields):
    data = {
        "customerRep": "山田",
        "clientName": "テスト商事",
        "vehicleName": "プリウス",
        "productCode": "NV-1",
        "productMajor": 2,
        "productMiddle": "S",
        "productMinor": "C",
        "makerCode": "1001",
        "orderNo": "A-1",
    }
    data.update(fields)
    return PerformanceRawRow.model_validate(data)


@pytest.fixture()
def rows():
    return [
        PerformanceRow.model_validate(_row(orderYearMonth="2025/01", orderCount=3, salesAmount="12,000")),
        PerformanceRow.model_validate(_row(orderYearMonth="2025/03", customerRep="鈴木", orderCount=10, salesAmount=500)),
        PerformanceRow.model_validate(_row(orderYearMonth="2025/02", customerName="大阪販売", customerRep="佐藤", orderCount=3)),
        PerformanceRow.model_validate(_row(orderYearMonth="2024/12", customerName="", customerRep="", orderCount=None)),
    ]


@pytest.fixture()
def service(sales_client, memory_store):
    return PerformanceService(client=sales_client, store=memory_store)


def test_rows_coerce_sheet_values(rows):
    assert rows[0].sales_amount == Decimal("12000")
    assert rows[3].order_count == 0
    assert rows[0].model_dump(by_alias=True)["salesAmount"] == 12000


def test_customer_then_rep_cascade(rows):
    assert customer_options(rows) == ["テスト販売", "大阪販売"]
    assert rep_options(rows) == ["佐藤", "山田", "鈴木"]
    assert rep_options(rows, "テスト販売") == ["山田", "鈴木"]


def test_filters_are_exact_matches(rows):
    assert len(filter_performance(rows, customer="テスト販売")) == 2
    assert [r.customer_rep for r in filter_performance(rows, customer="テスト販売", rep="鈴木")] == ["鈴木"]
    assert filter_performance(rows, customer="テスト") == []


def test_default_sort_is_newest_month_first(rows):
    ordered = sort_performance(rows)
    assert [r.order_year_month for r in ordered] == ["2025/03", "2025/02", "2025/01", "2024/12"]


def test_numeric_columns_sort_as_numbers_and_ties_keep_order(rows):
    ordered = sort_performance(rows, PerformanceSortKey.ORDER_COUNT, SortDirection.ASC)
    assert [r.order_count for r in ordered] == [0, 3, 3, 10]
    assert [r.order_year_month for r in ordered[1:3]] == ["2025/01", "2025/02"]

    by_amount = sort_performance(rows, PerformanceSortKey.SALES_AMOUNT, SortDirection.DESC)
    assert [r.sales_amount for r in by_amount][0] == Decimal("12000")


def test_totals(rows):
    assert performance_totals(rows) == (16, Decimal("14500"))
    assert performance_totals([]) == (0, Decimal(0))


def test_navi_and_dash_cam_classification():
    assert is_navi(_raw())
    assert is_navi(_raw(productMajor="2"))
    assert not is_navi(_raw(makerCode=9080))
    assert not is_navi(_raw(productMinor="Y"))
    assert is_dash_cam(_raw(productMinor="Y", makerCode=9080))
    assert not is_dash_cam(_raw(productMajor=3, productMinor="Y"))


def test_vehicle_counts_distinct_orders_sorted_by_count():
    raw = [
        _raw(vehicleName="アクア", orderNo="A-1"),
        _raw(vehicleName="プリウス", orderNo="B-1"),
        _raw(vehicleName="プリウス", orderNo="B-1"),
        _raw(vehicleName="プリウス", orderNo="B-2"),
        _raw(vehicleName="アクア", orderNo=""),
    ]

    counts = aggregate_by_vehicle(raw, "山田")

    assert [(c.vehicle_name, c.order_count) for c in counts] == [("プリウス", 2), ("アクア", 1)]


def test_rep_detail_splits_navi_dash_cam_and_vehicles():
    raw = [
        _raw(productCode="NV-1", orderNo="1"),
        _raw(productCode="NV-1", orderNo="2"),
        _raw(productCode="DR-1", productMinor="Y", orderNo="3"),
        _raw(productCode="NV-9", makerCode="9080", orderNo="4"),
        _raw(customerRep="鈴木", orderNo="5"),
    ]

    detail = rep_detail(raw, "山田")

    assert detail["raw_available"] is True
    assert detail["navi"] == [{
        "customer_rep": "山田", "client_name": "テスト商事", "vehicle_name": "プリウス",
        "order_count": 2, "product_code": "NV-1",
    }]
    assert [d["product_code"] for d in detail["dash_cam"]] == ["DR-1"]
    assert detail["vehicles"][0]["order_count"] == 4
    assert "product_code" not in detail["vehicles"][0]


def test_rep_detail_without_order_lines():
    detail = rep_detail([], "山田")
    assert detail["raw_available"] is False
    assert detail["navi"] == detail["dash_cam"] == detail["vehicles"] == []


def test_load_caches_both_datasets(service, fake_api, memory_store):
    fake_api.on("getPerformanceData", {"success": True, "data": [_row(), "junk"]})
    fake_api.on("getPerformanceRawData", {"success": True, "data": [_raw().model_dump(by_alias=True)]})

    async def scenario():
        first = await service.load()
        second = await service.load()
        return first, second, await memory_store.get(PERFORMANCE_RAW_CACHE_KEY)

    first, second, raw_entry = asyncio.run(scenario())

    assert first.source == "api"
    assert second.source == "cache"
    assert second.rows == first.rows
    assert len(second.raw) == 1
    assert raw_entry["data"][0]["orderNo"] == "A-1"
    assert fake_api.count("getPerformanceData") == 1


def test_order_line_failure_keeps_the_table(service, fake_api):
    fake_api.on("getPerformanceData", {"success": True, "data": [_row()]})
    fake_api.on("getPerformanceRawData", httpx.Response(500))

    data = asyncio.run(service.load())

    assert len(data.rows) == 1
    assert data.raw == []


def test_table_failure_raises_server_message(service, fake_api):
    fake_api.on("getPerformanceData", {"success": False, "error": "シートが見つかりません"})

    with pytest.raises(SalesApiLogicalError, match="シートが見つかりません"):
        asyncio.run(service.load())


def test_expired_cache_fetches_again(sales_client, memory_store, fake_api):
    fake_api.on("getPerformanceData", {"success": True, "data": [_row()]})
    fake_api.on("getPerformanceRawData", {"success": True, "data": []})
    service = PerformanceService(client=sales_client, store=memory_store, ttl=timedelta(hours=24))

    async def scenario():
        await service.load()
        entry = await memory_store.get(PERFORMANCE_CACHE_KEY)
        entry["timestamp"] = "2000-01-01T00:00:00+00:00"
        await memory_store.set(PERFORMANCE_CACHE_KEY, entry)
        return await service.load()

    data = asyncio.run(scenario())

    assert data.source == "api"
    assert fake_api.count("getPerformanceData") == 2


def test_clear_drops_both_keys(service, fake_api, memory_store):
    fake_api.on("getPerformanceData", {"success": True, "data": [_row()]})
    fake_api.on("getPerformanceRawData", {"success": True, "data": []})

    async def scenario():
        await service.load()
        cleared = await service.clear()
        return cleared, await memory_store.get(PERFORMANCE_CACHE_KEY), await memory_store.get(PERFORMANCE_RAW_CACHE_KEY)

    cleared, table, raw = asyncio.run(scenario())

    assert cleared is True
    assert table is None and raw is None
