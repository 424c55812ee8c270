from decimal import Decimal

import pytest

from app.analysis.aggregator import (
    OTHER_PRODUCT_KEY,
    SortState,
    aggregate_by_client,
    aggregate_by_product,
    aggregate_by_rep,
    sort_rows,
)
from app.models.enums import SortDirection


@pytest.fixture()
def records(make_record):
    return [
        make_record(repName="山田 太郎", branch="東京", clientName="株式会社テスト", productCode="P-1", unitPrice=1000, quantity=2),
        make_record(repName="鈴木 一郎", branch="大阪", clientName="大阪商会", productCode="P-2", unitPrice=-300, quantity=1),
        make_record(repName="山田 太郎", branch="横浜", clientName="(株)テスト", productCode="P-1", unitPrice=500, quantity=1),
        make_record(repName="山田 花子", branch="東京", clientName="テストラボ", productCode="", productName="値引", unitPrice=-50),
        make_record(repName="鈴木 一郎", branch="大阪", clientName="大阪商会", productCode="P-3", unitPrice=2000, quantity=4),
    ]


def test_rep_totals_add_up_to_filtered_total(records):
    reps = aggregate_by_rep(records)
    assert sum(r.total_amount for r in reps) == sum(r.unit_price for r in records)
    assert sum(r.record_count for r in reps) == len(records)


def test_reps_merge_by_family_name_in_first_seen_order(records):
    reps = aggregate_by_rep(records)

    assert [r.rep_last_name for r in reps] == ["山田", "鈴木"]
    yamada = reps[0]
    assert yamada.total_amount == 1450
    assert yamada.branch == "東京"
    assert yamada.rep_full_name == "山田 太郎"


def test_client_totals_add_up_to_rep_total(records):
    for rep in aggregate_by_rep(records):
        clients = aggregate_by_client(rep.items)
        assert sum(c.total_amount for c in clients) == rep.total_amount


def test_clients_group_by_normalized_name_descending(records):
    yamada = aggregate_by_rep(records)[0]

    clients = aggregate_by_client(yamada.items)

    assert [c.key for c in clients] == ["テスト", "テストラボ"]
    assert clients[0].client_name == "株式会社テスト"
    assert clients[0].total_amount == 1500


def test_product_totals_add_up_to_client_total(records):
    for rep in aggregate_by_rep(records):
        for client in aggregate_by_client(rep.items):
            products = aggregate_by_product(client.items)
            assert sum(p.total_amount for p in products) == client.total_amount


def test_products_without_code_share_other_bucket(make_record):
    products = aggregate_by_product([
        make_record(productCode="", productName="送料", unitPrice=100),
        make_record(productCode="", productName="値引", unitPrice=-20),
        make_record(productCode="P-1", unitPrice=50, quantity=3),
    ])

    assert [p.key for p in products] == [OTHER_PRODUCT_KEY, "P-1"]
    assert products[0].total_amount == 80
    assert products[1].total_quantity == 3


def test_product_names_shown_full_width(make_record):
    row = aggregate_by_product([make_record(productName="ﾃｽﾄ商品")])[0].to_dict()
    assert row["product_name"] == "テスト商品"


def test_sort_rows_strings_case_insensitive(make_record):
    products = aggregate_by_product([
        make_record(productCode="b-2"),
        make_record(productCode="A-1"),
        make_record(productCode="c-3"),
    ])

    ordered = sort_rows(products, "product_code", SortDirection.ASC)

    assert [p.product_code for p in ordered] == ["A-1", "b-2", "c-3"]


def test_sort_rows_is_stable_for_ties(make_record):
    products = aggregate_by_product([
        make_record(productCode="X", unitPrice=100),
        make_record(productCode="Y", unitPrice=100),
        make_record(productCode="Z", unitPrice=100),
    ])

    assert [p.key for p in sort_rows(products, "total_amount", SortDirection.ASC)] == ["X", "Y", "Z"]
    assert [p.key for p in sort_rows(products, "total_amount", SortDirection.DESC)] == ["X", "Y", "Z"]


def test_sort_rows_rejects_unknown_field(records):
    with pytest.raises(ValueError):
        sort_rows(aggregate_by_rep(records), "no_such_field", SortDirection.ASC)


def test_sort_state_toggle():
    state = SortState()
    assert (state.field_name, state.direction) == ("total_amount", SortDirection.DESC)

    flipped = state.toggle("total_amount")
    assert flipped.direction is SortDirection.ASC

    other = flipped.toggle("client_name")
    assert (other.field_name, other.direction) == ("client_name", SortDirection.DESC)


def test_fractional_amounts_sum_exactly_through_every_tier(make_record):
    records = [
        make_record(unitPrice=1000.5),
        make_record(unitPrice=1000.5),
        make_record(unitPrice="0.1", productCode="P-2"),
        make_record(unitPrice=0.2, productCode="P-2"),
    ]

    rep, = aggregate_by_rep(records)
    client, = aggregate_by_client(rep.items)
    products = aggregate_by_product(client.items)

    assert rep.total_amount == Decimal("2001.3")
    assert client.total_amount == Decimal("2001.3")
    assert [p.total_amount for p in products] == [Decimal("2001"), Decimal("0.3")]
