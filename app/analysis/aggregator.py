"""
Hierarchical Aggregator

Three cascading group-by-and-sum passes for the sales summary:
- Tier 1: by representative (family name, merges the same person across branches)
- Tier 2: by client (normalized name) within one representative
- Tier 3: by product code within one client

Amounts are summed as Decimals at every tier, so each tier's totals add up
exactly to its parent's, fractional yen included.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Sequence, TypeVar

from app.models.enums import SortDirection
from app.models.schemas import TransactionRecord
from app.services.text_normalizer import (
    extract_family_name,
    normalize_client_name,
    to_full_width_kana,
)

OTHER_PRODUCT_KEY = "その他"

DEFAULT_SORT_FIELD = "total_amount"

Row = TypeVar("Row")


@dataclass
class RepSummary:
    """Tier 1: totals per representative"""
    rep_last_name: str
    rep_full_name: str
    abbr: str
    branch: str
    customer_name: str
    client_name: str
    total_amount: Decimal = Decimal(0)
    items: List[TransactionRecord] = field(default_factory=list)

    @property
    def key(self) -> str:
        return self.rep_last_name

    @property
    def record_count(self) -> int:
        return len(self.items)

    @property
    def needs_backfill(self) -> bool:
        # Summary rows stand in for detail rows not fetched yet
        return any(item.is_summary for item in self.items)

    def to_dict(self, phone: Optional[str] = None) -> Dict[str, Any]:
        return {
            "key": self.key,
            "rep_last_name": self.rep_last_name,
            "rep_full_name": self.rep_full_name,
            "abbr": self.abbr,
            "branch": self.branch,
            "total_amount": self.total_amount,
            "record_count": self.record_count,
            "needs_backfill": self.needs_backfill,
            "phone": phone,
        }


@dataclass
class ClientSummary:
    """Tier 2: totals per client for one representative"""
    client_normalized: str
    client_name: str
    total_amount: Decimal = Decimal(0)
    items: List[TransactionRecord] = field(default_factory=list)

    @property
    def key(self) -> str:
        return self.client_normalized

    @property
    def record_count(self) -> int:
        return len(self.items)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "client_name": self.client_name,
            "client_normalized": self.client_normalized,
            "total_amount": self.total_amount,
            "record_count": self.record_count,
        }


@dataclass
class ProductSummary:
    """Tier 3: quantity and amount per product for one client"""
    product_key: str
    product_code: str
    product_name: str
    total_quantity: int = 0
    total_amount: Decimal = Decimal(0)

    @property
    def key(self) -> str:
        return self.product_key

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "product_code": self.product_code,
            "product_name": to_full_width_kana(self.product_name),
            "total_quantity": self.total_quantity,
            "total_amount": self.total_amount,
        }


def aggregate_by_rep(records: Iterable[TransactionRecord]) -> List[RepSummary]:
    """Tier 1 in first-seen order; display fields come from each rep's first row"""
    buckets: Dict[str, RepSummary] = {}

    for record in records:
        key = extract_family_name(record.rep_name)
        bucket = buckets.get(key)
        if bucket is None:
            bucket = RepSummary(
                rep_last_name=key,
                rep_full_name=record.rep_name,
                abbr=record.abbr,
                branch=record.branch,
                customer_name=record.customer_name,
                client_name=record.client_name,
            )
            buckets[key] = bucket

        bucket.total_amount += record.unit_price
        bucket.items.append(record)

    return list(buckets.values())


def aggregate_by_client(records: Iterable[TransactionRecord]) -> List[ClientSummary]:
    """Tier 2, sorted by total amount descending"""
    buckets: Dict[str, ClientSummary] = {}

    for record in records:
        key = normalize_client_name(record.client_name)
        bucket = buckets.get(key)
        if bucket is None:
            bucket = ClientSummary(client_normalized=key, client_name=record.client_name)
            buckets[key] = bucket

        bucket.total_amount += record.unit_price
        bucket.items.append(record)

    return sort_rows(list(buckets.values()), DEFAULT_SORT_FIELD, SortDirection.DESC)


def aggregate_by_product(records: Iterable[TransactionRecord]) -> List[ProductSummary]:
    """Tier 3, sorted by total amount descending; rows without a code share one bucket"""
    buckets: Dict[str, ProductSummary] = {}

    for record in records:
        key = record.product_code or OTHER_PRODUCT_KEY
        bucket = buckets.get(key)
        if bucket is None:
            bucket = ProductSummary(
                product_key=key,
                product_code=record.product_code,
                product_name=record.product_name,
            )
            buckets[key] = bucket

        bucket.total_quantity += record.quantity
        bucket.total_amount += record.unit_price

    return sort_rows(list(buckets.values()), DEFAULT_SORT_FIELD, SortDirection.DESC)


def _sort_value(row: Any, field_name: str) -> Any:
    value = getattr(row, field_name, None)
    if isinstance(value, str):
        return value.lower()
    if value is None:
        return ""
    return value


def sort_rows(rows: Sequence[Row], field_name: str, direction: SortDirection) -> List[Row]:
    """
    Stable sort on one field.

    Strings compare case-insensitively, numbers numerically; equal keys keep
    their current order in both directions.
    """
    if rows and not hasattr(rows[0], field_name):
        raise ValueError(f"Unknown sort field: {field_name}")
    return sorted(
        rows,
        key=lambda row: _sort_value(row, field_name),
        reverse=direction is SortDirection.DESC
    )


@dataclass
class SortState:
    field_name: str = DEFAULT_SORT_FIELD
    direction: SortDirection = SortDirection.DESC

    def toggle(self, field_name: str) -> "SortState":
        """Same field flips direction; a new field starts descending"""
        if field_name == self.field_name:
            return SortState(field_name=field_name, direction=self.direction.flipped())
        return SortState(field_name=field_name, direction=SortDirection.DESC)
