"""
Pydantic Models for Remote Data and Request/Response Validation

Wire-format aliases follow the remote spreadsheet API (camelCase).
Coercion happens here so the analysis layer can rely on field presence and type.
"""

import logging
import re
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Iterable, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator, model_validator

from app.models.enums import ActionStatus, ActivityType, DataMode

logger = logging.getLogger(__name__)

_YEAR_MONTH = re.compile(r"^(\d{4})[/\-](\d{1,2})")
_TRUE_STRINGS = {"true", "1", "yes", "○"}


def to_int(value: Any, default: int = 0) -> int:
    """Safely convert value to int (spreadsheet cells may be '1,200' or 1200.0)."""
    if value is None:
        return default
    if isinstance(value, str):
        value = value.replace(",", "").strip()
        if value == "":
            return default
    try:
        return int(float(value))
    except (ValueError, TypeError, OverflowError):
        return default


def to_amount(value: Any, default: Decimal = Decimal(0)) -> Decimal:
    """Exact currency amount; floats go through their shortest repr so 1000.5 stays 1000.5."""
    if value is None or isinstance(value, bool):
        return default
    if isinstance(value, str):
        value = value.replace(",", "").strip()
        if value == "":
            return default
    elif isinstance(value, float):
        value = repr(value)
    try:
        amount = Decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        return default
    return amount if amount.is_finite() else default


def amount_to_json(value: Decimal) -> Union[int, float]:
    """Decimal back to a plain JSON number"""
    if value == value.to_integral_value():
        return int(value)
    return float(value)


def _to_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value == 1
    if isinstance(value, str):
        return value.strip().lower() in _TRUE_STRINGS
    return False


def _to_str(value: Any) -> str:
    if value is None:
        return ""
    return str(value)


def normalize_year_month(value: Any) -> str:
    """Zero-padded "YYYY/MM" so lexical comparison orders months correctly."""
    text = _to_str(value).strip()
    match = _YEAR_MONTH.match(text)
    if not match:
        return text
    return f"{match.group(1)}/{int(match.group(2)):02d}"


# ============== Sales Data ==============

class TransactionRecord(BaseModel):
    """One row of sales analysis data (estimate or order)"""
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    regist_year_month: str = Field(default="", alias="registYearMonth", description="YYYY/MM")
    abbr: str = Field(default="", description="Abbreviation code")
    branch: str = Field(default="", description="Branch / department name")
    rep_name: str = Field(default="", alias="repName", description="Representative full name")
    client_name: str = Field(default="", alias="clientName", description="Billing entity")
    customer_name: str = Field(default="", alias="customerName", description="Ship-to customer")
    product_code: str = Field(default="", alias="productCode")
    product_name: str = Field(default="", alias="productName")
    quantity: int = 0
    unit_price: Decimal = Field(default=Decimal(0), alias="unitPrice", description="Signed amount (yen)")
    hq_flag: bool = Field(default=False, alias="hqFlag")
    is_summary: bool = Field(default=False, alias="isSummary", description="Placeholder pending detail rows")

    @field_validator("regist_year_month", mode="before")
    @classmethod
    def _coerce_year_month(cls, value: Any) -> str:
        return normalize_year_month(value)

    @field_validator(
        "abbr", "branch", "rep_name", "client_name", "customer_name", "product_code", "product_name",
        mode="before",
    )
    @classmethod
    def _coerce_text(cls, value: Any) -> str:
        return _to_str(value)

    @field_validator("quantity", mode="before")
    @classmethod
    def _coerce_quantity(cls, value: Any) -> int:
        return to_int(value)

    @field_validator("unit_price", mode="before")
    @classmethod
    def _coerce_amount(cls, value: Any) -> Decimal:
        return to_amount(value)

    @field_validator("hq_flag", "is_summary", mode="before")
    @classmethod
    def _coerce_flag(cls, value: Any) -> bool:
        return _to_bool(value)

    @field_serializer("unit_price")
    def _serialize_amount(self, value: Decimal) -> Union[int, float]:
        return amount_to_json(value)

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)


def parse_records(rows: Optional[Iterable[Any]]) -> List[TransactionRecord]:
    """Validate raw API/cache rows into records. Non-object rows are dropped."""
    records: List[TransactionRecord] = []
    skipped = 0
    for row in rows or []:
        if not isinstance(row, dict):
            skipped += 1
            continue
        records.append(TransactionRecord.model_validate(row))

    if skipped:
        logger.warning(f"[Schemas] Skipped {skipped} non-object rows")
    return records


class ReferenceData(BaseModel):
    """Branch phone numbers and canonical branch ordering"""
    model_config = ConfigDict(populate_by_name=True)

    phones: Dict[str, str] = Field(default_factory=dict)
    branch_order: List[str] = Field(default_factory=list, alias="branchOrder")

    @model_validator(mode="before")
    @classmethod
    def _accept_legacy_format(cls, data: Any) -> Any:
        # Legacy payload is a flat {branch: phone} mapping without ordering
        if isinstance(data, dict) and "phones" not in data:
            return {"phones": data, "branchOrder": []}
        return data

    @field_validator("phones", mode="before")
    @classmethod
    def _coerce_phones(cls, value: Any) -> Dict[str, str]:
        if not isinstance(value, dict):
            return {}
        return {str(k): _to_str(v) for k, v in value.items()}

    @field_validator("branch_order", mode="before")
    @classmethod
    def _coerce_branch_order(cls, value: Any) -> List[str]:
        if not isinstance(value, list):
            return []
        return [_to_str(v) for v in value if v]

    def phone_for(self, branch: str) -> Optional[str]:
        return self.phones.get(branch) or None

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)


# ============== Master Data / Activities ==============

class MasterData(BaseModel):
    """Company -> department -> contact hierarchy"""
    customers: List[str] = Field(default_factory=list)
    departments: Dict[str, List[str]] = Field(default_factory=dict)
    contacts: Dict[str, List[str]] = Field(default_factory=dict, description="Keyed '<company>_<department>'")

    @staticmethod
    def contact_key(company: str, department: str) -> str:
        return f"{company}_{department}"


class ContactCreate(BaseModel):
    """Add a contact to a company department"""
    company: str
    department: str
    contact_name: str = Field(..., min_length=1)


class ActivityCreate(BaseModel):
    """Visit / call activity record"""
    datetime: str = Field(..., description="Activity date-time (ISO 8601)")
    type: ActivityType = ActivityType.VISIT
    sales_rep: str = ""
    company: str = ""
    department: str = ""
    contacts: List[str] = Field(default_factory=list)
    reaction: str = ""
    met: str = "○"
    note: str = ""
    proposals: List[str] = Field(default_factory=list)

    def to_payload(self) -> Dict[str, Any]:
        return {
            "action": "addActivity",
            "datetime": self.datetime,
            "type": self.type.value,
            "salesRep": self.sales_rep,
            "company": self.company,
            "department": self.department,
            "contacts": self.contacts,
            "reaction": self.reaction,
            "met": self.met,
            "note": self.note,
            "proposals": self.proposals,
        }


class Activity(BaseModel):
    """Activity as returned by getActivities"""
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: str = ""
    datetime: str = ""
    type: str = ""
    sales_rep: str = Field(default="", alias="salesRep")
    company: str = ""
    department: str = ""
    contact: str = ""
    reaction: str = ""
    met: str = ""
    note: str = ""

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> str:
        return _to_str(value)


# ============== Action List ==============

class ActionItem(BaseModel):
    """One follow-up in the monthly action list"""
    model_config = ConfigDict(populate_by_name=True)

    id: str
    year_month: str = Field(..., alias="yearMonth", description="e.g. 2025年1月")
    company: str = ""
    department: str = ""
    contact_name: str = Field(default="", alias="contactName")
    sales_rep: str = Field(default="", alias="salesRep")
    tel: str = ""
    status: str = ActionStatus.PENDING.value
    last_visit_date: Optional[str] = Field(default=None, alias="lastVisitDate")
    days_since: Optional[int] = Field(default=None, alias="daysSince")
    visit_status: str = Field(default="distant", alias="visitStatus")

    @field_validator("id", "company", "department", "contact_name", "sales_rep", "tel", mode="before")
    @classmethod
    def _coerce_text(cls, value: Any) -> str:
        return _to_str(value)

    @field_validator("status", mode="before")
    @classmethod
    def _coerce_status(cls, value: Any) -> str:
        return _to_str(value) or ActionStatus.PENDING.value


class ActionStatusUpdate(BaseModel):
    year_month: str
    contact_id: str
    status: ActionStatus


# ============== Past Performance ==============

class PerformanceRow(BaseModel):
    """Monthly order totals per customer / rep / client (getPerformanceData)"""
    model_config = ConfigDict(populate_by_name=True)

    order_year_month: str = Field(default="", alias="orderYearMonth")
    customer_name: str = Field(default="", alias="customerName")
    customer_rep: str = Field(default="", alias="customerRep")
    client_name: str = Field(default="", alias="clientName")
    order_count: int = Field(default=0, alias="orderCount")
    sales_amount: Decimal = Field(default=Decimal(0), alias="salesAmount")

    @field_validator("order_year_month", "customer_name", "customer_rep", "client_name", mode="before")
    @classmethod
    def _coerce_text(cls, value: Any) -> str:
        return _to_str(value)

    @field_validator("order_count", mode="before")
    @classmethod
    def _coerce_count(cls, value: Any) -> int:
        return to_int(value)

    @field_validator("sales_amount", mode="before")
    @classmethod
    def _coerce_amount(cls, value: Any) -> Decimal:
        return to_amount(value)

    @field_serializer("sales_amount")
    def _serialize_amount(self, value: Decimal) -> Union[int, float]:
        return amount_to_json(value)


class PerformanceRawRow(BaseModel):
    """One order line with product classification (getPerformanceRawData)"""
    model_config = ConfigDict(populate_by_name=True)

    customer_rep: str = Field(default="", alias="customerRep")
    client_name: str = Field(default="", alias="clientName")
    vehicle_name: str = Field(default="", alias="vehicleName")
    product_code: str = Field(default="", alias="productCode")
    product_major: str = Field(default="", alias="productMajor")
    product_middle: str = Field(default="", alias="productMiddle")
    product_minor: str = Field(default="", alias="productMinor")
    maker_code: str = Field(default="", alias="makerCode")
    order_no: str = Field(default="", alias="orderNo")

    @field_validator("*", mode="before")
    @classmethod
    def _coerce_text(cls, value: Any) -> str:
        # Sheet cells arrive as numbers for codes like 2 or 9080
        if isinstance(value, float) and value.is_integer():
            return str(int(value))
        return _to_str(value)


# ============== Analysis Requests / Responses ==============

class SearchRequest(BaseModel):
    """Filter criteria for the sales summary"""
    start_year_month: Optional[str] = Field(None, description="Inclusive lower bound (YYYY/MM)")
    end_year_month: Optional[str] = Field(None, description="Inclusive upper bound (YYYY/MM)")
    abbr: Optional[str] = None
    branch: Optional[str] = None
    hq_only: bool = Field(default=False, description="Only headquarters rows")


class SelectionRequest(BaseModel):
    """Commit a suggestion as the active cross-cutting filter"""
    key: str = Field(..., min_length=1, description="Normalized client name or rep family name")
    display_name: Optional[str] = None


class MutationResult(BaseModel):
    """
    Outcome of a fire-and-forget mutation.

    The backend gives no readable response, so `accepted` is always optimistic;
    `verified` reflects the follow-up re-fetch.
    """
    action: str
    accepted: bool = True
    verified: Optional[bool] = None
    detail: Optional[str] = None


class LoadResponse(BaseModel):
    mode: DataMode
    record_count: int
    cache_persisted: bool
    progress: List[float] = Field(default_factory=list)
    message: str
