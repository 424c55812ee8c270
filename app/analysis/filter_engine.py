"""
Filter Engine

Conjunctive filters over the loaded records, plus the option lists that
feed the filter controls.
"""

from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence

from app.models.schemas import TransactionRecord
from app.services.text_normalizer import extract_family_name, normalize_client_name


@dataclass(frozen=True)
class FilterCriteria:
    """All fields optional; set fields are ANDed"""
    start_year_month: Optional[str] = None
    end_year_month: Optional[str] = None
    abbr: Optional[str] = None
    branch: Optional[str] = None
    hq_flag: Optional[bool] = None
    client_key: Optional[str] = None  # normalized client name from a suggestion
    rep_family_name: Optional[str] = None

    def matches(self, record: TransactionRecord) -> bool:
        if self.start_year_month or self.end_year_month:
            if not record.regist_year_month:
                return False
            if self.start_year_month and record.regist_year_month < self.start_year_month:
                return False
            if self.end_year_month and record.regist_year_month > self.end_year_month:
                return False

        if self.abbr and record.abbr != self.abbr:
            return False
        if self.branch and record.branch != self.branch:
            return False
        if self.hq_flag is not None and record.hq_flag != self.hq_flag:
            return False

        if self.client_key and normalize_client_name(record.client_name) != self.client_key:
            return False
        if self.rep_family_name and extract_family_name(record.rep_name) != self.rep_family_name:
            return False

        return True


def filter_records(
    records: Iterable[TransactionRecord],
    criteria: FilterCriteria
) -> List[TransactionRecord]:
    """Order-preserving subset of records matching every set criterion"""
    return [r for r in records if criteria.matches(r)]


@dataclass
class FilterOptions:
    year_months: List[str] = field(default_factory=list)  # newest first
    abbrs: List[str] = field(default_factory=list)
    branches: List[str] = field(default_factory=list)

    @property
    def default_end_year_month(self) -> Optional[str]:
        return self.year_months[0] if self.year_months else None

    def to_dict(self) -> dict:
        return {
            "year_months": self.year_months,
            "default_end_year_month": self.default_end_year_month,
            "abbrs": self.abbrs,
            "branches": self.branches,
        }


def order_branches(branches: Iterable[str], branch_order: Sequence[str]) -> List[str]:
    """Canonical order first, then branches missing from it in first-seen order"""
    present: List[str] = []
    for branch in branches:
        if branch and branch not in present:
            present.append(branch)

    present_set = set(present)
    ordered = [b for b in branch_order if b in present_set]
    ordered_set = set(ordered)
    ordered.extend(b for b in present if b not in ordered_set)
    return ordered


def build_filter_options(
    records: Sequence[TransactionRecord],
    branch_order: Sequence[str] = (),
    abbr: Optional[str] = None
) -> FilterOptions:
    """Distinct year-months, abbreviations and branches (branches scoped to `abbr`)"""
    year_months = sorted({r.regist_year_month for r in records if r.regist_year_month}, reverse=True)
    abbrs = sorted({r.abbr for r in records if r.abbr})

    scoped = records if not abbr else [r for r in records if r.abbr == abbr]
    branches = order_branches((r.branch for r in scoped), branch_order)

    return FilterOptions(year_months=year_months, abbrs=abbrs, branches=branches)
