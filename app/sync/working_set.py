"""
Working Set

The in-memory dataset for one data mode. Replaced wholesale on load; the only
partial change is swapping one representative's summary rows for detail rows,
which also returns a new WorkingSet.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import List, Optional, Sequence, Tuple

from app.models.enums import DataMode
from app.models.schemas import ReferenceData, TransactionRecord


def summary_rep_names(records: Sequence[TransactionRecord]) -> List[str]:
    """Distinct rep names (first-seen order) that still have summary rows"""
    names: List[str] = []
    for record in records:
        if record.is_summary and record.rep_name not in names:
            names.append(record.rep_name)
    return names


@dataclass
class LoadProgress:
    """Progress after one fetched chunk"""
    loaded: int
    total: int

    @property
    def fraction(self) -> float:
        if self.total <= 0:
            return 0.0
        return min(self.loaded / self.total, 1.0)

    @property
    def percent(self) -> int:
        return round(self.fraction * 100)


@dataclass(frozen=True)
class WorkingSet:
    """Loaded records plus reference data for one mode"""
    mode: DataMode
    records: Tuple[TransactionRecord, ...] = ()
    reference: ReferenceData = field(default_factory=ReferenceData)
    loaded_at: Optional[datetime] = None
    source: str = "empty"  # empty | cache | remote
    cache_persisted: bool = False

    @classmethod
    def empty(cls, mode: DataMode, reference: Optional[ReferenceData] = None) -> "WorkingSet":
        return cls(mode=mode, reference=reference or ReferenceData())

    @property
    def is_loaded(self) -> bool:
        return len(self.records) > 0

    def __len__(self) -> int:
        return len(self.records)

    def with_reference(self, reference: Optional[ReferenceData]) -> "WorkingSet":
        if reference is None:
            return self
        return replace(self, reference=reference)

    def replace_summary_rows(
        self,
        rep_name: str,
        detail_records: Sequence[TransactionRecord]
    ) -> "WorkingSet":
        """Drop summary rows for exactly `rep_name` and append fetched detail rows"""
        kept = tuple(
            r for r in self.records
            if not (r.rep_name == rep_name and r.is_summary)
        )
        return replace(self, records=kept + tuple(detail_records))
