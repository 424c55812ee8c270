"""
Drill-Down Session

Explicit state machine for the rep -> client -> product drill-down:

    NONE --reset--> REP --select_rep--> CLIENT --select_client--> PRODUCT
    PRODUCT --back--> CLIENT --back--> REP --back--> NONE

Re-running the filters always goes through reset() and starts again at REP.
"""

from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence

from app.analysis.aggregator import (
    ClientSummary,
    ProductSummary,
    RepSummary,
    SortState,
    aggregate_by_client,
    aggregate_by_product,
    aggregate_by_rep,
    sort_rows,
)
from app.models.enums import DrillLevel
from app.models.schemas import ReferenceData, TransactionRecord
from app.sync.working_set import summary_rep_names


class InvalidTransition(Exception):
    """Operation not allowed at the current drill level"""


class BackfillRequired(Exception):
    """Selected rep bucket still holds summary rows; detail rows must be fetched first"""

    def __init__(self, summary: RepSummary):
        self.summary = summary
        self.rep_names = summary_rep_names(summary.items)
        super().__init__(f"Detail rows required for {summary.rep_last_name}")


class DrillDownSession:
    """Holds the tier rows and selections for one search"""

    def __init__(self):
        self.level = DrillLevel.NONE
        self.rep_rows: List[RepSummary] = []
        self.client_rows: List[ClientSummary] = []
        self.product_rows: List[ProductSummary] = []
        self.selected_rep: Optional[RepSummary] = None
        self.selected_client: Optional[ClientSummary] = None
        self.sort_states: Dict[DrillLevel, SortState] = {}

    def _require(self, level: DrillLevel, operation: str) -> None:
        if self.level != level:
            raise InvalidTransition(f"{operation} requires {level.value} view (current: {self.level.value})")

    def _sorted(self, level: DrillLevel, rows: Sequence[Any]) -> List[Any]:
        state = self.sort_states.setdefault(level, SortState())
        return sort_rows(rows, state.field_name, state.direction)

    def reset(self, records: Sequence[TransactionRecord]) -> List[RepSummary]:
        """Recompute Tier 1 from scratch (default sort: total amount descending)"""
        self.sort_states = {}
        self.rep_rows = self._sorted(DrillLevel.REP, aggregate_by_rep(records))
        self.client_rows = []
        self.product_rows = []
        self.selected_rep = None
        self.selected_client = None
        self.level = DrillLevel.REP
        return self.rep_rows

    def find_rep(self, rep_key: str) -> RepSummary:
        for row in self.rep_rows:
            if row.key == rep_key:
                return row
        raise KeyError(rep_key)

    def find_client(self, client_key: str) -> ClientSummary:
        for row in self.client_rows:
            if row.key == client_key:
                return row
        raise KeyError(client_key)

    def select_rep(self, rep_key: str) -> List[ClientSummary]:
        self._require(DrillLevel.REP, "select_rep")
        rep = self.find_rep(rep_key)
        if rep.needs_backfill:
            raise BackfillRequired(rep)

        self.sort_states.pop(DrillLevel.CLIENT, None)
        self.client_rows = self._sorted(DrillLevel.CLIENT, aggregate_by_client(rep.items))
        self.selected_rep = rep
        self.level = DrillLevel.CLIENT
        return self.client_rows

    def select_client(self, client_key: str) -> List[ProductSummary]:
        self._require(DrillLevel.CLIENT, "select_client")
        client = self.find_client(client_key)

        self.sort_states.pop(DrillLevel.PRODUCT, None)
        self.product_rows = self._sorted(DrillLevel.PRODUCT, aggregate_by_product(client.items))
        self.selected_client = client
        self.level = DrillLevel.PRODUCT
        return self.product_rows

    def back(self) -> DrillLevel:
        if self.level == DrillLevel.PRODUCT:
            self.product_rows = []
            self.selected_client = None
            self.level = DrillLevel.CLIENT
        elif self.level == DrillLevel.CLIENT:
            self.client_rows = []
            self.selected_rep = None
            self.level = DrillLevel.REP
        elif self.level == DrillLevel.REP:
            self.rep_rows = []
            self.sort_states = {}
            self.level = DrillLevel.NONE
        else:
            raise InvalidTransition("Nothing to go back from")
        return self.level

    @property
    def rows(self) -> List[Any]:
        if self.level == DrillLevel.REP:
            return self.rep_rows
        if self.level == DrillLevel.CLIENT:
            return self.client_rows
        if self.level == DrillLevel.PRODUCT:
            return self.product_rows
        return []

    def sort(self, field_name: str) -> List[Any]:
        """Toggle the current view's sort on `field_name` and re-sort it"""
        if self.level == DrillLevel.NONE:
            raise InvalidTransition("No view to sort")

        current = self.sort_states.get(self.level, SortState())
        self.sort_states[self.level] = current.toggle(field_name)
        try:
            sorted_rows = self._sorted(self.level, self.rows)
        except ValueError:
            self.sort_states[self.level] = current
            raise

        if self.level == DrillLevel.REP:
            self.rep_rows = sorted_rows
        elif self.level == DrillLevel.CLIENT:
            self.client_rows = sorted_rows
        else:
            self.product_rows = sorted_rows
        return sorted_rows

    @property
    def title(self) -> str:
        if self.level == DrillLevel.CLIENT and self.selected_rep:
            return self.selected_rep.rep_last_name
        if self.level == DrillLevel.PRODUCT and self.selected_rep and self.selected_client:
            return f"{self.selected_rep.rep_last_name} > {self.selected_client.client_name}"
        return ""

    def to_dict(self, reference: Optional[ReferenceData] = None) -> Dict[str, Any]:
        """Current view as plain data"""
        if self.level == DrillLevel.REP:
            rows = [
                row.to_dict(phone=reference.phone_for(row.branch) if reference else None)
                for row in self.rep_rows
            ]
        else:
            rows = [row.to_dict() for row in self.rows]

        state = self.sort_states.get(self.level, SortState())
        return {
            "level": self.level.value,
            "title": self.title,
            "selected_rep": self.selected_rep.key if self.selected_rep else None,
            "selected_client": self.selected_client.key if self.selected_client else None,
            "sort": {"field": state.field_name, "direction": state.direction.value},
            "total_amount": sum((r["total_amount"] for r in rows), Decimal(0)),
            "rows": rows,
        }
