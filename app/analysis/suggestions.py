"""
Fuzzy Suggestion Index

Search-as-you-type over distinct client names and rep family names.
A record's group is included when the raw name contains the query
(case-insensitive) OR the normalized name contains the normalized query.
Groups are ranked by matching record count, top 10.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from app.models.schemas import TransactionRecord
from app.services.text_normalizer import extract_family_name, normalize_client_name

MAX_SUGGESTIONS = 10
UNKNOWN_BRANCH = "不明"


@dataclass
class ClientSuggestion:
    client_name: str
    normalized_name: str
    count: int = 0
    customers: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "client_name": self.client_name,
            "normalized_name": self.normalized_name,
            "count": self.count,
            "customers": self.customers,
        }


@dataclass
class RepSuggestion:
    rep_name: str
    rep_last_name: str
    count: int = 0
    branches: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rep_name": self.rep_name,
            "rep_last_name": self.rep_last_name,
            "count": self.count,
            "branches": self.branches,
        }


def _rank(groups: Dict[str, Any], limit: int) -> List[Any]:
    # sorted() is stable: equal counts keep first-seen order
    return sorted(groups.values(), key=lambda g: g.count, reverse=True)[:limit]


def suggest_clients(
    query: str,
    records: Sequence[TransactionRecord],
    limit: int = MAX_SUGGESTIONS
) -> List[ClientSuggestion]:
    query = (query or "").strip()
    if not query or not records:
        return []

    query_lower = query.lower()
    query_normalized = normalize_client_name(query)
    groups: Dict[str, ClientSuggestion] = {}

    for record in records:
        if not record.client_name:
            continue

        normalized = normalize_client_name(record.client_name)
        raw_match = query_lower in record.client_name.lower()
        normalized_match = bool(query_normalized) and query_normalized in normalized
        if not (raw_match or normalized_match):
            continue

        group = groups.get(normalized)
        if group is None:
            group = ClientSuggestion(client_name=record.client_name, normalized_name=normalized)
            groups[normalized] = group
        group.count += 1
        if record.customer_name not in group.customers:
            group.customers.append(record.customer_name)

    return _rank(groups, limit)


def suggest_reps(
    query: str,
    records: Sequence[TransactionRecord],
    abbr: Optional[str] = None,
    limit: int = MAX_SUGGESTIONS
) -> List[RepSuggestion]:
    query = (query or "").strip()
    if not query or not records:
        return []

    query_lower = query.lower()
    groups: Dict[str, RepSuggestion] = {}

    for record in records:
        if not record.rep_name:
            continue
        if abbr and record.abbr != abbr:
            continue

        last_name = extract_family_name(record.rep_name)
        if query_lower not in record.rep_name.lower() and query_lower not in last_name.lower():
            continue

        group = groups.get(last_name)
        if group is None:
            group = RepSuggestion(rep_name=record.rep_name, rep_last_name=last_name)
            groups[last_name] = group
        group.count += 1
        branch = record.branch or UNKNOWN_BRANCH
        if branch not in group.branches:
            group.branches.append(branch)

    return _rank(groups, limit)


class SuggestionSelection:
    """
    Committed cross-cutting name filters.

    Selecting a suggestion commits its key; clearing the input (or shrinking
    it below one character) drops the selection.
    """

    def __init__(self):
        self.client_key: Optional[str] = None
        self.client_display: Optional[str] = None
        self.rep_family_name: Optional[str] = None

    def on_client_input(self, query: Optional[str]) -> None:
        if len((query or "").strip()) < 1:
            self.client_key = None
            self.client_display = None

    def on_rep_input(self, query: Optional[str]) -> None:
        if len((query or "").strip()) < 1:
            self.rep_family_name = None

    def select_client(self, normalized_name: str, display_name: Optional[str] = None) -> None:
        self.client_key = normalized_name
        self.client_display = display_name or normalized_name

    def select_rep(self, family_name: str) -> None:
        self.rep_family_name = family_name

    def clear(self) -> None:
        self.client_key = None
        self.client_display = None
        self.rep_family_name = None

    def to_dict(self) -> Dict[str, Optional[str]]:
        return {
            "client_key": self.client_key,
            "client_display": self.client_display,
            "rep_family_name": self.rep_family_name,
        }
