"""
Filter evaluation shared by the radar view and the digest job.

Pure functions only: no session access, never raises for unmatched input.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from typing import Optional, Union

from signalradar.models import Account, Filter
from signalradar.radar.taxonomy import SIGNAL_TYPES


@dataclass(frozen=True)
class Matched:
    account: Account
    score: float

    @property
    def account_id(self) -> str:
        return self.account.id

    @property
    def country(self) -> Optional[str]:
        return self.account.country


@dataclass(frozen=True)
class OrphanedScore:
    """A score row whose account could not be joined."""

    account_id: str
    score: float

    @property
    def country(self) -> Optional[str]:
        return None


ScoreRow = Union[Matched, OrphanedScore]


@dataclass(frozen=True)
class FilterCriteria:
    min_score: float = 0.0
    countries: frozenset[str] = frozenset()
    signal_types: frozenset[str] = frozenset()

    @property
    def has_country_filter(self) -> bool:
        return bool(self.countries)

    @property
    def has_type_filter(self) -> bool:
        return bool(self.signal_types)

    @classmethod
    def from_filter(cls, f: Optional[Filter]) -> "FilterCriteria":
        if f is None:
            return cls()
        return cls(
            min_score=float(f.min_score or 0.0),
            countries=frozenset(c for c in (f.countries or []) if c),
            signal_types=frozenset(t for t in (f.signal_types or []) if t),
        )


def normalize_signal_types(signal_types: Optional[Iterable[str]]) -> Optional[list[str]]:
    """
    Empty input and the full taxonomy both mean "any type" and are stored as None.
    """

    if signal_types is None:
        return None
    seen: set[str] = set()
    out: list[str] = []
    for t in signal_types:
        t = (t or "").strip().upper()
        if not t or t in seen:
            continue
        seen.add(t)
        out.append(t)
    if not out or seen >= set(SIGNAL_TYPES):
        return None
    return out


def passes_min_score(criteria: FilterCriteria, score: float) -> bool:
    if not criteria.min_score:
        return True
    return float(score) >= criteria.min_score


def passes_country(criteria: FilterCriteria, country: Optional[str]) -> bool:
    if not criteria.has_country_filter:
        return True
    return country is not None and country in criteria.countries


def passes_signal_types(criteria: FilterCriteria, latest_types: Iterable[str]) -> bool:
    # Intersection, not subset: one matching type is enough.
    if not criteria.has_type_filter:
        return True
    return any(t in criteria.signal_types for t in latest_types)


def signal_matches(criteria: FilterCriteria, signal_type: str) -> bool:
    if not criteria.has_type_filter:
        return True
    return signal_type in criteria.signal_types


def account_passes(
    criteria: FilterCriteria,
    row: ScoreRow,
    latest_types: Iterable[str] = (),
    *,
    check_signal_types: bool = True,
) -> bool:
    if not passes_min_score(criteria, row.score):
        return False
    if not passes_country(criteria, row.country):
        return False
    if check_signal_types and not passes_signal_types(criteria, latest_types):
        return False
    return True


def apply_filter(
    criteria: FilterCriteria,
    rows: Sequence[ScoreRow],
    latest_types_by_account: Optional[Mapping[str, Sequence[str]]] = None,
    *,
    check_signal_types: bool = True,
) -> list[ScoreRow]:
    """
    Keep the rows passing every predicate, preserving input order.
    """

    types_map = latest_types_by_account or {}
    return [
        r
        for r in rows
        if account_passes(
            criteria,
            r,
            types_map.get(r.account_id, ()),
            check_signal_types=check_signal_types,
        )
    ]
