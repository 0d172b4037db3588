"""
Score breakdown reconciliation.

The aggregate buying pressure index and its per-signal breakdown both come from
a ScoreProvider. This module only reconciles them: the sum of the entries is
shown next to the aggregate and whatever is left over is reported as momentum /
stacking, which no single signal explains.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Protocol

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select
from sqlmodel import col

from signalradar.logging_config import get_logger
from signalradar.models import OrgAccountScore, Signal, SignalTypeWeight
from signalradar.settings import settings

log = get_logger(__name__)

MOMENTUM_LABEL = "Momentum / stacking (not attributable to a single signal)"


class ScoreProviderError(RuntimeError):
    pass


@dataclass(frozen=True)
class BreakdownEntry:
    signal_id: str
    title: str
    type: str
    category: str
    occurred_at: datetime
    strength_score: float
    type_weight: float
    recency_multiplier: float
    points: float
    rule: str


class ScoreProvider(Protocol):
    """
    aggregate_score errors propagate to the caller. breakdown should raise
    ScoreProviderError for expected faults; anything else is logged and
    reported as an unavailable breakdown.
    """

    def aggregate_score(self, org_id: str, account_id: str) -> float: ...

    def breakdown(self, org_id: str, account_id: str, limit: int) -> list[BreakdownEntry]: ...


# (max age in days, multiplier, label); the last band catches everything older.
RECENCY_BANDS: tuple[tuple[Optional[int], float, str], ...] = (
    (7, 1.0, "recency_7d"),
    (30, 0.6, "recency_30d"),
    (90, 0.3, "recency_90d"),
    (None, 0.1, "recency_old"),
)


def recency_multiplier(occurred_at: datetime, now: datetime) -> tuple[float, str]:
    age_days = max(0, (now - occurred_at).days)
    for max_age, mult, label in RECENCY_BANDS:
        if max_age is None or age_days <= max_age:
            return mult, label
    return RECENCY_BANDS[-1][1], RECENCY_BANDS[-1][2]


class StoreScoreProvider:
    """
    Default provider backed by the local store: aggregates come from
    org_account_scores, entries from the account's freshest signals weighted by
    signal_type_weights and the recency bands above.
    """

    def __init__(self, session: Session, now: Optional[datetime] = None) -> None:
        self._session = session
        self._now = now

    def aggregate_score(self, org_id: str, account_id: str) -> float:
        row = self._session.exec(
            select(OrgAccountScore).where(
                col(OrgAccountScore.org_id) == org_id,
                col(OrgAccountScore.account_id) == account_id,
            )
        ).first()
        return float(row.buying_pressure_index or 0.0) if row is not None else 0.0

    def breakdown(self, org_id: str, account_id: str, limit: int) -> list[BreakdownEntry]:
        now = self._now or datetime.utcnow()
        try:
            signals = list(
                self._session.exec(
                    select(Signal)
                    .where(col(Signal.account_id) == account_id)
                    .order_by(col(Signal.occurred_at).desc())
                    .limit(max(int(limit), 0))
                ).all()
            )
            types = {s.type for s in signals}
            weights = (
                {w.type: w for w in self._session.exec(select(SignalTypeWeight).where(col(SignalTypeWeight.type).in_(types))).all()}
                if types
                else {}
            )
        except SQLAlchemyError as e:
            raise ScoreProviderError(str(e)) from e

        out: list[BreakdownEntry] = []
        for s in signals:
            w = weights.get(s.type)
            type_weight = float(w.weight) if w is not None else 1.0
            weight_rule = w.rule if w is not None else "default_weight"
            mult, recency_rule = recency_multiplier(s.occurred_at, now)
            out.append(
                BreakdownEntry(
                    signal_id=s.id,
                    title=s.title,
                    type=s.type,
                    category=s.category,
                    occurred_at=s.occurred_at,
                    strength_score=float(s.strength_score),
                    type_weight=type_weight,
                    recency_multiplier=mult,
                    points=round(float(s.strength_score) * type_weight * mult, 2),
                    rule=f"{weight_rule}+{recency_rule}",
                )
            )
        return out


@dataclass(frozen=True)
class BreakdownReport:
    org_id: str
    account_id: str
    aggregate_score: float
    entries: list[BreakdownEntry] = field(default_factory=list)
    breakdown_total: float = 0.0
    delta: float = 0.0
    anomalous: bool = False
    error: Optional[str] = None

    @property
    def delta_label(self) -> str:
        return MOMENTUM_LABEL


def reconcile_breakdown(
    provider: ScoreProvider,
    org_id: str,
    account_id: str,
    limit: Optional[int] = None,
) -> BreakdownReport:
    """
    Aggregate lookup faults propagate. A breakdown fault is reported on the
    returned report and leaves the aggregate intact.
    """

    lim = int(limit if limit is not None else settings.breakdown_limit)
    aggregate = float(provider.aggregate_score(org_id, account_id))

    try:
        entries = list(provider.breakdown(org_id, account_id, lim))[:lim]
    except ScoreProviderError as e:
        log.warning("Breakdown unavailable for org=%s account=%s: %s", org_id, account_id, e)
        return BreakdownReport(
            org_id=org_id,
            account_id=account_id,
            aggregate_score=aggregate,
            error=str(e) or "Could not load breakdown.",
        )
    except Exception:
        log.exception("Score provider breakdown crashed for org=%s account=%s", org_id, account_id)
        return BreakdownReport(
            org_id=org_id,
            account_id=account_id,
            aggregate_score=aggregate,
            error="Could not load breakdown.",
        )

    total = round(sum(float(e.points or 0.0) for e in entries), 2)
    anomalous = total > aggregate
    if anomalous:
        log.warning(
            "Breakdown total %.2f exceeds aggregate %.2f for org=%s account=%s",
            total,
            aggregate,
            org_id,
            account_id,
        )

    return BreakdownReport(
        org_id=org_id,
        account_id=account_id,
        aggregate_score=aggregate,
        entries=entries,
        breakdown_total=total,
        delta=round(max(0.0, aggregate - total), 2),
        anomalous=anomalous,
    )


def breakdown_payload(report: BreakdownReport) -> dict:
    return {
        "org_id": report.org_id,
        "account_id": report.account_id,
        "aggregate_score": report.aggregate_score,
        "breakdown_total": report.breakdown_total,
        "delta": report.delta,
        "delta_label": report.delta_label,
        "anomalous": report.anomalous,
        "error": report.error,
        "entries": [
            {
                "signal_id": e.signal_id,
                "title": e.title,
                "type": e.type,
                "category": e.category,
                "occurred_at": e.occurred_at.isoformat() if e.occurred_at else None,
                "strength_score": e.strength_score,
                "type_weight": e.type_weight,
                "recency_multiplier": e.recency_multiplier,
                "points": e.points,
                "rule": e.rule,
            }
            for e in report.entries
        ],
    }
