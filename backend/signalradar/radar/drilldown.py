from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlmodel import Session, select
from sqlmodel import col

from signalradar.models import Signal
from signalradar.settings import settings


def recent_signals(session: Session, account_id: str, limit: Optional[int] = None) -> list[Signal]:
    lim = int(limit if limit is not None else settings.drilldown_limit)
    return list(
        session.exec(
            select(Signal)
            .where(col(Signal.account_id) == account_id)
            .order_by(col(Signal.occurred_at).desc())
            .limit(max(lim, 0))
        ).all()
    )


def days_ago(ts: datetime, now: Optional[datetime] = None) -> int:
    now_dt = now or datetime.utcnow()
    return max(0, (now_dt - ts).days)


def signal_payload(s: Signal) -> dict:
    return {
        "id": s.id,
        "title": s.title,
        "type": s.type,
        "category": s.category,
        "occurred_at": s.occurred_at.isoformat() if s.occurred_at else None,
        "strength_score": s.strength_score,
    }


class DrilldownCache:
    """
    Per-viewer memo of recent signals, keyed by account id.
    An account is fetched at most once per viewing session.
    """

    def __init__(self, session: Session, limit: Optional[int] = None) -> None:
        self._session = session
        self._limit = limit
        self._signals: dict[str, list[Signal]] = {}
        self.fetches = 0

    def signals_for(self, account_id: str) -> list[Signal]:
        cached = self._signals.get(account_id)
        if cached is not None:
            return cached
        rows = recent_signals(self._session, account_id, self._limit)
        self.fetches += 1
        self._signals[account_id] = rows
        return rows

    def last_signal_at(self, account_id: str) -> Optional[datetime]:
        rows = self.signals_for(account_id)
        return rows[0].occurred_at if rows else None
