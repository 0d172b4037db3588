from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select
from sqlmodel import col

from signalradar.logging_config import get_logger
from signalradar.models import AccountLatestSignalTypes, Signal
from signalradar.radar.taxonomy import OTHER_SIGNAL_TYPE

log = get_logger(__name__)

MIN_STRENGTH = 10.0
MAX_STRENGTH = 200.0


def clamp_strength(value: float) -> float:
    return max(MIN_STRENGTH, min(MAX_STRENGTH, float(value)))


def record_signal(
    *,
    session: Session,
    title: str,
    signal_type: str,
    occurred_at: datetime,
    strength_score: float,
    account_id: Optional[str] = None,
    category: str = "rss",
    dedupe_key: Optional[str] = None,
) -> Signal:
    """
    Insert a signal row. A duplicate dedupe_key counts as success and returns the
    row that is already stored.
    """

    if dedupe_key:
        existing = session.exec(select(Signal).where(col(Signal.dedupe_key) == dedupe_key)).first()
        if existing is not None:
            return existing

    row = Signal(
        account_id=account_id,
        title=(title or "").strip() or "(untitled)",
        type=(signal_type or OTHER_SIGNAL_TYPE).strip().upper(),
        category=category or "rss",
        occurred_at=occurred_at,
        strength_score=clamp_strength(strength_score),
        dedupe_key=dedupe_key,
    )
    session.add(row)
    try:
        session.commit()
    except IntegrityError:
        # Lost a race with a concurrent writer for the same dedupe_key.
        session.rollback()
        existing = session.exec(select(Signal).where(col(Signal.dedupe_key) == dedupe_key)).first()
        if existing is None:
            raise
        return existing
    session.refresh(row)
    return row


def refresh_latest_signal_types(*, session: Session, per_account: int = 5, now: Optional[datetime] = None) -> int:
    """
    Rebuild account_latest_signal_types from each account's most recent signals.
    Returns the number of accounts written.
    """

    rows = session.exec(
        select(Signal.account_id, Signal.type)
        .where(col(Signal.account_id) != None)  # noqa: E711
        .order_by(col(Signal.account_id), col(Signal.occurred_at).desc())
    ).all()

    latest: dict[str, list[str]] = {}
    seen_count: dict[str, int] = {}
    for account_id, sig_type in rows:
        n = seen_count.get(account_id, 0)
        if n >= per_account:
            continue
        seen_count[account_id] = n + 1
        types = latest.setdefault(account_id, [])
        if sig_type and sig_type not in types:
            types.append(sig_type)

    refreshed_at = now or datetime.utcnow()
    for existing in session.exec(select(AccountLatestSignalTypes)).all():
        if existing.account_id not in latest:
            session.delete(existing)
    for account_id, types in latest.items():
        row = session.get(AccountLatestSignalTypes, account_id)
        if row is None:
            row = AccountLatestSignalTypes(account_id=account_id)
        row.signal_types = types
        row.refreshed_at = refreshed_at
        session.add(row)
    session.commit()
    log.info("Refreshed latest signal types for %d accounts", len(latest))
    return len(latest)
