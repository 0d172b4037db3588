from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime
from typing import Optional

from sqlmodel import Session, select
from sqlmodel import col

from signalradar.logging_config import get_logger
from signalradar.models import Filter
from signalradar.radar.evaluator import normalize_signal_types
from signalradar.radar.taxonomy import DIGEST_FREQUENCIES, SIGNAL_TYPES

log = get_logger(__name__)


class FilterValidationError(ValueError):
    pass


def parse_country_codes(values: Iterable[str] | str) -> list[str]:
    # "IE,UK" arrives as one string.
    if isinstance(values, str):
        values = [values]
    out: list[str] = []
    seen: set[str] = set()
    for v in values or []:
        for part in str(v or "").replace("\n", ",").split(","):
            c = part.strip().upper()
            if not c or c in seen:
                continue
            seen.add(c)
            out.append(c)
    return out


def active_filter(session: Session, org_id: str) -> Optional[Filter]:
    return session.exec(
        select(Filter)
        .where(col(Filter.org_id) == org_id, col(Filter.is_active) == True)  # noqa: E712
        .order_by(col(Filter.created_at).desc())
    ).first()


def list_filters(session: Session, org_id: str) -> list[Filter]:
    return list(
        session.exec(select(Filter).where(col(Filter.org_id) == org_id).order_by(col(Filter.created_at).desc())).all()
    )


def _set_active(session: Session, org_id: str, filter_id: Optional[str]) -> None:
    for f in list_filters(session, org_id):
        want = f.id == filter_id
        if f.is_active != want:
            f.is_active = want
            session.add(f)


def create_filter(
    *,
    session: Session,
    org_id: str,
    name: str,
    countries: Iterable[str] | str = (),
    signal_types: Optional[Iterable[str]] = None,
    min_score: float = 0.0,
    digest_frequency: str = "daily",
    email_alerts: bool = False,
    activate: bool = True,
    created_at: Optional[datetime] = None,
) -> Filter:
    """
    Validate and persist a new filter. By default the new filter becomes the
    org's active one and every other filter of the org is deactivated.
    """

    name_n = (name or "").strip()
    if not name_n:
        raise FilterValidationError("Filter name is required")

    freq = (digest_frequency or "").strip().lower()
    if freq not in DIGEST_FREQUENCIES:
        raise FilterValidationError(f"digest_frequency must be one of {'|'.join(DIGEST_FREQUENCIES)}")

    try:
        min_score_f = float(min_score or 0.0)
    except (TypeError, ValueError) as e:
        raise FilterValidationError("min_score must be a number") from e
    if min_score_f < 0:
        raise FilterValidationError("min_score must be >= 0")

    types = normalize_signal_types(signal_types)
    unknown = sorted(set(types or []) - set(SIGNAL_TYPES))
    if unknown:
        raise FilterValidationError(f"Unknown signal types: {', '.join(unknown)}")

    row = Filter(
        org_id=org_id,
        name=name_n,
        countries=parse_country_codes(countries),
        signal_types=types,
        min_score=min_score_f,
        digest_frequency=freq,
        email_alerts=bool(email_alerts),
        is_active=False,
    )
    if created_at is not None:
        row.created_at = created_at
    session.add(row)
    session.flush()

    if activate:
        _set_active(session, org_id, row.id)

    session.commit()
    session.refresh(row)
    log.info("Created filter %s for org %s (active=%s)", row.id, org_id, row.is_active)
    return row


def activate_filter(*, session: Session, org_id: str, filter_id: str) -> bool:
    row = session.exec(select(Filter).where(col(Filter.id) == filter_id, col(Filter.org_id) == org_id)).first()
    if row is None:
        return False
    _set_active(session, org_id, row.id)
    session.commit()
    return True


def delete_filter(*, session: Session, org_id: str, filter_id: str) -> bool:
    """
    Delete a filter scoped to its org. Deleting the active filter promotes the
    most recently created remaining one.
    """

    row = session.exec(select(Filter).where(col(Filter.id) == filter_id, col(Filter.org_id) == org_id)).first()
    if row is None:
        return False

    was_active = bool(row.is_active)
    session.delete(row)
    session.flush()

    if was_active:
        remaining = list_filters(session, org_id)
        if remaining:
            _set_active(session, org_id, remaining[0].id)

    session.commit()
    log.info("Deleted filter %s for org %s", filter_id, org_id)
    return True
