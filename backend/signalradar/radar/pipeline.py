from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from typing import Optional

from sqlmodel import Session, select
from sqlmodel import col

from signalradar.models import Account, AccountLatestSignalTypes, Filter, OrgAccountScore
from signalradar.radar.evaluator import FilterCriteria, Matched, OrphanedScore, ScoreRow, apply_filter
from signalradar.radar.filter_store import active_filter
from signalradar.radar.taxonomy import score_band

NO_MATCH_STATUS = "No accounts match your current filter."


@dataclass(frozen=True)
class RadarResult:
    filter: Optional[Filter]
    rows: list[ScoreRow]
    status: str


def score_rows(session: Session, org_id: str, *, min_score: float = 0.0) -> list[ScoreRow]:
    """
    All score rows for the org, highest index first, joined to their accounts.
    Rows whose account is missing come back as OrphanedScore.
    """

    stmt = (
        select(OrgAccountScore, Account)
        .join(Account, col(Account.id) == col(OrgAccountScore.account_id), isouter=True)
        .where(col(OrgAccountScore.org_id) == org_id)
        .order_by(col(OrgAccountScore.buying_pressure_index).desc())
    )
    if min_score:
        stmt = stmt.where(col(OrgAccountScore.buying_pressure_index) >= min_score)

    out: list[ScoreRow] = []
    for score, account in session.exec(stmt).all():
        bpi = float(score.buying_pressure_index or 0.0)
        if account is None:
            out.append(OrphanedScore(account_id=score.account_id, score=bpi))
        else:
            out.append(Matched(account=account, score=bpi))
    return out


def latest_signal_types(session: Session, account_ids: Iterable[str]) -> dict[str, list[str]]:
    ids = {a for a in account_ids if a}
    if not ids:
        return {}
    rows = session.exec(
        select(AccountLatestSignalTypes).where(col(AccountLatestSignalTypes.account_id).in_(ids))
    ).all()
    return {r.account_id: list(r.signal_types or []) for r in rows}


def rank_accounts(session: Session, org_id: str) -> RadarResult:
    f = active_filter(session, org_id)
    criteria = FilterCriteria.from_filter(f)

    rows = score_rows(session, org_id)
    types_map: dict[str, list[str]] = {}
    if criteria.has_type_filter:
        types_map = latest_signal_types(session, (r.account_id for r in rows))

    filtered = apply_filter(criteria, rows, types_map)
    status = NO_MATCH_STATUS if not filtered else ""
    return RadarResult(filter=f, rows=filtered, status=status)


def radar_row_payload(row: ScoreRow) -> dict:
    if isinstance(row, Matched):
        account = {
            "name": row.account.name,
            "domain": row.account.domain,
            "country": row.account.country,
            "segment": row.account.segment,
        }
    else:
        account = None
    return {
        "account_id": row.account_id,
        "buying_pressure_index": row.score,
        "band": score_band(row.score),
        "account": account,
    }
