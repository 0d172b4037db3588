from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, time, timedelta
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select
from sqlmodel import col

from signalradar.digest.render import (
    DigestItem,
    DigestSignal,
    digest_subject,
    render_digest_html,
    render_digest_text,
)
from signalradar.logging_config import get_logger
from signalradar.models import DigestDelivery, Organization, Signal
from signalradar.notifications.email_smtp import send_email_smtp
from signalradar.organizations import list_organizations, recipient_emails
from signalradar.radar.evaluator import FilterCriteria, Matched, apply_filter, signal_matches
from signalradar.radar.filter_store import active_filter
from signalradar.radar.pipeline import score_rows
from signalradar.settings import settings

log = get_logger(__name__)

DigestSender = Callable[..., None]


@dataclass(frozen=True)
class OrgDigest:
    org_id: str
    org_name: str
    filter_id: str
    filter_name: str
    cadence: str
    items: tuple[DigestItem, ...]
    recipients: tuple[str, ...]

    @property
    def subject(self) -> str:
        return digest_subject(self.filter_name, self.cadence)

    def html(self) -> str:
        return render_digest_html(
            org_name=self.org_name, filter_name=self.filter_name, items=list(self.items), cadence=self.cadence
        )

    def text(self) -> str:
        return render_digest_text(
            org_name=self.org_name, filter_name=self.filter_name, items=list(self.items), cadence=self.cadence
        )


@dataclass(frozen=True)
class OrgDigestError:
    org_id: str
    error: str


@dataclass
class DigestRunResult:
    ok: bool
    sent: int = 0
    built: int = 0  # dry run: digests built but not sent
    skipped: int = 0
    errors: list[OrgDigestError] = field(default_factory=list)
    digests: list[OrgDigest] = field(default_factory=list)
    dry_run: bool = False

    @property
    def failed(self) -> int:
        return len(self.errors)

    def as_dict(self) -> dict:
        return {
            "ok": self.ok,
            "sent": self.sent,
            "built": self.built,
            "skipped": self.skipped,
            "failed": self.failed,
            "dry_run": self.dry_run,
            "errors": [{"org_id": e.org_id, "error": e.error} for e in self.errors],
        }


def digest_window_start(now: datetime, days: Optional[int] = None) -> datetime:
    """
    Inclusive lower bound: midnight at the start of the day `days` ago.
    """

    d = int(days if days is not None else settings.digest_window_days)
    return datetime.combine((now - timedelta(days=d)).date(), time.min)


def digest_key(cadence: str, now: datetime) -> str:
    return f"{cadence}:{now.date().isoformat()}"


def select_digest_accounts(
    session: Session,
    org_id: str,
    criteria: FilterCriteria,
    top_n: Optional[int] = None,
) -> list[Matched]:
    """
    Score + country predicates only; signal types are applied per signal later.
    Orphaned score rows are dropped since there is no account to render.
    """

    n = int(top_n if top_n is not None else settings.digest_top_n)
    rows = score_rows(session, org_id, min_score=criteria.min_score)
    kept = apply_filter(criteria, rows, check_signal_types=False)
    return [r for r in kept if isinstance(r, Matched)][:n]


def window_signals(session: Session, account_id: str, since: datetime, limit: Optional[int] = None) -> list[Signal]:
    lim = int(limit if limit is not None else settings.digest_signals_per_account)
    return list(
        session.exec(
            select(Signal)
            .where(col(Signal.account_id) == account_id, col(Signal.occurred_at) >= since)
            .order_by(col(Signal.occurred_at).desc())
            .limit(lim)
        ).all()
    )


def build_org_digest(
    *,
    session: Session,
    org: Organization,
    now: datetime,
    cadence: str = "daily",
) -> tuple[Optional[OrgDigest], str]:
    """
    Returns (digest, "") when there is something to send, else (None, reason).
    Read-only: building twice over unchanged data gives identical digests.
    """

    f = active_filter(session, org.id)
    if f is None:
        return None, "no active filter"
    if not f.email_alerts:
        return None, "email alerts disabled"
    if (f.digest_frequency or "") != cadence:
        return None, f"filter cadence is {f.digest_frequency}"

    criteria = FilterCriteria.from_filter(f)
    accounts = select_digest_accounts(session, org.id, criteria)
    if not accounts:
        return None, "no accounts above threshold"

    since = digest_window_start(now)
    items: list[DigestItem] = []
    for row in accounts:
        sigs = [s for s in window_signals(session, row.account_id, since) if signal_matches(criteria, s.type)]
        if criteria.has_type_filter and not sigs:
            continue
        items.append(
            DigestItem(
                account_id=row.account_id,
                name=row.account.name,
                country=row.account.country,
                segment=row.account.segment,
                score=row.score,
                signals=tuple(
                    DigestSignal(
                        title=s.title,
                        type=s.type,
                        occurred_at=s.occurred_at,
                        strength_score=float(s.strength_score),
                    )
                    for s in sigs
                ),
            )
        )
    if not items:
        return None, "no accounts with matching signals"

    recipients = recipient_emails(session, org.id)
    if not recipients:
        return None, "no recipients"

    return (
        OrgDigest(
            org_id=org.id,
            org_name=org.name,
            filter_id=f.id,
            filter_name=f.name,
            cadence=cadence,
            items=tuple(items),
            recipients=tuple(recipients),
        ),
        "",
    )


def _claim_delivery(session: Session, digest: OrgDigest, key: str) -> Optional[DigestDelivery]:
    """
    Returns the ledger row to send under, or None if this digest was already
    sent (or is being sent) for the same key.
    """

    row = session.exec(
        select(DigestDelivery).where(col(DigestDelivery.org_id) == digest.org_id, col(DigestDelivery.digest_key) == key)
    ).first()
    if row is not None and row.status != "failed":
        return None
    if row is None:
        row = DigestDelivery(org_id=digest.org_id, digest_key=key)
    row.filter_id = digest.filter_id
    row.status = "sending"
    row.error = None
    row.recipients = len(digest.recipients)
    row.accounts = len(digest.items)
    session.add(row)
    try:
        session.commit()
    except IntegrityError:
        # Another run claimed the same (org, key) first.
        session.rollback()
        return None
    session.refresh(row)
    return row


def _deliver(session: Session, digest: OrgDigest, key: str, sender: DigestSender) -> bool:
    row = _claim_delivery(session, digest, key)
    if row is None:
        log.info("Digest %s already delivered for org %s; skipping", key, digest.org_id)
        return False

    try:
        sender(
            to_emails=list(digest.recipients),
            subject=digest.subject,
            text_body=digest.text(),
            html_body=digest.html(),
        )
    except Exception as e:
        row.status = "failed"
        row.error = str(e)
        session.add(row)
        session.commit()
        raise

    row.status = "sent"
    row.sent_at = datetime.utcnow()
    session.add(row)
    session.commit()
    return True


def run_digest_job(
    *,
    session: Session,
    now: Optional[datetime] = None,
    sender: DigestSender = send_email_smtp,
    cadence: str = "daily",
    dry_run: bool = False,
) -> DigestRunResult:
    """
    Build and send one digest per organization whose active filter has email
    alerts on and the requested cadence.

    Organizations are independent units of work: a failure is rolled back,
    logged and collected, and the run moves on. Only listing the organizations
    can fail the whole job.
    """

    now_dt = now or datetime.utcnow()
    key = digest_key(cadence, now_dt)
    result = DigestRunResult(ok=True, dry_run=dry_run)

    for org in list_organizations(session):
        org_id = org.id
        try:
            digest, reason = build_org_digest(session=session, org=org, now=now_dt, cadence=cadence)
            if digest is None:
                log.info("Digest skipped for org %s: %s", org.id, reason)
                result.skipped += 1
                continue

            result.digests.append(digest)
            if dry_run:
                result.built += 1
                continue

            if _deliver(session, digest, key, sender):
                log.info(
                    "Digest sent for org %s (%d accounts, %d recipients)",
                    org.id,
                    len(digest.items),
                    len(digest.recipients),
                )
                result.sent += 1
            else:
                result.skipped += 1
        except Exception as e:
            session.rollback()
            log.exception("Digest failed for org %s", org_id)
            result.errors.append(OrgDigestError(org_id=org_id, error=str(e) or e.__class__.__name__))

    log.info(
        "Digest run %s finished: sent=%d built=%d skipped=%d failed=%d",
        key,
        result.sent,
        result.built,
        result.skipped,
        result.failed,
    )
    return result
