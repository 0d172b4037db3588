from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlmodel import Session, select
from sqlmodel import col

from signalradar.logging_config import get_logger
from signalradar.models import Membership, Organization, Profile

log = get_logger(__name__)

DEFAULT_ORG_NAME = "My Organisation"


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def org_name_from_email(email: str) -> str:
    email_n = normalize_email(email)
    if "@" not in email_n:
        return DEFAULT_ORG_NAME
    domain = email_n.split("@", 1)[1].strip()
    return domain or DEFAULT_ORG_NAME


def ensure_profile(*, session: Session, user_id: str, email: str) -> Profile:
    email_n = normalize_email(email)
    p = session.get(Profile, user_id)
    if p is None:
        p = Profile(id=user_id, email=email_n or None)
    elif email_n and p.email != email_n:
        p.email = email_n
        p.updated_at = datetime.utcnow()
    else:
        return p
    session.add(p)
    session.commit()
    session.refresh(p)
    return p


def org_for_user(session: Session, user_id: str) -> Optional[Organization]:
    m = session.exec(
        select(Membership).where(col(Membership.user_id) == user_id).order_by(col(Membership.created_at))
    ).first()
    if m is None:
        return None
    return session.get(Organization, m.org_id)


def bootstrap_user(*, session: Session, user_id: str, email: str) -> Organization:
    """
    Make sure the user has a profile and an organization.
    A user without a membership gets a new org named after their email domain,
    attached as owner.
    """

    if not (user_id or "").strip():
        raise ValueError("Missing user id")

    ensure_profile(session=session, user_id=user_id, email=email)

    org = org_for_user(session, user_id)
    if org is not None:
        return org

    org = Organization(name=org_name_from_email(email), created_by=user_id)
    session.add(org)
    session.flush()
    session.add(Membership(org_id=org.id, user_id=user_id, role="owner"))
    session.commit()
    session.refresh(org)
    log.info("Created org %s (%s) for user %s", org.id, org.name, user_id)
    return org


def list_organizations(session: Session) -> list[Organization]:
    return list(session.exec(select(Organization).order_by(col(Organization.created_at))).all())


def recipient_emails(session: Session, org_id: str) -> list[str]:
    member_ids = list(session.exec(select(Membership.user_id).where(col(Membership.org_id) == org_id)).all())
    if not member_ids:
        return []
    emails = session.exec(
        select(Profile.email).where(col(Profile.id).in_(member_ids)).order_by(col(Profile.email))
    ).all()

    out: list[str] = []
    seen: set[str] = set()
    for e in emails:
        e_n = normalize_email(e or "")
        if not e_n or e_n in seen:
            continue
        seen.add(e_n)
        out.append(e_n)
    return out
