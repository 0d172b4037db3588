from __future__ import annotations

from datetime import datetime
from typing import Optional
from uuid import uuid4

from sqlalchemy import JSON, Column, Index, UniqueConstraint
from sqlmodel import Field, SQLModel


def utcnow() -> datetime:
    return datetime.utcnow()


class Organization(SQLModel, table=True):
    __tablename__ = "orgs"

    id: str = Field(default_factory=lambda: str(uuid4()), primary_key=True)
    name: str = Field(index=True)
    created_by: Optional[str] = Field(default=None, index=True)  # user id

    created_at: datetime = Field(default_factory=utcnow, index=True)


class Profile(SQLModel, table=True):
    """
    One row per authenticated user. The id is the auth provider's user id;
    email is what digests are delivered to.
    """

    __tablename__ = "profiles"

    id: str = Field(primary_key=True)
    email: Optional[str] = Field(default=None, index=True)

    updated_at: datetime = Field(default_factory=utcnow, index=True)


class Membership(SQLModel, table=True):
    __tablename__ = "org_members"

    id: str = Field(default_factory=lambda: str(uuid4()), primary_key=True)
    org_id: str = Field(foreign_key="orgs.id", index=True)
    user_id: str = Field(index=True)
    role: str = Field(default="member", index=True)  # owner|member

    created_at: datetime = Field(default_factory=utcnow, index=True)

    __table_args__ = (UniqueConstraint("org_id", "user_id", name="uq_org_member_org_user"),)


class Account(SQLModel, table=True):
    """
    Reference entity maintained by the enrichment process; read-only here.
    """

    __tablename__ = "accounts"

    id: str = Field(default_factory=lambda: str(uuid4()), primary_key=True)
    name: str = Field(index=True)
    domain: Optional[str] = Field(default=None, index=True)
    country: Optional[str] = Field(default=None, index=True)  # ISO-ish code, e.g. "IE", "UK"
    segment: Optional[str] = Field(default=None, index=True)

    created_at: datetime = Field(default_factory=utcnow, index=True)


class Signal(SQLModel, table=True):
    __tablename__ = "signals"

    id: str = Field(default_factory=lambda: str(uuid4()), primary_key=True)
    # RSS-sourced signals may not be attached to an account yet.
    account_id: Optional[str] = Field(default=None, foreign_key="accounts.id", index=True)

    title: str
    type: str = Field(index=True)  # taxonomy value or "OTHER"
    category: str = Field(default="rss", index=True)
    occurred_at: datetime = Field(index=True)
    strength_score: float = Field(index=True)  # clamped 10..200

    dedupe_key: Optional[str] = Field(default=None, index=True)
    created_at: datetime = Field(default_factory=utcnow, index=True)

    __table_args__ = (
        UniqueConstraint("dedupe_key", name="uq_signal_dedupe_key"),
        Index("ix_signal_account_occurred_at", "account_id", "occurred_at"),
    )


class Filter(SQLModel, table=True):
    __tablename__ = "filters"

    id: str = Field(default_factory=lambda: str(uuid4()), primary_key=True)
    org_id: str = Field(foreign_key="orgs.id", index=True)

    name: str
    countries: list[str] = Field(default_factory=list, sa_column=Column(JSON))  # empty = any
    signal_types: Optional[list[str]] = Field(default=None, sa_column=Column(JSON, nullable=True))  # null = any
    min_score: float = Field(default=0.0)
    digest_frequency: str = Field(default="daily", index=True)  # daily|weekly|instant
    email_alerts: bool = Field(default=False, index=True)
    is_active: bool = Field(default=False, index=True)

    created_at: datetime = Field(default_factory=utcnow, index=True)

    __table_args__ = (Index("ix_filter_org_created_at", "org_id", "created_at"),)


class OrgAccountScore(SQLModel, table=True):
    """
    Aggregate buying pressure index per (org, account).
    Recomputed by the external score provider; read-only here.
    """

    __tablename__ = "org_account_scores"

    id: str = Field(default_factory=lambda: str(uuid4()), primary_key=True)
    org_id: str = Field(foreign_key="orgs.id", index=True)
    # Not a foreign key: score rows can outlive the account they point at.
    account_id: str = Field(index=True)
    buying_pressure_index: float = Field(default=0.0, index=True)

    updated_at: datetime = Field(default_factory=utcnow, index=True)

    __table_args__ = (
        UniqueConstraint("org_id", "account_id", name="uq_org_account_score"),
        Index("ix_org_account_score_org_bpi", "org_id", "buying_pressure_index"),
    )


class AccountLatestSignalTypes(SQLModel, table=True):
    """
    Materialized projection: signal types of each account's most recent signals.
    """

    __tablename__ = "account_latest_signal_types"

    account_id: str = Field(primary_key=True)
    signal_types: list[str] = Field(default_factory=list, sa_column=Column(JSON))

    refreshed_at: datetime = Field(default_factory=utcnow, index=True)


class SignalTypeWeight(SQLModel, table=True):
    __tablename__ = "signal_type_weights"

    type: str = Field(primary_key=True)
    weight: float = Field(default=1.0)
    rule: str = Field(default="type_weight")


class DigestDelivery(SQLModel, table=True):
    """
    One row per (org, digest_key). The unique key is the idempotency token that
    stops a double-fired scheduler from sending the same digest twice.
    """

    __tablename__ = "digest_deliveries"

    id: str = Field(default_factory=lambda: str(uuid4()), primary_key=True)
    org_id: str = Field(foreign_key="orgs.id", index=True)
    digest_key: str = Field(index=True)  # e.g. "daily:2026-10-19"
    filter_id: Optional[str] = Field(default=None, index=True)

    status: str = Field(default="sending", index=True)  # sending|sent|failed
    recipients: int = Field(default=0)
    accounts: int = Field(default=0)
    error: Optional[str] = None

    created_at: datetime = Field(default_factory=utcnow, index=True)
    sent_at: Optional[datetime] = Field(default=None, index=True)

    __table_args__ = (UniqueConstraint("org_id", "digest_key", name="uq_digest_delivery_org_key"),)
