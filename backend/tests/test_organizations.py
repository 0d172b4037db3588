from datetime import datetime, timedelta

import pytest
from sqlmodel import Session, SQLModel, create_engine, select

from signalradar.models import AccountLatestSignalTypes, Membership, Organization, Signal
from signalradar.organizations import bootstrap_user, org_name_from_email, recipient_emails
from signalradar.radar.taxonomy import OTHER_SIGNAL_TYPE
from signalradar.signals import clamp_strength, record_signal, refresh_latest_signal_types


def _session() -> Session:
    engine = create_engine("sqlite://")
    SQLModel.metadata.create_all(engine)
    return Session(engine)


def test_org_name_from_email() -> None:
    assert org_name_from_email("Jane@Pharma.IE ") == "pharma.ie"
    assert org_name_from_email("no-domain") == "My Organisation"


def test_bootstrap_creates_org_once_with_owner() -> None:
    with _session() as session:
        org = bootstrap_user(session=session, user_id="u1", email="jane@pharma.ie")
        assert org.name == "pharma.ie"

        again = bootstrap_user(session=session, user_id="u1", email="jane@pharma.ie")
        assert again.id == org.id
        assert len(session.exec(select(Organization)).all()) == 1

        m = session.exec(select(Membership).where(Membership.user_id == "u1")).one()
        assert m.role == "owner"
        assert recipient_emails(session, org.id) == ["jane@pharma.ie"]


def test_bootstrap_requires_user_id() -> None:
    with _session() as session:
        with pytest.raises(ValueError):
            bootstrap_user(session=session, user_id="", email="x@y.z")


def test_recipients_are_deduplicated_and_skip_missing_emails() -> None:
    with _session() as session:
        org = bootstrap_user(session=session, user_id="u1", email="a@acme.io")
        for uid, email in [("u2", "A@acme.io"), ("u3", ""), ("u4", "b@acme.io")]:
            bootstrap_user(session=session, user_id=uid, email=email)
            session.add(Membership(org_id=org.id, user_id=uid))
        session.commit()
        assert recipient_emails(session, org.id) == ["a@acme.io", "b@acme.io"]


def test_record_signal_clamps_and_dedupes() -> None:
    assert clamp_strength(500) == 200.0
    assert clamp_strength(0) == 10.0

    with _session() as session:
        when = datetime(2026, 10, 18, 9, 0, 0)
        first = record_signal(
            session=session,
            title="Hiring CSV lead",
            signal_type="csv_hiring",
            occurred_at=when,
            strength_score=260,
            dedupe_key="feed-1:guid-1",
        )
        dup = record_signal(
            session=session,
            title="Hiring CSV lead (again)",
            signal_type="CSV_HIRING",
            occurred_at=when,
            strength_score=90,
            dedupe_key="feed-1:guid-1",
        )
        assert dup.id == first.id
        assert first.type == "CSV_HIRING"
        assert first.strength_score == 200.0
        assert len(session.exec(select(Signal)).all()) == 1


def test_refresh_latest_signal_types() -> None:
    with _session() as session:
        base = datetime(2026, 10, 1, 9, 0, 0)
        for i, t in enumerate(["CSV_HIRING", "FACILITY_EXPANSION", "CSV_HIRING", "TECH_TRANSFER"]):
            record_signal(
                session=session,
                title=f"s{i}",
                signal_type=t,
                occurred_at=base + timedelta(days=i),
                strength_score=50,
                account_id="a",
            )
        # Unattached RSS signal is ignored.
        record_signal(session=session, title="rss", signal_type="OTHER", occurred_at=base, strength_score=50)

        assert refresh_latest_signal_types(session=session, per_account=3) == 1
        row = session.get(AccountLatestSignalTypes, "a")
        assert row.signal_types == ["TECH_TRANSFER", "CSV_HIRING", "FACILITY_EXPANSION"]


def test_signal_timestamps_round_trip_as_naive_utc() -> None:
    with _session() as session:
        when = datetime(2026, 10, 18, 9, 30, 0)
        s = record_signal(session=session, title="t", signal_type="CSV_HIRING", occurred_at=when, strength_score=50)
        session.expire_all()
        stored = session.get(Signal, s.id)
        assert stored.occurred_at == when
        assert stored.occurred_at.tzinfo is None
        assert stored.created_at.tzinfo is None


def test_untyped_signal_is_recorded_as_other() -> None:
    with _session() as session:
        s = record_signal(session=session, title="t", signal_type="", occurred_at=datetime(2026, 10, 18), strength_score=50)
        assert s.type == OTHER_SIGNAL_TYPE
