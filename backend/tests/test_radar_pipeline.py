from datetime import datetime, timedelta

from sqlmodel import Session, SQLModel, create_engine

from signalradar.models import Account, AccountLatestSignalTypes, OrgAccountScore, Organization, Signal
from signalradar.radar.drilldown import DrilldownCache, days_ago, recent_signals
from signalradar.radar.evaluator import Matched, OrphanedScore
from signalradar.radar.filter_store import active_filter, activate_filter, create_filter, delete_filter
from signalradar.radar.pipeline import NO_MATCH_STATUS, rank_accounts, score_rows


def _session() -> Session:
    engine = create_engine("sqlite://")
    SQLModel.metadata.create_all(engine)
    return Session(engine)


def _seed(session: Session) -> Organization:
    org = Organization(name="acme.io")
    session.add(org)
    session.flush()
    for acc_id, country, score in [("a", "IE", 160.0), ("b", "DE", 180.0), ("c", "UK", 90.0)]:
        session.add(Account(id=acc_id, name=f"Account {acc_id.upper()}", country=country, segment="Pharma"))
        session.add(OrgAccountScore(org_id=org.id, account_id=acc_id, buying_pressure_index=score))
    # Score row whose account was never enriched.
    session.add(OrgAccountScore(org_id=org.id, account_id="ghost", buying_pressure_index=120.0))
    session.add(AccountLatestSignalTypes(account_id="a", signal_types=["CSV_HIRING"]))
    session.add(AccountLatestSignalTypes(account_id="b", signal_types=["FACILITY_EXPANSION"]))
    session.commit()
    session.refresh(org)
    return org


def test_score_rows_are_ranked_and_typed() -> None:
    with _session() as session:
        org = _seed(session)
        rows = score_rows(session, org.id)
        assert [r.score for r in rows] == [180.0, 160.0, 120.0, 90.0]
        assert isinstance(rows[2], OrphanedScore)
        assert all(isinstance(r, Matched) for i, r in enumerate(rows) if i != 2)


def test_no_filter_returns_everything() -> None:
    with _session() as session:
        org = _seed(session)
        result = rank_accounts(session, org.id)
        assert result.filter is None
        assert result.status == ""
        assert [r.account_id for r in result.rows] == ["b", "a", "ghost", "c"]


def test_empty_filter_equals_unfiltered_ranking() -> None:
    with _session() as session:
        org = _seed(session)
        create_filter(session=session, org_id=org.id, name="Anything")
        assert [r.account_id for r in rank_accounts(session, org.id).rows] == [
            r.account_id for r in score_rows(session, org.id)
        ]


def test_country_and_score_filter() -> None:
    with _session() as session:
        org = _seed(session)
        create_filter(session=session, org_id=org.id, name="Ireland/UK", countries=["ie", "UK"], min_score=120)
        result = rank_accounts(session, org.id)
        assert [r.account_id for r in result.rows] == ["a"]


def test_type_filter_uses_latest_signal_types_projection() -> None:
    with _session() as session:
        org = _seed(session)
        create_filter(session=session, org_id=org.id, name="Expansion", signal_types=["FACILITY_EXPANSION"])
        result = rank_accounts(session, org.id)
        assert [r.account_id for r in result.rows] == ["b"]


def test_empty_result_reports_status_not_error() -> None:
    with _session() as session:
        org = _seed(session)
        create_filter(session=session, org_id=org.id, name="Nowhere", countries=["FR"])
        result = rank_accounts(session, org.id)
        assert result.rows == []
        assert result.status == NO_MATCH_STATUS


def test_new_filter_becomes_active_and_delete_promotes_previous() -> None:
    with _session() as session:
        org = _seed(session)
        t0 = datetime(2026, 10, 1, 9, 0, 0)
        first = create_filter(session=session, org_id=org.id, name="first", created_at=t0)
        second = create_filter(session=session, org_id=org.id, name="second", created_at=t0 + timedelta(hours=1))
        assert active_filter(session, org.id).id == second.id

        assert activate_filter(session=session, org_id=org.id, filter_id=first.id)
        assert active_filter(session, org.id).id == first.id

        assert delete_filter(session=session, org_id=org.id, filter_id=first.id)
        assert active_filter(session, org.id).id == second.id

        assert not delete_filter(session=session, org_id="other-org", filter_id=second.id)
        assert active_filter(session, org.id).id == second.id


def test_drilldown_returns_five_newest_and_memoizes() -> None:
    with _session() as session:
        _seed(session)
        base = datetime(2026, 10, 10, 12, 0, 0)
        for i in range(7):
            session.add(
                Signal(
                    account_id="a",
                    title=f"Signal {i}",
                    type="CSV_HIRING",
                    occurred_at=base + timedelta(days=i),
                    strength_score=50,
                )
            )
        session.commit()

        rows = recent_signals(session, "a")
        assert [s.title for s in rows] == ["Signal 6", "Signal 5", "Signal 4", "Signal 3", "Signal 2"]

        cache = DrilldownCache(session)
        first = cache.signals_for("a")
        again = cache.signals_for("a")
        assert first is again
        assert cache.fetches == 1
        assert cache.last_signal_at("a") == base + timedelta(days=6)
        assert cache.last_signal_at("c") is None
        assert cache.fetches == 2


def test_days_ago_never_negative() -> None:
    now = datetime(2026, 10, 19, 12, 0, 0)
    assert days_ago(now - timedelta(days=3, hours=2), now) == 3
    assert days_ago(now + timedelta(days=1), now) == 0


def test_country_list_sent_as_one_string_is_split() -> None:
    with _session() as session:
        org = _seed(session)
        f = create_filter(session=session, org_id=org.id, name="IE+UK", countries="ie, UK")
        assert f.countries == ["IE", "UK"]
        assert [r.account_id for r in rank_accounts(session, org.id).rows] == ["a", "c"]
