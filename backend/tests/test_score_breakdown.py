from datetime import datetime, timedelta

from sqlmodel import Session, SQLModel, create_engine

from signalradar.models import Account, OrgAccountScore, Organization, Signal, SignalTypeWeight
from signalradar.scoring.breakdown import (
    MOMENTUM_LABEL,
    BreakdownEntry,
    ScoreProviderError,
    StoreScoreProvider,
    breakdown_payload,
    reconcile_breakdown,
    recency_multiplier,
)

NOW = datetime(2026, 10, 19, 8, 0, 0)


def _entry(points: float) -> BreakdownEntry:
    return BreakdownEntry(
        signal_id="s",
        title="t",
        type="CSV_HIRING",
        category="jobs",
        occurred_at=NOW,
        strength_score=points,
        type_weight=1.0,
        recency_multiplier=1.0,
        points=points,
        rule="type_weight+recency_7d",
    )


class FakeProvider:
    def __init__(self, aggregate: float, points: list[float], fail: bool = False) -> None:
        self.aggregate = aggregate
        self.points = points
        self.fail = fail

    def aggregate_score(self, org_id: str, account_id: str) -> float:
        return self.aggregate

    def breakdown(self, org_id: str, account_id: str, limit: int) -> list[BreakdownEntry]:
        if self.fail:
            raise ScoreProviderError("procedure timed out")
        return [_entry(p) for p in self.points]


def test_residual_is_reported_as_momentum() -> None:
    report = reconcile_breakdown(FakeProvider(160.0, [60.0, 40.0]), "o", "a", 10)
    assert report.breakdown_total == 100.0
    assert report.delta == 60.0
    assert report.delta_label == MOMENTUM_LABEL
    assert not report.anomalous
    assert report.error is None


def test_delta_is_clamped_and_flagged_when_breakdown_exceeds_aggregate() -> None:
    report = reconcile_breakdown(FakeProvider(50.0, [60.0, 40.0]), "o", "a", 10)
    assert report.breakdown_total == 100.0
    assert report.delta == 0.0
    assert report.anomalous


def test_limit_caps_entries() -> None:
    report = reconcile_breakdown(FakeProvider(500.0, [10.0] * 20), "o", "a", 3)
    assert len(report.entries) == 3
    assert report.breakdown_total == 30.0


def test_breakdown_failure_keeps_aggregate() -> None:
    report = reconcile_breakdown(FakeProvider(140.0, [], fail=True), "o", "a", 10)
    assert report.aggregate_score == 140.0
    assert report.entries == []
    assert report.error == "procedure timed out"
    payload = breakdown_payload(report)
    assert payload["aggregate_score"] == 140.0
    assert payload["error"] == "procedure timed out"


def test_recency_bands() -> None:
    assert recency_multiplier(NOW - timedelta(days=2), NOW) == (1.0, "recency_7d")
    assert recency_multiplier(NOW - timedelta(days=20), NOW) == (0.6, "recency_30d")
    assert recency_multiplier(NOW - timedelta(days=60), NOW) == (0.3, "recency_90d")
    assert recency_multiplier(NOW - timedelta(days=400), NOW) == (0.1, "recency_old")


def test_store_provider_weights_freshest_signals() -> None:
    engine = create_engine("sqlite://")
    SQLModel.metadata.create_all(engine)

    with Session(engine) as session:
        org = Organization(name="acme.io")
        session.add(org)
        session.add(Account(id="a", name="Alpha", country="IE"))
        session.flush()
        session.add(OrgAccountScore(org_id=org.id, account_id="a", buying_pressure_index=200.0))
        session.add(SignalTypeWeight(type="CSV_HIRING", weight=1.5, rule="validation_hiring"))
        session.add(
            Signal(account_id="a", title="CSV lead", type="CSV_HIRING", occurred_at=NOW - timedelta(days=1), strength_score=80)
        )
        session.add(
            Signal(
                account_id="a",
                title="New plant",
                type="FACILITY_EXPANSION",
                occurred_at=NOW - timedelta(days=20),
                strength_score=100,
            )
        )
        session.commit()

        provider = StoreScoreProvider(session, now=NOW)
        report = reconcile_breakdown(provider, org.id, "a", 10)

        assert report.aggregate_score == 200.0
        assert [e.title for e in report.entries] == ["CSV lead", "New plant"]
        assert report.entries[0].points == 120.0
        assert report.entries[0].rule == "validation_hiring+recency_7d"
        assert report.entries[1].points == 60.0
        assert report.entries[1].rule == "default_weight+recency_30d"
        assert report.breakdown_total == 180.0
        assert report.delta == 20.0

        assert provider.aggregate_score(org.id, "missing") == 0.0


def test_unexpected_breakdown_fault_keeps_aggregate() -> None:
    class Crashing(FakeProvider):
        def breakdown(self, org_id: str, account_id: str, limit: int) -> list[BreakdownEntry]:
            raise KeyError("weights")

    report = reconcile_breakdown(Crashing(140.0, []), "o", "a", 10)
    assert report.aggregate_score == 140.0
    assert report.entries == []
    assert report.error == "Could not load breakdown."
