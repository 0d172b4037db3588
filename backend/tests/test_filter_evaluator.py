from signalradar.models import Account, Filter
from signalradar.radar.evaluator import (
    FilterCriteria,
    Matched,
    OrphanedScore,
    apply_filter,
    normalize_signal_types,
    signal_matches,
)
from signalradar.radar.taxonomy import SIGNAL_TYPES, score_band


def _row(account_id: str, country, score: float) -> Matched:
    return Matched(account=Account(id=account_id, name=account_id.upper(), country=country), score=score)


ROWS = [
    _row("a", "IE", 160.0),
    _row("b", "DE", 180.0),
    _row("c", "UK", 90.0),
    OrphanedScore(account_id="ghost", score=120.0),
]

TYPES = {
    "a": ["CSV_HIRING", "FACILITY_EXPANSION"],
    "b": ["FACILITY_EXPANSION"],
    "c": ["CSV_HIRING"],
}


def test_empty_filter_is_identity() -> None:
    assert apply_filter(FilterCriteria(), ROWS, TYPES) == ROWS
    assert apply_filter(FilterCriteria.from_filter(None), ROWS, TYPES) == ROWS


def test_min_score_zero_is_skipped() -> None:
    crit = FilterCriteria(min_score=0.0)
    assert len(apply_filter(crit, ROWS, TYPES)) == len(ROWS)


def test_min_score_is_inclusive() -> None:
    crit = FilterCriteria(min_score=160.0)
    assert [r.account_id for r in apply_filter(crit, ROWS, TYPES)] == ["a", "b"]


def test_orphaned_row_fails_only_when_country_filter_is_set() -> None:
    with_country = FilterCriteria(countries=frozenset({"IE", "UK"}))
    assert "ghost" not in [r.account_id for r in apply_filter(with_country, ROWS, TYPES)]

    no_country = FilterCriteria(min_score=100.0)
    assert "ghost" in [r.account_id for r in apply_filter(no_country, ROWS, TYPES)]


def test_signal_types_use_intersection_not_subset() -> None:
    crit = FilterCriteria(signal_types=frozenset({"CSV_HIRING", "NEW_SITE_STARTUP"}))
    out = [r.account_id for r in apply_filter(crit, ROWS, TYPES)]
    assert out == ["a", "c"]


def test_filter_is_sound_for_all_predicates() -> None:
    crit = FilterCriteria(
        min_score=100.0,
        countries=frozenset({"IE", "DE"}),
        signal_types=frozenset({"FACILITY_EXPANSION"}),
    )
    out = apply_filter(crit, ROWS, TYPES)
    assert [r.account_id for r in out] == ["a", "b"]
    for r in out:
        assert r.score >= crit.min_score
        assert r.country in crit.countries
        assert set(TYPES[r.account_id]) & crit.signal_types


def test_type_check_can_be_deferred() -> None:
    crit = FilterCriteria(signal_types=frozenset({"NEW_SITE_STARTUP"}))
    assert apply_filter(crit, ROWS, TYPES) == []
    assert len(apply_filter(crit, ROWS, TYPES, check_signal_types=False)) == len(ROWS)


def test_from_filter_reads_stored_fields() -> None:
    f = Filter(org_id="o", name="f", countries=["IE"], signal_types=None, min_score=120)
    crit = FilterCriteria.from_filter(f)
    assert crit.min_score == 120.0
    assert crit.countries == frozenset({"IE"})
    assert not crit.has_type_filter
    assert signal_matches(crit, "ANYTHING")


def test_normalize_signal_types() -> None:
    assert normalize_signal_types(None) is None
    assert normalize_signal_types([]) is None
    assert normalize_signal_types(list(SIGNAL_TYPES)) is None
    assert normalize_signal_types([" csv_hiring", "CSV_HIRING", "FACILITY_EXPANSION"]) == [
        "CSV_HIRING",
        "FACILITY_EXPANSION",
    ]


def test_score_bands() -> None:
    assert score_band(150) == "Hot"
    assert score_band(149.9) == "Warm"
    assert score_band(100) == "Warm"
    assert score_band(99) == "Low"
