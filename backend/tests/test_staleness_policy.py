"""
backend/tests/test_staleness_policy.py

Purpose:
    Classification rules for cached picks: precedence, the 4h clock boundary,
    the 20-point odds drift boundary, and malformed stored records.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from pickcache.services.staleness_policy import StalenessPolicy, Verdict

NOW = datetime(2026, 3, 1, 18, 0, 0, tzinfo=timezone.utc)
POLICY = StalenessPolicy()


def _record(age: timedelta = timedelta(hours=1), odds: int | None = -150, **extra) -> dict:
    doc = {
        "game_id": "2026-03-01-bos-nyr",
        "market_type": "moneyline",
        "odds_at_generation": odds,
        "created_at": NOW - age,
    }
    doc.update(extra)
    return doc


def test_absent_record_is_miss():
    assert POLICY.classify(None, -150, now=NOW) is Verdict.MISS


def test_fresh_record_with_same_odds_is_hit():
    assert POLICY.classify(_record(), -150, now=NOW) is Verdict.HIT


def test_clock_boundary():
    just_inside = _record(age=timedelta(hours=3, minutes=59, seconds=59))
    just_outside = _record(age=timedelta(hours=4, seconds=1))

    assert POLICY.classify(just_inside, -150, now=NOW) is Verdict.HIT
    assert POLICY.classify(just_outside, -150, now=NOW) is Verdict.STALE_TIME


@pytest.mark.parametrize("current_odds", [-130, -170])
def test_drift_of_exactly_twenty_is_hit(current_odds):
    assert POLICY.classify(_record(odds=-150), current_odds, now=NOW) is Verdict.HIT


@pytest.mark.parametrize("current_odds", [-129, -171])
def test_drift_of_twenty_one_is_stale_odds(current_odds):
    assert POLICY.classify(_record(odds=-150), current_odds, now=NOW) is Verdict.STALE_ODDS


def test_drift_across_even_money():
    # +110 -> -110 is a 220 point move on the American scale
    assert POLICY.classify(_record(odds=110), -110, now=NOW) is Verdict.STALE_ODDS


def test_time_takes_precedence_over_odds():
    old_and_moved = _record(age=timedelta(hours=6), odds=-150)
    assert POLICY.classify(old_and_moved, 200, now=NOW) is Verdict.STALE_TIME


@pytest.mark.parametrize(
    "record",
    [
        {"game_id": "g", "market_type": "moneyline", "created_at": NOW},
        {"game_id": "g", "market_type": "moneyline", "odds_at_generation": None, "created_at": NOW},
        {"game_id": "g", "market_type": "moneyline", "odds_at_generation": -150},
        {"game_id": "g", "market_type": "moneyline", "odds_at_generation": -150, "created_at": "yesterday-ish"},
        {"game_id": "g", "market_type": "moneyline", "odds_at_generation": "-150", "created_at": NOW},
        {"game_id": "g", "market_type": "moneyline", "odds_at_generation": True, "created_at": NOW},
    ],
)
def test_malformed_records_are_stale_data_incomplete(record):
    assert POLICY.classify(record, -150, now=NOW) is Verdict.STALE_DATA_INCOMPLETE


def test_incomplete_data_takes_precedence_over_time():
    record = _record(age=timedelta(days=3), odds=None)
    assert POLICY.classify(record, -150, now=NOW) is Verdict.STALE_DATA_INCOMPLETE


def test_iso_string_and_naive_timestamps_are_accepted():
    iso = _record(created_at=(NOW - timedelta(hours=1)).isoformat().replace("+00:00", "Z"))
    naive = _record(created_at=(NOW - timedelta(hours=1)).replace(tzinfo=None))

    assert POLICY.classify(iso, -150, now=NOW) is Verdict.HIT
    assert POLICY.classify(naive, -150, now=NOW) is Verdict.HIT


def test_thresholds_are_configurable():
    strict = StalenessPolicy(max_age_hours=1, odds_drift_threshold=5)
    assert strict.classify(_record(age=timedelta(minutes=90)), -150, now=NOW) is Verdict.STALE_TIME
    assert strict.classify(_record(age=timedelta(minutes=10)), -156, now=NOW) is Verdict.STALE_ODDS
