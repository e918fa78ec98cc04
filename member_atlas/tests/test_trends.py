"""
member_atlas/tests/test_trends.py — Tests for the daily pull request trend.

Naive datetimes are used throughout so calendar days do not depend on the
machine's time zone.
"""

from datetime import datetime

import pytest

from member_atlas.metrics.trends import (
    even_distribution,
    last_n_days,
    pr_trend,
    window_dates,
)
from member_atlas.models import ActivitySnapshot, MemberRecord

NOW = datetime(2026, 10, 18, 15, 30)


# ── Day windows ───────────────────────────────────────────────────────────────

def test_last_seven_day_labels():
    assert last_n_days(7, now=NOW) == [
        "Oct 12", "Oct 13", "Oct 14", "Oct 15", "Oct 16", "Oct 17", "Oct 18",
    ]


def test_window_crosses_month_boundary():
    dates = window_dates(3, now=datetime(2026, 3, 1))
    assert [d.isoformat() for d in dates] == ["2026-02-27", "2026-02-28", "2026-03-01"]


def test_window_zero_days():
    assert window_dates(0, now=NOW) == []


# ── even_distribution ─────────────────────────────────────────────────────────

@pytest.mark.parametrize("total,days", [(0, 30), (28, 30), (30, 30), (95, 30), (7, 7), (3, 1)])
def test_even_distribution_sums_and_spread(total, days):
    buckets = even_distribution(total, days)
    assert len(buckets) == days
    assert sum(buckets) == total
    assert max(buckets) - min(buckets) <= 1
    # larger buckets come first
    assert buckets == sorted(buckets, reverse=True)


def test_even_distribution_remainder_goes_to_earliest_days():
    assert even_distribution(5, 3) == [2, 2, 1]


# ── pr_trend ──────────────────────────────────────────────────────────────────

def test_trend_spreads_totals_without_timestamps(members):
    trend = pr_trend(members, days=30, now=NOW)
    assert trend == [1] * 28 + [0, 0]


def test_trend_buckets_timestamped_prs():
    member = MemberRecord(
        id="x",
        activity=ActivitySnapshot(
            pull_requests=99,
            recent_prs=[
                {"title": "a", "created_at": "2026-10-18T09:00:00"},
                {"title": "b", "created_at": "2026-10-18T23:59:00"},
                {"title": "c", "created_at": "2026-10-12T00:00:00"},
                {"title": "d", "created_at": "2026-10-11T23:59:59"},  # outside window
                {"title": "e", "created_at": "not a date"},
                {"title": "f"},
            ],
        ),
    )
    assert pr_trend([member], days=7, now=NOW) == [1, 0, 0, 0, 0, 0, 2]


def test_trend_empty_collection():
    assert pr_trend([], days=5, now=NOW) == [0, 0, 0, 0, 0]
    assert pr_trend([], days=0, now=NOW) == []
