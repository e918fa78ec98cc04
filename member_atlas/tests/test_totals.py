"""
member_atlas/tests/test_totals.py — Tests for collection-wide sums and averages.

Fixture collection (conftest.member_docs):
    m1 Ada    connected, full snapshot
    m2 Grace  connected, snapshot without privateRepos
    m3 Linus  connected, no snapshot
    m4        not connected, small snapshot
    m5        not connected, no snapshot
"""

import pandas as pd

from member_atlas.metrics.totals import (
    ActivityStats,
    DashboardSummary,
    PRActivityBreakdown,
    RepositoryBreakdown,
    activity_frame,
    activity_stats,
    dashboard_summary,
    pr_activity_breakdown,
    repository_breakdown,
    totals_of,
)
from member_atlas.models import ActivitySnapshot, MemberRecord


# ── activity_frame ────────────────────────────────────────────────────────────

def test_activity_frame_shape(members):
    df = activity_frame(members)
    assert isinstance(df, pd.DataFrame)
    assert len(df) == 5
    assert {"member_id", "connected", "has_activity", "public_repos", "commits"} <= set(df.columns)
    assert df["has_activity"].tolist() == [True, True, False, True, False]
    assert pd.isna(df.loc[1, "private_repos"])


def test_activity_frame_empty():
    df = activity_frame([])
    assert df.empty
    assert "public_repos" in df.columns


# ── totals_of ─────────────────────────────────────────────────────────────────

def test_totals_of_document_key_and_attribute(members):
    assert totals_of(members, "publicRepos") == 18
    assert totals_of(members, "public_repos") == 18
    assert totals_of(members, "commits") == 240


def test_totals_of_empty_collection():
    assert totals_of([], "totalStars") == 0


def test_totals_of_unknown_field_is_zero(members):
    assert totals_of([], "stars") == 0
    assert totals_of(members, "stars") == 0
    assert totals_of(members, "rocketLaunches") == 0


def test_totals_of_ignores_non_numeric_values():
    member = MemberRecord(id="x", activity=ActivitySnapshot(commits=None))
    assert totals_of([member], "commits") == 0


# ── activity_stats ────────────────────────────────────────────────────────────

def test_activity_stats(members):
    stats = activity_stats(members)
    assert stats == ActivityStats(
        total_repos=17,
        total_stars=57,
        total_prs=28,
        total_commits=240,
        total_issues=5,
        total_forks=5,
        avg_repos=6,
        avg_stars=19,
        avg_prs=9,
        connected_members=3,
    )


def test_activity_stats_rounds_half_up():
    members = [
        MemberRecord(id="a", github_connected=True, github_username="a",
                     activity=ActivitySnapshot(total_stars=1)),
        MemberRecord(id="b", github_connected=True, github_username="b",
                     activity=ActivitySnapshot(total_stars=0)),
    ]
    assert activity_stats(members).avg_stars == 1


def test_activity_stats_no_connected_members(members):
    unconnected = [m for m in members if not m.github_connected]
    stats = activity_stats(unconnected)
    assert stats.total_repos == 0
    assert stats.avg_repos == 0
    assert stats.connected_members == 0


def test_activity_stats_empty():
    assert activity_stats([]) == ActivityStats()


# ── dashboard_summary ─────────────────────────────────────────────────────────

def test_dashboard_summary_counts_unconnected_snapshots(members):
    assert dashboard_summary(members) == DashboardSummary(
        total_members=5,
        total_repos=20,
        total_stars=58,
        total_prs=28,
        total_commits=240,
    )


def test_dashboard_summary_empty():
    assert dashboard_summary([]) == DashboardSummary()


# ── repository_breakdown ──────────────────────────────────────────────────────

def test_repository_breakdown(members):
    assert repository_breakdown(members) == RepositoryBreakdown(
        public=15, private=2, stars=57, forks=5, prs=28, commits=240,
    )


def test_repository_breakdown_backfills_only_missing_counts(members):
    breakdown = repository_breakdown(members, {"linus": 7, "grace": 99})
    assert breakdown.public == 22


def test_repository_breakdown_backfills_zero_public_repos():
    member = MemberRecord(id="z", github_connected=True, github_username="zed",
                          activity=ActivitySnapshot(public_repos=0, total_stars=2))
    breakdown = repository_breakdown([member], {"zed": 4})
    assert breakdown.public == 4
    assert breakdown.stars == 2


# ── pr_activity_breakdown ─────────────────────────────────────────────────────

def test_pr_activity_breakdown(members):
    assert pr_activity_breakdown(members) == PRActivityBreakdown(
        total=28, open=4, merged=21, closed=3,
    )


def test_pr_activity_breakdown_empty():
    assert pr_activity_breakdown([]) == PRActivityBreakdown()
