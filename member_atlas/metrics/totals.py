"""
member_atlas/metrics/totals.py — Collection-wide sums and averages.

Every function here is a pure fold over the in-memory member collection:
nothing fetches, nothing raises on missing data. An absent snapshot, or an
absent count inside one, contributes zero to a sum.

The collection is first flattened into a pandas DataFrame (one row per
member, one column per activity count, NaN where the count is absent) so
that each aggregate is a masked column sum.

    totals_of              — sum of one activity field over all members
    activity_stats         — analytics-page totals and per-member averages
    dashboard_summary      — headline numbers on the dashboard
    repository_breakdown   — public/private/stars/forks/PRs/commits of
                             connected members, with profile backfill
    pr_activity_breakdown  — pull requests by state
"""

import logging
import math
from dataclasses import dataclass
from typing import Optional

import pandas as pd

from member_atlas.models import ACTIVITY_FIELDS, MemberRecord, lookup_activity_field

logger = logging.getLogger(__name__)

_FLAG_COLUMNS = ["member_id", "github_username", "connected", "has_activity"]
_COUNT_COLUMNS = list(ACTIVITY_FIELDS.values())


def activity_frame(members: list[MemberRecord]) -> pd.DataFrame:
    """Flatten members into a DataFrame of flags and activity counts.

    Columns:
        member_id, github_username, connected (bool), has_activity (bool),
        plus one float column per ActivitySnapshot count (NaN when absent).
    """
    rows = []
    for member in members:
        row = {
            "member_id": member.id,
            "github_username": member.github_username or "",
            "connected": bool(member.github_connected),
            "has_activity": member.activity is not None,
        }
        for attr in _COUNT_COLUMNS:
            row[attr] = getattr(member.activity, attr) if member.activity is not None else None
        rows.append(row)

    df = pd.DataFrame(rows, columns=_FLAG_COLUMNS + _COUNT_COLUMNS)
    df[_COUNT_COLUMNS] = df[_COUNT_COLUMNS].apply(pd.to_numeric, errors="coerce")
    df["connected"] = df["connected"].astype(bool)
    df["has_activity"] = df["has_activity"].astype(bool)
    return df


def _sum(df: pd.DataFrame, attr: str) -> int:
    return int(df[attr].fillna(0).sum())


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def totals_of(members: list[MemberRecord], field: str) -> int:
    """Sum one activity count across all members; absent values count as 0.

    Args:
        members: Member collection.
        field:   Document key ('pullRequests') or attribute ('pull_requests').

    Returns:
        The integer total; 0 for an empty collection or an unknown field.
    """
    attr = lookup_activity_field(field)
    if attr is None:
        logger.warning("totals_of: unknown activity field %r", field)
        return 0
    if not members:
        return 0
    return _sum(activity_frame(members), attr)


# ---------------------------------------------------------------------------
# Analytics page
# ---------------------------------------------------------------------------

@dataclass
class ActivityStats:
    total_repos: int = 0
    total_stars: int = 0
    total_prs: int = 0
    total_commits: int = 0
    total_issues: int = 0
    total_forks: int = 0
    avg_repos: int = 0
    avg_stars: int = 0
    avg_prs: int = 0
    connected_members: int = 0


def activity_stats(members: list[MemberRecord]) -> ActivityStats:
    """Totals and per-member averages over GitHub-connected members.

    Sums cover connected members that carry a snapshot. Averages divide by
    the connected members that either carry a snapshot or at least have a
    handle (activity not loaded yet still counts as a member), rounded half
    up to whole numbers.
    """
    if not members:
        return ActivityStats()

    df = activity_frame(members)
    connected = df[df["connected"]]
    with_activity = connected[connected["has_activity"]]
    handle_only = connected[~connected["has_activity"] & (connected["github_username"] != "")]
    member_count = len(with_activity) + len(handle_only)

    total_repos = _sum(with_activity, "public_repos") + _sum(with_activity, "private_repos")
    total_stars = _sum(with_activity, "total_stars")
    total_prs = _sum(with_activity, "pull_requests")

    def _avg(total: int) -> int:
        return _round_half_up(total / member_count) if member_count > 0 else 0

    return ActivityStats(
        total_repos=total_repos,
        total_stars=total_stars,
        total_prs=total_prs,
        total_commits=_sum(with_activity, "commits"),
        total_issues=_sum(with_activity, "issues"),
        total_forks=_sum(with_activity, "total_forks"),
        avg_repos=_avg(total_repos),
        avg_stars=_avg(total_stars),
        avg_prs=_avg(total_prs),
        connected_members=len(connected),
    )


@dataclass
class DashboardSummary:
    total_members: int = 0
    total_repos: int = 0
    total_stars: int = 0
    total_prs: int = 0
    total_commits: int = 0


def dashboard_summary(members: list[MemberRecord]) -> DashboardSummary:
    """Headline counts: every member with a snapshot contributes, connected or not."""
    if not members:
        return DashboardSummary()
    df = activity_frame(members)
    active = df[df["has_activity"]]
    return DashboardSummary(
        total_members=len(df),
        total_repos=_sum(active, "public_repos") + _sum(active, "private_repos"),
        total_stars=_sum(active, "total_stars"),
        total_prs=_sum(active, "pull_requests"),
        total_commits=_sum(active, "commits"),
    )


@dataclass
class RepositoryBreakdown:
    public: int = 0
    private: int = 0
    stars: int = 0
    forks: int = 0
    prs: int = 0
    commits: int = 0


def repository_breakdown(
    members: list[MemberRecord],
    fallback_public_repos: Optional[dict[str, int]] = None,
) -> RepositoryBreakdown:
    """Repository-level totals over connected members with a handle.

    Args:
        members:               Member collection.
        fallback_public_repos: Handle → profile public_repos, as returned by
                               ingestion.activity.backfill_public_repos(). It
                               is added for members whose snapshot is missing
                               or has no public_repos count.
    """
    fallback = fallback_public_repos or {}
    breakdown = RepositoryBreakdown()
    if not members:
        return breakdown

    df = activity_frame(members)
    eligible = df[df["connected"] & (df["github_username"] != "")]
    with_activity = eligible[eligible["has_activity"]]

    breakdown.public = _sum(with_activity, "public_repos")
    breakdown.private = _sum(with_activity, "private_repos")
    breakdown.stars = _sum(with_activity, "total_stars")
    breakdown.forks = _sum(with_activity, "total_forks")
    breakdown.prs = _sum(with_activity, "pull_requests")
    breakdown.commits = _sum(with_activity, "commits")

    if fallback:
        needs_fallback = ~eligible["has_activity"] | (eligible["public_repos"].fillna(0) == 0)
        for handle in eligible.loc[needs_fallback, "github_username"]:
            breakdown.public += int(fallback.get(handle, 0) or 0)
    return breakdown


@dataclass
class PRActivityBreakdown:
    total: int = 0
    open: int = 0
    merged: int = 0
    closed: int = 0


def pr_activity_breakdown(members: list[MemberRecord]) -> PRActivityBreakdown:
    """Pull request totals by state across every member with a snapshot."""
    if not members:
        return PRActivityBreakdown()
    df = activity_frame(members)
    active = df[df["has_activity"]]
    return PRActivityBreakdown(
        total=_sum(active, "pull_requests"),
        open=_sum(active, "open_prs"),
        merged=_sum(active, "merged_prs"),
        closed=_sum(active, "closed_prs"),
    )
