"""
member_atlas/pipeline.py — Builds every derived view from the member collection.

The dashboard and analytics pages are two fixed bundles of aggregates. Both
the CLI and the API build them here so the two surfaces cannot drift:

    build_dashboard_view  — headline counts, 30-day PR trend, top committers
    build_analytics_view  — activity stats, repository / PR breakdowns,
                            language mix and the three leaderboards
    run_report            — load members through the cache, optionally
                            backfill public repo counts, build both views

Usage:
    from member_atlas.pipeline import run_report
    report = run_report(ctx, cache)
    print(report.dashboard.summary.total_members)
"""

import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Optional

from member_atlas.config import DEFAULT_CONFIG, MemberAtlasConfig
from member_atlas.context import AppContext
from member_atlas.ingestion.activity import backfill_public_repos
from member_atlas.metrics.languages import LanguageDistribution, language_distribution
from member_atlas.metrics.leaderboards import (
    LeaderboardEntry,
    top_committers,
    top_contributors,
    top_pr_creators,
)
from member_atlas.metrics.totals import (
    ActivityStats,
    DashboardSummary,
    PRActivityBreakdown,
    RepositoryBreakdown,
    activity_stats,
    dashboard_summary,
    pr_activity_breakdown,
    repository_breakdown,
)
from member_atlas.metrics.trends import last_n_days, pr_trend
from member_atlas.models import MemberRecord
from member_atlas.storage.member_cache import MemberCache

logger = logging.getLogger(__name__)


@dataclass
class DashboardView:
    summary: DashboardSummary
    trend_labels: list[str]
    trend_counts: list[int]
    top_committers: list[LeaderboardEntry]


@dataclass
class AnalyticsView:
    stats: ActivityStats
    repositories: RepositoryBreakdown
    pull_requests: PRActivityBreakdown
    languages: LanguageDistribution
    top_committers: list[LeaderboardEntry]
    top_pr_creators: list[LeaderboardEntry]
    top_contributors: list[LeaderboardEntry]


@dataclass
class AtlasReport:
    """Both page views plus where the member data came from."""

    generated_at: str
    member_count: int
    cache_outcome: Optional[str]
    dashboard: DashboardView
    analytics: AnalyticsView
    backfilled_public_repos: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return asdict(self)


def build_dashboard_view(
    members: list[MemberRecord],
    config: MemberAtlasConfig = DEFAULT_CONFIG,
    now: Optional[datetime] = None,
) -> DashboardView:
    days = config.trend_days
    return DashboardView(
        summary=dashboard_summary(members),
        trend_labels=last_n_days(days, now),
        trend_counts=pr_trend(members, days, now),
        top_committers=top_committers(members, config.leaderboard_size),
    )


def build_analytics_view(
    members: list[MemberRecord],
    config: MemberAtlasConfig = DEFAULT_CONFIG,
    fallback_public_repos: Optional[dict[str, int]] = None,
) -> AnalyticsView:
    n = config.leaderboard_size
    return AnalyticsView(
        stats=activity_stats(members),
        repositories=repository_breakdown(members, fallback_public_repos),
        pull_requests=pr_activity_breakdown(members),
        languages=language_distribution(
            members, config.language_top_n, config.language_bytes_threshold
        ),
        top_committers=top_committers(members, n),
        top_pr_creators=top_pr_creators(members, n),
        top_contributors=top_contributors(members, n),
    )


def run_report(
    ctx: AppContext,
    cache: MemberCache,
    force_refresh: bool = False,
    backfill: bool = False,
    now: Optional[datetime] = None,
) -> AtlasReport:
    """Load members and build the dashboard and analytics views.

    Args:
        ctx:           Application context.
        cache:         Member cache to load through.
        force_refresh: Bypass the persisted copy and query the document store.
        backfill:      Look up GitHub profiles for connected members missing a
                       public repository count (one request per such member).
        now:           Reference time for the trend window.

    Returns:
        AtlasReport. Never raises for cache or GitHub failures.
    """
    members = cache.load(force_refresh=force_refresh)
    fallback: dict[str, int] = {}
    if backfill:
        fallback = backfill_public_repos(ctx, members)
        logger.info("Backfilled public repo counts for %d members", len(fallback))

    generated = now or datetime.now()
    report = AtlasReport(
        generated_at=generated.isoformat(timespec="seconds"),
        member_count=len(members),
        cache_outcome=cache.last_outcome.value if cache.last_outcome else None,
        dashboard=build_dashboard_view(members, ctx.config, now),
        analytics=build_analytics_view(members, ctx.config, fallback),
        backfilled_public_repos=fallback,
    )
    logger.info(
        "Built report for %d members (source: %s)", report.member_count, report.cache_outcome
    )
    return report
