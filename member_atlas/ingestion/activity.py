"""
member_atlas/ingestion/activity.py — Member-level GitHub enrichment.

Composes the per-resource fetchers into the three on-demand operations the
dashboard needs:

    fetch_member_details    — profile first, then repositories / pull
                              requests / commits fetched in parallel (the only
                              concurrent batch in the system).
    refresh_member_activity — manual refresh: rebuild each connected member's
                              ActivitySnapshot and overwrite the full record in
                              the document store and the cache.
    backfill_public_repos   — profile lookups for connected members whose
                              snapshot lacks a public repository count.

Nothing here writes to the persistent cache except refresh_member_activity,
and only through MemberCache.set().
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field, fields, replace
from datetime import datetime, timezone
from typing import Optional

from member_atlas.context import AppContext
from member_atlas.ingestion.github_fetchers import (
    CommitSummary,
    PullRequestSummary,
    RepositorySummary,
    UserProfile,
    fetch_issue_count,
    fetch_pull_request_counts,
    fetch_recent_commits,
    fetch_user_languages,
    fetch_user_profile,
    fetch_user_pull_requests,
    fetch_user_repositories,
)
from member_atlas.models import ActivitySnapshot, FetchResult, FetchStatus, MemberRecord
from member_atlas.storage.member_cache import MemberCache
from member_atlas.storage.member_source import MemberSource, MemberSourceError

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Member detail view
# ---------------------------------------------------------------------------

@dataclass
class MemberDetail:
    """Everything the member detail view shows beyond the stored record."""

    member: MemberRecord
    profile: Optional[UserProfile] = None
    repositories: list[RepositorySummary] = field(default_factory=list)
    pull_requests: list[PullRequestSummary] = field(default_factory=list)
    commits: list[CommitSummary] = field(default_factory=list)
    statuses: dict[str, FetchStatus] = field(default_factory=dict)

    @property
    def open_prs(self) -> int:
        return sum(1 for pr in self.pull_requests if pr.state == "open" and not pr.merged)

    @property
    def merged_prs(self) -> int:
        return sum(1 for pr in self.pull_requests if pr.merged or pr.state == "merged")

    @property
    def closed_prs(self) -> int:
        return sum(
            1 for pr in self.pull_requests
            if pr.state == "closed" and not pr.merged
        )

    @property
    def repo_stars(self) -> int:
        return sum(repo.stars for repo in self.repositories)

    @property
    def repo_forks(self) -> int:
        return sum(repo.forks for repo in self.repositories)


def fetch_member_details(ctx: AppContext, member: MemberRecord) -> MemberDetail:
    """Fetch the live GitHub data shown on one member's detail view.

    The profile is fetched first; when it resolves, repositories, pull
    requests and recent commits are fetched concurrently on a three-worker
    ThreadPoolExecutor and awaited together. Members without a linked
    account, or whose profile cannot be resolved, get an empty detail.

    Args:
        ctx:    Application context.
        member: The member record to enrich.

    Returns:
        MemberDetail. Per-resource fetch statuses are in ``statuses``.
    """
    detail = MemberDetail(member=member)
    if not member.has_github:
        return detail

    handle = member.github_username
    profile = fetch_user_profile(ctx, handle)
    detail.statuses["profile"] = profile.status
    if profile.value is None:
        logger.info("No GitHub profile for member %s (%s): %s", member.id, handle, profile.reason)
        return detail
    detail.profile = profile.value

    cfg = ctx.config
    with ThreadPoolExecutor(max_workers=3) as executor:
        repos_future = executor.submit(
            fetch_user_repositories, ctx, handle, cfg.detail_repos_limit
        )
        prs_future = executor.submit(
            fetch_user_pull_requests, ctx, handle, "all", cfg.detail_pull_requests_limit
        )
        commits_future = executor.submit(
            fetch_recent_commits, ctx, handle, cfg.detail_commits_limit
        )
        batch = {
            "repositories": repos_future,
            "pull_requests": prs_future,
            "commits": commits_future,
        }
        for name, future in batch.items():
            try:
                result = future.result()
            except Exception as exc:  # noqa: BLE001
                logger.warning("Unhandled error fetching %s for %s: %s", name, handle, exc)
                detail.statuses[name] = FetchStatus.FAILED
                continue
            setattr(detail, name, result.value)
            detail.statuses[name] = result.status

    return detail


# ---------------------------------------------------------------------------
# Activity snapshots
# ---------------------------------------------------------------------------

def _recent_pr_entry(pr: PullRequestSummary) -> dict:
    return {
        "title": pr.title,
        "state": pr.state,
        "merged": pr.merged,
        "created_at": pr.created_at,
        "url": pr.url,
        "repository": pr.repository,
    }


def build_activity_snapshot(
    ctx: AppContext,
    handle: str,
) -> FetchResult[Optional[ActivitySnapshot]]:
    """Assemble a fresh ActivitySnapshot for one GitHub account.

    The public repository listing never includes private repositories, so
    private_repos is left to whatever the stored record already carries.

    Counts that could not be fetched (throttled, no token, failed) are left
    as None rather than 0, so merge_snapshots() keeps the previously stored
    value for them.

    Returns:
        FetchResult holding the snapshot, or None when the profile itself
        could not be resolved. The status is OK only when every part
        succeeded; otherwise it is the first degraded part's status.
    """
    profile = fetch_user_profile(ctx, handle)
    if profile.value is None:
        return FetchResult.empty(None, profile.status, profile.reason or "profile unavailable")

    snapshot = ActivitySnapshot(
        public_repos=profile.value.public_repos,
        followers=profile.value.followers,
        following=profile.value.following,
    )
    problems: list[tuple[str, FetchResult]] = []

    repos = fetch_user_repositories(ctx, handle)
    if repos.ok:
        snapshot.total_stars = sum(r.stars for r in repos.value)
        snapshot.total_forks = sum(r.forks for r in repos.value)
    else:
        problems.append(("repositories", repos))

    languages = fetch_user_languages(ctx, handle)
    if languages.ok:
        snapshot.languages = languages.value
    else:
        problems.append(("languages", languages))

    counts = fetch_pull_request_counts(ctx, handle)
    if counts.ok:
        snapshot.pull_requests = counts.value["total"]
        snapshot.open_prs = counts.value["open"]
        snapshot.merged_prs = counts.value["merged"]
        snapshot.closed_prs = counts.value["closed"]
    else:
        problems.append(("pull request counts", counts))

    recent = fetch_user_pull_requests(ctx, handle)
    if recent.ok:
        snapshot.recent_prs = [_recent_pr_entry(pr) for pr in recent.value]
    else:
        problems.append(("recent pull requests", recent))

    commits = fetch_recent_commits(ctx, handle)
    if commits.ok:
        snapshot.commits = len(commits.value)
    else:
        problems.append(("commits", commits))

    issues = fetch_issue_count(ctx, handle)
    if issues.ok:
        snapshot.issues = issues.value
    else:
        problems.append(("issues", issues))

    if not problems:
        return FetchResult(value=snapshot)

    first = problems[0][1]
    reason = "; ".join(f"{name}: {res.status.value}" for name, res in problems)
    logger.warning("Partial activity snapshot for %s (%s)", handle, reason)
    return FetchResult(value=snapshot, status=first.status, reason=reason)


def merge_snapshots(
    previous: Optional[ActivitySnapshot],
    fresh: ActivitySnapshot,
) -> ActivitySnapshot:
    """Overlay *fresh* on *previous*: fresh values win, None never overwrites."""
    if previous is None:
        return fresh
    merged = replace(previous, extra=dict(previous.extra))
    for f in fields(ActivitySnapshot):
        if f.name == "extra":
            continue
        value = getattr(fresh, f.name)
        if f.name == "recent_prs" and not value:
            continue
        if value is not None:
            setattr(merged, f.name, value)
    merged.extra.update(fresh.extra)
    return merged


# ---------------------------------------------------------------------------
# Manual refresh
# ---------------------------------------------------------------------------

@dataclass
class RefreshSummary:
    refreshed: list[str] = field(default_factory=list)
    partial: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)


def refresh_member_activity(
    ctx: AppContext,
    cache: MemberCache,
    source: MemberSource,
    member_ids: Optional[list[str]] = None,
) -> RefreshSummary:
    """Rebuild activity snapshots and overwrite the affected member records.

    For each connected member (restricted to *member_ids* when given) a new
    snapshot is built and merged over the stored one, the full record is
    written back to *source*, and finally the whole collection is stored via
    cache.set(). Members that fail keep their previous record.

    Args:
        ctx:        Application context.
        cache:      Member cache; loaded from storage if memory is empty.
        source:     Document store receiving the full-record overwrites.
        member_ids: Optional subset of member ids to refresh.

    Returns:
        RefreshSummary listing refreshed, partial, skipped and failed ids.
    """
    members = cache.get() or cache.load()
    wanted = set(member_ids) if member_ids is not None else None
    summary = RefreshSummary()
    updated: list[MemberRecord] = []

    for member in members:
        if wanted is not None and member.id not in wanted:
            updated.append(member)
            continue
        if not member.has_github:
            summary.skipped.append(member.id)
            updated.append(member)
            continue

        ctx.profile_cache.pop(member.github_username, None)
        result = build_activity_snapshot(ctx, member.github_username)
        if result.value is None:
            summary.failed[member.id] = result.reason or result.status.value
            updated.append(member)
            continue

        now = datetime.fromtimestamp(ctx.clock(), tz=timezone.utc).isoformat()
        refreshed = replace(
            member,
            activity=merge_snapshots(member.activity, result.value),
            last_updated=now,
        )
        try:
            source.replace_member(refreshed)
        except MemberSourceError as exc:
            logger.error("Could not store refreshed activity for member %s: %s", member.id, exc)
            summary.failed[member.id] = str(exc)
            updated.append(member)
            continue

        updated.append(refreshed)
        if result.ok:
            summary.refreshed.append(member.id)
        else:
            summary.partial.append(member.id)

    if summary.refreshed or summary.partial:
        cache.set(updated)
    logger.info(
        "Activity refresh: %d refreshed, %d partial, %d skipped, %d failed",
        len(summary.refreshed), len(summary.partial),
        len(summary.skipped), len(summary.failed),
    )
    return summary


def backfill_public_repos(ctx: AppContext, members: list[MemberRecord]) -> dict[str, int]:
    """Public repository counts for connected members whose snapshot lacks one.

    Returns:
        Mapping GitHub handle → profile public_repos, for the handles whose
        profile lookup succeeded.
    """
    counts: dict[str, int] = {}
    for member in members:
        if not member.has_github:
            continue
        if member.activity is not None and member.activity.public_repos:
            continue
        handle = member.github_username
        if handle in counts:
            continue
        profile = fetch_user_profile(ctx, handle)
        if profile.value is not None:
            counts[handle] = profile.value.public_repos
    return counts
