"""
member_atlas/ingestion/github_fetchers.py — Typed GitHub accessors.

One function per resource type, each built on GitHubClient and each owning
its own pagination and pacing policy:

    fetch_user_profile        — GET /users/{u}; 404 cached as "known missing"
    fetch_user_repositories   — GET /users/{u}/repos, paginated, 100ms pacing
    fetch_recent_commits      — commits by {u} across the 10 latest repos
    fetch_user_languages      — summed language bytes across the 20 latest repos
    fetch_user_pull_requests  — GET /search/issues?q=type:pr author:{u}
    fetch_pull_request_counts — total/open/merged/closed via search totals
    fetch_issue_count         — GET /search/issues?q=type:issue author:{u}

Every public fetcher returns a FetchResult and never raises: throttling,
missing credentials, HTTP failures and transport errors are logged and turned
into an empty value with a status explaining why it is empty.
"""

import logging
import urllib.parse
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional

from member_atlas.context import AppContext
from member_atlas.ingestion.github_client import GitHubClient, GitHubResponse
from member_atlas.models import FetchResult, FetchStatus

logger = logging.getLogger(__name__)

PR_STATES = ("all", "open", "closed", "merged")

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------

@dataclass
class UserProfile:
    """Public GitHub profile fields shown on the member detail view."""

    username: str
    name: Optional[str]
    avatar_url: str
    html_url: str
    public_repos: int
    followers: int
    following: int
    bio: str = ""
    location: str = ""
    blog: str = ""
    company: str = ""


@dataclass
class RepositorySummary:
    """Projection of a GitHub repository object."""

    id: int
    name: str
    full_name: str
    description: str
    url: str
    language: Optional[str]
    stars: int
    forks: int
    open_issues: int
    is_private: bool
    created_at: Optional[str]
    updated_at: Optional[str]
    pushed_at: Optional[str]
    default_branch: Optional[str]


@dataclass
class CommitSummary:
    """Projection of a commit authored by the member."""

    sha: str
    message: str           # first line only
    author: str
    date: str              # ISO 8601
    url: str
    repository: str        # owner/name
    repository_url: str


@dataclass
class PullRequestSummary:
    """Projection of a pull request returned by the issue search API."""

    id: int
    number: int
    title: str
    state: str             # "open" | "closed" | "merged"
    merged: bool
    created_at: Optional[str]
    closed_at: Optional[str]
    merged_at: Optional[str]
    url: str
    repository: str        # owner/name


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _quote(handle: str) -> str:
    return urllib.parse.quote(handle, safe="")


def _parse_iso(value: Optional[str]) -> datetime:
    """Parse a GitHub timestamp; unparseable values sort as the epoch."""
    if not value:
        return _EPOCH
    try:
        dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return _EPOCH
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def _has_next_page(resp: GitHubResponse, page_len: int, per_page: int) -> bool:
    """Another page exists when this one was full and Link does not rule it out."""
    if page_len < per_page:
        return False
    link = resp.header("Link")
    return link is None or 'rel="next"' in link


def _status_for(resp: GitHubResponse) -> FetchStatus:
    if resp.status == 404:
        return FetchStatus.NOT_FOUND
    if resp.status in (403, 429):
        return FetchStatus.THROTTLED
    return FetchStatus.FAILED


def _parse_repository(item: dict) -> RepositorySummary:
    return RepositorySummary(
        id=item.get("id", 0),
        name=item.get("name", ""),
        full_name=item.get("full_name", ""),
        description=item.get("description") or "",
        url=item.get("html_url", ""),
        language=item.get("language") or None,
        stars=item.get("stargazers_count") or 0,
        forks=item.get("forks_count") or 0,
        open_issues=item.get("open_issues_count") or 0,
        is_private=bool(item.get("private", False)),
        created_at=item.get("created_at"),
        updated_at=item.get("updated_at"),
        pushed_at=item.get("pushed_at"),
        default_branch=item.get("default_branch"),
    )


def _parse_commit(item: dict, repo: dict) -> CommitSummary:
    commit = item.get("commit") or {}
    author = commit.get("author") or {}
    message = commit.get("message") or ""
    return CommitSummary(
        sha=item.get("sha", ""),
        message=message.split("\n", 1)[0],
        author=author.get("name", ""),
        date=author.get("date", ""),
        url=item.get("html_url", ""),
        repository=repo.get("full_name", ""),
        repository_url=repo.get("html_url", ""),
    )


def _parse_pull_request(item: dict) -> PullRequestSummary:
    pr_meta = item.get("pull_request") or {}
    merged_at = pr_meta.get("merged_at")
    merged = merged_at is not None
    state = "merged" if merged else item.get("state", "open")
    repository_url = item.get("repository_url", "")
    repository = "/".join(repository_url.rstrip("/").split("/")[-2:]) if repository_url else ""
    return PullRequestSummary(
        id=item.get("id", 0),
        number=item.get("number", 0),
        title=item.get("title", ""),
        state=state,
        merged=merged,
        created_at=item.get("created_at"),
        closed_at=item.get("closed_at"),
        merged_at=merged_at,
        url=item.get("html_url", ""),
        repository=repository,
    )


def _latest_repos(
    client: GitHubClient,
    handle: str,
    per_page: int,
) -> tuple[list[dict], Optional[FetchResult]]:
    """First page of the user's repos sorted by last update.

    Returns (repos, None) on success, or ([], failure_result) when the listing
    itself could not be fetched.
    """
    resp = client.request(
        f"/users/{_quote(handle)}/repos?sort=updated&per_page={per_page}"
    )
    if not resp.ok:
        return [], FetchResult.empty(
            None, _status_for(resp), f"HTTP {resp.status} listing repos for {handle}"
        )
    data = resp.json()
    if not isinstance(data, list):
        return [], FetchResult.empty(
            None, FetchStatus.FAILED, f"Unexpected repos payload for {handle}"
        )
    return data, None


def _unauthenticated(value: Any, what: str) -> FetchResult:
    return FetchResult.empty(
        value, FetchStatus.UNAUTHENTICATED, f"GitHub token required for {what}"
    )


# ---------------------------------------------------------------------------
# User profile
# ---------------------------------------------------------------------------

def fetch_user_profile(
    ctx: AppContext,
    handle: str,
    use_cache: bool = True,
) -> FetchResult[Optional[UserProfile]]:
    """Fetch a GitHub user's public profile.

    Successful lookups and 404s are cached on ctx.profile_cache keyed by
    handle; a cached None means the account is known not to exist and
    short-circuits later calls. Throttled and failed lookups are not cached.

    Args:
        ctx:       Application context.
        handle:    GitHub login.
        use_cache: Consult ctx.profile_cache before calling the API.

    Returns:
        FetchResult whose value is a UserProfile, or None with status
        NOT_FOUND / THROTTLED / FAILED.
    """
    if use_cache and handle in ctx.profile_cache:
        cached = ctx.profile_cache[handle]
        if cached is None:
            return FetchResult.empty(None, FetchStatus.NOT_FOUND, f"GitHub user '{handle}' not found (cached)")
        return FetchResult(value=cached)

    client = GitHubClient(ctx)
    try:
        resp = client.request(f"/users/{_quote(handle)}")
        if resp.ok:
            data = resp.json()
            profile = UserProfile(
                username=data.get("login", handle),
                name=data.get("name"),
                avatar_url=data.get("avatar_url", ""),
                html_url=data.get("html_url", ""),
                public_repos=data.get("public_repos") or 0,
                followers=data.get("followers") or 0,
                following=data.get("following") or 0,
                bio=data.get("bio") or "",
                location=data.get("location") or "",
                blog=data.get("blog") or "",
                company=data.get("company") or "",
            )
            ctx.profile_cache[handle] = profile
            return FetchResult(value=profile)

        if resp.status == 404:
            logger.warning("GitHub user '%s' not found (404)", handle)
            ctx.profile_cache[handle] = None
            return FetchResult.empty(None, FetchStatus.NOT_FOUND, f"GitHub user '{handle}' not found")

        if resp.status in (403, 429):
            logger.warning("GitHub API %d for user '%s' — skipping", resp.status, handle)
        else:
            logger.error("GitHub API error %d for user '%s'", resp.status, handle)
        return FetchResult.empty(None, _status_for(resp), f"HTTP {resp.status} for user '{handle}'")
    except Exception as exc:  # noqa: BLE001
        logger.error("Error fetching GitHub user info for %s: %s", handle, exc)
        return FetchResult.empty(None, FetchStatus.FAILED, str(exc))


# ---------------------------------------------------------------------------
# Repositories
# ---------------------------------------------------------------------------

def fetch_user_repositories(
    ctx: AppContext,
    handle: str,
    limit: Optional[int] = None,
) -> FetchResult[list[RepositorySummary]]:
    """Fetch a user's repositories, most recently updated first.

    Paginates at config.repos_per_page until a page comes back short or
    empty, *limit* items are collected, or the Link header has no rel="next".
    Sleeps config.repos_page_delay_seconds between page requests.

    Throttling mid-pagination returns the repositories gathered so far with
    status THROTTLED; a 404 stops with status NOT_FOUND. Any other failure
    returns an empty list with status FAILED.
    """
    cfg = ctx.config
    limit = cfg.repos_default_limit if limit is None else limit
    per_page = cfg.repos_per_page
    client = GitHubClient(ctx)
    repos: list[RepositorySummary] = []
    page = 1

    try:
        while len(repos) < limit:
            resp = client.request(
                f"/users/{_quote(handle)}/repos"
                f"?sort=updated&per_page={per_page}&page={page}"
            )

            if not resp.ok:
                if resp.status == 404:
                    return FetchResult(repos, FetchStatus.NOT_FOUND, f"GitHub user '{handle}' not found")
                if resp.status in (403, 429):
                    logger.warning(
                        "GitHub API %d for repos of '%s' — returning %d partial results",
                        resp.status, handle, len(repos),
                    )
                    return FetchResult(repos, FetchStatus.THROTTLED, f"HTTP {resp.status} on page {page}")
                logger.error("GitHub API error %d fetching repos of '%s'", resp.status, handle)
                return FetchResult.empty([], FetchStatus.FAILED, f"HTTP {resp.status} on page {page}")

            data = resp.json()
            if not isinstance(data, list):
                logger.error("Unexpected repos payload for '%s': %s", handle, type(data).__name__)
                return FetchResult.empty([], FetchStatus.FAILED, "Unexpected repos payload")
            if not data:
                break

            for item in data:
                if len(repos) >= limit:
                    break
                repos.append(_parse_repository(item))

            if not _has_next_page(resp, len(data), per_page):
                break
            page += 1
            if len(repos) < limit:
                ctx.sleep(cfg.repos_page_delay_seconds)
    except Exception as exc:  # noqa: BLE001
        logger.error("Error fetching repositories for %s: %s", handle, exc)
        return FetchResult.empty([], FetchStatus.FAILED, str(exc))

    return FetchResult.success(repos)


# ---------------------------------------------------------------------------
# Commits
# ---------------------------------------------------------------------------

def fetch_recent_commits(
    ctx: AppContext,
    handle: str,
    limit: Optional[int] = None,
) -> FetchResult[list[CommitSummary]]:
    """Fetch the member's most recent commits across their latest repositories.

    Scans at most config.commit_repos_scanned repositories (most recently
    updated first), requesting commits authored by *handle* in each and
    stopping once *limit* commits are collected or GitHub throttles.
    Sleeps config.commit_repo_delay_seconds between repository requests.
    The merged list is sorted newest first and truncated to *limit*.

    Requires a GitHub token; without one returns [] with UNAUTHENTICATED.
    """
    cfg = ctx.config
    limit = cfg.commits_default_limit if limit is None else limit
    if not ctx.credentials.has_token:
        return _unauthenticated([], "commit history")

    client = GitHubClient(ctx)
    try:
        repos, failure = _latest_repos(client, handle, cfg.commit_repos_scanned)
        if failure is not None:
            return FetchResult.empty([], failure.status, failure.reason)

        commits: list[CommitSummary] = []
        throttled = False
        for index, repo in enumerate(repos[: cfg.commit_repos_scanned]):
            if len(commits) >= limit:
                break
            if index > 0:
                ctx.sleep(cfg.commit_repo_delay_seconds)
            full_name = repo.get("full_name", "")
            try:
                resp = client.request(
                    f"/repos/{full_name}/commits"
                    f"?author={_quote(handle)}&per_page={cfg.commits_per_repo}"
                )
                if resp.ok:
                    for item in resp.json() or []:
                        if len(commits) >= limit:
                            break
                        commits.append(_parse_commit(item, repo))
                elif resp.status in (403, 429):
                    throttled = True
                    break
            except Exception as exc:  # noqa: BLE001
                logger.error("Error fetching commits from %s: %s", full_name, exc)

        commits.sort(key=lambda c: _parse_iso(c.date), reverse=True)
        commits = commits[:limit]
    except Exception as exc:  # noqa: BLE001
        logger.error("Error fetching recent commits for %s: %s", handle, exc)
        return FetchResult.empty([], FetchStatus.FAILED, str(exc))

    if throttled:
        return FetchResult(commits, FetchStatus.THROTTLED, "Rate limited while scanning repositories")
    return FetchResult.success(commits)


# ---------------------------------------------------------------------------
# Languages
# ---------------------------------------------------------------------------

def fetch_user_languages(
    ctx: AppContext,
    handle: str,
    limit: Optional[int] = None,
) -> FetchResult[dict[str, int]]:
    """Sum language byte counts across the member's latest repositories.

    Lists up to *limit* repositories, then queries /languages for at most
    config.language_repos_scanned of them, sleeping
    config.language_repo_delay_seconds between requests. Stops early on
    throttling and returns what has been summed so far.

    Requires a GitHub token; without one returns {} with UNAUTHENTICATED.
    """
    cfg = ctx.config
    limit = cfg.repos_default_limit if limit is None else limit
    if not ctx.credentials.has_token:
        return _unauthenticated({}, "language breakdown")

    client = GitHubClient(ctx)
    breakdown: dict[str, int] = {}
    throttled = False
    try:
        repos, failure = _latest_repos(client, handle, limit)
        if failure is not None:
            return FetchResult.empty({}, failure.status, failure.reason)

        for index, repo in enumerate(repos[: cfg.language_repos_scanned]):
            if index > 0:
                ctx.sleep(cfg.language_repo_delay_seconds)
            full_name = repo.get("full_name", "")
            try:
                resp = client.request(f"/repos/{full_name}/languages")
                if resp.ok:
                    for lang, size in (resp.json() or {}).items():
                        if lang and lang.strip():
                            breakdown[lang] = breakdown.get(lang, 0) + int(size)
                elif resp.status in (403, 429):
                    throttled = True
                    break
            except Exception as exc:  # noqa: BLE001
                logger.error("Error fetching languages for %s: %s", full_name, exc)
    except Exception as exc:  # noqa: BLE001
        logger.error("Error fetching user languages for %s: %s", handle, exc)
        return FetchResult.empty({}, FetchStatus.FAILED, str(exc))

    if throttled:
        return FetchResult(breakdown, FetchStatus.THROTTLED, "Rate limited while scanning repositories")
    return FetchResult.success(breakdown)


# ---------------------------------------------------------------------------
# Pull requests & issues (search API)
# ---------------------------------------------------------------------------

def _pr_query(handle: str, state: str) -> str:
    qualifiers = ["type:pr", f"author:{handle}"]
    if state == "open":
        qualifiers.append("is:open")
    elif state == "merged":
        qualifiers.append("is:merged")
    elif state == "closed":
        qualifiers += ["is:closed", "is:unmerged"]
    return " ".join(qualifiers)


def _search(client: GitHubClient, query: str, per_page: int) -> GitHubResponse:
    q = urllib.parse.quote(query, safe=":")
    return client.request(
        f"/search/issues?q={q}&sort=created&order=desc&per_page={per_page}"
    )


def _search_total(ctx: AppContext, query: str) -> FetchResult[int]:
    client = GitHubClient(ctx)
    resp = _search(client, query, per_page=1)
    if not resp.ok:
        return FetchResult.empty(0, _status_for(resp), f"HTTP {resp.status} for search '{query}'")
    total = (resp.json() or {}).get("total_count", 0) or 0
    return FetchResult.success(int(total))


def fetch_user_pull_requests(
    ctx: AppContext,
    handle: str,
    state: str = "all",
    limit: Optional[int] = None,
) -> FetchResult[list[PullRequestSummary]]:
    """Fetch pull requests authored by *handle*, newest first.

    Args:
        state: 'all', 'open', 'closed' (closed without merge) or 'merged'.
        limit: Maximum number of pull requests (a single search page, <= 100).

    Requires a GitHub token; without one returns [] with UNAUTHENTICATED.
    """
    limit = ctx.config.pull_requests_default_limit if limit is None else limit
    if state not in PR_STATES:
        return FetchResult.empty([], FetchStatus.FAILED, f"Unknown pull request state: {state}")
    if not ctx.credentials.has_token:
        return _unauthenticated([], "pull requests")
    if limit <= 0:
        return FetchResult.success([])

    client = GitHubClient(ctx)
    try:
        resp = _search(client, _pr_query(handle, state), per_page=min(limit, 100))
        if not resp.ok:
            logger.warning("GitHub API %d searching pull requests of '%s'", resp.status, handle)
            return FetchResult.empty([], _status_for(resp), f"HTTP {resp.status} searching pull requests")
        items = (resp.json() or {}).get("items", [])
        prs = [_parse_pull_request(item) for item in items[:limit]]
    except Exception as exc:  # noqa: BLE001
        logger.error("Error fetching pull requests for %s: %s", handle, exc)
        return FetchResult.empty([], FetchStatus.FAILED, str(exc))
    return FetchResult.success(prs)


def fetch_pull_request_counts(
    ctx: AppContext,
    handle: str,
) -> FetchResult[dict[str, int]]:
    """Total, open, merged and closed-unmerged pull request counts.

    Uses search total_count so counts are exact regardless of page size.
    Requires a GitHub token.
    """
    empty = {"total": 0, "open": 0, "merged": 0, "closed": 0}
    if not ctx.credentials.has_token:
        return _unauthenticated(empty, "pull request counts")

    counts: dict[str, int] = {}
    try:
        for key, state in (("total", "all"), ("open", "open"), ("merged", "merged")):
            result = _search_total(ctx, _pr_query(handle, state))
            if not result.ok:
                return FetchResult.empty(empty, result.status, result.reason)
            counts[key] = result.value
    except Exception as exc:  # noqa: BLE001
        logger.error("Error counting pull requests for %s: %s", handle, exc)
        return FetchResult.empty(empty, FetchStatus.FAILED, str(exc))

    counts["closed"] = max(0, counts["total"] - counts["open"] - counts["merged"])
    return FetchResult(value=counts)


def fetch_issue_count(ctx: AppContext, handle: str) -> FetchResult[int]:
    """Number of issues opened by *handle*. Requires a GitHub token."""
    if not ctx.credentials.has_token:
        return _unauthenticated(0, "issue count")
    try:
        return _search_total(ctx, f"type:issue author:{handle}")
    except Exception as exc:  # noqa: BLE001
        logger.error("Error counting issues for %s: %s", handle, exc)
        return FetchResult.empty(0, FetchStatus.FAILED, str(exc))
