"""
Tests for member_atlas/ingestion/github_fetchers.py

Each fetcher is driven by a ScriptedTransport. Verifies pagination stop
conditions, pacing delays, throttling partial results, negative profile
caching, token gating and that no fetcher raises.
"""

from conftest import json_response
from member_atlas.ingestion.github_client import GitHubTransportError
from member_atlas.ingestion.github_fetchers import (
    fetch_issue_count,
    fetch_pull_request_counts,
    fetch_recent_commits,
    fetch_user_languages,
    fetch_user_profile,
    fetch_user_pull_requests,
    fetch_user_repositories,
)
from member_atlas.models import FetchStatus


# ── Helpers ───────────────────────────────────────────────────────────────────

def _repo(i, stars=0, forks=0, updated="2026-10-01T00:00:00Z"):
    return {
        "id": i,
        "name": f"repo{i}",
        "full_name": f"ada/repo{i}",
        "html_url": f"https://github.com/ada/repo{i}",
        "stargazers_count": stars,
        "forks_count": forks,
        "updated_at": updated,
        "private": False,
    }


def _commit(sha, date):
    return {
        "sha": sha,
        "html_url": f"https://github.com/c/{sha}",
        "commit": {"message": f"{sha} subject\n\nbody", "author": {"name": "Ada", "date": date}},
    }


def _pr(i, state="open", merged_at=None, created="2026-10-10T12:00:00Z"):
    return {
        "id": i,
        "number": i,
        "title": f"PR {i}",
        "state": state,
        "created_at": created,
        "html_url": f"https://github.com/ada/repo/pull/{i}",
        "repository_url": "https://api.github.com/repos/ada/repo",
        "pull_request": {"merged_at": merged_at},
    }


# ---------------------------------------------------------------------------
# fetch_user_profile
# ---------------------------------------------------------------------------

def test_profile_fetched_and_cached(ctx, transport):
    transport.add("/users/ada", json_response({
        "login": "ada", "name": "Ada", "public_repos": 12, "followers": 3, "following": 1,
        "html_url": "https://github.com/ada",
    }))
    first = fetch_user_profile(ctx, "ada")
    second = fetch_user_profile(ctx, "ada")

    assert first.status == FetchStatus.OK
    assert first.value.public_repos == 12
    assert second.value is first.value
    assert transport.count("/users/ada") == 1


def test_profile_404_cached_as_known_missing(ctx, transport):
    transport.add("/users/ghost", json_response({"message": "Not Found"}, status=404))
    first = fetch_user_profile(ctx, "ghost")
    second = fetch_user_profile(ctx, "ghost")

    assert first.value is None and first.status == FetchStatus.NOT_FOUND
    assert second.value is None and second.status == FetchStatus.NOT_FOUND
    assert ctx.profile_cache["ghost"] is None
    assert transport.count("/users/ghost") == 1


def test_profile_plain_403_not_cached(ctx, transport):
    transport.add("/users/ada", json_response({}, status=403))
    result = fetch_user_profile(ctx, "ada")
    assert result.value is None
    assert result.status == FetchStatus.THROTTLED
    assert "ada" not in ctx.profile_cache


def test_profile_transport_error_returns_failed(make_ctx):
    def broken(url, headers, timeout=None):
        raise GitHubTransportError("connection reset")

    ctx = make_ctx()
    ctx.transport = broken
    result = fetch_user_profile(ctx, "ada")
    assert result.value is None
    assert result.status == FetchStatus.FAILED
    assert "connection reset" in result.reason


def test_profile_works_without_token(make_ctx, transport):
    ctx = make_ctx(token=None)
    transport.add("/users/ada", json_response({"login": "ada", "public_repos": 1}))
    assert fetch_user_profile(ctx, "ada").value.public_repos == 1


# ---------------------------------------------------------------------------
# fetch_user_repositories
# ---------------------------------------------------------------------------

def test_repositories_empty_page_terminates_and_keeps_collected(make_ctx, transport, sleeps):
    """A page with 0 items ends pagination; previously collected items are returned."""
    ctx = make_ctx(repos_per_page=2)
    transport.add("&page=1", json_response([_repo(1), _repo(2)]))
    transport.add("&page=2", json_response([_repo(3), _repo(4)]))
    transport.add("&page=3", json_response([]))

    result = fetch_user_repositories(ctx, "ada")

    assert [r.name for r in result.value] == ["repo1", "repo2", "repo3", "repo4"]
    assert result.status == FetchStatus.OK
    assert transport.count("/users/ada/repos") == 3
    assert sleeps.calls == [0.1, 0.1]


def test_repositories_short_page_stops(ctx, transport, sleeps):
    transport.add("/users/ada/repos", json_response([_repo(1, stars=3)]))
    result = fetch_user_repositories(ctx, "ada")
    assert len(result.value) == 1
    assert result.value[0].stars == 3
    assert transport.count("/users/ada/repos") == 1
    assert sleeps.calls == []


def test_repositories_link_without_next_stops(make_ctx, transport):
    ctx = make_ctx(repos_per_page=2)
    transport.add(
        "/users/ada/repos",
        json_response([_repo(1), _repo(2)], headers={"Link": '<https://x?page=1>; rel="prev"'}),
    )
    result = fetch_user_repositories(ctx, "ada")
    assert len(result.value) == 2
    assert transport.count("/users/ada/repos") == 1


def test_repositories_limit_respected(make_ctx, transport):
    ctx = make_ctx(repos_per_page=2)
    transport.add("/users/ada/repos", json_response([_repo(1), _repo(2)]))
    result = fetch_user_repositories(ctx, "ada", limit=3)
    assert len(result.value) == 3
    assert transport.count("/users/ada/repos") == 2


def test_repositories_request_parameters(ctx, transport):
    transport.add("/users/ada/repos", json_response([]))
    fetch_user_repositories(ctx, "ada")
    url = transport.urls[0]
    assert "sort=updated" in url
    assert "per_page=100" in url
    assert "page=1" in url


def test_repositories_throttled_mid_pagination_returns_partial(make_ctx, transport):
    ctx = make_ctx(repos_per_page=2, max_attempts=1)
    transport.add("&page=1", json_response([_repo(1), _repo(2)]))
    transport.add("&page=2", json_response({}, status=429))

    result = fetch_user_repositories(ctx, "ada")

    assert [r.name for r in result.value] == ["repo1", "repo2"]
    assert result.status == FetchStatus.THROTTLED
    assert result.degraded


def test_repositories_server_error_returns_empty_failed(ctx, transport):
    transport.add("/users/ada/repos", json_response({}, status=502))
    result = fetch_user_repositories(ctx, "ada")
    assert result.value == []
    assert result.status == FetchStatus.FAILED


# ---------------------------------------------------------------------------
# fetch_recent_commits
# ---------------------------------------------------------------------------

def test_commits_require_token(make_ctx, transport):
    ctx = make_ctx(token=None)
    result = fetch_recent_commits(ctx, "ada")
    assert result.value == []
    assert result.status == FetchStatus.UNAUTHENTICATED
    assert transport.calls == []


def test_commits_merged_sorted_and_truncated(ctx, transport, sleeps):
    transport.add("/users/ada/repos", json_response([_repo(1), _repo(2)]))
    transport.add("/repos/ada/repo1/commits", json_response([
        _commit("a1", "2026-10-01T00:00:00Z"),
        _commit("a2", "2026-10-05T00:00:00Z"),
    ]))
    transport.add("/repos/ada/repo2/commits", json_response([
        _commit("b1", "2026-10-03T00:00:00Z"),
    ]))

    result = fetch_recent_commits(ctx, "ada", limit=2)

    assert [c.sha for c in result.value] == ["a2", "a1"]
    # limit reached after the first repo: the second is never requested
    assert transport.count("/repos/ada/repo2/commits") == 0
    assert result.value[0].message == "a2 subject"
    assert sleeps.calls == []


def test_commits_scan_at_most_ten_repos_with_delay(ctx, transport, sleeps):
    transport.add("/users/ada/repos", json_response([_repo(i) for i in range(1, 16)]))
    transport.add("/commits", json_response([]))

    fetch_recent_commits(ctx, "ada")

    assert transport.count("/commits") == 10
    assert sleeps.calls == [0.3] * 9
    assert "author=ada" in transport.urls[1]


def test_commits_stop_on_throttling(make_ctx, transport):
    ctx = make_ctx(max_attempts=1)
    transport.add("/users/ada/repos", json_response([_repo(1), _repo(2), _repo(3)]))
    transport.add("/repos/ada/repo1/commits", json_response([_commit("a1", "2026-10-01T00:00:00Z")]))
    transport.add("/repos/ada/repo2/commits", json_response({}, status=429))

    result = fetch_recent_commits(ctx, "ada")

    assert [c.sha for c in result.value] == ["a1"]
    assert result.status == FetchStatus.THROTTLED
    assert transport.count("/repos/ada/repo3/commits") == 0


# ---------------------------------------------------------------------------
# fetch_user_languages
# ---------------------------------------------------------------------------

def test_languages_summed_across_repos(ctx, transport):
    transport.add("/users/ada/repos", json_response([_repo(1), _repo(2)]))
    transport.add("/repos/ada/repo1/languages", json_response({"Python": 100, "Go": 50}))
    transport.add("/repos/ada/repo2/languages", json_response({"Python": 25}))

    result = fetch_user_languages(ctx, "ada")
    assert result.value == {"Python": 125, "Go": 50}


def test_languages_at_most_twenty_repos(ctx, transport, sleeps):
    transport.add("/users/ada/repos", json_response([_repo(i) for i in range(1, 31)]))
    transport.add("/languages", json_response({"Rust": 1}))

    result = fetch_user_languages(ctx, "ada")

    assert result.value == {"Rust": 20}
    assert transport.count("/languages") == 20
    assert len(sleeps.calls) == 19


def test_languages_stop_on_throttling(make_ctx, transport):
    ctx = make_ctx(max_attempts=1)
    transport.add("/users/ada/repos", json_response([_repo(1), _repo(2), _repo(3)]))
    transport.add("/repos/ada/repo1/languages", json_response({"C": 10}))
    transport.add("/repos/ada/repo2/languages", json_response({}, status=429))

    result = fetch_user_languages(ctx, "ada")
    assert result.value == {"C": 10}
    assert result.status == FetchStatus.THROTTLED
    assert transport.count("/repos/ada/repo3/languages") == 0


def test_languages_require_token(make_ctx):
    result = fetch_user_languages(make_ctx(token=None), "ada")
    assert result.value == {}
    assert result.status == FetchStatus.UNAUTHENTICATED


# ---------------------------------------------------------------------------
# Pull requests & issues
# ---------------------------------------------------------------------------

def test_pull_requests_parsed_with_merged_state(ctx, transport):
    transport.add("/search/issues", json_response({
        "total_count": 2,
        "items": [_pr(1, "closed", merged_at="2026-10-11T00:00:00Z"), _pr(2, "open")],
    }))
    result = fetch_user_pull_requests(ctx, "ada")

    first, second = result.value
    assert first.merged and first.state == "merged"
    assert first.repository == "ada/repo"
    assert second.state == "open" and not second.merged
    assert "type:pr" in transport.urls[0]


def test_pull_requests_unknown_state_rejected(ctx, transport):
    result = fetch_user_pull_requests(ctx, "ada", state="draft")
    assert result.status == FetchStatus.FAILED
    assert transport.calls == []


def test_pull_request_counts_from_search_totals(ctx, transport):
    transport.add("author:ada%20is:open", json_response({"total_count": 2, "items": []}))
    transport.add("author:ada%20is:merged", json_response({"total_count": 5, "items": []}))
    transport.add("/search/issues", json_response({"total_count": 10, "items": []}))

    result = fetch_pull_request_counts(ctx, "ada")
    assert result.value == {"total": 10, "open": 2, "merged": 5, "closed": 3}


def test_issue_count(ctx, transport):
    transport.add("/search/issues", json_response({"total_count": 7, "items": []}))
    result = fetch_issue_count(ctx, "ada")
    assert result.value == 7
    assert "type:issue" in transport.urls[0]


def test_counts_require_token(make_ctx):
    ctx = make_ctx(token=None)
    assert fetch_pull_request_counts(ctx, "ada").status == FetchStatus.UNAUTHENTICATED
    assert fetch_issue_count(ctx, "ada").value == 0
