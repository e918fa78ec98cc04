"""
member_atlas.ingestion — GitHub data acquisition.

Modules:
    github_client    — Authenticated GET with throttling retries.
    github_fetchers  — Profile, repositories, commits, languages, pull
                       requests and issue counts, each returning a FetchResult.
    activity         — Member detail view, activity snapshots, manual refresh
                       and public repo backfill.
"""
