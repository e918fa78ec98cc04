"""
member_atlas.metrics — Aggregations over the member collection.

Modules:
    totals        — Field totals, analytics stats, dashboard summary,
                    repository and pull request breakdowns.
    leaderboards  — Top committers, PR creators and contributors.
    trends        — Pull requests per day over the last N days.
    languages     — Merged programming-language distribution.

All functions are pure and synchronous: they read the in-memory collection
and never fetch. Ranking sizes and windows live in
member_atlas.config.MemberAtlasConfig.
"""
