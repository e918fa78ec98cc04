"""
member_atlas — Admin dashboard backend for a member community.

Aggregates member records stored in Firestore and enriches them with GitHub
activity: repository, pull request and commit statistics, language mix,
leaderboards and day-by-day pull request trends.

Subpackages:
- member_atlas.ingestion: rate-limit-aware GitHub client, typed fetchers,
  member-level enrichment (detail view, manual activity refresh)
- member_atlas.storage: member document source, durable key-value store,
  write-through member cache
- member_atlas.metrics: pure aggregations over the member collection
- member_atlas.reports: formatting helpers, Markdown report, CSV export
- member_atlas.api: FastAPI endpoints
"""

__version__ = "0.1.0"
