"""
member_atlas/api/endpoints.py — FastAPI backend for the member dashboard.

Endpoint summary:
    GET  /api/v1/health                 — Liveness probe.
    GET  /api/v1/members                — Member collection (cached; ?refresh=true admin only).
    GET  /api/v1/members/{id}           — One member record.
    GET  /api/v1/members/{id}/github    — Live GitHub detail for one member.
    GET  /api/v1/dashboard              — Dashboard view.
    GET  /api/v1/analytics              — Analytics view.
    POST /api/v1/cache/refresh          — Reload members (admin only).
    GET  /api/v1/settings               — Settings view (admin only).

The caller's identity arrives in the X-User-Email header, set by the
identity-aware proxy in front of the service. Collaborators (context, cache,
member source) are injected through create_app() so tests can run the app
against in-memory storage and a scripted GitHub transport.
"""

import logging
from dataclasses import asdict
from typing import Optional

from fastapi import FastAPI, Header, HTTPException
from pydantic import BaseModel

from member_atlas import __version__
from member_atlas.auth import AdminAccessDenied, require_admin, settings_view
from member_atlas.config import load_credentials
from member_atlas.context import AppContext
from member_atlas.ingestion.activity import (
    backfill_public_repos,
    fetch_member_details,
    refresh_member_activity,
)
from member_atlas.models import MemberRecord
from member_atlas.pipeline import build_analytics_view, build_dashboard_view
from member_atlas.storage.kv_store import FileKeyValueStore
from member_atlas.storage.member_cache import MemberCache
from member_atlas.storage.member_source import FirestoreMemberSource, MemberSource

logger = logging.getLogger(__name__)


# ── Request / Response models ─────────────────────────────────────────────────

class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    version: str


class RefreshRequest(BaseModel):
    """Request body for POST /cache/refresh."""
    refresh_activity: bool = False
    member_ids: Optional[list[str]] = None


def create_app(
    ctx: Optional[AppContext] = None,
    cache: Optional[MemberCache] = None,
    source: Optional[MemberSource] = None,
) -> FastAPI:
    """
    Create and return the Member Atlas FastAPI application.

    Args:
        ctx:    Application context. Default: credentials from the environment
                and DEFAULT_CONFIG.
        cache:  Member cache. Default: a FileKeyValueStore under
                config.cache_dir backed by *source*.
        source: Member document store. Default: FirestoreMemberSource on
                config.members_collection.

    Returns:
        Configured FastAPI application instance.
    """
    if ctx is None:
        ctx = AppContext(credentials=load_credentials())
    if source is None:
        source = FirestoreMemberSource(collection=ctx.config.members_collection)
    if cache is None:
        cache = MemberCache(ctx, source, FileKeyValueStore(ctx.config.cache_dir))

    app = FastAPI(
        title="Member Atlas API",
        version=__version__,
        description=(
            "Member directory and GitHub activity analytics: cached member "
            "records, dashboard aggregates, leaderboards and per-member GitHub detail."
        ),
    )

    # ── Helpers ───────────────────────────────────────────────────────────────
    def _members() -> list[MemberRecord]:
        return cache.get() or cache.load()

    def _member_or_404(member_id: str) -> MemberRecord:
        _members()
        member = cache.get_member_by_id(member_id)
        if member is None:
            raise HTTPException(status_code=404, detail=f"Member '{member_id}' not found.")
        return member

    def _admin_or_403(email: Optional[str]) -> str:
        try:
            return require_admin(ctx.credentials, email)
        except AdminAccessDenied as exc:
            raise HTTPException(status_code=403, detail=str(exc)) from exc

    # ── Routes ────────────────────────────────────────────────────────────────

    @app.get("/api/v1/health", response_model=HealthResponse, tags=["system"])
    def health() -> dict:
        """Liveness probe — returns service status and version."""
        return {"status": "ok", "version": __version__}

    @app.get("/api/v1/members", tags=["members"])
    def list_members(
        refresh: bool = False,
        x_user_email: Optional[str] = Header(default=None),
    ) -> dict:
        """
        Return the member collection.

        Args:
            refresh: Bypass the persisted copy and query the document store.
                     Admin only; 403 otherwise.
        """
        if refresh:
            _admin_or_403(x_user_email)
        members = cache.load(force_refresh=True) if refresh else _members()
        return {
            "members": [m.to_document() for m in members],
            "total": len(members),
            "source": cache.last_outcome.value if cache.last_outcome else "memory",
        }

    @app.get("/api/v1/members/{member_id}", tags=["members"])
    def get_member(member_id: str) -> dict:
        """Return one member record. 404 if the id is unknown."""
        return _member_or_404(member_id).to_document()

    @app.get("/api/v1/members/{member_id}/github", tags=["members"])
    def get_member_github(member_id: str) -> dict:
        """
        Return live GitHub data for one member: profile, repositories, pull
        requests and recent commits, plus derived PR state and repo totals.
        """
        detail = fetch_member_details(ctx, _member_or_404(member_id))
        return {
            "member_id": member_id,
            "github_connected": detail.member.github_connected,
            "profile": asdict(detail.profile) if detail.profile else None,
            "repositories": [asdict(r) for r in detail.repositories],
            "pull_requests": [asdict(pr) for pr in detail.pull_requests],
            "commits": [asdict(c) for c in detail.commits],
            "pull_request_counts": {
                "open": detail.open_prs,
                "merged": detail.merged_prs,
                "closed": detail.closed_prs,
            },
            "repository_totals": {
                "count": len(detail.repositories),
                "stars": detail.repo_stars,
                "forks": detail.repo_forks,
            },
            "statuses": {k: v.value for k, v in detail.statuses.items()},
        }

    @app.get("/api/v1/dashboard", tags=["views"])
    def get_dashboard() -> dict:
        """Headline counts, the pull request trend and top committers."""
        return asdict(build_dashboard_view(_members(), ctx.config))

    @app.get("/api/v1/analytics", tags=["views"])
    def get_analytics(backfill: bool = False) -> dict:
        """
        Activity stats, breakdowns, language mix and leaderboards.

        Args:
            backfill: Look up public repo counts for connected members whose
                      stored snapshot lacks one (one GitHub call each).
        """
        members = _members()
        fallback = backfill_public_repos(ctx, members) if backfill else None
        view = build_analytics_view(members, ctx.config, fallback)
        out = asdict(view)
        out["languages"]["has_data"] = view.languages.has_data
        return out

    @app.post("/api/v1/cache/refresh", tags=["cache"])
    def refresh_cache(
        request: RefreshRequest,
        x_user_email: Optional[str] = Header(default=None),
    ) -> dict:
        """
        Reload the member collection from the document store; optionally
        rebuild GitHub activity snapshots. Admin only.
        """
        _admin_or_403(x_user_email)
        members = cache.load(force_refresh=True)
        result = {
            "total": len(members),
            "source": cache.last_outcome.value if cache.last_outcome else None,
            "activity": None,
        }
        if request.refresh_activity:
            summary = refresh_member_activity(ctx, cache, source, request.member_ids)
            result["activity"] = asdict(summary)
        return result

    @app.get("/api/v1/settings", tags=["system"])
    def get_settings(x_user_email: Optional[str] = Header(default=None)) -> dict:
        """Settings view for the administrator. 403 for anyone else."""
        _admin_or_403(x_user_email)
        return asdict(settings_view(ctx, x_user_email, cache))

    logger.info("Member Atlas FastAPI application created with 8 endpoints.")
    return app
