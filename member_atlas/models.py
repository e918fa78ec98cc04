"""
member_atlas/models.py — Member records, activity snapshots and fetch results.

Member documents arrive from Firestore with camelCase keys (firstName,
githubConnected, githubActivity, ...). MemberRecord.from_document() maps them
onto snake_case dataclass fields and keeps every unrecognised key in ``extra``
so that to_document() reproduces the original payload; the persistent cache
relies on that round trip being lossless.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Generic, Optional, TypeVar

T = TypeVar("T")


# camelCase document key → ActivitySnapshot attribute
ACTIVITY_FIELDS: dict[str, str] = {
    "publicRepos": "public_repos",
    "privateRepos": "private_repos",
    "totalStars": "total_stars",
    "totalForks": "total_forks",
    "pullRequests": "pull_requests",
    "mergedPRs": "merged_prs",
    "openPRs": "open_prs",
    "closedPRs": "closed_prs",
    "commits": "commits",
    "issues": "issues",
    "contributions": "contributions",
    "followers": "followers",
    "following": "following",
}

# camelCase document key → MemberRecord attribute (scalar fields only)
MEMBER_FIELDS: dict[str, str] = {
    "firstName": "first_name",
    "lastName": "last_name",
    "displayName": "display_name",
    "email": "email",
    "personalEmail": "personal_email",
    "phoneNumber": "phone_number",
    "whatsappNumber": "whatsapp_number",
    "githubUsername": "github_username",
    "joinedAt": "joined_at",
    "lastUpdated": "last_updated",
}


def _jsonable(value: Any) -> Any:
    """Coerce Firestore timestamp values into ISO strings; pass everything else."""
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value


def _optional_int(value: Any) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def lookup_activity_field(name: str) -> Optional[str]:
    """Accept either the document key ('mergedPRs') or the attribute ('merged_prs'); None if neither."""
    if name in ACTIVITY_FIELDS:
        return ACTIVITY_FIELDS[name]
    if name in ACTIVITY_FIELDS.values():
        return name
    return None


def resolve_activity_field(name: str) -> str:
    """Like lookup_activity_field() but raises KeyError for an unknown name."""
    attr = lookup_activity_field(name)
    if attr is not None:
        return attr
    raise KeyError(f"Unknown activity field: {name}")


@dataclass
class ActivitySnapshot:
    """
    Aggregate GitHub counts embedded in a member record.

    Counts are None when the snapshot never recorded them, which is not the
    same as zero: leaderboards skip members whose field is None.

    ``languages`` keeps whatever shape was stored — a name→count mapping, a
    list of names, or a list of {name, count|value} entries.
    """

    public_repos: Optional[int] = None
    private_repos: Optional[int] = None
    total_stars: Optional[int] = None
    total_forks: Optional[int] = None
    pull_requests: Optional[int] = None
    merged_prs: Optional[int] = None
    open_prs: Optional[int] = None
    closed_prs: Optional[int] = None
    commits: Optional[int] = None
    issues: Optional[int] = None
    contributions: Optional[int] = None
    followers: Optional[int] = None
    following: Optional[int] = None
    languages: Any = None
    recent_prs: list[dict] = field(default_factory=list)
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict) -> "ActivitySnapshot":
        kwargs: dict[str, Any] = {}
        extra: dict[str, Any] = {}
        for key, value in data.items():
            if key in ACTIVITY_FIELDS:
                kwargs[ACTIVITY_FIELDS[key]] = _optional_int(value)
            elif key == "languages":
                kwargs["languages"] = _jsonable(value)
            elif key == "recentPRs":
                kwargs["recent_prs"] = [_jsonable(pr) for pr in (value or [])]
            else:
                extra[key] = _jsonable(value)
        return cls(extra=extra, **kwargs)

    def to_dict(self) -> dict:
        out: dict[str, Any] = dict(self.extra)
        for key, attr in ACTIVITY_FIELDS.items():
            value = getattr(self, attr)
            if value is not None:
                out[key] = value
        if self.languages is not None:
            out["languages"] = self.languages
        if self.recent_prs:
            out["recentPRs"] = list(self.recent_prs)
        return out

    def get(self, name: str) -> Optional[int]:
        return getattr(self, resolve_activity_field(name))


@dataclass
class MemberRecord:
    """One tracked member with optional linked GitHub activity."""

    id: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    display_name: Optional[str] = None
    email: Optional[str] = None
    personal_email: Optional[str] = None
    phone_number: Optional[str] = None
    whatsapp_number: Optional[str] = None
    github_connected: bool = False
    github_username: Optional[str] = None
    activity: Optional[ActivitySnapshot] = None
    joined_at: Optional[str] = None
    last_updated: Optional[str] = None
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_document(cls, doc_id: str, data: Optional[dict]) -> "MemberRecord":
        """Merge a document's id with its fields (the id wins over any 'id' field)."""
        data = dict(data or {})
        data.pop("id", None)
        kwargs: dict[str, Any] = {}
        extra: dict[str, Any] = {}
        for key, value in data.items():
            if key in MEMBER_FIELDS:
                value = _jsonable(value)
                kwargs[MEMBER_FIELDS[key]] = None if value is None else str(value)
            elif key == "githubConnected":
                kwargs["github_connected"] = bool(value)
            elif key == "githubActivity":
                if isinstance(value, dict):
                    kwargs["activity"] = ActivitySnapshot.from_dict(value)
                elif value is not None:
                    extra[key] = _jsonable(value)
            else:
                extra[key] = _jsonable(value)
        return cls(id=str(doc_id), extra=extra, **kwargs)

    def to_document(self) -> dict:
        """Serialise back to the camelCase shape, including the id."""
        out: dict[str, Any] = {"id": self.id}
        out.update(self.extra)
        for key, attr in MEMBER_FIELDS.items():
            value = getattr(self, attr)
            if value is not None:
                out[key] = value
        out["githubConnected"] = self.github_connected
        if self.activity is not None:
            out["githubActivity"] = self.activity.to_dict()
        return out

    @classmethod
    def from_cached(cls, data: dict) -> "MemberRecord":
        return cls.from_document(data.get("id", ""), data)

    def activity_value(self, name: str) -> Optional[int]:
        """Activity count by field name; None if there is no snapshot or no value."""
        if self.activity is None:
            return None
        return self.activity.get(name)

    @property
    def has_github(self) -> bool:
        return self.github_connected and bool(self.github_username)


# ── Fetch results ─────────────────────────────────────────────────────────────

class FetchStatus(str, Enum):
    OK = "ok"
    EMPTY = "empty"                      # request succeeded, nothing there
    NOT_FOUND = "not_found"              # 404, cached as a negative result
    THROTTLED = "throttled"              # quota exhausted; value may be partial
    UNAUTHENTICATED = "unauthenticated"  # no token configured
    FAILED = "failed"                    # transport, HTTP or parse failure


@dataclass
class FetchResult(Generic[T]):
    """
    Outcome of a remote fetch.

    ``value`` always holds something usable (an empty list/dict or None), so
    callers that only want data can ignore the status; callers that need to
    tell "no GitHub activity" apart from "GitHub was unreachable" check
    ``status``.
    """

    value: T
    status: FetchStatus = FetchStatus.OK
    reason: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status in (FetchStatus.OK, FetchStatus.EMPTY)

    @property
    def degraded(self) -> bool:
        return self.status in (
            FetchStatus.THROTTLED,
            FetchStatus.UNAUTHENTICATED,
            FetchStatus.FAILED,
        )

    @classmethod
    def success(cls, value: T) -> "FetchResult[T]":
        status = FetchStatus.OK if value else FetchStatus.EMPTY
        return cls(value=value, status=status)

    @classmethod
    def empty(cls, value: T, status: FetchStatus, reason: str) -> "FetchResult[T]":
        return cls(value=value, status=status, reason=reason)
