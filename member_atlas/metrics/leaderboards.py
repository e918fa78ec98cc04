"""
member_atlas/metrics/leaderboards.py — Top-N member rankings.

A leaderboard keeps the members that define a value for the ranked field,
names them, sorts them by that value descending and keeps the first N
(config.leaderboard_size, 10 by default).

Ties keep collection order: Python's sort is stable, including with
reverse=True, so two members with equal values are listed in the order the
document store returned them.

Name resolution: display name → "first last" (trimmed) → "Unknown".
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from member_atlas.config import DEFAULT_CONFIG
from member_atlas.models import MemberRecord, lookup_activity_field

logger = logging.getLogger(__name__)

UNKNOWN_NAME = "Unknown"


@dataclass
class LeaderboardEntry:
    member_id: str
    name: str
    value: int
    details: dict[str, Any] = field(default_factory=dict)


def resolve_display_name(member: MemberRecord, fallback: str = UNKNOWN_NAME) -> str:
    """display_name, else "first last" trimmed, else *fallback*."""
    if member.display_name:
        return member.display_name
    full_name = f"{member.first_name or ''} {member.last_name or ''}".strip()
    return full_name or fallback


def _rank(
    members: list[MemberRecord],
    include: Callable[[MemberRecord], bool],
    value_of: Callable[[MemberRecord], int],
    details_of: Optional[Callable[[MemberRecord], dict]],
    n: int,
) -> list[LeaderboardEntry]:
    entries = [
        LeaderboardEntry(
            member_id=member.id,
            name=resolve_display_name(member),
            value=value_of(member),
            details=details_of(member) if details_of else {},
        )
        for member in members
        if include(member)
    ]
    entries.sort(key=lambda e: e.value, reverse=True)
    return entries[: max(0, n)]


def top_n_by_field(
    members: list[MemberRecord],
    field_name: str,
    n: int = DEFAULT_CONFIG.leaderboard_size,
) -> list[LeaderboardEntry]:
    """Rank members by one activity count.

    Members without a snapshot, or whose snapshot has no value for the field,
    are left out; a stored 0 is ranked. An unknown field ranks nobody.

    Args:
        members:    Member collection.
        field_name: Document key or attribute name of the count.
        n:          Number of entries to keep.
    """
    attr = lookup_activity_field(field_name)
    if attr is None:
        logger.warning("top_n_by_field: unknown activity field %r", field_name)
        return []

    def _defined(member: MemberRecord) -> bool:
        return member.activity is not None and getattr(member.activity, attr) is not None

    return _rank(members, _defined, lambda m: getattr(m.activity, attr), None, n)


def top_committers(
    members: list[MemberRecord],
    n: int = DEFAULT_CONFIG.leaderboard_size,
) -> list[LeaderboardEntry]:
    """Members ranked by commit count, with their contribution count alongside."""
    return _rank(
        members,
        lambda m: m.activity is not None and m.activity.commits is not None,
        lambda m: m.activity.commits or 0,
        lambda m: {"contributions": m.activity.contributions or 0},
        n,
    )


def top_pr_creators(
    members: list[MemberRecord],
    n: int = DEFAULT_CONFIG.leaderboard_size,
) -> list[LeaderboardEntry]:
    """Members ranked by pull requests opened.

    Only members with a non-zero total, merged or open count take part.
    """
    def _has_prs(member: MemberRecord) -> bool:
        a = member.activity
        return a is not None and bool(a.pull_requests or a.merged_prs or a.open_prs)

    return _rank(
        members,
        _has_prs,
        lambda m: m.activity.pull_requests or 0,
        lambda m: {
            "merged": m.activity.merged_prs or 0,
            "open": m.activity.open_prs or 0,
            "closed": m.activity.closed_prs or 0,
        },
        n,
    )


def top_contributors(
    members: list[MemberRecord],
    n: int = DEFAULT_CONFIG.leaderboard_size,
) -> list[LeaderboardEntry]:
    """Members ranked by contributions, with their total repository count."""
    return _rank(
        members,
        lambda m: m.activity is not None and m.activity.contributions is not None,
        lambda m: m.activity.contributions or 0,
        lambda m: {"repos": (m.activity.public_repos or 0) + (m.activity.private_repos or 0)},
        n,
    )
