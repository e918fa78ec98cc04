"""
member_atlas/metrics/trends.py — Pull request counts per calendar day.

pr_trend() buckets pull requests into the last N local calendar days (the
final bucket is today). Two modes:

    Timestamped  — used as soon as any member carries recent_prs entries:
                   each entry's created_at is converted to local time and
                   counted on its calendar day; entries outside the window
                   or without a parseable timestamp are ignored.
    Even spread  — otherwise the summed pull_requests count C is spread over
                   the D days: every bucket gets floor(C/D), and the first
                   C mod D buckets (the earliest days) get one more.
"""

import logging
from datetime import date, datetime, timedelta
from typing import Optional

import numpy as np

from member_atlas.config import DEFAULT_CONFIG
from member_atlas.metrics.totals import totals_of
from member_atlas.models import MemberRecord

logger = logging.getLogger(__name__)


def _local_today(now: Optional[datetime]) -> date:
    if now is None:
        return datetime.now().date()
    if now.tzinfo is not None:
        return now.astimezone().date()
    return now.date()


def window_dates(days: int, now: Optional[datetime] = None) -> list[date]:
    """The last *days* local calendar dates, oldest first, ending today."""
    today = _local_today(now)
    return [today - timedelta(days=days - 1 - i) for i in range(max(0, days))]


def last_n_days(days: int = 7, now: Optional[datetime] = None) -> list[str]:
    """Short labels for the last *days* days, e.g. ['Oct 12', ..., 'Oct 18']."""
    return [f"{d.strftime('%b')} {d.day}" for d in window_dates(days, now)]


def _local_date(value) -> Optional[date]:
    """Calendar date of a timestamp in local time; naive values are taken as local."""
    if not value:
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        try:
            dt = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        except ValueError:
            return None
    if dt.tzinfo is not None:
        dt = dt.astimezone()
    return dt.date()


def even_distribution(total: int, days: int) -> list[int]:
    """Spread *total* over *days* buckets, remainder to the earliest buckets."""
    if days <= 0:
        return []
    base, remainder = divmod(max(0, int(total)), days)
    buckets = np.full(days, base, dtype=np.int64)
    buckets[:remainder] += 1
    return buckets.tolist()


def pr_trend(
    members: list[MemberRecord],
    days: int = DEFAULT_CONFIG.trend_days,
    now: Optional[datetime] = None,
) -> list[int]:
    """Pull requests per day over the last *days* days, oldest first.

    Args:
        members: Member collection.
        days:    Window length (30 on the dashboard).
        now:     Reference time; defaults to the current local time.

    Returns:
        List of *days* integer counts.
    """
    if days <= 0:
        return []

    has_timestamps = any(m.activity is not None and m.activity.recent_prs for m in members)
    if not has_timestamps:
        return even_distribution(totals_of(members, "pull_requests"), days)

    index = {d: i for i, d in enumerate(window_dates(days, now))}
    buckets = np.zeros(days, dtype=np.int64)
    for member in members:
        if member.activity is None:
            continue
        for pr in member.activity.recent_prs:
            created = _local_date(pr.get("created_at") if isinstance(pr, dict) else None)
            position = index.get(created)
            if position is not None:
                buckets[position] += 1
    return buckets.tolist()
