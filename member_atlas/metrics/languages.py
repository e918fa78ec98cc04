"""
member_atlas/metrics/languages.py — Programming-language mix across members.

Snapshots store languages in one of two shapes:

    mapping  {"Python": 48211, "Go": 1200}           name → bytes or repo count
    list     ["Python", {"name": "Go", "count": 3}]   a bare name counts once;
                                                      an entry uses count, then
                                                      value, then 1

Both are merged into one global mapping. Names that are empty, "Unknown" or
"null" and counts that are not positive are dropped. The result keeps the
top config.language_top_n languages. Whether the numbers are bytes or repo
counts is not recorded anywhere, so it is inferred: the unit is bytes when
the largest value exceeds config.language_bytes_threshold.
"""

import logging
from dataclasses import dataclass, field
from typing import Any

import pandas as pd

from member_atlas.config import DEFAULT_CONFIG
from member_atlas.models import MemberRecord

logger = logging.getLogger(__name__)

EXCLUDED_LANGUAGES = frozenset({"", "Unknown", "null"})


@dataclass
class LanguageDistribution:
    labels: list[str] = field(default_factory=list)
    values: list[float] = field(default_factory=list)
    is_bytes: bool = False

    @property
    def has_data(self) -> bool:
        return bool(self.labels)

    def as_dict(self) -> dict[str, float]:
        return dict(zip(self.labels, self.values))


def _number(value: Any) -> float:
    """Numeric value of a stored count; anything unparseable is 0."""
    if isinstance(value, bool):
        return float(value)
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    return number if number == number else 0.0  # NaN


def _add(totals: dict[str, float], name: Any, count: float) -> None:
    label = str(name).strip() if name is not None else ""
    if label in EXCLUDED_LANGUAGES or count <= 0:
        return
    totals[label] = totals.get(label, 0.0) + count


def _merge(totals: dict[str, float], languages: Any) -> None:
    if isinstance(languages, dict):
        for name, count in languages.items():
            _add(totals, name, _number(count))
    elif isinstance(languages, list):
        for entry in languages:
            if isinstance(entry, str):
                _add(totals, entry, 1.0)
            elif isinstance(entry, dict) and entry.get("name"):
                raw = entry.get("count") or entry.get("value") or 1
                _add(totals, entry["name"], _number(raw) or 1.0)


def _tidy(value: float):
    return int(value) if float(value).is_integer() else float(value)


def language_distribution(
    members: list[MemberRecord],
    top_n: int = DEFAULT_CONFIG.language_top_n,
    bytes_threshold: int = DEFAULT_CONFIG.language_bytes_threshold,
) -> LanguageDistribution:
    """Merge every member's language data into one ranked distribution.

    Args:
        members:         Member collection.
        top_n:           Number of languages to keep.
        bytes_threshold: Largest value above which values are read as bytes.

    Returns:
        LanguageDistribution, sorted by value descending (ties in first-seen
        order). Empty when no member has usable language data.
    """
    totals: dict[str, float] = {}
    for member in members:
        if member.activity is not None and member.activity.languages:
            _merge(totals, member.activity.languages)

    if not totals:
        return LanguageDistribution()

    ranked = pd.Series(totals, dtype=float).sort_values(ascending=False, kind="stable").head(top_n)
    return LanguageDistribution(
        labels=[str(label) for label in ranked.index],
        values=[_tidy(v) for v in ranked.tolist()],
        is_bytes=bool(ranked.max() > bytes_threshold),
    )
