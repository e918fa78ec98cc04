"""
member_atlas/config.py — All tunable parameters for Member Atlas.

No page size, delay or cap should be hardcoded in a fetcher or metric module.
Every pagination limit, pacing delay and ranking size lives here so that
calibration changes are a single-file diff.

Credentials (GitHub token, admin email) are NOT part of the frozen config:
they come from the environment via load_credentials().
"""

import logging
import os
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MemberAtlasConfig:
    """
    Immutable configuration for the Member Atlas backend.

    Override by constructing a new MemberAtlasConfig with the desired values.
    """

    # ── GitHub API ────────────────────────────────────────────────────────────
    github_api_base: str = "https://api.github.com"
    github_api_version: str = "2022-11-28"

    max_attempts: int = 3
    # Attempts per request when GitHub signals throttling (429, or 403 with
    # X-RateLimit-Remaining: 0). The last response is returned as-is.

    default_rate_limit_wait_seconds: float = 60.0
    # Used when a throttled response carries no X-RateLimit-Reset header.

    rate_limit_reset_padding_seconds: float = 1.0
    # Added to the reset timestamp so the retry lands after the window opens.

    request_timeout_seconds: Optional[float] = None
    # None = no per-request timeout.

    # ── Pagination & pacing ───────────────────────────────────────────────────
    repos_per_page: int = 100
    repos_default_limit: int = 100
    repos_page_delay_seconds: float = 0.1

    commit_repos_scanned: int = 10
    # Commits are collected from at most this many most-recently-updated repos.
    commits_per_repo: int = 10
    commits_default_limit: int = 30
    commit_repo_delay_seconds: float = 0.3

    language_repos_scanned: int = 20
    language_repo_delay_seconds: float = 0.3

    pull_requests_default_limit: int = 30
    detail_repos_limit: int = 50
    detail_pull_requests_limit: int = 50
    detail_commits_limit: int = 30

    # ── Aggregation ───────────────────────────────────────────────────────────
    leaderboard_size: int = 10
    trend_days: int = 30
    language_top_n: int = 15
    language_bytes_threshold: int = 10_000
    # Max language value above this → values are bytes, else repo counts.

    # ── Persistence ───────────────────────────────────────────────────────────
    members_collection: str = "Members"
    cache_data_key: str = "members_cache"
    cache_timestamp_key: str = "members_cache_timestamp"
    cache_dir: str = ".member_atlas_cache"
    # Relative to the working directory unless absolute.


# Singleton default; import this instead of constructing a new one.
DEFAULT_CONFIG = MemberAtlasConfig()


# ── Credentials ───────────────────────────────────────────────────────────────

TOKEN_ENV_VARS = ("MEMBER_ATLAS_GITHUB_TOKEN", "GITHUB_TOKEN")
ADMIN_EMAIL_ENV_VARS = ("MEMBER_ATLAS_ADMIN_EMAIL", "ADMIN_EMAIL")

# Values left over from an unsubstituted deployment template.
TOKEN_PLACEHOLDER = "VITE_GITHUB_TOKEN"
ADMIN_EMAIL_PLACEHOLDER = "VITE_ADMIN_EMAIL"


@dataclass(frozen=True)
class Credentials:
    """
    Secrets supplied at deploy time. Either may be None: a missing token
    degrades GitHub access to unauthenticated calls, a missing admin email
    denies every admin check.
    """

    github_token: Optional[str] = None
    admin_email: Optional[str] = None

    @property
    def has_token(self) -> bool:
        return bool(self.github_token)

    @property
    def has_admin_email(self) -> bool:
        return bool(self.admin_email)


def clean_secret(value: Optional[str], placeholder: str) -> Optional[str]:
    """Normalise a secret: blank or placeholder values become None.

    Examples:
        >>> clean_secret("  ", "VITE_GITHUB_TOKEN") is None
        True
        >>> clean_secret("VITE_GITHUB_TOKEN", "VITE_GITHUB_TOKEN") is None
        True
        >>> clean_secret(" ghp_abc ", "VITE_GITHUB_TOKEN")
        'ghp_abc'
    """
    if value is None:
        return None
    value = value.strip()
    if not value or value == placeholder:
        return None
    return value


def _first_env(names: tuple[str, ...]) -> Optional[str]:
    for name in names:
        value = os.environ.get(name)
        if value is not None and value.strip():
            return value
    return None


def load_credentials(
    github_token: Optional[str] = None,
    admin_email: Optional[str] = None,
) -> Credentials:
    """Build Credentials from explicit arguments, falling back to the environment.

    Explicit arguments win over MEMBER_ATLAS_* variables, which win over the
    bare GITHUB_TOKEN / ADMIN_EMAIL variables.
    """
    token = clean_secret(github_token or _first_env(TOKEN_ENV_VARS), TOKEN_PLACEHOLDER)
    email = clean_secret(admin_email or _first_env(ADMIN_EMAIL_ENV_VARS), ADMIN_EMAIL_PLACEHOLDER)

    if email is None:
        logger.error(
            "ADMIN_EMAIL not configured. Admin authentication will always be denied."
        )
    return Credentials(github_token=token, admin_email=email)
