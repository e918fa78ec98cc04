"""
member_atlas/auth.py — Administrator check and the settings view.

Sign-in itself belongs to the identity provider; this module only decides
whether an already-authenticated identity is the configured administrator.
The rule is exact email equality with the configured admin email. When no
admin email is configured (unset, blank or the literal placeholder) every
check is denied and an error is logged.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from member_atlas.config import Credentials
from member_atlas.context import AppContext
from member_atlas.reports.formatting import format_datetime
from member_atlas.storage.member_cache import MemberCache

logger = logging.getLogger(__name__)


class AdminAccessDenied(Exception):
    """The identity is not the configured administrator."""


def is_admin(credentials: Credentials, email: Optional[str]) -> bool:
    if not credentials.has_admin_email:
        logger.error("ADMIN_EMAIL not configured. Authentication will fail.")
        return False
    return bool(email) and email == credentials.admin_email


def require_admin(credentials: Credentials, email: Optional[str]) -> str:
    """Return *email* if it is the administrator, else raise AdminAccessDenied."""
    if not credentials.has_admin_email:
        logger.error("ADMIN_EMAIL not configured. Authentication will fail.")
        raise AdminAccessDenied("Admin email not configured. Please contact the administrator.")
    if not is_admin(credentials, email):
        logger.warning("Admin access denied for %s", email or "<anonymous>")
        raise AdminAccessDenied("Access denied. Admin privileges required.")
    return email


@dataclass
class SettingsView:
    admin_email: str
    generated_at: str
    github_token_configured: bool
    cache_valid: Optional[bool] = None
    cached_at: Optional[str] = None
    rate_limit_remaining: Optional[int] = None


def settings_view(
    ctx: AppContext,
    email: Optional[str],
    cache: Optional[MemberCache] = None,
) -> SettingsView:
    """Settings page contents for the administrator.

    Raises:
        AdminAccessDenied: *email* is not the configured administrator.
    """
    admin = require_admin(ctx.credentials, email)
    view = SettingsView(
        admin_email=admin,
        generated_at=format_datetime(datetime.fromtimestamp(ctx.clock())),
        github_token_configured=ctx.credentials.has_token,
        rate_limit_remaining=ctx.rate_limit.remaining,
    )
    if cache is not None:
        view.cache_valid = cache.is_valid()
        cached_ms = cache.cached_at_ms()
        view.cached_at = format_datetime(cached_ms) if cached_ms else None
    return view
