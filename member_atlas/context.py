"""
member_atlas/context.py — Process-scoped application context.

Everything that would otherwise be module-level mutable state lives on one
AppContext constructed by the application root (CLI command or FastAPI app
factory) and passed to every component that needs it:

    - the in-memory member collection and its fetch timestamp
    - the last observed GitHub rate-limit headers
    - the one-time "no token" warning flag
    - the per-handle GitHub profile cache (None = known not to exist)
    - the injectable clock, sleep and HTTP transport

reset() returns the mutable parts to their startup state; tests use it to
share a context across cases without leaking state.
"""

import time
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from member_atlas.config import DEFAULT_CONFIG, Credentials, MemberAtlasConfig


@dataclass
class RateLimitState:
    """Latest X-RateLimit-* values seen on any GitHub response."""

    remaining: Optional[int] = None
    reset_epoch: Optional[int] = None


@dataclass
class AppContext:
    config: MemberAtlasConfig = DEFAULT_CONFIG
    credentials: Credentials = field(default_factory=Credentials)

    # Injectable effects. transport=None selects the urllib transport.
    clock: Callable[[], float] = time.time
    sleep: Callable[[float], None] = time.sleep
    transport: Optional[Callable[..., Any]] = None

    # Mutable process state
    members: list = field(default_factory=list)
    last_fetch_ms: int = 0
    rate_limit: RateLimitState = field(default_factory=RateLimitState)
    token_warning_shown: bool = False
    profile_cache: dict = field(default_factory=dict)

    def reset(self) -> None:
        """Drop all mutable state, keeping config, credentials and effects."""
        self.members = []
        self.last_fetch_ms = 0
        self.rate_limit = RateLimitState()
        self.token_warning_shown = False
        self.profile_cache = {}

    def now_ms(self) -> int:
        return int(self.clock() * 1000)
