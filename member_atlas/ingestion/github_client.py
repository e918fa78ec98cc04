"""
member_atlas/ingestion/github_client.py — Rate-limit-aware GitHub HTTP client.

Single point through which every GitHub REST call flows. Responsibilities:

    1. Authentication: Bearer token header when a token is configured; a
       one-time WARNING per context when it is not (unauthenticated requests
       are limited to 60/hr).
    2. Rate-limit bookkeeping: X-RateLimit-Remaining / X-RateLimit-Reset from
       every response are recorded on the AppContext.
    3. Throttling retries: HTTP 429, or HTTP 403 with X-RateLimit-Remaining
       of 0, waits until the reset time (60s when the header is missing) and
       retries, up to config.max_attempts attempts in total. After the last
       attempt the throttled response is returned to the caller unchanged.

Non-throttling statuses (404, plain 403, 5xx) are returned immediately —
interpreting them is the fetchers' job. Only transport failures raise, as
GitHubTransportError.

Uses only Python stdlib (urllib.request) — no third-party HTTP libraries.
"""

import json
import logging
import urllib.error
import urllib.request
from dataclasses import dataclass, field
from typing import Any, Optional

from member_atlas.context import AppContext

logger = logging.getLogger(__name__)


class GitHubTransportError(Exception):
    """The request never produced an HTTP response (DNS, refused, reset)."""


@dataclass
class GitHubResponse:
    """Status, headers and raw body of one GitHub response."""

    status: int
    headers: dict[str, str] = field(default_factory=dict)
    body: bytes = b""
    url: str = ""

    def __post_init__(self) -> None:
        # Header lookups are case-insensitive.
        self.headers = {k.lower(): v for k, v in (self.headers or {}).items()}

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def header(self, name: str) -> Optional[str]:
        return self.headers.get(name.lower())

    def json(self) -> Any:
        return json.loads(self.body or b"null")

    @property
    def is_throttled(self) -> bool:
        """True for 429, or 403 accompanied by an exhausted quota."""
        if self.status == 429:
            return True
        return self.status == 403 and self.header("X-RateLimit-Remaining") == "0"


def urllib_transport(
    url: str,
    headers: dict[str, str],
    timeout: Optional[float] = None,
) -> GitHubResponse:
    """Default transport: one GET via urllib.request.

    HTTP error statuses are converted into GitHubResponse objects rather than
    raised, so the client sees 403/404/429 the same way it sees 200.
    """
    req = urllib.request.Request(url, headers=headers)
    kwargs = {} if timeout is None else {"timeout": timeout}
    try:
        with urllib.request.urlopen(req, **kwargs) as resp:
            return GitHubResponse(
                status=resp.status,
                headers=dict(resp.headers.items()),
                body=resp.read(),
                url=url,
            )
    except urllib.error.HTTPError as exc:
        body = exc.read() if exc.fp is not None else b""
        return GitHubResponse(
            status=exc.code,
            headers=dict(exc.headers.items()) if exc.headers else {},
            body=body,
            url=url,
        )
    except urllib.error.URLError as exc:
        raise GitHubTransportError(f"Network error on {url}: {exc.reason}") from exc
    except OSError as exc:
        raise GitHubTransportError(f"Network error on {url}: {exc}") from exc


class GitHubClient:
    """GitHub REST client bound to one AppContext.

    Args:
        ctx: Application context supplying config, credentials, clock, sleep
             and (optionally) a replacement transport.
    """

    def __init__(self, ctx: AppContext) -> None:
        self._ctx = ctx
        self._transport = ctx.transport or urllib_transport

    @property
    def has_token(self) -> bool:
        return self._ctx.credentials.has_token

    def url(self, path: str) -> str:
        """Absolute API URL for a path starting with '/'."""
        return f"{self._ctx.config.github_api_base}{path}"

    def _headers(self, extra: Optional[dict[str, str]] = None) -> dict[str, str]:
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": self._ctx.config.github_api_version,
        }
        if extra:
            headers.update(extra)

        token = self._ctx.credentials.github_token
        if token:
            headers["Authorization"] = f"Bearer {token}"
        elif not self._ctx.token_warning_shown:
            logger.warning(
                "GitHub token not configured — using unauthenticated requests "
                "(60 req/hr limit). Set GITHUB_TOKEN to raise the limit."
            )
            self._ctx.token_warning_shown = True
        return headers

    def _record_rate_limit(self, resp: GitHubResponse) -> None:
        remaining = resp.header("X-RateLimit-Remaining")
        reset = resp.header("X-RateLimit-Reset")
        state = self._ctx.rate_limit
        if remaining is not None:
            try:
                state.remaining = int(remaining)
            except ValueError:
                pass
        if reset is not None:
            try:
                state.reset_epoch = int(reset)
            except ValueError:
                pass

    def wait_seconds(self, resp: GitHubResponse) -> float:
        """Seconds to wait before retrying a throttled response.

        Derived from X-RateLimit-Reset (epoch seconds) plus a small padding;
        defaults to config.default_rate_limit_wait_seconds when the header is
        missing or unparseable. Never negative.
        """
        cfg = self._ctx.config
        reset = resp.header("X-RateLimit-Reset")
        if reset is None:
            return cfg.default_rate_limit_wait_seconds
        try:
            reset_epoch = float(reset)
        except ValueError:
            return cfg.default_rate_limit_wait_seconds
        wait = reset_epoch - self._ctx.clock() + cfg.rate_limit_reset_padding_seconds
        return max(0.0, wait)

    def request(
        self,
        url: str,
        headers: Optional[dict[str, str]] = None,
    ) -> GitHubResponse:
        """GET *url* with authentication and throttling retries.

        Args:
            url:     Absolute URL, or a path starting with '/' (prefixed with
                     the configured API base).
            headers: Extra request headers.

        Returns:
            The first non-throttled response, or the last throttled response
            once config.max_attempts attempts are used up.

        Raises:
            GitHubTransportError: no HTTP response could be obtained.
        """
        if url.startswith("/"):
            url = self.url(url)
        request_headers = self._headers(headers)
        max_attempts = max(1, self._ctx.config.max_attempts)
        timeout = self._ctx.config.request_timeout_seconds

        resp = None
        for attempt in range(1, max_attempts + 1):
            resp = self._transport(url, request_headers, timeout)
            self._record_rate_limit(resp)

            if not resp.is_throttled:
                if resp.status == 403:
                    logger.warning(
                        "GitHub API 403 Forbidden — token %s. Request: %s",
                        "may be invalid or expired" if self.has_token else "missing",
                        url,
                    )
                return resp

            if attempt == max_attempts:
                logger.warning(
                    "GitHub rate limited (HTTP %d) on %s — max attempts (%d) reached",
                    resp.status, url, max_attempts,
                )
                break

            wait = self.wait_seconds(resp)
            logger.warning(
                "GitHub rate limited (HTTP %d) on %s — sleeping %.1fs before retry %d/%d",
                resp.status, url, wait, attempt + 1, max_attempts,
            )
            self._ctx.sleep(wait)

        return resp
