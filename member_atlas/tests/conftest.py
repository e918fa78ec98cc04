"""
member_atlas/tests/conftest.py — Shared pytest fixtures for the Member Atlas test suite.

No test here touches the network: GitHub is replaced by ScriptedTransport,
Firestore by FakeMemberSource, time.sleep by RecordingSleep and the clock by
a constant.

Fixtures:
    transport       — ScriptedTransport; register responses with .add().
    sleeps          — RecordingSleep; every requested delay, in order.
    make_ctx        — Factory for AppContext wired to the fakes above.
    ctx             — make_ctx() with a token and an admin email.
    member_docs     — Raw camelCase member documents.
    members         — member_docs parsed into MemberRecord objects.
    member_source   — FakeMemberSource serving member_docs.
    kv_store        — Fresh InMemoryKeyValueStore.
    member_cache    — MemberCache over member_source and kv_store.
"""

import json

import pytest

from member_atlas.config import Credentials, MemberAtlasConfig
from member_atlas.context import AppContext
from member_atlas.ingestion.github_client import GitHubResponse
from member_atlas.models import MemberRecord
from member_atlas.storage.kv_store import InMemoryKeyValueStore
from member_atlas.storage.member_cache import MemberCache
from member_atlas.storage.member_source import MemberSource, MemberSourceError

NOW = 1_760_000_000.0  # fixed "current time" in epoch seconds
TOKEN = "ghp_test_token"
ADMIN = "admin@example.org"


# ── Pytest configuration hooks ────────────────────────────────────────────────

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers",
        "integration: marks tests that call the real GitHub API (deselected by default, "
        "pass --run-integration or -m integration to enable)",
    )


def pytest_addoption(parser):
    parser.addoption(
        "--run-integration",
        action="store_true",
        default=False,
        help="Run integration tests that call the real GitHub API.",
    )


def pytest_collection_modifyitems(config, items):
    """Skip integration tests unless --run-integration or -m integration is used."""
    markexpr = config.getoption("-m", default="")
    if "integration" in markexpr:
        return
    if config.getoption("--run-integration"):
        return

    skip_integration = pytest.mark.skip(
        reason="Integration test -- pass --run-integration or -m integration to run"
    )
    for item in items:
        if "integration" in item.keywords:
            item.add_marker(skip_integration)


# ── Fakes ─────────────────────────────────────────────────────────────────────

def json_response(data, status=200, headers=None):
    """GitHubResponse carrying *data* as a JSON body."""
    return GitHubResponse(
        status=status,
        headers=headers or {},
        body=json.dumps(data).encode("utf-8"),
    )


class ScriptedTransport:
    """
    Stand-in for the urllib transport.

    add(fragment, *responses) registers responses for any URL containing
    *fragment*; the longest matching fragment wins. Responses are served in
    order and the last one repeats. Unmatched URLs get a 404.
    """

    def __init__(self):
        self.routes: dict[str, list[GitHubResponse]] = {}
        self.calls: list[tuple[str, dict]] = []

    def add(self, fragment, *responses):
        self.routes[fragment] = list(responses)
        return self

    def __call__(self, url, headers, timeout=None):
        self.calls.append((url, dict(headers)))
        matches = [f for f in self.routes if f in url]
        if not matches:
            return json_response({"message": "Not Found"}, status=404)
        queue = self.routes[max(matches, key=len)]
        response = queue.pop(0) if len(queue) > 1 else queue[0]
        response.url = url
        return response

    @property
    def urls(self):
        return [url for url, _ in self.calls]

    def count(self, fragment):
        return sum(1 for url in self.urls if fragment in url)


class RecordingSleep:
    """Records requested delays instead of sleeping."""

    def __init__(self):
        self.calls: list[float] = []

    def __call__(self, seconds):
        self.calls.append(seconds)

    @property
    def total(self):
        return sum(self.calls)


class FakeMemberSource(MemberSource):
    """In-memory document store with call counting and failure injection."""

    def __init__(self, docs):
        self.docs = [dict(d) for d in docs]
        self.fetch_calls = 0
        self.replaced: list[MemberRecord] = []
        self.fail = False
        self.fail_replace = False

    def fetch_members(self):
        self.fetch_calls += 1
        if self.fail:
            raise MemberSourceError("document store unavailable")
        return [MemberRecord.from_document(d["id"], d) for d in self.docs]

    def replace_member(self, member):
        if self.fail_replace:
            raise MemberSourceError("write rejected")
        self.replaced.append(member)
        self.docs = [member.to_document() if d["id"] == member.id else d for d in self.docs]


# ── Fixtures ──────────────────────────────────────────────────────────────────

@pytest.fixture
def transport():
    return ScriptedTransport()


@pytest.fixture
def sleeps():
    return RecordingSleep()


@pytest.fixture
def make_ctx(transport, sleeps):
    """Factory: make_ctx(token=TOKEN, admin_email=ADMIN, **config_overrides)."""

    def _make(token=TOKEN, admin_email=ADMIN, **overrides):
        return AppContext(
            config=MemberAtlasConfig(**overrides),
            credentials=Credentials(github_token=token, admin_email=admin_email),
            clock=lambda: NOW,
            sleep=sleeps,
            transport=transport,
        )

    return _make


@pytest.fixture
def ctx(make_ctx):
    return make_ctx()


@pytest.fixture
def member_docs():
    return [
        {
            "id": "m1",
            "displayName": "Ada Lovelace",
            "email": "ada@example.org",
            "githubConnected": True,
            "githubUsername": "ada",
            "joinedAt": "2024-03-01T10:00:00",
            "githubActivity": {
                "publicRepos": 10,
                "privateRepos": 2,
                "totalStars": 50,
                "totalForks": 5,
                "pullRequests": 20,
                "mergedPRs": 15,
                "openPRs": 3,
                "closedPRs": 2,
                "commits": 120,
                "issues": 4,
                "contributions": 300,
                "languages": {"Python": 50000, "Go": 20000},
            },
        },
        {
            "id": "m2",
            "firstName": "Grace",
            "lastName": "Hopper",
            "personalEmail": "grace@home.example",
            "whatsappNumber": "+15550100",
            "githubConnected": True,
            "githubUsername": "grace",
            "githubActivity": {
                "publicRepos": 5,
                "totalStars": 7,
                "pullRequests": 8,
                "mergedPRs": 6,
                "openPRs": 1,
                "closedPRs": 1,
                "commits": 120,
                "issues": 1,
                "contributions": 100,
                "languages": {"Python": 1000, "Unknown": 999, "": 5},
            },
        },
        {
            "id": "m3",
            "firstName": "Linus",
            "githubConnected": True,
            "githubUsername": "linus",
        },
        {
            "id": "m4",
            "email": "anon@example.org",
            "githubConnected": False,
            "githubActivity": {"publicRepos": 3, "totalStars": 1, "commits": 0},
        },
        {
            "id": "m5",
            "displayName": "No Activity",
            "githubConnected": False,
        },
    ]


@pytest.fixture
def members(member_docs):
    return [MemberRecord.from_document(d["id"], d) for d in member_docs]


@pytest.fixture
def member_source(member_docs):
    return FakeMemberSource(member_docs)


@pytest.fixture
def kv_store():
    return InMemoryKeyValueStore()


@pytest.fixture
def member_cache(ctx, member_source, kv_store):
    return MemberCache(ctx, member_source, kv_store)
