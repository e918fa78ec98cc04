"""
member_atlas/tests/test_member_cache.py — Tests for the member cache and its storage.

Tests verify:
- A warm cache is served without reading the document store.
- force_refresh always reads the store; clear() forces the next read.
- Source failures fall back to the persisted copy, or to [].
- A quota failure leaves both persisted keys absent but memory intact.
- File and in-memory key-value stores; JSON member source round trip.
"""

import json
import os

import pytest

from member_atlas.models import MemberRecord
from member_atlas.storage.kv_store import (
    FileKeyValueStore,
    InMemoryKeyValueStore,
    StorageFullError,
)
from member_atlas.storage.member_cache import LoadOutcome, MemberCache
from member_atlas.storage.member_source import JsonMemberSource, MemberSourceError


DATA_KEY = "members_cache"
TS_KEY = "members_cache_timestamp"


# ── MemberCache ───────────────────────────────────────────────────────────────

def test_cold_load_fetches_and_persists(member_cache, member_source, kv_store, ctx):
    members = member_cache.load()

    assert [m.id for m in members] == ["m1", "m2", "m3", "m4", "m5"]
    assert member_source.fetch_calls == 1
    assert member_cache.last_outcome == LoadOutcome.SOURCE
    assert kv_store.contains(DATA_KEY) and kv_store.contains(TS_KEY)
    assert int(kv_store.get(TS_KEY)) == ctx.now_ms()
    assert ctx.members is members


def test_warm_load_skips_source(member_cache, member_source, members):
    member_cache.set(members[:2])
    loaded = member_cache.load(force_refresh=False)

    assert [m.id for m in loaded] == ["m1", "m2"]
    assert loaded == members[:2]
    assert member_source.fetch_calls == 0
    assert member_cache.last_outcome == LoadOutcome.CACHE


def test_force_refresh_always_reads_source(member_cache, member_source, members):
    member_cache.set(members[:1])
    loaded = member_cache.load(force_refresh=True)
    assert len(loaded) == 5
    assert member_source.fetch_calls == 1


def test_clear_then_load_refetches(member_cache, member_source, kv_store):
    member_cache.load()
    member_cache.clear()
    assert not kv_store.contains(DATA_KEY)
    assert not member_cache.is_valid()

    member_cache.load(force_refresh=False)
    assert member_source.fetch_calls == 2
    assert kv_store.contains(DATA_KEY) and kv_store.contains(TS_KEY)


def test_clear_keeps_in_memory_copy(member_cache):
    member_cache.load()
    member_cache.clear()
    assert len(member_cache.get()) == 5


def test_source_failure_falls_back_to_persisted_copy(member_cache, member_source, members):
    member_cache.set(members[:3])
    member_source.fail = True

    loaded = member_cache.load(force_refresh=True)

    assert [m.id for m in loaded] == ["m1", "m2", "m3"]
    assert member_cache.last_outcome == LoadOutcome.STALE_FALLBACK


def test_source_failure_without_cache_returns_empty(member_cache, member_source, ctx):
    member_source.fail = True
    assert member_cache.load() == []
    assert member_cache.last_outcome == LoadOutcome.EMPTY_FALLBACK
    assert ctx.members == []


def test_quota_failure_clears_keys_and_keeps_memory(ctx, member_source):
    store = InMemoryKeyValueStore(max_value_bytes=10)
    cache = MemberCache(ctx, member_source, store)

    members = cache.load()

    assert len(members) == 5
    assert len(cache.get()) == 5
    assert store.get(DATA_KEY) is None
    assert store.get(TS_KEY) is None
    assert not cache.is_valid()

    cache.load()
    assert member_source.fetch_calls == 2


def test_timestamp_only_is_not_valid(member_cache, kv_store, member_source):
    kv_store.set(TS_KEY, "123")
    assert not member_cache.is_valid()
    member_cache.load()
    assert member_source.fetch_calls == 1


def test_corrupt_payload_treated_as_missing(member_cache, kv_store, member_source):
    kv_store.set(DATA_KEY, "{not json")
    kv_store.set(TS_KEY, "123")
    member_cache.load()
    assert member_source.fetch_calls == 1
    assert member_cache.last_outcome == LoadOutcome.SOURCE


def test_persisted_copy_round_trips_records(member_cache, members, ctx):
    member_cache.set(members)
    ctx.members = []
    loaded = member_cache.load()
    assert loaded == members
    assert loaded[1].whatsapp_number == "+15550100"
    assert loaded[0].activity.languages == {"Python": 50000, "Go": 20000}


def test_get_member_by_id(member_cache):
    member_cache.load()
    assert member_cache.get_member_by_id("m2").first_name == "Grace"
    assert member_cache.get_member_by_id("missing") is None


def test_replace_member_persists(member_cache, kv_store):
    member_cache.load()
    original = member_cache.get_member_by_id("m3")
    updated = MemberRecord(id="m3", first_name="Linus", github_connected=True, github_username="linus")
    assert member_cache.replace_member(updated)
    assert not member_cache.replace_member(MemberRecord(id="nope"))

    stored = {d["id"]: d for d in json.loads(kv_store.get(DATA_KEY))}
    assert stored["m3"]["firstName"] == "Linus"
    assert member_cache.get_member_by_id("m3") is updated
    assert original is not updated


def test_cached_at_ms(member_cache, ctx):
    assert member_cache.cached_at_ms() is None
    member_cache.load()
    assert member_cache.cached_at_ms() == ctx.now_ms()


# ── Key-value stores ──────────────────────────────────────────────────────────

def test_file_store_set_get_remove(tmp_path):
    store = FileKeyValueStore(str(tmp_path / "kv"))
    assert store.get("alpha") is None

    store.set("alpha", "one")
    assert store.get("alpha") == "one"
    assert store.contains("alpha")
    assert not os.path.exists(tmp_path / "kv" / "alpha.tmp")

    store.remove("alpha")
    store.remove("alpha")
    assert store.get("alpha") is None


def test_file_store_rejects_unsafe_keys(tmp_path):
    store = FileKeyValueStore(str(tmp_path))
    with pytest.raises(ValueError):
        store.set("../escape", "x")


def test_quota_rejects_oversized_values(tmp_path):
    store = FileKeyValueStore(str(tmp_path), max_value_bytes=3)
    with pytest.raises(StorageFullError):
        store.set("k", "four")
    assert store.get("k") is None


def test_file_backed_cache_survives_new_context(make_ctx, member_source, tmp_path):
    first = MemberCache(make_ctx(), member_source, FileKeyValueStore(str(tmp_path)))
    first.load()

    second = MemberCache(make_ctx(), member_source, FileKeyValueStore(str(tmp_path)))
    assert len(second.load()) == 5
    assert member_source.fetch_calls == 1


# ── JsonMemberSource ──────────────────────────────────────────────────────────

def test_json_source_reads_list_and_mapping(tmp_path, member_docs):
    as_list = tmp_path / "list.json"
    as_list.write_text(json.dumps(member_docs))
    as_map = tmp_path / "map.json"
    as_map.write_text(json.dumps({"x1": {"firstName": "X", "id": "ignored"}}))

    assert len(JsonMemberSource(str(as_list)).fetch_members()) == 5
    (only,) = JsonMemberSource(str(as_map)).fetch_members()
    assert only.id == "x1"


def test_json_source_replace_member(tmp_path, member_docs):
    path = tmp_path / "members.json"
    path.write_text(json.dumps(member_docs))
    source = JsonMemberSource(str(path))

    member = source.fetch_members()[4]
    member.display_name = "Renamed"
    source.replace_member(member)

    reread = {m.id: m for m in source.fetch_members()}
    assert reread["m5"].display_name == "Renamed"
    assert len(reread) == 5


def test_json_source_missing_file_raises(tmp_path):
    with pytest.raises(MemberSourceError):
        JsonMemberSource(str(tmp_path / "missing.json")).fetch_members()
