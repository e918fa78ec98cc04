"""
member_atlas/storage/member_cache.py — Write-through cache of the member collection.

The collection is held in memory on the AppContext and mirrored to a
KeyValueStore under two keys (config.cache_data_key and
config.cache_timestamp_key).

Validity rule: the persisted copy is valid whenever BOTH keys exist. There is
no TTL — data stays until clear() or a forced refresh replaces it.

    load(force_refresh=False)
        persisted copy if valid and not forced; otherwise query the source,
        replace memory + storage, return. Source failure → persisted copy if
        any, else [].
    get()      in-memory collection, no I/O.
    set(xs)    replace memory + storage.
    clear()    remove both persisted keys.
    is_valid() both keys present.

No method raises: persistence and source failures are logged, and the
outcome of the last load() is exposed as ``last_outcome``.
"""

import json
import logging
from enum import Enum
from typing import Optional

from member_atlas.context import AppContext
from member_atlas.models import MemberRecord
from member_atlas.storage.kv_store import KeyValueStore
from member_atlas.storage.member_source import MemberSource

logger = logging.getLogger(__name__)


class LoadOutcome(str, Enum):
    CACHE = "cache"                    # served from the persisted copy
    SOURCE = "source"                  # fetched from the document store
    STALE_FALLBACK = "stale_fallback"  # source failed, persisted copy served
    EMPTY_FALLBACK = "empty_fallback"  # source failed, nothing persisted


class MemberCache:
    """Member collection cache bound to a context, a source and a store.

    Args:
        ctx:    AppContext owning the in-memory collection.
        source: Document store to query on a miss or forced refresh.
        store:  Durable key-value storage for the persisted copy.
    """

    def __init__(self, ctx: AppContext, source: MemberSource, store: KeyValueStore) -> None:
        self._ctx = ctx
        self._source = source
        self._store = store
        self.last_outcome: Optional[LoadOutcome] = None

    @property
    def _data_key(self) -> str:
        return self._ctx.config.cache_data_key

    @property
    def _timestamp_key(self) -> str:
        return self._ctx.config.cache_timestamp_key

    # ── Persistence ──────────────────────────────────────────────────────────

    def _load_persisted(self) -> Optional[list[MemberRecord]]:
        """Read the persisted copy into memory. None if missing or unreadable."""
        try:
            raw = self._store.get(self._data_key)
            raw_ts = self._store.get(self._timestamp_key)
            if raw is None or raw_ts is None:
                return None
            members = [MemberRecord.from_cached(doc) for doc in json.loads(raw)]
            timestamp = int(raw_ts)
        except Exception as exc:  # noqa: BLE001
            logger.error("Error loading members from cache: %s", exc)
            return None

        self._ctx.members = members
        self._ctx.last_fetch_ms = timestamp
        logger.debug("Loaded %d members from cache", len(members))
        return members

    def _save(self, members: list[MemberRecord]) -> None:
        """Persist *members*; on failure clear both keys so the cache reads as invalid."""
        timestamp = self._ctx.now_ms()
        try:
            payload = json.dumps([m.to_document() for m in members])
            self._store.set(self._data_key, payload)
            self._store.set(self._timestamp_key, str(timestamp))
            self._ctx.last_fetch_ms = timestamp
            logger.debug("Saved %d members to cache", len(members))
        except Exception as exc:  # noqa: BLE001
            logger.error("Error saving members to cache: %s", exc)
            self._remove_keys()

    def _remove_keys(self) -> None:
        try:
            self._store.remove(self._data_key)
            self._store.remove(self._timestamp_key)
        except Exception as exc:  # noqa: BLE001
            logger.error("Could not clear members cache: %s", exc)

    # ── Public API ───────────────────────────────────────────────────────────

    def load(self, force_refresh: bool = False) -> list[MemberRecord]:
        """Return the member collection, querying the source only when needed.

        Args:
            force_refresh: Skip the persisted copy and always query the source.

        Returns:
            The member list (possibly empty). Never raises.
        """
        if not force_refresh:
            cached = self._load_persisted()
            if cached is not None:
                logger.info("Using cached members data (%d members, no source read)", len(cached))
                self.last_outcome = LoadOutcome.CACHE
                return cached

        logger.info(
            "%s — fetching members from source",
            "Forced refresh" if force_refresh else "Cache missing",
        )
        try:
            members = self._source.fetch_members()
        except Exception as exc:  # noqa: BLE001
            logger.error("Error loading members: %s", exc)
            cached = self._load_persisted()
            if cached is not None:
                logger.warning("Using existing cache due to source error")
                self.last_outcome = LoadOutcome.STALE_FALLBACK
                return cached
            self._ctx.members = []
            self.last_outcome = LoadOutcome.EMPTY_FALLBACK
            return []

        self._ctx.members = members
        self._save(members)
        self.last_outcome = LoadOutcome.SOURCE
        return members

    def get(self) -> list[MemberRecord]:
        """In-memory collection; no I/O."""
        return self._ctx.members

    def get_member_by_id(self, member_id: str) -> Optional[MemberRecord]:
        for member in self._ctx.members:
            if member.id == member_id:
                return member
        return None

    def set(self, members: list[MemberRecord]) -> None:
        """Replace the in-memory and persisted collection."""
        self._ctx.members = list(members)
        self._save(self._ctx.members)

    def replace_member(self, member: MemberRecord) -> bool:
        """Full-record replace of one member by id; persists the collection.

        Returns False if no member with that id is cached.
        """
        members = list(self._ctx.members)
        for index, existing in enumerate(members):
            if existing.id == member.id:
                members[index] = member
                self.set(members)
                return True
        return False

    def clear(self) -> None:
        """Remove both persisted keys (the in-memory copy is untouched)."""
        self._remove_keys()
        logger.info("Cleared members cache")

    def is_valid(self) -> bool:
        """Both persisted keys exist. Elapsed time plays no part."""
        try:
            return self._store.contains(self._data_key) and self._store.contains(self._timestamp_key)
        except Exception as exc:  # noqa: BLE001
            logger.error("Error checking members cache: %s", exc)
            return False

    def cached_at_ms(self) -> Optional[int]:
        """Persisted fetch timestamp (epoch ms), or None if absent."""
        try:
            raw = self._store.get(self._timestamp_key)
            return None if raw is None else int(raw)
        except Exception as exc:  # noqa: BLE001
            logger.error("Error reading cache timestamp: %s", exc)
            return None
