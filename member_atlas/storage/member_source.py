"""
member_atlas/storage/member_source.py — Document-store access for member records.

Concrete implementations return the full ``Members`` collection as
MemberRecord objects, each document's fields merged with its document id.
The only write path is replace_member(), a full-record overwrite used by the
manual activity refresh; documents are never partially patched.

    FirestoreMemberSource — production source (google-cloud-firestore).
    JsonMemberSource      — a JSON export of the collection on disk; used for
                            offline runs and local development.

Any failure surfaces as MemberSourceError so the cache can fall back to its
persisted copy.
"""

import json
import logging
import os
from typing import Any, Optional

from member_atlas.config import DEFAULT_CONFIG
from member_atlas.models import MemberRecord

logger = logging.getLogger(__name__)


class MemberSourceError(Exception):
    """The document store could not be read or written."""


class MemberSource:
    """
    Interface for loading (and overwriting) member documents.
    """

    def fetch_members(self) -> list[MemberRecord]:
        raise NotImplementedError

    def replace_member(self, member: MemberRecord) -> None:
        raise NotImplementedError


class FirestoreMemberSource(MemberSource):
    """Read the member collection from Cloud Firestore.

    Args:
        collection: Collection name (default: config.members_collection).
        client:     A google.cloud.firestore.Client. When None, one is created
                    lazily from application-default credentials and *project*.
        project:    Optional GCP project id for the lazily created client.
    """

    def __init__(
        self,
        collection: str = DEFAULT_CONFIG.members_collection,
        client: Any = None,
        project: Optional[str] = None,
    ) -> None:
        self._collection = collection
        self._client = client
        self._project = project

    def _get_client(self) -> Any:
        if self._client is None:
            from google.cloud import firestore

            self._client = firestore.Client(project=self._project)
        return self._client

    def fetch_members(self) -> list[MemberRecord]:
        try:
            docs = self._get_client().collection(self._collection).stream()
            members = [MemberRecord.from_document(doc.id, doc.to_dict()) for doc in docs]
        except Exception as exc:  # noqa: BLE001
            raise MemberSourceError(
                f"Failed to read Firestore collection '{self._collection}': {exc}"
            ) from exc
        logger.info("Fetched %d members from Firestore '%s'", len(members), self._collection)
        return members

    def replace_member(self, member: MemberRecord) -> None:
        data = member.to_document()
        data.pop("id", None)
        try:
            self._get_client().collection(self._collection).document(member.id).set(data)
        except Exception as exc:  # noqa: BLE001
            raise MemberSourceError(
                f"Failed to overwrite member {member.id} in '{self._collection}': {exc}"
            ) from exc


class JsonMemberSource(MemberSource):
    """Member collection exported as JSON.

    Accepts either a list of documents carrying an ``id`` field, or an
    object mapping document id → fields.
    """

    def __init__(self, path: str) -> None:
        self._path = path

    def _read(self) -> list[dict]:
        try:
            with open(self._path, "r", encoding="utf-8") as fh:
                raw = json.load(fh)
        except (OSError, json.JSONDecodeError) as exc:
            raise MemberSourceError(f"Failed to read members JSON {self._path}: {exc}") from exc

        if isinstance(raw, dict):
            return [{**fields, "id": doc_id} for doc_id, fields in raw.items()]
        if isinstance(raw, list):
            return [doc for doc in raw if isinstance(doc, dict)]
        raise MemberSourceError(f"Unexpected members JSON shape in {self._path}")

    def fetch_members(self) -> list[MemberRecord]:
        members = [MemberRecord.from_document(doc.get("id", ""), doc) for doc in self._read()]
        logger.info("Loaded %d members from %s", len(members), self._path)
        return members

    def replace_member(self, member: MemberRecord) -> None:
        docs = self._read()
        replacement = member.to_document()
        for index, doc in enumerate(docs):
            if str(doc.get("id", "")) == member.id:
                docs[index] = replacement
                break
        else:
            docs.append(replacement)

        tmp = self._path + ".tmp"
        try:
            with open(tmp, "w", encoding="utf-8") as fh:
                json.dump(docs, fh, indent=2)
            os.replace(tmp, self._path)
        except OSError as exc:
            raise MemberSourceError(f"Failed to write members JSON {self._path}: {exc}") from exc
