"""
member_atlas.storage — Member persistence.

Modules:
    member_source — Firestore (and JSON export) access to the Members collection.
    kv_store      — Durable string key-value stores (file-backed, in-memory).
    member_cache  — Write-through cache of the collection with no expiry.
"""
