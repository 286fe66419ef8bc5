"""MongoDB helpers and bulk upsert utility.

Centralizes creation of Mongo clients and the bulk writes used to publish
report tables.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable
from pymongo import MongoClient, UpdateOne
from pymongo.collection import Collection
from pymongo.database import Database
from pymongo.errors import PyMongoError

import certifi

log = logging.getLogger(__name__)


def get_client(uri: str, tls: bool = True) -> MongoClient:
    """Return a configured PyMongo MongoClient for the provided URI.

    Args:
        uri: MongoDB connection URI.
        tls: Connect over TLS using certifi's CA bundle.

    Returns:
        Configured MongoClient instance.
    """
    options: dict[str, Any] = {
        "serverSelectionTimeoutMS": 30000,
        "socketTimeoutMS": 30000,
        "connectTimeoutMS": 30000,
    }
    if tls:
        options.update(tls=True, tlsCAFile=certifi.where())
    return MongoClient(uri, **options)


def get_db(
    client: MongoClient[dict[str, Any]],
    db_name: str,
) -> Database[dict[str, Any]]:
    """Return the named Database instance from a MongoClient."""
    return client[db_name]


def bulk_upsert(
    collection: Collection[dict[str, Any]],
    docs: Iterable[dict[str, Any]],
    key_fields: list[str],
    batch_size: int = 1000,
) -> int:
    """Bulk upsert documents using `key_fields` as the selector.

    This helper writes in batches and logs failed batches instead of raising;
    it returns the number of documents that were attempted (a conservative
    metric). With no key fields every document replaces the same single
    record, which suits one-row tables.

    Args:
        collection: Target PyMongo collection.
        docs: Iterable of document dictionaries to upsert.
        key_fields: Document keys used for the upsert selector.
        batch_size: Number of ops per bulk_write call.

    Returns:
        Integer number of documents attempted.
    """
    ops: list[UpdateOne] = []
    attempted = 0

    for d in docs:
        if any(k not in d for k in key_fields):
            continue

        ops.append(
            UpdateOne(
                {k: d[k] for k in key_fields},
                {"$set": d},
                upsert=True,
            )
        )
        attempted += 1

        if len(ops) >= batch_size:
            try:
                collection.bulk_write(ops, ordered=False)
            except PyMongoError as e:
                log.warning("bulk_upsert batch failed for %s: %s", collection.name, e)
            ops.clear()

    if ops:
        try:
            collection.bulk_write(ops, ordered=False)
        except PyMongoError as e:
            log.warning("bulk_upsert final batch failed for %s: %s", collection.name, e)

    return attempted


def replace_all(
    collection: Collection[dict[str, Any]],
    docs: Iterable[dict[str, Any]],
    key_fields: list[str],
    batch_size: int = 1000,
) -> int:
    """Replace the whole contents of `collection` with `docs`.

    The collection is emptied first, then `docs` are written with
    `bulk_upsert`. A failure to clear the collection is raised, since
    upserting on top of the old rows would leave stale documents behind.

    Returns:
        Integer number of documents attempted.
    """
    result = collection.delete_many({})
    log.info("Cleared %d documents from %s", result.deleted_count, collection.name)
    return bulk_upsert(collection, docs, key_fields, batch_size=batch_size)
