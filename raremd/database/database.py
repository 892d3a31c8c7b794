"""
ArangoDB connection and collection management.

Holds a process-wide client and database handle, creates the database and
the RareMD collections on first use, and exposes small document helpers
used by the Arango repository adapter.
"""

from typing import Any

from arango import ArangoClient
from arango.database import StandardDatabase
from arango.exceptions import (
    CollectionCreateError,
    DatabaseCreateError,
    DocumentGetError,
    IndexCreateError,
)

from raremd.config.config import Settings, get_settings
from raremd.config.logging_config import get_logger

logger = get_logger(__name__)

CASES = "cases"
DISEASES = "diseases"
PHYSICIANS = "physicians"
ANALYTICS = "analytics"
COUNTERS = "counters"

COLLECTIONS = (CASES, DISEASES, PHYSICIANS, ANALYTICS, COUNTERS)

# Persistent unique indexes per collection
UNIQUE_INDEXES = {
    DISEASES: ["orpha_code"],
}

_client: ArangoClient | None = None
_db: StandardDatabase | None = None


def get_client(settings: Settings | None = None) -> ArangoClient:
    """
    Return the process-wide ArangoDB client, creating it on first call.

    Args:
        settings: Connection settings. Defaults to the cached application settings.

    Returns:
        The shared client.
    """
    global _client
    if _client is None:
        settings = settings or get_settings()
        _client = ArangoClient(hosts=settings.arango_host)
        logger.info("Arango client created", host=settings.arango_host)
    return _client


def get_database(settings: Settings | None = None) -> StandardDatabase:
    """
    Get or create the RareMD database handle.

    The database and its collections are created when missing.

    Args:
        settings: Connection settings. Defaults to the cached application settings.

    Returns:
        Handle to the RareMD database.
    """
    global _db
    if _db is None:
        settings = settings or get_settings()
        client = get_client(settings)

        sys_db = client.db(
            "_system",
            username=settings.arango_username,
            password=settings.arango_password,
        )
        if not sys_db.has_database(settings.arango_database):
            try:
                sys_db.create_database(settings.arango_database)
                logger.info("Arango database created", database=settings.arango_database)
            except DatabaseCreateError as e:
                logger.error("Arango database creation failed", error=str(e))
                raise

        _db = client.db(
            settings.arango_database,
            username=settings.arango_username,
            password=settings.arango_password,
        )
        logger.info("Arango database ready", database=settings.arango_database)
        init_collections(_db)

    return _db


def init_collections(db: StandardDatabase) -> None:
    """
    Create missing collections and their unique indexes.

    Args:
        db: Open RareMD database.
    """
    for name in COLLECTIONS:
        if not db.has_collection(name):
            try:
                db.create_collection(name)
                logger.info("Collection created", collection=name)
            except CollectionCreateError as e:
                logger.warning("Collection creation failed", collection=name, error=str(e))

    for name, fields in UNIQUE_INDEXES.items():
        try:
            # Idempotent: ArangoDB returns the existing index when it matches
            db.collection(name).add_index(
                {"type": "persistent", "fields": fields, "unique": True}
            )
        except IndexCreateError as e:
            logger.warning("Index creation failed", collection=name, fields=fields, error=str(e))


def close_connection() -> None:
    """Close the shared client and forget the database handle."""
    global _client, _db
    if _client is not None:
        _client.close()
        _client = None
        _db = None
        logger.info("Arango client closed")


# ============================================================================
# Document helpers
# ============================================================================

def strip_system_fields(document: dict[str, Any]) -> dict[str, Any]:
    """Drop ArangoDB system attributes (_key, _id, _rev) from a document."""
    return {k: v for k, v in document.items() if not k.startswith("_")}


def get_document(db: StandardDatabase, collection: str, key: str) -> dict[str, Any] | None:
    """
    Fetch one document from a collection by key.

    Returns:
        Document without system attributes, or None if not found.
    """
    try:
        document = db.collection(collection).get(key)
    except DocumentGetError as e:
        logger.warning("Document lookup failed", collection=collection, key=key, error=str(e))
        return None
    return strip_system_fields(document) if document else None


def query_documents(
    db: StandardDatabase, aql: str, bind_vars: dict[str, Any] | None = None
) -> list[dict[str, Any]]:
    """
    Run an AQL query and collect every row.

    Args:
        db: Open RareMD database.
        aql: Query text. Collection bind parameters use the @@ prefix.
        bind_vars: Values for the query parameters.

    Returns:
        List of result rows. Document rows are returned without system attributes.
    """
    cursor = db.aql.execute(aql, bind_vars=bind_vars or {})
    return [strip_system_fields(row) if isinstance(row, dict) else row for row in cursor]
