"""
Database connection utilities for the Japanese Real Estate harvester.

This module provides MongoDB connection management for the harvester. The
client is created explicitly by the process entry point and handed to the
crawl controllers as collection handles; no module keeps a global connection.

The harvester uses three collections in a single database:
    - listings: one summary document per property card (unique _id)
    - details: one enrichment document per processed listing
    - scraper_state: the resumable listing crawl's progress marker

Usage:
    from japanese_real_estate.core.connections import (
        mongodb_connection,
        get_harvest_collections,
    )

    with mongodb_connection() as client:
        collections = get_harvest_collections(client)
        print(collections.listings.count_documents({}))

Author: Leonardo Pacciani-Mori
License: MIT
"""

from contextlib import contextmanager
from typing import Any, NamedTuple, Optional

import pymongo
from pymongo import MongoClient

from japanese_real_estate.config.settings import (
    MONGODB_HOST,
    MONGODB_PORT,
    MONGODB_USER,
    MONGODB_PASSWORD,
    MONGODB_AUTH_SOURCE,
    MONGODB_TIMEOUT_MS,
    MONGODB_DATABASE_NAME,
    MONGODB_LISTINGS_COLLECTION,
    MONGODB_DETAILS_COLLECTION,
    MONGODB_STATE_COLLECTION,
)
from japanese_real_estate.config.logging_config import get_logger

logger = get_logger(__name__)


class HarvestCollections(NamedTuple):
    """Handles to the three collections used by the harvester."""
    listings: Any
    details: Any
    state: Any


# =============================================================================
# MONGODB CONNECTION UTILITIES
# =============================================================================

def _get_mongo_auth_kwargs(
    username: Optional[str],
    password: Optional[str],
    auth_source: Optional[str],
) -> dict:
    if username and password:
        return {
            "username": username,
            "password": password,
            "authSource": auth_source or "admin",
        }
    return {}


def get_mongodb_client(
    host: str = MONGODB_HOST,
    port: int = MONGODB_PORT,
    username: Optional[str] = MONGODB_USER,
    password: Optional[str] = MONGODB_PASSWORD,
    auth_source: Optional[str] = MONGODB_AUTH_SOURCE,
    timeout_ms: Optional[int] = MONGODB_TIMEOUT_MS,
) -> MongoClient:
    """
    Create and return a MongoDB client.

    PyMongo connects lazily, so this call does not fail when the server is
    down; the first operation does, after timeout_ms milliseconds.

    Args:
        host: Hostname or IP address of the MongoDB server.
        port: Port of the MongoDB server.
        username: Optional user name. Authentication is only configured
            when both username and password are set.
        password: Optional password.
        auth_source: Authentication database, "admin" by default.
        timeout_ms: Server selection timeout in milliseconds, or None for
            the driver default.

    Returns:
        MongoClient: A client instance. Close it when done, or use
            mongodb_connection() instead.

    Example:
        >>> client = get_mongodb_client()
        >>> client["suumo"]["listings"].count_documents({})
        >>> client.close()
    """
    kwargs = _get_mongo_auth_kwargs(username, password, auth_source)
    if timeout_ms is not None:
        kwargs["serverSelectionTimeoutMS"] = timeout_ms
    return MongoClient(host, port, **kwargs)


@contextmanager
def mongodb_connection(
    host: str = MONGODB_HOST,
    port: int = MONGODB_PORT,
    username: Optional[str] = MONGODB_USER,
    password: Optional[str] = MONGODB_PASSWORD,
    auth_source: Optional[str] = MONGODB_AUTH_SOURCE,
    timeout_ms: Optional[int] = MONGODB_TIMEOUT_MS,
):
    """
    Context manager for MongoDB connections with automatic cleanup.

    Yields:
        MongoClient: A client that is closed when the block exits, even
            if the block raised.

    Example:
        >>> with mongodb_connection() as client:
        ...     collections = get_harvest_collections(client)
        ...     remaining = collections.listings.count_documents({"processed": {"$ne": True}})
    """
    client = get_mongodb_client(host, port, username, password, auth_source, timeout_ms)
    try:
        yield client
    finally:
        client.close()


def get_harvest_collections(
    client: MongoClient,
    database_name: str = MONGODB_DATABASE_NAME,
    listings_name: str = MONGODB_LISTINGS_COLLECTION,
    details_name: str = MONGODB_DETAILS_COLLECTION,
    state_name: str = MONGODB_STATE_COLLECTION,
) -> HarvestCollections:
    """
    Get the listings, details and state collections from the harvest database.

    Document structures:
        listings:      {"_id": "/ms/chuko/.../nc_12345/", "name": "...",
                        "price": "...", "sale_price_yen": 71000000,
                        "processed": false, ...}
        details:       {"価格": "7100万円", "images": [...],
                        "listing_id": "/ms/chuko/.../nc_12345/", ...}
        scraper_state: {"_id": "crawler", "last_completed_page": 4}

    Args:
        client: An active MongoDB client.
        database_name: Name of the harvest database.
        listings_name: Name of the listings collection.
        details_name: Name of the details collection.
        state_name: Name of the crawl state collection.

    Returns:
        HarvestCollections: Named tuple (listings, details, state).
    """
    database = client[database_name]
    return HarvestCollections(
        listings=database[listings_name],
        details=database[details_name],
        state=database[state_name],
    )


def ensure_indexes(collections: HarvestCollections) -> None:
    """
    Create the secondary indexes used by the detail enrichment queries.

    Listing uniqueness comes from the listing key stored as _id, which
    MongoDB always indexes uniquely; the indexes created here only speed up
    the unprocessed-listing selection and detail lookups by listing. Safe to
    call repeatedly.

    Args:
        collections: The harvest collections.
    """
    collections.listings.create_index(
        [("processed", pymongo.ASCENDING)], name="processed_idx"
    )
    collections.details.create_index(
        [("listing_id", pymongo.ASCENDING)], name="listing_id_idx"
    )
    logger.info("MongoDB indexes ensured")
