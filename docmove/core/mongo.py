"""
MongoDB client configuration.

This module centralizes MongoDB connection setup for the migration engine.
"""

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase

from docmove.core.config import settings


def create_client(uri: str | None = None) -> AsyncIOMotorClient:
    """
    Create a MongoDB client with the configured pool settings.

    Args:
        uri: Connection string, defaults to ``settings.mongodb``.

    Returns:
        A new motor client.
    """
    return AsyncIOMotorClient(
        uri or settings.mongodb,
        maxPoolSize=settings.mongo_max_pool_size,
        connectTimeoutMS=settings.mongo_connect_timeout_ms,
        serverSelectionTimeoutMS=settings.mongo_server_selection_timeout_ms,
        socketTimeoutMS=settings.mongo_socket_timeout_ms,
    )


def get_database(
    name: str | None = None, client: AsyncIOMotorClient | None = None
) -> AsyncIOMotorDatabase:
    """
    Get the database a migration runs against.

    Args:
        name: Database name, defaults to ``settings.mongodb_database``.
        client: Existing client, a new one is created when omitted.

    Returns:
        The MongoDB database instance.
    """
    client = client or create_client()
    return client[name or settings.mongodb_database]
