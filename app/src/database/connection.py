"""
MongoDB connection management.

Provides a singleton DatabaseManager and a convenience ``get_db()`` helper.
All collection indexes are configured on first connection.
"""

import logging
from typing import Optional

from pymongo import ASCENDING, MongoClient
from pymongo.database import Database
from pymongo.errors import ConnectionFailure

from configs.config import get_config

logger = logging.getLogger(__name__)

cfg = get_config()


class DatabaseManager:
    """Thread-safe singleton that owns the MongoClient."""

    _instance: Optional["DatabaseManager"] = None
    _client: Optional[MongoClient] = None
    _db: Optional[Database] = None

    def __new__(cls) -> "DatabaseManager":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self) -> None:
        if self._client is None:
            self.connect()

    # ── Connection ───────────────────────────────────────────────────────

    def connect(self) -> None:
        """Establish the MongoDB connection and create indexes."""
        try:
            client = MongoClient(cfg.MONGODB_URL, serverSelectionTimeoutMS=5000)
            client.admin.command("ping")
            self.attach(client)
            logger.info("Connected to MongoDB at %s", cfg.MONGODB_URL)
        except ConnectionFailure as exc:
            logger.error("Failed to connect to MongoDB: %s", exc)
            raise

    def attach(self, client: MongoClient) -> None:
        """Adopt an already-built client (real or in-memory)."""
        DatabaseManager._client = client
        DatabaseManager._db = client[cfg.DATABASE_NAME]
        self._ensure_indexes()
        logger.info("Database indexes created / verified")

    def get_db(self) -> Database:
        """Return the database handle, reconnecting if necessary."""
        if self._db is None:
            self.connect()
        return self._db

    def close(self) -> None:
        """Gracefully close the connection."""
        if self._client:
            self._client.close()
            DatabaseManager._client = None
            DatabaseManager._db = None
            logger.info("MongoDB connection closed")

    # ── Index helpers ────────────────────────────────────────────────────

    def _ensure_indexes(self) -> None:
        """Create all required indexes for the application."""
        db = self._db

        # Game session indexes
        db[cfg.GAME_SESSIONS_COLLECTION].create_index("id", unique=True)
        db[cfg.GAME_SESSIONS_COLLECTION].create_index("join_code")
        db[cfg.GAME_SESSIONS_COLLECTION].create_index("status")

        # Session player indexes
        db[cfg.SESSION_PLAYERS_COLLECTION].create_index("id", unique=True)
        db[cfg.SESSION_PLAYERS_COLLECTION].create_index(
            [("session_id", ASCENDING), ("turn_order", ASCENDING)]
        )

        # Card / pack indexes
        db[cfg.CARDS_COLLECTION].create_index("id", unique=True)
        db[cfg.CARDS_COLLECTION].create_index(
            [("pack_id", ASCENDING), ("is_active", ASCENDING)]
        )
        db[cfg.PACKS_COLLECTION].create_index("id", unique=True)
        db[cfg.PACKS_COLLECTION].create_index("master_category")


# ── Convenience function ─────────────────────────────────────────────────


def get_db() -> Database:
    """Shortcut to obtain the database handle."""
    return DatabaseManager().get_db()
