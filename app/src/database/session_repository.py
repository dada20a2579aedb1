"""
Repository functions for Topo game sessions.

Covers both *game_sessions* and *session_players* collections. Errors from
pymongo propagate; the session store decides how to surface them.
"""

import logging
from datetime import datetime
from typing import Dict, List, Optional

from pymongo import ASCENDING, ReturnDocument

from configs.config import get_config
from src.database.connection import get_db

logger = logging.getLogger(__name__)

cfg = get_config()


def _strip_id(document: Optional[Dict]) -> Optional[Dict]:
    if document:
        document.pop("_id", None)
    return document


# ═══════════════════════════════════════════════════════════════════════════
#  GAME SESSION OPERATIONS
# ═══════════════════════════════════════════════════════════════════════════


def insert_session(session_document: Dict) -> Dict:
    """Insert a new game session document."""
    db = get_db()
    db[cfg.GAME_SESSIONS_COLLECTION].insert_one(dict(session_document))
    logger.info(
        "Game session %s created (status=%s)",
        session_document["id"], session_document.get("status"),
    )
    return session_document


def get_session(session_id: str) -> Optional[Dict]:
    """Retrieve a game session by its ID."""
    db = get_db()
    session = db[cfg.GAME_SESSIONS_COLLECTION].find_one({"id": session_id})
    if not session:
        logger.warning("Game session %s not found", session_id)
    return _strip_id(session)


def get_session_by_join_code(join_code: str) -> Optional[Dict]:
    """Retrieve the newest game session using a join code."""
    db = get_db()
    cursor = (
        db[cfg.GAME_SESSIONS_COLLECTION]
        .find({"join_code": join_code.upper()})
        .sort("created_at", -1)
        .limit(1)
    )
    sessions = list(cursor)
    return _strip_id(sessions[0]) if sessions else None


def update_session(session_id: str, update_data: Dict) -> Optional[Dict]:
    """Apply a partial update and return the updated session document."""
    db = get_db()
    update_data = {**update_data, "updated_at": datetime.utcnow().isoformat()}
    session = db[cfg.GAME_SESSIONS_COLLECTION].find_one_and_update(
        {"id": session_id},
        {"$set": update_data},
        return_document=ReturnDocument.AFTER,
    )
    if session is None:
        logger.warning("Game session %s update failed — no match", session_id)
        return None
    logger.debug("Game session %s updated with: %s", session_id, update_data)
    return _strip_id(session)


def delete_session(session_id: str) -> bool:
    """Delete a game session and its associated players."""
    db = get_db()
    db[cfg.SESSION_PLAYERS_COLLECTION].delete_many({"session_id": session_id})
    result = db[cfg.GAME_SESSIONS_COLLECTION].delete_one({"id": session_id})
    logger.info("Game session %s deleted", session_id)
    return result.deleted_count > 0


# ═══════════════════════════════════════════════════════════════════════════
#  SESSION PLAYER OPERATIONS
# ═══════════════════════════════════════════════════════════════════════════


def insert_player(player_document: Dict) -> Dict:
    """Insert a player document into the session_players collection."""
    db = get_db()
    db[cfg.SESSION_PLAYERS_COLLECTION].insert_one(dict(player_document))
    logger.info(
        "Player %s (%s) added to session %s",
        player_document["display_name"],
        player_document["id"],
        player_document["session_id"],
    )
    return player_document


def get_session_players(session_id: str) -> List[Dict]:
    """Return all players in a session ordered by turn order."""
    db = get_db()
    players = list(
        db[cfg.SESSION_PLAYERS_COLLECTION]
        .find({"session_id": session_id})
        .sort("turn_order", ASCENDING)
    )
    for player in players:
        player.pop("_id", None)
    return players


def count_session_players(session_id: str) -> int:
    db = get_db()
    return db[cfg.SESSION_PLAYERS_COLLECTION].count_documents(
        {"session_id": session_id}
    )


def update_player(player_id: str, update_data: Dict) -> Optional[Dict]:
    """Apply a partial update to one player and return the new document."""
    db = get_db()
    player = db[cfg.SESSION_PLAYERS_COLLECTION].find_one_and_update(
        {"id": player_id},
        {"$set": update_data},
        return_document=ReturnDocument.AFTER,
    )
    if player is None:
        logger.warning("Player %s update failed — no match", player_id)
    return _strip_id(player)


def update_session_players(session_id: str, update_data: Dict) -> int:
    """Apply the same partial update to every player of a session."""
    db = get_db()
    result = db[cfg.SESSION_PLAYERS_COLLECTION].update_many(
        {"session_id": session_id}, {"$set": update_data}
    )
    logger.debug(
        "Updated %d players of session %s with: %s",
        result.modified_count, session_id, update_data,
    )
    return result.modified_count
