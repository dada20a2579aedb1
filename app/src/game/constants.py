"""
Status, phase, role and message constants for the Topo game.
"""

from enum import Enum


class SessionStatus(str, Enum):
    """Persisted lifecycle stage (stored in session.status)."""

    LOBBY = "lobby"
    DEALING = "dealing"
    READY = "ready"
    FINISHED = "finished"
    CLOSED = "closed"


class GamePhase(str, Enum):
    """Displayed phase: persisted status plus the ephemeral discussion."""

    LOBBY = "lobby"
    DEALING = "dealing"
    READY = "ready"
    DISCUSSION = "discussion"
    FINISHED = "finished"
    CLOSED = "closed"


class PlayerRole(str, Enum):
    UNASSIGNED = "unassigned"
    CREW = "crew"
    TOPO = "topo"
    DECEIVED_TOPO = "deceived_topo"


class GameMode(str, Enum):
    SINGLE = "single"
    MULTI = "multi"


class GameVariant(str, Enum):
    CLASSIC = "classic"
    CAOS = "caos"
    MISTERIOSO = "misterioso"


class Gender(str, Enum):
    MALE = "male"
    FEMALE = "female"
    OTHER = "other"


# Sessions whose id carries this prefix never leave the device
OFFLINE_SESSION_PREFIX = "offline-"

# Master-category slugs accepted in place of pack ids
MASTER_CATEGORIES = frozenset({"general", "benicolet", "picantes"})

# Shown to deceived topos when no second card can be found
PLACEHOLDER_DECEIVED_WORD = "Sol"
PLACEHOLDER_DECEIVED_CLUE = "Astro"

# Shown to a topo when clues are disabled or the card has none
NO_CLUE_TEXT = "Sin pista"

# Realtime table names (row-change notifications)
TABLE_SESSIONS = "game_sessions"
TABLE_PLAYERS = "session_players"

# Row fields only the owning player may read; never sent to shared views
SECRET_ROW_FIELDS = {
    TABLE_SESSIONS: (
        "card_id",
        "word_text",
        "clue_text",
        "deceived_word_text",
        "deceived_clue_text",
    ),
    TABLE_PLAYERS: ("role",),
}

# Realtime broadcast events
EVENT_PHASE_CHANGE = "phase_change"
EVENT_PHASE_SYNC_REQUEST = "phase_sync_request"
EVENT_PHASE_SYNC_STATE = "phase_sync_state"

# Channel status reported to subscribers
CHANNEL_SUBSCRIBED = "SUBSCRIBED"
CHANNEL_CLOSED = "CLOSED"

# Local store keys
KEY_OFFLINE_CARDS = "topo_offline_cards"
KEY_OFFLINE_PACKS = "topo_offline_packs"
KEY_LAST_SYNC = "topo_last_sync"
KEY_GUEST_ID = "topo_guest_id"
KEY_WORD_HISTORY = "impostor:word_history"
KEY_OFFLINE_SESSION = "impostor:offline_session:{session_id}"
KEY_VARIANT = "impostor:variant:{session_id}"

# User-facing error messages
MSG_NO_CATEGORIES = "No categories selected"
MSG_NO_CONNECTION = "No connection and no offline data available"
MSG_NO_ACTIVE_WORDS = "No active words in the selected categories"
MSG_NO_WORD_ASSIGNED = "No word assigned, recreate the session"
MSG_DEALING_TIMEOUT = (
    "Timed out waiting for the word assignment, please retry"
)
MSG_NO_PLAYERS = "No players in this session"
MSG_SESSION_NOT_FOUND = "Game session not found"
MSG_NOT_HOST = "Only the host can do this"
MSG_NO_CHANNEL = "Realtime channel unavailable, check your connection"
