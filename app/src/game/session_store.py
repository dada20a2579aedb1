"""
Session store: CRUD over sessions and players.

Ids with the offline prefix live as whole snapshots in the device-local
store; everything else is a MongoDB row. Offline mutations rewrite the
snapshot, online mutations are targeted updates followed by a row-change
notification on the realtime hub.
"""

import logging
from enum import Enum
from typing import Dict, Iterable, List, Optional, Tuple

from pymongo.errors import PyMongoError

from src.database import session_repository as repo
from src.database.local_store import LocalStore
from src.game.constants import (
    KEY_OFFLINE_SESSION,
    MSG_SESSION_NOT_FOUND,
    TABLE_PLAYERS,
    TABLE_SESSIONS,
    PlayerRole,
    SessionStatus,
)
from src.game.errors import SessionNotFoundError, StoreError, ValidationError
from src.game.models import Player, Session, is_offline_session_id
from src.game.realtime import RealtimeHub

logger = logging.getLogger(__name__)

# Fields cleared by a reset so the same session can be replayed
GAME_FIELDS = (
    "card_id",
    "word_text",
    "clue_text",
    "first_speaker_player_id",
    "deceived_word_text",
    "deceived_clue_text",
)


def _sorted_players(players: Iterable[Player]) -> List[Player]:
    return sorted(
        players,
        key=lambda p: (p.turn_order is None, p.turn_order or 0),
    )


class SessionStore:
    """Routes session/player reads and writes to Mongo or local state."""

    def __init__(
        self, local_store: LocalStore, hub: Optional[RealtimeHub] = None
    ) -> None:
        self._local = local_store
        self._hub = hub

    # ── Offline snapshots ────────────────────────────────────────────────

    @staticmethod
    def _offline_key(session_id: str) -> str:
        return KEY_OFFLINE_SESSION.format(session_id=session_id)

    def _load_snapshot(self, session_id: str) -> Tuple[Session, List[Player]]:
        snapshot = self._local.get(self._offline_key(session_id))
        if not snapshot:
            raise SessionNotFoundError(MSG_SESSION_NOT_FOUND)
        session = Session(**snapshot["session"])
        players = [Player(**row) for row in snapshot.get("players", [])]
        return session, _sorted_players(players)

    def _save_snapshot(self, session: Session, players: List[Player]) -> None:
        self._local.set(
            self._offline_key(session.id),
            {
                "session": session.to_row(),
                "players": [player.to_row() for player in players],
            },
        )

    # ── Notifications ────────────────────────────────────────────────────

    def _notify(self, table: str, session_id: str, row: Dict) -> None:
        if self._hub is not None:
            self._hub.publish_row_change(table, session_id, row)

    # ── Reads ────────────────────────────────────────────────────────────

    def fetch(self, session_id: str) -> Tuple[Session, List[Player]]:
        """Load a session and its players ordered by turn order."""
        if is_offline_session_id(session_id):
            return self._load_snapshot(session_id)
        try:
            row = repo.get_session(session_id)
            if row is None:
                raise SessionNotFoundError(MSG_SESSION_NOT_FOUND)
            player_rows = repo.get_session_players(session_id)
        except PyMongoError as exc:
            raise StoreError(f"Error loading session: {exc}") from exc
        players = _sorted_players(Player(**p) for p in player_rows)
        return Session(**row), players

    def fetch_players(self, session_id: str) -> List[Player]:
        return self.fetch(session_id)[1]

    def find_by_join_code(self, join_code: str) -> Tuple[Session, List[Player]]:
        try:
            row = repo.get_session_by_join_code(join_code)
        except PyMongoError as exc:
            raise StoreError(f"Error looking up join code: {exc}") from exc
        if row is None:
            raise SessionNotFoundError(MSG_SESSION_NOT_FOUND)
        return self.fetch(row["id"])

    # ── Creation ─────────────────────────────────────────────────────────

    def create_session(
        self, session: Session, players: Iterable[Player] = ()
    ) -> Session:
        """Persist a new session (and any initial players)."""
        players = list(players)
        if session.is_offline:
            self._save_snapshot(session, players)
            logger.info(
                "Offline session %s stored locally with %d players",
                session.id, len(players),
            )
            return session
        try:
            repo.insert_session(session.to_row())
            for player in players:
                repo.insert_player(player.to_row())
        except PyMongoError as exc:
            raise StoreError(f"Error creating session: {exc}") from exc
        self._notify(TABLE_SESSIONS, session.id, session.to_row())
        return session

    def replace_game_fields(self, session: Session) -> Session:
        """
        Overwrite an existing row with a freshly created session's fields.

        The previous deal goes with it: every player is unassigned and
        unrevealed again before the new word lands.
        """
        self.clear_roles(session.id)
        fields = session.to_row()
        fields.pop("id", None)
        fields.pop("created_at", None)
        return self.update_session_fields(session.id, fields)

    def add_player(self, player: Player) -> Player:
        if is_offline_session_id(player.session_id):
            session, players = self._load_snapshot(player.session_id)
            players.append(player)
            self._save_snapshot(session, players)
            return player
        try:
            repo.insert_player(player.to_row())
        except PyMongoError as exc:
            raise StoreError(f"Error adding player: {exc}") from exc
        self._notify(TABLE_PLAYERS, player.session_id, player.to_row())
        return player

    def count_players(self, session_id: str) -> int:
        if is_offline_session_id(session_id):
            return len(self._load_snapshot(session_id)[1])
        try:
            return repo.count_session_players(session_id)
        except PyMongoError as exc:
            raise StoreError(f"Error counting players: {exc}") from exc

    # ── Session mutations ────────────────────────────────────────────────

    def update_session_fields(self, session_id: str, fields: Dict) -> Session:
        """Targeted session update; word and clue must change together."""
        if ("word_text" in fields) != ("clue_text" in fields):
            raise ValidationError("word_text and clue_text change together")

        if is_offline_session_id(session_id):
            session, players = self._load_snapshot(session_id)
            updated = Session(**{**session.to_row(), **_json_fields(fields)})
            self._save_snapshot(updated, players)
            return updated

        try:
            row = repo.update_session(session_id, _json_fields(fields))
        except PyMongoError as exc:
            raise StoreError(f"Error updating session: {exc}") from exc
        if row is None:
            raise SessionNotFoundError(MSG_SESSION_NOT_FOUND)
        self._notify(TABLE_SESSIONS, session_id, row)
        return Session(**row)

    def update_status(self, session_id: str, status: SessionStatus) -> Session:
        return self.update_session_fields(session_id, {"status": status})

    # ── Player mutations ─────────────────────────────────────────────────

    def update_player(
        self, session_id: str, player_id: str, fields: Dict
    ) -> Player:
        fields = _json_fields(fields)
        if is_offline_session_id(session_id):
            session, players = self._load_snapshot(session_id)
            updated = None
            for index, player in enumerate(players):
                if player.id == player_id:
                    updated = Player(**{**player.to_row(), **fields})
                    players[index] = updated
            if updated is None:
                raise SessionNotFoundError(f"Player {player_id} not found")
            self._save_snapshot(session, players)
            return updated

        try:
            row = repo.update_player(player_id, fields)
        except PyMongoError as exc:
            raise StoreError(f"Error updating player: {exc}") from exc
        if row is None:
            raise SessionNotFoundError(f"Player {player_id} not found")
        self._notify(TABLE_PLAYERS, session_id, row)
        return Player(**row)

    def update_player_role(
        self,
        session_id: str,
        player_id: str,
        role: PlayerRole,
        turn_order: int,
    ) -> Player:
        """Store a dealt role with its turn order and clear the reveal flag."""
        return self.update_player(
            session_id,
            player_id,
            {"role": role, "turn_order": turn_order, "has_revealed": False},
        )

    def mark_revealed(self, session_id: str, player_id: str) -> Player:
        return self.update_player(session_id, player_id, {"has_revealed": True})

    def save_deal(
        self,
        session: Session,
        players: List[Player],
        session_fields: Dict,
    ) -> Tuple[Session, List[Player]]:
        """
        Persist a whole deal.

        Offline this is one snapshot write; online every player row is an
        independent update followed by the session update.
        """
        if session.is_offline:
            updated_session = Session(
                **{**session.to_row(), **_json_fields(session_fields)}
            )
            self._save_snapshot(updated_session, players)
            return updated_session, _sorted_players(players)

        saved = [
            self.update_player_role(
                session.id, player.id, player.role, player.turn_order
            )
            for player in players
        ]
        updated_session = self.update_session_fields(session.id, session_fields)
        return updated_session, _sorted_players(saved)

    # ── Reset / delete ───────────────────────────────────────────────────

    def clear_roles(self, session_id: str) -> None:
        """Every player back to unassigned with the reveal flag down."""
        if is_offline_session_id(session_id):
            session, players = self._load_snapshot(session_id)
            self._save_snapshot(
                session,
                [
                    p.model_copy(
                        update={
                            "role": PlayerRole.UNASSIGNED,
                            "has_revealed": False,
                        }
                    )
                    for p in players
                ],
            )
            return

        try:
            repo.update_session_players(
                session_id, {"role": None, "has_revealed": False}
            )
            player_rows = repo.get_session_players(session_id)
        except PyMongoError as exc:
            raise StoreError(f"Error resetting players: {exc}") from exc
        for row in player_rows:
            self._notify(TABLE_PLAYERS, session_id, row)

    def reset_session(self, session_id: str) -> Optional[Session]:
        """
        Clear all game-specific state.

        Offline sessions are deleted outright (returns None); online
        sessions go back to the lobby keeping their players.
        """
        if is_offline_session_id(session_id):
            self.delete(session_id)
            return None

        self.clear_roles(session_id)
        fields = {field: None for field in GAME_FIELDS}
        fields["status"] = SessionStatus.LOBBY
        return self.update_session_fields(session_id, fields)

    def delete(self, session_id: str) -> None:
        if is_offline_session_id(session_id):
            self._local.remove(self._offline_key(session_id))
            logger.info("Offline session %s removed", session_id)
            return
        try:
            repo.delete_session(session_id)
        except PyMongoError as exc:
            raise StoreError(f"Error deleting session: {exc}") from exc


def _json_fields(fields: Dict) -> Dict:
    """Store enum members as their plain string values."""
    return {
        key: value.value if isinstance(value, Enum) else value
        for key, value in fields.items()
    }
