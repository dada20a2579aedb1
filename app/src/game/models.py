"""
Pydantic models for sessions, players and cached cards.

Rows are stored as plain dicts (MongoDB documents or local JSON snapshots);
these models validate them on the way in and dump them on the way out.
"""

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from src.game.constants import (
    OFFLINE_SESSION_PREFIX,
    GameMode,
    GameVariant,
    Gender,
    PlayerRole,
    SessionStatus,
)


def is_offline_session_id(session_id: Optional[str]) -> bool:
    """True for ids of sessions that only exist in local state."""
    return bool(session_id) and session_id.startswith(OFFLINE_SESSION_PREFIX)


class Card(BaseModel):
    id: str
    word: str
    clue: str = ""
    pack_id: str
    master_category: Optional[str] = None

    @field_validator("clue", mode="before")
    @classmethod
    def _none_clue_is_empty(cls, value):
        return "" if value is None else value


class Pack(BaseModel):
    id: str
    name: str
    master_category: Optional[str] = None


class Session(BaseModel):
    """One game instance with a single secret word and a fixed player set."""

    id: str
    host_user_id: Optional[str] = None
    host_guest_id: Optional[str] = None
    mode: GameMode = GameMode.SINGLE
    join_code: Optional[str] = None
    status: SessionStatus = SessionStatus.LOBBY
    topo_count: int = Field(default=1, ge=1)
    max_players: Optional[int] = None
    selected_pack_ids: List[str] = Field(min_length=1)
    variant: GameVariant = GameVariant.CLASSIC
    clues_enabled: bool = True
    card_id: Optional[str] = None
    word_text: Optional[str] = None
    clue_text: Optional[str] = None
    first_speaker_player_id: Optional[str] = None
    deceived_word_text: Optional[str] = None
    deceived_clue_text: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    @model_validator(mode="after")
    def _check_invariants(self) -> "Session":
        if bool(self.host_user_id) == bool(self.host_guest_id):
            raise ValueError(
                "exactly one of host_user_id / host_guest_id must be set"
            )
        if (self.word_text is None) != (self.clue_text is None):
            raise ValueError("word_text and clue_text must be set together")
        return self

    @property
    def is_offline(self) -> bool:
        return is_offline_session_id(self.id)

    @property
    def has_word(self) -> bool:
        return self.word_text is not None and self.clue_text is not None

    def to_row(self) -> Dict:
        return self.model_dump(mode="json")


class Player(BaseModel):
    id: str
    session_id: str
    user_id: Optional[str] = None
    guest_id: Optional[str] = None
    display_name: str
    gender: Gender = Gender.OTHER
    avatar_key: Optional[str] = None
    photo_url: Optional[str] = None
    role: PlayerRole = PlayerRole.UNASSIGNED
    has_revealed: bool = False
    turn_order: Optional[int] = None

    @field_validator("role", mode="before")
    @classmethod
    def _null_role_is_unassigned(cls, value):
        return PlayerRole.UNASSIGNED if value is None else value

    @model_validator(mode="after")
    def _check_owner(self) -> "Player":
        if not self.user_id and not self.guest_id:
            raise ValueError("a player needs a user_id or a guest_id")
        return self

    @property
    def is_topo(self) -> bool:
        return self.role in (PlayerRole.TOPO, PlayerRole.DECEIVED_TOPO)

    def to_row(self) -> Dict:
        row = self.model_dump(mode="json")
        if self.role is PlayerRole.UNASSIGNED:
            row["role"] = None
        return row


class PlayerCard(BaseModel):
    """What a single player is shown when revealing their card."""

    player_id: str
    role: PlayerRole
    word: Optional[str] = None
    clue: Optional[str] = None
    is_topo: bool = False
