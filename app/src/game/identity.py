"""
Local identity of a device: registered user id or anonymous guest id.
"""

import logging
import uuid
from dataclasses import dataclass
from typing import Optional

from src.database.local_store import LocalStore
from src.game.constants import KEY_GUEST_ID
from src.game.models import Player, Session

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Identity:
    """Who this device acts as. Single place for the host check."""

    user_id: Optional[str] = None
    guest_id: Optional[str] = None

    @classmethod
    def load(
        cls, local_store: LocalStore, user_id: Optional[str] = None
    ) -> "Identity":
        """Build an identity, creating a persistent guest id on first use."""
        guest_id = local_store.get(KEY_GUEST_ID)
        if not guest_id:
            guest_id = str(uuid.uuid4())
            local_store.set(KEY_GUEST_ID, guest_id)
            logger.info("Created guest identity %s", guest_id)
        return cls(user_id=user_id, guest_id=guest_id)

    def is_host(self, session: Optional[Session]) -> bool:
        if session is None:
            return False
        if session.host_user_id:
            return bool(self.user_id) and session.host_user_id == self.user_id
        return bool(self.guest_id) and session.host_guest_id == self.guest_id

    def owns(self, player: Player) -> bool:
        if self.user_id and player.user_id == self.user_id:
            return True
        return bool(self.guest_id) and player.guest_id == self.guest_id

    def host_fields(self) -> dict:
        """Host columns for a session created by this identity."""
        if self.user_id:
            return {"host_user_id": self.user_id, "host_guest_id": None}
        return {"host_user_id": None, "host_guest_id": self.guest_id}

    @property
    def key(self) -> str:
        return self.user_id or self.guest_id or ""
