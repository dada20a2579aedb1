"""
Recently used card ids, kept to avoid repeating words across games.
"""

from typing import List

from configs.config import get_config
from src.database.local_store import LocalStore
from src.game.constants import KEY_WORD_HISTORY

cfg = get_config()


class WordHistory:
    def __init__(self, local_store: LocalStore) -> None:
        self._store = local_store

    def get(self) -> List[str]:
        return list(self._store.get(KEY_WORD_HISTORY) or [])

    def add(self, card_id: str) -> None:
        """Push *card_id* to the front, keeping only the last N."""
        history = self.get()
        if not card_id or card_id in history:
            return
        history = [card_id, *history][: cfg.WORD_HISTORY_SIZE]
        self._store.set(KEY_WORD_HISTORY, history)
