"""
Offline-first card cache.

Keeps a point-in-time snapshot of every active card and pack in the local
store so a card can be drawn with no network round-trip. Every sync fully
overwrites the snapshot; the last sync wins.
"""

import logging
import random
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional

from configs.config import get_config
from src.database.card_repository import fetch_active_cards, fetch_active_packs
from src.database.local_store import LocalStore
from src.game.constants import (
    KEY_LAST_SYNC,
    KEY_OFFLINE_CARDS,
    KEY_OFFLINE_PACKS,
    MASTER_CATEGORIES,
)
from src.game.models import Card, Pack

logger = logging.getLogger(__name__)

cfg = get_config()


class CardCache:
    """Local snapshot of cards/packs serving random-card queries."""

    def __init__(
        self,
        local_store: LocalStore,
        fetch_cards: Callable[[], List[Dict]] = fetch_active_cards,
        fetch_packs: Callable[[], List[Dict]] = fetch_active_packs,
        rng=random,
    ) -> None:
        self._store = local_store
        self._fetch_cards = fetch_cards
        self._fetch_packs = fetch_packs
        self._rng = rng

    # ── Sync ─────────────────────────────────────────────────────────────

    def sync(self) -> bool:
        """
        Pull the full active card and pack sets into the local store.

        Cards and packs are written independently: when the pack fetch
        fails after the cards were stored, the new cards are kept.
        """
        logger.info("Starting card cache sync...")
        try:
            cards = [Card(**row).model_dump() for row in self._fetch_cards()]
        except Exception as exc:
            logger.error("Card cache sync failed fetching cards: %s", exc)
            return False
        self._store.set(KEY_OFFLINE_CARDS, cards)

        try:
            packs = [Pack(**row).model_dump() for row in self._fetch_packs()]
        except Exception as exc:
            logger.error("Card cache sync failed fetching packs: %s", exc)
            return False
        self._store.set(KEY_OFFLINE_PACKS, packs)

        self._store.set(KEY_LAST_SYNC, datetime.utcnow().isoformat())
        logger.info(
            "Card cache sync complete: %d cards, %d packs",
            len(cards), len(packs),
        )
        return True

    def needs_sync(self, now: Optional[datetime] = None) -> bool:
        """True when the cache is empty or older than the max age."""
        if not self.has_data():
            return True
        last_sync = self.last_sync
        if last_sync is None:
            return True
        age = (now or datetime.utcnow()) - last_sync
        return age.total_seconds() > cfg.CARD_CACHE_MAX_AGE_SECONDS

    def maybe_sync(self, is_online: bool) -> bool:
        """Sync in the background policy sense: only online and stale."""
        if not is_online or not self.needs_sync():
            return False
        return self.sync()

    # ── Reads ────────────────────────────────────────────────────────────

    @property
    def last_sync(self) -> Optional[datetime]:
        stored = self._store.get(KEY_LAST_SYNC)
        return datetime.fromisoformat(stored) if stored else None

    @property
    def card_count(self) -> int:
        return len(self._store.get(KEY_OFFLINE_CARDS) or [])

    def get_cards(self) -> List[Card]:
        return [Card(**row) for row in self._store.get(KEY_OFFLINE_CARDS) or []]

    def get_packs(self) -> List[Pack]:
        return [Pack(**row) for row in self._store.get(KEY_OFFLINE_PACKS) or []]

    def has_data(self) -> bool:
        return self.card_count > 0

    def resolve_pack_ids(self, selected_filter_ids: Iterable[str]) -> set:
        """
        Expand master-category slugs to pack ids.

        The filter is treated as categories only when every id is a known
        category slug; otherwise the ids are used as raw pack ids.
        """
        selected = set(selected_filter_ids)
        packs = self.get_packs()
        known_categories = set(MASTER_CATEGORIES)
        known_categories.update(
            pack.master_category for pack in packs if pack.master_category
        )
        if selected and selected <= known_categories:
            return {
                pack.id for pack in packs if pack.master_category in selected
            }
        return selected

    def get_random_card(
        self,
        selected_filter_ids: Iterable[str],
        exclude_ids: Optional[Iterable[str]] = None,
    ) -> Optional[Card]:
        """
        Draw a uniformly random card from the selected packs.

        Exclusions are dropped when they would leave nothing to draw, so
        this returns None only when the selected packs hold no cards.
        """
        pack_ids = self.resolve_pack_ids(selected_filter_ids)
        candidates = [
            card for card in self.get_cards() if card.pack_id in pack_ids
        ]
        excluded = {card_id for card_id in exclude_ids or () if card_id}

        logger.debug(
            "get_random_card: %d packs, %d candidates, %d excluded",
            len(pack_ids), len(candidates), len(excluded),
        )
        if not candidates:
            logger.warning("No offline cards available for %s", pack_ids)
            return None

        remaining = [card for card in candidates if card.id not in excluded]
        if remaining:
            candidates = remaining

        selected = self._rng.choice(candidates)
        pack = next(
            (p for p in self.get_packs() if p.id == selected.pack_id), None
        )
        selected.master_category = pack.master_category if pack else None
        logger.info(
            "Selected offline card %s from %d candidates",
            selected.id, len(candidates),
        )
        return selected
