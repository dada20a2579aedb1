"""
Random card selection against the remote store.

Pack id lists can be arbitrarily long, so instead of loading every candidate
the ids are shuffled and walked in fixed-size chunks. Each chunk is counted,
a uniform random offset is drawn inside it and exactly one row is fetched.
The first chunk that yields a card wins: uniform within that chunk, not
across chunks.
"""

import logging
import random
from typing import Iterable, List, Optional

from pymongo.errors import PyMongoError

from configs.config import get_config
from src.database.card_repository import (
    count_active_cards,
    fetch_card_at_offset,
    get_pack_ids_for_categories,
    is_active_card_in_packs,
)
from src.game.constants import MASTER_CATEGORIES
from src.game.errors import StoreError
from src.game.models import Card

logger = logging.getLogger(__name__)

cfg = get_config()


def resolve_remote_pack_ids(selected_ids: Iterable[str]) -> List[str]:
    """Expand master-category slugs to pack ids (all-or-nothing)."""
    selected = list(dict.fromkeys(selected_ids))
    if selected and set(selected) <= MASTER_CATEGORIES:
        return get_pack_ids_for_categories(selected)
    return selected


def pick_random_card(
    selected_ids: Iterable[str],
    exclude_card_id: Optional[str] = None,
    rng=random,
    chunk_size: Optional[int] = None,
    max_attempts: Optional[int] = None,
) -> Optional[Card]:
    """
    Pick one random active card from the selected packs.

    Returns None when no chunk holds an active card. Raises StoreError when
    nothing was found and at least one query failed, so an outage is not
    mistaken for an empty catalogue.
    """
    chunk_size = chunk_size or cfg.CARD_PICK_CHUNK_SIZE
    max_attempts = max_attempts or cfg.CARD_PICK_MAX_ATTEMPTS

    try:
        pack_ids = resolve_remote_pack_ids(selected_ids)
    except PyMongoError as exc:
        raise StoreError(f"Could not resolve categories: {exc}") from exc

    shuffled = list(pack_ids)
    rng.shuffle(shuffled)
    failures = 0

    for start in range(0, len(shuffled), chunk_size):
        chunk = shuffled[start:start + chunk_size]
        try:
            total = count_active_cards(chunk)
            excluded = None
            if (
                exclude_card_id
                and total > 1
                and is_active_card_in_packs(exclude_card_id, chunk)
            ):
                excluded = exclude_card_id
        except PyMongoError as exc:
            failures += 1
            logger.warning("Counting cards for chunk failed: %s", exc)
            continue

        effective = total - 1 if excluded else total
        if effective <= 0:
            continue

        for attempt in range(1, max_attempts + 1):
            offset = rng.randrange(effective)
            try:
                row = fetch_card_at_offset(chunk, offset, excluded)
            except PyMongoError as exc:
                failures += 1
                logger.warning(
                    "Card fetch at offset %d failed (attempt %d/%d): %s",
                    offset, attempt, max_attempts, exc,
                )
                continue
            if row:
                logger.info(
                    "Picked card %s (offset %d of %d in chunk of %d packs)",
                    row["id"], offset, effective, len(chunk),
                )
                return Card(**row)
            logger.warning(
                "No card at offset %d (attempt %d/%d)",
                offset, attempt, max_attempts,
            )

    if failures:
        raise StoreError(
            f"Card selection failed after {failures} store errors"
        )
    return None
