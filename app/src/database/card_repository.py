"""
Repository functions for the card catalogue.

Covers the *cards* and *packs* collections: full snapshots for the offline
cache, count/offset queries for chunked random selection, and bulk upsert
for importing content.
"""

import logging
from typing import Dict, Iterable, List, Optional

from pymongo import ASCENDING, UpdateOne

from configs.config import get_config
from src.database.connection import get_db

logger = logging.getLogger(__name__)

cfg = get_config()

# Rows without an explicit is_active flag count as active
_ACTIVE = {"is_active": {"$ne": False}}


def _active_in_packs(pack_ids: List[str]) -> Dict:
    return {**_ACTIVE, "pack_id": {"$in": list(pack_ids)}}


# ── Snapshots ────────────────────────────────────────────────────────────


def fetch_active_cards() -> List[Dict]:
    """Return every active card (id, word, clue, pack_id)."""
    db = get_db()
    return list(
        db[cfg.CARDS_COLLECTION].find(
            _ACTIVE, {"_id": 0, "id": 1, "word": 1, "clue": 1, "pack_id": 1}
        )
    )


def fetch_active_packs() -> List[Dict]:
    """Return every active pack (id, name, master_category)."""
    db = get_db()
    return list(
        db[cfg.PACKS_COLLECTION].find(
            _ACTIVE, {"_id": 0, "id": 1, "name": 1, "master_category": 1}
        )
    )


def get_pack_ids_for_categories(categories: Iterable[str]) -> List[str]:
    """Return ids of active packs belonging to the given master categories."""
    db = get_db()
    packs = db[cfg.PACKS_COLLECTION].find(
        {**_ACTIVE, "master_category": {"$in": list(categories)}},
        {"_id": 0, "id": 1},
    )
    return [pack["id"] for pack in packs]


# ── Chunked random selection helpers ─────────────────────────────────────


def count_active_cards(pack_ids: List[str]) -> int:
    """Count-only query: active cards in the given packs."""
    db = get_db()
    return db[cfg.CARDS_COLLECTION].count_documents(_active_in_packs(pack_ids))


def is_active_card_in_packs(card_id: str, pack_ids: List[str]) -> bool:
    db = get_db()
    query = {**_active_in_packs(pack_ids), "id": card_id}
    return db[cfg.CARDS_COLLECTION].find_one(query, {"_id": 1}) is not None


def fetch_card_at_offset(
    pack_ids: List[str],
    offset: int,
    exclude_card_id: Optional[str] = None,
) -> Optional[Dict]:
    """Fetch exactly one active card at *offset* in a stable ordering."""
    db = get_db()
    query = _active_in_packs(pack_ids)
    if exclude_card_id:
        query["id"] = {"$ne": exclude_card_id}
    rows = list(
        db[cfg.CARDS_COLLECTION]
        .find(query, {"_id": 0, "id": 1, "word": 1, "clue": 1, "pack_id": 1})
        .sort("id", ASCENDING)
        .skip(offset)
        .limit(1)
    )
    return rows[0] if rows else None


# ── Bulk import ──────────────────────────────────────────────────────────


def upsert_packs(packs: List[Dict]) -> int:
    """Insert or replace packs keyed by id. Returns affected count."""
    return _bulk_upsert(cfg.PACKS_COLLECTION, packs)


def upsert_cards(cards: List[Dict]) -> int:
    """Insert or replace cards keyed by id. Returns affected count."""
    return _bulk_upsert(cfg.CARDS_COLLECTION, cards)


def _bulk_upsert(collection_name: str, rows: List[Dict]) -> int:
    if not rows:
        return 0
    db = get_db()
    operations = [
        UpdateOne({"id": row["id"]}, {"$set": row}, upsert=True)
        for row in rows
    ]
    result = db[collection_name].bulk_write(operations, ordered=False)
    affected = result.upserted_count + result.modified_count
    logger.info(
        "Bulk upsert into %s: %d rows sent, %d affected",
        collection_name, len(rows), affected,
    )
    return affected
