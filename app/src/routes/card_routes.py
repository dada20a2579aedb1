"""
Card catalogue API routes.

Endpoints:
    GET  /api/cards/snapshot — every active card and pack for offline play
    POST /api/cards/import   — bulk upsert packs and cards (admin only)
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, Field

from commons import limiter
from security import require_admin_key, safe_error_response
from src.database.card_repository import upsert_cards, upsert_packs
from src.game.constants import MASTER_CATEGORIES, MSG_NO_CONNECTION
from src.game.runtime import get_runtime

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["cards"])


# ── Pydantic request bodies ─────────────────────────────────────────────


class PackIn(BaseModel):
    id: str = Field(..., min_length=1, max_length=64)
    name: str = Field(..., min_length=1, max_length=100)
    master_category: Optional[str] = Field(default=None, max_length=30)
    is_active: bool = True


class CardIn(BaseModel):
    id: str = Field(..., min_length=1, max_length=64)
    word: str = Field(..., min_length=1, max_length=100)
    clue: str = Field(default="", max_length=200)
    pack_id: str = Field(..., min_length=1, max_length=64)
    is_active: bool = True


class ImportRequest(BaseModel):
    packs: List[PackIn] = Field(default_factory=list, max_length=1000)
    cards: List[CardIn] = Field(default_factory=list, max_length=20000)


# ── Endpoints ────────────────────────────────────────────────────────────


@router.get("/cards/snapshot")
@limiter.limit("30/minute")
async def card_snapshot(request: Request) -> dict:
    """Full active catalogue, refreshed when the server copy is stale."""
    runtime = get_runtime()
    try:
        runtime.cache.maybe_sync(runtime.connectivity.is_online)
        if not runtime.cache.has_data():
            raise HTTPException(status_code=503, detail=MSG_NO_CONNECTION)
        last_sync = runtime.cache.last_sync
        return {
            "success": True,
            "cards": [card.model_dump() for card in runtime.cache.get_cards()],
            "packs": [pack.model_dump() for pack in runtime.cache.get_packs()],
            "master_categories": sorted(MASTER_CATEGORIES),
            "last_sync": last_sync.isoformat() if last_sync else None,
        }
    except HTTPException:
        raise
    except Exception as exc:
        safe_error_response(exc, context="card_snapshot")


@router.post("/cards/import")
@limiter.limit("5/minute")
async def import_cards(
    request: Request, body: ImportRequest, _=Depends(require_admin_key)
) -> dict:
    """Upsert packs and cards by id, then refresh the server cache."""
    try:
        packs = upsert_packs([pack.model_dump() for pack in body.packs])
        cards = upsert_cards([card.model_dump() for card in body.cards])
        synced = get_runtime().cache.sync()
        logger.info("Imported %d packs and %d cards", packs, cards)
        return {
            "success": True,
            "packs_upserted": packs,
            "cards_upserted": cards,
            "cache_synced": synced,
        }
    except Exception as exc:
        safe_error_response(exc, context="import_cards")
