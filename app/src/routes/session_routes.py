"""
Topo game session API routes.

Endpoints:
    POST /api/sessions                                  — create session
    GET  /api/sessions/{session_id}                     — session view
    POST /api/sessions/join/{join_code}                 — join by code
    POST /api/sessions/{session_id}/players             — add player
    POST /api/sessions/{session_id}/deal                — deal roles
    POST /api/sessions/{session_id}/players/{pid}/reveal — mark revealed
    GET  /api/sessions/{session_id}/players/{pid}/card  — player's card
    POST /api/sessions/{session_id}/discussion          — start discussion
    POST /api/sessions/{session_id}/finish              — finish game
    POST /api/sessions/{session_id}/reset               — reset game
    POST /api/sessions/{session_id}/close               — close lobby

Callers identify themselves with an ``X-User-ID`` or ``X-Guest-ID`` header.
"""

import logging
import re
from typing import List, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Request, Response
from pydantic import BaseModel, Field

from commons import limiter
from configs.config import get_config
from security import (
    safe_error_response,
    validate_join_code,
    validate_player_id,
    validate_session_id,
)
from src.game.constants import (
    MSG_DEALING_TIMEOUT,
    MSG_NO_CHANNEL,
    MSG_NO_CONNECTION,
    MSG_NOT_HOST,
    MSG_SESSION_NOT_FOUND,
    SECRET_ROW_FIELDS,
    TABLE_PLAYERS,
    TABLE_SESSIONS,
    GameMode,
    GameVariant,
    Gender,
)
from src.game.errors import GameError
from src.game.identity import Identity
from src.game.orchestrator import SessionOrchestrator
from src.game.runtime import get_runtime

logger = logging.getLogger(__name__)

cfg = get_config()

router = APIRouter(prefix="/api", tags=["sessions"])

IDENTITY_PATTERN = re.compile(r"^[A-Za-z0-9_\-]{1,64}$")

_ERROR_STATUS = {
    MSG_SESSION_NOT_FOUND: 404,
    MSG_NOT_HOST: 403,
    MSG_NO_CONNECTION: 503,
    MSG_NO_CHANNEL: 503,
    MSG_DEALING_TIMEOUT: 504,
}


# ── Pydantic request bodies ─────────────────────────────────────────────


class PlayerSpec(BaseModel):
    display_name: str = Field(..., min_length=1, max_length=30)
    gender: Gender = Gender.OTHER
    avatar_key: Optional[str] = Field(default=None, max_length=50)


class CreateSessionRequest(BaseModel):
    topo_count: int = Field(default=1, ge=1, le=cfg.MAX_TOPOS)
    selected_pack_ids: List[str] = Field(..., max_length=200)
    exclude_card_id: Optional[str] = Field(default=None, max_length=64)
    clues_enabled: bool = True
    mode: GameMode = GameMode.SINGLE
    variant: GameVariant = GameVariant.CLASSIC
    players: List[PlayerSpec] = Field(
        default_factory=list, max_length=cfg.MAX_PLAYERS
    )
    max_players: Optional[int] = Field(
        default=None, ge=cfg.MIN_PLAYERS, le=cfg.MAX_PLAYERS
    )
    session_id: Optional[str] = Field(
        default=None, description="Replay an existing session with a new card"
    )


# ── Helpers ──────────────────────────────────────────────────────────────


def caller_identity(
    x_user_id: Optional[str] = Header(default=None),
    x_guest_id: Optional[str] = Header(default=None),
) -> Identity:
    """Dependency resolving the caller from the identity headers."""
    for value in (x_user_id, x_guest_id):
        if value is not None and not IDENTITY_PATTERN.match(value):
            raise HTTPException(status_code=400, detail="Invalid identity")
    if not x_user_id and not x_guest_id:
        raise HTTPException(
            status_code=400, detail="X-User-ID or X-Guest-ID header required"
        )
    return Identity(user_id=x_user_id, guest_id=x_guest_id)


def _raise_for(orchestrator: SessionOrchestrator, fallback: str) -> None:
    message = orchestrator.error or fallback
    raise HTTPException(
        status_code=_ERROR_STATUS.get(message, 400), detail=message
    )


def _load(session_id: str, identity: Identity) -> SessionOrchestrator:
    """The caller's orchestrator for *session_id*, loaded."""
    orchestrator = get_runtime().orchestrator(session_id, identity)
    if orchestrator.session is None and not orchestrator.load(session_id):
        _raise_for(orchestrator, MSG_SESSION_NOT_FOUND)
    return orchestrator


def _session_view(orchestrator: SessionOrchestrator) -> dict:
    """Session state safe to show every participant."""
    session = orchestrator.session.to_row()
    for field in SECRET_ROW_FIELDS[TABLE_SESSIONS]:
        session.pop(field, None)
    session["has_word"] = orchestrator.session.has_word
    players = []
    for player in orchestrator.players:
        row = player.to_row()
        for field in SECRET_ROW_FIELDS[TABLE_PLAYERS]:
            row.pop(field, None)
        players.append(row)
    return {
        "success": True,
        "session": session,
        "players": players,
        "phase": orchestrator.phase.value,
        "is_host": orchestrator.is_host,
        "is_ready_for_dealing": orchestrator.is_ready_for_dealing,
        "waiting_for_assignment": orchestrator.waiting_for_assignment,
    }


# ── Endpoints ────────────────────────────────────────────────────────────


@router.post("/sessions")
@limiter.limit("10/minute")
async def create_session(
    request: Request,
    body: CreateSessionRequest,
    identity: Identity = Depends(caller_identity),
) -> dict:
    """Create a session with its card already chosen (or replay one)."""
    runtime = get_runtime()
    if body.session_id is not None:
        validate_session_id(body.session_id)
    try:
        orchestrator = (
            _load(body.session_id, identity)
            if body.session_id
            else runtime.orchestrator(None, identity)
        )
        if body.session_id and not orchestrator.is_host:
            raise HTTPException(status_code=403, detail=MSG_NOT_HOST)
        session = orchestrator.create_session(
            topo_count=body.topo_count,
            selected_pack_ids=body.selected_pack_ids,
            exclude_card_id=body.exclude_card_id,
            clues_enabled=body.clues_enabled,
            mode=body.mode,
            variant=body.variant,
            players=[player.model_dump() for player in body.players],
            session_id=body.session_id,
            max_players=body.max_players,
        )
        if session is None:
            _raise_for(orchestrator, "Failed to create session")
        runtime.register(orchestrator)
        logger.info("Session %s created via API", session.id)
        return _session_view(orchestrator)
    except HTTPException:
        raise
    except Exception as exc:
        safe_error_response(exc, context="create_session")


@router.get("/sessions/{session_id}")
@limiter.limit("200/minute")
async def get_session(
    request: Request,
    session_id: str,
    identity: Identity = Depends(caller_identity),
) -> dict:
    """Shared view of a session; roles and words are never included."""
    validate_session_id(session_id)
    try:
        return _session_view(_load(session_id, identity))
    except HTTPException:
        raise
    except Exception as exc:
        safe_error_response(exc, context="get_session")


@router.post("/sessions/join/{join_code}")
@limiter.limit("25/minute")
async def join_session(
    request: Request,
    join_code: str,
    body: PlayerSpec,
    identity: Identity = Depends(caller_identity),
) -> dict:
    """Join a multi-device session by its code."""
    code = validate_join_code(join_code)
    runtime = get_runtime()
    try:
        try:
            session, _ = runtime.store.find_by_join_code(code)
        except GameError as exc:
            raise HTTPException(
                status_code=_ERROR_STATUS.get(str(exc), 400), detail=str(exc)
            )
        orchestrator = runtime.orchestrator(session.id, identity)
        player = orchestrator.join_session(
            code,
            body.display_name,
            gender=body.gender,
            avatar_key=body.avatar_key,
        )
        if player is None:
            _raise_for(orchestrator, "Failed to join game")
        logger.info("Player %s joined session %s", player.id, session.id)
        return {**_session_view(orchestrator), "player_id": player.id}
    except HTTPException:
        raise
    except Exception as exc:
        safe_error_response(exc, context="join_session")


@router.post("/sessions/{session_id}/players")
@limiter.limit("60/minute")
async def add_player(
    request: Request,
    session_id: str,
    body: PlayerSpec,
    identity: Identity = Depends(caller_identity),
) -> dict:
    """Host adds a player on a shared device."""
    validate_session_id(session_id)
    try:
        orchestrator = _load(session_id, identity)
        if not orchestrator.is_host:
            raise HTTPException(status_code=403, detail=MSG_NOT_HOST)
        player = orchestrator.add_player(
            body.display_name, gender=body.gender, avatar_key=body.avatar_key
        )
        if player is None:
            _raise_for(orchestrator, "Failed to add player")
        return {**_session_view(orchestrator), "player_id": player.id}
    except HTTPException:
        raise
    except Exception as exc:
        safe_error_response(exc, context="add_player")


@router.post("/sessions/{session_id}/deal")
@limiter.limit("10/minute")
async def deal(
    request: Request,
    response: Response,
    session_id: str,
    identity: Identity = Depends(caller_identity),
) -> dict:
    """Assign roles; 202 while still waiting for the word."""
    validate_session_id(session_id)
    try:
        orchestrator = _load(session_id, identity)
        if not orchestrator.is_host:
            raise HTTPException(status_code=403, detail=MSG_NOT_HOST)
        if orchestrator.start_dealing():
            logger.info("Session %s dealt", session_id)
            return _session_view(orchestrator)
        if orchestrator.waiting_for_assignment:
            response.status_code = 202
            return {**_session_view(orchestrator), "success": False,
                    "message": orchestrator.error}
        _raise_for(orchestrator, "Failed to deal roles")
    except HTTPException:
        raise
    except Exception as exc:
        safe_error_response(exc, context="deal")


@router.post("/sessions/{session_id}/players/{player_id}/reveal")
@limiter.limit("120/minute")
async def reveal(
    request: Request,
    session_id: str,
    player_id: str,
    identity: Identity = Depends(caller_identity),
) -> dict:
    validate_session_id(session_id)
    validate_player_id(player_id)
    try:
        orchestrator = _load(session_id, identity)
        _check_card_access(orchestrator, player_id, identity)
        if not orchestrator.mark_player_revealed(player_id):
            _raise_for(orchestrator, "Failed to mark reveal")
        return {
            "success": True,
            "player_id": player_id,
            "all_revealed": orchestrator.all_revealed,
        }
    except HTTPException:
        raise
    except Exception as exc:
        safe_error_response(exc, context="reveal")


@router.get("/sessions/{session_id}/players/{player_id}/card")
@limiter.limit("120/minute")
async def player_card(
    request: Request,
    session_id: str,
    player_id: str,
    identity: Identity = Depends(caller_identity),
) -> dict:
    """What the player sees when revealing their card."""
    validate_session_id(session_id)
    validate_player_id(player_id)
    try:
        orchestrator = _load(session_id, identity)
        _check_card_access(orchestrator, player_id, identity)
        card = orchestrator.card_for_player(player_id)
        if card is None:
            raise HTTPException(
                status_code=404, detail="No card dealt for this player yet"
            )
        return {"success": True, "card": card.model_dump(mode="json")}
    except HTTPException:
        raise
    except Exception as exc:
        safe_error_response(exc, context="player_card")


def _check_card_access(
    orchestrator: SessionOrchestrator, player_id: str, identity: Identity
) -> None:
    """Own card only; on a single shared device the host holds every card."""
    player = next(
        (p for p in orchestrator.players if p.id == player_id), None
    )
    if player is None:
        raise HTTPException(status_code=404, detail="Player not found")
    if identity.owns(player):
        return
    if orchestrator.session.mode == GameMode.SINGLE and orchestrator.is_host:
        return
    raise HTTPException(status_code=403, detail="Not your card")


@router.post("/sessions/{session_id}/discussion")
@limiter.limit("10/minute")
async def start_discussion(
    request: Request,
    session_id: str,
    identity: Identity = Depends(caller_identity),
) -> dict:
    validate_session_id(session_id)
    try:
        orchestrator = _load(session_id, identity)
        if not orchestrator.continue_to_discussion():
            _raise_for(orchestrator, "Failed to start discussion")
        first = orchestrator.first_speaker()
        return {
            **_session_view(orchestrator),
            "first_speaker_player_id": first.id if first else None,
        }
    except HTTPException:
        raise
    except Exception as exc:
        safe_error_response(exc, context="start_discussion")


@router.post("/sessions/{session_id}/finish")
@limiter.limit("10/minute")
async def finish(
    request: Request,
    session_id: str,
    identity: Identity = Depends(caller_identity),
) -> dict:
    validate_session_id(session_id)
    try:
        orchestrator = _load(session_id, identity)
        if not orchestrator.is_host:
            raise HTTPException(status_code=403, detail=MSG_NOT_HOST)
        if not orchestrator.finish_game():
            _raise_for(orchestrator, "Failed to finish game")
        view = _session_view(orchestrator)
        # a replay or reset reloads it on demand
        get_runtime().drop_session(session_id)
        return view
    except HTTPException:
        raise
    except Exception as exc:
        safe_error_response(exc, context="finish")


@router.post("/sessions/{session_id}/reset")
@limiter.limit("10/minute")
async def reset(
    request: Request,
    session_id: str,
    identity: Identity = Depends(caller_identity),
) -> dict:
    """Back to the lobby with the same players and no card."""
    validate_session_id(session_id)
    try:
        orchestrator = _load(session_id, identity)
        if not orchestrator.is_host:
            raise HTTPException(status_code=403, detail=MSG_NOT_HOST)
        if not orchestrator.reset_game():
            _raise_for(orchestrator, "Failed to reset game")
        return _session_view(orchestrator)
    except HTTPException:
        raise
    except Exception as exc:
        safe_error_response(exc, context="reset")


@router.post("/sessions/{session_id}/close")
@limiter.limit("10/minute")
async def close_lobby(
    request: Request,
    session_id: str,
    identity: Identity = Depends(caller_identity),
) -> dict:
    validate_session_id(session_id)
    try:
        orchestrator = _load(session_id, identity)
        if not orchestrator.close_lobby():
            _raise_for(orchestrator, "Failed to close lobby")
        view = _session_view(orchestrator)
        get_runtime().drop_session(session_id)
        return view
    except HTTPException:
        raise
    except Exception as exc:
        safe_error_response(exc, context="close_lobby")
