"""
WebSocket bridge onto the in-process realtime hub.

- /ws/session/{session_id} : one subscription per socket. Row changes
  (stripped of words, clues and roles), broadcasts from other subscribers
  and channel status are pushed as JSON;
  the client may send {"type": "broadcast", "event": ..., "payload": ...}
  (phase events only) and {"type": "ping"}.
"""

import asyncio
import json
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from security import SESSION_ID_PATTERN
from src.game.constants import (
    EVENT_PHASE_CHANGE,
    EVENT_PHASE_SYNC_REQUEST,
    EVENT_PHASE_SYNC_STATE,
    SECRET_ROW_FIELDS,
    TABLE_SESSIONS,
)
from src.game.runtime import get_runtime

logger = logging.getLogger(__name__)

router = APIRouter()

CLIENT_EVENTS = {
    EVENT_PHASE_CHANGE,
    EVENT_PHASE_SYNC_REQUEST,
    EVENT_PHASE_SYNC_STATE,
}


def _public_row(table: str, row: dict) -> dict:
    """A row as every subscriber may see it; secrets stay behind /card."""
    public = {
        key: value
        for key, value in row.items()
        if key not in SECRET_ROW_FIELDS.get(table, ())
    }
    if table == TABLE_SESSIONS:
        public["has_word"] = bool(row.get("word_text") and row.get("clue_text"))
    return public


async def _pump(ws: WebSocket, queue: asyncio.Queue) -> None:
    while True:
        message = await queue.get()
        await ws.send_text(
            json.dumps(message, ensure_ascii=False, separators=(",", ":"))
        )


@router.websocket("/ws/session/{session_id}")
async def session_stream(ws: WebSocket, session_id: str):
    if not SESSION_ID_PATTERN.match(session_id):
        await ws.close(code=1008)
        return
    await ws.accept()

    loop = asyncio.get_running_loop()
    queue: asyncio.Queue = asyncio.Queue()

    def forward(message: dict) -> None:
        # hub callbacks may fire from worker threads
        loop.call_soon_threadsafe(queue.put_nowait, message)

    hub = get_runtime().hub
    sender = asyncio.create_task(_pump(ws, queue))
    subscription = hub.subscribe(
        session_id,
        on_broadcast=lambda event, payload: forward(
            {"type": "broadcast", "event": event, "payload": payload}
        ),
        on_row_change=lambda table, row: forward(
            {"type": "row_change", "table": table,
             "row": _public_row(table, row)}
        ),
        on_status=lambda status: forward({"type": "status", "status": status}),
    )
    logger.info("WebSocket subscribed to session %s", session_id)

    try:
        while True:
            raw = await ws.receive_text()
            try:
                msg = json.loads(raw)
            except ValueError:
                forward({"type": "error", "error": "invalid JSON"})
                continue

            mtype = msg.get("type") if isinstance(msg, dict) else None
            if mtype == "ping":
                forward({"type": "pong"})
            elif mtype == "broadcast" and msg.get("event") in CLIENT_EVENTS:
                payload = msg.get("payload")
                hub.broadcast(
                    session_id,
                    msg["event"],
                    payload if isinstance(payload, dict) else {},
                    sender=subscription,
                )
            else:
                forward({"type": "error", "error": "unsupported message"})
    except WebSocketDisconnect:
        logger.info("WebSocket for session %s disconnected", session_id)
    finally:
        subscription.on_status = lambda status: None
        hub.unsubscribe(subscription)
        sender.cancel()
