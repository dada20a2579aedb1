import uuid

import pytest
from fastapi.testclient import TestClient

import security
from commons import limiter
from main import app
from src.game.runtime import get_runtime, reset_runtime

from conftest import PLAYER_NAMES, SELECTED_PACKS

HOST = {"X-Guest-ID": "host-guest"}


@pytest.fixture
def client(seeded):
    reset_runtime()
    limiter.reset()
    yield TestClient(app)
    reset_runtime()


def _create(client, **overrides):
    body = {"topo_count": 1, "selected_pack_ids": SELECTED_PACKS}
    body.update(overrides)
    response = client.post("/api/sessions", json=body, headers=HOST)
    assert response.status_code == 200, response.text
    return response.json()


def _single_session(client):
    data = _create(
        client, players=[{"display_name": name} for name in PLAYER_NAMES]
    )
    return data["session"]["id"], [p["id"] for p in data["players"]]


def test_identity_header_required(client):
    response = client.post(
        "/api/sessions", json={"selected_pack_ids": SELECTED_PACKS}
    )
    assert response.status_code == 400


def test_invalid_and_unknown_session_ids(client):
    assert client.get("/api/sessions/nope", headers=HOST).status_code == 400
    response = client.get(f"/api/sessions/{uuid.uuid4()}", headers=HOST)
    assert response.status_code == 404
    assert response.json()["detail"] == "Game session not found"


def test_empty_selection_is_rejected(client):
    response = client.post(
        "/api/sessions", json={"selected_pack_ids": []}, headers=HOST
    )
    assert response.status_code == 400
    assert response.json()["detail"] == "No categories selected"


def test_session_view_hides_secrets(client):
    session_id, _ = _single_session(client)
    data = client.get(f"/api/sessions/{session_id}", headers=HOST).json()
    assert data["session"]["has_word"] is True
    assert "word_text" not in data["session"]
    assert "clue_text" not in data["session"]
    assert all("role" not in player for player in data["players"])
    assert data["is_ready_for_dealing"] is True
    assert data["phase"] == "lobby"


def test_full_single_device_round(client):
    session_id, player_ids = _single_session(client)
    base = f"/api/sessions/{session_id}"

    response = client.post(f"{base}/deal", headers=HOST)
    assert response.status_code == 200
    assert response.json()["phase"] == "dealing"

    topo_cards = 0
    for pid in player_ids:
        card = client.get(f"{base}/players/{pid}/card", headers=HOST).json()["card"]
        topo_cards += card["is_topo"]
        reveal = client.post(f"{base}/players/{pid}/reveal", headers=HOST)
        assert reveal.status_code == 200
    assert topo_cards == 1
    assert reveal.json()["all_revealed"] is True

    discussion = client.post(f"{base}/discussion", headers=HOST).json()
    assert discussion["phase"] == "discussion"
    assert discussion["first_speaker_player_id"] in player_ids

    finished = client.post(f"{base}/finish", headers=HOST).json()
    assert finished["phase"] == "finished"

    reset = client.post(f"{base}/reset", headers=HOST).json()
    assert reset["phase"] == "lobby"
    assert reset["session"]["has_word"] is False

    replay = _create(client, session_id=session_id)
    assert replay["session"]["id"] == session_id
    assert replay["session"]["has_word"] is True
    assert len(replay["players"]) == 4


def test_only_host_can_deal(client):
    session_id, _ = _single_session(client)
    response = client.post(
        f"/api/sessions/{session_id}/deal", headers={"X-Guest-ID": "intruder"}
    )
    assert response.status_code == 403


def test_multi_device_join_and_card_access(client):
    data = _create(client, mode="multi")
    session_id = data["session"]["id"]
    code = data["session"]["join_code"]

    guests = {}
    for index, name in enumerate(["Ana", "Berta", "Carles"]):
        headers = {"X-Guest-ID": f"guest-{index}"}
        response = client.post(
            f"/api/sessions/join/{code}",
            json={"display_name": name},
            headers=headers,
        )
        assert response.status_code == 200, response.text
        guests[f"guest-{index}"] = response.json()["player_id"]

    assert client.post(f"/api/sessions/{session_id}/deal", headers=HOST).status_code == 200

    own = client.get(
        f"/api/sessions/{session_id}/players/{guests['guest-0']}/card",
        headers={"X-Guest-ID": "guest-0"},
    )
    assert own.status_code == 200
    other = client.get(
        f"/api/sessions/{session_id}/players/{guests['guest-1']}/card",
        headers={"X-Guest-ID": "guest-0"},
    )
    assert other.status_code == 403


def test_bad_join_code(client):
    response = client.post(
        "/api/sessions/join/0O01", json={"display_name": "Eva"}, headers=HOST
    )
    assert response.status_code == 400
    response = client.post(
        "/api/sessions/join/ZZZZ", json={"display_name": "Eva"}, headers=HOST
    )
    assert response.status_code == 404


def test_card_snapshot(client):
    data = client.get("/api/cards/snapshot").json()
    assert len(data["cards"]) == 10
    assert {pack["id"] for pack in data["packs"]} == {"pack-animals", "pack-town"}
    assert data["last_sync"] is not None


def test_import_requires_admin_key(client, monkeypatch, seeded):
    monkeypatch.setattr(security.cfg, "ADMIN_API_KEY", "s3cret")
    body = {
        "packs": [{"id": "pack-new", "name": "Nuevo", "master_category": "picantes"}],
        "cards": [{"id": "new-1", "word": "Guindilla", "clue": "Pica",
                   "pack_id": "pack-new"}],
    }
    assert client.post("/api/cards/import", json=body).status_code == 403

    response = client.post(
        "/api/cards/import", json=body, headers={"X-Admin-Key": "s3cret"}
    )
    assert response.status_code == 200
    assert response.json()["cache_synced"] is True
    assert seeded["cards"].count_documents({"id": "new-1"}) == 1


def test_websocket_bridge_relays_phase_events(client):
    session_id, _ = _single_session(client)
    base = f"/api/sessions/{session_id}"
    client.post(f"{base}/deal", headers=HOST)

    with client.websocket_connect(f"/ws/session/{session_id}") as ws:
        assert ws.receive_json() == {"type": "status", "status": "SUBSCRIBED"}

        ws.send_json({"type": "ping"})
        assert ws.receive_json() == {"type": "pong"}

        client.post(f"{base}/discussion", headers=HOST)
        message = ws.receive_json()
        assert message["type"] == "broadcast"
        assert message["event"] == "phase_change"
        assert message["payload"]["phase"] == "discussion"

        # the host answers a late subscriber's sync request
        ws.send_json({"type": "broadcast", "event": "phase_sync_request",
                      "payload": {}})
        reply = ws.receive_json()
        assert reply["event"] == "phase_sync_state"
        assert reply["payload"]["phase"] == "discussion"


def test_websocket_rows_carry_no_secrets(client):
    session_id, _ = _single_session(client)

    with client.websocket_connect(f"/ws/session/{session_id}") as ws:
        assert ws.receive_json()["type"] == "status"
        client.post(f"/api/sessions/{session_id}/deal", headers=HOST)
        rows = []
        while True:
            message = ws.receive_json()
            if message["type"] == "broadcast":
                break
            rows.append(message)

    assert {m["table"] for m in rows} == {"game_sessions", "session_players"}
    for message in rows:
        for field in ("role", "card_id", "word_text", "clue_text",
                      "deceived_word_text", "deceived_clue_text"):
            assert field not in message["row"]
    session_row = [m["row"] for m in rows if m["table"] == "game_sessions"][-1]
    assert session_row["status"] == "dealing"
    assert session_row["has_word"] is True


def test_finished_sessions_release_server_state(client):
    session_ids = []
    for _ in range(3):
        session_id, _ = _single_session(client)
        base = f"/api/sessions/{session_id}"
        client.post(f"{base}/deal", headers=HOST)
        client.post(f"{base}/discussion", headers=HOST)
        assert client.post(f"{base}/finish", headers=HOST).status_code == 200
        session_ids.append(session_id)

    hub = get_runtime().hub
    assert all(hub.subscriber_count(sid) == 0 for sid in session_ids)

    # a finished session is still reachable and reloads on demand
    data = client.get(f"/api/sessions/{session_ids[0]}", headers=HOST).json()
    assert data["phase"] == "finished"
    assert data["is_host"] is True
