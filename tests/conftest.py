import os
import random

os.environ.setdefault("ENVIRONMENT", "development")

import mongomock
import pytest

from src.database.card_repository import upsert_cards, upsert_packs
from src.database.connection import DatabaseManager
from src.database.local_store import LocalStore
from src.game.constants import KEY_GUEST_ID
from src.game.realtime import RealtimeHub
from src.game.runtime import open_device

PACKS = [
    {"id": "pack-animals", "name": "Animales", "master_category": "general"},
    {"id": "pack-town", "name": "El poble", "master_category": "benicolet"},
    {"id": "pack-hidden", "name": "Retirado", "master_category": "general",
     "is_active": False},
]

CARDS = [
    {"id": f"animal-{i}", "word": f"Animal {i}", "clue": f"Pista {i}",
     "pack_id": "pack-animals"}
    for i in range(5)
] + [
    {"id": f"town-{i}", "word": f"Lugar {i}", "clue": f"Calle {i}",
     "pack_id": "pack-town"}
    for i in range(5)
] + [
    {"id": "retired", "word": "Viejo", "clue": "x", "pack_id": "pack-animals",
     "is_active": False},
]

SELECTED_PACKS = ["pack-animals", "pack-town"]

PLAYER_NAMES = ["Ana", "Berta", "Carles", "Dani"]


@pytest.fixture
def mongo():
    """In-memory MongoDB wired into the DatabaseManager singleton."""
    client = mongomock.MongoClient()
    DatabaseManager._client = client
    DatabaseManager().attach(client)
    yield DatabaseManager._db
    DatabaseManager._client = None
    DatabaseManager._db = None


@pytest.fixture
def seeded(mongo):
    upsert_packs(PACKS)
    upsert_cards(CARDS)
    return mongo


@pytest.fixture
def hub():
    return RealtimeHub()


@pytest.fixture
def local_store():
    return LocalStore()


@pytest.fixture
def make_device(seeded, hub):
    """Build an orchestrator acting as one device on the shared backend."""
    devices = []

    def _make(
        guest_id="host-guest",
        cached=True,
        online=True,
        allow_offline=True,
        seed=7,
        user_id=None,
    ):
        local = LocalStore()
        local.set(KEY_GUEST_ID, guest_id)
        device = open_device(
            local,
            hub=hub,
            user_id=user_id,
            online=online,
            allow_offline_sessions=allow_offline,
            rng=random.Random(seed),
        )
        if cached:
            assert device._cache.sync()
        devices.append(device)
        return device

    yield _make
    for device in devices:
        device.close()


@pytest.fixture
def players():
    return [{"display_name": name} for name in PLAYER_NAMES]
