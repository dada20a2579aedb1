import random

import pytest
from pymongo.errors import PyMongoError

from src.game import card_picker
from src.game.card_picker import pick_random_card, resolve_remote_pack_ids
from src.game.errors import StoreError

from conftest import SELECTED_PACKS


def test_picks_an_active_card_from_selected_packs(seeded):
    card = pick_random_card(SELECTED_PACKS, rng=random.Random(1))
    assert card is not None
    assert card.pack_id in SELECTED_PACKS
    assert card.id != "retired"


def test_categories_resolve_to_active_packs(seeded):
    assert resolve_remote_pack_ids(["general"]) == ["pack-animals"]
    assert resolve_remote_pack_ids(["benicolet", "general"]) in (
        ["pack-animals", "pack-town"], ["pack-town", "pack-animals"],
    )
    # not every id is a category, so ids pass through unchanged
    assert resolve_remote_pack_ids(["general", "pack-town"]) == [
        "general", "pack-town",
    ]


@pytest.mark.parametrize("seed", range(15))
def test_excluded_card_is_skipped(seeded, seed):
    card = pick_random_card(
        ["pack-animals"], exclude_card_id="animal-0", rng=random.Random(seed)
    )
    assert card.id != "animal-0"


def test_single_candidate_ignores_exclusion(seeded):
    seeded["cards"].delete_many({"id": {"$in": [f"town-{i}" for i in range(1, 5)]}})
    card = pick_random_card(["pack-town"], exclude_card_id="town-0")
    assert card.id == "town-0"


def test_small_chunks_still_find_a_card(seeded):
    card = pick_random_card(
        ["empty-a", "empty-b", "pack-town"], rng=random.Random(2), chunk_size=1
    )
    assert card.pack_id == "pack-town"


def test_no_active_cards_returns_none(seeded):
    assert pick_random_card(["empty-pack"]) is None


def test_transient_fetch_errors_are_retried(seeded, monkeypatch):
    real = card_picker.fetch_card_at_offset
    calls = []

    def flaky(*args):
        calls.append(args)
        if len(calls) < 3:
            raise PyMongoError("timeout")
        return real(*args)

    monkeypatch.setattr(card_picker, "fetch_card_at_offset", flaky)
    card = pick_random_card(["pack-animals"], rng=random.Random(4))
    assert card is not None
    assert len(calls) == 3


def test_persistent_failure_raises_store_error(seeded, monkeypatch):
    def down(*args):
        raise PyMongoError("down")

    monkeypatch.setattr(card_picker, "count_active_cards", down)
    with pytest.raises(StoreError):
        pick_random_card(SELECTED_PACKS)


def test_failed_chunk_with_empty_rest_reports_store_error(seeded, monkeypatch):
    real = card_picker.count_active_cards

    def partly_down(chunk):
        if "pack-broken" in chunk:
            raise PyMongoError("down")
        return real(chunk)

    monkeypatch.setattr(card_picker, "count_active_cards", partly_down)
    with pytest.raises(StoreError, match="store errors"):
        pick_random_card(["empty-a", "pack-broken"], chunk_size=1)
