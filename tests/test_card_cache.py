import random
from datetime import datetime, timedelta

import pytest

from src.database.local_store import LocalStore
from src.game.card_cache import CardCache
from src.game.constants import KEY_LAST_SYNC, KEY_OFFLINE_CARDS

CARDS = [
    {"id": "c1", "word": "Gato", "clue": "Maulla", "pack_id": "p1"},
    {"id": "c2", "word": "Perro", "clue": None, "pack_id": "p1"},
    {"id": "c3", "word": "Plaza", "clue": "Centro", "pack_id": "p2"},
]
PACKS = [
    {"id": "p1", "name": "Animales", "master_category": "general"},
    {"id": "p2", "name": "Pueblo", "master_category": "benicolet"},
]


def _cache(cards=CARDS, packs=PACKS, seed=3):
    cache = CardCache(
        LocalStore(),
        fetch_cards=lambda: list(cards),
        fetch_packs=lambda: list(packs),
        rng=random.Random(seed),
    )
    assert cache.sync()
    return cache


def _boom():
    raise ConnectionError("network down")


class TestSync:
    def test_sync_from_mongo_skips_inactive_rows(self, seeded):
        cache = CardCache(LocalStore())
        assert cache.sync()
        ids = {card.id for card in cache.get_cards()}
        assert "retired" not in ids
        assert len(ids) == 10
        assert {pack.id for pack in cache.get_packs()} == {
            "pack-animals", "pack-town",
        }
        assert cache.last_sync is not None

    def test_null_clue_becomes_empty(self):
        cache = _cache()
        perro = next(c for c in cache.get_cards() if c.id == "c2")
        assert perro.clue == ""

    def test_card_fetch_failure_keeps_previous_snapshot(self):
        store = LocalStore()
        cache = CardCache(store, fetch_cards=lambda: CARDS, fetch_packs=lambda: PACKS)
        assert cache.sync()
        stamp = store.get(KEY_LAST_SYNC)

        failing = CardCache(store, fetch_cards=_boom, fetch_packs=lambda: PACKS)
        assert failing.sync() is False
        assert failing.card_count == 3
        assert store.get(KEY_LAST_SYNC) == stamp

    def test_pack_failure_keeps_new_cards_without_timestamp(self):
        store = LocalStore()
        cache = CardCache(
            store, fetch_cards=lambda: CARDS[:1], fetch_packs=_boom
        )
        assert cache.sync() is False
        assert len(store.get(KEY_OFFLINE_CARDS)) == 1
        assert cache.last_sync is None

    def test_needs_sync_when_empty_or_stale(self):
        empty = CardCache(LocalStore(), fetch_cards=list, fetch_packs=list)
        assert empty.needs_sync()

        cache = _cache()
        assert not cache.needs_sync()
        later = datetime.utcnow() + timedelta(days=2)
        assert cache.needs_sync(now=later)

    def test_maybe_sync_only_when_online(self):
        calls = []

        def fetch():
            calls.append(1)
            return CARDS

        cache = CardCache(LocalStore(), fetch_cards=fetch, fetch_packs=lambda: PACKS)
        assert cache.maybe_sync(is_online=False) is False
        assert calls == []
        assert cache.maybe_sync(is_online=True) is True
        assert cache.maybe_sync(is_online=True) is False
        assert len(calls) == 1


class TestRandomCard:
    def test_empty_candidates_returns_none(self):
        cache = _cache()
        assert cache.get_random_card(["unknown-pack"]) is None

    @pytest.mark.parametrize("seed", range(20))
    def test_excluded_cards_never_returned_when_others_exist(self, seed):
        cache = _cache(seed=seed)
        card = cache.get_random_card(["p1", "p2"], ["c1", "c3"])
        assert card.id == "c2"

    def test_exclusion_ignored_when_it_covers_everything(self):
        cache = _cache()
        card = cache.get_random_card(["p1"], ["c1", "c2", "other"])
        assert card is not None
        assert card.id in {"c1", "c2"}

    def test_none_entries_in_exclusions_are_ignored(self):
        cache = _cache()
        card = cache.get_random_card(["p2"], [None])
        assert card.id == "c3"

    def test_category_filter_expands_to_packs(self):
        cache = _cache()
        card = cache.get_random_card(["benicolet"])
        assert card.id == "c3"
        assert card.master_category == "benicolet"

    def test_mixed_filter_is_treated_as_pack_ids(self):
        cache = _cache()
        assert cache.resolve_pack_ids(["general", "p2"]) == {"general", "p2"}

    def test_draws_cover_all_candidates(self):
        cache = _cache(seed=11)
        seen = {cache.get_random_card(["p1", "p2"]).id for _ in range(200)}
        assert seen == {"c1", "c2", "c3"}
