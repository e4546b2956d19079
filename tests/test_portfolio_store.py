"""Tests for portfolio persistence over the key-value store."""

from __future__ import annotations

import json

from conftest import NOW
from mememarket.models.prediction import PredictionIntent
from mememarket.services.portfolio_store import (
    InMemoryKeyValueStore,
    JsonFileKeyValueStore,
    PortfolioStore,
)


def make_store(ledger, kv=None) -> PortfolioStore:
    return PortfolioStore(kv or InMemoryKeyValueStore(), lambda user_id: ledger.create_portfolio(user_id, NOW))


class TestPortfolioStore:
    def test_get_or_create_persists(self, ledger):
        kv = InMemoryKeyValueStore()
        store = make_store(ledger, kv)

        portfolio = store.get_or_create("user_0001")
        assert store.get_or_create("user_0001") is portfolio
        assert kv.keys("portfolio:") == ["portfolio:user_0001"]

    def test_unknown_user(self, ledger):
        assert make_store(ledger).get("nobody") is None

    def test_record_survives_a_new_store(self, ledger, item):
        kv = InMemoryKeyValueStore()
        store = make_store(ledger, kv)
        portfolio = store.get_or_create("user_0001")
        ledger.place_bet(portfolio, PredictionIntent(item.id, "growth_rate", 50, "SHORT", 25), item, now=NOW)
        store.save(portfolio)

        reloaded = make_store(ledger, kv).get("user_0001")
        assert reloaded is not portfolio
        assert reloaded.to_dict() == portfolio.to_dict()

    def test_unreadable_record_is_discarded(self, ledger):
        kv = InMemoryKeyValueStore()
        kv.set("portfolio:broken", {"balance": 5})
        assert make_store(ledger, kv).get("broken") is None

    def test_reset(self, ledger):
        store = make_store(ledger)
        portfolio = store.get_or_create("user_0001")
        portfolio.balance = 1.0
        store.save(portfolio)

        fresh = store.reset("user_0001")
        assert fresh.balance == 1000.0
        assert store.get("user_0001") is fresh

    def test_user_ids_and_all(self, ledger):
        store = make_store(ledger)
        for user_id in ("b", "a", "c"):
            store.get_or_create(user_id)
        assert store.user_ids() == ["a", "b", "c"]
        assert [p.user_id for p in store.all()] == ["a", "b", "c"]


class TestJsonFileStore:
    def test_writes_and_reloads(self, tmp_path):
        path = tmp_path / "data" / "portfolios.json"
        kv = JsonFileKeyValueStore(str(path))
        kv.set("portfolio:u1", {"user_id": "u1", "balance": 10})

        document = json.loads(path.read_text())
        assert document["records"]["portfolio:u1"]["balance"] == 10
        assert "saved_at" in document

        assert JsonFileKeyValueStore(str(path)).get("portfolio:u1") == {"user_id": "u1", "balance": 10}

    def test_delete(self, tmp_path):
        kv = JsonFileKeyValueStore(str(tmp_path / "store.json"))
        kv.set("a", 1)
        kv.delete("a")
        assert JsonFileKeyValueStore(str(tmp_path / "store.json")).get("a") is None

    def test_corrupt_file_starts_empty(self, tmp_path):
        path = tmp_path / "store.json"
        path.write_text("{not json")
        assert JsonFileKeyValueStore(str(path)).keys() == []
