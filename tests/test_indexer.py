import mongomock
import pytest

import database
from lazylotto.indexer import PoolIndexer, format_win_rate
from lazylotto.mirror import MirrorView


@pytest.fixture
def mongo(monkeypatch):
    db = mongomock.MongoClient().lazylotto
    monkeypatch.setattr(database, "db", db)
    return db


@pytest.fixture
def pools(dep, lotto, admin, alice, lazy, make_pool):
    hbar_pool = make_pool(name="HBAR pool")
    lazy_pool = make_pool(name="LAZY pool", fee_token=lazy, entry_fee=100, win_rate=12_500_000)
    community = make_pool(caller=alice, name="Community")
    lotto.pause_pool(admin, lazy_pool)
    dep.chain.advance(10)
    return hbar_pool, lazy_pool, community


def test_indexes_discovered_pools(dep, lotto, alice, mongo, pools):
    hbar_pool, lazy_pool, community = pools
    indexer = PoolIndexer(lotto, MirrorView(dep.chain, lag=5))

    docs = indexer.run()

    assert [d["pool_id"] for d in docs] == [hbar_pool, lazy_pool, community]
    assert mongo.pool.count_documents({}) == 3
    stored = {d["pool_id"]: d for d in indexer.stored_pools()}
    assert stored[hbar_pool]["entry_fee_display"] == "1 ℏ"
    assert stored[lazy_pool]["entry_fee_display"] == "10 LAZY"
    assert stored[lazy_pool]["status"] == "paused"
    assert stored[lazy_pool]["win_rate_display"] == "12.5%"
    assert stored[community]["is_global"] is False
    assert stored[community]["owner"] == alice
    assert "created_at" in stored[hbar_pool]
    assert mongo.indexer_state.find_one({"name": "pools"})["pool_ids"] == [hbar_pool, lazy_pool, community]


def test_active_only_filter(dep, lotto, mongo, pools):
    indexer = PoolIndexer(lotto, MirrorView(dep.chain, lag=5))
    docs = indexer.run(active_only=True)
    assert all(d["status"] == "active" for d in docs)
    assert len(docs) == 2


def test_checkpoint_survives_restart(dep, lotto, admin, mongo, pools, make_pool):
    mirror = MirrorView(dep.chain, lag=5)
    first = PoolIndexer(lotto, mirror)
    first.run()
    checkpoint = first.last_seq

    second = PoolIndexer(lotto, mirror)
    assert second.last_seq == checkpoint
    assert second.discover() == []

    new_pool = make_pool(name="Late")
    assert second.discover() == []
    dep.chain.advance(5)
    assert second.discover() == [new_pool]
    assert mongo.indexer_state.find_one({"name": "pools"})["last_seq"] == checkpoint


def test_refresh_tracks_status_changes(dep, lotto, admin, mongo, pools):
    hbar_pool = pools[0]
    indexer = PoolIndexer(lotto, MirrorView(dep.chain, lag=5))
    indexer.run()
    lotto.close_pool(admin, hbar_pool)
    indexer.run()
    assert mongo.pool.find_one({"pool_id": hbar_pool})["status"] == "closed"
    assert mongo.pool.count_documents({}) == 3


def test_runs_without_database(monkeypatch, dep, lotto, pools):
    monkeypatch.setattr(database, "db", None)
    indexer = PoolIndexer(lotto, MirrorView(dep.chain, lag=5))
    docs = indexer.run()
    assert len(docs) == 3
    assert indexer.stored_pools() == []


def test_format_win_rate():
    assert format_win_rate(50_000_000) == "50%"
    assert format_win_rate(1_000) == "0.001%"


def test_database_helpers(mongo):
    inserted = database.create_document("transaction", {"operation": "LazyLotto.buy_entry", "caller": "0x1"})
    database.upsert_document("pool", {"pool_id": 1}, {"pool_id": 1, "status": "active"})
    database.upsert_document("pool", {"pool_id": 1}, {"pool_id": 1, "status": "closed"})

    [doc] = database.get_documents("transaction", {"caller": "0x1"})
    assert doc["_id"] == inserted
    assert "created_at" in doc
    [pool] = database.get_documents("pool")
    assert pool["status"] == "closed"
    assert "created_at" in pool


def test_database_helpers_require_connection(monkeypatch):
    monkeypatch.setattr(database, "db", None)
    with pytest.raises(RuntimeError):
        database.get_documents("pool")
