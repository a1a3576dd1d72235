"""Tests for the memory record store."""

import threading
from datetime import datetime, timedelta, timezone

import pytest
from pymongo.errors import ServerSelectionTimeoutError

from agent_memory.errors import Busy, StoreUnavailable
from agent_memory.models import MemoryRecord
from agent_memory.storage import MemoryStore, SearchIndex
from tests.mock_db import MockMongoStorageClient

T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)


@pytest.fixture
def mongo():
    return MockMongoStorageClient()


@pytest.fixture
def store(mongo):
    return MemoryStore(mongo_client=mongo, lock_timeout=0.2)


def make_record(content, salience=0.5, user_id="u1", agent_id="a1", kind="fact", when=T0):
    return MemoryRecord.create(user_id, agent_id, kind, content, salience, timestamp=when)


def test_put_and_get(store):
    record = make_record("User lives in Berlin")
    store.put(record)

    fetched = store.get(record.id, "u1")
    assert fetched is not None
    assert fetched.content == "User lives in Berlin"


def test_get_is_owner_scoped(store):
    record = make_record("User lives in Berlin")
    store.put(record)

    assert store.get(record.id, "u2") is None


def test_list_active_ordering(store):
    low = make_record("User prefers tea", salience=0.2)
    high_old = make_record("User lives in Berlin", salience=0.8, when=T0)
    high_new = make_record("User works as a nurse", salience=0.8, when=T0 + timedelta(days=1))
    for record in (low, high_old, high_new):
        store.put(record)

    ids = [r.id for r in store.list_active("u1", "a1")]
    assert ids == [high_new.id, high_old.id, low.id]


def test_list_active_excludes_expired_and_other_keys(store):
    kept = make_record("User prefers tea")
    gone = make_record("User hates cilantro")
    other_agent = make_record("User plays chess", agent_id="a2")
    for record in (kept, gone, other_agent):
        store.put(record)
    store.mark_expired(gone, "ttl", T0)

    assert [r.id for r in store.list_active("u1", "a1")] == [kept.id]
    assert store.get(gone.id, "u1") is None
    assert store.get(gone.id, "u1", include_expired=True).state == "expired"
    assert len(store.list_records("u1", "a1")) == 2


def test_delete_owner_isolation(store):
    record = make_record("User is allergic to peanuts", salience=0.9)
    store.put(record)

    assert store.delete(record.id, "intruder") is False
    assert store.get(record.id, "u1").salience == 0.9

    assert store.delete(record.id, "u1") is True
    assert store.get(record.id, "u1", include_expired=True) is None
    assert store.delete(record.id, "u1") is False


def test_find_similar_default_exact_match(store):
    record = make_record("User likes espresso")
    store.put(record)

    assert store.find_similar("u1", "a1", "user likes  espresso.", 0.85).id == record.id
    assert store.find_similar("u1", "a1", "User prefers tea", 0.85) is None


def test_find_similar_threshold_and_best_match(store):
    first = make_record("alpha")
    second = make_record("beta")
    store.put(first)
    store.put(second)
    scores = {"alpha": 0.86, "beta": 0.95}

    def similarity(a, b):
        return scores[b]

    assert store.find_similar("u1", "a1", "x", 0.85, similarity=similarity).id == second.id
    assert store.find_similar("u1", "a1", "x", 0.96, similarity=similarity) is None
    # Boundary is inclusive
    assert store.find_similar("u1", "a1", "x", 0.95, similarity=similarity).id == second.id


def test_store_failure_is_translated(store, mongo):
    mongo.fail_with = ServerSelectionTimeoutError("no servers")

    with pytest.raises(StoreUnavailable) as excinfo:
        store.list_active("u1", "a1")
    assert isinstance(excinfo.value.__cause__, ServerSelectionTimeoutError)

    with pytest.raises(StoreUnavailable):
        store.put(make_record("User prefers tea"))


def test_lock_registry_holds_one_lock_per_key(store):
    for _ in range(3):
        store.put(make_record("User prefers tea"))
        store.put(make_record("User prefers tea", user_id="u2"))

    assert len(store.lock) == 2


def test_lock_timeout_raises_busy(store):
    held = threading.Event()
    release = threading.Event()

    def holder():
        with store.locked("u1", "a1"):
            held.set()
            release.wait(5)

    thread = threading.Thread(target=holder)
    thread.start()
    try:
        assert held.wait(5)
        with pytest.raises(Busy):
            store.put(make_record("User prefers tea"))
        # Other keys are not blocked
        store.put(make_record("User prefers tea", user_id="u2"))
    finally:
        release.set()
        thread.join()

    store.put(make_record("User prefers tea"))
    assert store.count_active("u1", "a1") == 1


def test_purge_and_clear(store):
    old = make_record("User plays chess")
    recent = make_record("User climbs")
    active = make_record("User prefers tea")
    for record in (old, recent, active):
        store.put(record)
    store.mark_expired(old, "ttl", T0)
    store.mark_expired(recent, "ttl", T0 + timedelta(days=20))

    assert store.purge_expired("u1", "a1", before=T0 + timedelta(days=10)) == 1
    assert len(store.list_records("u1", "a1")) == 2

    assert store.clear("u1", "a1") == 1
    assert store.list_records("u1", "a1") == []


def test_active_keys(store):
    store.put(make_record("User prefers tea"))
    store.put(make_record("User plays chess", user_id="u2", agent_id="a9"))
    expired = make_record("User climbs", user_id="u3")
    store.put(expired)
    store.mark_expired(expired, "ttl", T0)

    assert sorted(store.active_keys()) == [("u1", "a1"), ("u2", "a9")]


def test_agent_config_defaults(store):
    config = store.get_agent_config("new-agent")
    assert config.agent_id == "new-agent"
    assert config.memory_enabled is True


def test_search_index_bm25():
    records = [
        make_record("User likes espresso"),
        make_record("User lives in Berlin"),
        make_record("User plays chess"),
    ]
    results = SearchIndex().search(records, "espresso coffee", top_k=5)

    assert [r.content for r, _ in results] == ["User likes espresso"]
    assert results[0][1] > 0
    assert SearchIndex().search(records, "   ") == []


def test_search_index_single_record():
    records = [make_record("User likes espresso")]

    results = SearchIndex().search(records, "espresso")

    assert [r.content for r, _ in results] == ["User likes espresso"]
    assert results[0][1] > 0
    assert SearchIndex().search(records, "chess") == []


def test_search_index_two_records():
    records = [make_record("User likes espresso"), make_record("User plays chess")]

    assert [r.content for r, _ in SearchIndex().search(records, "espresso")] == [
        "User likes espresso"
    ]
    # A term present in every record still matches all of them.
    assert len(SearchIndex().search(records, "user")) == 2


def test_search_index_orders_by_term_frequency():
    records = [
        make_record("User likes espresso"),
        make_record("Espresso, always espresso, nothing but espresso"),
    ]

    results = SearchIndex().search(records, "espresso", top_k=1)

    assert [r.content for r, _ in results] == ["Espresso, always espresso, nothing but espresso"]
