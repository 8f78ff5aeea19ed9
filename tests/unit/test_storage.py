from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from relay.db import repository
from relay.db.session import configure_engine, session_scope
from relay.telemetry.storage import EventStore
from tests.support.events import sample_event


def test_claim_returns_rows_in_order_and_empties_store(store: EventStore) -> None:
    for index in range(3):
        assert store.append(sample_event(index)) is True

    claimed = store.claim_and_remove()

    assert [row.id for row in claimed] == [1, 2, 3]
    assert claimed[0].created_at is not None
    assert store.count_pending() == 0
    assert store.claim_and_remove() == []


def test_ids_are_not_reused_after_drain(store: EventStore) -> None:
    store.append(sample_event(0))
    store.append(sample_event(1))
    first = store.claim_and_remove()

    store.append(sample_event(2))
    second = store.claim_and_remove()

    assert [row.id for row in first] == [1, 2]
    assert [row.id for row in second] == [3]


def test_concurrent_appends_are_all_kept(store: EventStore) -> None:
    with ThreadPoolExecutor(max_workers=8) as pool:
        results = list(pool.map(lambda index: store.append(sample_event(index)), range(80)))

    assert all(results)
    assert store.count_pending() == 80
    claimed = store.claim_and_remove()
    assert [row.id for row in claimed] == sorted(row.id for row in claimed)
    assert len({row.id for row in claimed}) == 80


def test_concurrent_claims_never_share_rows(store: EventStore) -> None:
    for index in range(10):
        store.append(sample_event(index))
    barrier = threading.Barrier(2)

    def claim() -> list[int]:
        barrier.wait()
        return [row.id for row in store.claim_and_remove()]

    with ThreadPoolExecutor(max_workers=2) as pool:
        first, second = pool.map(lambda _: claim(), range(2))

    assert set(first).isdisjoint(second)
    assert sorted(first + second) == list(range(1, 11))
    assert sorted([len(first), len(second)]) == [0, 10]


def test_claims_racing_appends_take_disjoint_ordered_slices(store: EventStore) -> None:
    done = threading.Event()

    def produce(offset: int) -> list[bool]:
        return [store.append(sample_event(index)) for index in range(offset, 300, 8)]

    def claim_until_done() -> list[list[int]]:
        batches = []
        while not done.is_set():
            batches.append([row.id for row in store.claim_and_remove()])
        return batches

    with ThreadPoolExecutor(max_workers=10) as pool:
        claimers = [pool.submit(claim_until_done) for _ in range(2)]
        producers = [pool.submit(produce, offset) for offset in range(8)]
        appended = [ok for future in producers for ok in future.result()]
        done.set()
        batches = [batch for future in claimers for batch in future.result()]
    batches.append([row.id for row in store.claim_and_remove()])
    claimed = [event_id for batch in batches for event_id in batch]

    assert len(appended) == 300
    assert all(appended)
    assert all(batch == sorted(batch) for batch in batches)
    assert len(claimed) == len(set(claimed))
    assert sorted(claimed) == list(range(1, 301))


def test_count_mismatch_rolls_back_claim(store: EventStore, monkeypatch: pytest.MonkeyPatch) -> None:
    for index in range(4):
        store.append(sample_event(index))
    real_delete = repository.delete_through

    def short_delete(session, max_id: int) -> int:
        return real_delete(session, max_id) - 1

    monkeypatch.setattr(repository, "delete_through", short_delete)

    assert store.claim_and_remove() == []
    assert store.count_pending() == 4

    monkeypatch.setattr(repository, "delete_through", real_delete)
    assert [row.id for row in store.claim_and_remove()] == [1, 2, 3, 4]


def test_claim_failure_rolls_back_and_propagates(store: EventStore, monkeypatch: pytest.MonkeyPatch) -> None:
    store.append(sample_event(0))

    real_delete = repository.delete_through

    def broken_delete(session, max_id: int) -> int:
        real_delete(session, max_id)
        raise RuntimeError("connection lost")

    monkeypatch.setattr(repository, "delete_through", broken_delete)

    with pytest.raises(RuntimeError):
        store.claim_and_remove()
    assert store.count_pending() == 1


def test_append_when_table_missing_is_a_noop(store: EventStore) -> None:
    store.drop_table()

    assert store.is_ready() is False
    assert store.append(sample_event(0)) is False
    assert store.claim_and_remove() == []
    assert store.count_pending() == 0


def test_store_detects_existing_table(store: EventStore) -> None:
    assert EventStore().is_ready() is True


def test_unserializable_event_is_rejected(store: EventStore) -> None:
    assert store.append({"analytics": {"time": object()}}) is False
    assert store.count_pending() == 0


def test_raw_payload_is_stored_verbatim(store: EventStore) -> None:
    with session_scope() as session:
        repository.insert_collect_event(session, "not json")

    claimed = store.claim_and_remove()

    assert [row.payload for row in claimed] == ["not json"]


def test_store_notices_table_created_later(database_url: str) -> None:
    configure_engine(database_url)
    early = EventStore()

    assert early.is_ready() is False
    assert early.append(sample_event(0)) is False

    EventStore().create_table()

    assert early.is_ready() is True
    assert early.append(sample_event(1)) is True
    assert early.count_pending() == 1
