from __future__ import annotations

import threading
from typing import TYPE_CHECKING

import pytest

from replaceable.adapters.memory import InMemoryLockBackend, InMemoryStore
from replaceable.config import LockConfig
from replaceable.domain import (
    DuplicateConflict,
    LockTimeout,
    MatchSpec,
    Record,
    ReplaceableType,
    UpsertCoordinator,
    UpsertResult,
    register,
    upsert,
)
from tests.support.tables import ITEM_COLUMNS, MATERIAL_COLUMNS, PEOPLE_COLUMNS

if TYPE_CHECKING:
    from replaceable.domain import Predicate, UpsertOutcome


def _items(store: InMemoryStore) -> UpsertCoordinator:
    rtype = register(
        "Item",
        store.columns(),
        match=["holding_institution_id", "identification_number", "collection_id"],
        inherit="fingerprint",
    )
    return UpsertCoordinator(store, rtype)


def test_second_identical_upsert_is_unchanged() -> None:
    store = InMemoryStore(MATERIAL_COLUMNS)
    materials = UpsertCoordinator(store, register("Material", store.columns(), match="name"))

    first = materials.upsert({"name": "wood"})
    second = materials.upsert({"name": "wood"})

    assert first.result is UpsertResult.CREATED
    assert second.result is UpsertResult.UNCHANGED
    assert second.record.id == first.record.id
    assert [row["name"] for row in store.all()] == ["wood"]


def test_inherited_field_survives_second_upsert(item_store: InMemoryStore) -> None:
    items = _items(item_store)

    items.upsert(
        {"holding_institution_id": 1, "identification_number": "1234", "collection_id": 2,
         "name": "Stick", "fingerprint": "asdf"}
    )
    second = items.upsert(
        {"holding_institution_id": 1, "identification_number": "1234", "collection_id": 2,
         "name": "Stick", "fingerprint": "zzzz"}
    )

    assert second.result is UpsertResult.UNCHANGED
    assert second.record["fingerprint"] == "asdf"
    assert len(item_store) == 1
    assert item_store.all()[0]["fingerprint"] == "asdf"


def test_missing_inherited_field_is_filled_from_existing(item_store: InMemoryStore) -> None:
    items = _items(item_store)

    items.upsert({"holding_institution_id": 1, "collection_id": 2, "fingerprint": "asdf"})
    candidate = Record({"holding_institution_id": 1, "collection_id": 2})
    second = items.upsert(candidate)

    assert candidate["fingerprint"] == "asdf"
    assert second.record is candidate
    assert len(item_store) == 1


def test_non_inherited_field_takes_latest_value(item_store: InMemoryStore) -> None:
    items = _items(item_store)

    items.upsert(
        {"holding_institution_id": 1, "identification_number": "1234", "collection_id": 2,
         "name": "Stick", "fingerprint": "asdf"}
    )
    second = items.upsert(
        {"holding_institution_id": 1, "identification_number": "1234", "collection_id": 2,
         "name": "Dip Stick"}
    )

    assert second.result is UpsertResult.UPDATED
    assert second.changes == frozenset({"name"})
    (stored,) = item_store.all()
    assert stored["name"] == "Dip Stick"
    assert stored["fingerprint"] == "asdf"


def test_replacement_adopts_existing_identity() -> None:
    store = InMemoryStore(MATERIAL_COLUMNS)
    materials = UpsertCoordinator(store, register("Material", store.columns(), match="name"))

    first = materials.upsert({"name": "wood"})
    candidate = Record({"name": "wood"})
    materials.upsert(candidate)

    assert candidate.id == first.record.id
    assert not candidate.is_new
    assert candidate.persisted
    assert candidate.has_been_replaced


def test_case_differences_collapse_to_one_record() -> None:
    store = InMemoryStore(PEOPLE_COLUMNS)
    people = UpsertCoordinator(
        store, register("Person", store.columns(), insensitive_match=["first_name", "last_name"])
    )

    people.upsert({"first_name": "joHn", "last_name": "doE"})
    second = people.upsert({"first_name": "John", "last_name": "Doe"})

    assert second.result is UpsertResult.UNCHANGED
    (stored,) = store.all()
    assert (stored["first_name"], stored["last_name"]) == ("joHn", "doE")


def test_empty_string_and_null_are_distinct_identities() -> None:
    store = InMemoryStore(PEOPLE_COLUMNS)
    people = UpsertCoordinator(
        store, register("Person", store.columns(), insensitive_match=["first_name", "last_name"])
    )

    first = people.upsert({"first_name": "John", "last_name": ""})
    second = people.upsert({"first_name": "John"})
    third = people.upsert({"first_name": "John", "last_name": None})

    assert first.result is UpsertResult.CREATED
    assert second.result is UpsertResult.CREATED
    assert third.result is UpsertResult.UNCHANGED
    assert len(store) == 2


def test_conflict_raises_and_performs_no_write() -> None:
    store = InMemoryStore(MATERIAL_COLUMNS)
    store.create(Record({"name": "wood"}))
    store.create(Record({"name": "wood"}))
    materials = UpsertCoordinator(store, register("Material", store.columns(), match="name"))

    with pytest.raises(DuplicateConflict) as exc:
        materials.upsert({"name": "wood"})

    assert exc.value.count == 2
    assert exc.value.type_name == "Material"
    assert len(store) == 2


def test_conflict_releases_the_lock(lock_backend: InMemoryLockBackend) -> None:
    store = InMemoryStore(MATERIAL_COLUMNS)
    store.create(Record({"name": "wood"}))
    store.create(Record({"name": "wood"}))
    rtype = register(
        "Material",
        store.columns(),
        match="name",
        lock_config=LockConfig(concurrency=True, timeout=1.0),
        lock_backend=lock_backend,
    )

    with pytest.raises(DuplicateConflict):
        UpsertCoordinator(store, rtype).upsert({"name": "wood"})

    assert all(value == 0 for value, _ in lock_backend._values.values())  # noqa: SLF001


def test_spec_without_identity_always_creates() -> None:
    store = InMemoryStore(MATERIAL_COLUMNS)
    materials = UpsertCoordinator(store, register("Material", store.columns()))

    materials.upsert({"name": "wood"})
    second = materials.upsert({"name": "wood"})

    assert second.result is UpsertResult.CREATED
    assert len(store) == 2


def test_store_errors_propagate_unchanged() -> None:
    class BrokenStore(InMemoryStore):
        def create(self, record: Record) -> Record:
            raise OSError("disk full")

    store = BrokenStore(MATERIAL_COLUMNS)
    materials = UpsertCoordinator(store, register("Material", store.columns(), match="name"))

    with pytest.raises(OSError, match="disk full"):
        materials.upsert({"name": "wood"})


def test_functional_upsert_sanitises_spec_against_store() -> None:
    store = InMemoryStore(MATERIAL_COLUMNS)
    spec = MatchSpec(match_fields=("name", "colour"))

    first = upsert(store, {"name": "wood"}, spec, type_name="Material")
    second = upsert(store, {"name": "wood"}, spec, type_name="Material")

    assert (first.result, second.result) == (UpsertResult.CREATED, UpsertResult.UNCHANGED)


def test_outcomes_are_logged(caplog: pytest.LogCaptureFixture) -> None:
    store = InMemoryStore(MATERIAL_COLUMNS)
    materials = UpsertCoordinator(store, register("Material", store.columns(), match="name"))

    with caplog.at_level("INFO", logger="replaceable.domain.upsert"):
        materials.upsert({"name": "wood"})
        materials.upsert({"name": "wood"})

    messages = [record.getMessage() for record in caplog.records]
    assert messages == [
        "Created Material #1 - Name: wood",
        "Found unchanged Material #1 - Name: wood",
    ]


class SlowQueryStore(InMemoryStore):
    """Widens the find-then-create window so unsynchronised writers would race."""

    def __init__(self, columns: frozenset[str], barrier: threading.Barrier | None = None) -> None:
        super().__init__(columns)
        self.barrier = barrier

    def query(self, predicate: Predicate) -> list[Record]:
        found = super().query(predicate)
        if self.barrier is not None:
            try:
                self.barrier.wait(timeout=0.3)
            except threading.BrokenBarrierError:
                pass
        return found


def _race(coordinator: UpsertCoordinator, candidate: dict[str, object]) -> list[UpsertOutcome]:
    outcomes: list[UpsertOutcome] = []
    errors: list[BaseException] = []
    start = threading.Event()

    def worker() -> None:
        start.wait()
        try:
            outcomes.append(coordinator.upsert(dict(candidate)))
        except BaseException as exc:  # noqa: BLE001
            errors.append(exc)

    threads = [threading.Thread(target=worker) for _ in range(2)]
    for thread in threads:
        thread.start()
    start.set()
    for thread in threads:
        thread.join()
    assert errors == []
    return outcomes


def test_concurrent_upserts_with_lock_create_exactly_once(
    lock_backend: InMemoryLockBackend,
) -> None:
    store = SlowQueryStore(MATERIAL_COLUMNS, threading.Barrier(2))
    rtype = register(
        "Material",
        store.columns(),
        match="name",
        lock_config=LockConfig(concurrency=True, timeout=5.0, poll_interval=0.01),
        lock_backend=lock_backend,
    )

    outcomes = _race(UpsertCoordinator(store, rtype), {"name": "wood"})

    results = sorted(outcome.result.value for outcome in outcomes)
    assert results == ["created", "unchanged"]
    assert len(store) == 1


def test_concurrent_upserts_without_lock_can_duplicate() -> None:
    store = SlowQueryStore(MATERIAL_COLUMNS, threading.Barrier(2))
    rtype: ReplaceableType = register("Material", store.columns(), match="name")

    outcomes = _race(UpsertCoordinator(store, rtype), {"name": "wood"})

    assert [outcome.result for outcome in outcomes] == [UpsertResult.CREATED] * 2
    assert len(store) == 2


def test_slow_upsert_times_out_and_frees_lock(lock_backend: InMemoryLockBackend) -> None:
    release = threading.Event()

    class StallingStore(InMemoryStore):
        def query(self, predicate: Predicate) -> list[Record]:
            release.wait(5.0)
            return super().query(predicate)

    store = StallingStore(MATERIAL_COLUMNS)
    rtype = register(
        "Material",
        store.columns(),
        match="name",
        lock_config=LockConfig(concurrency=True, timeout=0.2, grace=0.5),
        lock_backend=lock_backend,
    )
    try:
        with pytest.raises(LockTimeout):
            UpsertCoordinator(store, rtype).upsert({"name": "wood"})
        assert all(value == 0 for value, _ in lock_backend._values.values())  # noqa: SLF001
    finally:
        release.set()


def test_field_left_out_of_second_candidate_is_cleared(item_store: InMemoryStore) -> None:
    items = _items(item_store)

    items.upsert(
        {"holding_institution_id": 1, "identification_number": "1234", "collection_id": 2,
         "name": "Stick", "fingerprint": "asdf"}
    )
    second = items.upsert(
        {"holding_institution_id": 1, "identification_number": "1234", "collection_id": 2}
    )

    assert second.result is UpsertResult.UPDATED
    assert second.changes == frozenset({"name"})
    (stored,) = item_store.all()
    assert stored["name"] is None
    assert stored["fingerprint"] == "asdf"


def test_functional_upsert_uses_the_store_primary_key() -> None:
    store = InMemoryStore({"name", "colour"}, primary_key="material_id")
    spec = MatchSpec(match_fields=("name",))

    first = upsert(store, {"name": "wood", "colour": "brown"}, spec, type_name="Material")
    second = upsert(store, {"name": "wood", "colour": "red"}, spec, type_name="Material")

    assert second.result is UpsertResult.UPDATED
    assert second.record.id == first.record.id == 1
    assert "id" not in second.record
    (stored,) = store.all()
    assert stored.as_dict() == {"material_id": 1, "name": "wood", "colour": "red"}


def test_locking_with_uncommitted_store_warns(
    lock_backend: InMemoryLockBackend, caplog: pytest.LogCaptureFixture
) -> None:
    class DeferredStore(InMemoryStore):
        autocommit = False

    store = DeferredStore(MATERIAL_COLUMNS)
    rtype = register(
        "Material",
        store.columns(),
        match="name",
        lock_config=LockConfig(concurrency=True, timeout=1.0),
        lock_backend=lock_backend,
    )

    with caplog.at_level("WARNING", logger="replaceable.domain.upsert"):
        UpsertCoordinator(store, rtype)
        UpsertCoordinator(InMemoryStore(MATERIAL_COLUMNS), rtype)

    assert len(caplog.records) == 1
    assert "does not commit its writes" in caplog.records[0].getMessage()


def test_timed_out_create_does_not_land_after_release(
    lock_backend: InMemoryLockBackend,
) -> None:
    unblock = threading.Event()
    finished = threading.Event()
    late_errors: list[BaseException] = []

    class BlockingStore(InMemoryStore):
        blocked = False

        def create(self, record: Record) -> Record:
            if not self.blocked:
                self.blocked = True
                unblock.wait(5.0)
                try:
                    return super().create(record)
                except BaseException as exc:
                    late_errors.append(exc)
                    raise
                finally:
                    finished.set()
            return super().create(record)

    store = BlockingStore(MATERIAL_COLUMNS)
    rtype = register(
        "Material",
        store.columns(),
        match="name",
        lock_config=LockConfig(concurrency=True, timeout=0.2, grace=0.5, poll_interval=0.01),
        lock_backend=lock_backend,
    )
    coordinator = UpsertCoordinator(store, rtype)

    try:
        with pytest.raises(LockTimeout):
            coordinator.upsert({"name": "wood"})
        second = coordinator.upsert({"name": "wood"})
    finally:
        unblock.set()

    assert finished.wait(5.0)
    assert second.result is UpsertResult.CREATED
    assert [type(exc) for exc in late_errors] == [LockTimeout]
    assert [row["name"] for row in store.all()] == ["wood"]
