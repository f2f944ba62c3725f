from __future__ import annotations

import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from userdesk.store import SERVER_TIMESTAMP, DocumentStore, StoreClock, StoreError, StoreUnavailable


@pytest.fixture()
def store(tmp_path: Path) -> DocumentStore:
    db = DocumentStore(tmp_path / "userdesk.sqlite3")
    db.initialize()
    return db


def test_add_allocates_opaque_id_and_resolves_timestamps(store: DocumentStore) -> None:
    users = store.collection("users")
    document = users.add({"name": "Ada", "createdAt": SERVER_TIMESTAMP, "updatedAt": SERVER_TIMESTAMP})

    assert len(document.id) == 20
    assert document.data["createdAt"] == document.data["updatedAt"]
    datetime.fromisoformat(document.data["createdAt"])

    fetched = users.get(document.id)
    assert fetched is not None
    assert fetched.to_dict() == {"id": document.id, **document.data}


def test_list_returns_documents_in_insertion_order(store: DocumentStore) -> None:
    users = store.collection("users")
    ids = [users.add({"name": name}).id for name in ("first", "second", "third")]

    assert [document.id for document in users.list()] == ids


def test_collections_are_isolated(store: DocumentStore) -> None:
    store.collection("users").add({"name": "Ada"})

    assert store.collection("teams").list() == []


def test_update_merges_fields_and_returns_none_when_missing(store: DocumentStore) -> None:
    users = store.collection("users")
    created = users.add({"name": "Ada", "email": "ada@x.com"})

    updated = users.update(created.id, {"name": "Ada Lovelace"})
    assert updated is not None
    assert updated.data == {"name": "Ada Lovelace", "email": "ada@x.com"}
    assert users.update("missing", {"name": "nobody"}) is None


def test_delete_is_permanent(store: DocumentStore) -> None:
    users = store.collection("users")
    created = users.add({"name": "Ada"})

    assert users.delete(created.id) is True
    assert users.get(created.id) is None
    assert users.delete(created.id) is False


def test_store_clock_is_strictly_increasing() -> None:
    frozen = datetime(2024, 1, 1, tzinfo=timezone.utc)
    clock = StoreClock(lambda: frozen)

    first = clock()
    second = clock()

    assert first == frozen
    assert second == frozen + timedelta(microseconds=1)


def test_sqlite_failures_surface_as_store_error(tmp_path: Path) -> None:
    store = DocumentStore(tmp_path / "uninitialised.sqlite3")

    with pytest.raises(StoreError):
        store.collection("users").list()


def test_collection_name_must_not_be_empty(store: DocumentStore) -> None:
    with pytest.raises(ValueError):
        store.collection("  ")


def test_unopenable_database_is_reported_as_unavailable(tmp_path: Path) -> None:
    store = DocumentStore(tmp_path)

    with pytest.raises(StoreUnavailable):
        store.initialize()


def test_update_stamps_after_stored_timestamp_when_clock_is_behind(tmp_path: Path) -> None:
    path = tmp_path / "shared.sqlite3"
    noon = datetime(2024, 1, 1, 12, tzinfo=timezone.utc)
    first = DocumentStore(path, clock=StoreClock(lambda: noon))
    first.initialize()
    created = first.collection("users").add(
        {"name": "Ada", "createdAt": SERVER_TIMESTAMP, "updatedAt": SERVER_TIMESTAMP}
    )

    # a second process whose clock runs an hour behind
    lagging = DocumentStore(path, clock=StoreClock(lambda: noon - timedelta(hours=1)))
    updated = lagging.collection("users").update(
        created.id, {"name": "Ada L", "updatedAt": SERVER_TIMESTAMP}
    )

    assert updated is not None
    assert datetime.fromisoformat(updated.data["updatedAt"]) == noon + timedelta(microseconds=1)
    assert updated.data["createdAt"] == created.data["createdAt"]
