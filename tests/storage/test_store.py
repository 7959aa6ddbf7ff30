from __future__ import annotations

from pathlib import Path

import pytest

from inbox_digest.errors import PersistenceError
from inbox_digest.storage.store import JsonDocumentStore


def test_get_missing_document_returns_none(tmp_path: Path) -> None:
    assert JsonDocumentStore(tmp_path).get("users", "a@x.test") is None


def test_set_replaces_unless_merge(tmp_path: Path) -> None:
    store = JsonDocumentStore(tmp_path)
    store.set("users", "a@x.test", {"refreshToken": "rt", "notificationTime": "09:00"})

    store.set("users", "a@x.test", {"summaryFormat": "concise"}, merge=True)
    assert store.get("users", "a@x.test")["refreshToken"] == "rt"

    store.set("users", "a@x.test", {"summaryFormat": "detailed"})
    doc = store.get("users", "a@x.test")
    assert "refreshToken" not in doc
    assert doc["summaryFormat"] == "detailed"
    assert doc["_key"] == "a@x.test"


def test_update_requires_existing_document(tmp_path: Path) -> None:
    store = JsonDocumentStore(tmp_path)

    with pytest.raises(PersistenceError):
        store.update("users", "ghost@x.test", {"lastSyncTime": "2024-05-10T09:00:00Z"})


def test_delete_field_and_delete(tmp_path: Path) -> None:
    store = JsonDocumentStore(tmp_path)
    store.set("users", "a@x.test", {"lastSyncTime": "2024-05-10T09:00:00Z", "refreshToken": "rt"})

    store.delete_field("users", "a@x.test", "lastSyncTime")
    assert store.get("users", "a@x.test") == {"refreshToken": "rt", "_key": "a@x.test"}

    store.delete("users", "a@x.test")
    store.delete("users", "a@x.test")
    assert store.get("users", "a@x.test") is None


def test_keys_are_sanitized_into_file_names(tmp_path: Path) -> None:
    store = JsonDocumentStore(tmp_path)
    store.set("users", "../../etc/passwd", {"x": 1})

    files = list((tmp_path / "users").glob("*.json"))
    assert len(files) == 1
    assert files[0].parent == tmp_path / "users"
    assert store.list("users") == [{"x": 1, "_key": "../../etc/passwd"}]


def test_corrupt_document_raises_persistence_error(tmp_path: Path) -> None:
    store = JsonDocumentStore(tmp_path)
    (tmp_path / "summaries").mkdir()
    (tmp_path / "summaries" / "a@x.test.json").write_text("{broken", encoding="utf-8")

    with pytest.raises(PersistenceError):
        store.get("summaries", "a@x.test")


def test_list_of_missing_collection_is_empty(tmp_path: Path) -> None:
    assert JsonDocumentStore(tmp_path).list("users") == []


def test_list_skips_unreadable_documents(tmp_path: Path) -> None:
    store = JsonDocumentStore(tmp_path)
    store.set("users", "a@x.test", {"refreshToken": "rt"})
    (tmp_path / "users" / "broken@x.test.json").write_text("{not json", encoding="utf-8")

    assert store.list("users") == [{"refreshToken": "rt", "_key": "a@x.test"}]
