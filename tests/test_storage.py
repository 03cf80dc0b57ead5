"""JSON file stores."""

from __future__ import annotations

import datetime as dt
import json
from pathlib import Path

import pytest

from chatstack.errors import StorageError
from chatstack.storage import JsonSessionStore, JsonUserStore, StoredSession


def test_user_store_persists_users(tmp_path: Path) -> None:
    path = tmp_path / "users.json"
    store = JsonUserStore(path)
    store.add_user(10, "ada")
    store.add_user(11, "bob")
    store.delete_user(11)

    reloaded = JsonUserStore(path)
    assert reloaded.user_exists(10)
    assert not reloaded.user_exists(11)
    assert [user.name for user in reloaded.list_users()] == ["ada"]


def test_user_store_delete_unknown(tmp_path: Path) -> None:
    store = JsonUserStore(tmp_path / "users.json", admins={1: "root"})
    assert store.user_exists(1)
    with pytest.raises(StorageError):
        store.delete_user(2)


def test_unreadable_user_file(tmp_path: Path) -> None:
    path = tmp_path / "users.json"
    path.write_text("{not json", encoding="utf-8")
    with pytest.raises(StorageError):
        JsonUserStore(path)


def test_session_store_keeps_latest_snapshot_per_chat(tmp_path: Path) -> None:
    store = JsonSessionStore(tmp_path / "sessions.json")
    when = dt.datetime(2026, 1, 2, 3, 4, 5, tzinfo=dt.timezone.utc)
    store.store(StoredSession(user_id=1, chat_id=100, last_activity=None, context={"n": 1}))
    store.store(StoredSession(user_id=1, chat_id=100, last_activity=when, context={"n": 2}))
    store.store(StoredSession(user_id=2, chat_id=200, last_activity=None, context={}))

    loaded = {session.chat_id: session for session in store.load_all()}

    assert set(loaded) == {100, 200}
    assert loaded[100].context == {"n": 2}
    assert loaded[100].last_activity == when
    assert loaded[200].last_activity is None


def test_session_store_skips_malformed_records(tmp_path: Path) -> None:
    path = tmp_path / "sessions.json"
    path.write_text(
        json.dumps(
            {
                "1": {"user_id": 1, "chat_id": 1, "last_activity": None, "context": None},
                "2": {"chat_id": 2},
                "3": {"user_id": 3, "chat_id": 3, "last_activity": "yesterday"},
            }
        ),
        encoding="utf-8",
    )

    loaded = JsonSessionStore(path).load_all()

    assert [session.chat_id for session in loaded] == [1]
    assert loaded[0].context == {}


def test_unserializable_context_is_a_storage_error(tmp_path: Path) -> None:
    store = JsonSessionStore(tmp_path / "sessions.json")
    with pytest.raises(StorageError):
        store.store(StoredSession(user_id=1, chat_id=1, last_activity=None, context={"x": object()}))


def test_failed_write_leaves_users_unchanged(tmp_path: Path) -> None:
    blocker = tmp_path / "ro"
    blocker.write_text("not a directory", encoding="utf-8")
    store = JsonUserStore(blocker / "users.json", admins={7: "root"})

    with pytest.raises(StorageError):
        store.add_user(42, "mallory")
    assert not store.user_exists(42)

    with pytest.raises(StorageError):
        store.delete_user(7)
    assert store.user_exists(7)
    assert [user.id for user in store.list_users()] == [7]
