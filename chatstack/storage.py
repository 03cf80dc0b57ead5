"""User admission and session persistence collaborators.

The engine only depends on :class:`UserManager` and :class:`SessionStore`.
The JSON file stores below are what ``bot_app`` wires in by default.
"""

from __future__ import annotations

import datetime as dt
import json
import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol

from .errors import StorageError


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class User:
    id: int
    name: str


@dataclass
class StoredSession:
    user_id: int
    chat_id: int
    last_activity: Optional[dt.datetime]
    context: Any


class UserManager(Protocol):
    def list_users(self) -> List[User]: ...

    def add_user(self, user_id: int, name: str) -> None: ...

    def user_exists(self, user_id: int) -> bool: ...

    def delete_user(self, user_id: int) -> None: ...


class SessionStore(Protocol):
    def create_context(self, user_id: int, chat_id: int) -> Any: ...

    def load_all(self) -> List[StoredSession]: ...

    def store(self, session: StoredSession) -> None: ...


def _read_json(path: Path, default):
    if not path.exists():
        return default
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise StorageError(f"cannot read {path}: {exc}") from exc


def _write_json(path: Path, payload) -> None:
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_suffix(path.suffix + ".tmp")
        tmp.write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8")
        tmp.replace(path)
    except (OSError, TypeError, ValueError) as exc:
        raise StorageError(f"cannot write {path}: {exc}") from exc


class JsonUserStore:
    """Known users kept in a single JSON object ``{"<id>": "<name>"}``."""

    def __init__(self, path: Path, admins: Optional[Dict[int, str]] = None) -> None:
        self._path = Path(path)
        self._lock = threading.Lock()
        self._users: Dict[int, str] = {
            int(user_id): str(name) for user_id, name in _read_json(self._path, {}).items()
        }
        for user_id, name in (admins or {}).items():
            self._users.setdefault(user_id, name)

    def list_users(self) -> List[User]:
        with self._lock:
            return [User(id=user_id, name=name) for user_id, name in sorted(self._users.items())]

    def add_user(self, user_id: int, name: str) -> None:
        with self._lock:
            users = dict(self._users)
            users[user_id] = name
            self._flush(users)
            self._users = users
        logger.info("Registered user %s (%s)", user_id, name)

    def user_exists(self, user_id: int) -> bool:
        with self._lock:
            return user_id in self._users

    def delete_user(self, user_id: int) -> None:
        with self._lock:
            if user_id not in self._users:
                raise StorageError(f"unknown user {user_id}")
            users = {known: name for known, name in self._users.items() if known != user_id}
            self._flush(users)
            self._users = users
        logger.info("Deleted user %s", user_id)

    def _flush(self, users: Dict[int, str]) -> None:
        # memory only changes once the file is written
        _write_json(self._path, {str(user_id): name for user_id, name in users.items()})


class JsonSessionStore:
    """Session snapshots keyed by chat id in one JSON file.

    Contexts are stored as-is, so they must be JSON serializable.
    """

    def __init__(self, path: Path) -> None:
        self._path = Path(path)
        self._lock = threading.Lock()

    def create_context(self, user_id: int, chat_id: int) -> Dict[str, Any]:
        return {}

    def load_all(self) -> List[StoredSession]:
        with self._lock:
            payload = _read_json(self._path, {})
        sessions: List[StoredSession] = []
        for key, item in payload.items():
            try:
                last_activity = item.get("last_activity")
                sessions.append(
                    StoredSession(
                        user_id=int(item["user_id"]),
                        chat_id=int(item["chat_id"]),
                        last_activity=dt.datetime.fromisoformat(last_activity) if last_activity else None,
                        context=item.get("context") or {},
                    )
                )
            except (AttributeError, KeyError, TypeError, ValueError):
                logger.warning("Skipping malformed stored session %r", key)
        return sessions

    def store(self, session: StoredSession) -> None:
        with self._lock:
            payload = _read_json(self._path, {})
            payload[str(session.chat_id)] = {
                "user_id": session.user_id,
                "chat_id": session.chat_id,
                "last_activity": session.last_activity.isoformat() if session.last_activity else None,
                "context": session.context,
            }
            _write_json(self._path, payload)
