"""Process-wide mapping of chat ids to sessions."""

from __future__ import annotations

import logging
import threading
from typing import Callable, Dict, List, Optional, Tuple

from .session import Session


logger = logging.getLogger(__name__)


SessionFactory = Callable[[int, int], Session]


class SessionRegistry:
    """Owns every live :class:`Session` of one engine.

    The lock only guards the dict; it is never held while a session runs
    state code or talks to the gateway.
    """

    def __init__(self, factory: SessionFactory) -> None:
        self._factory = factory
        self._lock = threading.Lock()
        self._sessions: Dict[int, Session] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def __contains__(self, chat_id: int) -> bool:
        with self._lock:
            return chat_id in self._sessions

    def get(self, chat_id: int) -> Optional[Session]:
        with self._lock:
            return self._sessions.get(chat_id)

    def get_or_create(self, user_id: int, chat_id: int) -> Tuple[Session, bool]:
        """Return the session for ``chat_id`` and whether it was just created."""

        existing = self.get(chat_id)
        if existing is not None:
            return existing, False

        candidate = self._factory(user_id, chat_id)
        with self._lock:
            session = self._sessions.setdefault(chat_id, candidate)
        if session is not candidate:
            # lost a race against another creator; keep the live one
            return session, False
        logger.info("Created session for user %s in chat %s", user_id, chat_id)
        return session, True

    def add(self, session: Session) -> Session:
        """Insert a prebuilt session unless one already exists for its chat."""

        with self._lock:
            return self._sessions.setdefault(session.chat_id, session)

    def remove(self, chat_id: int) -> Optional[Session]:
        with self._lock:
            return self._sessions.pop(chat_id, None)

    def snapshot(self) -> List[Session]:
        with self._lock:
            return list(self._sessions.values())

    def for_each(self, fn: Callable[[Session], None]) -> None:
        for session in self.snapshot():
            fn(session)
