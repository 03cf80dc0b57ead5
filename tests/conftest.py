"""Pytest configuration and fixtures."""

from __future__ import annotations

import itertools
import queue
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, List, Optional

import pytest

from chatstack.engine import Engine, EngineConfig
from chatstack.errors import StorageError, TransportError
from chatstack.events import CommandEvent, InteractionEvent, MessageEvent
from chatstack.keyboards import Markup
from chatstack.session import Session
from chatstack.state import State
from chatstack.storage import StoredSession, User


_STOP = object()


class FakeGateway:
    """Records everything the engine sends; events are fed by the test."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._ids = itertools.count(100)
        self._queue: "queue.Queue[object]" = queue.Queue()
        self.sent: List[tuple] = []
        self.edits: List[tuple] = []
        self.removed: List[tuple] = []
        self.acks: List[tuple] = []
        self.commands: Optional[list] = None
        self.fail_sends = False

    def feed(self, event) -> None:
        self._queue.put(event)

    def events(self):
        while True:
            item = self._queue.get()
            if item is _STOP:
                return
            yield item

    def stop(self) -> None:
        self._queue.put(_STOP)

    def send(self, chat_id: int, text: str, markup: Markup) -> int:
        if self.fail_sends:
            raise TransportError("network down")
        with self._lock:
            message_id = next(self._ids)
            self.sent.append((chat_id, text, markup, message_id))
        return message_id

    def edit(self, chat_id: int, message_id: int, text: str, markup: Markup) -> None:
        with self._lock:
            self.edits.append((chat_id, message_id, text, markup))

    def remove_keyboard(self, chat_id: int, message_id: int) -> None:
        with self._lock:
            self.removed.append((chat_id, message_id))

    def acknowledge(self, interaction_id: str, note: str = "", alert: bool = False) -> None:
        with self._lock:
            self.acks.append((interaction_id, note, alert))

    def identity(self) -> str:
        return "test_bot"

    def set_commands(self, commands) -> None:
        self.commands = list(commands)

    def texts(self, chat_id: Optional[int] = None) -> List[str]:
        with self._lock:
            return [text for chat, text, _, _ in self.sent if chat_id is None or chat == chat_id]


class MemoryUserStore:
    def __init__(self, known=()) -> None:
        self.users: Dict[int, str] = {user_id: f"user{user_id}" for user_id in known}
        self.added: List[int] = []

    def list_users(self) -> List[User]:
        return [User(id=user_id, name=name) for user_id, name in sorted(self.users.items())]

    def add_user(self, user_id: int, name: str) -> None:
        self.users[user_id] = name
        self.added.append(user_id)

    def user_exists(self, user_id: int) -> bool:
        return user_id in self.users

    def delete_user(self, user_id: int) -> None:
        if self.users.pop(user_id, None) is None:
            raise StorageError(f"unknown user {user_id}")


class MemorySessionStore:
    def __init__(self, records=()) -> None:
        self.records: List[StoredSession] = list(records)
        self.stored: Dict[int, StoredSession] = {}
        self.fail_load = False
        self.fail_store = False

    def create_context(self, user_id: int, chat_id: int) -> dict:
        return {"created_for": chat_id}

    def load_all(self) -> List[StoredSession]:
        if self.fail_load:
            raise StorageError("disk gone")
        return list(self.records)

    def store(self, session: StoredSession) -> None:
        if self.fail_store:
            raise StorageError("disk full")
        self.stored[session.chat_id] = session


class RecordingState(State):
    """Appends every hook call to ``journal`` as ``(hook, name)``."""

    def __init__(self, name: str, journal: list, custom_return: bool = True) -> None:
        self.name = name
        self.journal = journal
        self.custom_return = custom_return

    def enter(self, session) -> None:
        self.journal.append(("enter", self.name))

    def leave(self, session) -> None:
        self.journal.append(("leave", self.name))

    def return_to(self, session) -> None:
        if self.custom_return:
            self.journal.append(("return", self.name))
        else:
            super().return_to(session)

    def handle_message(self, session, message) -> bool:
        self.journal.append(("message", self.name, message.text))
        return True

    def __repr__(self) -> str:
        return f"<RecordingState {self.name}>"


def message(text: str, user_id: int = 1, chat_id: int = 1) -> MessageEvent:
    return MessageEvent(user_id=user_id, chat_id=chat_id, display_name=f"user{user_id}", text=text)


def command(name: str, *args: str, user_id: int = 1, chat_id: int = 1) -> CommandEvent:
    return CommandEvent(user_id=user_id, chat_id=chat_id, display_name=f"user{user_id}", command=name, args=list(args))


def press(data: str, message_id: Optional[int], user_id: int = 1, chat_id: int = 1, interaction_id: str = "q1") -> InteractionEvent:
    return InteractionEvent(
        user_id=user_id,
        chat_id=chat_id,
        display_name=f"user{user_id}",
        interaction_id=interaction_id,
        data=data,
        message_id=message_id,
    )


@pytest.fixture
def journal() -> list:
    return []


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def user_store() -> MemoryUserStore:
    return MemoryUserStore(known=[1, 2, 3])


@pytest.fixture
def session_store() -> MemorySessionStore:
    return MemorySessionStore()


@pytest.fixture
def pool():
    executor = ThreadPoolExecutor(max_workers=4)
    yield executor
    executor.shutdown(wait=True)


@pytest.fixture
def make_session(gateway, pool, journal):
    def factory(root=None, drop_leaves_states: bool = False, chat_id: int = 1) -> Session:
        return Session(
            user_id=chat_id,
            chat_id=chat_id,
            context={},
            gateway=gateway,
            root_factory=root or (lambda: RecordingState("R", journal)),
            pool=pool,
            drop_leaves_states=drop_leaves_states,
        )

    return factory


@pytest.fixture
def make_engine(gateway, user_store, session_store, journal):
    engines: List[Engine] = []

    def factory(root=None, **options) -> Engine:
        options.setdefault("farewell", None)
        engine = Engine(
            EngineConfig(
                gateway=gateway,
                users=user_store,
                sessions=session_store,
                root_state=root or (lambda: RecordingState("R", journal)),
                **options,
            )
        )
        engines.append(engine)
        return engine

    yield factory
    for engine in engines:
        engine.shutdown()
