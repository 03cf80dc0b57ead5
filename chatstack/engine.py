"""The engine: owns the registry, runs the event loop and fans work out to sessions."""

from __future__ import annotations

import datetime as dt
import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from typing import Any, List, Optional

from .dispatcher import CommandTable, Dispatcher, default_commands
from .errors import ConfigError, MailboxClosed, StorageError, TransportError
from .gateway import Gateway
from .registry import SessionRegistry
from .session import Session
from .state import StateFactory
from .storage import SessionStore, StoredSession, UserManager
from .users import UsersListState


logger = logging.getLogger(__name__)


FAREWELL = "Bot is restarting for maintenance. See you in a few minutes. 🧘"


@dataclass
class EngineConfig:
    gateway: Gateway
    users: UserManager
    sessions: SessionStore
    root_state: StateFactory
    users_state: Optional[StateFactory] = None
    commands: Optional[CommandTable] = None
    accept_window: float = 600.0
    store_interval: float = 60.0
    workers: int = 8
    drop_leaves_states: bool = False
    farewell: Optional[str] = FAREWELL
    # sessions active within this many days get their state re-entered on load
    welcome_back_days: int = 30

    def validate(self) -> None:
        if self.gateway is None:
            raise ConfigError("a gateway must be provided")
        if self.users is None:
            raise ConfigError("user manager must be provided")
        if self.sessions is None:
            raise ConfigError("session store must be provided")
        if self.root_state is None:
            raise ConfigError("root state factory must be provided")
        if self.workers < 1:
            raise ConfigError("at least one worker is required")
        if self.store_interval <= 0:
            raise ConfigError("store interval must be positive")


class Engine:
    """A bot instance: sessions, dispatching, broadcast and accept window.

    Nothing here is module-global, so several engines can live in one
    process (tests do that).
    """

    def __init__(self, config: EngineConfig) -> None:
        config.validate()
        self._config = config
        self._gateway = config.gateway
        self._pool = ThreadPoolExecutor(max_workers=config.workers, thread_name_prefix="session")
        self.registry = SessionRegistry(self._create_session)

        users_state = config.users_state or (lambda: UsersListState(config.users, config.accept_window))
        self.commands = config.commands or default_commands(config.root_state, users_state)
        self.dispatcher = Dispatcher(self.registry, config.users, self.commands, self.accepting)

        self._accept_lock = threading.Lock()
        self._accepting = False
        self._accept_timer: Optional[threading.Timer] = None
        self._accept_token: Optional[object] = None

        self._stopped = threading.Event()
        self._store_thread: Optional[threading.Thread] = None
        self._shutdown_lock = threading.Lock()
        self._shut_down = False

    # sessions

    def _build_session(
        self,
        user_id: int,
        chat_id: int,
        context: Any,
        last_activity: Optional[dt.datetime] = None,
    ) -> Session:
        return Session(
            user_id=user_id,
            chat_id=chat_id,
            context=context,
            gateway=self._gateway,
            root_factory=self._config.root_state,
            pool=self._pool,
            accept_users=self.open_accept_window,
            drop_leaves_states=self._config.drop_leaves_states,
            last_activity=last_activity,
        )

    def _create_session(self, user_id: int, chat_id: int) -> Session:
        return self._build_session(user_id, chat_id, self._config.sessions.create_context(user_id, chat_id))

    # accept window

    def accepting(self) -> bool:
        with self._accept_lock:
            return self._accepting

    def open_accept_window(self, duration: float) -> None:
        """Let unknown users register themselves for ``duration`` seconds."""

        with self._accept_lock:
            if self._stopped.is_set():
                return
            if self._accept_timer is not None:
                self._accept_timer.cancel()
            token = object()
            timer = threading.Timer(duration, self._close_accept_window, args=(token,))
            timer.daemon = True
            self._accept_token = token
            self._accept_timer = timer
            self._accepting = True
            timer.start()
        logger.info("Accepting new users for %.0f seconds", duration)

    def close_accept_window(self) -> None:
        with self._accept_lock:
            if self._accept_timer is not None:
                self._accept_timer.cancel()
            self._accept_timer = None
            self._accept_token = None
            self._accepting = False

    def _close_accept_window(self, token: object) -> None:
        with self._accept_lock:
            # a reopened window owns a newer token
            if token is not self._accept_token:
                return
            self._accepting = False
            self._accept_timer = None
            self._accept_token = None
        logger.info("Accept window closed")

    # broadcast

    def broadcast(
        self,
        text: Optional[str] = None,
        state_factory: Optional[StateFactory] = None,
        only_active: bool = False,
    ) -> List[Future]:
        """Queue a message and/or a stack reset on every session.

        Returns one future per session; nobody has to wait on them.
        """

        futures: List[Future] = []
        for session in self.registry.snapshot():
            try:
                futures.append(session.submit(self._deliver, session, text, state_factory, only_active))
            except MailboxClosed:
                logger.warning("chat %s: skipping broadcast, session is closed", session.chat_id)
        return futures

    def _deliver(
        self,
        session: Session,
        text: Optional[str],
        state_factory: Optional[StateFactory],
        only_active: bool,
    ) -> bool:
        if only_active and session.last_activity is None:
            return False
        try:
            if text:
                session.send_message(text, keep_keyboard=True)
            if state_factory is not None:
                session.reset(state_factory())
        except Exception:
            logger.exception("chat %s: broadcast failed", session.chat_id)
            return False
        return True

    # persistence

    def load_sessions(self) -> int:
        try:
            stored = self._config.sessions.load_all()
        except StorageError:
            logger.exception("Error loading sessions")
            return 0

        now = dt.datetime.now(dt.timezone.utc)
        recent = dt.timedelta(days=self._config.welcome_back_days)
        loaded = 0
        for record in stored:
            if not record.chat_id or not record.user_id:
                logger.warning("Ignoring invalid session %r", record)
                continue
            session = self._build_session(record.user_id, record.chat_id, record.context, record.last_activity)
            if self.registry.add(session) is not session:
                continue
            loaded += 1

            last = record.last_activity
            if last is not None and last.tzinfo is None:
                last = last.replace(tzinfo=dt.timezone.utc)
            if last is not None and now - last < recent:
                # tell recently active users the bot is back
                session.submit(session.activate)
            else:
                session.submit(session.activate, False)
        logger.info("Loaded %d session(s)", loaded)
        return loaded

    def store_sessions(self) -> None:
        for session in self.registry.snapshot():
            try:
                record = session.call(session.snapshot)
            except MailboxClosed:
                continue
            self._store(record)

    def _store(self, record: StoredSession) -> None:
        try:
            self._config.sessions.store(record)
        except StorageError:
            logger.exception("Error storing session for user %s", record.user_id)

    def _store_loop(self) -> None:
        while not self._stopped.wait(self._config.store_interval):
            self.store_sessions()

    # lifecycle

    def run(self) -> None:
        """Consume gateway events until :meth:`stop`, then shut down."""

        try:
            self._gateway.set_commands(self.commands.listed())
        except TransportError:
            logger.error("Error setting bot commands")

        self.load_sessions()
        self._store_thread = threading.Thread(target=self._store_loop, name="session-store", daemon=True)
        self._store_thread.start()

        try:
            # the gateway ends the stream after stop(), queued events still get dispatched
            for event in self._gateway.events():
                try:
                    self.dispatcher.submit(event)
                except Exception:
                    logger.exception("Error dispatching %r", event)
        finally:
            self.shutdown()

    def stop(self) -> None:
        logger.info("Bot shutdown initiated")
        self._stopped.set()
        self._gateway.stop()

    def shutdown(self) -> None:
        """Drain sessions, unwind their stacks, say goodbye and persist."""

        with self._shutdown_lock:
            if self._shut_down:
                return
            self._shut_down = True

        self._stopped.set()
        self._gateway.stop()
        self.close_accept_window()
        if self._store_thread is not None and self._store_thread is not threading.current_thread():
            self._store_thread.join()

        sessions = self.registry.snapshot()
        unwinds = []
        for session in sessions:
            try:
                # queued behind any in-flight event of this chat
                unwinds.append(session.submit(session.shutdown))
            except MailboxClosed:
                continue
        self._wait_logged(unwinds, "Unwinding")

        if self._config.farewell:
            self._wait_logged(self.broadcast(self._config.farewell, only_active=True), "Farewell")

        for session in sessions:
            session.mailbox.close()
            session.mailbox.join()
            self._store(session.snapshot())

        self._pool.shutdown(wait=True)
        logger.info("Engine stopped with %d session(s)", len(sessions))

    @staticmethod
    def _wait_logged(futures: List[Future], what: str) -> None:
        wait(futures)
        for future in futures:
            error = future.exception()
            if error is not None:
                logger.error("%s failed for a session: %s", what, error)
