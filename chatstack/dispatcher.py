"""Routing of inbound events to sessions."""

from __future__ import annotations

import logging
from concurrent.futures import Future
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple

from .errors import MailboxClosed, StorageError
from .events import CommandEvent, Event
from .registry import SessionRegistry
from .session import Session
from .state import StateFactory
from .storage import UserManager


logger = logging.getLogger(__name__)


CommandHandler = Callable[[Session, List[str]], None]


@dataclass(frozen=True)
class Command:
    name: str
    description: str
    handler: CommandHandler
    listed: bool = True


class CommandTable:
    """Commands that apply in every state, consulted after the state declined."""

    def __init__(self) -> None:
        self._commands: Dict[str, Command] = {}

    def register(self, name: str, description: str, handler: CommandHandler, listed: bool = True) -> None:
        name = name.lstrip("/")
        self._commands[name] = Command(name, description, handler, listed)

    def __contains__(self, name: str) -> bool:
        return name in self._commands

    def handle(self, session: Session, name: str, args: List[str]) -> bool:
        command = self._commands.get(name)
        if command is None:
            logger.info("chat %s: unhandled command /%s", session.chat_id, name)
            return False
        command.handler(session, args)
        return True

    def listed(self) -> List[Tuple[str, str]]:
        return [(command.name, command.description) for command in self._commands.values() if command.listed]


HELP_TEXT = (
    "Commands:\n"
    "/home - go back to the main menu\n"
    "/back - stop the current operation, go to the previous screen\n"
    "/reload - show the current screen again\n"
    "/users - manage who may use this bot"
)


def default_commands(root_factory: StateFactory, users_factory: StateFactory, help_text: str = HELP_TEXT) -> CommandTable:
    table = CommandTable()
    table.register("home", "Go back to root state", lambda session, args: session.reset(root_factory()))
    table.register("users", "Goes to the user management", lambda session, args: session.reset(users_factory()))
    table.register("back", "Stop the current operation, go to the previous state", lambda session, args: session.pop())
    table.register(
        "reload", "Reloads the current state", lambda session, args: session.replace(session.current())
    )
    table.register("help", "Show general help", lambda session, args: session.send_message(help_text), listed=False)
    return table


class Dispatcher:
    """Admits senders, resolves their session and queues the event on it.

    Events of one chat run in arrival order on that chat's mailbox; events of
    different chats may run in parallel.
    """

    def __init__(
        self,
        registry: SessionRegistry,
        users: UserManager,
        commands: CommandTable,
        accepting: Callable[[], bool],
    ) -> None:
        self._registry = registry
        self._users = users
        self._commands = commands
        self._accepting = accepting

    def submit(self, event: Event) -> Optional["Future[bool]"]:
        if not event.well_formed:
            logger.warning("No sending user or chat - dropping event %r", event)
            return None
        if not self._admit(event):
            return None

        session, created = self._registry.get_or_create(event.user_id, event.chat_id)
        try:
            if created:
                session.submit(session.activate)
            return session.submit(self._route, session, event)
        except MailboxClosed:
            logger.warning("chat %s: session is shutting down - dropping event %r", event.chat_id, event)
            return None

    def dispatch(self, event: Event) -> bool:
        future = self.submit(event)
        if future is None:
            return False
        return future.result()

    def _admit(self, event: Event) -> bool:
        if self._users.user_exists(event.user_id):
            return True
        if not self._accepting():
            logger.info("User not allowed: %s (%s)", event.user_id, event.display_name)
            return False

        logger.info("Adding new user with %s (%s)", event.user_id, event.display_name)
        try:
            self._users.add_user(event.user_id, event.display_name)
        except StorageError:
            logger.exception("Error adding user %s", event.user_id)
            return False
        return True

    def _route(self, session: Session, event: Event) -> bool:
        try:
            if session.handle(event):
                return True
            if isinstance(event, CommandEvent):
                return self._commands.handle(session, event.command, list(event.args))
            logger.info("chat %s: unhandled event %r", session.chat_id, event)
            return False
        except Exception:
            logger.exception("chat %s: error while handling %r", session.chat_id, event)
            return False
