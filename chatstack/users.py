"""User administration states reachable through ``/users``."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, List

from telebot.formatting import escape_html

from .errors import StorageError, TransportError
from .keyboards import reply_keyboard, row
from .state import State
from .states import PromptState, parse_index
from .storage import User, UserManager

if TYPE_CHECKING:
    from .events import MessageEvent
    from .session import Session


logger = logging.getLogger(__name__)


ADD = "➕ Add"
BACK = "↩ Back"
DELETE = "❌ Delete"

DIVIDER = "──────────"


def format_users(users: List[User]) -> str:
    lines = ["All Users", DIVIDER]
    if not users:
        lines.append("- no users registered -")
    for index, user in enumerate(users):
        lines.append(f"[{index}] {escape_html(user.name)} ({user.id})")
    return "\n".join(lines)


class UsersListState(State):
    def __init__(self, users: UserManager, accept_window: float = 600.0) -> None:
        self._manager = users
        self._accept_window = accept_window
        self._users: List[User] = []

    def enter(self, session: "Session") -> None:
        try:
            self._users = self._manager.list_users()
        except StorageError as exc:
            session.fail("Cannot list users", "error reading users: %s", exc)
            return
        session.send_message(format_users(self._users), keyboard=reply_keyboard(row(BACK), row(ADD, DELETE)))

    def handle_message(self, session: "Session", message: "MessageEvent") -> bool:
        if message.text == BACK:
            session.pop()
        elif message.text == ADD:
            try:
                bot_name = session.bot_name()
            except TransportError as exc:
                session.fail("Cannot find bot identity", "error getting bot name: %s", exc)
                return True
            minutes = max(1, round(self._accept_window / 60))
            session.send_message(
                "The bot is now set to ACCEPT-mode, allowing new users to join.\n"
                f"This will be disabled automatically after {minutes} minutes.\n"
                f"Tell your friend to contact bot @{bot_name} now."
            )
            session.accept_users(self._accept_window)
        elif message.text == DELETE:
            session.push(SelectUserToDeleteState(self._manager, self._users))
        else:
            return False
        return True


class SelectUserToDeleteState(State):
    def __init__(self, users: UserManager, candidates: List[User]) -> None:
        self._manager = users
        self._candidates = list(candidates)

    def enter(self, session: "Session") -> None:
        session.send_message("Select user to delete", keyboard=reply_keyboard(row(BACK)))

    def handle_message(self, session: "Session", message: "MessageEvent") -> bool:
        if message.text == BACK:
            session.pop()
            return True

        selector = message.text.strip()
        index = parse_index(selector, len(self._candidates))
        if index is None:
            session.send_message(f"Cannot find user by '{escape_html(selector)}'. Enter valid index.")
            return True

        user = self._candidates[index]

        def delete() -> None:
            try:
                self._manager.delete_user(user.id)
            except StorageError:
                logger.exception("error deleting user %s", user.id)
                session.send_message("error deleting user")

        session.replace(PromptState(delete, message=f"Delete {escape_html(user.name)} ({user.id})?"))
        return True
