"""Reusable states: confirmation prompt, index selection and inline menus."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Callable, Generic, List, Optional, Sequence, Tuple, TypeVar

from telebot.formatting import escape_html

from .keyboards import InlineKeyboard, reply_keyboard, row
from .state import State

if TYPE_CHECKING:
    from .events import MessageEvent
    from .inline import InlineMessage
    from .session import Session


logger = logging.getLogger(__name__)


YES = "⚠ Yes"
CANCEL = "Cancel"


class PromptState(State):
    """Ask for confirmation, then drop back ``drop_states`` levels either way."""

    def __init__(self, on_yes: Callable[[], None], message: str = "Are you sure?", drop_states: int = 1) -> None:
        self._on_yes = on_yes
        self._message = message
        self._drop_states = drop_states

    def enter(self, session: "Session") -> None:
        session.send_message(self._message, keyboard=reply_keyboard(row(YES, CANCEL)))

    def handle_message(self, session: "Session", message: "MessageEvent") -> bool:
        if message.text == CANCEL:
            session.send_message("Aborted.")
            session.drop(self._drop_states)
            return True
        if message.text == YES:
            self._on_yes()
            session.drop(self._drop_states)
            return True
        return False


T = TypeVar("T")


class SelectState(State, Generic[T]):
    """Pick one of ``items`` by its index, hand it to ``accept`` and pop."""

    def __init__(
        self,
        text: str,
        items: Sequence[T],
        accept: Callable[["Session", T], None],
    ) -> None:
        self._text = text
        self._items = list(items)
        self._accept = accept

    def enter(self, session: "Session") -> None:
        session.send_message(self._text)
        session.send_message(f"Please enter index (0-{len(self._items) - 1})")

    def handle_message(self, session: "Session", message: "MessageEvent") -> bool:
        selector = message.text.strip()
        index = parse_index(selector, len(self._items))
        if index is None:
            session.send_message(f"Cannot find Item by '{escape_html(selector)}'. Enter valid item.")
            return True
        self._accept(session, self._items[index])
        session.pop()
        return True


def parse_index(selector: str, size: int) -> Optional[int]:
    try:
        index = int(selector)
    except ValueError:
        return None
    if index < 0 or index >= size:
        return None
    return index


InlineRenderer = Callable[["Session", str], Tuple[str, Optional[InlineKeyboard]]]


class InlineMenuState(State):
    """One or more inline-keyboard messages, each redrawn by its renderer.

    A renderer is called with an empty query when the menu is shown and with
    the button data on every press. It returns the new text and keyboard; an
    empty text leaves the message as it is, and a ``None`` keyboard removes
    its buttons.
    """

    def __init__(self, *renderers: InlineRenderer) -> None:
        if not renderers:
            raise ValueError("at least one renderer is required")
        self._renderers: List[InlineRenderer] = list(renderers)

    def enter(self, session: "Session") -> None:
        for renderer in self._renderers:
            try:
                text, keyboard = renderer(session, "")
            except Exception as exc:
                session.send_error(exc)
                return
            session.send_inline_message(text, self._bind(renderer), inline_keyboard=keyboard)

    @staticmethod
    def _bind(renderer: InlineRenderer):
        def on_press(session: "Session", message: "InlineMessage", data: str) -> bool:
            try:
                text, keyboard = renderer(session, data)
            except Exception as exc:
                session.send_error(exc)
                return True
            if text:
                message.update(text, keyboard)
            return True

        return on_press
