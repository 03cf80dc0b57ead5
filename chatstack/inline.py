"""Correlation of button presses with the interactive message that produced them."""

from __future__ import annotations

import threading
from typing import TYPE_CHECKING, Callable, Dict, List, Optional

from .keyboards import InlineKeyboard

if TYPE_CHECKING:
    from .session import Session


InlineHandler = Callable[["Session", "InlineMessage", str], bool]


class InlineMessage:
    """A sent message whose inline buttons are routed to ``handler``."""

    def __init__(self, session: "Session", message_id: Optional[int], text: str, handler: InlineHandler) -> None:
        self.session = session
        self.message_id = message_id
        self.text = text
        self._handler = handler

    def update(self, text: str, keyboard: Optional[InlineKeyboard] = None) -> None:
        message = self.session.update_message(self.message_id, text, inline_keyboard=keyboard)
        self.text = message.text

    def remove_keyboard(self) -> None:
        if self.message_id is not None:
            self.session.remove_keyboard(self.message_id)

    def handle(self, data: str) -> bool:
        return self._handler(self.session, self, data)

    def __repr__(self) -> str:
        return f"<InlineMessage {self.message_id}>"


class InlineTracker:
    """Live bindings ``message_id -> InlineMessage`` for one session.

    A missing binding is the normal signal for an expired interaction.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._bindings: Dict[int, InlineMessage] = {}

    def bind(self, message_id: int, message: InlineMessage) -> None:
        with self._lock:
            self._bindings[message_id] = message

    def resolve(self, message_id: Optional[int]) -> Optional[InlineMessage]:
        if message_id is None:
            return None
        with self._lock:
            return self._bindings.get(message_id)

    def clear(self) -> List[InlineMessage]:
        with self._lock:
            removed = list(self._bindings.values())
            self._bindings = {}
        return removed

    def message_ids(self) -> List[int]:
        with self._lock:
            return list(self._bindings)

    def __len__(self) -> int:
        with self._lock:
            return len(self._bindings)
