"""Reply and inline keyboard descriptions used by states.

Keyboards here are plain data. The gateway turns them into platform markup,
so states never touch ``telebot.types`` directly.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable, Dict, Iterable, List, Optional, Sequence

if TYPE_CHECKING:
    from .events import MessageEvent
    from .session import Session


Button = str
ButtonRow = List[Button]


@dataclass(frozen=True)
class ReplyKeyboard:
    rows: Sequence[Sequence[Button]] = ()

    def buttons(self) -> List[List[Button]]:
        # conditional rows may be empty, the platform rejects those
        return [list(row) for row in self.rows if row]


@dataclass(frozen=True)
class InlineButton:
    label: str
    data: str


@dataclass(frozen=True)
class InlineKeyboard:
    rows: Sequence[Sequence[InlineButton]] = ()

    def buttons(self) -> List[List[InlineButton]]:
        return [list(row) for row in self.rows if row]

    def __bool__(self) -> bool:
        return any(self.rows)


@dataclass(frozen=True)
class Markup:
    """Everything a gateway needs to decorate an outgoing message."""

    keyboard: Optional[ReplyKeyboard] = None
    inline_keyboard: Optional[InlineKeyboard] = None
    keep_keyboard: bool = False
    notify: bool = False


NO_BUTTONS = ReplyKeyboard()


def reply_keyboard(*rows: Iterable[Button]) -> ReplyKeyboard:
    return ReplyKeyboard(tuple(tuple(row) for row in rows if row is not None))


def inline_keyboard(*rows: Iterable[InlineButton]) -> InlineKeyboard:
    return InlineKeyboard(tuple(tuple(row) for row in rows))


def row(*buttons: Button) -> ButtonRow:
    return list(buttons)


def conditional_row(condition: Callable[[], bool], buttons: ButtonRow) -> Optional[ButtonRow]:
    return buttons if condition() else None


def ternary_button(condition: bool, true_button: InlineButton, false_button: InlineButton) -> InlineButton:
    return true_button if condition else false_button


MessageCallback = Callable[["Session", "MessageEvent"], None]


@dataclass
class KeyHandler:
    """A reply keyboard that also knows what each of its buttons does.

    Buttons are appended to the last row unless :meth:`next_row` started a
    new one. :meth:`auto_layout` reflows all buttons into fixed-width rows.
    """

    rows: List[ButtonRow] = field(default_factory=list)
    handlers: Dict[Button, MessageCallback] = field(default_factory=dict)

    def next_row(self) -> "KeyHandler":
        if not self.rows or self.rows[-1]:
            self.rows.append([])
        return self

    def add_button(self, button: Button, handler: MessageCallback) -> "KeyHandler":
        self.handlers[button] = handler
        if not self.rows:
            self.rows.append([button])
        else:
            self.rows[-1].append(button)
        return self

    def auto_layout(self, cols: int) -> "KeyHandler":
        if cols <= 0:
            raise ValueError("cannot layout with zero columns")
        new_rows: List[ButtonRow] = []
        for current in self.rows:
            for button in current:
                if not new_rows or len(new_rows[-1]) >= cols:
                    new_rows.append([])
                new_rows[-1].append(button)
        self.rows = new_rows
        return self

    def reset(self) -> None:
        self.rows = []
        self.handlers = {}

    def keyboard(self) -> ReplyKeyboard:
        return reply_keyboard(*self.rows)

    def handle(self, session: "Session", message: "MessageEvent") -> bool:
        handler = self.handlers.get(message.text)
        if handler is None:
            return False
        handler(session, message)
        return True
