"""Per-chat runtime: state stack, inline bindings and the API states talk to."""

from __future__ import annotations

import copy
import datetime as dt
import logging
from concurrent.futures import Executor, Future
from dataclasses import dataclass
from typing import Any, Callable, Optional

from .errors import TransportError
from .events import CommandEvent, Event, InteractionEvent, MessageEvent
from .gateway import EXPIRED_NOTE, Gateway
from .inline import InlineHandler, InlineMessage, InlineTracker
from .keyboards import InlineKeyboard, Markup, ReplyKeyboard
from .mailbox import Mailbox
from .stack import StateStack
from .state import State, StateFactory
from .storage import StoredSession


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SentMessage:
    message_id: Optional[int]
    text: str


class Session:
    """Everything the engine knows about one chat.

    Stack, bindings, ``last_activity`` and ``context`` are only touched from
    the session's mailbox. Outside code goes through :meth:`submit` or
    :meth:`call`; states already run on the mailbox and use the methods
    directly.
    """

    def __init__(
        self,
        user_id: int,
        chat_id: int,
        context: Any,
        gateway: Gateway,
        root_factory: StateFactory,
        pool: Executor,
        accept_users: Optional[Callable[[float], None]] = None,
        drop_leaves_states: bool = False,
        last_activity: Optional[dt.datetime] = None,
    ) -> None:
        self._user_id = user_id
        self._chat_id = chat_id
        self.context = context
        self.last_activity = last_activity
        self._gateway = gateway
        self._root_factory = root_factory
        self._accept_users = accept_users
        self.inline = InlineTracker()
        self.stack = StateStack(self, root_factory, self._clear_inline, drop_leaves_states)
        self.mailbox = Mailbox(pool, name=f"session-{chat_id}")

    @property
    def user_id(self) -> int:
        return self._user_id

    @property
    def chat_id(self) -> int:
        return self._chat_id

    def __repr__(self) -> str:
        return f"<Session user={self._user_id} chat={self._chat_id}>"

    # serialization point

    def submit(self, fn: Callable[..., Any], *args: Any) -> Future:
        return self.mailbox.submit(fn, *args)

    def call(self, fn: Callable[..., Any], *args: Any) -> Any:
        return self.mailbox.call(fn, *args)

    # navigation

    def current(self) -> State:
        return self.stack.current()

    def root_state(self) -> State:
        return self._root_factory()

    def push(self, state: State) -> None:
        self.stack.push(state)

    def pop(self) -> None:
        self.stack.pop()

    def replace(self, state: State) -> None:
        self.stack.replace(state)

    def reset(self, state: State) -> None:
        self.stack.reset(state)

    def drop(self, n: int) -> None:
        self.stack.drop(n)

    def reenter(self) -> None:
        self.current().enter(self)

    # outbound

    def send_message(
        self,
        text: str,
        keyboard: Optional[ReplyKeyboard] = None,
        inline_keyboard: Optional[InlineKeyboard] = None,
        keep_keyboard: bool = False,
        notify: bool = False,
    ) -> SentMessage:
        markup = Markup(keyboard=keyboard, inline_keyboard=inline_keyboard, keep_keyboard=keep_keyboard, notify=notify)
        try:
            message_id = self._gateway.send(self._chat_id, text, markup)
        except TransportError:
            logger.exception("chat %s: sending message failed", self._chat_id)
            return SentMessage(message_id=None, text=text)
        return SentMessage(message_id=message_id, text=text)

    def send_inline_message(
        self,
        text: str,
        handler: InlineHandler,
        inline_keyboard: Optional[InlineKeyboard] = None,
        notify: bool = False,
    ) -> InlineMessage:
        sent = self.send_message(text, inline_keyboard=inline_keyboard, notify=notify)
        message = InlineMessage(self, sent.message_id, sent.text, handler)
        if sent.message_id is not None:
            logger.debug("chat %s: binding inline message %s", self._chat_id, sent.message_id)
            self.inline.bind(sent.message_id, message)
        return message

    def update_message(
        self,
        message_id: Optional[int],
        text: str,
        inline_keyboard: Optional[InlineKeyboard] = None,
    ) -> SentMessage:
        if message_id is None:
            return self.send_message(text, inline_keyboard=inline_keyboard)
        try:
            self._gateway.edit(self._chat_id, message_id, text, Markup(inline_keyboard=inline_keyboard))
        except TransportError:
            logger.exception("chat %s: updating message %s failed", self._chat_id, message_id)
        return SentMessage(message_id=message_id, text=text)

    def answer_interaction(
        self,
        interaction: InteractionEvent,
        text: str,
        inline_keyboard: Optional[InlineKeyboard] = None,
    ) -> SentMessage:
        """Edit the message that carried the pressed button and stop the spinner."""

        sent = self.update_message(interaction.message_id, text, inline_keyboard)
        self.acknowledge(interaction.interaction_id)
        return sent

    def acknowledge(self, interaction_id: str, note: str = "", alert: bool = False) -> None:
        try:
            self._gateway.acknowledge(interaction_id, note, alert)
        except TransportError:
            logger.exception("chat %s: answering interaction %s failed", self._chat_id, interaction_id)

    def remove_keyboard(self, message_id: int) -> None:
        try:
            self._gateway.remove_keyboard(self._chat_id, message_id)
        except TransportError:
            logger.warning("chat %s: could not remove keyboard of message %s", self._chat_id, message_id)

    def send_error(self, error: Exception) -> None:
        logger.error("chat %s: %s", self._chat_id, error)
        self.send_message(f"error: {error}", keep_keyboard=True)

    def fail(self, message: str, log_format: str, *args: Any) -> None:
        """Log a failure, tell the user and leave the current state."""

        logger.error("chat %s: " + log_format, self._chat_id, *args)
        self.send_message(message)
        self.pop()

    def accept_users(self, duration: float) -> None:
        if self._accept_users is None:
            logger.warning("chat %s: accept window requested but not supported", self._chat_id)
            return
        self._accept_users(duration)

    def bot_name(self) -> str:
        return self._gateway.identity()

    # inbound

    def handle(self, event: Event) -> bool:
        """Route ``event`` through the current state and the inline bindings.

        Returns False when nothing claimed a message or command, so the
        dispatcher can try its own command table.
        """

        state = self.current()
        self.last_activity = dt.datetime.now(dt.timezone.utc)

        if isinstance(event, CommandEvent):
            return state.handle_command(self, event.command, list(event.args))
        if isinstance(event, MessageEvent):
            return state.handle_message(self, event)
        if isinstance(event, InteractionEvent):
            return self._handle_interaction(state, event)

        logger.warning("chat %s: unhandled event %r", self._chat_id, event)
        return False

    def _handle_interaction(self, state: State, interaction: InteractionEvent) -> bool:
        if state.handle_interaction(self, interaction):
            return True

        message = self.inline.resolve(interaction.message_id)
        if message is not None and message.handle(interaction.data):
            self.acknowledge(interaction.interaction_id)
            return True

        logger.info("chat %s: expired interaction on message %s", self._chat_id, interaction.message_id)
        if interaction.message_id is not None:
            self.remove_keyboard(interaction.message_id)
        self.acknowledge(interaction.interaction_id, EXPIRED_NOTE, alert=True)
        return True

    def _clear_inline(self) -> None:
        for message in self.inline.clear():
            message.remove_keyboard()

    # lifecycle

    def activate(self, enter: bool = True) -> None:
        """Materialize the current state and, unless ``enter`` is False, enter it.

        Runs detached from any event, so failures are logged here.
        """

        try:
            state = self.current()
            if enter:
                state.enter(self)
        except Exception:
            logger.exception("chat %s: error activating session", self._chat_id)

    def shutdown(self) -> None:
        self.stack.unwind()

    def snapshot(self) -> StoredSession:
        return StoredSession(
            user_id=self._user_id,
            chat_id=self._chat_id,
            last_activity=self.last_activity,
            context=copy.deepcopy(self.context),
        )
