"""Transport between the engine and Telegram."""

from __future__ import annotations

import logging
import queue
import threading
from typing import Iterator, List, Optional, Protocol, Sequence, Tuple

import requests
from telebot import TeleBot, apihelper, types as tb_types

from .errors import TransportError
from .events import CommandEvent, Event, InteractionEvent, MessageEvent, display_name, split_command
from .keyboards import Markup


logger = logging.getLogger(__name__)


EXPIRED_NOTE = "message expired, buttons disabled"


class Gateway(Protocol):
    def events(self) -> Iterator[Event]: ...

    def send(self, chat_id: int, text: str, markup: Markup) -> Optional[int]: ...

    def edit(self, chat_id: int, message_id: int, text: str, markup: Markup) -> None: ...

    def remove_keyboard(self, chat_id: int, message_id: int) -> None: ...

    def acknowledge(self, interaction_id: str, note: str = "", alert: bool = False) -> None: ...

    def identity(self) -> str: ...

    def set_commands(self, commands: Sequence[Tuple[str, str]]) -> None: ...

    def stop(self) -> None: ...


def build_reply_markup(markup: Markup):
    if markup.keyboard is not None and markup.keyboard.buttons():
        keyboard = tb_types.ReplyKeyboardMarkup(resize_keyboard=True)
        for buttons in markup.keyboard.buttons():
            keyboard.row(*[tb_types.KeyboardButton(label) for label in buttons])
        return keyboard
    if markup.inline_keyboard:
        return build_inline_markup(markup)
    if not markup.keep_keyboard:
        return tb_types.ReplyKeyboardRemove()
    return None


def build_inline_markup(markup: Markup) -> Optional[tb_types.InlineKeyboardMarkup]:
    if not markup.inline_keyboard:
        return None
    keyboard = tb_types.InlineKeyboardMarkup()
    for buttons in markup.inline_keyboard.buttons():
        keyboard.row(
            *[tb_types.InlineKeyboardButton(button.label, callback_data=button.data) for button in buttons]
        )
    return keyboard


def _starts_with_command(message) -> bool:
    entities = message.entities
    return bool(entities) and entities[0].type == "bot_command" and entities[0].offset == 0


def event_from_message(message) -> Event:
    user = message.from_user
    chat = message.chat
    user_id = user.id if user is not None else None
    chat_id = chat.id if chat is not None else None
    name = display_name(user.username, user.first_name, user.last_name) if user is not None else "Unknown"
    text = (message.text or "").strip()

    if _starts_with_command(message):
        command, args = split_command(text)
        return CommandEvent(
            user_id=user_id,
            chat_id=chat_id,
            display_name=name,
            command=command,
            args=args,
            message_id=message.message_id,
        )
    return MessageEvent(
        user_id=user_id,
        chat_id=chat_id,
        display_name=name,
        text=text,
        message_id=message.message_id,
    )


def event_from_callback(call) -> Event:
    user = call.from_user
    message = call.message
    chat_id = message.chat.id if message is not None and message.chat is not None else None
    if chat_id is None and user is not None:
        # inline-mode messages carry no chat; private chats share the user id
        chat_id = user.id
    return InteractionEvent(
        user_id=user.id if user is not None else None,
        chat_id=chat_id,
        display_name=display_name(user.username, user.first_name, user.last_name) if user is not None else "Unknown",
        interaction_id=str(call.id),
        data=call.data or "",
        message_id=message.message_id if message is not None else None,
    )


_STOP = object()


class TelebotGateway:
    """Gateway backed by a polling :class:`telebot.TeleBot`.

    Updates arrive on telebot's polling thread and are queued; :meth:`events`
    yields them in arrival order until :meth:`stop` is called.
    """

    def __init__(self, bot: TeleBot, polling_timeout: int = 30) -> None:
        self._bot = bot
        self._polling_timeout = polling_timeout
        self._queue: "queue.Queue[object]" = queue.Queue()
        self._poller: Optional[threading.Thread] = None
        self._identity: Optional[str] = None

        @bot.message_handler(content_types=["text"])
        def _on_message(message):
            self._queue.put(event_from_message(message))

        @bot.callback_query_handler(func=lambda call: True)
        def _on_callback(call):
            self._queue.put(event_from_callback(call))

    def events(self) -> Iterator[Event]:
        if self._poller is None:
            self._poller = threading.Thread(
                target=self._bot.infinity_polling,
                kwargs={"timeout": self._polling_timeout, "long_polling_timeout": self._polling_timeout},
                name="telebot-polling",
                daemon=True,
            )
            self._poller.start()
        while True:
            item = self._queue.get()
            if item is _STOP:
                return
            yield item  # type: ignore[misc]

    def stop(self) -> None:
        self._bot.stop_polling()
        self._queue.put(_STOP)

    def send(self, chat_id: int, text: str, markup: Markup) -> Optional[int]:
        try:
            sent = self._bot.send_message(
                chat_id,
                text,
                reply_markup=build_reply_markup(markup),
                disable_notification=not markup.notify,
            )
        except (apihelper.ApiException, requests.RequestException) as exc:
            raise TransportError(f"error sending message to chat {chat_id}: {exc}") from exc
        return sent.message_id

    def edit(self, chat_id: int, message_id: int, text: str, markup: Markup) -> None:
        try:
            self._bot.edit_message_text(
                text,
                chat_id=chat_id,
                message_id=message_id,
                reply_markup=build_inline_markup(markup),
            )
        except (apihelper.ApiException, requests.RequestException) as exc:
            raise TransportError(f"error updating message {message_id}: {exc}") from exc

    def remove_keyboard(self, chat_id: int, message_id: int) -> None:
        try:
            self._bot.edit_message_reply_markup(chat_id=chat_id, message_id=message_id, reply_markup=None)
        except (apihelper.ApiException, requests.RequestException) as exc:
            raise TransportError(f"error removing keyboard of message {message_id}: {exc}") from exc

    def acknowledge(self, interaction_id: str, note: str = "", alert: bool = False) -> None:
        try:
            self._bot.answer_callback_query(interaction_id, text=note or None, show_alert=alert)
        except (apihelper.ApiException, requests.RequestException) as exc:
            raise TransportError(f"error answering callback {interaction_id}: {exc}") from exc

    def identity(self) -> str:
        if self._identity is None:
            try:
                me = self._bot.get_me()
            except (apihelper.ApiException, requests.RequestException) as exc:
                raise TransportError(f"error getting bot identity: {exc}") from exc
            self._identity = me.username
        return self._identity

    def set_commands(self, commands: Sequence[Tuple[str, str]]) -> None:
        bot_commands: List[tb_types.BotCommand] = [
            tb_types.BotCommand(name, description) for name, description in commands
        ]
        try:
            self._bot.set_my_commands(bot_commands)
        except (apihelper.ApiException, requests.RequestException) as exc:
            raise TransportError(f"error setting bot commands: {exc}") from exc
