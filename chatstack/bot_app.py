"""Wiring of the engine with telebot, JSON stores and a small demo menu."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional, Tuple

import requests
from telebot import TeleBot, apihelper
from telebot.formatting import escape_html

from .dispatcher import default_commands
from .engine import Engine, EngineConfig
from .events import MessageEvent
from .gateway import TelebotGateway
from .keyboards import InlineButton, InlineKeyboard, KeyHandler, inline_keyboard
from .session import Session
from .settings import SettingsError, get_settings
from .state import State, StateBuilder
from .states import InlineMenuState
from .storage import JsonSessionStore, JsonUserStore
from .users import UsersListState


logger = logging.getLogger(__name__)


NOTE = "📝 Note"
COUNTER = "🔢 Counter"
USERS = "👥 Users"

MINUS = InlineButton("➖", "counter:-")
PLUS = InlineButton("➕", "counter:+")


def render_counter(session: Session, query: str) -> Tuple[str, Optional[InlineKeyboard]]:
    count = session.context.get("counter", 0)
    if query == MINUS.data:
        count -= 1
    elif query == PLUS.data:
        count += 1
    session.context["counter"] = count
    return f"Counter: {count}", inline_keyboard([MINUS, PLUS])


def note_state() -> State:
    def enter(session: Session) -> None:
        note = session.context.get("note")
        if note:
            session.send_message(f"Your current note:\n{escape_html(note)}\n\nSend a new one or /back.")
        else:
            session.send_message("Send me a note to remember, or /back.")

    def remember(session: Session, message: MessageEvent) -> bool:
        session.context["note"] = message.text
        session.send_message("Saved.")
        session.pop()
        return True

    return StateBuilder("note").on_enter(enter).add_message_handler(remember).build()


def main_menu(users: JsonUserStore, accept_window: float):
    def factory() -> State:
        keys = KeyHandler()
        keys.add_button(NOTE, lambda session, message: session.push(note_state()))
        keys.add_button(COUNTER, lambda session, message: session.push(InlineMenuState(render_counter)))
        keys.next_row().add_button(USERS, lambda session, message: session.push(UsersListState(users, accept_window)))

        def enter(session: Session) -> None:
            session.send_message("Main menu. Pick an option below.", keyboard=keys.keyboard())

        def welcome_back(session: Session) -> None:
            session.send_message("Back in the main menu.", keyboard=keys.keyboard())

        return (
            StateBuilder("main-menu")
            .on_enter(enter)
            .on_return(welcome_back)
            .add_key_handler(keys)
            .build()
        )

    return factory


def create_app() -> Engine:
    try:
        settings = get_settings()
    except SettingsError as exc:
        raise RuntimeError("Required environment variables are missing or invalid. See README.md") from exc

    if settings.telegram_disable_ssl_verify:
        session = requests.Session()
        session.verify = False
        apihelper.session = session
        logger.warning(
            "TELEGRAM_DISABLE_SSL_VERIFY=true - SSL verification is disabled. Use for diagnostics only."
        )

    data_dir = Path(settings.data_dir)
    users = JsonUserStore(data_dir / "users.json")
    sessions = JsonSessionStore(data_dir / "sessions.json")
    root_state = main_menu(users, settings.accept_window)

    bot = TeleBot(settings.telegram_bot_token, parse_mode="HTML")
    gateway = TelebotGateway(bot)

    commands = default_commands(root_state, lambda: UsersListState(users, settings.accept_window))
    engine = Engine(
        EngineConfig(
            gateway=gateway,
            users=users,
            sessions=sessions,
            root_state=root_state,
            commands=commands,
            accept_window=settings.accept_window,
            store_interval=settings.store_interval,
            workers=settings.workers,
            drop_leaves_states=settings.drop_leaves_states,
        )
    )

    def broadcast(session: Session, args: List[str]) -> None:
        text = " ".join(args).strip()
        if not text:
            session.send_message("Usage: /broadcast <text>")
            return
        futures = engine.broadcast(text, only_active=True)
        session.send_message(f"Broadcasting to {len(futures)} chat(s).")

    commands.register("broadcast", "Send a message to every chat", broadcast, listed=False)

    if not users.list_users():
        logger.warning("No users registered yet; accepting new users for %.0f seconds", settings.accept_window)
        engine.open_accept_window(settings.accept_window)

    return engine
