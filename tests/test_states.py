"""Reusable states, the state builder and user administration."""

from __future__ import annotations

import pytest

from chatstack.keyboards import InlineButton, KeyHandler
from chatstack.state import StateBuilder
from chatstack.states import CANCEL, YES, PromptState, SelectState
from chatstack.storage import User
from chatstack.users import ADD, BACK, DELETE, SelectUserToDeleteState, UsersListState, format_users

from conftest import RecordingState, command, message, press


def test_builder_without_enter_sends_placeholder(make_session, gateway) -> None:
    session = make_session(root=lambda: StateBuilder().build())

    session.current().enter(session)

    assert gateway.texts() == ["Default State"]


def test_builder_buttons_win_over_message_handlers(make_session) -> None:
    seen = []
    state = (
        StateBuilder("menu")
        .on_enter(lambda s: None)
        .on_button("Stop", lambda s, m: seen.append("button"))
        .add_message_handler(lambda s, m: m.text.startswith("x") and not seen.append("x-handler"))
        .add_message_handler(lambda s, m: not seen.append("fallback"))
        .build()
    )
    session = make_session(root=lambda: state)

    session.handle(message("Stop"))
    session.handle(message("xyz"))
    session.handle(message("other"))

    assert seen == ["button", "x-handler", "fallback"]


def test_builder_return_hook_and_inline_buttons(make_session, journal) -> None:
    confirm = InlineButton("OK", "ok")
    state = (
        StateBuilder("confirm")
        .on_enter(lambda s: journal.append("enter"))
        .on_return(lambda s: journal.append("return"))
        .on_inline_button(confirm, lambda s, q: journal.append(("ok", q.interaction_id)) is None)
        .on_interaction(lambda s, q: journal.append(("other", q.data)) is None)
        .build()
    )
    session = make_session(root=lambda: state)
    session.current()
    session.push(RecordingState("A", journal))
    journal.clear()

    session.pop()
    session.handle(press("ok", 1, interaction_id="q1"))
    session.handle(press("nope", 1, interaction_id="q2"))

    assert journal == [("leave", "A"), "return", ("ok", "q1"), ("other", "nope")]


def test_builder_command_handler(make_session) -> None:
    state = StateBuilder().on_enter(lambda s: None).on_command(lambda s, name, args: name == "stats").build()
    session = make_session(root=lambda: state)

    assert session.handle(command("stats"))
    assert not session.handle(command("other"))


def test_key_handler_layout() -> None:
    keys = KeyHandler()
    for label in "ABCDE":
        keys.add_button(label, lambda s, m: None)
    keys.auto_layout(2)
    assert keys.keyboard().buttons() == [["A", "B"], ["C", "D"], ["E"]]

    keys.next_row().add_button("F", lambda s, m: None)
    assert keys.rows[-1] == ["F"]

    with pytest.raises(ValueError):
        keys.auto_layout(0)


def test_prompt_yes_runs_action_and_drops(make_session, journal, gateway) -> None:
    done = []
    session = make_session()
    session.current()
    session.push(RecordingState("A", journal))
    session.push(PromptState(lambda: done.append(True), message="Really?", drop_states=2))
    journal.clear()

    assert gateway.texts()[-1] == "Really?"
    session.handle(message(YES))

    assert done == [True]
    assert [state.name for state in session.stack.snapshot()] == ["R"]
    assert journal == [("return", "R")]


def test_prompt_cancel_aborts(make_session, gateway) -> None:
    done = []
    session = make_session()
    session.current()
    session.push(PromptState(lambda: done.append(True)))

    session.handle(message(CANCEL))

    assert done == []
    assert "Aborted." in gateway.texts()


def test_select_state_validates_index(make_session, gateway) -> None:
    picked = []
    session = make_session()
    session.current()
    session.push(SelectState("Pick a fruit", ["apple", "pear"], lambda s, item: picked.append(item)))

    session.handle(message("7"))
    assert gateway.texts()[-1] == "Cannot find Item by '7'. Enter valid item."
    assert picked == []

    session.handle(message(" 1 "))
    assert picked == ["pear"]
    assert len(session.stack) == 1


def test_format_users() -> None:
    assert "- no users registered -" in format_users([])


def test_user_administration_flow(make_engine, gateway, user_store) -> None:
    engine = make_engine()
    dispatch = engine.dispatcher.dispatch

    assert dispatch(command("users"))
    session = engine.registry.get(1)
    assert isinstance(session.call(session.current), UsersListState)
    assert "[1] user2 (2)" in gateway.texts(1)[-1]

    assert dispatch(message(ADD))
    assert engine.accepting()
    assert "@test_bot" in gateway.texts(1)[-1]
    engine.close_accept_window()

    assert dispatch(message(DELETE))
    assert isinstance(session.call(session.current), SelectUserToDeleteState)
    assert dispatch(message("1"))
    assert dispatch(message(YES))

    assert not user_store.user_exists(2)
    assert isinstance(session.call(session.current), UsersListState)

    assert dispatch(message(BACK))
    assert session.call(lambda: len(session.stack)) == 1


def test_format_users_escapes_names() -> None:
    text = format_users([User(id=4, name="a<b & c")])

    assert "[0] a&lt;b &amp; c (4)" in text
