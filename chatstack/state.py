"""The state contract and a builder for composing states from callbacks."""

from __future__ import annotations

from typing import TYPE_CHECKING, Callable, Dict, List, Optional

from .keyboards import Button, InlineButton, KeyHandler, MessageCallback

if TYPE_CHECKING:
    from .events import InteractionEvent, MessageEvent
    from .session import Session


class State:
    """A unit of conversation behavior living on a session's stack.

    Every hook has a default, so subclasses only override what they need.
    ``return_to`` runs when the state becomes the top again after the state
    above it was popped or dropped; by default it replays ``enter``.
    """

    def enter(self, session: "Session") -> None:
        pass

    def leave(self, session: "Session") -> None:
        pass

    def return_to(self, session: "Session") -> None:
        self.enter(session)

    def handle_message(self, session: "Session", message: "MessageEvent") -> bool:
        return False

    def handle_command(self, session: "Session", command: str, args: List[str]) -> bool:
        return False

    def handle_interaction(self, session: "Session", interaction: "InteractionEvent") -> bool:
        return False

    def __repr__(self) -> str:
        return f"<{type(self).__name__}>"


StateFactory = Callable[[], State]

SessionCallback = Callable[["Session"], None]
MessagePredicate = Callable[["Session", "MessageEvent"], bool]
CommandCallback = Callable[["Session", str, List[str]], bool]
InteractionCallback = Callable[["Session", "InteractionEvent"], bool]


class FunctionState(State):
    """State whose hooks are plain callables, assembled by :class:`StateBuilder`."""

    def __init__(
        self,
        on_enter: SessionCallback,
        on_return: Optional[SessionCallback] = None,
        on_leave: Optional[SessionCallback] = None,
        message_handler: Optional[Callable[["Session", "MessageEvent"], None]] = None,
        command_handler: Optional[CommandCallback] = None,
        interaction_handler: Optional[InteractionCallback] = None,
        interaction_data_handlers: Optional[Dict[str, InteractionCallback]] = None,
        name: str = "",
    ) -> None:
        self._on_enter = on_enter
        self._on_return = on_return
        self._on_leave = on_leave
        self._message_handler = message_handler
        self._command_handler = command_handler
        self._interaction_handler = interaction_handler
        self._interaction_data_handlers = interaction_data_handlers or {}
        self.name = name

    def enter(self, session: "Session") -> None:
        self._on_enter(session)

    def return_to(self, session: "Session") -> None:
        if self._on_return is not None:
            self._on_return(session)
        else:
            super().return_to(session)

    def leave(self, session: "Session") -> None:
        if self._on_leave is not None:
            self._on_leave(session)

    def handle_message(self, session: "Session", message: "MessageEvent") -> bool:
        if self._message_handler is None:
            return False
        self._message_handler(session, message)
        return True

    def handle_command(self, session: "Session", command: str, args: List[str]) -> bool:
        if self._command_handler is None:
            return False
        return self._command_handler(session, command, args)

    def handle_interaction(self, session: "Session", interaction: "InteractionEvent") -> bool:
        handler = self._interaction_data_handlers.get(interaction.data)
        if handler is not None:
            return handler(session, interaction)
        if self._interaction_handler is not None:
            return self._interaction_handler(session, interaction)
        return False

    def __repr__(self) -> str:
        if self.name:
            return f"<FunctionState {self.name}>"
        return super().__repr__()


class StateBuilder:
    """Fluent construction of a :class:`FunctionState`.

    Plain messages are matched against ``on_button`` handlers first, then
    offered to each message handler in registration order until one accepts.
    """

    def __init__(self, name: str = "") -> None:
        self._name = name
        self._on_enter: Optional[SessionCallback] = None
        self._on_return: Optional[SessionCallback] = None
        self._on_leave: Optional[SessionCallback] = None
        self._button_handlers: Dict[Button, MessageCallback] = {}
        self._message_handlers: List[MessagePredicate] = []
        self._command_handler: Optional[CommandCallback] = None
        self._interaction_handler: Optional[InteractionCallback] = None
        self._interaction_data_handlers: Dict[str, InteractionCallback] = {}

    def on_enter(self, handler: SessionCallback) -> "StateBuilder":
        self._on_enter = handler
        return self

    def on_return(self, handler: SessionCallback) -> "StateBuilder":
        self._on_return = handler
        return self

    def on_leave(self, handler: SessionCallback) -> "StateBuilder":
        self._on_leave = handler
        return self

    def on_button(self, button: Button, handler: MessageCallback) -> "StateBuilder":
        self._button_handlers[button] = handler
        return self

    def add_message_handler(self, handler: MessagePredicate) -> "StateBuilder":
        self._message_handlers.append(handler)
        return self

    def add_key_handler(self, key_handler: KeyHandler) -> "StateBuilder":
        self._message_handlers.append(key_handler.handle)
        return self

    def on_command(self, handler: CommandCallback) -> "StateBuilder":
        self._command_handler = handler
        return self

    def on_interaction(self, handler: InteractionCallback) -> "StateBuilder":
        self._interaction_handler = handler
        return self

    def on_inline_button(self, button: InlineButton, handler: InteractionCallback) -> "StateBuilder":
        self._interaction_data_handlers[button.data] = handler
        return self

    def build(self) -> FunctionState:
        button_handlers = dict(self._button_handlers)
        message_handlers = list(self._message_handlers)

        def handle_message(session: "Session", message: "MessageEvent") -> None:
            handler = button_handlers.get(message.text)
            if handler is not None:
                handler(session, message)
                return
            for candidate in message_handlers:
                if candidate(session, message):
                    return

        on_enter = self._on_enter
        if on_enter is None:
            def on_enter(session: "Session") -> None:
                session.send_message("Default State")

        return FunctionState(
            on_enter=on_enter,
            on_return=self._on_return,
            on_leave=self._on_leave,
            message_handler=handle_message,
            command_handler=self._command_handler,
            interaction_handler=self._interaction_handler,
            interaction_data_handlers=dict(self._interaction_data_handlers),
            name=self._name,
        )
