"""Navigation stack of states for a single session."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Callable, List, Tuple

from .state import State, StateFactory

if TYPE_CHECKING:
    from .session import Session


logger = logging.getLogger(__name__)


class StateStack:
    """Ordered states of one session, top last.

    Not thread-safe: the owning session's mailbox is the only caller.

    Lifecycle per operation:

    * ``push``: leave(top), clear bindings, enter(new)
    * ``pop``: leave(top), clear bindings, return_to(new top)
    * ``replace``: enter(new) only; bindings survive
    * ``reset``: clear everything, then push
    * ``drop(n)``: return_to(new top) once; dropped levels are not left
      unless ``drop_leaves_states`` is set
    """

    def __init__(
        self,
        owner: "Session",
        root_factory: StateFactory,
        clear_bindings: Callable[[], None],
        drop_leaves_states: bool = False,
    ) -> None:
        self._owner = owner
        self._root_factory = root_factory
        self._clear_bindings = clear_bindings
        self._drop_leaves_states = drop_leaves_states
        self._states: List[State] = []

    def __len__(self) -> int:
        return len(self._states)

    @property
    def depth(self) -> int:
        return len(self._states)

    def snapshot(self) -> Tuple[State, ...]:
        return tuple(self._states)

    def current(self) -> State:
        if not self._states:
            self._states.append(self._root_factory())
        return self._states[-1]

    def push(self, state: State) -> None:
        if self._states:
            self._states[-1].leave(self._owner)
        self._clear_bindings()
        self._states.append(state)
        logger.debug("chat %s: push %r (depth %d)", self._owner.chat_id, state, len(self._states))
        state.enter(self._owner)

    def pop(self) -> None:
        if not self._states:
            return
        self._states[-1].leave(self._owner)
        self._clear_bindings()
        popped = self._states.pop()
        logger.debug("chat %s: pop %r (depth %d)", self._owner.chat_id, popped, len(self._states))
        self.current().return_to(self._owner)

    def replace(self, state: State) -> None:
        if self._states:
            self._states[-1] = state
        else:
            self._states.append(state)
        logger.debug("chat %s: replace top with %r", self._owner.chat_id, state)
        state.enter(self._owner)

    def reset(self, state: State) -> None:
        self._states = []
        self.push(state)

    def drop(self, n: int) -> None:
        count = min(max(n, 0), len(self._states))
        keep = len(self._states) - count
        dropped = self._states[keep:]
        del self._states[keep:]
        if self._drop_leaves_states and dropped:
            for state in reversed(dropped):
                state.leave(self._owner)
            self._clear_bindings()
        logger.debug("chat %s: dropped %d state(s)", self._owner.chat_id, count)
        self.current().return_to(self._owner)

    def unwind(self) -> None:
        """Leave every level top-to-bottom and empty the stack."""

        while self._states:
            self._states[-1].leave(self._owner)
            self._states.pop()
        self._clear_bindings()
