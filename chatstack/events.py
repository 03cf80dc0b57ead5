"""Inbound events as seen by the dispatcher.

Gateways translate platform updates into these objects; nothing past the
gateway looks at wire formats.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional


@dataclass(frozen=True)
class Event:
    user_id: Optional[int]
    chat_id: Optional[int]
    display_name: str = "Unknown"

    @property
    def well_formed(self) -> bool:
        return self.user_id is not None and self.chat_id is not None


@dataclass(frozen=True)
class MessageEvent(Event):
    text: str = ""
    message_id: Optional[int] = None


@dataclass(frozen=True)
class CommandEvent(Event):
    command: str = ""
    args: List[str] = field(default_factory=list)
    message_id: Optional[int] = None


@dataclass(frozen=True)
class InteractionEvent(Event):
    interaction_id: str = ""
    data: str = ""
    # None when the button sits on an inline-mode message we cannot edit
    message_id: Optional[int] = None


def display_name(username: Optional[str], first_name: Optional[str], last_name: Optional[str]) -> str:
    for candidate in (username, first_name, last_name):
        if candidate:
            return candidate
    return "Unknown"


def split_command(text: str) -> tuple[str, List[str]]:
    """Split ``/cmd@bot a b`` into ``("cmd", ["a", "b"])``."""

    head, _, rest = text.strip().partition(" ")
    command = head.lstrip("/").split("@", 1)[0]
    return command, rest.split()
