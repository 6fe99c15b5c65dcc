"""Command palette entries and query ranking."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple


@dataclass(frozen=True)
class Command:
    id: str
    name: str
    description: str
    shortcut: Optional[str] = None


DEFAULT_COMMANDS: Tuple[Command, ...] = (
    Command("load", "Load contract", "Compile a Solidity file and add its contracts", "Ctrl+O"),
    Command("edit-config", "Edit config", "Open config file in $EDITOR"),
    Command("reset", "Reset", "Clear all saved state"),
    Command("clear", "Clear output", "Clear the output area", "Ctrl+L"),
    Command("copy", "Copy selection", "Copy the selected card to the clipboard", "Ctrl+Y"),
    Command("save-key", "Save key", "Store the active private key in the system keyring"),
    Command("quit", "Quit", "Exit the application", "Ctrl+C"),
)


def _rank(command: Command, query: str) -> Optional[int]:
    name = command.name.lower()
    if name == query:
        return 0
    if name.startswith(query):
        return 1
    if query in name:
        return 2
    if query in command.description.lower():
        return 3
    return None


def filter_commands(query: str, commands: Sequence[Command] = DEFAULT_COMMANDS) -> List[Command]:
    """Commands matching ``query``, best first.

    Exact name beats name prefix, which beats a name substring, which beats
    a description substring.  Equal ranks keep declaration order.
    """

    needle = query.strip().lower()
    if not needle:
        return list(commands)
    ranked = []
    for order, command in enumerate(commands):
        rank = _rank(command, needle)
        if rank is not None:
            ranked.append((rank, order, command))
    ranked.sort(key=lambda item: (item[0], item[1]))
    return [command for _, _, command in ranked]


class CommandPalette:
    """Query text plus a wrapping selection over the matching commands."""

    def __init__(self, commands: Sequence[Command] = DEFAULT_COMMANDS) -> None:
        self.commands = tuple(commands)
        self.query = ""
        self.selected = 0

    @property
    def matches(self) -> List[Command]:
        return filter_commands(self.query, self.commands)

    @property
    def current(self) -> Optional[Command]:
        matches = self.matches
        return matches[self.selected] if matches else None

    def set_query(self, query: str) -> None:
        self.query = query
        self.selected = 0

    def move(self, delta: int) -> None:
        matches = self.matches
        if matches:
            self.selected = (self.selected + delta) % len(matches)


__all__ = ["Command", "CommandPalette", "DEFAULT_COMMANDS", "filter_commands"]
