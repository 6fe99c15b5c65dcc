"""Input routing state machine.

The whole focus state of the application is one immutable
:class:`NavigationState`.  Key handlers never flip flags directly; they
describe what happened as an event and :func:`reduce` returns the next
state, so any sequence of events can be replayed in a test.

Overlays (the command palette and popups) form a stack above the base
region.  The footer submenu is not an overlay: it belongs to the output
list and is only reachable while the output list is the base region.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from typing import Optional, Tuple, Union


class Focus(str, Enum):
    SIDEBAR = "sidebar"
    OUTPUT_LIST = "output-list"
    OUTPUT_FOOTER_MENU = "output-footer-menu"
    COMMAND_PALETTE = "command-palette"
    POPUP = "popup"


class PopupKind(str, Enum):
    PARAMETERS = "parameters"
    FILE_PICKER = "file-picker"
    ADDRESS_INPUT = "address-input"
    CONTRACT_SELECTOR = "contract-selector"
    CONFIRM = "confirm"
    TRACER_SELECT = "tracer-select"
    TRACER_CONFIG = "tracer-config"
    DETAIL = "detail"


@dataclass(frozen=True)
class Overlay:
    focus: Focus
    popup: Optional[PopupKind] = None


PALETTE = Overlay(Focus.COMMAND_PALETTE)


@dataclass(frozen=True)
class FooterMenu:
    """Open submenu of the card at ``position`` with ``count`` actions."""

    position: int
    count: int
    highlighted: int = 0


@dataclass(frozen=True)
class HandoffSnapshot:
    base: Focus
    selected: Optional[int]
    footer: Optional[FooterMenu]


@dataclass(frozen=True)
class NavigationState:
    base: Focus = Focus.SIDEBAR
    footer: Optional[FooterMenu] = None
    overlays: Tuple[Overlay, ...] = ()
    executed: Tuple[Tuple[int, int], ...] = ()
    handoff: Optional[HandoffSnapshot] = None

    @property
    def focus(self) -> Focus:
        """Region that receives the next key event."""

        if self.overlays:
            return self.overlays[-1].focus
        if self.base is Focus.OUTPUT_LIST and self.footer is not None:
            return Focus.OUTPUT_FOOTER_MENU
        return self.base

    @property
    def popup(self) -> Optional[PopupKind]:
        return self.overlays[-1].popup if self.overlays else None

    @property
    def highlighted(self) -> Optional[int]:
        return self.footer.highlighted if self.footer else None

    def executed_action(self, position: int) -> Optional[int]:
        for key, index in self.executed:
            if key == position:
                return index
        return None


# -- events -----------------------------------------------------------------


@dataclass(frozen=True)
class FocusSidebar:
    pass


@dataclass(frozen=True)
class FocusOutput:
    """Move focus to the output list, where card ``position`` is selected."""

    position: Optional[int] = None
    actions: int = 0


@dataclass(frozen=True)
class SelectCard:
    position: Optional[int]
    actions: int = 0


@dataclass(frozen=True)
class CardChanged:
    """The actions offered by card ``position`` changed (e.g. it finalized)."""

    position: int
    actions: int
    selected: bool


@dataclass(frozen=True)
class OpenFooter:
    position: int
    actions: int


@dataclass(frozen=True)
class DismissFooter:
    pass


@dataclass(frozen=True)
class NextAction:
    pass


@dataclass(frozen=True)
class PreviousAction:
    pass


@dataclass(frozen=True)
class ActionExecuted:
    position: int
    index: int


@dataclass(frozen=True)
class OpenCommandPalette:
    pass


@dataclass(frozen=True)
class OpenPopup:
    kind: PopupKind
    replace: bool = False


@dataclass(frozen=True)
class DismissOverlay:
    pass


@dataclass(frozen=True)
class CardsCleared:
    pass


@dataclass(frozen=True)
class HandoffStarted:
    selected: Optional[int]


@dataclass(frozen=True)
class HandoffFinished:
    pass


Event = Union[
    FocusSidebar,
    FocusOutput,
    SelectCard,
    CardChanged,
    OpenFooter,
    DismissFooter,
    NextAction,
    PreviousAction,
    ActionExecuted,
    OpenCommandPalette,
    OpenPopup,
    DismissOverlay,
    CardsCleared,
    HandoffStarted,
    HandoffFinished,
]


def _footer_for(position: Optional[int], actions: int) -> Optional[FooterMenu]:
    if position is None or actions <= 0:
        return None
    return FooterMenu(position=position, count=actions)


def _remember(executed: Tuple[Tuple[int, int], ...], position: int, index: int) -> Tuple[Tuple[int, int], ...]:
    return tuple(item for item in executed if item[0] != position) + ((position, index),)


def _step(footer: FooterMenu, delta: int) -> FooterMenu:
    return replace(footer, highlighted=(footer.highlighted + delta) % footer.count)


def reduce(state: NavigationState, event: Event) -> NavigationState:
    """Return the state that follows ``state`` after ``event``."""

    if isinstance(event, FocusSidebar):
        return replace(state, base=Focus.SIDEBAR, footer=None)

    if isinstance(event, FocusOutput):
        return replace(state, base=Focus.OUTPUT_LIST, footer=_footer_for(event.position, event.actions))

    if isinstance(event, SelectCard):
        if state.base is not Focus.OUTPUT_LIST:
            return state
        if state.footer is not None and state.footer.position == event.position and event.actions:
            return state
        return replace(state, footer=_footer_for(event.position, event.actions))

    if isinstance(event, CardChanged):
        if state.base is not Focus.OUTPUT_LIST or not event.selected:
            return state
        if state.footer is not None and state.footer.position == event.position:
            if not event.actions:
                return replace(state, footer=None)
            if state.footer.count == event.actions:
                return state
        return replace(state, footer=_footer_for(event.position, event.actions))

    if isinstance(event, OpenFooter):
        if state.base is not Focus.OUTPUT_LIST:
            return state
        return replace(state, footer=_footer_for(event.position, event.actions))

    if isinstance(event, DismissFooter):
        return replace(state, footer=None)

    if isinstance(event, NextAction):
        if state.footer is None or state.overlays:
            return state
        return replace(state, footer=_step(state.footer, 1))

    if isinstance(event, PreviousAction):
        if state.footer is None or state.overlays:
            return state
        return replace(state, footer=_step(state.footer, -1))

    if isinstance(event, ActionExecuted):
        footer = state.footer
        if footer is not None and footer.position == event.position and 0 <= event.index < footer.count:
            footer = replace(footer, highlighted=event.index)
        return replace(state, footer=footer, executed=_remember(state.executed, event.position, event.index))

    if isinstance(event, OpenCommandPalette):
        if state.overlays and state.overlays[-1] == PALETTE:
            return state
        return replace(state, overlays=state.overlays + (PALETTE,))

    if isinstance(event, OpenPopup):
        overlay = Overlay(Focus.POPUP, event.kind)
        stack = state.overlays[:-1] if event.replace and state.overlays else state.overlays
        return replace(state, overlays=stack + (overlay,))

    if isinstance(event, DismissOverlay):
        return replace(state, overlays=state.overlays[:-1])

    if isinstance(event, CardsCleared):
        handoff = state.handoff
        if handoff is not None:
            handoff = replace(handoff, selected=None, footer=None)
        return replace(state, footer=None, executed=(), handoff=handoff)

    if isinstance(event, HandoffStarted):
        snapshot = HandoffSnapshot(base=state.base, selected=event.selected, footer=state.footer)
        return replace(state, handoff=snapshot)

    if isinstance(event, HandoffFinished):
        snapshot = state.handoff
        if snapshot is None:
            return state
        footer = snapshot.footer
        if footer is not None:
            executed = state.executed_action(footer.position)
            if executed is not None and executed < footer.count:
                footer = replace(footer, highlighted=executed)
        return replace(state, base=snapshot.base, footer=footer, handoff=None)

    raise TypeError(f"unknown navigation event: {event!r}")


def reduce_all(state: NavigationState, *events: Event) -> NavigationState:
    """Fold ``events`` over ``state`` in order."""

    for event in events:
        state = reduce(state, event)
    return state


__all__ = [
    "ActionExecuted",
    "CardChanged",
    "CardsCleared",
    "DismissFooter",
    "DismissOverlay",
    "Event",
    "Focus",
    "FocusOutput",
    "FocusSidebar",
    "FooterMenu",
    "HandoffFinished",
    "HandoffSnapshot",
    "HandoffStarted",
    "NavigationState",
    "NextAction",
    "OpenCommandPalette",
    "OpenFooter",
    "OpenPopup",
    "Overlay",
    "PALETTE",
    "PopupKind",
    "PreviousAction",
    "SelectCard",
    "reduce",
    "reduce_all",
]
