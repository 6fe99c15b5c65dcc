"""Replay event sequences through the navigation reducer."""

from __future__ import annotations

import pytest

from evmdeck.core import navigation as nav
from evmdeck.core.navigation import Focus, NavigationState, PopupKind, reduce, reduce_all


def _output(position: int = 0, actions: int = 3) -> NavigationState:
    return reduce(NavigationState(), nav.FocusOutput(position, actions))


def test_starts_in_sidebar() -> None:
    state = NavigationState()
    assert state.focus is Focus.SIDEBAR
    assert state.footer is None


def test_focus_output_opens_footer_for_interactive_card() -> None:
    state = _output(4, 3)
    assert state.focus is Focus.OUTPUT_FOOTER_MENU
    assert state.footer == nav.FooterMenu(position=4, count=3, highlighted=0)


def test_focus_output_without_actions_stays_in_list() -> None:
    state = reduce(NavigationState(), nav.FocusOutput(2, 0))
    assert state.focus is Focus.OUTPUT_LIST
    assert state.footer is None


def test_footer_highlight_wraps_both_ways() -> None:
    state = reduce_all(_output(), nav.PreviousAction())
    assert state.highlighted == 2
    state = reduce_all(state, nav.NextAction(), nav.NextAction())
    assert state.highlighted == 1


def test_selecting_another_card_replaces_footer() -> None:
    state = reduce_all(_output(0, 3), nav.NextAction(), nav.SelectCard(1, 0))
    assert state.footer is None
    assert state.focus is Focus.OUTPUT_LIST
    state = reduce(state, nav.SelectCard(2, 3))
    assert state.footer == nav.FooterMenu(2, 3)


def test_reselecting_same_card_keeps_highlight() -> None:
    state = reduce_all(_output(0, 3), nav.NextAction(), nav.SelectCard(0, 3))
    assert state.highlighted == 1


def test_selection_in_sidebar_is_ignored() -> None:
    state = reduce(NavigationState(), nav.SelectCard(0, 3))
    assert state == NavigationState()


def test_card_finalizing_while_selected_opens_footer() -> None:
    state = reduce(NavigationState(), nav.FocusOutput(5, 0))
    state = reduce(state, nav.CardChanged(5, 3, selected=True))
    assert state.footer == nav.FooterMenu(5, 3)
    assert reduce(state, nav.CardChanged(5, 3, selected=True)) == state


def test_card_changes_elsewhere_do_not_touch_footer() -> None:
    state = _output(1, 3)
    assert reduce(state, nav.CardChanged(0, 3, selected=False)) == state


def test_tab_to_sidebar_drops_footer() -> None:
    state = reduce(_output(), nav.FocusSidebar())
    assert state.focus is Focus.SIDEBAR
    assert state.footer is None


def test_overlays_stack_and_pop() -> None:
    state = reduce_all(
        _output(),
        nav.OpenCommandPalette(),
        nav.OpenCommandPalette(),
        nav.OpenPopup(PopupKind.CONFIRM),
    )
    assert len(state.overlays) == 2
    assert state.focus is Focus.POPUP
    assert state.popup is PopupKind.CONFIRM
    state = reduce(state, nav.DismissOverlay())
    assert state.focus is Focus.COMMAND_PALETTE
    state = reduce(state, nav.DismissOverlay())
    assert state.focus is Focus.OUTPUT_FOOTER_MENU


def test_footer_keys_are_ignored_under_an_overlay() -> None:
    state = reduce_all(_output(), nav.OpenPopup(PopupKind.DETAIL), nav.NextAction())
    assert state.highlighted == 0


def test_replace_popup_swaps_the_top() -> None:
    state = reduce_all(
        _output(),
        nav.OpenPopup(PopupKind.TRACER_SELECT),
        nav.OpenPopup(PopupKind.TRACER_CONFIG, replace=True),
    )
    assert [item.popup for item in state.overlays] == [PopupKind.TRACER_CONFIG]


def test_action_executed_is_remembered() -> None:
    state = reduce(_output(3, 3), nav.ActionExecuted(3, 2))
    assert state.highlighted == 2
    assert state.executed_action(3) == 2
    state = reduce(state, nav.ActionExecuted(3, 1))
    assert state.executed == ((3, 1),)


def test_handoff_restores_focus_and_executed_action() -> None:
    state = reduce_all(
        _output(0, 3),
        nav.ActionExecuted(0, 2),
        nav.HandoffStarted(selected=0),
        nav.FocusSidebar(),
    )
    assert state.handoff is not None
    state = reduce(state, nav.HandoffFinished())
    assert state.handoff is None
    assert state.focus is Focus.OUTPUT_FOOTER_MENU
    assert state.highlighted == 2


def test_handoff_finished_without_start_is_noop() -> None:
    state = _output()
    assert reduce(state, nav.HandoffFinished()) == state


def test_clearing_cards_during_handoff() -> None:
    state = reduce_all(_output(0, 3), nav.HandoffStarted(selected=0), nav.CardsCleared(), nav.HandoffFinished())
    assert state.footer is None
    assert state.base is Focus.OUTPUT_LIST
    assert state.executed == ()


def test_unknown_event_raises() -> None:
    with pytest.raises(TypeError):
        reduce(NavigationState(), object())  # type: ignore[arg-type]
