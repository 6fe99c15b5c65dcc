"""Textual front end for evmdeck.

The app owns no model state of its own: keys become calls on
:class:`~evmdeck.core.session.Session`, background work runs as Textual
workers (blocking RPC inside ``asyncio.to_thread``) and every result is fed
back through :meth:`Session.handle` on the event loop before the view is
redrawn.
"""

from __future__ import annotations

import asyncio
import logging
import os
import shlex
import subprocess
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Optional

from textual.app import App, ComposeResult, SuspendNotSupported
from textual.binding import Binding
from textual.containers import Horizontal, VerticalScroll
from textual.events import Key
from textual.message import Message
from textual.screen import ModalScreen
from textual.widgets import Footer, Static

from ..core import navigation as nav
from ..core.cards import CallCard, TransactionCard
from ..core.chain import ChainClient
from ..core.config import Config, refresh_config, resolve_config
from ..core.contract_manager import BytecodeTarget, artifact_path, split_key
from ..core.errors import ConfigurationError
from ..core.lifecycle import LifecycleEngine, PollPolicy
from ..core.session import Session
from ..core.sidebar import NodeKind, TreeNode
from ..core.trace import TraceRequest, TracerKind
from ..core.workers import (
    CallRequest,
    ContractsLoaded,
    TxRequest,
    perform_call,
    perform_load,
    perform_status,
    perform_trace,
    perform_transaction,
)
from . import render
from .screens import (
    AddressInput,
    CommandPaletteScreen,
    ConfirmDialog,
    ContractSelector,
    DetailViewer,
    FilePicker,
    ParameterForm,
    TracerConfigScreen,
    TracerSelect,
)

logger = logging.getLogger(__name__)

STATUS_INTERVAL = 10.0


class Delivered(Message):
    """A lifecycle message handed over from a polling task."""

    def __init__(self, payload: Any) -> None:
        self.payload = payload
        super().__init__()


class Pane(VerticalScroll, can_focus=False):
    pass


class CardView(Static):
    pass


def editor_command() -> List[str]:
    return shlex.split(os.environ.get("EDITOR") or os.environ.get("VISUAL") or "") or ["vi"]


class EvmDeckApp(App[None]):
    TITLE = "evmdeck"
    CSS = """
    #main {
        height: 1fr;
    }
    #sidebar {
        width: 36%;
        border: round $primary;
    }
    #output {
        width: 64%;
        border: round $primary;
    }
    .focused {
        border: round $accent;
    }
    #status {
        height: 1;
        padding: 0 1;
        background: $panel;
    }
    """
    BINDINGS = [
        Binding("ctrl+c", "quit", "Quit", priority=True),
        Binding("ctrl+p", "palette", "Commands", priority=True),
        Binding("ctrl+o", "load_contract", "Load"),
        Binding("ctrl+l", "clear_output", "Clear"),
        Binding("ctrl+y", "copy_selection", "Copy"),
        Binding("tab", "toggle_focus", "Switch pane", priority=True),
    ]

    def __init__(self, session: Session, *, policy: PollPolicy = PollPolicy()) -> None:
        super().__init__()
        self.session = session
        self.config: Config = session.config or resolve_config(session.store.config)
        self.client = ChainClient(self.config.rpc_url, self.config.private_key)
        self._policy = policy

    # -- layout ---------------------------------------------------------
    def compose(self) -> ComposeResult:
        with Horizontal(id="main"):
            with Pane(id="sidebar"):
                yield Static("", id="tree")
            yield Pane(id="output")
        yield Static("", id="status")
        yield Footer()

    def on_mount(self) -> None:
        self.session.config = self.config
        self.session.engine = LifecycleEngine(self.client, self._deliver, self._policy)
        self.session.log(f"Using {self.config.rpc_url} as {self.config.address}")
        self.set_interval(STATUS_INTERVAL, self._refresh_status)
        self._refresh_status()
        self.refresh_view()

    def on_unmount(self) -> None:
        if self.session.engine is not None:
            self.session.engine.cancel()

    def refresh_view(self) -> None:
        session = self.session
        focus = session.nav.base
        sidebar = self.query_one("#sidebar", Pane)
        output = self.query_one("#output", Pane)
        sidebar.set_class(focus is nav.Focus.SIDEBAR, "focused")
        output.set_class(focus is nav.Focus.OUTPUT_LIST, "focused")
        self.query_one("#tree", Static).update(
            render.tree_text(session.sidebar_nodes(), session.tree.selected, focused=focus is nav.Focus.SIDEBAR)
        )
        self._render_cards(output)
        self.query_one("#status", Static).update(render.status_text(session.status, self.config.rpc_url))

    def _render_cards(self, output: Pane) -> None:
        session = self.session
        existing: Dict[str, CardView] = {view.id or "": view for view in output.query(CardView)}
        wanted = set()
        selected = session.cards.selected
        footer = session.nav.footer if session.nav.base is nav.Focus.OUTPUT_LIST else None
        for card in session.cards:
            view_id = f"card-{card.position}"
            wanted.add(view_id)
            renderable = render.card_renderable(
                card,
                selected=card is selected,
                expanded=session.cards.is_expanded(card.position),
                footer=footer,
            )
            view = existing.get(view_id)
            if view is None:
                output.mount(CardView(renderable, id=view_id))
            else:
                view.update(renderable)
        for view_id, view in existing.items():
            if view_id not in wanted:
                view.remove()
        if session.cards.take_scroll_request():
            self.call_after_refresh(output.scroll_end, animate=False)
        elif selected is not None and f"card-{selected.position}" in existing:
            output.scroll_to_widget(existing[f"card-{selected.position}"], animate=False)

    # -- background work ------------------------------------------------
    def _deliver(self, message: Any) -> None:
        self.post_message(Delivered(message))

    def on_delivered(self, event: Delivered) -> None:
        self.apply(event.payload)

    def apply(self, message: Any) -> None:
        self.session.handle(message)
        self.refresh_view()

    def spawn(self, work: Awaitable[Any], then: Optional[Callable[[Any], None]] = None) -> None:
        async def runner() -> None:
            result = await work
            (then or self.apply)(result)

        self.run_worker(runner(), exclusive=False, group="rpc")

    def _refresh_status(self) -> None:
        self.spawn(perform_status(self.client))

    def submit(self, request: Any) -> None:
        if isinstance(request, CallRequest):
            self.spawn(perform_call(self.client, request))
        elif isinstance(request, TxRequest):
            what = "deployment" if request.function.is_constructor else request.function.name
            self.notify(f"Submitting {what}…")
            self.spawn(perform_transaction(self.client, request))

    def load_source(self, source: Path, *, build: bool = True, choose: bool = True) -> None:
        def loaded(message: Any) -> None:
            if choose and isinstance(message, ContractsLoaded) and len(message.artifacts) > 1:
                self._choose_contracts(message)
            else:
                self.apply(message)

        self.notify(f"{'Compiling' if build else 'Loading'} {source.name}…")
        self.spawn(perform_load(source, build=build), loaded)

    def _choose_contracts(self, message: ContractsLoaded) -> None:
        def chosen(name: Optional[str]) -> None:
            if name is None:
                return
            if name == ContractSelector.ALL:
                self.apply(message)
            else:
                picked = tuple(artifact for artifact in message.artifacts if artifact.name == name)
                self.apply(ContractsLoaded(message.source, picked))

        self.popup(ContractSelector([artifact.name for artifact in message.artifacts]), nav.PopupKind.CONTRACT_SELECTOR, chosen)

    # -- popups ---------------------------------------------------------
    def popup(self, screen: ModalScreen, kind: nav.PopupKind, callback: Callable[[Any], None]) -> None:
        self.session.open_popup(kind)

        def done(result: Any) -> None:
            self.session.dismiss_overlay()
            callback(result)
            self.refresh_view()

        self.push_screen(screen, done)

    def confirm(self, title: str, message: str, then: Callable[[], None]) -> None:
        def answered(yes: bool) -> None:
            if yes:
                then()

        self.popup(ConfirmDialog(title, message), nav.PopupKind.CONFIRM, answered)

    def show_detail(self, title: str, body: str) -> None:
        self.popup(DetailViewer(title, body), nav.PopupKind.DETAIL, lambda _: None)

    # -- actions --------------------------------------------------------
    def action_toggle_focus(self) -> None:
        if len(self.screen_stack) > 1:
            self.screen.focus_next()
            return
        self.session.toggle_focus()
        self.refresh_view()

    def action_palette(self) -> None:
        if len(self.screen_stack) > 1:
            return
        self.session.open_palette()

        def chosen(command_id: Optional[str]) -> None:
            self.session.dismiss_overlay()
            if command_id:
                self.run_command(command_id)
            self.refresh_view()

        self.push_screen(CommandPaletteScreen(self.session.palette), chosen)

    def run_command(self, command_id: str) -> None:
        handlers: Dict[str, Callable[[], None]] = {
            "load": self.action_load_contract,
            "edit-config": self.action_edit_config,
            "reset": self.action_reset,
            "clear": self.action_clear_output,
            "copy": self.action_copy_selection,
            "save-key": self.action_save_key,
            "quit": self.exit,
        }
        handlers[command_id]()

    def action_load_contract(self) -> None:
        def picked(path: Optional[Path]) -> None:
            if path is not None:
                self.load_source(path)

        self.popup(FilePicker(), nav.PopupKind.FILE_PICKER, picked)

    def action_clear_output(self) -> None:
        def clear() -> None:
            count = self.session.clear_cards()
            self.notify(f"Cleared {count} cards")

        self.confirm("Clear output", f"Remove all {len(self.session.cards)} cards?", clear)

    def action_reset(self) -> None:
        self.confirm("Reset", "Forget every stored contract and deployment?", self.session.reset)

    def action_save_key(self) -> None:
        try:
            self.session.save_private_key()
        except ConfigurationError as exc:
            self.notify(str(exc), severity="warning")

    def action_copy_selection(self) -> None:
        card = self.session.cards.selected
        if card is None:
            self.notify("Nothing selected", severity="warning")
            return
        self.hand_off_clipboard(render.card_plain_text(card))

    def hand_off_clipboard(self, text: str) -> None:
        self.session.begin_handoff()
        try:
            self.copy_to_clipboard(text)
        finally:
            self.session.end_handoff()
        self.notify("Copied to clipboard")
        self.refresh_view()

    def action_edit_config(self) -> None:
        self.run_worker(self._edit_config(), exclusive=True, group="editor")

    async def _edit_config(self) -> None:
        path = self.session.store.path
        self.session.begin_handoff()
        try:
            with self.suspend():
                await asyncio.to_thread(subprocess.run, [*editor_command(), str(path)], check=False)
        except (OSError, subprocess.SubprocessError, SuspendNotSupported) as exc:
            self.session.log(f"Could not start {editor_command()[0]}: {exc}", "error")
        finally:
            self.session.end_handoff()
        try:
            self.session.reload_store()
        except ValueError as exc:
            self.session.log(str(exc), "error")
        else:
            self.config = refresh_config(self.config, self.session.store.config)
            self.client = ChainClient(self.config.rpc_url, self.config.private_key)
            self.session.use_config(self.config, self.client)
            self._refresh_status()
        self.refresh_view()

    # -- card actions ---------------------------------------------------
    def perform_card_action(self, key: Optional[str] = None) -> None:
        resolved = self.session.execute_action(key)
        if resolved is None:
            return
        card, action = resolved
        if isinstance(card, TransactionCard):
            if action.id == "receipt":
                self.show_detail(f"Receipt {card.tx_hash}", render.receipt_detail(card))
            elif action.id == "logs":
                self.show_detail(f"Logs {card.tx_hash}", render.logs_detail(card.logs))
            elif action.id == "trace":
                self.start_trace()
        elif isinstance(card, CallCard):
            if action.id == "result":
                self.show_detail(card.function.signature, render.result_detail(card))
            elif action.id == "calldata":
                self.hand_off_clipboard("0x" + card.calldata.hex())
            elif action.id == "again":
                self.submit(self.session.call_again(card))

    def start_trace(self) -> None:
        try:
            wizard = self.session.start_trace()
        except ConfigurationError as exc:
            self.notify(str(exc), severity="warning")
            return
        traced = self.session.cards.selected
        events = self.session.events_for(traced.to or traced.contract_address)

        def configured(result: Any) -> None:
            if result == TracerConfigScreen.BACK:
                self.session.open_popup(nav.PopupKind.TRACER_SELECT, replace=True)
                self.push_screen(TracerSelect(), selected)
            elif isinstance(result, TraceRequest):
                self.spawn(perform_trace(self.client, result, events))
            else:
                self.session.cancel_trace()
            self.refresh_view()

        def selected(kind: Optional[str]) -> None:
            if kind is None:
                self.session.cancel_trace()
            else:
                self.session.choose_tracer(TracerKind(kind))
                self.push_screen(TracerConfigScreen(wizard, self.session.confirm_trace), configured)
            self.refresh_view()

        self.push_screen(TracerSelect(), selected)

    # -- sidebar --------------------------------------------------------
    def activate_node(self, node: TreeNode) -> None:
        session = self.session
        if node.kind is NodeKind.NEW_CONTRACT:
            self.action_load_contract()
        elif node.kind is NodeKind.CONTRACT:
            if session.tree.toggle(node):
                self.ensure_loaded(node.contract_key)
        elif node.kind is NodeKind.INSTANCE:
            session.tree.toggle(node)
        elif node.kind is NodeKind.LOAD_INSTANCE:
            self.load_instance(node)
        elif node.kind is NodeKind.CONSTRUCTOR:
            self.open_deploy_form(node)
        elif node.kind is NodeKind.METHOD:
            self.open_method(node)

    def ensure_loaded(self, key: Optional[str]) -> None:
        if not key or self.session.contracts.get(key) is not None:
            return
        source, name = split_key(key)
        built = artifact_path(Path(source), name, BytecodeTarget.EVM).exists()
        self.load_source(Path(source), build=not built, choose=False)

    def load_instance(self, node: TreeNode) -> None:
        key = node.contract_key

        def entered(address: Optional[str]) -> None:
            if address is None or key is None:
                return
            if self.session.add_instance(key, address):
                self.session.log(f"Added instance {address}", "success")
            else:
                self.notify(f"{address} is already listed", severity="warning")

        self.popup(AddressInput(), nav.PopupKind.ADDRESS_INPUT, entered)

    def open_deploy_form(self, node: TreeNode) -> None:
        key = node.contract_key
        if key is None or node.function is None:
            return

        def build(raw: List[str], target: BytecodeTarget, value: int) -> TxRequest:
            return self.session.prepare_deploy(key, raw, target, value)

        self.popup(ParameterForm(node.function, build, title=f"Deploy {split_key(key)[1]}"), nav.PopupKind.PARAMETERS, self._submitted)

    def open_method(self, node: TreeNode) -> None:
        function = node.function
        if function is None or node.address is None:
            return
        target, key = node.address, node.contract_key
        if not function.inputs and not function.is_payable:
            self.submit(self.session.prepare_call(function, [], target, key))
            return

        def build(raw: List[str], _target: BytecodeTarget, value: int) -> Any:
            return self.session.prepare_call(function, raw, target, key, value)

        self.popup(ParameterForm(function, build), nav.PopupKind.PARAMETERS, self._submitted)

    def _submitted(self, request: Any) -> None:
        if request is not None:
            self.submit(request)

    def remove_node(self, node: TreeNode) -> None:
        if self.session.remove_node(node):
            what = node.address if node.kind is NodeKind.INSTANCE else node.label
            self.session.log(f"Removed {what}")

    # -- keys -----------------------------------------------------------
    def on_key(self, event: Key) -> None:
        if len(self.screen_stack) > 1:
            return
        focus = self.session.focus
        if focus is nav.Focus.SIDEBAR:
            handled = self._sidebar_key(event.key)
        elif focus in (nav.Focus.OUTPUT_LIST, nav.Focus.OUTPUT_FOOTER_MENU):
            handled = self._output_key(event.key, focus is nav.Focus.OUTPUT_FOOTER_MENU)
        else:
            handled = False
        if handled:
            event.stop()
            event.prevent_default()
            self.refresh_view()

    def _sidebar_key(self, key: str) -> bool:
        session = self.session
        nodes = session.sidebar_nodes()
        node = nodes[session.tree.selected] if nodes else None
        if key in ("up", "k"):
            session.tree.move(-1, len(nodes))
        elif key in ("down", "j"):
            session.tree.move(1, len(nodes))
        elif key in ("right", "l"):
            if node is not None and node.expandable and not node.expanded:
                self.activate_node(node)
        elif key in ("left", "h"):
            if node is not None and node.expandable and node.expanded:
                session.tree.toggle(node)
        elif key == "enter":
            if node is not None:
                self.activate_node(node)
        elif key in ("delete", "backspace"):
            if node is not None:
                self.remove_node(node)
        else:
            return False
        return True

    def _output_key(self, key: str, footer_open: bool) -> bool:
        session = self.session
        if key in ("up", "k"):
            session.select_previous()
        elif key in ("down", "j"):
            session.select_next()
        elif key == "right" and footer_open:
            session.next_action()
        elif key == "left" and footer_open:
            session.previous_action()
        elif key == "enter":
            if footer_open:
                self.perform_card_action()
            else:
                session.open_footer()
        elif key == "escape":
            session.dismiss_footer()
        elif key == "space":
            card = session.cards.selected
            if card is not None:
                session.cards.toggle_expanded(card.position)
        elif len(key) == 1 and session.cards.selected is not None and session.cards.selected.action(key):
            self.perform_card_action(key)
        else:
            return False
        return True


def launch(session: Session) -> None:
    EvmDeckApp(session).run()


__all__ = ["EvmDeckApp", "launch"]
