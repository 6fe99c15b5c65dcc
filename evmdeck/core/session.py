"""Main-loop model tying cards, navigation, contracts and polling together.

A :class:`Session` is only ever touched from the UI event loop.  Background
workers return messages (see :mod:`evmdeck.core.workers` and
:mod:`evmdeck.core.lifecycle`) which are applied here through
:meth:`Session.handle`; nothing else mutates cards.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from keyring.errors import KeyringError

from ..utils import logbook
from . import navigation as nav
from .abi_types import Uint
from .cards import Card, CardAction, CardList, CallCard, LogCard, TransactionCard, TxStatus
from .codec import AbiValue, RawInput, encode_arguments
from .commands import CommandPalette
from .config import Config, keyring_service, store_private_key
from .contract_manager import BytecodeTarget, ContractManager, ErrorDescriptor, EventDescriptor, FunctionDescriptor, split_key
from .errors import ConfigurationError, DecodeError
from .lifecycle import LifecycleEngine, PollFailed, ReceiptArrived, build_outcome, failed_outcome
from .sidebar import ContractTree, NodeKind, TreeNode
from .store import DeploymentStore
from .trace import TraceRequest, TraceWizard, TracerKind
from .workers import (
    AccountStatus,
    CallCompleted,
    CallFailed,
    CallRequest,
    ContractsLoaded,
    LoadFailed,
    SubmissionFailed,
    TraceCompleted,
    TraceFailed,
    TransactionSubmitted,
    TxRequest,
)

logger = logging.getLogger(__name__)

Request = Union[CallRequest, TxRequest]

# Upper bound on a decimals() result used as a display hint.
MAX_DECIMALS = 77


def _decimals_result(function: FunctionDescriptor, outputs: Sequence[AbiValue]) -> Optional[int]:
    """The value of an ERC-20 style ``decimals()`` view, if that is what ran."""

    if function.name != "decimals" or function.inputs or len(outputs) != 1:
        return None
    if not isinstance(outputs[0].type, Uint) or outputs[0].data > MAX_DECIMALS:
        return None
    return int(outputs[0].data)


class Session:
    def __init__(
        self,
        store: DeploymentStore,
        config: Optional[Config] = None,
        engine: Optional[LifecycleEngine] = None,
    ) -> None:
        self.store = store
        self.config = config
        self.engine = engine
        self.contracts = ContractManager()
        self.cards = CardList()
        self.nav = nav.NavigationState()
        self.tree = ContractTree()
        self.palette = CommandPalette()
        self.wizard: Optional[TraceWizard] = None
        self.status = AccountStatus(connected=False)
        self.traces: Dict[str, Any] = {}
        self.decimals: Dict[str, int] = {}

    # -- navigation -----------------------------------------------------
    def dispatch(self, *events: nav.Event) -> nav.NavigationState:
        self.nav = nav.reduce_all(self.nav, *events)
        return self.nav

    @property
    def focus(self) -> nav.Focus:
        return self.nav.focus

    def _selection_changed(self) -> None:
        card = self.cards.selected
        if card is None:
            self.dispatch(nav.SelectCard(None))
        else:
            self.dispatch(nav.SelectCard(card.position, len(card.actions)))

    def focus_output(self) -> None:
        card = self.cards.selected
        if card is None:
            card = self.cards.select(len(self.cards) - 1)
        position = card.position if card else None
        self.dispatch(nav.FocusOutput(position, len(card.actions) if card else 0))

    def focus_sidebar(self) -> None:
        self.dispatch(nav.FocusSidebar())

    def toggle_focus(self) -> None:
        if self.nav.base is nav.Focus.SIDEBAR:
            self.focus_output()
        else:
            self.focus_sidebar()

    def select_next(self) -> Optional[Card]:
        card = self.cards.select_next()
        self._selection_changed()
        return card

    def select_previous(self) -> Optional[Card]:
        card = self.cards.select_previous()
        self._selection_changed()
        return card

    def open_footer(self) -> None:
        card = self.cards.selected
        if card is not None:
            self.dispatch(nav.OpenFooter(card.position, len(card.actions)))

    def dismiss_footer(self) -> None:
        self.dispatch(nav.DismissFooter())

    def next_action(self) -> None:
        self.dispatch(nav.NextAction())

    def previous_action(self) -> None:
        self.dispatch(nav.PreviousAction())

    def highlighted_action(self) -> Optional[CardAction]:
        card = self.cards.selected
        footer = self.nav.footer
        if card is None or footer is None or footer.position != card.position:
            return None
        actions = card.actions
        return actions[footer.highlighted] if footer.highlighted < len(actions) else None

    def execute_action(self, key: Optional[str] = None) -> Optional[Tuple[Card, CardAction]]:
        """Resolve the highlighted action (or the one bound to ``key``).

        The session records the choice; performing it is up to the caller.
        """

        card = self.cards.selected
        if card is None:
            return None
        action = card.action(key) if key else self.highlighted_action()
        if action is None:
            return None
        self.dispatch(nav.ActionExecuted(card.position, card.actions.index(action)))
        return card, action

    def open_palette(self) -> None:
        self.palette.set_query("")
        self.dispatch(nav.OpenCommandPalette())

    def open_popup(self, kind: nav.PopupKind, *, replace: bool = False) -> None:
        self.dispatch(nav.OpenPopup(kind, replace))

    def dismiss_overlay(self) -> None:
        self.dispatch(nav.DismissOverlay())

    def begin_handoff(self) -> None:
        card = self.cards.selected
        self.dispatch(nav.HandoffStarted(card.position if card else None))

    def end_handoff(self) -> None:
        snapshot = self.nav.handoff
        self.dispatch(nav.HandoffFinished())
        if snapshot is not None and snapshot.selected is not None:
            self.cards.select_position(snapshot.selected)

    # -- cards ----------------------------------------------------------
    def add_card(self, card: Card) -> Card:
        self.cards.append(card)
        self._selection_changed()
        return card

    def log(self, message: str, severity: str = "info") -> LogCard:
        logger.info("%s: %s", severity, message)
        card = LogCard(message=message, severity=severity)
        self.add_card(card)
        return card

    def clear_cards(self) -> int:
        """Drop every card; polling for discarded transactions is cancelled."""

        removed = self.cards.clear()
        pending = [card.tx_hash for card in removed if isinstance(card, TransactionCard) and card.is_pending]
        if self.engine is not None and pending:
            self.engine.cancel(pending)
        self.dispatch(nav.CardsCleared())
        return len(removed)

    def _card_changed(self, card: Card) -> None:
        selected = self.cards.selected is card
        self.dispatch(nav.CardChanged(card.position, len(card.actions), selected))

    # -- contracts ------------------------------------------------------
    def sidebar_nodes(self) -> List[TreeNode]:
        nodes = self.tree.nodes(self.store, self.contracts)
        self.tree.clamp(len(nodes))
        return nodes

    def selected_node(self) -> Optional[TreeNode]:
        nodes = self.sidebar_nodes()
        return nodes[self.tree.selected] if nodes else None

    def events_for(self, address: Optional[str]) -> List[EventDescriptor]:
        """Events of the contract deployed at ``address``, else every loaded event."""

        key = self.store.contract_for_address(address) if address else None
        interface = self.contracts.interface_for(key)
        if interface is not None:
            return list(interface.events) + [event for event in self.contracts.all_events() if event not in interface.events]
        return self.contracts.all_events()

    def errors_for(self, key: Optional[str]) -> Tuple[ErrorDescriptor, ...]:
        interface = self.contracts.interface_for(key)
        return interface.errors if interface else tuple(self.contracts.all_errors())

    def add_instance(self, key: str, address: str) -> bool:
        added = self.store.add_deployment(key, address)
        self.store.save()
        return added

    def remove_node(self, node: TreeNode) -> bool:
        """Delete a deployed instance or a whole contract entry."""

        if node.kind is NodeKind.INSTANCE and node.contract_key and node.address:
            removed = self.store.remove_deployment(node.contract_key, node.address)
        elif node.kind is NodeKind.CONTRACT and node.contract_key:
            removed = self.store.remove_contract(node.contract_key)
            self.contracts.remove(node.contract_key)
        else:
            return False
        self.store.save()
        self.tree.clamp(len(self.sidebar_nodes()))
        return removed

    def reset(self) -> None:
        self.store.clear()
        self.store.save()
        self.contracts = ContractManager()
        self.tree.reset()
        self.log("State cleared")

    def reload_store(self) -> None:
        self.store = DeploymentStore.load(self.store.path)
        self.tree.selected = 0
        self.log("Config reloaded", "success")

    def use_config(self, config: Config, client: Any) -> None:
        """Switch to ``config``; receipts of later transactions are polled through ``client``."""

        self.config = config
        if self.engine is not None:
            self.engine.source = client

    def save_private_key(self) -> bool:
        """Keep the active signing key in the system keyring for later sessions."""

        if self.config is None or not self.config.private_key:
            raise ConfigurationError("no private key configured", {"private_key": "missing"})
        try:
            store_private_key(self.config.private_key)
        except KeyringError as exc:
            self.log(f"Could not save the key to the keyring: {exc}", "error")
            return False
        logbook.info({"action": "keyring.store", "service": keyring_service(), "address": self.config.address})
        self.log(f"Saved the key for {self.config.address} to the keyring", "success")
        return True

    # -- requests -------------------------------------------------------
    def prepare_call(
        self,
        function: FunctionDescriptor,
        raw_inputs: Sequence[RawInput],
        target: str,
        contract_key: Optional[str] = None,
        value: int = 0,
    ) -> Request:
        """Validate the form and build the request for ``function``.

        Raises :class:`FormValidationError` listing every bad field.
        """

        inputs = tuple(encode_arguments(function.inputs, raw_inputs))
        errors = self.errors_for(contract_key)
        if function.is_read_only:
            caller = self.config.address if self.config else None
            return CallRequest(function, inputs, target, contract_key, caller, errors)
        return TxRequest(function, inputs, target, contract_key, value=value, errors=errors)

    def prepare_deploy(
        self,
        contract_key: str,
        raw_inputs: Sequence[RawInput],
        bytecode_target: BytecodeTarget = BytecodeTarget.EVM,
        value: int = 0,
    ) -> TxRequest:
        artifact = self.contracts.get(contract_key)
        if artifact is None:
            raise KeyError(f"contract {contract_key} is not loaded")
        constructor = artifact.interface.deploy_descriptor()
        inputs = tuple(encode_arguments(constructor.inputs, raw_inputs))
        source, name = split_key(contract_key)
        return TxRequest(
            constructor,
            inputs,
            None,
            contract_key,
            value=value,
            bytecode_target=bytecode_target,
            source=Path(source),
            contract_name=name,
            bytecode=artifact.bytecode.get(bytecode_target) if bytecode_target is BytecodeTarget.EVM else None,
            errors=artifact.interface.errors,
        )

    def call_again(self, card: CallCard) -> CallRequest:
        return CallRequest(
            card.function,
            card.inputs,
            card.target or "",
            card.contract_key,
            card.caller,
            self.errors_for(card.contract_key),
        )

    # -- trace ----------------------------------------------------------
    def start_trace(self) -> TraceWizard:
        card = self.cards.selected
        if not isinstance(card, TransactionCard) or not card.status.terminal or card.status is TxStatus.FAILED:
            raise ConfigurationError("select a finalized transaction to trace")
        self.wizard = TraceWizard(card.tx_hash)
        self.open_popup(nav.PopupKind.TRACER_SELECT)
        return self.wizard

    def choose_tracer(self, kind: TracerKind) -> None:
        if self.wizard is None:
            raise ConfigurationError("no trace in progress")
        self.wizard.choose(kind)
        self.open_popup(nav.PopupKind.TRACER_CONFIG, replace=True)

    def confirm_trace(self) -> TraceRequest:
        """Build the trace request; raises :class:`ConfigurationError` and stays open on bad options."""

        if self.wizard is None:
            raise ConfigurationError("no trace in progress")
        request = self.wizard.confirm()
        self.wizard = None
        self.dismiss_overlay()
        return request

    def cancel_trace(self) -> None:
        self.wizard = None
        self.dismiss_overlay()

    # -- messages -------------------------------------------------------
    def handle(self, message: Any) -> Optional[Card]:
        """Apply a worker message; returns the card it created or changed."""

        if isinstance(message, CallCompleted):
            request = message.request
            target = (request.target or "").lower()
            decimals = _decimals_result(request.function, message.outputs)
            if decimals is not None:
                self.decimals[target] = decimals
            card = CallCard(
                function=request.function,
                inputs=request.inputs,
                outputs=message.outputs,
                block_number=message.block_number,
                caller=request.caller,
                target=request.target,
                calldata=message.calldata,
                contract_key=request.contract_key,
                decimals=None if decimals is not None else self.decimals.get(target),
            )
            return self.add_card(card)

        if isinstance(message, CallFailed):
            prefix = "reverted" if message.reverted else "failed"
            return self.log(f"{message.request.function.name} {prefix}: {message.reason}", "error")

        if isinstance(message, TransactionSubmitted):
            request = message.request
            card = TransactionCard(
                tx_hash=message.tx_hash,
                function=request.function,
                sender=message.sender or "",
                to=request.target,
                inputs=request.inputs,
                gas_estimate=message.gas_estimate,
                value=request.value,
                contract_key=request.contract_key,
            )
            self.add_card(card)
            if self.engine is not None:
                self.engine.track(message.tx_hash)
            return card

        if isinstance(message, SubmissionFailed):
            return self.log(f"{message.request.function.name} not sent: {message.reason}", "error")

        if isinstance(message, ReceiptArrived):
            return self._apply_receipt(message)

        if isinstance(message, PollFailed):
            card = self.cards.find_transaction(message.tx_hash)
            if card is None or not card.finalize(failed_outcome(message.reason)):
                return None
            self._card_changed(card)
            return card

        if isinstance(message, TraceCompleted):
            self.traces[message.request.tx_hash] = message.document
            return self.log(
                f"{message.request.tracer} trace of {message.request.tx_hash} ready ({len(message.logs)} logs)",
                "success",
            )

        if isinstance(message, TraceFailed):
            return self.log(f"trace of {message.request.tx_hash} failed: {message.reason}", "error")

        if isinstance(message, ContractsLoaded):
            keys = self.contracts.register(message.artifacts)
            for key in keys:
                self.store.ensure_contract(key)
                self.tree.expanded.add(key)
            self.store.save()
            names = ", ".join(artifact.name for artifact in message.artifacts)
            return self.log(f"Loaded {names} from {message.source.name}", "success")

        if isinstance(message, LoadFailed):
            return self.log(f"Failed to load {message.source}: {message.reason}", "error")

        if isinstance(message, AccountStatus):
            self.status = message
            return None

        raise TypeError(f"unknown message: {message!r}")

    def _apply_receipt(self, message: ReceiptArrived) -> Optional[TransactionCard]:
        card = self.cards.find_transaction(message.tx_hash)
        if card is None or not card.is_pending:
            # Cleared or already finalized.
            logger.debug("ignoring receipt for %s", message.tx_hash)
            return None
        receipt = message.receipt
        try:
            outcome = build_outcome(
                receipt,
                self.events_for(card.to or receipt.get("contractAddress")),
                self.errors_for(card.contract_key),
                message.revert_data,
            )
        except (DecodeError, TypeError, ValueError) as exc:
            outcome = failed_outcome(f"receipt could not be decoded: {exc}")
        card.finalize(outcome)
        if card.is_deployment and card.status is TxStatus.SUCCESS and card.contract_address and card.contract_key:
            self.add_instance(card.contract_key, card.contract_address)
        logbook.info(
            {
                "action": "tx.finalized",
                "tx_hash": card.tx_hash,
                "status": card.status.value,
                "block": card.block_number,
                "gas_used": card.gas_used,
            }
        )
        self._card_changed(card)
        return card


__all__ = ["Session"]
