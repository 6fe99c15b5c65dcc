"""End-to-end flows through the main-loop session model."""

from __future__ import annotations

from pathlib import Path
from typing import List

import keyring
import pytest
from eth_utils import keccak, to_checksum_address

from evmdeck.core.abi_types import Param, Uint
from evmdeck.core.cards import CallCard, LogCard, TransactionCard, TxStatus
from evmdeck.core.codec import encode
from evmdeck.core.config import PRIVATE_KEY_ENV, Config, keyring_service
from evmdeck.core.contract_manager import BytecodeTarget, FunctionDescriptor, load_contracts
from evmdeck.core.errors import ConfigurationError, FormValidationError
from evmdeck.core.lifecycle import PollFailed, ReceiptArrived
from evmdeck.core.navigation import Focus, PopupKind
from evmdeck.core.session import Session
from evmdeck.core.sidebar import NodeKind
from evmdeck.core.store import DeploymentStore
from evmdeck.core.trace import CallTracerConfig, TraceRequest, TracerKind
from evmdeck.core.workers import (
    AccountStatus,
    CallCompleted,
    CallRequest,
    ContractsLoaded,
    LoadFailed,
    TraceCompleted,
    TransactionSubmitted,
    TxRequest,
)

INSTANCE = to_checksum_address("0x" + "12" * 20)
SENDER = to_checksum_address("0x" + "34" * 20)
TX_HASH = "0x" + "cd" * 32


class RecordingEngine:
    def __init__(self) -> None:
        self.source: object = None
        self.tracked: List[str] = []
        self.cancelled: List[str] = []

    def track(self, tx_hash: str) -> bool:
        self.tracked.append(tx_hash)
        return True

    def cancel(self, tx_hashes=None) -> int:
        self.cancelled.extend(tx_hashes or ())
        return len(tx_hashes or ())


@pytest.fixture()
def engine() -> RecordingEngine:
    return RecordingEngine()


@pytest.fixture()
def session(tmp_path: Path, counter_source: Path, engine: RecordingEngine) -> Session:
    store = DeploymentStore.load(tmp_path / "config.json")
    config = Config(rpc_url="http://localhost:8545", address=SENDER, private_key="00" * 32)
    session = Session(store, config, engine)  # type: ignore[arg-type]
    session.handle(ContractsLoaded(counter_source, tuple(load_contracts(counter_source, build=False))))
    return session


@pytest.fixture()
def key(session: Session) -> str:
    return session.contracts.keys()[0]


def _receipt(status: int = 1, **extra) -> dict:
    receipt = {
        "transactionHash": TX_HASH,
        "status": status,
        "blockNumber": 9,
        "gasUsed": 43210,
        "contractAddress": None,
        "logs": [
            {
                "address": INSTANCE,
                "topics": ["0x" + keccak(text="Incremented(uint256)").hex()],
                "data": "0x" + (43).to_bytes(32, "big").hex(),
            }
        ],
    }
    receipt.update(extra)
    return receipt


def _submit(session: Session, request: TxRequest, tx_hash: str = TX_HASH) -> TransactionCard:
    card = session.handle(TransactionSubmitted(request, tx_hash, SENDER, 40000))
    assert isinstance(card, TransactionCard)
    return card


def test_contracts_loaded_are_saved_and_expanded(session: Session, key: str) -> None:
    assert key.endswith(":Counter")
    assert session.store.all_contracts() == [key]
    assert key in session.tree.expanded
    reloaded = DeploymentStore.load(session.store.path)
    assert reloaded.all_contracts() == [key]
    card = session.cards.selected
    assert isinstance(card, LogCard)
    assert card.message == "Loaded Counter from Counter.sol"


def test_increment_lifecycle(session: Session, key: str, engine: RecordingEngine) -> None:
    session.add_instance(key, INSTANCE)
    increment = session.contracts.get(key).interface.function("increment")
    session.focus_output()

    request = session.prepare_call(increment, [], INSTANCE, key)
    assert isinstance(request, TxRequest)
    card = _submit(session, request)
    assert engine.tracked == [TX_HASH]
    assert card.status is TxStatus.PENDING
    assert session.nav.footer is None
    assert session.focus is Focus.OUTPUT_LIST

    changed = session.handle(ReceiptArrived(TX_HASH, _receipt()))
    assert changed is card
    assert card.status is TxStatus.SUCCESS
    assert card.gas_used == 43210
    assert card.block_number == 9
    assert [log.describe() for log in card.logs] == ["Incremented(newCount: 43)"]

    assert session.focus is Focus.OUTPUT_FOOTER_MENU
    assert [action.label for action in card.actions] == ["View Receipt", "Debug Trace", "View Logs"]
    assert session.highlighted_action().label == "View Receipt"
    session.next_action()
    assert session.highlighted_action().label == "Debug Trace"


def test_duplicate_receipt_is_ignored(session: Session, key: str) -> None:
    increment = session.contracts.get(key).interface.function("increment")
    card = _submit(session, session.prepare_call(increment, [], INSTANCE, key))
    session.handle(ReceiptArrived(TX_HASH, _receipt()))
    assert session.handle(ReceiptArrived(TX_HASH, _receipt(status=0))) is None
    assert session.handle(PollFailed(TX_HASH, "late")) is None
    assert card.status is TxStatus.SUCCESS


def test_reverted_receipt_decodes_custom_error(session: Session, key: str) -> None:
    set_count = session.contracts.get(key).interface.function("setCount")
    card = _submit(session, session.prepare_call(set_count, ["1000"], INSTANCE, key))
    error = next(item for item in session.contracts.get(key).interface.errors if item.name == "TooLarge")
    revert = error.selector + (100).to_bytes(32, "big")
    session.handle(ReceiptArrived(TX_HASH, _receipt(status=0, logs=[]), revert))
    assert card.status is TxStatus.REVERTED
    assert card.revert_reason == "TooLarge(limit: 100)"


def test_poll_failure_finalizes_without_actions(session: Session, key: str) -> None:
    increment = session.contracts.get(key).interface.function("increment")
    card = _submit(session, session.prepare_call(increment, [], INSTANCE, key))
    session.handle(PollFailed(TX_HASH, "no receipt after 300 lookups"))
    assert card.status is TxStatus.FAILED
    assert card.actions == ()
    with pytest.raises(ConfigurationError):
        session.start_trace()


def test_deployment_registers_instance(session: Session, key: str) -> None:
    request = session.prepare_deploy(key, ["5"])
    assert request.function.is_constructor
    assert request.bytecode_target is BytecodeTarget.EVM
    assert request.bytecode is not None
    assert request.contract_name == "Counter"
    card = _submit(session, request)
    assert card.is_deployment

    session.handle(ReceiptArrived(TX_HASH, _receipt(contractAddress=INSTANCE, logs=[])))
    assert card.contract_address == INSTANCE
    assert session.store.get_deployments(key) == [INSTANCE]
    assert DeploymentStore.load(session.store.path).get_deployments(key) == [INSTANCE]


def test_pvm_deploy_defers_to_compile(session: Session, key: str) -> None:
    request = session.prepare_deploy(key, ["1"], BytecodeTarget.PVM)
    assert request.bytecode is None
    assert request.source is not None


def test_prepare_deploy_requires_loaded_contract(session: Session) -> None:
    with pytest.raises(KeyError):
        session.prepare_deploy("/nowhere/Missing.sol:Missing", [])


def test_invalid_form_raises(session: Session, key: str) -> None:
    set_count = session.contracts.get(key).interface.function("setCount")
    with pytest.raises(FormValidationError) as excinfo:
        session.prepare_call(set_count, ["-1"], INSTANCE, key)
    assert list(excinfo.value.errors) == [0]


def test_view_call_card_and_call_again(session: Session, key: str) -> None:
    count = session.contracts.get(key).interface.function("count")
    request = session.prepare_call(count, [], INSTANCE, key)
    assert isinstance(request, CallRequest)
    assert request.caller == SENDER

    output = encode(count.outputs[0].type, "42")
    card = session.handle(CallCompleted(request, (output,), 9, count.selector))
    assert isinstance(card, CallCard)
    assert session.call_again(card) == request


def test_clear_cancels_pending_polls(session: Session, key: str, engine: RecordingEngine) -> None:
    increment = session.contracts.get(key).interface.function("increment")
    _submit(session, session.prepare_call(increment, [], INSTANCE, key))
    session.focus_output()

    assert session.clear_cards() == 2
    assert engine.cancelled == [TX_HASH]
    assert session.cards.selected is None
    assert session.nav.footer is None
    assert session.handle(ReceiptArrived(TX_HASH, _receipt())) is None


def test_trace_wizard_flow(session: Session, key: str) -> None:
    increment = session.contracts.get(key).interface.function("increment")
    _submit(session, session.prepare_call(increment, [], INSTANCE, key))
    with pytest.raises(ConfigurationError):
        session.start_trace()
    session.handle(ReceiptArrived(TX_HASH, _receipt()))

    session.start_trace()
    assert session.nav.popup is PopupKind.TRACER_SELECT
    session.choose_tracer(TracerKind.CALL)
    assert [item.popup for item in session.nav.overlays] == [PopupKind.TRACER_CONFIG]
    session.wizard.form.set("withLog", "maybe")
    with pytest.raises(ConfigurationError):
        session.confirm_trace()
    assert session.nav.popup is PopupKind.TRACER_CONFIG

    session.wizard.form.set("withLog", "false")
    request = session.confirm_trace()
    assert request.params()[1]["tracerConfig"] == {"onlyTopCall": False, "withLog": False}
    assert session.nav.overlays == ()
    assert session.wizard is None


def test_trace_result_is_kept(session: Session) -> None:
    request = TraceRequest(TX_HASH, CallTracerConfig())
    card = session.handle(TraceCompleted(request, {"type": "CALL"}, ()))
    assert session.traces[TX_HASH] == {"type": "CALL"}
    assert card.severity == "success"


def test_handoff_restores_selection(session: Session, key: str) -> None:
    increment = session.contracts.get(key).interface.function("increment")
    card = _submit(session, session.prepare_call(increment, [], INSTANCE, key))
    session.handle(ReceiptArrived(TX_HASH, _receipt()))
    session.focus_output()
    session.execute_action("l")

    session.begin_handoff()
    session.log("clipboard busy")
    session.end_handoff()
    assert session.cards.selected is card
    assert session.highlighted_action().id == "logs"


def test_remove_instance_and_contract(session: Session, key: str) -> None:
    session.add_instance(key, INSTANCE)
    nodes = session.sidebar_nodes()
    instance = next(node for node in nodes if node.kind is NodeKind.INSTANCE)
    assert session.remove_node(instance)
    assert session.store.get_deployments(key) == []

    contract = next(node for node in session.sidebar_nodes() if node.kind is NodeKind.CONTRACT)
    assert session.remove_node(contract)
    assert session.store.all_contracts() == []
    assert session.contracts.keys() == []
    assert not session.remove_node(session.sidebar_nodes()[0])


def test_reset_and_reload(session: Session, key: str) -> None:
    session.add_instance(key, INSTANCE)
    session.reset()
    assert session.store.all_contracts() == []
    assert session.contracts.keys() == []
    assert session.cards.selected.message == "State cleared"

    session.store.ensure_contract(key)
    session.store.save()
    session.reload_store()
    assert session.store.all_contracts() == [key]


def test_misc_messages(session: Session) -> None:
    failed = session.handle(LoadFailed(Path("Broken.sol"), "forge build failed"))
    assert failed.severity == "error"
    assert session.handle(AccountStatus(connected=True, chain_id=31337)) is None
    assert session.status.chain_id == 31337
    with pytest.raises(TypeError):
        session.handle("bogus")


def test_decimals_hint_follows_the_token(session: Session, key: str) -> None:
    decimals = FunctionDescriptor("decimals", outputs=(Param("", Uint(8)),), mutability="view")
    hint = session.handle(CallCompleted(CallRequest(decimals, (), INSTANCE), (encode(Uint(8), "6"),), 9, decimals.selector))
    assert hint.decimals is None
    assert session.decimals == {INSTANCE.lower(): 6}

    count = session.contracts.get(key).interface.function("count")
    card = session.handle(CallCompleted(CallRequest(count, (), INSTANCE), (encode(Uint(256), "1500000"),), 9, count.selector))
    assert card.decimals == 6
    other = to_checksum_address("0x" + "56" * 20)
    elsewhere = session.handle(CallCompleted(CallRequest(count, (), other), (encode(Uint(256), "1"),), 9, count.selector))
    assert elsewhere.decimals is None


def test_use_config_repoints_polling(session: Session, engine: RecordingEngine) -> None:
    client = object()
    config = Config(rpc_url="http://other:8545", address=SENDER, private_key="00" * 32)
    session.use_config(config, client)
    assert session.config is config
    assert engine.source is client


def test_save_private_key(session: Session, isolated_home: Path) -> None:
    assert session.save_private_key()
    assert keyring.get_password(keyring_service(), PRIVATE_KEY_ENV) == "00" * 32
    assert session.cards.selected.severity == "success"
    assert '"keyring.store"' in (isolated_home / "audit.jsonl").read_text(encoding="utf-8")

    session.config = None
    with pytest.raises(ConfigurationError):
        session.save_private_key()


def test_malformed_receipt_fails_the_card(session: Session, key: str) -> None:
    increment = session.contracts.get(key).interface.function("increment")
    card = _submit(session, session.prepare_call(increment, [], INSTANCE, key))
    session.handle(ReceiptArrived(TX_HASH, _receipt(status="pending?")))
    assert card.status is TxStatus.FAILED
    assert card.outcome.failure.startswith("receipt could not be decoded")
