"""Background operations.

Each coroutine performs blocking RPC or tool work in a thread and returns
exactly one message describing the result.  None of them mutate session
state; :meth:`evmdeck.core.session.Session.handle` applies the message on
the main loop.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from ..utils import logbook
from .codec import AbiValue, DecodedLog, decode_log, decode_outputs, decode_revert, encode_call, encode_deployment
from .contract_manager import (
    BytecodeTarget,
    ContractArtifact,
    ErrorDescriptor,
    FunctionDescriptor,
    compile_contract,
    load_contracts,
)
from .errors import DecodeError, EncodeError, NetworkError, RevertError
from .trace import TraceRequest, iter_trace_logs

logger = logging.getLogger(__name__)


# -- requests ---------------------------------------------------------------


@dataclass(frozen=True)
class CallRequest:
    function: FunctionDescriptor
    inputs: Tuple[AbiValue, ...]
    target: str
    contract_key: Optional[str] = None
    caller: Optional[str] = None
    errors: Tuple[ErrorDescriptor, ...] = ()


@dataclass(frozen=True)
class TxRequest:
    """A state-changing call, or a deployment when ``function`` is a constructor."""

    function: FunctionDescriptor
    inputs: Tuple[AbiValue, ...]
    target: Optional[str] = None
    contract_key: Optional[str] = None
    value: int = 0
    bytecode_target: BytecodeTarget = BytecodeTarget.EVM
    source: Optional[Path] = None
    contract_name: Optional[str] = None
    bytecode: Optional[bytes] = field(default=None, repr=False)
    errors: Tuple[ErrorDescriptor, ...] = ()


# -- results ----------------------------------------------------------------


@dataclass(frozen=True)
class CallCompleted:
    request: CallRequest
    outputs: Tuple[AbiValue, ...]
    block_number: int
    calldata: bytes


@dataclass(frozen=True)
class CallFailed:
    request: CallRequest
    reason: str
    reverted: bool = False


@dataclass(frozen=True)
class TransactionSubmitted:
    request: TxRequest
    tx_hash: str
    sender: Optional[str]
    gas_estimate: Optional[int]


@dataclass(frozen=True)
class SubmissionFailed:
    request: TxRequest
    reason: str


@dataclass(frozen=True)
class TraceCompleted:
    request: TraceRequest
    document: Any = field(compare=False)
    logs: Tuple[DecodedLog, ...] = ()


@dataclass(frozen=True)
class TraceFailed:
    request: TraceRequest
    reason: str


@dataclass(frozen=True)
class ContractsLoaded:
    source: Path
    artifacts: Tuple[ContractArtifact, ...]


@dataclass(frozen=True)
class LoadFailed:
    source: Path
    reason: str


@dataclass(frozen=True)
class AccountStatus:
    connected: bool
    chain_id: Optional[int] = None
    address: Optional[str] = None
    balance: Optional[int] = None
    error: Optional[str] = None


# -- workers ----------------------------------------------------------------


async def perform_call(client: Any, request: CallRequest) -> Union[CallCompleted, CallFailed]:
    try:
        calldata = encode_call(request.function, request.inputs)
        raw, block = await asyncio.to_thread(client.call, request.target, calldata, request.caller)
        outputs = decode_outputs(request.function, raw)
    except RevertError as exc:
        return CallFailed(request, decode_revert(exc.data, request.errors), reverted=True)
    except (EncodeError, DecodeError, NetworkError) as exc:
        return CallFailed(request, str(exc))
    return CallCompleted(request, outputs, block, calldata)


async def _deployment_bytecode(request: TxRequest) -> bytes:
    if request.bytecode:
        return request.bytecode
    if request.source is None or request.contract_name is None:
        raise EncodeError("deployment needs either bytecode or a source file")
    artifact = await asyncio.to_thread(
        compile_contract,
        request.source,
        request.contract_name,
        request.bytecode_target,
    )
    return artifact.bytecode_for(request.bytecode_target)


async def perform_transaction(client: Any, request: TxRequest) -> Union[TransactionSubmitted, SubmissionFailed]:
    """Encode, estimate, sign and broadcast ``request``."""

    deploying = request.function.is_constructor
    try:
        if deploying:
            bytecode = await _deployment_bytecode(request)
            data = encode_deployment(bytecode, request.function, request.inputs)
        else:
            data = encode_call(request.function, request.inputs)
        gas = await asyncio.to_thread(client.estimate_gas, request.target, data, request.value)
        tx_hash = await asyncio.to_thread(client.send, request.target, data, request.value, gas)
    except RevertError as exc:
        return SubmissionFailed(request, decode_revert(exc.data, request.errors))
    except (EncodeError, NetworkError) as exc:
        return SubmissionFailed(request, str(exc))
    except (RuntimeError, ValueError, FileNotFoundError) as exc:
        # forge failures and unusable artifacts
        return SubmissionFailed(request, str(exc))
    record: Dict[str, object] = {
        "action": "tx.deploy" if deploying else "tx.send",
        "tx_hash": tx_hash,
        "function": request.function.signature,
        "to": request.target,
        "contract": request.contract_key,
        "gas_estimate": gas,
    }
    if deploying:
        record["target"] = request.bytecode_target.value
    await asyncio.to_thread(logbook.info, record)
    return TransactionSubmitted(request, tx_hash, getattr(client, "account", None), gas)


async def perform_trace(client: Any, request: TraceRequest, events: Iterable[Any] = ()) -> Union[TraceCompleted, TraceFailed]:
    try:
        document = await asyncio.to_thread(client.trace, request)
    except (NetworkError, RevertError) as exc:
        return TraceFailed(request, str(exc))
    events = list(events)
    logs: List[DecodedLog] = []
    for entry in iter_trace_logs(document):
        try:
            logs.append(decode_log(entry, events))
        except DecodeError as exc:
            logger.debug("trace log left raw: %s", exc)
    await asyncio.to_thread(
        logbook.journal,
        {"action": "trace.request", "tx_hash": request.tx_hash, "tracer": request.tracer},
    )
    return TraceCompleted(request, document, tuple(logs))


async def perform_load(source: Path, *, build: bool = True) -> Union[ContractsLoaded, LoadFailed]:
    try:
        artifacts = await asyncio.to_thread(load_contracts, source, build=build)
    except (RuntimeError, ValueError, OSError) as exc:
        return LoadFailed(Path(source), str(exc))
    return ContractsLoaded(Path(source), tuple(artifacts))


async def perform_status(client: Any) -> AccountStatus:
    address = getattr(client, "account", None)
    try:
        chain_id = await asyncio.to_thread(client.chain_id)
        balance = await asyncio.to_thread(client.balance, address) if address else None
    except NetworkError as exc:
        return AccountStatus(connected=False, address=address, error=str(exc))
    return AccountStatus(connected=True, chain_id=chain_id, address=address, balance=balance)


__all__ = [
    "AccountStatus",
    "CallCompleted",
    "CallFailed",
    "CallRequest",
    "ContractsLoaded",
    "LoadFailed",
    "SubmissionFailed",
    "TraceCompleted",
    "TraceFailed",
    "TransactionSubmitted",
    "TxRequest",
    "perform_call",
    "perform_load",
    "perform_status",
    "perform_trace",
    "perform_transaction",
]
