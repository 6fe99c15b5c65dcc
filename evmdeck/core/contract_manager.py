"""Contract interface model, build artifacts and Foundry glue."""

from __future__ import annotations

import json
import logging
import subprocess
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from eth_utils import decode_hex

from . import codec
from .abi_types import Param, canonical_list, parse_params

logger = logging.getLogger(__name__)

PVM_MAGIC = b"PVM\x00"
READ_ONLY = ("pure", "view")
MUTABILITIES = ("pure", "view", "nonpayable", "payable")


class BytecodeTarget(str, Enum):
    """Virtual machine a deployment's bytecode was compiled for."""

    EVM = "evm"
    PVM = "pvm"

    @property
    def output_dir(self) -> str:
        return f"out-{self.value}"

    @property
    def label(self) -> str:
        return self.value.upper()

    def toggle(self) -> "BytecodeTarget":
        return BytecodeTarget.PVM if self is BytecodeTarget.EVM else BytecodeTarget.EVM

    @classmethod
    def detect(cls, blob: bytes) -> "BytecodeTarget":
        return cls.PVM if blob.startswith(PVM_MAGIC) else cls.EVM


@dataclass(frozen=True)
class FunctionDescriptor:
    """A callable entry of a contract interface (constructors included)."""

    name: str
    inputs: Tuple[Param, ...] = ()
    outputs: Tuple[Param, ...] = ()
    mutability: str = "nonpayable"
    kind: str = "function"

    @property
    def signature(self) -> str:
        return f"{self.name}({canonical_list(self.inputs)})"

    @property
    def selector(self) -> bytes:
        return codec.selector(self.name, self.inputs)

    @property
    def is_constructor(self) -> bool:
        return self.kind == "constructor"

    @property
    def is_read_only(self) -> bool:
        return self.mutability in READ_ONLY

    @property
    def is_payable(self) -> bool:
        return self.mutability == "payable"

    @property
    def tag(self) -> str:
        if self.is_constructor:
            return "deploy"
        if self.is_read_only:
            return "view"
        return "payable" if self.is_payable else "send"

    @property
    def label(self) -> str:
        params = ", ".join(param.label for param in self.inputs)
        text = f"{self.name}({params})"
        if self.outputs:
            returns = ", ".join(param.type.canonical for param in self.outputs)
            text += f" -> {returns}"
        return text


@dataclass(frozen=True)
class EventDescriptor:
    name: str
    inputs: Tuple[Param, ...] = ()
    anonymous: bool = False

    @property
    def signature(self) -> str:
        return f"{self.name}({canonical_list(self.inputs)})"

    @property
    def topic(self) -> bytes:
        return codec.event_topic(self.name, self.inputs)


@dataclass(frozen=True)
class ErrorDescriptor:
    name: str
    inputs: Tuple[Param, ...] = ()

    @property
    def signature(self) -> str:
        return f"{self.name}({canonical_list(self.inputs)})"

    @property
    def selector(self) -> bytes:
        return codec.selector(self.name, self.inputs)


def _mutability(entry: Mapping[str, Any]) -> str:
    declared = entry.get("stateMutability")
    if declared in MUTABILITIES:
        return str(declared)
    # Pre-0.5 compilers only emit the constant/payable flags.
    if entry.get("constant"):
        return "view"
    return "payable" if entry.get("payable") else "nonpayable"


@dataclass(frozen=True)
class ContractInterface:
    """Parsed JSON ABI of one contract."""

    functions: Tuple[FunctionDescriptor, ...] = ()
    events: Tuple[EventDescriptor, ...] = ()
    errors: Tuple[ErrorDescriptor, ...] = ()
    constructor: Optional[FunctionDescriptor] = None

    @classmethod
    def from_abi(cls, abi: Any) -> "ContractInterface":
        if not isinstance(abi, list):
            raise ValueError("Contract ABI must be a list of JSON objects")
        functions: List[FunctionDescriptor] = []
        events: List[EventDescriptor] = []
        errors: List[ErrorDescriptor] = []
        constructor: Optional[FunctionDescriptor] = None
        for entry in abi:
            if not isinstance(entry, dict):
                continue
            kind = entry.get("type", "function")
            if kind == "function":
                functions.append(
                    FunctionDescriptor(
                        name=str(entry["name"]),
                        inputs=parse_params(entry.get("inputs")),
                        outputs=parse_params(entry.get("outputs")),
                        mutability=_mutability(entry),
                    )
                )
            elif kind == "constructor":
                constructor = FunctionDescriptor(
                    name="constructor",
                    inputs=parse_params(entry.get("inputs")),
                    mutability=_mutability(entry),
                    kind="constructor",
                )
            elif kind == "event":
                events.append(
                    EventDescriptor(
                        name=str(entry["name"]),
                        inputs=parse_params(entry.get("inputs")),
                        anonymous=bool(entry.get("anonymous", False)),
                    )
                )
            elif kind == "error":
                errors.append(ErrorDescriptor(name=str(entry["name"]), inputs=parse_params(entry.get("inputs"))))
        return cls(tuple(functions), tuple(events), tuple(errors), constructor)

    def deploy_descriptor(self) -> FunctionDescriptor:
        """The constructor, or an argument-less stand-in when none is declared."""

        return self.constructor or FunctionDescriptor(name="constructor", kind="constructor")

    def methods(self) -> List[FunctionDescriptor]:
        """Functions with view/pure first, then alphabetically."""

        return sorted(self.functions, key=lambda item: (not item.is_read_only, item.name, item.signature))

    def function(self, name_or_signature: str) -> FunctionDescriptor:
        if "(" in name_or_signature:
            for item in self.functions:
                if item.signature == name_or_signature.replace(" ", ""):
                    return item
            raise KeyError(name_or_signature)
        matches = [item for item in self.functions if item.name == name_or_signature]
        if not matches:
            raise KeyError(name_or_signature)
        if len(matches) > 1:
            options = ", ".join(item.signature for item in matches)
            raise KeyError(f"{name_or_signature} is overloaded: {options}")
        return matches[0]


@dataclass
class ContractArtifact:
    """A compiled contract: its interface plus bytecode per target."""

    name: str
    source: Path
    interface: ContractInterface
    bytecode: Dict[BytecodeTarget, bytes] = field(default_factory=dict)

    @property
    def key(self) -> str:
        return contract_key(self.source, self.name)

    def bytecode_for(self, target: BytecodeTarget) -> bytes:
        blob = self.bytecode.get(target, b"")
        if not blob:
            raise ValueError(f"Empty {target.label} bytecode for {self.name}. This may be an interface or abstract contract.")
        if target is BytecodeTarget.PVM and not blob.startswith(PVM_MAGIC):
            raise ValueError("Invalid PVM bytecode: missing magic bytes. Ensure resolc is installed and working.")
        return blob


def artifact_dir(source: Path, target: BytecodeTarget) -> Path:
    """Directory ``forge build -o out-<target>`` writes artifacts of ``source`` to."""

    return source.parent / target.output_dir / f"{source.stem}.sol"


def artifact_path(source: Path, contract_name: str, target: BytecodeTarget) -> Path:
    return artifact_dir(source, target) / f"{contract_name}.json"


def _bytecode_field(payload: Mapping[str, Any]) -> bytes:
    raw = payload.get("bytecode", "")
    if isinstance(raw, Mapping):
        raw = raw.get("object", "")
    if not raw:
        return b""
    return decode_hex(str(raw))


def load_artifact(path: Path, *, name: Optional[str] = None, source: Optional[Path] = None) -> ContractArtifact:
    """Read a Foundry artifact (or a bare ABI array) from ``path``."""

    json_path = Path(path).expanduser().resolve()
    payload = json.loads(json_path.read_text(encoding="utf-8"))
    if isinstance(payload, list):
        payload = {"abi": payload}
    if not isinstance(payload, dict) or "abi" not in payload:
        raise ValueError(f"{json_path} is not a contract artifact")
    interface = ContractInterface.from_abi(payload["abi"])
    contract_name = name or str(payload.get("contractName") or json_path.stem)
    artifact = ContractArtifact(name=contract_name, source=source or json_path, interface=interface)
    blob = _bytecode_field(payload)
    if blob:
        artifact.bytecode[BytecodeTarget.detect(blob)] = blob
    return artifact


def run_forge_build(source: Path, target: BytecodeTarget = BytecodeTarget.EVM) -> None:
    """Compile ``source`` with ``forge`` into the per-target output directory."""

    source = Path(source).resolve()
    command = ["forge", "build", "-o", str(source.parent / target.output_dir), str(source)]
    if target is BytecodeTarget.PVM:
        command.append("--resolc-compile")
    logger.info("running %s", " ".join(command))
    try:
        result = subprocess.run(command, cwd=source.parent, capture_output=True, text=True, check=False)
    except FileNotFoundError as exc:
        raise RuntimeError("Failed to execute forge. Is it installed?") from exc
    if result.returncode != 0:
        raise RuntimeError(f"forge build failed:\n{result.stderr or result.stdout}")


def load_contracts(source: Path, *, build: bool = True) -> List[ContractArtifact]:
    """Every contract compiled from the Solidity file ``source``.

    Bytecode from both target output directories is attached when present.
    """

    source = Path(source).expanduser().resolve()
    if not source.exists():
        raise FileNotFoundError(f"Solidity file not found: {source}")
    if build:
        run_forge_build(source, BytecodeTarget.EVM)
    evm_dir = artifact_dir(source, BytecodeTarget.EVM)
    if not evm_dir.exists():
        raise FileNotFoundError(f"No artifacts found at {evm_dir}. Compilation may have failed.")
    contracts = []
    for json_path in sorted(evm_dir.glob("*.json")):
        artifact = load_artifact(json_path, source=source)
        pvm_path = artifact_path(source, artifact.name, BytecodeTarget.PVM)
        if pvm_path.exists():
            blob = _bytecode_field(json.loads(pvm_path.read_text(encoding="utf-8")))
            if blob:
                artifact.bytecode[BytecodeTarget.PVM] = blob
        contracts.append(artifact)
    if not contracts:
        raise ValueError(f"No contracts found in {source}")
    return contracts


def compile_contract(source: Path, contract_name: str, target: BytecodeTarget) -> ContractArtifact:
    """Build ``contract_name`` for ``target`` and return it with validated bytecode."""

    source = Path(source).expanduser().resolve()
    run_forge_build(source, target)
    path = artifact_path(source, contract_name, target)
    if not path.exists():
        raise FileNotFoundError(f"Contract artifact not found: {path}. Contract name may not match.")
    artifact = load_artifact(path, name=contract_name, source=source)
    blob = _bytecode_field(json.loads(path.read_text(encoding="utf-8")))
    artifact.bytecode = {target: blob}
    artifact.bytecode_for(target)
    return artifact


class ContractManager:
    """Registry of loaded contracts keyed by ``<source>:<name>``."""

    def __init__(self) -> None:
        self._contracts: Dict[str, ContractArtifact] = {}

    def register(self, artifacts: Iterable[ContractArtifact]) -> List[str]:
        keys = []
        for artifact in artifacts:
            self._contracts[artifact.key] = artifact
            keys.append(artifact.key)
        return keys

    def get(self, key: str) -> Optional[ContractArtifact]:
        return self._contracts.get(key)

    def remove(self, key: str) -> None:
        self._contracts.pop(key, None)

    def keys(self) -> List[str]:
        return sorted(self._contracts)

    def all_events(self) -> List[EventDescriptor]:
        return [event for artifact in self._contracts.values() for event in artifact.interface.events]

    def all_errors(self) -> List[ErrorDescriptor]:
        return [error for artifact in self._contracts.values() for error in artifact.interface.errors]

    def interface_for(self, key: Optional[str]) -> Optional[ContractInterface]:
        artifact = self._contracts.get(key) if key else None
        return artifact.interface if artifact else None


def contract_key(path: Path, name: str) -> str:
    """Storage key ``"<resolved path>:<ContractName>"``."""

    return f"{Path(path).expanduser().resolve()}:{name}"


def split_key(key: str) -> Tuple[str, str]:
    """Split ``"/path/File.sol:Name"`` into path and contract name."""

    path, _, name = key.rpartition(":")
    if not path:
        raise ValueError(f"Invalid contract key {key!r}")
    return path, name


__all__ = [
    "BytecodeTarget",
    "ContractArtifact",
    "ContractInterface",
    "ContractManager",
    "ErrorDescriptor",
    "EventDescriptor",
    "FunctionDescriptor",
    "PVM_MAGIC",
    "artifact_dir",
    "artifact_path",
    "compile_contract",
    "contract_key",
    "load_artifact",
    "load_contracts",
    "run_forge_build",
    "split_key",
]
