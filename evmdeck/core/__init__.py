"""Core model of evmdeck: ABI codec, contracts, cards and navigation."""

from .abi_types import AbiTypeError, Param, parse_param, parse_params, parse_type
from .cards import CallCard, Card, CardAction, CardList, LogCard, TransactionCard, TxOutcome, TxStatus
from .codec import AbiValue, DecodedLog, decode, decode_log, decode_revert, encode, encode_arguments, render
from .commands import Command, CommandPalette, filter_commands
from .config import Config, resolve_config
from .contract_manager import BytecodeTarget, ContractArtifact, ContractInterface, ContractManager, FunctionDescriptor
from .errors import (
    ConfigurationError,
    DecodeError,
    EncodeError,
    EvmDeckError,
    FormValidationError,
    NetworkError,
    RevertError,
    ValidationError,
)
from .lifecycle import LifecycleEngine, PollPolicy
from .navigation import Focus, NavigationState, PopupKind, reduce
from .session import Session
from .store import DeploymentStore
from .trace import TraceRequest, TraceWizard, TracerKind

__all__ = [
    "AbiTypeError",
    "AbiValue",
    "BytecodeTarget",
    "CallCard",
    "Card",
    "CardAction",
    "CardList",
    "Command",
    "CommandPalette",
    "Config",
    "ConfigurationError",
    "ContractArtifact",
    "ContractInterface",
    "ContractManager",
    "DecodeError",
    "DecodedLog",
    "DeploymentStore",
    "EncodeError",
    "EvmDeckError",
    "Focus",
    "FormValidationError",
    "FunctionDescriptor",
    "LifecycleEngine",
    "LogCard",
    "NavigationState",
    "NetworkError",
    "Param",
    "PollPolicy",
    "PopupKind",
    "RevertError",
    "Session",
    "TraceRequest",
    "TraceWizard",
    "TracerKind",
    "TransactionCard",
    "TxOutcome",
    "TxStatus",
    "ValidationError",
    "decode",
    "decode_log",
    "decode_revert",
    "encode",
    "encode_arguments",
    "filter_commands",
    "parse_param",
    "parse_params",
    "parse_type",
    "reduce",
    "render",
    "resolve_config",
]
