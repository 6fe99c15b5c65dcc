"""Headless helpers for evmdeck (``evmdeckctl``)."""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any, Dict, Optional, Sequence

from . import __version__
from .core.abi_types import parse_type
from .core.codec import as_bytes, decode, encode_arguments, encode_call, render
from .core.contract_manager import load_artifact
from .core.errors import ConfigurationError, EvmDeckError, FormValidationError
from .core.trace import TraceWizard, TracerKind
from .utils import logbook


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="evmdeckctl", description="evmdeck headless helpers")
    parser.add_argument("--version", action="store_true", help="Display version information and exit")
    subparsers = parser.add_subparsers(dest="command")

    abi = subparsers.add_parser("abi", help="Summarise a contract artifact")
    abi.add_argument("artifact", type=Path, help="Foundry artifact or bare ABI JSON")

    encode = subparsers.add_parser("encode", help="Encode call data for a function")
    encode.add_argument("artifact", type=Path)
    encode.add_argument("function", help="Function name or full signature")
    encode.add_argument("args", nargs="*", help="One argument per parameter, as typed in the UI")

    decode_cmd = subparsers.add_parser("decode", help="Decode ABI data as one type")
    decode_cmd.add_argument("type", help="Solidity type, e.g. 'uint256' or '(address,uint256)[]'")
    decode_cmd.add_argument("data", help="Hex encoded data")

    trace = subparsers.add_parser("trace-request", help="Print a debug_traceTransaction request")
    trace.add_argument("tx_hash")
    trace.add_argument("tracer", choices=[kind.value for kind in TracerKind])
    trace.add_argument("--set", action="append", default=[], dest="options", metavar="KEY=VALUE")

    subparsers.add_parser("verify-audit", help="Check the signed audit trail")
    return parser


def _handle_abi(args: argparse.Namespace) -> Any:
    artifact = load_artifact(args.artifact)
    interface = artifact.interface
    return {
        "name": artifact.name,
        "constructor": interface.deploy_descriptor().signature,
        "functions": [
            {
                "signature": function.signature,
                "selector": "0x" + function.selector.hex(),
                "mutability": function.mutability,
                "outputs": [param.type.canonical for param in function.outputs],
            }
            for function in interface.methods()
        ],
        "events": [{"signature": event.signature, "topic": "0x" + event.topic.hex()} for event in interface.events],
        "errors": [{"signature": error.signature, "selector": "0x" + error.selector.hex()} for error in interface.errors],
        "bytecode": sorted(target.value for target in artifact.bytecode),
    }


def _handle_encode(args: argparse.Namespace) -> Any:
    function = load_artifact(args.artifact).interface.function(args.function)
    values = encode_arguments(function.inputs, args.args)
    return {"function": function.signature, "calldata": "0x" + encode_call(function, values).hex()}


def _handle_decode(args: argparse.Namespace) -> Any:
    abi_type = parse_type(args.type)
    value = decode(abi_type, as_bytes(args.data))
    return {"type": abi_type.canonical, "value": render(value)}


def _parse_options(pairs: Sequence[str]) -> Dict[str, str]:
    options: Dict[str, str] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep:
            raise ConfigurationError(f"expected KEY=VALUE, got {pair!r}")
        options[key.strip()] = value.strip()
    return options


def _handle_trace_request(args: argparse.Namespace) -> Any:
    wizard = TraceWizard(args.tx_hash)
    form = wizard.choose(args.tracer)
    form.update(_parse_options(args.options))
    request = wizard.confirm()
    return {"jsonrpc": "2.0", "id": 1, "method": request.METHOD, "params": request.params()}


def _handle_verify_audit(args: argparse.Namespace) -> Any:
    return {"entries": logbook.verify_chain()}


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    if args.version:
        print(f"evmdeckctl {__version__}")
        return 0
    if args.command is None:
        parser.print_help()
        return 1
    handlers = {
        "abi": _handle_abi,
        "encode": _handle_encode,
        "decode": _handle_decode,
        "trace-request": _handle_trace_request,
        "verify-audit": _handle_verify_audit,
    }
    try:
        result = handlers[args.command](args)
    except FormValidationError as exc:
        result = {"errors": {str(index): str(error) for index, error in exc.errors.items()}}
        json.dump(result, sys.stdout, indent=2)
        sys.stdout.write("\n")
        return 2
    except (EvmDeckError, KeyError, ValueError, OSError) as exc:
        print(f"evmdeckctl: {exc}", file=sys.stderr)
        return 2
    if result is not None:
        json.dump(result, sys.stdout, indent=2, default=str)
        sys.stdout.write("\n")
    return 0


__all__ = ["main"]
