"""Tracer configuration and ``debug_traceTransaction`` requests."""

from __future__ import annotations

from dataclasses import dataclass, fields
from enum import Enum
from typing import Any, ClassVar, Dict, Iterator, List, Mapping, Optional, Tuple, Type, Union

from .errors import ConfigurationError

_TRUE = ("true", "yes", "on", "1")
_FALSE = ("false", "no", "off", "0")


class TracerKind(str, Enum):
    CALL = "callTracer"
    PRESTATE = "prestateTracer"
    OPLOG = "oplogTracer"
    FLAT_CALL = "flatCallTracer"

    @property
    def label(self) -> str:
        return {
            TracerKind.CALL: "Call Tracer",
            TracerKind.PRESTATE: "Prestate Tracer",
            TracerKind.OPLOG: "Oplog Tracer",
            TracerKind.FLAT_CALL: "FlatCall Tracer",
        }[self]


@dataclass(frozen=True)
class CallTracerConfig:
    KIND: ClassVar[TracerKind] = TracerKind.CALL
    onlyTopCall: bool = False
    withLog: bool = True


@dataclass(frozen=True)
class PrestateTracerConfig:
    KIND: ClassVar[TracerKind] = TracerKind.PRESTATE
    diffMode: bool = True


@dataclass(frozen=True)
class OplogTracerConfig:
    KIND: ClassVar[TracerKind] = TracerKind.OPLOG


@dataclass(frozen=True)
class FlatCallTracerConfig:
    KIND: ClassVar[TracerKind] = TracerKind.FLAT_CALL
    includePrecompiles: bool = False


TracerConfig = Union[CallTracerConfig, PrestateTracerConfig, OplogTracerConfig, FlatCallTracerConfig]

CONFIG_TYPES: Dict[TracerKind, Type[Any]] = {
    TracerKind.CALL: CallTracerConfig,
    TracerKind.PRESTATE: PrestateTracerConfig,
    TracerKind.OPLOG: OplogTracerConfig,
    TracerKind.FLAT_CALL: FlatCallTracerConfig,
}


def option_names(kind: TracerKind) -> List[str]:
    return [item.name for item in fields(CONFIG_TYPES[kind])]


def default_config(kind: TracerKind) -> TracerConfig:
    return CONFIG_TYPES[kind]()


def options_of(config: TracerConfig) -> Dict[str, bool]:
    """The tracer options exactly as they go on the wire."""

    return {item.name: getattr(config, item.name) for item in fields(config)}


def parse_bool(raw: Any) -> bool:
    if isinstance(raw, bool):
        return raw
    text = str(raw).strip().lower()
    if text in _TRUE:
        return True
    if text in _FALSE:
        return False
    raise ValueError(f"{raw!r} is not a boolean")


class TracerConfigForm:
    """Editable option set for one tracer kind.

    A rejected entry is recorded in :attr:`errors` while the field keeps its
    last valid value, so correcting one field never resets the others.
    """

    def __init__(self, kind: TracerKind) -> None:
        self.kind = kind
        self._values: Dict[str, bool] = options_of(default_config(kind))
        self.errors: Dict[str, str] = {}

    @property
    def names(self) -> List[str]:
        return list(self._values)

    @property
    def values(self) -> Dict[str, bool]:
        return dict(self._values)

    def set(self, name: str, raw: Any) -> bool:
        if name not in self._values:
            raise KeyError(f"{self.kind.label} has no option {name!r}")
        try:
            self._values[name] = parse_bool(raw)
        except ValueError as exc:
            self.errors[name] = str(exc)
            return False
        self.errors.pop(name, None)
        return True

    def toggle(self, name: str) -> bool:
        self.set(name, not self._values[name])
        return self._values[name]

    def update(self, raw_values: Mapping[str, Any]) -> Dict[str, str]:
        for name, raw in raw_values.items():
            self.set(name, raw)
        return dict(self.errors)

    def confirm(self) -> TracerConfig:
        if self.errors:
            names = ", ".join(sorted(self.errors))
            raise ConfigurationError(f"invalid tracer options: {names}", self.errors)
        return CONFIG_TYPES[self.kind](**self._values)


@dataclass(frozen=True)
class TraceRequest:
    tx_hash: str
    config: TracerConfig

    METHOD: ClassVar[str] = "debug_traceTransaction"

    @property
    def tracer(self) -> str:
        return self.config.KIND.value

    def params(self) -> List[Any]:
        """JSON-RPC params: the hash and the tracer object.

        ``tracerConfig`` is left out for tracers without options.
        """

        tracer: Dict[str, Any] = {"tracer": self.tracer}
        options = options_of(self.config)
        if options:
            tracer["tracerConfig"] = options
        return [self.tx_hash, tracer]


class TraceWizard:
    """Pick a tracer, then edit its options, then confirm."""

    KINDS: ClassVar[Tuple[TracerKind, ...]] = (
        TracerKind.CALL,
        TracerKind.PRESTATE,
        TracerKind.OPLOG,
        TracerKind.FLAT_CALL,
    )

    def __init__(self, tx_hash: str) -> None:
        self.tx_hash = tx_hash
        self.form: Optional[TracerConfigForm] = None

    @property
    def step(self) -> str:
        return "select" if self.form is None else "configure"

    def choose(self, kind: Union[TracerKind, str]) -> TracerConfigForm:
        self.form = TracerConfigForm(TracerKind(kind))
        return self.form

    def back(self) -> None:
        self.form = None

    def confirm(self) -> TraceRequest:
        if self.form is None:
            raise ConfigurationError("no tracer selected")
        return TraceRequest(self.tx_hash, self.form.confirm())


def iter_trace_logs(document: Any) -> Iterator[Dict[str, Any]]:
    """Yield raw logs recorded in a ``callTracer`` frame tree, depth first."""

    if not isinstance(document, Mapping):
        return
    for entry in document.get("logs") or ():
        if isinstance(entry, Mapping):
            yield {
                "address": entry.get("address"),
                "topics": list(entry.get("topics") or ()),
                "data": entry.get("data") or "0x",
            }
    for child in document.get("calls") or ():
        yield from iter_trace_logs(child)


__all__ = [
    "CONFIG_TYPES",
    "CallTracerConfig",
    "FlatCallTracerConfig",
    "OplogTracerConfig",
    "PrestateTracerConfig",
    "TraceRequest",
    "TraceWizard",
    "TracerConfig",
    "TracerConfigForm",
    "TracerKind",
    "default_config",
    "iter_trace_logs",
    "option_names",
    "options_of",
    "parse_bool",
]
