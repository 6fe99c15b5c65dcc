"""Immutable representation of Solidity ABI value types.

Types are a closed family of frozen dataclasses.  Code that needs to behave
differently per type dispatches with ``isinstance`` over :data:`ABI_TYPES`
and raises :class:`TypeError` on anything else, so adding a variant surfaces
every place that has to learn about it.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple as TupleT, Union

_ARRAY_SUFFIX = re.compile(r"^(?P<base>.+)\[(?P<size>\d*)\]$")
_SIZED = re.compile(r"^(?P<kind>uint|int|bytes)(?P<size>\d+)$")


class AbiTypeError(ValueError):
    """Raised when a type string does not follow the ABI type grammar."""


@dataclass(frozen=True)
class Address:
    @property
    def canonical(self) -> str:
        return "address"


@dataclass(frozen=True)
class Bool:
    @property
    def canonical(self) -> str:
        return "bool"


@dataclass(frozen=True)
class Uint:
    bits: int = 256

    def __post_init__(self) -> None:
        _check_bits(self.bits)

    @property
    def canonical(self) -> str:
        return f"uint{self.bits}"

    @property
    def max_value(self) -> int:
        return (1 << self.bits) - 1


@dataclass(frozen=True)
class Int:
    bits: int = 256

    def __post_init__(self) -> None:
        _check_bits(self.bits)

    @property
    def canonical(self) -> str:
        return f"int{self.bits}"

    @property
    def min_value(self) -> int:
        return -(1 << (self.bits - 1))

    @property
    def max_value(self) -> int:
        return (1 << (self.bits - 1)) - 1


@dataclass(frozen=True)
class FixedBytes:
    size: int

    def __post_init__(self) -> None:
        if not 1 <= self.size <= 32:
            raise AbiTypeError(f"bytes{self.size}: size must be between 1 and 32")

    @property
    def canonical(self) -> str:
        return f"bytes{self.size}"


@dataclass(frozen=True)
class Bytes:
    @property
    def canonical(self) -> str:
        return "bytes"


@dataclass(frozen=True)
class String:
    @property
    def canonical(self) -> str:
        return "string"


@dataclass(frozen=True)
class Array:
    item: "AbiType"

    @property
    def canonical(self) -> str:
        return f"{self.item.canonical}[]"


@dataclass(frozen=True)
class FixedArray:
    item: "AbiType"
    length: int

    def __post_init__(self) -> None:
        if self.length < 1:
            raise AbiTypeError(f"{self.item.canonical}[{self.length}]: length must be positive")

    @property
    def canonical(self) -> str:
        return f"{self.item.canonical}[{self.length}]"


@dataclass(frozen=True)
class TupleField:
    name: str
    type: "AbiType"


@dataclass(frozen=True)
class Tuple:
    fields: TupleT[TupleField, ...] = ()

    @property
    def canonical(self) -> str:
        return "(" + ",".join(item.type.canonical for item in self.fields) + ")"

    @property
    def names(self) -> List[str]:
        return [item.name for item in self.fields]


AbiType = Union[Address, Bool, Uint, Int, FixedBytes, Bytes, String, Array, FixedArray, Tuple]
ABI_TYPES = (Address, Bool, Uint, Int, FixedBytes, Bytes, String, Array, FixedArray, Tuple)


@dataclass(frozen=True)
class Param:
    """A named parameter of a function, event or error."""

    name: str
    type: AbiType
    indexed: bool = False

    @property
    def label(self) -> str:
        return f"{self.name}: {self.type.canonical}" if self.name else self.type.canonical


def _check_bits(bits: int) -> None:
    if bits < 8 or bits > 256 or bits % 8:
        raise AbiTypeError(f"integer width {bits} must be a multiple of 8 between 8 and 256")


def is_dynamic(abi_type: AbiType) -> bool:
    """Return ``True`` when ``abi_type`` is encoded in the tail section."""

    if isinstance(abi_type, (Bytes, String, Array)):
        return True
    if isinstance(abi_type, FixedArray):
        return is_dynamic(abi_type.item)
    if isinstance(abi_type, Tuple):
        return any(is_dynamic(item.type) for item in abi_type.fields)
    if isinstance(abi_type, ABI_TYPES):
        return False
    raise TypeError(f"not an ABI type: {abi_type!r}")


def _split_top_level(text: str) -> List[str]:
    parts: List[str] = []
    depth = 0
    current = ""
    for char in text:
        if char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
            if depth < 0:
                raise AbiTypeError(f"unbalanced parentheses in {text!r}")
        if char == "," and depth == 0:
            parts.append(current)
            current = ""
            continue
        current += char
    if depth != 0:
        raise AbiTypeError(f"unbalanced parentheses in {text!r}")
    parts.append(current)
    return parts


def _parse_elementary(text: str) -> AbiType:
    simple: Dict[str, AbiType] = {
        "address": Address(),
        "bool": Bool(),
        "string": String(),
        "bytes": Bytes(),
        "uint": Uint(256),
        "int": Int(256),
    }
    if text in simple:
        return simple[text]
    match = _SIZED.match(text)
    if not match:
        raise AbiTypeError(f"unsupported ABI type {text!r}")
    size = int(match.group("size"))
    kind = match.group("kind")
    if kind == "bytes":
        return FixedBytes(size)
    return Uint(size) if kind == "uint" else Int(size)


def parse_type(type_string: str, components: Optional[Sequence[Mapping[str, Any]]] = None) -> AbiType:
    """Parse a canonical Solidity type string.

    ``components`` carries the JSON ABI description of tuple members when
    ``type_string`` is written as ``tuple``/``tuple[]``; parenthesised tuple
    strings such as ``(address,uint256)[]`` need none.
    """

    text = type_string.strip().replace(" ", "")
    if not text:
        raise AbiTypeError("empty type string")
    match = _ARRAY_SUFFIX.match(text)
    if match:
        item = parse_type(match.group("base"), components)
        size = match.group("size")
        return FixedArray(item, int(size)) if size else Array(item)
    if text == "tuple":
        if components is None:
            raise AbiTypeError("tuple type requires components")
        return Tuple(tuple(TupleField(str(entry.get("name") or f"_{index}"), parse_param(entry).type)
                           for index, entry in enumerate(components)))
    if text.startswith("(") and text.endswith(")"):
        inner = text[1:-1]
        if not inner:
            return Tuple(())
        members = _split_top_level(inner)
        return Tuple(tuple(TupleField(f"_{index}", parse_type(member)) for index, member in enumerate(members)))
    return _parse_elementary(text)


def parse_param(entry: Mapping[str, Any]) -> Param:
    """Build a :class:`Param` from a JSON ABI input/output entry."""

    if "type" not in entry:
        raise AbiTypeError(f"ABI parameter {entry!r} has no type")
    abi_type = parse_type(str(entry["type"]), entry.get("components"))
    return Param(name=str(entry.get("name") or ""), type=abi_type, indexed=bool(entry.get("indexed", False)))


def parse_params(entries: Optional[Sequence[Mapping[str, Any]]]) -> TupleT[Param, ...]:
    return tuple(parse_param(entry) for entry in entries or ())


def canonical_list(params: Sequence[Param]) -> str:
    return ",".join(param.type.canonical for param in params)


__all__ = [
    "ABI_TYPES",
    "AbiType",
    "AbiTypeError",
    "Address",
    "Array",
    "Bool",
    "Bytes",
    "FixedArray",
    "FixedBytes",
    "Int",
    "Param",
    "String",
    "Tuple",
    "TupleField",
    "Uint",
    "canonical_list",
    "is_dynamic",
    "parse_param",
    "parse_params",
    "parse_type",
]
