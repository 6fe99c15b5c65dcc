"""Text <-> typed value <-> wire codec for Solidity ABI types.

``encode`` validates what a user typed into a form field and produces an
:class:`AbiValue`; ``encode_values``/``encode_call`` serialise validated
values to call data with :mod:`eth_abi`; ``decode`` goes the other way for
return data, revert payloads and event logs.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple as TupleT, Union

from eth_abi import decode as abi_decode
from eth_abi import encode as abi_encode
from eth_abi.exceptions import DecodingError, EncodingError, InsufficientDataBytes
from eth_utils import decode_hex, is_checksum_address, keccak, to_checksum_address

from .abi_types import (
    AbiType,
    Address,
    Array,
    Bool,
    Bytes,
    FixedArray,
    FixedBytes,
    Int,
    Param,
    String,
    Tuple,
    Uint,
    canonical_list,
    is_dynamic,
)
from .errors import (
    BAD_CHECKSUM,
    COUNT_MISMATCH,
    INVALID_FORMAT,
    MALFORMED,
    MISSING_FIELD,
    OUT_OF_RANGE,
    TRUNCATED,
    TYPE_MISMATCH,
    WRONG_LENGTH,
    DecodeError,
    EncodeError,
    FormValidationError,
    ValidationError,
)

logger = logging.getLogger(__name__)

_DIGITS = re.compile(r"^[0-9]+$")
_SIGNED_DIGITS = re.compile(r"^-?[0-9]+$")
_HEX = re.compile(r"^[0-9a-fA-F]*$")

ERROR_SELECTOR = bytes.fromhex("08c379a0")
PANIC_SELECTOR = bytes.fromhex("4e487b71")
PANIC_CODES = {
    0x00: "generic compiler panic",
    0x01: "assertion failed",
    0x11: "arithmetic underflow or overflow",
    0x12: "division or modulo by zero",
    0x21: "invalid enum value",
    0x22: "corrupted storage byte array",
    0x31: "pop on empty array",
    0x32: "array index out of bounds",
    0x41: "out of memory",
    0x51: "call to zero-initialised function",
}

RawInput = Union[str, Sequence[Any], Mapping[str, Any]]


@dataclass(frozen=True)
class AbiValue:
    """A value that already passed validation for ``type``.

    ``data`` is an ``int``, ``bool``, ``str`` (checksummed for addresses) or
    ``bytes`` for elementary types and a tuple of :class:`AbiValue` for
    arrays and tuples.  Only this module creates instances.
    """

    type: AbiType
    data: Any

    def __str__(self) -> str:
        return render(self)


@dataclass(frozen=True)
class DecodedLog:
    """An event log, decoded when its signature is known."""

    address: Optional[str]
    topics: TupleT[bytes, ...]
    data: bytes
    name: Optional[str] = None
    fields: TupleT[TupleT[str, AbiValue], ...] = ()

    @property
    def decoded(self) -> bool:
        return self.name is not None

    def field(self, name: str) -> Optional[AbiValue]:
        for key, value in self.fields:
            if key == name:
                return value
        return None

    def describe(self) -> str:
        if not self.decoded:
            topics = ", ".join("0x" + topic.hex() for topic in self.topics)
            return f"[{topics}] data=0x{self.data.hex()}"
        rendered = ", ".join(f"{key}: {render(value)}" for key, value in self.fields)
        return f"{self.name}({rendered})"


# ---------------------------------------------------------------------------
# Text input -> AbiValue
# ---------------------------------------------------------------------------


def _enclosed(text: str, opening: str, closing: str) -> bool:
    if not (text.startswith(opening) and text.endswith(closing)):
        return False
    depth = 0
    quoted = False
    for index, char in enumerate(text):
        if quoted:
            if char == '"' and text[index - 1] != "\\":
                quoted = False
            continue
        if char == '"':
            quoted = True
        elif char in "[(":
            depth += 1
        elif char in "])":
            depth -= 1
            if depth == 0 and index != len(text) - 1:
                return False
    return depth == 0


def split_elements(text: str, *, separators: str = ",\n", brackets: str = "[]") -> List[str]:
    """Split ``text`` on top-level separators.

    Nested ``[...]``/``(...)`` groups and double-quoted strings are kept
    whole, and one pair of outer ``brackets`` is removed when it encloses
    the whole input.
    """

    body = text.strip()
    if _enclosed(body, brackets[0], brackets[1]):
        body = body[1:-1].strip()
    if not body:
        return []
    parts: List[str] = []
    current = ""
    depth = 0
    quoted = False
    previous = ""
    for char in body:
        if quoted:
            current += char
            if char == '"' and previous != "\\":
                quoted = False
            previous = char
            continue
        if char == '"':
            quoted = True
        elif char in "[(":
            depth += 1
        elif char in "])":
            depth -= 1
        elif char in separators and depth == 0:
            parts.append(current.strip())
            current = ""
            previous = char
            continue
        current += char
        previous = char
    parts.append(current.strip())
    return parts


def _unquote(text: str) -> str:
    if len(text) >= 2 and text.startswith('"') and text.endswith('"'):
        try:
            return str(json.loads(text))
        except json.JSONDecodeError:
            return text[1:-1]
    return text


def _parse_hex(abi_type: AbiType, text: str) -> str:
    if not text.startswith(("0x", "0X")):
        raise ValidationError(abi_type.canonical, INVALID_FORMAT, "expected 0x prefix")
    digits = text[2:]
    if not _HEX.match(digits):
        raise ValidationError(abi_type.canonical, INVALID_FORMAT, "non-hex characters")
    return digits


def _encode_address(abi_type: Address, text: str, checksum: bool) -> AbiValue:
    digits = _parse_hex(abi_type, text)
    if len(digits) != 40:
        raise ValidationError(abi_type.canonical, WRONG_LENGTH, f"expected 40 hex digits, got {len(digits)}")
    candidate = "0x" + digits
    mixed = digits != digits.lower() and digits != digits.upper()
    if checksum and mixed and not is_checksum_address(candidate):
        raise ValidationError(abi_type.canonical, BAD_CHECKSUM, "mixed-case address fails EIP-55")
    return AbiValue(abi_type, to_checksum_address(candidate))


def _encode_sequence(abi_type: Union[Array, FixedArray], raw: RawInput, checksum: bool) -> AbiValue:
    if isinstance(raw, str):
        elements: List[Any] = split_elements(raw)
        if isinstance(abi_type.item, String):
            elements = [_unquote(item) for item in elements]
    elif isinstance(raw, Sequence):
        elements = list(raw)
    else:
        raise ValidationError(abi_type.canonical, INVALID_FORMAT, "expected a list of elements")
    if isinstance(abi_type, FixedArray) and len(elements) != abi_type.length:
        raise ValidationError(
            abi_type.canonical,
            COUNT_MISMATCH,
            f"expected {abi_type.length} elements, got {len(elements)}",
        )
    values = []
    for index, element in enumerate(elements):
        try:
            values.append(encode(abi_type.item, element, checksum=checksum))
        except ValidationError as exc:
            raise exc.nested(index) from None
    return AbiValue(abi_type, tuple(values))


def _encode_tuple(abi_type: Tuple, raw: RawInput, checksum: bool) -> AbiValue:
    values = []
    if isinstance(raw, Mapping):
        for item in abi_type.fields:
            if item.name not in raw:
                raise ValidationError(item.type.canonical, MISSING_FIELD, path=(item.name,))
            try:
                values.append(encode(item.type, raw[item.name], checksum=checksum))
            except ValidationError as exc:
                raise exc.nested(item.name) from None
        return AbiValue(abi_type, tuple(values))

    if isinstance(raw, str):
        parts: List[Any] = split_elements(raw, separators=",", brackets="()")
    elif isinstance(raw, Sequence):
        parts = list(raw)
    else:
        raise ValidationError(abi_type.canonical, INVALID_FORMAT, "expected tuple members")
    if len(parts) < len(abi_type.fields):
        missing = abi_type.fields[len(parts)]
        raise ValidationError(missing.type.canonical, MISSING_FIELD, path=(missing.name,))
    if len(parts) > len(abi_type.fields):
        raise ValidationError(
            abi_type.canonical,
            COUNT_MISMATCH,
            f"expected {len(abi_type.fields)} members, got {len(parts)}",
        )
    for item, part in zip(abi_type.fields, parts):
        if isinstance(item.type, String) and isinstance(part, str):
            part = _unquote(part)
        try:
            values.append(encode(item.type, part, checksum=checksum))
        except ValidationError as exc:
            raise exc.nested(item.name) from None
    return AbiValue(abi_type, tuple(values))


def encode(abi_type: AbiType, raw: RawInput, *, checksum: bool = True) -> AbiValue:
    """Validate ``raw`` user input for ``abi_type``.

    Raises :class:`ValidationError` describing the first problem found.  No
    input is coerced: ``"1e3"`` is not a ``uint`` and ``"True"`` is not a
    ``bool``.
    """

    if isinstance(abi_type, (Array, FixedArray)):
        return _encode_sequence(abi_type, raw, checksum)
    if isinstance(abi_type, Tuple):
        return _encode_tuple(abi_type, raw, checksum)
    if not isinstance(raw, str):
        raise ValidationError(abi_type.canonical, INVALID_FORMAT, "expected text input")
    if isinstance(abi_type, String):
        return AbiValue(abi_type, raw)

    text = raw.strip()
    if isinstance(abi_type, Uint):
        if not _DIGITS.match(text):
            raise ValidationError(abi_type.canonical, INVALID_FORMAT, "expected decimal digits")
        value = int(text)
        if value > abi_type.max_value:
            raise ValidationError(abi_type.canonical, OUT_OF_RANGE, f"maximum is {abi_type.max_value}")
        return AbiValue(abi_type, value)
    if isinstance(abi_type, Int):
        if not _SIGNED_DIGITS.match(text):
            raise ValidationError(abi_type.canonical, INVALID_FORMAT, "expected optionally signed decimal digits")
        value = int(text)
        if not abi_type.min_value <= value <= abi_type.max_value:
            raise ValidationError(
                abi_type.canonical,
                OUT_OF_RANGE,
                f"range is {abi_type.min_value}..{abi_type.max_value}",
            )
        return AbiValue(abi_type, value)
    if isinstance(abi_type, Address):
        return _encode_address(abi_type, text, checksum)
    if isinstance(abi_type, Bool):
        if text not in ("true", "false"):
            raise ValidationError(abi_type.canonical, INVALID_FORMAT, "expected true or false")
        return AbiValue(abi_type, text == "true")
    if isinstance(abi_type, FixedBytes):
        digits = _parse_hex(abi_type, text)
        if len(digits) != abi_type.size * 2:
            raise ValidationError(
                abi_type.canonical,
                WRONG_LENGTH,
                f"expected {abi_type.size * 2} hex digits, got {len(digits)}",
            )
        return AbiValue(abi_type, bytes.fromhex(digits))
    if isinstance(abi_type, Bytes):
        digits = _parse_hex(abi_type, text)
        if len(digits) % 2:
            raise ValidationError(abi_type.canonical, WRONG_LENGTH, "odd number of hex digits")
        return AbiValue(abi_type, bytes.fromhex(digits))
    raise TypeError(f"not an ABI type: {abi_type!r}")


def encode_arguments(params: Sequence[Param], raw_inputs: Sequence[RawInput], *, checksum: bool = True) -> List[AbiValue]:
    """Validate a whole parameter form.

    Every field is checked; if any fail, a :class:`FormValidationError`
    maps each failing field index to its error so only those fields need
    to be re-entered.
    """

    values: List[AbiValue] = []
    errors: Dict[int, ValidationError] = {}
    for index, param in enumerate(params):
        label = param.name or index
        if index >= len(raw_inputs):
            errors[index] = ValidationError(param.type.canonical, MISSING_FIELD, path=(label,))
            continue
        try:
            values.append(encode(param.type, raw_inputs[index], checksum=checksum))
        except ValidationError as exc:
            errors[index] = exc.nested(label)
    if errors:
        raise FormValidationError(errors)
    return values


# ---------------------------------------------------------------------------
# AbiValue <-> wire bytes
# ---------------------------------------------------------------------------


def to_native(value: AbiValue) -> Any:
    """Convert ``value`` into the Python shape :mod:`eth_abi` expects."""

    if isinstance(value.type, (Array, FixedArray)):
        return [to_native(item) for item in value.data]
    if isinstance(value.type, Tuple):
        return tuple(to_native(item) for item in value.data)
    return value.data


def from_native(abi_type: AbiType, native: Any) -> AbiValue:
    """Wrap an already-decoded Python value, checking its shape."""

    def mismatch(detail: str) -> DecodeError:
        return DecodeError(f"{abi_type.canonical}: {detail}", TYPE_MISMATCH)

    if isinstance(abi_type, Address):
        if isinstance(native, (bytes, bytearray)) and len(native) in (20, 32):
            native = "0x" + bytes(native)[-20:].hex()
        if not isinstance(native, str) or len(native) != 42:
            raise mismatch(f"expected an address, got {native!r}")
        return AbiValue(abi_type, to_checksum_address(native))
    if isinstance(abi_type, Bool):
        if not isinstance(native, bool):
            raise mismatch(f"expected a bool, got {native!r}")
        return AbiValue(abi_type, native)
    if isinstance(abi_type, (Uint, Int)):
        if isinstance(native, bool) or not isinstance(native, int):
            raise mismatch(f"expected an integer, got {native!r}")
        low = 0 if isinstance(abi_type, Uint) else abi_type.min_value
        if not low <= native <= abi_type.max_value:
            raise mismatch(f"{native} does not fit")
        return AbiValue(abi_type, native)
    if isinstance(abi_type, FixedBytes):
        if not isinstance(native, (bytes, bytearray)) or len(native) != abi_type.size:
            raise mismatch(f"expected {abi_type.size} bytes")
        return AbiValue(abi_type, bytes(native))
    if isinstance(abi_type, Bytes):
        if not isinstance(native, (bytes, bytearray)):
            raise mismatch("expected bytes")
        return AbiValue(abi_type, bytes(native))
    if isinstance(abi_type, String):
        if not isinstance(native, str):
            raise mismatch("expected a string")
        return AbiValue(abi_type, native)
    if isinstance(abi_type, (Array, FixedArray)):
        if isinstance(native, (str, bytes)) or not isinstance(native, Sequence):
            raise mismatch("expected a sequence")
        if isinstance(abi_type, FixedArray) and len(native) != abi_type.length:
            raise mismatch(f"expected {abi_type.length} elements, got {len(native)}")
        return AbiValue(abi_type, tuple(from_native(abi_type.item, item) for item in native))
    if isinstance(abi_type, Tuple):
        if isinstance(native, Mapping):
            native = [native.get(item.name) for item in abi_type.fields]
        if isinstance(native, (str, bytes)) or not isinstance(native, Sequence) or len(native) != len(abi_type.fields):
            raise mismatch("tuple arity differs")
        return AbiValue(abi_type, tuple(from_native(item.type, part) for item, part in zip(abi_type.fields, native)))
    raise TypeError(f"not an ABI type: {abi_type!r}")


def encode_values(types: Sequence[AbiType], values: Sequence[AbiValue]) -> bytes:
    """Head/tail encode ``values`` as the ABI tuple ``types``."""

    if len(types) != len(values):
        raise EncodeError(f"expected {len(types)} values, got {len(values)}")
    for expected, value in zip(types, values):
        if value.type != expected:
            raise EncodeError(f"value of type {value.type.canonical} given for {expected.canonical}")
    try:
        return abi_encode([item.canonical for item in types], [to_native(value) for value in values])
    except (EncodingError, OverflowError, TypeError, ValueError) as exc:
        raise EncodeError(str(exc)) from exc


def selector(name: str, params: Sequence[Param]) -> bytes:
    """First four bytes of the keccak hash of ``name(types)``."""

    return keccak(text=f"{name}({canonical_list(params)})")[:4]


def event_topic(name: str, params: Sequence[Param]) -> bytes:
    return keccak(text=f"{name}({canonical_list(params)})")


def encode_call(function: Any, values: Sequence[AbiValue]) -> bytes:
    """Selector followed by the encoded arguments of ``function``."""

    return function.selector + encode_values([param.type for param in function.inputs], values)


def encode_deployment(bytecode: bytes, constructor: Optional[Any], values: Sequence[AbiValue]) -> bytes:
    if constructor is None:
        if values:
            raise EncodeError("contract has no constructor arguments")
        return bytes(bytecode)
    return bytes(bytecode) + encode_values([param.type for param in constructor.inputs], values)


def decode_values(types: Sequence[AbiType], raw: bytes) -> TupleT[AbiValue, ...]:
    """Decode ``raw`` as the ABI tuple ``types``.

    :class:`DecodeError` carries ``truncated`` when ``raw`` is too short,
    ``malformed`` for invalid padding or content.
    """

    canonical = [item.canonical for item in types]
    try:
        natives = abi_decode(canonical, bytes(raw))
    except InsufficientDataBytes as exc:
        raise DecodeError(f"{canonical}: {exc}", TRUNCATED) from exc
    except (DecodingError, UnicodeDecodeError, OverflowError, ValueError) as exc:
        raise DecodeError(f"{canonical}: {exc}", MALFORMED) from exc
    return tuple(from_native(item, native) for item, native in zip(types, natives))


def decode(abi_type: AbiType, raw: bytes) -> AbiValue:
    return decode_values([abi_type], raw)[0]


def decode_outputs(function: Any, raw: bytes) -> TupleT[AbiValue, ...]:
    return decode_values([param.type for param in function.outputs], raw)


# ---------------------------------------------------------------------------
# Display
# ---------------------------------------------------------------------------


def render(value: AbiValue) -> str:
    """Display form used on cards and in the clipboard."""

    abi_type = value.type
    if isinstance(abi_type, Bool):
        return "true" if value.data else "false"
    if isinstance(abi_type, (Uint, Int)):
        return str(value.data)
    if isinstance(abi_type, Address):
        return value.data
    if isinstance(abi_type, (Bytes, FixedBytes)):
        return "0x" + value.data.hex()
    if isinstance(abi_type, String):
        return json.dumps(value.data, ensure_ascii=False)
    if isinstance(abi_type, (Array, FixedArray)):
        return "[" + ", ".join(render(item) for item in value.data) + "]"
    if isinstance(abi_type, Tuple):
        return "(" + ", ".join(render(item) for item in value.data) + ")"
    raise TypeError(f"not an ABI type: {abi_type!r}")


def format_units(amount: int, decimals: int, places: Optional[int] = None) -> str:
    """Scale ``amount`` down by ``10**decimals`` without float rounding."""

    sign = "-" if amount < 0 else ""
    whole, fraction = divmod(abs(amount), 10 ** decimals) if decimals else (abs(amount), 0)
    digits = str(fraction).rjust(decimals, "0") if decimals else ""
    if places is not None:
        digits = digits[:places].ljust(places, "0")
    else:
        digits = digits.rstrip("0")
    return f"{sign}{whole}.{digits}" if digits else f"{sign}{whole}"


def humanize(value: AbiValue, decimals: Optional[int]) -> Optional[str]:
    """Secondary rendering of integers scaled by a decimals hint."""

    if decimals is None or not isinstance(value.type, (Uint, Int)):
        return None
    return format_units(value.data, decimals)


def render_call(name: str, params: Sequence[Param], values: Sequence[AbiValue]) -> str:
    rendered = []
    for index, value in enumerate(values):
        label = params[index].name if index < len(params) and params[index].name else f"arg{index}"
        rendered.append(f"{label}: {render(value)}")
    return f"{name}({', '.join(rendered)})"


# ---------------------------------------------------------------------------
# Logs and reverts
# ---------------------------------------------------------------------------


def as_bytes(raw: Any) -> bytes:
    if raw is None:
        return b""
    if isinstance(raw, (bytes, bytearray)):
        return bytes(raw)
    if isinstance(raw, str):
        return decode_hex(raw) if raw else b""
    raise DecodeError(f"cannot interpret {raw!r} as bytes", TYPE_MISMATCH)


def _decode_event(event: Any, topics: Sequence[bytes], data: bytes) -> TupleT[TupleT[str, AbiValue], ...]:
    indexed = [index for index, param in enumerate(event.inputs) if param.indexed]
    plain = [index for index, param in enumerate(event.inputs) if not param.indexed]
    offset = 0 if event.anonymous else 1
    if len(topics) - offset != len(indexed):
        raise DecodeError(f"{event.name}: expected {len(indexed)} indexed topics", TYPE_MISMATCH)
    decoded: Dict[int, AbiValue] = {}
    for position, topic in zip(indexed, topics[offset:]):
        param = event.inputs[position]
        # Dynamic indexed values are only present as their keccak hash.
        if is_dynamic(param.type):
            decoded[position] = AbiValue(FixedBytes(32), topic)
        else:
            decoded[position] = decode(param.type, topic)
    values = decode_values([event.inputs[position].type for position in plain], data)
    decoded.update(zip(plain, values))
    return tuple((param.name or f"arg{index}", decoded[index]) for index, param in enumerate(event.inputs))


def decode_log(raw: Mapping[str, Any], events: Iterable[Any]) -> DecodedLog:
    """Decode a receipt log against known event descriptors.

    Logs whose first topic matches no known event, or whose payload does not
    fit the matching signature, are returned undecoded.
    """

    topics = tuple(as_bytes(topic) for topic in raw.get("topics", ()))
    data = as_bytes(raw.get("data"))
    address = raw.get("address")
    address = to_checksum_address(address) if address else None
    if topics:
        for event in events:
            if event.anonymous or event.topic != topics[0]:
                continue
            try:
                fields = _decode_event(event, topics, data)
            except DecodeError as exc:
                logger.debug("log matched %s but did not decode: %s", event.name, exc)
                continue
            return DecodedLog(address=address, topics=topics, data=data, name=event.name, fields=fields)
    return DecodedLog(address=address, topics=topics, data=data)


def decode_revert(data: Optional[bytes], errors: Iterable[Any] = ()) -> str:
    """Human readable revert reason, falling back to the raw hex payload."""

    if not data:
        return "execution reverted"
    payload = bytes(data)
    head, body = payload[:4], payload[4:]
    try:
        if head == ERROR_SELECTOR:
            return decode(String(), body).data
        if head == PANIC_SELECTOR:
            code = decode(Uint(256), body).data
            return f"Panic(0x{code:02x}): {PANIC_CODES.get(code, 'unknown panic code')}"
        for error in errors:
            if error.selector == head:
                values = decode_values([param.type for param in error.inputs], body)
                return render_call(error.name, error.inputs, values)
    except DecodeError as exc:
        logger.debug("revert payload did not decode: %s", exc)
    return "0x" + payload.hex()


__all__ = [
    "AbiValue",
    "DecodedLog",
    "as_bytes",
    "decode",
    "decode_log",
    "decode_outputs",
    "decode_revert",
    "decode_values",
    "encode",
    "encode_arguments",
    "encode_call",
    "encode_deployment",
    "encode_values",
    "event_topic",
    "format_units",
    "from_native",
    "humanize",
    "render",
    "render_call",
    "selector",
    "split_elements",
    "to_native",
]
