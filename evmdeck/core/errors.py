"""Error taxonomy shared by the codec, lifecycle engine and trace tooling."""

from __future__ import annotations

from typing import Dict, Optional, Tuple

OUT_OF_RANGE = "out-of-range"
INVALID_FORMAT = "invalid-format"
WRONG_LENGTH = "wrong-length"
BAD_CHECKSUM = "bad-checksum"
COUNT_MISMATCH = "count-mismatch"
MISSING_FIELD = "missing-field"

TRUNCATED = "truncated"
MALFORMED = "malformed"
TYPE_MISMATCH = "type-mismatch"


class EvmDeckError(Exception):
    """Base class for every error raised by evmdeck."""


class ValidationError(EvmDeckError, ValueError):
    """User input rejected for an ABI type.

    ``path`` locates the failing element inside a composite value. Array
    indices are ints and tuple fields are their names.
    """

    def __init__(self, abi_type: object, reason: str, detail: str = "", path: Tuple[object, ...] = ()) -> None:
        self.abi_type = abi_type
        self.reason = reason
        self.detail = detail
        self.path = path
        super().__init__(self._message())

    def _message(self) -> str:
        where = "".join(f"[{part}]" if isinstance(part, int) else f".{part}" for part in self.path)
        prefix = f"{where.lstrip('.')}: " if where else ""
        suffix = f" ({self.detail})" if self.detail else ""
        return f"{prefix}{self.reason} for {self.abi_type}{suffix}"

    @property
    def index(self) -> Optional[int]:
        """First array index on the error path, if any."""

        for part in self.path:
            if isinstance(part, int):
                return part
        return None

    def nested(self, part: object) -> "ValidationError":
        """Return a copy with ``part`` prepended to the path."""

        return ValidationError(self.abi_type, self.reason, self.detail, (part,) + self.path)


class FormValidationError(EvmDeckError, ValueError):
    """A parameter form with one or more invalid fields."""

    def __init__(self, errors: Dict[int, ValidationError]) -> None:
        self.errors = dict(sorted(errors.items()))
        details = "; ".join(f"#{index}: {error}" for index, error in self.errors.items())
        super().__init__(f"{len(self.errors)} invalid field(s): {details}")


class EncodeError(EvmDeckError):
    """Validated values could not be serialised to call data."""


class DecodeError(EvmDeckError):
    """Raw bytes could not be decoded into the requested ABI type."""

    def __init__(self, message: str, reason: str = MALFORMED) -> None:
        self.reason = reason
        super().__init__(message)


class NetworkError(EvmDeckError):
    """RPC transport failure."""

    def __init__(self, message: str, *, retryable: bool = True) -> None:
        self.retryable = retryable
        super().__init__(message)


class RevertError(EvmDeckError):
    """Execution reverted on chain; ``data`` holds the raw revert payload."""

    def __init__(self, message: str, data: Optional[bytes] = None) -> None:
        self.data = data
        super().__init__(message)


class ConfigurationError(EvmDeckError, ValueError):
    """Invalid tracer options or application configuration."""

    def __init__(self, message: str, fields: Optional[Dict[str, str]] = None) -> None:
        self.fields = dict(fields or {})
        super().__init__(message)


__all__ = [
    "BAD_CHECKSUM",
    "COUNT_MISMATCH",
    "ConfigurationError",
    "DecodeError",
    "EncodeError",
    "EvmDeckError",
    "FormValidationError",
    "INVALID_FORMAT",
    "MALFORMED",
    "MISSING_FIELD",
    "NetworkError",
    "OUT_OF_RANGE",
    "RevertError",
    "TRUNCATED",
    "TYPE_MISMATCH",
    "ValidationError",
    "WRONG_LENGTH",
]
