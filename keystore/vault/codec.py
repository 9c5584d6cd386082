"""
Value codec: typed application values to and from plaintext bytes.

The value type is chosen when a secret is written and travels with the record,
so decoding is a table lookup rather than a guess.

    string  UTF-8 text, verbatim
    number  shortest round-trip decimal text ("42", "42.5", "1e-07")
    json    canonical JSON (sorted keys, compact separators)
"""

from __future__ import annotations

import json
import math
import re
from collections.abc import Callable
from enum import Enum
from typing import Any

from keystore.vault.errors import CodecError, ValidationError

_NUMBER_RE = re.compile(r"-?\d+(\.\d+)?([eE][+-]?\d+)?")
_INTEGER_RE = re.compile(r"-?\d+")


class ValueType(str, Enum):
    STRING = "string"
    NUMBER = "number"
    JSON = "json"

    @classmethod
    def parse(cls, raw: str | ValueType) -> ValueType:
        try:
            return cls(raw)
        except ValueError:
            allowed = ", ".join(t.value for t in cls)
            raise ValidationError(f"Unknown value type {raw!r} (expected one of: {allowed})") from None


def _encode_string(value: Any) -> bytes:
    if not isinstance(value, str):
        raise ValidationError(f"string value expected, got {type(value).__name__}")
    return value.encode("utf-8")


def _decode_string(data: bytes) -> str:
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError as e:
        raise CodecError("Stored string is not valid UTF-8") from e


def _encode_number(value: Any) -> bytes:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError(f"number value expected, got {type(value).__name__}")
    if isinstance(value, float) and not math.isfinite(value):
        raise ValidationError(f"number value must be finite, got {value!r}")
    return repr(value).encode("ascii")


def _decode_number(data: bytes) -> int | float:
    try:
        text = data.decode("ascii")
    except UnicodeDecodeError as e:
        raise CodecError("Stored number is not a numeric literal") from e
    if _INTEGER_RE.fullmatch(text):
        return int(text)
    if _NUMBER_RE.fullmatch(text):
        return float(text)
    raise CodecError(f"Stored number is not a numeric literal: {text[:32]!r}")


def _encode_json(value: Any) -> bytes:
    try:
        text = json.dumps(value, sort_keys=True, separators=(",", ":"), allow_nan=False)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"json value is not serializable: {e}") from e
    return text.encode("utf-8")


def _decode_json(data: bytes) -> Any:
    try:
        return json.loads(data.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise CodecError("Stored json is not valid JSON") from e


_ENCODERS: dict[ValueType, Callable[[Any], bytes]] = {
    ValueType.STRING: _encode_string,
    ValueType.NUMBER: _encode_number,
    ValueType.JSON: _encode_json,
}

_DECODERS: dict[ValueType, Callable[[bytes], Any]] = {
    ValueType.STRING: _decode_string,
    ValueType.NUMBER: _decode_number,
    ValueType.JSON: _decode_json,
}


def encode(value: Any, value_type: ValueType | str) -> bytes:
    """Serialize a typed value to plaintext bytes."""
    return _ENCODERS[ValueType.parse(value_type)](value)


def decode(data: bytes, value_type: ValueType | str) -> Any:
    """Parse plaintext bytes back into a value of the declared type."""
    return _DECODERS[ValueType.parse(value_type)](data)
