"""Order-preserving encoding of index key tuples into byte strings.

Encoded keys compare (bytewise) in the same order as the tuples they
encode: ``None`` < ``False`` < ``True`` < numbers < strings, element by
element. Index entries append the record URL as one more string element,
so every entry key is unique and a value prefix selects all its records.
"""

from __future__ import annotations

import struct
from typing import Any, Iterable, Sequence

_NONE = 0x01
_FALSE = 0x02
_TRUE = 0x03
_NUMBER = 0x10
_STRING = 0x20
_END = b"\xff"

_SIGN_BIT = 1 << 63
_MASK = (1 << 64) - 1


def _encode_number(value: float) -> bytes:
    (bits,) = struct.unpack(">Q", struct.pack(">d", float(value)))
    if bits & _SIGN_BIT:
        bits = ~bits & _MASK
    else:
        bits |= _SIGN_BIT
    return struct.pack(">Q", bits)


def _decode_number(raw: bytes) -> float | int:
    (bits,) = struct.unpack(">Q", raw)
    if bits & _SIGN_BIT:
        bits &= ~_SIGN_BIT & _MASK
    else:
        bits = ~bits & _MASK
    (value,) = struct.unpack(">d", struct.pack(">Q", bits))
    if value.is_integer():
        return int(value)
    return value


def encode_value(value: Any) -> bytes:
    if value is None:
        return bytes([_NONE])
    if value is True:
        return bytes([_TRUE])
    if value is False:
        return bytes([_FALSE])
    if isinstance(value, (int, float)):
        return bytes([_NUMBER]) + _encode_number(value)
    if isinstance(value, str):
        return bytes([_STRING]) + value.encode("utf-8").replace(b"\x00", b"\x00\xff") + b"\x00"
    raise TypeError(f"Cannot encode index value of type {type(value).__name__}")


def encode_key(values: Iterable[Any]) -> bytes:
    """Encode a tuple of index values."""
    return b"".join(encode_value(value) for value in values)


def decode_key(raw: bytes) -> tuple[Any, ...]:
    """Decode an encoded tuple back into Python values."""
    values: list[Any] = []
    pos = 0
    while pos < len(raw):
        tag = raw[pos]
        pos += 1
        if tag == _NONE:
            values.append(None)
        elif tag == _FALSE:
            values.append(False)
        elif tag == _TRUE:
            values.append(True)
        elif tag == _NUMBER:
            values.append(_decode_number(raw[pos : pos + 8]))
            pos += 8
        elif tag == _STRING:
            buf = bytearray()
            while True:
                byte = raw[pos]
                if byte == 0x00:
                    if pos + 1 < len(raw) and raw[pos + 1] == 0xFF:
                        buf.append(0x00)
                        pos += 2
                        continue
                    pos += 1
                    break
                buf.append(byte)
                pos += 1
            values.append(buf.decode("utf-8"))
        else:
            raise ValueError(f"Unknown key tag 0x{tag:02x} at offset {pos - 1}")
    return tuple(values)


def prefix_range(values: Sequence[Any]) -> tuple[bytes, bytes]:
    """Return ``(gte, lt)`` bounds covering every key that starts with ``values``."""
    prefix = encode_key(values)
    return prefix, prefix + _END


def between_range(
    lower: Sequence[Any],
    upper: Sequence[Any],
    include_lower: bool = True,
    include_upper: bool = False,
) -> tuple[bytes, bytes]:
    gte = encode_key(lower)
    if not include_lower:
        gte += _END
    lt = encode_key(upper)
    if include_upper:
        lt += _END
    return gte, lt


__all__ = ["encode_key", "encode_value", "decode_key", "prefix_range", "between_range"]
