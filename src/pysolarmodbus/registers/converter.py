"""Data-type directed conversion between register bytes and values.

Multi-byte values are big-endian, high word first, which is what the
supported inverters put on the wire.  Decoding reads from the start of the
register's slice, so a register whose span is longer than its data type (for
example a UINT16 declared with ``length=2``) decodes its first word.
"""

from __future__ import annotations

import logging
import struct
from collections.abc import Callable
from typing import Any

from pysolarmodbus.exceptions import EncodeError

from .models import ModbusRegister, RegisterDataType

_LOGGER = logging.getLogger(__name__)

DataConverter = Callable[[bytes, ModbusRegister, logging.Logger], Any]

# struct format and byte width per numeric data type
_NUMERIC_FORMATS: dict[RegisterDataType, tuple[str, int]] = {
    RegisterDataType.UINT8: (">B", 1),
    RegisterDataType.UINT16: (">H", 2),
    RegisterDataType.INT16: (">h", 2),
    RegisterDataType.UINT32: (">I", 4),
    RegisterDataType.INT32: (">i", 4),
    RegisterDataType.FLOAT32: (">f", 4),
}


def length_for_data_type(data_type: RegisterDataType) -> int | None:
    """Return the number of bytes a numeric data type occupies, None for STRING."""
    fmt = _NUMERIC_FORMATS.get(data_type)
    return fmt[1] if fmt else None


def default_value_converter(
    buffer: bytes,
    register: ModbusRegister,
    log: logging.Logger = _LOGGER,
) -> Any:
    """Decode a register's raw bytes according to its data type.

    Args:
        buffer: Bytes sliced for this register from a read response
        register: Register being decoded
        log: Logger receiving decode failures

    Returns:
        Decoded value, or None when the buffer is empty, too short for the
        data type, or the data type is unknown
    """
    if not buffer:
        log.error("Buffer for register %d is empty", register.address)
        return None

    if register.data_type == RegisterDataType.STRING:
        return bytes(buffer).decode("utf-8", errors="replace")

    fmt = _NUMERIC_FORMATS.get(register.data_type)
    if fmt is None:
        log.error("Unknown data type %s for register %d", register.data_type, register.address)
        return None

    pattern, size = fmt
    if len(buffer) < size:
        log.error(
            "Buffer for register %d is too short for %s: %d bytes",
            register.address,
            register.data_type.value,
            len(buffer),
        )
        return None

    return struct.unpack(pattern, bytes(buffer[:size]))[0]


def encode_value(value: Any, register: ModbusRegister) -> list[int]:
    """Encode a raw register value into 16-bit words for writing.

    Values are packed per data type at the start of the register's span,
    mirroring :func:`default_value_converter`; the rest of the span is
    NUL-padded.

    Args:
        value: Raw (payload-converted) value
        register: Target register

    Returns:
        List of ``register.length`` unsigned 16-bit words

    Raises:
        EncodeError: If the value does not fit the register
    """
    span = register.byte_length

    if register.data_type == RegisterDataType.STRING:
        raw = str(value).encode("utf-8")
        if len(raw) > span:
            raise EncodeError(f"String of {len(raw)} bytes does not fit register {register.address}")
        raw = raw.ljust(span, b"\x00")
    else:
        fmt = _NUMERIC_FORMATS.get(register.data_type)
        if fmt is None:
            raise EncodeError(f"Unknown data type {register.data_type}")
        pattern, size = fmt
        try:
            number = float(value) if register.data_type == RegisterDataType.FLOAT32 else int(value)
            packed = struct.pack(pattern, number)
        except (TypeError, ValueError, struct.error) as err:
            raise EncodeError(
                f"Value {value!r} does not fit {register.data_type.value} register {register.address}"
            ) from err
        if size > span:
            raise EncodeError(f"Register {register.address} span is shorter than {register.data_type.value}")
        raw = packed.ljust(span, b"\x00")

    return words_from_bytes(raw)


def words_from_bytes(buffer: bytes) -> list[int]:
    """Split a big-endian buffer into unsigned 16-bit words (odd tail is zero-padded)."""
    if len(buffer) % 2:
        buffer = bytes(buffer) + b"\x00"
    return [int.from_bytes(buffer[i : i + 2], "big") for i in range(0, len(buffer), 2)]


def bytes_from_words(words: list[int]) -> bytes:
    """Join unsigned 16-bit words into a big-endian buffer."""
    return b"".join((word & 0xFFFF).to_bytes(2, "big") for word in words)
