"""Bit-level helpers for flag registers.

Two numbering schemes are in use across vendor catalogs:

- ``read_bit`` / ``write_bits_to_buffer`` address a byte explicitly.
  ``read_bit`` counts bits MSB-first, ``write_bits_to_buffer`` LSB-first.
- ``read_bit_be`` / ``write_bits_to_buffer_be`` treat the whole buffer as one
  big-endian integer: bit 0 is the least significant bit of the last byte.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

_LOGGER = logging.getLogger(__name__)


def read_bit(buffer: bytes, byte_index: int, bit_index: int) -> int:
    """Read bit ``bit_index`` (0 = MSB) of byte ``byte_index``."""
    return (buffer[byte_index] >> (7 - bit_index)) & 1


def read_bit_be(buffer: bytes, bit_index: int) -> int:
    """Read bit ``bit_index`` of the buffer taken as a big-endian integer."""
    byte_index = len(buffer) - 1 - bit_index // 8
    return (buffer[byte_index] >> (bit_index % 8)) & 1


def write_bits_to_buffer_be(
    buffer: bytes,
    bits: Sequence[int],
    start_bit_index: int = 0,
) -> bytes:
    """Return a copy of ``buffer`` with ``bits`` written from ``start_bit_index`` upward.

    Bits are addressed as in :func:`read_bit_be`.  Entries other than 0 or 1
    leave the corresponding bit unchanged.

    Example:
        >>> write_bits_to_buffer_be(b"\\x00\\x00", [1], 4)
        b'\\x00\\x10'
    """
    result = bytearray(buffer)

    for offset, bit in enumerate(bits):
        bit_index = start_bit_index + offset
        byte_index = len(result) - 1 - bit_index // 8
        mask = 1 << (bit_index % 8)

        if bit == 1:
            result[byte_index] |= mask
        elif bit == 0:
            result[byte_index] &= ~mask & 0xFF

    return bytes(result)


def write_bits_to_buffer(
    buffer: bytes,
    byte_index: int,
    bits: Sequence[int],
    start_bit_index: int = 0,
) -> bytes:
    """Return a copy of ``buffer`` with ``bits`` written into one byte, LSB-first."""
    result = bytearray(buffer)
    byte = result[byte_index]

    for offset, bit in enumerate(bits):
        mask = 1 << (offset + start_bit_index)
        if bit == 1:
            byte |= mask
        elif bit == 0:
            byte &= ~mask & 0xFF

    result[byte_index] = byte
    return bytes(result)


def log_bits(log: logging.Logger, buffer: bytes) -> None:
    """Dump every byte of ``buffer`` as bits (MSB first) at debug level."""
    if not log.isEnabledFor(logging.DEBUG):
        return
    for index in range(len(buffer)):
        bits = " ".join(str(read_bit(buffer, index, bit)) for bit in range(8))
        log.debug("Byte %d bits %s", index, bits)
