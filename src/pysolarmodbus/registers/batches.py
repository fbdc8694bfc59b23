"""Batch planner: merge registers into contiguous wire reads.

Every Modbus read carries fixed per-transaction overhead, and Solarman
loggers add a second envelope on top, so reading each register on its own is
slow.  Inverters also reject reads that touch unmapped addresses, so a batch
may only span registers that sit back to back with no gap in between.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence

from .models import AccessMode, ModbusRegister

_LOGGER = logging.getLogger(__name__)

__all__ = ["batch_span", "create_register_batches"]


def create_register_batches(
    registers: Iterable[ModbusRegister],
) -> list[list[ModbusRegister]]:
    """Group registers into address-contiguous batches.

    WRITE_ONLY registers are dropped.  The remainder is sorted by address and
    split wherever a register does not start exactly where its predecessor
    ends.

    Args:
        registers: Registers of one register type (input or holding)

    Returns:
        Ordered list of batches; empty when nothing is readable
    """
    readable = [r for r in registers if r.access_mode != AccessMode.WRITE_ONLY]
    if not readable:
        return []

    ordered = sorted(readable, key=lambda r: r.address)
    batches: list[list[ModbusRegister]] = []
    batch: list[ModbusRegister] = []
    next_address = ordered[0].address

    for register in ordered:
        if register.address != next_address:
            batches.append(batch)
            batch = []
        batch.append(register)
        next_address = register.end_address

    batches.append(batch)

    _LOGGER.debug(
        "Planned %d batches for %d readable registers",
        len(batches),
        len(ordered),
    )
    return batches


def batch_span(batch: Sequence[ModbusRegister]) -> tuple[int, int]:
    """Return ``(start_address, register_count)`` covering a batch."""
    start = batch[0].address
    return start, batch[-1].end_address - start
