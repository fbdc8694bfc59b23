"""Transport layer for pysolarmodbus.

Two drivers share one contract (:class:`BaseTransport`): plain Modbus TCP
and Modbus RTU tunnelled through a Solarman V5 data logger.  Pollers only see
the contract, so the same register catalog works over either link.

Usage:
    from pysolarmodbus.transports import create_transport

    transport = create_transport(config, device)
    transport.set_on_data_received(handle_value)
    async with transport:
        await transport.read_registers_in_batch()
"""

from __future__ import annotations

from .exceptions import (
    TransportConnectionError,
    TransportError,
    TransportFramingError,
    TransportReadError,
    TransportTimeoutError,
    TransportWriteError,
)
from .factory import create_modbus_transport, create_solarman_transport, create_transport
from .modbus import ModbusTransport
from .protocol import BaseTransport, OnDataReceived, OnDisconnect, OnError
from .solarman import SolarmanTransport

__all__ = [
    # Factory functions (recommended)
    "create_transport",
    "create_modbus_transport",
    "create_solarman_transport",
    # Contract
    "BaseTransport",
    "OnDataReceived",
    "OnDisconnect",
    "OnError",
    # Transport implementations
    "ModbusTransport",
    "SolarmanTransport",
    # Exceptions
    "TransportError",
    "TransportConnectionError",
    "TransportFramingError",
    "TransportTimeoutError",
    "TransportReadError",
    "TransportWriteError",
]
