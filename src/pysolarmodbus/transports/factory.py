"""Factory functions for creating transport instances.

Example:
    # From a stored configuration (driver chosen by config.solarman)
    transport = create_transport(config, device)

    # Modbus TCP, explicitly
    transport = create_modbus_transport(device, host="192.168.1.100")

    # Solarman V5 data logger, explicitly
    transport = create_solarman_transport(
        device,
        host="192.168.1.50",
        serial=2712345678,
    )
    async with transport:
        await transport.read_registers_in_batch()
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from pysolarmodbus.constants import (
    DEFAULT_MODBUS_PORT,
    DEFAULT_MODBUS_TIMEOUT,
    DEFAULT_SOLARMAN_PORT,
    DEFAULT_SOLARMAN_TIMEOUT,
    DEFAULT_UNIT_ID,
)

from .modbus import ModbusTransport
from .solarman import SolarmanTransport

if TYPE_CHECKING:
    from pysolarmodbus.config import DeviceConfig
    from pysolarmodbus.devices.models import ModbusDevice

    from .protocol import BaseTransport


def create_modbus_transport(
    device: ModbusDevice,
    host: str,
    *,
    port: int = DEFAULT_MODBUS_PORT,
    unit_id: int = DEFAULT_UNIT_ID,
    timeout: float = DEFAULT_MODBUS_TIMEOUT,
    rtu_framing: bool = False,
    log: logging.Logger | None = None,
) -> ModbusTransport:
    """Create a Modbus TCP transport for local network communication.

    IMPORTANT: Single-Client Limitation
    ------------------------------------
    Modbus TCP gateways usually accept only ONE concurrent connection.
    Ensure only one poller connects to each inverter at a time.

    Args:
        device: Register catalog of the inverter
        host: Inverter or gateway IP address or hostname
        port: Modbus TCP port (default: 502)
        unit_id: Modbus unit/slave ID (default: 1)
        timeout: Request timeout in seconds (default: 1.0)
        rtu_framing: Gateway forwards raw RTU frames over TCP
        log: Device-scoped logger

    Returns:
        ModbusTransport instance ready for use
    """
    return ModbusTransport(
        device,
        host=host,
        port=port,
        unit_id=unit_id,
        timeout=timeout,
        rtu_framing=rtu_framing,
        log=log,
    )


def create_solarman_transport(
    device: ModbusDevice,
    host: str,
    serial: int,
    *,
    port: int = DEFAULT_SOLARMAN_PORT,
    unit_id: int = DEFAULT_UNIT_ID,
    timeout: float = DEFAULT_SOLARMAN_TIMEOUT,
    log: logging.Logger | None = None,
) -> SolarmanTransport:
    """Create a Solarman V5 transport talking to a WiFi/LAN data logger.

    Args:
        device: Register catalog of the inverter
        host: Data logger IP address or hostname
        serial: Data logger serial number
        port: Logger TCP port (default: 8899)
        unit_id: Modbus unit/slave ID of the inverter (default: 1)
        timeout: Request timeout in seconds (default: 5.0)
        log: Device-scoped logger

    Returns:
        SolarmanTransport instance ready for use
    """
    return SolarmanTransport(
        device,
        host=host,
        serial=serial,
        port=port,
        unit_id=unit_id,
        timeout=timeout,
        log=log,
    )


def create_transport(
    config: DeviceConfig,
    device: ModbusDevice,
    log: logging.Logger | None = None,
) -> BaseTransport:
    """Create the transport a device configuration asks for.

    Args:
        config: Connection settings; ``config.solarman`` selects the driver
        device: Register catalog of the inverter
        log: Device-scoped logger

    Returns:
        SolarmanTransport when ``config.solarman`` is set, else ModbusTransport
    """
    if config.solarman:
        return create_solarman_transport(
            device,
            host=config.host,
            serial=config.logger_serial,
            port=config.resolved_port,
            unit_id=config.unit_id,
            timeout=config.resolved_timeout,
            log=log,
        )

    return create_modbus_transport(
        device,
        host=config.host,
        port=config.resolved_port,
        unit_id=config.unit_id,
        timeout=config.resolved_timeout,
        log=log,
    )


__all__ = [
    "create_modbus_transport",
    "create_solarman_transport",
    "create_transport",
]
