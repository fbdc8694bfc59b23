"""Python library for polling solar inverters over Modbus TCP and Solarman V5.

Usage:
    Poll an inverter on behalf of a host application:
        from pysolarmodbus import DevicePoller, default_repository

        device = default_repository().get_device_by_id("growatt-tl")
        poller = DevicePoller(host, device)
        await poller.start()

    Read a device directly:
        from pysolarmodbus import DeviceConfig, create_transport
        from pysolarmodbus.devices import GrowattTLX

        config = DeviceConfig(host="192.168.1.100", device_id="growatt-tl")
        async with create_transport(config, GrowattTLX()) as transport:
            transport.set_on_data_received(handle_value)
            await transport.read_registers_in_batch()
"""

from __future__ import annotations

from .config import DeviceConfig
from .devices import Brand, DeviceRepository, ModbusDevice, default_repository
from .exceptions import (
    AmbiguousConfigurationError,
    ConfigurationError,
    EncodeError,
    RegisterNotFoundError,
    SolarModbusError,
)
from .host import AsyncioScheduler, DeviceHost
from .poller import DevicePoller, PollerState
from .registers import (
    AccessMode,
    ModbusRegister,
    ParseConfiguration,
    RegisterDataType,
    RegisterOptions,
    RegisterType,
)
from .transports import (
    BaseTransport,
    ModbusTransport,
    SolarmanTransport,
    TransportConnectionError,
    TransportError,
    TransportFramingError,
    TransportReadError,
    TransportTimeoutError,
    TransportWriteError,
    create_transport,
)

__version__ = "0.1.0"
__all__ = [
    # Engine
    "DevicePoller",
    "PollerState",
    "DeviceHost",
    "AsyncioScheduler",
    "DeviceConfig",
    # Devices
    "Brand",
    "DeviceRepository",
    "ModbusDevice",
    "default_repository",
    # Registers
    "AccessMode",
    "ModbusRegister",
    "ParseConfiguration",
    "RegisterDataType",
    "RegisterOptions",
    "RegisterType",
    # Transports
    "BaseTransport",
    "ModbusTransport",
    "SolarmanTransport",
    "create_transport",
    # Exceptions
    "SolarModbusError",
    "ConfigurationError",
    "AmbiguousConfigurationError",
    "RegisterNotFoundError",
    "EncodeError",
    "TransportError",
    "TransportConnectionError",
    "TransportFramingError",
    "TransportTimeoutError",
    "TransportReadError",
    "TransportWriteError",
]
