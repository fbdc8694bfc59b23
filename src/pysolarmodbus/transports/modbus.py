"""Modbus TCP transport implementation.

This module provides the ModbusTransport class for direct local
communication with inverters via Modbus TCP, either natively or through an
RS485-to-Ethernet gateway.  Gateways that forward raw RTU frames over TCP
(no MBAP header) are supported with ``rtu_framing=True``.

IMPORTANT: Single-Client Limitation
------------------------------------
Most inverters and gateways accept only ONE concurrent Modbus TCP
connection.  A second client causes transaction ID desynchronization and
intermittent timeouts.  Ensure only one poller connects to each device.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from pymodbus.exceptions import ConnectionException, ModbusIOException

from pysolarmodbus.constants import (
    DEFAULT_MODBUS_PORT,
    DEFAULT_MODBUS_TIMEOUT,
    DEFAULT_UNIT_ID,
)
from pysolarmodbus.registers import RegisterType

from .exceptions import (
    TransportConnectionError,
    TransportReadError,
    TransportTimeoutError,
    TransportWriteError,
)
from .protocol import BaseTransport

if TYPE_CHECKING:
    from pymodbus.client import AsyncModbusTcpClient

    from pysolarmodbus.devices.models import ModbusDevice

_LOGGER = logging.getLogger(__name__)

__all__ = ["ModbusTransport"]


class ModbusTransport(BaseTransport):
    """Modbus TCP transport built on the pymodbus async client.

    Example:
        transport = ModbusTransport(device, host="192.168.1.100")
        transport.set_on_data_received(handle_value)
        if await transport.connect():
            await transport.read_registers_in_batch()
    """

    transport_type: str = "modbus_tcp"

    def __init__(
        self,
        device: ModbusDevice,
        host: str,
        port: int = DEFAULT_MODBUS_PORT,
        unit_id: int = DEFAULT_UNIT_ID,
        timeout: float = DEFAULT_MODBUS_TIMEOUT,
        *,
        rtu_framing: bool = False,
        pymodbus_retries: int = 0,
        log: logging.Logger | None = None,
    ) -> None:
        """Initialize Modbus transport.

        Args:
            device: Register catalog of the connected device
            host: IP address or hostname of the inverter or gateway
            port: TCP port (default 502)
            unit_id: Modbus unit/slave ID (default 1)
            timeout: Request timeout in seconds (default 1.0)
            rtu_framing: Send RTU frames over TCP instead of MBAP framing
            pymodbus_retries: Retries passed to the pymodbus client.  Each
                retry adds a full timeout before a timeout is reported.
            log: Device-scoped logger
        """
        super().__init__(device, unit_id=unit_id, timeout=timeout, log=log)
        self._host = host
        self._port = port
        self._rtu_framing = rtu_framing
        self._pymodbus_retries = pymodbus_retries
        self._client: AsyncModbusTcpClient | None = None

    @property
    def host(self) -> str:
        """Get the Modbus host."""
        return self._host

    @property
    def port(self) -> int:
        """Get the Modbus port."""
        return self._port

    @property
    def is_connected(self) -> bool:
        """Check whether the pymodbus client holds an open connection."""
        return self._connected and self._client is not None and bool(self._client.connected)

    async def connect(self) -> bool:
        """Establish the Modbus TCP connection.

        Returns:
            True if connected, False if the connection attempt failed
        """
        async with self._connect_lock:
            if self.is_connected:
                return True

            # Import pymodbus here so the client class is resolved at connect time
            from pymodbus import FramerType
            from pymodbus.client import AsyncModbusTcpClient

            self._client = AsyncModbusTcpClient(
                host=self._host,
                port=self._port,
                framer=FramerType.RTU if self._rtu_framing else FramerType.SOCKET,
                timeout=self._timeout,
                retries=self._pymodbus_retries,
                reconnect_delay=0,
            )

            try:
                connected = await self._client.connect()
            except (TimeoutError, OSError, ConnectionException) as err:
                self._log.error(
                    "Failed to connect to Modbus device at %s:%s: %s",
                    self._host,
                    self._port,
                    err,
                )
                await self._teardown()
                return False

            if not connected:
                self._log.error(
                    "Failed to connect to Modbus device at %s:%s. "
                    "Verify: (1) IP address is correct, (2) port %s is not blocked, "
                    "(3) Modbus TCP is enabled on the inverter/gateway.",
                    self._host,
                    self._port,
                    self._port,
                )
                await self._teardown()
                return False

            self._mark_connected()
            self._log.info(
                "Modbus transport connected to %s:%s (unit %s)",
                self._host,
                self._port,
                self._unit_id,
            )
            return True

    async def disconnect(self) -> None:
        """Close the Modbus TCP connection."""
        await self._teardown()
        self._mark_closed()
        self._log.debug("Modbus transport disconnected from %s:%s", self._host, self._port)

    async def _teardown(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None

    async def _read_registers(
        self,
        register_type: RegisterType,
        address: int,
        count: int,
    ) -> list[int]:
        """Read input (FC 0x04) or holding (FC 0x03) registers.

        Raises:
            TransportConnectionError: If the link is down
            TransportTimeoutError: If the device did not answer in time
            TransportReadError: If the device answered with an error
        """
        self._ensure_connected()
        assert self._client is not None

        reg_type = register_type.value
        async with self._lock:
            try:
                read_fn = (
                    self._client.read_input_registers
                    if register_type == RegisterType.INPUT
                    else self._client.read_holding_registers
                )
                result = await read_fn(address=address, count=count, device_id=self._unit_id)
            except ConnectionException as err:
                raise TransportConnectionError(
                    f"Connection lost reading {reg_type} registers at {address}: {err}"
                ) from err
            except ModbusIOException as err:
                # pymodbus reports "no response received" as an IO exception
                raise TransportTimeoutError(
                    f"Timeout reading {reg_type} registers at {address}"
                ) from err
            except TimeoutError as err:
                raise TransportTimeoutError(
                    f"Timeout reading {reg_type} registers at {address}"
                ) from err
            except OSError as err:
                raise TransportConnectionError(
                    f"Socket error reading {reg_type} registers at {address}: {err}"
                ) from err

        if result.isError():
            raise TransportReadError(f"Modbus read error at {reg_type} address {address}: {result}")

        if getattr(result, "registers", None) is None:
            raise TransportReadError(
                f"Invalid Modbus response at address {address}: no registers in response"
            )

        return list(result.registers)

    async def _write_holding_registers(self, address: int, values: list[int]) -> bool:
        """Write holding registers (FC 0x06 for one word, FC 0x10 for several).

        Raises:
            TransportConnectionError: If the link is down
            TransportTimeoutError: If the device did not answer in time
            TransportWriteError: If the device rejected the write
        """
        self._ensure_connected()
        assert self._client is not None

        async with self._lock:
            try:
                if len(values) == 1:
                    result = await self._client.write_register(
                        address=address,
                        value=values[0],
                        device_id=self._unit_id,
                    )
                else:
                    result = await self._client.write_registers(
                        address=address,
                        values=values,
                        device_id=self._unit_id,
                    )
            except ConnectionException as err:
                raise TransportConnectionError(
                    f"Connection lost writing registers at {address}: {err}"
                ) from err
            except (ModbusIOException, TimeoutError) as err:
                raise TransportTimeoutError(f"Timeout writing registers at {address}") from err
            except OSError as err:
                raise TransportConnectionError(
                    f"Socket error writing registers at {address}: {err}"
                ) from err

        if result.isError():
            raise TransportWriteError(f"Modbus write error at address {address}: {result}")

        return True
