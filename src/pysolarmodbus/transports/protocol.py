"""Transport contract shared by the Modbus TCP and Solarman drivers.

:class:`BaseTransport` implements everything that does not depend on the wire
protocol: batch reads over the device catalog, per-register decoding, write
helpers (including bit-level read-modify-write) and event delivery.  Drivers
supply four primitives:

- ``connect()`` / ``disconnect()``: link management
- ``_read_registers(register_type, address, count)``: one wire read
- ``_write_holding_registers(address, values)``: one wire write

Events:
    A transport reports back through three single-slot handlers.  Setting a
    handler replaces the previous one.  Until a handler is set, events go to a
    logging default, so an event raised before wiring is never silently lost.

    - ``on_data_received(value, raw, parse_configuration)``: one decoded value
      per parse configuration per register per cycle
    - ``on_error(error, register)``: a register (or a whole batch, reported
      against its first register) could not be read
    - ``on_disconnect()``: the link was lost; called once per link loss
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable, Sequence
from typing import TYPE_CHECKING, Any

from pysolarmodbus.exceptions import ConfigurationError, RegisterNotFoundError
from pysolarmodbus.registers import (
    ModbusRegister,
    ParseConfiguration,
    RegisterType,
    batch_span,
    bytes_from_words,
    encode_value,
    log_bits,
    words_from_bytes,
    write_bits_to_buffer_be,
)

from .exceptions import (
    TransportConnectionError,
    TransportError,
    TransportReadError,
)

if TYPE_CHECKING:
    from pysolarmodbus.devices.models import ModbusDevice

_LOGGER = logging.getLogger(__name__)

OnDataReceived = Callable[[Any, bytes, ParseConfiguration], Awaitable[None]]
OnError = Callable[[Exception, ModbusRegister], Awaitable[None]]
OnDisconnect = Callable[[], Awaitable[None]]


class BaseTransport(ABC):
    """Protocol-independent part of a device transport."""

    transport_type: str = "base"

    def __init__(
        self,
        device: ModbusDevice,
        *,
        unit_id: int,
        timeout: float,
        log: logging.Logger | None = None,
    ) -> None:
        """Initialize base transport.

        Args:
            device: Register catalog of the connected device
            unit_id: Modbus unit/slave ID
            timeout: Request round-trip deadline in seconds
            log: Device-scoped logger (defaults to this module's logger)
        """
        self._device = device
        self._unit_id = unit_id
        self._timeout = timeout
        self._log = log or _LOGGER
        self._connected = False
        self._disconnect_notified = False
        self._lock = asyncio.Lock()
        self._connect_lock = asyncio.Lock()

        self._on_data_received: OnDataReceived = self._log_data_received
        self._on_error: OnError = self._log_error
        self._on_disconnect: OnDisconnect = self._log_disconnect

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def device(self) -> ModbusDevice:
        """Get the register catalog this transport reads."""
        return self._device

    @property
    def unit_id(self) -> int:
        """Get the Modbus unit/slave ID."""
        return self._unit_id

    @property
    def timeout(self) -> float:
        """Get the request timeout in seconds."""
        return self._timeout

    @property
    def is_connected(self) -> bool:
        """Check whether the link is open."""
        return self._connected

    # ------------------------------------------------------------------
    # Event handlers
    # ------------------------------------------------------------------

    def set_on_data_received(self, handler: OnDataReceived) -> None:
        """Replace the data handler."""
        self._on_data_received = handler

    def set_on_error(self, handler: OnError) -> None:
        """Replace the error handler."""
        self._on_error = handler

    def set_on_disconnect(self, handler: OnDisconnect) -> None:
        """Replace the disconnect handler."""
        self._on_disconnect = handler

    async def _log_data_received(
        self, value: Any, raw: bytes, parse_configuration: ParseConfiguration
    ) -> None:
        self._log.debug("No data handler set, dropping %s=%r", parse_configuration.capability_id, value)

    async def _log_error(self, error: Exception, register: ModbusRegister) -> None:
        self._log.warning("Request for register %d failed: %s", register.address, error)

    async def _log_disconnect(self) -> None:
        self._log.warning("%s transport disconnected", self.transport_type)

    # ------------------------------------------------------------------
    # Connection management
    # ------------------------------------------------------------------

    @abstractmethod
    async def connect(self) -> bool:
        """Open the link.

        Returns:
            True if the link is open, False if it could not be established
        """

    @abstractmethod
    async def disconnect(self) -> None:
        """Close the link.  Safe to call when not connected."""

    async def __aenter__(self) -> BaseTransport:
        await self.connect()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.disconnect()

    def _ensure_connected(self) -> None:
        if not self.is_connected:
            raise TransportConnectionError(f"{self.transport_type} transport is not connected")

    def _mark_connected(self) -> None:
        self._connected = True
        self._disconnect_notified = False

    def _mark_closed(self) -> None:
        """Record an explicit close; no disconnect event follows."""
        self._connected = False
        self._disconnect_notified = True

    @abstractmethod
    async def _teardown(self) -> None:
        """Drop the underlying link after it failed, without raising."""

    async def _link_lost(self, error: Exception) -> None:
        """Tear down after a link failure and report it once."""
        was_notified = self._disconnect_notified
        self._disconnect_notified = True
        self._connected = False
        await self._teardown()

        if was_notified:
            return

        self._log.warning("Lost connection to device: %s", error)
        await self._on_disconnect()

    # ------------------------------------------------------------------
    # Wire primitives
    # ------------------------------------------------------------------

    @abstractmethod
    async def _read_registers(
        self,
        register_type: RegisterType,
        address: int,
        count: int,
    ) -> list[int]:
        """Read ``count`` registers starting at ``address`` in one transaction."""

    @abstractmethod
    async def _write_holding_registers(self, address: int, values: list[int]) -> bool:
        """Write ``values`` to consecutive holding registers in one transaction."""

    async def _read_words(
        self,
        register_type: RegisterType,
        address: int,
        count: int,
    ) -> list[int]:
        try:
            return await self._read_registers(register_type, address, count)
        except TransportConnectionError as err:
            await self._link_lost(err)
            raise

    async def _write_words(self, address: int, values: list[int]) -> bool:
        try:
            return await self._write_holding_registers(address, values)
        except TransportConnectionError as err:
            await self._link_lost(err)
            raise
        except TransportError as err:
            self._log.error("Failed to write registers at %d: %s", address, err)
            return False

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def read_address_without_conversion(self, register: ModbusRegister) -> bytes | None:
        """Read a single register span and return its raw bytes.

        Returns:
            Raw big-endian bytes, or None when the device returned no data
        """
        words = await self._read_words(register.register_type, register.address, register.length)
        return bytes_from_words(words) or None

    async def read_address(self, register: ModbusRegister) -> Any:
        """Read a single register span and decode it per its data type."""
        raw = await self.read_address_without_conversion(register)
        if raw is None:
            return None
        return self._device.converter(raw, register, self._log)

    async def read_registers_in_batch(self) -> None:
        """Read every input and holding batch of the device catalog.

        Emits ``on_data_received`` for each parse configuration.  Register and
        batch failures are reported through ``on_error`` and the cycle moves
        on.  A lost link aborts the cycle.

        Raises:
            TransportConnectionError: If the link was lost during the cycle
        """
        for register_type, batches in (
            (RegisterType.INPUT, self._device.input_batches),
            (RegisterType.HOLDING, self._device.holding_batches),
        ):
            for batch in batches:
                await self._read_batch(register_type, batch)

    async def _read_batch(
        self,
        register_type: RegisterType,
        batch: Sequence[ModbusRegister],
    ) -> None:
        start, count = batch_span(batch)

        try:
            words = await self._read_words(register_type, start, count)
        except TransportConnectionError:
            raise
        except TransportError as err:
            self._log.debug(
                "Failed to read %s batch %d+%d: %s",
                register_type.value,
                start,
                count,
                err,
            )
            await self._on_error(err, batch[0])
            return

        buffer = bytes_from_words(words)

        for register in batch:
            offset = (register.address - start) * 2
            raw = buffer[offset : offset + register.byte_length]
            try:
                value = self._device.converter(raw, register, self._log)
                if value is None:
                    continue
                for parse_configuration in register.parse_configurations:
                    await self._on_data_received(value, raw, parse_configuration)
            except Exception as err:  # noqa: BLE001
                await self._on_error(err, register)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def _ensure_writable(self, register: ModbusRegister) -> None:
        if register.register_type != RegisterType.HOLDING:
            raise ConfigurationError(
                f"Register {register.address} is an input register and cannot be written"
            )

    async def write_register(self, register: ModbusRegister, value: Any) -> bool:
        """Write a raw value to a register, encoded per its data type.

        Returns:
            True if the device acknowledged the write
        """
        self._ensure_writable(register)
        words = encode_value(value, register)
        self._log.debug("Writing %r to register %d as %s", value, register.address, words)
        return await self._write_words(register.address, words)

    async def write_registers(self, start_register: ModbusRegister, values: Sequence[Any]) -> bool:
        """Write one 16-bit word per value to consecutive registers."""
        self._ensure_writable(start_register)
        words = [int(value) & 0xFFFF for value in values]
        self._log.debug("Writing %s starting at register %d", words, start_register.address)
        return await self._write_words(start_register.address, words)

    async def write_buffer_register(self, register: ModbusRegister, buffer: bytes) -> bool:
        """Write raw big-endian bytes to a register span."""
        self._ensure_writable(register)
        return await self._write_words(register.address, words_from_bytes(buffer))

    async def write_bits_to_register(
        self,
        register: ModbusRegister,
        bits: Sequence[int],
        bit_index: int,
    ) -> bool:
        """Flip a range of bits in a register, keeping every other bit.

        Reads the register's current contents, writes ``bits`` starting at
        ``bit_index`` (bit 0 is the least significant bit of the last byte)
        and writes the full register back.

        Raises:
            TransportReadError: If the current contents could not be read
        """
        current = await self.read_address_without_conversion(register)
        if current is None:
            raise TransportReadError(f"Could not read current value of register {register.address}")

        updated = write_bits_to_buffer_be(current, bits, bit_index)
        log_bits(self._log, current)
        log_bits(self._log, updated)
        return await self.write_buffer_register(register, updated)

    async def write_value_to_register(self, args: dict[str, Any]) -> bool:
        """Write a user-facing value to a register looked up in the catalog.

        Args:
            args: ``{"register_type": "holding", "address": int, "value": Any}``.
                ``register_type`` defaults to holding.

        Raises:
            RegisterNotFoundError: If the catalog has no such register
        """
        register_type = RegisterType(args.get("register_type", RegisterType.HOLDING.value))
        address = int(args["address"])
        value = args["value"]

        register = self._device.get_register_by_type_and_address(register_type, address)
        if register is None:
            raise RegisterNotFoundError(f"No {register_type.value} register at address {address}")

        if len(register.parse_configurations) == 1:
            value = register.calculate_payload(value, self._log)

        return await self.write_register(register, value)
