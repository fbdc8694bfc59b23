"""Poll/connect engine for one inverter.

:class:`DevicePoller` connects a transport, reads every register batch on a
fixed interval and publishes validated values to the host.  It owns exactly
one pending timer at a time: either the next poll or the next reconnect
attempt.

Failure handling:

- A request timeout marks the device unavailable but keeps the link; the
  next poll is scheduled after 60 seconds.
- A lost link makes the transport call :meth:`DevicePoller._on_disconnect`,
  which reconnects once.  On failure a retry is scheduled every 60 seconds
  until the link is back, then polling resumes at the configured interval.
- No valid value for ``max(120 s, update_interval)`` since the last value or
  the last (re)connect marks the device unavailable even when reads keep
  "succeeding".

States::

    DISCONNECTED -> CONNECTING -> CONNECTED <-> RECONNECTING
                                     any -> STOPPED
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from enum import Enum
from typing import TYPE_CHECKING, Any

from pysolarmodbus.constants import (
    MIN_UPDATE_INTERVAL,
    RECONNECT_RETRY_INTERVAL,
    STALE_DATA_THRESHOLD,
    UNREACHABLE_RETRY_INTERVAL,
)
from pysolarmodbus.exceptions import SolarModbusError
from pysolarmodbus.registers import ModbusRegister, ParseConfiguration, process_value
from pysolarmodbus.transports import (
    BaseTransport,
    TransportConnectionError,
    TransportTimeoutError,
    create_transport,
)

if TYPE_CHECKING:
    from pysolarmodbus.config import DeviceConfig
    from pysolarmodbus.devices.models import ModbusDevice
    from pysolarmodbus.host import DeviceHost, TimerCallback

_LOGGER = logging.getLogger(__name__)

TransportFactory = Callable[["DeviceConfig", "ModbusDevice", logging.Logger], BaseTransport]


class PollerState(str, Enum):
    """Connection state of a poller."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"
    STOPPED = "stopped"


class DevicePoller:
    """Poll one inverter and publish its values to a host.

    Example:
        poller = DevicePoller(host, GrowattTLX())
        await poller.start()
        ...
        await poller.stop()
    """

    def __init__(
        self,
        host: DeviceHost,
        device: ModbusDevice,
        transport_factory: TransportFactory = create_transport,
    ) -> None:
        """Initialize the poller.

        Args:
            host: Application providing config, storage, availability and timers
            device: Register catalog of the inverter
            transport_factory: Builds a transport from config and device
        """
        self._host = host
        self._device = device
        self._transport_factory = transport_factory
        self._log: logging.Logger = host.logger or _LOGGER

        self._transport: BaseTransport | None = None
        self._state = PollerState.DISCONNECTED
        self._available = False
        self._stopping = False
        self._running = False
        self._pending = False
        self._timer: Any = None
        self._link_epoch = 0
        self._last_valid_request_time: float | None = None

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def device(self) -> ModbusDevice:
        """Get the device catalog being polled."""
        return self._device

    @property
    def transport(self) -> BaseTransport | None:
        """Get the current transport, if any."""
        return self._transport

    @property
    def state(self) -> PollerState:
        """Get the connection state."""
        return self._state

    @property
    def available(self) -> bool:
        """Check whether the device is currently reported available."""
        return self._available

    @property
    def last_valid_request_time(self) -> float | None:
        """Get the monotonic time of the last published value."""
        return self._last_valid_request_time

    @property
    def has_pending_timer(self) -> bool:
        """Check whether a poll or reconnect timer is armed."""
        return self._timer is not None

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _set_availability(self, available: bool) -> None:
        if self._available == available:
            return
        self._log.debug("Setting availability: %s", available)
        self._available = available
        await self._host.set_availability(available)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._host.cancel(self._timer)
            self._timer = None

    def _schedule(self, delay: float, callback: TimerCallback) -> None:
        """Arm the single timer, replacing any pending one."""
        self._cancel_timer()
        if self._stopping:
            return

        handle: Any = None

        async def fire() -> None:
            if self._timer is handle:
                self._timer = None
            await callback()

        handle = self._host.call_later(delay, fire)
        self._timer = handle

    async def _discard_if_orphaned(self, transport: BaseTransport, is_open: bool) -> bool:
        """Close a link that opened after stop() or after the transport was replaced."""
        if not self._stopping and self._transport is transport:
            return False
        if is_open:
            await transport.disconnect()
        return True

    def _poll_interval(self) -> float:
        if not self._available:
            return UNREACHABLE_RETRY_INTERVAL
        return max(self._host.get_config().update_interval, MIN_UPDATE_INTERVAL)

    def _stale_threshold(self) -> float:
        return max(STALE_DATA_THRESHOLD, self._host.get_config().update_interval)

    async def _check_staleness(self) -> None:
        last = self._last_valid_request_time
        if last is None or not self._available:
            return

        elapsed = time.monotonic() - last
        if elapsed > self._stale_threshold():
            self._log.warning("No valid data for %.0f seconds, marking unavailable", elapsed)
            await self._set_availability(False)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Start polling."""
        self._stopping = False
        self._log.info("Starting poller for %s", self._device.name)
        await self.connect()

    async def connect(self) -> bool:
        """Connect a fresh transport and start polling.

        Returns:
            True if the link is open
        """
        self._cancel_timer()
        self._running = False
        self._pending = False

        previous = self._transport
        if previous is not None:
            await previous.disconnect()

        config = self._host.get_config()
        self._log.debug(
            "Connecting to %s:%s with unit id %s (solarman: %s, serial: %s)",
            config.host,
            config.resolved_port,
            config.unit_id,
            config.solarman,
            config.serial,
        )

        try:
            transport = self._transport_factory(config, self._device, self._log)
        except (ValueError, SolarModbusError) as err:
            self._log.error("Invalid connection settings: %s", err)
            self._transport = None
            self._state = PollerState.DISCONNECTED
            await self._set_availability(False)
            return False

        transport.set_on_data_received(self._on_data_received)
        transport.set_on_error(self._on_error)
        transport.set_on_disconnect(self._on_disconnect)
        self._transport = transport
        self._state = PollerState.CONNECTING

        is_open = await transport.connect()

        if await self._discard_if_orphaned(transport, is_open):
            return False

        if not is_open:
            self._log.error(
                "Failed to connect, retrying in %.0f seconds", RECONNECT_RETRY_INTERVAL
            )
            self._state = PollerState.DISCONNECTED
            await self._set_availability(False)
            self._schedule(RECONNECT_RETRY_INTERVAL, self._reconnect)
            return False

        self._state = PollerState.CONNECTED
        self._last_valid_request_time = time.monotonic()
        await self._set_availability(True)
        await self.read_registers()
        return True

    async def stop(self) -> None:
        """Stop polling and close the link.  Safe to call repeatedly."""
        self._log.info("Stopping poller for %s", self._device.name)
        await self._clean_up()

    async def destroy(self) -> None:
        """Release everything held by the poller.  Safe to call repeatedly."""
        self._log.debug("Destroying poller for %s", self._device.name)
        await self._clean_up()

    async def _clean_up(self) -> None:
        self._stopping = True
        self._cancel_timer()
        self._pending = False
        self._state = PollerState.STOPPED

        transport = self._transport
        if transport is not None and transport.is_connected:
            self._log.debug("Closing connection")
            await transport.disconnect()

    # ------------------------------------------------------------------
    # Polling
    # ------------------------------------------------------------------

    async def read_registers(self) -> None:
        """Run one poll cycle and schedule the next.

        A call while a cycle is running is folded into a single follow-up
        cycle that starts once the running one finishes.
        """
        transport = self._transport
        if transport is None:
            self._log.error("Transport is not initialized")
            return

        if self._stopping:
            return

        if self._state != PollerState.CONNECTED:
            self._log.debug("Skipping read while %s", self._state.value)
            return

        self._cancel_timer()

        if self._running:
            self._log.debug("Read already running, queueing one follow-up read")
            self._pending = True
            return

        await self._check_staleness()

        self._log.debug("Reading registers")
        self._running = True
        epoch = self._link_epoch

        try:
            await transport.read_registers_in_batch()
        except TransportConnectionError as err:
            self._log.error("Failed to read registers: %s", err)
        except Exception as err:  # noqa: BLE001
            self._log.error("Failed to read registers: %s", err)
            await self._set_availability(False)
        finally:
            self._running = False

        pending = self._pending
        self._pending = False

        if self._stopping or self._transport is not transport:
            self._log.debug("Discarding poll cycle of a replaced or stopped transport")
            return

        if epoch != self._link_epoch or self._state != PollerState.CONNECTED:
            # The disconnect handler owns the schedule now
            if pending and self._state == PollerState.CONNECTED:
                self._schedule(0, self.read_registers)
            return

        if pending:
            self._schedule(0, self.read_registers)
            return

        interval = self._poll_interval()
        if not self._available:
            self._log.warning(
                "Device is not reachable, retrying in %.0f seconds", UNREACHABLE_RETRY_INTERVAL
            )
        self._schedule(interval, self.read_registers)

    # ------------------------------------------------------------------
    # Transport events
    # ------------------------------------------------------------------

    async def _on_disconnect(self) -> None:
        self._log.warning("Disconnected")
        self._link_epoch += 1
        self._cancel_timer()
        await self._reconnect()

    async def _reconnect(self) -> None:
        transport = self._transport
        if transport is None or self._stopping:
            return

        self._state = PollerState.RECONNECTING
        is_open = await transport.connect()

        if await self._discard_if_orphaned(transport, is_open):
            return

        if not is_open:
            self._log.error(
                "Failed to reconnect, reconnecting in %.0f seconds", RECONNECT_RETRY_INTERVAL
            )
            await self._set_availability(False)
            self._schedule(RECONNECT_RETRY_INTERVAL, self._reconnect)
            return

        self._log.debug("Reconnected to device")
        self._state = PollerState.CONNECTED
        self._last_valid_request_time = time.monotonic()
        await self._set_availability(True)
        self._schedule(0, self.read_registers)

    async def _on_error(self, error: Exception, register: ModbusRegister) -> None:
        if self._stopping:
            return

        if isinstance(error, TransportTimeoutError):
            self._log.warning("Request for register %d timed out", register.address)
            await self._set_availability(False)
            return

        self._log.error("Request for register %d failed: %s", register.address, error)

    async def _on_data_received(
        self,
        value: Any,
        buffer: bytes,
        parse_configuration: ParseConfiguration,
    ) -> None:
        if self._stopping:
            self._log.debug(
                "Discarding value for %s after stop", parse_configuration.capability_id
            )
            return

        result = process_value(parse_configuration, value, buffer, self._log)

        if not result.valid:
            self._log.error(
                "Invalid value received for %s: %r (%s, raw %s)",
                parse_configuration.capability_id,
                value,
                result.message,
                bytes(buffer).hex(),
            )
            return

        await self._host.set_attribute_value(parse_configuration.capability_id, result.value)
        self._last_valid_request_time = time.monotonic()
        await self._set_availability(True)

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------

    async def call_action(self, action: str, args: dict[str, Any]) -> None:
        """Run a device control action through the current transport."""
        transport = self._transport
        if transport is None or not transport.is_connected:
            self._log.error("Cannot run action %s: not connected", action)
            return

        await self._device.call_action(self._log, action, args, transport)


__all__ = ["DevicePoller", "PollerState", "TransportFactory"]
