"""Solarman V5 data-logger transport.

Solarman WiFi/LAN sticks (LSW-3, LSE-3 and relatives) listen on TCP port 8899
and tunnel Modbus RTU frames inside their own V5 envelope:

    A5 | len(2, LE) | 10 <ctrl> | seq(2) | logger serial(4, LE) | payload | checksum | 15

A request payload starts with frame type 0x02, sensor type 0x0000 and three
zeroed 32-bit time fields, followed by the RTU frame (with its CRC-16).  The
response payload carries one extra status byte, so the RTU frame starts at
offset 25.  The checksum is the low byte of the sum of every byte between the
start marker and the checksum itself.

Loggers also push unsolicited frames (heartbeat, data, info, report) over the
same socket.  Those are answered with a time response and skipped while
waiting for the reply to the outstanding request.

IMPORTANT: Single-Client Limitation
------------------------------------
Loggers serialize requests and accept few (often one) concurrent connections.
Only one request is ever in flight on a transport.
"""

from __future__ import annotations

import asyncio
import logging
import random
import struct
import time
from typing import TYPE_CHECKING

from pysolarmodbus.constants import (
    CONNECT_TIMEOUT,
    DEFAULT_SOLARMAN_PORT,
    DEFAULT_SOLARMAN_TIMEOUT,
    DEFAULT_UNIT_ID,
    MODBUS_EXCEPTION_FLAG,
    MODBUS_READ_HOLDING,
    MODBUS_READ_INPUT,
    MODBUS_WRITE_MULTI,
    MODBUS_WRITE_SINGLE,
)
from pysolarmodbus.registers import RegisterType

from .exceptions import (
    TransportConnectionError,
    TransportFramingError,
    TransportReadError,
    TransportTimeoutError,
    TransportWriteError,
)
from .protocol import BaseTransport

if TYPE_CHECKING:
    from pysolarmodbus.devices.models import ModbusDevice

_LOGGER = logging.getLogger(__name__)

__all__ = [
    "SolarmanTransport",
    "build_rtu_request",
    "compute_crc16",
    "parse_rtu_response",
    "v5_checksum",
]

# V5 envelope
V5_START = 0xA5
V5_END = 0x15
V5_CONTROL_SUFFIX = 0x10
V5_REQUEST = 0x45
V5_RESPONSE = 0x15
V5_FRAME_TYPE_INVERTER = 0x02
V5_HEADER_LENGTH = 11
V5_TRAILER_LENGTH = 2
V5_RESPONSE_MODBUS_OFFSET = 25

# Logger-initiated control codes, answered with (code - 0x30)
V5_HANDSHAKE = 0x41
V5_DATA = 0x42
V5_INFO = 0x43
V5_HEARTBEAT = 0x47
V5_REPORT = 0x48
V5_LOGGER_INITIATED = frozenset({V5_HANDSHAKE, V5_DATA, V5_INFO, V5_HEARTBEAT, V5_REPORT})
V5_RESPONSE_OFFSET = 0x30

MIN_RTU_FRAME_LENGTH = 5


def compute_crc16(data: bytes) -> int:
    """Compute CRC-16/Modbus checksum.

    Args:
        data: Bytes to compute CRC for

    Returns:
        16-bit CRC value
    """
    crc = 0xFFFF
    for byte in data:
        crc ^= byte
        for _ in range(8):
            if crc & 1:
                crc = (crc >> 1) ^ 0xA001
            else:
                crc >>= 1
    return crc & 0xFFFF


def v5_checksum(frame: bytes) -> int:
    """Compute the V5 checksum of a complete frame (checksum slot included)."""
    return sum(frame[1:-2]) & 0xFF


def build_rtu_request(
    unit_id: int,
    function_code: int,
    address: int,
    count: int = 0,
    values: list[int] | None = None,
) -> bytes:
    """Build a Modbus RTU request frame, CRC included.

    Args:
        unit_id: Modbus unit/slave ID
        function_code: 0x03, 0x04, 0x06 or 0x10
        address: Starting register address
        count: Register count for reads
        values: Register values for writes

    Returns:
        RTU frame bytes
    """
    if function_code in (MODBUS_READ_HOLDING, MODBUS_READ_INPUT):
        body = struct.pack(">BBHH", unit_id, function_code, address, count)
    elif function_code == MODBUS_WRITE_SINGLE:
        if values is None or len(values) != 1:
            raise ValueError("Function code 0x06 writes exactly one register")
        body = struct.pack(">BBHH", unit_id, function_code, address, values[0] & 0xFFFF)
    elif function_code == MODBUS_WRITE_MULTI:
        if not values:
            raise ValueError("Function code 0x10 needs at least one register value")
        body = struct.pack(">BBHHB", unit_id, function_code, address, len(values), len(values) * 2)
        body += b"".join(struct.pack(">H", value & 0xFFFF) for value in values)
    else:
        raise ValueError(f"Unsupported Modbus function code 0x{function_code:02X}")

    return body + struct.pack("<H", compute_crc16(body))


def parse_rtu_response(frame: bytes, unit_id: int, function_code: int) -> list[int]:
    """Validate an RTU response and extract its register words.

    Read responses longer than their byte count announces are trimmed before
    the CRC check; some loggers pad the tunnelled frame.

    Args:
        frame: RTU frame as extracted from the V5 envelope
        unit_id: Unit ID the request was addressed to
        function_code: Function code of the request

    Returns:
        Register words for reads, the echoed (address, value/count) for writes

    Raises:
        TransportReadError: On short frames, CRC mismatch, unexpected unit or
            function code, or a Modbus exception response
    """
    if len(frame) < MIN_RTU_FRAME_LENGTH:
        raise TransportReadError(f"Modbus frame too short: {len(frame)} bytes")

    received_func = frame[1]
    if received_func & MODBUS_EXCEPTION_FLAG:
        exception_frame = frame[:MIN_RTU_FRAME_LENGTH]
        if compute_crc16(exception_frame[:-2]) == struct.unpack("<H", exception_frame[-2:])[0]:
            raise TransportReadError(
                f"Modbus exception response: function=0x{received_func & 0x7F:02X}, "
                f"code=0x{frame[2]:02X}"
            )
        raise TransportReadError("Modbus exception response with bad CRC")

    is_read = function_code in (MODBUS_READ_HOLDING, MODBUS_READ_INPUT)
    expected_length = 3 + frame[2] + 2 if is_read else 8
    if len(frame) < expected_length:
        raise TransportReadError(
            f"Modbus frame truncated: expected {expected_length} bytes, got {len(frame)}"
        )
    if len(frame) > expected_length:
        _LOGGER.debug("Trimming %d trailing bytes from Modbus frame", len(frame) - expected_length)
        frame = frame[:expected_length]

    body, crc = frame[:-2], struct.unpack("<H", frame[-2:])[0]
    if compute_crc16(body) != crc:
        raise TransportReadError(
            f"Modbus CRC mismatch: expected 0x{compute_crc16(body):04X}, got 0x{crc:04X}"
        )

    if frame[0] != unit_id:
        raise TransportReadError(f"Response from unit {frame[0]}, expected {unit_id}")
    if received_func != function_code:
        raise TransportReadError(
            f"Response function 0x{received_func:02X}, expected 0x{function_code:02X}"
        )

    if is_read:
        data = body[3:]
        return [struct.unpack(">H", data[i : i + 2])[0] for i in range(0, len(data) - 1, 2)]

    return list(struct.unpack(">HH", body[2:6]))


class SolarmanTransport(BaseTransport):
    """Modbus over Solarman V5 transport.

    Example:
        transport = SolarmanTransport(device, host="192.168.1.50", serial=2712345678)
        if await transport.connect():
            await transport.read_registers_in_batch()
    """

    transport_type: str = "solarman_v5"

    def __init__(
        self,
        device: ModbusDevice,
        host: str,
        serial: int,
        port: int = DEFAULT_SOLARMAN_PORT,
        unit_id: int = DEFAULT_UNIT_ID,
        timeout: float = DEFAULT_SOLARMAN_TIMEOUT,
        *,
        log: logging.Logger | None = None,
    ) -> None:
        """Initialize Solarman transport.

        Args:
            device: Register catalog of the connected device
            host: IP address or hostname of the data logger
            serial: Data logger serial number (printed on the stick)
            port: TCP port (default 8899)
            unit_id: Modbus unit/slave ID of the inverter behind the logger
            timeout: Request timeout in seconds (default 5.0)
            log: Device-scoped logger
        """
        super().__init__(device, unit_id=unit_id, timeout=timeout, log=log)
        self._host = host
        self._port = port
        self._serial = serial
        self._serial_bytes = struct.pack("<I", serial)
        self._sequence = random.randint(1, 0xFE)
        self._reader: asyncio.StreamReader | None = None
        self._writer: asyncio.StreamWriter | None = None
        self._resync_needed = False

    @property
    def host(self) -> str:
        """Get the logger host."""
        return self._host

    @property
    def port(self) -> int:
        """Get the logger port."""
        return self._port

    @property
    def serial(self) -> int:
        """Get the logger serial number."""
        return self._serial

    @property
    def is_connected(self) -> bool:
        """Check whether the socket is open."""
        return self._connected and self._writer is not None and not self._writer.is_closing()

    async def connect(self) -> bool:
        """Open the TCP connection to the data logger.

        Returns:
            True if connected, False if the connection attempt failed
        """
        async with self._connect_lock:
            if self.is_connected:
                return True

            try:
                self._reader, self._writer = await asyncio.wait_for(
                    asyncio.open_connection(self._host, self._port),
                    timeout=CONNECT_TIMEOUT,
                )
            except TimeoutError:
                self._log.error(
                    "Timeout connecting to Solarman logger at %s:%s. "
                    "Verify: (1) IP address is correct, (2) logger is on network.",
                    self._host,
                    self._port,
                )
                return False
            except OSError as err:
                self._log.error(
                    "Failed to connect to Solarman logger at %s:%s: %s",
                    self._host,
                    self._port,
                    err,
                )
                return False

            self._resync_needed = False
            self._mark_connected()
            self._log.info(
                "Solarman transport connected to %s:%s (logger=%s, unit %s)",
                self._host,
                self._port,
                self._serial,
                self._unit_id,
            )
            return True

    async def disconnect(self) -> None:
        """Close the TCP connection to the data logger."""
        await self._teardown()
        self._mark_closed()
        self._log.debug("Solarman transport disconnected for logger %s", self._serial)

    async def _teardown(self) -> None:
        writer = self._writer
        self._reader = None
        self._writer = None
        if writer is None:
            return

        try:
            writer.close()
            await asyncio.wait_for(writer.wait_closed(), timeout=CONNECT_TIMEOUT)
        except TimeoutError:
            self._log.warning(
                "Timeout waiting for connection close to %s:%s",
                self._host,
                self._port,
            )
        except OSError as err:
            self._log.debug("Error closing Solarman connection: %s", err)

    # ------------------------------------------------------------------
    # V5 framing
    # ------------------------------------------------------------------

    def _next_sequence(self) -> int:
        self._sequence = (self._sequence + 1) & 0xFF
        return self._sequence

    def _build_frame(self, rtu_frame: bytes, sequence: int) -> bytes:
        """Wrap an RTU frame in a V5 request envelope."""
        payload = struct.pack("<BHIII", V5_FRAME_TYPE_INVERTER, 0x0000, 0, 0, 0) + rtu_frame
        header = struct.pack("<BH", V5_START, len(payload))
        header += bytes([V5_CONTROL_SUFFIX, V5_REQUEST])
        header += struct.pack("<H", sequence)
        header += self._serial_bytes

        frame = bytearray(header + payload + b"\x00" + bytes([V5_END]))
        frame[-2] = v5_checksum(frame)
        return bytes(frame)

    def _build_time_response(self, frame: bytes) -> bytes:
        """Answer a logger-initiated frame with the current time."""
        payload = struct.pack("<HII", 0x0100, int(time.time()), 0)
        header = struct.pack("<BH", V5_START, len(payload))
        header += bytes([V5_CONTROL_SUFFIX, (frame[4] - V5_RESPONSE_OFFSET) & 0xFF])
        header += bytes([(frame[5] + 1) & 0xFF, frame[6]])
        header += frame[7:11]

        response = bytearray(header + payload + b"\x00" + bytes([V5_END]))
        response[-2] = v5_checksum(response)
        return bytes(response)

    async def _read_frame(self) -> bytes:
        """Read one V5 frame, skipping any bytes before the start marker."""
        assert self._reader is not None

        skipped = await self._reader.readuntil(bytes([V5_START]))
        if len(skipped) > 1:
            self._log.debug("Skipped %d bytes before V5 frame start", len(skipped) - 1)

        header = await self._reader.readexactly(V5_HEADER_LENGTH - 1)
        (payload_length,) = struct.unpack("<H", header[0:2])
        rest = await self._reader.readexactly(payload_length + V5_TRAILER_LENGTH)
        return bytes([V5_START]) + header + rest

    async def _receive_response(self, sequence: int) -> bytes:
        """Wait for the response to ``sequence`` and return its RTU frame.

        Raises:
            TransportFramingError: On a malformed or unmatched frame
        """
        assert self._writer is not None

        while True:
            frame = await self._read_frame()

            if frame[-1] != V5_END:
                raise TransportFramingError("V5 frame has no end marker")
            if frame[-2] != v5_checksum(frame):
                raise TransportFramingError("V5 frame checksum mismatch")

            control = frame[4]
            if control in V5_LOGGER_INITIATED:
                self._log.debug("Answering logger frame 0x%02X", control)
                self._writer.write(self._build_time_response(frame))
                await self._writer.drain()
                continue

            if control != V5_RESPONSE:
                raise TransportFramingError(f"Unexpected V5 control code 0x{control:02X}")
            if frame[5] != sequence:
                raise TransportFramingError(
                    f"V5 sequence mismatch: sent {sequence}, received {frame[5]}"
                )
            if frame[7:11] != self._serial_bytes:
                raise TransportFramingError(
                    f"V5 response from logger {struct.unpack('<I', frame[7:11])[0]}, "
                    f"expected {self._serial}"
                )
            if frame[11] != V5_FRAME_TYPE_INVERTER:
                raise TransportFramingError(f"Unexpected V5 frame type 0x{frame[11]:02X}")

            modbus_frame = frame[V5_RESPONSE_MODBUS_OFFSET:-V5_TRAILER_LENGTH]
            if len(modbus_frame) < MIN_RTU_FRAME_LENGTH:
                raise TransportFramingError(
                    f"V5 response carries no Modbus frame ({len(modbus_frame)} bytes)"
                )
            return modbus_frame

    async def _drain_buffer(self) -> None:
        """Discard data left over from a request that timed out."""
        assert self._reader is not None

        while True:
            try:
                junk = await asyncio.wait_for(self._reader.read(512), timeout=0.05)
            except TimeoutError:
                return
            if not junk:
                return
            self._log.debug("Drained %d bytes of stale data: %s", len(junk), junk.hex()[:50])

    async def _request(self, rtu_frame: bytes) -> bytes:
        """Send one RTU frame and return the RTU frame of the matching response.

        Raises:
            TransportConnectionError: If the link is down or was lost
            TransportFramingError: If the logger sent a malformed or unmatched frame
            TransportTimeoutError: If no response arrived in time
        """
        self._ensure_connected()
        assert self._writer is not None

        async with self._lock:
            try:
                if self._resync_needed:
                    await self._drain_buffer()
                    self._resync_needed = False

                sequence = self._next_sequence()
                self._writer.write(self._build_frame(rtu_frame, sequence))
                await self._writer.drain()

                return await asyncio.wait_for(
                    self._receive_response(sequence),
                    timeout=self._timeout,
                )
            except TimeoutError as err:
                self._resync_needed = True
                raise TransportTimeoutError(
                    f"Timeout waiting for Solarman logger {self._serial}"
                ) from err
            except asyncio.LimitOverrunError as err:
                raise TransportFramingError("No V5 frame start found in stream") from err
            except (asyncio.IncompleteReadError, OSError) as err:
                raise TransportConnectionError(
                    f"Connection to Solarman logger {self._serial} lost: {err}"
                ) from err

    async def _read_registers(
        self,
        register_type: RegisterType,
        address: int,
        count: int,
    ) -> list[int]:
        function_code = (
            MODBUS_READ_INPUT if register_type == RegisterType.INPUT else MODBUS_READ_HOLDING
        )
        rtu_request = build_rtu_request(self._unit_id, function_code, address, count)
        rtu_response = await self._request(rtu_request)
        words = parse_rtu_response(rtu_response, self._unit_id, function_code)

        if len(words) != count:
            raise TransportReadError(
                f"Expected {count} registers at {register_type.value} address {address}, "
                f"got {len(words)}"
            )
        return words

    async def _write_holding_registers(self, address: int, values: list[int]) -> bool:
        function_code = MODBUS_WRITE_SINGLE if len(values) == 1 else MODBUS_WRITE_MULTI
        rtu_request = build_rtu_request(self._unit_id, function_code, address, values=values)
        rtu_response = await self._request(rtu_request)

        try:
            echoed_address, _ = parse_rtu_response(rtu_response, self._unit_id, function_code)
        except TransportReadError as err:
            raise TransportWriteError(str(err)) from err

        if echoed_address != address:
            raise TransportWriteError(
                f"Write acknowledged for address {echoed_address}, expected {address}"
            )
        return True
