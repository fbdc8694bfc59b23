"""Pytest configuration and fixtures for pysolarmodbus tests."""

from __future__ import annotations

import asyncio
import os
import re
from collections.abc import Callable
from typing import Any

import pytest

from pysolarmodbus.config import DeviceConfig
from pysolarmodbus.devices import Brand, ModbusDevice
from pysolarmodbus.registers import (
    AccessMode,
    ModbusRegister,
    RegisterDataType,
    RegisterOptions,
    RegisterType,
)
from pysolarmodbus.transports import BaseTransport

# Solarman logger serials are 10-digit numbers
_SERIAL_PATTERN = re.compile(r"\b\d{10}\b")


def is_ci_environment() -> bool:
    """Check if running in CI environment."""
    return os.getenv("CI") is not None or os.getenv("GITHUB_ACTIONS") is not None


def redact_serials(text: str) -> str:
    """Mask logger serial numbers, keeping the first and last two digits."""
    return _SERIAL_PATTERN.sub(lambda m: f"{m.group()[:2]}****{m.group()[-2:]}", text)


@pytest.hookimpl(hookwrapper=True)
def pytest_runtest_call(item):
    """Redact logger serials from test output in CI."""
    if not is_ci_environment():
        yield
        return

    import sys
    from io import StringIO

    original_stdout = sys.stdout
    original_stderr = sys.stderr
    stdout_capture = StringIO()
    stderr_capture = StringIO()
    sys.stdout = stdout_capture
    sys.stderr = stderr_capture

    try:
        outcome = yield
    finally:
        sys.stdout = original_stdout
        sys.stderr = original_stderr

        stdout_text = redact_serials(stdout_capture.getvalue())
        stderr_text = redact_serials(stderr_capture.getvalue())
        if stdout_text:
            original_stdout.write(stdout_text)
        if stderr_text:
            original_stderr.write(stderr_text)

    return outcome


# =============================================================================
# Catalog
# =============================================================================


def build_sample_device() -> ModbusDevice:
    """Build a small catalog with two input batches and one holding batch.

    Input:   0 status (+ status_running), 1-2 power, 10 voltage
    Holding: 100 on_off, 101 export_limit, 102 flags (+ flags_copy), 110 write-only
    """
    device = ModbusDevice("test-inverter", Brand.GROWATT, "Test inverter", "Inverter for tests")
    device.add_input_registers(
        [
            ModbusRegister.default("status", 0, 1, RegisterDataType.UINT16).add_transform(
                "status_running", lambda value, buffer, log: value == 1
            ),
            ModbusRegister.scale(
                "power",
                1,
                2,
                RegisterDataType.UINT32,
                0.1,
                options=RegisterOptions(valid_value_min=0, valid_value_max=10000),
                decimals=1,
            ),
            ModbusRegister.scale("voltage", 10, 1, RegisterDataType.UINT16, 0.1, decimals=1),
        ]
    )
    device.add_holding_registers(
        [
            ModbusRegister.default("on_off", 100, 1, RegisterDataType.UINT16, AccessMode.READ_WRITE),
            ModbusRegister.scale(
                "export_limit", 101, 1, RegisterDataType.UINT16, 0.1, AccessMode.READ_WRITE
            ),
            ModbusRegister.default(
                "flags", 102, 1, RegisterDataType.UINT16, AccessMode.READ_WRITE
            ).add_default("flags_copy"),
            ModbusRegister.default(
                "command", 110, 1, RegisterDataType.UINT16, AccessMode.WRITE_ONLY
            ),
        ]
    )
    return device


class FakeTransport(BaseTransport):
    """In-memory transport backed by a register map.

    Attributes:
        memory: ``(register_type, address) -> word``
        read_errors: Errors raised by a read starting at ``(register_type, address)``
        write_error: Error raised by every write
        connect_results: Results of successive connect() calls (True once exhausted)
        read_gate: When set, reads wait on this event before answering
    """

    transport_type = "fake"

    def __init__(self, device: ModbusDevice, **kwargs: Any) -> None:
        super().__init__(device, unit_id=1, timeout=1.0, log=kwargs.get("log"))
        self.memory: dict[tuple[RegisterType, int], int] = {}
        self.read_errors: dict[tuple[RegisterType, int], Exception] = {}
        self.write_error: Exception | None = None
        self.connect_results: list[bool] = []
        self.read_gate: asyncio.Event | None = None

        self.read_calls: list[tuple[RegisterType, int, int]] = []
        self.writes: list[tuple[int, list[int]]] = []
        self.connect_calls = 0
        self.disconnect_calls = 0
        self.teardown_calls = 0

    async def connect(self) -> bool:
        self.connect_calls += 1
        result = self.connect_results.pop(0) if self.connect_results else True
        if result:
            self._mark_connected()
        return result

    async def disconnect(self) -> None:
        self.disconnect_calls += 1
        self._mark_closed()

    async def _teardown(self) -> None:
        self.teardown_calls += 1

    async def _read_registers(
        self,
        register_type: RegisterType,
        address: int,
        count: int,
    ) -> list[int]:
        self._ensure_connected()
        self.read_calls.append((register_type, address, count))
        if self.read_gate is not None:
            await self.read_gate.wait()

        error = self.read_errors.get((register_type, address))
        if error is not None:
            raise error
        return [self.memory.get((register_type, address + i), 0) for i in range(count)]

    async def _write_holding_registers(self, address: int, values: list[int]) -> bool:
        self._ensure_connected()
        if self.write_error is not None:
            raise self.write_error

        self.writes.append((address, list(values)))
        for offset, value in enumerate(values):
            self.memory[(RegisterType.HOLDING, address + offset)] = value
        return True


@pytest.fixture
def device() -> ModbusDevice:
    """Small register catalog."""
    return build_sample_device()


@pytest.fixture
def make_transport() -> Callable[..., FakeTransport]:
    """Factory for in-memory transports."""

    def _make(device: ModbusDevice, **kwargs: Any) -> FakeTransport:
        return FakeTransport(device, **kwargs)

    return _make


@pytest.fixture
def transport(device: ModbusDevice) -> FakeTransport:
    """Connected in-memory transport over the sample catalog."""
    fake = FakeTransport(device)
    fake._mark_connected()
    return fake


@pytest.fixture
def device_config() -> DeviceConfig:
    """Plain Modbus TCP configuration."""
    return DeviceConfig(host="192.168.1.100", device_id="test-inverter")
