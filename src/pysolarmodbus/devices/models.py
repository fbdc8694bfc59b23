"""Device model: a named register catalog with optional control actions."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable, Mapping
from enum import Enum
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

from pysolarmodbus.registers import (
    DataConverter,
    ModbusRegister,
    RegisterType,
    create_register_batches,
    default_value_converter,
)

if TYPE_CHECKING:
    from pysolarmodbus.transports.protocol import BaseTransport

_LOGGER = logging.getLogger(__name__)

DeviceAction = Callable[[logging.Logger, dict[str, Any], "BaseTransport"], Awaitable[None]]


class Brand(str, Enum):
    """Inverter manufacturer, used to group devices during pairing."""

    GROWATT = "growatt"
    DEYE = "deye"
    AFORE = "afore"


class ModbusDevice:
    """Register catalog and control actions of one inverter model.

    Subclasses populate the catalog in ``__init__`` through
    :meth:`add_input_registers`, :meth:`add_holding_registers` and
    :meth:`add_action`.  Read batches are planned once, on first use.

    Attributes:
        id: Unique device ID across all catalogs
        brand: Manufacturer
        name: Display name
        description: Short description shown during pairing
        supports_solarman: Whether the model can be reached through a
            Solarman data logger
        deprecated_capabilities: Capabilities older releases published that
            hosts should remove
        converter: Decoder turning raw register bytes into values
    """

    def __init__(
        self,
        id: str,  # noqa: A002
        brand: Brand,
        name: str,
        description: str,
        *,
        converter: DataConverter = default_value_converter,
    ) -> None:
        self.id = id
        self.brand = brand
        self.name = name
        self.description = description
        self.converter = converter
        self.supports_solarman = True
        self.deprecated_capabilities: list[str] = []

        self._input_registers: list[ModbusRegister] = []
        self._holding_registers: list[ModbusRegister] = []
        self._actions: dict[str, DeviceAction] = {}
        self._input_batches: list[list[ModbusRegister]] | None = None
        self._holding_batches: list[list[ModbusRegister]] | None = None
        self._action_lock = asyncio.Lock()

    def __repr__(self) -> str:
        return f"{type(self).__name__}(id={self.id!r}, brand={self.brand.value!r})"

    # ------------------------------------------------------------------
    # Catalog
    # ------------------------------------------------------------------

    @property
    def input_registers(self) -> tuple[ModbusRegister, ...]:
        """Get the input registers (FC 0x04)."""
        return tuple(self._input_registers)

    @property
    def holding_registers(self) -> tuple[ModbusRegister, ...]:
        """Get the holding registers (FC 0x03)."""
        return tuple(self._holding_registers)

    @property
    def input_batches(self) -> list[list[ModbusRegister]]:
        """Get the planned input register batches."""
        if self._input_batches is None:
            self._input_batches = create_register_batches(self._input_registers)
        return self._input_batches

    @property
    def holding_batches(self) -> list[list[ModbusRegister]]:
        """Get the planned holding register batches."""
        if self._holding_batches is None:
            self._holding_batches = create_register_batches(self._holding_registers)
        return self._holding_batches

    @property
    def supported_actions(self) -> Mapping[str, DeviceAction]:
        """Get the control actions by name (read-only view)."""
        return MappingProxyType(self._actions)

    def add_input_registers(self, registers: Iterable[ModbusRegister]) -> ModbusDevice:
        """Add registers to the input table.

        Returns:
            This device, for chaining
        """
        self._input_registers.extend(
            register.with_register_type(RegisterType.INPUT) for register in registers
        )
        self._input_batches = None
        return self

    def add_holding_registers(self, registers: Iterable[ModbusRegister]) -> ModbusDevice:
        """Add registers to the holding table.

        Returns:
            This device, for chaining
        """
        self._holding_registers.extend(
            register.with_register_type(RegisterType.HOLDING) for register in registers
        )
        self._holding_batches = None
        return self

    def add_action(self, name: str, action: DeviceAction) -> ModbusDevice:
        """Register a control action under ``name``."""
        self._actions[name] = action
        return self

    def get_register_by_type_and_address(
        self,
        register_type: RegisterType,
        address: int,
    ) -> ModbusRegister | None:
        """Find the first register of a table starting at ``address``."""
        registers = (
            self._input_registers
            if register_type == RegisterType.INPUT
            else self._holding_registers
        )
        for register in registers:
            if register.address == address:
                return register
        return None

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------

    async def call_action(
        self,
        origin: logging.Logger,
        action: str,
        args: dict[str, Any],
        transport: BaseTransport,
    ) -> None:
        """Run a control action, one at a time per device.

        Callers queue on a lock and run in arrival order.  Failures are
        logged to ``origin`` and never raised.

        Args:
            origin: Logger of the device the action was invoked on
            action: Action name, a key of :attr:`supported_actions`
            args: Action arguments
            transport: Connected transport to write through
        """
        if not self._actions:
            origin.error("No supported actions found for %s", self.id)
            return

        device_action = self._actions.get(action)
        if device_action is None:
            origin.error("Unsupported action %s for %s", action, self.id)
            return

        async with self._action_lock:
            try:
                await device_action(origin, args, transport)
            except Exception as err:  # noqa: BLE001
                origin.error("Error running action %s: %s", action, err)
