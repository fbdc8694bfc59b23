"""Growatt MIC TL-X (single phase) and MOD TL3-X (three phase) string inverters.

Both series share the Growatt holding register table.  Input registers
differ: the three-phase models report per-phase grid values.

Register tables are built per device instance, so every inverter keeps its
own last accepted values for delta checks.
"""

from __future__ import annotations

from pysolarmodbus.registers import AccessMode, ModbusRegister, RegisterDataType, RegisterOptions

from .models import Brand, ModbusDevice

RO = AccessMode.READ_ONLY
RW = AccessMode.READ_WRITE


def tl_input_registers() -> list[ModbusRegister]:
    """Build the MIC TL-X input registers."""
    return [
        ModbusRegister.default("run_mode", 0, 1, RegisterDataType.UINT8),
        ModbusRegister.scale(
            "voltage_pv1", 3, 2, RegisterDataType.UINT16, 0.1, RO,
            RegisterOptions(valid_value_min=0, valid_value_max=360), 2,
        ),
        ModbusRegister.scale(
            "voltage_pv2", 7, 2, RegisterDataType.UINT16, 0.1, RO,
            RegisterOptions(valid_value_min=0, valid_value_max=360), 2,
        ),
        ModbusRegister.scale("power_ac", 1, 2, RegisterDataType.UINT32, 0.1, RO, None, 2),
        ModbusRegister.scale(
            "power_pv1", 5, 2, RegisterDataType.UINT32, 0.1, RO,
            RegisterOptions(valid_value_min=0, valid_value_max=20000), 2,
        ),
        ModbusRegister.scale(
            "power_pv2", 9, 2, RegisterDataType.UINT32, 0.1, RO,
            RegisterOptions(valid_value_min=0, valid_value_max=20000), 2,
        ),
        ModbusRegister.scale(
            "power", 35, 2, RegisterDataType.UINT32, 0.1, RO,
            RegisterOptions(valid_value_min=0, valid_value_max=40000), 0,
        ),
        ModbusRegister.scale(
            "voltage_l1", 38, 2, RegisterDataType.UINT16, 0.1, RO,
            RegisterOptions(valid_value_min=0, valid_value_max=300), 2,
        ),
        ModbusRegister.scale(
            "meter_power_today", 53, 2, RegisterDataType.UINT32, 0.1, RO,
            RegisterOptions(valid_value_min=0, valid_value_max=100, max_add_delta=5), 2,
        ),
        ModbusRegister.scale(
            "meter_power", 55, 2, RegisterDataType.UINT32, 0.1, RO,
            RegisterOptions(valid_value_min=0.1, max_add_delta=5, max_sub_delta=0), 2,
        ),
    ]


def tl3_input_registers() -> list[ModbusRegister]:
    """Build the MOD TL3-X input registers."""
    return [
        ModbusRegister.default("run_mode", 0, 1, RegisterDataType.UINT8),
        ModbusRegister.scale("power_ac", 1, 2, RegisterDataType.UINT32, 0.1, RO, None, 2),
        ModbusRegister.scale(
            "voltage_pv1", 3, 1, RegisterDataType.UINT16, 0.1, RO,
            RegisterOptions(valid_value_min=0, valid_value_max=1100), 2,
        ),
        ModbusRegister.scale(
            "current_pv1", 4, 1, RegisterDataType.UINT16, 0.1, RO,
            RegisterOptions(valid_value_min=0, valid_value_max=30), 2,
        ),
        ModbusRegister.scale(
            "power_pv1", 5, 2, RegisterDataType.UINT32, 0.1, RO,
            RegisterOptions(valid_value_min=0, valid_value_max=30000), 2,
        ),
        ModbusRegister.scale(
            "voltage_pv2", 7, 1, RegisterDataType.UINT16, 0.1, RO,
            RegisterOptions(valid_value_min=0, valid_value_max=1100), 2,
        ),
        ModbusRegister.scale(
            "current_pv2", 8, 1, RegisterDataType.UINT16, 0.1, RO,
            RegisterOptions(valid_value_min=0, valid_value_max=30), 2,
        ),
        ModbusRegister.scale(
            "power_pv2", 9, 2, RegisterDataType.UINT32, 0.1, RO,
            RegisterOptions(valid_value_min=0, valid_value_max=30000), 2,
        ),
        ModbusRegister.scale(
            "power", 35, 2, RegisterDataType.UINT32, 0.1, RO,
            RegisterOptions(valid_value_min=0, valid_value_max=60000), 0,
        ),
        ModbusRegister.scale(
            "frequency_grid", 37, 1, RegisterDataType.UINT16, 0.01, RO,
            RegisterOptions(valid_value_min=45, valid_value_max=65), 2,
        ),
        ModbusRegister.scale(
            "voltage_l1", 38, 1, RegisterDataType.UINT16, 0.1, RO,
            RegisterOptions(valid_value_min=0, valid_value_max=300), 2,
        ),
        ModbusRegister.scale(
            "voltage_l2", 42, 1, RegisterDataType.UINT16, 0.1, RO,
            RegisterOptions(valid_value_min=0, valid_value_max=300), 2,
        ),
        ModbusRegister.scale(
            "voltage_l3", 46, 1, RegisterDataType.UINT16, 0.1, RO,
            RegisterOptions(valid_value_min=0, valid_value_max=300), 2,
        ),
        ModbusRegister.scale(
            "meter_power_today", 53, 2, RegisterDataType.UINT32, 0.1, RO,
            RegisterOptions(valid_value_min=0, valid_value_max=300, max_add_delta=10), 2,
        ),
        ModbusRegister.scale(
            "meter_power", 55, 2, RegisterDataType.UINT32, 0.1, RO,
            RegisterOptions(valid_value_min=0.1, max_add_delta=10, max_sub_delta=0), 2,
        ),
        ModbusRegister.scale(
            "temperature_inverter", 93, 1, RegisterDataType.INT16, 0.1, RO,
            RegisterOptions(valid_value_min=-40, valid_value_max=120), 1,
        ),
    ]


def holding_registers() -> list[ModbusRegister]:
    """Build the holding registers shared by both series."""
    return [
        ModbusRegister.default(
            "status_code.on_off", 0, 1, RegisterDataType.UINT16, RW,
            RegisterOptions(valid_value_min=0, valid_value_max=1),
        ),
        ModbusRegister.default(
            "measure_percentage.active_power_rate", 3, 1, RegisterDataType.UINT16, RW,
            RegisterOptions(valid_value_min=0, valid_value_max=100),
        ),
        ModbusRegister.default("status_text.firmware_version", 9, 3, RegisterDataType.STRING),
        ModbusRegister.default("status_text.serial_number", 23, 5, RegisterDataType.STRING),
        ModbusRegister.default("status_code.export_limit_mode", 122, 1, RegisterDataType.UINT16, RW),
        ModbusRegister.scale(
            "measure_percentage.export_limit_rate", 123, 1, RegisterDataType.UINT16, 0.1, RW,
            RegisterOptions(valid_value_min=0, valid_value_max=100), 1,
        ),
    ]


class GrowattTLX(ModbusDevice):
    """Growatt 1PH MIC TL-X series."""

    def __init__(self) -> None:
        super().__init__(
            "growatt-tl",
            Brand.GROWATT,
            "Growatt 1PH MIC TL-X series",
            "Single phase Growatt string inverter.",
        )
        self.supports_solarman = True
        self.deprecated_capabilities = ["measure_power.l1", "measure_power.l2", "measure_power.l3"]

        self.add_input_registers(tl_input_registers())
        self.add_holding_registers(holding_registers())


class GrowattTL3X(ModbusDevice):
    """Growatt 3PH MOD TL3-X series."""

    def __init__(self) -> None:
        super().__init__(
            "growatt-tl3",
            Brand.GROWATT,
            "Growatt 3PH MOD TL3-X series",
            "Three phase Growatt string inverter.",
        )
        self.supports_solarman = True
        self.deprecated_capabilities = ["measure_power.l1", "measure_power.l2", "measure_power.l3"]

        self.add_input_registers(tl3_input_registers())
        self.add_holding_registers(holding_registers())
