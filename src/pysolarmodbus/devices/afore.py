"""Afore AF XK-TH three-phase hybrid inverter."""

from __future__ import annotations

import logging
from typing import Any

from pysolarmodbus.registers import (
    AccessMode,
    ModbusRegister,
    RegisterDataType,
    RegisterOptions,
    read_bit_be,
)

from .models import Brand, ModbusDevice

RO = AccessMode.READ_ONLY
RW = AccessMode.READ_WRITE
WO = AccessMode.WRITE_ONLY

BATTERY_STATES = {
    0: "No battery",
    1: "Fault",
    2: "Sleep",
    3: "Start",
    4: "Charging",
    5: "Discharging",
    6: "Off",
    7: "Wake up",
}

EMS_MODES = {
    0: "Self-use",
    1: "Charging priority",
    2: "Priority in selling electricity",
    3: "Battery maintenance",
    4: "Command mode",
    5: "External EMS",
    6: "Peak Shaving Mode",
    7: "Imbalance compensation",
    8: "Q compensation mode",
}

CHARGE_COMMANDS = {
    b"\x00\xaa": "Charge/Discharge",
    b"\x00\xbb": "Paused",
}


def _battery_state(value: Any, buffer: bytes, log: logging.Logger) -> str:
    return BATTERY_STATES.get(value, "Unknown")


def _ems_mode(value: Any, buffer: bytes, log: logging.Logger) -> str:
    return EMS_MODES.get(value, "Unknown")


def _charge_command(value: Any, buffer: bytes, log: logging.Logger) -> str:
    return CHARGE_COMMANDS.get(bytes(buffer), "Unknown")


def _flag(bit_index: int):
    """Build a transformation reporting one bit of the raw buffer as Enabled/Disabled."""

    def transformation(value: Any, buffer: bytes, log: logging.Logger) -> str:
        return "Enabled" if read_bit_be(buffer, bit_index) == 1 else "Disabled"

    return transformation


def _log_timeslot(value: Any, buffer: bytes, log: logging.Logger) -> None:
    log.info("timeslot.time %s (%d bytes)", bytes(buffer).hex(), len(buffer))


def input_registers() -> list[ModbusRegister]:
    """Build the input registers."""
    return [
        ModbusRegister.default("status_text_inverter_name", 0, 6, RegisterDataType.STRING),
        ModbusRegister.default("status_text_hard_name", 11, 4, RegisterDataType.STRING),
        ModbusRegister.default(
            "measure_power_grid_active_power", 535, 2, RegisterDataType.INT32, RO,
            RegisterOptions(valid_value_min=-24100, valid_value_max=24100),
        ),
        ModbusRegister.default(
            "measure_power_grid_total_load", 547, 2, RegisterDataType.INT32, RO,
            RegisterOptions(valid_value_min=-24100, valid_value_max=24100),
        ),
        ModbusRegister.default(
            "measure_power_pv", 553, 2, RegisterDataType.UINT32, RO,
            RegisterOptions(valid_value_min=0, valid_value_max=24100),
        ),
        ModbusRegister.scale(
            "measure_voltage_pv1", 555, 1, RegisterDataType.UINT16, 0.1, RO,
            RegisterOptions(valid_value_min=0, valid_value_max=800),
        ),
        ModbusRegister.default(
            "measure_power_pv1", 557, 1, RegisterDataType.UINT16, RO,
            RegisterOptions(valid_value_min=0, valid_value_max=15000),
        ),
        ModbusRegister.scale(
            "measure_voltage_pv2", 558, 1, RegisterDataType.UINT16, 0.1, RO,
            RegisterOptions(valid_value_min=0, valid_value_max=800),
        ),
        ModbusRegister.default(
            "measure_power_pv2", 560, 1, RegisterDataType.UINT16, RO,
            RegisterOptions(valid_value_min=0, valid_value_max=15000),
        ),
        ModbusRegister.transform("status_text_battery_state", 2000, 1, RegisterDataType.UINT16, _battery_state),
        ModbusRegister.scale(
            "measure_temperature_battery1", 2001, 1, RegisterDataType.INT16, 0.1, RO,
            RegisterOptions(valid_value_min=-40, valid_value_max=100),
        ),
        ModbusRegister.default(
            "measure_percentage_bat_soc", 2002, 1, RegisterDataType.UINT16, RO,
            RegisterOptions(valid_value_min=0, valid_value_max=100),
        ),
        ModbusRegister.default(
            "measure_power_battery", 2007, 2, RegisterDataType.INT32, RO,
            RegisterOptions(valid_value_min=-24100, valid_value_max=24100),
        ),
        ModbusRegister.scale(
            "meter_power_daily_battery_charge", 2009, 1, RegisterDataType.UINT16, 0.1, RO,
            RegisterOptions(valid_value_min=0, valid_value_max=250), 2,
        ),
        ModbusRegister.scale(
            "meter_power_daily_battery_discharge", 2010, 1, RegisterDataType.UINT16, 0.1, RO,
            RegisterOptions(valid_value_min=0, valid_value_max=250), 2,
        ),
        ModbusRegister.default("status_code_running_state", 2500, 1, RegisterDataType.UINT16, RO),
        ModbusRegister.scale(
            "meter_power_total_battery_charge", 2011, 2, RegisterDataType.UINT32, 0.1, RO, None, 2,
        ),
        ModbusRegister.scale(
            "meter_power_total_battery_discharge", 2013, 2, RegisterDataType.UINT32, 0.1, RO, None, 2,
        ),
    ]


def holding_registers() -> list[ModbusRegister]:
    """Build the holding registers."""
    return [
        ModbusRegister.transform(
            "status_text_ac_timing_charge", 206, 2, RegisterDataType.UINT32, _flag(4)
        )
        .add_transform("status_text_timing_charge", _flag(5))
        .add_transform("status_text_timing_discharge", _flag(6)),
        ModbusRegister.default(
            "status_code_run_mode", 2500, 1, RegisterDataType.UINT16, RW
        ).add_transform("ems_mode", _ems_mode),
        ModbusRegister.transform(
            "status_text_charge_command", 2501, 1, RegisterDataType.UINT16, _charge_command
        ),
        ModbusRegister.default(
            "measure_power_charge_instructions", 2502, 2, RegisterDataType.INT32, RW
        ),
        ModbusRegister.scale(
            "measure_percentage_acpchgmax", 2504, 1, RegisterDataType.UINT16, 0.1, RW,
            RegisterOptions(valid_value_min=0, valid_value_max=100),
        ),
        ModbusRegister.scale(
            "measure_percentage_acsocmaxchg", 2505, 1, RegisterDataType.UINT16, 0.1, RW,
            RegisterOptions(valid_value_min=0, valid_value_max=100),
        ),
        ModbusRegister.transform("timeslot.time", 2509, 1, RegisterDataType.UINT16, _log_timeslot, WO),
        *(
            ModbusRegister.default("timeslot.time", address, 1, RegisterDataType.UINT16, WO)
            for address in range(2510, 2517)
        ),
    ]


class AforeAFXKTH(ModbusDevice):
    """Afore AF XK-TH three-phase hybrid inverter."""

    def __init__(self) -> None:
        super().__init__(
            "af-xk-th-three-phase-hybrid",
            Brand.AFORE,
            "Afore AF XK-TH Three Phase Hybrid",
            "Afore three phase hybrid inverter with battery storage.",
        )
        self.supports_solarman = True

        self.add_input_registers(input_registers())
        self.add_holding_registers(holding_registers())
