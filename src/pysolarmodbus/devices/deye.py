"""Deye SUN-*K-SG01HP3 EU AM2 three-phase hybrid inverter (sold as BlauHoff).

Deye exposes telemetry and settings in the holding table only.  Besides
telemetry this device supports control actions for export limiting, energy
pattern, grid peak shaving and the six-slot time-of-use schedule.

Time-of-use layout (holding registers):

    146        bit 0: schedule enabled, bits 1-7: enabled per weekday
    148-153    slot start time as HHMM
    154-159    slot power limit (10 W units)
    166-171    slot battery target SOC (%)
    172-177    slot charge source, bit 0: grid, bit 1: generator
"""

from __future__ import annotations

import asyncio
import logging
import random
from typing import TYPE_CHECKING, Any

from pysolarmodbus.constants import ACTION_STAGGER_MAX, ACTION_WRITE_DELAY
from pysolarmodbus.registers import (
    AccessMode,
    ModbusRegister,
    RegisterDataType,
    RegisterOptions,
    RegisterType,
    log_bits,
    read_bit_be,
    write_bits_to_buffer,
)
from pysolarmodbus.transports.exceptions import TransportReadError, TransportWriteError

from .models import Brand, ModbusDevice

if TYPE_CHECKING:
    from pysolarmodbus.transports.protocol import BaseTransport

RO = AccessMode.READ_ONLY
RW = AccessMode.READ_WRITE

TIMESLOTS = 6
TIMESLOT_TIME_START = 148
TIMESLOT_POWER_START = 154
TIMESLOT_SOC_START = 166
TIMESLOT_CHARGE_START = 172

WORK_MODES = {
    "selling_first": 0,
    "zero_export_to_load": 1,
    "zero_export_to_ct": 2,
}

RUN_STATES = {
    0: "Standby",
    1: "Self-check",
    2: "Normal",
    3: "Alarm",
    4: "Fault",
}


def _is_true(value: Any) -> bool:
    """Interpret a flow argument (bool or "true"/"false" string) as a boolean."""
    if isinstance(value, bool):
        return value
    return str(value).lower() == "true"


def _run_state(value: Any, buffer: bytes, log: logging.Logger) -> str:
    return RUN_STATES.get(value, "Unknown")


def _work_mode(value: Any, buffer: bytes, log: logging.Logger) -> str:
    for name, code in WORK_MODES.items():
        if code == value:
            return name
    return "unknown"


def _energy_pattern(value: Any, buffer: bytes, log: logging.Logger) -> str:
    return "load_first" if read_bit_be(buffer, 0) == 1 else "batt_first"


def _enabled_flag(bit_index: int):
    def transformation(value: Any, buffer: bytes, log: logging.Logger) -> str:
        return "Enabled" if read_bit_be(buffer, bit_index) == 1 else "Disabled"

    return transformation


def _peak_shaving(value: Any, buffer: bytes, log: logging.Logger) -> str:
    # bits 4-5: 0b11 enabled, 0b10 disabled
    mode = (value >> 4) & 0b11
    if mode == 0b11:
        return "Enabled"
    if mode == 0b10:
        return "Disabled"
    return "Unknown"


def _battery_temperature(value: Any, buffer: bytes, log: logging.Logger) -> float:
    return round((value - 1000) * 0.1, 1)


def holding_registers() -> list[ModbusRegister]:
    """Build the holding registers."""
    registers = [
        # Settings
        ModbusRegister.default(
            "measure_power.zero_export_power", 104, 1, RegisterDataType.UINT16, RW,
            RegisterOptions(valid_value_min=0, valid_value_max=100),
        ),
        ModbusRegister.transform(
            "status_text.energy_pattern", 141, 1, RegisterDataType.UINT16, _energy_pattern, RW
        ),
        ModbusRegister.transform(
            "status_text.work_mode", 142, 1, RegisterDataType.UINT16, _work_mode, RW
        ),
        ModbusRegister.default(
            "measure_power.max_sell_power", 143, 1, RegisterDataType.UINT16, RW,
            RegisterOptions(valid_value_min=0, valid_value_max=16000),
        ),
        ModbusRegister.transform(
            "status_text.solar_sell", 145, 1, RegisterDataType.UINT16, _enabled_flag(0), RW
        ),
        ModbusRegister.transform(
            "status_text.time_of_use", 146, 1, RegisterDataType.UINT16, _enabled_flag(0), RW
        ),
    ]

    for slot in range(TIMESLOTS):
        registers.extend(
            [
                ModbusRegister.default(
                    f"timeslot.time.{slot + 1}", TIMESLOT_TIME_START + slot, 1,
                    RegisterDataType.UINT16, RW,
                ),
                ModbusRegister.scale(
                    f"timeslot.power.{slot + 1}", TIMESLOT_POWER_START + slot, 1,
                    RegisterDataType.UINT16, 10, RW,
                ),
                ModbusRegister.default(
                    f"timeslot.soc.{slot + 1}", TIMESLOT_SOC_START + slot, 1,
                    RegisterDataType.UINT16, RW,
                    RegisterOptions(valid_value_min=0, valid_value_max=100),
                ),
                ModbusRegister.transform(
                    f"timeslot.grid_charge.{slot + 1}", TIMESLOT_CHARGE_START + slot, 1,
                    RegisterDataType.UINT16, _enabled_flag(0), RW,
                ).add_transform(f"timeslot.generator_charge.{slot + 1}", _enabled_flag(1)),
            ]
        )

    registers.extend(
        [
            ModbusRegister.transform(
                "status_text.grid_peak_shaving", 178, 1, RegisterDataType.UINT16, _peak_shaving, RW
            ),
            ModbusRegister.default(
                "measure_power.grid_peak_shaving_power", 191, 1, RegisterDataType.UINT16, RW,
                RegisterOptions(valid_value_min=0, valid_value_max=16000),
            ),
            ModbusRegister.default(
                "measure_power.max_solar_power", 340, 1, RegisterDataType.UINT16, RW,
                RegisterOptions(valid_value_min=0, valid_value_max=16000),
            ),
            # Telemetry
            ModbusRegister.default("status_code.run_state", 500, 1, RegisterDataType.UINT16)
            .add_transform("status_text.run_state", _run_state),
            ModbusRegister.scale(
                "meter_power.daily_battery_charge", 514, 1, RegisterDataType.UINT16, 0.1, RO,
                RegisterOptions(valid_value_min=0, valid_value_max=250), 1,
            ),
            ModbusRegister.scale(
                "meter_power.daily_battery_discharge", 515, 1, RegisterDataType.UINT16, 0.1, RO,
                RegisterOptions(valid_value_min=0, valid_value_max=250), 1,
            ),
            ModbusRegister.scale(
                "meter_power.daily_grid_import", 520, 1, RegisterDataType.UINT16, 0.1, RO,
                RegisterOptions(valid_value_min=0, valid_value_max=500), 1,
            ),
            ModbusRegister.scale(
                "meter_power.daily_grid_export", 521, 1, RegisterDataType.UINT16, 0.1, RO,
                RegisterOptions(valid_value_min=0, valid_value_max=500), 1,
            ),
            ModbusRegister.scale(
                "meter_power.daily_load", 526, 1, RegisterDataType.UINT16, 0.1, RO,
                RegisterOptions(valid_value_min=0, valid_value_max=500), 1,
            ),
            ModbusRegister.scale(
                "meter_power.daily_pv", 529, 1, RegisterDataType.UINT16, 0.1, RO,
                RegisterOptions(valid_value_min=0, valid_value_max=500, max_add_delta=10), 1,
            ),
            ModbusRegister.transform(
                "measure_temperature.battery", 586, 1, RegisterDataType.UINT16,
                _battery_temperature,
            ),
            ModbusRegister.scale(
                "measure_voltage.battery", 587, 1, RegisterDataType.UINT16, 0.1, RO,
                RegisterOptions(valid_value_min=0, valid_value_max=1000), 1,
            ),
            ModbusRegister.default(
                "measure_percentage.battery", 588, 1, RegisterDataType.UINT16, RO,
                RegisterOptions(valid_value_min=0, valid_value_max=100),
            ),
            ModbusRegister.scale(
                "measure_power.battery", 590, 1, RegisterDataType.INT16, 10, RO,
                RegisterOptions(valid_value_min=-30000, valid_value_max=30000),
            ),
            ModbusRegister.scale(
                "measure_voltage.grid_l1", 598, 1, RegisterDataType.UINT16, 0.1, RO,
                RegisterOptions(valid_value_min=0, valid_value_max=300), 1,
            ),
            ModbusRegister.scale(
                "measure_voltage.grid_l2", 599, 1, RegisterDataType.UINT16, 0.1, RO,
                RegisterOptions(valid_value_min=0, valid_value_max=300), 1,
            ),
            ModbusRegister.scale(
                "measure_voltage.grid_l3", 600, 1, RegisterDataType.UINT16, 0.1, RO,
                RegisterOptions(valid_value_min=0, valid_value_max=300), 1,
            ),
            ModbusRegister.default(
                "measure_power.grid", 625, 1, RegisterDataType.INT16, RO,
                RegisterOptions(valid_value_min=-30000, valid_value_max=30000),
            ),
            ModbusRegister.default(
                "measure_power.load", 653, 1, RegisterDataType.INT16, RO,
                RegisterOptions(valid_value_min=-30000, valid_value_max=30000),
            ),
            ModbusRegister.scale(
                "measure_power.pv1", 672, 1, RegisterDataType.UINT16, 10, RO,
                RegisterOptions(valid_value_min=0, valid_value_max=20000),
            ),
            ModbusRegister.scale(
                "measure_power.pv2", 673, 1, RegisterDataType.UINT16, 10, RO,
                RegisterOptions(valid_value_min=0, valid_value_max=20000),
            ),
            ModbusRegister.scale(
                "measure_voltage.pv1", 676, 1, RegisterDataType.UINT16, 0.1, RO,
                RegisterOptions(valid_value_min=0, valid_value_max=1000), 1,
            ),
            ModbusRegister.scale(
                "measure_voltage.pv2", 678, 1, RegisterDataType.UINT16, 0.1, RO,
                RegisterOptions(valid_value_min=0, valid_value_max=1000), 1,
            ),
        ]
    )
    return registers


class DeyeSunXKSG01HP3(ModbusDevice):
    """Deye (BlauHoff) Sun *K SG01HP3 EU AM2 series."""

    def __init__(self) -> None:
        super().__init__(
            "sun-xk-sg01hp3-eu-am2",
            Brand.DEYE,
            "BlauHoff Sun *K SG01HP3 EU AM2",
            "BlauHoff Deye Sun *K SG01HP3 EU AM2 Series",
        )
        self.supports_solarman = True
        self.deprecated_capabilities = ["status_code.work_mode", "status_code.run_mode"]

        self.add_holding_registers(holding_registers())

        self.add_action("set_max_solar_power", self.set_max_solar_power)
        self.add_action("set_solar_sell", self.set_solar_sell)
        self.add_action("set_max_sell_power", self.set_max_sell_power)
        self.add_action("write_value_to_register", self.write_value_to_register)
        self.add_action("set_energy_pattern", self.set_energy_pattern)
        self.add_action("set_grid_peak_shaving_on", self.set_grid_peak_shaving_on)
        self.add_action("set_grid_peak_shaving_off", self.set_grid_peak_shaving_off)
        self.add_action(
            "set_work_mode_and_zero_export_power", self.set_work_mode_and_zero_export_power
        )
        self.add_action("set_time_of_use_enabled", self.set_time_of_use_enabled)
        self.add_action("set_time_of_use_day_enabled", self.set_time_of_use_day_enabled)
        self.add_action(
            "set_time_of_use_timeslot_parameters", self.set_time_of_use_timeslot_parameters
        )
        self.add_action("set_all_timeslot_parameters", self.set_all_timeslot_parameters)

    def _holding(self, origin: logging.Logger, *addresses: int) -> list[ModbusRegister] | None:
        """Look up holding registers, logging and returning None if any is missing."""
        registers = [
            self.get_register_by_type_and_address(RegisterType.HOLDING, address)
            for address in addresses
        ]
        if any(register is None for register in registers):
            origin.error("Register not found: %s", addresses)
            return None
        return registers  # type: ignore[return-value]

    # ------------------------------------------------------------------
    # Power limits
    # ------------------------------------------------------------------

    async def set_max_solar_power(
        self, origin: logging.Logger, args: dict[str, Any], transport: BaseTransport
    ) -> None:
        """Set the maximum solar power (1000-7800 W)."""
        registers = self._holding(origin, 340)
        if registers is None:
            return
        (register,) = registers

        value = float(args["value"])
        origin.debug("Setting max solar power to %s", value)
        if value < 1000 or value > 7800:
            origin.error("Value out of range: %s", value)
            return

        result = await transport.write_register(register, register.calculate_payload(value, origin))
        origin.debug("Output %s", result)

    async def set_max_sell_power(
        self, origin: logging.Logger, args: dict[str, Any], transport: BaseTransport
    ) -> None:
        """Set the maximum power sold to the grid (10-16000 W)."""
        registers = self._holding(origin, 143)
        if registers is None:
            return
        (register,) = registers

        value = float(args["value"])
        origin.debug("Setting max sell power to %s", value)
        if value < 10 or value > 16000:
            origin.error("Value out of range: %s", value)
            return

        result = await transport.write_register(register, register.calculate_payload(value, origin))
        origin.debug("Output %s", result)

    async def set_solar_sell(
        self, origin: logging.Logger, args: dict[str, Any], transport: BaseTransport
    ) -> None:
        """Enable or disable selling solar power."""
        registers = self._holding(origin, 145)
        if registers is None:
            return
        (register,) = registers

        enabled = _is_true(args.get("enabled"))
        origin.debug("Setting solar selling to %s", enabled)

        result = await transport.write_register(register, 1 if enabled else 0)
        origin.debug("Output %s", result)

    async def write_value_to_register(
        self, origin: logging.Logger, args: dict[str, Any], transport: BaseTransport
    ) -> None:
        """Write an arbitrary catalog register (see BaseTransport.write_value_to_register)."""
        result = await transport.write_value_to_register(args)
        origin.debug("Output %s", result)

    # ------------------------------------------------------------------
    # Modes
    # ------------------------------------------------------------------

    async def set_energy_pattern(
        self, origin: logging.Logger, args: dict[str, Any], transport: BaseTransport
    ) -> None:
        """Select battery-first or load-first energy pattern."""
        registers = self._holding(origin, 141)
        if registers is None:
            return
        (register,) = registers

        value = args.get("value")
        if value not in ("batt_first", "load_first"):
            origin.error("Invalid energy pattern: %s", value)
            return

        origin.debug("Setting energy pattern to %s", value)
        bits = [0] if value == "batt_first" else [1]

        current = await transport.read_address_without_conversion(register)
        if current is None:
            raise TransportReadError("Error reading current energy pattern")

        log_bits(origin, current)
        # Low byte of the big-endian word
        updated = write_bits_to_buffer(current, 1, bits)
        log_bits(origin, updated)

        result = await transport.write_buffer_register(register, updated)
        origin.debug("Output %s", result)

    async def set_work_mode_and_zero_export_power(
        self, origin: logging.Logger, args: dict[str, Any], transport: BaseTransport
    ) -> None:
        """Set the limit-control work mode and the zero export power (0-100 W)."""
        registers = self._holding(origin, 142, 104)
        if registers is None:
            return
        mode_register, power_register = registers

        work_mode = args.get("workmode")
        if work_mode not in WORK_MODES:
            origin.error("Invalid work mode: %s", work_mode)
            return

        value = float(args["value"])
        if value < 0 or value > 100:
            origin.error("Value out of range: %s", value)
            return

        origin.debug("Setting work mode to %s with zero export power %s W", work_mode, value)

        mode_result = await transport.write_register(mode_register, WORK_MODES[work_mode])
        origin.debug("Work mode output %s", mode_result)

        payload = power_register.calculate_payload(value, origin)
        power_result = await transport.write_register(power_register, payload)
        origin.debug("Power output %s", power_result)

    async def set_grid_peak_shaving_on(
        self, origin: logging.Logger, args: dict[str, Any], transport: BaseTransport
    ) -> None:
        """Enable grid peak shaving at the given power (0-16000 W)."""
        registers = self._holding(origin, 178, 191)
        if registers is None:
            return
        mode_register, power_register = registers

        value = float(args["value"])
        if value < 0 or value > 16000:
            origin.error("Value out of range: %s", value)
            return

        origin.info("Setting grid peak shaving on with %s W", value)

        result = await transport.write_bits_to_register(mode_register, [1, 1], 4)
        origin.debug("Set grid peak shaving on result %s", result)
        if not result:
            return

        payload = power_register.calculate_payload(value, origin)
        power_result = await transport.write_register(power_register, payload)
        origin.debug("Power output %s", power_result)

    async def set_grid_peak_shaving_off(
        self, origin: logging.Logger, args: dict[str, Any], transport: BaseTransport
    ) -> None:
        """Disable grid peak shaving."""
        registers = self._holding(origin, 178)
        if registers is None:
            return
        (mode_register,) = registers

        origin.info("Setting grid peak shaving off")
        result = await transport.write_bits_to_register(mode_register, [0, 1], 4)
        origin.debug("Set grid peak shaving off result %s", result)

    # ------------------------------------------------------------------
    # Time of use
    # ------------------------------------------------------------------

    async def set_time_of_use_enabled(
        self, origin: logging.Logger, args: dict[str, Any], transport: BaseTransport
    ) -> None:
        """Enable or disable the time-of-use schedule."""
        registers = self._holding(origin, 146)
        if registers is None:
            return
        (register,) = registers

        enabled = _is_true(args.get("enabled"))
        origin.debug("Setting time of use enabled to %s", enabled)

        result = await transport.write_bits_to_register(register, [1 if enabled else 0], 0)
        origin.debug("Set time of use enabled result %s", result)

    async def set_time_of_use_day_enabled(
        self, origin: logging.Logger, args: dict[str, Any], transport: BaseTransport
    ) -> None:
        """Enable or disable the schedule for one weekday (1-7)."""
        registers = self._holding(origin, 146)
        if registers is None:
            return
        (register,) = registers

        day = int(args["day"])
        if day < 1 or day > 7:
            origin.error("Invalid day: %s", day)
            return

        enabled = _is_true(args.get("enabled"))
        result = await transport.write_bits_to_register(register, [1 if enabled else 0], day)
        origin.debug("Set time of use for day %d enabled result %s", day, result)

    @staticmethod
    def _charge_value(grid_charge: Any, generator_charge: Any) -> int:
        value = 0
        if _is_true(grid_charge):
            value += 1
        if _is_true(generator_charge):
            value += 2
        return value

    async def set_time_of_use_timeslot_parameters(
        self, origin: logging.Logger, args: dict[str, Any], transport: BaseTransport
    ) -> None:
        """Program one time-of-use slot.

        Starts after a random delay of up to 0.6 s.

        Args:
            args: ``timeslot`` (1-6), ``time`` ("HH:MM"), ``gridcharge``,
                ``generatorcharge``, ``powerlimit`` (0-8000 W),
                ``batterycharge`` (0-100 %)

        Raises:
            TransportWriteError: If any of the writes is rejected
        """
        await asyncio.sleep(random.uniform(0, ACTION_STAGGER_MAX))

        timeslot = int(args["timeslot"])
        if timeslot < 1 or timeslot > TIMESLOTS:
            origin.error("Invalid timeslot: %s", args["timeslot"])
            return

        power_limit = float(args["powerlimit"])
        if power_limit < 0 or power_limit > 8000:
            origin.error("Invalid power limit: %s", args["powerlimit"])
            return

        battery_charge = int(args["batterycharge"])
        if battery_charge < 0 or battery_charge > 100:
            origin.error("Invalid battery charge: %s", args["batterycharge"])
            return

        offset = timeslot - 1
        registers = self._holding(
            origin,
            TIMESLOT_CHARGE_START + offset,
            TIMESLOT_POWER_START + offset,
            TIMESLOT_SOC_START + offset,
            TIMESLOT_TIME_START + offset,
        )
        if registers is None:
            return
        charge_register, power_register, battery_register, time_register = registers

        charge_value = self._charge_value(args.get("gridcharge"), args.get("generatorcharge"))
        parsed_time = int(str(args["time"]).replace(":", ""))
        power_payload = power_register.calculate_payload(power_limit, origin)

        origin.info(
            "Setting timeslot %d parameters: time=%s charge=%s power=%s soc=%s",
            timeslot,
            parsed_time,
            charge_value,
            power_payload,
            battery_charge,
        )

        writes = (
            ("charge", charge_register, charge_value),
            ("power", power_register, power_payload),
            ("battery", battery_register, battery_charge),
            ("time", time_register, parsed_time),
        )
        for index, (name, register, value) in enumerate(writes):
            if index:
                await asyncio.sleep(ACTION_WRITE_DELAY)
            if not await transport.write_register(register, value):
                raise TransportWriteError(f"Error setting timeslot {name}")

    async def set_all_timeslot_parameters(
        self, origin: logging.Logger, args: dict[str, Any], transport: BaseTransport
    ) -> None:
        """Program charge source, power limit and SOC of all six slots at once.

        Raises:
            TransportWriteError: If any of the writes is rejected
        """
        power_limit = float(args["powerlimit"])
        if power_limit < 0 or power_limit > 8000:
            origin.error("Invalid power limit: %s", args["powerlimit"])
            return

        battery_charge = int(args["batterycharge"])
        if battery_charge < 0 or battery_charge > 100:
            origin.error("Invalid battery charge: %s", args["batterycharge"])
            return

        registers = self._holding(
            origin, TIMESLOT_CHARGE_START, TIMESLOT_POWER_START, TIMESLOT_SOC_START
        )
        if registers is None:
            return
        charge_register, power_register, battery_register = registers

        charge_value = self._charge_value(args.get("gridcharge"), args.get("generatorcharge"))
        power_payload = power_register.calculate_payload(power_limit, origin)

        writes = (
            ("charge", charge_register, [charge_value] * TIMESLOTS),
            ("power", power_register, [power_payload] * TIMESLOTS),
            ("battery", battery_register, [battery_charge] * TIMESLOTS),
        )
        for index, (name, register, values) in enumerate(writes):
            if index:
                await asyncio.sleep(ACTION_WRITE_DELAY)
            if not await transport.write_registers(register, values):
                raise TransportWriteError(f"Error setting all timeslot {name}")
