"""Tests for the Deye SUN-*K-SG01HP3 catalog and its control actions."""

from __future__ import annotations

import logging
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from pysolarmodbus.devices import DeyeSunXKSG01HP3
from pysolarmodbus.registers import RegisterType, process_value
from pysolarmodbus.transports import TransportWriteError

HOLDING = RegisterType.HOLDING
_LOG = logging.getLogger(__name__)


@pytest.fixture
def deye() -> DeyeSunXKSG01HP3:
    """Fresh Deye catalog."""
    return DeyeSunXKSG01HP3()


@pytest.fixture
def deye_transport(deye, make_transport):
    """Connected in-memory transport over the Deye catalog."""
    transport = make_transport(deye)
    transport._mark_connected()
    return transport


@pytest.fixture
def no_sleep():
    """Skip the stagger and inter-write delays."""
    with (
        patch("pysolarmodbus.devices.deye.asyncio.sleep", new_callable=AsyncMock) as sleep,
        patch("pysolarmodbus.devices.deye.random.uniform", return_value=0.3) as uniform,
    ):
        yield sleep, uniform


class TestCatalog:
    """Tests for the Deye register table."""

    def test_holding_only(self, deye) -> None:
        """Test that Deye publishes everything from the holding table."""
        assert deye.input_registers == ()
        assert deye.input_batches == []
        assert len(deye.holding_batches) > 1

    def test_actions(self, deye) -> None:
        """Test the supported action names."""
        assert set(deye.supported_actions) == {
            "set_max_solar_power",
            "set_solar_sell",
            "set_max_sell_power",
            "write_value_to_register",
            "set_energy_pattern",
            "set_grid_peak_shaving_on",
            "set_grid_peak_shaving_off",
            "set_work_mode_and_zero_export_power",
            "set_time_of_use_enabled",
            "set_time_of_use_day_enabled",
            "set_time_of_use_timeslot_parameters",
            "set_all_timeslot_parameters",
        }

    def test_timeslot_flags(self, deye) -> None:
        """Test that a charge-source register feeds grid and generator flags."""
        register = deye.get_register_by_type_and_address(HOLDING, 172)
        grid, generator = register.parse_configurations

        assert grid.calculate_value(2, b"\x00\x02", _LOG) == "Disabled"
        assert generator.calculate_value(2, b"\x00\x02", _LOG) == "Enabled"

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [(0x30, "Enabled"), (0x20, "Disabled"), (0x00, "Unknown")],
    )
    def test_peak_shaving_state(self, deye, raw: int, expected: str) -> None:
        """Test decoding of the peak shaving mode bits."""
        register = deye.get_register_by_type_and_address(HOLDING, 178)
        assert register.calculate_value(raw, raw.to_bytes(2, "big"), _LOG) == expected

    def test_energy_pattern(self, deye) -> None:
        """Test decoding of the energy pattern bit."""
        register = deye.get_register_by_type_and_address(HOLDING, 141)
        assert register.calculate_value(1, b"\x00\x01", _LOG) == "load_first"
        assert register.calculate_value(0, b"\x00\x00", _LOG) == "batt_first"

    def test_run_state(self, deye) -> None:
        """Test that the run state is published as code and text."""
        register = deye.get_register_by_type_and_address(HOLDING, 500)
        code, text = register.parse_configurations

        assert process_value(code, 2, b"\x00\x02").value == 2
        assert process_value(text, 2, b"\x00\x02").value == "Normal"

    def test_battery_power_is_signed(self, deye) -> None:
        """Test that discharge power is negative."""
        register = deye.get_register_by_type_and_address(HOLDING, 590)
        result = process_value(register.parse_configurations[0], -150, b"\xff\x6a")

        assert result.valid
        assert result.value == -1500


class TestPowerActions:
    """Tests for power limit actions."""

    @pytest.mark.asyncio
    async def test_set_max_solar_power(self, deye, deye_transport) -> None:
        """Test writing the solar power limit."""
        await deye.set_max_solar_power(_LOG, {"value": 5000}, deye_transport)
        assert deye_transport.writes == [(340, [5000])]

    @pytest.mark.asyncio
    async def test_set_max_solar_power_out_of_range(self, deye, deye_transport) -> None:
        """Test that out-of-range values are not written."""
        log = MagicMock()
        await deye.set_max_solar_power(log, {"value": 900}, deye_transport)

        assert deye_transport.writes == []
        log.error.assert_called_once()

    @pytest.mark.asyncio
    async def test_set_max_sell_power(self, deye, deye_transport) -> None:
        """Test writing the sell power limit."""
        await deye.set_max_sell_power(_LOG, {"value": "12000"}, deye_transport)
        assert deye_transport.writes == [(143, [12000])]

    @pytest.mark.asyncio
    @pytest.mark.parametrize(("enabled", "expected"), [(True, 1), ("false", 0), ("true", 1)])
    async def test_set_solar_sell(self, deye, deye_transport, enabled, expected) -> None:
        """Test toggling solar selling."""
        await deye.set_solar_sell(_LOG, {"enabled": enabled}, deye_transport)
        assert deye_transport.writes == [(145, [expected])]

    @pytest.mark.asyncio
    async def test_write_value_to_register(self, deye, deye_transport) -> None:
        """Test the generic register write with inverse scaling."""
        await deye.write_value_to_register(
            _LOG, {"register_type": "holding", "address": 154, "value": 2500}, deye_transport
        )
        assert deye_transport.writes == [(154, [250])]


class TestModeActions:
    """Tests for energy pattern, work mode and peak shaving."""

    @pytest.mark.asyncio
    async def test_set_energy_pattern_load_first(self, deye, deye_transport) -> None:
        """Test setting bit 0 and keeping the rest."""
        deye_transport.memory[(HOLDING, 141)] = 0x0100

        await deye.set_energy_pattern(_LOG, {"value": "load_first"}, deye_transport)

        assert deye_transport.writes == [(141, [0x0101])]

    @pytest.mark.asyncio
    async def test_set_energy_pattern_batt_first(self, deye, deye_transport) -> None:
        """Test clearing bit 0."""
        deye_transport.memory[(HOLDING, 141)] = 0x0003

        await deye.set_energy_pattern(_LOG, {"value": "batt_first"}, deye_transport)

        assert deye_transport.writes == [(141, [0x0002])]

    @pytest.mark.asyncio
    async def test_set_energy_pattern_invalid(self, deye, deye_transport) -> None:
        """Test that unknown patterns are ignored."""
        await deye.set_energy_pattern(_LOG, {"value": "grid_first"}, deye_transport)
        assert deye_transport.writes == []

    @pytest.mark.asyncio
    async def test_set_work_mode_and_zero_export_power(self, deye, deye_transport) -> None:
        """Test writing work mode then export power."""
        await deye.set_work_mode_and_zero_export_power(
            _LOG, {"workmode": "zero_export_to_ct", "value": 50}, deye_transport
        )
        assert deye_transport.writes == [(142, [2]), (104, [50])]

    @pytest.mark.asyncio
    async def test_set_work_mode_invalid(self, deye, deye_transport) -> None:
        """Test that an unknown work mode writes nothing."""
        await deye.set_work_mode_and_zero_export_power(
            _LOG, {"workmode": "island", "value": 50}, deye_transport
        )
        assert deye_transport.writes == []

    @pytest.mark.asyncio
    async def test_set_grid_peak_shaving_on(self, deye, deye_transport) -> None:
        """Test setting mode bits 4-5 to 0b11 and then the power."""
        deye_transport.memory[(HOLDING, 178)] = 0x0001

        await deye.set_grid_peak_shaving_on(_LOG, {"value": 5000}, deye_transport)

        assert deye_transport.writes == [(178, [0x0031]), (191, [5000])]

    @pytest.mark.asyncio
    async def test_set_grid_peak_shaving_off(self, deye, deye_transport) -> None:
        """Test setting mode bits 4-5 to 0b10."""
        deye_transport.memory[(HOLDING, 178)] = 0x0031

        await deye.set_grid_peak_shaving_off(_LOG, {}, deye_transport)

        assert deye_transport.writes == [(178, [0x0021])]


class TestTimeOfUseActions:
    """Tests for the time-of-use schedule actions."""

    @pytest.mark.asyncio
    async def test_set_time_of_use_enabled(self, deye, deye_transport) -> None:
        """Test toggling bit 0 of the schedule register."""
        deye_transport.memory[(HOLDING, 146)] = 0x00FE

        await deye.set_time_of_use_enabled(_LOG, {"enabled": "true"}, deye_transport)

        assert deye_transport.writes == [(146, [0x00FF])]

    @pytest.mark.asyncio
    async def test_set_time_of_use_day_enabled(self, deye, deye_transport) -> None:
        """Test toggling the weekday bit."""
        await deye.set_time_of_use_day_enabled(
            _LOG, {"day": "3", "enabled": True}, deye_transport
        )
        assert deye_transport.writes == [(146, [0x0008])]

    @pytest.mark.asyncio
    async def test_set_time_of_use_day_invalid(self, deye, deye_transport) -> None:
        """Test that an invalid weekday writes nothing."""
        log = MagicMock()
        await deye.set_time_of_use_day_enabled(log, {"day": 8, "enabled": True}, deye_transport)

        assert deye_transport.writes == []
        log.error.assert_called_once()

    @pytest.mark.asyncio
    async def test_set_timeslot_parameters(self, deye, deye_transport, no_sleep) -> None:
        """Test programming one slot: charge, power, SOC, time."""
        sleep, uniform = no_sleep

        await deye.set_time_of_use_timeslot_parameters(
            _LOG,
            {
                "timeslot": 2,
                "time": "05:30",
                "gridcharge": True,
                "generatorcharge": "false",
                "powerlimit": 3000,
                "batterycharge": 80,
            },
            deye_transport,
        )

        assert deye_transport.writes == [
            (173, [1]),
            (155, [300]),
            (167, [80]),
            (149, [530]),
        ]
        uniform.assert_called_once_with(0, 0.6)
        assert [call.args[0] for call in sleep.await_args_list] == [0.3, 0.5, 0.5, 0.5]

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "override",
        [{"timeslot": 7}, {"powerlimit": 9000}, {"batterycharge": 101}],
    )
    async def test_set_timeslot_parameters_invalid(
        self, deye, deye_transport, no_sleep, override
    ) -> None:
        """Test that out-of-range arguments write nothing."""
        args = {
            "timeslot": 1,
            "time": "00:00",
            "gridcharge": False,
            "generatorcharge": False,
            "powerlimit": 1000,
            "batterycharge": 50,
        }
        args.update(override)

        await deye.set_time_of_use_timeslot_parameters(_LOG, args, deye_transport)

        assert deye_transport.writes == []

    @pytest.mark.asyncio
    async def test_set_timeslot_parameters_rejected(
        self, deye, deye_transport, no_sleep
    ) -> None:
        """Test that a rejected write aborts the action with an error."""
        deye_transport.write_error = TransportWriteError("illegal value")

        with pytest.raises(TransportWriteError, match="charge"):
            await deye.set_time_of_use_timeslot_parameters(
                _LOG,
                {
                    "timeslot": 1,
                    "time": "00:00",
                    "gridcharge": True,
                    "generatorcharge": True,
                    "powerlimit": 1000,
                    "batterycharge": 50,
                },
                deye_transport,
            )

    @pytest.mark.asyncio
    async def test_rejected_write_logged_through_call_action(
        self, deye, deye_transport, no_sleep
    ) -> None:
        """Test that call_action contains the action error."""
        deye_transport.write_error = TransportWriteError("illegal value")
        log = MagicMock()

        await deye.call_action(
            log,
            "set_time_of_use_timeslot_parameters",
            {
                "timeslot": 1,
                "time": "00:00",
                "gridcharge": True,
                "generatorcharge": True,
                "powerlimit": 1000,
                "batterycharge": 50,
            },
            deye_transport,
        )

        assert any("Error running action" in c.args[0] for c in log.error.call_args_list)

    @pytest.mark.asyncio
    async def test_set_all_timeslot_parameters(self, deye, deye_transport, no_sleep) -> None:
        """Test programming all six slots with three multi-register writes."""
        await deye.set_all_timeslot_parameters(
            _LOG,
            {
                "gridcharge": "true",
                "generatorcharge": "true",
                "powerlimit": 2000,
                "batterycharge": 90,
            },
            deye_transport,
        )

        assert deye_transport.writes == [
            (172, [3] * 6),
            (154, [200] * 6),
            (166, [90] * 6),
        ]
