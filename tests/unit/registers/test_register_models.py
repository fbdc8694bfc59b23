"""Unit tests for ModbusRegister and ParseConfiguration."""

from __future__ import annotations

import logging
from unittest.mock import MagicMock

import pytest

from pysolarmodbus.exceptions import AmbiguousConfigurationError, ConfigurationError
from pysolarmodbus.registers import (
    AccessMode,
    ModbusRegister,
    ParseConfiguration,
    RegisterDataType,
    RegisterOptions,
    RegisterType,
)

_LOG = logging.getLogger(__name__)


class TestParseConfiguration:
    """Test construction rules and value calculation."""

    def test_scale_and_transformation_are_exclusive(self) -> None:
        with pytest.raises(ConfigurationError):
            ParseConfiguration(
                capability_id="measure_power",
                address=1,
                data_type=RegisterDataType.UINT16,
                scale=0.1,
                transformation=lambda value, buffer, log: value,
            )

    def test_zero_scale_rejected(self) -> None:
        with pytest.raises(ConfigurationError):
            ParseConfiguration(
                capability_id="measure_power",
                address=1,
                data_type=RegisterDataType.UINT16,
                scale=0,
            )

    def test_guid_is_unique_per_configuration(self) -> None:
        first = ParseConfiguration("a", 1, RegisterDataType.UINT16)
        second = ParseConfiguration("a", 1, RegisterDataType.UINT16)
        assert first.guid != second.guid

    def test_scale_with_decimals(self) -> None:
        config = ParseConfiguration(
            "measure_voltage", 3, RegisterDataType.UINT16, scale=0.1, decimals=2
        )
        assert config.calculate_value(2345, b"\x09\x29", _LOG) == 234.5

    def test_scale_non_numeric_returns_none(self) -> None:
        config = ParseConfiguration("measure_voltage", 3, RegisterDataType.UINT16, scale=0.1)
        assert config.calculate_value("abc", b"", _LOG) is None

    def test_transformation_receives_value_buffer_and_log(self) -> None:
        transform = MagicMock(return_value="Normal")
        config = ParseConfiguration(
            "status_code", 0, RegisterDataType.UINT16, transformation=transform
        )

        assert config.calculate_value(1, b"\x00\x01", _LOG) == "Normal"
        transform.assert_called_once_with(1, b"\x00\x01", _LOG)

    def test_pass_through(self) -> None:
        config = ParseConfiguration("serial", 23, RegisterDataType.STRING)
        assert config.calculate_value("AB12", b"AB12", _LOG) == "AB12"

    def test_current_value_starts_empty(self) -> None:
        config = ParseConfiguration("a", 1, RegisterDataType.UINT16)
        assert config.current_value is None
        config.accept(5)
        assert config.current_value == 5


class TestValidation:
    """Test bounds and delta checks."""

    def _config(self, **options: float) -> ParseConfiguration:
        return ParseConfiguration(
            "meter_power",
            53,
            RegisterDataType.UINT32,
            scale=0.1,
            options=RegisterOptions(**options),
        )

    def test_above_max(self) -> None:
        result = self._config(valid_value_max=100).validate_value(101, _LOG)
        assert not result.valid
        assert result.message == "Value is above defined max"

    def test_below_min(self) -> None:
        result = self._config(valid_value_min=0).validate_value(-1, _LOG)
        assert not result.valid
        assert result.message == "Value is below defined min"

    def test_bounds_are_inclusive(self) -> None:
        config = self._config(valid_value_min=0, valid_value_max=100)
        assert config.validate_value(0, _LOG).valid
        assert config.validate_value(100, _LOG).valid

    def test_delta_ignored_without_current_value(self) -> None:
        assert self._config(max_add_delta=1).validate_value(1000, _LOG).valid

    def test_add_delta(self) -> None:
        config = self._config(max_add_delta=10)
        config.accept(100)

        assert config.validate_value(110, _LOG).valid
        result = config.validate_value(111, _LOG)
        assert not result.valid
        assert result.message == "Add delta is above defined max"

    def test_zero_sub_delta_forbids_decrease(self) -> None:
        config = self._config(max_sub_delta=0)
        config.accept(100)

        assert config.validate_value(100, _LOG).valid
        result = config.validate_value(99.9, _LOG)
        assert not result.valid
        assert result.message == "Sub delta is above defined max"

    def test_scaled_non_number_invalid(self) -> None:
        result = self._config().validate_value("n/a", _LOG)
        assert not result.valid
        assert result.message == "Received value is not a number"

    def test_strings_always_valid(self) -> None:
        config = ParseConfiguration(
            "serial",
            23,
            RegisterDataType.STRING,
            options=RegisterOptions(valid_value_max=1),
        )
        assert config.validate_value("XYZ", _LOG).valid

    def test_transformed_values_always_valid(self) -> None:
        config = ParseConfiguration(
            "status",
            0,
            RegisterDataType.UINT16,
            transformation=lambda value, buffer, log: value,
            options=RegisterOptions(valid_value_max=1),
        )
        assert config.validate_value(99, _LOG).valid


class TestCalculatePayload:
    """Test conversion of engineering values back to raw register values."""

    def test_inverse_of_fractional_scale(self) -> None:
        config = ParseConfiguration("export_limit", 123, RegisterDataType.UINT16, scale=0.1)
        assert config.calculate_payload(50, _LOG) == 500

    def test_inverse_of_integer_scale(self) -> None:
        config = ParseConfiguration("slot_power", 154, RegisterDataType.UINT16, scale=10)
        assert config.calculate_payload(2000, _LOG) == 200

    def test_unscaled_passes_through(self) -> None:
        config = ParseConfiguration("on_off", 0, RegisterDataType.UINT16)
        assert config.calculate_payload(1, _LOG) == 1


class TestModbusRegister:
    """Test register builders and single-configuration helpers."""

    def test_scale_builder(self) -> None:
        register = ModbusRegister.scale(
            "measure_power", 1, 2, RegisterDataType.UINT32, 0.1, decimals=1
        )

        assert register.address == 1
        assert register.length == 2
        assert register.byte_length == 4
        assert register.end_address == 3
        assert register.access_mode == AccessMode.READ_ONLY
        assert register.register_type == RegisterType.INPUT
        assert len(register.parse_configurations) == 1
        assert register.parse_configurations[0].scale == 0.1
        assert register.parse_configurations[0].address == 1

    def test_builders_return_copies(self) -> None:
        base = ModbusRegister.default("status_code", 0, 1, RegisterDataType.UINT16)
        extended = base.add_transform("status_text", lambda value, buffer, log: str(value))

        assert len(base.parse_configurations) == 1
        assert len(extended.parse_configurations) == 2
        assert extended.parse_configurations[0] is base.parse_configurations[0]

    def test_configurations_keep_order(self) -> None:
        register = (
            ModbusRegister.default("a", 0, 1, RegisterDataType.UINT16)
            .add_scale("b", 0.1)
            .add_default("c")
        )
        assert [pc.capability_id for pc in register.parse_configurations] == ["a", "b", "c"]
        assert register.has_capability("b")
        assert not register.has_capability("d")

    def test_with_register_type_shares_configurations(self) -> None:
        register = ModbusRegister.default("on_off", 0, 1, RegisterDataType.UINT16)
        holding = register.with_register_type(RegisterType.HOLDING)

        assert holding.register_type == RegisterType.HOLDING
        assert holding.parse_configurations == register.parse_configurations

    def test_single_configuration_helpers(self) -> None:
        register = ModbusRegister.scale("a", 0, 1, RegisterDataType.UINT16, 10)
        assert register.calculate_value(3, b"\x00\x03", _LOG) == 30
        assert register.calculate_payload(30, _LOG) == 3

    def test_single_configuration_helpers_reject_multiple(self) -> None:
        register = ModbusRegister.default("a", 7, 1, RegisterDataType.UINT16).add_default("b")

        with pytest.raises(AmbiguousConfigurationError) as exc_info:
            register.calculate_value(1, b"\x00\x01", _LOG)

        assert exc_info.value.address == 7
        assert exc_info.value.count == 2

        with pytest.raises(AmbiguousConfigurationError):
            register.calculate_payload(1, _LOG)
