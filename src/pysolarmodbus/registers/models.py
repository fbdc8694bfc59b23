"""Register model: physical registers and their parse configurations.

A :class:`ModbusRegister` is an immutable description of one physical
register span on the inverter.  It owns an ordered tuple of
:class:`ParseConfiguration` objects, each mapping the register's decoded value
to one published capability (e.g. ``measure_power``).  Several configurations
on one register let a single word feed several capabilities, such as a status
word decomposed into individual flag bits.

The only state that changes after a catalog is built is
:attr:`ParseConfiguration.current_value`, the last value that passed
validation.  It is updated exclusively through :meth:`ParseConfiguration.accept`.

Example:
    register = ModbusRegister.scale(
        "measure_voltage_pv1", 3, 1, RegisterDataType.UINT16, 0.1,
        options=RegisterOptions(valid_value_min=0, valid_value_max=360),
        decimals=2,
    ).add_transform("status_text_pv1", lambda value, buffer, log: ...)
"""

from __future__ import annotations

import dataclasses
import logging
import math
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from pysolarmodbus.exceptions import AmbiguousConfigurationError, ConfigurationError

_LOGGER = logging.getLogger(__name__)

Transformation = Callable[[Any, bytes, logging.Logger], Any]


class RegisterDataType(str, Enum):
    """Wire layout of a register's value."""

    UINT8 = "uint8"
    UINT16 = "uint16"
    UINT32 = "uint32"
    INT16 = "int16"
    INT32 = "int32"
    FLOAT32 = "float32"
    STRING = "string"


class AccessMode(str, Enum):
    """Whether a register may be read, written, or both."""

    READ_ONLY = "read_only"
    READ_WRITE = "read_write"
    WRITE_ONLY = "write_only"


class RegisterType(str, Enum):
    """Modbus register table (function code 0x04 vs 0x03)."""

    INPUT = "input"
    HOLDING = "holding"


@dataclass(frozen=True)
class RegisterOptions:
    """Plausibility bounds applied before a value is published.

    Attributes:
        valid_value_min: Reject values below this bound.
        valid_value_max: Reject values above this bound.
        max_add_delta: Reject increases larger than this relative to the last
            accepted value (catches misread counter rollovers).
        max_sub_delta: Reject decreases larger than this relative to the last
            accepted value.  ``0`` forbids any decrease (monotonic counters).
    """

    valid_value_min: float | None = None
    valid_value_max: float | None = None
    max_add_delta: float | None = None
    max_sub_delta: float | None = None


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of :meth:`ParseConfiguration.validate_value`."""

    valid: bool
    message: str | None = None


def _to_number(value: Any) -> float | None:
    """Parse ``value`` as a float, returning None when it is not numeric."""
    if isinstance(value, bool):
        return float(value)
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(number):
        return None
    return number


@dataclass(eq=False)
class ParseConfiguration:
    """One rule mapping a register's decoded value to a capability value.

    At most one of ``scale`` and ``transformation`` is set.  With neither,
    the decoded value is published unchanged.
    """

    capability_id: str
    address: int
    data_type: RegisterDataType
    scale: float | None = None
    transformation: Transformation | None = None
    options: RegisterOptions = field(default_factory=RegisterOptions)
    decimals: int | None = None
    guid: str = field(default_factory=lambda: str(uuid.uuid4()))
    _current_value: Any = field(default=None, init=False, repr=False)

    def __post_init__(self) -> None:
        if self.scale is not None and self.transformation is not None:
            raise ConfigurationError(
                f"{self.capability_id}: scale and transformation are mutually exclusive"
            )
        if self.scale == 0:
            raise ConfigurationError(f"{self.capability_id}: scale must be non-zero")

    @property
    def current_value(self) -> Any:
        """Last value that passed validation, or None before the first one."""
        return self._current_value

    def accept(self, value: Any) -> None:
        """Record ``value`` as the last validated value for delta checks."""
        self._current_value = value

    def calculate_value(self, value: Any, buffer: bytes, log: logging.Logger) -> Any:
        """Convert a decoded register value into the capability value.

        Args:
            value: Value produced by the register's data-type decoder
            buffer: Raw register bytes the value was decoded from
            log: Logger handed to transformations

        Returns:
            The scaled, transformed or passed-through value.  None when a
            scaled configuration receives a non-numeric value.
        """
        if self.scale is not None:
            number = _to_number(value)
            if number is None:
                return None

            result = number * self.scale
            if self.decimals is not None:
                result = round(result, self.decimals)
            return result

        if self.transformation is not None:
            return self.transformation(value, buffer, log)

        return value

    def calculate_payload(self, value: Any, log: logging.Logger) -> Any:
        """Convert an engineering value back into a raw register value for writing."""
        number = _to_number(value)
        if self.scale is None or not number:
            return value

        result = round(number / self.scale, 6)
        if result.is_integer():
            return int(result)
        log.debug(
            "Payload %s for %s is not a whole register value",
            result,
            self.capability_id,
        )
        return result

    def validate_value(self, value: Any, log: logging.Logger) -> ValidationResult:
        """Check a calculated value against type rules, bounds and deltas."""
        if self.data_type == RegisterDataType.STRING or self.transformation is not None:
            return ValidationResult(valid=True)

        number = _to_number(value)
        if self.scale is not None and number is None:
            log.error("Received value is not a number: %r (register %d)", value, self.address)
            return ValidationResult(valid=False, message="Received value is not a number")

        if number is None:
            return ValidationResult(valid=True)

        options = self.options
        if options.valid_value_max is not None and number > options.valid_value_max:
            log.error(
                "Value is above defined max: %s > %s (%s)",
                value,
                options.valid_value_max,
                self.capability_id,
            )
            return ValidationResult(valid=False, message="Value is above defined max")

        if options.valid_value_min is not None and number < options.valid_value_min:
            log.error(
                "Value is below defined min: %s < %s (%s)",
                value,
                options.valid_value_min,
                self.capability_id,
            )
            return ValidationResult(valid=False, message="Value is below defined min")

        current = _to_number(self._current_value)
        if current is not None and options.max_add_delta is not None:
            if number - current > options.max_add_delta:
                return ValidationResult(valid=False, message="Add delta is above defined max")

        if current is not None and options.max_sub_delta is not None:
            if current - number > options.max_sub_delta:
                return ValidationResult(valid=False, message="Sub delta is above defined max")

        return ValidationResult(valid=True)


@dataclass(frozen=True)
class ModbusRegister:
    """Immutable description of one register span.

    Attributes:
        address: Register offset on the device.
        length: Number of 16-bit registers spanned (not bytes).
        data_type: Wire layout used to decode the span.
        access_mode: Read/write permission; WRITE_ONLY registers are never polled.
        register_type: INPUT (FC 0x04) or HOLDING (FC 0x03).
        parse_configurations: Ordered capability mappings.  The first one is
            used by the single-configuration helpers.
    """

    address: int
    length: int
    data_type: RegisterDataType
    access_mode: AccessMode = AccessMode.READ_ONLY
    register_type: RegisterType = RegisterType.INPUT
    parse_configurations: tuple[ParseConfiguration, ...] = ()

    @property
    def byte_length(self) -> int:
        """Number of bytes the register spans on the wire."""
        return self.length * 2

    @property
    def end_address(self) -> int:
        """First address after this register."""
        return self.address + self.length

    # ------------------------------------------------------------------
    # Builders
    # ------------------------------------------------------------------

    @classmethod
    def default(
        cls,
        capability_id: str,
        address: int,
        length: int,
        data_type: RegisterDataType,
        access_mode: AccessMode = AccessMode.READ_ONLY,
        options: RegisterOptions | None = None,
    ) -> ModbusRegister:
        """Create a register that publishes its decoded value unchanged."""
        return cls(address, length, data_type, access_mode).add_default(capability_id, options)

    @classmethod
    def scale(
        cls,
        capability_id: str,
        address: int,
        length: int,
        data_type: RegisterDataType,
        scale: float,
        access_mode: AccessMode = AccessMode.READ_ONLY,
        options: RegisterOptions | None = None,
        decimals: int | None = None,
    ) -> ModbusRegister:
        """Create a register whose value is multiplied by ``scale``."""
        return cls(address, length, data_type, access_mode).add_scale(
            capability_id, scale, options, decimals
        )

    @classmethod
    def transform(
        cls,
        capability_id: str,
        address: int,
        length: int,
        data_type: RegisterDataType,
        transformation: Transformation,
        access_mode: AccessMode = AccessMode.READ_ONLY,
        options: RegisterOptions | None = None,
    ) -> ModbusRegister:
        """Create a register whose value is computed by ``transformation``."""
        return cls(address, length, data_type, access_mode).add_transform(
            capability_id, transformation, options
        )

    def add_default(
        self,
        capability_id: str,
        options: RegisterOptions | None = None,
    ) -> ModbusRegister:
        """Return a copy with a pass-through configuration appended."""
        return self._with_configuration(capability_id, options=options)

    def add_scale(
        self,
        capability_id: str,
        scale: float,
        options: RegisterOptions | None = None,
        decimals: int | None = None,
    ) -> ModbusRegister:
        """Return a copy with a scaling configuration appended."""
        return self._with_configuration(
            capability_id, scale=scale, options=options, decimals=decimals
        )

    def add_transform(
        self,
        capability_id: str,
        transformation: Transformation,
        options: RegisterOptions | None = None,
    ) -> ModbusRegister:
        """Return a copy with a transformation configuration appended."""
        return self._with_configuration(
            capability_id, transformation=transformation, options=options
        )

    def _with_configuration(
        self,
        capability_id: str,
        *,
        scale: float | None = None,
        transformation: Transformation | None = None,
        options: RegisterOptions | None = None,
        decimals: int | None = None,
    ) -> ModbusRegister:
        configuration = ParseConfiguration(
            capability_id=capability_id,
            address=self.address,
            data_type=self.data_type,
            scale=scale,
            transformation=transformation,
            options=options or RegisterOptions(),
            decimals=decimals,
        )
        return dataclasses.replace(
            self, parse_configurations=(*self.parse_configurations, configuration)
        )

    def with_register_type(self, register_type: RegisterType) -> ModbusRegister:
        """Return a copy tagged with ``register_type``, sharing parse configurations."""
        return dataclasses.replace(self, register_type=register_type)

    # ------------------------------------------------------------------
    # Single-configuration helpers
    # ------------------------------------------------------------------

    def has_capability(self, capability_id: str) -> bool:
        """Check whether any configuration publishes ``capability_id``."""
        return any(pc.capability_id == capability_id for pc in self.parse_configurations)

    def _single_configuration(self) -> ParseConfiguration:
        if len(self.parse_configurations) != 1:
            raise AmbiguousConfigurationError(self.address, len(self.parse_configurations))
        return self.parse_configurations[0]

    def calculate_value(self, value: Any, buffer: bytes, log: logging.Logger) -> Any:
        """Calculate the capability value through the only configuration.

        Raises:
            AmbiguousConfigurationError: If the register does not carry exactly
                one parse configuration
        """
        return self._single_configuration().calculate_value(value, buffer, log)

    def calculate_payload(self, value: Any, log: logging.Logger) -> Any:
        """Calculate the raw write payload through the only configuration.

        Raises:
            AmbiguousConfigurationError: If the register does not carry exactly
                one parse configuration
        """
        return self._single_configuration().calculate_payload(value, log)
