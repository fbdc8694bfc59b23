"""Exception hierarchy for pysolarmodbus.

All library errors inherit from :class:`SolarModbusError` so callers can use
a single ``except SolarModbusError`` to catch catalog, decode and transport
failures alike.  Transport errors live in
:mod:`pysolarmodbus.transports.exceptions`.
"""

from __future__ import annotations


class SolarModbusError(Exception):
    """Base exception for all pysolarmodbus errors."""

    pass


class ConfigurationError(SolarModbusError):
    """Programming or catalog error (bad register definition, bad lookup)."""

    pass


class AmbiguousConfigurationError(ConfigurationError):
    """Single-configuration helper called on a register with several configurations."""

    def __init__(self, address: int, count: int) -> None:
        """Initialize with register details.

        Args:
            address: Address of the register the helper was called on
            count: Number of parse configurations the register carries
        """
        self.address = address
        self.count = count
        super().__init__(
            f"Register {address} has {count} parse configurations; "
            "address them through parse_configurations instead"
        )


class RegisterNotFoundError(ConfigurationError):
    """No register with the requested type and address exists in the catalog."""

    pass


class EncodeError(SolarModbusError, ValueError):
    """A value does not fit the register it is being written to."""

    pass
