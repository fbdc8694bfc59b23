"""Device connection configuration.

This module provides the DeviceConfig dataclass describing how to reach one
inverter, supporting validation and serialization to/from dictionaries so
hosts can persist it with their device settings.

Example:
    # Plain Modbus TCP
    config = DeviceConfig(host="192.168.1.100", device_id="growatt-mic-tl-x")
    config.validate()

    # Through a Solarman data logger
    config = DeviceConfig(
        host="192.168.1.50",
        device_id="deye-sun-xk-sg01hp3",
        solarman=True,
        serial="2712345678",
    )

    data = config.to_dict()
    restored = DeviceConfig.from_dict(data)
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from pysolarmodbus.constants import (
    DEFAULT_MODBUS_PORT,
    DEFAULT_MODBUS_TIMEOUT,
    DEFAULT_SOLARMAN_PORT,
    DEFAULT_SOLARMAN_TIMEOUT,
    DEFAULT_UNIT_ID,
    DEFAULT_UPDATE_INTERVAL,
)


@dataclass
class DeviceConfig:
    """Configuration for a single device connection.

    Attributes:
        host: IP address or hostname of the inverter, gateway or logger
        device_id: Catalog ID of the device model
        port: TCP port (None = 502 for Modbus, 8899 for Solarman)
        unit_id: Modbus unit ID (default 1)
        update_interval: Poll interval in seconds (default 10)
        solarman: Connect through a Solarman V5 data logger
        serial: Data logger serial number, required when ``solarman`` is set
        timeout: Request timeout in seconds (None = transport default)
    """

    host: str
    device_id: str = ""
    port: int | None = None
    unit_id: int = DEFAULT_UNIT_ID
    update_interval: float = DEFAULT_UPDATE_INTERVAL
    solarman: bool = False
    serial: str | None = None
    timeout: float | None = None

    @property
    def resolved_port(self) -> int:
        """Get the port to connect to, falling back to the protocol default."""
        if self.port is not None:
            return self.port
        return DEFAULT_SOLARMAN_PORT if self.solarman else DEFAULT_MODBUS_PORT

    @property
    def resolved_timeout(self) -> float:
        """Get the request timeout, falling back to the protocol default."""
        if self.timeout is not None:
            return self.timeout
        return DEFAULT_SOLARMAN_TIMEOUT if self.solarman else DEFAULT_MODBUS_TIMEOUT

    @property
    def logger_serial(self) -> int:
        """Get the data logger serial as the integer carried in V5 frames.

        Raises:
            ValueError: If no serial is configured or it is not numeric
        """
        if not self.serial:
            raise ValueError("serial required for Solarman connections")
        return int(self.serial)

    def validate(self) -> None:
        """Validate configuration completeness.

        Raises:
            ValueError: If configuration is invalid
        """
        if not self.host:
            raise ValueError("host is required")

        if self.port is not None and not 0 < self.port < 65536:
            raise ValueError(f"port must be between 1 and 65535, got {self.port}")

        if not 0 <= self.unit_id <= 247:
            raise ValueError(f"unit_id must be between 0 and 247, got {self.unit_id}")

        if self.update_interval <= 0:
            raise ValueError("update_interval must be positive")

        if self.timeout is not None and self.timeout <= 0:
            raise ValueError("timeout must be positive")

        if self.solarman:
            if not self.serial:
                raise ValueError("serial required for Solarman connections")
            if not self.serial.isdigit() or int(self.serial) > 0xFFFFFFFF:
                raise ValueError("serial must be the numeric logger serial (up to 10 digits)")

    def to_dict(self) -> dict[str, Any]:
        """Convert configuration to dictionary for serialization.

        Returns:
            Dictionary with all configuration values, suitable for JSON
            serialization.
        """
        return {
            "host": self.host,
            "device_id": self.device_id,
            "port": self.port,
            "unit_id": self.unit_id,
            "update_interval": self.update_interval,
            "solarman": self.solarman,
            "serial": self.serial,
            "timeout": self.timeout,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DeviceConfig:
        """Create configuration from dictionary.

        Args:
            data: Dictionary with configuration values (from to_dict() or
                host storage)

        Returns:
            DeviceConfig instance with values from dictionary
        """
        serial = data.get("serial")

        return cls(
            host=data.get("host", ""),
            device_id=data.get("device_id", ""),
            port=data.get("port"),
            unit_id=data.get("unit_id", DEFAULT_UNIT_ID),
            update_interval=data.get("update_interval", DEFAULT_UPDATE_INTERVAL),
            solarman=bool(data.get("solarman", False)),
            serial=str(serial) if serial not in (None, "") else None,
            timeout=data.get("timeout"),
        )


__all__ = ["DeviceConfig"]
