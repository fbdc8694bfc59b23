"""Device repository: lookup over a fixed set of device catalogs."""

from __future__ import annotations

import logging
from collections.abc import Iterable

from pysolarmodbus.exceptions import ConfigurationError
from pysolarmodbus.registers import ModbusRegister, RegisterType

from .afore import AforeAFXKTH
from .deye import DeyeSunXKSG01HP3
from .growatt import GrowattTL3X, GrowattTLX
from .models import Brand, ModbusDevice

_LOGGER = logging.getLogger(__name__)


class DeviceRepository:
    """Immutable collection of device catalogs.

    Example:
        repository = default_repository()
        device = repository.get_device_by_id("growatt-tl")
    """

    def __init__(self, devices: Iterable[ModbusDevice]) -> None:
        """Initialize the repository.

        Args:
            devices: Device catalogs, in display order

        Raises:
            ConfigurationError: If two devices share an ID
        """
        self._devices = tuple(devices)

        seen: set[str] = set()
        for device in self._devices:
            if device.id in seen:
                raise ConfigurationError(f"Duplicate device id {device.id!r}")
            seen.add(device.id)

        _LOGGER.debug("Device repository loaded %d devices", len(self._devices))

    @property
    def devices(self) -> tuple[ModbusDevice, ...]:
        """Get all devices."""
        return self._devices

    def get_device_by_id(self, device_id: str) -> ModbusDevice | None:
        """Find a device by its unique ID."""
        for device in self._devices:
            if device.id == device_id:
                return device
        return None

    def get_devices_by_brand(self, brand: Brand) -> list[ModbusDevice]:
        """List the devices of one brand."""
        return [device for device in self._devices if device.brand == brand]

    def get_brands(self) -> list[Brand]:
        """List the brands present, in first-seen order."""
        return list(dict.fromkeys(device.brand for device in self._devices))

    def get_register_by_type_and_address(
        self,
        device: ModbusDevice,
        register_type: RegisterType,
        address: int,
    ) -> ModbusRegister | None:
        """Find a register of ``device`` by table and address."""
        return device.get_register_by_type_and_address(register_type, address)


def default_repository() -> DeviceRepository:
    """Build a repository of the bundled device catalogs.

    Every call returns fresh device instances, so each poller can own the
    last accepted values of its inverter.
    """
    return DeviceRepository(
        [
            AforeAFXKTH(),
            DeyeSunXKSG01HP3(),
            GrowattTLX(),
            GrowattTL3X(),
        ]
    )
