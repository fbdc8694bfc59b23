"""Device catalogs for pysolarmodbus.

Each supported inverter model is a :class:`ModbusDevice` subclass describing
its input and holding registers and, where supported, control actions.
"""

from __future__ import annotations

from .afore import AforeAFXKTH
from .deye import DeyeSunXKSG01HP3
from .growatt import GrowattTL3X, GrowattTLX
from .models import Brand, DeviceAction, ModbusDevice
from .repository import DeviceRepository, default_repository

__all__ = [
    # Model
    "Brand",
    "DeviceAction",
    "ModbusDevice",
    # Repository
    "DeviceRepository",
    "default_repository",
    # Catalogs
    "AforeAFXKTH",
    "DeyeSunXKSG01HP3",
    "GrowattTLX",
    "GrowattTL3X",
]
