"""Protocol and timing defaults for pysolarmodbus."""

from __future__ import annotations

# =============================================================================
# CONNECTION DEFAULTS
# =============================================================================

DEFAULT_MODBUS_PORT = 502
DEFAULT_SOLARMAN_PORT = 8899
DEFAULT_UNIT_ID = 1

# Request round-trip deadline for plain Modbus TCP
DEFAULT_MODBUS_TIMEOUT = 1.0

# Data-logging sticks relay over RS485
DEFAULT_SOLARMAN_TIMEOUT = 5.0

CONNECT_TIMEOUT = 5.0

# =============================================================================
# POLLING
# =============================================================================

DEFAULT_UPDATE_INTERVAL = 10.0  # seconds
MIN_UPDATE_INTERVAL = 2.0  # seconds, lower bound for a reachable device
UNREACHABLE_RETRY_INTERVAL = 60.0  # seconds, poll cadence for an unreachable device
RECONNECT_RETRY_INTERVAL = 60.0  # seconds, fixed (not exponential)
STALE_DATA_THRESHOLD = 120.0  # seconds without a valid value before going unavailable

# =============================================================================
# DEVICE ACTIONS
# =============================================================================

# Pause between consecutive writes of a multi-register action.
ACTION_WRITE_DELAY = 0.5  # seconds

# Upper bound of the random stagger applied before timeslot writes
ACTION_STAGGER_MAX = 0.6  # seconds

# =============================================================================
# MODBUS
# =============================================================================

MODBUS_READ_HOLDING = 0x03
MODBUS_READ_INPUT = 0x04
MODBUS_WRITE_SINGLE = 0x06
MODBUS_WRITE_MULTI = 0x10
MODBUS_EXCEPTION_FLAG = 0x80
