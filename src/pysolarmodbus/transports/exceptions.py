"""Transport-specific exceptions.

The poll engine reacts to the error *class*, so the split matters:

- :class:`TransportTimeoutError`: the request got no answer in time.  The
  link is kept; the device is only marked unavailable.
- :class:`TransportConnectionError`: the link is gone (socket closed, port not
  open).  The engine tears down and reconnects.
- :class:`TransportFramingError`: a Solarman frame was malformed or did not
  match the outstanding request.  The stream can no longer be trusted, so it
  is handled exactly like a lost link.
- :class:`TransportReadError` / :class:`TransportWriteError`: the device
  answered with an error; only the affected registers are skipped.

All transport exceptions inherit from
:class:`~pysolarmodbus.exceptions.SolarModbusError`.
"""

from __future__ import annotations

from pysolarmodbus.exceptions import SolarModbusError


class TransportError(SolarModbusError):
    """Base exception for all transport errors."""

    pass


class TransportConnectionError(TransportError):
    """The link to the device is not open or was lost."""

    pass


class TransportFramingError(TransportConnectionError):
    """Malformed or unmatched Solarman V5 frame."""

    pass


class TransportTimeoutError(TransportError):
    """Request round-trip exceeded its deadline."""

    pass


class TransportReadError(TransportError):
    """Failed to read data from device."""

    pass


class TransportWriteError(TransportError):
    """Failed to write data to device."""

    pass
