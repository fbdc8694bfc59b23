"""Calculate, validate and accept one sample for a parse configuration."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from .models import ParseConfiguration

_LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class PipelineResult:
    """Outcome of :func:`process_value`.

    Attributes:
        value: Calculated capability value (None when nothing could be calculated)
        valid: True when the value passed validation and was accepted
        message: Rejection reason for invalid values
    """

    value: Any
    valid: bool
    message: str | None = None


def process_value(
    parse_configuration: ParseConfiguration,
    value: Any,
    buffer: bytes,
    log: logging.Logger = _LOGGER,
) -> PipelineResult:
    """Run a decoded value through calculation and validation.

    Only a valid result is recorded as the configuration's current value, so
    a rejected spike never becomes the baseline for the next delta check.
    """
    result = parse_configuration.calculate_value(value, buffer, log)
    if result is None:
        return PipelineResult(value=None, valid=False, message="No value")

    validation = parse_configuration.validate_value(result, log)
    if not validation.valid:
        return PipelineResult(value=result, valid=False, message=validation.message)

    parse_configuration.accept(result)
    return PipelineResult(value=result, valid=True)
