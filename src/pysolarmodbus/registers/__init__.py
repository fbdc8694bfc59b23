"""Register model, batch planner and value pipeline.

- models: ModbusRegister / ParseConfiguration and their enums
- batches: contiguous-address read planning
- converter: data-type directed decode/encode
- pipeline: calculate, validate and accept one sample
- bits: flag-register bit helpers
"""

from pysolarmodbus.registers.batches import batch_span, create_register_batches
from pysolarmodbus.registers.bits import (
    log_bits,
    read_bit,
    read_bit_be,
    write_bits_to_buffer,
    write_bits_to_buffer_be,
)
from pysolarmodbus.registers.converter import (
    DataConverter,
    bytes_from_words,
    default_value_converter,
    encode_value,
    length_for_data_type,
    words_from_bytes,
)
from pysolarmodbus.registers.models import (
    AccessMode,
    ModbusRegister,
    ParseConfiguration,
    RegisterDataType,
    RegisterOptions,
    RegisterType,
    Transformation,
    ValidationResult,
)
from pysolarmodbus.registers.pipeline import PipelineResult, process_value

__all__ = [
    # Model
    "AccessMode",
    "ModbusRegister",
    "ParseConfiguration",
    "RegisterDataType",
    "RegisterOptions",
    "RegisterType",
    "Transformation",
    "ValidationResult",
    # Planner
    "batch_span",
    "create_register_batches",
    # Conversion
    "DataConverter",
    "bytes_from_words",
    "default_value_converter",
    "encode_value",
    "length_for_data_type",
    "words_from_bytes",
    # Pipeline
    "PipelineResult",
    "process_value",
    # Bits
    "log_bits",
    "read_bit",
    "read_bit_be",
    "write_bits_to_buffer",
    "write_bits_to_buffer_be",
]
