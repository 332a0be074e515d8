"""
field_types.py - Primitive field type registry

Static metadata for every field kind a structure definition may use,
plus the decode rule for the fixed and variable-length primitives.

Usage:
    from field_types import DataType, size_of, decode_primitive

    size_of(DataType.UINT32)                               # 4
    decode_primitive(DataType.UINT16, b'\\x12\\x34', 'big')  # 0x1234
"""

import struct
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Union


class DataType(str, Enum):
    UINT8 = 'uint8'
    UINT16 = 'uint16'
    UINT32 = 'uint32'
    UINT64 = 'uint64'
    INT8 = 'int8'
    INT16 = 'int16'
    INT32 = 'int32'
    INT64 = 'int64'
    FLOAT32 = 'float32'
    FLOAT64 = 'float64'
    STRING = 'string'
    BYTES = 'bytes'
    STRUCT = 'struct'
    SCRIPT = 'script'


class Endianness(str, Enum):
    BIG = 'big'
    LITTLE = 'little'


@dataclass(frozen=True)
class TypeInfo:
    """Display name, fixed byte size (None when variable) and description."""
    name: str
    size: Optional[int]
    description: str


DATA_TYPES: Dict[DataType, TypeInfo] = {
    # Unsigned integers
    DataType.UINT8: TypeInfo('UInt8', 1, 'Unsigned 8-bit integer'),
    DataType.UINT16: TypeInfo('UInt16', 2, 'Unsigned 16-bit integer'),
    DataType.UINT32: TypeInfo('UInt32', 4, 'Unsigned 32-bit integer'),
    DataType.UINT64: TypeInfo('UInt64', 8, 'Unsigned 64-bit integer'),
    # Signed integers
    DataType.INT8: TypeInfo('Int8', 1, 'Signed 8-bit integer'),
    DataType.INT16: TypeInfo('Int16', 2, 'Signed 16-bit integer'),
    DataType.INT32: TypeInfo('Int32', 4, 'Signed 32-bit integer'),
    DataType.INT64: TypeInfo('Int64', 8, 'Signed 64-bit integer'),
    # IEEE-754
    DataType.FLOAT32: TypeInfo('Float32', 4, '32-bit floating point'),
    DataType.FLOAT64: TypeInfo('Float64', 8, '64-bit floating point'),
    # Variable length
    DataType.STRING: TypeInfo('String', None, 'String data'),
    DataType.BYTES: TypeInfo('Bytes', None, 'Raw byte data'),
    DataType.STRUCT: TypeInfo('Struct', None, 'Nested structure'),
    DataType.SCRIPT: TypeInfo('Script', None, 'Custom computed field'),
}

# kind -> signed flag
_INTEGER_TYPES = {
    DataType.UINT8: False, DataType.UINT16: False,
    DataType.UINT32: False, DataType.UINT64: False,
    DataType.INT8: True, DataType.INT16: True,
    DataType.INT32: True, DataType.INT64: True,
}

_FLOAT_FORMATS = {
    DataType.FLOAT32: 'f',
    DataType.FLOAT64: 'd',
}

# Kinds a structure editor offers as lengthRef/repeatRef sources
REFERENCE_TYPES = tuple(_INTEGER_TYPES)


def size_of(kind: Union[DataType, str]) -> Optional[int]:
    """Fixed byte size of a kind, or None for variable-length kinds."""
    return DATA_TYPES[DataType(kind)].size


def display_name(kind: Union[DataType, str]) -> str:
    return DATA_TYPES[DataType(kind)].name


def is_integer(kind: Union[DataType, str]) -> bool:
    return DataType(kind) in _INTEGER_TYPES


def format_hex(data: bytes) -> str:
    """Lowercase hex pairs separated by single spaces."""
    return ' '.join(f'{b:02x}' for b in data)


def decode_primitive(kind: Union[DataType, str], data: bytes,
                     endianness: Union[Endianness, str] = Endianness.BIG) -> Any:
    """
    Decode raw bytes as the given kind.

    Reads from offset 0 of ``data``. Fixed-size kinds raise ValueError when
    fewer bytes than the kind's size are supplied; extra bytes are ignored.
    ``struct`` (and ``script``, which never reaches here from the decoder)
    return the bytes unchanged.
    """
    kind = DataType(kind)
    byteorder = Endianness(endianness).value
    size = DATA_TYPES[kind].size

    if size is not None and len(data) < size:
        raise ValueError(f"Insufficient data: need {size} bytes, got {len(data)}")

    if kind in _INTEGER_TYPES:
        return int.from_bytes(data[:size], byteorder, signed=_INTEGER_TYPES[kind])

    if kind in _FLOAT_FORMATS:
        fmt = ('<' if byteorder == 'little' else '>') + _FLOAT_FORMATS[kind]
        return struct.unpack(fmt, data[:size])[0]

    if kind == DataType.STRING:
        return bytes(data).decode('utf-8', errors='replace')

    if kind == DataType.BYTES:
        return format_hex(data)

    return bytes(data)
