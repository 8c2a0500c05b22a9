"""Coordinate encoding - wire protocols and the value codec.

The schema-aware layers live in submodules that depend on the schema
registry and are imported by path:

- ``encoding.field_map``: field encoding map builder and validation
- ``encoding.records``: record encoder and decoder
"""

from encoding.errors import EncodingError, EncodingMapError, SchemaValidationError
from encoding.protocols import (
    EncodingProtocol,
    LetterProtocol,
    NumericProtocol,
    DynamicProtocol,
    ParsedCoordinate,
    ProtocolVersion,
    get_protocol,
)
from encoding.codec import FieldType, encode_value, decode_value

__all__ = [
    "EncodingError",
    "EncodingMapError",
    "SchemaValidationError",
    "EncodingProtocol",
    "LetterProtocol",
    "NumericProtocol",
    "DynamicProtocol",
    "ParsedCoordinate",
    "ProtocolVersion",
    "get_protocol",
    "FieldType",
    "encode_value",
    "decode_value",
]
