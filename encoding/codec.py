"""Value codec: one typed value to one wire value, and back.

Encoding returns ``None`` when the segment must be omitted (the field was not
set). Decoding is total and never raises.
"""

import math
from enum import Enum
from typing import Any, List, Optional, Union

from encoding.protocols import EncodingProtocol


class FieldType(str, Enum):
    """Source field types understood by the codec."""
    CHAR = "char"
    TEXT = "text"
    HTML = "html"
    INTEGER = "integer"
    FLOAT = "float"
    MONETARY = "monetary"
    BOOLEAN = "boolean"
    DATE = "date"
    DATETIME = "datetime"
    SELECTION = "selection"
    MANY2ONE = "many2one"
    ONE2MANY = "one2many"
    MANY2MANY = "many2many"
    BINARY = "binary"

    @classmethod
    def parse(cls, value: str) -> Optional["FieldType"]:
        """Case-insensitive lookup; None for types the codec does not know."""
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return None


RELATIONAL_TYPES = frozenset({FieldType.MANY2ONE, FieldType.ONE2MANY, FieldType.MANY2MANY})
TO_MANY_TYPES = frozenset({FieldType.ONE2MANY, FieldType.MANY2MANY})
INTEGER_TYPES = frozenset({FieldType.INTEGER})
FLOAT_TYPES = frozenset({FieldType.FLOAT, FieldType.MONETARY})

BINARY_MARKER = "[binary]"
EMPTY_LIST = "[]"


def _coerce_type(field_type: Union[FieldType, str]) -> Optional[FieldType]:
    if isinstance(field_type, FieldType):
        return field_type
    return FieldType.parse(field_type)


def _format_number(value: Any, precision: Optional[int]) -> Optional[str]:
    if isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    if precision is not None:
        return f"{number:.{precision}f}"
    if isinstance(value, int):
        return str(value)
    if number.is_integer():
        return str(int(number))
    return repr(number)


def _relation_id(value: Any) -> Optional[int]:
    """Target id of a many2one value (``[id, display_name]`` or a bare id)."""
    if isinstance(value, (list, tuple)):
        if not value:
            return None
        value = value[0]
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().lstrip("-").isdigit():
        return int(value)
    return None


# =============================================================================
# Encoding
# =============================================================================

def encode_value(value: Any, field_type: Union[FieldType, str], protocol: EncodingProtocol) -> Optional[str]:
    """Encode one value into its wire form.

    Args:
        value: Raw value as returned by the source system
        field_type: Field type of the descriptor the value belongs to
        protocol: Wire protocol (literals, float precision, escape set)

    Returns:
        The escaped wire value, or None when the segment must be omitted
    """
    ftype = _coerce_type(field_type)

    # Boolean first: False is meaningful, and only True itself encodes as true
    if ftype == FieldType.BOOLEAN:
        return protocol.true_literal if value is True else protocol.false_literal

    if value is None or value is False:
        return None

    if ftype == FieldType.MANY2ONE:
        target_id = _relation_id(value)
        return str(target_id) if target_id is not None else None

    if ftype in TO_MANY_TYPES:
        if isinstance(value, (list, tuple)):
            return "[" + ",".join(str(v) for v in value) + "]"
        return None

    if ftype in INTEGER_TYPES:
        if isinstance(value, float) and value.is_integer():
            value = int(value)
        return _format_number(value, None)

    if ftype in FLOAT_TYPES:
        return _format_number(value, protocol.float_precision)

    if ftype == FieldType.BINARY:
        if not value:
            return "" if protocol.emit_empty_strings else None
        return BINARY_MARKER

    text = str(value)
    if protocol.strip_text:
        text = text.strip()
    if not text.strip():
        return "" if protocol.emit_empty_strings else None
    return protocol.escape(text)


# =============================================================================
# Decoding
# =============================================================================

def _parse_int(text: str) -> Union[int, float]:
    try:
        return int(text.strip())
    except ValueError:
        return math.nan


def _parse_float(text: str) -> float:
    try:
        return float(text.strip())
    except ValueError:
        return math.nan


def _parse_id_list(text: str) -> Union[List[int], str]:
    stripped = text.strip()
    if not (stripped.startswith("[") and stripped.endswith("]")):
        return text
    inner = stripped[1:-1].strip()
    if not inner:
        return []
    ids = []
    for piece in inner.split(","):
        piece = piece.strip()
        if not piece.lstrip("-").isdigit():
            return text
        ids.append(int(piece))
    return ids


def decode_value(raw_value: str, field_type: Union[FieldType, str], protocol: EncodingProtocol) -> Any:
    """Decode one wire value into a typed Python value.

    Malformed numbers decode to ``nan`` rather than raising. Unknown types pass
    through as the unescaped string.
    """
    text = protocol.unescape(raw_value or "")
    ftype = _coerce_type(field_type)

    if ftype in INTEGER_TYPES or ftype == FieldType.MANY2ONE:
        return _parse_int(text)
    if ftype in FLOAT_TYPES:
        return _parse_float(text)
    if ftype == FieldType.BOOLEAN:
        return text.strip().lower() == protocol.true_literal.lower()
    if ftype in TO_MANY_TYPES:
        return _parse_id_list(text)
    return text
