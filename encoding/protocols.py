"""Wire protocol strategies for coordinate-encoded records.

Three incompatible wire formats share one engine. Each format is an
``EncodingProtocol`` instance selected at construction time; codec, encoder
and decoder never branch on the protocol version themselves.

- Letter-prefixed:       ``O_1*Hospital Project|C_2*201``
- Numeric table^column:  ``1^1*Hospital Project|2^2*201``
- Dynamic model^field:   ``344^6327*Hospital Project|78^956*201``
"""

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Tuple


FIELD_DELIMITER = "|"
VALUE_DELIMITER = "*"
COORDINATE_DELIMITER = "^"
ESCAPE_CHAR = "\\"


class ProtocolVersion(str, Enum):
    """Supported wire format versions."""
    LETTER = "letter"
    NUMERIC = "numeric"
    DYNAMIC = "dynamic"


@dataclass(frozen=True)
class ParsedCoordinate:
    """A coordinate split into its table part and column part.

    For the letter protocol ``table`` is the letter prefix ("O", "ST").
    For the numeric protocol it is the table number, for the dynamic protocol
    the model id.
    """
    table: str
    column: str

    @property
    def table_number(self) -> Optional[int]:
        return int(self.table) if self.table.isdigit() else None

    @property
    def column_number(self) -> Optional[int]:
        return int(self.column) if self.column.isdigit() else None


class EncodingProtocol(ABC):
    """Delimiters, escape set, value formatting knobs and coordinate grammar."""

    version: ProtocolVersion
    field_delimiter: str = FIELD_DELIMITER
    value_delimiter: str = VALUE_DELIMITER
    coordinate_delimiter: Optional[str] = None

    true_literal: str = "TRUE"
    false_literal: str = "FALSE"

    # None keeps floats lossless; an int rounds to that many decimals
    float_precision: Optional[int] = None

    # Whether a fetched-but-empty string emits ``coordinate*`` or is omitted
    emit_empty_strings: bool = False

    # Whether text values are trimmed before encoding
    strip_text: bool = False

    @property
    def escape_set(self) -> Tuple[str, ...]:
        """Structural characters in escaping order (backslash always first)."""
        chars = [ESCAPE_CHAR, self.field_delimiter, self.value_delimiter]
        if self.coordinate_delimiter:
            chars.append(self.coordinate_delimiter)
        return tuple(chars)

    # -------------------------------------------------------------------------
    # Escaping
    # -------------------------------------------------------------------------

    def escape(self, text: str) -> str:
        """Backslash-escape every structural character, backslash first."""
        for char in self.escape_set:
            text = text.replace(char, ESCAPE_CHAR + char)
        return text

    def unescape(self, text: str) -> str:
        """Undo ``escape``: structural characters in reverse order, backslash last."""
        for char in reversed(self.escape_set):
            text = text.replace(ESCAPE_CHAR + char, char)
        return text

    # -------------------------------------------------------------------------
    # Splitting
    # -------------------------------------------------------------------------

    def _split_unescaped(self, text: str, delimiter: str, maxsplit: int = -1) -> List[str]:
        parts: List[str] = []
        current: List[str] = []
        i = 0
        length = len(text)
        while i < length:
            char = text[i]
            if char == ESCAPE_CHAR and i + 1 < length:
                current.append(char)
                current.append(text[i + 1])
                i += 2
                continue
            if char == delimiter and (maxsplit < 0 or len(parts) < maxsplit):
                parts.append("".join(current))
                current = []
            else:
                current.append(char)
            i += 1
        parts.append("".join(current))
        return parts

    def split_segments(self, payload: str) -> List[str]:
        """Split a payload on unescaped field delimiters, dropping empty pieces."""
        if not payload:
            return []
        return [s for s in self._split_unescaped(payload, self.field_delimiter) if s]

    def split_segment(self, segment: str) -> Tuple[str, Optional[str]]:
        """Split one segment at its first unescaped value delimiter.

        Returns:
            (coordinate, raw_value); raw_value is None when the segment has no
            value delimiter at all.
        """
        parts = self._split_unescaped(segment, self.value_delimiter, maxsplit=1)
        if len(parts) == 1:
            return parts[0], None
        return parts[0], parts[1]

    def join_segment(self, coordinate: str, encoded_value: str) -> str:
        return f"{coordinate}{self.value_delimiter}{encoded_value}"

    def join_segments(self, segments: List[str]) -> str:
        return self.field_delimiter.join(segments)

    # -------------------------------------------------------------------------
    # Coordinates
    # -------------------------------------------------------------------------

    @abstractmethod
    def parse_coordinate(self, text: str) -> Optional[ParsedCoordinate]:
        """Parse a coordinate; None when the text is not valid for this protocol."""

    @abstractmethod
    def format_coordinate(self, table, column) -> str:
        """Build a coordinate from its table and column parts."""

    def coordinate_of(self, descriptor) -> str:
        """Coordinate under which a field descriptor's values are written."""
        return descriptor.coordinate

    def is_coordinate(self, text: str) -> bool:
        return self.parse_coordinate(text) is not None

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


class LetterProtocol(EncodingProtocol):
    """``LETTERS_DIGITS`` coordinates from a fixed table (``O_1``, ``ST_2``)."""

    version = ProtocolVersion.LETTER
    true_literal = "true"
    false_literal = "false"
    float_precision = 2
    strip_text = True

    _pattern = re.compile(r"^([A-Z]+)_(\d+)$")

    def parse_coordinate(self, text: str) -> Optional[ParsedCoordinate]:
        match = self._pattern.match(text)
        if not match:
            return None
        return ParsedCoordinate(table=match.group(1), column=match.group(2))

    def format_coordinate(self, table, column) -> str:
        return f"{table}_{column}"


class NumericProtocol(EncodingProtocol):
    """``table^column`` coordinates from a fixed numeric table (``1^10``)."""

    version = ProtocolVersion.NUMERIC
    coordinate_delimiter = COORDINATE_DELIMITER

    _pattern = re.compile(r"^(\d+)\^(\d+)$")

    def parse_coordinate(self, text: str) -> Optional[ParsedCoordinate]:
        match = self._pattern.match(text)
        if not match:
            return None
        return ParsedCoordinate(table=match.group(1), column=match.group(2))

    def format_coordinate(self, table, column) -> str:
        return f"{int(table)}{self.coordinate_delimiter}{int(column)}"


class DynamicProtocol(NumericProtocol):
    """``model_id^field_id`` coordinates sourced from a live schema registry.

    A fetched field whose value is an empty string is written as
    ``coordinate*`` so that "fetched and empty" stays distinguishable from
    "not attempted".
    """

    version = ProtocolVersion.DYNAMIC
    emit_empty_strings = True

    def coordinate_of(self, descriptor) -> str:
        if descriptor.model_id is not None and descriptor.field_id is not None:
            return self.format_coordinate(descriptor.model_id, descriptor.field_id)
        return descriptor.coordinate


def get_protocol(version) -> EncodingProtocol:
    """Build the protocol strategy for a version name or enum member.

    Raises:
        ValueError: If the version is unknown
    """
    version = ProtocolVersion(version)
    if version == ProtocolVersion.LETTER:
        return LetterProtocol()
    if version == ProtocolVersion.NUMERIC:
        return NumericProtocol()
    return DynamicProtocol()
