"""Record Encoder / Decoder.

Encoder: raw record (field name -> value) plus a FieldEncodingMap produces one
coordinate-encoded payload. Decoder: payload plus the SchemaRegistry produces
a structured record, as a flat list and grouped by model.

Example (dynamic protocol):
    encoder = RecordEncoder(build_field_encoding_map(registry, "crm.lead"), registry.protocol)
    encoded = encoder.encode({"id": 12345, "name": "Hospital Project", "partner_id": [201, "Acme Co"]})
    encoded.payload  # "344^6299*12345|344^6327*Hospital Project|78^956*201"
"""

from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

from pydantic import BaseModel, Field

from core.models.restrictions import FieldRestriction, RestrictionReason
from core.observability.logging import get_logger
from encoding.codec import decode_value, encode_value
from encoding.errors import EncodingMapError
from encoding.field_map import FieldEncodingMap, build_field_encoding_map
from encoding.protocols import EncodingProtocol
from schema_registry.registry import SchemaRegistry

logger = get_logger(__name__)


# =============================================================================
# Constants
# =============================================================================

RESTRICTED_SENTINEL = "Restricted_from_API"
RESTRICTED_ERROR_SENTINEL = "Restricted_odoo_error"
RESTRICTED_SENTINELS = frozenset({RESTRICTED_SENTINEL, RESTRICTED_ERROR_SENTINEL})
RESTRICTED_DISPLAY = "[API Restricted]"

UNKNOWN_TABLE = "unknown"

# Data point ids are offset by model so they never collide with schema point
# ids (which are plain field ids) or with records of another model.
DATA_POINT_MULTIPLIER = 10_000_000


def data_point_id(model_id: int, record_id: int) -> int:
    """Globally unique point id for one source record."""
    return model_id * DATA_POINT_MULTIPLIER + record_id


def sentinel_for(reason: Union[RestrictionReason, str, None]) -> str:
    """Marker written in place of a restricted field's value."""
    if reason is not None and RestrictionReason(reason) == RestrictionReason.COMPUTE_ERROR:
        return RESTRICTED_ERROR_SENTINEL
    return RESTRICTED_SENTINEL


RestrictionSet = Mapping[str, Union[FieldRestriction, RestrictionReason, str]]


def _restriction_reason(value) -> Optional[RestrictionReason]:
    if isinstance(value, FieldRestriction):
        return value.reason
    if value is None:
        return None
    return RestrictionReason(value)


# =============================================================================
# Encoder
# =============================================================================

class EncodedRecord(BaseModel):
    """One encoded source record."""
    source_record_id: Optional[int] = Field(None, description="Record id in the source system")
    owner_model: str = Field(..., description="Model the record belongs to")
    owner_model_id: Optional[int] = Field(None, description="Numeric model id")
    payload: str = Field(..., description="Coordinate-encoded record")
    segment_count: int = Field(0, description="Number of segments in payload")

    @property
    def point_id(self) -> Optional[int]:
        if self.owner_model_id is None or self.source_record_id is None:
            return None
        return data_point_id(self.owner_model_id, self.source_record_id)


class RecordEncoder:
    """Encodes raw records of one model against its FieldEncodingMap."""

    def __init__(self, encoding_map: FieldEncodingMap, protocol: EncodingProtocol):
        self.encoding_map = encoding_map
        self.protocol = protocol

    @classmethod
    def for_model(cls, registry: SchemaRegistry, model_name: str) -> "RecordEncoder":
        return cls(build_field_encoding_map(registry, model_name), registry.protocol)

    @property
    def model_name(self) -> str:
        return self.encoding_map.model_name

    def encode(
        self,
        record: Mapping[str, Any],
        restricted: Optional[RestrictionSet] = None,
        model_name: Optional[str] = None,
    ) -> EncodedRecord:
        """Encode one record.

        Fields absent from ``record`` are treated as not attempted and get no
        segment. Fields in ``restricted`` get a marker segment instead of
        their value.

        Args:
            record: Field name -> raw value
            restricted: Field name -> restriction for fields the source refused
            model_name: Model the caller believes the record belongs to

        Raises:
            EncodingMapError: If model_name does not match the encoding map
        """
        if model_name is not None and model_name != self.encoding_map.model_name:
            raise EncodingMapError(
                f"Encoding map is for '{self.encoding_map.model_name}', not '{model_name}'",
                model_name=model_name,
            )

        restricted = restricted or {}
        segments: List[str] = []

        for entry in self.encoding_map:
            if entry.field_name in restricted:
                sentinel = sentinel_for(_restriction_reason(restricted[entry.field_name]))
                segments.append(self.protocol.join_segment(entry.coordinate, sentinel))
                continue

            if entry.field_name not in record:
                continue

            encoded = encode_value(record[entry.field_name], entry.field_type, self.protocol)
            if encoded is None:
                continue
            segments.append(self.protocol.join_segment(entry.coordinate, encoded))

        record_id = record.get("id")
        if isinstance(record_id, bool) or not isinstance(record_id, int):
            record_id = None

        return EncodedRecord(
            source_record_id=record_id,
            owner_model=self.encoding_map.model_name,
            owner_model_id=self.encoding_map.model_id,
            payload=self.protocol.join_segments(segments),
            segment_count=len(segments),
        )

    def encode_batch(
        self,
        records: Iterable[Mapping[str, Any]],
        restricted: Optional[RestrictionSet] = None,
    ) -> List[EncodedRecord]:
        return [self.encode(record, restricted) for record in records]


# =============================================================================
# Decoder
# =============================================================================

class DecodedField(BaseModel):
    """One decoded segment."""
    coordinate: str
    raw_value: str = ""
    value: str = ""
    parsed_value: Any = None
    table: str = UNKNOWN_TABLE
    field: str = UNKNOWN_TABLE
    field_type: str = "char"
    known: bool = False
    restricted: bool = False
    referenced_by: List[str] = Field(default_factory=list, description="Owner fields that point here")
    owner_field: Optional[str] = Field(None, description="The owner field this segment was written for, when determinable")


class DecodedRecord(BaseModel):
    """A decoded payload, flat and grouped by model."""
    raw: str
    fields: List[DecodedField] = Field(default_factory=list)
    by_table: Dict[str, Dict[str, Any]] = Field(default_factory=dict)

    @property
    def unknown_fields(self) -> List[DecodedField]:
        return [f for f in self.fields if not f.known]

    @property
    def restricted_fields(self) -> List[DecodedField]:
        return [f for f in self.fields if f.restricted]

    def get(self, table: str, field: str, default: Any = None) -> Any:
        return self.by_table.get(table, {}).get(field, default)

    def owner_value(self, field_name: str, default: Any = None) -> Any:
        """Value of one of the owner model's many2one fields, by field name."""
        for decoded in self.fields:
            if decoded.owner_field == field_name:
                return decoded.parsed_value
        return default


class RecordDecoder:
    """Decodes payloads against a SchemaRegistry. Never raises on bad input."""

    def __init__(self, registry: SchemaRegistry):
        self.registry = registry
        self.protocol = registry.protocol

    def decode(self, payload: Optional[str], owner_model: Optional[str] = None) -> DecodedRecord:
        """Decode one payload.

        Args:
            payload: Coordinate-encoded record
            owner_model: Model that emitted the payload, when known; used to
                report which of its many2one fields a foreign identity
                coordinate stands for

        Returns:
            DecodedRecord; unresolvable segments are kept with table "unknown".
            A coordinate written more than once (two many2one fields with the
            same target) is grouped as a list of values in payload order.
        """
        payload = payload or ""
        fields: List[DecodedField] = []
        by_table: Dict[str, Dict[str, Any]] = {}
        repeated = set()

        for segment in self.protocol.split_segments(payload):
            decoded = self._decode_segment(segment, owner_model)
            fields.append(decoded)
            key = decoded.field if decoded.known else decoded.coordinate
            group = by_table.setdefault(decoded.table, {})
            if key not in group:
                group[key] = decoded.parsed_value
            elif (decoded.table, key) in repeated:
                group[key].append(decoded.parsed_value)
            else:
                group[key] = [group[key], decoded.parsed_value]
                repeated.add((decoded.table, key))

        self._assign_owner_fields(fields)
        return DecodedRecord(raw=payload, fields=fields, by_table=by_table)

    @staticmethod
    def _assign_owner_fields(fields: List[DecodedField]) -> None:
        # Segments follow encoding-map order, so when every candidate field
        # wrote a segment the n-th repeat belongs to the n-th candidate. With
        # fewer segments than candidates the owner cannot be told apart.
        by_coordinate: Dict[str, List[DecodedField]] = {}
        for decoded in fields:
            if decoded.referenced_by:
                by_coordinate.setdefault(decoded.coordinate, []).append(decoded)

        for segments in by_coordinate.values():
            candidates = segments[0].referenced_by
            if len(segments) == len(candidates):
                for decoded, name in zip(segments, candidates):
                    decoded.owner_field = name
            else:
                logger.debug(
                    f"{len(segments)} segments at {segments[0].coordinate} for "
                    f"{len(candidates)} candidate fields; owner fields left unassigned"
                )

    def _decode_segment(self, segment: str, owner_model: Optional[str]) -> DecodedField:
        coordinate, raw_value = self.protocol.split_segment(segment)

        if raw_value is None:
            logger.debug(f"Segment without value delimiter: {segment[:40]}")
            return DecodedField(coordinate=coordinate)

        value = self.protocol.unescape(raw_value)
        restricted = value in RESTRICTED_SENTINELS
        descriptor = self.registry.get(coordinate)

        if descriptor is None:
            return DecodedField(
                coordinate=coordinate,
                raw_value=raw_value,
                value=RESTRICTED_DISPLAY if restricted else value,
                parsed_value=RESTRICTED_DISPLAY if restricted else value,
                restricted=restricted,
            )

        if restricted:
            parsed: Any = RESTRICTED_DISPLAY
        else:
            parsed = decode_value(raw_value, descriptor.field_type, self.protocol)

        referenced_by: List[str] = []
        if owner_model and descriptor.is_identity and descriptor.owner_model != owner_model:
            referenced_by = [
                d.field_name for d in self.registry.referencing(descriptor.owner_model)
                if d.owner_model == owner_model
            ]

        return DecodedField(
            coordinate=coordinate,
            raw_value=raw_value,
            value=RESTRICTED_DISPLAY if restricted else value,
            parsed_value=parsed,
            table=descriptor.owner_model,
            field=descriptor.field_name,
            field_type=descriptor.field_type,
            known=True,
            restricted=restricted,
            referenced_by=referenced_by,
        )
