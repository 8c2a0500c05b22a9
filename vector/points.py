"""Vector point payloads.

Schema entries and data entries share one collection. Every payload carries
an explicit ``point_type`` tag and is parsed through a discriminated union,
never by probing which keys happen to be present.
"""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter

from encoding.records import EncodedRecord
from schema_registry.loader import build_semantic_text, format_schema_row
from schema_registry.models import FieldDescriptor


SCHEMA_POINT_TYPE = "schema"
DATA_POINT_TYPE = "data"


class SchemaEntry(BaseModel):
    """Payload of a schema point (one source field)."""
    point_type: Literal["schema"] = SCHEMA_POINT_TYPE
    coordinate: str
    model_id: Optional[int] = None
    field_id: Optional[int] = None
    model_name: str
    field_name: str
    field_label: str = ""
    field_type: str
    storage_location: str = ""
    stored: bool = True
    primary_reference: Optional[str] = None
    semantic_text: str = ""
    raw_encoded: str = ""


class DataEntry(BaseModel):
    """Payload of a data point (one encoded source record)."""
    point_type: Literal["data"] = DATA_POINT_TYPE
    record_id: Optional[int] = None
    model_name: str
    model_id: Optional[int] = None
    encoded_string: str
    field_count: int = 0
    sync_timestamp: datetime = Field(default_factory=datetime.utcnow)


PointPayload = Annotated[Union[SchemaEntry, DataEntry], Field(discriminator="point_type")]
_payload_adapter: TypeAdapter = TypeAdapter(PointPayload)


class VectorPoint(BaseModel):
    """A point ready for upsert."""
    id: int
    vector: List[float]
    payload: PointPayload


def parse_payload(data: Dict[str, Any]) -> Union[SchemaEntry, DataEntry]:
    """Parse a stored payload by its ``point_type`` tag.

    Raises:
        pydantic.ValidationError: If the tag is missing or unknown
    """
    return _payload_adapter.validate_python(data)


# =============================================================================
# Builders
# =============================================================================

def schema_point_id(descriptor: FieldDescriptor) -> int:
    """Schema points are keyed by field id.

    Raises:
        ValueError: If the descriptor has no numeric field id
    """
    if descriptor.field_id is None:
        raise ValueError(f"{descriptor.owner_model}.{descriptor.field_name} has no field id")
    return descriptor.field_id


def build_schema_entry(descriptor: FieldDescriptor) -> SchemaEntry:
    return SchemaEntry(
        coordinate=descriptor.coordinate,
        model_id=descriptor.model_id,
        field_id=descriptor.field_id,
        model_name=descriptor.owner_model,
        field_name=descriptor.field_name,
        field_label=descriptor.field_label,
        field_type=descriptor.field_type,
        storage_location=descriptor.storage_location,
        stored=descriptor.is_stored,
        primary_reference=descriptor.primary_reference,
        semantic_text=build_semantic_text(descriptor),
        raw_encoded=format_schema_row(descriptor) if descriptor.field_id is not None else "",
    )


def build_data_entry(record: EncodedRecord, sync_timestamp: Optional[datetime] = None) -> DataEntry:
    return DataEntry(
        record_id=record.source_record_id,
        model_name=record.owner_model,
        model_id=record.owner_model_id,
        encoded_string=record.payload,
        field_count=record.segment_count,
        sync_timestamp=sync_timestamp or datetime.utcnow(),
    )
