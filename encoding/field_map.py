"""Field Encoding Map Builder.

For one model, decides the coordinate every field is written under:

- many2one: the **target** model's identity coordinate (the coordinate its own
  ``id`` field uses), so that two records pointing at the same row produce
  identical sub-segments regardless of which model emitted them
- one2many / many2many: the owning model's own coordinate for the field
- native fields: the owning model's own coordinate
"""

from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Mapping, Optional

from pydantic import BaseModel, Field

from core.observability.logging import get_logger
from encoding.errors import EncodingMapError, SchemaValidationError
from schema_registry.models import EncodingMapPreview, FieldDescriptor
from schema_registry.registry import SchemaRegistry

logger = get_logger(__name__)

PREVIEW_ROWS = 20


@dataclass(frozen=True)
class FieldEncoding:
    """How one field of a model is written on the wire."""
    field_name: str
    coordinate: str
    field_type: str
    is_foreign_key: bool
    target_model: Optional[str]
    descriptor: FieldDescriptor


class FieldEncodingMap:
    """Ordered mapping of field name to FieldEncoding for one model."""

    def __init__(self, model_name: str, entries: List[FieldEncoding], model_id: Optional[int] = None):
        self.model_name = model_name
        self.model_id = model_id
        self._entries: Dict[str, FieldEncoding] = {}
        for entry in entries:
            self._entries.setdefault(entry.field_name, entry)

    def __getitem__(self, field_name: str) -> FieldEncoding:
        return self._entries[field_name]

    def __contains__(self, field_name: object) -> bool:
        return field_name in self._entries

    def __iter__(self) -> Iterator[FieldEncoding]:
        return iter(self._entries.values())

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, field_name: str) -> Optional[FieldEncoding]:
        return self._entries.get(field_name)

    def field_names(self) -> List[str]:
        return list(self._entries.keys())

    def __repr__(self) -> str:
        return f"FieldEncodingMap(model={self.model_name!r}, fields={len(self)})"


# =============================================================================
# Builder
# =============================================================================

def resolve_identity_coordinate(registry: SchemaRegistry, descriptor: FieldDescriptor) -> str:
    """Coordinate a many2one field is written under.

    Resolution order: the target model's ``id`` field in the registry, then
    the descriptor's declared reference coordinate.

    Raises:
        EncodingMapError: If neither resolves
    """
    target = descriptor.foreign_key_target_model
    if target:
        coordinate = registry.identity_coordinate(target)
        if coordinate:
            return coordinate

    reference = descriptor.primary_reference
    if reference:
        parsed = registry.protocol.parse_coordinate(reference)
        if parsed is not None:
            return registry.protocol.format_coordinate(parsed.table, parsed.column)

    raise EncodingMapError(
        f"Cannot resolve identity coordinate of '{target or '?'}' for "
        f"{descriptor.owner_model}.{descriptor.field_name}",
        model_name=descriptor.owner_model,
        field_name=descriptor.field_name,
    )


def build_field_encoding_map(registry: SchemaRegistry, model_name: str) -> FieldEncodingMap:
    """Build the encoding map for every field of a model.

    Args:
        registry: Loaded schema registry
        model_name: Technical model name (e.g. "crm.lead")

    Returns:
        FieldEncodingMap in registry order

    Raises:
        EncodingMapError: If the model has no fields or a many2one target
            cannot be resolved
    """
    descriptors = registry.by_model(model_name)
    if not descriptors:
        raise EncodingMapError(f"No fields found for model '{model_name}'", model_name=model_name)

    protocol = registry.protocol
    entries = []
    for descriptor in descriptors:
        if descriptor.is_to_one:
            coordinate = resolve_identity_coordinate(registry, descriptor)
        else:
            coordinate = protocol.coordinate_of(descriptor)

        entries.append(FieldEncoding(
            field_name=descriptor.field_name,
            coordinate=coordinate,
            field_type=descriptor.field_type,
            is_foreign_key=descriptor.is_foreign_key,
            target_model=descriptor.foreign_key_target_model,
            descriptor=descriptor,
        ))

    identity = registry.identity_field(model_name)
    model_id = identity.model_id if identity is not None else descriptors[0].model_id

    encoding_map = FieldEncodingMap(model_name, entries, model_id=model_id)
    logger.debug(f"Built encoding map for {model_name}: {len(encoding_map)} fields")
    return encoding_map


def preview_encoding_map(encoding_map: FieldEncodingMap, limit: int = PREVIEW_ROWS) -> EncodingMapPreview:
    """First ``limit`` rows of an encoding map, for display."""
    rows = [
        {
            "field_name": entry.field_name,
            "coordinate": entry.coordinate,
            "field_type": entry.field_type,
        }
        for entry in list(encoding_map)[:limit]
    ]
    return EncodingMapPreview(
        model_name=encoding_map.model_name,
        field_count=len(encoding_map),
        rows=rows,
    )


# =============================================================================
# Validation
# =============================================================================

class AlignmentReport(BaseModel):
    """Comparison of a fetched sample record against an encoding map."""
    valid: bool
    matched_fields: int = 0
    missing_in_schema: List[str] = Field(default_factory=list, description="Fetched fields the schema does not document")
    missing_in_source: List[str] = Field(default_factory=list, description="Schema fields absent from the sample")


def validate_schema_data_alignment(encoding_map: FieldEncodingMap, sample_record: Mapping[str, Any]) -> AlignmentReport:
    """Check every field of a fetched record exists in the encoding map.

    A report is invalid as soon as one fetched field is undocumented; fields
    the schema has but the sample lacks are reported but do not invalidate it.
    """
    record_fields = list(sample_record.keys())
    missing_in_schema = [name for name in record_fields if name not in encoding_map]
    missing_in_source = [name for name in encoding_map.field_names() if name not in sample_record]
    matched = len(record_fields) - len(missing_in_schema)

    if missing_in_schema:
        logger.warning(
            f"{len(missing_in_schema)} fetched fields of {encoding_map.model_name} are not in the schema: "
            f"{', '.join(missing_in_schema[:10])}"
        )

    return AlignmentReport(
        valid=not missing_in_schema,
        matched_fields=matched,
        missing_in_schema=missing_in_schema,
        missing_in_source=missing_in_source,
    )


def require_alignment(encoding_map: FieldEncodingMap, sample_record: Mapping[str, Any]) -> AlignmentReport:
    """Like validate_schema_data_alignment, but raise when invalid.

    Raises:
        SchemaValidationError: If any fetched field is undocumented
    """
    report = validate_schema_data_alignment(encoding_map, sample_record)
    if not report.valid:
        raise SchemaValidationError(
            f"Record fields missing from schema for {encoding_map.model_name}: "
            f"{', '.join(report.missing_in_schema)}",
            missing_in_schema=report.missing_in_schema,
        )
    return report
