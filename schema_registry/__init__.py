"""Schema Registry - field descriptors keyed by coordinate.

Loads descriptors from a schema-of-schema file, a static table or the source
system's field metadata, and answers lookups by coordinate, by model and by
foreign-key target.
"""

from schema_registry.models import (
    FieldDescriptor,
    SchemaStats,
    ModelConfig,
    EncodingMapPreview,
)
from schema_registry.loader import (
    SchemaLoader,
    SchemaFileLoader,
    StaticSchemaLoader,
    parse_schema_row,
    parse_schema_lines,
    format_schema_row,
    build_semantic_text,
    load_descriptors_from_source,
)
from schema_registry.registry import SchemaRegistry

__all__ = [
    "FieldDescriptor",
    "SchemaStats",
    "ModelConfig",
    "EncodingMapPreview",
    "SchemaLoader",
    "SchemaFileLoader",
    "StaticSchemaLoader",
    "parse_schema_row",
    "parse_schema_lines",
    "format_schema_row",
    "build_semantic_text",
    "load_descriptors_from_source",
    "SchemaRegistry",
]
