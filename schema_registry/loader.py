"""Schema loaders.

Sources of field descriptors for the registry:

- ``SchemaFileLoader``: a flat text file, one schema-of-schema row per line
- ``StaticSchemaLoader``: an in-memory list (static tables, tests)
- ``load_descriptors_from_source``: the source system's field metadata table

Schema-of-schema row layout (nine reserved coordinates under table 4)::

    4^58*<model_id>|4^58*<field_id>|4^26*<field_name>|4^33*<label>|4^35*<type>|
    4^28*<model_name>|4^60000*<storage_location>|4^57*<Yes/No>|4^60001*<pm>^<pf>*
"""

from pathlib import Path
from typing import Dict, Iterable, List, Optional, Protocol, Tuple

from core.observability.logging import get_logger
from encoding.codec import FieldType
from encoding.protocols import DynamicProtocol, EncodingProtocol
from schema_registry.models import COMPUTED_LOCATION, IDENTITY_FIELD, FieldDescriptor

logger = get_logger(__name__)


# =============================================================================
# Schema-of-schema Row Format
# =============================================================================

SCHEMA_ROW_COORDINATES: Tuple[str, ...] = (
    "4^58",     # model id
    "4^58",     # field id
    "4^26",     # field technical name
    "4^33",     # field label
    "4^35",     # field type
    "4^28",     # model name
    "4^60000",  # primary storage location
    "4^57",     # stored flag
    "4^60001",  # primary reference model_id^field_id
)
SCHEMA_ROW_SIZE = len(SCHEMA_ROW_COORDINATES)


class SchemaLoader(Protocol):
    """Anything that can produce the full list of field descriptors."""

    def load(self) -> List[FieldDescriptor]:
        ...


def _row_value(segment: str) -> Tuple[str, str]:
    """Split a schema row segment into (coordinate, value).

    The value is everything after the first ``*``; a trailing ``*`` (the row
    terminator on the last column) is stripped.
    """
    coordinate, sep, value = segment.partition("*")
    if not sep:
        return coordinate, ""
    if value.endswith("*") and not value.endswith("\\*"):
        value = value[:-1]
    return coordinate, value


def parse_schema_row(line: str, protocol: Optional[EncodingProtocol] = None) -> Optional[FieldDescriptor]:
    """Parse one schema-of-schema row into a FieldDescriptor.

    Malformed rows (too few segments, non-numeric ids, unexpected reserved
    coordinates) are logged and return None.

    Args:
        line: One encoded row
        protocol: Protocol used to build the descriptor coordinate

    Returns:
        FieldDescriptor or None when the row is malformed
    """
    protocol = protocol or DynamicProtocol()
    line = line.strip()
    if not line:
        return None

    segments = protocol.split_segments(line)
    if len(segments) < SCHEMA_ROW_SIZE:
        logger.warning(f"Dropping schema row with {len(segments)} segments (need {SCHEMA_ROW_SIZE}): {line[:60]}")
        return None

    values: List[str] = []
    for expected, segment in zip(SCHEMA_ROW_COORDINATES, segments):
        coordinate, value = _row_value(segment)
        if coordinate != expected:
            logger.warning(f"Dropping schema row with coordinate {coordinate} where {expected} was expected: {line[:60]}")
            return None
        values.append(value)

    (model_id_text, field_id_text, field_name, field_label, field_type,
     model_name, storage_location, stored_text, primary_ref) = values

    try:
        model_id = int(model_id_text.strip())
        field_id = int(field_id_text.strip())
    except ValueError:
        logger.warning(f"Dropping schema row with invalid ids {model_id_text!r}/{field_id_text!r}")
        return None

    field_name = protocol.unescape(field_name)
    model_name = protocol.unescape(model_name)
    if not field_name or not model_name:
        logger.warning(f"Dropping schema row without model or field name: {line[:60]}")
        return None

    return FieldDescriptor(
        coordinate=protocol.format_coordinate(model_id, field_id),
        owner_model=model_name,
        field_name=field_name,
        field_label=protocol.unescape(field_label),
        field_type=field_type.strip(),
        storage_location=protocol.unescape(storage_location),
        is_stored=stored_text.strip().lower() == "yes",
        model_id=model_id,
        field_id=field_id,
        primary_reference=primary_ref.strip() or None,
    )


def format_schema_row(descriptor: FieldDescriptor, protocol: Optional[EncodingProtocol] = None) -> str:
    """Write a descriptor as one schema-of-schema row (inverse of parse_schema_row)."""
    protocol = protocol or DynamicProtocol()
    values = [
        str(descriptor.model_id),
        str(descriptor.field_id),
        protocol.escape(descriptor.field_name),
        protocol.escape(descriptor.field_label),
        descriptor.field_type,
        protocol.escape(descriptor.owner_model),
        protocol.escape(descriptor.storage_location),
        "Yes" if descriptor.is_stored else "No",
        descriptor.primary_reference or "",
    ]
    segments = [f"{coordinate}*{value}" for coordinate, value in zip(SCHEMA_ROW_COORDINATES, values)]
    return "|".join(segments) + "*"


def parse_schema_lines(lines: Iterable[str], protocol: Optional[EncodingProtocol] = None) -> List[FieldDescriptor]:
    """Parse many rows, skipping malformed ones."""
    descriptors = []
    dropped = 0
    for line in lines:
        if not line.strip():
            continue
        descriptor = parse_schema_row(line, protocol)
        if descriptor is None:
            dropped += 1
            continue
        descriptors.append(descriptor)
    if dropped:
        logger.warning(f"Dropped {dropped} malformed schema rows")
    return descriptors


# =============================================================================
# Semantic Text
# =============================================================================

def build_semantic_text(descriptor: FieldDescriptor) -> str:
    """Human-readable description of a field, used for embedding and checksums.

    Example:
        "crm.lead field partner_id (Customer) - many2one relationship to
        res.partner - Data stored at res.partner.id - Stored in database -
        Reference: Model 78, Field 956"
    """
    parts = [f"{descriptor.owner_model} field {descriptor.field_name}"]

    if descriptor.field_label and descriptor.field_label != descriptor.field_name:
        parts.append(f"({descriptor.field_label})")

    ftype = descriptor.type_enum
    if ftype == FieldType.MANY2ONE:
        target = descriptor.foreign_key_target_model or descriptor.storage_location.replace(".id", "")
        parts.append(f"- many2one relationship to {target}")
    elif ftype in (FieldType.ONE2MANY, FieldType.MANY2MANY):
        parts.append(f"- {ftype.value} relationship")
    else:
        parts.append(f"- {descriptor.field_type} type")

    if descriptor.storage_location == COMPUTED_LOCATION:
        parts.append("- Computed field (not stored)")
    elif descriptor.storage_location:
        parts.append(f"- Data stored at {descriptor.storage_location}")

    if descriptor.is_stored:
        parts.append("- Stored in database")

    if descriptor.primary_reference and "^" in descriptor.primary_reference:
        ref_model, _, ref_field = descriptor.primary_reference.partition("^")
        if ref_model and ref_field:
            parts.append(f"- Reference: Model {ref_model}, Field {ref_field}")

    return " ".join(parts)


# =============================================================================
# Loaders
# =============================================================================

class SchemaFileLoader:
    """Loads descriptors from a schema-of-schema text file."""

    def __init__(self, path: Path, protocol: Optional[EncodingProtocol] = None):
        self.path = Path(path)
        self.protocol = protocol or DynamicProtocol()

    def load(self) -> List[FieldDescriptor]:
        """Read and parse the schema file.

        Raises:
            FileNotFoundError: If the schema file does not exist
        """
        if not self.path.exists():
            raise FileNotFoundError(f"Schema file not found: {self.path}")

        logger.info(f"Loading schema from {self.path}")
        with self.path.open("r", encoding="utf-8") as handle:
            descriptors = parse_schema_lines(handle, self.protocol)
        logger.info(f"Loaded {len(descriptors)} schema rows from {self.path.name}")
        return descriptors


class StaticSchemaLoader:
    """Serves a fixed, in-memory list of descriptors."""

    def __init__(self, descriptors: Iterable[FieldDescriptor]):
        self._descriptors = list(descriptors)

    def load(self) -> List[FieldDescriptor]:
        return list(self._descriptors)


# =============================================================================
# Remote Bootstrap
# =============================================================================

FIELD_METADATA_MODEL = "ir.model.fields"
FIELD_METADATA_FIELDS = ["id", "name", "field_description", "ttype", "model", "model_id", "relation", "store"]


async def load_descriptors_from_source(
    source,
    protocol: Optional[EncodingProtocol] = None,
    models: Optional[List[str]] = None,
    batch_size: int = 2000,
) -> List[FieldDescriptor]:
    """Build descriptors from the source system's field metadata table.

    Args:
        source: RecordSource connected to the source system
        protocol: Protocol used to build coordinates (dynamic by default)
        models: Restrict to these model names (all models when None)
        batch_size: Metadata rows per request

    Returns:
        Descriptors for every field of the selected models
    """
    protocol = protocol or DynamicProtocol()
    domain = [["model", "in", models]] if models else []

    rows: List[Dict] = []
    offset = 0
    while True:
        batch = await source.search_read(
            FIELD_METADATA_MODEL,
            domain=domain,
            fields=FIELD_METADATA_FIELDS,
            offset=offset,
            limit=batch_size,
            order="id",
        )
        rows.extend(batch)
        if len(batch) < batch_size:
            break
        offset += batch_size

    model_ids: Dict[str, int] = {}
    identity_field_ids: Dict[str, int] = {}
    for row in rows:
        model_ref = row.get("model_id")
        if isinstance(model_ref, (list, tuple)) and model_ref:
            model_ids[row["model"]] = int(model_ref[0])
        if row.get("name") == IDENTITY_FIELD:
            identity_field_ids[row["model"]] = int(row["id"])

    # Relation targets outside the selected models still need their identity coordinate
    missing_targets = sorted({
        row["relation"] for row in rows
        if row.get("relation") and row["relation"] not in identity_field_ids
    })
    if missing_targets:
        target_rows = await source.search_read(
            FIELD_METADATA_MODEL,
            domain=[["model", "in", missing_targets], ["name", "=", IDENTITY_FIELD]],
            fields=["id", "model", "model_id"],
        )
        for row in target_rows:
            identity_field_ids[row["model"]] = int(row["id"])
            model_ref = row.get("model_id")
            if isinstance(model_ref, (list, tuple)) and model_ref:
                model_ids[row["model"]] = int(model_ref[0])

    descriptors = []
    for row in rows:
        model_name = row.get("model")
        if model_name not in model_ids:
            logger.warning(f"Skipping field {row.get('name')} without model id")
            continue
        model_id = model_ids[model_name]
        field_id = int(row["id"])
        relation = row.get("relation") or None
        stored = bool(row.get("store"))

        if relation:
            location = f"{relation}.id"
        elif not stored:
            location = COMPUTED_LOCATION
        else:
            location = f"{model_name}.{row['name']}"

        if relation and relation in identity_field_ids and relation in model_ids:
            reference = f"{model_ids[relation]}^{identity_field_ids[relation]}"
        else:
            reference = f"{model_id}^{field_id}"

        descriptors.append(FieldDescriptor(
            coordinate=protocol.format_coordinate(model_id, field_id),
            owner_model=model_name,
            field_name=row["name"],
            field_label=row.get("field_description") or "",
            field_type=row.get("ttype") or "char",
            storage_location=location,
            is_stored=stored,
            model_id=model_id,
            field_id=field_id,
            primary_reference=reference,
            relation_model=relation,
        ))

    logger.info(f"Built {len(descriptors)} descriptors from {FIELD_METADATA_MODEL}")
    return descriptors
