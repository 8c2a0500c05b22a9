"""Fixed coordinate tables for the letter-prefixed and numeric protocols.

Both earlier wire formats encode CRM opportunities against a fixed table
rather than a live registry. The tables list the same fields; only the
coordinate spelling differs (``O_10`` vs ``1^10``).

Relation fields of ``crm.lead`` carry their own coordinates (column 50 and
up) so that every coordinate stays unique, but they are never written on the
wire: a many2one value is written under the target model's ``id`` coordinate.
"""

from typing import List, Tuple

from encoding.protocols import LetterProtocol, NumericProtocol
from schema_registry.loader import StaticSchemaLoader
from schema_registry.models import FieldDescriptor
from schema_registry.registry import SchemaRegistry


# (letter prefix, table number, model)
TABLES: List[Tuple[str, int, str]] = [
    ("O", 1, "crm.lead"),
    ("C", 2, "res.partner"),
    ("S", 3, "crm.stage"),
    ("U", 5, "res.users"),
    ("T", 6, "crm.team"),
    ("ST", 7, "res.country.state"),
    ("LR", 8, "crm.lost.reason"),
]

# (model, column, field name, label, type, relation target)
COLUMNS: List[Tuple[str, int, str, str, str, str]] = [
    ("crm.lead", 1, "name", "Opportunity", "char", ""),
    ("crm.lead", 2, "id", "ID", "integer", ""),
    ("crm.lead", 10, "expected_revenue", "Expected Revenue", "float", ""),
    ("crm.lead", 11, "probability", "Probability", "float", ""),
    ("crm.lead", 20, "description", "Notes", "text", ""),
    ("crm.lead", 30, "create_date", "Created on", "datetime", ""),
    ("crm.lead", 31, "write_date", "Last Updated on", "datetime", ""),
    ("crm.lead", 32, "date_closed", "Closed Date", "datetime", ""),
    ("crm.lead", 40, "city", "City", "char", ""),
    ("crm.lead", 41, "x_sector", "Sector", "selection", ""),
    ("crm.lead", 42, "active", "Active", "boolean", ""),
    ("crm.lead", 50, "partner_id", "Customer", "many2one", "res.partner"),
    ("crm.lead", 51, "stage_id", "Stage", "many2one", "crm.stage"),
    ("crm.lead", 52, "user_id", "Salesperson", "many2one", "res.users"),
    ("crm.lead", 53, "team_id", "Sales Team", "many2one", "crm.team"),
    ("crm.lead", 54, "state_id", "State", "many2one", "res.country.state"),
    ("crm.lead", 55, "lost_reason_id", "Lost Reason", "many2one", "crm.lost.reason"),
    ("crm.lead", 56, "tag_ids", "Tags", "many2many", "crm.tag"),
    ("res.partner", 1, "name", "Name", "char", ""),
    ("res.partner", 2, "id", "ID", "integer", ""),
    ("crm.stage", 1, "name", "Stage Name", "char", ""),
    ("crm.stage", 2, "id", "ID", "integer", ""),
    ("res.users", 1, "name", "Name", "char", ""),
    ("res.users", 2, "id", "ID", "integer", ""),
    ("crm.team", 1, "name", "Sales Team", "char", ""),
    ("crm.team", 2, "id", "ID", "integer", ""),
    ("res.country.state", 1, "name", "State Name", "char", ""),
    ("res.country.state", 2, "id", "ID", "integer", ""),
    ("crm.lost.reason", 1, "name", "Description", "char", ""),
    ("crm.lost.reason", 2, "id", "ID", "integer", ""),
]


def _descriptors(protocol, use_letters: bool) -> List[FieldDescriptor]:
    tables = {model: (letter, number) for letter, number, model in TABLES}
    descriptors = []
    for model, column, name, label, ftype, relation in COLUMNS:
        letter, number = tables[model]
        table = letter if use_letters else number
        location = f"{relation}.id" if relation else f"{model}.{name}"
        descriptors.append(FieldDescriptor(
            coordinate=protocol.format_coordinate(table, column),
            owner_model=model,
            field_name=name,
            field_label=label,
            field_type=ftype,
            storage_location=location,
            is_stored=True,
            relation_model=relation or None,
        ))
    return descriptors


def letter_descriptors() -> List[FieldDescriptor]:
    return _descriptors(LetterProtocol(), use_letters=True)


def numeric_descriptors() -> List[FieldDescriptor]:
    return _descriptors(NumericProtocol(), use_letters=False)


def letter_registry() -> SchemaRegistry:
    """Registry over the fixed letter-prefixed table."""
    return SchemaRegistry(LetterProtocol(), StaticSchemaLoader(letter_descriptors()))


def numeric_registry() -> SchemaRegistry:
    """Registry over the fixed numeric table^column table."""
    return SchemaRegistry(NumericProtocol(), StaticSchemaLoader(numeric_descriptors()))
