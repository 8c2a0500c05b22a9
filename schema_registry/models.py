"""Schema registry models."""

from __future__ import annotations

from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from encoding.codec import FieldType, RELATIONAL_TYPES, TO_MANY_TYPES


COMPUTED_LOCATION = "Computed"
IDENTITY_FIELD = "id"


class FieldDescriptor(BaseModel):
    """One field of the source schema, keyed by its coordinate.

    Attributes:
        coordinate: Opaque key under which values of this field are written
        owner_model: Technical model name (e.g. "crm.lead")
        field_name: Technical field name
        field_label: Display label
        field_type: Source type name ("char", "many2one", ...)
        storage_location: "<model>.<field>" for native fields, "<target>.id"
            for relations, or "Computed"
        is_stored: Whether the source system stores the value
        model_id: Numeric model id (dynamic protocol)
        field_id: Numeric field id (dynamic protocol)
        primary_reference: Declared "model_id^field_id" reference coordinate
        relation_model: Explicit relation target when the source declares one
    """
    model_config = ConfigDict(frozen=True)

    coordinate: str = Field(..., description="Wire coordinate")
    owner_model: str = Field(..., description="Owning model name")
    field_name: str = Field(..., description="Technical field name")
    field_label: str = Field(default="", description="Display label")
    field_type: str = Field(..., description="Source field type")
    storage_location: str = Field(default="", description="Where the value physically lives")
    is_stored: bool = Field(default=True, description="Stored (True) or computed (False)")
    model_id: Optional[int] = Field(None, description="Numeric model id")
    field_id: Optional[int] = Field(None, description="Numeric field id")
    primary_reference: Optional[str] = Field(None, description="Declared reference coordinate")
    relation_model: Optional[str] = Field(None, description="Relation target model")

    @property
    def type_enum(self) -> Optional[FieldType]:
        return FieldType.parse(self.field_type)

    @property
    def is_foreign_key(self) -> bool:
        return self.type_enum in RELATIONAL_TYPES

    @property
    def is_to_one(self) -> bool:
        return self.type_enum == FieldType.MANY2ONE

    @property
    def is_to_many(self) -> bool:
        return self.type_enum in TO_MANY_TYPES

    @property
    def is_identity(self) -> bool:
        return self.field_name == IDENTITY_FIELD

    @property
    def is_computed(self) -> bool:
        return self.storage_location == COMPUTED_LOCATION or not self.is_stored

    @property
    def foreign_key_target_model(self) -> Optional[str]:
        """Target model of a relational field, None for native fields.

        Uses the explicit relation when declared, otherwise the model part of a
        "<target>.id" storage location.
        """
        if not self.is_foreign_key:
            return None
        if self.relation_model:
            return self.relation_model
        location = self.storage_location or ""
        if location.endswith(".id") and location != f"{self.owner_model}.id":
            return location[: -len(".id")]
        return None


class SchemaStats(BaseModel):
    """Summary counts over a loaded registry."""
    total_fields: int = 0
    models: int = 0
    stored_fields: int = 0
    computed_fields: int = 0
    foreign_keys: int = 0
    by_type: Dict[str, int] = Field(default_factory=dict)


class ModelConfig(BaseModel):
    """Identity of one source model as needed for data sync."""
    model_name: str
    model_id: int
    id_field_id: int
    field_count: int
    identity_coordinate: str


class EncodingMapPreview(BaseModel):
    """Human-facing preview of the encoding map for one model."""
    model_name: str
    field_count: int
    rows: List[Dict[str, str]] = Field(default_factory=list)
