"""Sync result models.

Every sync entry point returns one of these instead of raising, so a caller
always gets a diagnosable outcome (success flag, counts, errors, warnings).
"""

from __future__ import annotations

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

from core.models.restrictions import FieldRestriction


class SyncPhase(str, Enum):
    """Phases reported to progress callbacks and correlated logs."""
    LOADING_CHECKSUMS = "loading_checksums"
    COMPUTING_CHECKSUMS = "computing_checksums"
    DIFFING = "diffing"
    LOADING_SCHEMA = "loading_schema"
    VALIDATING = "validating"
    COUNTING = "counting"
    FETCHING = "fetching"
    ENCODING = "encoding"
    EMBEDDING = "embedding"
    UPSERTING = "upserting"
    DELETING = "deleting"
    COMMITTING = "committing"
    COMPLETE = "complete"


class SchemaSyncMode(str, Enum):
    NO_CHANGES = "no_changes"
    INCREMENTAL = "incremental"
    FULL = "full"


class ChangeSet(BaseModel):
    """Field keys classified against the previous sync."""
    added: List[str] = Field(default_factory=list)
    modified: List[str] = Field(default_factory=list)
    deleted: List[str] = Field(default_factory=list)
    unchanged: int = 0

    @property
    def has_changes(self) -> bool:
        return bool(self.added or self.modified or self.deleted)

    def summary(self) -> str:
        parts = []
        if self.added:
            parts.append(f"{len(self.added)} added")
        if self.modified:
            parts.append(f"{len(self.modified)} modified")
        if self.deleted:
            parts.append(f"{len(self.deleted)} deleted")
        return ", ".join(parts) if parts else "No changes detected"


class SchemaSyncResult(BaseModel):
    """Outcome of one schema sync run."""
    success: bool
    mode: SchemaSyncMode = SchemaSyncMode.NO_CHANGES
    added: int = 0
    modified: int = 0
    deleted: int = 0
    unchanged: int = 0
    uploaded: int = 0
    deleted_points: int = 0
    duration_ms: float = 0.0
    sync_run_id: Optional[str] = None
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)


class DataSyncResult(BaseModel):
    """Outcome of one model data sync run."""
    success: bool
    model_name: str
    model_id: Optional[int] = None
    total_records: int = 0
    records_processed: int = 0
    records_embedded: int = 0
    records_skipped: int = Field(0, description="Fetched records that could not be given a point id")
    restricted_fields: List[FieldRestriction] = Field(default_factory=list)
    missing_in_schema: List[str] = Field(default_factory=list)
    duration_ms: float = 0.0
    sync_run_id: Optional[str] = None
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)

    @property
    def restricted_field_names(self) -> List[str]:
        return [r.field_name for r in self.restricted_fields]


class DataSyncStatus(BaseModel):
    """Point counts in the vector collection."""
    collection: str
    exists: bool
    total_points: int = 0
    schema_points: int = 0
    data_points: int = 0
    model_points: Optional[int] = Field(None, description="Data points of the requested model, when one was given")
