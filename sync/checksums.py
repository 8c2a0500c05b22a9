"""Checksum / Diff Engine.

Tracks one content checksum per schema field so a schema sync only re-embeds
what changed.

Key points:
1. The checksum is the MD5 of the field's semantic text (what gets embedded),
   not of the raw descriptor
2. State lives in a JSON file that persists across restarts
3. The file is written only after a sync succeeds (all-or-nothing); a failed
   sync leaves the previous file in place so the next run retries the same diff
4. A missing, corrupt or version-mismatched file reads as "no previous sync"
"""

from __future__ import annotations

import json
from datetime import datetime
from pathlib import Path
from typing import Dict, Iterable, Optional

from pydantic import BaseModel, Field, ValidationError

from core.models.refs import DataReference
from core.observability.logging import get_logger
from core.storage.artifacts import compute_md5, file_md5, put_json, read_json_file
from schema_registry.loader import build_semantic_text
from schema_registry.models import FieldDescriptor
from sync.models import ChangeSet

logger = get_logger(__name__)

METADATA_VERSION = 1


# =============================================================================
# Models
# =============================================================================

class SyncMetadata(BaseModel):
    """Persisted state of the last successful schema sync."""
    version: int = METADATA_VERSION
    last_sync: str = Field(..., description="ISO timestamp of the last successful sync")
    total_fields: int = 0
    schema_file_hash: str = Field("", description="MD5 of the schema file, for the fast path")
    field_checksums: Dict[str, str] = Field(default_factory=dict, description="field key -> semantic text MD5")


# =============================================================================
# Checksums
# =============================================================================

def field_key(descriptor: FieldDescriptor) -> str:
    """Key a field by its numeric id, falling back to its coordinate."""
    if descriptor.field_id is not None:
        return str(descriptor.field_id)
    return descriptor.coordinate


def field_checksum(descriptor: FieldDescriptor) -> str:
    return compute_md5(build_semantic_text(descriptor).encode("utf-8"))


def compute_field_checksums(descriptors: Iterable[FieldDescriptor]) -> Dict[str, str]:
    """field key -> checksum, in registry order. The first descriptor per key wins."""
    checksums: Dict[str, str] = {}
    for descriptor in descriptors:
        key = field_key(descriptor)
        if key in checksums:
            continue
        checksums[key] = field_checksum(descriptor)
    return checksums


def detect_changes(previous: Optional[SyncMetadata], current: Dict[str, str]) -> ChangeSet:
    """Classify every field as added, modified, deleted or unchanged.

    Args:
        previous: Metadata from the last successful sync (None on first run)
        current: field key -> checksum for the fields known now

    Returns:
        ChangeSet; on first run every current field is added
    """
    if previous is None:
        return ChangeSet(added=list(current.keys()))

    added = []
    modified = []
    unchanged = 0
    for key, checksum in current.items():
        previous_checksum = previous.field_checksums.get(key)
        if previous_checksum is None:
            added.append(key)
        elif previous_checksum != checksum:
            modified.append(key)
        else:
            unchanged += 1

    deleted = [key for key in previous.field_checksums if key not in current]

    return ChangeSet(added=added, modified=modified, deleted=deleted, unchanged=unchanged)


def has_schema_file_changed(schema_file: Optional[Path], previous: Optional[SyncMetadata]) -> bool:
    """Fast first-pass check against the stored schema file hash."""
    if previous is None or schema_file is None:
        return True
    current_hash = file_md5(Path(schema_file))
    if current_hash is None:
        return True
    return current_hash != previous.schema_file_hash


def create_sync_metadata(checksums: Dict[str, str], schema_file: Optional[Path] = None) -> SyncMetadata:
    """Metadata to persist after a successful sync."""
    schema_hash = file_md5(Path(schema_file)) if schema_file is not None else None
    return SyncMetadata(
        version=METADATA_VERSION,
        last_sync=datetime.utcnow().isoformat(),
        total_fields=len(checksums),
        schema_file_hash=schema_hash or "",
        field_checksums=dict(checksums),
    )


# =============================================================================
# Persistence
# =============================================================================

class ChecksumStore:
    """Reads and writes the checksum JSON file."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def load(self) -> Optional[SyncMetadata]:
        """Load previous metadata, or None when the file is absent or unusable."""
        try:
            data = read_json_file(self.path)
        except (json.JSONDecodeError, UnicodeDecodeError, OSError) as exc:
            logger.warning(f"Failed to read sync metadata {self.path}: {exc} - full sync required")
            return None

        if data is None:
            logger.info("No sync metadata file found - first sync")
            return None

        if not isinstance(data, dict) or data.get("version") != METADATA_VERSION:
            version = data.get("version") if isinstance(data, dict) else None
            logger.warning(f"Sync metadata version mismatch ({version} vs {METADATA_VERSION}) - full sync required")
            return None

        try:
            metadata = SyncMetadata.model_validate(data)
        except ValidationError as exc:
            logger.warning(f"Sync metadata {self.path} is malformed: {exc.error_count()} errors - full sync required")
            return None

        logger.info(f"Loaded sync metadata from {metadata.last_sync} ({metadata.total_fields} fields)")
        return metadata

    def save(self, metadata: SyncMetadata) -> DataReference:
        """Persist metadata. Call only after a successful sync."""
        ref = put_json(metadata, self.path)
        logger.info(f"Saved sync metadata ({metadata.total_fields} fields)")
        return ref

    def clear(self) -> bool:
        """Delete the metadata file, forcing the next sync to run in full."""
        if not self.path.exists():
            return False
        self.path.unlink()
        logger.info(f"Deleted sync metadata {self.path}")
        return True
