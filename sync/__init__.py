"""Sync layer - checksum diff engine, incremental schema sync, model data sync.

The service factory lives in ``sync.factory`` and is imported by full path,
since it pulls in the Odoo, Voyage AI and Qdrant clients.
"""

from sync.models import (
    SyncPhase,
    SchemaSyncMode,
    ChangeSet,
    SchemaSyncResult,
    DataSyncResult,
    DataSyncStatus,
)
from sync.checksums import (
    SyncMetadata,
    ChecksumStore,
    field_key,
    field_checksum,
    compute_field_checksums,
    detect_changes,
    has_schema_file_changed,
    create_sync_metadata,
    METADATA_VERSION,
)
from sync.schema_sync import SchemaSyncService
from sync.data_sync import DataSyncService, extract_model_name_from_command

__all__ = [
    "SyncPhase",
    "SchemaSyncMode",
    "ChangeSet",
    "SchemaSyncResult",
    "DataSyncResult",
    "DataSyncStatus",
    "SyncMetadata",
    "ChecksumStore",
    "field_key",
    "field_checksum",
    "compute_field_checksums",
    "detect_changes",
    "has_schema_file_changed",
    "create_sync_metadata",
    "METADATA_VERSION",
    "SchemaSyncService",
    "DataSyncService",
    "extract_model_name_from_command",
]
