"""Incremental schema sync.

Embeds schema fields into the vector collection, re-embedding only the fields
whose semantic text changed since the last successful run.

Run states:
    LoadingPreviousChecksums -> ComputingCurrentChecksums -> Diffing
        -> NoChanges | ApplyingChanges -> Committed

The checksum file is written only in Committed. NoChanges writes nothing, so
two runs over an unchanged schema leave the file byte-identical.
"""

import time
import uuid
from pathlib import Path
from typing import Callable, Dict, List, Optional

from core.observability.logging import get_logger, log_sync_complete, log_sync_error, log_sync_start, with_correlation
from core.observability.metrics import get_metrics, record_sync_completed, record_sync_failed, record_sync_started
from schema_registry.loader import build_semantic_text
from schema_registry.models import FieldDescriptor
from schema_registry.registry import SchemaRegistry
from sync.checksums import (
    ChecksumStore,
    compute_field_checksums,
    create_sync_metadata,
    detect_changes,
    field_key,
    has_schema_file_changed,
)
from sync.models import ChangeSet, SchemaSyncMode, SchemaSyncResult, SyncPhase
from vector.points import VectorPoint, build_schema_entry, schema_point_id

logger = get_logger(__name__)

SYNC_KIND = "schema"

ProgressCallback = Callable[[str, int, int], None]


class SchemaSyncService:
    """Keeps schema points in the vector collection in step with the registry.

    Usage:
        service = SchemaSyncService(registry, embedder, store, ChecksumStore(path), schema_file=path)
        result = await service.sync_schema()
        result.mode, result.added, result.modified, result.deleted
    """

    def __init__(
        self,
        registry: SchemaRegistry,
        embedder,
        store,
        checksum_store: ChecksumStore,
        schema_file: Optional[Path] = None,
        embed_batch_size: int = 50,
    ):
        self.registry = registry
        self.embedder = embedder
        self.store = store
        self.checksum_store = checksum_store
        self.schema_file = Path(schema_file) if schema_file is not None else None
        self.embed_batch_size = embed_batch_size

    async def sync_schema(
        self,
        force_full: bool = False,
        on_progress: Optional[ProgressCallback] = None,
    ) -> SchemaSyncResult:
        """Run one schema sync. Never raises; failures are reported in the result.

        Args:
            force_full: Ignore stored checksums and re-embed every field
            on_progress: Called with (phase, current, total)
        """
        sync_run_id = f"schema-{uuid.uuid4().hex[:12]}"
        start = time.monotonic()

        def progress(phase: SyncPhase, current: int, total: int) -> None:
            if on_progress:
                on_progress(phase.value, current, total)

        with with_correlation(sync_run_id=sync_run_id, sync_kind=SYNC_KIND):
            log_sync_start(SYNC_KIND, force_full=force_full)
            record_sync_started(SYNC_KIND)
            result = SchemaSyncResult(success=False, sync_run_id=sync_run_id)

            try:
                await self._run(result, force_full, progress)
            except Exception as exc:
                logger.error(f"Schema sync failed: {exc}", exc_info=True)
                result.success = False
                result.errors.append(str(exc))

            result.duration_ms = (time.monotonic() - start) * 1000
            if result.success:
                record_sync_completed(SYNC_KIND, result.duration_ms)
                log_sync_complete(
                    SYNC_KIND,
                    result.duration_ms,
                    mode=result.mode.value,
                    added=result.added,
                    modified=result.modified,
                    deleted=result.deleted,
                )
            else:
                record_sync_failed(SYNC_KIND)
                log_sync_error(SYNC_KIND, "; ".join(result.errors))
            return result

    async def _run(self, result: SchemaSyncResult, force_full: bool, progress) -> None:
        # LoadingPreviousChecksums
        progress(SyncPhase.LOADING_CHECKSUMS, 0, 1)
        previous = None if force_full else self.checksum_store.load()

        file_changed = has_schema_file_changed(self.schema_file, previous)
        if file_changed and self.schema_file is not None:
            self.registry.invalidate()

        descriptors = self.registry.all()

        if previous is not None and not file_changed and previous.total_fields == len(descriptors):
            logger.info("Schema file unchanged since last sync - nothing to do")
            result.mode = SchemaSyncMode.NO_CHANGES
            result.unchanged = previous.total_fields
            result.success = True
            progress(SyncPhase.COMPLETE, 0, 0)
            return

        # ComputingCurrentChecksums
        progress(SyncPhase.COMPUTING_CHECKSUMS, 0, len(descriptors))
        current = compute_field_checksums(descriptors)

        # Diffing
        progress(SyncPhase.DIFFING, 0, len(current))
        changes = detect_changes(previous, current)
        result.added = len(changes.added)
        result.modified = len(changes.modified)
        result.deleted = len(changes.deleted)
        result.unchanged = changes.unchanged
        logger.info(f"Schema diff: {changes.summary()}")

        if not changes.has_changes:
            result.mode = SchemaSyncMode.NO_CHANGES
            result.success = True
            progress(SyncPhase.COMPLETE, 0, 0)
            return

        result.mode = SchemaSyncMode.FULL if previous is None else SchemaSyncMode.INCREMENTAL

        # ApplyingChanges
        await self.store.ensure_collection()
        by_key = _first_by_key(descriptors)
        to_upload = [by_key[key] for key in changes.added + changes.modified]
        result.uploaded = await self._upload(to_upload, result, progress)
        result.deleted_points = await self._delete(changes, result, progress)

        # Committed
        progress(SyncPhase.COMMITTING, 0, 1)
        self.checksum_store.save(create_sync_metadata(current, self.schema_file))
        result.success = True
        progress(SyncPhase.COMPLETE, result.uploaded, len(to_upload))

    async def _upload(self, descriptors: List[FieldDescriptor], result: SchemaSyncResult, progress) -> int:
        uploadable = []
        for descriptor in descriptors:
            if descriptor.field_id is None:
                result.warnings.append(
                    f"{descriptor.owner_model}.{descriptor.field_name} has no field id - not uploaded"
                )
                continue
            uploadable.append(descriptor)

        total = len(uploadable)
        uploaded = 0
        for start in range(0, total, self.embed_batch_size):
            chunk = uploadable[start:start + self.embed_batch_size]
            with with_correlation(phase=SyncPhase.EMBEDDING.value, batch_offset=start):
                progress(SyncPhase.EMBEDDING, uploaded, total)
                vectors = await self.embedder.embed_batch(
                    [build_semantic_text(d) for d in chunk], input_type="document"
                )
                points = [
                    VectorPoint(id=schema_point_id(d), vector=vector, payload=build_schema_entry(d))
                    for d, vector in zip(chunk, vectors)
                ]
                progress(SyncPhase.UPSERTING, uploaded, total)
                uploaded += await self.store.upsert_points(points)
                get_metrics().record_points_upserted(len(points))
                logger.info(f"Uploaded {uploaded}/{total} schema points")
        return uploaded

    async def _delete(self, changes: ChangeSet, result: SchemaSyncResult, progress) -> int:
        if not changes.deleted:
            return 0
        progress(SyncPhase.DELETING, 0, len(changes.deleted))

        point_ids = []
        for key in changes.deleted:
            if key.isdigit():
                point_ids.append(int(key))
            else:
                result.warnings.append(f"Deleted field {key} has no numeric point id - not removed")

        deleted = await self.store.delete_points(point_ids)
        get_metrics().record_points_deleted(deleted)
        logger.info(f"Deleted {deleted} schema points")
        return deleted


def _first_by_key(descriptors: List[FieldDescriptor]) -> Dict[str, FieldDescriptor]:
    by_key: Dict[str, FieldDescriptor] = {}
    for descriptor in descriptors:
        by_key.setdefault(field_key(descriptor), descriptor)
    return by_key
