"""Model data sync.

Streams every record of one source model into the vector collection:

1. Load the schema and build the model's encoding map
2. Fetch one sample record (restriction-aware) and check every fetched field
   is documented in the schema; any undocumented field aborts the sync
3. Stream: fetch a batch, encode it (restricted fields get a marker value),
   embed in provider-sized chunks, upsert data points

Restricted fields found in any batch are remembered for the rest of the run.
Only one sync runs per service instance at a time.
"""

import re
import time
import uuid
from typing import Any, Callable, Dict, List, Optional

from connectors.erp_base import RecordSource
from connectors.resilient import ErrorClassifier, ResilientFetcher, RestrictionTracker
from core.config import SyncSettings
from core.observability.logging import get_logger, log_sync_complete, log_sync_error, log_sync_start, with_correlation
from core.observability.metrics import (
    get_metrics,
    record_processing_time,
    record_sync_completed,
    record_sync_failed,
    record_sync_started,
)
from encoding.errors import EncodingMapError
from encoding.field_map import build_field_encoding_map, preview_encoding_map, validate_schema_data_alignment
from encoding.records import EncodedRecord, RecordEncoder
from schema_registry.models import EncodingMapPreview
from schema_registry.registry import SchemaRegistry
from sync.models import DataSyncResult, DataSyncStatus, SyncPhase
from vector.points import DATA_POINT_TYPE, SCHEMA_POINT_TYPE, VectorPoint, build_data_entry

logger = get_logger(__name__)

SYNC_KIND = "data"
ALREADY_RUNNING = "Sync already in progress"

TRANSFER_COMMAND = re.compile(r"^transfer_(.+)_1984$")

ProgressCallback = Callable[[str, int, int], None]


def extract_model_name_from_command(command: str) -> str:
    """Model name from a ``transfer_<model.name>_1984`` trigger.

    Example:
        extract_model_name_from_command("transfer_crm.lead_1984")  # "crm.lead"

    Raises:
        ValueError: If the command does not have the expected shape
    """
    match = TRANSFER_COMMAND.match(command.strip()) if command else None
    if not match:
        raise ValueError(f"Invalid command format: {command}. Expected: transfer_[model.name]_1984")
    return match.group(1)


class DataSyncService:
    """Syncs source records of one model at a time into the vector collection.

    Collaborators are passed in: a RecordSource, the ErrorClassifier matching
    it, an embedder exposing ``embed_batch(texts, input_type)`` and a vector
    store exposing ``ensure_collection``/``upsert_points``/``count``/``delete_data_points``.
    """

    def __init__(
        self,
        registry: SchemaRegistry,
        source: RecordSource,
        classifier: ErrorClassifier,
        embedder,
        store,
        settings: Optional[SyncSettings] = None,
    ):
        self.registry = registry
        self.source = source
        self.classifier = classifier
        self.embedder = embedder
        self.store = store
        self.settings = settings or SyncSettings()
        self.settings.validate()
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    # =========================================================================
    # Sync
    # =========================================================================

    async def sync_model_data(
        self,
        model_name: str,
        on_progress: Optional[ProgressCallback] = None,
        include_archived: bool = True,
        test_limit: Optional[int] = None,
    ) -> DataSyncResult:
        """Sync all records of a model. Never raises; failures are reported in the result.

        Args:
            model_name: Technical model name (e.g. "crm.lead")
            on_progress: Called with (phase, current, total)
            include_archived: Also sync inactive records
            test_limit: Stop after this many records
        """
        if self._running:
            return DataSyncResult(success=False, model_name=model_name, errors=[ALREADY_RUNNING])

        self._running = True
        sync_run_id = f"data-{uuid.uuid4().hex[:12]}"
        start = time.monotonic()
        result = DataSyncResult(success=False, model_name=model_name, sync_run_id=sync_run_id)
        tracker = RestrictionTracker()

        try:
            with with_correlation(sync_run_id=sync_run_id, sync_kind=SYNC_KIND, model_name=model_name):
                log_sync_start(SYNC_KIND, include_archived=include_archived, test_limit=test_limit)
                record_sync_started(SYNC_KIND)

                try:
                    await self._run(result, tracker, on_progress, include_archived, test_limit)
                except Exception as exc:
                    logger.error(f"Data sync of {model_name} failed: {exc}", exc_info=True)
                    result.success = False
                    result.errors.append(str(exc))

                result.restricted_fields = tracker.as_list()
                result.duration_ms = (time.monotonic() - start) * 1000
                if result.success:
                    record_sync_completed(SYNC_KIND, result.duration_ms)
                    log_sync_complete(
                        SYNC_KIND,
                        result.duration_ms,
                        records_processed=result.records_processed,
                        records_embedded=result.records_embedded,
                        restricted_fields=len(result.restricted_fields),
                    )
                else:
                    record_sync_failed(SYNC_KIND)
                    log_sync_error(SYNC_KIND, "; ".join(result.errors))
        finally:
            self._running = False

        return result

    async def _run(
        self,
        result: DataSyncResult,
        tracker: RestrictionTracker,
        on_progress: Optional[ProgressCallback],
        include_archived: bool,
        test_limit: Optional[int],
    ) -> None:
        model_name = result.model_name

        def progress(phase: SyncPhase, current: int, total: int) -> None:
            if on_progress:
                on_progress(phase.value, current, total)

        # Phase 1: schema and encoding map
        progress(SyncPhase.LOADING_SCHEMA, 0, 1)
        try:
            encoding_map = build_field_encoding_map(self.registry, model_name)
        except EncodingMapError as exc:
            result.errors.append(str(exc))
            similar = self.registry.similar_models(model_name)
            if similar:
                result.warnings.append(f"Similar models: {', '.join(similar)}")
            return

        result.model_id = encoding_map.model_id
        if encoding_map.model_id is None:
            result.errors.append(
                f"Model {model_name} has no numeric model id in the schema; data points cannot be addressed"
            )
            return
        encoder = RecordEncoder(encoding_map, self.registry.protocol)
        logger.info(f"Found {len(encoding_map)} schema fields for {model_name}")

        fetcher = ResilientFetcher(
            self.source,
            self.classifier,
            max_retries=self.settings.max_restriction_retries,
            tracker=tracker,
        )
        domain: List[Any] = []
        context: Optional[Dict[str, Any]] = {"active_test": False} if include_archived else None

        # Phase 2: sample fetch and fail-closed validation
        progress(SyncPhase.VALIDATING, 0, 1)
        sample = await fetcher.search_read_with_retry(
            model_name, domain, encoding_map.field_names(), offset=0, limit=1, order="id", context=context,
        )
        result.warnings.extend(sample.warnings)

        if not sample.records:
            result.errors.append(f"No records found for model {model_name}")
            return

        report = validate_schema_data_alignment(encoding_map, sample.records[0])
        if not report.valid:
            result.missing_in_schema = report.missing_in_schema
            shown = report.missing_in_schema[:20]
            more = len(report.missing_in_schema) - len(shown)
            message = (
                f"Schema-Data mismatch! {len(report.missing_in_schema)} source fields not in schema: "
                f"{', '.join(shown)}"
            )
            if more > 0:
                message += f" ... and {more} more"
            result.errors.append(message)
            return
        logger.info(f"Schema validation passed: {report.matched_fields} fields matched")

        # Phase 3: stream fetch -> encode -> embed -> upsert
        progress(SyncPhase.COUNTING, 0, 1)
        total = await self.source.search_count(model_name, domain, context=context)
        if test_limit:
            total = min(test_limit, total)
        result.total_records = total

        await self.store.ensure_collection()
        if tracker:
            logger.info(f"Excluding {len(tracker)} restricted fields from fetch")

        offset = 0
        while offset < total:
            limit = min(self.settings.fetch_batch_size, total - offset)
            with with_correlation(batch_offset=offset):
                batch_start = time.monotonic()
                progress(SyncPhase.FETCHING, result.records_processed, total)
                fetched = await fetcher.search_read_with_retry(
                    model_name, domain, encoding_map.field_names(),
                    offset=offset, limit=limit, order="id", context=context,
                )
                for warning in fetched.warnings:
                    if warning not in result.warnings:
                        result.warnings.append(warning)

                records = fetched.records
                if not records:
                    break
                result.records_processed += len(records)

                progress(SyncPhase.ENCODING, result.records_processed, total)
                restricted = {r.field_name: r.reason for r in tracker.as_list()}
                encoded = encoder.encode_batch(records, restricted)
                get_metrics().record_records_encoded(model_name, len(encoded))

                await self._embed_and_upsert(encoded, offset, result, progress)
                record_processing_time("data_sync.batch", (time.monotonic() - batch_start) * 1000)

            offset += len(records)
            if len(records) < limit:
                break

        progress(SyncPhase.COMPLETE, result.records_embedded, total)
        if tracker:
            logger.warning(f"Restricted fields ({len(tracker)}): {', '.join(tracker.field_names())}")
        result.success = not result.errors

    async def _embed_and_upsert(
        self,
        encoded: List[EncodedRecord],
        offset: int,
        result: DataSyncResult,
        progress,
    ) -> None:
        """Embed and upsert one fetch batch in embedding-sized chunks.

        A failed chunk is recorded as an error and the remaining chunks still run.
        """
        skipped = [r for r in encoded if r.point_id is None]
        if skipped:
            message = f"Skipped {len(skipped)} records without an integer id at offset {offset}"
            logger.error(message)
            result.records_skipped += len(skipped)
            result.errors.append(message)

        size = self.settings.embed_batch_size
        for start in range(0, len(encoded), size):
            chunk = [r for r in encoded[start:start + size] if r.point_id is not None]
            if not chunk:
                continue
            try:
                vectors = await self.embedder.embed_batch([r.payload for r in chunk], input_type="document")
                points = [
                    VectorPoint(id=r.point_id, vector=vector, payload=build_data_entry(r))
                    for r, vector in zip(chunk, vectors)
                ]
                await self.store.upsert_points(points)
            except Exception as exc:
                message = f"Embed batch at offset {offset + start} failed: {exc}"
                logger.error(message)
                result.errors.append(message)
                continue

            result.records_embedded += len(chunk)
            get_metrics().record_records_embedded(result.model_name, len(chunk))
            get_metrics().record_points_upserted(len(points))
            progress(SyncPhase.EMBEDDING, result.records_embedded, result.total_records)
            logger.info(f"Embedded {result.records_embedded}/{result.total_records} records")

    # =========================================================================
    # Status / Preview
    # =========================================================================

    async def status(self, model_name: Optional[str] = None) -> DataSyncStatus:
        """Point counts in the collection, optionally for one model's data."""
        collection = getattr(self.store, "collection", "")
        if not await self.store.collection_exists():
            return DataSyncStatus(collection=collection, exists=False)

        return DataSyncStatus(
            collection=collection,
            exists=True,
            total_points=await self.store.count(),
            schema_points=await self.store.count(point_type=SCHEMA_POINT_TYPE),
            data_points=await self.store.count(point_type=DATA_POINT_TYPE),
            model_points=(
                await self.store.count(point_type=DATA_POINT_TYPE, model_name=model_name)
                if model_name else None
            ),
        )

    async def clear(self, model_name: Optional[str] = None) -> int:
        """Delete synced data points before a full re-sync. Schema points are kept.

        Returns:
            Number of data points removed
        """
        if self._running:
            raise RuntimeError(ALREADY_RUNNING)
        removed = await self.store.delete_data_points(model_name)
        logger.info(f"Cleared {removed} data points" + (f" of {model_name}" if model_name else ""))
        return removed

    def preview(self, model_name: str) -> EncodingMapPreview:
        """First rows of the encoding map a sync of this model would use.

        Raises:
            EncodingMapError: If the model has no fields in the schema
        """
        return preview_encoding_map(build_field_encoding_map(self.registry, model_name))
