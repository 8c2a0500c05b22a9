"""
Data Sync Tests

Validates DataSyncService end-to-end against in-memory collaborators:
1. Streaming fetch -> encode -> embed -> upsert in configured batch sizes
2. Fail-closed schema validation before anything is embedded
3. Restrictions discovered mid-run get marker values for the rest of the run
4. One sync per service at a time
5. Archived records, test limits, embed failures and status
"""

import asyncio

import pytest

from conftest import FakeEmbedder, FakeSource, FakeStore, access_error
from connectors.erp_base import SourceRPCError
from connectors.odoo.odoo_errors import OdooErrorClassifier
from core.config import SyncSettings
from encoding.records import RESTRICTED_SENTINEL, data_point_id
from schema_registry.static_tables import numeric_registry
from sync.data_sync import ALREADY_RUNNING, DataSyncService, extract_model_name_from_command
from vector.points import SCHEMA_POINT_TYPE, VectorPoint, build_schema_entry


def lead(record_id: int) -> dict:
    return {
        "id": record_id,
        "name": f"Lead {record_id}",
        "expected_revenue": 1000 * record_id,
        "partner_id": [201, "Acme Co"],
        "stage_id": [3, "Qualified"],
        "tag_ids": [],
        "description": False,
        "active": True,
        "x_margin": 0.5,
    }


LEADS = [lead(i) for i in range(1, 6)]


def make_service(registry, source, embedder=None, store=None, fetch_batch_size=2, embed_batch_size=2):
    return DataSyncService(
        registry,
        source,
        OdooErrorClassifier(),
        embedder or FakeEmbedder(),
        store or FakeStore(),
        settings=SyncSettings(fetch_batch_size=fetch_batch_size, embed_batch_size=embed_batch_size),
    )


# =============================================================================
# Streaming
# =============================================================================

class TestStreamingSync:

    def test_all_records_embedded(self, registry, embedder, store):
        source = FakeSource(LEADS)
        service = make_service(registry, source, embedder, store)

        result = asyncio.run(service.sync_model_data("crm.lead"))

        assert result.success, result.errors
        assert result.model_id == 344
        assert result.total_records == 5
        assert result.records_processed == 5
        assert result.records_embedded == 5
        assert result.restricted_fields == []
        assert result.sync_run_id.startswith("data-")

        assert sorted(store.points) == [data_point_id(344, i) for i in range(1, 6)]
        assert [len(call) for call in embedder.calls] == [2, 2, 1]

    def test_fetch_batches(self, registry):
        source = FakeSource(LEADS)
        asyncio.run(make_service(registry, source).sync_model_data("crm.lead"))

        sample, *batches = source.calls
        assert sample["limit"] == 1
        assert [(c["offset"], c["limit"]) for c in batches] == [(0, 2), (2, 2), (4, 1)]

    def test_payload_uses_foreign_key_substitution(self, registry, store):
        asyncio.run(make_service(registry, FakeSource(LEADS), store=store).sync_model_data("crm.lead"))

        payload = store.points[data_point_id(344, 1)].payload
        assert payload.point_type == "data"
        assert payload.model_name == "crm.lead"
        assert payload.record_id == 1
        segments = payload.encoded_string.split("|")
        assert "78^956*201" in segments
        assert "90^1200*3" in segments
        assert "344^6350*[]" in segments
        assert "Acme Co" not in payload.encoded_string

    def test_progress_phases(self, registry):
        phases = []
        service = make_service(registry, FakeSource(LEADS))
        asyncio.run(service.sync_model_data("crm.lead", on_progress=lambda p, c, t: phases.append(p)))

        assert phases[0] == "loading_schema"
        assert "validating" in phases
        assert "embedding" in phases
        assert phases[-1] == "complete"


# =============================================================================
# Fail-closed validation
# =============================================================================

class TestSchemaValidation:

    def test_undocumented_field_aborts_before_embedding(self, registry, embedder, store):
        source = FakeSource(LEADS, extra_fields={"x_studio_secret": "?"})
        service = make_service(registry, source, embedder, store)

        result = asyncio.run(service.sync_model_data("crm.lead"))

        assert not result.success
        assert result.missing_in_schema == ["x_studio_secret"]
        assert result.errors[0].startswith("Schema-Data mismatch!")
        assert embedder.calls == []
        assert store.points == {}
        assert len(source.calls) == 1

    def test_unknown_model(self, registry):
        result = asyncio.run(make_service(registry, FakeSource(LEADS)).sync_model_data("crm.leads"))

        assert not result.success
        assert "crm.leads" in result.errors[0]
        assert result.warnings[0].startswith("Similar models: crm.lead")

    def test_no_records(self, registry, store):
        result = asyncio.run(make_service(registry, FakeSource([]), store=store).sync_model_data("crm.lead"))

        assert not result.success
        assert result.errors == ["No records found for model crm.lead"]
        assert not store.created


# =============================================================================
# Restrictions
# =============================================================================

class TestRestrictedFields:

    def test_restriction_discovered_mid_run(self, registry, store):
        source = FakeSource(LEADS)

        def fail(fields, limit):
            # sample and first batch succeed; the field is refused from then on
            if len(source.calls) >= 3 and "x_margin" in fields:
                raise access_error("x_margin")

        source.fail = fail
        result = asyncio.run(make_service(registry, source, store=store).sync_model_data("crm.lead"))

        assert result.success, result.errors
        assert result.restricted_field_names == ["x_margin"]
        assert result.restricted_fields[0].discovered_at_offset == 2
        assert result.records_embedded == 5
        assert any("x_margin" in w for w in result.warnings)

        first = store.points[data_point_id(344, 1)].payload.encoded_string.split("|")
        third = store.points[data_point_id(344, 3)].payload.encoded_string.split("|")
        fifth = store.points[data_point_id(344, 5)].payload.encoded_string.split("|")
        assert "344^6380*0.5" in first
        assert f"344^6380*{RESTRICTED_SENTINEL}" in third
        assert f"344^6380*{RESTRICTED_SENTINEL}" in fifth

        assert "x_margin" not in source.calls[-1]["fields"]

    def test_restrictions_do_not_leak_between_runs(self, registry):
        source = FakeSource(LEADS)
        refuse = [True]

        def fail(fields, limit):
            if refuse[0] and "x_margin" in fields:
                raise access_error("x_margin")

        source.fail = fail
        service = make_service(registry, source)
        first = asyncio.run(service.sync_model_data("crm.lead"))
        refuse[0] = False
        second = asyncio.run(service.sync_model_data("crm.lead"))

        assert first.restricted_field_names == ["x_margin"]
        assert second.restricted_field_names == []
        assert "x_margin" in source.calls[-1]["fields"]


# =============================================================================
# Options and failures
# =============================================================================

class TestSyncOptions:

    def test_include_archived_context(self, registry):
        source = FakeSource(LEADS)
        asyncio.run(make_service(registry, source).sync_model_data("crm.lead"))
        assert all(c["context"] == {"active_test": False} for c in source.calls)

        source = FakeSource(LEADS)
        asyncio.run(make_service(registry, source).sync_model_data("crm.lead", include_archived=False))
        assert all(c["context"] is None for c in source.calls)

    def test_test_limit(self, registry, store):
        result = asyncio.run(
            make_service(registry, FakeSource(LEADS), store=store).sync_model_data("crm.lead", test_limit=3)
        )
        assert result.total_records == 3
        assert result.records_processed == 3
        assert len(store.points) == 3

    def test_embed_failure_continues_with_next_chunk(self, registry, store):
        embedder = FakeEmbedder(fail_on_call=1)
        result = asyncio.run(make_service(registry, FakeSource(LEADS), embedder, store).sync_model_data("crm.lead"))

        assert not result.success
        assert result.errors == ["Embed batch at offset 0 failed: embedding provider unavailable"]
        assert result.records_processed == 5
        assert result.records_embedded == 3
        assert data_point_id(344, 1) not in store.points
        assert data_point_id(344, 3) in store.points

    def test_non_restriction_error_fails_the_sync(self, registry):
        def fail(fields, limit):
            raise SourceRPCError("Odoo error (200): db", remote_message="psycopg2.OperationalError")

        service = make_service(registry, FakeSource(LEADS, fail=fail))
        result = asyncio.run(service.sync_model_data("crm.lead"))
        assert not result.success
        assert "db" in result.errors[0]
        assert not service.is_running


class TestPointIdentity:

    def test_model_without_numeric_id_fails_before_fetch(self):
        source = FakeSource([{"id": 1, "name": "A"}, {"id": 2, "name": "B"}])
        embedder = FakeEmbedder()
        service = DataSyncService(numeric_registry(), source, OdooErrorClassifier(), embedder, FakeStore())

        result = asyncio.run(service.sync_model_data("crm.lead"))

        assert not result.success
        assert result.errors[0].startswith("Model crm.lead has no numeric model id")
        assert source.calls == []
        assert embedder.calls == []

    def test_records_without_id_are_reported(self, registry, store):
        nameless = dict(lead(2))
        del nameless["id"]
        source = FakeSource([lead(1), nameless, lead(3)])

        result = asyncio.run(make_service(registry, source, store=store).sync_model_data("crm.lead"))

        assert not result.success
        assert result.records_processed == 3
        assert result.records_embedded == 2
        assert result.records_skipped == 1
        assert result.errors == ["Skipped 1 records without an integer id at offset 0"]
        assert sorted(store.points) == [data_point_id(344, 1), data_point_id(344, 3)]


class TestClear:

    def test_clear_keeps_schema_points(self, registry, store, descriptors):
        service = make_service(registry, FakeSource(LEADS), store=store)
        asyncio.run(service.sync_model_data("crm.lead"))
        schema_point = VectorPoint(id=descriptors[1].field_id, vector=[1.0, 0.0, 0.0, 0.0],
                                   payload=build_schema_entry(descriptors[1]))
        asyncio.run(store.upsert_points([schema_point]))

        assert asyncio.run(service.clear("sale.order")) == 0
        assert asyncio.run(service.clear("crm.lead")) == 5

        assert asyncio.run(store.count()) == 1
        assert asyncio.run(store.count(point_type=SCHEMA_POINT_TYPE)) == 1

    def test_clear_rejected_while_running(self, registry):
        service = make_service(registry, FakeSource(LEADS))
        service._running = True
        with pytest.raises(RuntimeError):
            asyncio.run(service.clear())


class GatedEmbedder(FakeEmbedder):
    """Blocks every embed call until ``gate`` is set."""

    def __init__(self):
        super().__init__()
        self.gate = None

    async def embed_batch(self, texts, input_type="document", on_progress=None):
        await self.gate.wait()
        return await super().embed_batch(texts, input_type, on_progress)


class TestSingleRunGate:

    def test_second_sync_rejected_while_running(self, registry):
        embedder = GatedEmbedder()
        service = make_service(registry, FakeSource(LEADS), embedder)

        async def scenario():
            embedder.gate = asyncio.Event()
            first = asyncio.create_task(service.sync_model_data("crm.lead"))
            await asyncio.sleep(0)
            assert service.is_running

            second = await service.sync_model_data("crm.lead")
            embedder.gate.set()
            return await first, second

        first, second = asyncio.run(scenario())

        assert first.success
        assert not second.success
        assert second.errors == [ALREADY_RUNNING]
        assert not service.is_running


# =============================================================================
# Status / Preview / Commands
# =============================================================================

class TestStatus:

    def test_status_before_and_after(self, registry, store):
        service = make_service(registry, FakeSource(LEADS), store=store)

        before = asyncio.run(service.status("crm.lead"))
        assert not before.exists
        assert before.collection == "test_collection"

        asyncio.run(service.sync_model_data("crm.lead"))
        after = asyncio.run(service.status("crm.lead"))
        assert after.exists
        assert after.total_points == 5
        assert after.data_points == 5
        assert after.schema_points == 0
        assert after.model_points == 5

        assert asyncio.run(service.status()).model_points is None

    def test_preview(self, registry):
        preview = make_service(registry, FakeSource(LEADS)).preview("sale.order")
        assert preview.field_count == 3
        assert preview.rows[2] == {"field_name": "partner_id", "coordinate": "78^956", "field_type": "many2one"}


class TestTransferCommand:

    @pytest.mark.parametrize("command,model", [
        ("transfer_crm.lead_1984", "crm.lead"),
        ("transfer_res.partner_1984", "res.partner"),
        ("transfer_account.move.line_1984", "account.move.line"),
    ])
    def test_valid(self, command, model):
        assert extract_model_name_from_command(command) == model

    @pytest.mark.parametrize("command", ["transfer_crm.lead", "crm.lead_1984", "transfer__1984", ""])
    def test_invalid(self, command):
        with pytest.raises(ValueError):
            extract_model_name_from_command(command)
