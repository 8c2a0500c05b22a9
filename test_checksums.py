"""
Checksum / Diff Engine Tests

Validates:
1. First run classifies every field as added
2. A second run with identical fields reports no changes
3. Added / modified / deleted classification
4. Unusable metadata files read as "no previous sync"
"""

import json

import pytest

from core.storage.artifacts import get_json
from schema_registry.models import FieldDescriptor
from sync.checksums import (
    METADATA_VERSION,
    ChecksumStore,
    compute_field_checksums,
    create_sync_metadata,
    detect_changes,
    field_checksum,
    field_key,
    has_schema_file_changed,
)


class TestFieldChecksums:

    def test_key_prefers_field_id(self, descriptors):
        assert field_key(descriptors[1]) == "6327"
        without_id = FieldDescriptor(coordinate="O_1", owner_model="crm.lead", field_name="name", field_type="char")
        assert field_key(without_id) == "O_1"

    def test_checksum_follows_semantic_text(self, descriptors):
        name = descriptors[1]
        assert field_checksum(name) == field_checksum(name.model_copy())
        relabelled = name.model_copy(update={"field_label": "Opportunity Title"})
        assert field_checksum(relabelled) != field_checksum(name)

    def test_compute_is_deterministic(self, descriptors):
        first = compute_field_checksums(descriptors)
        second = compute_field_checksums(list(descriptors))
        assert first == second
        assert len(first) == len(descriptors)
        assert list(first.keys())[0] == "6299"


class TestDetectChanges:

    def test_first_run_everything_added(self, descriptors):
        checksums = compute_field_checksums(descriptors)
        changes = detect_changes(None, checksums)
        assert changes.added == list(checksums.keys())
        assert changes.modified == []
        assert changes.deleted == []
        assert changes.has_changes

    def test_second_run_no_changes(self, descriptors):
        checksums = compute_field_checksums(descriptors)
        previous = create_sync_metadata(checksums)
        changes = detect_changes(previous, compute_field_checksums(descriptors))
        assert not changes.has_changes
        assert changes.unchanged == len(descriptors)

    def test_added_modified_deleted(self, descriptors):
        previous = create_sync_metadata(compute_field_checksums(descriptors))

        current_descriptors = [d for d in descriptors if d.field_id != 6380]
        current_descriptors[1] = current_descriptors[1].model_copy(update={"field_label": "Title"})
        current_descriptors.append(FieldDescriptor(
            coordinate="344^6390", owner_model="crm.lead", field_name="x_region", field_type="char",
            storage_location="crm.lead.x_region", model_id=344, field_id=6390,
        ))

        changes = detect_changes(previous, compute_field_checksums(current_descriptors))
        assert changes.added == ["6390"]
        assert changes.modified == ["6327"]
        assert changes.deleted == ["6380"]
        assert changes.unchanged == len(descriptors) - 2


class TestMetadata:

    def test_create(self, descriptors, tmp_path):
        schema_file = tmp_path / "schema.txt"
        schema_file.write_text("row", encoding="utf-8")
        metadata = create_sync_metadata(compute_field_checksums(descriptors), schema_file)
        assert metadata.version == METADATA_VERSION
        assert metadata.total_fields == len(descriptors)
        assert len(metadata.schema_file_hash) == 32

    def test_schema_file_fast_path(self, tmp_path):
        schema_file = tmp_path / "schema.txt"
        schema_file.write_text("row", encoding="utf-8")
        metadata = create_sync_metadata({}, schema_file)

        assert not has_schema_file_changed(schema_file, metadata)
        schema_file.write_text("row 2", encoding="utf-8")
        assert has_schema_file_changed(schema_file, metadata)
        assert has_schema_file_changed(schema_file, None)
        assert has_schema_file_changed(None, metadata)


class TestChecksumStore:

    def test_missing_file(self, tmp_path):
        assert ChecksumStore(tmp_path / "sync.json").load() is None

    def test_save_and_load(self, descriptors, tmp_path):
        store = ChecksumStore(tmp_path / "state" / "sync.json")
        metadata = create_sync_metadata(compute_field_checksums(descriptors))
        store.save(metadata)

        loaded = store.load()
        assert loaded == metadata

    def test_save_returns_verifiable_reference(self, descriptors, tmp_path):
        store = ChecksumStore(tmp_path / "sync.json")
        metadata = create_sync_metadata(compute_field_checksums(descriptors))
        ref = store.save(metadata)

        assert ref.content_type == "application/json"
        assert ref.size_bytes == store.path.stat().st_size
        assert get_json(ref) == metadata.model_dump(mode="json")

        store.path.write_text("{}", encoding="utf-8")
        with pytest.raises(ValueError):
            get_json(ref)

    def test_save_is_byte_stable(self, descriptors, tmp_path):
        path = tmp_path / "sync.json"
        store = ChecksumStore(path)
        metadata = create_sync_metadata(compute_field_checksums(descriptors))

        store.save(metadata)
        first = path.read_bytes()
        store.save(store.load())
        assert path.read_bytes() == first

    def test_corrupt_file(self, tmp_path):
        path = tmp_path / "sync.json"
        path.write_text("{not json", encoding="utf-8")
        assert ChecksumStore(path).load() is None

    def test_version_mismatch(self, tmp_path):
        path = tmp_path / "sync.json"
        path.write_text(json.dumps({"version": 99, "last_sync": "2024-01-01T00:00:00", "field_checksums": {}}))
        assert ChecksumStore(path).load() is None

    def test_malformed_fields(self, tmp_path):
        path = tmp_path / "sync.json"
        path.write_text(json.dumps({"version": METADATA_VERSION, "field_checksums": []}))
        assert ChecksumStore(path).load() is None

    def test_clear(self, descriptors, tmp_path):
        store = ChecksumStore(tmp_path / "sync.json")
        assert not store.clear()
        store.save(create_sync_metadata({}))
        assert store.clear()
        assert store.load() is None
