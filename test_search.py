"""
Semantic Search Tests

Validates:
1. Queries are normalised and embedded with the "query" input type
2. Schema search only returns schema points, scoped by model
3. Data search applies the score threshold and decodes payloads
4. An absent collection returns no matches
"""

import asyncio

import pytest

from conftest import FakeEmbedder, FakeStore
from encoding.records import RecordEncoder, data_point_id
from vector.points import (
    DATA_POINT_TYPE,
    SCHEMA_POINT_TYPE,
    VectorPoint,
    build_data_entry,
    build_schema_entry,
)
from vector.search import SemanticSearchService, build_query_text


class FixedEmbedder(FakeEmbedder):
    """Always returns the same query vector."""

    def __init__(self, vector):
        super().__init__()
        self.vector = vector

    async def embed_batch(self, texts, input_type="document", on_progress=None):
        await super().embed_batch(texts, input_type, on_progress)
        return [list(self.vector) for _ in texts]


@pytest.fixture
def populated_store(registry, descriptors):
    store = FakeStore()
    by_name = {(d.owner_model, d.field_name): d for d in descriptors}
    schema_vectors = {
        ("crm.lead", "expected_revenue"): [1.0, 0.0, 0.0, 0.0],
        ("crm.lead", "name"): [0.6, 0.8, 0.0, 0.0],
        ("res.partner", "name"): [0.9, 0.1, 0.0, 0.0],
    }
    points = [
        VectorPoint(id=by_name[key].field_id, vector=vector, payload=build_schema_entry(by_name[key]))
        for key, vector in schema_vectors.items()
    ]

    encoder = RecordEncoder.for_model(registry, "crm.lead")
    data_vectors = {1: [0.8, 0.6, 0.0, 0.0], 2: [0.0, 0.0, 1.0, 0.0]}
    for record_id, vector in data_vectors.items():
        encoded = encoder.encode({"id": record_id, "name": f"Lead {record_id}", "partner_id": [201, "Acme"]})
        points.append(VectorPoint(id=encoded.point_id, vector=vector, payload=build_data_entry(encoded)))

    asyncio.run(store.ensure_collection())
    asyncio.run(store.upsert_points(points))
    return store


class TestQueryText:

    def test_whitespace_collapsed(self):
        assert build_query_text("  expected   revenue\n") == "expected revenue"

    def test_model_scope_prefixed(self):
        assert build_query_text("revenue", "crm.lead") == "crm.lead: revenue"

    @pytest.mark.parametrize("query", ["", "   ", None])
    def test_empty_query(self, query):
        with pytest.raises(ValueError):
            build_query_text(query)


class TestSchemaSearch:

    def test_ranked_schema_matches(self, populated_store):
        embedder = FixedEmbedder([1.0, 0.0, 0.0, 0.0])
        service = SemanticSearchService(embedder, populated_store)

        matches = asyncio.run(service.search_schema("money", limit=2))

        assert [m.field_name for m in matches] == ["expected_revenue", "name"]
        assert matches[0].model_name == "crm.lead"
        assert matches[0].coordinate == "344^6330"
        assert matches[0].score == pytest.approx(1.0)
        assert matches[1].model_name == "res.partner"
        assert embedder.input_types == ["query"]
        assert embedder.calls == [["money"]]
        assert populated_store.searches[-1]["point_type"] == SCHEMA_POINT_TYPE

    def test_scoped_to_model(self, populated_store):
        embedder = FixedEmbedder([1.0, 0.0, 0.0, 0.0])
        service = SemanticSearchService(embedder, populated_store)

        matches = asyncio.run(service.search_schema("money", model_name="crm.lead"))

        assert {m.model_name for m in matches} == {"crm.lead"}
        assert len(matches) == 2
        assert embedder.calls == [["crm.lead: money"]]


class TestDataSearch:

    def test_threshold_and_decoding(self, populated_store, registry):
        service = SemanticSearchService(FixedEmbedder([1.0, 0.0, 0.0, 0.0]), populated_store, registry)

        matches = asyncio.run(service.search_data("lead one", model_name="crm.lead", min_score=0.5))

        assert len(matches) == 1
        match = matches[0]
        assert match.point_id == data_point_id(344, 1)
        assert match.record_id == 1
        assert match.score == pytest.approx(0.8)
        assert match.decoded.get("crm.lead", "name") == "Lead 1"
        assert match.decoded.get("res.partner", "id") == 201
        assert populated_store.searches[-1]["point_type"] == DATA_POINT_TYPE

    def test_without_registry_payload_is_raw(self, populated_store):
        service = SemanticSearchService(FixedEmbedder([0.0, 0.0, 1.0, 0.0]), populated_store)

        matches = asyncio.run(service.search_data("anything", min_score=None))

        assert matches[0].record_id == 2
        assert matches[0].decoded is None
        assert matches[0].encoded_string.startswith("344^6299*2|")

    def test_absent_collection(self):
        service = SemanticSearchService(FixedEmbedder([1.0, 0.0, 0.0, 0.0]), FakeStore())
        assert asyncio.run(service.search_data("anything")) == []
