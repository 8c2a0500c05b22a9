"""Shared pytest fixtures: a small dynamic schema and in-memory collaborators."""

import hashlib
import math
from typing import Any, Callable, Dict, List, Optional

import pytest

from connectors.erp_base import RecordSource, SourceConfig, SourceRPCError
from encoding.protocols import DynamicProtocol
from schema_registry.loader import StaticSchemaLoader
from schema_registry.models import FieldDescriptor
from schema_registry.registry import SchemaRegistry
from vector.points import DATA_POINT_TYPE
from vector.vector_store import SearchHit


# =============================================================================
# Schema
# =============================================================================

def _field(model: str, model_id: int, field_id: int, name: str, ftype: str,
           label: str = "", relation: Optional[str] = None, stored: bool = True) -> FieldDescriptor:
    location = f"{relation}.id" if relation else f"{model}.{name}"
    return FieldDescriptor(
        coordinate=f"{model_id}^{field_id}",
        owner_model=model,
        field_name=name,
        field_label=label or name.replace("_", " ").title(),
        field_type=ftype,
        storage_location=location,
        is_stored=stored,
        model_id=model_id,
        field_id=field_id,
        primary_reference=f"{model_id}^{field_id}",
        relation_model=relation,
    )


def crm_descriptors() -> List[FieldDescriptor]:
    """crm.lead (344), res.partner (78), crm.stage (90) and sale.order (400)."""
    return [
        _field("crm.lead", 344, 6299, "id", "integer", "ID"),
        _field("crm.lead", 344, 6327, "name", "char", "Opportunity"),
        _field("crm.lead", 344, 6330, "expected_revenue", "monetary", "Expected Revenue"),
        _field("crm.lead", 344, 6340, "partner_id", "many2one", "Customer", relation="res.partner"),
        _field("crm.lead", 344, 6341, "stage_id", "many2one", "Stage", relation="crm.stage"),
        _field("crm.lead", 344, 6350, "tag_ids", "many2many", "Tags", relation="crm.tag"),
        _field("crm.lead", 344, 6360, "description", "text", "Notes"),
        _field("crm.lead", 344, 6370, "active", "boolean", "Active"),
        _field("crm.lead", 344, 6380, "x_margin", "float", "Margin"),
        _field("res.partner", 78, 956, "id", "integer", "ID"),
        _field("res.partner", 78, 957, "name", "char", "Name"),
        _field("res.partner", 78, 958, "parent_id", "many2one", "Related Company", relation="res.partner"),
        _field("crm.stage", 90, 1200, "id", "integer", "ID"),
        _field("crm.stage", 90, 1201, "name", "char", "Stage Name"),
        _field("sale.order", 400, 7000, "id", "integer", "ID"),
        _field("sale.order", 400, 7001, "name", "char", "Order Reference"),
        _field("sale.order", 400, 7002, "partner_id", "many2one", "Customer", relation="res.partner"),
    ]


@pytest.fixture
def descriptors() -> List[FieldDescriptor]:
    return crm_descriptors()


@pytest.fixture
def registry(descriptors) -> SchemaRegistry:
    return SchemaRegistry(DynamicProtocol(), StaticSchemaLoader(descriptors))


# =============================================================================
# In-memory Collaborators
# =============================================================================

class FakeSource(RecordSource):
    """RecordSource over a list of dicts.

    ``fail`` is called before every search_read with (fields, limit) and may
    raise to simulate source-side errors.
    """

    def __init__(self, records: List[Dict[str, Any]], fail: Optional[Callable] = None,
                 extra_fields: Optional[Dict[str, Any]] = None):
        super().__init__(SourceConfig(connector_type="fake"))
        self.records = records
        self.fail = fail
        self.extra_fields = extra_fields or {}
        self.calls: List[Dict[str, Any]] = []

    async def connect(self) -> bool:
        return True

    async def disconnect(self) -> None:
        pass

    async def search_read(self, model, domain=None, fields=None, offset=0, limit=None, order=None, context=None):
        self.calls.append({
            "model": model, "fields": list(fields or []), "offset": offset,
            "limit": limit, "context": context,
        })
        if self.fail:
            self.fail(list(fields or []), limit)
        rows = self.records[offset:] if limit is None else self.records[offset:offset + limit]
        result = []
        for row in rows:
            picked = {name: row[name] for name in (fields or row.keys()) if name in row}
            picked.update(self.extra_fields)
            result.append(picked)
        return result

    async def search_count(self, model, domain=None, context=None):
        return len(self.records)


def singleton_error() -> SourceRPCError:
    return SourceRPCError(
        "Odoo error (200): Expected singleton",
        remote_message="ValueError: Expected singleton: res.partner(1, 2)",
    )


def access_error(*fields: str) -> SourceRPCError:
    names = ",".join(fields)
    return SourceRPCError(
        "Odoo error (200): access",
        remote_message=(
            f'You do not have enough rights to access the fields "{names}" on '
            "Lead/Opportunity (crm.lead). Please contact your system administrator."
        ),
    )


class FakeEmbedder:
    """Deterministic 4-dimensional vectors; records every call."""

    def __init__(self, fail_on_call: Optional[int] = None):
        self.calls: List[List[str]] = []
        self.input_types: List[str] = []
        self.fail_on_call = fail_on_call

    async def embed_batch(self, texts, input_type="document", on_progress=None):
        self.calls.append(list(texts))
        self.input_types.append(input_type)
        if self.fail_on_call is not None and len(self.calls) == self.fail_on_call:
            raise RuntimeError("embedding provider unavailable")
        vectors = []
        for text in texts:
            digest = hashlib.md5(text.encode("utf-8")).digest()
            vectors.append([b / 255.0 for b in digest[:4]])
        return vectors

    @property
    def texts(self) -> List[str]:
        return [t for call in self.calls for t in call]


class FakeStore:
    """Vector store keeping points in a dict."""

    def __init__(self, collection: str = "test_collection"):
        self.collection = collection
        self.points: Dict[int, Any] = {}
        self.created = False
        self.upserts: List[List[int]] = []
        self.deletes: List[List[int]] = []
        self.searches: List[Dict[str, Any]] = []

    async def collection_exists(self) -> bool:
        return self.created

    async def ensure_collection(self, vector_size=None) -> None:
        self.created = True

    async def upsert_points(self, points) -> int:
        self.upserts.append([p.id for p in points])
        for point in points:
            self.points[point.id] = point
        return len(points)

    async def delete_points(self, point_ids) -> int:
        self.deletes.append(list(point_ids))
        for point_id in point_ids:
            self.points.pop(point_id, None)
        return len(point_ids)

    def _matching(self, point_type=None, model_name=None) -> List[Any]:
        matched = []
        for point in self.points.values():
            if point_type and point.payload.point_type != point_type:
                continue
            if model_name and point.payload.model_name != model_name:
                continue
            matched.append(point)
        return matched

    async def count(self, point_type=None, model_name=None) -> int:
        return len(self._matching(point_type, model_name))

    async def delete_data_points(self, model_name=None) -> int:
        doomed = [p.id for p in self._matching(DATA_POINT_TYPE, model_name)]
        for point_id in doomed:
            del self.points[point_id]
        return len(doomed)

    async def search(self, vector, point_type=None, model_name=None, limit=10, score_threshold=None):
        self.searches.append({"point_type": point_type, "model_name": model_name, "limit": limit})
        if not self.created:
            return []
        hits = []
        for point in self._matching(point_type, model_name):
            score = _cosine(vector, point.vector)
            if score_threshold is not None and score < score_threshold:
                continue
            hits.append(SearchHit(id=point.id, score=score, payload=point.payload))
        hits.sort(key=lambda hit: hit.score, reverse=True)
        return hits[:limit]


def _cosine(a, b) -> float:
    dot = sum(x * y for x, y in zip(a, b))
    norm = math.sqrt(sum(x * x for x in a)) * math.sqrt(sum(y * y for y in b))
    return dot / norm if norm else 0.0


@pytest.fixture
def embedder() -> FakeEmbedder:
    return FakeEmbedder()


@pytest.fixture
def store() -> FakeStore:
    return FakeStore()
