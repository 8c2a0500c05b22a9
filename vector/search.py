"""Semantic search over the shared collection.

Schema search answers "which fields are about X" against schema points; data
search finds records of a model whose encoded payload is close to a query.
Queries are embedded with the provider's ``query`` input type, while stored
points were embedded as ``document``.

Usage:
    search = SemanticSearchService(embedder, store, registry)
    matches = await search.search_schema("expected revenue", model_name="crm.lead")
"""

from typing import List, Optional

from pydantic import BaseModel, Field

from core.observability.logging import get_logger
from encoding.records import DecodedRecord, RecordDecoder
from schema_registry.registry import SchemaRegistry
from vector.points import DATA_POINT_TYPE, SCHEMA_POINT_TYPE, DataEntry, SchemaEntry

logger = get_logger(__name__)

DEFAULT_LIMIT = 10
DEFAULT_MIN_SCORE = 0.35


class SchemaMatch(BaseModel):
    """A schema field found by meaning."""
    coordinate: str
    model_name: str
    field_name: str
    field_label: str = ""
    field_type: str
    semantic_text: str = ""
    score: float


class DataMatch(BaseModel):
    """A record found by meaning."""
    point_id: int
    record_id: Optional[int] = None
    model_name: str
    encoded_string: str
    score: float
    decoded: Optional[DecodedRecord] = Field(None, description="Present when a registry is available")


def build_query_text(query: str, model_name: Optional[str] = None) -> str:
    """Normalise a free-text query; a model scope is prefixed like schema semantic text.

    Raises:
        ValueError: If the query is empty
    """
    text = " ".join((query or "").split())
    if not text:
        raise ValueError("Search query is empty")
    if model_name:
        return f"{model_name}: {text}"
    return text


class SemanticSearchService:
    """Embeds a query and runs a scoped nearest-neighbour search."""

    def __init__(self, embedder, store, registry: Optional[SchemaRegistry] = None):
        self.embedder = embedder
        self.store = store
        self.registry = registry

    async def _query_vector(self, query: str, model_name: Optional[str]) -> List[float]:
        vectors = await self.embedder.embed_batch([build_query_text(query, model_name)], input_type="query")
        return vectors[0]

    async def search_schema(
        self,
        query: str,
        model_name: Optional[str] = None,
        limit: int = DEFAULT_LIMIT,
    ) -> List[SchemaMatch]:
        vector = await self._query_vector(query, model_name)
        hits = await self.store.search(vector, point_type=SCHEMA_POINT_TYPE, model_name=model_name, limit=limit)

        matches = []
        for hit in hits:
            entry = hit.payload
            if not isinstance(entry, SchemaEntry):
                continue
            matches.append(SchemaMatch(
                coordinate=entry.coordinate,
                model_name=entry.model_name,
                field_name=entry.field_name,
                field_label=entry.field_label,
                field_type=entry.field_type,
                semantic_text=entry.semantic_text,
                score=hit.score,
            ))
        logger.info(f"Schema search returned {len(matches)} fields")
        return matches

    async def search_data(
        self,
        query: str,
        model_name: Optional[str] = None,
        limit: int = DEFAULT_LIMIT,
        min_score: Optional[float] = DEFAULT_MIN_SCORE,
    ) -> List[DataMatch]:
        """Search data points, decoding each payload when a registry is set."""
        vector = await self._query_vector(query, model_name)
        hits = await self.store.search(
            vector, point_type=DATA_POINT_TYPE, model_name=model_name, limit=limit, score_threshold=min_score,
        )

        decoder = RecordDecoder(self.registry) if self.registry is not None else None
        matches = []
        for hit in hits:
            entry = hit.payload
            if not isinstance(entry, DataEntry):
                continue
            matches.append(DataMatch(
                point_id=hit.id,
                record_id=entry.record_id,
                model_name=entry.model_name,
                encoded_string=entry.encoded_string,
                score=hit.score,
                decoded=decoder.decode(entry.encoded_string, entry.model_name) if decoder else None,
            ))
        logger.info(f"Data search returned {len(matches)} records")
        return matches
