"""Vector layer - tagged point payloads, embeddings (Voyage AI) and storage (Qdrant)."""

from vector.points import (
    SchemaEntry,
    DataEntry,
    PointPayload,
    VectorPoint,
    parse_payload,
    schema_point_id,
    build_schema_entry,
    build_data_entry,
    SCHEMA_POINT_TYPE,
    DATA_POINT_TYPE,
)
from vector.embedding_client import VoyageEmbeddingClient, EmbeddingError
from vector.vector_store import QdrantVectorStore, SearchHit
from vector.search import SemanticSearchService, SchemaMatch, DataMatch, build_query_text

__all__ = [
    "SchemaEntry",
    "DataEntry",
    "PointPayload",
    "VectorPoint",
    "parse_payload",
    "schema_point_id",
    "build_schema_entry",
    "build_data_entry",
    "SCHEMA_POINT_TYPE",
    "DATA_POINT_TYPE",
    "VoyageEmbeddingClient",
    "EmbeddingError",
    "QdrantVectorStore",
    "SearchHit",
    "SemanticSearchService",
    "SchemaMatch",
    "DataMatch",
    "build_query_text",
]
