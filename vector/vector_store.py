"""Qdrant vector store adapter.

Stores schema and data points in one collection, keyed by integer point id
and tagged by ``point_type``.
"""

from dataclasses import dataclass
from typing import List, Optional, Sequence, Union

from qdrant_client import AsyncQdrantClient
from qdrant_client.http import models

from core.config import QdrantSettings
from core.observability.logging import get_logger
from vector.points import DATA_POINT_TYPE, DataEntry, SchemaEntry, VectorPoint, parse_payload

logger = get_logger(__name__)

KEYWORD_INDEXES = ("point_type", "model_name", "field_type")
INTEGER_INDEXES = ("model_id", "record_id")


@dataclass(frozen=True)
class SearchHit:
    """One nearest-neighbour match."""
    id: int
    score: float
    payload: Union[SchemaEntry, DataEntry]


class QdrantVectorStore:
    """Async adapter over one Qdrant collection."""

    def __init__(self, settings: QdrantSettings, client: Optional[AsyncQdrantClient] = None):
        self.settings = settings
        self.collection = settings.collection_name
        self._client = client or AsyncQdrantClient(url=settings.host, api_key=settings.api_key)

    async def close(self) -> None:
        await self._client.close()

    # =========================================================================
    # Collection
    # =========================================================================

    async def collection_exists(self) -> bool:
        return bool(await self._client.collection_exists(self.collection))

    async def ensure_collection(self, vector_size: Optional[int] = None) -> None:
        """Create the collection and payload indexes when absent."""
        if await self.collection_exists():
            return

        size = vector_size or self.settings.vector_size
        logger.info(f"Creating collection {self.collection} (size={size})")
        await self._client.create_collection(
            collection_name=self.collection,
            vectors_config=models.VectorParams(size=size, distance=models.Distance.COSINE),
        )
        for key in KEYWORD_INDEXES:
            await self._client.create_payload_index(
                collection_name=self.collection,
                field_name=key,
                field_schema=models.PayloadSchemaType.KEYWORD,
            )
        for key in INTEGER_INDEXES:
            await self._client.create_payload_index(
                collection_name=self.collection,
                field_name=key,
                field_schema=models.PayloadSchemaType.INTEGER,
            )

    # =========================================================================
    # Points
    # =========================================================================

    async def upsert_points(self, points: Sequence[VectorPoint]) -> int:
        if not points:
            return 0
        await self._client.upsert(
            collection_name=self.collection,
            points=[
                models.PointStruct(
                    id=point.id,
                    vector=list(point.vector),
                    payload=point.payload.model_dump(mode="json"),
                )
                for point in points
            ],
            wait=True,
        )
        return len(points)

    async def delete_points(self, point_ids: Sequence[int]) -> int:
        if not point_ids:
            return 0
        await self._client.delete(
            collection_name=self.collection,
            points_selector=models.PointIdsList(points=list(point_ids)),
            wait=True,
        )
        return len(point_ids)

    async def count(self, point_type: Optional[str] = None, model_name: Optional[str] = None) -> int:
        """Exact point count, optionally filtered by tag and model."""
        if not await self.collection_exists():
            return 0
        result = await self._client.count(
            collection_name=self.collection,
            count_filter=self._filter(point_type, model_name),
            exact=True,
        )
        return int(result.count)

    async def delete_data_points(self, model_name: Optional[str] = None) -> int:
        """Remove data points (all models, or one), leaving schema points in place."""
        removed = await self.count(point_type=DATA_POINT_TYPE, model_name=model_name)
        if not removed:
            return 0
        await self._client.delete(
            collection_name=self.collection,
            points_selector=models.FilterSelector(filter=self._filter(DATA_POINT_TYPE, model_name)),
            wait=True,
        )
        return removed

    # =========================================================================
    # Search
    # =========================================================================

    async def search(
        self,
        vector: Sequence[float],
        point_type: Optional[str] = None,
        model_name: Optional[str] = None,
        limit: int = 10,
        score_threshold: Optional[float] = None,
    ) -> List[SearchHit]:
        """Nearest-neighbour search scoped by tag and model."""
        if not await self.collection_exists():
            return []

        response = await self._client.query_points(
            collection_name=self.collection,
            query=list(vector),
            query_filter=self._filter(point_type, model_name),
            limit=limit,
            score_threshold=score_threshold,
            with_payload=True,
            with_vectors=False,
        )

        hits: List[SearchHit] = []
        for point in response.points:
            hits.append(SearchHit(
                id=int(point.id),
                score=float(point.score),
                payload=parse_payload(point.payload or {}),
            ))
        return hits

    @staticmethod
    def _filter(point_type: Optional[str], model_name: Optional[str]) -> Optional[models.Filter]:
        must = []
        if point_type:
            must.append(models.FieldCondition(key="point_type", match=models.MatchValue(value=point_type)))
        if model_name:
            must.append(models.FieldCondition(key="model_name", match=models.MatchValue(value=model_name)))
        return models.Filter(must=must) if must else None
