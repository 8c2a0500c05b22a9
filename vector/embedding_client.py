"""Voyage AI embedding client.

Thin HTTP client over the Voyage ``/embeddings`` endpoint. Texts longer than
``MAX_TEXT_CHARS`` are truncated; batches larger than the provider limit are
split transparently.
"""

from typing import Callable, List, Optional

import aiohttp

from core.config import EmbeddingSettings, MAX_EMBEDDING_BATCH
from core.observability.logging import get_logger

logger = get_logger(__name__)

MAX_TEXT_CHARS = 30000


class EmbeddingError(Exception):
    """Embedding request failed."""
    def __init__(self, message: str, status_code: int = 0, response_body: str = ""):
        super().__init__(message)
        self.status_code = status_code
        self.response_body = response_body


class VoyageEmbeddingClient:
    """Embeds texts with Voyage AI.

    Usage:
        async with VoyageEmbeddingClient(settings) as embedder:
            vectors = await embedder.embed_batch(["crm.lead field name ..."])
    """

    def __init__(self, settings: EmbeddingSettings, session: Optional[aiohttp.ClientSession] = None):
        self.settings = settings.require()
        self._session = session
        self._owns_session = session is None

    @property
    def dimensions(self) -> int:
        return self.settings.dimensions

    async def __aenter__(self) -> "VoyageEmbeddingClient":
        self._ensure_session()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            timeout = aiohttp.ClientTimeout(total=self.settings.timeout_seconds)
            self._session = aiohttp.ClientSession(timeout=timeout)
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._session and self._owns_session:
            await self._session.close()
        self._session = None

    async def embed_batch(
        self,
        texts: List[str],
        input_type: str = "document",
        on_progress: Optional[Callable[[int, int], None]] = None,
    ) -> List[List[float]]:
        """Embed many texts, split into provider-sized requests.

        Returns:
            One vector per input text, in input order
        """
        if not texts:
            return []

        batch_size = min(self.settings.max_batch_size, MAX_EMBEDDING_BATCH)
        vectors: List[List[float]] = []
        for start in range(0, len(texts), batch_size):
            chunk = texts[start:start + batch_size]
            vectors.extend(await self._request(chunk, input_type))
            if on_progress:
                on_progress(min(start + batch_size, len(texts)), len(texts))
        return vectors

    async def _request(self, texts: List[str], input_type: str) -> List[List[float]]:
        session = self._ensure_session()
        body = {
            "input": [t[:MAX_TEXT_CHARS] for t in texts],
            "model": self.settings.model,
            "input_type": input_type,
            "output_dimension": self.settings.dimensions,
        }
        headers = {
            "Authorization": f"Bearer {self.settings.api_key}",
            "Content-Type": "application/json",
        }
        url = self.settings.base_url.rstrip("/") + "/embeddings"

        try:
            async with session.post(url, json=body, headers=headers) as response:
                if response.status >= 400:
                    text = await response.text()
                    raise EmbeddingError(
                        f"Voyage embeddings failed with HTTP {response.status}",
                        response.status,
                        text,
                    )
                payload = await response.json()
        except aiohttp.ClientError as exc:
            raise EmbeddingError(f"Voyage request failed: {exc}") from exc

        data = sorted(payload.get("data", []), key=lambda item: item.get("index", 0))
        if len(data) != len(texts):
            raise EmbeddingError(f"Expected {len(texts)} embeddings, got {len(data)}")
        return [item["embedding"] for item in data]
