"""Qdrant-backed store of embedded book passages."""

import logging
from typing import Any

from qdrant_client import AsyncQdrantClient, models

from bookgate.rag.types import BookPassage

logger = logging.getLogger("bookgate.rag")


class VectorStoreError(Exception):
    """Raised when the vector store is unavailable or misconfigured."""


class BookVectorStore:
    """Lazily connects one ``AsyncQdrantClient`` and reuses it for the process."""

    def __init__(
        self,
        url: str | None,
        api_key: str | None = None,
        collection: str = "book_content",
        vector_size: int = 1536,
        client: Any | None = None,
    ):
        self._url = url
        self._api_key = api_key
        self._collection = collection
        self._vector_size = vector_size
        self._client = client

    @property
    def configured(self) -> bool:
        return self._client is not None or bool(self._url)

    @property
    def collection(self) -> str:
        return self._collection

    def _get_client(self) -> Any:
        if self._client is None:
            if not self._url:
                raise VectorStoreError("Qdrant URL is not configured")
            self._client = AsyncQdrantClient(url=self._url, api_key=self._api_key)
        return self._client

    async def ensure_collection(self) -> bool:
        """Create the collection when missing; returns True if it was created."""
        client = self._get_client()
        response = await client.get_collections()
        names = {item.name for item in response.collections}
        if self._collection in names:
            return False
        logger.info("qdrant_collection_created", extra={"operation": self._collection})
        await client.create_collection(
            collection_name=self._collection,
            vectors_config=models.VectorParams(
                size=self._vector_size, distance=models.Distance.COSINE
            ),
        )
        return True

    async def search(self, vector: list[float], limit: int = 5) -> list[BookPassage]:
        if limit < 1:
            return []
        client = self._get_client()
        response = await client.query_points(
            collection_name=self._collection,
            query=vector,
            limit=limit,
            with_payload=True,
        )
        passages: list[BookPassage] = []
        for point in response.points:
            payload = point.payload or {}
            passages.append(
                BookPassage(
                    text=str(payload.get("text") or payload.get("content") or ""),
                    score=round(float(point.score), 6),
                    chapter=str(payload.get("chapter") or "Unknown"),
                    section=str(payload.get("section") or "Unknown"),
                    metadata={
                        str(key): str(value)
                        for key, value in payload.items()
                        if key not in {"text", "content"}
                    },
                )
            )
        return passages

    async def upsert(
        self,
        point_id: str,
        vector: list[float],
        text: str,
        metadata: dict[str, str] | None = None,
    ) -> None:
        if len(vector) != self._vector_size:
            raise VectorStoreError(
                f"embedding dimension mismatch: expected {self._vector_size}, got {len(vector)}"
            )
        client = self._get_client()
        await client.upsert(
            collection_name=self._collection,
            wait=True,
            points=[
                models.PointStruct(
                    id=point_id,
                    vector=vector,
                    payload={"text": text, **(metadata or {})},
                )
            ],
        )

    async def ping(self) -> str:
        if not self.configured:
            return "not_configured"
        try:
            await self._get_client().get_collections()
        except Exception as exc:
            logger.warning("qdrant_ping_failed", extra={"error_code": type(exc).__name__})
            return "unavailable"
        return "ok"

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()
