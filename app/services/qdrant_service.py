"""
Qdrant vector index for feedback embeddings.

One collection holds one point per feedback item. The point id is the
feedback UUID; the payload carries ``item_id``, ``sentiment`` and
``category``. Any client error is raised as VectorIndexError so callers
can fall back to keyword search.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from qdrant_client import QdrantClient
from qdrant_client.http import models

from app.config import settings
from app.core.errors import VectorIndexError
from app.services.interfaces import VectorMatch

logger = logging.getLogger(__name__)

DISTANCE_METRIC = models.Distance.COSINE

HNSW_CONFIG = models.HnswConfigDiff(
    m=16,                    # Edges per node (higher = better recall, more memory)
    ef_construct=100,        # Candidate list size during index construction
    full_scan_threshold=10000,
)


def _point_id(item_id: str) -> str:
    """Qdrant ids must be UUIDs or unsigned ints; feedback ids are UUID strings."""
    return str(uuid.UUID(item_id))


class QdrantVectorIndex:
    """VectorIndex implementation on a single Qdrant collection."""

    def __init__(
        self,
        collection_name: Optional[str] = None,
        vector_size: Optional[int] = None,
        client: Optional[QdrantClient] = None,
    ):
        self.collection_name = collection_name or settings.qdrant_collection
        self.vector_size = vector_size or settings.embedding_dimensions
        self._client = client
        self._collection_ready = False

    @property
    def client(self) -> QdrantClient:
        """Get or create Qdrant client connection."""
        if self._client is None:
            if settings.qdrant_url:
                self._client = QdrantClient(
                    url=settings.qdrant_url,
                    api_key=settings.qdrant_api_key,
                    timeout=settings.qdrant_timeout_s,
                )
            else:
                self._client = QdrantClient(
                    host=settings.qdrant_host,
                    port=settings.qdrant_port,
                    timeout=settings.qdrant_timeout_s,
                )
        return self._client

    def ensure_collection(self) -> None:
        """Create the collection (and payload indexes) if it does not exist yet."""
        if self._collection_ready:
            return
        try:
            if not self.client.collection_exists(self.collection_name):
                self.client.create_collection(
                    collection_name=self.collection_name,
                    vectors_config=models.VectorParams(
                        size=self.vector_size,
                        distance=DISTANCE_METRIC,
                    ),
                    hnsw_config=HNSW_CONFIG,
                )
                for field_name in ("sentiment", "category"):
                    self.client.create_payload_index(
                        collection_name=self.collection_name,
                        field_name=field_name,
                        field_schema=models.PayloadSchemaType.KEYWORD,
                    )
                logger.info("Created Qdrant collection %s (dim=%d)", self.collection_name, self.vector_size)
        except Exception as e:
            raise VectorIndexError(
                detail=f"ensure_collection failed: {e}",
                context={"collection": self.collection_name},
            ) from e
        self._collection_ready = True

    def upsert(self, item_id: str, vector: List[float], metadata: Dict[str, Any]) -> str:
        """Insert or replace the point for *item_id*. Returns the point id."""
        self.ensure_collection()
        point_id = _point_id(item_id)
        try:
            self.client.upsert(
                collection_name=self.collection_name,
                points=[models.PointStruct(id=point_id, vector=vector, payload=metadata)],
                wait=True,
            )
        except Exception as e:
            raise VectorIndexError(
                detail=f"upsert failed: {e}",
                context={"collection": self.collection_name, "item_id": item_id},
            ) from e
        return point_id

    def query(self, vector: List[float], top_k: int) -> List[VectorMatch]:
        """Nearest neighbours of *vector*, best first."""
        self.ensure_collection()
        try:
            response = self.client.query_points(
                collection_name=self.collection_name,
                query=vector,
                limit=top_k,
                with_payload=True,
                with_vectors=False,
            )
        except Exception as e:
            raise VectorIndexError(
                detail=f"query failed: {e}",
                context={"collection": self.collection_name},
            ) from e

        return [
            VectorMatch(
                item_id=(hit.payload or {}).get("item_id") or str(hit.id),
                score=hit.score,
                metadata=hit.payload or {},
            )
            for hit in response.points
        ]

    def health_check(self) -> Dict[str, Any]:
        """Check Qdrant connection health."""
        try:
            collections = self.client.get_collections()
            return {
                "status": "ok",
                "collections_count": len(collections.collections),
                "timestamp": datetime.now(timezone.utc).isoformat(),
            }
        except Exception as e:
            logger.warning("qdrant_health_check_failed", extra={"error": str(e)})
            return {
                "status": "down",
                "detail_safe": f"Check failed: {type(e).__name__}",
                "timestamp": datetime.now(timezone.utc).isoformat(),
            }

    def close(self):
        """Close the Qdrant client connection."""
        if self._client:
            self._client.close()
            self._client = None


_vector_index: Optional[QdrantVectorIndex] = None


def get_vector_index() -> QdrantVectorIndex:
    """Get the singleton vector index instance."""
    global _vector_index
    if _vector_index is None:
        _vector_index = QdrantVectorIndex()
    return _vector_index
