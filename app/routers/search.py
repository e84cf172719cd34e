"""
Search API endpoint.

Vector search first, keyword search when the vector path fails or finds
nothing. Engine calls are synchronous and wrapped via run_sync().
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from app.core.async_utils import run_sync
from app.core.errors import InvalidQuery
from app.models.schemas import SearchResponse
from app.services.search_service import HybridSearchEngine, get_search_engine

router = APIRouter()


@router.get("/search", response_model=SearchResponse)
async def search_feedback(
    q: Optional[str] = Query(None, description="Search query"),
    engine: HybridSearchEngine = Depends(get_search_engine),
):
    """
    Search feedback by meaning, falling back to keywords.

    Every result carries a relevance block (score, percentage,
    explanation, matched_keywords).
    """
    if q is None or not q.strip():
        raise InvalidQuery(detail="query parameter 'q' is required", context={"param": "q"})
    outcome = await run_sync(engine.search, q)
    return outcome.to_response()
