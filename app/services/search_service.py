"""
Hybrid search over feedback items.

Search runs an ordered chain of strategies: vector (embed the query,
nearest-neighbour lookup, hydrate from the store) then keyword (substring
match in the store, newest first). Each strategy reports a StrategyResult
instead of raising; the engine takes the first result with hits, so a
failing vector index or embedding model only costs the semantic ranking.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from app.config import settings
from app.core.errors import FeedbackIntelError, InvalidQuery, SearchUnavailable, VectorIndexError, StoreError
from app.models.feedback import FeedbackItem
from app.services.embedding_service import get_embedding_service
from app.services.feedback_store import get_feedback_store
from app.services.interfaces import EmbeddingProvider, FeedbackStore, VectorIndex
from app.services.qdrant_service import get_vector_index
from app.services.relevance import (
    MODE_KEYWORD,
    MODE_VECTOR,
    RelevanceScorer,
    keyword_overlap,
    searchable_text,
    tokenize,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SearchHit:
    item: FeedbackItem
    signal: float


@dataclass
class StrategyResult:
    mode: str
    hits: List[SearchHit] = field(default_factory=list)
    error: Optional[FeedbackIntelError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class SearchOutcome:
    query: str
    results: List[Dict[str, Any]]
    mode: str
    diagnostics: Dict[str, Any]

    def to_response(self) -> Dict[str, Any]:
        return {
            "query": self.query,
            "results": self.results,
            "matches": len(self.results),
            "mode": self.mode,
            "diagnostics": self.diagnostics,
        }


class VectorStrategy:
    """Semantic lookup: embed, query the index, hydrate in neighbour order."""

    mode = MODE_VECTOR
    search_type = "semantic"

    def __init__(self, embedder: EmbeddingProvider, index: VectorIndex, store: FeedbackStore, top_k: int):
        self.embedder = embedder
        self.index = index
        self.store = store
        self.top_k = top_k

    @property
    def steps(self) -> List[str]:
        dims = getattr(self.embedder, "dimensions", settings.embedding_dimensions)
        return [
            f"1. Converted your search query to a vector embedding ({dims} dimensions)",
            "2. Searched the vector index for similar feedback vectors",
            "3. Ranked results by semantic similarity score",
            "4. Retrieved full feedback details from database",
        ]

    def run(self, query: str) -> StrategyResult:
        try:
            vector = self.embedder.embed(query)
            matches = self.index.query(vector, self.top_k)
            if not matches:
                return StrategyResult(self.mode)

            items = {item.id: item for item in self.store.get_many([m.item_id for m in matches])}
        except FeedbackIntelError as e:
            logger.warning("vector_search_failed", extra={"error.code": e.code, "error.message": e.detail})
            return StrategyResult(self.mode, error=e)
        except Exception as e:
            logger.exception("vector_search_crashed")
            return StrategyResult(self.mode, error=VectorIndexError(detail=f"vector search crashed: {e}"))

        hits: List[SearchHit] = []
        seen = set()
        for match in matches:
            item = items.get(match.item_id)
            if item is None or match.item_id in seen:
                continue  # stale vector or duplicate point
            seen.add(match.item_id)
            hits.append(SearchHit(item=item, signal=match.score))
        return StrategyResult(self.mode, hits=hits)


class KeywordStrategy:
    """Substring match of any query word against stored text, newest first."""

    mode = MODE_KEYWORD
    search_type = "keyword"
    steps = [
        "1. Searched feedback content for keyword matches",
        "2. Searched titles, summaries and tags for relevance",
        "3. Ranked results by recency",
        "4. Retrieved full feedback details from database",
    ]

    def __init__(self, store: FeedbackStore, limit: int):
        self.store = store
        self.limit = limit

    def run(self, query: str) -> StrategyResult:
        try:
            items = self.store.keyword_search(tokenize(query), self.limit)
        except FeedbackIntelError as e:
            logger.error("keyword_search_failed", extra={"error.code": e.code, "error.message": e.detail})
            return StrategyResult(self.mode, error=e)
        except Exception as e:
            logger.exception("keyword_search_crashed")
            return StrategyResult(self.mode, error=StoreError(detail=f"keyword search crashed: {e}"))

        return StrategyResult(
            self.mode,
            hits=[SearchHit(item=item, signal=keyword_overlap(searchable_text(item), query)) for item in items],
        )


class HybridSearchEngine:
    """Runs the strategy chain and attaches relevance to each hit."""

    def __init__(self, strategies: Sequence[Any], scorer: Optional[RelevanceScorer] = None):
        if not strategies:
            raise ValueError("at least one search strategy is required")
        self.strategies = list(strategies)
        self.scorer = scorer or RelevanceScorer()

    def search(self, query: Optional[str]) -> SearchOutcome:
        """
        Search feedback for *query*.

        Raises:
            InvalidQuery: query is missing or blank.
            SearchUnavailable: every strategy failed.
        """
        if query is None or not query.strip():
            raise InvalidQuery(detail="empty search query")
        query = query.strip()
        start = time.perf_counter()

        attempts: List[StrategyResult] = []
        chosen: Optional[StrategyResult] = None
        chosen_strategy = None
        for strategy in self.strategies:
            result = strategy.run(query)
            attempts.append(result)
            if result.ok and result.hits:
                chosen, chosen_strategy = result, strategy
                break

        if chosen is None:
            for strategy, result in reversed(list(zip(self.strategies, attempts))):
                if result.ok:
                    chosen, chosen_strategy = result, strategy
                    break

        if chosen is None:
            codes = [r.error.code for r in attempts if r.error]
            raise SearchUnavailable(detail="all search strategies failed", context={"codes": codes})

        results = []
        for hit in chosen.hits:
            relevance = self.scorer.score(hit.item, query, hit.signal, chosen.mode)
            results.append({**hit.item.to_dict(), "relevance": relevance.to_dict()})

        duration_ms = round((time.perf_counter() - start) * 1000, 2)
        diagnostics = {
            "mode": chosen.mode,
            "search_type": chosen_strategy.search_type,
            "steps": list(chosen_strategy.steps),
            "message": f'Found {len(results)} feedback items matching "{query}"',
            "fallback_reason": self._fallback_reason(attempts, chosen),
            "duration_ms": duration_ms,
        }
        logger.info(
            "search_completed",
            extra={"mode": chosen.mode, "matches": len(results), "duration_ms": duration_ms},
        )
        return SearchOutcome(query=query, results=results, mode=chosen.mode, diagnostics=diagnostics)

    @staticmethod
    def _fallback_reason(attempts: List[StrategyResult], chosen: StrategyResult) -> Optional[str]:
        for result in attempts:
            if result is chosen:
                return None
            if result.error is not None:
                return result.error.code
            return f"no_{result.mode}_candidates"
        return None


def build_search_engine(
    embedder: Optional[EmbeddingProvider] = None,
    index: Optional[VectorIndex] = None,
    store: Optional[FeedbackStore] = None,
) -> HybridSearchEngine:
    """Wire the default vector → keyword chain."""
    store = store or get_feedback_store()
    return HybridSearchEngine([
        VectorStrategy(
            embedder or get_embedding_service(),
            index or get_vector_index(),
            store,
            top_k=settings.search_top_k,
        ),
        KeywordStrategy(store, limit=settings.keyword_search_limit),
    ])


_search_engine: Optional[HybridSearchEngine] = None


def get_search_engine() -> HybridSearchEngine:
    """Get the singleton search engine instance."""
    global _search_engine
    if _search_engine is None:
        _search_engine = build_search_engine()
    return _search_engine
