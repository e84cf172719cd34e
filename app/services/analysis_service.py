"""
Feedback analysis for product managers.

Summarizes the newest feedback (sentiment/urgency counts, sources),
narrows it by the intent of a free-text question, and optionally asks
the configured LLM for a short JSON insight. LLM problems are reported
in the response; they never fail the request.
"""

import json
import logging
from typing import Any, Dict, List, Optional

from app.config import settings
from app.core.async_utils import run_sync
from app.core.errors import InvalidInput
from app.models.feedback import FeedbackItem
from app.services.feedback_store import get_feedback_store
from app.services.interfaces import FeedbackStore
from app.services.llm_providers import BaseLLMProvider, LLMProviderError, get_llm_provider

logger = logging.getLogger(__name__)

ANALYSIS_WINDOW = 100
INSIGHT_CONTEXT_ITEMS = 10
FILTERED_SAMPLE_SIZE = 10

INSIGHT_PROMPT = """You are a PM analyzing customer feedback. Based on this feedback:
{feedback}

Query: "{query}"

Provide a brief JSON response with:
1. "summary": one sentence summary
2. "critical_count": number of critical issues
3. "recommendation": one actionable recommendation for the PM
4. "sentiment_trend": "improving", "declining", or "stable"

Respond with only valid JSON, no other text."""


def compute_stats(items: List[FeedbackItem]) -> Dict[str, Any]:
    sources: List[str] = []
    for item in items:
        if item.source not in sources:
            sources.append(item.source)
    return {
        "total": len(items),
        "positive": sum(1 for i in items if i.sentiment == "positive"),
        "negative": sum(1 for i in items if i.sentiment == "negative"),
        "neutral": sum(1 for i in items if i.sentiment == "neutral"),
        "critical": sum(1 for i in items if i.urgency == "critical"),
        "high": sum(1 for i in items if i.urgency == "high"),
        "sources": sources,
    }


def filter_by_intent(items: List[FeedbackItem], query: str) -> List[FeedbackItem]:
    """critical/urgent → critical+high urgency, negative/complaint → negative, positive → positive."""
    q = query.lower()
    if "critical" in q or "urgent" in q:
        return [i for i in items if i.urgency in ("critical", "high")]
    if "negative" in q or "complaint" in q:
        return [i for i in items if i.sentiment == "negative"]
    if "positive" in q:
        return [i for i in items if i.sentiment == "positive"]
    return items


def parse_insight(text: str) -> Dict[str, Any]:
    try:
        parsed = json.loads(text)
        if isinstance(parsed, dict):
            return parsed
    except json.JSONDecodeError:
        pass
    return {"summary": text[:200], "raw": True}


class AnalysisService:

    def __init__(self, store: Optional[FeedbackStore] = None, llm: Optional[BaseLLMProvider] = None):
        self.store = store or get_feedback_store()
        self.llm = llm

    async def analyze(self, query: Optional[str]) -> Dict[str, Any]:
        if query is None or not query.strip():
            raise InvalidInput(detail="query field is required", context={"field": "query"})

        items = await run_sync(self.store.list_recent, ANALYSIS_WINDOW, 0)
        stats = compute_stats(items)
        filtered = filter_by_intent(items, query)
        insights = await self._insights(items, query)

        return {
            "query": query,
            "stats": stats,
            "filtered": {
                "count": len(filtered),
                "items": [i.to_dict() for i in filtered[:FILTERED_SAMPLE_SIZE]],
            },
            "ai": {
                "available": self.llm is not None,
                "insights": insights,
            },
            "thinking": {
                "steps": [
                    {"step": 1, "action": "Query feedback store", "status": "complete", "count": len(items)},
                    {"step": 2, "action": "Compute sentiment and urgency stats", "status": "complete"},
                    {"step": 3, "action": "LLM insight generation", "status": _insight_status(self.llm, insights)},
                    {"step": 4, "action": "Filter by query intent", "status": "complete", "count": len(filtered)},
                ],
            },
        }

    async def _insights(self, items: List[FeedbackItem], query: str) -> Optional[Dict[str, Any]]:
        if self.llm is None:
            return None
        context = "\n".join(
            f'[{i.source}] {i.sentiment}: "{i.raw_text[:100]}"' for i in items[:INSIGHT_CONTEXT_ITEMS]
        )
        try:
            text = await self.llm.generate(
                INSIGHT_PROMPT.format(feedback=context, query=query),
                temperature=settings.llm_temperature,
                max_tokens=settings.llm_max_tokens,
            )
        except LLMProviderError as e:
            logger.error(
                "LLM insight generation failed (%s): %s", e.provider, e.message,
                extra={"error.code": "FBI-LLM-001"},
            )
            return {"error": "LLM analysis unavailable"}
        return parse_insight(text)


def _insight_status(llm: Optional[BaseLLMProvider], insights: Optional[Dict[str, Any]]) -> str:
    if llm is None:
        return "skipped"
    if insights and "error" in insights:
        return "failed"
    return "complete"


def get_analysis_service() -> AnalysisService:
    """Analysis service wired to the configured LLM provider (if any)."""
    try:
        llm = get_llm_provider()
    except LLMProviderError as e:
        logger.warning("LLM provider unavailable for analysis: %s", e.message)
        llm = None
    return AnalysisService(llm=llm)
