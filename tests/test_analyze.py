"""
/api/analyze: stats over recent feedback, intent filtering, optional LLM insight.
"""
import json

import pytest
from fastapi.testclient import TestClient

from app.main import app
from app.services.analysis_service import (
    AnalysisService,
    compute_stats,
    filter_by_intent,
    get_analysis_service,
    parse_insight,
)
from app.services.llm_providers import BaseLLMProvider, LLMProviderError

from conftest import MemoryFeedbackStore, make_item

client = TestClient(app)


class FakeLLM(BaseLLMProvider):
    def __init__(self, reply=None, error=None):
        self.reply = reply
        self.error = error
        self.prompts = []

    async def generate(self, prompt, system_prompt=None, temperature=0.7, max_tokens=1024, **kwargs):
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        return self.reply

    def get_model_info(self):
        return {"provider": "fake", "model": "fake-1"}


@pytest.fixture
def store():
    store = MemoryFeedbackStore()
    store.insert(make_item("Login has been broken", source="email", status="COMPLETED",
                           sentiment="negative", urgency="critical", category="Bug"))
    store.insert(make_item("Dark mode is amazing", source="discord", status="COMPLETED",
                           sentiment="positive", urgency="low", category="Feature Request"))
    store.insert(make_item("Dashboard is slow", source="github-issue", status="COMPLETED",
                           sentiment="negative", urgency="high", category="Performance"))
    store.insert(make_item("Docs are fine I guess", source="email", status="COMPLETED",
                           sentiment="neutral", urgency="low", category="Documentation"))
    return store


def test_compute_stats(store):
    stats = compute_stats(store.list_recent(100, 0))

    assert stats["total"] == 4
    assert stats["positive"] == 1
    assert stats["negative"] == 2
    assert stats["neutral"] == 1
    assert stats["critical"] == 1
    assert stats["high"] == 1
    assert sorted(stats["sources"]) == ["discord", "email", "github-issue"]


@pytest.mark.parametrize("query,expected", [
    ("What are the critical issues?", 2),
    ("anything URGENT?", 2),
    ("show me complaints", 2),
    ("negative feedback", 2),
    ("positive vibes", 1),
    ("summarize everything", 4),
])
def test_filter_by_intent(store, query, expected):
    assert len(filter_by_intent(store.list_recent(100, 0), query)) == expected


def test_parse_insight():
    assert parse_insight('{"summary": "ok", "sentiment_trend": "stable"}')["sentiment_trend"] == "stable"
    raw = parse_insight("not json at all")
    assert raw == {"summary": "not json at all", "raw": True}
    assert parse_insight("[1, 2]")["raw"] is True


async def test_analyze_without_llm(store):
    result = await AnalysisService(store=store, llm=None).analyze("critical issues")

    assert result["query"] == "critical issues"
    assert result["stats"]["total"] == 4
    assert result["filtered"]["count"] == 2
    assert result["ai"] == {"available": False, "insights": None}
    statuses = [s["status"] for s in result["thinking"]["steps"]]
    assert statuses == ["complete", "complete", "skipped", "complete"]


async def test_analyze_with_llm_insight(store):
    llm = FakeLLM(reply=json.dumps({"summary": "Login is on fire", "critical_count": 1}))

    result = await AnalysisService(store=store, llm=llm).analyze("what should we fix?")

    assert result["ai"]["available"] is True
    assert result["ai"]["insights"]["summary"] == "Login is on fire"
    assert "what should we fix?" in llm.prompts[0]
    assert "[email] negative" in llm.prompts[0]


async def test_llm_failure_is_reported_not_raised(store):
    llm = FakeLLM(error=LLMProviderError("rate limited", provider="fake"))

    result = await AnalysisService(store=store, llm=llm).analyze("trends?")

    assert result["ai"]["insights"] == {"error": "LLM analysis unavailable"}
    assert result["thinking"]["steps"][2]["status"] == "failed"


def test_analyze_endpoint(store):
    app.dependency_overrides[get_analysis_service] = lambda: AnalysisService(store=store, llm=None)
    try:
        response = client.post("/api/analyze", json={"query": "positive"})
        missing = client.post("/api/analyze", json={})
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 200
    assert response.json()["filtered"]["count"] == 1
    assert missing.status_code == 400
    assert missing.json()["error"]["code"] == "FBI-API-001"
