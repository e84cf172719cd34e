"""
API Schemas
===========

Pydantic request/response models for the feedback, search and analyze endpoints.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class FeedbackCreate(BaseModel):
    """Body of POST /api/feedback."""
    text: Optional[str] = Field(None, max_length=20000)
    source: Optional[str] = Field(None, max_length=64)
    title: Optional[str] = Field(None, max_length=512)
    author: Optional[str] = Field(None, max_length=255)


class FeedbackAccepted(BaseModel):
    id: str
    status: str
    source: str
    message: str = "Feedback submitted successfully"


class Relevance(BaseModel):
    """Per-result relevance: a 0-100 integer plus a human-readable explanation."""
    score: int
    percentage: int
    explanation: str
    matched_keywords: List[str] = Field(default_factory=list)


class SearchDiagnostics(BaseModel):
    mode: str
    search_type: str
    steps: List[str]
    message: str
    fallback_reason: Optional[str] = None
    duration_ms: float = 0.0


class SearchResponse(BaseModel):
    query: str
    results: List[Dict[str, Any]]
    matches: int
    mode: str
    diagnostics: SearchDiagnostics


class AnalyzeRequest(BaseModel):
    """Body of POST /api/analyze."""
    query: Optional[str] = Field(None, max_length=2000)
