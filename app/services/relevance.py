"""
Relevance scoring for search results.

Converts the raw signal a search strategy produced (cosine similarity for
vector mode, query-word overlap for keyword mode) into a 0-100 integer and
a short explanation. Explanations name the signal, so a reader can tell
which engine produced a hit.
"""

import math
from dataclasses import dataclass, field
from typing import Any, Dict, List

from app.models.feedback import KEYWORD_FIELDS, FeedbackItem

MODE_VECTOR = "vector"
MODE_KEYWORD = "keyword"

# A keyword hit reaching the scorer already matched upstream; never label it below this
KEYWORD_SCORE_FLOOR = 20
MAX_CITED_KEYWORDS = 3

_SIGNAL_NAMES = {
    MODE_VECTOR: "semantic similarity",
    MODE_KEYWORD: "keyword overlap",
}

_BAND_DETAILS = {
    MODE_VECTOR: {
        "good": "Similar content and language patterns detected.",
        "moderate": "Some conceptual overlap with your search.",
        "weak": "Could be relevant to your search.",
    },
    MODE_KEYWORD: {
        "good": "Most of your search terms appear in this feedback.",
        "moderate": "Some of your search terms appear in this feedback.",
        "weak": "Contains part of your search.",
    },
}


@dataclass(frozen=True)
class RelevanceScore:
    score: int
    explanation: str
    matched_keywords: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "score": self.score,
            "percentage": self.score,
            "explanation": self.explanation,
            "matched_keywords": list(self.matched_keywords),
        }


def tokenize(query: str) -> List[str]:
    """Lowercase, split on whitespace, drop empty tokens."""
    return [w for w in (query or "").lower().split() if w]


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def matched_keywords(text: str, query: str) -> List[str]:
    """Distinct query words found in *text*, in query order."""
    haystack = (text or "").lower()
    seen: List[str] = []
    for word in tokenize(query):
        if word in haystack and word not in seen:
            seen.append(word)
    return seen


def keyword_overlap(text: str, query: str) -> float:
    """Fraction of query words (with repeats) that occur in *text*."""
    words = tokenize(query)
    if not words:
        return 0.0
    haystack = (text or "").lower()
    return sum(1 for w in words if w in haystack) / len(words)


def vector_score(similarity: float) -> int:
    return max(0, min(100, _round_half_up(similarity * 100)))


def keyword_score(overlap: float) -> int:
    return max(KEYWORD_SCORE_FLOOR, min(100, _round_half_up(overlap * 100)))


def explain(score: int, mode: str, keywords: List[str]) -> str:
    signal = _SIGNAL_NAMES[mode]
    if score > 80:
        if keywords:
            return f"Very strong match by {signal}. Keywords: {', '.join(keywords[:MAX_CITED_KEYWORDS])}"
        return f"Very strong match by {signal}. High relevance."
    details = _BAND_DETAILS[mode]
    if score > 60:
        return f"Good match by {signal}. {details['good']}"
    if score > 40:
        return f"Moderate relevance by {signal}. {details['moderate']}"
    return f"Weak/related match by {signal}. {details['weak']}"


def searchable_text(item: FeedbackItem) -> str:
    """The same columns keyword search matched on, joined into one string."""
    return " ".join(value for value in (getattr(item, name) for name in KEYWORD_FIELDS) if value)


class RelevanceScorer:
    """Scores one candidate item against the query for a given mode."""

    def score(self, item: FeedbackItem, query: str, signal: float, mode: str) -> RelevanceScore:
        if mode not in _SIGNAL_NAMES:
            raise ValueError(f"Unknown search mode: {mode!r}")

        text = searchable_text(item)
        keywords = matched_keywords(text, query)

        if mode == MODE_VECTOR:
            value = vector_score(signal)
        else:
            value = keyword_score(signal)

        return RelevanceScore(score=value, explanation=explain(value, mode, keywords), matched_keywords=keywords)
