"""
Keyword heuristics for feedback annotation.

Category, urgency, tags and summary are pure functions of the text so the
classify step can be re-run after a crash and produce the same result.
The trigger tables below are read-only mappings from label to keywords;
matching is a lowercase substring check.
"""

from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Tuple

CATEGORY_OTHER = "Other"

# Checked in order; the first bucket with a hit wins
CATEGORY_KEYWORDS: Mapping[str, Tuple[str, ...]] = MappingProxyType({
    "Bug": ("bug", "broken", "crash", "error", "exception", "fail", "not working", "doesn't work", "glitch"),
    "Feature Request": ("feature", "please add", "would be nice", "would love", "wish", "request", "support for", "dark mode"),
    "Documentation": ("documentation", "docs", "doc ", "guide", "readme", "tutorial", "example"),
    "Performance": ("slow", "performance", "latency", "lag", "timeout", "speed", "loading time"),
})
CATEGORIES: Tuple[str, ...] = tuple(CATEGORY_KEYWORDS) + (CATEGORY_OTHER,)

URGENCY_LOW = "low"

# Checked in order: critical, then high, then medium; no hit means low
URGENCY_KEYWORDS: Mapping[str, Tuple[str, ...]] = MappingProxyType({
    "critical": ("broken", "crash", "emergency", "urgent"),
    "high": ("issue", "problem", "bug", "error"),
    "medium": ("improve", "slow", "suggest"),
})
URGENCY_LEVELS: Tuple[str, ...] = tuple(URGENCY_KEYWORDS) + (URGENCY_LOW,)

# Independent checks; any number of tags may apply
TAG_KEYWORDS: Mapping[str, Tuple[str, ...]] = MappingProxyType({
    "UX": ("ui", "interface", "design", "button", "color", "layout"),
    "Performance": ("slow", "fast", "speed", "lag", "timeout", "latency"),
    "Documentation": ("doc", "guide", "readme", "tutorial", "example"),
    "Mobile": ("mobile", "phone", "ios", "android", "responsive"),
    "API": ("api", "endpoint", "rest", "graphql", "sdk"),
    "Security": ("security", "auth", "ssl", "encrypt", "token"),
    "Crash": ("crash", "error", "fail", "exception", "broken"),
})

SUMMARY_MAX_CHARS = 100
SUMMARY_TRUNCATE_AT = 97

SENTIMENT_NEUTRAL = "neutral"
_SENTIMENT_LABELS = {
    "positive": "positive",
    "pos": "positive",
    "label_1": "positive",
    "negative": "negative",
    "neg": "negative",
    "label_0": "negative",
    "neutral": SENTIMENT_NEUTRAL,
}


def _contains_any(text: str, keywords: Tuple[str, ...]) -> bool:
    return any(k in text for k in keywords)


def classify_category(text: str) -> str:
    lower = (text or "").lower()
    for category, keywords in CATEGORY_KEYWORDS.items():
        if _contains_any(lower, keywords):
            return category
    return CATEGORY_OTHER


def classify_urgency(text: str) -> str:
    lower = (text or "").lower()
    for level, keywords in URGENCY_KEYWORDS.items():
        if _contains_any(lower, keywords):
            return level
    return URGENCY_LOW


def extract_tags(text: str) -> List[str]:
    """Tags whose keyword set hits the text, in vocabulary order."""
    lower = (text or "").lower()
    return [tag for tag, keywords in TAG_KEYWORDS.items() if _contains_any(lower, keywords)]


def summarize(text: str) -> str:
    """Text verbatim up to 100 chars, else the first 97 chars plus '...'."""
    text = text or ""
    if len(text) > SUMMARY_MAX_CHARS:
        return text[:SUMMARY_TRUNCATE_AT] + "..."
    return text


def normalize_sentiment(response: Optional[Dict[str, Any]]) -> str:
    """Map a classifier response ({"labels": [{"label": ...}]}) onto positive/negative/neutral."""
    labels = response.get("labels") if isinstance(response, dict) else None
    if not labels or not isinstance(labels, list) or not isinstance(labels[0], dict):
        return SENTIMENT_NEUTRAL
    label = str(labels[0].get("label", "")).strip().lower()
    return _SENTIMENT_LABELS.get(label, SENTIMENT_NEUTRAL)
