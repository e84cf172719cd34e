"""
Keyword heuristics used by the classify stage.
"""
import pytest

from app.services.classifier import (
    CATEGORIES,
    CATEGORY_KEYWORDS,
    URGENCY_LEVELS,
    classify_category,
    classify_urgency,
    extract_tags,
    normalize_sentiment,
    summarize,
)


class TestUrgency:
    @pytest.mark.parametrize("text,expected", [
        ("Login has been broken for 3 days", "critical"),
        ("App CRASHES on startup", "critical"),
        ("There is an issue with exports", "high"),
        ("Got an error when saving", "high"),
        ("Could you improve the onboarding?", "medium"),
        ("Search is a bit slow", "medium"),
        ("Love the new release", "low"),
        ("", "low"),
    ])
    def test_levels(self, text, expected):
        assert classify_urgency(text) == expected

    def test_critical_wins_over_high(self):
        assert classify_urgency("This bug means checkout is broken") == "critical"


class TestCategory:
    @pytest.mark.parametrize("text,expected", [
        ("The app crashes every time", "Bug"),
        ("Please add dark mode", "Feature Request"),
        ("The docs are outdated", "Documentation"),
        ("Dashboard is slow", "Performance"),
        ("Great customer support team!", "Other"),
    ])
    def test_buckets(self, text, expected):
        assert classify_category(text) == expected

    def test_tables_are_read_only(self):
        with pytest.raises(TypeError):
            CATEGORY_KEYWORDS["Billing"] = ("invoice",)


class TestTags:
    def test_multiple_tags_in_vocabulary_order(self):
        assert extract_tags("The mobile app crashes when I open it") == ["Mobile", "Crash"]

    def test_no_tags(self):
        assert extract_tags("Thanks!") == []


class TestSummarize:
    def test_exactly_100_chars_verbatim(self):
        text = "a" * 100
        assert summarize(text) == text

    def test_101_chars_truncated(self):
        text = "b" * 101
        summary = summarize(text)
        assert summary == "b" * 97 + "..."
        assert len(summary) == 100

    def test_short_text_verbatim(self):
        assert summarize("Short note") == "Short note"


class TestSentiment:
    @pytest.mark.parametrize("label,expected", [
        ("POSITIVE", "positive"),
        ("NEGATIVE", "negative"),
        ("LABEL_1", "positive"),
        ("LABEL_0", "negative"),
        ("something-else", "neutral"),
    ])
    def test_labels(self, label, expected):
        assert normalize_sentiment({"labels": [{"label": label, "score": 0.9}]}) == expected

    def test_empty_response_is_neutral(self):
        assert normalize_sentiment(None) == "neutral"
        assert normalize_sentiment({"labels": []}) == "neutral"


@pytest.mark.parametrize("text", [
    "Login has been broken for 3 days",
    "Please add an export button",
    "Dashboard is slow",
    "Thanks for the quick fix",
])
def test_labels_come_from_fixed_vocabularies(text):
    assert classify_category(text) in CATEGORIES
    assert classify_urgency(text) in URGENCY_LEVELS
