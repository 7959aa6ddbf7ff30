from __future__ import annotations

import json

from inbox_digest.llm.responses import (
    ParsedBatch,
    ParsedClassification,
    ParseFailure,
    parse_batch_summary,
    parse_classification,
)
from inbox_digest.models import ClassifiedRef, DigestEntry


def test_classification_is_parsed_into_all_five_categories() -> None:
    raw = json.dumps({"urgent": [{"subject": "A", "sender": "x"}], "spam": [{"subject": "S", "sender": "z"}]})

    result = parse_classification(raw)

    assert isinstance(result, ParsedClassification)
    assert result.categories["urgent"] == [ClassifiedRef(subject="A", sender="x")]
    assert result.categories["spam"] == [ClassifiedRef(subject="S", sender="z")]
    assert result.categories["goodToKnow"] == []
    assert set(result.categories) == {"urgent", "important", "goodToKnow", "notImportant", "spam"}


def test_classification_null_category_and_null_sender_are_tolerated() -> None:
    raw = json.dumps({"important": None, "urgent": [{"subject": "A", "sender": None}]})

    result = parse_classification(raw)

    assert isinstance(result, ParsedClassification)
    assert result.categories["important"] == []
    assert result.categories["urgent"] == [ClassifiedRef(subject="A", sender="")]


def test_classification_failures_are_values_not_exceptions() -> None:
    for raw in ["", "not json", "[1, 2]", json.dumps({"foo": []}), json.dumps({"urgent": ["A"]})]:
        result = parse_classification(raw)
        assert isinstance(result, ParseFailure), raw
        assert result.raw == raw


def test_batch_summary_ignores_spam_and_extra_fields() -> None:
    raw = json.dumps(
        {
            "important": [
                {"subject": "A", "sender": "x", "summary": "Pay.", "date": "2024-05-10T08:00:00Z", "score": 3}
            ],
            "spam": [{"subject": "S", "sender": "z", "summary": "junk", "date": ""}],
        }
    )

    result = parse_batch_summary(raw)

    assert isinstance(result, ParsedBatch)
    assert result.categories["important"] == [
        DigestEntry(subject="A", sender="x", summary="Pay.", date="2024-05-10T08:00:00Z")
    ]
    assert "spam" not in result.categories


def test_batch_summary_with_wrong_shape_fails() -> None:
    result = parse_batch_summary(json.dumps({"urgent": {"subject": "A"}}))

    assert isinstance(result, ParseFailure)
    assert "urgent" in result.reason
