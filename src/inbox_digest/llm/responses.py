"""
Validation of the JSON the text-generation service returns.

Both contracts are parsed into tagged results instead of raising, so each
pipeline stage decides what a malformed answer means for it.
"""
from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Dict, List, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from inbox_digest.models import CLASSIFY_CATEGORIES, DIGEST_CATEGORIES, ClassifiedRef, DigestEntry


class _Item(BaseModel):
    model_config = ConfigDict(extra="ignore")

    subject: str = ""
    sender: str = ""

    @field_validator("subject", "sender", mode="before")
    @classmethod
    def _coerce_text(cls, value):
        # Models occasionally emit null for unknown senders.
        return "" if value is None else value


class ClassifiedItem(_Item):
    pass


class SummarizedItem(_Item):
    summary: str = ""
    date: str = ""

    @field_validator("summary", "date", mode="before")
    @classmethod
    def _coerce_optional(cls, value):
        return "" if value is None else value


class ClassificationPayload(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    urgent: List[ClassifiedItem] = Field(default_factory=list)
    important: List[ClassifiedItem] = Field(default_factory=list)
    good_to_know: List[ClassifiedItem] = Field(default_factory=list, alias="goodToKnow")
    not_important: List[ClassifiedItem] = Field(default_factory=list, alias="notImportant")
    spam: List[ClassifiedItem] = Field(default_factory=list)

    @field_validator("urgent", "important", "good_to_know", "not_important", "spam", mode="before")
    @classmethod
    def _null_is_empty(cls, value):
        return [] if value is None else value


class BatchSummaryPayload(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    urgent: List[SummarizedItem] = Field(default_factory=list)
    important: List[SummarizedItem] = Field(default_factory=list)
    good_to_know: List[SummarizedItem] = Field(default_factory=list, alias="goodToKnow")
    not_important: List[SummarizedItem] = Field(default_factory=list, alias="notImportant")

    @field_validator("urgent", "important", "good_to_know", "not_important", mode="before")
    @classmethod
    def _null_is_empty(cls, value):
        return [] if value is None else value


_FIELD_BY_CATEGORY = {
    "urgent": "urgent",
    "important": "important",
    "goodToKnow": "good_to_know",
    "notImportant": "not_important",
    "spam": "spam",
}


@dataclass(frozen=True)
class ParseFailure:
    reason: str
    raw: str


@dataclass(frozen=True)
class ParsedClassification:
    categories: Dict[str, List[ClassifiedRef]]


@dataclass(frozen=True)
class ParsedBatch:
    categories: Dict[str, List[DigestEntry]]


ClassificationResult = Union[ParsedClassification, ParseFailure]
BatchResult = Union[ParsedBatch, ParseFailure]


def _load_object(raw: str) -> Union[dict, ParseFailure]:
    text = (raw or "").strip()
    if not text:
        return ParseFailure(reason="empty response", raw=raw or "")
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        return ParseFailure(reason=f"invalid JSON: {exc.msg}", raw=raw)
    if not isinstance(data, dict):
        return ParseFailure(reason=f"expected a JSON object, got {type(data).__name__}", raw=raw)
    return data


def _first_error(exc: ValidationError) -> str:
    err = exc.errors()[0]
    loc = ".".join(str(part) for part in err.get("loc", ()))
    return f"{loc}: {err.get('msg')}"


def parse_classification(raw: str) -> ClassificationResult:
    data = _load_object(raw)
    if isinstance(data, ParseFailure):
        return data
    if not any(category in data for category in CLASSIFY_CATEGORIES):
        return ParseFailure(reason="no known category keys", raw=raw)
    try:
        payload = ClassificationPayload.model_validate(data)
    except ValidationError as exc:
        return ParseFailure(reason=_first_error(exc), raw=raw)

    categories = {
        category: [
            ClassifiedRef(subject=item.subject, sender=item.sender)
            for item in getattr(payload, _FIELD_BY_CATEGORY[category])
        ]
        for category in CLASSIFY_CATEGORIES
    }
    return ParsedClassification(categories=categories)


def parse_batch_summary(raw: str) -> BatchResult:
    data = _load_object(raw)
    if isinstance(data, ParseFailure):
        return data
    if not any(category in data for category in DIGEST_CATEGORIES):
        return ParseFailure(reason="no known category keys", raw=raw)
    try:
        payload = BatchSummaryPayload.model_validate(data)
    except ValidationError as exc:
        return ParseFailure(reason=_first_error(exc), raw=raw)

    categories = {
        category: [
            DigestEntry(subject=item.subject, sender=item.sender, summary=item.summary, date=item.date)
            for item in getattr(payload, _FIELD_BY_CATEGORY[category])
        ]
        for category in DIGEST_CATEGORIES
    }
    return ParsedBatch(categories=categories)
