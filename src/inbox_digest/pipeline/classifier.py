from __future__ import annotations

import logging
from email.utils import parseaddr
from typing import Dict, List, Sequence, Set, Tuple

from inbox_digest.errors import MalformedResponseError
from inbox_digest.llm.client import TextGenerator
from inbox_digest.llm.prompts import CLASSIFY_SYSTEM, classify_prompt
from inbox_digest.llm.responses import ParseFailure, parse_classification
from inbox_digest.models import RELEVANT_CATEGORIES, ClassifiedRef, NormalizedMessage

logger = logging.getLogger(__name__)

Classification = Dict[str, List[ClassifiedRef]]


def classify(generator: TextGenerator, messages: Sequence[NormalizedMessage]) -> Classification:
    """One triage request for the whole cycle. Unparseable output fails the cycle."""
    raw = generator.complete(CLASSIFY_SYSTEM, classify_prompt(messages), structured_output=True)
    result = parse_classification(raw)
    if isinstance(result, ParseFailure):
        logger.debug("[classify] unparseable response: %r", result.raw[:500])
        raise MalformedResponseError(
            f"Failed to parse classification response: {result.reason}",
            stage="classify",
        )
    return result.categories


def _normalized_address(value: str) -> str:
    # Parse "Name <mail@domain>" safely; fall back to the raw string.
    address = parseaddr(value)[1].strip().lower()
    return address or value.strip().lower()


def select_relevant(
    messages: Sequence[NormalizedMessage],
    classification: Classification,
    *,
    match: str = "subject_sender",
) -> List[NormalizedMessage]:
    """
    Keep messages classified as urgent, important or goodToKnow, in fetch order.

    match="subject" matches on subject alone. The default also requires the
    sender address to agree, so unrelated mails sharing a subject stay out.
    A ref whose sender carries no address, or whose (subject, address) pair
    matches no fetched message, falls back to its subject.
    """
    refs = [
        ref
        for category in RELEVANT_CATEGORIES
        for ref in classification.get(category, [])
        if ref.subject
    ]

    if match == "subject":
        subjects = {ref.subject for ref in refs}
        return [m for m in messages if m.subject in subjects]

    fetched: Set[Tuple[str, str]] = {(m.subject, _normalized_address(m.sender)) for m in messages}
    pairs: Set[Tuple[str, str]] = set()
    loose: Set[str] = set()
    for ref in refs:
        pair = (ref.subject, _normalized_address(ref.sender))
        if "@" in pair[1] and pair in fetched:
            pairs.add(pair)
        else:
            logger.debug("[relevance] subject-only match for %r (sender %r)", ref.subject, ref.sender)
            loose.add(ref.subject)

    return [
        m
        for m in messages
        if m.subject in loose or (m.subject, _normalized_address(m.sender)) in pairs
    ]
