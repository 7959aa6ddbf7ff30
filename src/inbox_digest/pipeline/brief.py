from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Sequence

from inbox_digest.llm.client import TextGenerator
from inbox_digest.llm.prompts import BRIEF_SYSTEM, brief_prompt
from inbox_digest.models import NormalizedMessage

logger = logging.getLogger(__name__)

_BULLET = re.compile(r"^\s*(?:[-*•]|\d+[.)])\s+")


@dataclass
class EmailBrief:
    summary: str = ""
    important_points: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"summary": self.summary, "importantPoints": list(self.important_points)}


def parse_brief(text: str) -> EmailBrief:
    """First non-empty line is the summary; every further non-empty line is a point."""
    lines = [line.strip() for line in (text or "").splitlines() if line.strip()]
    if not lines:
        return EmailBrief()
    points = [_BULLET.sub("", line) for line in lines[1:]]
    return EmailBrief(summary=lines[0], important_points=[p for p in points if p])


def summarize_emails(generator: TextGenerator, messages: Sequence[NormalizedMessage]) -> EmailBrief:
    """
    One-off summary of an arbitrary list of emails, outside any sync cycle.

    No messages means no request. A GenerationError propagates to the caller.
    """
    if not messages:
        return EmailBrief()
    text = generator.complete(BRIEF_SYSTEM, brief_prompt(messages), structured_output=False)
    brief = parse_brief(text)
    logger.info("[brief] summarized=%d points=%d", len(messages), len(brief.important_points))
    return brief


def messages_from_json(items: Any) -> List[NormalizedMessage]:
    """Accept a list of {from|sender, subject, body, date} objects, or {"emails": [...]}."""
    if isinstance(items, dict):
        items = items.get("emails")
    if not isinstance(items, list):
        raise ValueError("Expected a list of emails or an object with an 'emails' list")
    messages = []
    for item in items:
        if not isinstance(item, dict):
            raise ValueError(f"Email entries must be objects, got {type(item).__name__}")
        messages.append(
            NormalizedMessage(
                subject=str(item.get("subject") or ""),
                sender=str(item.get("from") or item.get("sender") or ""),
                body=str(item.get("body") or ""),
                date=str(item.get("date") or ""),
                message_id=str(item.get("id") or ""),
            )
        )
    return messages
