from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Sequence

from inbox_digest.llm.client import TextGenerator
from inbox_digest.llm.prompts import SUMMARIZE_SYSTEM, summarize_prompt
from inbox_digest.llm.responses import ParseFailure, parse_batch_summary
from inbox_digest.models import DIGEST_CATEGORIES, Digest, NormalizedMessage, empty_digest

logger = logging.getLogger(__name__)

BATCH_SIZE = 5


@dataclass
class SummaryOutcome:
    entries: Digest = field(default_factory=empty_digest)
    batches: int = 0
    skipped_batches: List[int] = field(default_factory=list)


def chunk(messages: Sequence[NormalizedMessage], size: int) -> List[List[NormalizedMessage]]:
    if size < 1:
        raise ValueError("batch size must be >= 1")
    return [list(messages[i:i + size]) for i in range(0, len(messages), size)]


def summarize(
    generator: TextGenerator,
    messages: Sequence[NormalizedMessage],
    *,
    batch_size: int = BATCH_SIZE,
    user_key: str = "",
) -> SummaryOutcome:
    """
    Summarize relevant messages batch by batch, concatenated per category in
    batch order. A batch whose answer does not parse is skipped; the others
    still count. Service errors are not caught here and fail the cycle.
    """
    outcome = SummaryOutcome()
    batches = chunk(messages, batch_size)
    outcome.batches = len(batches)

    for index, batch in enumerate(batches, start=1):
        raw = generator.complete(SUMMARIZE_SYSTEM, summarize_prompt(batch), structured_output=True)
        result = parse_batch_summary(raw)
        if isinstance(result, ParseFailure):
            outcome.skipped_batches.append(index)
            logger.warning(
                "[summarize] user=%s batch=%d/%d skipped: %s",
                user_key, index, len(batches), result.reason,
            )
            continue

        for category in DIGEST_CATEGORIES:
            outcome.entries[category].extend(result.categories.get(category, []))

    return outcome
