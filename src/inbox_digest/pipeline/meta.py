from __future__ import annotations

import logging
from typing import List

from inbox_digest.errors import GenerationError
from inbox_digest.llm.client import TextGenerator
from inbox_digest.llm.prompts import META_SYSTEM, meta_prompt
from inbox_digest.models import DIGEST_CATEGORIES, Digest, DigestEntry

logger = logging.getLogger(__name__)


def flatten(digest: Digest) -> List[DigestEntry]:
    return [entry for category in DIGEST_CATEGORIES for entry in digest.get(category, [])]


def summarize_digest(generator: TextGenerator, digest: Digest, *, user_key: str = "") -> str:
    """2-3 sentence overview of the whole digest. Empty digest or a failed call gives ''."""
    entries = flatten(digest)
    if not entries:
        return ""
    try:
        text = generator.complete(META_SYSTEM, meta_prompt(entries), structured_output=False)
    except GenerationError as exc:
        logger.warning("[meta] user=%s meta summary failed: %s", user_key, exc)
        return ""
    return (text or "").strip()
