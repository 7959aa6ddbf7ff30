from __future__ import annotations

import logging
from datetime import datetime
from typing import List

from inbox_digest.gmail.client import MailboxProvider
from inbox_digest.models import NormalizedMessage
from inbox_digest.parsing.parser import extract_body_from_payload, headers_from_payload, parse_header_date
from inbox_digest.pipeline.watermark import inbox_query

logger = logging.getLogger(__name__)

MAX_MESSAGES = 30


def normalize_message(msg: dict, *, now: datetime) -> NormalizedMessage:
    payload = msg.get("payload", {}) or {}
    headers = headers_from_payload(payload)

    return NormalizedMessage(
        subject=headers.get("subject", ""),
        sender=headers.get("from", ""),
        body=extract_body_from_payload(payload),
        date=parse_header_date(headers.get("date"), default=now),
        message_id=str(msg.get("id") or ""),
    )


def fetch_messages(
    mailbox: MailboxProvider,
    window_start: datetime,
    *,
    now: datetime,
    max_messages: int = MAX_MESSAGES,
) -> List[NormalizedMessage]:
    """
    Fetch inbox messages received after `window_start`, at most `max_messages`.
    Anything beyond the cap is left for a later cycle's window to miss; provider
    errors propagate and fail the cycle.
    """
    query = inbox_query(window_start)
    message_ids = mailbox.list_messages(query=query, max_results=max_messages)
    logger.debug("[fetch] query=%r ids=%d", query, len(message_ids))

    messages: List[NormalizedMessage] = []
    for mid in message_ids[:max_messages]:
        # Pull full payload once so we can extract headers + body consistently.
        msg = mailbox.get_message(mid, fmt="full")
        messages.append(normalize_message(msg, now=now))
    return messages
