from __future__ import annotations

import base64
import binascii
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Dict, Optional


def decode_body_data(data: str) -> str:
    # Gmail uses URL-safe base64 and sometimes drops the padding.
    padded = data + "=" * (-len(data) % 4)
    try:
        raw = base64.urlsafe_b64decode(padded)
    except (binascii.Error, ValueError):
        return ""
    return raw.decode("utf-8", errors="replace")


def extract_body_from_payload(payload: dict) -> str:
    """
    Extract plain text body from Gmail message payload.
    A text/plain part wins; otherwise the top-level body data is used.
    """
    def find_part(part: dict, mime_type: str) -> Optional[str]:
        # Depth-first search through multipart payloads.
        if part.get("mimeType") == mime_type and part.get("body", {}).get("data"):
            return decode_body_data(part["body"]["data"])
        for child in part.get("parts", []) or []:
            found = find_part(child, mime_type)
            if found:
                return found
        return None

    if payload.get("parts"):
        text = find_part(payload, "text/plain")
        if text:
            return text

    if payload.get("body", {}).get("data"):
        return decode_body_data(payload["body"]["data"])

    return ""


def headers_from_payload(payload: dict) -> Dict[str, str]:
    # Header names are case-insensitive; keep the first occurrence of each.
    headers: Dict[str, str] = {}
    for header in payload.get("headers", []) or []:
        name = str(header.get("name") or "")
        if name and name.lower() not in headers:
            headers[name.lower()] = str(header.get("value") or "")
    return headers


def to_iso(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def parse_header_date(value: str | None, *, default: datetime) -> str:
    """RFC 2822 Date header -> ISO-8601 UTC. Missing or broken headers fall back to `default`."""
    if not value:
        return to_iso(default)
    try:
        parsed = parsedate_to_datetime(value)
    except (TypeError, ValueError, IndexError):
        return to_iso(default)
    if parsed is None:
        return to_iso(default)
    return to_iso(parsed)


def parse_iso_date(value: str | None) -> Optional[datetime]:
    """Lenient ISO-8601 parsing; returns None when the value is unusable."""
    if not value or not isinstance(value, str):
        return None
    text = value.strip()
    if text.endswith("Z") or text.endswith("z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
