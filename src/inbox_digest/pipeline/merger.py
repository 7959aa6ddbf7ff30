from __future__ import annotations

from datetime import datetime, timedelta
from typing import Iterable, List, Optional, Set

from inbox_digest.models import DIGEST_CATEGORIES, Digest, DigestEntry, empty_digest
from inbox_digest.parsing.parser import parse_iso_date

RETENTION = timedelta(hours=48)


def dedupe(entries: Iterable[DigestEntry]) -> List[DigestEntry]:
    """First occurrence of each subject|sender|date wins; order is kept."""
    seen: Set[str] = set()
    out: List[DigestEntry] = []
    for entry in entries:
        key = entry.identity_key
        if key in seen:
            continue
        seen.add(key)
        out.append(entry)
    return out


def prune(entries: Iterable[DigestEntry], *, now: datetime, retention: timedelta = RETENTION) -> List[DigestEntry]:
    # Entries without a usable date are kept.
    cutoff = now - retention
    kept: List[DigestEntry] = []
    for entry in entries:
        when = parse_iso_date(entry.date)
        if when is not None and when < cutoff:
            continue
        kept.append(entry)
    return kept


def merge(
    new_entries: Optional[Digest],
    previous: Optional[Digest],
    *,
    now: datetime,
    retention: timedelta = RETENTION,
) -> Digest:
    """
    New entries go first so they survive dedup, then previous ones, then the
    age cut. The result always has exactly the four persisted categories.
    """
    merged = empty_digest()
    for category in DIGEST_CATEGORIES:
        combined = list((new_entries or {}).get(category, []))
        combined.extend((previous or {}).get(category, []))
        merged[category] = prune(dedupe(combined), now=now, retention=retention)
    return merged
