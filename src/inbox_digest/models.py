from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

# Persisted digest categories, in display order.
DIGEST_CATEGORIES = ("urgent", "important", "goodToKnow", "notImportant")
# Triage taxonomy; spam is never summarized nor persisted.
CLASSIFY_CATEGORIES = DIGEST_CATEGORIES + ("spam",)
RELEVANT_CATEGORIES = ("urgent", "important", "goodToKnow")


@dataclass(frozen=True)
class NormalizedMessage:
    subject: str
    sender: str
    body: str
    # ISO-8601, UTC
    date: str
    message_id: str = ""


@dataclass(frozen=True)
class ClassifiedRef:
    subject: str
    sender: str


@dataclass(frozen=True)
class DigestEntry:
    subject: str
    sender: str
    summary: str
    date: str

    @property
    def identity_key(self) -> str:
        return f"{self.subject}|{self.sender}|{self.date}"

    def to_dict(self) -> Dict[str, str]:
        return {
            "subject": self.subject,
            "sender": self.sender,
            "summary": self.summary,
            "date": self.date,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DigestEntry":
        # Stored entries may come from older runs with missing fields.
        return cls(
            subject=str(data.get("subject") or ""),
            sender=str(data.get("sender") or ""),
            summary=str(data.get("summary") or ""),
            date=str(data.get("date") or ""),
        )


Digest = Dict[str, List[DigestEntry]]


def empty_digest() -> Digest:
    return {category: [] for category in DIGEST_CATEGORIES}


def digest_to_dict(digest: Digest) -> Dict[str, List[Dict[str, str]]]:
    return {
        category: [entry.to_dict() for entry in digest.get(category, [])]
        for category in DIGEST_CATEGORIES
    }


def digest_from_dict(data: Optional[Dict[str, Any]]) -> Digest:
    digest = empty_digest()
    if not data:
        return digest
    for category in DIGEST_CATEGORIES:
        items = data.get(category)
        if not isinstance(items, list):
            continue
        digest[category] = [DigestEntry.from_dict(item) for item in items if isinstance(item, dict)]
    return digest


def digest_size(digest: Digest) -> int:
    return sum(len(entries) for entries in digest.values())


@dataclass
class UserSyncState:
    last_sync_time: Optional[datetime] = None
    last_cycle_id: Optional[str] = None


@dataclass
class DigestSnapshot:
    summary: Digest = field(default_factory=empty_digest)
    meta_summary: str = ""
    created_at: Optional[datetime] = None
    cycle_id: Optional[str] = None
    # The "now" of the cycle that wrote this snapshot.
    window_end: Optional[datetime] = None


@dataclass(frozen=True)
class UserRecord:
    user_key: str
    refresh_token: Optional[str]
    notification_time: Optional[str]
    summary_format: str = "concise"
