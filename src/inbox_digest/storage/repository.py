from __future__ import annotations

import re
from datetime import datetime
from typing import Any, Dict, List, Optional

from inbox_digest.models import (
    Digest,
    DigestSnapshot,
    UserRecord,
    UserSyncState,
    digest_from_dict,
    digest_to_dict,
)
from inbox_digest.parsing.parser import parse_iso_date, to_iso
from inbox_digest.storage.store import DocumentStore

USERS = "users"
SUMMARIES = "summaries"

_TIME_OF_DAY = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")


def valid_notification_time(value: str) -> bool:
    return bool(_TIME_OF_DAY.match(value or ""))


class DigestRepository:
    """Per-user documents: sync state in `users`, the digest snapshot in `summaries`."""

    def __init__(self, store: DocumentStore):
        self._store = store

    # --- users ---

    def load_user(self, user_key: str) -> Optional[UserRecord]:
        doc = self._store.get(USERS, user_key)
        if doc is None:
            return None
        return _user_from_doc(user_key, doc)

    def list_users(self) -> List[UserRecord]:
        users = []
        for doc in self._store.list(USERS):
            key = doc.get("_key") or doc.get("email")
            if key:
                users.append(_user_from_doc(str(key), doc))
        return users

    def register_user(
        self,
        user_key: str,
        *,
        refresh_token: str,
        notification_time: Optional[str] = None,
        now: datetime,
    ) -> None:
        fields: Dict[str, Any] = {
            "email": user_key,
            "refreshToken": refresh_token,
            "updatedAt": to_iso(now),
        }
        if notification_time is not None:
            if not valid_notification_time(notification_time):
                raise ValueError(f"notificationTime must be HH:MM, got {notification_time!r}")
            fields["notificationTime"] = notification_time
        self._store.set(USERS, user_key, fields, merge=True)

    def update_preferences(
        self,
        user_key: str,
        *,
        notification_time: Optional[str] = None,
        summary_format: Optional[str] = None,
    ) -> Dict[str, Any]:
        fields: Dict[str, Any] = {}
        if notification_time is not None:
            if not valid_notification_time(notification_time):
                raise ValueError(f"notificationTime must be HH:MM, got {notification_time!r}")
            fields["notificationTime"] = notification_time
        if summary_format is not None:
            fields["summaryFormat"] = summary_format
        if fields:
            self._store.set(USERS, user_key, fields, merge=True)
        return fields

    def save_access_token(self, user_key: str, token: str, *, now: datetime) -> None:
        self._store.update(USERS, user_key, {"accessToken": token, "updatedAt": to_iso(now)})

    # --- sync state ---

    def load_sync_state(self, user_key: str) -> UserSyncState:
        doc = self._store.get(USERS, user_key) or {}
        return UserSyncState(
            last_sync_time=parse_iso_date(doc.get("lastSyncTime")),
            last_cycle_id=doc.get("lastCycleId"),
        )

    def advance_watermark(self, user_key: str, when: datetime, *, cycle_id: Optional[str] = None) -> None:
        fields: Dict[str, Any] = {"lastSyncTime": to_iso(when)}
        if cycle_id is not None:
            fields["lastCycleId"] = cycle_id
        self._store.update(USERS, user_key, fields)

    def reset_sync(self, user_key: str) -> None:
        """Forget the watermark; the next cycle falls back to the default lookback."""
        self._store.delete_field(USERS, user_key, "lastSyncTime")
        snapshot = self._store.get(SUMMARIES, user_key) or {}
        if snapshot.get("cycleId"):
            # Mark the stored digest as seen so crash recovery does not restore its window end.
            self._store.update(USERS, user_key, {"lastCycleId": snapshot["cycleId"]})

    # --- digest ---

    def load_digest(self, user_key: str) -> Optional[DigestSnapshot]:
        doc = self._store.get(SUMMARIES, user_key)
        if doc is None:
            return None
        return DigestSnapshot(
            summary=digest_from_dict(doc.get("summary")),
            meta_summary=str(doc.get("metaSummary") or ""),
            created_at=parse_iso_date(doc.get("createdAt")),
            cycle_id=doc.get("cycleId"),
            window_end=parse_iso_date(doc.get("windowEnd")),
        )

    def save_digest(
        self,
        user_key: str,
        digest: Digest,
        meta_summary: str,
        *,
        now: datetime,
        cycle_id: Optional[str] = None,
    ) -> None:
        # Whole-document replace, never a partial update.
        self._store.set(
            SUMMARIES,
            user_key,
            {
                "summary": digest_to_dict(digest),
                "metaSummary": meta_summary,
                "createdAt": to_iso(now),
                "cycleId": cycle_id,
                "windowEnd": to_iso(now),
            },
        )


def _user_from_doc(user_key: str, doc: Dict[str, Any]) -> UserRecord:
    return UserRecord(
        user_key=user_key,
        refresh_token=doc.get("refreshToken") or None,
        notification_time=doc.get("notificationTime") or None,
        summary_format=str(doc.get("summaryFormat") or "concise"),
    )
