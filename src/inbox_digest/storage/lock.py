from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta
from typing import Callable

from inbox_digest.errors import LockHeldError
from inbox_digest.parsing.parser import parse_iso_date, to_iso
from inbox_digest.storage.store import JsonDocumentStore

logger = logging.getLogger(__name__)

LOCKS = "locks"


class UserLeaseManager:
    """
    Per-user lease with TTL, kept in the `locks` collection.
    An expired lease is taken over, so a crashed cycle blocks the user for at most `ttl`.
    """

    def __init__(self, store: JsonDocumentStore, *, ttl: timedelta, clock: Callable[[], datetime]):
        self._store = store
        self._ttl = ttl
        self._clock = clock

    def acquire(self, user_key: str) -> str:
        owner = uuid.uuid4().hex
        # Check-and-set under the store lock so two threads cannot both win.
        with self._store.lock:
            now = self._clock()
            current = self._store.get(LOCKS, user_key)
            if current is not None:
                expires_at = parse_iso_date(current.get("expiresAt"))
                if expires_at is not None and expires_at > now:
                    raise LockHeldError(
                        f"Sync already running (owner={current.get('owner')}, until {current.get('expiresAt')})",
                        stage="lock",
                    )
                logger.info("[lock] user=%s taking over expired lease owner=%s", user_key, current.get("owner"))
            self._store.set(
                LOCKS,
                user_key,
                {"owner": owner, "acquiredAt": to_iso(now), "expiresAt": to_iso(now + self._ttl)},
            )
        return owner

    def release(self, user_key: str, owner: str) -> None:
        with self._store.lock:
            current = self._store.get(LOCKS, user_key)
            # Only the owner releases; a lease taken over after expiry stays.
            if current is not None and current.get("owner") == owner:
                self._store.delete(LOCKS, user_key)
