from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from inbox_digest.auth.identity import AccessToken, IdentityProvider
from inbox_digest.errors import AuthError, DigestSyncError, LockHeldError
from inbox_digest.gmail.client import MailboxProvider
from inbox_digest.llm.client import TextGenerator
from inbox_digest.models import DigestSnapshot, UserSyncState, digest_size, empty_digest
from inbox_digest.pipeline.classifier import classify, select_relevant
from inbox_digest.pipeline.fetcher import MAX_MESSAGES, fetch_messages
from inbox_digest.pipeline.merger import RETENTION, merge
from inbox_digest.pipeline.meta import summarize_digest
from inbox_digest.pipeline.summarizer import BATCH_SIZE, SummaryOutcome, summarize
from inbox_digest.pipeline.watermark import DEFAULT_LOOKBACK, compute_window_start
from inbox_digest.storage.lock import UserLeaseManager
from inbox_digest.storage.repository import DigestRepository

logger = logging.getLogger(__name__)

MailboxFactory = Callable[[AccessToken], MailboxProvider]
ProgressCallback = Callable[[str, Dict[str, Any]], None]


class SyncStage(str, Enum):
    IDLE = "idle"
    TOKEN_REFRESH = "token_refresh"
    FETCH = "fetch"
    CLASSIFY = "classify"
    RELEVANCE = "relevance"
    SUMMARIZE = "summarize"
    MERGE = "merge"
    META_SUMMARIZE = "meta_summarize"
    PERSIST = "persist"


# Cycle outcomes
COMPLETED = "completed"
NO_NEW_MESSAGES = "no_new_messages"
NOTHING_RELEVANT = "nothing_relevant"
FAILED = "failed"
SKIPPED = "skipped"


@dataclass
class CycleResult:
    user_key: str
    cycle_id: str
    status: str = FAILED
    stage: str = SyncStage.IDLE.value
    fetched: int = 0
    relevant: int = 0
    entries: int = 0
    skipped_batches: List[int] = field(default_factory=list)
    meta_summary: str = ""
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status in {COMPLETED, NO_NEW_MESSAGES, NOTHING_RELEVANT}


def recover_watermark(state: UserSyncState, snapshot: Optional[DigestSnapshot]) -> Optional[datetime]:
    """
    The digest is written before the watermark. If a cycle died between the
    two writes, the digest carries a cycle id the user doc never saw; its
    window end is then the real watermark.
    """
    if snapshot is None or snapshot.cycle_id is None or snapshot.window_end is None:
        return state.last_sync_time
    if snapshot.cycle_id == state.last_cycle_id:
        return state.last_sync_time
    if state.last_sync_time is None or snapshot.window_end > state.last_sync_time:
        return snapshot.window_end
    return state.last_sync_time


@dataclass
class SyncOrchestrator:
    identity: IdentityProvider
    mailbox_factory: MailboxFactory
    generator: TextGenerator
    repository: DigestRepository
    clock: Callable[[], datetime]
    leases: Optional[UserLeaseManager] = None
    max_messages: int = MAX_MESSAGES
    batch_size: int = BATCH_SIZE
    retention: timedelta = RETENTION
    lookback: timedelta = DEFAULT_LOOKBACK
    relevance_match: str = "subject_sender"
    clear_digest_when_nothing_relevant: bool = False

    def sync_user(self, user_key: str, progress_cb: Optional[ProgressCallback] = None) -> CycleResult:
        """
        Run one cycle for one user and return its outcome. Stage errors are
        logged and reported in the result; they never escape.
        """
        result = CycleResult(user_key=user_key, cycle_id=uuid.uuid4().hex)

        def enter(stage: SyncStage, detail: str, **extra: Any) -> None:
            result.stage = stage.value
            logger.debug("[sync] user=%s stage=%s %s", user_key, stage.value, detail)
            if progress_cb:
                payload: Dict[str, Any] = {"detail": detail, "cycle_id": result.cycle_id}
                payload.update(extra)
                progress_cb(stage.value, payload)

        owner: Optional[str] = None
        try:
            if self.leases is not None:
                owner = self.leases.acquire(user_key)
            self._run(user_key, result, enter)
        except LockHeldError as exc:
            result.status = SKIPPED
            result.error = str(exc)
            logger.info("[sync] user=%s skipped: %s", user_key, exc)
        except DigestSyncError as exc:
            result.status = FAILED
            result.error = str(exc)
            logger.error("[sync] user=%s stage=%s failed: %s", user_key, result.stage, exc)
        finally:
            if owner is not None:
                try:
                    self.leases.release(user_key, owner)
                except DigestSyncError as exc:
                    # The lease expires on its own after the TTL.
                    logger.error("[sync] user=%s lease release failed: %s", user_key, exc)
            if progress_cb:
                progress_cb(SyncStage.IDLE.value, {"detail": result.status, "cycle_id": result.cycle_id})
        return result

    def _run(self, user_key: str, result: CycleResult, enter: Callable[..., None]) -> None:
        now = self.clock()

        # --- Token refresh ---
        enter(SyncStage.TOKEN_REFRESH, "Refreshing access token")
        user = self.repository.load_user(user_key)
        if user is None or not user.refresh_token:
            raise AuthError("No refresh token found", stage=SyncStage.TOKEN_REFRESH.value)
        token = self.identity.refresh_access_token(user.refresh_token)
        self.repository.save_access_token(user_key, token.token, now=now)

        # --- Fetch ---
        enter(SyncStage.FETCH, "Fetching messages")
        state = self.repository.load_sync_state(user_key)
        previous = self.repository.load_digest(user_key)
        watermark = recover_watermark(state, previous)
        if watermark is not None and watermark != state.last_sync_time:
            logger.warning(
                "[sync] user=%s digest cycle=%s was saved without its watermark, resuming from %s",
                user_key, previous.cycle_id if previous else None, watermark.isoformat(),
            )
        window_start = compute_window_start(watermark, now=now, lookback=self.lookback)
        mailbox = self.mailbox_factory(token)
        messages = fetch_messages(mailbox, window_start, now=now, max_messages=self.max_messages)
        result.fetched = len(messages)
        logger.info("[sync] user=%s fetched=%d since=%s", user_key, len(messages), window_start.isoformat())

        if not messages:
            # Digest untouched; only the watermark moves.
            enter(SyncStage.PERSIST, "No new messages, advancing watermark")
            self.repository.advance_watermark(user_key, now)
            result.status = NO_NEW_MESSAGES
            result.entries = digest_size(previous.summary) if previous else 0
            result.meta_summary = previous.meta_summary if previous else ""
            return

        # --- Classify ---
        enter(SyncStage.CLASSIFY, f"Classifying {len(messages)} messages", metrics={"fetched": len(messages)})
        classification = classify(self.generator, messages)

        # --- Relevance ---
        enter(SyncStage.RELEVANCE, "Selecting relevant messages")
        relevant = select_relevant(messages, classification, match=self.relevance_match)
        result.relevant = len(relevant)
        logger.info("[sync] user=%s relevant=%d/%d", user_key, len(relevant), len(messages))

        if not relevant and self.clear_digest_when_nothing_relevant:
            enter(SyncStage.PERSIST, "Nothing relevant, clearing digest")
            self.repository.save_digest(user_key, empty_digest(), "", now=now, cycle_id=result.cycle_id)
            self.repository.advance_watermark(user_key, now, cycle_id=result.cycle_id)
            result.status = NOTHING_RELEVANT
            return

        # --- Summarize ---
        if relevant:
            enter(SyncStage.SUMMARIZE, f"Summarizing {len(relevant)} messages", metrics={"relevant": len(relevant)})
            outcome = summarize(self.generator, relevant, batch_size=self.batch_size, user_key=user_key)
        else:
            outcome = SummaryOutcome()
        result.skipped_batches = list(outcome.skipped_batches)

        # --- Merge ---
        enter(SyncStage.MERGE, "Merging with previous digest")
        merged = merge(
            outcome.entries,
            previous.summary if previous else None,
            now=now,
            retention=self.retention,
        )
        result.entries = digest_size(merged)

        # --- Meta summary ---
        enter(SyncStage.META_SUMMARIZE, "Summarizing digest")
        meta_summary = summarize_digest(self.generator, merged, user_key=user_key)
        result.meta_summary = meta_summary

        # --- Persist ---
        enter(SyncStage.PERSIST, "Saving digest", metrics={"entries": result.entries})
        self.repository.save_digest(user_key, merged, meta_summary, now=now, cycle_id=result.cycle_id)
        self.repository.advance_watermark(user_key, now, cycle_id=result.cycle_id)

        result.status = COMPLETED if relevant else NOTHING_RELEVANT
        logger.info(
            "[sync] user=%s done entries=%d skipped_batches=%s",
            user_key, result.entries, result.skipped_batches or "none",
        )
