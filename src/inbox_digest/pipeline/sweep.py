from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional

from inbox_digest.models import UserRecord
from inbox_digest.pipeline.orchestrator import FAILED, SKIPPED, CycleResult, SyncOrchestrator
from inbox_digest.storage.repository import DigestRepository, valid_notification_time

logger = logging.getLogger(__name__)


@dataclass
class SweepReport:
    attempted: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    results: List[CycleResult] = field(default_factory=list)


def is_time_to_sync(notification_time: Optional[str], now: datetime) -> bool:
    """True when HH:MM (UTC) equals the current UTC minute."""
    if not notification_time or not valid_notification_time(notification_time):
        return False
    hours, minutes = (int(part) for part in notification_time.split(":"))
    utc_now = now.astimezone(timezone.utc)
    return utc_now.hour == hours and utc_now.minute == minutes


def due_users(users: List[UserRecord], now: datetime) -> List[UserRecord]:
    return [u for u in users if is_time_to_sync(u.notification_time, now)]


def _sync_guarded(orchestrator: SyncOrchestrator, user_key: str) -> CycleResult:
    # Last line of defence: nothing from one user may reach the sweep.
    try:
        return orchestrator.sync_user(user_key)
    except Exception as exc:
        logger.exception("[sweep] user=%s crashed", user_key)
        return CycleResult(user_key=user_key, cycle_id="", status=FAILED, error=f"{type(exc).__name__}: {exc}")


def run_sweep(
    orchestrator: SyncOrchestrator,
    repository: DigestRepository,
    *,
    now: datetime,
    max_workers: int = 8,
) -> SweepReport:
    """Sync every user whose notification time is `now`, concurrently and independently."""
    report = SweepReport()
    candidates = due_users(repository.list_users(), now)

    runnable: List[UserRecord] = []
    for user in candidates:
        if not user.refresh_token:
            logger.error("[sweep] user=%s has no refresh token", user.user_key)
            report.failed += 1
            continue
        runnable.append(user)

    if runnable:
        with ThreadPoolExecutor(max_workers=max(1, max_workers), thread_name_prefix="digest-sync") as pool:
            futures = [pool.submit(_sync_guarded, orchestrator, user.user_key) for user in runnable]
            report.results = [f.result() for f in futures]

    for result in report.results:
        if result.status == SKIPPED:
            report.skipped += 1
            continue
        report.attempted += 1
        if result.ok:
            report.succeeded += 1
        else:
            report.failed += 1

    logger.info(
        "[sweep] completed due=%d attempted=%d succeeded=%d failed=%d skipped=%d",
        len(candidates), report.attempted, report.succeeded, report.failed, report.skipped,
    )
    return report
