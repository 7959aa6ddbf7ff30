from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional

from inbox_digest.auth.identity import AccessToken, GoogleIdentityProvider
from inbox_digest.config.settings import Settings, load_google_client, load_openai_api_key
from inbox_digest.gmail.client import GmailClient
from inbox_digest.llm.client import OpenAITextGenerator
from inbox_digest.pipeline.orchestrator import ProgressCallback, CycleResult, SyncOrchestrator
from inbox_digest.pipeline.sweep import SweepReport, run_sweep
from inbox_digest.storage.lock import UserLeaseManager
from inbox_digest.storage.repository import DigestRepository
from inbox_digest.storage.store import JsonDocumentStore


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def build_repository(settings: Settings) -> DigestRepository:
    return DigestRepository(JsonDocumentStore(settings.data_dir))


def build_identity(settings: Settings) -> GoogleIdentityProvider:
    client_id, client_secret = load_google_client(settings.secrets_dir)
    return GoogleIdentityProvider(client_id, client_secret, timeout=settings.request_timeout_seconds)


def build_generator(settings: Settings) -> OpenAITextGenerator:
    api_key = load_openai_api_key(settings.secrets_dir)
    if not api_key:
        raise RuntimeError(
            "Missing OpenAI API key. Set OPENAI_API_KEY or put openai_token.txt into the secrets dir."
        )
    return OpenAITextGenerator(
        api_key,
        model=settings.openai_model,
        timeout=settings.request_timeout_seconds,
    )


def build_orchestrator(settings: Settings) -> SyncOrchestrator:
    generator = build_generator(settings)
    store = JsonDocumentStore(settings.data_dir)

    def mailbox_factory(token: AccessToken) -> GmailClient:
        client = GmailClient(token.credentials, timeout=settings.request_timeout_seconds)
        client.connect()
        return client

    return SyncOrchestrator(
        identity=build_identity(settings),
        mailbox_factory=mailbox_factory,
        generator=generator,
        repository=DigestRepository(store),
        clock=utc_now,
        leases=UserLeaseManager(store, ttl=timedelta(seconds=settings.lock_ttl_seconds), clock=utc_now),
        max_messages=settings.max_messages,
        batch_size=settings.batch_size,
        retention=timedelta(hours=settings.retention_hours),
        lookback=timedelta(hours=settings.default_lookback_hours),
        relevance_match=settings.relevance_match,
        clear_digest_when_nothing_relevant=settings.clear_digest_when_nothing_relevant,
    )


def run_user_sync(
    settings: Settings,
    user_key: str,
    *,
    progress_cb: Optional[ProgressCallback] = None,
) -> CycleResult:
    orchestrator = build_orchestrator(settings)
    return orchestrator.sync_user(user_key, progress_cb=progress_cb)


def run_scheduled_sweep(settings: Settings, *, now: Optional[datetime] = None) -> SweepReport:
    orchestrator = build_orchestrator(settings)
    return run_sweep(
        orchestrator,
        orchestrator.repository,
        now=now or utc_now(),
        max_workers=settings.sweep_workers,
    )
