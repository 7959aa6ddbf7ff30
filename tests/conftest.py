from __future__ import annotations

import base64
import json
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

import pytest

from inbox_digest.auth.identity import AccessToken
from inbox_digest.errors import AuthError, GenerationError, ProviderError
from inbox_digest.pipeline.orchestrator import SyncOrchestrator
from inbox_digest.storage.repository import DigestRepository
from inbox_digest.storage.store import JsonDocumentStore

NOW = datetime(2024, 5, 10, 9, 0, tzinfo=timezone.utc)


def b64(text: str) -> str:
    return base64.urlsafe_b64encode(text.encode("utf-8")).decode("ascii")


def gmail_message(
    message_id: str,
    *,
    subject: str,
    sender: str,
    body: str = "",
    date: Optional[str] = "Fri, 10 May 2024 08:00:00 +0000",
    multipart: bool = True,
) -> Dict[str, Any]:
    headers = [{"name": "Subject", "value": subject}, {"name": "From", "value": sender}]
    if date is not None:
        headers.append({"name": "Date", "value": date})
    if multipart:
        payload = {
            "mimeType": "multipart/alternative",
            "headers": headers,
            "body": {"size": 0},
            "parts": [
                {"mimeType": "text/plain", "body": {"data": b64(body)}},
                {"mimeType": "text/html", "body": {"data": b64(f"<p>{body}</p>")}},
            ],
        }
    else:
        payload = {"mimeType": "text/plain", "headers": headers, "body": {"data": b64(body)}}
    return {"id": message_id, "payload": payload}


class FakeMailbox:
    def __init__(self, messages: Optional[List[Dict[str, Any]]] = None, *, fail: bool = False):
        self.messages = {m["id"]: m for m in (messages or [])}
        self.fail = fail
        self.queries: List[str] = []
        self.max_results: List[int] = []

    def list_messages(self, query: str = "", max_results: int = 10) -> List[str]:
        self.queries.append(query)
        self.max_results.append(max_results)
        if self.fail:
            raise ProviderError("mailbox unavailable", stage="fetch")
        return list(self.messages)[:max_results]

    def get_message(self, message_id: str, fmt: str = "full") -> Dict[str, Any]:
        return self.messages[message_id]


class FakeIdentity:
    def __init__(self, *, fail: bool = False):
        self.fail = fail
        self.calls: List[str] = []

    def refresh_access_token(self, refresh_token: str) -> AccessToken:
        self.calls.append(refresh_token)
        if self.fail:
            raise AuthError("invalid_grant", stage="token_refresh")
        return AccessToken(token=f"access-{refresh_token}", expiry=NOW + timedelta(hours=1))


Reply = Union[str, Exception, Callable[[str, str, bool], str]]


class ScriptedGenerator:
    """Answers complete() calls from a queue; records every prompt it sees."""

    def __init__(self, replies: Optional[List[Reply]] = None):
        self.replies = list(replies or [])
        self.calls: List[Dict[str, Any]] = []

    def complete(self, system_prompt: str, user_prompt: str, *, structured_output: bool = False) -> str:
        self.calls.append({"system": system_prompt, "user": user_prompt, "structured": structured_output})
        if not self.replies:
            raise GenerationError("no scripted reply left", stage="generate")
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        if callable(reply):
            return reply(system_prompt, user_prompt, structured_output)
        return reply


def classification_json(**categories: List[Dict[str, str]]) -> str:
    payload = {key: [] for key in ("urgent", "important", "goodToKnow", "notImportant", "spam")}
    payload.update(categories)
    return json.dumps(payload)


def batch_json(**categories: List[Dict[str, str]]) -> str:
    payload = {key: [] for key in ("urgent", "important", "goodToKnow", "notImportant")}
    payload.update(categories)
    return json.dumps(payload)


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def store(tmp_path: Path) -> JsonDocumentStore:
    return JsonDocumentStore(tmp_path / "data")


@pytest.fixture
def repository(store: JsonDocumentStore) -> DigestRepository:
    return DigestRepository(store)


@pytest.fixture
def make_orchestrator(repository: DigestRepository):
    def factory(
        *,
        mailbox: FakeMailbox,
        generator: ScriptedGenerator,
        identity: Optional[FakeIdentity] = None,
        **options: Any,
    ) -> SyncOrchestrator:
        return SyncOrchestrator(
            identity=identity or FakeIdentity(),
            mailbox_factory=lambda token: mailbox,
            generator=generator,
            repository=repository,
            clock=lambda: NOW,
            **options,
        )

    return factory
