from __future__ import annotations

import socket
from typing import Any, Dict, List, Protocol

import google_auth_httplib2
import httplib2
from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from inbox_digest.errors import ProviderError

# Readonly is enough: the digest never modifies the mailbox.
SCOPES = [
    "https://www.googleapis.com/auth/gmail.readonly",
    "https://www.googleapis.com/auth/userinfo.email",
    "https://www.googleapis.com/auth/userinfo.profile",
]


class MailboxProvider(Protocol):
    def list_messages(self, query: str = "", max_results: int = 10) -> List[str]: ...
    def get_message(self, message_id: str, fmt: str = "full") -> Dict[str, Any]: ...


def authorized_http(credentials: Credentials, timeout: int) -> google_auth_httplib2.AuthorizedHttp:
    # build() has no timeout knob; the transport carries it.
    return google_auth_httplib2.AuthorizedHttp(credentials, http=httplib2.Http(timeout=timeout))


class GmailClient:
    def __init__(self, credentials: Credentials, *, user_id: str = "me", timeout: int = 60):
        self._creds = credentials
        self._user_id = user_id
        self._timeout = timeout
        self._service = None

    def connect(self) -> None:
        """Create an authenticated Gmail API service client."""
        self._service = build(
            "gmail",
            "v1",
            http=authorized_http(self._creds, self._timeout),
            cache_discovery=False,
        )

    @property
    def service(self):
        if self._service is None:
            raise RuntimeError("GmailClient is not connected. Call connect() first.")
        return self._service

    def list_messages(self, query: str = "", max_results: int = 10) -> List[str]:
        """
        List message IDs matching a Gmail search query.
        Example query: 'in:inbox after:1700000000'
        """
        try:
            resp = (
                self.service.users()
                .messages()
                .list(userId=self._user_id, q=query, maxResults=max_results)
                .execute()
            )
        except (HttpError, httplib2.HttpLib2Error, socket.timeout, OSError) as exc:
            raise ProviderError(f"Listing messages failed: {exc}", stage="fetch") from exc
        msgs = resp.get("messages", [])
        return [m["id"] for m in msgs]

    def get_message(self, message_id: str, fmt: str = "full") -> Dict[str, Any]:
        """
        Fetch a full message resource.
        fmt: 'full' | 'metadata' | 'minimal' | 'raw'
        """
        try:
            return (
                self.service.users()
                .messages()
                .get(userId=self._user_id, id=message_id, format=fmt)
                .execute()
            )
        except (HttpError, httplib2.HttpLib2Error, socket.timeout, OSError) as exc:
            raise ProviderError(f"Fetching message {message_id} failed: {exc}", stage="fetch") from exc
