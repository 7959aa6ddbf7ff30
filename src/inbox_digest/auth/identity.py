from __future__ import annotations

import socket
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Protocol

import httplib2
from google.auth.exceptions import RefreshError, TransportError
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from inbox_digest.config.settings import GOOGLE_TOKEN_URI
from inbox_digest.errors import AuthError, ProviderError
from inbox_digest.gmail.client import SCOPES, authorized_http


@dataclass(frozen=True)
class AccessToken:
    token: str
    expiry: Optional[datetime]
    # Library credentials object handed to the mailbox client; fakes may leave it None.
    credentials: Any = None


class IdentityProvider(Protocol):
    def refresh_access_token(self, refresh_token: str) -> AccessToken: ...


class GoogleIdentityProvider:
    def __init__(self, client_id: str, client_secret: str, *, timeout: int = 60):
        self._client_id = client_id
        self._client_secret = client_secret
        self._timeout = timeout

    def _credentials(self, refresh_token: str) -> Credentials:
        return Credentials(
            token=None,
            refresh_token=refresh_token,
            token_uri=GOOGLE_TOKEN_URI,
            client_id=self._client_id,
            client_secret=self._client_secret,
            scopes=SCOPES,
        )

    def refresh_access_token(self, refresh_token: str) -> AccessToken:
        if not refresh_token:
            raise AuthError("No refresh token stored for user", stage="token_refresh")

        creds = self._credentials(refresh_token)
        try:
            creds.refresh(Request())
        except RefreshError as exc:
            raise AuthError(f"Refresh token rejected: {exc}", stage="token_refresh") from exc
        except TransportError as exc:
            raise AuthError(f"Token endpoint unreachable: {exc}", stage="token_refresh") from exc

        expiry = creds.expiry
        if expiry is not None and expiry.tzinfo is None:
            # google-auth keeps expiry as naive UTC.
            expiry = expiry.replace(tzinfo=timezone.utc)
        return AccessToken(token=creds.token, expiry=expiry, credentials=creds)

    def fetch_profile(self, access_token: AccessToken) -> Dict[str, Any]:
        """Look up the account behind a token (email, name) via the userinfo endpoint."""
        creds = access_token.credentials or Credentials(token=access_token.token)
        try:
            service = build(
                "oauth2",
                "v2",
                http=authorized_http(creds, self._timeout),
                cache_discovery=False,
            )
            return service.userinfo().get().execute()
        except (HttpError, httplib2.HttpLib2Error, socket.timeout, OSError) as exc:
            raise ProviderError(f"Profile lookup failed: {exc}", stage="profile") from exc
