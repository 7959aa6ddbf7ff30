from __future__ import annotations


class DigestSyncError(Exception):
    """Base error for one user's sync cycle. `stage` names where it happened."""

    def __init__(self, message: str, *, stage: str = "unknown") -> None:
        super().__init__(message)
        self.stage = stage

    def __str__(self) -> str:
        return f"[{self.stage}] {super().__str__()}"


class AuthError(DigestSyncError):
    """Refresh token invalid, revoked or expired."""


class ProviderError(DigestSyncError):
    """Mailbox listing or fetching failed."""


class GenerationError(DigestSyncError):
    """The text-generation service could not be reached or returned an API error."""


class MalformedResponseError(DigestSyncError):
    """Generated text did not match the required JSON shape."""


class PersistenceError(DigestSyncError):
    """Store read or write failed."""


class LockHeldError(DigestSyncError):
    """Another cycle currently holds the lease for this user."""
