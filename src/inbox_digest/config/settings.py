from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple

from dotenv import load_dotenv

# Load .env once, globally
load_dotenv()

# Project root (independent of current working directory).
PROJECT_ROOT = Path(__file__).resolve().parents[3]


def resolve_dir(env_key: str, default: str) -> Path:
    """
    Resolve a directory path from ENV.
    Relative paths are resolved against PROJECT_ROOT.
    """
    value = os.getenv(env_key, default)
    path = Path(value)

    if not path.is_absolute():
        path = PROJECT_ROOT / path

    path.mkdir(parents=True, exist_ok=True)
    return path


SECRETS_DIR = resolve_dir("INBOX_DIGEST_SECRETS_DIR", "secrets")
DATA_DIR    = resolve_dir("INBOX_DIGEST_DATA_DIR", ".state")
LOGS_DIR    = resolve_dir("INBOX_DIGEST_LOGS_DIR", "logs")

GOOGLE_TOKEN_URI = "https://oauth2.googleapis.com/token"


def _env_int(key: str, default: int) -> int:
    raw = os.getenv(key)
    if raw is None or not raw.strip():
        return default
    return int(raw)


def _env_bool(key: str, default: bool) -> bool:
    raw = os.getenv(key)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Settings:
    data_dir: Path
    secrets_dir: Path
    logs_dir: Path
    max_messages: int = 30
    batch_size: int = 5
    retention_hours: int = 48
    default_lookback_hours: int = 24
    openai_model: str = "gpt-4.1-mini"
    request_timeout_seconds: int = 60
    lock_ttl_seconds: int = 900
    sweep_workers: int = 8
    # "subject_sender" or "subject"
    relevance_match: str = "subject_sender"
    clear_digest_when_nothing_relevant: bool = False


def load_settings() -> Settings:
    relevance_match = os.getenv("INBOX_DIGEST_RELEVANCE_MATCH", "subject_sender").strip()
    if relevance_match not in {"subject_sender", "subject"}:
        raise RuntimeError(
            f"INBOX_DIGEST_RELEVANCE_MATCH must be 'subject_sender' or 'subject', got {relevance_match!r}"
        )

    return Settings(
        data_dir=DATA_DIR,
        secrets_dir=SECRETS_DIR,
        logs_dir=LOGS_DIR,
        max_messages=_env_int("INBOX_DIGEST_MAX_MESSAGES", 30),
        batch_size=_env_int("INBOX_DIGEST_BATCH_SIZE", 5),
        retention_hours=_env_int("INBOX_DIGEST_RETENTION_HOURS", 48),
        default_lookback_hours=_env_int("INBOX_DIGEST_LOOKBACK_HOURS", 24),
        openai_model=os.getenv("INBOX_DIGEST_OPENAI_MODEL", "gpt-4.1-mini"),
        request_timeout_seconds=_env_int("INBOX_DIGEST_REQUEST_TIMEOUT", 60),
        lock_ttl_seconds=_env_int("INBOX_DIGEST_LOCK_TTL", 900),
        sweep_workers=_env_int("INBOX_DIGEST_SWEEP_WORKERS", 8),
        relevance_match=relevance_match,
        clear_digest_when_nothing_relevant=_env_bool("INBOX_DIGEST_CLEAR_WHEN_NOTHING_RELEVANT", False),
    )


def load_openai_api_key(secrets_dir: Path = SECRETS_DIR) -> str | None:
    token = os.getenv("OPENAI_API_KEY", "").strip()
    if token:
        return token

    txt_path = secrets_dir / "openai_token.txt"
    if txt_path.exists():
        try:
            token = txt_path.read_text(encoding="utf-8").strip()
        except UnicodeDecodeError:
            return None
        return token or None

    json_path = secrets_dir / "openai_token.json"
    if json_path.exists():
        try:
            payload = json.loads(json_path.read_text(encoding="utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError):
            return None
        # Prefer explicit key names, then generic token key.
        candidates = [
            payload.get("api_key"),
            payload.get("openai_api_key"),
            payload.get("token"),
        ]
        for candidate in candidates:
            if isinstance(candidate, str):
                token = candidate.strip()
                if token:
                    return token
        return None

    return None


def load_google_client(secrets_dir: Path = SECRETS_DIR) -> Tuple[str, str]:
    """
    Return (client_id, client_secret) for refreshing user tokens.
    Env vars win; otherwise the OAuth client file from Google Cloud Console is used.
    """
    client_id = os.getenv("GOOGLE_CLIENT_ID", "").strip()
    client_secret = os.getenv("GOOGLE_CLIENT_SECRET", "").strip()
    if client_id and client_secret:
        return client_id, client_secret

    credentials_path = secrets_dir / "credentials.json"
    if not credentials_path.exists():
        raise RuntimeError(
            f"Missing Google OAuth client at {credentials_path}. "
            "Set GOOGLE_CLIENT_ID/GOOGLE_CLIENT_SECRET or configure INBOX_DIGEST_SECRETS_DIR."
        )

    payload = json.loads(credentials_path.read_text(encoding="utf-8"))
    block: Optional[dict] = payload.get("installed") or payload.get("web")
    if not block or not block.get("client_id") or not block.get("client_secret"):
        raise RuntimeError(f"{credentials_path} has no 'installed' or 'web' client block")
    return block["client_id"], block["client_secret"]
