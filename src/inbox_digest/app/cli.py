from __future__ import annotations

import argparse
import json
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from inbox_digest.app.run import (
    build_generator,
    build_identity,
    build_repository,
    run_scheduled_sweep,
    run_user_sync,
    utc_now,
)
from inbox_digest.config.logging import configure_logging
from inbox_digest.config.settings import Settings, load_settings
from inbox_digest.errors import DigestSyncError
from inbox_digest.models import digest_to_dict
from inbox_digest.parsing.parser import to_iso
from inbox_digest.pipeline.brief import EmailBrief, messages_from_json, summarize_emails

logger = logging.getLogger(__name__)


def _print_json(payload: Dict[str, Any]) -> None:
    print(json.dumps(payload, indent=2, ensure_ascii=False))


def _parse_at(value: str) -> datetime:
    # "HH:MM" today (UTC), for running a sweep as if the trigger fired then.
    hours, minutes = (int(part) for part in value.split(":"))
    return utc_now().replace(hour=hours, minute=minutes, second=0, microsecond=0)


def cmd_sync(settings: Settings, args: argparse.Namespace) -> int:
    def progress(step: str, event: Dict[str, Any]) -> None:
        logger.info("[progress] %s: %s", step, event.get("detail"))

    result = run_user_sync(settings, args.user, progress_cb=progress if args.verbose else None)
    _print_json(
        {
            "ok": result.ok,
            "status": result.status,
            "stage": result.stage,
            "fetched": result.fetched,
            "relevant": result.relevant,
            "entries": result.entries,
            "skipped_batches": result.skipped_batches,
            "metaSummary": result.meta_summary,
            "error": result.error,
        }
    )
    return 0 if result.ok else 1


def cmd_sweep(settings: Settings, args: argparse.Namespace) -> int:
    now = _parse_at(args.at) if args.at else None
    report = run_scheduled_sweep(settings, now=now)
    _print_json(
        {
            "attempted": report.attempted,
            "succeeded": report.succeeded,
            "failed": report.failed,
            "skipped": report.skipped,
            "users": [{"user": r.user_key, "status": r.status, "error": r.error} for r in report.results],
        }
    )
    return 0 if report.failed == 0 else 1


def cmd_reset(settings: Settings, args: argparse.Namespace) -> int:
    build_repository(settings).reset_sync(args.user)
    _print_json({"ok": True, "message": "lastSyncTime reset"})
    return 0


def cmd_show(settings: Settings, args: argparse.Namespace) -> int:
    snapshot = build_repository(settings).load_digest(args.user)
    if snapshot is None:
        _print_json({})
        return 0
    _print_json(
        {
            "summary": digest_to_dict(snapshot.summary),
            "metaSummary": snapshot.meta_summary,
            "createdAt": to_iso(snapshot.created_at) if snapshot.created_at else None,
        }
    )
    return 0


def cmd_register(settings: Settings, args: argparse.Namespace) -> int:
    token_data = json.loads(Path(args.token_file).read_text(encoding="utf-8"))
    refresh_token = token_data.get("refresh_token")
    if not refresh_token:
        raise RuntimeError(f"{args.token_file} has no refresh_token")

    email = args.email
    if not email:
        identity = build_identity(settings)
        profile = identity.fetch_profile(identity.refresh_access_token(refresh_token))
        email = profile.get("email")
        if not email:
            raise RuntimeError("Profile lookup returned no email address")

    build_repository(settings).register_user(
        email,
        refresh_token=refresh_token,
        notification_time=args.time,
        now=utc_now(),
    )
    _print_json({"ok": True, "user": email, "notificationTime": args.time})
    return 0


def cmd_preferences(settings: Settings, args: argparse.Namespace) -> int:
    updated = build_repository(settings).update_preferences(
        args.user,
        notification_time=args.time,
        summary_format=args.format,
    )
    _print_json({"message": "Preferences updated successfully", "preferences": updated})
    return 0


def cmd_summarize(settings: Settings, args: argparse.Namespace) -> int:
    messages = messages_from_json(json.loads(Path(args.file).read_text(encoding="utf-8")))
    # An empty list is answered locally and needs no API key.
    brief = summarize_emails(build_generator(settings), messages) if messages else EmailBrief()
    _print_json(brief.to_dict())
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="inbox-digest",
        description="Fetch, classify and summarize Gmail into a rolling daily digest.",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging and progress output.")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("sync", help="Run one sync cycle for a user now.")
    p.add_argument("--user", required=True, help="User key (email address).")
    p.set_defaults(func=cmd_sync)

    p = sub.add_parser("sweep", help="Sync every user whose notification time is now (UTC).")
    p.add_argument("--at", help="Pretend the trigger fired at HH:MM UTC today.")
    p.set_defaults(func=cmd_sweep)

    p = sub.add_parser("reset", help="Forget the last sync time of a user.")
    p.add_argument("--user", required=True)
    p.set_defaults(func=cmd_reset)

    p = sub.add_parser("show", help="Print the stored digest of a user.")
    p.add_argument("--user", required=True)
    p.set_defaults(func=cmd_show)

    p = sub.add_parser("summarize", help="Summarize an ad-hoc list of emails into a summary and important points.")
    p.add_argument("--file", required=True, help="JSON list of {from, subject, body} objects.")
    p.set_defaults(func=cmd_summarize)

    p = sub.add_parser("register", help="Store a user's refresh token from an authorized-user token file.")
    p.add_argument("--token-file", required=True, help="JSON with refresh_token (e.g. gmail_token.json).")
    p.add_argument("--email", help="Skip the profile lookup and use this user key.")
    p.add_argument("--time", help="Notification time HH:MM (UTC).")
    p.set_defaults(func=cmd_register)

    p = sub.add_parser("preferences", help="Update notification time / summary format.")
    p.add_argument("--user", required=True)
    p.add_argument("--time", help="Notification time HH:MM (UTC).")
    p.add_argument("--format", choices=["concise", "detailed"])
    p.set_defaults(func=cmd_preferences)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    settings = load_settings()
    configure_logging(settings.logs_dir, verbose=args.verbose)
    try:
        return args.func(settings, args)
    except (DigestSyncError, RuntimeError, ValueError) as exc:
        logger.error("[cli] %s failed: %s", args.command, exc)
        return 1


if __name__ == "__main__":
    sys.exit(main())
