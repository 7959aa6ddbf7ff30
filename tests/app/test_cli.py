from __future__ import annotations

import json
from pathlib import Path

import pytest

from conftest import NOW, ScriptedGenerator
from inbox_digest.app import cli
from inbox_digest.config.settings import Settings
from inbox_digest.models import DigestEntry, empty_digest
from inbox_digest.storage.repository import DigestRepository
from inbox_digest.storage.store import JsonDocumentStore


@pytest.fixture
def settings(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Settings:
    settings = Settings(data_dir=tmp_path / "data", secrets_dir=tmp_path / "secrets", logs_dir=tmp_path / "logs")
    monkeypatch.setattr(cli, "load_settings", lambda: settings)
    monkeypatch.setattr(cli, "configure_logging", lambda logs_dir, verbose=False: None)
    return settings


def _repository(settings: Settings) -> DigestRepository:
    return DigestRepository(JsonDocumentStore(settings.data_dir))


def test_register_with_explicit_email(settings: Settings, tmp_path: Path, capsys) -> None:
    token_file = tmp_path / "gmail_token.json"
    token_file.write_text(json.dumps({"refresh_token": "rt-1", "token": "ya29"}), encoding="utf-8")

    code = cli.main(["register", "--token-file", str(token_file), "--email", "ada@x.test", "--time", "08:15"])

    assert code == 0
    assert json.loads(capsys.readouterr().out)["user"] == "ada@x.test"
    user = _repository(settings).load_user("ada@x.test")
    assert (user.refresh_token, user.notification_time) == ("rt-1", "08:15")


def test_register_rejects_token_file_without_refresh_token(settings: Settings, tmp_path: Path) -> None:
    token_file = tmp_path / "gmail_token.json"
    token_file.write_text(json.dumps({"token": "ya29"}), encoding="utf-8")

    assert cli.main(["register", "--token-file", str(token_file), "--email", "ada@x.test"]) == 1


def test_preferences_with_bad_time_fail(settings: Settings) -> None:
    _repository(settings).register_user("ada@x.test", refresh_token="rt", now=NOW)

    assert cli.main(["preferences", "--user", "ada@x.test", "--time", "8am"]) == 1
    assert _repository(settings).load_user("ada@x.test").notification_time is None


def test_show_prints_stored_digest(settings: Settings, capsys) -> None:
    digest = empty_digest()
    digest["urgent"] = [DigestEntry("A", "x@a.test", "Server is down.", "2024-05-10T08:00:00Z")]
    _repository(settings).save_digest("ada@x.test", digest, "Ops trouble.", now=NOW, cycle_id="c1")

    assert cli.main(["show", "--user", "ada@x.test"]) == 0

    out = json.loads(capsys.readouterr().out)
    assert out["metaSummary"] == "Ops trouble."
    assert out["summary"]["urgent"][0]["subject"] == "A"
    assert out["createdAt"] == "2024-05-10T09:00:00Z"


def test_show_of_unknown_user_prints_empty_object(settings: Settings, capsys) -> None:
    assert cli.main(["show", "--user", "nobody@x.test"]) == 0
    assert json.loads(capsys.readouterr().out) == {}


def test_reset_forgets_last_sync_time(settings: Settings) -> None:
    repository = _repository(settings)
    repository.register_user("ada@x.test", refresh_token="rt", now=NOW)
    repository.advance_watermark("ada@x.test", NOW)

    assert cli.main(["reset", "--user", "ada@x.test"]) == 0
    assert repository.load_sync_state("ada@x.test").last_sync_time is None


def test_reset_of_unknown_user_fails(settings: Settings) -> None:
    assert cli.main(["reset", "--user", "nobody@x.test"]) == 1


def test_sync_without_openai_key_fails_cleanly(settings: Settings, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)

    assert cli.main(["sync", "--user", "ada@x.test"]) == 1


def test_summarize_empty_list_needs_no_api_key(settings: Settings, tmp_path: Path, monkeypatch, capsys) -> None:
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    emails = tmp_path / "emails.json"
    emails.write_text("[]", encoding="utf-8")

    assert cli.main(["summarize", "--file", str(emails)]) == 0
    assert json.loads(capsys.readouterr().out) == {"summary": "", "importantPoints": []}


def test_summarize_uses_the_configured_generator(settings: Settings, tmp_path: Path, monkeypatch, capsys) -> None:
    generator = ScriptedGenerator(["Build is red.\n- Fix the pipeline"])
    monkeypatch.setattr(cli, "build_generator", lambda s: generator)
    emails = tmp_path / "emails.json"
    emails.write_text(json.dumps([{"from": "ci@x.test", "subject": "Build failed", "body": "red"}]), encoding="utf-8")

    assert cli.main(["summarize", "--file", str(emails)]) == 0
    assert json.loads(capsys.readouterr().out) == {"summary": "Build is red.", "importantPoints": ["Fix the pipeline"]}
