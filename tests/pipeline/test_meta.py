from __future__ import annotations

from conftest import ScriptedGenerator
from inbox_digest.errors import GenerationError
from inbox_digest.models import DigestEntry, empty_digest
from inbox_digest.pipeline.meta import flatten, summarize_digest


def _digest():
    digest = empty_digest()
    digest["notImportant"] = [DigestEntry("N", "n", "meh", "2024-05-10T08:00:00Z")]
    digest["urgent"] = [DigestEntry("U", "u", "now!", "2024-05-10T08:00:00Z")]
    digest["goodToKnow"] = [DigestEntry("G", "g", "fyi", "2024-05-10T08:00:00Z")]
    return digest


def test_flatten_follows_category_order() -> None:
    assert [e.subject for e in flatten(_digest())] == ["U", "G", "N"]


def test_empty_digest_makes_no_call() -> None:
    generator = ScriptedGenerator()

    assert summarize_digest(generator, empty_digest()) == ""
    assert generator.calls == []


def test_meta_summary_is_free_text() -> None:
    generator = ScriptedGenerator(["  Mostly billing and one urgent deadline.  "])

    text = summarize_digest(generator, _digest())

    assert text == "Mostly billing and one urgent deadline."
    assert generator.calls[0]["structured"] is False
    assert generator.calls[0]["user"].index("Subject: U") < generator.calls[0]["user"].index("Subject: N")


def test_service_failure_gives_empty_string() -> None:
    generator = ScriptedGenerator([GenerationError("rate limited", stage="generate")])

    assert summarize_digest(generator, _digest()) == ""
