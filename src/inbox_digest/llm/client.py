from __future__ import annotations

from typing import Protocol

from openai import OpenAI, OpenAIError

from inbox_digest.errors import GenerationError


class TextGenerator(Protocol):
    def complete(self, system_prompt: str, user_prompt: str, *, structured_output: bool = False) -> str: ...


class OpenAITextGenerator:
    def __init__(self, api_key: str | None, *, model: str = "gpt-4.1-mini", timeout: float = 60.0):
        # No client-side retries: a failed call fails the cycle, the next scheduled run retries.
        self._client = OpenAI(api_key=api_key, timeout=timeout, max_retries=0)
        self._model = model

    def complete(self, system_prompt: str, user_prompt: str, *, structured_output: bool = False) -> str:
        request = {
            "model": self._model,
            "input": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
        }
        if structured_output:
            # JSON mode; the caller still validates the shape.
            request["text"] = {"format": {"type": "json_object"}}

        try:
            resp = self._client.responses.create(**request)
        except OpenAIError as exc:
            raise GenerationError(f"{type(exc).__name__}: {exc}", stage="generate") from exc
        return resp.output_text or ""
