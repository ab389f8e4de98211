# tests/test_llm_client.py

from __future__ import annotations

from types import SimpleNamespace

import httpx
import openai
import pytest

from testsmith.llm.client import OpenAISuggestionGenerator, build_messages, strip_code_fence
from testsmith.llm.offline import OfflineSuggestionGenerator


def _response(content: str | None) -> SimpleNamespace:
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


def _status_error(cls: type[openai.APIStatusError], status: int) -> openai.APIStatusError:
    request = httpx.Request("POST", "https://llm.invalid/v1/chat/completions")
    return cls("error", response=httpx.Response(status, request=request), body=None)


class FakeCompletions:
    """Stands in for client.chat.completions; answers per model from a script."""

    def __init__(self, script: dict[str, object]) -> None:
        self.script = script
        self.models: list[str] = []

    def create(self, *, model: str, messages: list[dict[str, str]]):
        self.models.append(model)
        outcome = self.script[model]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def _generator(settings, script: dict[str, object]) -> tuple[OpenAISuggestionGenerator, FakeCompletions]:
    completions = FakeCompletions(script)
    client = SimpleNamespace(chat=SimpleNamespace(completions=completions))
    return OpenAISuggestionGenerator(settings, client=client), completions


def test_strip_code_fence() -> None:
    assert strip_code_fence("```ts\nconst a = 1;\n```") == "const a = 1;"
    assert strip_code_fence("const a = 1;\n") == "const a = 1;\n"
    assert strip_code_fence("see:\n```ts\nx\n```") == "see:\n```ts\nx\n```"


def test_messages_carry_both_files() -> None:
    messages = build_messages("TEST", "SOURCE")
    assert messages[0]["role"] == "system"
    assert "TEST" in messages[1]["content"] and "SOURCE" in messages[1]["content"]


def test_first_model_answers(settings) -> None:
    gen, completions = _generator(settings, {"model-a": _response("```\nnew tests\n```"), "model-b": _response("x")})

    assert gen.generate_suggestions("old", "src") == "new tests"
    assert completions.models == ["model-a"]


def test_falls_through_to_next_model(settings) -> None:
    gen, completions = _generator(
        settings,
        {"model-a": _status_error(openai.RateLimitError, 429), "model-b": _response("new tests")},
    )

    assert gen.generate_suggestions("old", "src") == "new tests"
    assert completions.models == ["model-a", "model-b"]


def test_missing_model_is_skipped_on_later_calls(settings) -> None:
    gen, completions = _generator(
        settings,
        {"model-a": _status_error(openai.NotFoundError, 404), "model-b": _response("new tests")},
    )

    gen.generate_suggestions("old", "src")
    gen.generate_suggestions("old", "src")
    assert completions.models == ["model-a", "model-b", "model-b"]


def test_empty_answers_yield_none(settings) -> None:
    gen, _ = _generator(settings, {"model-a": _response(""), "model-b": _response(None)})
    assert gen.generate_suggestions("old", "src") is None


def test_auth_error_fails_fast(settings) -> None:
    gen, completions = _generator(
        settings,
        {"model-a": _status_error(openai.AuthenticationError, 401), "model-b": _response("x")},
    )

    with pytest.raises(RuntimeError, match="authentication"):
        gen.generate_suggestions("old", "src")
    assert completions.models == ["model-a"]


def test_configuration_errors(settings) -> None:
    settings.llm_models = []
    with pytest.raises(RuntimeError, match="model list"):
        OpenAISuggestionGenerator(settings)

    settings.llm_models = ["model-a"]
    settings.openai_api_key = None
    with pytest.raises(RuntimeError, match="API key"):
        OpenAISuggestionGenerator(settings)


def test_offline_generator_returns_none() -> None:
    assert OfflineSuggestionGenerator().generate_suggestions("old", "src") is None
