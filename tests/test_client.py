from types import SimpleNamespace

import pytest

from errors import ExternalServiceError
from llm import client as client_module
from llm.client import (
    RATE_LIMIT_WAIT,
    HuggingFaceClient,
    OpenAIClient,
    UnconfiguredClient,
    build_client,
)


class FakeCompletions:
    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.calls = []

    def create(self, **kwargs):
        self.calls.append(kwargs)
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        message = SimpleNamespace(content=outcome)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def _openai(*outcomes):
    completions = FakeCompletions(*outcomes)
    fake = SimpleNamespace(chat=SimpleNamespace(completions=completions))
    return OpenAIClient(api_key="sk-test", model="gpt-test", client=fake), completions


class FakeInference:
    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.prompts = []

    def text_generation(self, prompt, **kwargs):
        self.prompts.append(prompt)
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


@pytest.fixture
def sleeps(monkeypatch):
    recorded = []
    monkeypatch.setattr(client_module.time, "sleep", recorded.append)
    return recorded


def test_openai_chat_sends_single_user_message(sleeps):
    client, completions = _openai("Improved text")
    assert client.chat("Rewrite this") == "Improved text"
    call = completions.calls[0]
    assert call["model"] == "gpt-test"
    assert call["messages"] == [{"role": "user", "content": "Rewrite this"}]
    assert sleeps == []


def test_openai_retries_with_backoff_then_succeeds(sleeps):
    client, _ = _openai(ConnectionError("reset"), TimeoutError("slow"), "ok")
    assert client.chat("prompt") == "ok"
    assert sleeps == [1.0, 2.0]


def test_openai_rate_limit_waits_longer(sleeps):
    client, _ = _openai(RuntimeError("Rate limit reached"), "ok")
    assert client.chat("prompt") == "ok"
    assert sleeps == [RATE_LIMIT_WAIT]


def test_openai_gives_up_after_retries(sleeps):
    client, _ = _openai(*(ConnectionError("down") for _ in range(3)))
    with pytest.raises(ExternalServiceError):
        client.chat("prompt", max_retries=3)
    assert len(sleeps) == 3


def test_openai_empty_content_is_empty_string(sleeps):
    client, _ = _openai(None)
    assert client.chat("prompt") == ""


def test_huggingface_chat_and_failure(sleeps):
    fake = FakeInference("generated")
    client = HuggingFaceClient(api_token="", model="some/model", client=fake)
    assert client.chat("prompt") == "generated"
    assert fake.prompts == ["prompt"]

    failing = HuggingFaceClient(
        api_token="", model="some/model", client=FakeInference(ConnectionError("x"))
    )
    with pytest.raises(ExternalServiceError):
        failing.chat("prompt", max_retries=1)


def test_huggingface_requires_token_without_injected_client():
    with pytest.raises(ValueError):
        HuggingFaceClient(api_token="", model="some/model")


def test_build_client_validates_provider_and_key():
    with pytest.raises(ValueError):
        build_client("openai", None, "gpt-4o-mini")
    with pytest.raises(ValueError):
        build_client("anthropic-ish", "key", "model")


def test_unconfigured_client_raises_external_service_error():
    with pytest.raises(ExternalServiceError, match="not configured"):
        UnconfiguredClient("missing OPENAI_API_KEY").chat("prompt")
