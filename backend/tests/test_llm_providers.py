from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from wellmed_core import (
    ContextInjector,
    ConversationOrchestrator,
    GenerationFailure,
    GenerationParams,
    Message,
    ProviderError,
    SessionStore,
    Settings,
    TopicClassifier,
)
from wellmed_core.config import ProviderConfig, provider_candidates
from wellmed_tools import ProviderChatClient


def _settings(provider: str, model: str = "test-model") -> Settings:
    return Settings(
        providers=[
            ProviderConfig(provider=provider, base_url=f"https://{provider}.test/v1", api_key="k-test", model=model)
        ]
    )


def _capturing_transport(response: httpx.Response, captured: list[httpx.Request]) -> httpx.MockTransport:
    def handler(request: httpx.Request) -> httpx.Response:
        captured.append(request)
        return response

    return httpx.MockTransport(handler)


_CONVERSATION = [
    {"role": "system", "content": "persona"},
    {"role": "system", "content": "[DOCUMENT CONTEXT] doc"},
    {"role": "user", "content": "Is 140/90 high?"},
]


def test_gemini_generation_payload_and_reply():
    captured: list[httpx.Request] = []
    response = httpx.Response(200, json={"candidates": [{"content": {"parts": [{"text": "Yes, that is high."}]}}]})
    client = ProviderChatClient(_settings("gemini", "gemini-2.0-flash"), transport=_capturing_transport(response, captured))

    reply = asyncio.run(client.generate(_CONVERSATION, GenerationParams(temperature=0.1, max_tokens=200)))

    assert reply == Message(role="assistant", content="Yes, that is high.")
    request = captured[0]
    assert str(request.url) == "https://gemini.test/v1/models/gemini-2.0-flash:generateContent"
    assert request.headers["x-goog-api-key"] == "k-test"
    body = json.loads(request.content)
    assert body["systemInstruction"]["parts"][0]["text"] == "persona\n\n[DOCUMENT CONTEXT] doc"
    assert body["contents"] == [{"role": "user", "parts": [{"text": "Is 140/90 high?"}]}]
    assert body["generationConfig"] == {"temperature": 0.1, "maxOutputTokens": 200}


def test_gemini_merges_back_to_back_user_turns_and_maps_assistant_role():
    captured: list[httpx.Request] = []
    response = httpx.Response(200, json={"candidates": [{"content": {"parts": [{"text": "ok"}]}}]})
    client = ProviderChatClient(_settings("gemini"), transport=_capturing_transport(response, captured))
    messages = [
        {"role": "system", "content": "persona"},
        {"role": "user", "content": "first"},
        {"role": "assistant", "content": "answer"},
        {"role": "user", "content": "unanswered"},
        {"role": "user", "content": "retry"},
    ]
    asyncio.run(client.generate(messages))

    contents = json.loads(captured[0].content)["contents"]
    assert [item["role"] for item in contents] == ["user", "model", "user"]
    assert contents[-1]["parts"][0]["text"] == "unanswered\n\nretry"


def test_openai_classification_payload():
    captured: list[httpx.Request] = []
    response = httpx.Response(200, json={"choices": [{"message": {"role": "assistant", "content": "yes"}}]})
    client = ProviderChatClient(_settings("openai", "gpt-4o-mini"), transport=_capturing_transport(response, captured))

    answer = asyncio.run(
        client.classify("directive", _CONVERSATION, temperature=0.0, max_tokens=1, model="gpt-4o")
    )

    assert answer == "yes"
    request = captured[0]
    assert str(request.url) == "https://openai.test/v1/chat/completions"
    assert request.headers["authorization"] == "Bearer k-test"
    body = json.loads(request.content)
    assert body["model"] == "gpt-4o"
    assert body["temperature"] == 0.0
    assert body["max_tokens"] == 1
    assert body["messages"][0] == {"role": "system", "content": "directive"}
    assert body["messages"][1:] == _CONVERSATION


def test_anthropic_payload_moves_system_messages_out_of_turns():
    captured: list[httpx.Request] = []
    response = httpx.Response(200, json={"content": [{"type": "text", "text": "no"}]})
    client = ProviderChatClient(_settings("anthropic"), transport=_capturing_transport(response, captured))

    answer = asyncio.run(client.classify("directive", _CONVERSATION, temperature=0.0, max_tokens=1))

    assert answer == "no"
    request = captured[0]
    assert str(request.url) == "https://anthropic.test/v1/messages"
    assert request.headers["x-api-key"] == "k-test"
    body = json.loads(request.content)
    assert body["system"] == "directive\n\npersona\n\n[DOCUMENT CONTEXT] doc"
    assert body["messages"] == [{"role": "user", "content": "Is 140/90 high?"}]
    assert body["max_tokens"] == 1


def test_upstream_error_status_and_message_are_preserved():
    response = httpx.Response(429, json={"error": {"message": "Resource has been exhausted"}})
    client = ProviderChatClient(_settings("gemini"), transport=_capturing_transport(response, []))

    with pytest.raises(ProviderError) as exc_info:
        asyncio.run(client.generate(_CONVERSATION))

    assert exc_info.value.status_code == 429
    assert exc_info.value.detail == "Resource has been exhausted"


def test_timeouts_and_transport_errors_become_provider_errors():
    def timeout_handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("slow", request=request)

    def connect_handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    timeout_client = ProviderChatClient(_settings("openai"), transport=httpx.MockTransport(timeout_handler))
    with pytest.raises(ProviderError) as timeout_info:
        asyncio.run(timeout_client.generate(_CONVERSATION))
    assert timeout_info.value.status_code == 504

    connect_client = ProviderChatClient(_settings("openai"), transport=httpx.MockTransport(connect_handler))
    with pytest.raises(ProviderError) as connect_info:
        asyncio.run(connect_client.generate(_CONVERSATION))
    assert connect_info.value.status_code == 502


def test_empty_generation_is_an_error_and_missing_provider_is_503():
    response = httpx.Response(200, json={"choices": [{"message": {"content": "  "}}]})
    client = ProviderChatClient(_settings("openai"), transport=_capturing_transport(response, []))
    with pytest.raises(ProviderError) as empty_info:
        asyncio.run(client.generate(_CONVERSATION))
    assert empty_info.value.status_code == 502

    with pytest.raises(ProviderError) as missing_info:
        asyncio.run(ProviderChatClient(Settings()).generate(_CONVERSATION))
    assert missing_info.value.status_code == 503


def test_provider_preference_orders_candidates(monkeypatch):
    monkeypatch.setenv("GEMINI_API_KEY", "g-key")
    monkeypatch.setenv("OPENAI_API_KEY", "o-key")
    monkeypatch.setenv("ANTHROPIC_API_KEY", "")
    monkeypatch.setenv("OPENROUTER_API_KEY", "")
    monkeypatch.setenv("WELLMED_CHAT_PROVIDER", "openai")
    assert [candidate.provider for candidate in provider_candidates()] == ["openai", "gemini"]

    monkeypatch.setenv("WELLMED_CHAT_PROVIDER", "auto")
    assert [candidate.provider for candidate in provider_candidates()] == ["gemini", "openai"]


def _sequenced_transport(responses: list[httpx.Response]) -> httpx.MockTransport:
    def handler(request: httpx.Request) -> httpx.Response:
        return responses.pop(0) if len(responses) > 1 else responses[0]

    return httpx.MockTransport(handler)


def _orchestrator_over(client: ProviderChatClient) -> ConversationOrchestrator:
    return ConversationOrchestrator(
        store=SessionStore(),
        injector=ContextInjector(),
        classifier=TopicClassifier(client),
        generation_client=client,
    )


@pytest.mark.parametrize(
    "body",
    [
        {"choices": [{"message": None}]},
        {"choices": ["yes"]},
        {"choices": [{"message": "yes"}]},
    ],
)
def test_malformed_completion_is_a_provider_error(body):
    client = ProviderChatClient(_settings("openai"), transport=_capturing_transport(httpx.Response(200, json=body), []))

    with pytest.raises(ProviderError) as exc_info:
        asyncio.run(client.generate(_CONVERSATION))

    assert exc_info.value.status_code == 502


def test_malformed_classifier_response_denies_the_turn():
    response = httpx.Response(200, json={"choices": [{"message": None}]})
    orchestrator = _orchestrator_over(ProviderChatClient(_settings("openai"), transport=_sequenced_transport([response])))

    result = asyncio.run(orchestrator.handle_turn("s1", {"role": "user", "content": "I have a fever"}))

    assert result.outcome == "denied"
    assert [message.role for message in orchestrator.store.get("s1").log] == ["system", "user", "assistant"]


def test_malformed_generation_response_is_a_502_generation_failure():
    responses = [
        httpx.Response(200, json={"choices": [{"message": {"content": "yes"}}]}),
        httpx.Response(200, json={"choices": [{"message": None}]}),
    ]
    orchestrator = _orchestrator_over(ProviderChatClient(_settings("openai"), transport=_sequenced_transport(responses)))
    store = orchestrator.store
    store.get_or_create("s1")
    before = len(store.get("s1").log)

    with pytest.raises(GenerationFailure) as exc_info:
        asyncio.run(orchestrator.handle_turn("s1", {"role": "user", "content": "I have a fever"}))

    assert exc_info.value.status_code == 502
    log = store.get("s1").log
    assert len(log) == before + 1
    assert log[len(log) - 1].content == "I have a fever"
