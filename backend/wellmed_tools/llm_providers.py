from __future__ import annotations

import logging
from typing import Any

import httpx

from wellmed_core.config import ProviderConfig, Settings
from wellmed_core.errors import ProviderError
from wellmed_core.models import GenerationParams, Message

logger = logging.getLogger(__name__)


def _provider_error_message(response: httpx.Response) -> str:
    message = response.text.strip()
    try:
        payload = response.json()
    except ValueError:
        payload = None
    if isinstance(payload, dict):
        err = payload.get("error")
        if isinstance(err, dict):
            msg = err.get("message")
            if isinstance(msg, str) and msg.strip():
                return msg.strip()
        msg = payload.get("message")
        if isinstance(msg, str) and msg.strip():
            return msg.strip()
    return message or f"HTTP {response.status_code}"


def _coerce_completion_text(response_json: dict[str, Any]) -> str:
    choices = response_json.get("choices")
    if not isinstance(choices, list) or not choices:
        return ""
    first = choices[0] if isinstance(choices[0], dict) else {}
    message = first.get("message")
    if not isinstance(message, dict):
        return ""
    content = message.get("content")
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts: list[str] = []
        for item in content:
            if isinstance(item, dict):
                text_value = item.get("text")
                if isinstance(text_value, str):
                    parts.append(text_value)
        return "\n".join(parts)
    return ""


def _coerce_anthropic_text(response_json: dict[str, Any]) -> str:
    content = response_json.get("content")
    if not isinstance(content, list):
        return ""
    parts: list[str] = []
    for item in content:
        if not isinstance(item, dict):
            continue
        if item.get("type") != "text":
            continue
        text_value = item.get("text")
        if isinstance(text_value, str) and text_value.strip():
            parts.append(text_value.strip())
    return "\n".join(parts).strip()


def _coerce_gemini_text(response_json: dict[str, Any]) -> str:
    candidates = response_json.get("candidates")
    if not isinstance(candidates, list) or not candidates:
        return ""
    content = candidates[0].get("content") if isinstance(candidates[0], dict) else None
    parts = content.get("parts") if isinstance(content, dict) else None
    if not isinstance(parts, list):
        return ""
    texts = [item["text"] for item in parts if isinstance(item, dict) and isinstance(item.get("text"), str)]
    return "".join(texts).strip()


def _split_system(messages: list[dict[str, str]]) -> tuple[str, list[dict[str, str]]]:
    system_parts = [m["content"] for m in messages if m.get("role") == "system" and m.get("content")]
    turns = [m for m in messages if m.get("role") in {"user", "assistant"} and m.get("content")]
    return "\n\n".join(system_parts), turns


def _merge_consecutive(turns: list[dict[str, str]]) -> list[dict[str, str]]:
    # A failed generation leaves two user turns back to back.
    merged: list[dict[str, str]] = []
    for turn in turns:
        if merged and merged[-1]["role"] == turn["role"]:
            merged[-1] = {"role": turn["role"], "content": f"{merged[-1]['content']}\n\n{turn['content']}"}
        else:
            merged.append(dict(turn))
    return merged


class ProviderChatClient:
    """Chat completions against the first configured provider.

    Serves both the classification call and the generation call. There is no
    failover between providers and no retry; every failure is raised as
    ``ProviderError`` carrying the upstream status.
    """

    def __init__(self, settings: Settings, *, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self.settings = settings
        self._transport = transport

    @property
    def provider(self) -> ProviderConfig | None:
        return self.settings.primary_provider

    async def classify(
        self,
        directive: str,
        messages: list[dict[str, str]],
        *,
        temperature: float = 0.0,
        max_tokens: int = 1,
        model: str | None = None,
    ) -> str:
        payload = [{"role": "system", "content": directive}, *messages]
        return await self.complete(payload, model=model, temperature=temperature, max_tokens=max_tokens)

    async def generate(self, messages: list[dict[str, str]], params: GenerationParams | None = None) -> Message:
        params = params or GenerationParams()
        text = await self.complete(
            messages,
            model=params.model,
            temperature=params.temperature if params.temperature is not None else self.settings.chat_temperature,
            max_tokens=params.max_tokens or self.settings.chat_max_tokens,
        )
        if not text.strip():
            raise ProviderError(502, "Generation service returned an empty response.")
        return Message(role="assistant", content=text.strip())

    async def complete(
        self,
        messages: list[dict[str, str]],
        *,
        model: str | None,
        temperature: float,
        max_tokens: int,
    ) -> str:
        provider = self.provider
        if provider is None:
            raise ProviderError(503, "No chat provider is configured.")
        model_name = model or provider.model
        try:
            if provider.provider == "gemini":
                text = await self._gemini_chat(provider, messages, model_name, temperature, max_tokens)
            elif provider.provider == "anthropic":
                text = await self._anthropic_chat(provider, messages, model_name, temperature, max_tokens)
            else:
                text = await self._openai_compatible_chat(provider, messages, model_name, temperature, max_tokens)
        except httpx.TimeoutException as exc:
            raise ProviderError(504, f"{provider.provider} request timed out.") from exc
        except httpx.HTTPError as exc:
            raise ProviderError(502, f"{provider.provider} request failed: {exc}") from exc
        except (AttributeError, KeyError, TypeError) as exc:
            raise ProviderError(502, f"{provider.provider} returned an unexpected payload shape.") from exc
        logger.info("chat provider used (%s, model=%s)", provider.provider, model_name)
        return text

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=httpx.Timeout(self.settings.timeout_seconds, connect=8.0),
            transport=self._transport,
        )

    async def _post(self, url: str, headers: dict[str, str], payload: dict[str, Any]) -> dict[str, Any]:
        async with self._client() as client:
            response = await client.post(url, headers=headers, json=payload)
        if response.status_code >= 400:
            raise ProviderError(response.status_code, _provider_error_message(response))
        try:
            body = response.json()
        except ValueError as exc:
            raise ProviderError(502, "Provider returned a non-JSON response.") from exc
        if not isinstance(body, dict):
            raise ProviderError(502, "Provider returned an unexpected payload.")
        return body

    async def _openai_compatible_chat(
        self,
        provider: ProviderConfig,
        messages: list[dict[str, str]],
        model: str,
        temperature: float,
        max_tokens: int,
    ) -> str:
        payload = {
            "model": model,
            "temperature": temperature,
            "max_tokens": max_tokens,
            "messages": messages,
        }
        headers: dict[str, str] = {
            "Authorization": f"Bearer {provider.api_key}",
            "Content-Type": "application/json",
        }
        if provider.provider == "openrouter":
            if self.settings.openrouter_site_url:
                headers["HTTP-Referer"] = self.settings.openrouter_site_url
            if self.settings.openrouter_app_name:
                headers["X-Title"] = self.settings.openrouter_app_name
        body = await self._post(f"{provider.base_url}/chat/completions", headers, payload)
        return _coerce_completion_text(body).strip()

    async def _anthropic_chat(
        self,
        provider: ProviderConfig,
        messages: list[dict[str, str]],
        model: str,
        temperature: float,
        max_tokens: int,
    ) -> str:
        system_prompt, turns = _split_system(messages)
        payload: dict[str, Any] = {
            "model": model,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "messages": _merge_consecutive(turns),
        }
        if system_prompt:
            payload["system"] = system_prompt
        headers = {
            "x-api-key": provider.api_key,
            "anthropic-version": self.settings.anthropic_version,
            "Content-Type": "application/json",
        }
        body = await self._post(f"{provider.base_url}/messages", headers, payload)
        return _coerce_anthropic_text(body)

    async def _gemini_chat(
        self,
        provider: ProviderConfig,
        messages: list[dict[str, str]],
        model: str,
        temperature: float,
        max_tokens: int,
    ) -> str:
        system_prompt, turns = _split_system(messages)
        payload: dict[str, Any] = {
            "contents": [
                {
                    "role": "model" if turn["role"] == "assistant" else "user",
                    "parts": [{"text": turn["content"]}],
                }
                for turn in _merge_consecutive(turns)
            ],
            "generationConfig": {"temperature": temperature, "maxOutputTokens": max_tokens},
        }
        if system_prompt:
            payload["systemInstruction"] = {"parts": [{"text": system_prompt}]}
        headers = {
            "X-goog-api-key": provider.api_key,
            "Content-Type": "application/json",
        }
        body = await self._post(f"{provider.base_url}/models/{model}:generateContent", headers, payload)
        return _coerce_gemini_text(body)
