"""
OpenAI LLM Provider — chat completions over HTTP.

Non-streaming: one request, then one text chunk and one completion chunk.
"""

from __future__ import annotations

import logging
from typing import Any, AsyncIterator

import httpx

from ritual.core.errors import LLMError
from ritual.core.types import LLMChunk, Message, ModelInfo, StopReason
from ritual.llm.base import LLMProvider

logger = logging.getLogger(__name__)

CONTEXT_WINDOWS = {
    "gpt-3.5-turbo": 16385,
    "gpt-4": 8192,
    "gpt-4-turbo": 128000,
    "gpt-4o": 128000,
    "gpt-4o-mini": 128000,
}


class OpenAIProvider(LLMProvider):
    """
    Usage:
        provider = OpenAIProvider(api_key="sk-...", model="gpt-4o-mini")
        async for chunk in provider.generate([Message.user("Hello")]):
            print(chunk.text, end="")
    """

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o-mini",
        base_url: str = "https://api.openai.com/v1",
        timeout: float = 120.0,
    ) -> None:
        if not api_key:
            raise LLMError("OpenAI API key not configured", provider="openai", model=model)
        self._api_key = api_key
        self._model = model
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                headers={"Authorization": f"Bearer {self._api_key}"},
                timeout=httpx.Timeout(connect=10.0, read=self._timeout, write=10.0, pool=10.0),
            )
        return self._client

    async def generate(
        self,
        messages: list[Message],
        temperature: float = 0.7,
        max_tokens: int | None = None,
    ) -> AsyncIterator[LLMChunk]:
        client = await self._get_client()
        payload: dict[str, Any] = {
            "model": self._model,
            "messages": [{"role": m.role, "content": m.content or ""} for m in messages],
            "temperature": temperature,
        }
        if max_tokens is not None:
            payload["max_tokens"] = max_tokens

        try:
            response = await client.post("/chat/completions", json=payload)
        except httpx.ConnectError as e:
            raise LLMError(
                f"Cannot connect to OpenAI at {self._base_url}: {e}",
                provider="openai",
                model=self._model,
                retryable=True,
            ) from e
        except httpx.TimeoutException as e:
            raise LLMError(
                f"OpenAI request timed out: {e}", provider="openai", model=self._model, retryable=True
            ) from e

        if response.status_code != 200:
            raise LLMError(
                f"OpenAI API error ({response.status_code}): {response.text}",
                provider="openai",
                model=self._model,
                retryable=response.status_code == 429 or response.status_code >= 500,
            )

        data = response.json()
        try:
            choice = data["choices"][0]
            text = choice["message"].get("content") or ""
        except (KeyError, IndexError) as e:
            raise LLMError(
                f"Malformed OpenAI response: {e}", provider="openai", model=self._model
            ) from e

        usage = data.get("usage", {})
        if text:
            yield LLMChunk(text=text)
        yield LLMChunk(
            stop_reason=StopReason.MAX_TOKENS if choice.get("finish_reason") == "length" else StopReason.COMPLETE,
            input_tokens=usage.get("prompt_tokens", 0),
            output_tokens=usage.get("completion_tokens", 0),
        )

    def get_model_info(self) -> ModelInfo:
        return ModelInfo(
            provider="openai",
            model=self._model,
            context_window=CONTEXT_WINDOWS.get(self._model, 8192),
            max_output_tokens=4096,
            supports_streaming=False,
        )

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()
