"""
Anthropic LLM Provider — the Messages API over HTTP.

Non-streaming: one request, then one text chunk and one completion chunk.
System messages are lifted into the top-level "system" field.
"""

from __future__ import annotations

import logging
from typing import Any, AsyncIterator

import httpx

from ritual.core.errors import LLMError
from ritual.core.types import LLMChunk, Message, ModelInfo, StopReason
from ritual.llm.base import LLMProvider

logger = logging.getLogger(__name__)

API_VERSION = "2023-06-01"
DEFAULT_MAX_TOKENS = 1000


class AnthropicProvider(LLMProvider):
    """
    Usage:
        provider = AnthropicProvider(api_key="sk-ant-...", model="claude-3-5-haiku-20241022")
        async for chunk in provider.generate([Message.user("Hello")]):
            print(chunk.text, end="")
    """

    def __init__(
        self,
        api_key: str,
        model: str = "claude-3-5-sonnet-20241022",
        base_url: str = "https://api.anthropic.com",
        timeout: float = 120.0,
    ) -> None:
        if not api_key:
            raise LLMError("Anthropic API key not configured", provider="anthropic", model=model)
        self._api_key = api_key
        self._model = model
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                headers={"x-api-key": self._api_key, "anthropic-version": API_VERSION},
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

        system = "\n\n".join(m.content or "" for m in messages if m.role == "system")
        payload: dict[str, Any] = {
            "model": self._model,
            "max_tokens": max_tokens or DEFAULT_MAX_TOKENS,
            "temperature": temperature,
            "messages": [
                {"role": m.role, "content": m.content or ""}
                for m in messages
                if m.role != "system"
            ],
        }
        if system:
            payload["system"] = system

        try:
            response = await client.post("/v1/messages", json=payload)
        except httpx.ConnectError as e:
            raise LLMError(
                f"Cannot connect to Anthropic at {self._base_url}: {e}",
                provider="anthropic",
                model=self._model,
                retryable=True,
            ) from e
        except httpx.TimeoutException as e:
            raise LLMError(
                f"Anthropic request timed out: {e}",
                provider="anthropic",
                model=self._model,
                retryable=True,
            ) from e

        if response.status_code != 200:
            raise LLMError(
                f"Anthropic API error ({response.status_code}): {response.text}",
                provider="anthropic",
                model=self._model,
                retryable=response.status_code in (429, 529) or response.status_code >= 500,
            )

        data = response.json()
        text = "".join(
            block.get("text", "") for block in data.get("content", []) if block.get("type") == "text"
        )
        usage = data.get("usage", {})
        if text:
            yield LLMChunk(text=text)
        yield LLMChunk(
            stop_reason=StopReason.MAX_TOKENS if data.get("stop_reason") == "max_tokens" else StopReason.COMPLETE,
            input_tokens=usage.get("input_tokens", 0),
            output_tokens=usage.get("output_tokens", 0),
        )

    def get_model_info(self) -> ModelInfo:
        return ModelInfo(
            provider="anthropic",
            model=self._model,
            context_window=200000,
            max_output_tokens=8192,
            supports_streaming=False,
        )

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()
