"""
Ollama LLM Provider — connects to the Ollama API.

Ollama runs LLMs locally or on a remote server.
API docs: https://github.com/ollama/ollama/blob/main/docs/api.md

Tasks select it with an "ollama:" model prefix, e.g. "ollama:llama3.1".
Responses are streamed from /api/chat.
"""

from __future__ import annotations

import json
import logging
from typing import Any, AsyncIterator

import httpx

from ritual.core.errors import LLMError
from ritual.core.types import LLMChunk, Message, ModelInfo, StopReason
from ritual.llm.base import LLMProvider

logger = logging.getLogger(__name__)


class OllamaProvider(LLMProvider):
    """
    LLM provider for Ollama.

    Usage:
        provider = OllamaProvider(base_url="http://localhost:11434", model="llama3.1")

        async for chunk in provider.generate([Message.user("Hello")]):
            print(chunk.text, end="")
    """

    def __init__(
        self,
        base_url: str = "http://localhost:11434",
        model: str = "llama3.1",
        timeout: float = 120.0,
        context_window: int = 128000,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._model = model
        self._timeout = timeout
        self._context_window = context_window
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                timeout=httpx.Timeout(connect=10.0, read=self._timeout, write=10.0, pool=10.0),
            )
        return self._client

    async def generate(
        self,
        messages: list[Message],
        temperature: float = 0.7,
        max_tokens: int | None = None,
    ) -> AsyncIterator[LLMChunk]:
        """Stream a response from Ollama."""
        client = await self._get_client()

        payload: dict[str, Any] = {
            "model": self._model,
            "messages": [{"role": m.role, "content": m.content or ""} for m in messages],
            "stream": True,
            "options": {"temperature": temperature},
        }
        if max_tokens is not None:
            payload["options"]["num_predict"] = max_tokens

        try:
            async with client.stream("POST", "/api/chat", json=payload) as response:
                if response.status_code != 200:
                    error_body = await response.aread()
                    raise LLMError(
                        f"Ollama API error ({response.status_code}): {error_body.decode()}",
                        provider="ollama",
                        model=self._model,
                        retryable=response.status_code >= 500,
                    )

                async for line in response.aiter_lines():
                    if not line.strip():
                        continue
                    try:
                        data = json.loads(line)
                    except json.JSONDecodeError:
                        continue

                    if "error" in data:
                        raise LLMError(
                            f"Ollama stream error: {data['error']}",
                            provider="ollama",
                            model=self._model,
                            retryable=True,
                        )

                    content = data.get("message", {}).get("content", "")
                    if content:
                        yield LLMChunk(text=content)

                    if data.get("done"):
                        yield LLMChunk(
                            stop_reason=StopReason.COMPLETE,
                            input_tokens=data.get("prompt_eval_count", 0),
                            output_tokens=data.get("eval_count", 0),
                        )
                        return

        except httpx.ConnectError as e:
            raise LLMError(
                f"Cannot connect to Ollama at {self._base_url}. Is Ollama running? Error: {e}",
                provider="ollama",
                model=self._model,
                retryable=True,
            ) from e
        except httpx.TimeoutException as e:
            raise LLMError(
                f"Ollama request timed out: {e}",
                provider="ollama",
                model=self._model,
                retryable=True,
            ) from e
        except LLMError:
            raise
        except Exception as e:
            raise LLMError(
                f"Unexpected error communicating with Ollama: {e}",
                provider="ollama",
                model=self._model,
            ) from e

    def get_model_info(self) -> ModelInfo:
        return ModelInfo(
            provider="ollama",
            model=self._model,
            context_window=self._context_window,
            max_output_tokens=8192,
        )

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
