"""
Mock LLM Provider — for testing.

Returns configurable responses without making any API calls.
Tracks all calls for test assertions.
"""

from __future__ import annotations

from typing import AsyncIterator

from ritual.core.errors import LLMError
from ritual.core.types import LLMChunk, Message, ModelInfo, StopReason
from ritual.llm.base import LLMProvider


class MockLLMProvider(LLMProvider):
    """
    Mock LLM that returns pre-configured responses.

    Usage in tests:
        mock = MockLLMProvider()
        mock.set_response("Hello, world!")

        async for chunk in mock.generate([...]):
            print(chunk.text)
        # prints "Hello, world!"

        # Check what was sent
        assert mock.last_messages[-1].role == "user"

    For failure testing:
        mock.set_error(LLMError("rate limited", provider="mock"))
    """

    def __init__(self, model: str = "mock-model") -> None:
        self._model = model

        # Response queue, each generate() call pops the first one
        self._responses: list[list[LLMChunk] | LLMError] = []

        # Default response if queue is empty
        self._default_response = "I'm a mock AI. Configure me with set_response()."

        # Call tracking
        self.call_count: int = 0
        self.last_messages: list[Message] = []
        self.all_calls: list[dict] = []

    def set_response(self, text: str) -> None:
        """Queue a text response for the next generate() call."""
        self._responses.append(
            [
                LLMChunk(text=text),
                LLMChunk(
                    stop_reason=StopReason.COMPLETE,
                    input_tokens=len(text) // 4,
                    output_tokens=len(text) // 4,
                ),
            ]
        )

    def set_responses(self, texts: list[str]) -> None:
        """Queue multiple text responses for successive generate() calls."""
        for text in texts:
            self.set_response(text)

    def set_error(self, error: LLMError) -> None:
        """Make the next generate() call raise error."""
        self._responses.append(error)

    async def generate(
        self,
        messages: list[Message],
        temperature: float = 0.7,
        max_tokens: int | None = None,
    ) -> AsyncIterator[LLMChunk]:
        """Return queued response or default."""
        self.call_count += 1
        self.last_messages = list(messages)
        self.all_calls.append(
            {
                "messages": list(messages),
                "temperature": temperature,
                "max_tokens": max_tokens,
                "call_number": self.call_count,
            }
        )

        if self._responses:
            queued = self._responses.pop(0)
        else:
            queued = [
                LLMChunk(text=self._default_response),
                LLMChunk(
                    stop_reason=StopReason.COMPLETE,
                    input_tokens=10,
                    output_tokens=len(self._default_response) // 4,
                ),
            ]

        if isinstance(queued, LLMError):
            raise queued
        for chunk in queued:
            yield chunk

    def get_model_info(self) -> ModelInfo:
        return ModelInfo(
            provider="mock",
            model=self._model,
            context_window=8192,
            max_output_tokens=2048,
        )

    def reset(self) -> None:
        """Reset all state. Useful between tests."""
        self._responses.clear()
        self.call_count = 0
        self.all_calls.clear()
