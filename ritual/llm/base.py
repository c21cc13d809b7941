"""
LLM Provider interface — the contract every provider must implement.

The firing path never calls model APIs directly. ModelRouter picks a
provider for the task's model and drains its chunks into text.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import AsyncIterator

from ritual.core.types import LLMChunk, Message, ModelInfo


class LLMProvider(ABC):
    """
    Abstract base class for LLM providers.

    Implementations:
        AnthropicProvider — Claude models
        OpenAIProvider    — GPT models
        OllamaProvider    — local models via Ollama
        MockLLMProvider   — for testing
    """

    @abstractmethod
    async def generate(
        self,
        messages: list[Message],
        temperature: float = 0.7,
        max_tokens: int | None = None,
    ) -> AsyncIterator[LLMChunk]:
        """
        Generate a response from the LLM.

        Yields:
            LLMChunk objects with streaming text.
            The LAST chunk will have stop_reason set and token counts populated.

        Raises:
            LLMError: On API failures, rate limits, connection errors
        """
        ...

    @abstractmethod
    def get_model_info(self) -> ModelInfo:
        """Return static model metadata."""
        ...

    async def close(self) -> None:
        """Release HTTP clients. Optional."""
        return None
