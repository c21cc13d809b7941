"""
Ritual shared LLM types.

All types are dataclasses. Frozen where immutability makes sense.
Provider adapters convert to and from these.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum


class StopReason(str, Enum):
    """Why the LLM stopped generating."""

    COMPLETE = "complete"
    MAX_TOKENS = "max_tokens"
    CANCELLED = "cancelled"


@dataclass(slots=True)
class Message:
    """A single message sent to a provider."""

    role: str  # "system", "user", "assistant"
    content: str | None = None
    timestamp: float = field(default_factory=time.time)

    @staticmethod
    def system(content: str) -> Message:
        return Message(role="system", content=content)

    @staticmethod
    def user(content: str) -> Message:
        return Message(role="user", content=content)

    @staticmethod
    def assistant(content: str | None = None) -> Message:
        return Message(role="assistant", content=content)


@dataclass(frozen=True, slots=True)
class ModelInfo:
    """Static metadata about an LLM model."""

    provider: str  # "anthropic", "openai", "ollama", "mock"
    model: str
    context_window: int
    max_output_tokens: int
    supports_streaming: bool = True


@dataclass(slots=True)
class LLMChunk:
    """A single chunk from a streaming LLM response."""

    text: str = ""
    stop_reason: StopReason | None = None
    input_tokens: int = 0
    output_tokens: int = 0
