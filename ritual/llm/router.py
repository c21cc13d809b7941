"""
ModelRouter — picks the provider for a task's model and runs its prompt.

Model names map to providers through MODEL_PROVIDERS. A model written as
"ollama:<name>" is served by a local Ollama instance. Providers are built
lazily and cached per model.
"""

from __future__ import annotations

import logging

from ritual.core.config import LLMConfig
from ritual.core.errors import LLMError
from ritual.core.types import Message
from ritual.llm.base import LLMProvider

logger = logging.getLogger(__name__)

MODEL_PROVIDERS: dict[str, str] = {
    # Anthropic models
    "claude-3-5-sonnet-20241022": "anthropic",
    "claude-3-5-haiku-20241022": "anthropic",
    "claude-3-opus-20240229": "anthropic",
    "claude-3-sonnet-20240229": "anthropic",
    "claude-3-haiku-20240307": "anthropic",
    # OpenAI models
    "gpt-3.5-turbo": "openai",
    "gpt-4": "openai",
    "gpt-4-turbo": "openai",
    "gpt-4o": "openai",
    "gpt-4o-mini": "openai",
}

OLLAMA_PREFIX = "ollama:"

SYSTEM_PROMPT = (
    "You are a helpful proactive assistant completing a scheduled task. "
    "Be concise and clear. Do not ask follow-up questions."
)


def provider_name_for(model: str) -> str:
    """Provider name for a model. Raises LLMError for unsupported models."""
    if model.startswith(OLLAMA_PREFIX):
        return "ollama"
    provider = MODEL_PROVIDERS.get(model)
    if provider is None:
        raise LLMError(f"Unsupported model: {model}", model=model)
    return provider


class ModelRouter:
    """
    Usage:
        router = ModelRouter(config.llm)
        text = await router.execute("Summarize my day", model="gpt-4o-mini")

    Tests pass ready-made providers:
        router = ModelRouter(config.llm, providers={"gpt-4": MockLLMProvider()})
    """

    def __init__(
        self,
        config: LLMConfig,
        providers: dict[str, LLMProvider] | None = None,
    ) -> None:
        self._config = config
        self._providers: dict[str, LLMProvider] = dict(providers or {})

    @property
    def default_model(self) -> str:
        return self._config.default_model

    def provider_for(self, model: str) -> LLMProvider:
        """Return (building if needed) the provider that serves model."""
        if model in self._providers:
            return self._providers[model]

        name = provider_name_for(model)
        provider: LLMProvider
        if name == "anthropic":
            from ritual.llm.anthropic import AnthropicProvider

            provider = AnthropicProvider(
                api_key=self._config.anthropic_api_key,
                model=model,
                base_url=self._config.anthropic_base_url,
                timeout=self._config.timeout,
            )
        elif name == "openai":
            from ritual.llm.openai import OpenAIProvider

            provider = OpenAIProvider(
                api_key=self._config.openai_api_key,
                model=model,
                base_url=self._config.openai_base_url,
                timeout=self._config.timeout,
            )
        else:
            from ritual.llm.ollama import OllamaProvider

            provider = OllamaProvider(
                base_url=self._config.ollama_base_url,
                model=model[len(OLLAMA_PREFIX):],
                timeout=self._config.timeout,
            )

        self._providers[model] = provider
        logger.debug(f"Provider {name} built for model {model}")
        return provider

    async def execute(self, prompt: str, model: str | None = None) -> str:
        """
        Run a prompt and return the full text output.

        Raises:
            LLMError: unsupported model, missing key, or provider failure
        """
        model = model or self._config.default_model
        provider = self.provider_for(model)

        messages = [Message.system(SYSTEM_PROMPT), Message.user(prompt)]
        parts: list[str] = []
        async for chunk in provider.generate(
            messages,
            temperature=self._config.temperature,
            max_tokens=self._config.max_tokens,
        ):
            if chunk.text:
                parts.append(chunk.text)
        return "".join(parts).strip()

    async def close(self) -> None:
        for provider in self._providers.values():
            await provider.close()
