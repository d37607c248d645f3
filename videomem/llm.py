"""
LLM boundary.

Provides:
    - LLMProvider protocol (full and streamed chat completion)
    - OpenAI-compatible provider with retry logic (tenacity)
    - LLMClient wrapper resolving provider, model and API key from config
"""

from __future__ import annotations

import logging
import os
from typing import Any, Iterator, Protocol, Sequence

from openai import OpenAI
from tenacity import retry, stop_after_attempt, wait_exponential

from videomem.config import ConfigLike, resolve_config
from videomem.exceptions import ConfigurationError
from videomem.logging_utils import get_component_logger
from videomem.schema import ChatMessage, StreamDelta

SUPPORTED_PROVIDERS = ("openai",)


class LLMProvider(Protocol):
    def chat(
        self,
        messages: Sequence[ChatMessage],
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> ChatMessage: ...

    def chat_stream(
        self,
        messages: Sequence[ChatMessage],
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> Iterator[StreamDelta]: ...


def _to_wire(messages: Sequence[ChatMessage]) -> list[dict[str, str]]:
    return [m.model_dump() for m in messages]


class OpenAIProvider:
    """
    OpenAI-compatible chat provider.

    Supports OpenAI, Azure OpenAI, and any OpenAI-compatible API via base_url.
    """

    def __init__(self, api_key: str, model: str, base_url: str | None = None):
        self.model = model
        self.client = OpenAI(api_key=api_key, base_url=base_url)

    def _request(
        self,
        messages: Sequence[ChatMessage],
        temperature: float | None,
        max_tokens: int | None,
        **extra: Any,
    ) -> dict[str, Any]:
        kwargs: dict[str, Any] = {"model": self.model, "messages": _to_wire(messages), **extra}
        if temperature is not None:
            kwargs["temperature"] = temperature
        if max_tokens is not None:
            kwargs["max_tokens"] = max_tokens
        return kwargs

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        reraise=True,
    )
    def chat(
        self,
        messages: Sequence[ChatMessage],
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> ChatMessage:
        response = self.client.chat.completions.create(
            **self._request(messages, temperature, max_tokens)
        )
        content = response.choices[0].message.content or ""
        return ChatMessage(role="assistant", content=content)

    def chat_stream(
        self,
        messages: Sequence[ChatMessage],
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> Iterator[StreamDelta]:
        stream = self.client.chat.completions.create(
            **self._request(messages, temperature, max_tokens, stream=True)
        )
        for chunk in stream:
            if not chunk.choices:
                continue
            choice = chunk.choices[0]
            is_final = choice.finish_reason is not None
            yield StreamDelta(
                role="assistant" if choice.delta.role == "assistant" else None,
                content=choice.delta.content,
                is_final=is_final,
            )
            if is_final:
                break


class LLMClient:
    """
    Provider-agnostic chat client.

    Usage:
        client = LLMClient("openai")
        reply = client.chat([ChatMessage(role="user", content="Hello")])
    """

    def __init__(
        self,
        provider_name: str = "openai",
        config: ConfigLike = None,
        api_key: str | None = None,
        model: str | None = None,
        *,
        logger: logging.Logger | None = None,
    ):
        """
        Initialize the client.

        Args:
            provider_name: LLM provider (currently "openai")
            config: Configuration overrides
            api_key: API key (default: from the provider's environment variable)
            model: Model name (default: the provider's configured default)
            logger: Component logger (default: videomem.llm)

        Raises:
            ConfigurationError: If the provider is unsupported or no API key is found
        """
        self.logger = get_component_logger("llm", logger)
        llm_config = resolve_config(config).llm
        if provider_name not in SUPPORTED_PROVIDERS:
            raise ConfigurationError(f"Unsupported LLM provider: {provider_name}")

        env_var = llm_config.api_key_env_vars.get(provider_name, "")
        api_key = api_key or (os.environ.get(env_var) if env_var else None)
        if not api_key:
            raise ConfigurationError(
                f"API key for {provider_name} not found. Provide it directly or set {env_var}."
            )

        self.provider_name = provider_name
        self.model = model or llm_config.default_models.get(provider_name)
        if not self.model:
            raise ConfigurationError(f"No model configured for provider: {provider_name}")

        base_url = os.environ.get(llm_config.base_url_env_var) or None
        self.provider: LLMProvider = OpenAIProvider(api_key, self.model, base_url=base_url)
        self.logger.info(f"LLM client ready ({provider_name}, model={self.model})")

    def chat(
        self,
        messages: Sequence[ChatMessage],
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> ChatMessage:
        return self.provider.chat(messages, temperature=temperature, max_tokens=max_tokens)

    def chat_stream(
        self,
        messages: Sequence[ChatMessage],
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> Iterator[StreamDelta]:
        return self.provider.chat_stream(messages, temperature=temperature, max_tokens=max_tokens)
